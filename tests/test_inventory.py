from concurrent.futures import ThreadPoolExecutor
from datetime import datetime

import pytest
from sqlalchemy import update

from keyshop_service.errors import ErrorKind, InsufficientStock, OutOfStock
from keyshop_service.inventory import InventoryAllocator
from keyshop_service.tables import Card, CardStatus

NOW = datetime(2026, 10, 1, 12, 0, 0)


def test_available_count_ignores_sold_and_foreign_cards(uow, seed):
    commodity_id = seed.commodity()
    other_id = seed.commodity()
    seed.cards(commodity_id, 3)
    seed.cards(other_id, 2)
    with uow.transaction() as tx:
        InventoryAllocator(tx.session).reserve_one(commodity_id, "buyer", NOW)
    with uow.transaction() as tx:
        assert InventoryAllocator(tx.session).available_count(commodity_id) == 2


def test_reserve_one_claims_and_stamps_a_card(uow, seed):
    commodity_id = seed.commodity()
    card_ids = seed.cards(commodity_id, 2)

    with uow.transaction() as tx:
        claimed = InventoryAllocator(tx.session).reserve_one(commodity_id, "buyer", NOW)

    assert claimed.id == card_ids[0]
    assert claimed.secret == f"KEY-{commodity_id}-0"
    card = seed.get(Card, claimed.id)
    assert card.status == CardStatus.SOLD
    assert card.contact == "buyer"
    assert card.sold_at == NOW


def test_reserve_one_raises_out_of_stock(uow, seed):
    commodity_id = seed.commodity()
    with uow.transaction() as tx:
        with pytest.raises(OutOfStock) as excinfo:
            InventoryAllocator(tx.session).reserve_one(commodity_id, "buyer", NOW)
    assert excinfo.value.kind == ErrorKind.OUT_OF_STOCK


def test_concurrent_reserve_one_never_claims_a_card_twice(uow, seed):
    commodity_id = seed.commodity()
    seed.cards(commodity_id, 5)

    def claim(i):
        try:
            with uow.transaction() as tx:
                return InventoryAllocator(tx.session).reserve_one(commodity_id, f"buyer-{i}", NOW).id
        except OutOfStock:
            return None

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(claim, range(12)))

    claimed = [card_id for card_id in results if card_id is not None]
    assert len(claimed) == 5
    assert len(set(claimed)) == 5
    assert len(seed.sold_cards()) == 5


def test_allocate_batch_claims_exactly_count(uow, seed):
    commodity_id = seed.commodity()
    seed.cards(commodity_id, 5)

    with uow.transaction() as tx:
        cards = InventoryAllocator(tx.session).allocate_batch(3, "buyer", NOW, commodity_id=commodity_id)

    assert [c.secret for c in cards] == [f"KEY-{commodity_id}-{i}" for i in range(3)]
    sold = seed.sold_cards()
    assert [c.id for c in sold] == [c.id for c in cards]
    assert all(c.contact == "buyer" and c.sold_at == NOW for c in sold)


def test_allocate_batch_is_all_or_nothing(uow, seed):
    commodity_id = seed.commodity()
    seed.cards(commodity_id, 2)

    with uow.transaction() as tx:
        with pytest.raises(InsufficientStock):
            InventoryAllocator(tx.session).allocate_batch(3, "buyer", NOW, commodity_id=commodity_id)

    assert seed.sold_cards() == []


def test_allocate_batch_without_commodity_draws_from_whole_pool(uow, seed):
    first = seed.commodity()
    second = seed.commodity()
    seed.cards(first, 1)
    seed.cards(second, 2)

    with uow.transaction() as tx:
        allocator = InventoryAllocator(tx.session)
        with pytest.raises(InsufficientStock):
            allocator.allocate_batch(2, "buyer", NOW, commodity_id=first)
        cards = allocator.allocate_batch(3, "buyer", NOW)

    assert len(cards) == 3


class RacingAllocator(InventoryAllocator):
    """A rival settlement takes one candidate between selection and claim."""

    def _claim(self, card_ids, contact, now):
        self.session.execute(
            update(Card).where(Card.id == card_ids[0]).values(status=CardStatus.SOLD, contact="rival")
        )
        return super()._claim(card_ids, contact, now)


def test_short_batch_claim_is_rolled_back(uow, seed):
    commodity_id = seed.commodity()
    seed.cards(commodity_id, 3)

    with uow.transaction() as tx:
        with pytest.raises(InsufficientStock):
            RacingAllocator(tx.session).allocate_batch(3, "buyer", NOW, commodity_id=commodity_id)
        assert InventoryAllocator(tx.session).available_count(commodity_id) == 3

    assert seed.sold_cards() == []


def test_concurrent_batches_never_exceed_pool(uow, seed):
    commodity_id = seed.commodity()
    seed.cards(commodity_id, 10)

    def allocate(i):
        try:
            with uow.transaction() as tx:
                allocator = InventoryAllocator(tx.session)
                return [c.id for c in allocator.allocate_batch(3, f"buyer-{i}", NOW, commodity_id=commodity_id)]
        except InsufficientStock:
            return []

    with ThreadPoolExecutor(max_workers=6) as pool:
        batches = list(pool.map(allocate, range(6)))

    claimed = [card_id for batch in batches for card_id in batch]
    assert len([b for b in batches if b]) == 3
    assert len(claimed) == len(set(claimed)) == 9
