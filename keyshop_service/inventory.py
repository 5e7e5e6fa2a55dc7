"""
inventory.py — Atomic Inventory (Card) Allocation

Cards move AVAILABLE → SOLD exactly once. A claim is never a read followed
by an unconditional write: candidates are read, then claimed with an UPDATE
that repeats the `status = AVAILABLE` condition, and the affected-row count
decides who won.

Two policies:
    • reserve_one    — claim a single card, retrying on lost races until the pool is empty.
    • allocate_batch — all or nothing; a short claim is rolled back to its savepoint.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from .errors import InsufficientStock, OutOfStock
from .tables import Card, CardStatus

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClaimedCard:
    id: int
    secret: str


class InventoryAllocator:
    def __init__(self, session: Session):
        self.session = session

    def available_count(self, commodity_id: int) -> int:
        return self.session.execute(
            select(func.count(Card.id)).where(
                Card.commodity_id == commodity_id,
                Card.status == CardStatus.AVAILABLE,
            )
        ).scalar_one()

    def _claim(self, card_ids: List[int], contact: str, now: datetime) -> int:
        result = self.session.execute(
            update(Card)
            .where(Card.id.in_(card_ids), Card.status == CardStatus.AVAILABLE)
            .values(status=CardStatus.SOLD, contact=contact, sold_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def reserve_one(self, commodity_id: int, contact: str, now: datetime) -> ClaimedCard:
        """
        Claims exactly one available card of the commodity.

        Raises:
            OutOfStock: No available card is left.
        """
        while True:
            candidate = self.session.execute(
                select(Card.id, Card.secret)
                .where(Card.commodity_id == commodity_id, Card.status == CardStatus.AVAILABLE)
                .order_by(Card.id)
                .limit(1)
            ).first()
            if candidate is None:
                raise OutOfStock()
            if self._claim([candidate.id], contact, now) == 1:
                return ClaimedCard(id=candidate.id, secret=candidate.secret)
            log.info(f"Card {candidate.id} was claimed concurrently, trying the next one.")

    def allocate_batch(self, count: int, contact: str, now: datetime,
                       commodity_id: Optional[int] = None) -> List[ClaimedCard]:
        """
        Claims exactly `count` available cards or none at all.

        Args:
            count (int): Number of cards to claim.
            contact (str): Buyer contact stamped on the claimed cards.
            now (datetime): Sale timestamp stamped on the claimed cards.
            commodity_id (int | None): Restricts the pool to one commodity;
                None draws from the system-wide pool.

        Returns:
            list[ClaimedCard]: The claimed cards, in id order.

        Raises:
            InsufficientStock: Fewer than `count` cards could be claimed; any
            partial claim has been rolled back.
        """
        query = select(Card.id, Card.secret).where(Card.status == CardStatus.AVAILABLE)
        if commodity_id is not None:
            query = query.where(Card.commodity_id == commodity_id)
        candidates = self.session.execute(query.order_by(Card.id).limit(count)).all()

        if len(candidates) < count:
            raise InsufficientStock()

        # Raising inside the savepoint rolls back the partial claim only.
        with self.session.begin_nested():
            claimed = self._claim([row.id for row in candidates], contact, now)
            if claimed != count:
                log.warning(f"Batch claim got {claimed} of {count} cards, rolling back.")
                raise InsufficientStock()

        return [ClaimedCard(id=row.id, secret=row.secret) for row in candidates]
