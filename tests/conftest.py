"""
Shared fixtures: a per-test SQLite file database, a seeding helper and a
scripted payment gateway behind httpx.MockTransport.
"""

from decimal import Decimal
from urllib.parse import parse_qsl

import httpx
import pytest
from sqlalchemy import select

from keyshop_service.clients import GatewayClient
from keyshop_service.config import ShopSettings
from keyshop_service.repository import UnitOfWork, create_engine_for, create_schema
from keyshop_service.settlement import PaymentCallbackHandler
from keyshop_service.tables import (
    Card,
    CardStatus,
    Commodity,
    CommodityStatus,
    ContactFormat,
    Order,
    Pay,
    PayStatus,
    Voucher,
    VoucherStatus,
)
from keyshop_service.workflow import OrderTransactionCoordinator


@pytest.fixture
def db_url(tmp_path):
    return f"sqlite:///{tmp_path / 'keyshop.db'}"


@pytest.fixture
def engine(db_url):
    engine = create_engine_for(db_url)
    create_schema(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def uow(engine):
    return UnitOfWork.from_engine(engine)


@pytest.fixture
def settings(db_url):
    return ShopSettings(
        database_url=db_url,
        gateway_url="https://gateway.test/order/trade",
        merchant_id="M1001",
        app_id="APP1",
        gateway_key="gateway-secret",
        public_base_url="https://shop.test",
        support_contact="QQ 10001",
    )


class GatewayStub:
    """
    Scripted gateway: records every request and answers with `response`,
    or raises `error` to simulate a transport failure.
    """

    def __init__(self):
        self.requests = []
        self.response = {"code": 200, "data": {"url": "https://gateway.test/pay/abc"}}
        self.error = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(dict(parse_qsl(request.content.decode())))
        if self.error is not None:
            raise self.error
        return httpx.Response(200, json=self.response)


@pytest.fixture
def gateway_stub():
    return GatewayStub()


@pytest.fixture
def gateway(settings, gateway_stub):
    client = GatewayClient(settings, transport=httpx.MockTransport(gateway_stub))
    yield client
    client.close()


@pytest.fixture
def coordinator(uow, settings, gateway):
    return OrderTransactionCoordinator(uow, settings, gateway)


@pytest.fixture
def handler(uow, settings):
    return PaymentCallbackHandler(uow, settings)


class Seeder:
    """Inserts catalog rows and reads back state, one transaction per call."""

    def __init__(self, uow: UnitOfWork):
        self.uow = uow

    def _add(self, *rows):
        with self.uow.transaction() as tx:
            tx.session.add_all(rows)
            tx.session.flush()
            return [row.id for row in rows]

    def commodity(self, price="10.00", wholesale=None, contact_format=ContactFormat.NONE,
                  status=CommodityStatus.ON_SALE) -> int:
        return self._add(Commodity(
            name="Game key",
            price=Decimal(price),
            wholesale_enabled=wholesale is not None,
            wholesale=wholesale,
            contact_format=contact_format,
            status=status,
        ))[0]

    def cards(self, commodity_id: int, count: int, prefix="KEY"):
        return self._add(*[
            Card(commodity_id=commodity_id, secret=f"{prefix}-{commodity_id}-{i}", status=CardStatus.AVAILABLE)
            for i in range(count)
        ])

    def voucher(self, commodity_id: int, code="ABCD1234", money="10.00", status=VoucherStatus.UNUSED) -> int:
        return self._add(Voucher(commodity_id=commodity_id, code=code, money=Decimal(money), status=status))[0]

    def pay(self, code="alipay", status=PayStatus.ENABLED) -> int:
        return self._add(Pay(name="Alipay", code=code, status=status))[0]

    def get(self, model, row_id):
        with self.uow.transaction() as tx:
            return tx.session.get(model, row_id)

    def order(self, trade_no: str):
        with self.uow.transaction() as tx:
            return tx.orders.get_by_trade_no(trade_no)

    def orders(self):
        with self.uow.transaction() as tx:
            return tx.session.execute(select(Order)).scalars().all()

    def sold_cards(self):
        with self.uow.transaction() as tx:
            return tx.session.execute(
                select(Card).where(Card.status == CardStatus.SOLD).order_by(Card.id)
            ).scalars().all()


@pytest.fixture
def seed(uow):
    return Seeder(uow)
