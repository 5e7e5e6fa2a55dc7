"""
repository.py — Unit of Work and Repositories over SQLAlchemy

The store is the only cross-request coordination mechanism. Purchases and
callbacks may run in independent workers, so nothing here relies on
in-process locks. Each workflow step that mutates state opens exactly one
UnitOfWork transaction, and every status transition is a conditional UPDATE
verified by its affected-row count.
"""

from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, Optional

from sqlalchemy import create_engine, delete, event, select, update
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from .tables import Base, Commodity, Order, OrderStatus, Pay


def create_engine_for(database_url: str, echo: bool = False) -> Engine:
    """
    Creates the SQLAlchemy engine for the given URL.

    For SQLite the driver's implicit transaction handling is switched off and
    every transaction starts with BEGIN IMMEDIATE, so concurrent writers
    serialize on the database lock instead of failing on lock upgrade and
    SAVEPOINTs behave as documented.
    """
    is_sqlite = database_url.startswith("sqlite")
    engine = create_engine(
        database_url,
        echo=echo,
        connect_args={"check_same_thread": False} if is_sqlite else {},
        pool_pre_ping=True,
    )

    if is_sqlite:
        @event.listens_for(engine, "connect")
        def sqlite_pragmas(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA busy_timeout=10000;")
            cursor.execute("PRAGMA journal_mode=WAL;")
            cursor.close()

        @event.listens_for(engine, "begin")
        def sqlite_begin(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


def create_schema(engine: Engine):
    Base.metadata.create_all(bind=engine)


class CommodityRepository:
    def __init__(self, session: Session):
        self.session = session

    def get(self, commodity_id: int) -> Optional[Commodity]:
        return self.session.get(Commodity, commodity_id)


class PayRepository:
    def __init__(self, session: Session):
        self.session = session

    def get(self, pay_id: int) -> Optional[Pay]:
        return self.session.get(Pay, pay_id)


class OrderRepository:
    """Order persistence, including the atomic pending → settled claim."""

    def __init__(self, session: Session):
        self.session = session

    def add(self, order: Order):
        self.session.add(order)
        self.session.flush()

    def get_by_trade_no(self, trade_no: str) -> Optional[Order]:
        return self.session.execute(
            select(Order).where(Order.trade_no == trade_no)
        ).scalar_one_or_none()

    def claim_pending(self, trade_no: str, paid_at: datetime) -> Optional[Order]:
        """
        Moves the order from PENDING to SETTLED in one conditional UPDATE.

        Returns:
            Order | None: The claimed order, or None when no PENDING order
            with this trade number exists (unknown, already settled, or a
            concurrent duplicate callback won the claim).
        """
        result = self.session.execute(
            update(Order)
            .where(Order.trade_no == trade_no, Order.status == OrderStatus.PENDING)
            .values(status=OrderStatus.SETTLED, paid_at=paid_at)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return None
        return self.session.execute(
            select(Order)
            .where(Order.trade_no == trade_no)
            .execution_options(populate_existing=True)
        ).scalar_one()

    def set_pay_url(self, trade_no: str, url: str) -> bool:
        result = self.session.execute(
            update(Order)
            .where(Order.trade_no == trade_no)
            .values(pay_url=url)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def delete_pending(self, trade_no: str) -> bool:
        """Deletes the order only while it is still PENDING; returns whether a row was removed."""
        result = self.session.execute(
            delete(Order)
            .where(Order.trade_no == trade_no, Order.status == OrderStatus.PENDING)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1


class Transaction:
    """Repositories bound to one open session/transaction."""

    def __init__(self, session: Session):
        self.session = session
        self.commodities = CommodityRepository(session)
        self.pays = PayRepository(session)
        self.orders = OrderRepository(session)


class UnitOfWork:
    """
    Opens atomic transactions on an injected session factory.

    Usage:
        uow = UnitOfWork(sessionmaker(bind=engine))
        with uow.transaction() as tx:
            tx.orders.add(order)
        # committed here, or rolled back if the block raised
    """

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    @classmethod
    def from_engine(cls, engine: Engine) -> "UnitOfWork":
        return cls(sessionmaker(bind=engine, autoflush=False, expire_on_commit=False))

    @contextmanager
    def transaction(self) -> Iterator[Transaction]:
        with self.session_factory() as session:
            with session.begin():
                yield Transaction(session)
