"""
tables.py — Relational Schema for Commodities, Cards, Vouchers, Pay Methods and Orders

SQLAlchemy declarative tables used by the repositories. Status columns are
stored as small integers; the IntEnum classes below give them names.
"""

from enum import IntEnum

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class CommodityStatus(IntEnum):
    OFF_SALE = 0
    ON_SALE = 1


class ContactFormat(IntEnum):
    NONE = 0
    PHONE = 1
    EMAIL = 2
    QQ = 3


class CardStatus(IntEnum):
    AVAILABLE = 0
    SOLD = 1


class VoucherStatus(IntEnum):
    UNUSED = 0
    USED = 1


class PayStatus(IntEnum):
    DISABLED = 0
    ENABLED = 1


class OrderStatus(IntEnum):
    PENDING = 0
    SETTLED = 1


class Commodity(Base):
    __tablename__ = "commodities"
    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False, default="")
    price = Column(Numeric(10, 2), nullable=False)
    wholesale_enabled = Column(Boolean, nullable=False, default=False)
    wholesale = Column(Text, nullable=True)  # one "threshold-price" row per line
    contact_format = Column(Integer, nullable=False, default=ContactFormat.NONE)
    status = Column(Integer, nullable=False, default=CommodityStatus.ON_SALE)


class Card(Base):
    __tablename__ = "cards"
    id = Column(Integer, primary_key=True)
    commodity_id = Column(Integer, nullable=False, index=True)
    secret = Column(Text, nullable=False)
    status = Column(Integer, nullable=False, default=CardStatus.AVAILABLE, index=True)
    contact = Column(String(255), nullable=True)
    sold_at = Column(DateTime, nullable=True)


class Voucher(Base):
    __tablename__ = "vouchers"
    __table_args__ = (UniqueConstraint("commodity_id", "code", name="uq_voucher_code"),)
    id = Column(Integer, primary_key=True)
    commodity_id = Column(Integer, nullable=False)
    code = Column(String(8), nullable=False)
    money = Column(Numeric(10, 2), nullable=False)
    status = Column(Integer, nullable=False, default=VoucherStatus.UNUSED)
    contact = Column(String(255), nullable=True)
    used_at = Column(DateTime, nullable=True)


class Pay(Base):
    __tablename__ = "pays"
    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False, default="")
    code = Column(String(64), nullable=False)  # gateway channel code
    status = Column(Integer, nullable=False, default=PayStatus.ENABLED)


class Order(Base):
    __tablename__ = "orders"
    id = Column(Integer, primary_key=True)
    trade_no = Column(String(32), nullable=False, unique=True)
    amount = Column(Numeric(10, 2), nullable=False)
    pay_id = Column(Integer, nullable=False)
    commodity_id = Column(Integer, nullable=False)
    quantity = Column(Integer, nullable=False)
    contact = Column(String(255), nullable=False)
    password = Column(String(255), nullable=True)
    status = Column(Integer, nullable=False, default=OrderStatus.PENDING)
    created_at = Column(DateTime, nullable=False)
    created_ip = Column(String(64), nullable=True)
    created_device = Column(Integer, nullable=False, default=0)
    paid_at = Column(DateTime, nullable=True)
    voucher_id = Column(Integer, nullable=True)
    delivered = Column(Text, nullable=True)  # card secrets or the apology text
    pay_url = Column(Text, nullable=True)
