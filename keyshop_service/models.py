"""
models.py — Request/Response Models for Purchases and Order Queries

This module defines the data structures exchanged with buyers.
It uses Pydantic models for type safety and automatic validation of incoming data.
Business rules (quantity >= 1, contact format, ...) are checked by the workflow,
not here, so that every rule surfaces as a domain error with its own message.

Models:
    - PurchaseRequest: A buyer's purchase request.
    - PurchaseResult: What the buyer needs to continue (redirect URL, amount, trade number).
    - OrderView: Public view of an order, returned by the order query.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class PurchaseRequest(BaseModel):
    """
    Represents a purchase request submitted by a buyer.

    Attributes:
        contact (str): Buyer contact (phone, email, QQ id... depending on the commodity).
        quantity (int): Number of units to buy.
        password (str): Optional password protecting the order query.
        payId (int): Selected payment method.
        device (int): Device tag of the requesting client.
        voucher (str): Optional 8-character voucher code.
        commodityId (int): Commodity to buy (0 means none selected).
    """
    contact: str
    quantity: int = 1
    password: str = ""
    payId: int = 0
    device: int = 0
    voucher: str = ""
    commodityId: int = 0


class PurchaseResult(BaseModel):
    """
    Attributes:
        url (str): Gateway redirect URL; empty for free orders that were delivered immediately.
        amount (float): Final amount after the voucher discount.
        tradeNo (str): Trade number identifying the order.
    """
    url: str
    amount: float
    tradeNo: str


class OrderView(BaseModel):
    tradeNo: str
    amount: float
    quantity: int
    settled: bool
    paidAt: Optional[datetime] = None
    delivered: Optional[str] = None
