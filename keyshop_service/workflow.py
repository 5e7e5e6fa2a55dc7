"""
workflow.py — Core Orchestration Logic for Order Placement

This module contains the purchase workflow. It coordinates pricing, voucher
redemption, inventory allocation and the payment gateway handoff in the
correct sequence.

Workflow Overview:
1. Validate commodity, quantity, contact, stock and payment method (no side effects)
2. Compute the amount and apply an optional voucher
3a. Free order: claim one card and settle immediately (single transaction)
3b. Paid order: reserve a pending order, call the gateway outside the
    transaction, then confirm (store redirect URL) or compensate (Saga Pattern)
"""

import logging
import re
import uuid
from datetime import datetime
from decimal import Decimal

import httpx
from sqlalchemy.exc import SQLAlchemyError

from .clients import GATEWAY_SUCCESS_CODE, GatewayClient
from .config import ShopSettings
from .errors import (
    ErrorKind,
    FreeOrderQuantityExceeded,
    InsufficientStock,
    OrderNotFound,
    OutOfStock,
    PaymentGatewayRejected,
    ShopError,
)
from .inventory import InventoryAllocator
from .models import OrderView, PurchaseRequest, PurchaseResult
from .pricing import compute_amount
from .repository import Transaction, UnitOfWork
from .tables import Commodity, CommodityStatus, ContactFormat, Order, OrderStatus, Pay, PayStatus
from .vouchers import VoucherRedeemer

log = logging.getLogger(__name__)

MIN_CONTACT_LENGTH = 4

CONTACT_PATTERNS = {
    ContactFormat.PHONE: (re.compile(r"^1[3456789]\d{9}$"), "phone number"),
    ContactFormat.EMAIL: (re.compile(r".*(.{2}@.*)$", re.IGNORECASE), "email address"),
    ContactFormat.QQ: (re.compile(r"[1-9][0-9]{4,11}"), "QQ number"),
}


def generate_trade_no(now: datetime) -> str:
    return now.strftime("%Y%m%d%H%M%S") + uuid.uuid4().hex[:8]


def check_contact(contact: str, contact_format: int):
    """
    Raises:
        ShopError(CONTACT_TOO_SHORT): Contact shorter than MIN_CONTACT_LENGTH.
        ShopError(CONTACT_FORMAT_MISMATCH): Contact does not match the commodity's required format.
    """
    if len(contact) < MIN_CONTACT_LENGTH:
        raise ShopError(ErrorKind.CONTACT_TOO_SHORT,
                        f"The contact must be at least {MIN_CONTACT_LENGTH} characters long.")
    if contact_format in CONTACT_PATTERNS:
        pattern, label = CONTACT_PATTERNS[contact_format]
        if not pattern.search(contact):
            raise ShopError(ErrorKind.CONTACT_FORMAT_MISMATCH,
                            f"The {label} you entered is not valid.")


class OrderTransactionCoordinator:
    """
    Orchestrates a purchase request end to end.

    Every mutation of one purchase happens inside one UnitOfWork transaction,
    except for paid orders, whose gateway call is deliberately made between
    two short transactions (reserve, then confirm or compensate) so that no
    database transaction stays open across the network call.
    """

    def __init__(self, uow: UnitOfWork, settings: ShopSettings, gateway: GatewayClient,
                 clock=datetime.now):
        self.uow = uow
        self.settings = settings
        self.gateway = gateway
        self.clock = clock

    def place_order(self, request: PurchaseRequest, ip: str) -> PurchaseResult:
        """
        Executes the purchase workflow for a single request.

        Args:
            request (PurchaseRequest): Validated request payload.
            ip (str): Requester IP address, stored on the order and passed to the gateway.

        Returns:
            PurchaseResult: Redirect URL (empty for free orders), final amount, trade number.

        Raises:
            ShopError: Any validation, stock, configuration or gateway failure.
            No state is left behind when it is raised.
        """
        now = self.clock()
        trade_no = generate_trade_no(now)
        log_prefix = f"[Trade: {trade_no}]"
        log.info(f"{log_prefix} Purchase request for commodity {request.commodityId} "
                 f"(quantity {request.quantity}) from {ip}.")

        with self.uow.transaction() as tx:
            # --- 1-5. Validation, pricing (no side effects) ---
            commodity = self._load_commodity(tx, request)
            check_contact(request.contact, commodity.contact_format)

            allocator = InventoryAllocator(tx.session)
            available = allocator.available_count(commodity.id)
            if available == 0 or request.quantity > available:
                log.warning(f"{log_prefix} Rejected: {available} cards available, {request.quantity} requested.")
                raise InsufficientStock()

            amount = compute_amount(request.quantity, commodity)
            pay = self._load_pay(tx, request.payId)

            # --- 6. Order construction ---
            order = Order(
                trade_no=trade_no,
                amount=amount,
                pay_id=pay.id,
                commodity_id=commodity.id,
                quantity=request.quantity,
                contact=request.contact,
                password=request.password or None,
                status=OrderStatus.PENDING,
                created_at=now,
                created_ip=ip,
                created_device=request.device,
            )

            # --- 7. Voucher ---
            redemption = VoucherRedeemer(tx.session).redeem(
                request.voucher, commodity.id, amount, request.contact, now
            )
            if redemption is not None:
                order.amount = max(amount - redemption.discount, Decimal("0"))
                order.voucher_id = redemption.voucher_id

            # --- 8a. Free order: settle immediately ---
            if order.amount == 0:
                if request.quantity > 1:
                    raise FreeOrderQuantityExceeded()
                try:
                    card = allocator.reserve_one(commodity.id, request.contact, now)
                except OutOfStock:
                    log.warning(f"{log_prefix} Stock exhausted between pre-check and claim.")
                    raise
                order.status = OrderStatus.SETTLED
                order.paid_at = now
                order.delivered = card.secret
                tx.orders.add(order)
                log.info(f"{log_prefix} Free order settled with card {card.id}.")
                return PurchaseResult(url="", amount=0.0, tradeNo=trade_no)

            # --- 8b. Paid order: reserve phase ---
            tx.orders.add(order)
            final_amount = order.amount
            voucher_id = order.voucher_id
            channel_code = pay.code

        log.info(f"{log_prefix} Order reserved (amount {final_amount}), handing off to the payment gateway.")
        url = self._hand_off(trade_no, final_amount, channel_code, ip, voucher_id)
        return PurchaseResult(url=url, amount=float(final_amount), tradeNo=trade_no)

    def _load_commodity(self, tx: Transaction, request: PurchaseRequest) -> Commodity:
        if not request.commodityId:
            raise ShopError(ErrorKind.COMMODITY_NOT_SELECTED, "Please select a commodity before ordering.")
        if request.quantity <= 0:
            raise ShopError(ErrorKind.INVALID_QUANTITY, "The minimum purchase quantity is 1.")
        commodity = tx.commodities.get(request.commodityId)
        if commodity is None:
            raise ShopError(ErrorKind.COMMODITY_NOT_FOUND, "The commodity does not exist.")
        if commodity.status != CommodityStatus.ON_SALE:
            raise ShopError(ErrorKind.COMMODITY_OFF_SALE,
                            "The commodity is currently not on sale, please try again later.")
        return commodity

    def _load_pay(self, tx: Transaction, pay_id: int) -> Pay:
        pay = tx.pays.get(pay_id)
        if pay is None:
            raise ShopError(ErrorKind.PAY_METHOD_NOT_FOUND, "The payment method does not exist.")
        if pay.status != PayStatus.ENABLED:
            raise ShopError(ErrorKind.PAY_METHOD_DISABLED,
                            "The payment method is disabled, please choose another one.")
        return pay

    def _hand_off(self, trade_no: str, amount: Decimal, channel_code: str, ip: str, voucher_id) -> str:
        """
        Creates the gateway trade for a reserved order (no transaction open).

        On success the redirect URL is stored on the order (confirm phase).
        On any failure the reservation is compensated and PaymentGatewayRejected is raised.
        """
        log_prefix = f"[Trade: {trade_no}]"
        payload = self.gateway.build_trade_request(trade_no, amount, channel_code, ip)

        try:
            response = self.gateway.create_trade(payload)
        except (httpx.HTTPError, ValueError) as e:
            log.error(f"{log_prefix} Payment gateway unreachable or invalid response ({e}). Starting compensation.")
            self._compensate(trade_no, voucher_id)
            raise PaymentGatewayRejected() from e

        if not isinstance(response, dict):
            response = {}
        data = response.get("data")
        url = data.get("url") if isinstance(data, dict) else None
        # Some gateway builds report the code as a string ("200").
        if str(response.get("code")) != str(GATEWAY_SUCCESS_CODE) or not url:
            log.error(f"{log_prefix} Payment gateway rejected the trade: {response}. Starting compensation.")
            self._compensate(trade_no, voucher_id)
            raise PaymentGatewayRejected()

        with self.uow.transaction() as tx:
            tx.orders.set_pay_url(trade_no, url)
        log.info(f"{log_prefix} Gateway trade created, awaiting payment callback.")
        return url

    def _compensate(self, trade_no: str, voucher_id):
        """Removes a reserved order and releases its voucher (Saga compensation)."""
        log_prefix = f"[Trade: {trade_no}]"
        try:
            with self.uow.transaction() as tx:
                if not tx.orders.delete_pending(trade_no):
                    log.critical(f"{log_prefix} Compensation skipped: order is no longer pending. "
                                 f"MANUAL ACTION REQUIRED!")
                    return
                if voucher_id is not None:
                    VoucherRedeemer(tx.session).release(voucher_id)
            log.info(f"{log_prefix} Compensation successful, reservation removed.")
        except SQLAlchemyError as comp_e:
            log.critical(f"{log_prefix} CRITICAL: compensation failed! {comp_e}")

    def lookup(self, trade_no: str, password: str = "") -> OrderView:
        """
        Returns the public view of an order.

        Raises:
            OrderNotFound: Unknown trade number, or the order's password does not match.
        """
        with self.uow.transaction() as tx:
            order = tx.orders.get_by_trade_no(trade_no)
            if order is None or (order.password and order.password != password):
                raise OrderNotFound()
            return OrderView(
                tradeNo=order.trade_no,
                amount=float(order.amount),
                quantity=order.quantity,
                settled=order.status == OrderStatus.SETTLED,
                paidAt=order.paid_at,
                delivered=order.delivered,
            )
