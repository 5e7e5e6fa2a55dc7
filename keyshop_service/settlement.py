"""
settlement.py — Payment Callback Handling

The gateway notifies us (at least once, possibly concurrently) when a paid
order has been paid. Settlement runs in a single transaction:

1. Verify the signature and the status flag (plain-text rejections, no mutation)
2. Claim the order PENDING → SETTLED with a conditional UPDATE (the idempotency gate)
3. Allocate exactly `quantity` cards, all or nothing
4. Store the card secrets, or an apology when stock ran out after payment
"""

import logging
from datetime import datetime
from typing import Any, Mapping

from .config import ShopSettings
from .errors import InsufficientStock, OrderNotFound
from .inventory import InventoryAllocator
from .repository import UnitOfWork
from .signing import SignatureVerifier

log = logging.getLogger(__name__)

SUCCESS = "success"
SIGN_ERROR = "sign error"
STATUS_ERROR = "status error"

PAID_STATUS = "1"


def apology_message(support_contact: str) -> str:
    return ("We are sorry, the stock ran out and automatic delivery failed, "
            f"please contact customer support: {support_contact}")


class PaymentCallbackHandler:
    def __init__(self, uow: UnitOfWork, settings: ShopSettings, clock=datetime.now):
        self.uow = uow
        self.settings = settings
        self.signer = SignatureVerifier(settings.gateway_key, settings.sign_type)
        self.clock = clock

    def handle(self, fields: Mapping[str, Any]) -> str:
        """
        Settles the order referenced by a gateway callback.

        Args:
            fields (Mapping): Callback fields, including `sign`, `status` and `out_trade_no`.

        Returns:
            str: "success", "sign error" or "status error".

        Raises:
            OrderNotFound: No pending order with this trade number (unknown,
            already settled, or a duplicate callback that lost the claim).
        """
        trade_no = fields.get("out_trade_no")
        log_prefix = f"[Trade: {trade_no}]"

        if not self.signer.verify(fields):
            log.warning(f"{log_prefix} Callback rejected: signature mismatch.")
            return SIGN_ERROR

        if str(fields.get("status")) != PAID_STATUS:
            log.warning(f"{log_prefix} Callback rejected: status {fields.get('status')!r} is not paid.")
            return STATUS_ERROR

        with self.uow.transaction() as tx:
            now = self.clock()
            order = tx.orders.claim_pending(trade_no, now)
            if order is None:
                log.error(f"{log_prefix} Callback for an order that is not pending (unknown or already settled).")
                raise OrderNotFound()

            allocator = InventoryAllocator(tx.session)
            try:
                cards = allocator.allocate_batch(
                    order.quantity, order.contact, now, commodity_id=order.commodity_id
                )
            except InsufficientStock:
                log.critical(f"{log_prefix} Paid, but fewer than {order.quantity} cards could be claimed. "
                             f"Stored apology, MANUAL DELIVERY REQUIRED!")
                order.delivered = apology_message(self.settings.support_contact)
            else:
                order.delivered = "\n".join(card.secret for card in cards)
                log.info(f"{log_prefix} Settled, delivered {len(cards)} cards.")

        return SUCCESS
