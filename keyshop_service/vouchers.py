"""
vouchers.py — Single-Use Discount Codes

A voucher is redeemed inside the caller's transaction: the UNUSED → USED
transition is a conditional UPDATE, so two orders racing for the same code
cannot both succeed, and the claim commits or rolls back together with
the order that uses it.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from .errors import VoucherAlreadyUsed, VoucherExceedsAmount, VoucherNotFound
from .tables import Voucher, VoucherStatus

log = logging.getLogger(__name__)

VOUCHER_CODE_LENGTH = 8


@dataclass(frozen=True)
class Redemption:
    voucher_id: int
    discount: Decimal


def is_voucher_code(code: Optional[str]) -> bool:
    """Only codes of exactly VOUCHER_CODE_LENGTH characters request a voucher."""
    return code is not None and len(code) == VOUCHER_CODE_LENGTH


class VoucherRedeemer:
    def __init__(self, session: Session):
        self.session = session

    def redeem(self, code: str, commodity_id: int, current_amount: Decimal,
               contact: str, now: datetime) -> Optional[Redemption]:
        """
        Validates and claims a voucher for an order.

        Args:
            code (str): Voucher code supplied by the buyer.
            commodity_id (int): Commodity the order is for.
            current_amount (Decimal): Order amount before the discount.
            contact (str): Buyer contact recorded on the voucher.
            now (datetime): Redemption timestamp.

        Returns:
            Redemption | None: The claimed voucher and its discount, or None
            when the code length means no voucher was requested.

        Raises:
            VoucherNotFound: No voucher with this code for the commodity.
            VoucherAlreadyUsed: The voucher is used, or a concurrent order claimed it first.
            VoucherExceedsAmount: The discount is larger than the order amount.
        """
        if not is_voucher_code(code):
            return None

        voucher = self.session.execute(
            select(Voucher).where(Voucher.commodity_id == commodity_id, Voucher.code == code)
        ).scalar_one_or_none()
        if voucher is None:
            raise VoucherNotFound()
        if voucher.status != VoucherStatus.UNUSED:
            raise VoucherAlreadyUsed()

        discount = Decimal(voucher.money)
        if discount > current_amount:
            raise VoucherExceedsAmount()

        result = self.session.execute(
            update(Voucher)
            .where(Voucher.id == voucher.id, Voucher.status == VoucherStatus.UNUSED)
            .values(status=VoucherStatus.USED, contact=contact, used_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            log.warning(f"Voucher {voucher.id} was claimed concurrently by another order.")
            raise VoucherAlreadyUsed()

        log.info(f"Voucher {voucher.id} redeemed for commodity {commodity_id} (discount {discount}).")
        return Redemption(voucher_id=voucher.id, discount=discount)

    def release(self, voucher_id: int) -> bool:
        """
        Returns a redeemed voucher to UNUSED.

        Only used to compensate a reserved order whose gateway handoff failed.
        """
        result = self.session.execute(
            update(Voucher)
            .where(Voucher.id == voucher_id, Voucher.status == VoucherStatus.USED)
            .values(status=VoucherStatus.UNUSED, contact=None, used_at=None)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
