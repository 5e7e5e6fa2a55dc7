"""
errors.py — Domain Error Taxonomy for Order Placement and Settlement

Every failure the core can report is a ShopError carrying an ErrorKind.
Callers branch on `error.kind` (and `error.kind.category`), never on the
human-readable message.

Categories:
    • CLIENT_INPUT       — bad commodity, quantity, contact or voucher
    • RESOURCE_EXHAUSTED — not enough inventory
    • CONFIGURATION      — payment method missing or disabled
    • DEPENDENCY         — payment gateway refused or unreachable
    • INTEGRITY          — callback signature/status mismatch, unknown order
"""

from enum import Enum


class ErrorCategory(str, Enum):
    CLIENT_INPUT = "client_input"
    RESOURCE_EXHAUSTED = "resource_exhausted"
    CONFIGURATION = "configuration"
    DEPENDENCY = "dependency"
    INTEGRITY = "integrity"


class ErrorKind(str, Enum):
    """
    Every distinct failure of the purchase and callback workflows.

    The value is the stable machine-readable code returned by the API.
    """
    COMMODITY_NOT_SELECTED = "commodity_not_selected"
    INVALID_QUANTITY = "invalid_quantity"
    COMMODITY_NOT_FOUND = "commodity_not_found"
    COMMODITY_OFF_SALE = "commodity_off_sale"
    CONTACT_TOO_SHORT = "contact_too_short"
    CONTACT_FORMAT_MISMATCH = "contact_format_mismatch"
    VOUCHER_NOT_FOUND = "voucher_not_found"
    VOUCHER_ALREADY_USED = "voucher_already_used"
    VOUCHER_EXCEEDS_AMOUNT = "voucher_exceeds_amount"
    FREE_ORDER_QUANTITY_EXCEEDED = "free_order_quantity_exceeded"

    INSUFFICIENT_STOCK = "insufficient_stock"
    OUT_OF_STOCK = "out_of_stock"

    PAY_METHOD_NOT_FOUND = "pay_method_not_found"
    PAY_METHOD_DISABLED = "pay_method_disabled"

    PAYMENT_GATEWAY_REJECTED = "payment_gateway_rejected"

    SIGNATURE_MISMATCH = "signature_mismatch"
    STATUS_NOT_SUCCESS = "status_not_success"
    ORDER_NOT_FOUND = "order_not_found"

    @property
    def category(self) -> ErrorCategory:
        return _CATEGORIES.get(self, ErrorCategory.CLIENT_INPUT)


_CATEGORIES = {
    ErrorKind.INSUFFICIENT_STOCK: ErrorCategory.RESOURCE_EXHAUSTED,
    ErrorKind.OUT_OF_STOCK: ErrorCategory.RESOURCE_EXHAUSTED,
    ErrorKind.PAY_METHOD_NOT_FOUND: ErrorCategory.CONFIGURATION,
    ErrorKind.PAY_METHOD_DISABLED: ErrorCategory.CONFIGURATION,
    ErrorKind.PAYMENT_GATEWAY_REJECTED: ErrorCategory.DEPENDENCY,
    ErrorKind.SIGNATURE_MISMATCH: ErrorCategory.INTEGRITY,
    ErrorKind.STATUS_NOT_SUCCESS: ErrorCategory.INTEGRITY,
    ErrorKind.ORDER_NOT_FOUND: ErrorCategory.INTEGRITY,
}


class ShopError(Exception):
    """
    Base class for all domain errors raised by the workflows.

    Attributes:
        kind (ErrorKind): Machine-readable failure kind.
        message (str): Human-readable explanation for the caller.
    """

    def __init__(self, kind: ErrorKind, message: str):
        super().__init__(message)
        self.kind = kind
        self.message = message

    def __repr__(self):
        return f"{type(self).__name__}(kind={self.kind.value!r}, message={self.message!r})"


class VoucherNotFound(ShopError):
    def __init__(self, message="The voucher does not exist or does not belong to this commodity."):
        super().__init__(ErrorKind.VOUCHER_NOT_FOUND, message)


class VoucherAlreadyUsed(ShopError):
    def __init__(self, message="The voucher has already been used."):
        super().__init__(ErrorKind.VOUCHER_ALREADY_USED, message)


class VoucherExceedsAmount(ShopError):
    def __init__(self, message="The voucher discount exceeds the order amount and cannot be applied."):
        super().__init__(ErrorKind.VOUCHER_EXCEEDS_AMOUNT, message)


class FreeOrderQuantityExceeded(ShopError):
    def __init__(self, message="This commodity is free, at most 1 unit can be claimed per order."):
        super().__init__(ErrorKind.FREE_ORDER_QUANTITY_EXCEEDED, message)


class OutOfStock(ShopError):
    def __init__(self, message="Too slow, the commodity has just sold out."):
        super().__init__(ErrorKind.OUT_OF_STOCK, message)


class InsufficientStock(ShopError):
    def __init__(self, message="Not enough stock for this commodity, please try again later."):
        super().__init__(ErrorKind.INSUFFICIENT_STOCK, message)


class PaymentGatewayRejected(ShopError):
    def __init__(self, message="This payment method is currently unavailable, please choose another one."):
        super().__init__(ErrorKind.PAYMENT_GATEWAY_REJECTED, message)


class OrderNotFound(ShopError):
    def __init__(self, message="order not found"):
        super().__init__(ErrorKind.ORDER_NOT_FOUND, message)
