"""Domain errors for checkout and the transaction lifecycle.

Every error carries a stable ``ErrorCode`` (also returned by ``str()``), a
user-safe message and a small context dict with the identifiers a caller
needs to act on the failure. Views map codes to HTTP status codes; nothing
below the view layer knows about HTTP.
"""

from enum import Enum


class ErrorCode(str, Enum):
    """Stable error codes exposed to API clients."""

    NOT_FOUND = "NOT_FOUND"
    PRODUCT_NOT_FOUND = "PRODUCT_NOT_FOUND"
    COURIER_NOT_FOUND = "COURIER_NOT_FOUND"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    INSUFFICIENT_STOCK = "INSUFFICIENT_STOCK"
    INSUFFICIENT_CREDIT = "INSUFFICIENT_CREDIT"
    VOUCHER_INVALID = "VOUCHER_INVALID"
    VOUCHER_THRESHOLD_NOT_MET = "VOUCHER_THRESHOLD_NOT_MET"
    INVALID_STATE = "INVALID_STATE"
    ALREADY_IN_TARGET_STATE = "ALREADY_IN_TARGET_STATE"
    UNAUTHORIZED = "UNAUTHORIZED"
    INTERNAL = "INTERNAL"


class DomainError(ValueError):
    """Base domain error with code, message and context."""

    code = ErrorCode.INTERNAL

    def __init__(self, message: str, **context) -> None:
        super().__init__(self.code.value)
        self.message = message
        self.context = {k: str(v) for k, v in context.items() if v is not None}

    def __str__(self) -> str:
        return self.code.value


class NotFoundError(DomainError):
    """An entity id does not resolve."""

    code = ErrorCode.NOT_FOUND

    def __init__(self, entity: str, entity_id) -> None:
        super().__init__(f"{entity} not found.", entity=entity, id=entity_id)


class ProductNotFoundError(NotFoundError):
    code = ErrorCode.PRODUCT_NOT_FOUND

    def __init__(self, shop_id) -> None:
        DomainError.__init__(
            self, f"One or more products not found in shop {shop_id}.", shop_id=shop_id
        )


class CourierNotFoundError(NotFoundError):
    code = ErrorCode.COURIER_NOT_FOUND

    def __init__(self, courier_id, shop_id=None) -> None:
        DomainError.__init__(
            self, "Courier not found.", courier_id=courier_id, shop_id=shop_id
        )


class ValidationFailedError(DomainError):
    """Malformed or inconsistent request shape."""

    code = ErrorCode.VALIDATION_FAILED


class InsufficientStockError(DomainError):
    code = ErrorCode.INSUFFICIENT_STOCK

    def __init__(self, product_name: str, shop_id=None, product_id=None) -> None:
        suffix = f" in shop {shop_id}" if shop_id is not None else ""
        super().__init__(
            f"Insufficient stock for product: {product_name}{suffix}.",
            shop_id=shop_id,
            product_id=product_id,
            product=product_name,
        )


class InsufficientCreditError(DomainError):
    code = ErrorCode.INSUFFICIENT_CREDIT

    def __init__(self, payment_method_id) -> None:
        super().__init__(
            "Insufficient credit to make the transaction.",
            payment_method_id=payment_method_id,
        )


class VoucherInvalidError(DomainError):
    code = ErrorCode.VOUCHER_INVALID

    def __init__(self, voucher_id, reason: str = "Invalid or expired voucher.") -> None:
        super().__init__(reason, voucher_id=voucher_id)


class VoucherThresholdNotMetError(DomainError):
    code = ErrorCode.VOUCHER_THRESHOLD_NOT_MET

    def __init__(self, shop_id, min_purchase) -> None:
        super().__init__(
            f"Transaction in shop {shop_id} does not meet the minimum purchase of {min_purchase}.",
            shop_id=shop_id,
            min_purchase=min_purchase,
        )


class InvalidStateError(DomainError):
    """A lifecycle transition was requested from the wrong state."""

    code = ErrorCode.INVALID_STATE

    def __init__(self, current, required, target) -> None:
        super().__init__(
            f"Transaction must be in {required.value} state to mark as {target.value}.",
            current=current.value,
            required=required.value,
            target=target.value,
        )
        self.current = current
        self.target = target


class AlreadyInTargetStateError(InvalidStateError):
    code = ErrorCode.ALREADY_IN_TARGET_STATE

    def __init__(self, current, required, target) -> None:
        super().__init__(current, required, target)
        self.message = f"Transaction is already marked as {target.value}."


class UnauthorizedError(DomainError):
    """The acting user has no permission over the target shop or transaction."""

    code = ErrorCode.UNAUTHORIZED
