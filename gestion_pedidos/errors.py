"""Error taxonomy for the order lifecycle.

Every error carries a stable ``kind`` for machines, a human readable
``message`` and the HTTP status the API layer answers with.
"""

from enum import Enum


class ValidationKind(str, Enum):
    MISSING_CUSTOMER_INFO = "MissingCustomerInfo"
    EMPTY_ITEM_LIST = "EmptyItemList"
    INVALID_ITEM = "InvalidItem"
    INVALID_TOTAL = "InvalidTotal"
    INVALID_PAYMENT_METHOD = "InvalidPaymentMethod"


class OrderError(Exception):
    kind = "OrderError"
    status_code = 500
    retryable = False
    default_message = "Order operation failed"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_payload(self) -> dict:
        payload = {"success": False, "message": self.message, "kind": self.kind}
        if self.retryable:
            payload["retryable"] = True
        return payload


class OrderValidationError(OrderError):
    status_code = 400
    default_message = "Invalid order"

    def __init__(self, kind: ValidationKind, message: str = None):
        super().__init__(message)
        self.kind = ValidationKind(kind).value


class InvalidStatusError(OrderError):
    kind = "InvalidStatus"
    status_code = 400
    default_message = "Valid status is required"


class InvalidQueryError(OrderError):
    kind = "InvalidQuery"
    status_code = 400
    default_message = "Search query is required"


class NotAuthorizedError(OrderError):
    kind = "NotAuthorized"
    status_code = 401
    default_message = "Not authorized to access this route"


class OrderNotFoundError(OrderError):
    kind = "NotFound"
    status_code = 404
    default_message = "Order not found"


class UniquenessConflictError(OrderError):
    kind = "UniquenessConflict"
    status_code = 409
    retryable = True
    default_message = "Order number already in use, please retry"


class ConcurrentUpdateError(OrderError):
    kind = "ConcurrentUpdate"
    status_code = 409
    retryable = True
    default_message = "Order was modified by another request, reload and retry"


class StoreUnavailableError(OrderError):
    kind = "StoreUnavailable"
    status_code = 503
    retryable = True
    default_message = "Order store is unavailable, please try again later"


class InvalidRequestError(OrderError):
    kind = "InvalidRequest"
    status_code = 422
    default_message = "Request body could not be read"
