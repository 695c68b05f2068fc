"""Custom exceptions for bloomshop."""

from typing import Any


class BloomshopError(Exception):
    """Base exception for all bloomshop errors."""

    def details(self) -> dict[str, Any]:
        """Structured detail added to the error response body."""
        return {}


class ValidationError(BloomshopError):
    """Raised when input is missing or out of range."""

    def __init__(
        self,
        message: str,
        missing_fields: list[str] | None = None,
        invalid_fields: dict[str, str] | None = None,
    ):
        self.missing_fields = missing_fields or []
        self.invalid_fields = invalid_fields or {}
        super().__init__(message)

    def details(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        if self.missing_fields:
            result["missingFields"] = self.missing_fields
        if self.invalid_fields:
            result["invalidFields"] = self.invalid_fields
        return result


class NotFoundError(BloomshopError):
    """Raised when a record doesn't exist or isn't visible to the caller."""

    def __init__(self, kind: str, record_id: Any = None):
        self.kind = kind
        self.record_id = record_id
        msg = f"{kind} not found"
        if record_id is not None:
            msg = f"{kind} {record_id} not found"
        super().__init__(msg)


class InvalidStateError(BloomshopError):
    """Raised when an action is not allowed in the record's current state."""

    def __init__(self, message: str, state: str | None = None):
        self.state = state
        super().__init__(message)


class DuplicateEntryError(BloomshopError):
    """Raised when a uniqueness rule would be violated."""

    pass


class DuplicateReviewError(DuplicateEntryError):
    """Raised when a review already exists for a (user, product, order) triple."""

    def __init__(self, product_id: int, order_id: int):
        self.product_id = product_id
        self.order_id = order_id
        super().__init__(
            f"Review already exists for product {product_id} in order {order_id}"
        )


class UnavailableError(BloomshopError):
    """Raised when a product is discontinued or otherwise cannot be sold."""

    pass


class InsufficientStockError(UnavailableError):
    """Raised when an order asks for more units than are in stock."""

    def __init__(self, product_name: str, available: int, requested: int):
        self.product_name = product_name
        self.available = available
        self.requested = requested
        super().__init__(
            f"Insufficient stock for {product_name}. "
            f"Available: {available}, requested: {requested}"
        )


class InvalidPurchaseError(BloomshopError):
    """Raised when a review doesn't match a confirmed purchase."""

    def __init__(self, product_id: int, order_id: int):
        self.product_id = product_id
        self.order_id = order_id
        super().__init__(
            f"Cannot review product {product_id}: no confirmed purchase in order {order_id}"
        )


class ForbiddenError(BloomshopError):
    """Raised when the caller lacks the role an action requires."""

    def __init__(self, message: str = "Admin access required"):
        super().__init__(message)


class InvalidSchemaVersionError(BloomshopError):
    """Raised when the data file has an unsupported schema version."""

    def __init__(self, found: int, supported: int):
        self.found = found
        self.supported = supported
        super().__init__(
            f"Unsupported schema version {found}. This tool supports version {supported}."
        )
