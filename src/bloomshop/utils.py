"""Utility functions for bloomshop."""

import math
from dataclasses import dataclass
from datetime import date, datetime
from typing import TYPE_CHECKING, Any, Generic, Sequence, TypeVar

from .errors import ValidationError

if TYPE_CHECKING:
    from .models import Order, Product

T = TypeVar("T")

ADMIN_PAGE_LIMIT = 100
USER_PAGE_LIMIT = 50


@dataclass(frozen=True)
class PageRequest:
    """A clamped page/limit pair."""

    page: int
    limit: int

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


@dataclass
class Page(Generic[T]):
    """One page of results plus the total match count."""

    items: list[T]
    total: int
    page: int
    limit: int

    @property
    def pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0

    @property
    def has_next(self) -> bool:
        return self.page < self.pages

    @property
    def has_prev(self) -> bool:
        return self.page > 1

    def pagination(self) -> dict[str, Any]:
        return {
            "page": self.page,
            "limit": self.limit,
            "total": self.total,
            "pages": self.pages,
            "has_next": self.has_next,
            "has_prev": self.has_prev,
        }


def clamp_page(page: Any, limit: Any, max_limit: int, default_limit: int = 20) -> PageRequest:
    """
    Normalize paging input: page >= 1, 1 <= limit <= max_limit.

    Non-numeric values fall back to page 1 / default_limit.
    """
    try:
        page_num = int(page)
    except (TypeError, ValueError):
        page_num = 1
    try:
        limit_num = int(limit)
    except (TypeError, ValueError):
        limit_num = default_limit
    return PageRequest(
        page=max(1, page_num),
        limit=min(max_limit, max(1, limit_num)),
    )


def paginate(items: Sequence[T], request: PageRequest) -> Page[T]:
    """Slice an already-filtered, already-sorted sequence."""
    return Page(
        items=list(items[request.offset:request.offset + request.limit]),
        total=len(items),
        page=request.page,
        limit=request.limit,
    )


def format_currency(amount: Any) -> str:
    return f"${amount:,.2f}"


def require_fields(data: dict[str, Any], fields: Sequence[str]) -> None:
    """
    Raise ValidationError listing every field that is missing or empty.
    """
    missing = [f for f in fields if data.get(f) in (None, "")]
    if missing:
        raise ValidationError("Missing required fields", missing_fields=missing)


def check_length(value: str | None, field_name: str, max_length: int) -> None:
    if value is not None and len(value) > max_length:
        raise ValidationError(
            f"{field_name} cannot exceed {max_length} characters",
            invalid_fields={field_name: f"max {max_length} characters"},
        )


def parse_date(value: str | date | None) -> date | None:
    """Parse YYYY-MM-DD or a full ISO timestamp (trailing Z allowed)."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = value.strip()
    try:
        if len(text) == 10:
            return date.fromisoformat(text)
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        raise ValidationError(f"Invalid date: {value}", invalid_fields={"date": value})


def format_product(product: "Product") -> str:
    """Format a product for display."""
    sale = f" (was {format_currency(product.original_price)})" if product.is_on_sale() else ""
    featured = " *" if product.is_featured else ""
    return (
        f"{product.id:>4}  {product.name}{featured}  {format_currency(product.price)}{sale}"
        f"  stock {product.stock} [{product.stock_status()}]"
        f"  {product.category}/{product.status.value}"
    )


def format_order(order: "Order") -> str:
    """Format an order for display."""
    return (
        f"{order.order_number}  user {order.user_id}  {order.status_label():<10}"
        f"  {format_currency(order.total):>10}  {order.created_at[:10]}"
    )
