"""Order ledger: checkout, status lifecycle and order listings."""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Iterable, Mapping

from .addresses import load_user_address
from .errors import (
    InvalidStateError,
    NotFoundError,
    UnavailableError,
    InsufficientStockError,
    ValidationError,
)
from .models import (
    Order,
    OrderItem,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    Product,
    ProductStatus,
    Requester,
    ShippingAddress,
    ShippingMethod,
    _utc_now,
    to_money,
)
from .pricing import DELIVERY_DAYS, PricingPolicy
from .store import Database, Transaction
from .utils import (
    ADMIN_PAGE_LIMIT,
    USER_PAGE_LIMIT,
    Page,
    check_length,
    clamp_page,
    paginate,
    parse_date,
)

logger = logging.getLogger(__name__)

MAX_LINE_QUANTITY = 999
SPECIAL_INSTRUCTIONS_MAX_LENGTH = 1000
GIFT_MESSAGE_MAX_LENGTH = 500
ORDER_NUMBER_PREFIX = "FS"

# Forward moves are admin-driven; cancellation is allowed from any
# non-terminal state; refunds follow delivery or cancellation.
ALLOWED_TRANSITIONS: Mapping[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.PROCESSING, OrderStatus.CANCELLED}),
    OrderStatus.PROCESSING: frozenset({OrderStatus.IN_TRANSIT, OrderStatus.CANCELLED}),
    OrderStatus.IN_TRANSIT: frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED}),
    OrderStatus.DELIVERED: frozenset({OrderStatus.REFUNDED}),
    OrderStatus.CANCELLED: frozenset({OrderStatus.REFUNDED}),
    OrderStatus.REFUNDED: frozenset(),
}


@dataclass(frozen=True)
class LineItem:
    """A (product id, quantity) pair submitted at checkout."""

    product_id: int
    quantity: int


@dataclass
class OrderDetail:
    """An order with its items and shipping address populated."""

    order: Order
    items: list[OrderItem]
    shipping_address: ShippingAddress | None = None


@dataclass
class OrderFilter:
    status: str | None = None
    user_id: int | None = None
    customer: str | None = None
    date_from: str | date | None = None
    date_to: str | date | None = None


@dataclass
class OrderSummary:
    count: int = 0
    total_revenue: Decimal = Decimal("0.00")
    average_order_value: Decimal = Decimal("0.00")

    @classmethod
    def of(cls, orders: Iterable[Order]) -> "OrderSummary":
        totals = [o.total for o in orders]
        if not totals:
            return cls()
        revenue = to_money(sum(totals, Decimal("0")))
        return cls(
            count=len(totals),
            total_revenue=revenue,
            average_order_value=to_money(revenue / len(totals)),
        )


@dataclass
class OrderListing:
    page: Page[OrderDetail]
    summary: OrderSummary = field(default_factory=OrderSummary)


def _is_positive_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def parse_line_items(raw_items: Any) -> list[LineItem]:
    """
    Validate submitted cart lines and merge repeated product ids.

    Accepts LineItem instances or mappings with product_id/quantity.

    Raises:
        ValidationError: If the cart is empty or a line is malformed.
    """
    if not raw_items:
        raise ValidationError("Order must contain at least one item", missing_fields=["items"])
    if not isinstance(raw_items, (list, tuple)):
        raise ValidationError("Invalid item: items must be a list")

    merged: dict[int, int] = {}
    for raw in raw_items:
        if isinstance(raw, LineItem):
            product_id, quantity = raw.product_id, raw.quantity
        elif isinstance(raw, Mapping):
            product_id, quantity = raw.get("product_id"), raw.get("quantity")
        else:
            raise ValidationError("Invalid item: each item needs a product id and quantity")

        if not _is_positive_int(product_id):
            raise ValidationError("Invalid item: product id must be a positive integer")
        if not _is_positive_int(quantity) or quantity > MAX_LINE_QUANTITY:
            raise ValidationError(
                f"Invalid item: quantity must be between 1 and {MAX_LINE_QUANTITY}"
            )
        merged[product_id] = merged.get(product_id, 0) + quantity

    lines = [LineItem(pid, qty) for pid, qty in merged.items()]
    for line in lines:
        if line.quantity > MAX_LINE_QUANTITY:
            raise ValidationError(
                f"Invalid item: quantity must be between 1 and {MAX_LINE_QUANTITY}"
            )
    return lines


def _parse_enum(enum_cls, value: Any, message: str):
    try:
        return enum_cls(value)
    except ValueError:
        raise ValidationError(message, invalid_fields={enum_cls.__name__: str(value)})


def _format_order_number(order_id: int, created_at: str) -> str:
    year = created_at[:4] if created_at else str(date.today().year)
    return f"{ORDER_NUMBER_PREFIX}-{year}-{order_id:06d}"


def _load_order(txn: Transaction, order_id: int) -> Order:
    row = txn.get("orders", order_id)
    if row is None:
        raise NotFoundError("Order", order_id)
    return Order.from_dict(row)


def _load_visible_order(txn: Transaction, order_id: int, requester: Requester) -> Order:
    """Non-admins see only their own orders; anything else looks missing."""
    order = _load_order(txn, order_id)
    if not requester.is_admin and order.user_id != requester.user_id:
        raise NotFoundError("Order", order_id)
    return order


def _items_by_order(txn: Transaction) -> dict[int, list[OrderItem]]:
    """One pass over order_items, grouped by order id."""
    index: dict[int, list[OrderItem]] = defaultdict(list)
    for row in txn.rows("order_items"):
        index[row["order_id"]].append(OrderItem.from_dict(row))
    return index


def _shipping_address(txn: Transaction, order: Order) -> ShippingAddress | None:
    """The address as it was at checkout; older rows fall back to the live one."""
    if order.shipping_snapshot is not None:
        return ShippingAddress.from_dict(order.shipping_snapshot)
    if order.shipping_address_id is None:
        return None
    row = txn.get("addresses", order.shipping_address_id)
    return ShippingAddress.from_dict(row) if row is not None else None


def _detail(
    txn: Transaction,
    order: Order,
    items_by_order: dict[int, list[OrderItem]] | None = None,
) -> OrderDetail:
    if items_by_order is None:
        items_by_order = _items_by_order(txn)
    return OrderDetail(
        order=order,
        items=list(items_by_order.get(order.id, [])),
        shipping_address=_shipping_address(txn, order),
    )


class OrderLedger:
    """Places orders and drives their status lifecycle."""

    def __init__(self, db: Database, pricing: PricingPolicy | None = None):
        self.db = db
        self.pricing = pricing or PricingPolicy()

    # --- Checkout ---

    def place_order(
        self,
        user_id: int,
        items: Any,
        payment_method: Any,
        shipping_method: Any = ShippingMethod.STANDARD.value,
        shipping_address_id: int | None = None,
        discount_code: str | None = None,
        special_instructions: str | None = None,
        gift_message: str | None = None,
    ) -> OrderDetail:
        """
        Create an order from a cart snapshot.

        Everything from the stock check to the stock decrement runs in one
        store transaction: either the order, its items and the decrements are
        all committed, or none of them are.

        Raises:
            ValidationError: Empty cart, malformed line, missing or invalid
                payment/shipping method, over-long text, or total <= 0.
            NotFoundError: Unknown product or address not owned by the user.
            UnavailableError: Product discontinued.
            InsufficientStockError: Not enough stock for a line.
        """
        lines = parse_line_items(items)
        check_length(special_instructions, "special_instructions", SPECIAL_INSTRUCTIONS_MAX_LENGTH)
        check_length(gift_message, "gift_message", GIFT_MESSAGE_MAX_LENGTH)

        with self.db.transaction() as txn:
            products = self._check_stock(txn, lines)

            if not payment_method:
                raise ValidationError("Payment method is required", missing_fields=["payment_method"])
            payment = _parse_enum(PaymentMethod, payment_method, "Invalid payment method")
            shipping = _parse_enum(
                ShippingMethod,
                shipping_method or ShippingMethod.STANDARD.value,
                "Invalid shipping method",
            )
            address = self._resolve_address(txn, user_id, shipping, shipping_address_id)

            subtotal = sum(
                (products[line.product_id].price * line.quantity for line in lines),
                Decimal("0"),
            )
            quote = self.pricing.quote(subtotal, shipping, discount_code)
            if quote.total <= 0:
                raise ValidationError("Order total must be greater than 0")

            now = _utc_now()
            order = Order(
                id=0,
                user_id=user_id,
                order_number="",
                subtotal=quote.subtotal,
                shipping_cost=quote.shipping_cost,
                tax_amount=quote.tax_amount,
                discount_amount=quote.discount_amount,
                total=quote.total,
                payment_method=payment,
                shipping_method=shipping,
                shipping_address_id=address.id if address else None,
                shipping_snapshot=address.to_dict() if address else None,
                discount_code=quote.discount_code,
                special_instructions=special_instructions or None,
                gift_message=gift_message or None,
                estimated_delivery=(
                    date.today() + timedelta(days=DELIVERY_DAYS[shipping])
                ).isoformat(),
                created_at=now,
                updated_at=now,
            )
            order.id = txn.insert("orders", order.to_dict())
            order.order_number = _format_order_number(order.id, order.created_at)
            txn.update("orders", order.id, order.to_dict())

            order_items = self._write_items(txn, order.id, products, lines)
            self._decrement_stock(txn, products, lines)

        logger.info(
            "Order %s placed by user %s: %d line(s), total %s",
            order.order_number,
            user_id,
            len(order_items),
            order.total,
        )
        return OrderDetail(order=order, items=order_items, shipping_address=address)

    def _check_stock(self, txn: Transaction, lines: list[LineItem]) -> dict[int, Product]:
        """Re-read every product inside the transaction and check availability."""
        products: dict[int, Product] = {}
        for line in lines:
            row = txn.get("products", line.product_id)
            if row is None:
                raise NotFoundError("Product", line.product_id)
            product = Product.from_dict(row)
            if product.status != ProductStatus.ACTIVE:
                raise UnavailableError(f"Product {product.name} is no longer available")
            if product.stock < line.quantity:
                raise InsufficientStockError(product.name, product.stock, line.quantity)
            products[product.id] = product
        return products

    def _resolve_address(
        self,
        txn: Transaction,
        user_id: int,
        shipping: ShippingMethod,
        shipping_address_id: int | None,
    ) -> ShippingAddress | None:
        if shipping_address_id is not None:
            return load_user_address(txn, user_id, shipping_address_id)
        if shipping == ShippingMethod.PICKUP:
            return None
        for row in txn.rows("addresses"):
            if row["user_id"] == user_id and row.get("is_default"):
                return ShippingAddress.from_dict(row)
        raise ValidationError(
            "Shipping address is required for delivery orders",
            missing_fields=["shipping_address_id"],
        )

    def _write_items(
        self,
        txn: Transaction,
        order_id: int,
        products: dict[int, Product],
        lines: list[LineItem],
    ) -> list[OrderItem]:
        written = []
        for line in lines:
            item = OrderItem.snapshot(order_id, products[line.product_id], line.quantity)
            item_id = txn.insert("order_items", item.to_dict())
            written.append(OrderItem.from_dict({**item.to_dict(), "id": item_id}))
        return written

    def _decrement_stock(
        self,
        txn: Transaction,
        products: dict[int, Product],
        lines: list[LineItem],
    ) -> None:
        now = _utc_now()
        for line in lines:
            product = products[line.product_id]
            product.stock -= line.quantity
            product.updated_at = now
            txn.update("products", product.id, product.to_dict())

    def _restock(self, txn: Transaction, order_id: int) -> None:
        now = _utc_now()
        for item in _items_by_order(txn).get(order_id, []):
            row = txn.get("products", item.product_id)
            if row is None:
                continue
            row["stock"] = row.get("stock", 0) + item.quantity
            row["updated_at"] = now
            txn.update("products", item.product_id, row)

    # --- Lifecycle ---

    def _apply_transition(self, txn: Transaction, order: Order, target: OrderStatus) -> None:
        """Move order to target and apply the side effects of entering it."""
        now = _utc_now()
        if target == OrderStatus.PROCESSING:
            if order.payment_status == PaymentStatus.PENDING:
                order.payment_status = PaymentStatus.PAID
        elif target == OrderStatus.DELIVERED:
            order.delivered_at = now
            if order.payment_status == PaymentStatus.PENDING:
                order.payment_status = PaymentStatus.PAID
        elif target == OrderStatus.CANCELLED:
            order.cancelled_at = now
            self._restock(txn, order.id)
        elif target == OrderStatus.REFUNDED:
            order.payment_status = PaymentStatus.REFUNDED
        order.status = target
        order.updated_at = now

    def update_status(
        self,
        order_id: int,
        status: Any,
        tracking_number: str | None = None,
        notes: str | None = None,
    ) -> OrderDetail:
        """
        Admin status change.

        Raises:
            NotFoundError: If the order doesn't exist.
            ValidationError: If status is unknown or the transition isn't allowed.
        """
        target = _parse_enum(OrderStatus, status, f"Invalid status: {status}")

        with self.db.transaction() as txn:
            order = _load_order(txn, order_id)
            if target not in ALLOWED_TRANSITIONS[order.status]:
                raise ValidationError(
                    f"Cannot change order status from {order.status.value} to {target.value}"
                )
            previous = order.status
            self._apply_transition(txn, order, target)
            if tracking_number:
                order.tracking_number = tracking_number
            if notes:
                order.notes = f"{order.notes}\n{notes}" if order.notes else notes
            txn.update("orders", order.id, order.to_dict())
            detail = _detail(txn, order)

        logger.info(
            "Order %s status %s -> %s", order.order_number, previous.value, target.value
        )
        return detail

    def cancel_order(
        self,
        order_id: int,
        requester: Requester,
        reason: str | None = None,
    ) -> OrderDetail:
        """
        Cancel an order and put its items back in stock.

        Raises:
            NotFoundError: If the order doesn't exist or isn't the requester's.
            InvalidStateError: If the order is delivered, refunded or already cancelled.
        """
        with self.db.transaction() as txn:
            order = _load_visible_order(txn, order_id, requester)
            if OrderStatus.CANCELLED not in ALLOWED_TRANSITIONS[order.status]:
                raise InvalidStateError(
                    f"Order cannot be cancelled in status {order.status.value}",
                    state=order.status.value,
                )
            self._apply_transition(txn, order, OrderStatus.CANCELLED)
            order.cancel_reason = reason or "Customer requested cancellation"
            txn.update("orders", order.id, order.to_dict())
            detail = _detail(txn, order)

        logger.info(
            "Order %s cancelled by user %s: %s",
            order.order_number,
            requester.user_id,
            order.cancel_reason,
        )
        return detail

    def refund_order(self, order_id: int, notes: str | None = None) -> OrderDetail:
        """
        Mark a delivered or cancelled order as refunded.

        Raises:
            NotFoundError: If the order doesn't exist.
            InvalidStateError: If the order is in any other status.
        """
        with self.db.transaction() as txn:
            order = _load_order(txn, order_id)
            if OrderStatus.REFUNDED not in ALLOWED_TRANSITIONS[order.status]:
                raise InvalidStateError(
                    f"Order cannot be refunded in status {order.status.value}",
                    state=order.status.value,
                )
            self._apply_transition(txn, order, OrderStatus.REFUNDED)
            if notes:
                order.notes = f"{order.notes}\n{notes}" if order.notes else notes
            txn.update("orders", order.id, order.to_dict())
            detail = _detail(txn, order)

        logger.info("Order %s refunded (%s)", order.order_number, order.total)
        return detail

    # --- Reads ---

    def get_order(self, order_id: int, requester: Requester) -> OrderDetail:
        """
        Raises:
            NotFoundError: If the order doesn't exist or belongs to another
                user and the requester isn't an admin.
        """
        with self.db.snapshot() as txn:
            order = _load_visible_order(txn, order_id, requester)
            return _detail(txn, order)

    def get_user_orders(
        self,
        user_id: int,
        status: str | None = None,
        page: Any = 1,
        limit: Any = 10,
    ) -> Page[OrderDetail]:
        """The user's orders, newest first."""
        request = clamp_page(page, limit, USER_PAGE_LIMIT, default_limit=10)
        wanted = _parse_enum(OrderStatus, status, f"Invalid status: {status}") if status else None

        with self.db.snapshot() as txn:
            orders = [
                Order.from_dict(r)
                for r in txn.rows("orders")
                if r["user_id"] == user_id
                and (wanted is None or r["status"] == wanted.value)
            ]
            orders.sort(key=lambda o: (o.created_at, o.id), reverse=True)
            page_of_orders = paginate(orders, request)
            items_by_order = _items_by_order(txn)
            details = [_detail(txn, o, items_by_order) for o in page_of_orders.items]

        return Page(
            items=details,
            total=page_of_orders.total,
            page=page_of_orders.page,
            limit=page_of_orders.limit,
        )

    def get_all_orders(
        self,
        filters: OrderFilter | None = None,
        page: Any = 1,
        limit: Any = 20,
    ) -> OrderListing:
        """
        Admin listing with a revenue summary over the returned page.

        date_from/date_to are inclusive and compare against the creation date.
        """
        filters = filters or OrderFilter()
        request = clamp_page(page, limit, ADMIN_PAGE_LIMIT)
        wanted = (
            _parse_enum(OrderStatus, filters.status, f"Invalid status: {filters.status}")
            if filters.status and filters.status != "all"
            else None
        )
        date_from = parse_date(filters.date_from)
        date_to = parse_date(filters.date_to)
        needle = filters.customer.strip().lower() if filters.customer else None

        with self.db.snapshot() as txn:
            addresses = {
                r["id"]: ShippingAddress.from_dict(r) for r in txn.rows("addresses")
            }
            orders = []
            for row in txn.rows("orders"):
                order = Order.from_dict(row)
                if wanted is not None and order.status != wanted:
                    continue
                if filters.user_id is not None and order.user_id != filters.user_id:
                    continue
                created = parse_date(order.created_at)
                if date_from and created < date_from:
                    continue
                if date_to and created > date_to:
                    continue
                if needle:
                    if order.shipping_snapshot is not None:
                        recipient = order.shipping_snapshot.get("recipient_name", "")
                    else:
                        address = addresses.get(order.shipping_address_id)
                        recipient = address.recipient_name if address else ""
                    recipient = recipient.lower()
                    if needle not in order.order_number.lower() and needle not in recipient:
                        continue
                orders.append(order)

            orders.sort(key=lambda o: (o.created_at, o.id), reverse=True)
            page_of_orders = paginate(orders, request)
            items_by_order = _items_by_order(txn)
            details = [_detail(txn, o, items_by_order) for o in page_of_orders.items]

        return OrderListing(
            page=Page(
                items=details,
                total=page_of_orders.total,
                page=page_of_orders.page,
                limit=page_of_orders.limit,
            ),
            summary=OrderSummary.of(d.order for d in details),
        )
