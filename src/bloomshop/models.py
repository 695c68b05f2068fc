"""Data models for bloomshop."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any

CENT = Decimal("0.01")
LOW_STOCK_THRESHOLD = 10


def _utc_now() -> str:
    """Return current UTC time as ISO 8601 string."""
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def to_money(value: Any) -> Decimal:
    """Convert a number or numeric string to a Decimal rounded half-up to cents."""
    if isinstance(value, float):
        value = repr(value)
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def _optional_money(value: Any) -> Decimal | None:
    if value is None or value == "":
        return None
    return to_money(value)


def _money_str(value: Decimal | None) -> str | None:
    if value is None:
        return None
    return str(to_money(value))


# --- Enumerations ---


class ProductStatus(str, Enum):
    ACTIVE = "active"
    DISCONTINUED = "discontinued"


class OrderStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class PaymentMethod(str, Enum):
    CREDIT_CARD = "credit_card"
    PAYPAL = "paypal"
    STRIPE = "stripe"
    CASH_ON_DELIVERY = "cash_on_delivery"


class ShippingMethod(str, Enum):
    STANDARD = "standard"
    EXPRESS = "express"
    OVERNIGHT = "overnight"
    PICKUP = "pickup"


class AddressType(str, Enum):
    HOME = "home"
    WORK = "work"
    OTHER = "other"


class WishlistPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# Keyed by every OrderStatus member; tests/test_models.py checks coverage.
ORDER_STATUS_LABELS: dict[OrderStatus, str] = {
    OrderStatus.PENDING: "Pending",
    OrderStatus.PROCESSING: "Processing",
    OrderStatus.IN_TRANSIT: "In Transit",
    OrderStatus.DELIVERED: "Delivered",
    OrderStatus.CANCELLED: "Cancelled",
    OrderStatus.REFUNDED: "Refunded",
}

ORDER_STATUS_COLORS: dict[OrderStatus, str] = {
    OrderStatus.PENDING: "orange",
    OrderStatus.PROCESSING: "yellow",
    OrderStatus.IN_TRANSIT: "blue",
    OrderStatus.DELIVERED: "green",
    OrderStatus.CANCELLED: "red",
    OrderStatus.REFUNDED: "gray",
}


# --- Catalog ---


@dataclass
class Product:
    """A flower in the catalog."""

    id: int
    name: str
    price: Decimal
    category: str
    description: str = ""
    stock: int = 0
    status: ProductStatus = ProductStatus.ACTIVE
    is_featured: bool = False
    original_price: Decimal | None = None
    image: str | None = None
    created_at: str = field(default_factory=_utc_now)
    updated_at: str = field(default_factory=_utc_now)

    def is_available(self) -> bool:
        return self.status == ProductStatus.ACTIVE and self.stock > 0

    def stock_status(self) -> str:
        if self.stock <= 0:
            return "out_of_stock"
        if self.stock <= LOW_STOCK_THRESHOLD:
            return "low_stock"
        return "in_stock"

    def is_on_sale(self) -> bool:
        return self.original_price is not None and self.original_price > self.price

    def discount_percentage(self) -> int:
        if self.original_price is None or not self.is_on_sale():
            return 0
        pct = (self.original_price - self.price) * 100 / self.original_price
        return int(pct.quantize(Decimal("1"), rounding=ROUND_HALF_UP))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "price": _money_str(self.price),
            "original_price": _money_str(self.original_price),
            "stock": self.stock,
            "category": self.category,
            "status": self.status.value,
            "is_featured": self.is_featured,
            "image": self.image,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Product":
        return cls(
            id=data["id"],
            name=data["name"],
            description=data.get("description") or "",
            price=to_money(data["price"]),
            original_price=_optional_money(data.get("original_price")),
            stock=int(data.get("stock", 0)),
            category=data["category"],
            status=ProductStatus(data.get("status", "active")),
            is_featured=bool(data.get("is_featured", False)),
            image=data.get("image"),
            created_at=data.get("created_at", ""),
            updated_at=data.get("updated_at", ""),
        )


# --- Addresses ---


@dataclass
class ShippingAddress:
    """A delivery address owned by a user."""

    id: int
    user_id: int
    recipient_name: str
    address_line1: str
    city: str
    state: str
    postal_code: str
    address_line2: str | None = None
    country: str = "United States"
    phone: str | None = None
    is_default: bool = False
    address_type: AddressType = AddressType.HOME
    delivery_instructions: str | None = None
    created_at: str = field(default_factory=_utc_now)
    updated_at: str = field(default_factory=_utc_now)

    def one_line(self) -> str:
        """Single-line rendering used in order listings."""
        parts = [self.address_line1]
        if self.address_line2:
            parts.append(self.address_line2)
        parts.append(f"{self.city}, {self.state} {self.postal_code}")
        parts.append(self.country)
        return ", ".join(parts)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "recipient_name": self.recipient_name,
            "address_line1": self.address_line1,
            "address_line2": self.address_line2,
            "city": self.city,
            "state": self.state,
            "postal_code": self.postal_code,
            "country": self.country,
            "phone": self.phone,
            "is_default": self.is_default,
            "address_type": self.address_type.value,
            "delivery_instructions": self.delivery_instructions,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ShippingAddress":
        return cls(
            id=data["id"],
            user_id=data["user_id"],
            recipient_name=data["recipient_name"],
            address_line1=data["address_line1"],
            address_line2=data.get("address_line2"),
            city=data["city"],
            state=data["state"],
            postal_code=data["postal_code"],
            country=data.get("country") or "United States",
            phone=data.get("phone"),
            is_default=bool(data.get("is_default", False)),
            address_type=AddressType(data.get("address_type", "home")),
            delivery_instructions=data.get("delivery_instructions"),
            created_at=data.get("created_at", ""),
            updated_at=data.get("updated_at", ""),
        )


# --- Orders ---


@dataclass
class Order:
    """A placed order. Money fields are fixed at creation."""

    id: int
    user_id: int
    order_number: str
    subtotal: Decimal
    shipping_cost: Decimal
    tax_amount: Decimal
    discount_amount: Decimal
    total: Decimal
    payment_method: PaymentMethod
    shipping_method: ShippingMethod = ShippingMethod.STANDARD
    status: OrderStatus = OrderStatus.PENDING
    payment_status: PaymentStatus = PaymentStatus.PENDING
    currency: str = "USD"
    shipping_address_id: int | None = None
    shipping_snapshot: dict[str, Any] | None = None
    tracking_number: str | None = None
    discount_code: str | None = None
    special_instructions: str | None = None
    gift_message: str | None = None
    notes: str | None = None
    cancel_reason: str | None = None
    estimated_delivery: str | None = None
    delivered_at: str | None = None
    cancelled_at: str | None = None
    created_at: str = field(default_factory=_utc_now)
    updated_at: str = field(default_factory=_utc_now)

    def status_label(self) -> str:
        return ORDER_STATUS_LABELS[self.status]

    def status_color(self) -> str:
        return ORDER_STATUS_COLORS[self.status]

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "order_number": self.order_number,
            "status": self.status.value,
            "subtotal": _money_str(self.subtotal),
            "shipping_cost": _money_str(self.shipping_cost),
            "tax_amount": _money_str(self.tax_amount),
            "discount_amount": _money_str(self.discount_amount),
            "total": _money_str(self.total),
            "currency": self.currency,
            "shipping_address_id": self.shipping_address_id,
            "shipping_snapshot": self.shipping_snapshot,
            "shipping_method": self.shipping_method.value,
            "tracking_number": self.tracking_number,
            "payment_method": self.payment_method.value,
            "payment_status": self.payment_status.value,
            "discount_code": self.discount_code,
            "special_instructions": self.special_instructions,
            "gift_message": self.gift_message,
            "notes": self.notes,
            "cancel_reason": self.cancel_reason,
            "estimated_delivery": self.estimated_delivery,
            "delivered_at": self.delivered_at,
            "cancelled_at": self.cancelled_at,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Order":
        return cls(
            id=data["id"],
            user_id=data["user_id"],
            order_number=data["order_number"],
            status=OrderStatus(data.get("status", "pending")),
            subtotal=to_money(data["subtotal"]),
            shipping_cost=to_money(data.get("shipping_cost", "0")),
            tax_amount=to_money(data.get("tax_amount", "0")),
            discount_amount=to_money(data.get("discount_amount", "0")),
            total=to_money(data["total"]),
            currency=data.get("currency", "USD"),
            shipping_address_id=data.get("shipping_address_id"),
            shipping_snapshot=data.get("shipping_snapshot"),
            shipping_method=ShippingMethod(data.get("shipping_method", "standard")),
            tracking_number=data.get("tracking_number"),
            payment_method=PaymentMethod(data["payment_method"]),
            payment_status=PaymentStatus(data.get("payment_status", "pending")),
            discount_code=data.get("discount_code"),
            special_instructions=data.get("special_instructions"),
            gift_message=data.get("gift_message"),
            notes=data.get("notes"),
            cancel_reason=data.get("cancel_reason"),
            estimated_delivery=data.get("estimated_delivery"),
            delivered_at=data.get("delivered_at"),
            cancelled_at=data.get("cancelled_at"),
            created_at=data.get("created_at", ""),
            updated_at=data.get("updated_at", ""),
        )


@dataclass(frozen=True)
class OrderItem:
    """One ordered line with the product frozen as it was at purchase time."""

    id: int
    order_id: int
    product_id: int
    quantity: int
    unit_price: Decimal
    total_price: Decimal
    product_name: str
    product_description: str = ""
    product_image: str | None = None
    product_category: str | None = None
    created_at: str = field(default_factory=_utc_now)

    @classmethod
    def snapshot(cls, order_id: int, product: Product, quantity: int) -> "OrderItem":
        """Freeze the product's current name, price, image and category."""
        return cls(
            id=0,
            order_id=order_id,
            product_id=product.id,
            quantity=quantity,
            unit_price=product.price,
            total_price=to_money(product.price * quantity),
            product_name=product.name,
            product_description=product.description,
            product_image=product.image,
            product_category=product.category,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "unit_price": _money_str(self.unit_price),
            "total_price": _money_str(self.total_price),
            "product_name": self.product_name,
            "product_description": self.product_description,
            "product_image": self.product_image,
            "product_category": self.product_category,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "OrderItem":
        return cls(
            id=data["id"],
            order_id=data["order_id"],
            product_id=data["product_id"],
            quantity=data["quantity"],
            unit_price=to_money(data["unit_price"]),
            total_price=to_money(data["total_price"]),
            product_name=data["product_name"],
            product_description=data.get("product_description") or "",
            product_image=data.get("product_image"),
            product_category=data.get("product_category"),
            created_at=data.get("created_at", ""),
        )


# --- Reviews ---


@dataclass
class ProductReview:
    """A rating and comment left by a customer."""

    id: int
    product_id: int
    user_id: int
    rating: int
    order_id: int | None = None
    title: str | None = None
    comment: str | None = None
    is_verified_purchase: bool = False
    is_approved: bool = True
    helpful_count: int = 0
    reported_count: int = 0
    moderator_notes: str | None = None
    created_at: str = field(default_factory=_utc_now)
    updated_at: str = field(default_factory=_utc_now)

    def star_display(self) -> str:
        return "★" * self.rating + "☆" * (5 - self.rating)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "user_id": self.user_id,
            "order_id": self.order_id,
            "rating": self.rating,
            "title": self.title,
            "comment": self.comment,
            "is_verified_purchase": self.is_verified_purchase,
            "is_approved": self.is_approved,
            "helpful_count": self.helpful_count,
            "reported_count": self.reported_count,
            "moderator_notes": self.moderator_notes,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ProductReview":
        return cls(
            id=data["id"],
            product_id=data["product_id"],
            user_id=data["user_id"],
            order_id=data.get("order_id"),
            rating=data["rating"],
            title=data.get("title"),
            comment=data.get("comment"),
            is_verified_purchase=bool(data.get("is_verified_purchase", False)),
            is_approved=bool(data.get("is_approved", True)),
            helpful_count=data.get("helpful_count", 0),
            reported_count=data.get("reported_count", 0),
            moderator_notes=data.get("moderator_notes"),
            created_at=data.get("created_at", ""),
            updated_at=data.get("updated_at", ""),
        )


# --- Wishlist ---


@dataclass
class WishlistEntry:
    """A product a user saved for later."""

    id: int
    user_id: int
    product_id: int
    notes: str | None = None
    priority: WishlistPriority = WishlistPriority.MEDIUM
    notification_enabled: bool = True
    created_at: str = field(default_factory=_utc_now)
    updated_at: str = field(default_factory=_utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "product_id": self.product_id,
            "notes": self.notes,
            "priority": self.priority.value,
            "notification_enabled": self.notification_enabled,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "WishlistEntry":
        return cls(
            id=data["id"],
            user_id=data["user_id"],
            product_id=data["product_id"],
            notes=data.get("notes"),
            priority=WishlistPriority(data.get("priority", "medium")),
            notification_enabled=bool(data.get("notification_enabled", True)),
            created_at=data.get("created_at", ""),
            updated_at=data.get("updated_at", ""),
        )


@dataclass(frozen=True)
class CartLine:
    """A cart-addable line produced from a wishlist entry. Never stored."""

    product_id: int
    name: str
    price: Decimal
    quantity: int
    image: str | None = None


@dataclass(frozen=True)
class Requester:
    """The caller of an operation, as forwarded by the auth layer."""

    user_id: int
    role: str = "user"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"
