"""FastAPI REST API for the bloomshop flower store."""

import logging
import math
from contextlib import asynccontextmanager
from dataclasses import asdict, dataclass
from decimal import Decimal
from typing import Any, Optional

from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import __version__
from .addresses import AddressBook
from .catalog import Catalog, ProductFilter, product_view
from .config import Settings, configure_logging
from .errors import (
    BloomshopError,
    DuplicateEntryError,
    ForbiddenError,
    InvalidPurchaseError,
    InvalidSchemaVersionError,
    InvalidStateError,
    NotFoundError,
    UnavailableError,
    ValidationError,
)
from .models import (
    OrderItem,
    ProductReview,
    Requester,
    ShippingAddress,
    WishlistEntry,
    to_money,
)
from .orders import OrderDetail, OrderFilter, OrderLedger
from .pricing import PricingPolicy
from .reviews import RatingStats, ReviewLedger
from .store import Database
from .utils import Page
from .wishlist import Wishlist, WishlistItem

logger = logging.getLogger(__name__)


# --- Pydantic Schemas ---


class ApiModel(BaseModel):
    """camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PaginationSchema(ApiModel):
    page: int
    limit: int
    total: int
    pages: int
    has_next: bool
    has_prev: bool


class ProductSchema(ApiModel):
    id: int
    name: str
    description: str = ""
    price: float
    original_price: Optional[float] = None
    stock: int
    category: str
    status: str
    is_featured: bool = False
    image: Optional[str] = None
    is_available: bool
    stock_status: str
    formatted_price: str
    formatted_original_price: Optional[str] = None
    is_on_sale: bool
    discount_percentage: int
    created_at: str
    updated_at: str


class ProductFiltersSchema(ApiModel):
    category: Optional[str] = None
    status: Optional[str] = None
    featured: Optional[bool] = None
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    search: Optional[str] = None
    sort: str
    order: str


class ProductListResponse(ApiModel):
    products: list[ProductSchema]
    pagination: PaginationSchema
    filters: ProductFiltersSchema


class ProductCreateRequest(ApiModel):
    """Required fields are optional here so missing ones are reported together."""

    name: Optional[str] = None
    price: Optional[float] = None
    category: Optional[str] = None
    description: Optional[str] = None
    original_price: Optional[float] = None
    image: Optional[str] = None
    stock: Optional[int] = None
    status: Optional[str] = None
    is_featured: Optional[bool] = None


class ProductUpdateRequest(ProductCreateRequest):
    pass


class StockUpdateRequest(ApiModel):
    stock: Optional[int] = Field(None, description="Absolute stock level")
    delta: Optional[int] = Field(None, description="Relative change, may be negative")


class RatingSchema(ApiModel):
    average_rating: float
    review_count: int
    rating_distribution: dict[str, int]


class ReviewSchema(ApiModel):
    id: int
    product_id: int
    user_id: int
    order_id: Optional[int] = None
    rating: int
    title: Optional[str] = None
    comment: Optional[str] = None
    is_verified_purchase: bool
    is_approved: bool
    helpful_count: int
    reported_count: int
    created_at: str
    updated_at: str


class ProductDetailResponse(ApiModel):
    product: ProductSchema
    reviews: list[ReviewSchema]
    rating: RatingSchema
    is_in_wishlist: bool


class AddressSchema(ApiModel):
    id: int
    user_id: int
    recipient_name: str
    address_line1: str
    address_line2: Optional[str] = None
    city: str
    state: str
    postal_code: str
    country: str
    phone: Optional[str] = None
    is_default: bool
    address_type: str
    delivery_instructions: Optional[str] = None
    created_at: str
    updated_at: str


class AddressRequest(ApiModel):
    recipient_name: Optional[str] = None
    address_line1: Optional[str] = None
    address_line2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None
    phone: Optional[str] = None
    address_type: Optional[str] = None
    delivery_instructions: Optional[str] = None
    is_default: Optional[bool] = None


class PostalCodeRequest(ApiModel):
    postal_code: Optional[str] = None


class DeliveryAreaResponse(ApiModel):
    postal_code: str
    delivery_available: bool


class OrderItemSchema(ApiModel):
    id: int
    product_id: int
    quantity: int
    unit_price: float
    total_price: float
    product_name: str
    product_description: str = ""
    product_image: Optional[str] = None
    product_category: Optional[str] = None


class OrderSchema(ApiModel):
    id: int
    user_id: int
    order_number: str
    status: str
    status_label: str
    status_color: str
    subtotal: float
    shipping_cost: float
    tax_amount: float
    discount_amount: float
    total: float
    currency: str
    shipping_method: str
    shipping_address_id: Optional[int] = None
    shipping_address: Optional[AddressSchema] = None
    tracking_number: Optional[str] = None
    payment_method: str
    payment_status: str
    discount_code: Optional[str] = None
    special_instructions: Optional[str] = None
    gift_message: Optional[str] = None
    notes: Optional[str] = None
    cancel_reason: Optional[str] = None
    estimated_delivery: Optional[str] = None
    delivered_at: Optional[str] = None
    cancelled_at: Optional[str] = None
    items: list[OrderItemSchema]
    created_at: str
    updated_at: str


class OrderLineRequest(ApiModel):
    product_id: Optional[int] = None
    quantity: Optional[int] = None


class OrderCreateRequest(ApiModel):
    items: Optional[list[OrderLineRequest]] = None
    shipping_address_id: Optional[int] = None
    shipping_method: Optional[str] = "standard"
    payment_method: Optional[str] = None
    discount_code: Optional[str] = None
    special_instructions: Optional[str] = None
    gift_message: Optional[str] = None


class OrderStatusRequest(ApiModel):
    status: Optional[str] = None
    tracking_number: Optional[str] = None
    notes: Optional[str] = None


class CancelRequest(ApiModel):
    reason: Optional[str] = None


class RefundRequest(ApiModel):
    notes: Optional[str] = None


class OrderListResponse(ApiModel):
    orders: list[OrderSchema]
    pagination: PaginationSchema


class OrderSummarySchema(ApiModel):
    count: int
    total_revenue: float
    average_order_value: float


class AdminOrderListResponse(OrderListResponse):
    summary: OrderSummarySchema


class ReviewCreateRequest(ApiModel):
    order_id: Optional[int] = None
    rating: Optional[int] = None
    title: Optional[str] = None
    comment: Optional[str] = None


class ReviewUpdateRequest(ApiModel):
    rating: Optional[int] = None
    title: Optional[str] = None
    comment: Optional[str] = None


class ReportRequest(ApiModel):
    reason: Optional[str] = None


class ModerateRequest(ApiModel):
    approved: bool
    notes: Optional[str] = None


class ReviewListResponse(ApiModel):
    reviews: list[ReviewSchema]
    pagination: PaginationSchema
    rating: Optional[RatingSchema] = None


class WishlistEntrySchema(ApiModel):
    id: int
    user_id: int
    product_id: int
    notes: Optional[str] = None
    priority: str
    notification_enabled: bool
    created_at: str
    updated_at: str


class WishlistItemSchema(WishlistEntrySchema):
    product: ProductSchema


class WishlistListResponse(ApiModel):
    items: list[WishlistItemSchema]
    pagination: PaginationSchema


class WishlistAddRequest(ApiModel):
    product_id: Optional[int] = None
    notes: Optional[str] = None
    priority: Optional[str] = None
    notification_enabled: bool = True


class WishlistUpdateRequest(ApiModel):
    notes: Optional[str] = None
    priority: Optional[str] = None
    notification_enabled: Optional[bool] = None


class MoveToCartRequest(ApiModel):
    quantity: int = 1


class CartLineSchema(ApiModel):
    product_id: int
    name: str
    price: float
    quantity: int
    image: Optional[str] = None


class WishlistStatsResponse(ApiModel):
    total: int
    by_priority: dict[str, int]


class WishlistCheckResponse(ApiModel):
    product_id: int
    in_wishlist: bool


# --- Schema conversion ---


def price_bound(value: Optional[float], field_name: str) -> Optional[Decimal]:
    if value is None:
        return None
    if not math.isfinite(value):
        raise ValidationError(
            f"Invalid {field_name}", invalid_fields={field_name: "must be a finite number"}
        )
    return to_money(value)


def pagination_schema(page: Page) -> PaginationSchema:
    return PaginationSchema(**page.pagination())


def product_to_schema(product) -> ProductSchema:
    return ProductSchema(**product_view(product))


def review_to_schema(review: ProductReview) -> ReviewSchema:
    return ReviewSchema(**review.to_dict())


def rating_to_schema(stats: RatingStats) -> RatingSchema:
    return RatingSchema(**stats.to_dict())


def address_to_schema(address: ShippingAddress) -> AddressSchema:
    return AddressSchema(**address.to_dict())


def item_to_schema(item: OrderItem) -> OrderItemSchema:
    return OrderItemSchema(**item.to_dict())


def order_to_schema(detail: OrderDetail) -> OrderSchema:
    """Convert an OrderDetail to its wire schema, items and address included."""
    order = detail.order
    return OrderSchema(
        **order.to_dict(),
        status_label=order.status_label(),
        status_color=order.status_color(),
        items=[item_to_schema(i) for i in detail.items],
        shipping_address=(
            address_to_schema(detail.shipping_address)
            if detail.shipping_address
            else None
        ),
    )


def entry_to_schema(entry: WishlistEntry) -> WishlistEntrySchema:
    return WishlistEntrySchema(**entry.to_dict())


def wishlist_item_to_schema(item: WishlistItem) -> WishlistItemSchema:
    return WishlistItemSchema(**item.entry.to_dict(), product=product_to_schema(item.product))


# --- Services and identity ---


@dataclass
class Services:
    """Components sharing one store handle for the life of the app."""

    settings: Settings
    db: Database
    catalog: Catalog
    orders: OrderLedger
    addresses: AddressBook
    reviews: ReviewLedger
    wishlist: Wishlist

    @classmethod
    def build(cls, settings: Settings, db: Database) -> "Services":
        return cls(
            settings=settings,
            db=db,
            catalog=Catalog(db),
            orders=OrderLedger(db, PricingPolicy.from_settings(settings)),
            addresses=AddressBook(db, settings.delivery_postal_prefixes),
            reviews=ReviewLedger(db),
            wishlist=Wishlist(db),
        )


def get_services(request: Request) -> Services:
    return request.app.state.services


def _parse_identity(user_id: Optional[str], role: Optional[str]) -> Optional[Requester]:
    if not user_id:
        return None
    try:
        uid = int(user_id)
    except ValueError:
        return None
    if uid <= 0:
        return None
    return Requester(user_id=uid, role=(role or "user").strip().lower())


def get_optional_requester(
    x_user_id: Optional[str] = Header(default=None),
    x_user_role: Optional[str] = Header(default=None),
) -> Optional[Requester]:
    """Caller identity forwarded by the auth gateway, if any."""
    return _parse_identity(x_user_id, x_user_role)


def get_requester(
    requester: Optional[Requester] = Depends(get_optional_requester),
) -> Requester:
    if requester is None:
        raise HTTPException(status_code=401, detail="Authentication required")
    return requester


def require_admin(requester: Requester = Depends(get_requester)) -> Requester:
    if not requester.is_admin:
        raise ForbiddenError()
    return requester


# --- Exception handlers ---


# Map exception types to HTTP status codes
ERROR_STATUS_CODES: dict[type, int] = {
    ValidationError: 400,
    NotFoundError: 404,
    InvalidStateError: 400,
    DuplicateEntryError: 400,
    UnavailableError: 400,
    InvalidPurchaseError: 400,
    ForbiddenError: 403,
    InvalidSchemaVersionError: 500,
}


def status_code_for(exc: BloomshopError) -> int:
    """Status of the closest mapped class in the exception's MRO."""
    for cls in type(exc).__mro__:
        if cls in ERROR_STATUS_CODES:
            return ERROR_STATUS_CODES[cls]
    return 500


def _is_production(request: Request) -> bool:
    return request.app.state.services.settings.is_production


async def bloomshop_error_handler(request: Request, exc: BloomshopError) -> JSONResponse:
    """Map BloomshopError subclasses to appropriate HTTP responses."""
    status_code = status_code_for(exc)
    content: dict[str, Any] = {"message": str(exc)}
    if not _is_production(request):
        content["error"] = type(exc).__name__
    content.update(exc.details())
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=status_code, content=content)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {
            "field": ".".join(str(part) for part in err["loc"][1:]),
            "message": err["msg"],
        }
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={"message": "Validation failed", "errors": errors},
    )


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.detail},
        headers=getattr(exc, "headers", None),
    )


async def internal_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    content: dict[str, Any] = {"message": "Internal server error"}
    if not _is_production(request):
        content["error"] = str(exc)
    return JSONResponse(status_code=500, content=content)


# --- Endpoints ---


router = APIRouter(prefix="/api")


@router.get("/health")
def health_check(services: Services = Depends(get_services)):
    """
    Health check endpoint.

    Reports whether the store can be read.
    """
    try:
        with services.db.snapshot() as txn:
            product_count = len(txn.rows("products"))
        return {"status": "ok", "productCount": product_count}
    except (BloomshopError, OSError, ValueError) as e:
        return {"status": "error", "message": str(e)}


# --- Product Endpoints ---


@router.get("/products", response_model=ProductListResponse)
def list_products(
    category: Optional[str] = None,
    status: Optional[str] = "active",
    featured: Optional[bool] = None,
    min_price: Optional[float] = Query(default=None, alias="minPrice"),
    max_price: Optional[float] = Query(default=None, alias="maxPrice"),
    search: Optional[str] = None,
    page: int = 1,
    limit: int = 20,
    sort: str = "name",
    order: str = "asc",
    services: Services = Depends(get_services),
):
    """List products with filtering, sorting and pagination."""
    filters = ProductFilter(
        category=category,
        status=status,
        featured=featured,
        min_price=price_bound(min_price, "minPrice"),
        max_price=price_bound(max_price, "maxPrice"),
        search=search,
        sort=sort,
        order=order,
    )
    result = services.catalog.list_products(filters, page=page, limit=limit)
    return ProductListResponse(
        products=[product_to_schema(p) for p in result.items],
        pagination=pagination_schema(result),
        filters=ProductFiltersSchema(
            category=category,
            status=status,
            featured=featured,
            min_price=min_price,
            max_price=max_price,
            search=search,
            sort=sort,
            order=order,
        ),
    )


@router.get("/products/featured", response_model=list[ProductSchema])
def list_featured_products(limit: int = 6, services: Services = Depends(get_services)):
    return [product_to_schema(p) for p in services.catalog.list_featured(limit)]


@router.get("/products/categories")
def list_categories(services: Services = Depends(get_services)):
    return {"categories": services.catalog.list_categories()}


@router.get("/products/{product_id}", response_model=ProductDetailResponse)
def get_product(
    product_id: int,
    services: Services = Depends(get_services),
    requester: Optional[Requester] = Depends(get_optional_requester),
):
    """Get a product with approved reviews, rating stats and wishlist flag."""
    detail = services.catalog.get_product(
        product_id, user_id=requester.user_id if requester else None
    )
    return ProductDetailResponse(
        product=product_to_schema(detail.product),
        reviews=[review_to_schema(r) for r in detail.reviews],
        rating=rating_to_schema(detail.rating),
        is_in_wishlist=detail.is_in_wishlist,
    )


@router.post("/products", response_model=ProductSchema, status_code=201)
def create_product(
    request: ProductCreateRequest,
    services: Services = Depends(get_services),
    admin: Requester = Depends(require_admin),
):
    product = services.catalog.create_product(request.model_dump(exclude_none=True))
    return product_to_schema(product)


@router.put("/products/{product_id}", response_model=ProductSchema)
def update_product(
    product_id: int,
    request: ProductUpdateRequest,
    services: Services = Depends(get_services),
    admin: Requester = Depends(require_admin),
):
    product = services.catalog.update_product(product_id, request.model_dump(exclude_unset=True))
    return product_to_schema(product)


@router.delete("/products/{product_id}", response_model=ProductSchema)
def delete_product(
    product_id: int,
    services: Services = Depends(get_services),
    admin: Requester = Depends(require_admin),
):
    """Soft delete: the product is marked discontinued."""
    return product_to_schema(services.catalog.delete_product(product_id))


@router.patch("/products/{product_id}/stock", response_model=ProductSchema)
def update_stock(
    product_id: int,
    request: StockUpdateRequest,
    services: Services = Depends(get_services),
    admin: Requester = Depends(require_admin),
):
    product = services.catalog.adjust_stock(product_id, stock=request.stock, delta=request.delta)
    return product_to_schema(product)


# --- Order Endpoints ---


@router.post("/orders", response_model=OrderSchema, status_code=201)
def place_order(
    request: OrderCreateRequest,
    services: Services = Depends(get_services),
    requester: Requester = Depends(get_requester),
):
    """Place an order from the client's cart."""
    items = [
        {"product_id": line.product_id, "quantity": line.quantity}
        for line in request.items or []
    ]
    detail = services.orders.place_order(
        requester.user_id,
        items,
        payment_method=request.payment_method,
        shipping_method=request.shipping_method,
        shipping_address_id=request.shipping_address_id,
        discount_code=request.discount_code,
        special_instructions=request.special_instructions,
        gift_message=request.gift_message,
    )
    return order_to_schema(detail)


@router.get("/orders/my", response_model=OrderListResponse)
def list_my_orders(
    status: Optional[str] = None,
    page: int = 1,
    limit: int = 10,
    services: Services = Depends(get_services),
    requester: Requester = Depends(get_requester),
):
    result = services.orders.get_user_orders(requester.user_id, status=status, page=page, limit=limit)
    return OrderListResponse(
        orders=[order_to_schema(d) for d in result.items],
        pagination=pagination_schema(result),
    )


@router.get("/orders", response_model=AdminOrderListResponse)
def list_all_orders(
    status: Optional[str] = None,
    user_id: Optional[int] = Query(default=None, alias="userId"),
    customer: Optional[str] = None,
    date_from: Optional[str] = Query(default=None, alias="dateFrom"),
    date_to: Optional[str] = Query(default=None, alias="dateTo"),
    page: int = 1,
    limit: int = 20,
    services: Services = Depends(get_services),
    admin: Requester = Depends(require_admin),
):
    """Admin order listing with a revenue summary over the returned page."""
    listing = services.orders.get_all_orders(
        OrderFilter(
            status=status,
            user_id=user_id,
            customer=customer,
            date_from=date_from,
            date_to=date_to,
        ),
        page=page,
        limit=limit,
    )
    return AdminOrderListResponse(
        orders=[order_to_schema(d) for d in listing.page.items],
        pagination=pagination_schema(listing.page),
        summary=OrderSummarySchema(**asdict(listing.summary)),
    )


@router.get("/orders/{order_id}", response_model=OrderSchema)
def get_order(
    order_id: int,
    services: Services = Depends(get_services),
    requester: Requester = Depends(get_requester),
):
    return order_to_schema(services.orders.get_order(order_id, requester))


@router.put("/orders/{order_id}/status", response_model=OrderSchema)
def update_order_status(
    order_id: int,
    request: OrderStatusRequest,
    services: Services = Depends(get_services),
    admin: Requester = Depends(require_admin),
):
    if not request.status:
        raise ValidationError("Status is required", missing_fields=["status"])
    detail = services.orders.update_status(
        order_id,
        request.status,
        tracking_number=request.tracking_number,
        notes=request.notes,
    )
    return order_to_schema(detail)


@router.post("/orders/{order_id}/cancel", response_model=OrderSchema)
def cancel_order(
    order_id: int,
    request: Optional[CancelRequest] = None,
    services: Services = Depends(get_services),
    requester: Requester = Depends(get_requester),
):
    reason = request.reason if request else None
    return order_to_schema(services.orders.cancel_order(order_id, requester, reason))


@router.post("/orders/{order_id}/refund", response_model=OrderSchema)
def refund_order(
    order_id: int,
    request: Optional[RefundRequest] = None,
    services: Services = Depends(get_services),
    admin: Requester = Depends(require_admin),
):
    notes = request.notes if request else None
    return order_to_schema(services.orders.refund_order(order_id, notes))


# --- Address Endpoints ---


@router.get("/addresses", response_model=list[AddressSchema])
def list_addresses(
    services: Services = Depends(get_services),
    requester: Requester = Depends(get_requester),
):
    return [address_to_schema(a) for a in services.addresses.list_addresses(requester.user_id)]


@router.post("/addresses", response_model=AddressSchema, status_code=201)
def create_address(
    request: AddressRequest,
    services: Services = Depends(get_services),
    requester: Requester = Depends(get_requester),
):
    address = services.addresses.create_address(
        requester.user_id, request.model_dump(exclude_unset=True)
    )
    return address_to_schema(address)


@router.get("/addresses/default", response_model=AddressSchema)
def get_default_address(
    services: Services = Depends(get_services),
    requester: Requester = Depends(get_requester),
):
    return address_to_schema(services.addresses.get_default(requester.user_id))


@router.post("/addresses/validate", response_model=DeliveryAreaResponse)
def validate_delivery_area(
    request: PostalCodeRequest,
    services: Services = Depends(get_services),
):
    """Check whether a postal code is inside the delivery area."""
    available = services.addresses.validate_delivery_area(request.postal_code)
    return DeliveryAreaResponse(
        postal_code=request.postal_code.strip(),
        delivery_available=available,
    )


@router.get("/addresses/{address_id}", response_model=AddressSchema)
def get_address(
    address_id: int,
    services: Services = Depends(get_services),
    requester: Requester = Depends(get_requester),
):
    return address_to_schema(services.addresses.get_address(requester.user_id, address_id))


@router.put("/addresses/{address_id}", response_model=AddressSchema)
def update_address(
    address_id: int,
    request: AddressRequest,
    services: Services = Depends(get_services),
    requester: Requester = Depends(get_requester),
):
    address = services.addresses.update_address(
        requester.user_id, address_id, request.model_dump(exclude_unset=True)
    )
    return address_to_schema(address)


@router.delete("/addresses/{address_id}", response_model=AddressSchema)
def delete_address(
    address_id: int,
    services: Services = Depends(get_services),
    requester: Requester = Depends(get_requester),
):
    return address_to_schema(services.addresses.delete_address(requester.user_id, address_id))


@router.post("/addresses/{address_id}/default", response_model=AddressSchema)
def set_default_address(
    address_id: int,
    services: Services = Depends(get_services),
    requester: Requester = Depends(get_requester),
):
    return address_to_schema(services.addresses.set_default(requester.user_id, address_id))


# --- Review Endpoints ---


@router.get("/flowers/{product_id}/reviews", response_model=ReviewListResponse)
def list_product_reviews(
    product_id: int,
    page: int = 1,
    limit: int = 10,
    sort: str = "newest",
    services: Services = Depends(get_services),
):
    result = services.reviews.list_product_reviews(product_id, page=page, limit=limit, sort=sort)
    return ReviewListResponse(
        reviews=[review_to_schema(r) for r in result.items],
        pagination=pagination_schema(result),
        rating=rating_to_schema(services.reviews.rating_stats(product_id)),
    )


@router.post("/flowers/{product_id}/reviews", response_model=ReviewSchema, status_code=201)
def create_review(
    product_id: int,
    request: ReviewCreateRequest,
    services: Services = Depends(get_services),
    requester: Requester = Depends(get_requester),
):
    """Review a product bought in one of the caller's orders."""
    if request.order_id is None:
        raise ValidationError("Order ID is required", missing_fields=["orderId"])
    review = services.reviews.create_review(
        requester.user_id,
        product_id,
        request.order_id,
        request.rating,
        title=request.title,
        comment=request.comment,
    )
    return review_to_schema(review)


@router.get("/reviews/my", response_model=ReviewListResponse)
def list_my_reviews(
    page: int = 1,
    limit: int = 10,
    services: Services = Depends(get_services),
    requester: Requester = Depends(get_requester),
):
    result = services.reviews.list_user_reviews(requester.user_id, page=page, limit=limit)
    return ReviewListResponse(
        reviews=[review_to_schema(r) for r in result.items],
        pagination=pagination_schema(result),
    )


@router.put("/reviews/{review_id}", response_model=ReviewSchema)
def update_review(
    review_id: int,
    request: ReviewUpdateRequest,
    services: Services = Depends(get_services),
    requester: Requester = Depends(get_requester),
):
    review = services.reviews.update_review(
        requester,
        review_id,
        rating=request.rating,
        title=request.title,
        comment=request.comment,
    )
    return review_to_schema(review)


@router.delete("/reviews/{review_id}", response_model=ReviewSchema)
def delete_review(
    review_id: int,
    services: Services = Depends(get_services),
    requester: Requester = Depends(get_requester),
):
    return review_to_schema(services.reviews.delete_review(requester, review_id))


@router.post("/reviews/{review_id}/helpful", response_model=ReviewSchema)
def mark_review_helpful(
    review_id: int,
    services: Services = Depends(get_services),
    requester: Requester = Depends(get_requester),
):
    return review_to_schema(services.reviews.mark_helpful(requester, review_id))


@router.post("/reviews/{review_id}/report", response_model=ReviewSchema)
def report_review(
    review_id: int,
    request: Optional[ReportRequest] = None,
    services: Services = Depends(get_services),
    requester: Requester = Depends(get_requester),
):
    reason = request.reason if request else None
    return review_to_schema(services.reviews.report(requester, review_id, reason))


@router.put("/reviews/{review_id}/moderate", response_model=ReviewSchema)
def moderate_review(
    review_id: int,
    request: ModerateRequest,
    services: Services = Depends(get_services),
    admin: Requester = Depends(require_admin),
):
    review = services.reviews.moderate_review(review_id, request.approved, request.notes)
    return review_to_schema(review)


# --- Wishlist Endpoints ---


@router.get("/wishlist", response_model=WishlistListResponse)
def list_wishlist(
    priority: Optional[str] = None,
    page: int = 1,
    limit: int = 20,
    services: Services = Depends(get_services),
    requester: Requester = Depends(get_requester),
):
    result = services.wishlist.list_entries(
        requester.user_id, priority=priority, page=page, limit=limit
    )
    return WishlistListResponse(
        items=[wishlist_item_to_schema(i) for i in result.items],
        pagination=pagination_schema(result),
    )


@router.post("/wishlist", response_model=WishlistEntrySchema, status_code=201)
def add_to_wishlist(
    request: WishlistAddRequest,
    services: Services = Depends(get_services),
    requester: Requester = Depends(get_requester),
):
    if request.product_id is None:
        raise ValidationError("Product ID is required", missing_fields=["productId"])
    entry = services.wishlist.add(
        requester.user_id,
        request.product_id,
        notes=request.notes,
        priority=request.priority,
        notification_enabled=request.notification_enabled,
    )
    return entry_to_schema(entry)


@router.delete("/wishlist")
def clear_wishlist(
    services: Services = Depends(get_services),
    requester: Requester = Depends(get_requester),
):
    return {"removed": services.wishlist.clear(requester.user_id)}


@router.get("/wishlist/stats", response_model=WishlistStatsResponse)
def wishlist_stats(
    services: Services = Depends(get_services),
    requester: Requester = Depends(get_requester),
):
    return WishlistStatsResponse(**services.wishlist.stats(requester.user_id))


@router.get("/wishlist/check/{product_id}", response_model=WishlistCheckResponse)
def check_wishlist(
    product_id: int,
    services: Services = Depends(get_services),
    requester: Requester = Depends(get_requester),
):
    return WishlistCheckResponse(
        product_id=product_id,
        in_wishlist=services.wishlist.is_in_wishlist(requester.user_id, product_id),
    )


@router.put("/wishlist/{entry_id}", response_model=WishlistEntrySchema)
def update_wishlist_entry(
    entry_id: int,
    request: WishlistUpdateRequest,
    services: Services = Depends(get_services),
    requester: Requester = Depends(get_requester),
):
    entry = services.wishlist.update_entry(
        requester.user_id, entry_id, request.model_dump(exclude_unset=True)
    )
    return entry_to_schema(entry)


@router.delete("/wishlist/{product_id}", response_model=WishlistEntrySchema)
def remove_from_wishlist(
    product_id: int,
    services: Services = Depends(get_services),
    requester: Requester = Depends(get_requester),
):
    """Remove by product id."""
    return entry_to_schema(services.wishlist.remove(requester.user_id, product_id))


@router.post("/wishlist/{entry_id}/move-to-cart", response_model=CartLineSchema)
def move_to_cart(
    entry_id: int,
    request: Optional[MoveToCartRequest] = None,
    services: Services = Depends(get_services),
    requester: Requester = Depends(get_requester),
):
    """Produce a cart line for the client. The wishlist entry is kept."""
    quantity = request.quantity if request else 1
    line = services.wishlist.move_to_cart(requester.user_id, entry_id, quantity)
    return CartLineSchema(**asdict(line))


# --- FastAPI App ---


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    app.state.services.db.close()


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the application around one store handle.

    The store is opened here and closed on shutdown. Settings default to
    the environment.
    """
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="bloomshop API",
        description="REST API for the bloomshop flower store",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.services = Services.build(settings, Database(settings.data_dir).open())

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(BloomshopError, bloomshop_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(Exception, internal_error_handler)

    app.include_router(router)
    return app
