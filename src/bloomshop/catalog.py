"""Product catalog for bloomshop."""

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any

from .errors import NotFoundError, ValidationError
from .models import Product, ProductReview, ProductStatus, _utc_now, to_money
from .reviews import RatingStats, compute_rating_stats
from .store import Database, Transaction
from .utils import ADMIN_PAGE_LIMIT, Page, clamp_page, format_currency, paginate

logger = logging.getLogger(__name__)

REQUIRED_PRODUCT_FIELDS = ("name", "price", "category")
EDITABLE_PRODUCT_FIELDS = (
    "name",
    "description",
    "price",
    "original_price",
    "stock",
    "category",
    "status",
    "is_featured",
    "image",
)
SORT_FIELDS = ("name", "price", "created_at", "stock")
DETAIL_REVIEW_LIMIT = 10


@dataclass
class ProductFilter:
    """Listing filters. status="all" disables the status filter."""

    category: str | None = None
    status: str | None = ProductStatus.ACTIVE.value
    featured: bool | None = None
    min_price: Decimal | None = None
    max_price: Decimal | None = None
    search: str | None = None
    sort: str = "name"
    order: str = "asc"


@dataclass
class ProductDetail:
    """A product with its approved reviews and rating aggregate."""

    product: Product
    reviews: list[ProductReview]
    rating: RatingStats
    is_in_wishlist: bool = False


def product_view(product: Product) -> dict[str, Any]:
    """Stored fields plus the derived display fields."""
    data = product.to_dict()
    data.update(
        is_available=product.is_available(),
        stock_status=product.stock_status(),
        formatted_price=format_currency(product.price),
        formatted_original_price=(
            format_currency(product.original_price)
            if product.original_price is not None
            else None
        ),
        is_on_sale=product.is_on_sale(),
        discount_percentage=product.discount_percentage(),
    )
    return data


def _parse_price(value: Any, field_name: str, errors: dict[str, str]) -> Decimal | None:
    if isinstance(value, bool):
        errors[field_name] = "must be a number"
        return None
    try:
        price = to_money(value)
    except (InvalidOperation, TypeError, ValueError):
        errors[field_name] = "must be a number"
        return None
    if not price.is_finite() or price <= 0:
        errors[field_name] = "must be greater than 0"
        return None
    return price


def _parse_stock(value: Any, errors: dict[str, str]) -> int | None:
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        errors["stock"] = "must be a non-negative integer"
        return None
    try:
        number = float(value)
        whole = int(number)
    except (ValueError, OverflowError):
        errors["stock"] = "must be a non-negative integer"
        return None
    if number != whole or whole < 0:
        errors["stock"] = "must be a non-negative integer"
        return None
    return whole


def _apply_product_fields(product: Product, data: dict[str, Any]) -> None:
    """
    Validate and copy editable fields onto product.

    Raises:
        ValidationError: Listing every invalid field.
    """
    errors: dict[str, str] = {}

    if "name" in data:
        name = (data["name"] or "").strip()
        if not name:
            errors["name"] = "cannot be empty"
        product.name = name
    if "category" in data:
        category = (data["category"] or "").strip()
        if not category:
            errors["category"] = "cannot be empty"
        product.category = category
    if "description" in data:
        product.description = data["description"] or ""
    if "image" in data:
        product.image = data["image"] or None
    if "is_featured" in data:
        product.is_featured = bool(data["is_featured"])
    if "status" in data:
        try:
            product.status = ProductStatus(data["status"])
        except ValueError:
            errors["status"] = "must be one of: active, discontinued"
    if "price" in data:
        price = _parse_price(data["price"], "price", errors)
        if price is not None:
            product.price = price
    if "original_price" in data:
        if data["original_price"] in (None, ""):
            product.original_price = None
        else:
            original = _parse_price(data["original_price"], "original_price", errors)
            if original is not None:
                product.original_price = original
    if "stock" in data:
        stock = _parse_stock(data["stock"], errors)
        if stock is not None:
            product.stock = stock

    if errors:
        raise ValidationError("Validation failed", invalid_fields=errors)


def load_product(txn: Transaction, product_id: int) -> Product:
    row = txn.get("products", product_id)
    if row is None:
        raise NotFoundError("Product", product_id)
    return Product.from_dict(row)


class Catalog:
    """Reads and writes flower products."""

    def __init__(self, db: Database):
        self.db = db

    # --- Reads ---

    def get(self, product_id: int) -> Product:
        """
        Get a product by ID.

        Raises:
            NotFoundError: If product doesn't exist.
        """
        with self.db.snapshot() as txn:
            return load_product(txn, product_id)

    def list_products(
        self,
        filters: ProductFilter | None = None,
        page: Any = 1,
        limit: Any = 20,
    ) -> Page[Product]:
        """Filtered, sorted, paginated product listing."""
        filters = filters or ProductFilter()
        request = clamp_page(page, limit, ADMIN_PAGE_LIMIT)

        with self.db.snapshot() as txn:
            products = [Product.from_dict(r) for r in txn.rows("products")]

        if filters.status and filters.status != "all":
            products = [p for p in products if p.status.value == filters.status]
        if filters.category and filters.category != "all":
            products = [p for p in products if p.category == filters.category]
        if filters.featured is not None:
            products = [p for p in products if p.is_featured == filters.featured]
        if filters.min_price is not None:
            products = [p for p in products if p.price >= filters.min_price]
        if filters.max_price is not None:
            products = [p for p in products if p.price <= filters.max_price]
        if filters.search:
            needle = filters.search.lower()
            products = [
                p
                for p in products
                if needle in p.name.lower() or needle in p.description.lower()
            ]

        sort_field = filters.sort if filters.sort in SORT_FIELDS else "name"
        reverse = (filters.order or "asc").lower() == "desc"
        if sort_field == "name":
            products.sort(key=lambda p: (p.name.lower(), p.id), reverse=reverse)
        else:
            products.sort(key=lambda p: (getattr(p, sort_field), p.id), reverse=reverse)

        return paginate(products, request)

    def get_product(self, product_id: int, user_id: int | None = None) -> ProductDetail:
        """
        Get a product with its newest approved reviews and rating stats.

        Raises:
            NotFoundError: If product doesn't exist.
        """
        with self.db.snapshot() as txn:
            product = load_product(txn, product_id)
            reviews = [
                ProductReview.from_dict(r)
                for r in txn.rows("reviews")
                if r["product_id"] == product_id and r.get("is_approved", True)
            ]
            in_wishlist = user_id is not None and any(
                w["user_id"] == user_id and w["product_id"] == product_id
                for w in txn.rows("wishlist")
            )

        reviews.sort(key=lambda r: (r.created_at, r.id), reverse=True)
        return ProductDetail(
            product=product,
            reviews=reviews[:DETAIL_REVIEW_LIMIT],
            rating=compute_rating_stats(reviews),
            is_in_wishlist=in_wishlist,
        )

    def list_featured(self, limit: Any = 6) -> list[Product]:
        request = clamp_page(1, limit, max_limit=20, default_limit=6)
        page = self.list_products(
            ProductFilter(featured=True, sort="created_at", order="desc"),
            page=1,
            limit=request.limit,
        )
        return page.items

    def list_categories(self) -> list[str]:
        with self.db.snapshot() as txn:
            return sorted(
                {
                    r["category"]
                    for r in txn.rows("products")
                    if r.get("status", "active") == ProductStatus.ACTIVE.value
                }
            )

    # --- Admin writes ---

    def create_product(self, data: dict[str, Any]) -> Product:
        """
        Create a product.

        Raises:
            ValidationError: If required fields are missing or values invalid.
        """
        missing = [f for f in REQUIRED_PRODUCT_FIELDS if data.get(f) in (None, "")]
        if missing:
            raise ValidationError("Missing required fields", missing_fields=missing)

        product = Product(id=0, name="", price=Decimal("0.01"), category="")
        _apply_product_fields(
            product, {k: v for k, v in data.items() if k in EDITABLE_PRODUCT_FIELDS}
        )

        with self.db.transaction() as txn:
            product.id = txn.insert("products", product.to_dict())

        logger.info("Created product %s (%s)", product.id, product.name)
        return product

    def update_product(self, product_id: int, data: dict[str, Any]) -> Product:
        """
        Update editable fields of a product.

        Raises:
            NotFoundError: If product doesn't exist.
            ValidationError: If any supplied value is invalid.
        """
        updates = {k: v for k, v in data.items() if k in EDITABLE_PRODUCT_FIELDS}
        with self.db.transaction() as txn:
            product = load_product(txn, product_id)
            _apply_product_fields(product, updates)
            product.updated_at = _utc_now()
            txn.update("products", product.id, product.to_dict())
        return product

    def delete_product(self, product_id: int) -> Product:
        """
        Soft delete: mark the product discontinued.

        Order items keep pointing at it, so rows are never removed.
        """
        with self.db.transaction() as txn:
            product = load_product(txn, product_id)
            product.status = ProductStatus.DISCONTINUED
            product.updated_at = _utc_now()
            txn.update("products", product.id, product.to_dict())

        logger.info("Discontinued product %s", product_id)
        return product

    def adjust_stock(
        self,
        product_id: int,
        stock: Any = None,
        delta: Any = None,
    ) -> Product:
        """
        Set stock to an absolute value or apply a delta.

        Raises:
            NotFoundError: If product doesn't exist.
            ValidationError: If the input is not an integer or the result is negative.
        """
        if (stock is None) == (delta is None):
            raise ValidationError("Provide exactly one of stock or delta")

        value = stock if stock is not None else delta
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValidationError(
                "Stock must be a non-negative number",
                invalid_fields={"stock" if stock is not None else "delta": "must be an integer"},
            )

        with self.db.transaction() as txn:
            product = load_product(txn, product_id)
            new_stock = value if stock is not None else product.stock + value
            if new_stock < 0:
                raise ValidationError(
                    "Stock must be a non-negative number",
                    invalid_fields={"stock": f"would become {new_stock}"},
                )
            old_stock = product.stock
            product.stock = new_stock
            product.updated_at = _utc_now()
            txn.update("products", product.id, product.to_dict())

        logger.info("Stock for product %s: %s -> %s", product_id, old_stock, new_stock)
        return product
