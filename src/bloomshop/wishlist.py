"""Saved-for-later products, one entry per (user, product)."""

import logging
from dataclasses import dataclass
from typing import Any

from .catalog import load_product
from .errors import (
    DuplicateEntryError,
    InsufficientStockError,
    NotFoundError,
    UnavailableError,
    ValidationError,
)
from .models import (
    CartLine,
    Product,
    ProductStatus,
    WishlistEntry,
    WishlistPriority,
    _utc_now,
)
from .store import Database, Transaction
from .utils import USER_PAGE_LIMIT, Page, check_length, clamp_page, paginate

logger = logging.getLogger(__name__)

NOTES_MAX_LENGTH = 500
MAX_CART_QUANTITY = 999


@dataclass
class WishlistItem:
    """A wishlist entry joined with its product."""

    entry: WishlistEntry
    product: Product


def _parse_priority(value: Any) -> WishlistPriority:
    try:
        return WishlistPriority(value or WishlistPriority.MEDIUM.value)
    except ValueError:
        raise ValidationError(
            "Invalid priority",
            invalid_fields={"priority": "must be one of: low, medium, high"},
        )


def _find_entry(txn: Transaction, user_id: int, product_id: int) -> WishlistEntry | None:
    for row in txn.rows("wishlist"):
        if row["user_id"] == user_id and row["product_id"] == product_id:
            return WishlistEntry.from_dict(row)
    return None


def _load_user_entry(txn: Transaction, user_id: int, entry_id: int) -> WishlistEntry:
    row = txn.get("wishlist", entry_id)
    if row is None or row["user_id"] != user_id:
        raise NotFoundError("Wishlist entry", entry_id)
    return WishlistEntry.from_dict(row)


class Wishlist:
    def __init__(self, db: Database):
        self.db = db

    def list_entries(
        self,
        user_id: int,
        priority: str | None = None,
        page: Any = 1,
        limit: Any = 20,
    ) -> Page[WishlistItem]:
        """The user's entries with products, newest first."""
        request = clamp_page(page, limit, USER_PAGE_LIMIT)
        wanted = _parse_priority(priority) if priority else None

        with self.db.snapshot() as txn:
            items = []
            for row in txn.rows("wishlist"):
                if row["user_id"] != user_id:
                    continue
                entry = WishlistEntry.from_dict(row)
                if wanted is not None and entry.priority != wanted:
                    continue
                product_row = txn.get("products", entry.product_id)
                if product_row is None:
                    continue
                items.append(WishlistItem(entry, Product.from_dict(product_row)))

        items.sort(key=lambda i: (i.entry.created_at, i.entry.id), reverse=True)
        return paginate(items, request)

    def add(
        self,
        user_id: int,
        product_id: int,
        notes: str | None = None,
        priority: Any = None,
        notification_enabled: bool = True,
    ) -> WishlistEntry:
        """
        Save a product for later.

        Raises:
            NotFoundError: If the product doesn't exist.
            DuplicateEntryError: If the product is already on the user's wishlist.
        """
        check_length(notes, "notes", NOTES_MAX_LENGTH)
        level = _parse_priority(priority)

        with self.db.transaction() as txn:
            load_product(txn, product_id)
            if _find_entry(txn, user_id, product_id) is not None:
                raise DuplicateEntryError(f"Product {product_id} is already in your wishlist")
            entry = WishlistEntry(
                id=0,
                user_id=user_id,
                product_id=product_id,
                notes=notes or None,
                priority=level,
                notification_enabled=notification_enabled,
            )
            entry.id = txn.insert("wishlist", entry.to_dict())

        logger.info("User %s saved product %s to wishlist", user_id, product_id)
        return entry

    def update_entry(self, user_id: int, entry_id: int, data: dict[str, Any]) -> WishlistEntry:
        """Update notes, priority or notification_enabled on the user's entry."""
        if "notes" in data:
            check_length(data["notes"], "notes", NOTES_MAX_LENGTH)
        level = _parse_priority(data["priority"]) if "priority" in data else None

        with self.db.transaction() as txn:
            entry = _load_user_entry(txn, user_id, entry_id)
            if "notes" in data:
                entry.notes = data["notes"] or None
            if level is not None:
                entry.priority = level
            if data.get("notification_enabled") is not None:
                entry.notification_enabled = bool(data["notification_enabled"])
            entry.updated_at = _utc_now()
            txn.update("wishlist", entry.id, entry.to_dict())
        return entry

    def remove(self, user_id: int, product_id: int) -> WishlistEntry:
        """
        Raises:
            NotFoundError: If the product isn't on the user's wishlist.
        """
        with self.db.transaction() as txn:
            entry = _find_entry(txn, user_id, product_id)
            if entry is None:
                raise NotFoundError("Wishlist entry for product", product_id)
            txn.delete("wishlist", entry.id)
        return entry

    def clear(self, user_id: int) -> int:
        """Remove every entry of the user. Returns how many were removed."""
        with self.db.transaction() as txn:
            ids = [r["id"] for r in txn.rows("wishlist") if r["user_id"] == user_id]
            for entry_id in ids:
                txn.delete("wishlist", entry_id)

        logger.info("Cleared %d wishlist entries for user %s", len(ids), user_id)
        return len(ids)

    def is_in_wishlist(self, user_id: int, product_id: int) -> bool:
        with self.db.snapshot() as txn:
            return _find_entry(txn, user_id, product_id) is not None

    def move_to_cart(self, user_id: int, entry_id: int, quantity: Any = 1) -> CartLine:
        """
        Turn an entry into a cart line. Nothing is written; the cart lives
        on the client and the entry stays on the wishlist.

        Raises:
            NotFoundError: If the entry isn't the user's.
            ValidationError: If quantity is not a positive integer.
            UnavailableError: If the product is discontinued or short of stock.
        """
        if (
            isinstance(quantity, bool)
            or not isinstance(quantity, int)
            or not 1 <= quantity <= MAX_CART_QUANTITY
        ):
            raise ValidationError(
                f"Quantity must be between 1 and {MAX_CART_QUANTITY}",
                invalid_fields={"quantity": str(quantity)},
            )

        with self.db.snapshot() as txn:
            entry = _load_user_entry(txn, user_id, entry_id)
            product = load_product(txn, entry.product_id)

        if product.status != ProductStatus.ACTIVE:
            raise UnavailableError(f"Product {product.name} is no longer available")
        if product.stock < quantity:
            raise InsufficientStockError(product.name, product.stock, quantity)
        return CartLine(
            product_id=product.id,
            name=product.name,
            price=product.price,
            quantity=quantity,
            image=product.image,
        )

    def stats(self, user_id: int) -> dict[str, Any]:
        """Entry count, total and per priority (every priority present)."""
        by_priority = {p.value: 0 for p in WishlistPriority}
        with self.db.snapshot() as txn:
            for row in txn.rows("wishlist"):
                if row["user_id"] == user_id:
                    by_priority[row.get("priority", "medium")] += 1
        return {"total": sum(by_priority.values()), "by_priority": by_priority}
