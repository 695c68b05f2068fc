"""Verified-purchase product reviews."""

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable

from .errors import (
    DuplicateReviewError,
    InvalidPurchaseError,
    NotFoundError,
    ValidationError,
)
from .models import (
    OrderStatus,
    PaymentStatus,
    ProductReview,
    Requester,
    _utc_now,
)
from .store import Database, Transaction
from .utils import USER_PAGE_LIMIT, Page, check_length, clamp_page, paginate

logger = logging.getLogger(__name__)

REVIEW_SORTS = ("newest", "oldest", "rating_high", "rating_low", "helpful")
TITLE_MAX_LENGTH = 255
COMMENT_MAX_LENGTH = 2000


@dataclass
class RatingStats:
    """Rating aggregate over approved reviews, computed on read."""

    average_rating: float = 0.0
    review_count: int = 0
    rating_distribution: dict[int, int] = field(
        default_factory=lambda: {star: 0 for star in range(1, 6)}
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "average_rating": self.average_rating,
            "review_count": self.review_count,
            "rating_distribution": {str(k): v for k, v in self.rating_distribution.items()},
        }


def compute_rating_stats(reviews: Iterable[ProductReview]) -> RatingStats:
    stats = RatingStats()
    total = 0
    for review in reviews:
        if not review.is_approved:
            continue
        stats.review_count += 1
        stats.rating_distribution[review.rating] += 1
        total += review.rating
    if stats.review_count:
        stats.average_rating = round(total / stats.review_count, 2)
    return stats


def validate_rating(rating: Any) -> int:
    if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
        raise ValidationError(
            "Rating must be between 1 and 5",
            invalid_fields={"rating": "must be an integer from 1 to 5"},
        )
    return rating


def _sort_reviews(reviews: list[ProductReview], sort: str) -> None:
    if sort == "oldest":
        reviews.sort(key=lambda r: (r.created_at, r.id))
    elif sort == "rating_high":
        reviews.sort(key=lambda r: (r.rating, r.created_at, r.id), reverse=True)
    elif sort == "rating_low":
        reviews.sort(key=lambda r: (r.rating, r.created_at))
    elif sort == "helpful":
        reviews.sort(key=lambda r: (r.helpful_count, r.created_at, r.id), reverse=True)
    else:
        reviews.sort(key=lambda r: (r.created_at, r.id), reverse=True)


def _load_review(txn: Transaction, review_id: int) -> ProductReview:
    row = txn.get("reviews", review_id)
    if row is None:
        raise NotFoundError("Review", review_id)
    return ProductReview.from_dict(row)


def is_purchase_confirmed(order: dict[str, Any]) -> bool:
    """An order confirms a purchase once paid or moved past pending."""
    status = OrderStatus(order["status"])
    if status in (OrderStatus.CANCELLED, OrderStatus.REFUNDED):
        return False
    if status == OrderStatus.PENDING:
        return order.get("payment_status") == PaymentStatus.PAID.value
    return True


class ReviewLedger:
    """Creates, lists and moderates product reviews."""

    def __init__(self, db: Database):
        self.db = db

    def create_review(
        self,
        user_id: int,
        product_id: int,
        order_id: int,
        rating: Any,
        title: str | None = None,
        comment: str | None = None,
    ) -> ProductReview:
        """
        Create a verified-purchase review.

        Raises:
            ValidationError: If rating is outside 1-5 or text is too long.
            NotFoundError: If the product doesn't exist.
            InvalidPurchaseError: If the user's order doesn't contain a confirmed
                purchase of the product.
            DuplicateReviewError: If the user already reviewed this product for
                this order.
        """
        validate_rating(rating)
        check_length(title, "title", TITLE_MAX_LENGTH)
        check_length(comment, "comment", COMMENT_MAX_LENGTH)

        with self.db.transaction() as txn:
            if txn.get("products", product_id) is None:
                raise NotFoundError("Product", product_id)

            order = txn.get("orders", order_id)
            if order is None or order["user_id"] != user_id:
                raise InvalidPurchaseError(product_id, order_id)
            contains_product = any(
                item["order_id"] == order_id and item["product_id"] == product_id
                for item in txn.rows("order_items")
            )
            if not contains_product or not is_purchase_confirmed(order):
                raise InvalidPurchaseError(product_id, order_id)

            for existing in txn.rows("reviews"):
                if (
                    existing["user_id"] == user_id
                    and existing["product_id"] == product_id
                    and existing.get("order_id") == order_id
                ):
                    raise DuplicateReviewError(product_id, order_id)

            review = ProductReview(
                id=0,
                product_id=product_id,
                user_id=user_id,
                order_id=order_id,
                rating=rating,
                title=title,
                comment=comment,
                is_verified_purchase=True,
            )
            review.id = txn.insert("reviews", review.to_dict())

        logger.info("User %s reviewed product %s (order %s)", user_id, product_id, order_id)
        return review

    def list_product_reviews(
        self,
        product_id: int,
        page: Any = 1,
        limit: Any = 10,
        sort: str = "newest",
    ) -> Page[ProductReview]:
        """
        Approved reviews of a product.

        Raises:
            NotFoundError: If the product doesn't exist.
        """
        request = clamp_page(page, limit, USER_PAGE_LIMIT, default_limit=10)
        with self.db.snapshot() as txn:
            if txn.get("products", product_id) is None:
                raise NotFoundError("Product", product_id)
            reviews = [
                ProductReview.from_dict(r)
                for r in txn.rows("reviews")
                if r["product_id"] == product_id and r.get("is_approved", True)
            ]
        _sort_reviews(reviews, sort if sort in REVIEW_SORTS else "newest")
        return paginate(reviews, request)

    def rating_stats(self, product_id: int) -> RatingStats:
        with self.db.snapshot() as txn:
            reviews = [
                ProductReview.from_dict(r)
                for r in txn.rows("reviews")
                if r["product_id"] == product_id
            ]
        return compute_rating_stats(reviews)

    def list_user_reviews(self, user_id: int, page: Any = 1, limit: Any = 10) -> Page[ProductReview]:
        request = clamp_page(page, limit, USER_PAGE_LIMIT, default_limit=10)
        with self.db.snapshot() as txn:
            reviews = [
                ProductReview.from_dict(r)
                for r in txn.rows("reviews")
                if r["user_id"] == user_id
            ]
        _sort_reviews(reviews, "newest")
        return paginate(reviews, request)

    def update_review(
        self,
        requester: Requester,
        review_id: int,
        rating: Any = None,
        title: str | None = None,
        comment: str | None = None,
    ) -> ProductReview:
        """
        Edit the requester's own review.

        Raises:
            NotFoundError: If the review doesn't exist or belongs to someone else.
            ValidationError: If the new rating is outside 1-5.
        """
        if rating is not None:
            validate_rating(rating)
        check_length(title, "title", TITLE_MAX_LENGTH)
        check_length(comment, "comment", COMMENT_MAX_LENGTH)

        with self.db.transaction() as txn:
            review = _load_review(txn, review_id)
            if review.user_id != requester.user_id:
                raise NotFoundError("Review", review_id)
            if rating is not None:
                review.rating = rating
            if title is not None:
                review.title = title
            if comment is not None:
                review.comment = comment
            review.updated_at = _utc_now()
            txn.update("reviews", review.id, review.to_dict())
        return review

    def delete_review(self, requester: Requester, review_id: int) -> ProductReview:
        """Delete a review. Owners delete their own; admins delete any."""
        with self.db.transaction() as txn:
            review = _load_review(txn, review_id)
            if review.user_id != requester.user_id and not requester.is_admin:
                raise NotFoundError("Review", review_id)
            txn.delete("reviews", review.id)

        logger.info("Review %s deleted by user %s", review_id, requester.user_id)
        return review

    def _bump_counter(self, requester: Requester, review_id: int, counter: str, verb: str) -> ProductReview:
        with self.db.transaction() as txn:
            review = _load_review(txn, review_id)
            if review.user_id == requester.user_id:
                raise ValidationError(f"Cannot {verb} your own review")
            setattr(review, counter, getattr(review, counter) + 1)
            review.updated_at = _utc_now()
            txn.update("reviews", review.id, review.to_dict())
        return review

    def mark_helpful(self, requester: Requester, review_id: int) -> ProductReview:
        """
        Increment the helpful counter.

        Raises:
            NotFoundError: If the review doesn't exist.
            ValidationError: If the requester wrote the review.
        """
        return self._bump_counter(requester, review_id, "helpful_count", "mark as helpful")

    def report(self, requester: Requester, review_id: int, reason: str | None = None) -> ProductReview:
        """
        Increment the reported counter.

        Raises:
            NotFoundError: If the review doesn't exist.
            ValidationError: If the requester wrote the review.
        """
        review = self._bump_counter(requester, review_id, "reported_count", "report")
        logger.warning(
            "Review %s reported by user %s (reason: %s)",
            review_id,
            requester.user_id,
            reason or "none given",
        )
        return review

    def moderate_review(self, review_id: int, approved: bool, notes: str | None = None) -> ProductReview:
        with self.db.transaction() as txn:
            review = _load_review(txn, review_id)
            review.is_approved = approved
            if notes is not None:
                review.moderator_notes = notes
            review.updated_at = _utc_now()
            txn.update("reviews", review.id, review.to_dict())
        return review
