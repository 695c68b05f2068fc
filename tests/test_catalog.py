"""Tests for the product catalog."""

from decimal import Decimal

import pytest

from bloomshop.catalog import ProductFilter, product_view
from bloomshop.errors import NotFoundError, ValidationError
from bloomshop.models import ProductStatus

from .conftest import OTHER_USER_ID, USER_ID


class TestCreateProduct:
    def test_create(self, catalog):
        product = catalog.create_product(
            {"name": " Peony ", "price": 18.5, "category": "mixed", "stock": "7"}
        )

        assert product.id == 1
        assert product.name == "Peony"
        assert product.price == Decimal("18.50")
        assert product.stock == 7
        assert product.status == ProductStatus.ACTIVE
        assert catalog.get(product.id).name == "Peony"

    def test_missing_fields_listed(self, catalog):
        with pytest.raises(ValidationError) as exc_info:
            catalog.create_product({"description": "no name"})

        assert exc_info.value.missing_fields == ["name", "price", "category"]
        assert exc_info.value.details()["missingFields"] == ["name", "price", "category"]

    @pytest.mark.parametrize("price", [0, -1, "abc", True])
    def test_invalid_price(self, catalog, price):
        with pytest.raises(ValidationError) as exc_info:
            catalog.create_product({"name": "X", "price": price, "category": "roses"})
        assert "price" in exc_info.value.invalid_fields

    @pytest.mark.parametrize("stock", [-1, 2.5, "many"])
    def test_invalid_stock(self, catalog, stock):
        with pytest.raises(ValidationError) as exc_info:
            catalog.create_product(
                {"name": "X", "price": "1.00", "category": "roses", "stock": stock}
            )
        assert "stock" in exc_info.value.invalid_fields

    def test_unknown_fields_ignored(self, catalog):
        product = catalog.create_product(
            {"name": "X", "price": "1.00", "category": "roses", "id": 500, "rating": 5}
        )
        assert product.id == 1


class TestListProducts:
    @pytest.fixture
    def bouquet_catalog(self, catalog):
        catalog.create_product({"name": "Red Rose", "price": "29.99", "category": "roses", "stock": 10})
        catalog.create_product({"name": "White Rose", "price": "24.00", "category": "roses", "stock": 3})
        catalog.create_product(
            {"name": "Tulip Mix", "price": "15.00", "category": "tulips", "description": "Pink and red"}
        )
        old = catalog.create_product({"name": "Old Fern", "price": "9.00", "category": "greens"})
        catalog.delete_product(old.id)
        return catalog

    def test_default_excludes_discontinued(self, bouquet_catalog):
        page = bouquet_catalog.list_products()
        assert [p.name for p in page.items] == ["Red Rose", "Tulip Mix", "White Rose"]
        assert page.total == 3

    def test_status_all(self, bouquet_catalog):
        page = bouquet_catalog.list_products(ProductFilter(status="all"))
        assert page.total == 4

    def test_category_filter(self, bouquet_catalog):
        page = bouquet_catalog.list_products(ProductFilter(category="roses"))
        assert {p.name for p in page.items} == {"Red Rose", "White Rose"}

    def test_search_matches_description(self, bouquet_catalog):
        page = bouquet_catalog.list_products(ProductFilter(search="RED"))
        assert {p.name for p in page.items} == {"Red Rose", "Tulip Mix"}

    def test_price_range(self, bouquet_catalog):
        page = bouquet_catalog.list_products(
            ProductFilter(min_price=Decimal("15.00"), max_price=Decimal("25.00"))
        )
        assert {p.name for p in page.items} == {"White Rose", "Tulip Mix"}

    def test_sort_by_price_desc(self, bouquet_catalog):
        page = bouquet_catalog.list_products(ProductFilter(sort="price", order="desc"))
        assert [p.price for p in page.items] == [
            Decimal("29.99"),
            Decimal("24.00"),
            Decimal("15.00"),
        ]

    def test_pagination(self, bouquet_catalog):
        page = bouquet_catalog.list_products(page=2, limit=2)
        assert [p.name for p in page.items] == ["White Rose"]
        assert page.pages == 2
        assert page.has_prev and not page.has_next

    def test_limit_clamped(self, bouquet_catalog):
        assert bouquet_catalog.list_products(limit=1000).limit == 100
        assert bouquet_catalog.list_products(page=-3, limit=0).page == 1

    def test_categories(self, bouquet_catalog):
        assert bouquet_catalog.list_categories() == ["roses", "tulips"]

    def test_featured(self, catalog):
        catalog.create_product({"name": "A", "price": "5", "category": "x", "is_featured": True})
        catalog.create_product({"name": "B", "price": "5", "category": "x"})
        assert [p.name for p in catalog.list_featured()] == ["A"]


class TestGetProduct:
    def test_not_found(self, catalog):
        with pytest.raises(NotFoundError):
            catalog.get_product(404)

    def test_only_approved_reviews(self, db, catalog, products):
        rose_id = products["rose"].id
        with db.transaction() as txn:
            txn.insert("reviews", {"product_id": rose_id, "user_id": 1, "rating": 5, "is_approved": True})
            txn.insert("reviews", {"product_id": rose_id, "user_id": 2, "rating": 3, "is_approved": True})
            txn.insert("reviews", {"product_id": rose_id, "user_id": 3, "rating": 1, "is_approved": False})

        detail = catalog.get_product(rose_id)

        assert len(detail.reviews) == 2
        assert detail.rating.review_count == 2
        assert detail.rating.average_rating == 4.0
        assert detail.rating.rating_distribution[1] == 0

    def test_wishlist_flag(self, catalog, wishlist, products):
        rose_id = products["rose"].id
        wishlist.add(USER_ID, rose_id)

        assert catalog.get_product(rose_id, user_id=USER_ID).is_in_wishlist
        assert not catalog.get_product(rose_id, user_id=OTHER_USER_ID).is_in_wishlist
        assert not catalog.get_product(rose_id).is_in_wishlist


class TestUpdateProduct:
    def test_update_fields(self, catalog, products):
        product = catalog.update_product(
            products["rose"].id, {"price": "19.99", "original_price": "29.99"}
        )
        assert product.price == Decimal("19.99")
        assert product.is_on_sale()
        assert catalog.get(product.id).original_price == Decimal("29.99")

    def test_invalid_update_leaves_product(self, catalog, products):
        with pytest.raises(ValidationError):
            catalog.update_product(products["rose"].id, {"name": "New", "price": -5})
        assert catalog.get(products["rose"].id).name == "Red Rose"

    def test_soft_delete(self, catalog, products):
        catalog.delete_product(products["rose"].id)
        product = catalog.get(products["rose"].id)
        assert product.status == ProductStatus.DISCONTINUED
        assert not product.is_available()


class TestAdjustStock:
    def test_set_absolute(self, catalog, products):
        assert catalog.adjust_stock(products["rose"].id, stock=3).stock == 3

    def test_delta(self, catalog, products):
        assert catalog.adjust_stock(products["rose"].id, delta=-4).stock == 6
        assert catalog.adjust_stock(products["rose"].id, delta=5).stock == 11

    def test_negative_result_rejected(self, catalog, products):
        with pytest.raises(ValidationError, match="non-negative"):
            catalog.adjust_stock(products["rose"].id, delta=-11)
        assert catalog.get(products["rose"].id).stock == 10

    def test_non_integer_rejected(self, catalog, products):
        with pytest.raises(ValidationError):
            catalog.adjust_stock(products["rose"].id, stock="ten")

    def test_exactly_one_of_stock_or_delta(self, catalog, products):
        with pytest.raises(ValidationError):
            catalog.adjust_stock(products["rose"].id)
        with pytest.raises(ValidationError):
            catalog.adjust_stock(products["rose"].id, stock=1, delta=1)

    def test_missing_product(self, catalog):
        with pytest.raises(NotFoundError):
            catalog.adjust_stock(404, stock=1)


class TestProductView:
    def test_derived_fields(self, catalog):
        product = catalog.create_product(
            {
                "name": "Rose",
                "price": "1299.50",
                "original_price": "1500",
                "category": "roses",
                "stock": 4,
            }
        )
        view = product_view(product)

        assert view["formatted_price"] == "$1,299.50"
        assert view["formatted_original_price"] == "$1,500.00"
        assert view["stock_status"] == "low_stock"
        assert view["is_available"] is True
        assert view["is_on_sale"] is True
        assert view["discount_percentage"] == 13
