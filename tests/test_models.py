"""Tests for data models."""

from decimal import Decimal

from bloomshop.models import (
    ORDER_STATUS_COLORS,
    ORDER_STATUS_LABELS,
    Order,
    OrderItem,
    OrderStatus,
    PaymentMethod,
    Product,
    ProductReview,
    ProductStatus,
    Requester,
    ShippingAddress,
    to_money,
)


def make_product(**overrides):
    fields = dict(id=1, name="Red Rose", price=Decimal("29.99"), category="roses", stock=20)
    fields.update(overrides)
    return Product(**fields)


class TestDisplayTables:
    def test_every_status_has_a_label(self):
        assert set(ORDER_STATUS_LABELS) == set(OrderStatus)

    def test_every_status_has_a_color(self):
        assert set(ORDER_STATUS_COLORS) == set(OrderStatus)

    def test_order_uses_tables(self):
        order = Order(
            id=1,
            user_id=1,
            order_number="FS-2024-000001",
            subtotal=Decimal("10.00"),
            shipping_cost=Decimal("0.00"),
            tax_amount=Decimal("0.80"),
            discount_amount=Decimal("0.00"),
            total=Decimal("10.80"),
            payment_method=PaymentMethod.PAYPAL,
            status=OrderStatus.IN_TRANSIT,
        )
        assert order.status_label() == "In Transit"
        assert order.status_color() == "blue"


class TestMoney:
    def test_rounds_half_up(self):
        assert to_money("2.675") == Decimal("2.68")
        assert to_money("5.2776") == Decimal("5.28")

    def test_float_uses_shortest_repr(self):
        assert to_money(29.99) == Decimal("29.99")
        assert to_money(0.1 + 0.2) == Decimal("0.30")

    def test_int(self):
        assert to_money(5) == Decimal("5.00")


class TestProduct:
    def test_available_requires_active_and_stock(self):
        assert make_product().is_available()
        assert not make_product(stock=0).is_available()
        assert not make_product(status=ProductStatus.DISCONTINUED).is_available()

    def test_stock_status_thresholds(self):
        assert make_product(stock=0).stock_status() == "out_of_stock"
        assert make_product(stock=10).stock_status() == "low_stock"
        assert make_product(stock=11).stock_status() == "in_stock"

    def test_discount_percentage(self):
        product = make_product(price=Decimal("29.99"), original_price=Decimal("39.99"))
        assert product.is_on_sale()
        assert product.discount_percentage() == 25

    def test_no_discount_without_higher_original(self):
        assert make_product().discount_percentage() == 0
        same = make_product(original_price=Decimal("29.99"))
        assert not same.is_on_sale()
        assert same.discount_percentage() == 0

    def test_money_stored_as_strings(self):
        data = make_product(original_price=Decimal("35")).to_dict()
        assert data["price"] == "29.99"
        assert data["original_price"] == "35.00"
        assert Product.from_dict(data).price == Decimal("29.99")


class TestOrderItem:
    def test_snapshot_freezes_product_fields(self):
        product = make_product(image="/rose.jpg", description="Lovely")
        item = OrderItem.snapshot(7, product, 3)

        product.price = Decimal("99.00")
        product.name = "Renamed"

        assert item.order_id == 7
        assert item.unit_price == Decimal("29.99")
        assert item.total_price == Decimal("89.97")
        assert item.product_name == "Red Rose"
        assert item.product_image == "/rose.jpg"
        assert item.product_category == "roses"


class TestMisc:
    def test_requester_roles(self):
        assert Requester(1, "admin").is_admin
        assert not Requester(1).is_admin

    def test_star_display(self):
        review = ProductReview(id=1, product_id=1, user_id=1, rating=3)
        assert review.star_display() == "★★★☆☆"

    def test_address_one_line(self):
        address = ShippingAddress(
            id=1,
            user_id=1,
            recipient_name="Jane",
            address_line1="1 Garden Way",
            address_line2="Apt 2",
            city="Portland",
            state="OR",
            postal_code="97201",
        )
        assert address.one_line() == "1 Garden Way, Apt 2, Portland, OR 97201, United States"
