"""Tests for the FastAPI API."""

import pytest
from fastapi.testclient import TestClient

from bloomshop.api import create_app
from bloomshop.config import Settings

USER = {"X-User-Id": "1"}
OTHER = {"X-User-Id": "2"}
ADMIN = {"X-User-Id": "99", "X-User-Role": "admin"}

ROSE = {"name": "Red Rose", "price": 29.99, "category": "roses", "stock": 10}
ADDRESS = {
    "recipientName": "Jane Doe",
    "addressLine1": "1 Garden Way",
    "city": "Portland",
    "state": "OR",
    "postalCode": "97201",
}


def make_client(temp_dir, **settings):
    app = create_app(Settings(data_dir=temp_dir / "data", **settings))
    return TestClient(app)


@pytest.fixture
def api_client(temp_dir):
    client = make_client(temp_dir)
    yield client
    client.app.state.services.db.close()


@pytest.fixture
def rose_id(api_client):
    response = api_client.post("/api/products", json=ROSE, headers=ADMIN)
    assert response.status_code == 201
    return response.json()["id"]


@pytest.fixture
def address_id(api_client):
    response = api_client.post("/api/addresses", json=ADDRESS, headers=USER)
    assert response.status_code == 201
    return response.json()["id"]


def order_body(product_id, quantity=2, **extra):
    body = {
        "items": [{"productId": product_id, "quantity": quantity}],
        "shippingMethod": "standard",
        "paymentMethod": "credit_card",
    }
    body.update(extra)
    return body


@pytest.fixture
def order_id(api_client, rose_id, address_id):
    response = api_client.post(
        "/api/orders", json=order_body(rose_id, shippingAddressId=address_id), headers=USER
    )
    assert response.status_code == 201
    return response.json()["id"]


class TestHealthCheck:
    def test_health(self, api_client):
        response = api_client.get("/api/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "productCount": 0}


class TestProducts:
    def test_list_empty(self, api_client):
        response = api_client.get("/api/products")
        assert response.status_code == 200
        data = response.json()
        assert data["products"] == []
        assert data["pagination"]["total"] == 0
        assert data["filters"]["sort"] == "name"

    def test_camel_case_fields(self, api_client, rose_id):
        data = api_client.get("/api/products").json()
        product = data["products"][0]

        assert product["id"] == rose_id
        assert product["price"] == 29.99
        assert product["isAvailable"] is True
        assert product["formattedPrice"] == "$29.99"
        assert product["stockStatus"] == "low_stock"
        assert data["pagination"]["hasNext"] is False

    def test_filters(self, api_client, rose_id):
        api_client.post(
            "/api/products",
            json={"name": "Tulip", "price": 12.5, "category": "tulips"},
            headers=ADMIN,
        )
        data = api_client.get("/api/products", params={"category": "tulips"}).json()
        assert [p["name"] for p in data["products"]] == ["Tulip"]

        data = api_client.get("/api/products", params={"minPrice": 20}).json()
        assert [p["name"] for p in data["products"]] == ["Red Rose"]

    @pytest.mark.parametrize("bound", ["nan", "inf", "-inf"])
    def test_non_finite_price_filter(self, api_client, rose_id, bound):
        response = api_client.get("/api/products", params={"minPrice": bound})
        assert response.status_code == 400
        assert response.json()["invalidFields"] == {"minPrice": "must be a finite number"}

        response = api_client.get("/api/products", params={"maxPrice": bound})
        assert response.status_code == 400

    def test_create_requires_identity(self, api_client):
        response = api_client.post("/api/products", json=ROSE)
        assert response.status_code == 401
        assert response.json()["message"] == "Authentication required"

    def test_create_requires_admin(self, api_client):
        response = api_client.post("/api/products", json=ROSE, headers=USER)
        assert response.status_code == 403
        assert response.json()["message"] == "Admin access required"

    def test_create_missing_fields(self, api_client):
        response = api_client.post("/api/products", json={"description": "?"}, headers=ADMIN)
        assert response.status_code == 400
        data = response.json()
        assert data["message"] == "Missing required fields"
        assert data["missingFields"] == ["name", "price", "category"]
        assert data["error"] == "ValidationError"

    def test_get_not_found(self, api_client):
        response = api_client.get("/api/products/404")
        assert response.status_code == 404
        assert response.json() == {"message": "Product 404 not found", "error": "NotFoundError"}

    def test_production_hides_error_class(self, temp_dir):
        client = make_client(temp_dir, environment="production")
        response = client.get("/api/products/404")
        client.app.state.services.db.close()

        assert response.status_code == 404
        assert response.json() == {"message": "Product 404 not found"}

    def test_detail(self, api_client, rose_id):
        response = api_client.get(f"/api/products/{rose_id}", headers=USER)
        assert response.status_code == 200
        data = response.json()
        assert data["product"]["name"] == "Red Rose"
        assert data["reviews"] == []
        assert data["rating"]["reviewCount"] == 0
        assert data["isInWishlist"] is False

    def test_update_and_delete(self, api_client, rose_id):
        response = api_client.put(
            f"/api/products/{rose_id}", json={"originalPrice": 39.99}, headers=ADMIN
        )
        assert response.json()["discountPercentage"] == 25

        response = api_client.delete(f"/api/products/{rose_id}", headers=ADMIN)
        assert response.json()["status"] == "discontinued"
        assert api_client.get("/api/products").json()["products"] == []

    def test_stock(self, api_client, rose_id):
        response = api_client.patch(
            f"/api/products/{rose_id}/stock", json={"delta": -3}, headers=ADMIN
        )
        assert response.status_code == 200
        assert response.json()["stock"] == 7

        response = api_client.patch(
            f"/api/products/{rose_id}/stock", json={"stock": -1}, headers=ADMIN
        )
        assert response.status_code == 400

    def test_featured_and_categories(self, api_client, rose_id):
        api_client.put(f"/api/products/{rose_id}", json={"isFeatured": True}, headers=ADMIN)

        featured = api_client.get("/api/products/featured").json()
        assert [p["id"] for p in featured] == [rose_id]
        assert api_client.get("/api/products/categories").json() == {"categories": ["roses"]}


class TestOrders:
    def test_place_order(self, api_client, rose_id, address_id):
        response = api_client.post(
            "/api/orders", json=order_body(rose_id, shippingAddressId=address_id), headers=USER
        )
        assert response.status_code == 201
        data = response.json()

        assert data["subtotal"] == 59.98
        assert data["shippingCost"] == 5.99
        assert data["taxAmount"] == 5.28
        assert data["total"] == 71.25
        assert data["status"] == "pending"
        assert data["statusLabel"] == "Pending"
        assert data["statusColor"] == "orange"
        assert data["items"][0]["productName"] == "Red Rose"
        assert data["shippingAddress"]["recipientName"] == "Jane Doe"

        product = api_client.get(f"/api/products/{rose_id}").json()["product"]
        assert product["stock"] == 8

    def test_no_items(self, api_client):
        response = api_client.post(
            "/api/orders", json={"paymentMethod": "credit_card"}, headers=USER
        )
        assert response.status_code == 400
        assert response.json()["message"] == "Order must contain at least one item"

    def test_insufficient_stock(self, api_client, rose_id, address_id):
        response = api_client.post(
            "/api/orders",
            json=order_body(rose_id, 11, shippingAddressId=address_id),
            headers=USER,
        )
        assert response.status_code == 400
        assert response.json()["message"] == (
            "Insufficient stock for Red Rose. Available: 10, requested: 11"
        )

    def test_missing_payment_method(self, api_client, rose_id, address_id):
        body = order_body(rose_id, shippingAddressId=address_id)
        del body["paymentMethod"]
        response = api_client.post("/api/orders", json=body, headers=USER)
        assert response.status_code == 400
        assert response.json()["message"] == "Payment method is required"

    def test_malformed_body(self, api_client):
        response = api_client.post(
            "/api/orders",
            json={"items": [{"productId": 1, "quantity": "lots"}], "paymentMethod": "paypal"},
            headers=USER,
        )
        assert response.status_code == 400
        data = response.json()
        assert data["message"] == "Validation failed"
        assert data["errors"][0]["field"] == "items.0.quantity"

    def test_requires_identity(self, api_client):
        response = api_client.get("/api/orders/my")
        assert response.status_code == 401

    def test_my_orders_and_visibility(self, api_client, order_id):
        data = api_client.get("/api/orders/my", headers=USER).json()
        assert [o["id"] for o in data["orders"]] == [order_id]

        assert api_client.get(f"/api/orders/{order_id}", headers=USER).status_code == 200
        assert api_client.get(f"/api/orders/{order_id}", headers=OTHER).status_code == 404
        assert api_client.get(f"/api/orders/{order_id}", headers=ADMIN).status_code == 200

    def test_cancel_pending(self, api_client, rose_id, order_id):
        response = api_client.post(
            f"/api/orders/{order_id}/cancel", json={"reason": "Wrong color"}, headers=USER
        )
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "cancelled"
        assert data["cancelReason"] == "Wrong color"

        product = api_client.get(f"/api/products/{rose_id}").json()["product"]
        assert product["stock"] == 10

    def test_cancel_without_body(self, api_client, order_id):
        response = api_client.post(f"/api/orders/{order_id}/cancel", headers=USER)
        assert response.status_code == 200

    def test_status_lifecycle(self, api_client, order_id):
        for status in ("processing", "in_transit", "delivered"):
            response = api_client.put(
                f"/api/orders/{order_id}/status", json={"status": status}, headers=ADMIN
            )
            assert response.status_code == 200
            assert response.json()["status"] == status

        response = api_client.post(f"/api/orders/{order_id}/cancel", headers=USER)
        assert response.status_code == 400
        assert response.json()["error"] == "InvalidStateError"

        response = api_client.post(f"/api/orders/{order_id}/refund", headers=ADMIN)
        assert response.json()["paymentStatus"] == "refunded"

    def test_illegal_status(self, api_client, order_id):
        response = api_client.put(
            f"/api/orders/{order_id}/status", json={"status": "delivered"}, headers=ADMIN
        )
        assert response.status_code == 400

    def test_status_requires_admin(self, api_client, order_id):
        response = api_client.put(
            f"/api/orders/{order_id}/status", json={"status": "processing"}, headers=USER
        )
        assert response.status_code == 403

    def test_admin_listing(self, api_client, order_id):
        response = api_client.get("/api/orders", headers=ADMIN)
        assert response.status_code == 200
        data = response.json()
        assert [o["id"] for o in data["orders"]] == [order_id]
        assert data["summary"] == {
            "count": 1,
            "totalRevenue": 71.25,
            "averageOrderValue": 71.25,
        }

        data = api_client.get("/api/orders", params={"customer": "jane"}, headers=ADMIN).json()
        assert data["summary"]["count"] == 1
        data = api_client.get("/api/orders", params={"userId": 2}, headers=ADMIN).json()
        assert data["orders"] == []

    def test_admin_listing_forbidden(self, api_client):
        assert api_client.get("/api/orders", headers=USER).status_code == 403


class TestAddresses:
    def test_crud(self, api_client, address_id):
        data = api_client.get("/api/addresses", headers=USER).json()
        assert [a["id"] for a in data] == [address_id]
        assert data[0]["isDefault"] is True

        response = api_client.put(
            f"/api/addresses/{address_id}", json={"city": "Eugene"}, headers=USER
        )
        assert response.json()["city"] == "Eugene"
        assert api_client.get(f"/api/addresses/{address_id}", headers=OTHER).status_code == 404

    def test_delete_only_address(self, api_client, address_id):
        response = api_client.delete(f"/api/addresses/{address_id}", headers=USER)
        assert response.status_code == 400
        assert "only address" in response.json()["message"]

    def test_set_default(self, api_client, address_id):
        second = api_client.post(
            "/api/addresses", json={**ADDRESS, "city": "Salem"}, headers=USER
        ).json()

        response = api_client.post(f"/api/addresses/{second['id']}/default", headers=USER)
        assert response.json()["isDefault"] is True

        default = api_client.get("/api/addresses/default", headers=USER).json()
        assert default["id"] == second["id"]
        defaults = [a for a in api_client.get("/api/addresses", headers=USER).json() if a["isDefault"]]
        assert len(defaults) == 1

    def test_missing_fields(self, api_client):
        response = api_client.post("/api/addresses", json={"city": "Salem"}, headers=USER)
        assert response.status_code == 400
        assert "postal_code" in response.json()["missingFields"]

    def test_validate_postal_code(self, api_client):
        response = api_client.post("/api/addresses/validate", json={"postalCode": "97201"})
        assert response.json() == {"postalCode": "97201", "deliveryAvailable": True}

        response = api_client.post("/api/addresses/validate", json={})
        assert response.status_code == 400


class TestReviews:
    @pytest.fixture
    def paid_order_id(self, api_client, order_id):
        api_client.put(
            f"/api/orders/{order_id}/status", json={"status": "processing"}, headers=ADMIN
        )
        return order_id

    def test_review_flow(self, api_client, rose_id, paid_order_id):
        response = api_client.post(
            f"/api/flowers/{rose_id}/reviews",
            json={"orderId": paid_order_id, "rating": 5, "title": "Lovely"},
            headers=USER,
        )
        assert response.status_code == 201
        review = response.json()
        assert review["isVerifiedPurchase"] is True

        response = api_client.post(
            f"/api/flowers/{rose_id}/reviews",
            json={"orderId": paid_order_id, "rating": 4},
            headers=USER,
        )
        assert response.status_code == 400
        assert response.json()["error"] == "DuplicateReviewError"

        data = api_client.get(f"/api/flowers/{rose_id}/reviews").json()
        assert data["rating"]["averageRating"] == 5.0
        assert data["rating"]["ratingDistribution"]["5"] == 1
        assert [r["id"] for r in data["reviews"]] == [review["id"]]

        own = api_client.post(f"/api/reviews/{review['id']}/helpful", headers=USER)
        assert own.status_code == 400
        other = api_client.post(f"/api/reviews/{review['id']}/helpful", headers=OTHER)
        assert other.json()["helpfulCount"] == 1

        mine = api_client.get("/api/reviews/my", headers=USER).json()
        assert mine["pagination"]["total"] == 1

    def test_unpaid_order_rejected(self, api_client, rose_id, order_id):
        response = api_client.post(
            f"/api/flowers/{rose_id}/reviews",
            json={"orderId": order_id, "rating": 5},
            headers=USER,
        )
        assert response.status_code == 400
        assert response.json()["error"] == "InvalidPurchaseError"

    def test_moderation(self, api_client, rose_id, paid_order_id):
        review = api_client.post(
            f"/api/flowers/{rose_id}/reviews",
            json={"orderId": paid_order_id, "rating": 1},
            headers=USER,
        ).json()

        response = api_client.put(
            f"/api/reviews/{review['id']}/moderate", json={"approved": False}, headers=ADMIN
        )
        assert response.json()["isApproved"] is False
        assert api_client.get(f"/api/flowers/{rose_id}/reviews").json()["reviews"] == []


class TestWishlist:
    def test_wishlist_flow(self, api_client, rose_id):
        response = api_client.post(
            "/api/wishlist", json={"productId": rose_id, "priority": "high"}, headers=USER
        )
        assert response.status_code == 201
        entry = response.json()

        duplicate = api_client.post("/api/wishlist", json={"productId": rose_id}, headers=USER)
        assert duplicate.status_code == 400

        check = api_client.get(f"/api/wishlist/check/{rose_id}", headers=USER).json()
        assert check == {"productId": rose_id, "inWishlist": True}

        stats = api_client.get("/api/wishlist/stats", headers=USER).json()
        assert stats == {"total": 1, "byPriority": {"low": 0, "medium": 0, "high": 1}}

        listing = api_client.get("/api/wishlist", headers=USER).json()
        assert listing["items"][0]["product"]["name"] == "Red Rose"

        line = api_client.post(
            f"/api/wishlist/{entry['id']}/move-to-cart", json={"quantity": 2}, headers=USER
        ).json()
        assert line == {
            "productId": rose_id,
            "name": "Red Rose",
            "price": 29.99,
            "quantity": 2,
            "image": None,
        }

        removed = api_client.delete(f"/api/wishlist/{rose_id}", headers=USER)
        assert removed.status_code == 200
        assert api_client.get("/api/wishlist/stats", headers=USER).json()["total"] == 0

    def test_clear(self, api_client, rose_id):
        api_client.post("/api/wishlist", json={"productId": rose_id}, headers=USER)
        assert api_client.delete("/api/wishlist", headers=USER).json() == {"removed": 1}

    def test_product_detail_flag(self, api_client, rose_id):
        api_client.post("/api/wishlist", json={"productId": rose_id}, headers=USER)
        detail = api_client.get(f"/api/products/{rose_id}", headers=USER).json()
        assert detail["isInWishlist"] is True
