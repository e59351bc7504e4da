import inspect
import pytest
from decimal import Decimal
from fastapi.testclient import TestClient
from marketplace.core.database import get_db
from marketplace.models.database import Notification
from marketplace.tests.factories import CUSTOMER_ID, OTHER_CUSTOMER_ID, VENDOR_1_ID, VENDOR_2_ID
from main import app


def headers(user_id, role):
    return {"X-User-Id": str(user_id), "X-User-Role": role}

CUSTOMER = headers(CUSTOMER_ID, "CUSTOMER")
OTHER_CUSTOMER = headers(OTHER_CUSTOMER_ID, "CUSTOMER")
VENDOR = headers(VENDOR_1_ID, "VENDOR")
OTHER_VENDOR = headers(VENDOR_2_ID, "VENDOR")
ADMIN = headers(1, "ADMIN")


@pytest.fixture
def client(session_factory):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    del app.dependency_overrides[get_db]

@pytest.fixture
def sample_catalog(catalog):
    """Two shops: Shop One sells Product A (5 @ 10.00), Shop Two sells Product B (5 @ 20.00)"""
    shop1 = catalog.shop(vendor_id=VENDOR_1_ID, name="Shop One")
    shop2 = catalog.shop(vendor_id=VENDOR_2_ID, name="Shop Two")
    return {
        "shop1": shop1,
        "shop2": shop2,
        "a": catalog.product(shop1, name="Product A", price="10.00", stock=5),
        "b": catalog.product(shop2, name="Product B", price="20.00", stock=5),
    }

@pytest.fixture
def address_id(client):
    response = client.post("/api/v1/addresses/", headers=CUSTOMER, json={
        "label": "Home",
        "street": "12 Nile Street",
        "city": "Qena",
    })
    assert response.status_code == 201
    return response.json()["id"]


def add_to_cart(client, product, quantity, who=CUSTOMER):
    response = client.post(
        "/api/v1/cart/items", headers=who, json={"product_id": product.id, "quantity": quantity}
    )
    assert response.status_code == 200, response.text
    return response.json()


def checkout(client, address_id, who=CUSTOMER, **extra):
    return client.post("/api/v1/orders/", headers=who, json={"address_id": address_id, **extra})


def place_order(client, product, quantity, address_id):
    add_to_cart(client, product, quantity)
    response = checkout(client, address_id)
    assert response.status_code == 201, response.text
    return response.json()["orders"][0]


class TestBasics:

    def test_health_check(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

    def test_root_endpoint(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert "Local Marketplace API" in response.json()["message"]

    def test_database_handlers_run_in_threadpool(self):
        """Handlers doing blocking Session work must be plain functions"""
        api_routes = [route for route in app.routes if getattr(route, "path", "").startswith("/api/v1")]

        assert api_routes
        for route in api_routes:
            assert not inspect.iscoroutinefunction(route.endpoint), route.path

    def test_requests_need_an_actor(self, client):
        assert client.get("/api/v1/cart/").status_code == 401
        assert client.get("/api/v1/cart/", headers=headers(CUSTOMER_ID, "ROBOT")).status_code == 401


class TestCartAPI:

    def test_cart_flow(self, client, sample_catalog):
        cart = add_to_cart(client, sample_catalog["a"], 2)
        assert Decimal(cart["subtotal"]) == Decimal("20.00")
        assert Decimal(cart["delivery_fee"]) == Decimal("25.00")
        assert Decimal(cart["total"]) == Decimal("45.00")

        item_id = cart["lines"][0]["item_id"]
        cart = client.patch(f"/api/v1/cart/items/{item_id}", headers=CUSTOMER, json={"quantity": 4}).json()
        assert cart["item_count"] == 4

        assert client.get("/api/v1/cart/count", headers=CUSTOMER).json() == {"count": 4}

        cart = client.delete(f"/api/v1/cart/items/{item_id}", headers=CUSTOMER).json()
        assert cart["lines"] == []

    def test_sync_replaces_cart_and_drops_unavailable_lines(self, client, sample_catalog):
        add_to_cart(client, sample_catalog["a"], 1)

        response = client.put("/api/v1/cart/", headers=CUSTOMER, json={"items": [
            {"product_id": sample_catalog["b"].id, "quantity": 2},
            {"product_id": sample_catalog["a"].id, "quantity": 9},
            {"product_id": 99999, "quantity": 1},
        ]})

        assert response.status_code == 200
        lines = response.json()["lines"]
        assert [(line["product_id"], line["quantity"]) for line in lines] == [(sample_catalog["b"].id, 2)]
        assert Decimal(response.json()["subtotal"]) == Decimal("40.00")

    def test_add_beyond_stock(self, client, sample_catalog):
        response = client.post(
            "/api/v1/cart/items", headers=CUSTOMER,
            json={"product_id": sample_catalog["a"].id, "quantity": 6},
        )

        assert response.status_code == 409
        assert response.json()["error"] == "INSUFFICIENT_STOCK"
        assert "Insufficient stock" in response.json()["detail"]

    def test_add_invalid_quantity(self, client, sample_catalog):
        response = client.post(
            "/api/v1/cart/items", headers=CUSTOMER,
            json={"product_id": sample_catalog["a"].id, "quantity": 0},
        )
        assert response.status_code == 422

    def test_add_unknown_product(self, client):
        response = client.post("/api/v1/cart/items", headers=CUSTOMER, json={"product_id": 99999})
        assert response.status_code == 404
        assert response.json()["error"] == "NOT_FOUND"

    def test_validate_reports_partial_stock(self, client, test_db, sample_catalog):
        add_to_cart(client, sample_catalog["b"], 4)
        product = sample_catalog["b"]
        product.stock = 2
        test_db.commit()

        data = client.get("/api/v1/cart/validate", headers=CUSTOMER).json()

        assert data["valid"] is True
        assert data["warnings"][0]["code"] == "PARTIAL_STOCK"
        assert data["warnings"][0]["available"] == 2


class TestCheckoutAPI:

    def test_checkout_splits_by_shop(self, client, sample_catalog, address_id):
        add_to_cart(client, sample_catalog["a"], 3)
        add_to_cart(client, sample_catalog["b"], 1)

        response = checkout(client, address_id, notes="Leave at the door")

        assert response.status_code == 201
        data = response.json()
        assert len(data["orders"]) == 2
        assert data["rejections"] == []
        first = data["orders"][0]
        assert first["status"] == "PENDING"
        assert first["version"] == 1
        assert Decimal(first["total"]) == Decimal("55.00")
        assert first["items"][0]["name"] == "Product A"
        assert client.get("/api/v1/cart/count", headers=CUSTOMER).json() == {"count": 0}

    def test_checkout_with_one_shop_rejected(self, client, test_db, sample_catalog, address_id):
        add_to_cart(client, sample_catalog["a"], 3)
        add_to_cart(client, sample_catalog["b"], 3)
        product = sample_catalog["b"]
        product.stock = 2
        test_db.commit()

        response = checkout(client, address_id)

        assert response.status_code == 201
        data = response.json()
        assert len(data["orders"]) == 1
        assert data["rejections"][0]["available"] == 2
        assert data["rejections"][0]["reason"] == "INSUFFICIENT_STOCK"
        assert client.get(f"/api/v1/inventory/{sample_catalog['a'].id}").json()["stock"] == 2

    def test_checkout_with_every_shop_rejected(self, client, test_db, sample_catalog, address_id):
        add_to_cart(client, sample_catalog["b"], 3)
        product = sample_catalog["b"]
        product.stock = 1
        test_db.commit()

        response = checkout(client, address_id)

        assert response.status_code == 409
        assert response.json()["orders"] == []
        assert len(response.json()["rejections"]) == 1

    def test_checkout_empty_cart(self, client, address_id):
        response = checkout(client, address_id)

        assert response.status_code == 400
        assert response.json()["error"] == "VALIDATION"

    def test_checkout_notifies_in_background(self, client, test_db, sample_catalog, address_id):
        order = place_order(client, sample_catalog["a"], 1, address_id)

        notifications = test_db.query(Notification).order_by(Notification.id).all()
        assert [(n.user_id, n.title) for n in notifications] == [
            (VENDOR_1_ID, "New order"),
            (CUSTOMER_ID, "Order update"),
        ]
        assert notifications[0].data["order_number"] == order["order_number"]


class TestOrdersAPI:

    def test_vendor_moves_order_forward(self, client, sample_catalog, address_id):
        order = place_order(client, sample_catalog["a"], 1, address_id)

        response = client.patch(
            f"/api/v1/orders/{order['id']}/status", headers=VENDOR, json={"status": "CONFIRMED"}
        )

        assert response.status_code == 200
        assert response.json()["status"] == "CONFIRMED"
        assert response.json()["version"] == 2

    def test_illegal_transition(self, client, sample_catalog, address_id):
        order = place_order(client, sample_catalog["a"], 1, address_id)

        response = client.patch(
            f"/api/v1/orders/{order['id']}/status", headers=VENDOR, json={"status": "DELIVERED"}
        )

        assert response.status_code == 409
        assert response.json()["error"] == "INVALID_TRANSITION"

    def test_customer_cannot_confirm(self, client, sample_catalog, address_id):
        order = place_order(client, sample_catalog["a"], 1, address_id)

        response = client.patch(
            f"/api/v1/orders/{order['id']}/status", headers=CUSTOMER, json={"status": "CONFIRMED"}
        )

        assert response.status_code == 403
        assert response.json()["error"] == "AUTHORIZATION"

    def test_unknown_status_value(self, client, sample_catalog, address_id):
        order = place_order(client, sample_catalog["a"], 1, address_id)

        response = client.patch(
            f"/api/v1/orders/{order['id']}/status", headers=VENDOR, json={"status": "LOST"}
        )
        assert response.status_code == 422

    def test_cancel_restores_stock(self, client, sample_catalog, address_id):
        product = sample_catalog["a"]
        order = place_order(client, product, 4, address_id)
        assert client.get(f"/api/v1/inventory/{product.id}").json()["stock"] == 1

        response = client.patch(f"/api/v1/orders/{order['id']}/cancel", headers=CUSTOMER)

        assert response.status_code == 200
        assert response.json()["status"] == "CANCELLED"
        assert client.get(f"/api/v1/inventory/{product.id}").json()["stock"] == 5

    def test_get_order(self, client, sample_catalog, address_id):
        order = place_order(client, sample_catalog["a"], 1, address_id)

        assert client.get(f"/api/v1/orders/{order['id']}", headers=CUSTOMER).status_code == 200
        assert client.get(f"/api/v1/orders/{order['id']}", headers=OTHER_CUSTOMER).status_code == 403
        assert client.get("/api/v1/orders/99999", headers=CUSTOMER).status_code == 404

    def test_order_listings(self, client, sample_catalog, address_id):
        place_order(client, sample_catalog["a"], 1, address_id)
        place_order(client, sample_catalog["a"], 1, address_id)
        shop_id = sample_catalog["shop1"].id

        mine = client.get("/api/v1/orders/?limit=1", headers=CUSTOMER).json()
        assert mine["meta"] == {"page": 1, "limit": 1, "total": 2, "total_pages": 2}
        assert len(mine["data"]) == 1

        assert client.get(f"/api/v1/orders/shop/{shop_id}", headers=VENDOR).json()["meta"]["total"] == 2
        assert client.get(f"/api/v1/orders/shop/{shop_id}", headers=OTHER_VENDOR).status_code == 403
        assert client.get("/api/v1/orders/admin/all", headers=ADMIN).json()["meta"]["total"] == 2
        assert client.get("/api/v1/orders/admin/all", headers=VENDOR).status_code == 403


class TestInventoryAPI:

    def test_inventory_debug_endpoint(self, client, sample_catalog):
        response = client.get("/api/v1/inventory/status/debug")

        assert response.status_code == 200
        assert {row["name"]: row["stock"] for row in response.json()} == {"Product A": 5, "Product B": 5}

    def test_restock(self, client, sample_catalog):
        product = sample_catalog["a"]

        response = client.post(f"/api/v1/inventory/{product.id}/restock", headers=VENDOR, json={"quantity": 7})
        assert response.status_code == 200
        assert response.json() == {"product_id": product.id, "stock": 12}

        response = client.post(f"/api/v1/inventory/{product.id}/restock", headers=OTHER_VENDOR, json={"quantity": 7})
        assert response.status_code == 403

    def test_unknown_product(self, client):
        assert client.get("/api/v1/inventory/99999").status_code == 404


class TestAddressesAPI:

    def test_address_in_use_cannot_be_deleted(self, client, sample_catalog, address_id):
        place_order(client, sample_catalog["a"], 1, address_id)

        response = client.delete(f"/api/v1/addresses/{address_id}", headers=CUSTOMER)

        assert response.status_code == 400
        assert "used by existing orders" in response.json()["detail"]

    def test_unused_address_is_deleted(self, client, address_id):
        response = client.delete(f"/api/v1/addresses/{address_id}", headers=CUSTOMER)

        assert response.status_code == 204
        assert client.get("/api/v1/addresses/", headers=CUSTOMER).json() == []
