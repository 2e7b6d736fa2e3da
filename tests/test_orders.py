import pytest

from schemas import ORDER_STATUSES


def order_payload(product_id, **overrides):
    payload = {
        "customerName": "Rahim Uddin",
        "email": "rahim@example.com",
        "phone": "01712345678",
        "address": "House 1, Road 2, Dhaka",
        "productId": product_id,
        "quantity": 2,
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def order(client, product):
    resp = client.post("/api/orders", json=order_payload(product["id"]))
    assert resp.status_code == 201
    return resp.json()


def test_create_order_computes_total(order, product):
    assert order["id"].startswith("ORD")
    assert order["status"] == "Pending"
    assert order["productId"] == product["id"]
    assert order["productTitle"] == "Herbal Syrup"
    # (6000 - 600) * 2
    assert order["totalPrice"] == 10800


def test_create_order_from_form(client, product):
    resp = client.post("/api/orders", data=order_payload(product["id"], quantity="3", email=""))
    assert resp.status_code == 201
    body = resp.json()
    assert body["quantity"] == 3
    assert body["email"] is None
    assert body["totalPrice"] == 16200


def test_order_ids_are_unique(client, product):
    ids = {client.post("/api/orders", json=order_payload(product["id"])).json()["id"] for _ in range(5)}
    assert len(ids) == 5


def test_create_order_missing_fields(client):
    resp = client.post("/api/orders", json={"email": "a@b.co"})
    assert resp.status_code == 400
    body = resp.json()
    assert body["error"] == "Required fields missing"
    assert {"customerName", "phone", "address", "productId", "quantity"} <= set(body["details"])


@pytest.mark.parametrize("phone", ["12345", "02812345678"])
def test_create_order_bad_phone(client, product, phone):
    resp = client.post("/api/orders", json=order_payload(product["id"], phone=phone))
    assert resp.status_code == 400
    assert resp.json()["error"] == "Invalid phone number format"


@pytest.mark.parametrize("email", ["rahim@", "rahim@example..com", "a@b..c", "rahim example@mail.com"])
def test_create_order_bad_email(client, product, email):
    resp = client.post("/api/orders", json=order_payload(product["id"], email=email))
    assert resp.status_code == 400
    assert "email" in resp.json()["details"]
    assert client.get("/api/orders").json() == []


def test_update_order_bad_email(client, order):
    resp = client.put(f"/api/orders/{order['id']}", json={"email": "a@b..c"})
    assert resp.status_code == 400
    assert "email" in resp.json()["details"]
    assert client.get(f"/api/orders/{order['id']}").json()["email"] == "rahim@example.com"


def test_create_order_unknown_product(client):
    resp = client.post("/api/orders", json=order_payload("12345"))
    assert resp.status_code == 404
    assert resp.json() == {"error": "Product not found"}
    assert client.get("/api/orders").json() == []


def test_total_not_recomputed_when_product_changes(client, product, order):
    client.put(f"/api/products/{product['id']}", json={"price": 1, "discount": 0})
    stored = client.get(f"/api/orders/{order['id']}").json()
    assert stored["totalPrice"] == 10800


def test_list_orders_newest_first(client, product):
    first = client.post("/api/orders", json=order_payload(product["id"])).json()
    second = client.post("/api/orders", json=order_payload(product["id"], quantity=1)).json()
    ids = [o["id"] for o in client.get("/api/orders").json()]
    assert ids == [second["id"], first["id"]]


@pytest.mark.parametrize("status", ORDER_STATUSES)
def test_status_update(client, order, status):
    resp = client.put(f"/api/orders/{order['id']}/status", json={"status": status})
    assert resp.status_code == 200
    assert resp.json()["status"] == status


def test_status_update_rejects_unknown_value(client, order):
    resp = client.put(f"/api/orders/{order['id']}/status", json={"status": "Lost"})
    assert resp.status_code == 400
    assert client.get(f"/api/orders/{order['id']}").json()["status"] == "Pending"


def test_status_update_missing_order(client):
    resp = client.put("/api/orders/ORD0/status", json={"status": "Shipped"})
    assert resp.status_code == 404


def test_cancelled_is_not_terminal(client, order):
    client.put(f"/api/orders/{order['id']}/status", json={"status": "Cancelled"})
    resp = client.put(f"/api/orders/{order['id']}/status", json={"status": "Processing"})
    assert resp.json()["status"] == "Processing"


def test_general_update_recomputes_total(client, product, order):
    client.put(f"/api/products/{product['id']}", json={"price": 100, "discount": 50})
    resp = client.put(f"/api/orders/{order['id']}", json={"quantity": 4})
    assert resp.status_code == 200
    body = resp.json()
    assert body["quantity"] == 4
    assert body["totalPrice"] == 200


def test_general_update_switches_product(client, order):
    other = client.post("/api/products", json={"title": "Honey", "price": 300}).json()
    body = client.put(f"/api/orders/{order['id']}", json={"productId": other["id"]}).json()
    assert body["productId"] == other["id"]
    assert body["productTitle"] == "Honey"
    assert body["totalPrice"] == 600


def test_general_update_only_supplied_fields(client, order):
    body = client.put(f"/api/orders/{order['id']}", json={"address": "New address", "status": "Shipped"}).json()
    assert body["address"] == "New address"
    assert body["status"] == "Shipped"
    assert body["customerName"] == "Rahim Uddin"
    assert body["totalPrice"] == 10800


def test_general_update_validation(client, order):
    assert client.put(f"/api/orders/{order['id']}", json={}).status_code == 400
    assert client.put(f"/api/orders/{order['id']}", json={"status": "Lost"}).status_code == 400
    assert client.put(f"/api/orders/{order['id']}", json={"phone": "123"}).status_code == 400
    assert client.put(f"/api/orders/{order['id']}", json={"productId": "999999"}).status_code == 404
    assert client.put("/api/orders/ORD0", json={"address": "x"}).status_code == 404


def test_delete_order(client, order):
    assert client.delete(f"/api/orders/{order['id']}").status_code == 200
    assert client.get(f"/api/orders/{order['id']}").status_code == 404
    assert client.delete(f"/api/orders/{order['id']}").status_code == 404


def test_delete_missing_order_leaves_store(client, order):
    resp = client.delete("/api/orders/ORD-missing")
    assert resp.status_code == 404
    assert resp.json() == {"error": "Order not found"}
    assert [o["id"] for o in client.get("/api/orders").json()] == [order["id"]]


def test_deleting_product_keeps_orders(client, product, order):
    client.delete(f"/api/products/{product['id']}")
    assert client.get(f"/api/orders/{order['id']}").status_code == 200
