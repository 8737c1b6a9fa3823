import uuid
from decimal import Decimal

from sqlalchemy import func, select

from orders.app import db
from orders.app.main import app
from orders.app.models import ORDER_STATUSES, Order, OrderItem


EXAMPLE = {
    "user_id": "u1",
    "items": [
        {"product_title": "Game A", "product_price": 19.99, "quantity": 2},
        {"product_title": "Game B", "product_price": 5.00, "quantity": 1},
    ],
}


def _count(model, *where):
    with db.SessionLocal() as s:
        return s.execute(select(func.count()).select_from(model).where(*where)).scalar_one()


def _orders_created():
    return app.state.metrics.registry.get_sample_value("orders_total") or 0.0


def test_create_order_computes_total_and_persists_items(orders_client):
    before = _orders_created()
    r = orders_client.post("/orders", json=EXAMPLE)
    assert r.status_code == 201
    order = r.json()
    assert Decimal(order["total_amount"]) == Decimal("44.98")
    assert order["status"] == "pending"
    assert order["user_id"] == "u1"
    assert order["order_number"].startswith("LUGX-")
    assert "items" not in order

    assert _count(OrderItem, OrderItem.order_id == uuid.UUID(order["id"])) == 2
    assert _orders_created() == before + 1


def test_get_order_includes_snapshot_items(orders_client):
    created = orders_client.post("/orders", json={**EXAMPLE, "customer_email": "a@b.c"}).json()

    r = orders_client.get(f"/orders/{created['id']}")
    assert r.status_code == 200
    order = r.json()["order"]
    assert order["customer_email"] == "a@b.c"
    titles = sorted((i["product_title"], Decimal(i["product_price"]), i["quantity"]) for i in order["items"])
    assert titles == [("Game A", Decimal("19.99"), 2), ("Game B", Decimal("5.00"), 1)]


def test_missing_quantity_defaults_to_one_and_missing_price_counts_as_zero(orders_client):
    r = orders_client.post("/orders", json={
        "user_id": "u2",
        "items": [{"product_title": "Free"}, {"product_title": "Paid", "product_price": "3.50"}],
    })
    assert r.status_code == 201
    assert Decimal(r.json()["total_amount"]) == Decimal("3.50")

    items = orders_client.get(f"/orders/{r.json()['id']}").json()["order"]["items"]
    assert {i["product_title"]: i["quantity"] for i in items} == {"Free": 1, "Paid": 1}


def test_create_rejects_empty_or_missing_items(orders_client):
    for body in ({"user_id": "u1", "items": []}, {"user_id": "u1"}, {"items": EXAMPLE["items"]}):
        r = orders_client.post("/orders", json=body)
        assert r.status_code == 400
        assert "error" in r.json()
    assert _count(Order) == 0


def test_create_rejects_malformed_items(orders_client):
    bad_items = [
        {"product_title": "X", "product_price": "not-a-number"},
        {"product_title": "X", "product_price": 1, "quantity": 0},
        {"product_title": "X", "product_price": -1},
        {"product_title": "X", "product_price": 1, "quantity": 1.5},
    ]
    for item in bad_items:
        r = orders_client.post("/orders", json={"user_id": "u1", "items": [item]})
        assert r.status_code == 400, item
    assert _count(Order) == 0


def test_failed_item_insert_rolls_back_whole_order(orders_client):
    before = _orders_created()
    items = [{"product_title": f"Game {i}", "product_price": 1, "quantity": 1} for i in range(5)]
    items[2] = {"product_price": 1, "quantity": 1}  # product_title is NOT NULL

    r = orders_client.post("/orders", json={"user_id": "u1", "items": items})
    assert r.status_code == 500
    assert r.json() == {"error": "Internal server error"}

    assert _count(Order) == 0
    assert _count(OrderItem) == 0
    assert orders_client.get("/orders").json()["total"] == 0
    assert _orders_created() == before


def test_list_orders_filters_by_user_newest_first(orders_client):
    first = orders_client.post("/orders", json={**EXAMPLE, "user_id": "alice"}).json()
    orders_client.post("/orders", json={**EXAMPLE, "user_id": "bob"})
    last = orders_client.post("/orders", json={**EXAMPLE, "user_id": "alice"}).json()

    body = orders_client.get("/orders", params={"user_id": "alice"}).json()
    assert body["total"] == 2
    assert [o["id"] for o in body["orders"]] == [last["id"], first["id"]]

    assert orders_client.get("/orders", params={"limit": 1}).json()["total"] == 1
    assert orders_client.get("/orders").json()["total"] == 3


def test_update_status_and_email(orders_client):
    order = orders_client.post("/orders", json=EXAMPLE).json()

    r = orders_client.put(f"/orders/{order['id']}", json={"status": "confirmed"})
    assert r.status_code == 200
    updated = r.json()["order"]
    assert updated["status"] == "confirmed"
    assert updated["customer_email"] is None
    assert updated["total_amount"] == order["total_amount"]

    r = orders_client.put(f"/orders/{order['id']}", json={"customer_email": "x@y.z"})
    assert r.json()["order"] == {**updated, "customer_email": "x@y.z"}


def test_update_accepts_any_known_status_regardless_of_current(orders_client):
    order = orders_client.post("/orders", json=EXAMPLE).json()
    for status in ("delivered", "pending", "cancelled", "shipped"):
        r = orders_client.put(f"/orders/{order['id']}", json={"status": status})
        assert r.status_code == 200
        assert r.json()["order"]["status"] == status


def test_update_rejects_unknown_status_with_valid_list(orders_client):
    order = orders_client.post("/orders", json=EXAMPLE).json()
    r = orders_client.put(f"/orders/{order['id']}", json={"status": "lost"})
    assert r.status_code == 400
    assert r.json()["error"] == "Invalid status"
    assert r.json()["valid_statuses"] == list(ORDER_STATUSES)
    assert orders_client.get(f"/orders/{order['id']}").json()["order"]["status"] == "pending"


def test_update_rejects_empty_body(orders_client):
    order = orders_client.post("/orders", json=EXAMPLE).json()
    r = orders_client.put(f"/orders/{order['id']}", json={})
    assert r.status_code == 400
    assert r.json()["error"] == "No fields to update"


def test_update_and_get_unknown_order_is_404(orders_client):
    missing = uuid.uuid4()
    assert orders_client.put(f"/orders/{missing}", json={"status": "shipped"}).status_code == 404
    assert orders_client.get(f"/orders/{missing}").status_code == 404
    assert orders_client.delete(f"/orders/{missing}").status_code == 404


def test_delete_removes_header_and_all_items(orders_client):
    items = [{"product_title": f"G{i}", "product_price": 2, "quantity": 1} for i in range(3)]
    keep = orders_client.post("/orders", json=EXAMPLE).json()
    order = orders_client.post("/orders", json={"user_id": "u1", "items": items}).json()
    order_id = uuid.UUID(order["id"])
    rows_before = _count(Order) + _count(OrderItem)

    r = orders_client.delete(f"/orders/{order['id']}")
    assert r.status_code == 200
    assert r.json()["message"] == "Order deleted successfully"
    assert r.json()["order"]["id"] == order["id"]

    assert rows_before - (_count(Order) + _count(OrderItem)) == 3 + 1
    assert _count(OrderItem, OrderItem.order_id == order_id) == 0
    assert orders_client.get(f"/orders/{order['id']}").status_code == 404
    assert orders_client.get(f"/orders/{keep['id']}").status_code == 200


def test_order_snapshot_survives_catalog_changes(orders_client, catalog_client):
    game = catalog_client.post("/games", json={"name": "Snapshot Quest", "category": "RPG", "price": 30}).json()["game"]
    order = orders_client.post("/orders", json={
        "user_id": "u1",
        "items": [{"game_id": game["id"], "product_title": game["name"], "product_price": game["price"], "quantity": 1}],
    }).json()

    catalog_client.put(f"/games/{game['id']}", json={"price": 99})
    catalog_client.delete(f"/games/{game['id']}")

    fetched = orders_client.get(f"/orders/{order['id']}").json()["order"]
    assert Decimal(fetched["total_amount"]) == Decimal("30.00")
    assert Decimal(fetched["items"][0]["product_price"]) == Decimal("30.00")
    assert fetched["items"][0]["game_id"] == game["id"]


def test_health_and_metrics(orders_client):
    r = orders_client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "healthy"

    r = orders_client.get("/metrics")
    assert r.status_code == 200
    assert "orders_total" in r.text
    assert "http_requests_total" in r.text


def test_create_rejects_prices_outside_column_precision(orders_client):
    for price in ("123456789012.50", "1.234"):
        r = orders_client.post("/orders", json={
            "user_id": "u1",
            "items": [{"product_title": "Too precise", "product_price": price}],
        })
        assert r.status_code == 400, price
        assert r.json()["details"][0]["field"].endswith("product_price")
    assert _count(Order) == 0
