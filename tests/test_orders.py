from datetime import datetime, timezone

from bson import ObjectId

import main
from database import create_document, update_document
from schemas import generate_tracking_id


def _create_order(client, **overrides):
    payload = {"customerName": "Jane Smith", "orderTotal": 250.0}
    payload.update(overrides)
    return client.post("/api/orders", json=payload)


def test_generate_tracking_id_format():
    now = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)
    tracking_id = generate_tracking_id(now)

    prefix, timestamp, suffix = tracking_id.split("-")
    assert prefix == "ORD"
    assert int(timestamp, 36) == int(now.timestamp() * 1000)
    assert len(suffix) == 5
    assert tracking_id == tracking_id.upper()


def test_create_order_defaults(client):
    resp = _create_order(client)
    assert resp.status_code == 201
    body = resp.json()
    assert body["success"] is True
    assert body["message"] == "Order created successfully"

    data = body["data"]
    assert data["orderType"] == "online"
    assert data["action"] == "pending"
    assert data["status"] == "active"
    assert data["orderDate"] == "2026-10-19T12:00:00Z"
    assert data["orderTotal"] == 250.0
    assert data["trackingId"].startswith("ORD-")
    assert data["trackingId"] == data["trackingId"].upper()
    assert "description" not in data


def test_generated_tracking_ids_are_unique(client):
    ids = {_create_order(client).json()["data"]["trackingId"] for _ in range(5)}
    assert len(ids) == 5


def test_create_order_uppercases_given_tracking_id(client):
    resp = _create_order(client, trackingId=" ord-abc123-xyz ")
    assert resp.status_code == 201
    assert resp.json()["data"]["trackingId"] == "ORD-ABC123-XYZ"


def test_create_order_duplicate_tracking_id(client, mongo_db):
    assert _create_order(client, trackingId="ORD-123456").status_code == 201

    resp = _create_order(client, trackingId="ord-123456")
    assert resp.status_code == 400
    assert resp.json() == {"success": False, "message": "Order with this tracking ID already exists"}
    assert mongo_db["order"].count_documents({}) == 1


def test_create_order_full_payload(client):
    resp = _create_order(
        client,
        orderDate="2024-01-15T00:00:00Z",
        orderType="phone",
        orderTotal=1250.5,
        action="processing",
        description="Customer order with express shipping",
        customerEmail="John.Doe@Example.com",
        customerPhone="+1234567890",
        shippingAddress={
            "street": "123 Main St",
            "city": "New York",
            "state": "NY",
            "zipCode": "10001",
            "country": "USA",
        },
    )
    assert resp.status_code == 201
    data = resp.json()["data"]
    assert data["orderDate"] == "2024-01-15T00:00:00Z"
    assert data["orderType"] == "phone"
    assert data["action"] == "processing"
    assert data["customerEmail"] == "john.doe@example.com"
    assert data["shippingAddress"]["zipCode"] == "10001"


def test_create_order_validation(client):
    assert client.post("/api/orders", json={"customerName": "Jane"}).status_code == 400
    assert _create_order(client, orderTotal=-1).status_code == 400
    assert _create_order(client, orderType="fax").status_code == 400
    assert _create_order(client, action="lost").status_code == 400
    assert _create_order(client, status="archived").status_code == 400
    assert _create_order(client, description="x" * 501).status_code == 400
    assert _create_order(client, customerEmail="nope").status_code == 400


def test_get_order(client):
    created = _create_order(client).json()["data"]

    resp = client.get(f"/api/orders/{created['id']}")
    assert resp.status_code == 200
    assert resp.json()["data"] == created

    resp = client.get(f"/api/orders/{ObjectId()}")
    assert resp.status_code == 404
    assert resp.json()["message"] == "Order not found"


def test_list_orders_filters(client):
    _create_order(client, customerName="Alice", orderType="phone", action="shipped")
    _create_order(client, customerName="Bob", orderType="online")
    _create_order(client, customerName="Alice Cooper", status="completed")

    body = client.get("/api/orders", params={"search": "alice"}).json()
    assert body["total"] == 2

    body = client.get("/api/orders", params={"orderType": "phone"}).json()
    assert [o["customerName"] for o in body["data"]] == ["Alice"]

    body = client.get("/api/orders", params={"action": "shipped"}).json()
    assert body["total"] == 1

    body = client.get("/api/orders", params={"status": "completed"}).json()
    assert [o["customerName"] for o in body["data"]] == ["Alice Cooper"]


def test_list_orders_pagination(client):
    for i in range(12):
        _create_order(client, customerName=f"Buyer {i:02d}", orderTotal=float(i))

    body = client.get(
        "/api/orders",
        params={"page": 2, "limit": 5, "sortBy": "orderTotal", "sortOrder": "asc"},
    ).json()
    assert body["count"] == 5
    assert body["total"] == 12
    assert body["pages"] == 3
    assert [o["orderTotal"] for o in body["data"]] == [5.0, 6.0, 7.0, 8.0, 9.0]


def test_update_order(client):
    created = _create_order(client).json()["data"]

    resp = client.put(f"/api/orders/{created['id']}", json={"action": "delivered", "status": "completed"})
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["action"] == "delivered"
    assert data["status"] == "completed"
    assert data["trackingId"] == created["trackingId"]
    assert data["orderTotal"] == created["orderTotal"]


def test_update_order_tracking_id_conflict(client):
    _create_order(client, trackingId="ORD-TAKEN")
    other = _create_order(client).json()["data"]

    resp = client.put(f"/api/orders/{other['id']}", json={"trackingId": "ord-taken"})
    assert resp.status_code == 400
    assert resp.json()["message"] == "Another order with this tracking ID already exists"


def test_delete_order(client, mongo_db):
    created = _create_order(client).json()["data"]

    resp = client.delete(f"/api/orders/{created['id']}")
    assert resp.status_code == 200
    assert resp.json() == {"success": True, "message": "Order deleted successfully"}
    assert mongo_db["order"].count_documents({}) == 0

    resp = client.delete(f"/api/orders/{created['id']}")
    assert resp.status_code == 404


def test_create_duplicate_tracking_id_written_concurrently(client, mongo_db, monkeypatch):
    def insert_first(database, collection_name, data, now):
        database[collection_name].insert_one({"customerName": "Concurrent", "trackingId": data["trackingId"]})
        return create_document(database, collection_name, data, now)

    monkeypatch.setattr(main, "create_document", insert_first)

    resp = _create_order(client, trackingId="ORD-RACE")
    assert resp.status_code == 400
    assert resp.json() == {"success": False, "message": "Order with this tracking ID already exists"}
    assert mongo_db["order"].count_documents({}) == 1


def test_update_duplicate_tracking_id_written_concurrently(client, mongo_db, monkeypatch):
    created = _create_order(client, trackingId="ORD-MINE").json()["data"]

    def insert_first(collection, object_id, changes, now):
        collection.insert_one({"customerName": "Concurrent", "trackingId": changes["trackingId"]})
        return update_document(collection, object_id, changes, now)

    monkeypatch.setattr(main, "update_document", insert_first)

    resp = client.put(f"/api/orders/{created['id']}", json={"trackingId": "ORD-RACE"})
    assert resp.status_code == 400
    assert resp.json() == {"success": False, "message": "Tracking ID already exists"}
    assert mongo_db["order"].find_one({"customerName": "Jane Smith"})["trackingId"] == "ORD-MINE"
