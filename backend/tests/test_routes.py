# Overview: Pytest coverage for the JSON API through the Flask test client.

"""
API Route Tests

Exercises the HTTP facade end to end, including the error-to-status mapping
and the acting-user header.
"""

from decimal import Decimal

from app.models import StockMovement
from conftest import actor_headers, stock


def post_movement(client, parish, warehouse, product, movement_type, quantity, **extra):
    payload = {
        "parish_id": parish.id,
        "warehouse_id": warehouse.id,
        "product_id": product.id,
        "type": movement_type,
        "movement_date": "2026-01-10",
        "quantity": quantity,
    }
    payload.update(extra)
    return client.post("/api/stock-movements", json=payload, headers=actor_headers())


class TestSystemRoutes:

    def test_health(self, client, db_session):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json["checks"]["database"]["status"] == "healthy"

    def test_version(self, client):
        response = client.get("/version")
        assert response.status_code == 200
        assert response.json["api_version"] == "1.0.0"
        assert response.json["environment"] in ("production", "development")


class TestMovementRoutes:

    def test_create_and_fetch_movement(self, client, db_session, parish, warehouse_a, product):
        response = post_movement(client, parish, warehouse_a, product, "in", "12.5", unit_cost="2")

        assert response.status_code == 201
        body = response.json
        assert body["quantity"] == "12.500"
        assert body["total_value"] == "25.00"
        assert body["created_by_user_id"] == 7

        fetched = client.get(f"/api/stock-movements/{body['id']}")
        assert fetched.status_code == 200
        assert fetched.json["id"] == body["id"]

    def test_missing_movement(self, client, db_session):
        response = client.get("/api/stock-movements/999")
        assert response.status_code == 404
        assert response.json["error"] == "Stock movement not found"

    def test_insufficient_stock_reports_quantities(self, client, db_session, parish, warehouse_a, product):
        post_movement(client, parish, warehouse_a, product, "in", "2")

        response = post_movement(client, parish, warehouse_a, product, "out", "5")

        assert response.status_code == 400
        assert response.json["available"] == "2.000"
        assert response.json["requested"] == "5.000"
        assert "Insufficient stock" in response.json["error"]

    def test_unknown_warehouse_is_404(self, client, db_session, parish, product):
        response = client.post("/api/stock-movements", json={
            "parish_id": parish.id,
            "warehouse_id": 999,
            "product_id": product.id,
            "type": "in",
            "movement_date": "2026-01-10",
            "quantity": "1",
        })
        assert response.status_code == 404

    def test_payload_validation(self, client, db_session, parish, warehouse_a, product):
        response = post_movement(client, parish, warehouse_a, product, "in", "1", invoice_id=4)
        assert response.status_code == 400
        assert "Field not allowed: invoice_id" in response.json["error"]

        response = post_movement(client, parish, warehouse_a, product, "sideways", "1")
        assert response.status_code == 400

        response = client.post("/api/stock-movements", json={"parish_id": parish.id})
        assert response.status_code == 400
        assert "Missing required fields" in response.json["error"]

    def test_bad_actor_header(self, client, db_session):
        response = client.get("/api/stock-movements", headers={"X-User-Id": "abc"})
        assert response.status_code == 400

    def test_list_movements(self, client, db_session, parish, warehouse_a, product):
        for qty in ("1", "2", "3"):
            post_movement(client, parish, warehouse_a, product, "in", qty)

        response = client.get(f"/api/stock-movements?warehouse_id={warehouse_a.id}&page_size=2")

        assert response.status_code == 200
        assert len(response.json["items"]) == 2
        assert response.json["pagination"]["total"] == 3

    def test_transfer_route(self, client, db_session, parish, warehouse_a, warehouse_b, product):
        post_movement(client, parish, warehouse_a, product, "in", "10")

        response = client.post("/api/stock-movements/transfer", json={
            "parish_id": parish.id,
            "warehouse_id": warehouse_a.id,
            "destination_warehouse_id": warehouse_b.id,
            "product_id": product.id,
            "movement_date": "2026-01-11",
            "quantity": "4",
        }, headers=actor_headers())

        assert response.status_code == 201
        body = response.json
        assert body["out_movement"]["warehouse_id"] == warehouse_a.id
        assert body["in_movement"]["warehouse_id"] == warehouse_b.id
        assert stock(warehouse_b, product) == Decimal("4")

        again = client.get(f"/api/stock-movements/transfer/{body['transfer_group_id']}")
        assert again.status_code == 200

    def test_transfer_to_same_warehouse(self, client, db_session, parish, warehouse_a, product):
        response = client.post("/api/stock-movements/transfer", json={
            "parish_id": parish.id,
            "warehouse_id": warehouse_a.id,
            "destination_warehouse_id": warehouse_a.id,
            "product_id": product.id,
            "movement_date": "2026-01-11",
            "quantity": "1",
        })
        assert response.status_code == 400

    def test_transfer_between_unknown_warehouses_is_404(self, client, db_session, parish, product):
        response = client.post("/api/stock-movements/transfer", json={
            "parish_id": parish.id,
            "warehouse_id": 9999,
            "destination_warehouse_id": 9999,
            "product_id": product.id,
            "movement_date": "2026-01-11",
            "quantity": "1",
        })
        assert response.status_code == 404
        assert response.json["error"] == "Warehouse not found"

    def test_transfer_to_unknown_destination_is_404(self, client, db_session, parish, warehouse_a, product):
        response = client.post("/api/stock-movements/transfer", json={
            "parish_id": parish.id,
            "warehouse_id": warehouse_a.id,
            "destination_warehouse_id": 9999,
            "product_id": product.id,
            "movement_date": "2026-01-11",
            "quantity": "1",
        })
        assert response.status_code == 404
        assert response.json["error"] == "Destination warehouse not found"

    def test_stock_levels(self, client, db_session, parish, warehouse_a, product):
        post_movement(client, parish, warehouse_a, product, "in", "3")

        response = client.get(f"/api/stock-levels?parish_id={parish.id}&low_stock=true")
        assert response.status_code == 200
        assert response.json["count"] == 1
        assert response.json["items"][0]["quantity"] == "3.000"

        summary = client.get(f"/api/stock-levels/summary?warehouse_id={warehouse_a.id}&product_id={product.id}")
        assert summary.status_code == 200
        assert summary.json["quantity"] == "3.000"

        assert client.get("/api/stock-levels/summary").status_code == 400


class TestInvoiceRoutes:

    def test_invoice_lifecycle(self, client, db_session, parish, warehouse_a, product):
        response = client.post("/api/invoices", json={
            "parish_id": parish.id,
            "invoice_number": "R-100",
            "type": "received",
            "date": "2026-02-01",
            "items": [{
                "description": "Candles",
                "quantity": "20",
                "unit_price": "1.50",
                "product_id": product.id,
                "warehouse_id": warehouse_a.id,
            }],
        }, headers=actor_headers())

        assert response.status_code == 201
        assert response.json["warnings"] == []
        invoice_id = response.json["invoice"]["id"]
        assert stock(warehouse_a, product) == Decimal("20")

        response = client.put(f"/api/invoices/{invoice_id}", json={"items": [{
            "description": "Candles",
            "quantity": "15",
            "product_id": product.id,
            "warehouse_id": warehouse_a.id,
        }]})
        assert response.status_code == 200
        assert stock(warehouse_a, product) == Decimal("15")

        response = client.post(f"/api/invoices/{invoice_id}/cancel")
        assert response.status_code == 200
        assert response.json["invoice"]["status"] == "cancelled"
        assert stock(warehouse_a, product) == Decimal("0")

        response = client.delete(f"/api/invoices/{invoice_id}")
        assert response.status_code == 200
        assert client.get(f"/api/invoices/{invoice_id}").status_code == 404

    def test_invoice_missing_field(self, client, db_session, parish):
        response = client.post("/api/invoices", json={"parish_id": parish.id})
        assert response.status_code == 400
        assert "Missing required field" in response.json["error"]

    def test_invoice_update_rejects_unknown_fields(self, client, db_session):
        response = client.put("/api/invoices/1", json={"total": 5})
        assert response.status_code == 400


class TestInventorySessionRoutes:

    def test_session_workflow(self, client, db_session, parish, warehouse_a, product):
        post_movement(client, parish, warehouse_a, product, "in", "10")

        response = client.post("/api/inventory-sessions", json={
            "parish_id": parish.id,
            "warehouse_id": warehouse_a.id,
            "date": "2026-06-30",
        }, headers=actor_headers(11))
        assert response.status_code == 201
        session_id = response.json["id"]

        response = client.post(f"/api/inventory-sessions/{session_id}/load-book")
        assert response.status_code == 201
        item_id = response.json["items"][0]["id"]

        response = client.put(
            f"/api/inventory-sessions/{session_id}/items/{item_id}",
            json={"physical_quantity": "7"},
        )
        assert response.status_code == 200
        assert response.json["physical_quantity"] == "7.000"

        response = client.post(f"/api/inventory-sessions/{session_id}/complete", headers=actor_headers(11))
        assert response.status_code == 200
        assert response.json["adjustments_created"] == 1
        assert response.json["session"]["completed_by_user_id"] == 11
        assert stock(warehouse_a, product) == Decimal("7")

        response = client.post(f"/api/inventory-sessions/{session_id}/complete")
        assert response.status_code == 400

        response = client.delete(f"/api/inventory-sessions/{session_id}")
        assert response.status_code == 400

        summary = client.get(f"/api/inventory-sessions/{session_id}")
        assert summary.status_code == 200
        assert summary.json["status"] == "completed"

    def test_item_of_other_session_is_404(self, client, db_session, parish, warehouse_a, product):
        first = client.post("/api/inventory-sessions", json={
            "parish_id": parish.id, "warehouse_id": warehouse_a.id, "date": "2026-06-30",
        }).json["id"]
        second = client.post("/api/inventory-sessions", json={
            "parish_id": parish.id, "warehouse_id": warehouse_a.id, "date": "2026-06-30",
        }).json["id"]
        item = client.post(f"/api/inventory-sessions/{first}/items", json={
            "item_type": "product", "product_id": product.id, "book_quantity": "1",
        }).json

        response = client.put(
            f"/api/inventory-sessions/{second}/items/{item['id']}",
            json={"physical_quantity": "1"},
        )
        assert response.status_code == 404

    def test_missing_session(self, client, db_session):
        assert client.post("/api/inventory-sessions/999/complete").status_code == 404
        assert db_session.query(StockMovement).count() == 0
