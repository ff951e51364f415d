"""Integration tests for the inventory and inventory-transaction endpoints via TestClient."""

from protean import current_domain
from warehousing.stock.inventory_record import InventoryRecord


def _assert_error(response, status_code, kind):
    assert response.status_code == status_code, response.text
    body = response.json()
    assert body["success"] is False
    assert body["data"] is None
    assert body["error"]["kind"] == kind
    return body["error"]["details"]


def _create(client, warehouse, **overrides):
    """Helper: POST /inventory and return the record view."""
    payload = {
        "warehouse_id": warehouse["id"],
        "location_id": warehouse.get("location_a"),
        "sku": "SKU-777",
        "product_name": "Pallet wrap",
        "unit_cost": 3.0,
        "initial_quantity": 20,
        "thresholds": {"reorder_point": 5},
    }
    payload.update(overrides)
    response = client.post("/inventory", json=payload)
    assert response.status_code == 201, response.text
    return response.json()["data"]


class TestCreateInventoryEndpoint:
    def test_create_returns_envelope(self, client, warehouse):
        response = client.post(
            "/inventory",
            json={
                "warehouse_id": warehouse["id"],
                "location_id": warehouse["location_a"],
                "sku": "sku-778",
                "product_name": "Tape",
                "initial_quantity": 4,
            },
        )
        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["error"] is None
        assert body["data"]["sku"] == "SKU-778"
        assert body["data"]["quantity"]["available"] == 4
        assert body["data"]["total_quantity"] == 4

        stored = current_domain.repository_for(InventoryRecord).get(body["data"]["id"])
        assert stored.available == 4

    def test_derived_values_in_view(self, client, warehouse):
        data = _create(client, warehouse, initial_quantity=5)
        assert data["available_for_sale"] == 5
        assert data["total_value"] == 15.0
        assert data["stock_status"] == "low"
        assert data["is_expired"] is False

    def test_duplicate_key_conflicts(self, client, warehouse):
        _create(client, warehouse)
        response = client.post(
            "/inventory",
            json={
                "warehouse_id": warehouse["id"],
                "location_id": warehouse["location_a"],
                "sku": "SKU-777",
                "product_name": "Pallet wrap",
            },
        )
        _assert_error(response, 409, "Conflict")

    def test_unknown_warehouse(self, client):
        response = client.post("/inventory", json={"warehouse_id": "nowhere", "sku": "S-1", "product_name": "X"})
        _assert_error(response, 404, "NotFound")

    def test_request_validation_is_field_keyed(self, client, warehouse):
        response = client.post(
            "/inventory",
            json={"warehouse_id": warehouse["id"], "sku": "S-1", "product_name": "X", "initial_quantity": -1},
        )
        details = _assert_error(response, 400, "ValidationError")
        assert "initial_quantity" in details


class TestReadInventoryEndpoints:
    def test_get_and_missing(self, client, warehouse):
        data = _create(client, warehouse)
        response = client.get(f"/inventory/{data['id']}")
        assert response.status_code == 200
        assert response.json()["data"]["product_name"] == "Pallet wrap"

        _assert_error(client.get("/inventory/missing"), 404, "NotFound")

    def test_list_with_filters(self, client, warehouse, second_warehouse):
        _create(client, warehouse)
        _create(client, second_warehouse, location_id=second_warehouse["location"])
        assert len(client.get("/inventory").json()["data"]) == 2
        response = client.get("/inventory", params={"warehouse_id": second_warehouse["id"]})
        assert len(response.json()["data"]) == 1

    def test_low_stock(self, client, warehouse):
        low = _create(client, warehouse, sku="SKU-LOW", initial_quantity=2)
        _create(client, warehouse, sku="SKU-FULL", initial_quantity=200)
        data = client.get("/inventory/low-stock").json()["data"]
        assert [r["id"] for r in data] == [low["id"]]

    def test_summary(self, client, warehouse):
        _create(client, warehouse)
        data = client.get(f"/inventory/summary/{warehouse['id']}").json()["data"]
        assert data["total_items"] == 1
        assert data["total_quantity"] == 20
        assert data["total_value"] == 60.0

    def test_summary_unknown_warehouse(self, client):
        _assert_error(client.get("/inventory/summary/missing"), 404, "NotFound")


class TestStockMovementEndpoints:
    def test_adjust(self, client, warehouse):
        record = _create(client, warehouse)
        response = client.post(
            f"/inventory/{record['id']}/adjust", json={"delta": -18, "reason": "Damaged in aisle", "actor": "lead"}
        )
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["inventory"]["quantity"]["available"] == 2
        assert data["inventory"]["stock_status"] == "low"
        assert data["transaction"]["transaction_type"] == "ADJUSTMENT"
        assert data["transaction"]["direction"] == "OUT"

    def test_reserve_and_release(self, client, warehouse):
        record = _create(client, warehouse)
        response = client.post(f"/inventory/{record['id']}/reserve", json={"quantity": 8, "reference": "SO-7"})
        assert response.status_code == 200
        quantity = response.json()["data"]["quantity"]
        assert (quantity["available"], quantity["reserved"]) == (12, 8)

        response = client.post(f"/inventory/{record['id']}/release-reservation", json={"quantity": 8})
        quantity = response.json()["data"]["quantity"]
        assert (quantity["available"], quantity["reserved"]) == (20, 0)

    def test_over_reserve_is_unprocessable(self, client, warehouse):
        record = _create(client, warehouse)
        response = client.post(f"/inventory/{record['id']}/reserve", json={"quantity": 21})
        details = _assert_error(response, 422, "InsufficientQuantity")
        assert "Available: 20" in details["quantity"][0]

    def test_cycle_count_reports_variance(self, client, warehouse):
        record = _create(client, warehouse)
        response = client.post(f"/inventory/{record['id']}/cycle-count", json={"counted_quantity": 17})
        data = response.json()["data"]
        assert data["variance"] == -3
        assert data["inventory"]["quantity"]["available"] == 17
        assert data["transaction"]["transaction_type"] == "ADJUSTMENT"

    def test_status_and_thresholds(self, client, warehouse):
        record = _create(client, warehouse)
        response = client.put(f"/inventory/{record['id']}/status", json={"status": "on_hold", "reason": "Audit"})
        assert response.json()["data"]["status"] == "on_hold"

        response = client.put(f"/inventory/{record['id']}/thresholds", json={"reorder_point": 25})
        assert response.json()["data"]["stock_status"] == "low"

    def test_delete_refused_while_stock_held(self, client, warehouse):
        record = _create(client, warehouse)
        _assert_error(client.delete(f"/inventory/{record['id']}"), 409, "Conflict")


class TestTransactionEndpoints:
    def test_inbound_opens_record(self, client, warehouse):
        response = client.post(
            "/inventory-transactions/inbound",
            json={
                "warehouse_id": warehouse["id"],
                "location_id": warehouse["location_b"],
                "sku": "SKU-NEW",
                "product_name": "Shrink film",
                "quantity": 12,
                "reason": "Purchase receipt",
                "reference": {"reference_type": "PURCHASE_ORDER", "reference_number": "PO-11"},
            },
        )
        assert response.status_code == 201, response.text
        data = response.json()["data"]
        assert data["transaction_number"].startswith("IN")
        quantity = data["quantity"]
        assert (quantity["previous"], quantity["change"], quantity["current"]) == (0, 12, 12)
        assert data["reference"]["reference_number"] == "PO-11"
        assert data["direction"] == "IN"

    def test_outbound_and_lookup_by_number(self, client, stocked_record):
        response = client.post(
            "/inventory-transactions/outbound",
            json={"inventory_record_id": str(stocked_record.id), "quantity": 3, "reason": "Sales order"},
        )
        assert response.status_code == 201
        number = response.json()["data"]["transaction_number"]

        response = client.get(f"/inventory-transactions/number/{number}")
        assert response.status_code == 200
        assert response.json()["data"]["quantity"]["current"] == 7

        _assert_error(client.get("/inventory-transactions/number/OUT199901010001"), 404, "NotFound")

    def test_outbound_insufficient(self, client, stocked_record):
        response = client.post(
            "/inventory-transactions/outbound",
            json={"inventory_record_id": str(stocked_record.id), "quantity": 11, "reason": "Sales order"},
        )
        _assert_error(response, 422, "InsufficientQuantity")

    def test_adjustment_to_same_quantity_rejected(self, client, stocked_record):
        response = client.post(
            "/inventory-transactions/adjustment",
            json={"inventory_record_id": str(stocked_record.id), "new_quantity": 10, "reason": "Recount"},
        )
        _assert_error(response, 400, "ValidationError")

    def test_cancel_and_cancel_again(self, client, stocked_record):
        response = client.post(
            "/inventory-transactions/outbound",
            json={"inventory_record_id": str(stocked_record.id), "quantity": 3, "reason": "Sales order"},
        )
        entry_id = response.json()["data"]["id"]

        response = client.put(f"/inventory-transactions/{entry_id}/cancel", json={"reason": "Customer refused"})
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["status"] == "CANCELLED"
        assert data["compensated_by_entry_id"]

        response = client.put(f"/inventory-transactions/{entry_id}/cancel", json={"reason": "Again"})
        _assert_error(response, 409, "InvalidStateTransition")

    def test_summary(self, client, stocked_record):
        client.post(
            "/inventory-transactions/outbound",
            json={"inventory_record_id": str(stocked_record.id), "quantity": 3, "reason": "Sales order"},
        )
        data = client.get("/inventory-transactions/summary").json()["data"]
        assert data["total_transactions"] == 2
        assert data["by_type"]["OUTBOUND"]["total_quantity"] == 3
