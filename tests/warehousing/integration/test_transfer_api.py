"""Integration tests for Transfer API endpoints via TestClient."""

from datetime import UTC, datetime, timedelta


def _assert_error(response, status_code, kind):
    assert response.status_code == status_code, response.text
    body = response.json()
    assert body["success"] is False
    assert body["error"]["kind"] == kind
    return body["error"]["details"]


def _create_transfer(client, warehouse, quantity=6, **overrides):
    """Helper: POST /transfers for an internal move A-01 -> B-01 and return the transfer view."""
    payload = {
        "transfer_type": "internal",
        "source": {"warehouse_id": warehouse["id"], "location_id": warehouse["location_a"]},
        "destination": {"warehouse_id": warehouse["id"], "location_id": warehouse["location_b"]},
        "items": [{"sku": "SKU-001", "requested_quantity": quantity}],
        "requested_by": "planner",
    }
    payload.update(overrides)
    response = client.post("/transfers", json=payload)
    assert response.status_code == 201, response.text
    return response.json()["data"]


class TestCreateTransferEndpoint:
    def test_create(self, client, warehouse, stocked_record):
        data = _create_transfer(client, warehouse)
        assert data["status"] == "draft"
        assert data["transfer_number"].startswith("TRF")
        assert data["items"][0]["product_name"] == "Widget"
        assert data["total_requested"] == 6
        assert data["completion_percentage"] == 0

    def test_create_beyond_available(self, client, warehouse, stocked_record):
        response = client.post(
            "/transfers",
            json={
                "transfer_type": "internal",
                "source": {"warehouse_id": warehouse["id"], "location_id": warehouse["location_a"]},
                "destination": {"warehouse_id": warehouse["id"], "location_id": warehouse["location_b"]},
                "items": [{"sku": "SKU-001", "requested_quantity": 11}],
            },
        )
        details = _assert_error(response, 422, "InsufficientQuantity")
        assert "items.SKU-001" in details

    def test_empty_items_rejected(self, client, warehouse):
        response = client.post("/transfers", json={"transfer_type": "internal", "items": []})
        details = _assert_error(response, 400, "ValidationError")
        assert "items" in details


class TestTransferLifecycleEndpoints:
    def test_full_lifecycle_moves_stock(self, client, services, warehouse, stocked_record):
        transfer = _create_transfer(client, warehouse)
        transfer_id = transfer["id"]

        response = client.post(f"/transfers/{transfer_id}/approve", json={"approved_by": "manager"})
        assert response.json()["data"]["status"] == "approved"

        response = client.post(f"/transfers/{transfer_id}/start", json={"assigned_to": "picker"})
        assert response.json()["data"]["status"] == "in_progress"

        response = client.post(f"/transfers/{transfer_id}/complete")
        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Transfer completed"
        assert body["data"]["status"] == "completed"
        assert body["data"]["completion_percentage"] == 100

        source = services.inventory.get(str(stocked_record.id))
        assert (source.available, source.reserved) == (4, 0)

    def test_complete_draft_is_invalid(self, client, warehouse, stocked_record):
        transfer = _create_transfer(client, warehouse)
        response = client.post(f"/transfers/{transfer['id']}/complete", json={"completed_by": "lead"})
        _assert_error(response, 409, "InvalidStateTransition")

    def test_cancel_approved_releases_reservation(self, client, services, warehouse, stocked_record):
        transfer = _create_transfer(client, warehouse)
        client.post(f"/transfers/{transfer['id']}/approve", json={"approved_by": "manager"})

        response = client.post(f"/transfers/{transfer['id']}/cancel", json={"reason": "Plan changed"})
        assert response.json()["data"]["status"] == "cancelled"
        assert services.inventory.get(str(stocked_record.id)).reserved == 0

        response = client.post(f"/transfers/{transfer['id']}/cancel", json={"reason": "Again"})
        _assert_error(response, 409, "InvalidStateTransition")

    def test_update_item(self, client, warehouse, stocked_record):
        transfer = _create_transfer(client, warehouse)
        response = client.put(f"/transfers/{transfer['id']}/items/0", json={"requested_quantity": 3})
        assert response.json()["data"]["items"][0]["requested_quantity"] == 3

        response = client.put(f"/transfers/{transfer['id']}/items/5", json={"notes": "Fragile"})
        _assert_error(response, 400, "ValidationError")

    def test_approve_requires_approver(self, client, warehouse, stocked_record):
        transfer = _create_transfer(client, warehouse)
        response = client.post(f"/transfers/{transfer['id']}/approve", json={})
        details = _assert_error(response, 400, "ValidationError")
        assert "approved_by" in details


class TestTransferQueryEndpoints:
    def test_get_by_id_and_number(self, client, warehouse, stocked_record):
        transfer = _create_transfer(client, warehouse)
        assert client.get(f"/transfers/{transfer['id']}").json()["data"]["id"] == transfer["id"]

        response = client.get(f"/transfers/number/{transfer['transfer_number']}")
        assert response.json()["data"]["id"] == transfer["id"]

        _assert_error(client.get("/transfers/missing"), 404, "NotFound")

    def test_pending_and_overdue(self, client, warehouse, stocked_record):
        yesterday = (datetime.now(UTC) - timedelta(days=1)).isoformat()
        transfer = _create_transfer(client, warehouse, expected_delivery=yesterday)

        pending = client.get("/transfers/pending").json()["data"]
        assert [t["id"] for t in pending] == [transfer["id"]]

        overdue = client.get("/transfers/overdue").json()["data"]
        assert [t["id"] for t in overdue] == [transfer["id"]]
        assert overdue[0]["is_overdue"] is True

    def test_stats(self, client, warehouse, stocked_record):
        _create_transfer(client, warehouse, quantity=2)
        completed = _create_transfer(client, warehouse, quantity=3)
        client.post(f"/transfers/{completed['id']}/approve", json={"approved_by": "manager"})
        client.post(f"/transfers/{completed['id']}/start")
        client.post(f"/transfers/{completed['id']}/complete")

        data = client.get("/transfers/stats").json()["data"]
        assert data["total_transfers"] == 2
        assert data["pending_transfers"] == 1
        assert data["completed_transfers"] == 1
        assert data["total_items"] == 2
