"""Application tests for the TransferOrchestrator lifecycle and completion saga."""

from datetime import UTC, datetime, timedelta

import pytest
from protean import current_domain
from protean.exceptions import ObjectNotFoundError, ValidationError
from warehousing.ledger.entry import EntryStatus, TransactionType
from warehousing.shared.dispatch import dispatch
from warehousing.shared.errors import InsufficientQuantityError, InvalidStateTransitionError
from warehousing.stock.inventory_record import InventoryRecord
from warehousing.transfer.transfer_order import TransferItemStatus, TransferOrder, TransferStatus
from warehousing.warehouse.management import DeactivateWarehouse, ReactivateWarehouse


def _internal(services, warehouse, quantity=10, sku="SKU-001", **overrides):
    defaults = {
        "transfer_type": "internal",
        "items": [{"sku": sku, "requested_quantity": quantity}],
        "source": {"warehouse_id": warehouse["id"], "location_id": warehouse["location_a"]},
        "destination": {"warehouse_id": warehouse["id"], "location_id": warehouse["location_b"]},
        "requested_by": "planner",
    }
    defaults.update(overrides)
    return services.transfers.create(**defaults)


def _to_second_warehouse(services, warehouse, second_warehouse, quantity=4):
    return services.transfers.create(
        transfer_type="warehouse_to_warehouse",
        items=[{"sku": "SKU-001", "requested_quantity": quantity}],
        source={"warehouse_id": warehouse["id"], "location_id": warehouse["location_a"]},
        destination={"warehouse_id": second_warehouse["id"], "location_id": second_warehouse["location"]},
        requested_by="planner",
    )


def _run_to_in_progress(services, order):
    services.transfers.approve(str(order.id), approved_by="manager")
    return services.transfers.start(str(order.id), assigned_to="picker")


def _record_at(warehouse_id, location_id, sku="SKU-001"):
    return current_domain.repository_for(InventoryRecord).find_by_key(warehouse_id, location_id, sku)


class TestCreateTransfer:
    def test_create_fills_item_details_from_source(self, services, warehouse, stocked_record):
        order = _internal(services, warehouse)
        item = order.item(0)
        assert order.status == TransferStatus.DRAFT.value
        assert order.transfer_number.startswith("TRF")
        assert item.product_name == "Widget"
        assert item.unit_cost == 2.5
        assert item.source_record_id == str(stocked_record.id)

    def test_insufficient_source_persists_nothing(self, services, warehouse):
        services.inventory.create(
            warehouse_id=warehouse["id"],
            location_id=warehouse["location_a"],
            sku="SKU-004",
            product_name="Scarce",
            initial_quantity=4,
        )
        with pytest.raises(InsufficientQuantityError):
            _internal(services, warehouse, quantity=10, sku="SKU-004")
        assert current_domain.repository_for(TransferOrder).search() == []
        assert services.sequences.current_value("TRF") == 0

    def test_missing_source_record_counts_as_empty(self, services, warehouse):
        with pytest.raises(InsufficientQuantityError):
            _internal(services, warehouse, sku="SKU-NONE")

    def test_repeated_sku_lines_are_checked_together(self, services, warehouse, stocked_record):
        with pytest.raises(InsufficientQuantityError):
            _internal(
                services,
                warehouse,
                items=[{"sku": "SKU-001", "requested_quantity": 6}, {"sku": "SKU-001", "requested_quantity": 6}],
            )

    def test_internal_needs_distinct_locations(self, services, warehouse, stocked_record):
        with pytest.raises(ValidationError):
            _internal(
                services,
                warehouse,
                destination={"warehouse_id": warehouse["id"], "location_id": warehouse["location_a"]},
            )

    def test_unknown_destination_warehouse(self, services, warehouse, stocked_record):
        with pytest.raises(ObjectNotFoundError):
            services.transfers.create(
                transfer_type="warehouse_to_warehouse",
                items=[{"sku": "SKU-001", "requested_quantity": 1}],
                source={"warehouse_id": warehouse["id"], "location_id": warehouse["location_a"]},
                destination={"warehouse_id": "missing"},
            )

    def test_items_required(self, services, warehouse):
        with pytest.raises(ValidationError):
            _internal(services, warehouse, items=[])

    def test_lookup_by_number(self, services, warehouse, stocked_record):
        order = _internal(services, warehouse)
        assert services.transfers.by_number(order.transfer_number).id == order.id
        with pytest.raises(ObjectNotFoundError):
            services.transfers.by_number("TRF199901010001")


class TestApproveAndCancel:
    def test_approve_reserves_source_stock(self, services, warehouse, stocked_record):
        order = _internal(services, warehouse, quantity=6)
        order = services.transfers.approve(str(order.id), approved_by="manager")

        assert order.status == TransferStatus.APPROVED.value
        assert order.item(0).reserved_quantity == 6
        record = services.inventory.get(str(stocked_record.id))
        assert record.available == 4
        assert record.reserved == 6

    def test_failed_reservation_keeps_draft(self, services, warehouse, stocked_record):
        order = _internal(services, warehouse, quantity=10)
        services.reservations.reserve(str(stocked_record.id), 5, reference="SO-1")

        with pytest.raises(InsufficientQuantityError):
            services.transfers.approve(str(order.id), approved_by="manager")
        assert services.transfers.get(str(order.id)).status == TransferStatus.DRAFT.value
        record = services.inventory.get(str(stocked_record.id))
        assert record.available == 5
        assert record.reserved == 5

    def test_lines_sharing_a_source_record_are_reserved_together(self, services, warehouse, stocked_record):
        order = _internal(
            services,
            warehouse,
            items=[{"sku": "SKU-001", "requested_quantity": 5}, {"sku": "SKU-001", "requested_quantity": 5}],
        )
        order = services.transfers.approve(str(order.id), approved_by="manager")

        assert order.status == TransferStatus.APPROVED.value
        assert (order.item(0).reserved_quantity, order.item(1).reserved_quantity) == (5, 5)
        record = services.inventory.get(str(stocked_record.id))
        assert record.available == 0
        assert record.reserved == 10

        services.transfers.start(str(order.id), assigned_to="picker")
        order = services.transfers.complete(str(order.id), completed_by="picker")
        assert order.status == TransferStatus.COMPLETED.value
        assert _record_at(warehouse["id"], warehouse["location_b"]).available == 10
        record = services.inventory.get(str(stocked_record.id))
        assert (record.available, record.reserved) == (0, 0)

    def test_cancel_releases_reservations(self, services, warehouse, stocked_record):
        order = _internal(services, warehouse, quantity=6)
        services.transfers.approve(str(order.id), approved_by="manager")
        order = services.transfers.cancel(str(order.id), reason="Plan changed", cancelled_by="manager")

        assert order.status == TransferStatus.CANCELLED.value
        assert order.cancellation_reason == "Plan changed"
        assert order.item(0).status == TransferItemStatus.CANCELLED.value
        record = services.inventory.get(str(stocked_record.id))
        assert record.available == 10
        assert record.reserved == 0

    def test_cancelling_an_item_releases_its_reservation(self, services, warehouse, stocked_record):
        order = _internal(services, warehouse, quantity=6)
        services.transfers.approve(str(order.id), approved_by="manager")
        order = services.transfers.update_item(str(order.id), 0, updated_by="manager", status="cancelled")

        assert order.item(0).status == TransferItemStatus.CANCELLED.value
        assert services.inventory.get(str(stocked_record.id)).reserved == 0

    def test_update_item_index_out_of_range(self, services, warehouse, stocked_record):
        order = _internal(services, warehouse)
        with pytest.raises(ValidationError):
            services.transfers.update_item(str(order.id), 3, notes="Fragile")

    def test_update_item_notes(self, services, warehouse, stocked_record):
        order = _internal(services, warehouse)
        order = services.transfers.update_item(str(order.id), 0, notes="Fragile")
        assert order.item(0).notes == "Fragile"


class TestCompleteTransfer:
    def test_internal_transfer_moves_stock(self, services, warehouse, stocked_record):
        order = _internal(services, warehouse, quantity=10)
        _run_to_in_progress(services, order)
        order = services.transfers.complete(str(order.id), completed_by="picker")

        assert order.status == TransferStatus.COMPLETED.value
        assert order.completed_at is not None
        item = order.item(0)
        assert item.status == TransferItemStatus.RECEIVED.value
        assert item.transferred_quantity == 10

        source = services.inventory.get(str(stocked_record.id))
        assert source.available == 0
        assert source.reserved == 0
        destination = _record_at(warehouse["id"], warehouse["location_b"])
        assert destination.available == 10
        assert str(item.destination_record_id) == str(destination.id)

        outbound = services.ledger.for_record(str(stocked_record.id))[-1]
        assert outbound.transaction_type == TransactionType.OUTBOUND.value
        assert outbound.quantity.change == -10
        assert outbound.reference.reference_number == order.transfer_number
        inbound = services.ledger.for_record(str(destination.id))[-1]
        assert inbound.transaction_type == TransactionType.INBOUND.value
        assert inbound.quantity.change == 10

    def test_complete_draft_is_invalid(self, services, warehouse, stocked_record):
        order = _internal(services, warehouse)
        with pytest.raises(InvalidStateTransitionError):
            services.transfers.complete(str(order.id))

    def test_cancel_completed_is_invalid(self, services, warehouse, stocked_record):
        order = _internal(services, warehouse)
        _run_to_in_progress(services, order)
        services.transfers.complete(str(order.id))
        with pytest.raises(InvalidStateTransitionError):
            services.transfers.cancel(str(order.id), reason="Too late")

    def test_inbound_transfer_only_credits_destination(self, services, warehouse):
        order = services.transfers.create(
            transfer_type="inbound",
            items=[{"sku": "SKU-777", "requested_quantity": 8, "unit_cost": 3.0}],
            source={"external_name": "Acme Supplies"},
            destination={"warehouse_id": warehouse["id"], "location_id": warehouse["location_b"]},
        )
        _run_to_in_progress(services, order)
        order = services.transfers.complete(str(order.id))

        assert order.status == TransferStatus.COMPLETED.value
        record = _record_at(warehouse["id"], warehouse["location_b"], "SKU-777")
        assert record.available == 8
        assert record.unit_cost == 3.0

    def test_destination_failure_is_compensated(self, services, warehouse, second_warehouse, stocked_record):
        order = _to_second_warehouse(services, warehouse, second_warehouse, quantity=4)
        _run_to_in_progress(services, order)
        dispatch(DeactivateWarehouse(warehouse_id=second_warehouse["id"]))

        order = services.transfers.complete(str(order.id), completed_by="picker")

        assert order.status == TransferStatus.PARTIALLY_COMPLETED.value
        item = order.item(0)
        assert item.status == TransferItemStatus.FAILED.value
        assert "inactive" in item.failure_reason
        assert item.reserved_quantity == 0

        source = services.inventory.get(str(stocked_record.id))
        assert source.available == 10
        assert source.reserved == 0
        assert _record_at(second_warehouse["id"], second_warehouse["location"]) is None

        entries = services.ledger.for_record(str(stocked_record.id))
        outbound = next(e for e in entries if e.transaction_type == TransactionType.OUTBOUND.value)
        compensation = next(e for e in entries if e.transaction_type == TransactionType.TRANSFER_IN.value)
        assert outbound.status == EntryStatus.CANCELLED.value
        assert str(outbound.compensated_by_entry_id) == str(compensation.id)
        assert str(compensation.compensates_entry_id) == str(outbound.id)
        assert compensation.quantity.change == 4

    def test_partially_completed_can_be_cancelled(self, services, warehouse, second_warehouse, stocked_record):
        order = _to_second_warehouse(services, warehouse, second_warehouse)
        _run_to_in_progress(services, order)
        dispatch(DeactivateWarehouse(warehouse_id=second_warehouse["id"]))
        services.transfers.complete(str(order.id))

        order = services.transfers.cancel(str(order.id), reason="Destination closed")
        assert order.status == TransferStatus.CANCELLED.value
        assert services.inventory.get(str(stocked_record.id)).available == 10

    def test_failed_item_is_retried_on_next_complete(self, services, warehouse, second_warehouse, stocked_record):
        order = _to_second_warehouse(services, warehouse, second_warehouse, quantity=4)
        _run_to_in_progress(services, order)
        dispatch(DeactivateWarehouse(warehouse_id=second_warehouse["id"]))
        order = services.transfers.complete(str(order.id))
        assert order.status == TransferStatus.PARTIALLY_COMPLETED.value

        dispatch(ReactivateWarehouse(warehouse_id=second_warehouse["id"]))
        order = services.transfers.complete(str(order.id))

        assert order.status == TransferStatus.COMPLETED.value
        assert order.item(0).status == TransferItemStatus.RECEIVED.value
        assert order.item(0).failure_reason is None
        assert services.inventory.get(str(stocked_record.id)).available == 6
        assert _record_at(second_warehouse["id"], second_warehouse["location"]).available == 4


class TestTransferReads:
    def test_pending_sorted_by_priority(self, services, warehouse, stocked_record):
        normal = _internal(services, warehouse, quantity=1)
        urgent = _internal(services, warehouse, quantity=1, priority="urgent")
        pending = services.transfers.pending()
        assert [o.id for o in pending] == [urgent.id, normal.id]

    def test_pending_excludes_cancelled(self, services, warehouse, stocked_record):
        order = _internal(services, warehouse, quantity=1)
        services.transfers.cancel(str(order.id), reason="Not needed")
        assert services.transfers.pending() == []

    def test_overdue(self, services, warehouse, stocked_record):
        late = _internal(services, warehouse, quantity=1, expected_delivery=datetime.now(UTC) - timedelta(days=2))
        _internal(services, warehouse, quantity=1, expected_delivery=datetime.now(UTC) + timedelta(days=2))
        assert [o.id for o in services.transfers.overdue()] == [late.id]

    def test_statistics(self, services, warehouse, stocked_record):
        done = _internal(services, warehouse, quantity=2)
        _run_to_in_progress(services, done)
        services.transfers.complete(str(done.id))
        cancelled = _internal(services, warehouse, quantity=1)
        services.transfers.cancel(str(cancelled.id), reason="Duplicate")
        _internal(services, warehouse, quantity=1)

        stats = services.transfers.statistics(warehouse_id=warehouse["id"])
        assert stats["total_transfers"] == 3
        assert stats["completed_transfers"] == 1
        assert stats["cancelled_transfers"] == 1
        assert stats["pending_transfers"] == 1
        assert stats["total_items"] == 3
        assert stats["by_status"]["draft"] == 1
