"""Transfer workflow: commands and handler.

Creation pre-checks source availability. Approval reserves every debited
item's quantity at its source record, and cancellation (or cancelling a single
item) releases those reservations. In each case the TransferOrder and the
touched InventoryRecords are added in the same handler, so they commit in one
unit of work or not at all.

Completion is driven item by item from ``TransferOrchestrator.complete``; the
item-outcome commands here only record what the ledger writes achieved.
"""

import json
from collections import defaultdict

from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Identifier, Integer, String, Text
from protean.utils.globals import current_domain

from warehousing.domain import warehousing
from warehousing.shared.errors import insufficient
from warehousing.stock.inventory_record import InventoryRecord
from warehousing.transfer.transfer_order import TransferOrder, TransferType


@warehousing.command(part_of="TransferOrder")
class CreateTransfer:
    transfer_number = String(required=True, max_length=30)
    transfer_type = String(required=True, max_length=30)
    source = Text()  # JSON TransferEndpoint
    destination = Text()  # JSON TransferEndpoint
    items = Text(required=True)  # JSON list of line items
    priority = String(max_length=10)
    requested_by = String(max_length=100)
    expected_delivery = DateTime()
    shipping = Text()  # JSON ShippingInfo
    notes = Text()


@warehousing.command(part_of="TransferOrder")
class ApproveTransfer:
    transfer_id = Identifier(required=True)
    approved_by = String(required=True, max_length=100)


@warehousing.command(part_of="TransferOrder")
class StartTransfer:
    transfer_id = Identifier(required=True)
    assigned_to = String(max_length=100)


@warehousing.command(part_of="TransferOrder")
class RecordTransferItemReceived:
    transfer_id = Identifier(required=True)
    position = Integer(min_value=0, default=0)
    source_record_id = Identifier()
    destination_record_id = Identifier()
    source_entry_number = String(max_length=30)
    destination_entry_number = String(max_length=30)


@warehousing.command(part_of="TransferOrder")
class RecordTransferItemFailed:
    transfer_id = Identifier(required=True)
    position = Integer(min_value=0, default=0)
    reason = String(required=True, max_length=500)
    error_kind = String(required=True, max_length=50)
    reservation_consumed = Boolean(default=False)
    compensation_entry_number = String(max_length=30)


@warehousing.command(part_of="TransferOrder")
class FinalizeTransferCompletion:
    transfer_id = Identifier(required=True)


@warehousing.command(part_of="TransferOrder")
class CancelTransfer:
    transfer_id = Identifier(required=True)
    reason = String(required=True, max_length=500)
    cancelled_by = String(max_length=100)


@warehousing.command(part_of="TransferOrder")
class UpdateTransferItem:
    transfer_id = Identifier(required=True)
    index = Integer(required=True)
    requested_quantity = Integer()
    transferred_quantity = Integer()
    status = String(max_length=20)
    notes = String(max_length=500)
    updated_by = String(max_length=100)


def _json(raw):
    if not raw:
        return None
    return json.loads(raw) if isinstance(raw, str) else raw


def validate_endpoints(transfer_type: str, source: dict | None, destination: dict | None) -> None:
    """Check that the endpoints a transfer type needs are present and coherent."""
    try:
        kind = TransferType(transfer_type)
    except ValueError as exc:
        raise ValidationError({"transfer_type": [f"Unknown transfer type: {transfer_type}"]}) from exc

    source = source or {}
    destination = destination or {}
    if kind in (TransferType.INTERNAL, TransferType.WAREHOUSE_TO_WAREHOUSE, TransferType.OUTBOUND):
        if not source.get("warehouse_id"):
            raise ValidationError({"source": ["A source warehouse is required for this transfer type"]})
    if kind in (TransferType.INTERNAL, TransferType.WAREHOUSE_TO_WAREHOUSE, TransferType.INBOUND):
        if not destination.get("warehouse_id"):
            raise ValidationError({"destination": ["A destination warehouse is required for this transfer type"]})

    if kind == TransferType.INTERNAL:
        if str(source["warehouse_id"]) != str(destination["warehouse_id"]):
            raise ValidationError({"destination": ["An internal transfer stays within one warehouse"]})
        if (source.get("location_id") or None) == (destination.get("location_id") or None):
            raise ValidationError({"destination": ["Source and destination locations must differ"]})
    if kind == TransferType.WAREHOUSE_TO_WAREHOUSE and str(source["warehouse_id"]) == str(
        destination["warehouse_id"]
    ):
        raise ValidationError({"destination": ["Source and destination warehouses must differ"]})


def source_record_for(order_source, item) -> InventoryRecord | None:
    """The InventoryRecord an item is debited from, if it exists."""
    repo = current_domain.repository_for(InventoryRecord)
    if item.source_record_id:
        return repo.get(item.source_record_id)
    return repo.find_by_key(order_source.warehouse_id, order_source.location_id, item.sku, item.batch_number)


@warehousing.command_handler(part_of=TransferOrder)
class TransferWorkflowHandler:
    @handle(CreateTransfer)
    def create_transfer(self, command):
        source = _json(command.source)
        destination = _json(command.destination)
        items = _json(command.items) or []
        validate_endpoints(command.transfer_type, source, destination)

        if TransferType(command.transfer_type) in (
            TransferType.INTERNAL,
            TransferType.WAREHOUSE_TO_WAREHOUSE,
            TransferType.OUTBOUND,
        ):
            self._check_source_availability(source, items)

        order = TransferOrder.create(
            transfer_number=command.transfer_number,
            transfer_type=command.transfer_type,
            items_data=items,
            source=source,
            destination=destination,
            priority=command.priority,
            requested_by=command.requested_by,
            expected_delivery=command.expected_delivery,
            shipping=_json(command.shipping),
            notes=command.notes,
        )
        current_domain.repository_for(TransferOrder).add(order)
        return str(order.id)

    def _check_source_availability(self, source: dict, items: list[dict]) -> None:
        """Every item must be covered by the source record's sellable quantity.

        Items sharing a source record are summed; a missing record has nothing
        available. Product details missing from an item are filled in from its
        source record.
        """
        repo = current_domain.repository_for(InventoryRecord)
        requested = defaultdict(int)
        records = {}
        for item in items:
            key = (item["sku"].strip().upper(), item.get("batch_number") or "")
            requested[key] += int(item.get("requested_quantity") or 0)
            if key not in records:
                records[key] = repo.find_by_key(
                    source["warehouse_id"], source.get("location_id"), item["sku"], item.get("batch_number")
                )
            record = records[key]
            if record is not None:
                for field, value in (
                    ("product_name", record.product_name),
                    ("unit", record.unit),
                    ("unit_cost", record.unit_cost),
                    ("source_record_id", str(record.id)),
                ):
                    if item.get(field) is None:
                        item[field] = value

        for (sku, batch_number), quantity in requested.items():
            record = records[(sku, batch_number)]
            available = record.available_for_sale if record is not None else 0
            if available < quantity:
                raise insufficient(f"items.{sku}", quantity, available)

    @handle(ApproveTransfer)
    def approve_transfer(self, command):
        order_repo = current_domain.repository_for(TransferOrder)
        record_repo = current_domain.repository_for(InventoryRecord)
        order = order_repo.get(command.transfer_id)
        order.assert_can_approve()

        # Lines sharing a source record are reserved together, the same way
        # creation checked them.
        reservations = {}
        records = {}
        totals = defaultdict(int)
        if order.debits_source:
            for item in order.items_to_complete():
                record = source_record_for(order.source, item)
                if record is None:
                    raise insufficient(f"items.{item.sku}", item.requested_quantity, 0)
                record = records.setdefault(str(record.id), record)
                totals[str(record.id)] += item.requested_quantity
                reservations[item.position] = (str(record.id), item.requested_quantity)

        for record_id, quantity in totals.items():
            records[record_id].reserve(quantity, reference=order.transfer_number, reserved_by=command.approved_by)

        order.approve(command.approved_by, reservations=reservations)
        for record in records.values():
            record_repo.add(record)
        order_repo.add(order)

    @handle(StartTransfer)
    def start_transfer(self, command):
        repo = current_domain.repository_for(TransferOrder)
        order = repo.get(command.transfer_id)
        order.start(command.assigned_to)
        repo.add(order)

    @handle(RecordTransferItemReceived)
    def record_item_received(self, command):
        repo = current_domain.repository_for(TransferOrder)
        order = repo.get(command.transfer_id)
        order.mark_item_received(
            command.position,
            source_record_id=command.source_record_id,
            destination_record_id=command.destination_record_id,
            source_entry_number=command.source_entry_number,
            destination_entry_number=command.destination_entry_number,
        )
        repo.add(order)

    @handle(RecordTransferItemFailed)
    def record_item_failed(self, command):
        repo = current_domain.repository_for(TransferOrder)
        order = repo.get(command.transfer_id)
        order.mark_item_failed(
            command.position,
            command.reason,
            command.error_kind,
            reservation_consumed=bool(command.reservation_consumed),
            compensation_entry_number=command.compensation_entry_number,
        )
        repo.add(order)

    @handle(FinalizeTransferCompletion)
    def finalize_completion(self, command):
        repo = current_domain.repository_for(TransferOrder)
        order = repo.get(command.transfer_id)
        status = order.finish_completion()
        repo.add(order)
        return status

    @handle(CancelTransfer)
    def cancel_transfer(self, command):
        order_repo = current_domain.repository_for(TransferOrder)
        order = order_repo.get(command.transfer_id)
        to_release = order.cancel(command.reason)
        self._release(order, to_release, command.cancelled_by)
        order_repo.add(order)
        return sum(quantity for _, quantity in to_release)

    @handle(UpdateTransferItem)
    def update_transfer_item(self, command):
        order_repo = current_domain.repository_for(TransferOrder)
        order = order_repo.get(command.transfer_id)
        to_release = order.update_item(
            command.index,
            requested_quantity=command.requested_quantity,
            transferred_quantity=command.transferred_quantity,
            status=command.status,
            notes=command.notes,
        )
        if to_release:
            self._release(order, [to_release], command.updated_by)
        order_repo.add(order)

    def _release(self, order, reservations, released_by) -> None:
        record_repo = current_domain.repository_for(InventoryRecord)
        totals = defaultdict(int)
        for record_id, quantity in reservations:
            totals[record_id] += quantity
        for record_id, quantity in totals.items():
            record = record_repo.get(record_id)
            record.release_reservation(quantity, reference=order.transfer_number, released_by=released_by)
            record_repo.add(record)
