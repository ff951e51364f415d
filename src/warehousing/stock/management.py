"""Inventory record administration: commands and handler."""

import json

from protean import handle
from protean.fields import Float, Identifier, Integer, String, Text
from protean.utils.globals import current_domain

from warehousing.domain import logger, warehousing
from warehousing.ledger.entry import LedgerEntry, TransactionType, post_entry
from warehousing.shared.errors import ConflictError
from warehousing.stock.inventory_record import InventoryRecord


@warehousing.command(part_of="InventoryRecord")
class CreateInventoryRecord:
    """Open a stock record; any initial quantity is booked as its first receipt."""

    warehouse_id = Identifier(required=True)
    location_id = Identifier()
    sku = String(required=True, max_length=50)
    batch_number = String(max_length=50)
    product_name = String(required=True, max_length=200)
    category = String(max_length=100)
    brand = String(max_length=100)
    batch = Text()  # JSON: manufacturing_date, expiry_date, supplier
    unit = String(max_length=20)
    unit_cost = Float(min_value=0.0)
    currency = String(max_length=3)
    thresholds = Text()  # JSON: reorder_point, reorder_quantity, min_quantity, max_quantity
    status = String(max_length=20)
    notes = Text()
    initial_quantity = Integer(min_value=0, default=0)
    transaction_number = String(max_length=30)
    created_by = String(max_length=100)


@warehousing.command(part_of="InventoryRecord")
class ChangeInventoryStatus:
    inventory_record_id = Identifier(required=True)
    status = String(required=True, max_length=20)
    reason = String(max_length=500)
    changed_by = String(max_length=100)


@warehousing.command(part_of="InventoryRecord")
class UpdateThresholds:
    inventory_record_id = Identifier(required=True)
    reorder_point = Integer(min_value=0)
    reorder_quantity = Integer(min_value=0)
    min_quantity = Integer(min_value=0)
    max_quantity = Integer(min_value=0)


@warehousing.command(part_of="InventoryRecord")
class RemoveInventoryRecord:
    inventory_record_id = Identifier(required=True)


def _json(raw):
    if not raw:
        return None
    return json.loads(raw) if isinstance(raw, str) else raw


@warehousing.command_handler(part_of=InventoryRecord)
class InventoryManagementHandler:
    @handle(CreateInventoryRecord)
    def create_inventory_record(self, command):
        repo = current_domain.repository_for(InventoryRecord)
        existing = repo.find_by_key(command.warehouse_id, command.location_id, command.sku, command.batch_number)
        if existing is not None:
            raise ConflictError(
                {"sku": [f"Inventory for {existing.sku} already exists at this location and batch ({existing.id})"]}
            )

        record = InventoryRecord.open(
            warehouse_id=command.warehouse_id,
            location_id=command.location_id,
            sku=command.sku,
            batch_number=command.batch_number,
            product_name=command.product_name,
            category=command.category,
            brand=command.brand,
            batch=_json(command.batch),
            unit=command.unit,
            unit_cost=command.unit_cost or 0.0,
            currency=command.currency,
            thresholds=_json(command.thresholds),
            status=command.status,
            notes=command.notes,
        )

        if command.initial_quantity:
            entry = post_entry(
                record,
                TransactionType.INBOUND,
                command.initial_quantity,
                transaction_number=command.transaction_number,
                reason="Initial stock",
                created_by=command.created_by,
                details={"reference_type": "OTHER"},
            )
            current_domain.repository_for(LedgerEntry).add(entry)

        repo.add(record)
        return str(record.id)

    @handle(ChangeInventoryStatus)
    def change_status(self, command):
        repo = current_domain.repository_for(InventoryRecord)
        record = repo.get(command.inventory_record_id)
        record.change_status(command.status, reason=command.reason, changed_by=command.changed_by)
        repo.add(record)

    @handle(UpdateThresholds)
    def update_thresholds(self, command):
        repo = current_domain.repository_for(InventoryRecord)
        record = repo.get(command.inventory_record_id)
        record.update_thresholds(
            reorder_point=command.reorder_point,
            reorder_quantity=command.reorder_quantity,
            min_quantity=command.min_quantity,
            max_quantity=command.max_quantity,
        )
        repo.add(record)

    @handle(RemoveInventoryRecord)
    def remove_inventory_record(self, command):
        repo = current_domain.repository_for(InventoryRecord)
        record = repo.get(command.inventory_record_id)
        record.ensure_removable()
        repo.remove(record)
        logger.info("inventory_record_removed", record_id=str(record.id), sku=record.sku)
