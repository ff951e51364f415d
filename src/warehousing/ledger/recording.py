"""Ledger recording: commands and handler.

Each handler loads the affected InventoryRecord, posts the movement through
``post_entry`` and adds both aggregates to their repositories, so the ledger
entry and the record's new quantities commit in the same unit of work.
Transaction numbers are allocated by the caller and passed in.
"""

import json

from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Boolean, Float, Identifier, Integer, String, Text
from protean.utils.globals import current_domain

from warehousing.domain import warehousing
from warehousing.ledger.entry import (
    EntryStatus,
    LedgerEntry,
    TransactionType,
    compensation_for,
    post_entry,
)
from warehousing.stock.inventory_record import InventoryRecord


@warehousing.command(part_of="LedgerEntry")
class PostLedgerEntry:
    """Record a signed movement of one type against an existing record."""

    transaction_type = String(required=True, max_length=20)
    inventory_record_id = Identifier(required=True)
    quantity = Integer()
    transaction_number = String(required=True, max_length=30)
    reason = String(required=True, max_length=500)
    created_by = String(max_length=100)
    details = Text()  # JSON-encoded reference/party/quality metadata
    release_reserved = Integer(min_value=0, default=0)
    compensates_entry_id = Identifier()


@warehousing.command(part_of="LedgerEntry")
class RecordInbound:
    """Receive stock into a record, opening the record on first receipt."""

    inventory_record_id = Identifier()
    warehouse_id = Identifier()
    location_id = Identifier()
    sku = String(max_length=50)
    batch_number = String(max_length=50)
    product_name = String(max_length=200)
    category = String(max_length=100)
    unit = String(max_length=20)
    unit_cost = Float(min_value=0.0)
    quantity = Integer(required=True, min_value=1)
    transaction_type = String(max_length=20, default=TransactionType.INBOUND.value)
    transaction_number = String(required=True, max_length=30)
    reason = String(required=True, max_length=500)
    created_by = String(max_length=100)
    details = Text()


@warehousing.command(part_of="LedgerEntry")
class RecordAdjustment:
    """Adjust available stock by a delta, or set it to an absolute quantity."""

    inventory_record_id = Identifier(required=True)
    change = Integer()
    new_quantity = Integer(min_value=0)
    clamp = Boolean(default=False)
    transaction_number = String(required=True, max_length=30)
    reason = String(required=True, max_length=500)
    created_by = String(max_length=100)
    details = Text()


@warehousing.command(part_of="LedgerEntry")
class RecordCycleCount:
    inventory_record_id = Identifier(required=True)
    counted_quantity = Integer(min_value=0)
    transaction_number = String(required=True, max_length=30)
    counted_by = String(max_length=100)
    reason = String(max_length=500, default="Cycle count")


@warehousing.command(part_of="LedgerEntry")
class CancelLedgerEntry:
    entry_id = Identifier(required=True)
    reason = String(required=True, max_length=500)
    cancelled_by = String(max_length=100)
    compensation_number = String(max_length=30)


def _details(raw) -> dict:
    if not raw:
        return {}
    return json.loads(raw) if isinstance(raw, str) else dict(raw)


@warehousing.command_handler(part_of=LedgerEntry)
class LedgerRecordingHandler:
    @handle(PostLedgerEntry)
    def post_ledger_entry(self, command):
        record_repo = current_domain.repository_for(InventoryRecord)
        record = record_repo.get(command.inventory_record_id)
        if command.release_reserved:
            record.release_reservation(
                command.release_reserved,
                reference=command.transaction_number,
                released_by=command.created_by,
            )
        entry = post_entry(
            record,
            command.transaction_type,
            command.quantity,
            transaction_number=command.transaction_number,
            reason=command.reason,
            created_by=command.created_by,
            details=_details(command.details),
            compensates_entry_id=command.compensates_entry_id,
        )
        record_repo.add(record)
        current_domain.repository_for(LedgerEntry).add(entry)
        return str(entry.id)

    @handle(RecordInbound)
    def record_inbound(self, command):
        record_repo = current_domain.repository_for(InventoryRecord)
        if command.inventory_record_id:
            record = record_repo.get(command.inventory_record_id)
        else:
            if not (command.warehouse_id and command.sku):
                raise ValidationError({"inventory_record_id": ["Either a record id or warehouse and sku are required"]})
            record = record_repo.find_by_key(
                command.warehouse_id, command.location_id, command.sku, command.batch_number
            )
            if record is None:
                record = InventoryRecord.open(
                    warehouse_id=command.warehouse_id,
                    location_id=command.location_id,
                    sku=command.sku,
                    batch_number=command.batch_number,
                    product_name=command.product_name or command.sku,
                    category=command.category,
                    unit=command.unit,
                    unit_cost=command.unit_cost or 0.0,
                )

        entry = post_entry(
            record,
            command.transaction_type or TransactionType.INBOUND.value,
            command.quantity,
            transaction_number=command.transaction_number,
            reason=command.reason,
            created_by=command.created_by,
            details=_details(command.details),
        )
        record_repo.add(record)
        current_domain.repository_for(LedgerEntry).add(entry)
        return str(entry.id)

    @handle(RecordAdjustment)
    def record_adjustment(self, command):
        record_repo = current_domain.repository_for(InventoryRecord)
        record = record_repo.get(command.inventory_record_id)

        if command.new_quantity is not None:
            change = command.new_quantity - record.available
        elif command.change is not None:
            change = command.change
        else:
            raise ValidationError({"change": ["Either change or new_quantity is required"]})
        if change == 0:
            raise ValidationError({"change": ["Adjustment would not change the available quantity"]})

        entry = post_entry(
            record,
            TransactionType.ADJUSTMENT,
            change,
            transaction_number=command.transaction_number,
            reason=command.reason,
            created_by=command.created_by,
            clamp=bool(command.clamp),
            details=_details(command.details),
        )
        record_repo.add(record)
        current_domain.repository_for(LedgerEntry).add(entry)
        return str(entry.id)

    @handle(RecordCycleCount)
    def record_cycle_count(self, command):
        record_repo = current_domain.repository_for(InventoryRecord)
        record = record_repo.get(command.inventory_record_id)
        counted = command.counted_quantity or 0
        expected = record.available

        # Zero variance still produces an entry, as the record of the count
        entry = post_entry(
            record,
            TransactionType.ADJUSTMENT,
            counted - expected,
            transaction_number=command.transaction_number,
            reason=command.reason or "Cycle count",
            created_by=command.counted_by,
            details={"reference_type": "ADJUSTMENT", "notes": f"Cycle count: expected {expected}, counted {counted}"},
        )
        record.record_cycle_count(expected, counted, counted_by=command.counted_by)
        record_repo.add(record)
        current_domain.repository_for(LedgerEntry).add(entry)
        return str(entry.id)

    @handle(CancelLedgerEntry)
    def cancel_ledger_entry(self, command):
        entry_repo = current_domain.repository_for(LedgerEntry)
        entry = entry_repo.get(command.entry_id)
        entry.assert_cancellable()

        compensation = None
        if entry.status == EntryStatus.CONFIRMED.value and entry.change != 0:
            if not command.compensation_number:
                raise ValidationError({"compensation_number": ["A number is required for the compensating entry"]})
            record_repo = current_domain.repository_for(InventoryRecord)
            record = record_repo.get(entry.inventory_record_id)
            compensation = post_entry(
                record,
                compensation_for(entry.transaction_type),
                -entry.change,
                transaction_number=command.compensation_number,
                reason=f"Reversal of {entry.transaction_number}: {command.reason}",
                created_by=command.cancelled_by,
                details={
                    "reference_type": entry.reference.reference_type if entry.reference else None,
                    "reference_number": entry.transaction_number,
                    "transfer_id": entry.reference.transfer_id if entry.reference else None,
                    "unit_cost": entry.unit_cost,
                },
                compensates_entry_id=str(entry.id),
            )
            record_repo.add(record)
            entry_repo.add(compensation)

        entry.cancel(
            command.reason,
            cancelled_by=command.cancelled_by,
            compensating_entry_id=str(compensation.id) if compensation else None,
        )
        entry_repo.add(entry)
        return str(compensation.id) if compensation else None
