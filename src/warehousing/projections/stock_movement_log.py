"""Stock movement log: append-only trail of every change to a record's buckets.

Unlike the transaction ledger, this also covers reservations and releases,
which move quantity between buckets without changing the stock held.
"""

import uuid

from protean.core.projector import on
from protean.fields import DateTime, Identifier, Integer, String
from protean.utils.globals import current_domain

from warehousing.domain import warehousing
from warehousing.shared.paging import fetch_all
from warehousing.stock.events import (
    CycleCountRecorded,
    InventoryRecordCreated,
    InventoryStatusChanged,
    ReservationReleased,
    StockLevelChanged,
    StockReserved,
)
from warehousing.stock.inventory_record import InventoryRecord


@warehousing.projection
class StockMovementLog:
    entry_id = Identifier(identifier=True, required=True)
    inventory_record_id = Identifier(required=True)
    event_type = String(required=True)
    description = String(required=True)
    quantity_change = Integer(default=0)
    previous_level = Integer(default=0)
    new_level = Integer(default=0)
    reference = String()
    actor = String()
    occurred_at = DateTime(required=True)


def _add_entry(
    inventory_record_id,
    event_type,
    description,
    occurred_at,
    quantity_change=0,
    previous_level=0,
    new_level=0,
    reference=None,
    actor=None,
):
    current_domain.repository_for(StockMovementLog).add(
        StockMovementLog(
            entry_id=str(uuid.uuid4()),
            inventory_record_id=inventory_record_id,
            event_type=event_type,
            description=description,
            quantity_change=quantity_change,
            previous_level=previous_level,
            new_level=new_level,
            reference=reference,
            actor=actor,
            occurred_at=occurred_at,
        )
    )


def movements_for(inventory_record_id: str) -> list[StockMovementLog]:
    """Log entries for one record, oldest first."""
    query = current_domain.repository_for(StockMovementLog)._dao.query
    entries = fetch_all(query.filter(inventory_record_id=str(inventory_record_id)), order_by="entry_id")
    return sorted(entries, key=lambda e: e.occurred_at)


@warehousing.projector(projector_for=StockMovementLog, aggregates=[InventoryRecord])
class StockMovementLogProjector:
    @on(InventoryRecordCreated)
    def on_record_created(self, event):
        _add_entry(
            event.inventory_record_id,
            "InventoryRecordCreated",
            f"Record opened for SKU {event.sku}" + (f" batch {event.batch_number}" if event.batch_number else ""),
            event.created_at,
        )

    @on(StockLevelChanged)
    def on_stock_level_changed(self, event):
        _add_entry(
            event.inventory_record_id,
            event.transaction_type,
            f"{event.transaction_type} {event.change:+d} ({event.transaction_number})",
            event.changed_at,
            quantity_change=event.change,
            previous_level=event.previous_available,
            new_level=event.new_available,
            reference=event.transaction_number,
            actor=event.performed_by,
        )

    @on(StockReserved)
    def on_stock_reserved(self, event):
        _add_entry(
            event.inventory_record_id,
            "RESERVE",
            f"Reserved {event.quantity} units" + (f" for {event.reference}" if event.reference else ""),
            event.reserved_at,
            quantity_change=-event.quantity,
            previous_level=event.new_available + event.quantity,
            new_level=event.new_available,
            reference=event.reference,
            actor=event.reserved_by,
        )

    @on(ReservationReleased)
    def on_reservation_released(self, event):
        _add_entry(
            event.inventory_record_id,
            "RELEASE",
            f"Released {event.quantity} reserved units" + (f" for {event.reference}" if event.reference else ""),
            event.released_at,
            quantity_change=event.quantity,
            previous_level=event.new_available - event.quantity,
            new_level=event.new_available,
            reference=event.reference,
            actor=event.released_by,
        )

    @on(CycleCountRecorded)
    def on_cycle_count_recorded(self, event):
        _add_entry(
            event.inventory_record_id,
            "CYCLE_COUNT",
            f"Physical count: {event.counted_quantity} (expected {event.expected_quantity}, variance {event.variance})",
            event.counted_at,
            quantity_change=event.variance,
            previous_level=event.expected_quantity,
            new_level=event.counted_quantity,
            actor=event.counted_by,
        )

    @on(InventoryStatusChanged)
    def on_status_changed(self, event):
        _add_entry(
            event.inventory_record_id,
            "STATUS_CHANGE",
            f"Status {event.previous_status} -> {event.new_status}" + (f": {event.reason}" if event.reason else ""),
            event.changed_at,
            actor=event.changed_by,
        )
