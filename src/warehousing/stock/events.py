"""Domain events for the InventoryRecord aggregate.

Every change to a record's quantity buckets is announced as an event. The
stock movement log projection consumes them to keep a per-record history that
also covers reservations, which never reach the transaction ledger.
"""

from protean.fields import DateTime, Identifier, Integer, String

from warehousing.domain import warehousing


@warehousing.event(part_of="InventoryRecord")
class InventoryRecordCreated:
    """A stock record was opened for a SKU/batch at a warehouse location."""

    __version__ = 1

    inventory_record_id = Identifier(required=True)
    warehouse_id = Identifier(required=True)
    location_id = Identifier()
    sku = String(required=True)
    batch_number = String()
    unit = String(required=True)
    created_at = DateTime(required=True)


@warehousing.event(part_of="InventoryRecord")
class StockLevelChanged:
    """A ledger entry changed the available quantity of the record."""

    __version__ = 1

    inventory_record_id = Identifier(required=True)
    transaction_number = String(required=True)
    transaction_type = String(required=True)
    previous_available = Integer(default=0)
    change = Integer(default=0)
    new_available = Integer(default=0)
    performed_by = String()
    changed_at = DateTime(required=True)


@warehousing.event(part_of="InventoryRecord")
class StockReserved:
    """Quantity moved from available to reserved."""

    __version__ = 1

    inventory_record_id = Identifier(required=True)
    quantity = Integer(required=True)
    new_available = Integer(default=0)
    new_reserved = Integer(default=0)
    reference = String()
    reserved_by = String()
    reserved_at = DateTime(required=True)


@warehousing.event(part_of="InventoryRecord")
class ReservationReleased:
    """Reserved quantity returned to available."""

    __version__ = 1

    inventory_record_id = Identifier(required=True)
    quantity = Integer(required=True)
    new_available = Integer(default=0)
    new_reserved = Integer(default=0)
    reference = String()
    released_by = String()
    released_at = DateTime(required=True)


@warehousing.event(part_of="InventoryRecord")
class CycleCountRecorded:
    """A physical count was reconciled against the system quantity."""

    __version__ = 1

    inventory_record_id = Identifier(required=True)
    expected_quantity = Integer(default=0)
    counted_quantity = Integer(default=0)
    variance = Integer(default=0)
    counted_by = String()
    counted_at = DateTime(required=True)


@warehousing.event(part_of="InventoryRecord")
class InventoryStatusChanged:
    __version__ = 1

    inventory_record_id = Identifier(required=True)
    previous_status = String(required=True)
    new_status = String(required=True)
    reason = String()
    changed_by = String()
    changed_at = DateTime(required=True)


@warehousing.event(part_of="InventoryRecord")
class ThresholdsUpdated:
    __version__ = 1

    inventory_record_id = Identifier(required=True)
    reorder_point = Integer(default=0)
    reorder_quantity = Integer(default=0)
    min_quantity = Integer(default=0)
    max_quantity = Integer()
    updated_at = DateTime(required=True)


@warehousing.event(part_of="InventoryRecord")
class LowStockDetected:
    """Available quantity dropped to or below the reorder point."""

    __version__ = 1

    inventory_record_id = Identifier(required=True)
    sku = String(required=True)
    warehouse_id = Identifier(required=True)
    available = Integer(default=0)
    reorder_point = Integer(default=0)
    reorder_quantity = Integer(default=0)
    detected_at = DateTime(required=True)
