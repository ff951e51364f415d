"""Domain events for the LedgerEntry aggregate."""

from protean.fields import DateTime, Float, Identifier, Integer, String

from warehousing.domain import warehousing


@warehousing.event(part_of="LedgerEntry")
class LedgerEntryRecorded:
    """A quantity movement was appended to the ledger."""

    __version__ = 1

    entry_id = Identifier(required=True)
    transaction_number = String(required=True)
    transaction_type = String(required=True)
    inventory_record_id = Identifier(required=True)
    warehouse_id = Identifier(required=True)
    sku = String(required=True)
    previous_quantity = Integer(default=0)
    change = Integer(default=0)
    current_quantity = Integer(default=0)
    total_cost = Float(default=0.0)
    reason = String(required=True)
    created_by = String()
    compensates_entry_id = Identifier()
    recorded_at = DateTime(required=True)


@warehousing.event(part_of="LedgerEntry")
class LedgerEntryCancelled:
    __version__ = 1

    entry_id = Identifier(required=True)
    transaction_number = String(required=True)
    reason = String(required=True)
    cancelled_by = String()
    compensating_entry_id = Identifier()
    cancelled_at = DateTime(required=True)
