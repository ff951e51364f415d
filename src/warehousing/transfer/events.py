"""Domain events for the TransferOrder aggregate."""

from protean.fields import DateTime, Identifier, Integer, String, Text

from warehousing.domain import warehousing


@warehousing.event(part_of="TransferOrder")
class TransferCreated:
    __version__ = 1

    transfer_id = Identifier(required=True)
    transfer_number = String(required=True)
    transfer_type = String(required=True)
    source_warehouse_id = Identifier()
    destination_warehouse_id = Identifier()
    items = Text(required=True)  # JSON list of {sku, batch_number, requested_quantity}
    item_count = Integer(required=True)
    priority = String(required=True)
    requested_by = String()
    created_at = DateTime(required=True)


@warehousing.event(part_of="TransferOrder")
class TransferApproved:
    """Transfer approved; source quantities are now reserved."""

    __version__ = 1

    transfer_id = Identifier(required=True)
    transfer_number = String(required=True)
    approved_by = String(required=True)
    reserved_quantity = Integer(default=0)
    approved_at = DateTime(required=True)


@warehousing.event(part_of="TransferOrder")
class TransferStarted:
    __version__ = 1

    transfer_id = Identifier(required=True)
    transfer_number = String(required=True)
    assigned_to = String()
    started_at = DateTime(required=True)


@warehousing.event(part_of="TransferOrder")
class TransferItemUpdated:
    __version__ = 1

    transfer_id = Identifier(required=True)
    position = Integer(default=0)
    changes = Text(required=True)  # JSON of changed fields
    updated_at = DateTime(required=True)


@warehousing.event(part_of="TransferOrder")
class TransferItemReceived:
    __version__ = 1

    transfer_id = Identifier(required=True)
    position = Integer(default=0)
    sku = String(required=True)
    transferred_quantity = Integer(default=0)
    source_entry_number = String()
    destination_entry_number = String()
    received_at = DateTime(required=True)


@warehousing.event(part_of="TransferOrder")
class TransferItemFailed:
    """An item could not be moved; any source-side write was compensated."""

    __version__ = 1

    transfer_id = Identifier(required=True)
    position = Integer(default=0)
    sku = String(required=True)
    reason = String(required=True)
    error_kind = String(required=True)
    compensation_entry_number = String()
    failed_at = DateTime(required=True)


@warehousing.event(part_of="TransferOrder")
class TransferCompleted:
    """Completion finished; status is either completed or partially_completed."""

    __version__ = 1

    transfer_id = Identifier(required=True)
    transfer_number = String(required=True)
    status = String(required=True)
    received_items = Integer(default=0)
    failed_items = Integer(default=0)
    total_transferred = Integer(default=0)
    completed_at = DateTime(required=True)


@warehousing.event(part_of="TransferOrder")
class TransferCancelled:
    __version__ = 1

    transfer_id = Identifier(required=True)
    transfer_number = String(required=True)
    reason = String(required=True)
    released_quantity = Integer(default=0)
    cancelled_at = DateTime(required=True)
