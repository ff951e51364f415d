"""TransferOrder aggregate (CQRS): multi-item movement of stock between locations.

State Machine:
    DRAFT → APPROVED → IN_PROGRESS → {COMPLETED, PARTIALLY_COMPLETED}
    PARTIALLY_COMPLETED → {COMPLETED, PARTIALLY_COMPLETED}   (retry failed items)
    {DRAFT, APPROVED, IN_PROGRESS, PARTIALLY_COMPLETED} → CANCELLED

Line items are tracked independently:
    PENDING → PICKED → SHIPPED → RECEIVED
    any non-received item → CANCELLED
    FAILED is the retryable state left behind by a compensated completion step

What a transfer does to inventory depends on its type: internal and
warehouse-to-warehouse transfers debit a source and credit a destination,
outbound transfers only debit, inbound transfers only credit. Adjustment and
cycle-count transfers are paperwork only.
"""

import json
from datetime import UTC, datetime
from enum import Enum

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, HasMany, Identifier, Integer, String, Text, ValueObject

from warehousing.domain import warehousing
from warehousing.shared.errors import invalid_transition
from warehousing.transfer.events import (
    TransferApproved,
    TransferCancelled,
    TransferCompleted,
    TransferCreated,
    TransferItemFailed,
    TransferItemReceived,
    TransferItemUpdated,
    TransferStarted,
)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class TransferType(Enum):
    INTERNAL = "internal"
    WAREHOUSE_TO_WAREHOUSE = "warehouse_to_warehouse"
    INBOUND = "inbound"
    OUTBOUND = "outbound"
    ADJUSTMENT = "adjustment"
    CYCLE_COUNT = "cycle_count"


class TransferStatus(Enum):
    DRAFT = "draft"
    APPROVED = "approved"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    PARTIALLY_COMPLETED = "partially_completed"
    CANCELLED = "cancelled"


class TransferItemStatus(Enum):
    PENDING = "pending"
    PICKED = "picked"
    SHIPPED = "shipped"
    RECEIVED = "received"
    CANCELLED = "cancelled"
    FAILED = "failed"


class TransferPriority(Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


DEBITS_SOURCE = {TransferType.INTERNAL, TransferType.WAREHOUSE_TO_WAREHOUSE, TransferType.OUTBOUND}
CREDITS_DESTINATION = {TransferType.INTERNAL, TransferType.WAREHOUSE_TO_WAREHOUSE, TransferType.INBOUND}

PRIORITY_RANK = {
    TransferPriority.URGENT.value: 0,
    TransferPriority.HIGH.value: 1,
    TransferPriority.NORMAL.value: 2,
    TransferPriority.LOW.value: 3,
}

_VALID_TRANSITIONS = {
    TransferStatus.DRAFT: {TransferStatus.APPROVED, TransferStatus.CANCELLED},
    TransferStatus.APPROVED: {TransferStatus.IN_PROGRESS, TransferStatus.CANCELLED},
    TransferStatus.IN_PROGRESS: {
        TransferStatus.COMPLETED,
        TransferStatus.PARTIALLY_COMPLETED,
        TransferStatus.CANCELLED,
    },
    TransferStatus.PARTIALLY_COMPLETED: {
        TransferStatus.COMPLETED,
        TransferStatus.PARTIALLY_COMPLETED,
        TransferStatus.CANCELLED,
    },
    TransferStatus.COMPLETED: set(),  # terminal
    TransferStatus.CANCELLED: set(),  # terminal
}

_TERMINAL_ITEM_STATUSES = {TransferItemStatus.RECEIVED.value, TransferItemStatus.CANCELLED.value}
_MANUAL_ITEM_STATUSES = {
    TransferItemStatus.PICKED.value,
    TransferItemStatus.SHIPPED.value,
    TransferItemStatus.CANCELLED.value,
}


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@warehousing.value_object(part_of="TransferOrder")
class TransferEndpoint:
    """Either a warehouse (and optional location) or an external party."""

    warehouse_id = Identifier()
    location_id = Identifier()
    external_name = String(max_length=200)
    external_address = String(max_length=500)
    external_contact = String(max_length=200)


@warehousing.value_object(part_of="TransferOrder")
class ShippingInfo:
    carrier = String(max_length=100)
    tracking_number = String(max_length=100)
    shipping_cost = Float(min_value=0.0)


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@warehousing.entity(part_of="TransferOrder")
class TransferItem:
    """One SKU/batch line of a transfer."""

    position = Integer(min_value=0, default=0)
    sku = String(required=True, max_length=50)
    product_name = String(max_length=200)
    batch_number = String(max_length=50)
    requested_quantity = Integer(required=True, min_value=1)
    transferred_quantity = Integer(min_value=0, default=0)
    unit = String(max_length=20, default="pcs")
    unit_cost = Float(min_value=0.0)
    status = String(choices=TransferItemStatus, default=TransferItemStatus.PENDING.value)
    reserved_quantity = Integer(min_value=0, default=0)
    source_record_id = Identifier()
    destination_record_id = Identifier()
    failure_reason = String(max_length=500)
    notes = String(max_length=500)

    @invariant.post
    def transferred_never_exceeds_requested(self):
        if (self.transferred_quantity or 0) > (self.requested_quantity or 0):
            raise ValidationError({"transferred_quantity": ["Transferred quantity cannot exceed requested quantity"]})

    @property
    def is_terminal(self) -> bool:
        return self.status in _TERMINAL_ITEM_STATUSES


# ---------------------------------------------------------------------------
# Aggregate Root (CQRS)
# ---------------------------------------------------------------------------
@warehousing.aggregate
class TransferOrder:
    transfer_number = String(required=True, max_length=30, unique=True)
    transfer_type = String(required=True, choices=TransferType)
    source = ValueObject(TransferEndpoint)
    destination = ValueObject(TransferEndpoint)
    items = HasMany(TransferItem)
    priority = String(choices=TransferPriority, default=TransferPriority.NORMAL.value)
    status = String(choices=TransferStatus, default=TransferStatus.DRAFT.value)
    requested_by = String(max_length=100)
    approved_by = String(max_length=100)
    assigned_to = String(max_length=100)
    requested_at = DateTime()
    approved_at = DateTime()
    started_at = DateTime()
    completed_at = DateTime()
    cancelled_at = DateTime()
    expected_delivery = DateTime()
    shipping = ValueObject(ShippingInfo)
    notes = Text()
    cancellation_reason = String(max_length=500)
    updated_at = DateTime()

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def create(
        cls,
        transfer_number: str,
        transfer_type: str,
        items_data: list[dict],
        source: dict | None = None,
        destination: dict | None = None,
        priority: str = TransferPriority.NORMAL.value,
        requested_by: str | None = None,
        expected_delivery: datetime | None = None,
        shipping: dict | None = None,
        notes: str | None = None,
    ):
        """Create a draft transfer. At least one line item is required."""
        if not items_data:
            raise ValidationError({"items": ["A transfer needs at least one item"]})

        now = datetime.now(UTC)
        order = cls(
            transfer_number=transfer_number,
            transfer_type=transfer_type,
            source=TransferEndpoint(**source) if source else None,
            destination=TransferEndpoint(**destination) if destination else None,
            priority=priority or TransferPriority.NORMAL.value,
            status=TransferStatus.DRAFT.value,
            requested_by=requested_by,
            requested_at=now,
            expected_delivery=expected_delivery,
            shipping=ShippingInfo(**shipping) if shipping else None,
            notes=notes,
            updated_at=now,
        )
        for position, item_data in enumerate(items_data):
            data = dict(item_data)
            data["sku"] = data["sku"].strip().upper()
            data.pop("position", None)
            order.add_items(TransferItem(position=position, **data))

        order.raise_(
            TransferCreated(
                transfer_id=str(order.id),
                transfer_number=transfer_number,
                transfer_type=transfer_type,
                source_warehouse_id=order.source.warehouse_id if order.source else None,
                destination_warehouse_id=order.destination.warehouse_id if order.destination else None,
                items=json.dumps(
                    [
                        {
                            "sku": i.sku,
                            "batch_number": i.batch_number,
                            "requested_quantity": i.requested_quantity,
                        }
                        for i in order.ordered_items
                    ]
                ),
                item_count=len(items_data),
                priority=order.priority,
                requested_by=requested_by,
                created_at=now,
            )
        )
        return order

    # -------------------------------------------------------------------
    # Derived values
    # -------------------------------------------------------------------
    @property
    def ordered_items(self) -> list[TransferItem]:
        return sorted(self.items or [], key=lambda i: i.position or 0)

    @property
    def debits_source(self) -> bool:
        return TransferType(self.transfer_type) in DEBITS_SOURCE

    @property
    def credits_destination(self) -> bool:
        return TransferType(self.transfer_type) in CREDITS_DESTINATION

    @property
    def is_terminal(self) -> bool:
        return not _VALID_TRANSITIONS[TransferStatus(self.status)]

    @property
    def total_requested(self) -> int:
        return sum(i.requested_quantity or 0 for i in self.items or [])

    @property
    def total_transferred(self) -> int:
        return sum(i.transferred_quantity or 0 for i in self.items or [])

    @property
    def completion_percentage(self) -> int:
        requested = self.total_requested
        return round(self.total_transferred * 100 / requested) if requested else 0

    @property
    def is_overdue(self) -> bool:
        if not self.expected_delivery or self.is_terminal:
            return False
        expected = self.expected_delivery
        if expected.tzinfo is None:
            expected = expected.replace(tzinfo=UTC)
        return datetime.now(UTC) > expected

    def item(self, index: int) -> TransferItem:
        items = self.ordered_items
        if index is None or index < 0 or index >= len(items):
            raise ValidationError({"index": [f"Invalid item index {index}; transfer has {len(items)} item(s)"]})
        return items[index]

    # -------------------------------------------------------------------
    # State transition helper
    # -------------------------------------------------------------------
    def _assert_can_transition(self, target: TransferStatus, action: str) -> None:
        current = TransferStatus(self.status)
        if target not in _VALID_TRANSITIONS.get(current, set()):
            raise invalid_transition("transfer", current.value, action)

    # -------------------------------------------------------------------
    # Approval and start
    # -------------------------------------------------------------------
    def assert_can_approve(self) -> None:
        self._assert_can_transition(TransferStatus.APPROVED, "approve")

    def approve(self, approved_by: str, reservations: dict[int, tuple[str, int]] | None = None) -> None:
        """Approve a draft; ``reservations`` maps item position to (record id, quantity)."""
        self._assert_can_transition(TransferStatus.APPROVED, "approve")
        if not approved_by:
            raise ValidationError({"approved_by": ["Approver is required"]})

        reservations = reservations or {}
        for item in self.ordered_items:
            if item.position in reservations:
                record_id, quantity = reservations[item.position]
                item.source_record_id = record_id
                item.reserved_quantity = quantity

        now = datetime.now(UTC)
        self.status = TransferStatus.APPROVED.value
        self.approved_by = approved_by
        self.approved_at = now
        self.updated_at = now
        self.raise_(
            TransferApproved(
                transfer_id=str(self.id),
                transfer_number=self.transfer_number,
                approved_by=approved_by,
                reserved_quantity=sum(q for _, q in reservations.values()),
                approved_at=now,
            )
        )

    def start(self, assigned_to: str | None = None) -> None:
        self._assert_can_transition(TransferStatus.IN_PROGRESS, "start")
        now = datetime.now(UTC)
        self.status = TransferStatus.IN_PROGRESS.value
        if assigned_to:
            self.assigned_to = assigned_to
        self.started_at = now
        self.updated_at = now
        self.raise_(
            TransferStarted(
                transfer_id=str(self.id),
                transfer_number=self.transfer_number,
                assigned_to=self.assigned_to,
                started_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Completion
    # -------------------------------------------------------------------
    def assert_can_complete(self) -> None:
        current = TransferStatus(self.status)
        if current not in (TransferStatus.IN_PROGRESS, TransferStatus.PARTIALLY_COMPLETED):
            raise invalid_transition("transfer", current.value, "complete")

    def items_to_complete(self) -> list[TransferItem]:
        return [i for i in self.ordered_items if not i.is_terminal]

    def mark_item_received(
        self,
        position: int,
        source_record_id: str | None = None,
        destination_record_id: str | None = None,
        source_entry_number: str | None = None,
        destination_entry_number: str | None = None,
    ) -> None:
        self.assert_can_complete()
        item = self.item(position)
        if item.is_terminal:
            raise invalid_transition("transfer item", item.status, "receive")

        now = datetime.now(UTC)
        item.status = TransferItemStatus.RECEIVED.value
        item.transferred_quantity = item.requested_quantity
        item.reserved_quantity = 0
        item.failure_reason = None
        if source_record_id:
            item.source_record_id = source_record_id
        if destination_record_id:
            item.destination_record_id = destination_record_id
        self.updated_at = now
        self.raise_(
            TransferItemReceived(
                transfer_id=str(self.id),
                position=position,
                sku=item.sku,
                transferred_quantity=item.transferred_quantity,
                source_entry_number=source_entry_number,
                destination_entry_number=destination_entry_number,
                received_at=now,
            )
        )

    def mark_item_failed(
        self,
        position: int,
        reason: str,
        error_kind: str,
        reservation_consumed: bool = False,
        compensation_entry_number: str | None = None,
    ) -> None:
        self.assert_can_complete()
        item = self.item(position)
        if item.is_terminal:
            raise invalid_transition("transfer item", item.status, "fail")

        now = datetime.now(UTC)
        item.status = TransferItemStatus.FAILED.value
        item.failure_reason = reason[:500]
        if reservation_consumed:
            item.reserved_quantity = 0
        self.updated_at = now
        self.raise_(
            TransferItemFailed(
                transfer_id=str(self.id),
                position=position,
                sku=item.sku,
                reason=reason[:500],
                error_kind=error_kind,
                compensation_entry_number=compensation_entry_number,
                failed_at=now,
            )
        )

    def finish_completion(self) -> str:
        """Settle the order status after every item has been processed."""
        self.assert_can_complete()
        items = self.ordered_items
        all_terminal = all(i.is_terminal for i in items)
        any_received = any(i.status == TransferItemStatus.RECEIVED.value for i in items)
        target = (
            TransferStatus.COMPLETED if all_terminal and any_received else TransferStatus.PARTIALLY_COMPLETED
        )

        now = datetime.now(UTC)
        self.status = target.value
        if target == TransferStatus.COMPLETED:
            self.completed_at = now
        self.updated_at = now
        self.raise_(
            TransferCompleted(
                transfer_id=str(self.id),
                transfer_number=self.transfer_number,
                status=target.value,
                received_items=sum(1 for i in items if i.status == TransferItemStatus.RECEIVED.value),
                failed_items=sum(1 for i in items if i.status == TransferItemStatus.FAILED.value),
                total_transferred=self.total_transferred,
                completed_at=now,
            )
        )
        return target.value

    # -------------------------------------------------------------------
    # Cancellation
    # -------------------------------------------------------------------
    def cancel(self, reason: str) -> list[tuple[str, int]]:
        """Cancel every non-received item; return the reservations to release."""
        self._assert_can_transition(TransferStatus.CANCELLED, "cancel")
        if not reason:
            raise ValidationError({"reason": ["A cancellation reason is required"]})

        to_release = []
        for item in self.ordered_items:
            if item.status == TransferItemStatus.RECEIVED.value:
                continue
            if item.reserved_quantity and item.source_record_id:
                to_release.append((str(item.source_record_id), item.reserved_quantity))
            item.status = TransferItemStatus.CANCELLED.value
            item.reserved_quantity = 0

        now = datetime.now(UTC)
        self.status = TransferStatus.CANCELLED.value
        self.cancellation_reason = reason
        self.cancelled_at = now
        self.updated_at = now
        self.raise_(
            TransferCancelled(
                transfer_id=str(self.id),
                transfer_number=self.transfer_number,
                reason=reason,
                released_quantity=sum(q for _, q in to_release),
                cancelled_at=now,
            )
        )
        return to_release

    # -------------------------------------------------------------------
    # Line item edits
    # -------------------------------------------------------------------
    def update_item(
        self,
        index: int,
        requested_quantity: int | None = None,
        transferred_quantity: int | None = None,
        status: str | None = None,
        notes: str | None = None,
    ) -> tuple[str, int] | None:
        """Edit one line item by position; return a reservation to release, if any."""
        if self.is_terminal:
            raise invalid_transition("transfer", self.status, "update items of")
        item = self.item(index)
        if item.is_terminal:
            raise invalid_transition("transfer item", item.status, "update")

        changes = {}
        to_release = None
        if requested_quantity is not None:
            if self.status != TransferStatus.DRAFT.value:
                raise invalid_transition("transfer", self.status, "change requested quantities of")
            if requested_quantity < 1:
                raise ValidationError({"requested_quantity": ["Requested quantity must be at least 1"]})
            if requested_quantity < (item.transferred_quantity or 0):
                raise ValidationError(
                    {"requested_quantity": ["Requested quantity cannot be below the transferred quantity"]}
                )
            item.requested_quantity = requested_quantity
            changes["requested_quantity"] = requested_quantity
        if transferred_quantity is not None:
            if transferred_quantity < 0 or transferred_quantity > item.requested_quantity:
                raise ValidationError(
                    {"transferred_quantity": ["Transferred quantity must be between 0 and the requested quantity"]}
                )
            item.transferred_quantity = transferred_quantity
            changes["transferred_quantity"] = transferred_quantity
        if status is not None:
            if status not in _MANUAL_ITEM_STATUSES:
                raise ValidationError({"status": [f"Item status cannot be set to {status} manually"]})
            if status != TransferItemStatus.CANCELLED.value and self.status != TransferStatus.IN_PROGRESS.value:
                raise invalid_transition("transfer", self.status, f"mark items {status} on")
            if status == TransferItemStatus.CANCELLED.value and item.reserved_quantity and item.source_record_id:
                to_release = (str(item.source_record_id), item.reserved_quantity)
                item.reserved_quantity = 0
            item.status = status
            changes["status"] = status
        if notes is not None:
            item.notes = notes
            changes["notes"] = notes

        if not changes:
            raise ValidationError({"item": ["No changes supplied"]})

        self.updated_at = datetime.now(UTC)
        self.raise_(
            TransferItemUpdated(
                transfer_id=str(self.id),
                position=item.position or 0,
                changes=json.dumps(changes),
                updated_at=self.updated_at,
            )
        )
        return to_release
