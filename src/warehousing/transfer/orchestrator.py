"""TransferOrchestrator service: drives a TransferOrder through its lifecycle.

Locks are always taken in the same order: the transfer's own lock first, then
inventory record locks, then sequence counter locks. Approval and cancellation
hold the transfer lock and every affected source record lock around a single
command, so reservations and the order change commit together.

Completion cannot be one unit of work: each item touches two records through
two independent ledger writes. It runs as a saga, one item at a time:

1. debit the source (OUTBOUND, consuming the item's reservation),
2. credit the destination (INBOUND, opening the record on first receipt),
3. if step 2 fails, cancel the step 1 entry, which posts a compensating
   TRANSFER_IN at the source, and mark the item ``failed``.

The outcome of each item is recorded before the next one starts. Failed items
are retried by completing the (now partially completed) transfer again.
"""

import json
from collections import Counter
from datetime import UTC, datetime

from protean.exceptions import (
    ExpectedVersionError,
    InvalidOperationError,
    ObjectNotFoundError,
    ValidationError,
)
from protean.utils.globals import current_domain

from warehousing.domain import logger
from warehousing.ledger.entry import LedgerEntry
from warehousing.ledger.sequence import SequenceGenerator
from warehousing.ledger.service import TransactionLedger
from warehousing.shared.dispatch import dispatch
from warehousing.shared.errors import ConcurrencyConflictError, error_kind
from warehousing.shared.locking import RecordLocks
from warehousing.transfer.transfer_order import (
    PRIORITY_RANK,
    TransferItem,
    TransferOrder,
    TransferStatus,
)
from warehousing.transfer.workflow import (
    ApproveTransfer,
    CancelTransfer,
    CreateTransfer,
    FinalizeTransferCompletion,
    RecordTransferItemFailed,
    RecordTransferItemReceived,
    StartTransfer,
    UpdateTransferItem,
    source_record_for,
    validate_endpoints,
)
from warehousing.warehouse.references import ReferenceValidator

TRANSFER_PREFIX = "TRF"

# Failures that leave an item retryable; anything else aborts the completion
ITEM_ERRORS = (
    ValidationError,
    ObjectNotFoundError,
    InvalidOperationError,
    ConcurrencyConflictError,
    ExpectedVersionError,
)

PENDING_STATUSES = {
    TransferStatus.DRAFT.value,
    TransferStatus.APPROVED.value,
    TransferStatus.IN_PROGRESS.value,
}


def _lock_key(transfer_id) -> str:
    return f"transfer:{transfer_id}"


class TransferOrchestrator:
    def __init__(
        self,
        locks: RecordLocks,
        sequences: SequenceGenerator,
        ledger: TransactionLedger,
        references: ReferenceValidator | None = None,
    ):
        self._locks = locks
        self._sequences = sequences
        self._ledger = ledger
        self._references = references or ReferenceValidator()

    # -------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------
    def create(
        self,
        transfer_type: str,
        items: list[dict],
        source: dict | None = None,
        destination: dict | None = None,
        priority: str | None = None,
        requested_by: str | None = None,
        expected_delivery: datetime | None = None,
        shipping: dict | None = None,
        notes: str | None = None,
    ) -> TransferOrder:
        """Create a draft transfer after checking references and source availability."""
        if not items:
            raise ValidationError({"items": ["A transfer needs at least one item"]})
        validate_endpoints(transfer_type, source, destination)
        if source:
            self._references.ensure(source.get("warehouse_id"), source.get("location_id"), "source.")
        if destination:
            self._references.ensure(destination.get("warehouse_id"), destination.get("location_id"), "destination.")

        fields = dict(
            transfer_type=transfer_type,
            source=json.dumps(source) if source else None,
            destination=json.dumps(destination) if destination else None,
            items=json.dumps(items, default=str),
            priority=priority,
            requested_by=requested_by,
            expected_delivery=expected_delivery,
            shipping=json.dumps(shipping) if shipping else None,
            notes=notes,
        )
        with self._sequences.allocate(TRANSFER_PREFIX) as number:
            transfer_id = dispatch(CreateTransfer(transfer_number=number, **fields))

        order = self.get(transfer_id)
        logger.info(
            "transfer_created",
            transfer_id=transfer_id,
            transfer_number=order.transfer_number,
            transfer_type=transfer_type,
            item_count=len(items),
        )
        return order

    def approve(self, transfer_id: str, approved_by: str) -> TransferOrder:
        """Approve a draft and reserve its debited quantities at the source."""
        with self._locks.hold(_lock_key(transfer_id)):
            order = self.get(transfer_id)
            order.assert_can_approve()
            with self._locks.hold(*self._source_record_ids(order)):
                dispatch(ApproveTransfer(transfer_id=transfer_id, approved_by=approved_by))

        order = self.get(transfer_id)
        logger.info(
            "transfer_approved",
            transfer_number=order.transfer_number,
            approved_by=approved_by,
            reserved_quantity=sum(i.reserved_quantity or 0 for i in order.items),
        )
        return order

    def start(self, transfer_id: str, assigned_to: str | None = None) -> TransferOrder:
        with self._locks.hold(_lock_key(transfer_id)):
            dispatch(StartTransfer(transfer_id=transfer_id, assigned_to=assigned_to))
        order = self.get(transfer_id)
        logger.info("transfer_started", transfer_number=order.transfer_number, assigned_to=order.assigned_to)
        return order

    def complete(self, transfer_id: str, completed_by: str | None = None) -> TransferOrder:
        """Move every non-terminal item; per-item failures leave the order partially completed."""
        with self._locks.hold(_lock_key(transfer_id)):
            order = self.get(transfer_id)
            order.assert_can_complete()
            actor = completed_by or order.assigned_to
            for item in order.items_to_complete():
                self._complete_item(order, item, actor)
            status = dispatch(FinalizeTransferCompletion(transfer_id=transfer_id))

        order = self.get(transfer_id)
        logger.info(
            "transfer_completion_finished",
            transfer_number=order.transfer_number,
            status=status,
            completion_percentage=order.completion_percentage,
        )
        return order

    def cancel(self, transfer_id: str, reason: str, cancelled_by: str | None = None) -> TransferOrder:
        """Cancel every non-received item and release outstanding reservations."""
        with self._locks.hold(_lock_key(transfer_id)):
            order = self.get(transfer_id)
            reserved_ids = [i.source_record_id for i in order.items if i.reserved_quantity]
            with self._locks.hold(*reserved_ids):
                released = dispatch(CancelTransfer(transfer_id=transfer_id, reason=reason, cancelled_by=cancelled_by))

        order = self.get(transfer_id)
        logger.info(
            "transfer_cancelled", transfer_number=order.transfer_number, reason=reason, released_quantity=released
        )
        return order

    def update_item(self, transfer_id: str, index: int, updated_by: str | None = None, **changes) -> TransferOrder:
        """Edit one line item; cancelling a reserved item releases its reservation."""
        with self._locks.hold(_lock_key(transfer_id)):
            order = self.get(transfer_id)
            reserved_ids = [i.source_record_id for i in order.items if i.reserved_quantity]
            with self._locks.hold(*reserved_ids):
                dispatch(UpdateTransferItem(transfer_id=transfer_id, index=index, updated_by=updated_by, **changes))

        logger.info("transfer_item_updated", transfer_id=transfer_id, index=index, changes=sorted(changes))
        return self.get(transfer_id)

    # -------------------------------------------------------------------
    # Completion saga
    # -------------------------------------------------------------------
    def _complete_item(self, order: TransferOrder, item: TransferItem, actor: str | None) -> None:
        details = {
            "reference_type": "TRANSFER",
            "reference_number": order.transfer_number,
            "transfer_id": str(order.id),
            "unit_cost": item.unit_cost,
        }
        reason = f"Transfer {order.transfer_number}"
        source_entry = destination_entry = None
        source_record_id = item.source_record_id

        try:
            if order.debits_source:
                record = source_record_for(order.source, item)
                if record is None:
                    raise ObjectNotFoundError({"source": [f"No stock of {item.sku} at the source location"]})
                source_record_id = str(record.id)
                source_entry = self._ledger.record_outbound(
                    source_record_id,
                    item.requested_quantity,
                    reason,
                    created_by=actor,
                    details=details,
                    release_reserved=item.reserved_quantity or 0,
                )
            if order.credits_destination:
                destination = order.destination
                destination_entry = self._ledger.record_inbound(
                    item.requested_quantity,
                    reason,
                    inventory_record_id=item.destination_record_id,
                    warehouse_id=destination.warehouse_id,
                    location_id=destination.location_id,
                    sku=item.sku,
                    batch_number=item.batch_number,
                    product_name=item.product_name,
                    unit=item.unit,
                    unit_cost=item.unit_cost,
                    created_by=actor,
                    details=details,
                )
        except ITEM_ERRORS as exc:
            compensation = self._compensate(order, source_entry, actor) if source_entry else None
            dispatch(
                RecordTransferItemFailed(
                    transfer_id=str(order.id),
                    position=item.position or 0,
                    reason=_describe(exc),
                    error_kind=error_kind(exc),
                    reservation_consumed=source_entry is not None,
                    compensation_entry_number=compensation.transaction_number if compensation else None,
                )
            )
            logger.warning(
                "transfer_item_failed",
                transfer_number=order.transfer_number,
                position=item.position,
                sku=item.sku,
                error_kind=error_kind(exc),
                compensated=compensation is not None,
            )
            return
        except Exception:
            if source_entry:
                self._compensate(order, source_entry, actor)
            raise

        dispatch(
            RecordTransferItemReceived(
                transfer_id=str(order.id),
                position=item.position or 0,
                source_record_id=source_record_id,
                destination_record_id=str(destination_entry.inventory_record_id) if destination_entry else None,
                source_entry_number=source_entry.transaction_number if source_entry else None,
                destination_entry_number=destination_entry.transaction_number if destination_entry else None,
            )
        )
        logger.info(
            "transfer_item_received",
            transfer_number=order.transfer_number,
            position=item.position,
            sku=item.sku,
            quantity=item.requested_quantity,
        )

    def _compensate(self, order: TransferOrder, source_entry: LedgerEntry, actor: str | None) -> LedgerEntry:
        """Reverse a source-side write whose destination write failed."""
        cancelled = self._ledger.cancel(
            str(source_entry.id),
            reason=f"Destination write failed for transfer {order.transfer_number}",
            cancelled_by=actor,
        )
        compensation = self._ledger.get(cancelled.compensated_by_entry_id)
        logger.warning(
            "transfer_item_compensated",
            transfer_number=order.transfer_number,
            reversed=source_entry.transaction_number,
            compensation=compensation.transaction_number,
        )
        return compensation

    def _source_record_ids(self, order: TransferOrder) -> list[str]:
        if not order.debits_source:
            return []
        ids = []
        for item in order.items_to_complete():
            record = source_record_for(order.source, item)
            if record is not None:
                ids.append(str(record.id))
        return ids

    # -------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------
    def get(self, transfer_id: str) -> TransferOrder:
        return current_domain.repository_for(TransferOrder).get(transfer_id)

    def by_number(self, transfer_number: str) -> TransferOrder:
        order = current_domain.repository_for(TransferOrder).find_by_number(transfer_number)
        if order is None:
            raise ObjectNotFoundError({"transfer_number": [f"Transfer {transfer_number} not found"]})
        return order

    def pending(self, warehouse_id: str | None = None) -> list[TransferOrder]:
        """Open transfers, most urgent first, then oldest first."""
        orders = current_domain.repository_for(TransferOrder).search(
            statuses=PENDING_STATUSES, warehouse_id=warehouse_id
        )
        return sorted(orders, key=lambda o: (PRIORITY_RANK.get(o.priority, 99), _utc(o.requested_at)))

    def overdue(self, warehouse_id: str | None = None) -> list[TransferOrder]:
        orders = current_domain.repository_for(TransferOrder).search(warehouse_id=warehouse_id)
        return sorted((o for o in orders if o.is_overdue), key=lambda o: _utc(o.expected_delivery))

    def statistics(
        self,
        warehouse_id: str | None = None,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
    ) -> dict:
        orders = current_domain.repository_for(TransferOrder).search(warehouse_id=warehouse_id)
        if date_from:
            orders = [o for o in orders if _utc(o.requested_at) >= _utc(date_from)]
        if date_to:
            orders = [o for o in orders if _utc(o.requested_at) <= _utc(date_to)]

        by_status = Counter(o.status for o in orders)
        durations = [
            (_utc(o.completed_at) - _utc(o.requested_at)).total_seconds() / 86400
            for o in orders
            if o.status == TransferStatus.COMPLETED.value and o.completed_at and o.requested_at
        ]
        return {
            "total_transfers": len(orders),
            "pending_transfers": sum(by_status[s] for s in PENDING_STATUSES),
            "completed_transfers": by_status[TransferStatus.COMPLETED.value],
            "partially_completed_transfers": by_status[TransferStatus.PARTIALLY_COMPLETED.value],
            "cancelled_transfers": by_status[TransferStatus.CANCELLED.value],
            "overdue_transfers": sum(1 for o in orders if o.is_overdue),
            "by_status": dict(by_status),
            "total_items": sum(len(o.items or []) for o in orders),
            "avg_completion_days": round(sum(durations) / len(durations), 2) if durations else 0.0,
        }


def _describe(exc: Exception) -> str:
    messages = getattr(exc, "messages", None)
    if isinstance(messages, dict):
        return "; ".join(
            f"{field}: {', '.join(map(str, errors)) if isinstance(errors, list) else errors}"
            for field, errors in messages.items()
        )
    return str(exc)


def _utc(value: datetime | None) -> datetime:
    if value is None:
        return datetime.min.replace(tzinfo=UTC)
    return value if value.tzinfo else value.replace(tzinfo=UTC)
