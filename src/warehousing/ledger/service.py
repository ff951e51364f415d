"""TransactionLedger service: the only path that changes available stock.

Every write follows the same shape:

1. take the lock of the affected record (and of its natural key when the
   record may be created by the write),
2. allocate the next transaction number for the type's prefix,
3. dispatch one command whose handler persists the entry and the record in a
   single unit of work.

If the command is rejected the allocated number is handed back, so numbers
only ever belong to committed entries.
"""

import json

from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from warehousing.domain import logger
from warehousing.ledger.entry import (
    EntryStatus,
    LedgerEntry,
    TransactionType,
    compensation_for,
    policy_for,
    prefix_for,
)
from warehousing.ledger.recording import (
    CancelLedgerEntry,
    PostLedgerEntry,
    RecordAdjustment,
    RecordCycleCount,
    RecordInbound,
)
from warehousing.ledger.sequence import SequenceGenerator
from warehousing.shared.dispatch import dispatch
from warehousing.shared.locking import RecordLocks, natural_key
from warehousing.stock.inventory_record import InventoryRecord
from warehousing.warehouse.references import ReferenceValidator


def _encode(details: dict | None) -> str | None:
    if not details:
        return None
    return json.dumps({k: v for k, v in details.items() if v is not None}, default=str)


class TransactionLedger:
    def __init__(
        self,
        locks: RecordLocks,
        sequences: SequenceGenerator,
        references: ReferenceValidator | None = None,
    ):
        self._locks = locks
        self._sequences = sequences
        self._references = references or ReferenceValidator()

    # -------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------
    def record(
        self,
        transaction_type: TransactionType | str,
        inventory_record_id: str,
        change: int,
        reason: str,
        created_by: str | None = None,
        details: dict | None = None,
        release_reserved: int = 0,
        compensates_entry_id: str | None = None,
    ) -> LedgerEntry:
        """Post a movement of ``transaction_type`` against an existing record."""
        policy = policy_for(transaction_type)
        transaction_type = TransactionType(transaction_type)
        with self._locks.hold(inventory_record_id):
            with self._sequences.allocate(policy.prefix) as number:
                entry_id = dispatch(
                    PostLedgerEntry(
                        transaction_type=transaction_type.value,
                        inventory_record_id=inventory_record_id,
                        quantity=change,
                        transaction_number=number,
                        reason=reason,
                        created_by=created_by,
                        details=_encode(details),
                        release_reserved=release_reserved or 0,
                        compensates_entry_id=compensates_entry_id,
                    )
                )
        return self._recorded(entry_id)

    def record_inbound(
        self,
        quantity: int,
        reason: str,
        inventory_record_id: str | None = None,
        warehouse_id: str | None = None,
        location_id: str | None = None,
        sku: str | None = None,
        batch_number: str | None = None,
        product_name: str | None = None,
        category: str | None = None,
        unit: str | None = None,
        unit_cost: float | None = None,
        created_by: str | None = None,
        details: dict | None = None,
        transaction_type: TransactionType | str = TransactionType.INBOUND,
    ) -> LedgerEntry:
        """Receive stock; the target record is opened on its first receipt."""
        key_lock = None
        if not inventory_record_id:
            self._references.ensure(warehouse_id, location_id)
            key_lock = natural_key(warehouse_id, location_id, sku, batch_number)

        transaction_type = TransactionType(transaction_type)
        with self._locks.hold(key_lock):
            record_id = inventory_record_id
            if record_id is None and sku:
                existing = current_domain.repository_for(InventoryRecord).find_by_key(
                    warehouse_id, location_id, sku, batch_number
                )
                record_id = str(existing.id) if existing else None
            with self._locks.hold(record_id), self._sequences.allocate(prefix_for(transaction_type)) as number:
                entry_id = dispatch(
                    RecordInbound(
                        inventory_record_id=record_id,
                        warehouse_id=warehouse_id,
                        location_id=location_id,
                        sku=sku,
                        batch_number=batch_number,
                        product_name=product_name,
                        category=category,
                        unit=unit,
                        unit_cost=unit_cost,
                        quantity=quantity,
                        transaction_type=transaction_type.value,
                        transaction_number=number,
                        reason=reason,
                        created_by=created_by,
                        details=_encode(details),
                    )
                )
        return self._recorded(entry_id)

    def record_outbound(
        self,
        inventory_record_id: str,
        quantity: int,
        reason: str,
        created_by: str | None = None,
        details: dict | None = None,
        release_reserved: int = 0,
    ) -> LedgerEntry:
        return self.record(
            TransactionType.OUTBOUND,
            inventory_record_id,
            quantity,
            reason,
            created_by=created_by,
            details=details,
            release_reserved=release_reserved,
        )

    def record_adjustment(
        self,
        inventory_record_id: str,
        new_quantity: int,
        reason: str,
        created_by: str | None = None,
        details: dict | None = None,
    ) -> LedgerEntry:
        """Set available stock to ``new_quantity``; a zero change is rejected."""
        return self._adjust(
            inventory_record_id, reason, created_by, details, new_quantity=new_quantity, clamp=False
        )

    def adjust(
        self, inventory_record_id: str, delta: int, reason: str, actor: str | None = None, details: dict | None = None
    ) -> LedgerEntry:
        """Apply ``delta`` to available stock, clamping the result at zero."""
        return self._adjust(inventory_record_id, reason, actor, details, change=delta, clamp=True)

    def _adjust(self, inventory_record_id, reason, created_by, details, change=None, new_quantity=None, clamp=False):
        with self._locks.hold(inventory_record_id):
            with self._sequences.allocate(prefix_for(TransactionType.ADJUSTMENT)) as number:
                entry_id = dispatch(
                    RecordAdjustment(
                        inventory_record_id=inventory_record_id,
                        change=change,
                        new_quantity=new_quantity,
                        clamp=clamp,
                        transaction_number=number,
                        reason=reason,
                        created_by=created_by,
                        details=_encode({"reference_type": "ADJUSTMENT", **(details or {})}),
                    )
                )
        return self._recorded(entry_id)

    def cycle_count(
        self, inventory_record_id: str, counted_quantity: int, counted_by: str | None = None
    ) -> LedgerEntry:
        with self._locks.hold(inventory_record_id):
            with self._sequences.allocate(prefix_for(TransactionType.ADJUSTMENT)) as number:
                entry_id = dispatch(
                    RecordCycleCount(
                        inventory_record_id=inventory_record_id,
                        counted_quantity=counted_quantity,
                        transaction_number=number,
                        counted_by=counted_by,
                    )
                )
        return self._recorded(entry_id)

    def cancel(self, entry_id: str, reason: str, cancelled_by: str | None = None) -> LedgerEntry:
        """Cancel an entry, posting a compensating entry when it was applied."""
        entry = self.get(entry_id)
        with self._locks.hold(entry.inventory_record_id, f"entry:{entry_id}"):
            entry = self.get(entry_id)
            entry.assert_cancellable()
            if entry.status == EntryStatus.CONFIRMED.value and entry.change != 0:
                prefix = prefix_for(compensation_for(entry.transaction_type))
                with self._sequences.allocate(prefix) as number:
                    dispatch(
                        CancelLedgerEntry(
                            entry_id=entry_id,
                            reason=reason,
                            cancelled_by=cancelled_by,
                            compensation_number=number,
                        )
                    )
            else:
                dispatch(CancelLedgerEntry(entry_id=entry_id, reason=reason, cancelled_by=cancelled_by))

        cancelled = self.get(entry_id)
        logger.info(
            "ledger_entry_cancelled",
            transaction_number=cancelled.transaction_number,
            compensated_by=cancelled.compensated_by_entry_id,
        )
        return cancelled

    # -------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------
    def get(self, entry_id: str) -> LedgerEntry:
        return current_domain.repository_for(LedgerEntry).get(entry_id)

    def by_number(self, transaction_number: str) -> LedgerEntry:
        entry = current_domain.repository_for(LedgerEntry).find_by_number(transaction_number)
        if entry is None:
            raise ObjectNotFoundError({"transaction_number": [f"Transaction {transaction_number} not found"]})
        return entry

    def for_record(self, inventory_record_id: str) -> list[LedgerEntry]:
        return current_domain.repository_for(LedgerEntry).for_record(inventory_record_id)

    def _recorded(self, entry_id: str) -> LedgerEntry:
        entry = self.get(entry_id)
        logger.info(
            "ledger_entry_recorded",
            transaction_number=entry.transaction_number,
            transaction_type=entry.transaction_type,
            record_id=str(entry.inventory_record_id),
            previous=entry.quantity.previous,
            change=entry.quantity.change,
            current=entry.quantity.current,
        )
        return entry
