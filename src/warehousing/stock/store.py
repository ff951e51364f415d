"""InventoryRecordStore service: creation, administration and quantity corrections.

Quantity corrections (adjust, cycle count) are delegated to the transaction
ledger so that history and current state can never diverge.
"""

import json
from typing import Any

from protean.utils.globals import current_domain

from warehousing.domain import logger
from warehousing.ledger.entry import LedgerEntry, TransactionType, prefix_for
from warehousing.ledger.sequence import SequenceGenerator
from warehousing.ledger.service import TransactionLedger
from warehousing.shared.dispatch import dispatch
from warehousing.shared.locking import RecordLocks, natural_key
from warehousing.stock.inventory_record import InventoryRecord
from warehousing.stock.management import (
    ChangeInventoryStatus,
    CreateInventoryRecord,
    RemoveInventoryRecord,
    UpdateThresholds,
)
from warehousing.warehouse.references import ReferenceValidator


class InventoryRecordStore:
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

    def create(
        self,
        warehouse_id: str,
        sku: str,
        product_name: str,
        location_id: str | None = None,
        batch_number: str | None = None,
        initial_quantity: int = 0,
        batch: dict | None = None,
        thresholds: dict | None = None,
        created_by: str | None = None,
        **attributes: Any,
    ) -> InventoryRecord:
        """Create a record; fails with ConflictError when the natural key is taken."""
        self._references.ensure(warehouse_id, location_id)

        fields = dict(
            warehouse_id=warehouse_id,
            location_id=location_id,
            sku=sku,
            batch_number=batch_number,
            product_name=product_name,
            batch=json.dumps(batch, default=str) if batch else None,
            thresholds=json.dumps(thresholds) if thresholds else None,
            initial_quantity=initial_quantity or 0,
            created_by=created_by,
            **attributes,
        )
        with self._locks.hold(natural_key(warehouse_id, location_id, sku, batch_number)):
            if initial_quantity:
                with self._sequences.allocate(prefix_for(TransactionType.INBOUND)) as number:
                    record_id = dispatch(CreateInventoryRecord(transaction_number=number, **fields))
            else:
                record_id = dispatch(CreateInventoryRecord(**fields))

        logger.info(
            "inventory_record_created",
            record_id=record_id,
            warehouse_id=warehouse_id,
            sku=sku,
            initial_quantity=initial_quantity,
        )
        return self.get(record_id)

    def adjust(self, inventory_record_id: str, delta: int, reason: str, actor: str | None = None) -> LedgerEntry:
        return self._ledger.adjust(inventory_record_id, delta, reason, actor=actor)

    def cycle_count(self, inventory_record_id: str, counted_quantity: int, actor: str | None = None) -> LedgerEntry:
        return self._ledger.cycle_count(inventory_record_id, counted_quantity, counted_by=actor)

    def update_status(
        self, inventory_record_id: str, status: str, reason: str | None = None, actor: str | None = None
    ) -> InventoryRecord:
        with self._locks.hold(inventory_record_id):
            dispatch(
                ChangeInventoryStatus(
                    inventory_record_id=inventory_record_id, status=status, reason=reason, changed_by=actor
                )
            )
        logger.info("inventory_status_changed", record_id=inventory_record_id, status=status, reason=reason)
        return self.get(inventory_record_id)

    def update_thresholds(self, inventory_record_id: str, **thresholds: int | None) -> InventoryRecord:
        with self._locks.hold(inventory_record_id):
            dispatch(UpdateThresholds(inventory_record_id=inventory_record_id, **thresholds))
        return self.get(inventory_record_id)

    def delete(self, inventory_record_id: str) -> None:
        with self._locks.hold(inventory_record_id):
            dispatch(RemoveInventoryRecord(inventory_record_id=inventory_record_id))

    def get(self, inventory_record_id: str) -> InventoryRecord:
        return current_domain.repository_for(InventoryRecord).get(inventory_record_id)

    def list_records(
        self, warehouse_id: str | None = None, sku: str | None = None, status: str | None = None
    ) -> list[InventoryRecord]:
        return current_domain.repository_for(InventoryRecord).search(warehouse_id=warehouse_id, sku=sku, status=status)
