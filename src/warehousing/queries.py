"""Read-only stock and ledger aggregations."""

from collections import defaultdict
from datetime import UTC, datetime

from protean.utils.globals import current_domain

from warehousing.ledger.entry import EntryStatus, LedgerEntry
from warehousing.shared.settings import expiry_warning_days
from warehousing.stock.inventory_record import InventoryRecord, InventoryStatus


def _utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=UTC)


class InventoryQueries:
    def low_stock(self, warehouse_id: str | None = None) -> list[InventoryRecord]:
        """Active records whose available quantity is at or below the reorder point."""
        records = current_domain.repository_for(InventoryRecord).search(
            warehouse_id=warehouse_id, status=InventoryStatus.ACTIVE.value
        )
        return sorted((r for r in records if r.is_low_stock()), key=lambda r: (r.available, r.sku))

    def expiring_soon(self, days: int | None = None, warehouse_id: str | None = None) -> list[InventoryRecord]:
        """Active records expiring within ``days``, soonest first."""
        days = expiry_warning_days() if days is None else days
        records = current_domain.repository_for(InventoryRecord).search(
            warehouse_id=warehouse_id, status=InventoryStatus.ACTIVE.value
        )
        expiring = [r for r in records if r.is_expiring_soon(days)]
        return sorted(expiring, key=lambda r: r.expiry_date)

    def warehouse_summary(self, warehouse_id: str) -> dict:
        records = current_domain.repository_for(InventoryRecord).search(warehouse_id=warehouse_id)
        return {
            "warehouse_id": str(warehouse_id),
            "total_items": len(records),
            "total_quantity": sum(r.total_quantity for r in records),
            "total_available": sum(r.available for r in records),
            "total_reserved": sum(r.reserved for r in records),
            "total_value": round(sum(r.total_value for r in records), 2),
            "categories": sorted({r.category for r in records if r.category}),
            "low_stock_items": sum(1 for r in records if r.is_low_stock()),
        }

    def transaction_summary(
        self,
        warehouse_id: str | None = None,
        transaction_type: str | None = None,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
    ) -> dict:
        """Count, quantity moved and value per transaction type.

        Cancelled entries and the compensations that reversed them are left
        out, so the totals describe stock movements that stand.
        """
        entries = current_domain.repository_for(LedgerEntry).search(
            warehouse_id=warehouse_id, transaction_type=transaction_type
        )
        totals = defaultdict(lambda: {"count": 0, "total_quantity": 0, "total_value": 0.0})
        for entry in entries:
            if entry.status == EntryStatus.CANCELLED.value or entry.is_compensation:
                continue
            occurred = _utc(entry.transaction_date or entry.created_at)
            if date_from and occurred < _utc(date_from):
                continue
            if date_to and occurred > _utc(date_to):
                continue
            bucket = totals[entry.transaction_type]
            bucket["count"] += 1
            bucket["total_quantity"] += abs(entry.change)
            bucket["total_value"] += entry.total_cost or 0.0

        by_type = {kind: {**values, "total_value": round(values["total_value"], 2)} for kind, values in totals.items()}
        return {
            "by_type": by_type,
            "total_transactions": sum(v["count"] for v in by_type.values()),
        }
