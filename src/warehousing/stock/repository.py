"""Repository for the InventoryRecord aggregate."""

from warehousing.domain import warehousing
from warehousing.shared.paging import fetch_all
from warehousing.stock.inventory_record import InventoryRecord


@warehousing.repository(part_of=InventoryRecord)
class InventoryRecordRepository:
    def _filter(self, **criteria) -> list[InventoryRecord]:
        query = self._dao.query
        criteria = {k: v for k, v in criteria.items() if v is not None}
        if criteria:
            query = query.filter(**criteria)
        return fetch_all(query)

    def find_by_key(
        self, warehouse_id: str, location_id: str | None, sku: str, batch_number: str | None = None
    ) -> InventoryRecord | None:
        """Find the record for (warehouse, location, sku, batch); batch may be empty."""
        candidates = self._filter(warehouse_id=str(warehouse_id), sku=sku.strip().upper())
        wanted = (str(location_id or ""), batch_number or "")
        for record in candidates:
            if (str(record.location_id or ""), record.batch_number or "") == wanted:
                return record
        return None

    def search(
        self, warehouse_id: str | None = None, sku: str | None = None, status: str | None = None
    ) -> list[InventoryRecord]:
        return self._filter(
            warehouse_id=str(warehouse_id) if warehouse_id else None,
            sku=sku.strip().upper() if sku else None,
            status=status,
        )

    def remove(self, record: InventoryRecord) -> None:
        self._dao.delete(record)
