"""Repository for the LedgerEntry aggregate."""

from warehousing.domain import warehousing
from warehousing.ledger.entry import LedgerEntry
from warehousing.shared.paging import fetch_all


@warehousing.repository(part_of=LedgerEntry)
class LedgerEntryRepository:
    def find_by_number(self, transaction_number: str) -> LedgerEntry | None:
        return self._dao.query.filter(transaction_number=transaction_number).all().first

    def for_record(self, inventory_record_id: str) -> list[LedgerEntry]:
        """Entries for one inventory record, oldest first."""
        entries = fetch_all(self._dao.query.filter(inventory_record_id=str(inventory_record_id)))
        return sorted(entries, key=lambda e: (e.created_at, e.transaction_number))

    def search(self, warehouse_id: str | None = None, transaction_type: str | None = None) -> list[LedgerEntry]:
        query = self._dao.query
        criteria = {"warehouse_id": str(warehouse_id) if warehouse_id else None, "transaction_type": transaction_type}
        criteria = {k: v for k, v in criteria.items() if v is not None}
        if criteria:
            query = query.filter(**criteria)
        return fetch_all(query)
