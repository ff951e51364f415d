"""Repository for the TransferOrder aggregate."""

from warehousing.domain import warehousing
from warehousing.shared.paging import fetch_all
from warehousing.transfer.transfer_order import TransferOrder


@warehousing.repository(part_of=TransferOrder)
class TransferOrderRepository:
    def find_by_number(self, transfer_number: str) -> TransferOrder | None:
        return self._dao.query.filter(transfer_number=transfer_number).all().first

    def search(self, statuses: set[str] | None = None, warehouse_id: str | None = None) -> list[TransferOrder]:
        """Transfers in any of ``statuses`` touching ``warehouse_id`` at either end."""
        orders = fetch_all(self._dao.query)
        if statuses:
            orders = [o for o in orders if o.status in statuses]
        if warehouse_id:
            wanted = str(warehouse_id)
            orders = [
                o
                for o in orders
                if (o.source and str(o.source.warehouse_id) == wanted)
                or (o.destination and str(o.destination.warehouse_id) == wanted)
            ]
        return orders
