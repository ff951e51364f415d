"""Referential lookups against warehouses and their locations."""

from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from warehousing.warehouse.warehouse import Warehouse


class ReferenceValidator:
    """Confirms that referenced warehouses and locations exist and are usable."""

    def warehouse(self, warehouse_id: str) -> Warehouse:
        try:
            warehouse = current_domain.repository_for(Warehouse).get(warehouse_id)
        except ObjectNotFoundError as exc:
            raise ObjectNotFoundError({"warehouse_id": [f"Warehouse {warehouse_id} not found"]}) from exc
        if not warehouse.is_active:
            raise ObjectNotFoundError({"warehouse_id": [f"Warehouse {warehouse_id} is inactive"]})
        return warehouse

    def ensure(self, warehouse_id: str | None, location_id: str | None = None, field_prefix: str = "") -> None:
        """Raise ObjectNotFoundError unless the warehouse (and location, if given) exist."""
        if not warehouse_id:
            if location_id:
                raise ObjectNotFoundError({f"{field_prefix}location_id": ["A location needs a warehouse"]})
            return
        warehouse = self.warehouse(warehouse_id)
        if location_id and warehouse.location(location_id) is None:
            raise ObjectNotFoundError(
                {f"{field_prefix}location_id": [f"Location {location_id} not found in warehouse {warehouse.code}"]}
            )
