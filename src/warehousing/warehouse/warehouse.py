"""Warehouse aggregate (CQRS): reference data the stock ledger validates against.

A warehouse owns its storage locations. Inventory records, ledger entries and
transfers refer to both by id; the core only needs to know that a referenced
warehouse is active and that a referenced location belongs to it.
"""

from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, HasMany, String, ValueObject

from warehousing.domain import warehousing
from warehousing.warehouse.events import (
    LocationAdded,
    WarehouseDeactivated,
    WarehouseReactivated,
    WarehouseRegistered,
)


class LocationType(Enum):
    BIN = "bin"
    SHELF = "shelf"
    RACK = "rack"
    FLOOR = "floor"
    DOCK = "dock"
    STAGING = "staging"


@warehousing.value_object(part_of="Warehouse")
class WarehouseAddress:
    street = String(max_length=255)
    city = String(max_length=100)
    state = String(max_length=100)
    postal_code = String(max_length=20)
    country = String(max_length=100)


@warehousing.entity(part_of="Warehouse")
class Location:
    """A storage location inside a warehouse."""

    code = String(required=True, max_length=50)
    zone = String(max_length=50)
    location_type = String(choices=LocationType, default=LocationType.BIN.value)
    is_active = Boolean(default=True)


@warehousing.aggregate
class Warehouse:
    code = String(required=True, max_length=20)
    name = String(required=True, max_length=255)
    address = ValueObject(WarehouseAddress)
    is_active = Boolean(default=True)
    locations = HasMany(Location)
    created_at = DateTime()
    updated_at = DateTime()

    @classmethod
    def register(cls, code: str, name: str, address: dict | None = None):
        now = datetime.now(UTC)
        warehouse = cls(
            code=code.upper(),
            name=name,
            address=WarehouseAddress(**address) if address else None,
            created_at=now,
            updated_at=now,
        )
        warehouse.raise_(
            WarehouseRegistered(
                warehouse_id=str(warehouse.id),
                code=warehouse.code,
                name=name,
                registered_at=now,
            )
        )
        return warehouse

    def add_location(self, code: str, zone: str | None = None, location_type: str = LocationType.BIN.value) -> Location:
        """Add a storage location; codes are unique within the warehouse."""
        code = code.upper()
        if any(loc.code == code for loc in (self.locations or [])):
            raise ValidationError({"code": [f"Location {code} already exists in warehouse {self.code}"]})

        location = Location(code=code, zone=zone, location_type=location_type)
        self.add_locations(location)
        self.updated_at = datetime.now(UTC)
        self.raise_(
            LocationAdded(
                warehouse_id=str(self.id),
                location_id=str(location.id),
                code=code,
                zone=zone or "",
                location_type=location_type,
                added_at=self.updated_at,
            )
        )
        return location

    def location(self, location_id: str) -> Location | None:
        return next((loc for loc in (self.locations or []) if str(loc.id) == str(location_id)), None)

    def deactivate(self) -> None:
        if not self.is_active:
            raise ValidationError({"warehouse": ["Warehouse is already inactive"]})
        self.is_active = False
        self.updated_at = datetime.now(UTC)
        self.raise_(WarehouseDeactivated(warehouse_id=str(self.id), deactivated_at=self.updated_at))

    def reactivate(self) -> None:
        if self.is_active:
            raise ValidationError({"warehouse": ["Warehouse is already active"]})
        self.is_active = True
        self.updated_at = datetime.now(UTC)
        self.raise_(WarehouseReactivated(warehouse_id=str(self.id), reactivated_at=self.updated_at))
