"""Domain events for the Warehouse aggregate."""

from protean.fields import DateTime, Identifier, String

from warehousing.domain import warehousing


@warehousing.event(part_of="Warehouse")
class WarehouseRegistered:
    """A warehouse was registered and can now hold stock."""

    __version__ = 1

    warehouse_id = Identifier(required=True)
    code = String(required=True)
    name = String(required=True)
    registered_at = DateTime(required=True)


@warehousing.event(part_of="Warehouse")
class LocationAdded:
    """A storage location (bin, shelf, dock) was added to a warehouse."""

    __version__ = 1

    warehouse_id = Identifier(required=True)
    location_id = Identifier(required=True)
    code = String(required=True)
    zone = String()
    location_type = String(required=True)
    added_at = DateTime(required=True)


@warehousing.event(part_of="Warehouse")
class WarehouseDeactivated:
    __version__ = 1

    warehouse_id = Identifier(required=True)
    deactivated_at = DateTime(required=True)


@warehousing.event(part_of="Warehouse")
class WarehouseReactivated:
    __version__ = 1

    warehouse_id = Identifier(required=True)
    reactivated_at = DateTime(required=True)
