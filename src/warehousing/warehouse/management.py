"""Warehouse management: commands and handler."""

import json

from protean import handle
from protean.fields import Identifier, String, Text
from protean.utils.globals import current_domain

from warehousing.domain import warehousing
from warehousing.warehouse.warehouse import LocationType, Warehouse


@warehousing.command(part_of="Warehouse")
class RegisterWarehouse:
    code = String(required=True, max_length=20)
    name = String(required=True, max_length=255)
    address = Text()  # JSON-encoded address


@warehousing.command(part_of="Warehouse")
class AddLocation:
    warehouse_id = Identifier(required=True)
    code = String(required=True, max_length=50)
    zone = String(max_length=50)
    location_type = String(max_length=20, default=LocationType.BIN.value)


@warehousing.command(part_of="Warehouse")
class DeactivateWarehouse:
    warehouse_id = Identifier(required=True)


@warehousing.command(part_of="Warehouse")
class ReactivateWarehouse:
    warehouse_id = Identifier(required=True)


@warehousing.command_handler(part_of=Warehouse)
class WarehouseManagementHandler:
    @handle(RegisterWarehouse)
    def register_warehouse(self, command):
        address = json.loads(command.address) if command.address else None
        warehouse = Warehouse.register(code=command.code, name=command.name, address=address)
        current_domain.repository_for(Warehouse).add(warehouse)
        return str(warehouse.id)

    @handle(AddLocation)
    def add_location(self, command):
        repo = current_domain.repository_for(Warehouse)
        warehouse = repo.get(command.warehouse_id)
        location = warehouse.add_location(
            code=command.code,
            zone=command.zone,
            location_type=command.location_type or LocationType.BIN.value,
        )
        repo.add(warehouse)
        return str(location.id)

    @handle(DeactivateWarehouse)
    def deactivate_warehouse(self, command):
        repo = current_domain.repository_for(Warehouse)
        warehouse = repo.get(command.warehouse_id)
        warehouse.deactivate()
        repo.add(warehouse)

    @handle(ReactivateWarehouse)
    def reactivate_warehouse(self, command):
        repo = current_domain.repository_for(Warehouse)
        warehouse = repo.get(command.warehouse_id)
        warehouse.reactivate()
        repo.add(warehouse)
