"""Stock reservation: commands, handler and the ReservationManager service.

Reserving moves quantity from ``available`` to ``reserved``; releasing moves
it back. The check (``available >= quantity``) and the move happen
in one command while the record's lock is held, so two concurrent
reservations can never both pass the check against the same stock.
"""

from protean import handle
from protean.fields import Identifier, Integer, String
from protean.utils.globals import current_domain

from warehousing.domain import logger, warehousing
from warehousing.shared.dispatch import dispatch
from warehousing.shared.locking import RecordLocks
from warehousing.stock.inventory_record import InventoryRecord


@warehousing.command(part_of="InventoryRecord")
class ReserveStock:
    inventory_record_id = Identifier(required=True)
    quantity = Integer(required=True, min_value=1)
    reference = String(max_length=255)
    reserved_by = String(max_length=100)


@warehousing.command(part_of="InventoryRecord")
class ReleaseReservation:
    inventory_record_id = Identifier(required=True)
    quantity = Integer(required=True, min_value=1)
    reference = String(max_length=255)
    released_by = String(max_length=100)


@warehousing.command_handler(part_of=InventoryRecord)
class ReservationHandler:
    @handle(ReserveStock)
    def reserve_stock(self, command):
        repo = current_domain.repository_for(InventoryRecord)
        record = repo.get(command.inventory_record_id)
        record.reserve(command.quantity, reference=command.reference, reserved_by=command.reserved_by)
        repo.add(record)

    @handle(ReleaseReservation)
    def release_reservation(self, command):
        repo = current_domain.repository_for(InventoryRecord)
        record = repo.get(command.inventory_record_id)
        record.release_reservation(command.quantity, reference=command.reference, released_by=command.released_by)
        repo.add(record)


class ReservationManager:
    def __init__(self, locks: RecordLocks):
        self._locks = locks

    def reserve(
        self, inventory_record_id: str, quantity: int, reference: str | None = None, reserved_by: str | None = None
    ) -> InventoryRecord:
        with self._locks.hold(inventory_record_id):
            dispatch(
                ReserveStock(
                    inventory_record_id=inventory_record_id,
                    quantity=quantity,
                    reference=reference,
                    reserved_by=reserved_by,
                )
            )
        logger.info("stock_reserved", record_id=inventory_record_id, quantity=quantity, reference=reference)
        return current_domain.repository_for(InventoryRecord).get(inventory_record_id)

    def release(
        self, inventory_record_id: str, quantity: int, reference: str | None = None, released_by: str | None = None
    ) -> InventoryRecord:
        with self._locks.hold(inventory_record_id):
            dispatch(
                ReleaseReservation(
                    inventory_record_id=inventory_record_id,
                    quantity=quantity,
                    reference=reference,
                    released_by=released_by,
                )
            )
        logger.info("reservation_released", record_id=inventory_record_id, quantity=quantity, reference=reference)
        return current_domain.repository_for(InventoryRecord).get(inventory_record_id)
