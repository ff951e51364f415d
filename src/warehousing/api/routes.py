"""FastAPI routes for the Warehousing domain: stock, ledger, transfers, warehouses."""

import json
from datetime import datetime

from fastapi import APIRouter, Depends
from protean.utils.globals import current_domain

from warehousing.api.schemas import (
    AddLocationRequest,
    AdjustInventoryRequest,
    AdjustmentRequest,
    ApproveTransferRequest,
    CancelTransactionRequest,
    CancelTransferRequest,
    CompleteTransferRequest,
    CreateInventoryRequest,
    CreateTransferRequest,
    CycleCountRequest,
    Envelope,
    InboundRequest,
    OutboundRequest,
    RegisterWarehouseRequest,
    ReserveRequest,
    StartTransferRequest,
    ThresholdsSchema,
    UpdateStatusRequest,
    UpdateTransferItemRequest,
)
from warehousing.ledger.entry import LedgerEntry
from warehousing.services import Services, get_services
from warehousing.shared.dispatch import dispatch
from warehousing.stock.inventory_record import InventoryRecord
from warehousing.transfer.transfer_order import TransferOrder
from warehousing.warehouse.management import AddLocation, DeactivateWarehouse, ReactivateWarehouse, RegisterWarehouse
from warehousing.warehouse.warehouse import Warehouse


# ---------------------------------------------------------------------------
# Views
# ---------------------------------------------------------------------------
def record_view(record: InventoryRecord) -> dict:
    data = record.to_dict()
    data.update(
        total_quantity=record.total_quantity,
        available_for_sale=record.available_for_sale,
        total_value=record.total_value,
        stock_status=record.stock_status,
        days_until_expiry=record.days_until_expiry,
        is_expired=record.is_expired,
        is_expiring_soon=record.is_expiring_soon(),
    )
    return data


def entry_view(entry: LedgerEntry) -> dict:
    data = entry.to_dict()
    data["direction"] = entry.direction
    return data


def transfer_view(order: TransferOrder) -> dict:
    data = order.to_dict()
    data["items"] = [item.to_dict() for item in order.ordered_items]
    data.update(
        total_requested=order.total_requested,
        total_transferred=order.total_transferred,
        completion_percentage=order.completion_percentage,
        is_overdue=order.is_overdue,
    )
    return data


def _details(reference=None, party=None, **extra) -> dict:
    details = {}
    if reference:
        details.update(reference.model_dump(exclude_none=True))
    if party:
        values = party.model_dump(exclude_none=True)
        details.update({f"party_{k}" if k != "party_type" else k: v for k, v in values.items()})
    details.update({k: v for k, v in extra.items() if v is not None})
    return details


# ---------------------------------------------------------------------------
# Inventory Router
# ---------------------------------------------------------------------------
inventory_router = APIRouter(prefix="/inventory", tags=["inventory"])


@inventory_router.post("", status_code=201, response_model=Envelope)
async def create_inventory(body: CreateInventoryRequest, services: Services = Depends(get_services)) -> Envelope:
    attributes = body.model_dump(
        include={"category", "brand", "unit", "unit_cost", "currency", "notes"}, exclude_none=True
    )
    record = services.inventory.create(
        warehouse_id=body.warehouse_id,
        sku=body.sku,
        product_name=body.product_name,
        location_id=body.location_id,
        batch_number=body.batch_number,
        initial_quantity=body.initial_quantity,
        batch=body.batch.model_dump(exclude_none=True) if body.batch else None,
        thresholds=body.thresholds.model_dump(exclude_none=True) if body.thresholds else None,
        created_by=body.created_by,
        **attributes,
    )
    return Envelope(data=record_view(record), message="Inventory record created")


@inventory_router.get("", response_model=Envelope)
async def list_inventory(
    warehouse_id: str | None = None,
    sku: str | None = None,
    status: str | None = None,
    services: Services = Depends(get_services),
) -> Envelope:
    records = services.inventory.list_records(warehouse_id=warehouse_id, sku=sku, status=status)
    return Envelope(data=[record_view(r) for r in records])


@inventory_router.get("/low-stock", response_model=Envelope)
async def low_stock(warehouse_id: str | None = None, services: Services = Depends(get_services)) -> Envelope:
    return Envelope(data=[record_view(r) for r in services.queries.low_stock(warehouse_id)])


@inventory_router.get("/expiring", response_model=Envelope)
async def expiring_soon(
    days: int | None = None, warehouse_id: str | None = None, services: Services = Depends(get_services)
) -> Envelope:
    records = services.queries.expiring_soon(days=days, warehouse_id=warehouse_id)
    return Envelope(data=[record_view(r) for r in records])


@inventory_router.get("/summary/{warehouse_id}", response_model=Envelope)
async def warehouse_summary(warehouse_id: str, services: Services = Depends(get_services)) -> Envelope:
    services.references.warehouse(warehouse_id)
    return Envelope(data=services.queries.warehouse_summary(warehouse_id))


@inventory_router.get("/{inventory_record_id}", response_model=Envelope)
async def get_inventory(inventory_record_id: str, services: Services = Depends(get_services)) -> Envelope:
    return Envelope(data=record_view(services.inventory.get(inventory_record_id)))


@inventory_router.delete("/{inventory_record_id}", response_model=Envelope)
async def delete_inventory(inventory_record_id: str, services: Services = Depends(get_services)) -> Envelope:
    services.inventory.delete(inventory_record_id)
    return Envelope(message="Inventory record deleted")


@inventory_router.post("/{inventory_record_id}/adjust", response_model=Envelope)
async def adjust_inventory(
    inventory_record_id: str, body: AdjustInventoryRequest, services: Services = Depends(get_services)
) -> Envelope:
    entry = services.inventory.adjust(inventory_record_id, body.delta, body.reason, actor=body.actor)
    return Envelope(
        data={"inventory": record_view(services.inventory.get(inventory_record_id)), "transaction": entry_view(entry)},
        message="Inventory adjusted",
    )


@inventory_router.post("/{inventory_record_id}/reserve", response_model=Envelope)
async def reserve(
    inventory_record_id: str, body: ReserveRequest, services: Services = Depends(get_services)
) -> Envelope:
    record = services.reservations.reserve(
        inventory_record_id, body.quantity, reference=body.reference, reserved_by=body.actor
    )
    return Envelope(data=record_view(record), message="Stock reserved")


@inventory_router.post("/{inventory_record_id}/release-reservation", response_model=Envelope)
async def release_reservation(
    inventory_record_id: str, body: ReserveRequest, services: Services = Depends(get_services)
) -> Envelope:
    record = services.reservations.release(
        inventory_record_id, body.quantity, reference=body.reference, released_by=body.actor
    )
    return Envelope(data=record_view(record), message="Reservation released")


@inventory_router.post("/{inventory_record_id}/cycle-count", response_model=Envelope)
async def cycle_count(
    inventory_record_id: str, body: CycleCountRequest, services: Services = Depends(get_services)
) -> Envelope:
    entry = services.inventory.cycle_count(inventory_record_id, body.counted_quantity, actor=body.actor)
    return Envelope(
        data={
            "inventory": record_view(services.inventory.get(inventory_record_id)),
            "transaction": entry_view(entry),
            "variance": entry.change,
        },
        message="Cycle count recorded",
    )


@inventory_router.put("/{inventory_record_id}/status", response_model=Envelope)
async def update_status(
    inventory_record_id: str, body: UpdateStatusRequest, services: Services = Depends(get_services)
) -> Envelope:
    record = services.inventory.update_status(inventory_record_id, body.status, reason=body.reason, actor=body.actor)
    return Envelope(data=record_view(record), message="Status updated")


@inventory_router.put("/{inventory_record_id}/thresholds", response_model=Envelope)
async def update_thresholds(
    inventory_record_id: str, body: ThresholdsSchema, services: Services = Depends(get_services)
) -> Envelope:
    record = services.inventory.update_thresholds(inventory_record_id, **body.model_dump())
    return Envelope(data=record_view(record), message="Thresholds updated")


# ---------------------------------------------------------------------------
# Transaction Router
# ---------------------------------------------------------------------------
transaction_router = APIRouter(prefix="/inventory-transactions", tags=["inventory-transactions"])


@transaction_router.post("/inbound", status_code=201, response_model=Envelope)
async def record_inbound(body: InboundRequest, services: Services = Depends(get_services)) -> Envelope:
    entry = services.ledger.record_inbound(
        body.quantity,
        body.reason,
        inventory_record_id=body.inventory_record_id,
        warehouse_id=body.warehouse_id,
        location_id=body.location_id,
        sku=body.sku,
        batch_number=body.batch_number,
        product_name=body.product_name,
        category=body.category,
        unit=body.unit,
        unit_cost=body.unit_cost,
        created_by=body.created_by,
        details=_details(body.reference, body.party, quality_status=body.quality_status, notes=body.notes),
    )
    return Envelope(data=entry_view(entry), message="Inbound transaction recorded")


@transaction_router.post("/outbound", status_code=201, response_model=Envelope)
async def record_outbound(body: OutboundRequest, services: Services = Depends(get_services)) -> Envelope:
    entry = services.ledger.record_outbound(
        body.inventory_record_id,
        body.quantity,
        body.reason,
        created_by=body.created_by,
        details=_details(body.reference, body.party, notes=body.notes),
    )
    return Envelope(data=entry_view(entry), message="Outbound transaction recorded")


@transaction_router.post("/adjustment", status_code=201, response_model=Envelope)
async def record_adjustment(body: AdjustmentRequest, services: Services = Depends(get_services)) -> Envelope:
    entry = services.ledger.record_adjustment(
        body.inventory_record_id,
        body.new_quantity,
        body.reason,
        created_by=body.created_by,
        details=_details(notes=body.notes),
    )
    return Envelope(data=entry_view(entry), message="Adjustment recorded")


@transaction_router.get("/summary", response_model=Envelope)
async def transaction_summary(
    warehouse_id: str | None = None,
    transaction_type: str | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    services: Services = Depends(get_services),
) -> Envelope:
    summary = services.queries.transaction_summary(
        warehouse_id=warehouse_id, transaction_type=transaction_type, date_from=date_from, date_to=date_to
    )
    return Envelope(data=summary)


@transaction_router.get("/number/{transaction_number}", response_model=Envelope)
async def get_transaction_by_number(transaction_number: str, services: Services = Depends(get_services)) -> Envelope:
    return Envelope(data=entry_view(services.ledger.by_number(transaction_number)))


@transaction_router.get("/{entry_id}", response_model=Envelope)
async def get_transaction(entry_id: str, services: Services = Depends(get_services)) -> Envelope:
    return Envelope(data=entry_view(services.ledger.get(entry_id)))


@transaction_router.put("/{entry_id}/cancel", response_model=Envelope)
async def cancel_transaction(
    entry_id: str, body: CancelTransactionRequest, services: Services = Depends(get_services)
) -> Envelope:
    entry = services.ledger.cancel(entry_id, body.reason, cancelled_by=body.cancelled_by)
    return Envelope(data=entry_view(entry), message="Transaction cancelled")


# ---------------------------------------------------------------------------
# Transfer Router
# ---------------------------------------------------------------------------
transfer_router = APIRouter(prefix="/transfers", tags=["transfers"])


@transfer_router.post("", status_code=201, response_model=Envelope)
async def create_transfer(body: CreateTransferRequest, services: Services = Depends(get_services)) -> Envelope:
    order = services.transfers.create(
        transfer_type=body.transfer_type,
        items=[item.model_dump(exclude_none=True) for item in body.items],
        source=body.source.model_dump(exclude_none=True) if body.source else None,
        destination=body.destination.model_dump(exclude_none=True) if body.destination else None,
        priority=body.priority,
        requested_by=body.requested_by,
        expected_delivery=body.expected_delivery,
        shipping=body.shipping.model_dump(exclude_none=True) if body.shipping else None,
        notes=body.notes,
    )
    return Envelope(data=transfer_view(order), message="Transfer created")


@transfer_router.get("/pending", response_model=Envelope)
async def pending_transfers(warehouse_id: str | None = None, services: Services = Depends(get_services)) -> Envelope:
    return Envelope(data=[transfer_view(o) for o in services.transfers.pending(warehouse_id)])


@transfer_router.get("/overdue", response_model=Envelope)
async def overdue_transfers(warehouse_id: str | None = None, services: Services = Depends(get_services)) -> Envelope:
    return Envelope(data=[transfer_view(o) for o in services.transfers.overdue(warehouse_id)])


@transfer_router.get("/stats", response_model=Envelope)
async def transfer_stats(
    warehouse_id: str | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    services: Services = Depends(get_services),
) -> Envelope:
    return Envelope(data=services.transfers.statistics(warehouse_id, date_from=date_from, date_to=date_to))


@transfer_router.get("/number/{transfer_number}", response_model=Envelope)
async def get_transfer_by_number(transfer_number: str, services: Services = Depends(get_services)) -> Envelope:
    return Envelope(data=transfer_view(services.transfers.by_number(transfer_number)))


@transfer_router.get("/{transfer_id}", response_model=Envelope)
async def get_transfer(transfer_id: str, services: Services = Depends(get_services)) -> Envelope:
    return Envelope(data=transfer_view(services.transfers.get(transfer_id)))


@transfer_router.post("/{transfer_id}/approve", response_model=Envelope)
async def approve_transfer(
    transfer_id: str, body: ApproveTransferRequest, services: Services = Depends(get_services)
) -> Envelope:
    order = services.transfers.approve(transfer_id, body.approved_by)
    return Envelope(data=transfer_view(order), message="Transfer approved")


@transfer_router.post("/{transfer_id}/start", response_model=Envelope)
async def start_transfer(
    transfer_id: str, body: StartTransferRequest | None = None, services: Services = Depends(get_services)
) -> Envelope:
    order = services.transfers.start(transfer_id, assigned_to=body.assigned_to if body else None)
    return Envelope(data=transfer_view(order), message="Transfer started")


@transfer_router.post("/{transfer_id}/complete", response_model=Envelope)
async def complete_transfer(
    transfer_id: str, body: CompleteTransferRequest | None = None, services: Services = Depends(get_services)
) -> Envelope:
    order = services.transfers.complete(transfer_id, completed_by=body.completed_by if body else None)
    return Envelope(data=transfer_view(order), message=f"Transfer {order.status}")


@transfer_router.post("/{transfer_id}/cancel", response_model=Envelope)
async def cancel_transfer(
    transfer_id: str, body: CancelTransferRequest, services: Services = Depends(get_services)
) -> Envelope:
    order = services.transfers.cancel(transfer_id, body.reason, cancelled_by=body.cancelled_by)
    return Envelope(data=transfer_view(order), message="Transfer cancelled")


@transfer_router.put("/{transfer_id}/items/{index}", response_model=Envelope)
async def update_transfer_item(
    transfer_id: str, index: int, body: UpdateTransferItemRequest, services: Services = Depends(get_services)
) -> Envelope:
    changes = body.model_dump(exclude={"updated_by"}, exclude_none=True)
    order = services.transfers.update_item(transfer_id, index, updated_by=body.updated_by, **changes)
    return Envelope(data=transfer_view(order), message="Transfer item updated")


# ---------------------------------------------------------------------------
# Warehouse Router
# ---------------------------------------------------------------------------
warehouse_router = APIRouter(prefix="/warehouses", tags=["warehouses"])


def _warehouse_view(warehouse_id: str) -> dict:
    return current_domain.repository_for(Warehouse).get(warehouse_id).to_dict()


@warehouse_router.post("", status_code=201, response_model=Envelope)
async def register_warehouse(body: RegisterWarehouseRequest) -> Envelope:
    command = RegisterWarehouse(
        code=body.code,
        name=body.name,
        address=json.dumps(body.address.model_dump()) if body.address else None,
    )
    warehouse_id = dispatch(command)
    return Envelope(data=_warehouse_view(warehouse_id), message="Warehouse registered")


@warehouse_router.get("/{warehouse_id}", response_model=Envelope)
async def get_warehouse(warehouse_id: str) -> Envelope:
    return Envelope(data=_warehouse_view(warehouse_id))


@warehouse_router.post("/{warehouse_id}/locations", status_code=201, response_model=Envelope)
async def add_location(warehouse_id: str, body: AddLocationRequest) -> Envelope:
    command = AddLocation(
        warehouse_id=warehouse_id,
        code=body.code,
        zone=body.zone,
        location_type=body.location_type,
    )
    location_id = dispatch(command)
    return Envelope(data={"location_id": location_id, "warehouse": _warehouse_view(warehouse_id)})


@warehouse_router.put("/{warehouse_id}/deactivate", response_model=Envelope)
async def deactivate_warehouse(warehouse_id: str) -> Envelope:
    dispatch(DeactivateWarehouse(warehouse_id=warehouse_id))
    return Envelope(data=_warehouse_view(warehouse_id), message="Warehouse deactivated")


@warehouse_router.put("/{warehouse_id}/activate", response_model=Envelope)
async def reactivate_warehouse(warehouse_id: str) -> Envelope:
    dispatch(ReactivateWarehouse(warehouse_id=warehouse_id))
    return Envelope(data=_warehouse_view(warehouse_id), message="Warehouse reactivated")
