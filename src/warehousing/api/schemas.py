"""Pydantic request/response schemas for the Warehousing API.

These are external contracts (anti-corruption layer), kept apart from
internal Protean commands.
"""

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Response envelope
# ---------------------------------------------------------------------------
class ErrorBody(BaseModel):
    kind: str
    details: dict[str, Any] = Field(default_factory=dict)


class Envelope(BaseModel):
    success: bool = True
    data: Any = None
    message: str | None = None
    error: ErrorBody | None = None


# ---------------------------------------------------------------------------
# Shared sub-models
# ---------------------------------------------------------------------------
class AddressSchema(BaseModel):
    street: str | None = None
    city: str | None = None
    state: str | None = None
    postal_code: str | None = None
    country: str | None = None


class BatchSchema(BaseModel):
    manufacturing_date: date | None = None
    expiry_date: date | None = None
    supplier: str | None = None


class ThresholdsSchema(BaseModel):
    reorder_point: int | None = Field(default=None, ge=0)
    reorder_quantity: int | None = Field(default=None, ge=0)
    min_quantity: int | None = Field(default=None, ge=0)
    max_quantity: int | None = Field(default=None, ge=0)


class ReferenceSchema(BaseModel):
    reference_type: str | None = None
    reference_number: str | None = None


class PartySchema(BaseModel):
    party_type: str | None = None
    name: str | None = None
    contact: str | None = None


class EndpointSchema(BaseModel):
    warehouse_id: str | None = None
    location_id: str | None = None
    external_name: str | None = None
    external_address: str | None = None
    external_contact: str | None = None


class ShippingSchema(BaseModel):
    carrier: str | None = None
    tracking_number: str | None = None
    shipping_cost: float | None = Field(default=None, ge=0)


# ---------------------------------------------------------------------------
# Warehouse Request Schemas
# ---------------------------------------------------------------------------
class RegisterWarehouseRequest(BaseModel):
    code: str = Field(min_length=1, max_length=20)
    name: str = Field(min_length=1, max_length=255)
    address: AddressSchema | None = None


class AddLocationRequest(BaseModel):
    code: str = Field(min_length=1, max_length=50)
    zone: str | None = None
    location_type: str = "bin"


# ---------------------------------------------------------------------------
# Inventory Request Schemas
# ---------------------------------------------------------------------------
class CreateInventoryRequest(BaseModel):
    warehouse_id: str
    location_id: str | None = None
    sku: str = Field(min_length=1, max_length=50)
    batch_number: str | None = None
    product_name: str = Field(min_length=1, max_length=200)
    category: str | None = None
    brand: str | None = None
    batch: BatchSchema | None = None
    unit: str | None = None
    unit_cost: float = Field(default=0.0, ge=0)
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    thresholds: ThresholdsSchema | None = None
    initial_quantity: int = Field(default=0, ge=0)
    notes: str | None = None
    created_by: str | None = None


class AdjustInventoryRequest(BaseModel):
    delta: int
    reason: str = Field(min_length=1)
    actor: str | None = None


class ReserveRequest(BaseModel):
    quantity: int = Field(ge=1)
    reference: str | None = None
    actor: str | None = None


class CycleCountRequest(BaseModel):
    counted_quantity: int = Field(ge=0)
    actor: str | None = None


class UpdateStatusRequest(BaseModel):
    status: str
    reason: str | None = None
    actor: str | None = None


# ---------------------------------------------------------------------------
# Ledger Request Schemas
# ---------------------------------------------------------------------------
class InboundRequest(BaseModel):
    inventory_record_id: str | None = None
    warehouse_id: str | None = None
    location_id: str | None = None
    sku: str | None = None
    batch_number: str | None = None
    product_name: str | None = None
    category: str | None = None
    unit: str | None = None
    unit_cost: float | None = Field(default=None, ge=0)
    quantity: int = Field(ge=1)
    reason: str = Field(min_length=1)
    reference: ReferenceSchema | None = None
    party: PartySchema | None = None
    quality_status: str | None = None
    notes: str | None = None
    created_by: str | None = None


class OutboundRequest(BaseModel):
    inventory_record_id: str
    quantity: int = Field(ge=1)
    reason: str = Field(min_length=1)
    reference: ReferenceSchema | None = None
    party: PartySchema | None = None
    notes: str | None = None
    created_by: str | None = None


class AdjustmentRequest(BaseModel):
    inventory_record_id: str
    new_quantity: int = Field(ge=0)
    reason: str = Field(min_length=1)
    notes: str | None = None
    created_by: str | None = None


class CancelTransactionRequest(BaseModel):
    reason: str = Field(min_length=1)
    cancelled_by: str | None = None


# ---------------------------------------------------------------------------
# Transfer Request Schemas
# ---------------------------------------------------------------------------
class TransferItemSchema(BaseModel):
    sku: str = Field(min_length=1, max_length=50)
    product_name: str | None = None
    batch_number: str | None = None
    requested_quantity: int = Field(ge=1)
    unit: str | None = None
    unit_cost: float | None = Field(default=None, ge=0)
    notes: str | None = None


class CreateTransferRequest(BaseModel):
    transfer_type: str
    source: EndpointSchema | None = None
    destination: EndpointSchema | None = None
    items: list[TransferItemSchema] = Field(min_length=1)
    priority: str | None = None
    requested_by: str | None = None
    expected_delivery: datetime | None = None
    shipping: ShippingSchema | None = None
    notes: str | None = None


class ApproveTransferRequest(BaseModel):
    approved_by: str = Field(min_length=1)


class StartTransferRequest(BaseModel):
    assigned_to: str | None = None


class CompleteTransferRequest(BaseModel):
    completed_by: str | None = None


class CancelTransferRequest(BaseModel):
    reason: str = Field(min_length=1)
    cancelled_by: str | None = None


class UpdateTransferItemRequest(BaseModel):
    requested_quantity: int | None = None
    transferred_quantity: int | None = None
    status: str | None = None
    notes: str | None = None
    updated_by: str | None = None
