"""InventoryRecord aggregate (CQRS): stock of one SKU/batch at one location.

A record is identified by (warehouse_id, location_id, sku, batch_number) and
splits its quantity into four buckets:

    available  - free to be sold, reserved or shipped
    reserved   - earmarked for an order or an approved transfer
    committed  - allocated to a shipment in progress
    damaged    - physically present but unsellable

All buckets are non-negative integers. Changes to ``available`` are only ever
made through the transaction ledger (see ``warehousing.ledger``); reserve and
release move quantity between ``available`` and ``reserved`` and are logged as
movement events instead.

Derived values (total quantity, available for sale, stock status, expiry
figures) are computed on read and never stored.
"""

from datetime import UTC, date, datetime, timedelta
from enum import Enum

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import Date, DateTime, Float, Identifier, Integer, String, Text, ValueObject

from warehousing.domain import warehousing
from warehousing.shared.errors import ConflictError, insufficient
from warehousing.shared.settings import default_currency, expiry_warning_days
from warehousing.stock.events import (
    CycleCountRecorded,
    InventoryRecordCreated,
    InventoryStatusChanged,
    LowStockDetected,
    ReservationReleased,
    StockLevelChanged,
    StockReserved,
    ThresholdsUpdated,
)


class InventoryStatus(Enum):
    ACTIVE = "active"
    ON_HOLD = "on_hold"
    QUARANTINE = "quarantine"
    EXPIRED = "expired"
    DAMAGED = "damaged"
    RECALLED = "recalled"


class UnitOfMeasure(Enum):
    PCS = "pcs"
    KG = "kg"
    LBS = "lbs"
    TON = "ton"
    LITER = "liter"
    GALLON = "gallon"
    BOX = "box"
    PALLET = "pallet"
    CASE = "case"


class StockStatus(Enum):
    OUT_OF_STOCK = "out_of_stock"
    CRITICAL = "critical"
    LOW = "low"
    ADEQUATE = "adequate"


class MovementType(Enum):
    RECEIPT = "receipt"
    SHIPMENT = "shipment"
    ADJUSTMENT = "adjustment"
    CYCLE_COUNT = "cycle_count"
    TRANSFER_IN = "transfer_in"
    TRANSFER_OUT = "transfer_out"
    RESERVE = "reserve"
    RELEASE = "release"


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@warehousing.value_object(part_of="InventoryRecord")
class StockQuantity:
    """Snapshot of the four quantity buckets."""

    available = Integer(min_value=0, default=0)
    reserved = Integer(min_value=0, default=0)
    committed = Integer(min_value=0, default=0)
    damaged = Integer(min_value=0, default=0)

    @property
    def total(self) -> int:
        return (self.available or 0) + (self.reserved or 0) + (self.committed or 0) + (self.damaged or 0)

    def replace(self, **changes) -> "StockQuantity":
        values = {
            "available": self.available or 0,
            "reserved": self.reserved or 0,
            "committed": self.committed or 0,
            "damaged": self.damaged or 0,
        }
        values.update(changes)
        for bucket, value in values.items():
            if value < 0:
                raise ValidationError({bucket: [f"{bucket.capitalize()} quantity cannot be negative"]})
        return StockQuantity(**values)


@warehousing.value_object(part_of="InventoryRecord")
class BatchInfo:
    manufacturing_date = Date()
    expiry_date = Date()
    supplier = String(max_length=200)

    @invariant.post
    def expiry_must_follow_manufacture(self):
        if self.expiry_date and self.manufacturing_date and self.expiry_date <= self.manufacturing_date:
            raise ValidationError({"expiry_date": ["Expiry date must be after manufacturing date"]})


@warehousing.value_object(part_of="InventoryRecord")
class StockThresholds:
    reorder_point = Integer(min_value=0, default=0)
    reorder_quantity = Integer(min_value=0, default=0)
    min_quantity = Integer(min_value=0, default=0)
    max_quantity = Integer(min_value=0)


@warehousing.value_object(part_of="InventoryRecord")
class LastMovement:
    movement_type = String(choices=MovementType)
    quantity = Integer()
    reference = String(max_length=255)
    performed_by = String(max_length=100)
    occurred_at = DateTime()


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@warehousing.aggregate
class InventoryRecord:
    warehouse_id = Identifier(required=True)
    location_id = Identifier()
    sku = String(required=True, max_length=50)
    batch_number = String(max_length=50)
    product_name = String(required=True, max_length=200)
    category = String(max_length=100)
    brand = String(max_length=100)
    batch = ValueObject(BatchInfo)
    quantity = ValueObject(StockQuantity)
    unit = String(choices=UnitOfMeasure, default=UnitOfMeasure.PCS.value)
    unit_cost = Float(min_value=0.0, default=0.0)
    currency = String(max_length=3, default="USD")
    thresholds = ValueObject(StockThresholds)
    status = String(choices=InventoryStatus, default=InventoryStatus.ACTIVE.value)
    last_movement = ValueObject(LastMovement)
    last_cycle_count = DateTime()
    notes = Text()
    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def quantity_buckets_must_be_present(self):
        if self.quantity is None:
            raise ValidationError({"quantity": ["Quantity buckets are required"]})

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def open(
        cls,
        warehouse_id: str,
        sku: str,
        product_name: str,
        location_id: str | None = None,
        batch_number: str | None = None,
        category: str | None = None,
        brand: str | None = None,
        batch: dict | None = None,
        unit: str = UnitOfMeasure.PCS.value,
        unit_cost: float = 0.0,
        currency: str | None = None,
        thresholds: dict | None = None,
        status: str = InventoryStatus.ACTIVE.value,
        notes: str | None = None,
    ):
        """Open an empty record. Initial stock arrives through an INBOUND ledger entry."""
        now = datetime.now(UTC)
        record = cls(
            warehouse_id=warehouse_id,
            location_id=location_id,
            sku=sku.strip().upper(),
            batch_number=batch_number or None,
            product_name=product_name,
            category=category,
            brand=brand,
            batch=BatchInfo(**batch) if batch else None,
            quantity=StockQuantity(),
            unit=unit or UnitOfMeasure.PCS.value,
            unit_cost=unit_cost or 0.0,
            currency=(currency or default_currency()).upper(),
            thresholds=StockThresholds(**(thresholds or {})),
            status=status or InventoryStatus.ACTIVE.value,
            notes=notes,
            created_at=now,
            updated_at=now,
        )
        record.validate_state()
        record.raise_(
            InventoryRecordCreated(
                inventory_record_id=str(record.id),
                warehouse_id=str(warehouse_id),
                location_id=str(location_id) if location_id else None,
                sku=record.sku,
                batch_number=record.batch_number,
                unit=record.unit,
                created_at=now,
            )
        )
        return record

    # -------------------------------------------------------------------
    # Derived values
    # -------------------------------------------------------------------
    @property
    def natural_key(self) -> tuple:
        return (str(self.warehouse_id), str(self.location_id or ""), self.sku, self.batch_number or "")

    @property
    def available(self) -> int:
        return self.quantity.available or 0

    @property
    def reserved(self) -> int:
        return self.quantity.reserved or 0

    @property
    def total_quantity(self) -> int:
        return self.quantity.total

    @property
    def available_for_sale(self) -> int:
        """Stock not yet earmarked. Reserving already moved reserved units out of available."""
        return self.available

    @property
    def total_value(self) -> float:
        return self.total_quantity * (self.unit_cost or 0.0)

    @property
    def expiry_date(self) -> date | None:
        return self.batch.expiry_date if self.batch else None

    @property
    def stock_status(self) -> str:
        thresholds = self.thresholds or StockThresholds()
        if self.available <= 0:
            return StockStatus.OUT_OF_STOCK.value
        if self.available <= (thresholds.min_quantity or 0):
            return StockStatus.CRITICAL.value
        if self.available <= (thresholds.reorder_point or 0):
            return StockStatus.LOW.value
        return StockStatus.ADEQUATE.value

    @property
    def days_until_expiry(self) -> int | None:
        if self.expiry_date is None:
            return None
        return (self.expiry_date - datetime.now(UTC).date()).days

    @property
    def is_expired(self) -> bool:
        return self.expiry_date is not None and self.expiry_date <= datetime.now(UTC).date()

    def is_expiring_soon(self, days: int | None = None) -> bool:
        if self.expiry_date is None:
            return False
        horizon = datetime.now(UTC).date() + timedelta(days=expiry_warning_days() if days is None else days)
        return self.expiry_date <= horizon

    def can_reserve(self, quantity: int) -> bool:
        return self.available_for_sale >= quantity

    def is_low_stock(self) -> bool:
        thresholds = self.thresholds or StockThresholds()
        return self.status == InventoryStatus.ACTIVE.value and self.available <= (thresholds.reorder_point or 0)

    # -------------------------------------------------------------------
    # Explicit state checks
    # -------------------------------------------------------------------
    def validate_state(self) -> None:
        """Checks run before a record is persisted after create or a status change."""
        if self.status == InventoryStatus.ACTIVE.value and self.is_expired:
            raise ValidationError({"status": ["An expired batch cannot be active"]})

    def ensure_removable(self) -> None:
        if self.reserved > 0 or (self.quantity.committed or 0) > 0:
            raise ConflictError(
                {"inventory": ["Cannot delete inventory record with reserved or committed quantities"]}
            )
        if self.total_quantity > 0:
            raise ConflictError({"inventory": ["Cannot delete inventory record while stock is held"]})

    # -------------------------------------------------------------------
    # Ledger-driven changes to available
    # -------------------------------------------------------------------
    def apply_ledger_change(
        self,
        change: int,
        transaction_number: str,
        transaction_type: str,
        movement_type: str,
        reference: str | None = None,
        performed_by: str | None = None,
    ) -> tuple[int, int]:
        """Apply a signed change to ``available`` and return (previous, current)."""
        previous = self.available
        current = previous + change
        if current < 0:
            raise insufficient("quantity", abs(change), previous)

        was_low = self.is_low_stock()
        now = datetime.now(UTC)
        self.quantity = self.quantity.replace(available=current)
        self.last_movement = LastMovement(
            movement_type=movement_type,
            quantity=change,
            reference=reference,
            performed_by=performed_by,
            occurred_at=now,
        )
        self.updated_at = now
        self.raise_(
            StockLevelChanged(
                inventory_record_id=str(self.id),
                transaction_number=transaction_number,
                transaction_type=transaction_type,
                previous_available=previous,
                change=change,
                new_available=current,
                performed_by=performed_by,
                changed_at=now,
            )
        )
        if not was_low and self.is_low_stock():
            self.raise_(
                LowStockDetected(
                    inventory_record_id=str(self.id),
                    sku=self.sku,
                    warehouse_id=str(self.warehouse_id),
                    available=current,
                    reorder_point=self.thresholds.reorder_point or 0,
                    reorder_quantity=self.thresholds.reorder_quantity or 0,
                    detected_at=now,
                )
            )
        return previous, current

    def record_cycle_count(self, expected: int, counted: int, counted_by: str | None = None) -> None:
        now = datetime.now(UTC)
        self.last_cycle_count = now
        self.updated_at = now
        self.raise_(
            CycleCountRecorded(
                inventory_record_id=str(self.id),
                expected_quantity=expected,
                counted_quantity=counted,
                variance=counted - expected,
                counted_by=counted_by,
                counted_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Reservations
    # -------------------------------------------------------------------
    def reserve(self, quantity: int, reference: str | None = None, reserved_by: str | None = None) -> None:
        """Move ``quantity`` from available to reserved."""
        if quantity is None or quantity <= 0:
            raise ValidationError({"quantity": ["Reservation quantity must be positive"]})
        if not self.can_reserve(quantity):
            raise insufficient("quantity", quantity, self.available_for_sale)

        now = datetime.now(UTC)
        self.quantity = self.quantity.replace(available=self.available - quantity, reserved=self.reserved + quantity)
        self.last_movement = LastMovement(
            movement_type=MovementType.RESERVE.value,
            quantity=quantity,
            reference=reference,
            performed_by=reserved_by,
            occurred_at=now,
        )
        self.updated_at = now
        self.raise_(
            StockReserved(
                inventory_record_id=str(self.id),
                quantity=quantity,
                new_available=self.available,
                new_reserved=self.reserved,
                reference=reference,
                reserved_by=reserved_by,
                reserved_at=now,
            )
        )

    def release_reservation(self, quantity: int, reference: str | None = None, released_by: str | None = None) -> None:
        """Return ``quantity`` from reserved to available."""
        if quantity is None or quantity <= 0:
            raise ValidationError({"quantity": ["Release quantity must be positive"]})
        if quantity > self.reserved:
            raise ValidationError(
                {"quantity": [f"Cannot release more than reserved quantity. Reserved: {self.reserved}"]}
            )

        now = datetime.now(UTC)
        self.quantity = self.quantity.replace(available=self.available + quantity, reserved=self.reserved - quantity)
        self.last_movement = LastMovement(
            movement_type=MovementType.RELEASE.value,
            quantity=quantity,
            reference=reference,
            performed_by=released_by,
            occurred_at=now,
        )
        self.updated_at = now
        self.raise_(
            ReservationReleased(
                inventory_record_id=str(self.id),
                quantity=quantity,
                new_available=self.available,
                new_reserved=self.reserved,
                reference=reference,
                released_by=released_by,
                released_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Administration
    # -------------------------------------------------------------------
    def change_status(self, status: str, reason: str | None = None, changed_by: str | None = None) -> None:
        """Set any status administratively; an expired batch may not be made active."""
        try:
            target = InventoryStatus(status)
        except ValueError as exc:
            raise ValidationError({"status": [f"Unknown inventory status: {status}"]}) from exc
        if target == InventoryStatus.ACTIVE and self.is_expired:
            raise ValidationError({"status": ["An expired batch cannot be active"]})

        previous = self.status
        self.status = target.value
        self.updated_at = datetime.now(UTC)
        self.raise_(
            InventoryStatusChanged(
                inventory_record_id=str(self.id),
                previous_status=previous,
                new_status=self.status,
                reason=reason,
                changed_by=changed_by,
                changed_at=self.updated_at,
            )
        )

    def update_thresholds(self, **values) -> None:
        current = self.thresholds or StockThresholds()
        merged = {
            "reorder_point": current.reorder_point or 0,
            "reorder_quantity": current.reorder_quantity or 0,
            "min_quantity": current.min_quantity or 0,
            "max_quantity": current.max_quantity,
        }
        merged.update({k: v for k, v in values.items() if v is not None})
        if merged["max_quantity"] is not None and merged["max_quantity"] < merged["min_quantity"]:
            raise ValidationError({"max_quantity": ["Maximum quantity cannot be below minimum quantity"]})

        self.thresholds = StockThresholds(**merged)
        self.updated_at = datetime.now(UTC)
        self.raise_(
            ThresholdsUpdated(
                inventory_record_id=str(self.id),
                reorder_point=merged["reorder_point"],
                reorder_quantity=merged["reorder_quantity"],
                min_quantity=merged["min_quantity"],
                max_quantity=merged["max_quantity"],
                updated_at=self.updated_at,
            )
        )
