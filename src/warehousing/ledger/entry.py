"""LedgerEntry aggregate (CQRS): one immutable quantity movement.

Every change to an InventoryRecord's ``available`` bucket produces exactly one
entry carrying a before/after snapshot::

    quantity.current == quantity.previous + quantity.change

Entries are append-only. The only mutation ever applied after creation is the
move to CANCELLED; restitution for a cancelled movement is a new, compensating
entry rather than a rewrite of history.

Each transaction type is bound to an ``EntryPolicy`` that fixes its number
prefix, the sign of its change, whether it must be covered by available
stock, and the type used to compensate it.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, Identifier, Integer, String, Text, ValueObject

from warehousing.domain import warehousing
from warehousing.ledger.events import LedgerEntryCancelled, LedgerEntryRecorded
from warehousing.shared.errors import insufficient, invalid_transition
from warehousing.stock.inventory_record import InventoryRecord, MovementType


class TransactionType(Enum):
    INBOUND = "INBOUND"
    OUTBOUND = "OUTBOUND"
    ADJUSTMENT = "ADJUSTMENT"
    TRANSFER_IN = "TRANSFER_IN"
    TRANSFER_OUT = "TRANSFER_OUT"


class EntryStatus(Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"


class ReferenceType(Enum):
    PURCHASE_ORDER = "PURCHASE_ORDER"
    SALES_ORDER = "SALES_ORDER"
    TRANSFER = "TRANSFER"
    RETURN = "RETURN"
    ADJUSTMENT = "ADJUSTMENT"
    PRODUCTION = "PRODUCTION"
    OTHER = "OTHER"


class PartyType(Enum):
    SUPPLIER = "SUPPLIER"
    CUSTOMER = "CUSTOMER"
    INTERNAL = "INTERNAL"
    OTHER = "OTHER"


class QualityStatus(Enum):
    GOOD = "GOOD"
    DAMAGED = "DAMAGED"
    EXPIRED = "EXPIRED"
    QUARANTINE = "QUARANTINE"


_CANCELLABLE = {EntryStatus.PENDING, EntryStatus.CONFIRMED}


# ---------------------------------------------------------------------------
# Per-type policies
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class EntryPolicy:
    prefix: str
    sign: int  # +1 credit, -1 debit, 0 either direction
    requires_stock: bool
    movement_type: str
    compensation: str

    def signed_change(self, quantity: int) -> int:
        if self.sign == 0:
            return quantity
        if quantity is None or quantity == 0:
            raise ValidationError({"quantity": ["Quantity must be non-zero"]})
        if quantity < 0 and self.sign > 0:
            raise ValidationError({"quantity": ["Quantity must be positive"]})
        return self.sign * abs(quantity)


_POLICIES = {
    TransactionType.INBOUND: EntryPolicy("IN", +1, False, MovementType.RECEIPT.value, "TRANSFER_OUT"),
    TransactionType.OUTBOUND: EntryPolicy("OUT", -1, True, MovementType.SHIPMENT.value, "TRANSFER_IN"),
    TransactionType.ADJUSTMENT: EntryPolicy("ADJ", 0, False, MovementType.ADJUSTMENT.value, "ADJUSTMENT"),
    TransactionType.TRANSFER_IN: EntryPolicy("TXN", +1, False, MovementType.TRANSFER_IN.value, "TRANSFER_OUT"),
    TransactionType.TRANSFER_OUT: EntryPolicy("TXN", -1, True, MovementType.TRANSFER_OUT.value, "TRANSFER_IN"),
}


def policy_for(transaction_type: TransactionType | str) -> EntryPolicy:
    try:
        return _POLICIES[TransactionType(transaction_type)]
    except ValueError as exc:
        raise ValidationError({"transaction_type": [f"Unknown transaction type: {transaction_type}"]}) from exc


def prefix_for(transaction_type: TransactionType | str) -> str:
    return policy_for(transaction_type).prefix


def compensation_for(transaction_type: TransactionType | str) -> TransactionType:
    return TransactionType(policy_for(transaction_type).compensation)


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@warehousing.value_object(part_of="LedgerEntry")
class LedgerQuantity:
    """Before/after snapshot of the record's available quantity."""

    previous = Integer(default=0)
    change = Integer(default=0)
    current = Integer(default=0)
    unit = String(max_length=20)

    @invariant.post
    def current_is_previous_plus_change(self):
        if (self.current or 0) != (self.previous or 0) + (self.change or 0):
            raise ValidationError({"quantity": ["Current quantity must equal previous quantity plus change"]})


@warehousing.value_object(part_of="LedgerEntry")
class LedgerReference:
    reference_type = String(choices=ReferenceType, default=ReferenceType.OTHER.value)
    reference_number = String(max_length=100)
    transfer_id = Identifier()


@warehousing.value_object(part_of="LedgerEntry")
class LedgerParty:
    party_type = String(choices=PartyType, default=PartyType.OTHER.value)
    name = String(max_length=200)
    contact = String(max_length=200)


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@warehousing.aggregate
class LedgerEntry:
    transaction_number = String(required=True, max_length=30, unique=True)
    transaction_type = String(required=True, choices=TransactionType)
    inventory_record_id = Identifier(required=True)
    warehouse_id = Identifier(required=True)
    location_id = Identifier()
    sku = String(required=True, max_length=50)
    batch_number = String(max_length=50)
    quantity = ValueObject(LedgerQuantity)
    unit_cost = Float(min_value=0.0, default=0.0)
    currency = String(max_length=3, default="USD")
    total_cost = Float(min_value=0.0, default=0.0)
    reference = ValueObject(LedgerReference)
    party = ValueObject(LedgerParty)
    quality_status = String(choices=QualityStatus, default=QualityStatus.GOOD.value)
    reason = String(required=True, max_length=500)
    notes = Text()
    status = String(choices=EntryStatus, default=EntryStatus.CONFIRMED.value)
    compensates_entry_id = Identifier()
    compensated_by_entry_id = Identifier()
    cancellation_reason = String(max_length=500)
    cancelled_by = String(max_length=100)
    cancelled_at = DateTime()
    created_by = String(max_length=100)
    transaction_date = DateTime()
    created_at = DateTime()

    @property
    def change(self) -> int:
        return self.quantity.change or 0

    @property
    def direction(self) -> str:
        return "IN" if self.change >= 0 else "OUT"

    @property
    def is_compensation(self) -> bool:
        return bool(self.compensates_entry_id)

    def can_cancel(self) -> bool:
        return EntryStatus(self.status) in _CANCELLABLE and not self.is_compensation

    def assert_cancellable(self) -> None:
        current = EntryStatus(self.status)
        if current not in _CANCELLABLE:
            raise invalid_transition("transaction", current.value, "cancel")
        if self.is_compensation:
            raise invalid_transition("compensating transaction", current.value, "cancel")

    def cancel(self, reason: str, cancelled_by: str | None = None, compensating_entry_id: str | None = None) -> None:
        """Mark the entry CANCELLED. Quantities recorded on it are never touched."""
        if not reason:
            raise ValidationError({"reason": ["A cancellation reason is required"]})
        self.assert_cancellable()

        now = datetime.now(UTC)
        self.status = EntryStatus.CANCELLED.value
        self.cancellation_reason = reason
        self.cancelled_by = cancelled_by
        self.cancelled_at = now
        self.compensated_by_entry_id = compensating_entry_id
        self.raise_(
            LedgerEntryCancelled(
                entry_id=str(self.id),
                transaction_number=self.transaction_number,
                reason=reason,
                cancelled_by=cancelled_by,
                compensating_entry_id=compensating_entry_id,
                cancelled_at=now,
            )
        )


def post_entry(
    record: InventoryRecord,
    transaction_type: TransactionType | str,
    quantity: int,
    transaction_number: str,
    reason: str,
    created_by: str | None = None,
    clamp: bool = False,
    details: dict | None = None,
    compensates_entry_id: str | None = None,
) -> LedgerEntry:
    """Apply a movement to ``record`` and return the ledger entry describing it.

    The caller is responsible for persisting both aggregates in one unit of work.
    """
    if not reason:
        raise ValidationError({"reason": ["A reason is required for every transaction"]})

    transaction_type = TransactionType(transaction_type)
    policy = policy_for(transaction_type)
    change = policy.signed_change(quantity)

    if clamp and record.available + change < 0:
        change = -record.available
    if record.available + change < 0:
        if policy.requires_stock or change < 0:
            raise insufficient("quantity", abs(change), record.available)

    details = details or {}
    unit_cost = details.get("unit_cost")
    if unit_cost is None:
        unit_cost = record.unit_cost or 0.0
    reference_number = details.get("reference_number")

    previous, current = record.apply_ledger_change(
        change,
        transaction_number=transaction_number,
        transaction_type=transaction_type.value,
        movement_type=policy.movement_type,
        reference=reference_number,
        performed_by=created_by,
    )

    now = datetime.now(UTC)
    entry = LedgerEntry(
        transaction_number=transaction_number,
        transaction_type=transaction_type.value,
        inventory_record_id=str(record.id),
        warehouse_id=str(record.warehouse_id),
        location_id=str(record.location_id) if record.location_id else None,
        sku=record.sku,
        batch_number=record.batch_number,
        quantity=LedgerQuantity(previous=previous, change=change, current=current, unit=record.unit),
        unit_cost=unit_cost,
        currency=record.currency,
        total_cost=abs(change) * unit_cost,
        reference=LedgerReference(
            reference_type=details.get("reference_type") or ReferenceType.OTHER.value,
            reference_number=reference_number,
            transfer_id=details.get("transfer_id"),
        ),
        party=LedgerParty(
            party_type=details.get("party_type") or PartyType.OTHER.value,
            name=details.get("party_name"),
            contact=details.get("party_contact"),
        ),
        quality_status=details.get("quality_status") or QualityStatus.GOOD.value,
        reason=reason,
        notes=details.get("notes"),
        compensates_entry_id=compensates_entry_id,
        created_by=created_by,
        transaction_date=details.get("transaction_date") or now,
        created_at=now,
    )
    entry.raise_(
        LedgerEntryRecorded(
            entry_id=str(entry.id),
            transaction_number=transaction_number,
            transaction_type=transaction_type.value,
            inventory_record_id=str(record.id),
            warehouse_id=str(record.warehouse_id),
            sku=record.sku,
            previous_quantity=previous,
            change=change,
            current_quantity=current,
            total_cost=entry.total_cost,
            reason=reason,
            created_by=created_by,
            compensates_entry_id=compensates_entry_id,
            recorded_at=now,
        )
    )
    return entry
