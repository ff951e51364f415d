"""Tests for LedgerEntry, its per-type policies and number formatting."""

import pytest
from protean.exceptions import ValidationError
from warehousing.ledger.entry import (
    EntryStatus,
    LedgerQuantity,
    TransactionType,
    compensation_for,
    policy_for,
    post_entry,
    prefix_for,
)
from warehousing.ledger.events import LedgerEntryCancelled, LedgerEntryRecorded
from warehousing.ledger.sequence import counter_key, format_number
from warehousing.shared.errors import InsufficientQuantityError, InvalidStateTransitionError
from warehousing.stock.inventory_record import InventoryRecord


def _make_record(**overrides):
    defaults = {
        "warehouse_id": "wh-001",
        "location_id": "loc-001",
        "sku": "SKU-001",
        "product_name": "Widget",
        "unit_cost": 4.0,
    }
    defaults.update(overrides)
    return InventoryRecord.open(**defaults)


class TestLedgerQuantity:
    def test_current_equals_previous_plus_change(self):
        q = LedgerQuantity(previous=100, change=-40, current=60)
        assert q.current == 60

    def test_inconsistent_snapshot_rejected(self):
        with pytest.raises(ValidationError):
            LedgerQuantity(previous=100, change=-40, current=70)


class TestEntryPolicies:
    @pytest.mark.parametrize(
        "transaction_type, prefix",
        [
            (TransactionType.INBOUND, "IN"),
            (TransactionType.OUTBOUND, "OUT"),
            (TransactionType.ADJUSTMENT, "ADJ"),
            (TransactionType.TRANSFER_IN, "TXN"),
            (TransactionType.TRANSFER_OUT, "TXN"),
        ],
    )
    def test_prefixes(self, transaction_type, prefix):
        assert prefix_for(transaction_type) == prefix

    def test_prefix_accepts_plain_strings(self):
        assert prefix_for("OUTBOUND") == "OUT"

    def test_unknown_type_rejected(self):
        with pytest.raises(ValidationError):
            policy_for("TELEPORT")

    def test_compensation_types(self):
        assert compensation_for(TransactionType.OUTBOUND) == TransactionType.TRANSFER_IN
        assert compensation_for(TransactionType.INBOUND) == TransactionType.TRANSFER_OUT
        assert compensation_for(TransactionType.ADJUSTMENT) == TransactionType.ADJUSTMENT

    def test_outbound_sign_is_negative(self):
        assert policy_for(TransactionType.OUTBOUND).signed_change(40) == -40

    def test_inbound_rejects_negative_quantity(self):
        with pytest.raises(ValidationError):
            policy_for(TransactionType.INBOUND).signed_change(-5)

    def test_zero_quantity_rejected_for_signed_types(self):
        with pytest.raises(ValidationError):
            policy_for(TransactionType.OUTBOUND).signed_change(0)

    def test_adjustment_keeps_sign(self):
        assert policy_for(TransactionType.ADJUSTMENT).signed_change(-7) == -7


class TestNumbering:
    def test_format_number(self):
        assert format_number("IN", "20261019", 1) == "IN202610190001"

    def test_format_number_custom_width(self):
        assert format_number("TRF", "20261019", 42, width=6) == "TRF20261019000042"

    def test_counter_key(self):
        assert counter_key("OUT", "20261019") == "OUT-20261019"


class TestPostEntry:
    def test_inbound_then_outbound_snapshots(self):
        record = _make_record()
        inbound = post_entry(record, TransactionType.INBOUND, 100, "IN202610190001", "Receipt")
        assert (inbound.quantity.previous, inbound.quantity.change, inbound.quantity.current) == (0, 100, 100)

        outbound = post_entry(record, TransactionType.OUTBOUND, 40, "OUT202610190001", "Shipment")
        assert (outbound.quantity.previous, outbound.quantity.change, outbound.quantity.current) == (100, -40, 60)

        with pytest.raises(InsufficientQuantityError):
            post_entry(record, TransactionType.OUTBOUND, 100, "OUT202610190002", "Shipment")
        assert record.available == 60

    def test_entry_copies_record_identity(self):
        record = _make_record(batch_number="B-7")
        entry = post_entry(record, TransactionType.INBOUND, 5, "IN202610190001", "Receipt")
        assert entry.inventory_record_id == str(record.id)
        assert entry.sku == "SKU-001"
        assert entry.batch_number == "B-7"
        assert entry.status == EntryStatus.CONFIRMED.value

    def test_total_cost_uses_record_cost_by_default(self):
        record = _make_record()
        entry = post_entry(record, TransactionType.INBOUND, 5, "IN202610190001", "Receipt")
        assert entry.unit_cost == 4.0
        assert entry.total_cost == 20.0

    def test_details_override_unit_cost_and_reference(self):
        record = _make_record()
        entry = post_entry(
            record,
            TransactionType.INBOUND,
            5,
            "IN202610190001",
            "Receipt",
            details={"unit_cost": 3.0, "reference_type": "PURCHASE_ORDER", "reference_number": "PO-9"},
        )
        assert entry.total_cost == 15.0
        assert entry.reference.reference_type == "PURCHASE_ORDER"
        assert entry.reference.reference_number == "PO-9"

    def test_reason_is_required(self):
        record = _make_record()
        with pytest.raises(ValidationError):
            post_entry(record, TransactionType.INBOUND, 5, "IN202610190001", "")

    def test_clamped_adjustment_stops_at_zero(self):
        record = _make_record()
        post_entry(record, TransactionType.INBOUND, 10, "IN202610190001", "Receipt")
        entry = post_entry(record, TransactionType.ADJUSTMENT, -25, "ADJ202610190001", "Shrinkage", clamp=True)
        assert entry.quantity.change == -10
        assert record.available == 0

    def test_unclamped_adjustment_below_zero_fails(self):
        record = _make_record()
        with pytest.raises(InsufficientQuantityError):
            post_entry(record, TransactionType.ADJUSTMENT, -1, "ADJ202610190001", "Shrinkage")

    def test_direction(self):
        record = _make_record()
        entry = post_entry(record, TransactionType.INBOUND, 3, "IN202610190001", "Receipt")
        assert entry.direction == "IN"

    def test_recorded_event(self):
        record = _make_record()
        entry = post_entry(record, TransactionType.INBOUND, 3, "IN202610190001", "Receipt")
        events = [e for e in entry._events if isinstance(e, LedgerEntryRecorded)]
        assert events[0].transaction_number == "IN202610190001"
        assert events[0].current_quantity == 3


class TestCancel:
    def _entry(self):
        record = _make_record()
        return post_entry(record, TransactionType.INBOUND, 3, "IN202610190001", "Receipt")

    def test_cancel_marks_cancelled(self):
        entry = self._entry()
        entry.cancel("Keyed twice", cancelled_by="clerk", compensating_entry_id="entry-2")
        assert entry.status == EntryStatus.CANCELLED.value
        assert entry.compensated_by_entry_id == "entry-2"
        assert entry.quantity.change == 3
        assert any(isinstance(e, LedgerEntryCancelled) for e in entry._events)

    def test_cancel_twice_is_invalid(self):
        entry = self._entry()
        entry.cancel("Keyed twice")
        with pytest.raises(InvalidStateTransitionError):
            entry.cancel("Again")

    def test_cancel_requires_reason(self):
        with pytest.raises(ValidationError):
            self._entry().cancel("")

    def test_compensation_cannot_be_cancelled(self):
        record = _make_record()
        post_entry(record, TransactionType.INBOUND, 3, "IN202610190001", "Receipt")
        compensation = post_entry(
            record,
            TransactionType.TRANSFER_OUT,
            3,
            "TXN202610190001",
            "Reversal",
            compensates_entry_id="entry-1",
        )
        assert compensation.is_compensation
        assert not compensation.can_cancel()
        with pytest.raises(InvalidStateTransitionError):
            compensation.cancel("No")
