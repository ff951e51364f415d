"""Service graph for the warehousing context.

All services share one lock registry so that every path which touches an
InventoryRecord (ledger writes, reservations, transfers) serialises on the
same per-record lock.
"""

import threading
from dataclasses import dataclass

from warehousing.ledger.sequence import SequenceGenerator
from warehousing.ledger.service import TransactionLedger
from warehousing.queries import InventoryQueries
from warehousing.shared.locking import RecordLocks
from warehousing.stock.reservation import ReservationManager
from warehousing.stock.store import InventoryRecordStore
from warehousing.transfer.orchestrator import TransferOrchestrator
from warehousing.warehouse.references import ReferenceValidator


@dataclass(frozen=True)
class Services:
    locks: RecordLocks
    sequences: SequenceGenerator
    references: ReferenceValidator
    ledger: TransactionLedger
    inventory: InventoryRecordStore
    reservations: ReservationManager
    transfers: TransferOrchestrator
    queries: InventoryQueries


def build_services() -> Services:
    locks = RecordLocks()
    sequences = SequenceGenerator(locks)
    references = ReferenceValidator()
    ledger = TransactionLedger(locks, sequences, references)
    return Services(
        locks=locks,
        sequences=sequences,
        references=references,
        ledger=ledger,
        inventory=InventoryRecordStore(locks, sequences, ledger, references),
        reservations=ReservationManager(locks),
        transfers=TransferOrchestrator(locks, sequences, ledger, references),
        queries=InventoryQueries(),
    )


_services: Services | None = None
_build_lock = threading.Lock()


def get_services() -> Services:
    """Process-wide service graph, built on first use."""
    global _services
    with _build_lock:
        if _services is None:
            _services = build_services()
    return _services
