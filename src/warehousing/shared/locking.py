"""Per-key lock registry used to serialise read-check-write cycles.

Every operation that reads an InventoryRecord's quantity buckets and writes
them back holds the record's lock for the whole command, including the
unit-of-work commit. Operations spanning several records take the locks in
sorted key order so two such operations can never deadlock each other.

A key's lock lives only while some caller holds or waits for it, so the
registry stays as small as the number of keys currently in use.
"""

import threading
from collections.abc import Iterator
from contextlib import ExitStack, contextmanager


def natural_key(warehouse_id, location_id, sku, batch_number) -> str:
    """Lock key for a record that may not exist yet."""
    parts = (warehouse_id, location_id, (sku or "").strip().upper(), batch_number)
    return "key:" + "|".join(str(part or "") for part in parts)


class _Slot:
    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = threading.RLock()
        self.users = 0


class RecordLocks:
    def __init__(self):
        self._guard = threading.Lock()
        self._slots: dict[str, _Slot] = {}

    @contextmanager
    def _holding(self, key: str) -> Iterator[None]:
        with self._guard:
            slot = self._slots.get(key)
            if slot is None:
                slot = self._slots[key] = _Slot()
            slot.users += 1
        try:
            with slot.lock:
                yield
        finally:
            with self._guard:
                slot.users -= 1
                if slot.users == 0:
                    del self._slots[key]

    @contextmanager
    def hold(self, *keys: str) -> Iterator[None]:
        """Hold the locks for all given keys (duplicates and blanks ignored)."""
        with ExitStack() as stack:
            for key in sorted({str(k) for k in keys if k}):
                stack.enter_context(self._holding(key))
            yield

    def __len__(self) -> int:
        return len(self._slots)
