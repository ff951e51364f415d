"""Daily sequence numbers for ledger entries and transfer orders.

Numbers look like ``{PREFIX}{YYYYMMDD}{NNNN}`` (``IN202610190001``). Each
(prefix, day) pair owns a ``SequenceCounter`` aggregate; the generator
increments it while holding that pair's lock, so numbers are unique and
strictly increasing without ever scanning previously issued numbers.

``allocate()`` hands out the next number for the duration of a ``with`` block
and gives it back if the block raises, so a write that is rejected does not
leave a hole in the day's sequence.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, date, datetime

from protean.exceptions import ObjectNotFoundError
from protean.fields import Identifier, Integer, String
from protean.utils.globals import current_domain

from warehousing.domain import logger, warehousing
from warehousing.shared.locking import RecordLocks
from warehousing.shared.settings import sequence_width


@warehousing.aggregate
class SequenceCounter:
    key = Identifier(identifier=True, required=True)  # "{prefix}-{YYYYMMDD}"
    prefix = String(required=True, max_length=10)
    day = String(required=True, max_length=8)
    last_value = Integer(min_value=0, default=0)


def counter_key(prefix: str, day: str) -> str:
    return f"{prefix}-{day}"


def format_number(prefix: str, day: str, value: int, width: int | None = None) -> str:
    return f"{prefix}{day}{value:0{width or sequence_width()}d}"


class SequenceGenerator:
    """Atomic per-(prefix, day) counter."""

    def __init__(self, locks: RecordLocks | None = None):
        self._locks = locks or RecordLocks()

    @staticmethod
    def today() -> str:
        return datetime.now(UTC).strftime("%Y%m%d")

    def _load(self, prefix: str, day: str) -> SequenceCounter:
        repo = current_domain.repository_for(SequenceCounter)
        try:
            return repo.get(counter_key(prefix, day))
        except ObjectNotFoundError:
            return SequenceCounter(key=counter_key(prefix, day), prefix=prefix, day=day, last_value=0)

    def _store(self, counter: SequenceCounter, value: int) -> None:
        counter.last_value = value
        current_domain.repository_for(SequenceCounter).add(counter)

    def current_value(self, prefix: str, day: str | date | None = None) -> int:
        day = _day_string(day) or self.today()
        with self._locks.hold(f"seq:{counter_key(prefix, day)}"):
            return self._load(prefix, day).last_value or 0

    def next_value(self, prefix: str, day: str | date | None = None) -> str:
        """Issue the next number for (prefix, day) and persist the counter."""
        with self.allocate(prefix, day) as number:
            return number

    @contextmanager
    def allocate(self, prefix: str, day: str | date | None = None) -> Iterator[str]:
        """Yield the next number; roll the counter back if the block raises.

        The counter lock is held for the whole block, so callers must not call
        this from inside a command handler.
        """
        day = _day_string(day) or self.today()
        with self._locks.hold(f"seq:{counter_key(prefix, day)}"):
            counter = self._load(prefix, day)
            previous = counter.last_value or 0
            value = previous + 1
            self._store(counter, value)
            number = format_number(prefix, day, value)
            try:
                yield number
            except Exception:
                self._store(self._load(prefix, day), previous)
                logger.info("sequence_number_returned", number=number)
                raise


def _day_string(day: str | date | None) -> str | None:
    if day is None:
        return None
    if isinstance(day, date):
        return day.strftime("%Y%m%d")
    return day
