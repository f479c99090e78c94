"""
Injectable time source for the grading workflow.

Every ``submitted_at``, ``updated_at`` and transition ``occurred_at`` comes
from a Clock handed to the service, never from ``datetime.now()`` at the
call site.  History ordering breaks ties on these timestamps, so tests pin
them with ``DeterministicClock``.

Timestamps are stored through ``UTCDateTime`` columns; both clocks only
ever hand out timezone-aware UTC values.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone


def _require_aware(value: datetime) -> datetime:
    if value.tzinfo is None or value.utcoffset() is None:
        raise ValueError(f"Clock times must be timezone-aware, got {value!r}")
    return value.astimezone(timezone.utc)


class Clock(ABC):
    """Source of the current instant (timezone-aware, UTC)."""

    @abstractmethod
    def now(self) -> datetime:
        ...


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Test clock that only moves when told to.

    ``now()`` is stable between calls; ``advance()`` and ``tick()`` move it
    forward, ``set_time()`` jumps.  Moving backwards is refused so
    ``occurred_at`` stays monotonic within one submission's log.
    """

    DEFAULT_START = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __init__(self, start: datetime | None = None, step: timedelta = timedelta(seconds=1)):
        self._current = _require_aware(start) if start is not None else self.DEFAULT_START
        self._step = step

    def now(self) -> datetime:
        return self._current

    def set_time(self, time: datetime) -> None:
        self._current = _require_aware(time)

    def advance(self, by: float | timedelta = 1) -> datetime:
        """Move forward by ``by`` (seconds or a timedelta) and return the new time."""
        delta = by if isinstance(by, timedelta) else timedelta(seconds=by)
        if delta < timedelta(0):
            raise ValueError(f"DeterministicClock cannot move backwards ({delta})")
        self._current += delta
        return self._current

    def tick(self) -> datetime:
        """Advance by the configured step (one second by default)."""
        return self.advance(self._step)
