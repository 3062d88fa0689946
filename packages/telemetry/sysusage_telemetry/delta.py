"""Per-field differences between two counter snapshots."""

from __future__ import annotations

from typing import Iterable

from .errors import ConfigurationError
from .models import CounterSnapshot, Delta


class _NoUpdate:
    """Marker returned when two snapshots are not separated by positive time."""

    _instance: "_NoUpdate | None" = None

    def __new__(cls) -> "_NoUpdate":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "NO_UPDATE"


NO_UPDATE = _NoUpdate()


def compute_delta(
    previous: CounterSnapshot,
    current: CounterSnapshot,
    fields: Iterable[str] | None = None,
) -> Delta | _NoUpdate:
    """Difference ``current - previous`` for each field.

    With ``fields`` given, every named field must exist in both snapshots;
    otherwise all fields common to both are used. A counter that went
    backwards (reset, remount, wraparound) contributes 0. Returns
    ``NO_UPDATE`` when the elapsed time is not positive.
    """
    if fields is None:
        names = [name for name in current.fields if name in previous]
    else:
        names = list(fields)
        missing = [name for name in names if name not in previous or name not in current]
        if missing:
            raise ConfigurationError(f"unknown counter field(s): {', '.join(sorted(missing))}")

    elapsed_ms = current.timestamp_ms - previous.timestamp_ms
    if elapsed_ms <= 0:
        return NO_UPDATE

    values: dict[str, float] = {}
    for name in names:
        before = previous[name]
        after = current[name]
        values[name] = after - before if after >= before else 0
    return Delta(values=values, elapsed_ms=elapsed_ms)


class DeltaCalculator:
    """Bound form of ``compute_delta`` for a fixed field selection."""

    def __init__(self, fields: Iterable[str] | None = None) -> None:
        self.fields = tuple(fields) if fields is not None else None

    def __call__(self, previous: CounterSnapshot, current: CounterSnapshot) -> Delta | _NoUpdate:
        return compute_delta(previous, current, self.fields)
