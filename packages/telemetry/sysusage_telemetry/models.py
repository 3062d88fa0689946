"""Typed models for counter snapshots, deltas, units and classified states."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Mapping


class Severity(str, Enum):
    READY = "ready"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"
    UNIMPORTANT = "unimportant"


class MetricKind(str, Enum):
    CPU = "cpu"
    MEMORY = "memory"
    SWAP = "swap"
    DISK = "disk"
    UPTIME = "uptime"
    LOADAVG = "loadavg"


@dataclass(frozen=True)
class CounterSnapshot:
    """Counter readings taken at one poll, stamped with a monotonic time in ms."""

    counters: Mapping[str, float]
    timestamp_ms: int

    def __post_init__(self) -> None:
        frozen: dict[str, float] = {}
        for name, value in dict(self.counters).items():
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise TypeError(f"counter {name!r} is not numeric: {value!r}")
            if value < 0 or (isinstance(value, float) and not math.isfinite(value)):
                raise ValueError(f"counter {name!r} must be a finite non-negative number, got {value!r}")
            frozen[name] = value
        object.__setattr__(self, "counters", MappingProxyType(frozen))

    def __getitem__(self, name: str) -> float:
        return self.counters[name]

    def __contains__(self, name: object) -> bool:
        return name in self.counters

    def get(self, name: str, default: float = 0) -> float:
        return self.counters.get(name, default)

    @property
    def fields(self) -> tuple[str, ...]:
        return tuple(self.counters)


@dataclass(frozen=True)
class Delta:
    values: Mapping[str, float]
    elapsed_ms: int

    def __post_init__(self) -> None:
        object.__setattr__(self, "values", MappingProxyType(dict(self.values)))

    def __getitem__(self, name: str) -> float:
        return self.values[name]

    @property
    def elapsed_s(self) -> float:
        return self.elapsed_ms / 1000.0


@dataclass(frozen=True)
class Unit:
    scale: float
    short_id: str
    speed_label: str


@dataclass(frozen=True, eq=False)
class StateRange:
    """One configured threshold band, ``lower <= value < upper``.

    Instances compare by identity: two entries with equal bounds and labels
    are still distinct states. ``closed`` also admits ``value == upper`` and is
    only set on the final entry of a range list.
    """

    lower: float
    upper: float
    label: str
    severity: Severity = Severity.READY
    summary: str = ""
    body: str = ""
    closed: bool = False

    def contains(self, value: float) -> bool:
        if self.lower <= value < self.upper:
            return True
        return self.closed and value == self.upper


UNDEFINED_STATE = StateRange(
    lower=0.0,
    upper=0.0,
    label="undefined",
    severity=Severity.UNIMPORTANT,
    summary="No value classified yet",
)


@dataclass(frozen=True)
class ClassifiedState:
    state: StateRange
    changed: bool

    @property
    def defined(self) -> bool:
        return self.state is not UNDEFINED_STATE


@dataclass(frozen=True)
class MetricReading:
    """Last published result of a collector; safe to hand to concurrent readers."""

    name: str
    kind: MetricKind
    value: float
    display_value: float
    unit_label: str
    text: str
    state: StateRange
    changed: bool
    timestamp_ms: int
    details: Mapping[str, float] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "details", MappingProxyType(dict(self.details)))


@dataclass(frozen=True)
class RefreshResult:
    updated: bool
    changed: bool
    reading: MetricReading | None
    warning: Exception | None = None
