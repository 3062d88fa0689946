"""Per-metric refresh cycle: snapshot, delta, normalize, classify, publish."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any

from .delta import NO_UPDATE, compute_delta
from .errors import ConfigurationError, SourceError
from .formatting import format_percent, format_speed, format_uptime
from .models import (
    UNDEFINED_STATE,
    CounterSnapshot,
    Delta,
    MetricKind,
    MetricReading,
    RefreshResult,
    StateRange,
    Unit,
)
from .normalize import CPU_FIELDS, cpu_field, fractions, get_unit, percent, scale, speed
from .states import DOMAINS, classify, transition, validate_ranges
from .sources import (
    Clock,
    CounterSource,
    DiskStatSource,
    LoadAverageSource,
    PsutilCpuSource,
    PsutilMemorySource,
    UptimeSource,
    monotonic_ms,
)


logger = logging.getLogger(__name__)

DISK_STATS = ("average", "read", "write")
LOAD_WINDOWS = (1, 5, 15)


@dataclass(frozen=True)
class MetricConfig:
    name: str
    kind: MetricKind
    interval_s: float
    field: str | None = None
    unit: Unit | None = None
    states: tuple[StateRange, ...] = ()
    device: str | None = None
    stat: str = "average"
    minutes: int = 1

    def __post_init__(self) -> None:
        kind: Any = self.kind
        try:
            object.__setattr__(self, "kind", MetricKind(kind))
        except ValueError:
            raise ConfigurationError(f"Unknown metric kind '{kind}'") from None
        object.__setattr__(self, "states", tuple(self.states))


@dataclass(frozen=True)
class Sample:
    value: float
    display_value: float
    text: str
    details: dict[str, float]


class _Strategy:
    """Turns a (previous, current, delta) triple into one metric value."""

    fields: tuple[str, ...] = ()
    required: tuple[str, ...] = ()
    unit_label = "%"

    def sample(self, previous: CounterSnapshot, current: CounterSnapshot, delta: Delta) -> Sample:
        raise NotImplementedError


class _CpuStrategy(_Strategy):
    fields = CPU_FIELDS
    required = CPU_FIELDS

    def __init__(self, field: str | None) -> None:
        self.field = cpu_field(field)

    def sample(self, previous: CounterSnapshot, current: CounterSnapshot, delta: Delta) -> Sample:
        shares = fractions(delta)
        value = shares[self.field] * 100.0
        return Sample(value, value, format_percent(value), {k: v * 100.0 for k, v in shares.items()})


class _DiskStrategy(_Strategy):
    fields = ("read.blocks", "write.blocks")
    required = fields

    def __init__(self, stat: str, unit: Unit, block_size: int) -> None:
        self.stat = stat
        self.unit = unit
        self.block_size = block_size
        self.unit_label = unit.speed_label

    def sample(self, previous: CounterSnapshot, current: CounterSnapshot, delta: Delta) -> Sample:
        read = speed(delta["read.blocks"], self.block_size, delta.elapsed_ms)
        write = speed(delta["write.blocks"], self.block_size, delta.elapsed_ms)
        if self.stat == "read":
            value = read
        elif self.stat == "write":
            value = write
        else:
            value = (read + write) / 2.0
        shown = scale(value, self.unit)
        details = {"read": scale(read, self.unit), "write": scale(write, self.unit)}
        return Sample(value, shown, format_speed(shown, self.unit.speed_label), details)


class _UsageStrategy(_Strategy):
    def __init__(self, total_field: str, free_field: str) -> None:
        self.total_field = total_field
        self.free_field = free_field
        self.required = (total_field, free_field)

    def sample(self, previous: CounterSnapshot, current: CounterSnapshot, delta: Delta) -> Sample:
        total = current[self.total_field]
        free = current[self.free_field]
        value = percent(max(0, total - free), total)
        return Sample(value, value, format_percent(value), {"total": total, "free": free})


class _UptimeStrategy(_Strategy):
    required = ("uptime",)
    unit_label = "s"

    def sample(self, previous: CounterSnapshot, current: CounterSnapshot, delta: Delta) -> Sample:
        value = float(current["uptime"])
        return Sample(value, value, format_uptime(value), {})


class _LoadAverageStrategy(_Strategy):
    def __init__(self, minutes: int) -> None:
        self.key = f"load{minutes}"
        self.required = (self.key, "cores")

    def sample(self, previous: CounterSnapshot, current: CounterSnapshot, delta: Delta) -> Sample:
        cores = current["cores"] or 1
        load = current[self.key]
        value = min(100.0, (load * 100.0) / cores)
        return Sample(value, value, format_percent(value), {"load": load, "cores": cores})


def _build_strategy(config: MetricConfig, source: CounterSource) -> _Strategy:
    kind = config.kind
    if kind is MetricKind.CPU:
        return _CpuStrategy(config.field)
    if kind is MetricKind.MEMORY:
        return _UsageStrategy("MemTotal", "MemAvailable")
    if kind is MetricKind.SWAP:
        return _UsageStrategy("SwapTotal", "SwapFree")
    if kind is MetricKind.DISK:
        if config.stat not in DISK_STATS:
            raise ConfigurationError(f"Unknown disk stat type '{config.stat}', expected one of {', '.join(DISK_STATS)}")
        block_size = int(getattr(source, "block_size", 0) or 512)
        return _DiskStrategy(config.stat, config.unit or get_unit("MB"), block_size)
    if kind is MetricKind.UPTIME:
        return _UptimeStrategy()
    if kind is MetricKind.LOADAVG:
        if config.minutes not in LOAD_WINDOWS:
            raise ConfigurationError("The load average window should be 1, 5 or 15 minutes")
        return _LoadAverageStrategy(config.minutes)
    raise ConfigurationError(f"Unknown metric kind '{kind}'")


def default_source(config: MetricConfig, clock: Clock = monotonic_ms) -> CounterSource:
    kind = config.kind
    if kind is MetricKind.CPU:
        return PsutilCpuSource(clock=clock)
    if kind in (MetricKind.MEMORY, MetricKind.SWAP):
        return PsutilMemorySource(clock=clock)
    if kind is MetricKind.DISK:
        return DiskStatSource(device=config.device, clock=clock)
    if kind is MetricKind.UPTIME:
        return UptimeSource(clock=clock)
    if kind is MetricKind.LOADAVG:
        return LoadAverageSource(clock=clock)
    raise ConfigurationError(f"Unknown metric kind '{kind}'")


class MetricCollector:
    """Owns the previous snapshot and active state of one metric.

    The first snapshot is taken on construction; a source failure there
    propagates and the collector never exists. Later source failures keep
    the previous snapshot and state and come back as a warning.

    Refreshes of one collector must not overlap. ``reading`` may be called
    from any thread.
    """

    def __init__(self, config: MetricConfig, source: CounterSource, strategy: _Strategy | None = None) -> None:
        if not config.interval_s or config.interval_s <= 0:
            raise ConfigurationError(f"metric '{config.name}' requires a non-zero refresh interval")
        self.config = config
        self._source = source
        self._strategy = strategy or _build_strategy(config, source)
        self._ranges = tuple(config.states)
        if self._ranges:
            validate_ranges(self._ranges, DOMAINS[config.kind])
        self._state = UNDEFINED_STATE
        self._lock = threading.Lock()
        self._reading: MetricReading | None = None

        try:
            snapshot = source.read()
        except SourceError:
            logger.error("initial sample failed for %s", config.name, extra={"event": "collector_init_failed"})
            raise
        missing = self._missing(snapshot)
        if missing:
            raise ConfigurationError(f"metric '{config.name}' needs unknown field(s): {', '.join(missing)}")
        self._previous = snapshot
        logger.debug("collector %s ready", config.name, extra={"event": "collector_ready"})

    def _missing(self, snapshot: CounterSnapshot) -> list[str]:
        return [name for name in self._strategy.required if name not in snapshot]

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def kind(self) -> MetricKind:
        return self.config.kind

    @property
    def interval_s(self) -> float:
        return self.config.interval_s

    @property
    def reading(self) -> MetricReading | None:
        with self._lock:
            return self._reading

    @property
    def state(self) -> StateRange:
        with self._lock:
            return self._state

    def refresh(self) -> RefreshResult:
        try:
            current = self._source.read()
        except SourceError as exc:
            logger.warning(
                "refresh of %s failed, keeping last value: %s",
                self.name,
                exc,
                extra={"event": "collector_source_error"},
            )
            return RefreshResult(updated=False, changed=False, reading=self.reading, warning=exc)

        missing = self._missing(current)
        if missing:
            exc = SourceError(f"counter source did not report {', '.join(missing)}")
            logger.warning("malformed sample for %s: %s", self.name, exc, extra={"event": "collector_source_error"})
            return RefreshResult(updated=False, changed=False, reading=self.reading, warning=exc)

        delta = compute_delta(self._previous, current, self._strategy.fields)
        if delta is NO_UPDATE:
            return RefreshResult(updated=False, changed=False, reading=self.reading)

        sample = self._strategy.sample(self._previous, current, delta)

        state = classify(sample.display_value, self._ranges)
        changed = transition(self._state, state)
        reading = MetricReading(
            name=self.name,
            kind=self.kind,
            value=sample.value,
            display_value=sample.display_value,
            unit_label=self._strategy.unit_label,
            text=sample.text,
            state=state,
            changed=changed,
            timestamp_ms=current.timestamp_ms,
            details=sample.details,
        )

        with self._lock:
            self._previous = current
            self._state = state
            self._reading = reading

        if changed:
            logger.info(
                "%s is now %s (%s)",
                self.name,
                state.label,
                sample.text,
                extra={"event": "state_changed"},
            )
        return RefreshResult(updated=True, changed=changed, reading=reading)


def create_collector(
    config: MetricConfig,
    source: CounterSource | None = None,
    clock: Clock = monotonic_ms,
) -> MetricCollector:
    """Build a collector for ``config``, reading from ``source`` or the kind's default source."""
    return MetricCollector(config, source if source is not None else default_source(config, clock))

