"""Delta sampling, rate normalization and state classification for system counters."""

from .collector import MetricCollector, MetricConfig, create_collector, default_source
from .delta import NO_UPDATE, DeltaCalculator, compute_delta
from .errors import ConfigurationError, SourceError, SysUsageError
from .formatting import format_uptime
from .models import (
    UNDEFINED_STATE,
    ClassifiedState,
    CounterSnapshot,
    Delta,
    MetricKind,
    MetricReading,
    RefreshResult,
    Severity,
    StateRange,
    Unit,
)
from .normalize import UNITS, fractions, get_unit, scale, speed
from .states import StateClassifier, classify, default_states, make_ranges, transition, validate_ranges

__all__ = [
    "ClassifiedState",
    "ConfigurationError",
    "CounterSnapshot",
    "Delta",
    "DeltaCalculator",
    "MetricCollector",
    "MetricConfig",
    "MetricKind",
    "MetricReading",
    "NO_UPDATE",
    "RefreshResult",
    "Severity",
    "SourceError",
    "StateClassifier",
    "StateRange",
    "SysUsageError",
    "UNDEFINED_STATE",
    "UNITS",
    "Unit",
    "classify",
    "compute_delta",
    "create_collector",
    "default_source",
    "default_states",
    "format_uptime",
    "fractions",
    "get_unit",
    "make_ranges",
    "scale",
    "speed",
    "transition",
    "validate_ranges",
]
