"""Threshold classification of metric values into configured state ranges."""

from __future__ import annotations

import logging
import math
from typing import Any, Iterable, Mapping, Sequence

from .errors import ConfigurationError
from .models import UNDEFINED_STATE, ClassifiedState, MetricKind, Severity, StateRange


logger = logging.getLogger(__name__)

PERCENT_DOMAIN = (0.0, 100.0)
FRACTION_DOMAIN = (0.0, 1.0)


def classify(value: float, ranges: Sequence[StateRange]) -> StateRange:
    """First range in configured order containing ``value``, else ``UNDEFINED_STATE``."""
    if value is None or math.isnan(value):
        return UNDEFINED_STATE
    for state in ranges:
        if state.contains(value):
            return state
    return UNDEFINED_STATE


def transition(previous: StateRange | None, current: StateRange) -> bool:
    """True when ``current`` is a different configured entry than ``previous``."""
    if previous is None:
        previous = UNDEFINED_STATE
    return current is not previous


def _severity(value: Any) -> Severity:
    if isinstance(value, Severity):
        return value
    try:
        return Severity(str(value).strip().lower())
    except ValueError:
        raise ConfigurationError(f"Unknown severity '{value}'") from None


def make_ranges(rows: Iterable[Mapping[str, Any]]) -> tuple[StateRange, ...]:
    """Build ranges from mappings with ``from``/``to``/``label`` and optional
    ``severity``/``summary``/``body`` keys. The last entry is closed on its upper edge."""
    items = list(rows)
    out: list[StateRange] = []
    for idx, row in enumerate(items):
        try:
            lower = float(row["from"])
            upper = float(row["to"])
            label = str(row.get("label") or row["name"])
        except KeyError as exc:
            raise ConfigurationError(f"state #{idx} is missing {exc.args[0]!r}") from None
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(f"state #{idx} has an invalid bound: {exc}") from None
        out.append(
            StateRange(
                lower=lower,
                upper=upper,
                label=label,
                severity=_severity(row.get("severity", Severity.READY)),
                summary=str(row.get("summary", "")),
                body=str(row.get("body", "")),
                closed=(idx == len(items) - 1),
            )
        )
    return tuple(out)


def validate_ranges(
    ranges: Sequence[StateRange],
    domain: tuple[float, float] | None = None,
) -> tuple[StateRange, ...]:
    """Check a range list is non-empty, sorted, gap-free and covers ``domain``.

    Overlaps are accepted with a warning; ``classify`` resolves them first-match-wins.
    """
    items = tuple(ranges)
    if not items:
        raise ConfigurationError("state list is empty")

    for state in items:
        if not (math.isfinite(state.lower) and math.isfinite(state.upper)) or state.lower >= state.upper:
            raise ConfigurationError(f"state '{state.label}' has an empty range [{state.lower}, {state.upper})")

    for before, after in zip(items, items[1:]):
        if after.lower < before.lower:
            raise ConfigurationError(f"states are not sorted: '{after.label}' starts before '{before.label}'")
        if after.lower > before.upper:
            raise ConfigurationError(
                f"gap between states '{before.label}' and '{after.label}': [{before.upper}, {after.lower})"
            )
        if after.lower < before.upper:
            logger.warning(
                "overlapping states %s and %s; first match wins",
                before.label,
                after.label,
                extra={"event": "state_overlap"},
            )

    if domain is not None:
        low, high = domain
        if items[0].lower > low or items[-1].upper < high:
            raise ConfigurationError(
                f"states cover [{items[0].lower}, {items[-1].upper}] but the metric domain is [{low}, {high}]"
            )
    return items


class StateClassifier:
    """Holds the active state of one metric and detects edge transitions."""

    def __init__(self, ranges: Sequence[StateRange] = ()) -> None:
        self.ranges = tuple(ranges)
        self._state = UNDEFINED_STATE

    @property
    def state(self) -> StateRange:
        return self._state

    def update(self, value: float) -> ClassifiedState:
        current = classify(value, self.ranges)
        changed = transition(self._state, current)
        self._state = current
        return ClassifiedState(state=current, changed=changed)


_CPU_STATES = (
    {"from": 0.0, "to": 50.0, "label": "good", "severity": "ready", "summary": "CPU usage is lower than 50%"},
    {"from": 50.0, "to": 80.0, "label": "gt50", "severity": "warning", "summary": "CPU usage is higher than 50%"},
    {"from": 80.0, "to": 95.0, "label": "gt90", "severity": "error", "summary": "CPU usage is higher than 80%"},
    {"from": 95.0, "to": 100.0, "label": "full", "severity": "critical", "summary": "CPU usage is too high"},
)

_MEMORY_STATES = (
    {"from": 0.0, "to": 80.0, "label": "low", "severity": "ready", "summary": "Memory usage is lower than 80%"},
    {"from": 80.0, "to": 90.0, "label": "medium", "severity": "warning", "summary": "Memory usage is lower than 90%"},
    {"from": 90.0, "to": 100.0, "label": "high", "severity": "error", "summary": "Memory usage is higher than 90%"},
)

_SWAP_STATES = (
    {"from": 0.0, "to": 10.0, "label": "low", "severity": "ready", "summary": "Swap usage is lower than 10%"},
    {"from": 10.0, "to": 80.0, "label": "low", "severity": "ready", "summary": "Swap usage is lower than 80%"},
    {"from": 80.0, "to": 90.0, "label": "medium", "severity": "warning", "summary": "Swap usage is lower than 90%"},
    {"from": 90.0, "to": 100.0, "label": "high", "severity": "error", "summary": "Swap usage is higher than 90%"},
)

DEFAULT_STATES: dict[MetricKind, tuple[dict[str, Any], ...]] = {
    MetricKind.CPU: _CPU_STATES,
    MetricKind.LOADAVG: _CPU_STATES,
    MetricKind.MEMORY: _MEMORY_STATES,
    MetricKind.SWAP: _SWAP_STATES,
    MetricKind.DISK: (),
    MetricKind.UPTIME: (),
}

DOMAINS: dict[MetricKind, tuple[float, float] | None] = {
    MetricKind.CPU: PERCENT_DOMAIN,
    MetricKind.LOADAVG: PERCENT_DOMAIN,
    MetricKind.MEMORY: PERCENT_DOMAIN,
    MetricKind.SWAP: PERCENT_DOMAIN,
    MetricKind.DISK: None,
    MetricKind.UPTIME: None,
}


def default_states(kind: MetricKind) -> tuple[StateRange, ...]:
    """Fresh range instances for ``kind``; each call returns distinct objects."""
    return make_ranges(DEFAULT_STATES[MetricKind(kind)])
