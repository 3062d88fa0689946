"""Rate normalizers: CPU tick fractions, disk throughput and gauge percentages."""

from __future__ import annotations

from typing import Mapping

from .errors import ConfigurationError
from .models import Delta, Unit


CPU_FIELDS = (
    "user",
    "nice",
    "system",
    "idle",
    "iowait",
    "irq",
    "softirq",
    "steal",
    "guest",
    "guest_nice",
)

ACTIVE = "active"
_ACTIVE_ALIASES = (ACTIVE, "total")

UNITS = (
    Unit(scale=1.0, short_id="B", speed_label="B/s"),
    Unit(scale=1024.0, short_id="KB", speed_label="KB/s"),
    Unit(scale=1048576.0, short_id="MB", speed_label="MB/s"),
    Unit(scale=1073741824.0, short_id="GB", speed_label="GB/s"),
)

DEFAULT_BLOCK_SIZE = 512


def get_unit(identifier: str) -> Unit:
    """Resolve a unit by the first letter of ``identifier`` ("M", "MB", "mb/s" all give MB)."""
    text = (identifier or "").strip()
    if text:
        first = text[0].upper()
        for unit in UNITS:
            if unit.short_id[0] == first:
                return unit
    raise ConfigurationError(f"Invalid unit '{identifier}'")


def cpu_field(name: str | None) -> str:
    """Validate a CPU category name; ``None`` selects the ``active`` pseudo-category."""
    if name is None:
        return ACTIVE
    key = name.strip().lower()
    if key in _ACTIVE_ALIASES:
        return ACTIVE
    if key in CPU_FIELDS:
        return key
    raise ConfigurationError(f"Unexpected CPU field name '{name}'")


def fractions(delta: Delta, fields: tuple[str, ...] = CPU_FIELDS) -> dict[str, float]:
    """Share of each CPU category in the interval, plus ``active = 1 - idle``.

    A zero total (no ticks elapsed) gives 0.0 for every category, ``active``
    included.
    """
    present = [name for name in fields if name in delta.values]
    total = sum(delta[name] for name in present)
    if total <= 0:
        out = {name: 0.0 for name in present}
        out[ACTIVE] = 0.0
        return out

    out = {name: delta[name] / total for name in present}
    out[ACTIVE] = max(0.0, 1.0 - out.get("idle", 0.0))
    return out


def select_fraction(values: Mapping[str, float], field: str | None = None) -> float:
    return values[cpu_field(field)]


def speed(delta_blocks: float, block_size: float, elapsed_ms: float) -> float:
    """Bytes per second for ``delta_blocks`` transferred over ``elapsed_ms``."""
    transferred = delta_blocks * block_size
    if transferred > 0 and elapsed_ms > 0:
        return transferred / (elapsed_ms / 1000.0)
    return 0.0


def scale(bytes_per_second: float, unit: Unit) -> float:
    return bytes_per_second / unit.scale


def percent(used: float, total: float) -> float:
    """``used`` as a percentage of ``total``, clamped to [0, 100]; 0 when total is 0."""
    if total <= 0:
        return 0.0
    return min(100.0, max(0.0, (used * 100.0) / total))
