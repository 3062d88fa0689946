"""Parsers for /proc/stat, /proc/diskstats, /sys/block/*/stat and /proc/meminfo.

All parsers take file text and raise ``ValueError`` on unexpected formats;
file access and error wrapping live in ``sources``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from .normalize import CPU_FIELDS, DEFAULT_BLOCK_SIZE


# https://www.kernel.org/doc/Documentation/iostats.txt
DISK_FIELDS = (
    "read.count",
    "read.merged",
    "read.blocks",
    "read.time",
    "write.count",
    "write.merged",
    "write.blocks",
    "write.time",
    "io.inprogress",
    "io.time",
    "io.weighted",
    "discards.count",
    "discards.merged",
    "discards.blocks",
    "discards.time",
)

# Kernels before 4.18 stop after io.weighted.
_MIN_DISK_FIELDS = 11


@dataclass(frozen=True)
class DiskStat:
    major: int
    minor: int
    name: str
    counters: dict[str, int] = field(default_factory=dict)

    @property
    def physical(self) -> bool:
        return self.major != 0 and self.minor == 0

    @property
    def logical(self) -> bool:
        return self.major != 0 and self.minor != 0


def parse_proc_stat(text: str) -> dict[str, int]:
    """Aggregate ``cpu`` tick counters from /proc/stat."""
    for line in text.splitlines():
        parts = line.split()
        if parts and parts[0] == "cpu":
            raw = parts[1 : 1 + len(CPU_FIELDS)]
            if len(raw) < 4:
                raise ValueError("Unexpected format in /proc/stat")
            values = [int(p) for p in raw]
            values.extend([0] * (len(CPU_FIELDS) - len(values)))
            return dict(zip(CPU_FIELDS, values))
    raise ValueError("No aggregate cpu line in /proc/stat")


def _disk_counters(columns: list[str], origin: str) -> dict[str, int]:
    if len(columns) < _MIN_DISK_FIELDS:
        raise ValueError(f"Unexpected format in {origin}")
    values = [int(p) for p in columns[: len(DISK_FIELDS)]]
    values.extend([0] * (len(DISK_FIELDS) - len(values)))
    return dict(zip(DISK_FIELDS, values))


def parse_diskstats(text: str) -> list[DiskStat]:
    stats: list[DiskStat] = []
    for line in text.splitlines():
        parts = line.split()
        if not parts:
            continue
        if len(parts) < 3:
            raise ValueError("Unexpected format in /proc/diskstats")
        stats.append(
            DiskStat(
                major=int(parts[0]),
                minor=int(parts[1]),
                name=parts[2],
                counters=_disk_counters(parts[3:], "/proc/diskstats"),
            )
        )
    return stats


def parse_block_stat(text: str, device: str = "") -> dict[str, int]:
    """Counters from /sys/block/<device>/stat (same columns as diskstats, no id prefix)."""
    return _disk_counters(text.split(), f"/sys/block/{device}/stat")


def parse_meminfo(text: str) -> dict[str, int]:
    """Scalar fields of /proc/meminfo in bytes (``k`` multiplies by 1024, ``M`` by 1024^2)."""
    out: dict[str, int] = {}
    for line in text.splitlines():
        if ":" not in line:
            continue
        key, _, rest = line.partition(":")
        parts = rest.split()
        if not parts:
            continue
        value = int(parts[0])
        suffix = parts[1] if len(parts) > 1 else ""
        if suffix.startswith("k"):
            value *= 1024
        elif suffix.startswith("M"):
            value *= 1024 * 1024
        out[key.strip()] = value
    return out


def device_name(device: str) -> str:
    name = device.strip()
    if name.lower().startswith("/dev/"):
        name = name[5:]
    return name


def read_block_size(device: str, sys_root: str | Path = "/sys") -> int:
    """Logical sector size of ``device`` in bytes, 512 when the kernel does not report one."""
    path = Path(sys_root) / "block" / device_name(device) / "queue" / "hw_sector_size"
    try:
        value = int(path.read_text(encoding="ascii").strip())
    except (OSError, ValueError):
        return DEFAULT_BLOCK_SIZE
    return value if value > 0 else DEFAULT_BLOCK_SIZE
