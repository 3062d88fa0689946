"""Counter sources: procfs and psutil readers that produce CounterSnapshots."""

from __future__ import annotations

import os
import time
from pathlib import Path
from typing import Callable, Protocol

import psutil

from .errors import SourceError
from .models import CounterSnapshot
from .normalize import CPU_FIELDS, DEFAULT_BLOCK_SIZE
from .procfs import (
    DISK_FIELDS,
    device_name,
    parse_block_stat,
    parse_diskstats,
    parse_meminfo,
    parse_proc_stat,
    read_block_size,
)


Clock = Callable[[], int]


def monotonic_ms() -> int:
    return time.monotonic_ns() // 1_000_000


def _clock_ticks() -> int:
    try:
        return int(os.sysconf("SC_CLK_TCK"))
    except (AttributeError, ValueError, OSError):
        return 100


class CounterSource(Protocol):
    def read(self) -> CounterSnapshot:
        ...


def _read_text(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except OSError as exc:
        raise SourceError(f"Can't read {path}: {exc}") from exc


class ProcStatSource:
    """CPU tick counters from /proc/stat."""

    def __init__(self, proc_root: str | Path = "/proc", clock: Clock = monotonic_ms) -> None:
        self.path = Path(proc_root) / "stat"
        self._clock = clock

    def read(self) -> CounterSnapshot:
        text = _read_text(self.path)
        stamp = self._clock()
        try:
            counters = parse_proc_stat(text)
        except ValueError as exc:
            raise SourceError(f"{self.path}: {exc}") from exc
        return CounterSnapshot(counters=counters, timestamp_ms=stamp)


class PsutilCpuSource:
    """CPU tick counters from ``psutil.cpu_times()`` (seconds scaled back to clock ticks)."""

    def __init__(self, clock: Clock = monotonic_ms) -> None:
        self._clock = clock
        self._ticks = _clock_ticks()

    def read(self) -> CounterSnapshot:
        try:
            times = psutil.cpu_times()
        except (OSError, psutil.Error) as exc:
            raise SourceError(f"Can't get CPU times: {exc}") from exc
        counters = {name: int(round(float(getattr(times, name, 0.0)) * self._ticks)) for name in CPU_FIELDS}
        return CounterSnapshot(counters=counters, timestamp_ms=self._clock())


class DiskStatSource:
    """I/O counters for one block device, or for every physical disk when ``device`` is empty.

    The aggregate view expresses ``*.blocks`` in 512-byte units so disks with
    different sector sizes can be summed.
    """

    def __init__(
        self,
        device: str | None = None,
        proc_root: str | Path = "/proc",
        sys_root: str | Path = "/sys",
        clock: Clock = monotonic_ms,
    ) -> None:
        self.device = device_name(device) if device else ""
        self.proc_root = Path(proc_root)
        self.sys_root = Path(sys_root)
        self._clock = clock
        self._block_sizes: dict[str, int] = {}
        self.block_size = self._device_block_size(self.device) if self.device else DEFAULT_BLOCK_SIZE

    def _device_block_size(self, name: str) -> int:
        size = self._block_sizes.get(name)
        if size is None:
            size = read_block_size(name, self.sys_root)
            self._block_sizes[name] = size
        return size

    def _read_device(self) -> dict[str, int]:
        path = self.sys_root / "block" / self.device / "stat"
        text = _read_text(path)
        try:
            return parse_block_stat(text, self.device)
        except ValueError as exc:
            raise SourceError(str(exc)) from exc

    def _read_physical(self) -> dict[str, int]:
        path = self.proc_root / "diskstats"
        text = _read_text(path)
        try:
            stats = parse_diskstats(text)
        except ValueError as exc:
            raise SourceError(str(exc)) from exc

        totals = {name: 0 for name in DISK_FIELDS}
        for stat in stats:
            if not stat.physical:
                continue
            factor = self._device_block_size(stat.name) / DEFAULT_BLOCK_SIZE
            for name, value in stat.counters.items():
                if name.endswith(".blocks"):
                    value = int(value * factor)
                totals[name] += value
        return totals

    def read(self) -> CounterSnapshot:
        counters = self._read_device() if self.device else self._read_physical()
        return CounterSnapshot(counters=counters, timestamp_ms=self._clock())


class MeminfoSource:
    """All scalar fields of /proc/meminfo, in bytes."""

    def __init__(self, proc_root: str | Path = "/proc", clock: Clock = monotonic_ms) -> None:
        self.path = Path(proc_root) / "meminfo"
        self._clock = clock

    def read(self) -> CounterSnapshot:
        text = _read_text(self.path)
        try:
            counters = parse_meminfo(text)
        except ValueError as exc:
            raise SourceError(f"Unexpected format in {self.path}: {exc}") from exc
        return CounterSnapshot(counters=counters, timestamp_ms=self._clock())


class PsutilMemorySource:
    """MemTotal/MemAvailable/SwapTotal/SwapFree in bytes from psutil."""

    def __init__(self, clock: Clock = monotonic_ms) -> None:
        self._clock = clock

    def read(self) -> CounterSnapshot:
        try:
            vm = psutil.virtual_memory()
            sw = psutil.swap_memory()
        except (OSError, psutil.Error) as exc:
            raise SourceError(f"Can't get memory information: {exc}") from exc
        counters = {
            "MemTotal": int(vm.total),
            "MemAvailable": int(vm.available),
            "SwapTotal": int(sw.total),
            "SwapFree": int(sw.free),
        }
        return CounterSnapshot(counters=counters, timestamp_ms=self._clock())


class UptimeSource:
    """Seconds since boot."""

    def __init__(self, clock: Clock = monotonic_ms) -> None:
        self._clock = clock

    def read(self) -> CounterSnapshot:
        try:
            boot = psutil.boot_time()
        except (OSError, psutil.Error) as exc:
            raise SourceError(f"Can't get system information: {exc}") from exc
        return CounterSnapshot(counters={"uptime": max(0, int(time.time() - boot))}, timestamp_ms=self._clock())


class LoadAverageSource:
    """1, 5 and 15 minute load averages plus the logical core count."""

    def __init__(self, clock: Clock = monotonic_ms) -> None:
        self._clock = clock

    def read(self) -> CounterSnapshot:
        try:
            load1, load5, load15 = psutil.getloadavg()
            cores = psutil.cpu_count() or 1
        except (OSError, psutil.Error) as exc:
            raise SourceError(f"Can't get system load average: {exc}") from exc
        counters = {"load1": float(load1), "load5": float(load5), "load15": float(load15), "cores": int(cores)}
        return CounterSnapshot(counters=counters, timestamp_ms=self._clock())
