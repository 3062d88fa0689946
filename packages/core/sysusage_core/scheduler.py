"""Collector registry with one polling thread per metric."""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Iterator

from sysusage_telemetry import (
    ConfigurationError,
    MetricCollector,
    MetricConfig,
    MetricReading,
    RefreshResult,
    SourceError,
    create_collector,
)
from sysusage_telemetry.sources import CounterSource

from .config import AppConfig, build_metric_configs


logger = logging.getLogger(__name__)

ChangeCallback = Callable[[str, MetricReading], None]


class CollectorRegistry:
    """Explicitly owned set of collectors; started and stopped by its host.

    Each collector is refreshed from its own thread, so two refreshes of the
    same collector never overlap. Different collectors share nothing.
    """

    def __init__(self, on_change: ChangeCallback | None = None) -> None:
        self._collectors: dict[str, MetricCollector] = {}
        self._threads: dict[str, tuple[threading.Thread, threading.Event]] = {}
        self._lock = threading.RLock()
        self._started = False
        self._events: list[dict[str, Any]] = []
        self.on_change = on_change
        self.failed: dict[str, str] = {}

    def __len__(self) -> int:
        return len(self._collectors)

    def __iter__(self) -> Iterator[MetricCollector]:
        with self._lock:
            return iter(list(self._collectors.values()))

    def __contains__(self, name: object) -> bool:
        return name in self._collectors

    @property
    def running(self) -> bool:
        return self._started

    def names(self) -> list[str]:
        with self._lock:
            return list(self._collectors)

    def get(self, name: str) -> MetricCollector:
        with self._lock:
            try:
                return self._collectors[name]
            except KeyError:
                raise KeyError(f"no metric named '{name}'") from None

    def add(self, collector: MetricCollector) -> MetricCollector:
        with self._lock:
            if collector.name in self._collectors:
                raise ConfigurationError(f"duplicate metric name '{collector.name}'")
            self._collectors[collector.name] = collector
            self._log_event("collector_added", metric=collector.name, kind=collector.kind.value)
            if self.running:
                self._spawn(collector)
        return collector

    def remove(self, name: str) -> None:
        with self._lock:
            self._collectors.pop(name, None)
            worker = self._threads.pop(name, None)
            self._log_event("collector_removed", metric=name)
        if worker is not None:
            thread, stop = worker
            stop.set()
            if thread is not threading.current_thread():
                thread.join(5.0)

    def recent_events(self, limit: int = 200) -> list[dict[str, Any]]:
        with self._lock:
            return self._events[-limit:]

    def _log_event(self, event: str, **fields: Any) -> None:
        row = {"ts_utc": datetime.now(timezone.utc).isoformat(), "event": event}
        row.update(fields)
        with self._lock:
            self._events.append(row)
            if len(self._events) > 1000:
                self._events = self._events[-1000:]

    def refresh(self, name: str) -> RefreshResult:
        collector = self.get(name)
        result = collector.refresh()
        if result.warning is not None:
            self._log_event("refresh_warning", metric=name, error=str(result.warning))
        elif result.changed and result.reading is not None:
            self._log_event(
                "state_changed",
                metric=name,
                state=result.reading.state.label,
                severity=result.reading.state.severity.value,
                value=result.reading.display_value,
            )
            if self.on_change is not None:
                self.on_change(name, result.reading)
        return result

    def refresh_all(self) -> dict[str, RefreshResult]:
        return {name: self.refresh(name) for name in self.names()}

    def readings(self) -> dict[str, MetricReading | None]:
        with self._lock:
            collectors = list(self._collectors.values())
        return {collector.name: collector.reading for collector in collectors}

    def _run(self, collector: MetricCollector, stop: threading.Event) -> None:
        while not stop.wait(collector.interval_s):
            try:
                self.refresh(collector.name)
            except KeyError:
                return
            except Exception as exc:
                logger.exception("refresh of %s failed", collector.name, extra={"event": "refresh_error"})
                self._log_event("refresh_error", metric=collector.name, error=str(exc))

    def _spawn(self, collector: MetricCollector) -> None:
        stop = threading.Event()
        thread = threading.Thread(
            target=self._run,
            args=(collector, stop),
            name=f"sysusage-{collector.name}",
            daemon=True,
        )
        self._threads[collector.name] = (thread, stop)
        thread.start()

    def start(self) -> None:
        with self._lock:
            if self._started:
                return
            self._started = True
            for collector in self._collectors.values():
                self._spawn(collector)
            self._log_event("registry_started", metrics=len(self._collectors))
        logger.info("started %d collectors", len(self._collectors), extra={"event": "registry_started"})

    def stop(self, timeout: float | None = 5.0) -> None:
        with self._lock:
            self._started = False
            workers = list(self._threads.values())
            self._threads.clear()
        for _, stop in workers:
            stop.set()
        for thread, _ in workers:
            if thread is not threading.current_thread():
                thread.join(timeout)
        self._log_event("registry_stopped")
        logger.info("stopped collectors", extra={"event": "registry_stopped"})


def build_registry(
    configs: Iterable[MetricConfig],
    on_change: ChangeCallback | None = None,
    source_factory: Callable[[MetricConfig], CounterSource] | None = None,
) -> CollectorRegistry:
    """Create a collector per config.

    Configuration errors propagate. A metric whose source cannot be read at
    startup stays offline and is listed in ``registry.failed``.
    """
    registry = CollectorRegistry(on_change=on_change)
    for config in configs:
        source = source_factory(config) if source_factory is not None else None
        try:
            collector = create_collector(config, source)
        except SourceError as exc:
            registry.failed[config.name] = str(exc)
            logger.error("metric %s is offline: %s", config.name, exc, extra={"event": "metric_offline"})
            continue
        registry.add(collector)
    return registry


def registry_from_config(cfg: AppConfig, on_change: ChangeCallback | None = None) -> CollectorRegistry:
    return build_registry(build_metric_configs(cfg), on_change=on_change)
