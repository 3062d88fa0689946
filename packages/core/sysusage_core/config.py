"""Persistent settings schema, load/save helpers and metric config building."""

from __future__ import annotations

import json
import logging
import os
import platform
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

from sysusage_telemetry import ConfigurationError, MetricConfig, MetricKind, get_unit, make_ranges, validate_ranges
from sysusage_telemetry.normalize import cpu_field
from sysusage_telemetry.states import DOMAINS, default_states


CONFIG_VERSION = 2

logger = logging.getLogger(__name__)


@dataclass
class LoggingConfig:
    level: str = "INFO"
    keep_log_files: int = 7
    console: bool = False


@dataclass
class SchedulerConfig:
    interval_s: float = 10.0


@dataclass
class MetricSettings:
    name: str = "cpu"
    kind: str = "cpu"
    field_name: str | None = None
    unit: str = "MB"
    interval_s: float | None = None
    device: str | None = None
    stat: str = "average"
    minutes: int = 1
    states: list[dict[str, Any]] = field(default_factory=list)


def default_metrics() -> list[MetricSettings]:
    return [
        MetricSettings(name="cpu", kind="cpu"),
        MetricSettings(name="memory", kind="memory"),
        MetricSettings(name="swap", kind="swap"),
        MetricSettings(name="disk", kind="disk", unit="MB", stat="average"),
        MetricSettings(name="uptime", kind="uptime", interval_s=60.0),
    ]


@dataclass
class AppConfig:
    config_version: int = CONFIG_VERSION
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    metrics: list[MetricSettings] = field(default_factory=default_metrics)


def config_path() -> Path:
    system = platform.system()
    if system == "Windows":
        base = Path(os.environ.get("APPDATA", Path.home() / "AppData" / "Roaming"))
        return base / "SysUsage" / "config.json"
    if system == "Darwin":
        return Path.home() / "Library" / "Application Support" / "SysUsage" / "config.json"
    return Path.home() / ".config" / "sysusage" / "config.json"


def _merge(dataclass_type, raw: dict[str, Any]):
    defaults = dataclass_type()  # type: ignore[misc]
    for k, v in (raw or {}).items():
        if hasattr(defaults, k):
            setattr(defaults, k, v)
    return defaults


def _normalize_logging(cfg: AppConfig) -> None:
    level = str(cfg.logging.level).upper()
    cfg.logging.level = level if level in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL") else "INFO"
    cfg.logging.keep_log_files = max(2, int(cfg.logging.keep_log_files))


def _normalize_scheduler(cfg: AppConfig) -> None:
    cfg.scheduler.interval_s = float(max(1.0, min(3600.0, float(cfg.scheduler.interval_s))))


def _migrate(raw: dict[str, Any]) -> dict[str, Any]:
    version = int(raw.get("config_version", 1))
    data = dict(raw)

    if version < 2:
        # v2 renames the per-metric keys and moves the global timer under "scheduler".
        metrics = []
        for item in data.get("metrics", []) or []:
            entry = dict(item)
            if "interval" in entry:
                entry.setdefault("interval_s", entry.pop("interval"))
            if "size-unit" in entry:
                entry.setdefault("unit", entry.pop("size-unit"))
            if "stat-type" in entry:
                entry.setdefault("stat", entry.pop("stat-type"))
            for old_key in ("field", "field-name"):
                if old_key in entry:
                    entry.setdefault("field_name", entry.pop(old_key))
            metrics.append(entry)
        if "metrics" in data:
            data["metrics"] = metrics
        if "update_timer" in data:
            data.setdefault("scheduler", {"interval_s": data.pop("update_timer")})
        data["config_version"] = 2

    return data


def load_config(path: Path | None = None) -> AppConfig:
    path = path or config_path()
    if not path.exists():
        return AppConfig()

    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        logger.warning("ignoring unreadable config %s: %s", path, exc, extra={"event": "config_unreadable"})
        return AppConfig()

    data = _migrate(raw)
    if "metrics" in data:
        metrics = [_merge(MetricSettings, item) for item in data.get("metrics") or []]
    else:
        metrics = default_metrics()

    cfg = AppConfig(
        config_version=int(data.get("config_version", CONFIG_VERSION)),
        logging=_merge(LoggingConfig, data.get("logging", {})),
        scheduler=_merge(SchedulerConfig, data.get("scheduler", {})),
        metrics=metrics,
    )

    _normalize_logging(cfg)
    _normalize_scheduler(cfg)
    return cfg


def save_config(cfg: AppConfig, path: Path | None = None) -> Path:
    cfg.config_version = CONFIG_VERSION
    path = path or config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(asdict(cfg), indent=2, sort_keys=True), encoding="utf-8")
    return path


def build_metric_config(settings: MetricSettings, default_interval_s: float = 10.0) -> MetricConfig:
    """Validate one metric entry and resolve its unit and state ranges.

    Raises ``ConfigurationError`` for unknown kinds, units, CPU fields, zero
    intervals and non-contiguous or uncovering state lists.
    """
    try:
        kind = MetricKind(str(settings.kind).strip().lower())
    except ValueError:
        raise ConfigurationError(f"metric '{settings.name}': unknown kind '{settings.kind}'") from None

    interval = default_interval_s if settings.interval_s is None else settings.interval_s
    try:
        interval = float(interval)
    except (TypeError, ValueError):
        raise ConfigurationError(f"metric '{settings.name}': invalid interval {settings.interval_s!r}") from None
    if interval <= 0:
        raise ConfigurationError(f"metric '{settings.name}' requires a non-zero refresh interval")

    field_name = settings.field_name
    if kind is MetricKind.CPU:
        field_name = cpu_field(field_name)

    unit = get_unit(settings.unit) if kind is MetricKind.DISK else None

    if settings.states:
        states = validate_ranges(make_ranges(settings.states), DOMAINS[kind])
    else:
        states = default_states(kind)

    return MetricConfig(
        name=settings.name,
        kind=kind,
        interval_s=interval,
        field=field_name,
        unit=unit,
        states=states,
        device=settings.device or None,
        stat=str(settings.stat).strip().lower(),
        minutes=int(settings.minutes),
    )


def build_metric_configs(cfg: AppConfig) -> list[MetricConfig]:
    names: set[str] = set()
    out: list[MetricConfig] = []
    for settings in cfg.metrics:
        if settings.name in names:
            raise ConfigurationError(f"duplicate metric name '{settings.name}'")
        names.add(settings.name)
        out.append(build_metric_config(settings, cfg.scheduler.interval_s))
    return out
