"""App services for settings, logging, the collector registry and diagnostics."""

from .config import (
    AppConfig,
    MetricSettings,
    build_metric_config,
    build_metric_configs,
    load_config,
    save_config,
)
from .diagnostics import DiagnosticsExporter, build_doctor_payload, build_status_payload
from .scheduler import CollectorRegistry, build_registry, registry_from_config

__all__ = [
    "AppConfig",
    "CollectorRegistry",
    "DiagnosticsExporter",
    "MetricSettings",
    "build_doctor_payload",
    "build_metric_config",
    "build_metric_configs",
    "build_registry",
    "build_status_payload",
    "load_config",
    "registry_from_config",
    "save_config",
]
