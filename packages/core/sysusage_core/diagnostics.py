"""Status payloads and diagnostics export helpers for local support bundles."""

from __future__ import annotations

import json
import platform
import re
import tempfile
import zipfile
from dataclasses import asdict, is_dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

import psutil

from sysusage_telemetry import MetricReading

from .config import AppConfig, config_path
from .logging_setup import log_dir
from .scheduler import CollectorRegistry


_SECRET_RE = re.compile(r"(token|secret|password|apikey|api_key|auth)", re.IGNORECASE)


def _jsonable(value: Any) -> Any:
    if is_dataclass(value):
        return asdict(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Path):
        return str(value)
    return value


def redact(value: Any) -> Any:
    if isinstance(value, dict):
        out: dict[str, Any] = {}
        for k, v in value.items():
            if _SECRET_RE.search(k):
                out[k] = "***REDACTED***"
            else:
                out[k] = redact(v)
        return out
    if isinstance(value, list):
        return [redact(v) for v in value]
    return value


def reading_payload(reading: MetricReading | None) -> dict[str, Any] | None:
    if reading is None:
        return None
    state = reading.state
    return {
        "kind": reading.kind.value,
        "value": reading.value,
        "display_value": reading.display_value,
        "unit": reading.unit_label,
        "text": reading.text,
        "timestamp_ms": reading.timestamp_ms,
        "details": dict(reading.details),
        "state": {
            "label": state.label,
            "severity": state.severity.value,
            "summary": state.summary,
            "body": state.body,
        },
    }


def build_status_payload(registry: CollectorRegistry) -> dict[str, Any]:
    return {
        "ts_utc": datetime.now(timezone.utc).isoformat(),
        "metrics": {name: reading_payload(reading) for name, reading in registry.readings().items()},
        "offline": dict(registry.failed),
    }


def build_doctor_payload(cfg: AppConfig, registry: CollectorRegistry | None = None) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "ts_utc": datetime.now(timezone.utc).isoformat(),
        "platform": platform.platform(),
        "python": platform.python_version(),
        "psutil": psutil.__version__,
        "cpu_count": psutil.cpu_count(),
        "config": redact(asdict(cfg)),
    }
    if registry is not None:
        payload["status"] = build_status_payload(registry)
        payload["events"] = registry.recent_events()
    return payload


class DiagnosticsExporter:
    def __init__(self, app_name: str = "SysUsage") -> None:
        self.app_name = app_name

    def bundle(
        self,
        cfg: AppConfig,
        doctor_payload: dict[str, Any],
        output_dir: Path | None = None,
    ) -> Path:
        output_base = output_dir or Path(tempfile.gettempdir())
        output_base.mkdir(parents=True, exist_ok=True)
        stamp = datetime.now().strftime("%Y%m%d-%H%M%S")
        zip_path = output_base / f"sysusage-diagnostics-{stamp}.zip"

        logs = sorted(log_dir().glob("*.log*"))

        with zipfile.ZipFile(zip_path, "w", compression=zipfile.ZIP_DEFLATED) as zf:
            manifest = {
                "app": self.app_name,
                "created_utc": datetime.now(timezone.utc).isoformat(),
                "host": platform.platform(),
                "python": platform.python_version(),
                "config_path": str(config_path()),
                "log_dir": str(log_dir()),
            }
            zf.writestr("manifest.json", json.dumps(manifest, indent=2, sort_keys=True))
            zf.writestr("doctor.json", json.dumps(redact(doctor_payload), indent=2, sort_keys=True, default=_jsonable))
            zf.writestr("config.redacted.json", json.dumps(redact(asdict(cfg)), indent=2, sort_keys=True))

            for item in logs:
                zf.write(item, arcname=f"logs/{item.name}")

        return zip_path
