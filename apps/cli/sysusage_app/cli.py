"""CLI entrypoints for sampling, watching and inspecting system usage metrics."""

from __future__ import annotations

import argparse
import json
import sys
import threading
import time
from dataclasses import asdict
from pathlib import Path

from sysusage_core import (
    AppConfig,
    DiagnosticsExporter,
    build_doctor_payload,
    build_metric_configs,
    build_registry,
    build_status_payload,
    load_config,
    registry_from_config,
    save_config,
)
from sysusage_core.config import config_path
from sysusage_core.diagnostics import reading_payload
from sysusage_core.logging_setup import configure_logging, install_crash_hooks
from sysusage_telemetry import UNITS, ConfigurationError, MetricKind, MetricReading, SourceError, default_states


EXIT_CONFIG = 2
EXIT_SOURCE = 3


def _print_json(data: object) -> None:
    print(json.dumps(data, indent=2, sort_keys=True, default=str))


def _load(args: argparse.Namespace) -> AppConfig:
    path = Path(args.config).expanduser() if getattr(args, "config", None) else None
    return load_config(path)


def _selected(cfg: AppConfig, names: list[str] | None):
    configs = build_metric_configs(cfg)
    if not names:
        return configs
    known = {c.name for c in configs}
    unknown = [n for n in names if n not in known]
    if unknown:
        raise ConfigurationError(f"unknown metric(s): {', '.join(unknown)}")
    return [c for c in configs if c.name in names]


def cmd_sample(args: argparse.Namespace) -> int:
    cfg = _load(args)
    registry = build_registry(_selected(cfg, args.metric))
    if not len(registry):
        print("no metric could be sampled", file=sys.stderr)
        _print_json(registry.failed)
        return EXIT_SOURCE

    time.sleep(max(0.1, float(args.interval)))
    registry.refresh_all()
    _print_json(build_status_payload(registry))
    return 0


def cmd_watch(args: argparse.Namespace) -> int:
    cfg = _load(args)
    install_crash_hooks()
    seen = threading.Event()
    changes = {"count": 0}

    def _on_change(name: str, reading: MetricReading) -> None:
        print(json.dumps({"metric": name, **(reading_payload(reading) or {})}, sort_keys=True, default=str), flush=True)
        changes["count"] += 1
        if args.count and changes["count"] >= args.count:
            seen.set()

    registry = build_registry(_selected(cfg, args.metric), on_change=_on_change)
    if not len(registry):
        print("no metric could be sampled", file=sys.stderr)
        return EXIT_SOURCE

    registry.start()
    try:
        seen.wait(args.seconds if args.seconds else None)
    except KeyboardInterrupt:
        pass
    finally:
        registry.stop()
    return 0


def cmd_units(_args: argparse.Namespace) -> int:
    _print_json([asdict(unit) for unit in UNITS])
    return 0


def cmd_states(args: argparse.Namespace) -> int:
    _print_json(
        [
            {
                "from": state.lower,
                "to": state.upper,
                "closed": state.closed,
                "label": state.label,
                "severity": state.severity.value,
                "summary": state.summary,
            }
            for state in default_states(MetricKind(args.kind))
        ]
    )
    return 0


def cmd_doctor(args: argparse.Namespace) -> int:
    cfg = _load(args)
    registry = registry_from_config(cfg)
    time.sleep(max(0.1, float(args.interval)))
    registry.refresh_all()
    payload = build_doctor_payload(cfg, registry)

    if args.export:
        exporter = DiagnosticsExporter()
        out_dir = Path(args.out_dir).expanduser().resolve() if args.out_dir else None
        bundle = exporter.bundle(cfg=cfg, doctor_payload=payload, output_dir=out_dir)
        payload["diagnostics_bundle"] = str(bundle)

    _print_json(payload)
    return 0


def cmd_config(args: argparse.Namespace) -> int:
    path = Path(args.config).expanduser() if args.config else config_path()
    if args.config_cmd == "init":
        if path.exists() and not args.force:
            print(f"{path} already exists (use --force to overwrite)", file=sys.stderr)
            return 1
        saved = save_config(AppConfig(), path)
        _print_json({"path": str(saved)})
        return 0

    cfg = load_config(path)
    build_metric_configs(cfg)
    _print_json({"path": str(path), "exists": path.exists(), "config": asdict(cfg)})
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="sysusage", description="System usage sampling and state classification")
    parser.add_argument("--config", default=None, help="Optional path to a JSON settings file")
    parser.add_argument("--verbose", action="store_true", help="Log to the console as well as the log file")
    sub = parser.add_subparsers(dest="command", required=True)

    sample_cmd = sub.add_parser("sample", help="Take two samples and print every metric")
    sample_cmd.add_argument("--interval", type=float, default=1.0, help="Seconds between the two samples")
    sample_cmd.add_argument("--metric", action="append", default=None, help="Metric name (repeatable)")
    sample_cmd.set_defaults(func=cmd_sample)

    watch_cmd = sub.add_parser("watch", help="Poll metrics and print a line on every state change")
    watch_cmd.add_argument("--count", type=int, default=0, help="Stop after this many state changes")
    watch_cmd.add_argument("--seconds", type=float, default=0.0, help="Stop after this many seconds")
    watch_cmd.add_argument("--metric", action="append", default=None, help="Metric name (repeatable)")
    watch_cmd.set_defaults(func=cmd_watch)

    units_cmd = sub.add_parser("units", help="List throughput display units")
    units_cmd.set_defaults(func=cmd_units)

    states_cmd = sub.add_parser("states", help="Show built-in states for a metric kind")
    states_cmd.add_argument("kind", choices=[k.value for k in MetricKind])
    states_cmd.set_defaults(func=cmd_states)

    doctor_cmd = sub.add_parser("doctor", help="Print diagnostics and current metric values")
    doctor_cmd.add_argument("--interval", type=float, default=1.0, help="Seconds between the two samples")
    doctor_cmd.add_argument("--export", action="store_true", help="Export offline diagnostics bundle")
    doctor_cmd.add_argument("--out-dir", default=None, help="Optional output directory for diagnostics bundle")
    doctor_cmd.set_defaults(func=cmd_doctor)

    config_cmd = sub.add_parser("config", help="Show or create the settings file")
    config_sub = config_cmd.add_subparsers(dest="config_cmd", required=True)
    config_sub.add_parser("show", help="Print the effective settings")
    init_cmd = config_sub.add_parser("init", help="Write default settings")
    init_cmd.add_argument("--force", action="store_true")
    config_cmd.set_defaults(func=cmd_config)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        cfg = _load(args)
        configure_logging(
            keep_files=cfg.logging.keep_log_files,
            console=args.verbose or cfg.logging.console,
            level=cfg.logging.level,
        )
        return int(args.func(args))
    except ConfigurationError as exc:
        print(f"configuration error: {exc}", file=sys.stderr)
        return EXIT_CONFIG
    except SourceError as exc:
        print(f"counter source error: {exc}", file=sys.stderr)
        return EXIT_SOURCE


if __name__ == "__main__":
    raise SystemExit(main())
