import io
import json
import sys
import tempfile
import unittest
from contextlib import redirect_stderr, redirect_stdout
from pathlib import Path
from unittest import mock

ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(ROOT / "apps" / "cli"))
sys.path.insert(0, str(ROOT / "packages" / "core"))
sys.path.insert(0, str(ROOT / "packages" / "telemetry"))

from sysusage_app import cli
from sysusage_app.cli import build_parser


def run(argv):
    out = io.StringIO()
    err = io.StringIO()
    with mock.patch.object(cli, "configure_logging"), redirect_stdout(out), redirect_stderr(err):
        rc = cli.main(argv)
    return rc, out.getvalue(), err.getvalue()


class ParserTests(unittest.TestCase):
    def test_sample_command(self):
        args = build_parser().parse_args(["sample", "--interval", "0.5", "--metric", "cpu", "--metric", "disk"])
        self.assertEqual(args.command, "sample")
        self.assertEqual(args.interval, 0.5)
        self.assertEqual(args.metric, ["cpu", "disk"])

    def test_watch_command(self):
        args = build_parser().parse_args(["watch", "--count", "3"])
        self.assertEqual(args.command, "watch")
        self.assertEqual(args.count, 3)

    def test_doctor_command(self):
        args = build_parser().parse_args(["doctor", "--export", "--interval", "2"])
        self.assertTrue(args.export)
        self.assertEqual(args.interval, 2.0)

    def test_config_commands(self):
        args = build_parser().parse_args(["--config", "x.json", "config", "init", "--force"])
        self.assertEqual(args.config_cmd, "init")
        self.assertTrue(args.force)
        self.assertEqual(args.config, "x.json")

    def test_states_requires_known_kind(self):
        with redirect_stderr(io.StringIO()), self.assertRaises(SystemExit):
            build_parser().parse_args(["states", "gpu"])


class CommandTests(unittest.TestCase):
    def test_units(self):
        rc, out, _ = run(["units"])
        self.assertEqual(rc, 0)
        self.assertEqual([u["short_id"] for u in json.loads(out)], ["B", "KB", "MB", "GB"])

    def test_states(self):
        rc, out, _ = run(["states", "swap"])
        self.assertEqual(rc, 0)
        rows = json.loads(out)
        self.assertEqual([r["label"] for r in rows], ["low", "low", "medium", "high"])
        self.assertTrue(rows[-1]["closed"])

    def test_config_init_then_show(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = str(Path(tmp) / "config.json")
            rc, _, _ = run(["--config", path, "config", "init"])
            self.assertEqual(rc, 0)
            self.assertTrue(Path(path).exists())

            rc, _, err = run(["--config", path, "config", "init"])
            self.assertEqual(rc, 1)
            self.assertIn("already exists", err)

            rc, out, _ = run(["--config", path, "config", "show"])
            self.assertEqual(rc, 0)
            self.assertTrue(json.loads(out)["exists"])

    def test_configuration_error_exit_code(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "config.json"
            path.write_text(json.dumps({"config_version": 2, "metrics": [{"name": "x", "kind": "gpu"}]}), encoding="utf-8")
            rc, _, err = run(["--config", str(path), "sample"])
        self.assertEqual(rc, cli.EXIT_CONFIG)
        self.assertIn("configuration error", err)

    def test_doctor_waits_before_refreshing(self):
        calls = mock.Mock()
        with mock.patch.object(cli, "registry_from_config", return_value=calls.registry), mock.patch.object(
            cli.time, "sleep", calls.sleep
        ), mock.patch.object(cli, "build_doctor_payload", return_value={"ok": True}):
            rc, out, _ = run(["--config", "/tmp/nonexistent-sysusage-config.json", "doctor", "--interval", "0.5"])
        self.assertEqual(rc, 0)
        self.assertEqual(json.loads(out), {"ok": True})
        self.assertEqual(calls.mock_calls[:2], [mock.call.sleep(0.5), mock.call.registry.refresh_all()])

    def test_unknown_metric_selection(self):
        rc, _, err = run(["--config", "/tmp/nonexistent-sysusage-config.json", "sample", "--metric", "nope"])
        self.assertEqual(rc, cli.EXIT_CONFIG)
        self.assertIn("nope", err)


if __name__ == "__main__":
    unittest.main()
