import sys
import unittest
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(ROOT / "packages" / "telemetry"))

try:
    from sysusage_telemetry.sources import LoadAverageSource, PsutilCpuSource, PsutilMemorySource, UptimeSource
except Exception:  # pragma: no cover
    PsutilCpuSource = None

from sysusage_telemetry.normalize import CPU_FIELDS


class PsutilSourceTests(unittest.TestCase):
    def setUp(self):
        if PsutilCpuSource is None:
            self.skipTest("psutil not installed")

    def test_cpu_ticks(self):
        snap = PsutilCpuSource().read()
        self.assertEqual(set(snap.fields), set(CPU_FIELDS))
        self.assertGreater(sum(snap[name] for name in CPU_FIELDS), 0)

    def test_memory(self):
        snap = PsutilMemorySource().read()
        self.assertGreater(snap["MemTotal"], 0)
        self.assertIn("SwapFree", snap)

    def test_uptime_and_load(self):
        self.assertGreaterEqual(UptimeSource().read()["uptime"], 0)
        self.assertGreaterEqual(LoadAverageSource().read()["cores"], 1)


if __name__ == "__main__":
    unittest.main()
