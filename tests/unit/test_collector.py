import sys
import unittest
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(ROOT / "packages" / "telemetry"))

from sysusage_telemetry import (
    UNDEFINED_STATE,
    ConfigurationError,
    CounterSnapshot,
    MetricCollector,
    MetricConfig,
    MetricKind,
    SourceError,
    StateRange,
    create_collector,
    default_states,
    get_unit,
)
from sysusage_telemetry.normalize import CPU_FIELDS


class ScriptedSource:
    """Returns queued snapshots in order; queued exceptions are raised."""

    def __init__(self, items, block_size=None):
        self.items = list(items)
        if block_size is not None:
            self.block_size = block_size

    def read(self):
        item = self.items.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


def cpu(ts, user=0, idle=0):
    counters = {name: 0 for name in CPU_FIELDS}
    counters.update(user=user, idle=idle)
    return CounterSnapshot(counters=counters, timestamp_ms=ts)


def gauge(ts, **counters):
    return CounterSnapshot(counters=counters, timestamp_ms=ts)


def cpu_config(**overrides):
    values = dict(name="cpu", kind="cpu", interval_s=1.0, states=default_states(MetricKind.CPU))
    values.update(overrides)
    return MetricConfig(**values)


class CpuCollectorTests(unittest.TestCase):
    def test_state_changes_once_per_edge(self):
        source = ScriptedSource(
            [
                cpu(0),
                cpu(1000, user=40, idle=60),
                cpu(2000, user=100, idle=100),
                cpu(3000, user=160, idle=140),
            ]
        )
        collector = MetricCollector(cpu_config(), source)
        self.assertIsNone(collector.reading)
        self.assertIs(collector.state, UNDEFINED_STATE)

        first = collector.refresh()
        self.assertTrue(first.updated)
        self.assertTrue(first.changed)
        self.assertEqual(first.reading.state.label, "good")
        self.assertAlmostEqual(first.reading.value, 40.0)
        self.assertEqual(first.reading.text, "40.00%")

        with self.assertLogs("sysusage_telemetry.collector", level="INFO"):
            second = collector.refresh()
        self.assertTrue(second.changed)
        self.assertEqual(second.reading.state.label, "gt50")

        third = collector.refresh()
        self.assertTrue(third.updated)
        self.assertFalse(third.changed)
        self.assertIs(third.reading.state, second.reading.state)

    def test_selected_field(self):
        source = ScriptedSource([cpu(0), cpu(1000, user=25, idle=75)])
        collector = MetricCollector(cpu_config(field="idle"), source)
        result = collector.refresh()
        self.assertAlmostEqual(result.reading.value, 75.0)
        self.assertAlmostEqual(result.reading.details["user"], 25.0)

    def test_zero_elapsed_keeps_previous_value(self):
        source = ScriptedSource([cpu(0), cpu(1000, user=10, idle=90), cpu(1000, user=90, idle=90)])
        collector = MetricCollector(cpu_config(), source)
        first = collector.refresh()
        again = collector.refresh()
        self.assertFalse(again.updated)
        self.assertFalse(again.changed)
        self.assertIs(again.reading, first.reading)

    def test_transient_error_keeps_reading_and_baseline(self):
        source = ScriptedSource(
            [
                cpu(0),
                cpu(1000, user=10, idle=90),
                SourceError("busy"),
                cpu(2000, user=70, idle=130),
            ]
        )
        collector = MetricCollector(cpu_config(), source)
        good = collector.refresh()
        failed = collector.refresh()
        self.assertFalse(failed.updated)
        self.assertIsInstance(failed.warning, SourceError)
        self.assertIs(failed.reading, good.reading)
        self.assertIs(collector.state, good.reading.state)

        recovered = collector.refresh()
        self.assertTrue(recovered.updated)
        self.assertAlmostEqual(recovered.reading.value, 60.0)

    def test_initial_source_failure_propagates(self):
        with self.assertRaises(SourceError):
            MetricCollector(cpu_config(), ScriptedSource([SourceError("no /proc")]))

    def test_zero_interval_is_rejected(self):
        with self.assertRaises(ConfigurationError):
            MetricCollector(cpu_config(interval_s=0), ScriptedSource([cpu(0)]))

    def test_unknown_kind_is_rejected(self):
        with self.assertRaises(ConfigurationError):
            cpu_config(kind="gpu")

    def test_non_contiguous_states_are_rejected(self):
        gapped = (StateRange(0.0, 10.0, "a"), StateRange(50.0, 100.0, "b", closed=True))
        source = ScriptedSource([cpu(0)])
        with self.assertRaises(ConfigurationError):
            create_collector(cpu_config(states=gapped), source)
        self.assertEqual(len(source.items), 1)

    def test_states_must_cover_percent_domain(self):
        partial = (StateRange(0.0, 90.0, "a", closed=True),)
        with self.assertRaises(ConfigurationError):
            MetricCollector(cpu_config(states=partial), ScriptedSource([cpu(0)]))

    def test_unclassified_metric_needs_no_states(self):
        collector = MetricCollector(cpu_config(states=()), ScriptedSource([cpu(0)]))
        self.assertIs(collector.state, UNDEFINED_STATE)


class DiskCollectorTests(unittest.TestCase):
    def disk(self, stat="average", items=None):
        items = items or [
            gauge(0, **{"read.blocks": 0, "write.blocks": 0}),
            gauge(1000, **{"read.blocks": 2000, "write.blocks": 0}),
        ]
        config = MetricConfig(name="disk", kind="disk", interval_s=1.0, unit=get_unit("MB"), stat=stat)
        return MetricCollector(config, ScriptedSource(items, block_size=512))

    def test_average_of_read_and_write(self):
        reading = self.disk().refresh().reading
        self.assertEqual(reading.value, 512_000.0)
        self.assertAlmostEqual(reading.display_value, 0.48828125)
        self.assertAlmostEqual(reading.details["read"], 0.9765625)
        self.assertEqual(reading.details["write"], 0.0)
        self.assertEqual(reading.unit_label, "MB/s")
        self.assertEqual(reading.text, "0.49 MB/s")

    def test_read_only(self):
        reading = self.disk(stat="read").refresh().reading
        self.assertAlmostEqual(reading.display_value, 0.9765625)
        self.assertIs(reading.state, UNDEFINED_STATE)

    def test_counter_reset_reads_as_zero(self):
        items = [
            gauge(0, **{"read.blocks": 2000, "write.blocks": 10}),
            gauge(1000, **{"read.blocks": 100, "write.blocks": 5}),
        ]
        reading = self.disk(items=items).refresh().reading
        self.assertEqual(reading.value, 0.0)

    def test_unknown_stat_is_rejected(self):
        with self.assertRaises(ConfigurationError):
            self.disk(stat="sideways")


class GaugeCollectorTests(unittest.TestCase):
    def test_memory_percent(self):
        config = MetricConfig(name="mem", kind="memory", interval_s=5.0, states=default_states(MetricKind.MEMORY))
        source = ScriptedSource([gauge(0, MemTotal=1000, MemAvailable=500), gauge(1000, MemTotal=1000, MemAvailable=150)])
        reading = MetricCollector(config, source).refresh().reading
        self.assertEqual(reading.value, 85.0)
        self.assertEqual(reading.state.label, "medium")

    def test_empty_swap_is_zero(self):
        config = MetricConfig(name="swap", kind="swap", interval_s=5.0, states=default_states(MetricKind.SWAP))
        source = ScriptedSource([gauge(0, SwapTotal=0, SwapFree=0), gauge(1000, SwapTotal=0, SwapFree=0)])
        reading = MetricCollector(config, source).refresh().reading
        self.assertEqual(reading.value, 0.0)
        self.assertEqual(reading.state.label, "low")

    def test_missing_field_at_start_is_configuration_error(self):
        config = MetricConfig(name="mem", kind="memory", interval_s=5.0)
        with self.assertRaises(ConfigurationError):
            MetricCollector(config, ScriptedSource([gauge(0, Cached=1)]))

    def test_missing_field_later_is_a_warning(self):
        config = MetricConfig(name="mem", kind="memory", interval_s=5.0)
        source = ScriptedSource([gauge(0, MemTotal=1000, MemAvailable=500), gauge(1000, MemTotal=1000)])
        result = MetricCollector(config, source).refresh()
        self.assertFalse(result.updated)
        self.assertIsInstance(result.warning, SourceError)

    def test_load_average_scaled_by_cores(self):
        config = MetricConfig(
            name="load", kind="loadavg", interval_s=5.0, minutes=5, states=default_states(MetricKind.LOADAVG)
        )
        source = ScriptedSource(
            [
                gauge(0, load1=0.0, load5=0.0, load15=0.0, cores=4),
                gauge(1000, load1=9.0, load5=2.0, load15=1.0, cores=4),
            ]
        )
        reading = MetricCollector(config, source).refresh().reading
        self.assertEqual(reading.value, 50.0)
        self.assertEqual(reading.state.label, "gt50")

    def test_load_average_is_capped(self):
        config = MetricConfig(name="load", kind="loadavg", interval_s=5.0, states=default_states(MetricKind.LOADAVG))
        source = ScriptedSource(
            [
                gauge(0, load1=0.0, load5=0.0, load15=0.0, cores=2),
                gauge(1000, load1=9.0, load5=0.0, load15=0.0, cores=2),
            ]
        )
        reading = MetricCollector(config, source).refresh().reading
        self.assertEqual(reading.value, 100.0)
        self.assertEqual(reading.state.label, "full")

    def test_load_average_window_must_be_known(self):
        config = MetricConfig(name="load", kind="loadavg", interval_s=5.0, minutes=2)
        with self.assertRaises(ConfigurationError):
            MetricCollector(config, ScriptedSource([gauge(0, load1=0.0, load5=0.0, load15=0.0, cores=1)]))

    def test_uptime_text(self):
        config = MetricConfig(name="uptime", kind="uptime", interval_s=60.0)
        source = ScriptedSource([gauge(0, uptime=3800), gauge(60000, uptime=3900)])
        result = MetricCollector(config, source).refresh()
        self.assertEqual(result.reading.text, "1 hour and 5 minutes")
        self.assertFalse(result.changed)

    def test_create_collector_uses_given_source(self):
        config = MetricConfig(name="uptime", kind="uptime", interval_s=60.0)
        collector = create_collector(config, ScriptedSource([gauge(0, uptime=1)]))
        self.assertEqual(collector.name, "uptime")
        self.assertEqual(collector.kind, MetricKind.UPTIME)
        self.assertEqual(collector.interval_s, 60.0)


if __name__ == "__main__":
    unittest.main()
