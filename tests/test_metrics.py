"""
Tests for the shared metrics module.
"""

import pytest
from fleet_replay.server.analytics.fleet_metrics import FleetMetrics
from fleet_replay.shared.metrics import (
    MetricType,
    MetricsRegistry,
    PrometheusExporter,
    ReplayMetricsCollector,
    create_exporter_from_config,
)


class TestMetricsRegistry:
    """Tests for MetricsRegistry class."""

    def test_counter(self):
        registry = MetricsRegistry()
        registry.counter("test_counter", 1)
        registry.counter("test_counter", 2)

        metric = registry.get("test_counter")
        assert metric.value == 3
        assert metric.metric_type == MetricType.COUNTER

    def test_counter_with_labels(self):
        registry = MetricsRegistry()
        registry.counter("requests", 1, {"method": "GET", "status": "200"})
        registry.counter("requests", 1, {"method": "POST", "status": "201"})
        registry.counter("requests", 2, {"method": "GET", "status": "200"})

        # Separate entries per label combination
        assert registry.get("requests", {"method": "GET", "status": "200"}).value == 3
        assert registry.get("requests", {"status": "201", "method": "POST"}).value == 1
        assert registry.get("requests") is None

    def test_gauge(self):
        registry = MetricsRegistry()
        registry.gauge("cursor", 5)
        registry.gauge("cursor", 3)

        assert registry.get("cursor").value == 3  # Last value

    def test_summary(self):
        registry = MetricsRegistry()
        for value in (10, 20, 30):
            registry.observe("tick_ms", value)

        metric = registry.get("tick_ms")
        assert metric.value == 60
        assert metric.count == 3
        assert metric.metric_type == MetricType.SUMMARY

    def test_counter_cannot_decrease(self):
        registry = MetricsRegistry()
        with pytest.raises(ValueError):
            registry.counter("ticks", -1)

    def test_type_conflict(self):
        registry = MetricsRegistry()
        registry.gauge("cursor", 1)
        with pytest.raises(ValueError):
            registry.counter("cursor")

    def test_clear(self):
        registry = MetricsRegistry()
        registry.counter("c")
        registry.clear()
        assert registry.get_all_metrics() == []

        registry.counter("c")
        assert registry.get("c").value == 1


class TestReplayMetricsCollector:
    """Tests for ReplayMetricsCollector class."""

    @pytest.fixture
    def collector(self):
        return ReplayMetricsCollector(registry=MetricsRegistry())

    def test_ticks(self, collector):
        collector.increment_ticks()
        collector.increment_ticks()
        assert collector.registry.get("ticks_total").value == 2

    def test_events_applied_by_type(self, collector):
        collector.increment_events_applied("location_ping")
        collector.increment_events_applied("location_ping")
        collector.increment_events_applied("signal_lost")

        registry = collector.registry
        assert registry.get("events_applied_total", {"event_type": "location_ping"}).value == 2
        assert registry.get("events_applied_total", {"event_type": "signal_lost"}).value == 1

    def test_cursor(self, collector):
        collector.update_cursor(4, 20)
        assert collector.registry.get("cursor_index").value == 4
        assert collector.registry.get("event_log_size").value == 20

    def test_checkpoint_failures(self, collector):
        collector.increment_checkpoint_failures("save")
        metric = collector.registry.get("checkpoint_failures_total", {"operation": "save"})
        assert metric.value == 1

    def test_fleet_metrics(self, collector):
        collector.update_fleet_metrics(FleetMetrics(active=2, completed=1, total=4, avg_progress=37))

        registry = collector.registry
        assert registry.get("fleet_active").value == 2
        assert registry.get("fleet_avg_progress").value == 37
        assert registry.get("fleet_progress_over_80").value == 0


class TestPrometheusFormat:
    """Tests for Prometheus text output."""

    def test_format(self):
        registry = MetricsRegistry()
        collector = ReplayMetricsCollector(registry)
        collector.increment_events_applied("trip_started")
        collector.increment_events_applied("trip_completed")
        collector.update_cursor(2, 9)

        exporter = PrometheusExporter(registry=registry)
        output = exporter.format_prometheus(registry.get_all_metrics())
        lines = output.splitlines()

        assert lines.count("# TYPE fleet_replay_events_applied_total counter") == 1
        assert 'fleet_replay_events_applied_total{event_type="trip_started"} 1.0' in lines
        assert 'fleet_replay_events_applied_total{event_type="trip_completed"} 1.0' in lines
        assert "# HELP fleet_replay_cursor_index Index of the next unapplied event" in lines
        assert "fleet_replay_cursor_index 2" in lines
        assert output.endswith("\n")

    def test_series_grouped_by_name(self):
        registry = MetricsRegistry()
        registry.counter("checkpoint_failures_total", labels={"operation": "save"})
        registry.gauge("cursor_index", 1)
        registry.counter("checkpoint_failures_total", labels={"operation": "load"})

        lines = PrometheusExporter(registry=registry).format_prometheus(registry.get_all_metrics()).splitlines()

        assert lines == [
            "# TYPE fleet_replay_checkpoint_failures_total counter",
            'fleet_replay_checkpoint_failures_total{operation="load"} 1.0',
            'fleet_replay_checkpoint_failures_total{operation="save"} 1.0',
            "# TYPE fleet_replay_cursor_index gauge",
            "fleet_replay_cursor_index 1",
        ]

    def test_summary_format(self):
        registry = MetricsRegistry()
        collector = ReplayMetricsCollector(registry)
        collector.record_tick_duration(1.5)
        collector.record_tick_duration(2.5)

        lines = PrometheusExporter(registry=registry).format_prometheus(registry.get_all_metrics()).splitlines()

        assert "# TYPE fleet_replay_tick_duration_ms summary" in lines
        assert "fleet_replay_tick_duration_ms_sum 4.0" in lines
        assert "fleet_replay_tick_duration_ms_count 2" in lines

    def test_label_values_escaped(self):
        registry = MetricsRegistry()
        registry.counter("events_applied_total", labels={"event_type": 'odd"type'})

        output = PrometheusExporter(registry=registry).format_prometheus(registry.get_all_metrics())
        assert 'fleet_replay_events_applied_total{event_type="odd\\"type"} 1.0' in output

    def test_custom_prefix(self):
        registry = MetricsRegistry()
        registry.gauge("up", 1)

        output = PrometheusExporter(prefix="replay", registry=registry).format_prometheus(
            registry.get_all_metrics()
        )
        assert "replay_up 1" in output.splitlines()


class TestExporterConfig:
    """Tests for create_exporter_from_config."""

    def test_disabled_by_default(self):
        assert create_exporter_from_config({}) is None
        assert create_exporter_from_config({"prometheus_enabled": False}) is None

    def test_enabled(self):
        registry = MetricsRegistry()
        exporter = create_exporter_from_config(
            {"prometheus_enabled": True, "prometheus_port": 9200, "prefix": "fr"},
            registry,
        )

        assert isinstance(exporter, PrometheusExporter)
        assert exporter.port == 9200
        assert exporter.host == "0.0.0.0"
        assert exporter.prefix == "fr"
        assert exporter.registry is registry
