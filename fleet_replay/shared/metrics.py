"""
Operational metrics for Fleet Replay.

Collectors record values into a registry; the Prometheus exporter
serves the registry on an HTTP endpoint for scraping.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from itertools import groupby
from typing import Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)


class MetricType(Enum):
    COUNTER = "counter"
    GAUGE = "gauge"
    SUMMARY = "summary"  # exported as _sum and _count


@dataclass
class MetricValue:
    """Current value of one labelled series."""
    name: str
    value: float
    metric_type: MetricType
    labels: Dict[str, str] = field(default_factory=dict)
    help_text: str = ""
    # Observations folded into value (summaries only)
    count: int = 0


SeriesKey = Tuple[str, Tuple[Tuple[str, str], ...]]


class MetricsRegistry:
    """
    In-process store of metric series, keyed by name and label set.

    Collectors write here and exporters read from here.
    """

    def __init__(self):
        self._series: Dict[SeriesKey, MetricValue] = {}

    @staticmethod
    def _key(name: str, labels: Optional[Dict[str, str]]) -> SeriesKey:
        return name, tuple(sorted((labels or {}).items()))

    def _record(
        self,
        name: str,
        metric_type: MetricType,
        labels: Optional[Dict[str, str]],
        help_text: str,
    ) -> MetricValue:
        key = self._key(name, labels)
        metric = self._series.get(key)
        if metric is None:
            metric = MetricValue(name, 0.0, metric_type, dict(labels or {}), help_text)
            self._series[key] = metric
        elif metric.metric_type != metric_type:
            raise ValueError(f"{name} is a {metric.metric_type.value}, not a {metric_type.value}")
        return metric

    def gauge(self, name: str, value: float, labels: Optional[Dict[str, str]] = None, help_text: str = ""):
        self._record(name, MetricType.GAUGE, labels, help_text).value = value

    def counter(self, name: str, value: float = 1.0, labels: Optional[Dict[str, str]] = None, help_text: str = ""):
        if value < 0:
            raise ValueError(f"Counter {name} cannot decrease")
        self._record(name, MetricType.COUNTER, labels, help_text).value += value

    def observe(self, name: str, value: float, labels: Optional[Dict[str, str]] = None, help_text: str = ""):
        """Add one observation to a summary."""
        metric = self._record(name, MetricType.SUMMARY, labels, help_text)
        metric.value += value
        metric.count += 1

    def get(self, name: str, labels: Optional[Dict[str, str]] = None) -> Optional[MetricValue]:
        return self._series.get(self._key(name, labels))

    def get_all_metrics(self) -> List[MetricValue]:
        return list(self._series.values())

    def clear(self):
        self._series.clear()


_registry = MetricsRegistry()


def get_registry() -> MetricsRegistry:
    """Process-wide default registry."""
    return _registry


class MetricsExporter(ABC):

    @abstractmethod
    async def start(self):
        pass

    @abstractmethod
    async def stop(self):
        pass


def _escape_label(value: str) -> str:
    return str(value).replace("\\", "\\\\").replace("\n", "\\n").replace('"', '\\"')


class PrometheusExporter(MetricsExporter):
    """
    Serves the registry in Prometheus text format over aiohttp.

    Example output:
    # HELP fleet_replay_events_applied_total Events applied to trips
    # TYPE fleet_replay_events_applied_total counter
    fleet_replay_events_applied_total{event_type="location_ping"} 42.0
    """

    def __init__(
        self,
        port: int = 9100,
        host: str = "0.0.0.0",
        prefix: str = "fleet_replay",
        registry: Optional[MetricsRegistry] = None,
    ):
        self.port = port
        self.host = host
        self.prefix = prefix
        self.registry = registry or get_registry()
        self._runner = None

    async def start(self):
        from aiohttp import web

        app = web.Application()
        app.router.add_get("/metrics", self._handle_metrics)
        app.router.add_get("/health", self._handle_health)

        self._runner = web.AppRunner(app)
        await self._runner.setup()
        await web.TCPSite(self._runner, self.host, self.port).start()

        logger.info(f"Prometheus exporter listening on http://{self.host}:{self.port}/metrics")

    async def stop(self):
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
        logger.info("Prometheus exporter stopped")

    async def _handle_metrics(self, request):
        from aiohttp import web

        return web.Response(
            text=self.format_prometheus(self.registry.get_all_metrics()),
            content_type="text/plain",
            charset="utf-8",
        )

    async def _handle_health(self, request):
        from aiohttp import web
        return web.json_response({"status": "ok"})

    def format_prometheus(self, metrics: List[MetricValue]) -> str:
        """Render series grouped by metric name, one HELP/TYPE header per name."""
        lines = []
        ordered = sorted(metrics, key=lambda m: (m.name, sorted(m.labels.items())))

        for name, series in groupby(ordered, key=lambda m: m.name):
            series = list(series)
            full_name = f"{self.prefix}_{name}"
            first = series[0]
            if first.help_text:
                lines.append(f"# HELP {full_name} {first.help_text}")
            lines.append(f"# TYPE {full_name} {first.metric_type.value}")

            for metric in series:
                labels = ""
                if metric.labels:
                    labels = "{" + ",".join(
                        f'{k}="{_escape_label(v)}"' for k, v in sorted(metric.labels.items())
                    ) + "}"

                if metric.metric_type == MetricType.SUMMARY:
                    lines.append(f"{full_name}_sum{labels} {metric.value}")
                    lines.append(f"{full_name}_count{labels} {metric.count}")
                else:
                    lines.append(f"{full_name}{labels} {metric.value}")

        return "\n".join(lines) + "\n"


class ReplayMetricsCollector:
    """
    Named replay metrics on top of a registry.

    The engine, playback controller, checkpoint manager and session
    manager call these as they work.
    """

    def __init__(self, registry: Optional[MetricsRegistry] = None):
        self.registry = registry or get_registry()

    # Replay
    def increment_ticks(self):
        self.registry.counter("ticks_total", help_text="Playback ticks executed")

    def record_tick_duration(self, duration_ms: float):
        self.registry.observe(
            "tick_duration_ms",
            duration_ms,
            help_text="Time spent replaying a single tick in milliseconds",
        )

    def increment_events_applied(self, event_type: str):
        self.registry.counter(
            "events_applied_total",
            labels={"event_type": event_type},
            help_text="Events applied to trips",
        )

    def increment_unmatched_events(self):
        self.registry.counter("unmatched_events_total", help_text="Events consumed without a matching trip")

    def update_cursor(self, cursor_index: int, log_size: int):
        self.registry.gauge("cursor_index", cursor_index, help_text="Index of the next unapplied event")
        self.registry.gauge("event_log_size", log_size, help_text="Number of events in the session log")

    # Persistence
    def increment_checkpoint_failures(self, operation: str):
        self.registry.counter(
            "checkpoint_failures_total",
            labels={"operation": operation},
            help_text="Checkpoint store operations that failed",
        )

    # Fleet
    def update_fleet_metrics(self, metrics):
        """Publish a FleetMetrics aggregate as gauges."""
        for name, value in metrics.to_dict().items():
            self.registry.gauge(f"fleet_{name}", value, help_text=f"Fleet {name.replace('_', ' ')}")


def create_exporter_from_config(config: dict, registry: Optional[MetricsRegistry] = None) -> Optional[MetricsExporter]:
    """
    Build the exporter described by the `metrics` config section.

    Returns None unless prometheus_enabled is set:
    {
        "prometheus_enabled": true,
        "prometheus_port": 9100,
        "prometheus_host": "0.0.0.0",
        "prefix": "fleet_replay",
    }
    """
    if not config.get("prometheus_enabled", False):
        return None

    return PrometheusExporter(
        port=config.get("prometheus_port", 9100),
        host=config.get("prometheus_host", "0.0.0.0"),
        prefix=config.get("prefix", "fleet_replay"),
        registry=registry,
    )
