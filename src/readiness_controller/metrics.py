from __future__ import annotations

from prometheus_client import CollectorRegistry, Gauge, Histogram, generate_latest
from prometheus_client.exposition import CONTENT_TYPE_LATEST

from readiness_controller.config import GateRule
from readiness_controller.state import ProbeResult

_LABELS = ("rule", "target", "check_type")

__all__ = ["CONTENT_TYPE_LATEST", "ProbeMetrics"]


class ProbeMetrics:
    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self.registry = registry if registry is not None else CollectorRegistry()
        self.success = Gauge(
            "readiness_probe_success",
            "Whether the last probe of a gate rule succeeded (1) or failed (0).",
            _LABELS,
            registry=self.registry,
        )
        self.duration = Histogram(
            "readiness_probe_duration_seconds",
            "Duration of gate rule probes.",
            _LABELS,
            registry=self.registry,
        )
        self.last_timestamp = Gauge(
            "readiness_probe_last_timestamp_seconds",
            "Unix time of the last probe of a gate rule.",
            _LABELS,
            registry=self.registry,
        )

    def record(self, rule: GateRule, result: ProbeResult) -> None:
        labels = (rule.name, rule.check_target, rule.check_type)
        self.duration.labels(*labels).observe(result.duration_s)
        self.last_timestamp.labels(*labels).set(result.timestamp.timestamp())
        self.success.labels(*labels).set(1 if result.healthy else 0)

    def render(self) -> bytes:
        return generate_latest(self.registry)
