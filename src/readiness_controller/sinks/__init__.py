from __future__ import annotations

from readiness_controller.config import ConfigError, GateRule
from readiness_controller.k8s.client import KubeClient
from readiness_controller.sinks.base import StateSink
from readiness_controller.sinks.pod_conditions import PodConditionSink
from readiness_controller.sinks.probe_status import ProbeStatusSink

__all__ = ["PodConditionSink", "ProbeStatusSink", "StateSink", "build_sink"]


def build_sink(mode: str, client: KubeClient, rule: GateRule) -> StateSink:
    if mode == "crd":
        return ProbeStatusSink(client, rule)
    if mode == "pods":
        return PodConditionSink(client, rule)
    raise ConfigError(f"unknown mode '{mode}'")
