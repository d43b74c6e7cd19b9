"""Probe custom resource status sink."""

from __future__ import annotations

import copy
import logging
from datetime import datetime

from readiness_controller.config import GateRule
from readiness_controller.k8s.client import (
    PROBE_GROUP,
    PROBE_KIND,
    PROBE_VERSION,
    AlreadyExistsError,
    KubeClient,
    NotFoundError,
    probe_path,
    probe_status_path,
)
from readiness_controller.sinks.base import StateSink, check_message, format_utc, parse_utc
from readiness_controller.state import ProbeResult

logger = logging.getLogger(__name__)

HEARTBEAT_S = 60.0


def needs_status_write(
    status: dict | None,
    healthy: bool,
    message: str,
    now: datetime,
    heartbeat_s: float = HEARTBEAT_S,
) -> bool:
    if not isinstance(status, dict):
        return True
    if status.get("healthy") is not healthy or status.get("message") != message:
        return True
    last = parse_utc(status.get("lastProbeTime"))
    if last is None:
        return True
    return (now - last).total_seconds() >= heartbeat_s


def probe_manifest(rule: GateRule) -> dict:
    return {
        "apiVersion": f"{PROBE_GROUP}/{PROBE_VERSION}",
        "kind": PROBE_KIND,
        "metadata": {"name": rule.name, "namespace": rule.namespace},
        "spec": {
            "checkType": rule.check_type,
            "checkTarget": rule.check_target,
            "interval": rule.interval,
        },
    }


class ProbeStatusSink(StateSink):
    kind = "crd"

    def __init__(self, client: KubeClient, rule: GateRule, heartbeat_s: float = HEARTBEAT_S) -> None:
        self.client = client
        self.rule = rule
        self.heartbeat_s = heartbeat_s

    def describe(self) -> str:
        return f"Probe {self.rule.namespace}/{self.rule.name}"

    def ensure_exists(self) -> None:
        try:
            self.client.get(probe_path(self.rule.namespace, self.rule.name))
            return
        except NotFoundError:
            pass
        logger.info("[%s] Creating Probe resource...", self.rule.name)
        try:
            self.client.create(probe_path(self.rule.namespace), probe_manifest(self.rule))
        except AlreadyExistsError:
            logger.debug("[%s] Probe resource created concurrently", self.rule.name)

    def read(self) -> dict:
        return self.client.get(probe_path(self.rule.namespace, self.rule.name))

    def write_if_changed(self, current: object, result: ProbeResult) -> int:
        obj = current if isinstance(current, dict) else {}
        message = check_message(result.healthy)
        status = obj.get("status")
        if not needs_status_write(status, result.healthy, message, result.timestamp, self.heartbeat_s):
            return 0

        changed = not (
            isinstance(status, dict)
            and status.get("healthy") is result.healthy
            and status.get("message") == message
        )
        body = copy.deepcopy(obj)
        body["status"] = {
            **(status if isinstance(status, dict) else {}),
            "healthy": result.healthy,
            "message": message,
            "lastProbeTime": format_utc(result.timestamp),
        }
        self.client.replace(probe_status_path(self.rule.namespace, self.rule.name), body)
        if changed:
            logger.info("[%s] Updated Probe status: healthy=%s", self.rule.name, result.healthy)
        else:
            logger.debug("[%s] Refreshed Probe lastProbeTime", self.rule.name)
        return 1
