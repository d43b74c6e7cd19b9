"""Pod readiness condition sink."""

from __future__ import annotations

import copy
import logging

from readiness_controller.config import ConfigError, GateRule
from readiness_controller.k8s.client import (
    ApiError,
    ConflictError,
    KubeClient,
    NotFoundError,
    pod_path,
    pod_status_path,
)
from readiness_controller.k8s.retry import DEFAULT_ATTEMPTS, retry_on_conflict
from readiness_controller.sinks.base import StateSink, check_message, format_utc
from readiness_controller.state import ProbeResult
from readiness_controller.webhook.mutate import condition_type

logger = logging.getLogger(__name__)


def _pod_name(pod: dict) -> str:
    metadata = pod.get("metadata")
    if isinstance(metadata, dict) and isinstance(metadata.get("name"), str):
        return metadata["name"]
    return ""


def find_condition(pod: dict, ctype: str) -> dict | None:
    status = pod.get("status")
    if not isinstance(status, dict):
        return None
    conditions = status.get("conditions")
    if not isinstance(conditions, list):
        return None
    for condition in conditions:
        if isinstance(condition, dict) and condition.get("type") == ctype:
            return condition
    return None


def condition_up_to_date(pod: dict, ctype: str, desired_status: str) -> bool:
    condition = find_condition(pod, ctype)
    return condition is not None and condition.get("status") == desired_status


def build_condition(ctype: str, result: ProbeResult) -> dict:
    ts = format_utc(result.timestamp)
    return {
        "type": ctype,
        "status": "True" if result.healthy else "False",
        "lastProbeTime": ts,
        "lastTransitionTime": ts,
        "reason": "ProbeSucceeded" if result.healthy else "ProbeFailed",
        "message": check_message(result.healthy),
    }


def set_condition(pod: dict, condition: dict) -> dict:
    """Return a copy of ``pod`` whose condition list carries ``condition``."""
    updated = copy.deepcopy(pod)
    status = updated.get("status")
    if not isinstance(status, dict):
        status = {}
        updated["status"] = status
    conditions = status.get("conditions")
    if not isinstance(conditions, list):
        conditions = []
    kept = [c for c in conditions if not (isinstance(c, dict) and c.get("type") == condition["type"])]
    kept.append(condition)
    status["conditions"] = kept
    return updated


class PodConditionSink(StateSink):
    kind = "pods"

    def __init__(self, client: KubeClient, rule: GateRule, attempts: int = DEFAULT_ATTEMPTS) -> None:
        if not rule.target_selector:
            raise ConfigError(f"rule '{rule.name}' needs targetSelector in pods mode")
        self.client = client
        self.rule = rule
        self.attempts = attempts
        self.condition_type = condition_type(rule.gate_name)

    def describe(self) -> str:
        return f"pods {self.rule.namespace}/{self.rule.target_selector} condition {self.condition_type}"

    def ensure_exists(self) -> None:
        return None

    def read(self) -> list[dict]:
        return self.client.list(pod_path(self.rule.namespace), label_selector=self.rule.target_selector)

    def write_if_changed(self, current: object, result: ProbeResult) -> int:
        pods = current if isinstance(current, list) else []
        desired = "True" if result.healthy else "False"
        writes = 0
        for pod in pods:
            name = _pod_name(pod)
            if not name or condition_up_to_date(pod, self.condition_type, desired):
                continue
            try:
                writes += self._update_pod(pod, name, result)
            except ConflictError:
                logger.warning(
                    "[%s] Gave up updating pod %s after %d conflicting attempts",
                    self.rule.name,
                    name,
                    self.attempts,
                )
            except NotFoundError:
                logger.debug("[%s] Pod %s disappeared before update", self.rule.name, name)
            except ApiError as exc:
                logger.warning("[%s] Failed to update pod %s: %s", self.rule.name, name, exc)
        return writes

    def _update_pod(self, listed: dict, name: str, result: ProbeResult) -> int:
        desired = "True" if result.healthy else "False"
        pending: dict | None = listed

        def attempt() -> int:
            nonlocal pending
            pod = pending if pending is not None else self.client.get(pod_path(self.rule.namespace, name))
            pending = None
            if condition_up_to_date(pod, self.condition_type, desired):
                return 0
            body = set_condition(pod, build_condition(self.condition_type, result))
            self.client.replace(pod_status_path(self.rule.namespace, name), body)
            return 1

        written = retry_on_conflict(attempt, attempts=self.attempts)
        if written:
            logger.info(
                "[%s] Set %s=%s on pod %s",
                self.rule.name,
                self.condition_type,
                desired,
                name,
            )
        return written
