"""Health check probers selected by a rule's check type."""

from __future__ import annotations

from readiness_controller.config import ConfigError, GateRule
from readiness_controller.probes.base import Prober, timed_check
from readiness_controller.probes.command import ExecProber
from readiness_controller.probes.http import HttpProber
from readiness_controller.probes.tcp import TcpProber

__all__ = [
    "ExecProber",
    "HttpProber",
    "Prober",
    "TcpProber",
    "build_prober",
    "make_prober",
    "timed_check",
]

_PROBERS = {
    "http": HttpProber,
    "tcp": TcpProber,
    "exec": ExecProber,
}


def make_prober(check_type: str, target: str, timeout_s: float | None = None) -> Prober:
    cls = _PROBERS.get((check_type or "").strip().lower())
    if cls is None:
        raise ConfigError(f"unknown check type '{check_type}'")
    if timeout_s is None:
        return cls(target)
    return cls(target, timeout_s)


def build_prober(rule: GateRule) -> Prober:
    return make_prober(rule.check_type, rule.check_target, rule.timeout_s)
