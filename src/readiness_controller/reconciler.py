"""Per-rule reconcile loop: probe, classify, propagate."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass

from readiness_controller.config import GateRule
from readiness_controller.k8s.client import ApiError, NotFoundError
from readiness_controller.metrics import ProbeMetrics
from readiness_controller.probes import Prober, timed_check
from readiness_controller.sinks.base import StateSink
from readiness_controller.state import ProbeResult, StateStore

logger = logging.getLogger(__name__)

BOOTSTRAPPING = "bootstrapping"
STEADY = "steady"


@dataclass
class TickOutcome:
    result: ProbeResult
    writes: int = 0
    error: str | None = None


class Reconciler:
    """Owns one GateRule for its whole lifetime.

    Starts Bootstrapping and becomes Steady once the backing record is known
    to exist. Every API failure is logged and retried on the next tick.
    """

    def __init__(
        self,
        rule: GateRule,
        prober: Prober,
        sink: StateSink,
        store: StateStore,
        metrics: ProbeMetrics | None = None,
    ) -> None:
        self.rule = rule
        self.prober = prober
        self.sink = sink
        self.store = store
        self.metrics = metrics
        self.phase = BOOTSTRAPPING

    def bootstrap(self) -> bool:
        try:
            self.sink.ensure_exists()
        except ApiError as exc:
            logger.warning("[%s] Failed to ensure %s: %s", self.rule.name, self.sink.describe(), exc)
            return False
        self.phase = STEADY
        return True

    def _read_backing(self) -> object:
        try:
            return self.sink.read()
        except NotFoundError:
            logger.info("[%s] %s missing, re-creating", self.rule.name, self.sink.describe())
        self.sink.ensure_exists()
        return self.sink.read()

    def reconcile_once(self) -> TickOutcome:
        if self.phase == BOOTSTRAPPING:
            self.bootstrap()

        result = timed_check(self.prober)
        if self.metrics is not None:
            self.metrics.record(self.rule, result)
        self.store.update(
            self.rule.name,
            target=self.rule.check_target,
            check_type=self.rule.check_type,
            result=result,
            phase=self.phase,
        )

        try:
            current = self._read_backing()
        except ApiError as exc:
            logger.warning("[%s] Cannot read %s: %s", self.rule.name, self.sink.describe(), exc)
            return TickOutcome(result=result, error=str(exc))
        if self.phase == BOOTSTRAPPING:
            self.phase = STEADY
            self.store.set_phase(self.rule.name, STEADY)

        try:
            writes = self.sink.write_if_changed(current, result)
        except ApiError as exc:
            logger.warning("[%s] Failed to update %s: %s", self.rule.name, self.sink.describe(), exc)
            return TickOutcome(result=result, error=str(exc))
        return TickOutcome(result=result, writes=writes)

    def run(self, stop: threading.Event) -> None:
        interval_s = self.rule.interval_s
        logger.info(
            "[%s] Started: %s %s every %ss -> %s",
            self.rule.name,
            self.rule.check_type,
            self.rule.check_target,
            interval_s,
            self.sink.describe(),
        )
        while True:
            try:
                self.reconcile_once()
            except Exception:
                logger.exception("[%s] Reconcile pass crashed", self.rule.name)
            if stop.wait(interval_s):
                break
        logger.info("[%s] Stopped", self.rule.name)
