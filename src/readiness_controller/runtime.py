"""Task supervision: one thread per rule and per listener, one stop signal."""

from __future__ import annotations

import logging
import signal
import threading
from typing import Callable

from readiness_controller.config import ConfigError, GateRule
from readiness_controller.k8s.client import KubeClient
from readiness_controller.metrics import ProbeMetrics
from readiness_controller.probes import build_prober
from readiness_controller.reconciler import Reconciler
from readiness_controller.sinks import build_sink
from readiness_controller.state import StateStore

logger = logging.getLogger(__name__)


class Supervisor:
    def __init__(self, stop: threading.Event | None = None) -> None:
        self.stop = stop if stop is not None else threading.Event()
        self._threads: list[threading.Thread] = []

    def spawn(self, name: str, target: Callable[..., None], *args: object) -> threading.Thread:
        thread = threading.Thread(target=self._guard, args=(name, target, args), name=name)
        self._threads.append(thread)
        thread.start()
        return thread

    def _guard(self, name: str, target: Callable[..., None], args: tuple) -> None:
        try:
            target(self.stop, *args)
        except Exception:
            logger.exception("Task %s crashed", name)

    def install_signal_handlers(self) -> None:
        def _signal_handler(signum: int, _frame: object | None) -> None:
            logger.info("Received %s, shutting down...", signal.Signals(signum).name)
            self.stop.set()

        signal.signal(signal.SIGINT, _signal_handler)
        signal.signal(signal.SIGTERM, _signal_handler)

    def wait(self, poll_s: float = 0.5) -> None:
        while not self.stop.wait(poll_s):
            pass
        self.join()

    def join(self, timeout_s: float | None = None) -> None:
        for thread in self._threads:
            thread.join(timeout=timeout_s)

    @property
    def tasks(self) -> list[str]:
        return [thread.name for thread in self._threads]


def build_reconcilers(
    rules: list[GateRule],
    *,
    mode: str,
    client: KubeClient,
    store: StateStore,
    metrics: ProbeMetrics | None = None,
) -> list[Reconciler]:
    """Build a reconciler per usable rule; rules with config errors are skipped."""
    reconcilers: list[Reconciler] = []
    for rule in rules:
        try:
            prober = build_prober(rule)
            sink = build_sink(mode, client, rule)
        except ConfigError as exc:
            logger.error("[%s] Skipping rule: %s", rule.name, exc)
            continue
        reconcilers.append(Reconciler(rule, prober, sink, store, metrics))
    return reconcilers
