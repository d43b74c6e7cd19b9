import threading
import time

from readiness_controller.k8s.client import ApiError, pod_path, probe_path
from readiness_controller.metrics import ProbeMetrics
from readiness_controller.probes import Prober, build_prober
from readiness_controller.reconciler import BOOTSTRAPPING, STEADY, Reconciler
from readiness_controller.runtime import build_reconcilers
from readiness_controller.sinks import PodConditionSink, ProbeStatusSink
from readiness_controller.sinks.pod_conditions import find_condition
from readiness_controller.state import StateStore


class StaticProber(Prober):
    kind = "static"

    def __init__(self, healthy: bool) -> None:
        self.healthy = healthy
        self.calls = 0

    def check(self) -> bool:
        self.calls += 1
        return self.healthy


def _crd_reconciler(kube, rule, prober, store=None, metrics=None) -> Reconciler:
    return Reconciler(rule, prober, ProbeStatusSink(kube, rule), store if store is not None else StateStore(), metrics)


def test_unreachable_tcp_target_closes_gate(kube, make_rule) -> None:
    rule = make_rule(name="db", check_type="tcp", check_target="db:5432", timeout="1s")
    store = StateStore()
    reconciler = _crd_reconciler(kube, rule, build_prober(rule), store)

    outcome = reconciler.reconcile_once()

    assert outcome.result.healthy is False
    assert outcome.writes == 1
    status = store.get("db")
    assert status.healthy is False
    assert status.message == "Gate Closed"
    assert status.target == "db:5432"
    assert kube.objects[probe_path("default", "db")]["status"]["healthy"] is False
    assert kube.objects[probe_path("default", "db")]["status"]["message"] == "Check failed"
    assert reconciler.phase == STEADY


def test_repeated_pass_without_change_writes_nothing(kube, make_rule) -> None:
    reconciler = _crd_reconciler(kube, make_rule(), StaticProber(True))
    assert reconciler.reconcile_once().writes == 1
    assert reconciler.reconcile_once().writes == 0
    assert kube.count("POST") == 1
    assert kube.count("PUT") == 1


def test_pods_mode_marks_selected_pods(kube, make_rule) -> None:
    for name in ("web-1", "web-2"):
        kube.add(pod_path("default", name), {"metadata": {"name": name, "labels": {"app": "web"}}, "status": {}})
    rule = make_rule()
    reconciler = Reconciler(rule, StaticProber(True), PodConditionSink(kube, rule), StateStore())

    assert reconciler.reconcile_once().writes == 2
    assert reconciler.reconcile_once().writes == 0
    for name in ("web-1", "web-2"):
        condition = find_condition(kube.objects[pod_path("default", name)], "controller.rc/db")
        assert condition["status"] == "True"
        assert condition["reason"] == "ProbeSucceeded"


def test_missing_probe_is_recreated(kube, make_rule) -> None:
    reconciler = _crd_reconciler(kube, make_rule(), StaticProber(False))
    reconciler.reconcile_once()
    del kube.objects[probe_path("default", "db")]

    outcome = reconciler.reconcile_once()

    assert outcome.error is None
    assert outcome.writes == 1
    assert kube.count("POST") == 2
    assert kube.objects[probe_path("default", "db")]["status"]["healthy"] is False


def test_bootstrap_failure_is_retried_next_pass(kube, make_rule) -> None:
    store = StateStore()
    reconciler = _crd_reconciler(kube, make_rule(), StaticProber(True), store)
    kube.failures[("POST", probe_path("default"))] = ApiError(403, "Forbidden", "probes is forbidden")

    outcome = reconciler.reconcile_once()
    assert outcome.error is not None
    assert reconciler.phase == BOOTSTRAPPING
    assert store.get("db").healthy is True
    assert store.get("db").phase == BOOTSTRAPPING

    del kube.failures[("POST", probe_path("default"))]
    outcome = reconciler.reconcile_once()
    assert outcome.error is None
    assert outcome.writes == 1
    assert reconciler.phase == STEADY
    assert store.get("db").phase == STEADY


def test_write_failure_is_reported_not_raised(kube, make_rule, caplog) -> None:
    reconciler = _crd_reconciler(kube, make_rule(), StaticProber(True))
    kube.failures[("PUT", probe_path("default", "db") + "/status")] = ApiError(500, "InternalError", "etcd timeout")
    outcome = reconciler.reconcile_once()
    assert outcome.writes == 0
    assert "etcd timeout" in outcome.error
    assert "Failed to update Probe default/db" in caplog.text


def test_metrics_are_recorded(kube, make_rule) -> None:
    metrics = ProbeMetrics()
    reconciler = _crd_reconciler(kube, make_rule(), StaticProber(False), metrics=metrics)
    reconciler.reconcile_once()
    labels = {"rule": "db", "target": "db:5432", "check_type": "tcp"}
    assert metrics.registry.get_sample_value("readiness_probe_success", labels) == 0.0
    assert metrics.registry.get_sample_value("readiness_probe_duration_seconds_count", labels) == 1.0


def test_run_stops_on_signal(kube, make_rule) -> None:
    store = StateStore()
    prober = StaticProber(True)
    reconciler = _crd_reconciler(kube, make_rule(interval="50ms"), prober, store)
    stop = threading.Event()
    thread = threading.Thread(target=reconciler.run, args=(stop,))
    thread.start()

    deadline = time.monotonic() + 5.0
    while prober.calls < 2 and time.monotonic() < deadline:
        time.sleep(0.01)
    stop.set()
    thread.join(2.0)

    assert not thread.is_alive()
    assert prober.calls >= 2
    assert store.get("db").healthy is True


def test_run_with_stop_already_set_does_one_pass(kube, make_rule) -> None:
    prober = StaticProber(True)
    stop = threading.Event()
    stop.set()
    _crd_reconciler(kube, make_rule(), prober).run(stop)
    assert prober.calls == 1


def test_run_survives_crashing_pass(kube, make_rule, caplog) -> None:
    reconciler = _crd_reconciler(kube, make_rule(), StaticProber(True))

    def boom():
        raise RuntimeError("unexpected")

    reconciler.reconcile_once = boom
    stop = threading.Event()
    stop.set()
    reconciler.run(stop)
    assert "Reconcile pass crashed" in caplog.text


def test_build_reconcilers_skips_unusable_rules(kube, make_rule, caplog) -> None:
    rules = [
        make_rule(name="db"),
        make_rule(name="ping", check_type="icmp"),
        make_rule(name="web", target_selector=""),
    ]
    reconcilers = build_reconcilers(rules, mode="pods", client=kube, store=StateStore())
    assert [r.rule.name for r in reconcilers] == ["db"]
    assert "[ping] Skipping rule" in caplog.text
    assert "[web] Skipping rule" in caplog.text
