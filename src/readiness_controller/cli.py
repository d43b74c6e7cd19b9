from __future__ import annotations

import argparse
import json
import logging
import sys
import threading
from pathlib import Path

from readiness_controller import __version__ as RC_VERSION
from readiness_controller.config import MODES, ConfigError, Settings, load_rules, parse_duration_s
from readiness_controller.httpserver import serve_until_stopped
from readiness_controller.k8s.client import KubeClient, KubeConfigError
from readiness_controller.metrics import ProbeMetrics
from readiness_controller.probes import make_prober, timed_check
from readiness_controller.runtime import Supervisor, build_reconcilers
from readiness_controller.state import StateStore
from readiness_controller.ui import make_metrics_server, make_status_server
from readiness_controller.webhook.certs import CA_FILENAME, generate_certs
from readiness_controller.webhook.mutate import INJECT_LABEL, review_response
from readiness_controller.webhook.server import start_webhook

logger = logging.getLogger("readiness_controller")

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _parse_timeout(value: str) -> float:
    try:
        parsed = parse_duration_s(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid duration: '{value}' (use e.g. 1.5s or 250ms)") from exc
    if parsed <= 0:
        raise argparse.ArgumentTypeError(f"invalid duration: '{value}' (must be positive)")
    return parsed


def _configure_logging(level: str) -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=_LOG_FORMAT)


def _error(message: str) -> None:
    print(f"ERROR: {message}", file=sys.stderr)


def _settings_from_args(args: argparse.Namespace) -> Settings:
    settings = Settings.from_env()
    if args.config:
        settings.config_path = args.config
    if args.mode:
        settings.mode = args.mode
        if args.webhook is None:
            settings.webhook_enabled = args.mode == "pods"
    if args.webhook is not None:
        settings.webhook_enabled = args.webhook
    for name in ("ui_port", "metrics_port", "webhook_port", "cert_dir", "log_level"):
        value = getattr(args, name, None)
        if value is not None:
            setattr(settings, name, value)
    return settings


def cmd_run(args: argparse.Namespace) -> int:
    try:
        settings = _settings_from_args(args)
    except ConfigError as exc:
        _error(str(exc))
        return 2
    _configure_logging(settings.log_level)

    try:
        rules = load_rules(settings.config_path)
    except ConfigError as exc:
        _error(f"failed to load config: {exc}")
        return 2
    logger.info("Loaded %d gate rules from %s", len(rules), settings.config_path)

    try:
        client = KubeClient.in_cluster()
    except KubeConfigError as exc:
        _error(f"failed to configure cluster access: {exc}")
        return 1

    store = StateStore()
    metrics = ProbeMetrics()
    reconcilers = build_reconcilers(rules, mode=settings.mode, client=client, store=store, metrics=metrics)

    supervisor = Supervisor()
    supervisor.install_signal_handlers()
    for name, server in (
        ("ui", _try_listen(make_status_server, store, settings.ui_port)),
        ("metrics", _try_listen(make_metrics_server, metrics, settings.metrics_port)),
    ):
        if server is not None:
            supervisor.spawn(name, _listener(name, server))
    if settings.webhook_enabled:
        supervisor.spawn("webhook", start_webhook, client, settings)
    for reconciler in reconcilers:
        supervisor.spawn(f"rule-{reconciler.rule.name}", reconciler.run)

    logger.info("Running %d reconcilers in %s mode", len(reconcilers), settings.mode)
    supervisor.wait()
    logger.info("Bye!")
    return 0


def _listener(name: str, server):
    def run(stop: threading.Event) -> None:
        serve_until_stopped(name, server, stop)

    return run


def _try_listen(factory, source, port: int):
    try:
        return factory(source, port)
    except OSError as exc:
        logger.error("Cannot listen on :%d: %s", port, exc)
        return None


def cmd_probe(args: argparse.Namespace) -> int:
    _configure_logging(args.log_level or "WARNING")
    try:
        prober = make_prober(args.type, args.target, args.timeout)
    except ConfigError as exc:
        _error(str(exc))
        return 2
    result = timed_check(prober)
    print(f"healthy={'true' if result.healthy else 'false'} duration_ms={result.duration_s * 1000:.0f}")
    return 0 if result.healthy else 1


def cmd_certs(args: argparse.Namespace) -> int:
    bundle = generate_certs(args.service, args.namespace, key_size=args.key_size)
    out_dir = Path(args.out)
    try:
        cert_path, key_path = bundle.write(out_dir)
        ca_path = out_dir / CA_FILENAME
        ca_path.write_bytes(bundle.ca_cert)
    except OSError as exc:
        _error(f"cannot write certificates: {exc}")
        return 1
    print(f"ca={ca_path}")
    print(f"cert={cert_path}")
    print(f"key={key_path}")
    return 0


def cmd_mutate(args: argparse.Namespace) -> int:
    try:
        body = sys.stdin.buffer.read() if args.review == "-" else Path(args.review).read_bytes()
    except OSError as exc:
        _error(f"cannot read admission review: {exc}")
        return 1
    payload = review_response(body, label=args.label)
    print(json.dumps(payload, indent=2, sort_keys=True))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="readiness-controller")
    parser.add_argument("--version", action="version", version=f"readiness-controller {RC_VERSION}")

    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Run gate reconcilers (and the admission webhook)")
    run.add_argument("--config", help="Gate rules JSON file (env READINESS_CONFIG_PATH)")
    run.add_argument("--mode", choices=list(MODES), help="Propagate health to Probe status (crd) or pod conditions (pods)")
    webhook = run.add_mutually_exclusive_group()
    webhook.add_argument("--webhook", dest="webhook", action="store_true", default=None, help="Serve the admission webhook")
    webhook.add_argument("--no-webhook", dest="webhook", action="store_false", help="Do not serve the admission webhook")
    run.add_argument("--ui-port", type=int, help="Status page port (default: 8080)")
    run.add_argument("--metrics-port", type=int, help="Metrics port (default: 9090)")
    run.add_argument("--webhook-port", type=int, help="Admission webhook port (default: 8443)")
    run.add_argument("--cert-dir", help="Directory for generated webhook TLS files")
    run.add_argument("--log-level", help="Log level (default: INFO)")
    run.set_defaults(func=cmd_run)

    probe = sub.add_parser("probe", help="Run one health check and report the result")
    probe.add_argument("--type", required=True, choices=["http", "tcp", "exec"], help="Check type")
    probe.add_argument("--target", required=True, help="URL, host:port or command line")
    probe.add_argument("--timeout", type=_parse_timeout, help="Probe timeout (e.g. 2s, 500ms)")
    probe.add_argument("--log-level", help="Log level (default: WARNING)")
    probe.set_defaults(func=cmd_probe)

    certs = sub.add_parser("certs", help="Generate a webhook CA and serving certificate")
    certs.add_argument("--service", default="readiness-controller", help="Webhook service name")
    certs.add_argument("--namespace", default="default", help="Webhook service namespace")
    certs.add_argument("--out", required=True, help="Output directory")
    certs.add_argument("--key-size", type=int, default=4096, help=argparse.SUPPRESS)
    certs.set_defaults(func=cmd_certs)

    mutate = sub.add_parser("mutate", help="Answer an AdmissionReview read from a file (or - for stdin)")
    mutate.add_argument("--review", required=True, help="AdmissionReview JSON path")
    mutate.add_argument("--label", default=INJECT_LABEL, help="Inject label key")
    mutate.set_defaults(func=cmd_mutate)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    raise SystemExit(main())
