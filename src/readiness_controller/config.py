"""Gate rule loading and process settings."""

from __future__ import annotations

import json
import math
import os
import re
import threading
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path

DEFAULT_INTERVAL_S = 5.0
DEFAULT_CONFIG_PATH = "/etc/config/gates.json"
CHECK_TYPES = ("http", "tcp", "exec")
MODES = ("crd", "pods")

_DURATION_PART_RE = re.compile(r"(?P<number>\d+(?:\.\d*)?|\.\d+)(?P<unit>ns|us|µs|ms|s|m|h)")
_UNIT_SECONDS = {
    "ns": Decimal("0.000000001"),
    "us": Decimal("0.000001"),
    "µs": Decimal("0.000001"),
    "ms": Decimal("0.001"),
    "s": Decimal(1),
    "m": Decimal(60),
    "h": Decimal(3600),
}


class ConfigError(Exception):
    """Invalid rule file or rule definition."""


def parse_duration_s(value: str) -> float:
    """Parse a Go-style duration ("250ms", "5s", "1m30s") into seconds.

    A bare number is taken as seconds. Raises ValueError on anything else.
    """
    text = value.strip().lower()
    if not text:
        raise ValueError(f"invalid duration: '{value}'")
    try:
        seconds = float(Decimal(text))
    except InvalidOperation:
        pass
    else:
        if not math.isfinite(seconds):
            raise ValueError(f"invalid duration: '{value}'")
        return seconds

    total = Decimal(0)
    pos = 0
    for match in _DURATION_PART_RE.finditer(text):
        if match.start() != pos:
            raise ValueError(f"invalid duration: '{value}'")
        total += Decimal(match.group("number")) * _UNIT_SECONDS[match.group("unit")]
        pos = match.end()
    if pos != len(text) or pos == 0:
        raise ValueError(f"invalid duration: '{value}'")
    return float(total)


def parse_interval(value: str | None, default: float = DEFAULT_INTERVAL_S) -> float:
    if value is None:
        return default
    try:
        parsed = parse_duration_s(str(value))
    except ValueError:
        return default
    if parsed <= 0 or parsed > threading.TIMEOUT_MAX:
        return default
    return parsed


@dataclass(frozen=True)
class GateRule:
    name: str
    gate_name: str
    check_type: str
    check_target: str
    namespace: str = "default"
    target_selector: str = ""
    interval: str = "5s"
    timeout: str | None = None

    @property
    def interval_s(self) -> float:
        return parse_interval(self.interval)

    @property
    def timeout_s(self) -> float | None:
        if not self.timeout:
            return None
        return parse_interval(self.timeout)

    @classmethod
    def from_dict(cls, data: dict) -> GateRule:
        name = _str_field(data, "name")
        if not name:
            raise ConfigError("gate rule is missing 'name'")
        namespace = _str_field(data, "namespace") or "default"
        return cls(
            name=name,
            gate_name=_str_field(data, "gateName", "gateLabel") or name,
            check_type=_str_field(data, "checkType").lower(),
            check_target=_str_field(data, "checkTarget"),
            namespace=namespace,
            target_selector=_str_field(data, "targetSelector", "targetLabel"),
            interval=_str_field(data, "interval") or "5s",
            timeout=_str_field(data, "timeout") or None,
        )


def _str_field(data: dict, *keys: str) -> str:
    for key in keys:
        value = data.get(key)
        if value is None:
            continue
        if not isinstance(value, (str, int, float)) or isinstance(value, bool):
            raise ConfigError(f"field '{key}' must be a string")
        return str(value).strip()
    return ""


def load_rules(path: str | Path) -> list[GateRule]:
    rules_path = Path(path)
    try:
        raw = rules_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"cannot read rules from {rules_path}: {exc}") from exc
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"invalid rules json in {rules_path}: {exc}") from exc
    if not isinstance(payload, list):
        raise ConfigError(f"rules file {rules_path} must contain a JSON array")

    rules: list[GateRule] = []
    seen: set[str] = set()
    for index, item in enumerate(payload):
        if not isinstance(item, dict):
            raise ConfigError(f"rule #{index} must be an object")
        rule = GateRule.from_dict(item)
        if rule.name in seen:
            raise ConfigError(f"duplicate rule name '{rule.name}'")
        seen.add(rule.name)
        rules.append(rule)
    return rules


def _parse_env_int(environ: dict, name: str, default: int) -> int:
    raw = environ.get(name)
    if raw is None or not str(raw).strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_str(environ: dict, name: str, default: str) -> str:
    raw = environ.get(name)
    if raw is None or not str(raw).strip():
        return default
    return str(raw).strip()


def _env_truthy(environ: dict, name: str, default: bool) -> bool:
    raw = environ.get(name)
    if raw is None or not str(raw).strip():
        return default
    return str(raw).strip().lower() in {"1", "true", "yes", "on"}


@dataclass
class Settings:
    config_path: str = DEFAULT_CONFIG_PATH
    mode: str = "pods"
    webhook_enabled: bool = True
    namespace: str = "default"
    service_name: str = "readiness-controller"
    webhook_config_name: str = "readiness-controller-webhook"
    webhook_port: int = 8443
    ui_port: int = 8080
    metrics_port: int = 9090
    cert_dir: str = ""
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: dict | None = None) -> Settings:
        env = os.environ if environ is None else environ
        mode = _env_str(env, "READINESS_MODE", "pods").lower()
        if mode not in MODES:
            raise ConfigError(f"unknown mode '{mode}' (expected one of {', '.join(MODES)})")
        return cls(
            config_path=_env_str(env, "READINESS_CONFIG_PATH", _env_str(env, "CONFIG_PATH", DEFAULT_CONFIG_PATH)),
            mode=mode,
            webhook_enabled=_env_truthy(env, "READINESS_WEBHOOK_ENABLED", mode == "pods"),
            namespace=_env_str(env, "POD_NAMESPACE", "default"),
            service_name=_env_str(env, "WEBHOOK_SERVICE_NAME", "readiness-controller"),
            webhook_config_name=_env_str(env, "WEBHOOK_CONFIG_NAME", "readiness-controller-webhook"),
            webhook_port=_parse_env_int(env, "READINESS_WEBHOOK_PORT", 8443),
            ui_port=_parse_env_int(env, "READINESS_UI_PORT", 8080),
            metrics_port=_parse_env_int(env, "READINESS_METRICS_PORT", 9090),
            cert_dir=_env_str(env, "READINESS_CERT_DIR", ""),
            log_level=_env_str(env, "READINESS_LOG_LEVEL", "INFO").upper(),
        )
