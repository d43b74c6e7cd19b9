"""Minimal JSON client for the Kubernetes API server."""

from __future__ import annotations

import http.client
import json
import os
import ssl
import urllib.error
import urllib.parse
import urllib.request

_DEFAULT_SA_DIR = "/var/run/secrets/kubernetes.io/serviceaccount"
_DEFAULT_TIMEOUT_S = 10.0

PROBE_GROUP = "readiness.controller.io"
PROBE_VERSION = "v1alpha1"
PROBE_PLURAL = "probes"
PROBE_KIND = "Probe"


class KubeConfigError(Exception):
    """The cluster connection cannot be configured."""


class ApiError(Exception):
    def __init__(self, status: int, reason: str, message: str) -> None:
        super().__init__(f"http {status} {reason}: {message}" if status else f"{reason}: {message}")
        self.status = status
        self.reason = reason
        self.message = message


class NotFoundError(ApiError):
    pass


class ConflictError(ApiError):
    pass


class AlreadyExistsError(ApiError):
    pass


def _quote(value: str) -> str:
    return urllib.parse.quote(value, safe="")


def pod_path(namespace: str, name: str | None = None) -> str:
    base = f"/api/v1/namespaces/{_quote(namespace)}/pods"
    return base if name is None else f"{base}/{_quote(name)}"


def pod_status_path(namespace: str, name: str) -> str:
    return f"{pod_path(namespace, name)}/status"


def probe_path(namespace: str, name: str | None = None) -> str:
    base = f"/apis/{PROBE_GROUP}/{PROBE_VERSION}/namespaces/{_quote(namespace)}/{PROBE_PLURAL}"
    return base if name is None else f"{base}/{_quote(name)}"


def probe_status_path(namespace: str, name: str) -> str:
    return f"{probe_path(namespace, name)}/status"


def webhook_config_path(name: str) -> str:
    return f"/apis/admissionregistration.k8s.io/v1/mutatingwebhookconfigurations/{_quote(name)}"


def _read_text(path: str) -> str:
    with open(path, "r", encoding="utf-8") as handle:
        return handle.read().strip()


def _error_from_http(code: int, reason: str, body: str) -> ApiError:
    status_reason = reason
    message = body.strip().replace("\n", " ")
    try:
        payload = json.loads(body)
    except (json.JSONDecodeError, ValueError):
        payload = None
    if isinstance(payload, dict) and payload.get("kind") == "Status":
        status_reason = str(payload.get("reason") or reason)
        message = str(payload.get("message") or message)
    if len(message) > 240:
        message = f"{message[:240]}..."

    if code == 404:
        return NotFoundError(code, status_reason, message)
    if code == 409:
        if status_reason == "AlreadyExists":
            return AlreadyExistsError(code, status_reason, message)
        return ConflictError(code, status_reason, message)
    return ApiError(code, status_reason, message)


class KubeClient:
    def __init__(
        self,
        base_url: str,
        *,
        token_path: str | None = None,
        ca_path: str | None = None,
        timeout_s: float = _DEFAULT_TIMEOUT_S,
        insecure: bool = False,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.token_path = token_path
        self.timeout_s = timeout_s
        self._context: ssl.SSLContext | None = None
        if self.base_url.startswith("https://"):
            if insecure:
                self._context = ssl._create_unverified_context()
            else:
                self._context = ssl.create_default_context(cafile=ca_path)

    @classmethod
    def in_cluster(cls, environ: dict | None = None) -> KubeClient:
        env = os.environ if environ is None else environ
        host = (env.get("KUBERNETES_SERVICE_HOST") or "").strip()
        if not host:
            raise KubeConfigError("KUBERNETES_SERVICE_HOST is not set; not running inside a cluster")
        port = (env.get("KUBERNETES_SERVICE_PORT_HTTPS") or env.get("KUBERNETES_SERVICE_PORT") or "443").strip()
        if ":" in host and not host.startswith("["):
            host = f"[{host}]"
        token_path = env.get("READINESS_SA_TOKEN_FILE", f"{_DEFAULT_SA_DIR}/token")
        ca_path = env.get("READINESS_SA_CA_FILE", f"{_DEFAULT_SA_DIR}/ca.crt")
        try:
            token = _read_text(token_path)
        except OSError as exc:
            raise KubeConfigError(f"serviceaccount token unreadable ({token_path}): {exc}") from exc
        if not token:
            raise KubeConfigError(f"serviceaccount token is empty ({token_path})")
        try:
            return cls(f"https://{host}:{port}", token_path=token_path, ca_path=ca_path)
        except (OSError, ssl.SSLError) as exc:
            raise KubeConfigError(f"cluster CA unreadable ({ca_path}): {exc}") from exc

    def _headers(self, has_body: bool) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if has_body:
            headers["Content-Type"] = "application/json"
        if self.token_path:
            try:
                token = _read_text(self.token_path)
            except OSError as exc:
                raise ApiError(0, "TokenUnreadable", str(exc)) from exc
            if token:
                headers["Authorization"] = f"Bearer {token}"
        return headers

    def request(
        self,
        method: str,
        path: str,
        body: dict | None = None,
        query: dict[str, str] | None = None,
    ) -> dict:
        url = f"{self.base_url}{path}"
        if query:
            url = f"{url}?{urllib.parse.urlencode(query)}"
        data = None if body is None else json.dumps(body, separators=(",", ":")).encode("utf-8")
        request = urllib.request.Request(url, data=data, method=method, headers=self._headers(data is not None))
        try:
            with urllib.request.urlopen(request, context=self._context, timeout=self.timeout_s) as response:
                payload = response.read().decode("utf-8", errors="replace")
        except urllib.error.HTTPError as exc:
            try:
                error_body = exc.read().decode("utf-8", errors="replace")
            except (OSError, http.client.HTTPException):
                error_body = ""
            raise _error_from_http(exc.code, str(exc.reason), error_body) from exc
        except urllib.error.URLError as exc:
            raise ApiError(0, "ConnectionError", f"url error: {exc.reason}") from exc
        except http.client.HTTPException as exc:
            raise ApiError(0, "InvalidResponse", f"malformed http response: {exc!r}") from exc
        except OSError as exc:
            raise ApiError(0, "ConnectionError", f"connection error: {exc}") from exc

        if not payload.strip():
            return {}
        try:
            data_out = json.loads(payload)
        except json.JSONDecodeError as exc:
            raise ApiError(0, "InvalidResponse", f"invalid json: {exc}") from exc
        if not isinstance(data_out, dict):
            raise ApiError(0, "InvalidResponse", "response payload is not an object")
        return data_out

    def get(self, path: str) -> dict:
        return self.request("GET", path)

    def create(self, path: str, body: dict) -> dict:
        return self.request("POST", path, body=body)

    def replace(self, path: str, body: dict) -> dict:
        return self.request("PUT", path, body=body)

    def list(self, path: str, label_selector: str = "") -> list[dict]:
        query = {"labelSelector": label_selector} if label_selector else None
        payload = self.request("GET", path, query=query)
        items = payload.get("items")
        if not isinstance(items, list):
            return []
        return [item for item in items if isinstance(item, dict)]
