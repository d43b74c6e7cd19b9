# --- test import path bootstrap (src/ layout) ---
import sys as _sys
from pathlib import Path as _Path

_SRC = _Path(__file__).resolve().parents[1] / "src"
if _SRC.is_dir():
    _p = str(_SRC)
    if _p not in _sys.path:
        _sys.path.insert(0, _p)
# --- end bootstrap ---

import copy
import socketserver
import sys
import tempfile
import threading
from pathlib import Path

import pytest

from readiness_controller.config import GateRule
from readiness_controller.k8s.client import AlreadyExistsError, ApiError, ConflictError, NotFoundError
from readiness_controller.webhook.certs import generate_certs


def _matches(labels: dict, selector: str) -> bool:
    for term in selector.split(","):
        term = term.strip()
        if not term:
            continue
        key, _, value = term.partition("==") if "==" in term else term.partition("=")
        if labels.get(key.strip()) != value.strip():
            return False
    return True


class FakeKube:
    """In-memory stand-in for KubeClient keyed by API path.

    ``conflicts[path]`` makes the next N replaces of that path fail with a
    409 while another writer bumps the stored resourceVersion. ``failures``
    maps (method, path) to an ApiError raised on every matching call.
    """

    def __init__(self) -> None:
        self.objects: dict[str, dict] = {}
        self.calls: list[tuple[str, str]] = []
        self.conflicts: dict[str, int] = {}
        self.failures: dict[tuple[str, str], ApiError] = {}
        self._version = 0

    def _bump(self, obj: dict) -> None:
        self._version += 1
        obj.setdefault("metadata", {})["resourceVersion"] = str(self._version)

    def add(self, path: str, obj: dict) -> dict:
        stored = copy.deepcopy(obj)
        self._bump(stored)
        self.objects[path] = stored
        return copy.deepcopy(stored)

    def _call(self, method: str, path: str) -> None:
        self.calls.append((method, path))
        error = self.failures.get((method, path))
        if error is not None:
            raise error

    def count(self, method: str, path: str | None = None) -> int:
        return sum(1 for m, p in self.calls if m == method and (path is None or p == path))

    def get(self, path: str) -> dict:
        self._call("GET", path)
        if path not in self.objects:
            raise NotFoundError(404, "NotFound", f"{path} not found")
        return copy.deepcopy(self.objects[path])

    def create(self, path: str, body: dict) -> dict:
        self._call("POST", path)
        target = f"{path}/{body['metadata']['name']}"
        if target in self.objects:
            raise AlreadyExistsError(409, "AlreadyExists", f"{target} already exists")
        return self.add(target, body)

    def replace(self, path: str, body: dict) -> dict:
        self._call("PUT", path)
        status_only = path.endswith("/status")
        target = path[: -len("/status")] if status_only else path
        if target not in self.objects:
            raise NotFoundError(404, "NotFound", f"{target} not found")
        stored = self.objects[target]
        if self.conflicts.get(path, 0) > 0:
            self.conflicts[path] -= 1
            self._bump(stored)
        sent = (body.get("metadata") or {}).get("resourceVersion")
        if sent is not None and sent != stored["metadata"]["resourceVersion"]:
            raise ConflictError(409, "Conflict", "the object has been modified")
        if status_only:
            stored["status"] = copy.deepcopy(body.get("status"))
        else:
            metadata = stored["metadata"]
            stored = copy.deepcopy(body)
            stored["metadata"] = {**metadata, **(body.get("metadata") or {})}
            self.objects[target] = stored
        self._bump(stored)
        return copy.deepcopy(stored)

    def list(self, path: str, label_selector: str = "") -> list[dict]:
        self._call("GET", path)
        items = []
        for key, obj in sorted(self.objects.items()):
            if key.rsplit("/", 1)[0] != path:
                continue
            if _matches((obj.get("metadata") or {}).get("labels") or {}, label_selector):
                items.append(copy.deepcopy(obj))
        return items


@pytest.fixture
def kube() -> FakeKube:
    return FakeKube()


@pytest.fixture
def make_rule():
    def _make(**overrides) -> GateRule:
        fields = {
            "name": "db",
            "gate_name": "db",
            "check_type": "tcp",
            "check_target": "db:5432",
            "namespace": "default",
            "target_selector": "app=web",
            "interval": "5s",
        }
        fields.update(overrides)
        return GateRule(**fields)

    return _make


class _GarbageHandler(socketserver.StreamRequestHandler):
    def handle(self) -> None:
        while self.rfile.readline().strip():
            pass
        self.wfile.write(b"garbage\r\n")


@pytest.fixture
def garbage_url():
    """Loopback listener that answers every request with a non-HTTP line."""
    server = socketserver.ThreadingTCPServer(("127.0.0.1", 0), _GarbageHandler)
    server.daemon_threads = True
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        yield f"http://127.0.0.1:{server.server_address[1]}"
    finally:
        server.shutdown()
        server.server_close()


@pytest.fixture(scope="session")
def cert_bundle():
    return generate_certs("readiness-controller", "gates", key_size=2048)


@pytest.fixture
def rc_path() -> Path:
    repo_root = Path(__file__).resolve().parents[1]
    local = repo_root / ".venv" / "bin" / "readiness-controller"
    if local.exists():
        return local

    # Use a repo-local shim when local venv entrypoint is unavailable.
    shim_dir = Path(tempfile.mkdtemp(prefix="rc-shim-"))
    shim = shim_dir / "readiness-controller"
    shim.write_text(
        f"""#!/usr/bin/env bash
set -Eeuo pipefail
export PYTHONPATH=\"{repo_root}/src${{PYTHONPATH:+:${{PYTHONPATH}}}}\"
exec \"{sys.executable}\" -c 'import sys; from readiness_controller.cli import main; raise SystemExit(main())' \"$@\"
""",
        encoding="utf-8",
    )
    shim.chmod(0o755)
    return shim
