"""HTTPS listener for the mutating admission webhook."""

from __future__ import annotations

import json
import logging
import ssl
import tempfile
import threading
from pathlib import Path

from readiness_controller.config import Settings
from readiness_controller.httpserver import DrainingHTTPServer, QuietHandler, serve_until_stopped
from readiness_controller.k8s.client import ApiError, KubeClient
from readiness_controller.webhook.certs import CA_FILENAME, generate_certs
from readiness_controller.webhook.mutate import review_response
from readiness_controller.webhook.registrar import patch_webhook_ca_bundle

logger = logging.getLogger(__name__)

_MAX_BODY_BYTES = 4 * 1024 * 1024
_HANDSHAKE_TIMEOUT_S = 10.0


class WebhookHandler(QuietHandler):
    timeout = 30

    def do_POST(self) -> None:
        try:
            length = int(self.headers.get("Content-Length") or 0)
        except ValueError:
            length = 0
        if length <= 0 or length > _MAX_BODY_BYTES:
            self.send_body(400, b"empty or oversized body\n", "text/plain; charset=utf-8")
            return
        body = self.rfile.read(length)
        if self.path.split("?", 1)[0] != "/mutate":
            self.send_body(404, b"not found\n", "text/plain; charset=utf-8")
            return
        payload = review_response(body)
        self.send_body(200, _json_bytes(payload), "application/json")


def _json_bytes(payload: dict) -> bytes:
    return json.dumps(payload, separators=(",", ":")).encode("utf-8")


class TLSHTTPServer(DrainingHTTPServer):
    def __init__(self, address: tuple[str, int], handler, context: ssl.SSLContext) -> None:
        super().__init__(address, handler)
        self.socket = context.wrap_socket(self.socket, server_side=True, do_handshake_on_connect=False)

    def finish_request(self, request, client_address) -> None:
        request.settimeout(_HANDSHAKE_TIMEOUT_S)
        try:
            request.do_handshake()
        except (ssl.SSLError, OSError) as exc:
            logger.debug("TLS handshake with %s failed: %s", client_address, exc)
            return
        super().finish_request(request, client_address)


def make_webhook_server(
    port: int,
    cert_path: str | Path,
    key_path: str | Path,
    host: str = "",
) -> TLSHTTPServer:
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    context.minimum_version = ssl.TLSVersion.TLSv1_2
    context.load_cert_chain(str(cert_path), str(key_path))
    return TLSHTTPServer((host, port), WebhookHandler, context)


def start_webhook(stop: threading.Event, client: KubeClient | None, settings: Settings) -> None:
    """Bootstrap certificates, register the CA bundle and serve until ``stop``.

    Failures here disable the webhook only; they never stop the process.
    """
    logger.info("Generating certs for service %s.%s.svc", settings.service_name, settings.namespace)
    try:
        bundle = generate_certs(settings.service_name, settings.namespace)
    except Exception:
        logger.exception("Webhook disabled: could not generate certs")
        return

    try:
        cert_dir = settings.cert_dir or tempfile.mkdtemp(prefix="readiness-certs-")
        cert_path, key_path = bundle.write(cert_dir)
        (Path(cert_dir) / CA_FILENAME).write_bytes(bundle.ca_cert)
    except OSError as exc:
        logger.error("Webhook disabled: writing cert files: %s", exc)
        return

    if client is not None:
        try:
            patch_webhook_ca_bundle(client, settings.webhook_config_name, bundle.ca_cert)
        except ApiError as exc:
            logger.warning("Failed to patch webhook CA bundle on %s: %s", settings.webhook_config_name, exc)

    try:
        server = make_webhook_server(settings.webhook_port, cert_path, key_path)
    except (OSError, ssl.SSLError) as exc:
        logger.error("Webhook disabled: cannot listen on :%d: %s", settings.webhook_port, exc)
        return
    serve_until_stopped("webhook", server, stop)
