"""Threaded HTTP listeners that stop with a bounded drain."""

from __future__ import annotations

import logging
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

logger = logging.getLogger(__name__)

DEFAULT_DRAIN_S = 5.0


class DrainingHTTPServer(ThreadingHTTPServer):
    daemon_threads = True
    block_on_close = False

    def __init__(self, address: tuple[str, int], handler: type[BaseHTTPRequestHandler]) -> None:
        super().__init__(address, handler)
        self._active = 0
        self._idle = threading.Condition()

    def process_request_thread(self, request, client_address) -> None:
        with self._idle:
            self._active += 1
        try:
            super().process_request_thread(request, client_address)
        finally:
            with self._idle:
                self._active -= 1
                self._idle.notify_all()

    def drain(self, timeout_s: float) -> bool:
        """Wait up to ``timeout_s`` for in-flight requests; True if all finished."""
        with self._idle:
            return self._idle.wait_for(lambda: self._active == 0, timeout=timeout_s)

    @property
    def port(self) -> int:
        return int(self.server_address[1])


class QuietHandler(BaseHTTPRequestHandler):
    def log_message(self, format: str, *args: object) -> None:
        logger.debug("%s - %s", self.address_string(), format % args)

    def send_body(self, status: int, body: bytes, content_type: str) -> None:
        self.send_response(status)
        self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)


def serve_until_stopped(
    name: str,
    server: DrainingHTTPServer,
    stop: threading.Event,
    drain_s: float = DEFAULT_DRAIN_S,
) -> None:
    thread = threading.Thread(target=server.serve_forever, name=f"{name}-listener", daemon=True)
    thread.start()
    logger.info("%s listening on :%d", name, server.port)
    try:
        stop.wait()
    finally:
        logger.info("Stopping %s...", name)
        server.shutdown()
        if not server.drain(drain_s):
            logger.warning("%s did not drain within %ss, closing", name, drain_s)
        server.server_close()
        thread.join(timeout=drain_s)
