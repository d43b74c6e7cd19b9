from __future__ import annotations

import logging
import socket
from dataclasses import dataclass

from readiness_controller.probes.base import Prober

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_S = 3.0


def split_host_port(address: str) -> tuple[str, int]:
    text = address.strip()
    if text.startswith("["):
        host, sep, rest = text[1:].partition("]")
        if not sep or not rest.startswith(":"):
            raise ValueError(f"invalid address: '{address}'")
        port_text = rest[1:]
    else:
        host, sep, port_text = text.rpartition(":")
        if not sep:
            raise ValueError(f"invalid address: '{address}'")
    if not host or not port_text.isdigit():
        raise ValueError(f"invalid address: '{address}'")
    port = int(port_text)
    if not 0 < port < 65536:
        raise ValueError(f"invalid port in address: '{address}'")
    return host, port


@dataclass
class TcpProber(Prober):
    """Healthy iff a TCP connection to host:port opens within the timeout."""

    address: str
    timeout_s: float = DEFAULT_TIMEOUT_S

    kind = "tcp"

    def check(self) -> bool:
        try:
            host, port = split_host_port(self.address)
        except ValueError as exc:
            logger.debug("[tcp] %s", exc)
            return False
        try:
            with socket.create_connection((host, port), timeout=self.timeout_s):
                return True
        except (OSError, ValueError) as exc:
            logger.debug("[tcp] %s unreachable: %s", self.address, exc)
            return False
