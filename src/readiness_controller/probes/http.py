from __future__ import annotations

import http.client
import logging
import urllib.error
import urllib.request
from dataclasses import dataclass

from readiness_controller.probes.base import Prober

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_S = 5.0


@dataclass
class HttpProber(Prober):
    """GET the URL; any 2xx/3xx response is healthy."""

    url: str
    timeout_s: float = DEFAULT_TIMEOUT_S

    kind = "http"

    def check(self) -> bool:
        try:
            request = urllib.request.Request(self.url, method="GET", headers={"User-Agent": "readiness-controller"})
            with urllib.request.urlopen(request, timeout=self.timeout_s) as response:
                status = int(getattr(response, "status", 0) or 0)
        except urllib.error.HTTPError as exc:
            logger.debug("[http] %s returned %s", self.url, exc.code)
            return False
        except (urllib.error.URLError, http.client.HTTPException, OSError, ValueError) as exc:
            logger.debug("[http] %s failed: %s", self.url, exc)
            return False
        return 200 <= status < 400
