from __future__ import annotations

import time
from datetime import datetime, timezone

from readiness_controller.state import ProbeResult


class Prober:
    """One health check. ``check`` never raises and maps every failure to False."""

    kind = "base"

    def check(self) -> bool:
        raise NotImplementedError


def timed_check(prober: Prober) -> ProbeResult:
    started = time.monotonic()
    try:
        healthy = bool(prober.check())
    except Exception:
        healthy = False
    duration_s = time.monotonic() - started
    return ProbeResult(
        healthy=healthy,
        timestamp=datetime.now(timezone.utc),
        duration_s=duration_s,
    )
