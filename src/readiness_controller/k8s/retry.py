from __future__ import annotations

import time
from typing import Callable, TypeVar

from readiness_controller.k8s.client import ConflictError

T = TypeVar("T")

DEFAULT_ATTEMPTS = 5
DEFAULT_BACKOFF_S = 0.01


def retry_on_conflict(
    fn: Callable[[], T],
    *,
    attempts: int = DEFAULT_ATTEMPTS,
    backoff_s: float = DEFAULT_BACKOFF_S,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Run a read-modify-write callable, re-running it on version conflicts.

    ``fn`` must re-read the object on every call. The last ConflictError is
    re-raised once ``attempts`` is exhausted; any other error propagates
    immediately.
    """
    attempts = max(1, int(attempts))
    attempt = 1
    while True:
        try:
            return fn()
        except ConflictError:
            if attempt >= attempts:
                raise
            if backoff_s > 0:
                sleep(backoff_s * attempt)
            attempt += 1
