"""In-memory gate status shared between reconcilers and the status page."""

from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Iterator


@dataclass(frozen=True)
class ProbeResult:
    healthy: bool
    timestamp: datetime
    duration_s: float


@dataclass(frozen=True)
class GateStatus:
    name: str
    target: str
    check_type: str
    healthy: bool
    message: str
    last_check: datetime
    duration_s: float = 0.0
    phase: str = "steady"


def display_message(healthy: bool) -> str:
    return "Gate Open" if healthy else "Gate Closed"


class ReadWriteLock:
    """Many concurrent readers or a single writer. Not reentrant."""

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._readers:
                self._cond.wait()
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class StateStore:
    def __init__(self) -> None:
        self._lock = ReadWriteLock()
        self._entries: dict[str, GateStatus] = {}

    def update(
        self,
        name: str,
        *,
        target: str,
        check_type: str,
        result: ProbeResult,
        phase: str = "steady",
    ) -> GateStatus:
        status = GateStatus(
            name=name,
            target=target,
            check_type=check_type,
            healthy=result.healthy,
            message=display_message(result.healthy),
            last_check=result.timestamp,
            duration_s=result.duration_s,
            phase=phase,
        )
        with self._lock.write():
            self._entries[name] = status
        return status

    def set_phase(self, name: str, phase: str) -> None:
        with self._lock.write():
            current = self._entries.get(name)
            if current is not None:
                self._entries[name] = replace(current, phase=phase)

    def get(self, name: str) -> GateStatus | None:
        with self._lock.read():
            return self._entries.get(name)

    def snapshot(self) -> list[GateStatus]:
        with self._lock.read():
            items = list(self._entries.values())
        return sorted(items, key=lambda item: item.name)

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._entries)
