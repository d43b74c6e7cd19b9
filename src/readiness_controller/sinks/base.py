from __future__ import annotations

from datetime import datetime, timezone

from readiness_controller.state import ProbeResult


def format_utc(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def parse_utc(value: object) -> datetime | None:
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = f"{text[:-1]}+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def check_message(healthy: bool) -> str:
    return "Check passed" if healthy else "Check failed"


class StateSink:
    """Where a rule's health classification is written.

    ``read`` raises NotFoundError when the backing record is missing so the
    reconciler can run its ensure-then-re-read sequence.
    """

    kind = "base"

    def describe(self) -> str:
        return self.kind

    def ensure_exists(self) -> None:
        raise NotImplementedError

    def read(self) -> object:
        raise NotImplementedError

    def write_if_changed(self, current: object, result: ProbeResult) -> int:
        """Write ``result`` if needed and return the number of API writes."""
        raise NotImplementedError
