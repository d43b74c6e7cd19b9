import pytest

from readiness_controller.k8s.client import ApiError, ConflictError
from readiness_controller.k8s.retry import retry_on_conflict


def _flaky(failures: int, calls: list):
    def fn() -> str:
        calls.append(1)
        if len(calls) <= failures:
            raise ConflictError(409, "Conflict", "the object has been modified")
        return "ok"

    return fn


def test_returns_first_success() -> None:
    calls: list = []
    sleeps: list[float] = []
    assert retry_on_conflict(_flaky(0, calls), sleep=sleeps.append) == "ok"
    assert len(calls) == 1
    assert sleeps == []


def test_retries_conflicts_with_growing_backoff() -> None:
    calls: list = []
    sleeps: list[float] = []
    assert retry_on_conflict(_flaky(2, calls), attempts=5, backoff_s=0.5, sleep=sleeps.append) == "ok"
    assert len(calls) == 3
    assert sleeps == [0.5, 1.0]


def test_gives_up_after_attempts() -> None:
    calls: list = []
    with pytest.raises(ConflictError):
        retry_on_conflict(_flaky(10, calls), attempts=3, sleep=lambda _s: None)
    assert len(calls) == 3


def test_other_errors_propagate_immediately() -> None:
    calls: list = []

    def fn() -> None:
        calls.append(1)
        raise ApiError(500, "InternalError", "etcd unavailable")

    with pytest.raises(ApiError) as excinfo:
        retry_on_conflict(fn, sleep=lambda _s: None)
    assert not isinstance(excinfo.value, ConflictError)
    assert len(calls) == 1
