import httpx
import pytest

from skillswap.errors import StoreUnavailableError
from skillswap.store.retry import RetryPolicy, exponential_backoff


class FakeSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


def failing(times, exc):
    calls = {"count": 0}

    async def operation():
        calls["count"] += 1
        if calls["count"] <= times:
            raise exc
        return "ok"

    return operation, calls


def test_exponential_backoff_is_capped():
    backoff = exponential_backoff(base=0.5, maximum=3.0)
    assert [backoff(n) for n in range(1, 6)] == [0.5, 1.0, 2.0, 3.0, 3.0]


def test_max_attempts_must_be_positive():
    with pytest.raises(ValueError):
        RetryPolicy(max_attempts=0)


async def test_transport_errors_are_retried():
    sleep = FakeSleep()
    policy = RetryPolicy(max_attempts=3, sleep=sleep)
    operation, calls = failing(2, httpx.ConnectError("refused"))

    assert await policy.run(operation, "get connections/a_b") == "ok"
    assert calls["count"] == 3
    assert sleep.delays == [0.5, 1.0]


async def test_exhausted_retries_raise_store_unavailable():
    sleep = FakeSleep()
    policy = RetryPolicy(max_attempts=2, sleep=sleep)
    error = httpx.ReadTimeout("slow")
    operation, calls = failing(5, error)

    with pytest.raises(StoreUnavailableError) as exc_info:
        await policy.run(operation, "query connections")

    assert calls["count"] == 2
    assert exc_info.value.operation == "query connections"
    assert exc_info.value.cause is error
    assert exc_info.value.__cause__ is error
    assert exc_info.value.status_code == 503


async def test_other_errors_are_not_retried():
    sleep = FakeSleep()
    policy = RetryPolicy(max_attempts=5, sleep=sleep)
    operation, calls = failing(1, KeyError("data"))

    with pytest.raises(StoreUnavailableError) as exc_info:
        await policy.run(operation, "set friends/a_b")

    assert calls["count"] == 1
    assert sleep.delays == []
    assert isinstance(exc_info.value.cause, KeyError)


async def test_store_unavailable_passes_through_unwrapped():
    policy = RetryPolicy(sleep=FakeSleep())
    original = StoreUnavailableError("inner")
    operation, _ = failing(1, original)

    with pytest.raises(StoreUnavailableError) as exc_info:
        await policy.run(operation, "outer")

    assert exc_info.value is original


async def test_custom_retry_on_and_backoff():
    sleep = FakeSleep()
    policy = RetryPolicy(
        max_attempts=4,
        backoff=lambda attempt: attempt * 10,
        retry_on=(ConnectionError,),
        sleep=sleep,
    )
    operation, _ = failing(3, ConnectionResetError())

    assert await policy.run(operation, "get profiles/u1") == "ok"
    assert sleep.delays == [10, 20, 30]
