"""Retry executor."""

import pytest

from foodorder.core.errors import ErrorCode
from foodorder.core.result import Result
from foodorder.core.retry import backoff_delay, retry_operation, with_retry
from foodorder.services.store import StoreError


class Recorder:
    def __init__(self):
        self.delays = []

    async def sleep(self, delay):
        self.delays.append(delay)


class Flaky:
    """Returns queued outcomes in order; exceptions in the queue are raised."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


async def test_first_success_returns_immediately():
    recorder = Recorder()
    operation = Flaky(Result.ok("done"))

    result = await retry_operation(operation, sleep=recorder.sleep)

    assert result.data == "done"
    assert operation.calls == 1
    assert recorder.delays == []


async def test_retries_failed_results_until_success():
    recorder = Recorder()
    retries = []
    busy = Result.fail("busy", ErrorCode.UNAVAILABLE)
    operation = Flaky(busy, busy, Result.ok("done"))

    result = await retry_operation(
        operation,
        max_retries=3,
        sleep=recorder.sleep,
        on_retry=lambda attempt, failure: retries.append((attempt, failure.error_code)),
    )

    assert result.success
    assert operation.calls == 3
    assert retries == [(1, ErrorCode.UNAVAILABLE), (2, ErrorCode.UNAVAILABLE)]
    assert len(recorder.delays) == 2


async def test_exhausted_result_is_returned_not_raised():
    busy = Result.fail("busy", ErrorCode.UNAVAILABLE)
    operation = Flaky(busy, busy, busy)

    result = await retry_operation(operation, max_retries=3, sleep=Recorder().sleep)

    assert result is busy
    assert operation.calls == 3


async def test_non_retryable_result_stops_at_once():
    invalid = Result.fail("Cannot change status", ErrorCode.INVALID_TRANSITION, retryable=False)
    operation = Flaky(invalid, Result.ok())

    result = await retry_operation(operation, sleep=Recorder().sleep)

    assert result is invalid
    assert operation.calls == 1


async def test_retryable_exception_is_reraised_after_last_attempt():
    recorder = Recorder()
    operation = Flaky(StoreError("unavailable"), StoreError("unavailable"))

    with pytest.raises(StoreError):
        await retry_operation(operation, max_retries=2, sleep=recorder.sleep)

    assert operation.calls == 2
    assert len(recorder.delays) == 1


async def test_non_retryable_exception_raises_immediately():
    operation = Flaky(StoreError("permission-denied"), Result.ok())

    with pytest.raises(StoreError):
        await retry_operation(operation, sleep=Recorder().sleep)

    assert operation.calls == 1


async def test_exception_then_success():
    operation = Flaky(StoreError("aborted"), Result.ok("second"))

    result = await retry_operation(operation, sleep=Recorder().sleep)

    assert result.data == "second"


async def test_custom_predicate():
    busy = Result.fail("busy", ErrorCode.UNAVAILABLE)
    operation = Flaky(busy, Result.ok())

    result = await retry_operation(operation, should_retry=lambda failure: False, sleep=Recorder().sleep)

    assert result is busy


async def test_delays_double_and_respect_ceiling():
    recorder = Recorder()
    busy = Result.fail("busy", ErrorCode.UNAVAILABLE)
    operation = Flaky(busy, busy, busy, busy)

    await retry_operation(operation, max_retries=4, initial_delay=1.0, max_delay=2.5, sleep=recorder.sleep)

    first, second, third = recorder.delays
    assert 1.0 <= first <= 1.3
    assert 2.0 <= second <= 2.5
    assert third == 2.5


def test_backoff_jitter_bounds():
    for _ in range(50):
        delay = backoff_delay(4.0, 10.0)
        assert 4.0 <= delay <= 5.2
    assert backoff_delay(20.0, 10.0) == 10.0


async def test_plain_values_are_returned():
    operation = Flaky({"any": "value"})

    assert await retry_operation(operation, sleep=Recorder().sleep) == {"any": "value"}


async def test_zero_attempts_is_rejected():
    with pytest.raises(ValueError):
        await retry_operation(Flaky(Result.ok()), max_retries=0)


async def test_decorator_form():
    recorder = Recorder()
    calls = []

    @with_retry(max_retries=2, sleep=recorder.sleep)
    async def load(order_id):
        calls.append(order_id)
        if len(calls) == 1:
            return Result.fail("busy", ErrorCode.NETWORK_ERROR)
        return Result.ok(order_id)

    result = await load("o1")

    assert result.data == "o1"
    assert calls == ["o1", "o1"]
