import asyncio

import httpx
import pytest

from parsera.core.exceptions import CancelledException, RequestTimeoutException
from parsera.extraction.deadline import CancellationToken, run_with_deadline


@pytest.mark.asyncio
async def test_returns_result_before_deadline():
    async def operation():
        return "ok"

    assert await run_with_deadline(operation, timeout=1.0) == "ok"


@pytest.mark.asyncio
async def test_deadline_raises_timeout_and_aborts_call():
    aborted = asyncio.Event()

    async def slow_operation():
        try:
            await asyncio.sleep(10)
        finally:
            aborted.set()

    with pytest.raises(RequestTimeoutException) as exc_info:
        await run_with_deadline(slow_operation, timeout=0.02)

    assert exc_info.value.message == "Request timed out"
    assert aborted.is_set()


@pytest.mark.asyncio
async def test_external_cancellation_raises_cancelled():
    token = CancellationToken()

    async def slow_operation():
        await asyncio.sleep(10)

    asyncio.get_running_loop().call_later(0.02, token.cancel)

    with pytest.raises(CancelledException):
        await run_with_deadline(slow_operation, timeout=5.0, cancel_token=token)


@pytest.mark.asyncio
async def test_already_cancelled_token_skips_the_call():
    token = CancellationToken()
    token.cancel()
    calls = []

    async def operation():
        calls.append(1)

    with pytest.raises(CancelledException):
        await run_with_deadline(operation, timeout=1.0, cancel_token=token)
    assert calls == []


@pytest.mark.asyncio
async def test_transport_errors_pass_through_unchanged():
    error = httpx.ConnectError("connection refused")

    async def failing_operation():
        raise error

    with pytest.raises(httpx.ConnectError) as exc_info:
        await run_with_deadline(failing_operation, timeout=1.0, cancel_token=CancellationToken())

    assert exc_info.value is error


@pytest.mark.asyncio
async def test_timeouts_leave_no_pending_tasks():
    token = CancellationToken()

    async def slow_operation():
        await asyncio.sleep(10)

    for _ in range(50):
        with pytest.raises(RequestTimeoutException):
            await run_with_deadline(slow_operation, timeout=0.001, cancel_token=token)

    assert asyncio.all_tasks() == {asyncio.current_task()}


@pytest.mark.asyncio
async def test_successful_calls_release_cancel_waiter():
    token = CancellationToken()

    async def operation():
        return 42

    for _ in range(10):
        assert await run_with_deadline(operation, timeout=1.0, cancel_token=token) == 42

    assert asyncio.all_tasks() == {asyncio.current_task()}
    assert not token.cancelled
