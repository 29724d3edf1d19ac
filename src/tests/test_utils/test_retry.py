import pytest
from unittest.mock import AsyncMock, patch
from offering_gateway.utils.exceptions import MalformedResponse, ThingUnreachable
from offering_gateway.utils.retry import async_retry_with_backoff, backoff_delay


@pytest.fixture
def sleep():
    with patch("offering_gateway.utils.retry.asyncio.sleep", new=AsyncMock()) as mock:
        yield mock


def test_backoff_delay():
    assert backoff_delay(1, 1.0, 60.0, 2.0, jitter=False) == 1.0
    assert backoff_delay(3, 1.0, 60.0, 2.0, jitter=False) == 4.0
    assert backoff_delay(10, 1.0, 5.0, 2.0, jitter=False) == 5.0
    assert 0.75 <= backoff_delay(1, 1.0, 60.0, 2.0, jitter=True) <= 1.25


@pytest.mark.asyncio
async def test_retries_until_success(sleep):
    calls = AsyncMock(side_effect=[ThingUnreachable("down"), ThingUnreachable("down"), "ok"])

    @async_retry_with_backoff(max_retries=3, jitter=False, exceptions=(ThingUnreachable,))
    async def call():
        return await calls()

    assert await call() == "ok"
    assert calls.await_count == 3
    assert [c.args[0] for c in sleep.await_args_list] == [1.0, 2.0]


@pytest.mark.asyncio
async def test_gives_up_after_max_retries(sleep):
    @async_retry_with_backoff(max_retries=2, exceptions=(ThingUnreachable,))
    async def call():
        raise ThingUnreachable("down")

    with pytest.raises(ThingUnreachable):
        await call()
    assert sleep.await_count == 2


@pytest.mark.asyncio
async def test_non_retryable_errors_raise_at_once(sleep):
    calls = AsyncMock(side_effect=MalformedResponse("not json"))

    @async_retry_with_backoff(exceptions=(MalformedResponse,))
    async def call():
        return await calls()

    with pytest.raises(MalformedResponse):
        await call()
    assert calls.await_count == 1
    sleep.assert_not_awaited()


@pytest.mark.asyncio
async def test_unlisted_errors_are_not_retried(sleep):
    @async_retry_with_backoff(exceptions=(ThingUnreachable,))
    async def call():
        raise KeyError("x")

    with pytest.raises(KeyError):
        await call()
    sleep.assert_not_awaited()
