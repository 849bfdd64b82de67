"""Key-value medium tests — error classification and the unconfigured mode."""

import asyncio
from unittest.mock import AsyncMock

import pytest
from redis import exceptions as redis_errors

from smartpro.config import Settings
from smartpro.realtime.medium import ErrorKind, KeyValueClient, MediumError, classify


@pytest.mark.parametrize(
    "exc, kind",
    [
        (redis_errors.ConnectionError("refused"), ErrorKind.TRANSIENT),
        (redis_errors.TimeoutError("timed out"), ErrorKind.TRANSIENT),
        (asyncio.TimeoutError(), ErrorKind.TRANSIENT),
        (ConnectionResetError("reset by peer"), ErrorKind.TRANSIENT),
        (redis_errors.AuthenticationError("invalid password"), ErrorKind.PERMANENT),
        (redis_errors.ResponseError("WRONGTYPE"), ErrorKind.PERMANENT),
        (ValueError("bad value"), ErrorKind.PERMANENT),
    ],
)
def test_classify(exc, kind):
    assert classify(exc) is kind


def test_medium_error_retryable_follows_kind():
    assert MediumError(ErrorKind.TRANSIENT, "x").is_retryable()
    assert not MediumError(ErrorKind.PERMANENT, "x").is_retryable()


@pytest.mark.asyncio
async def test_unconfigured_client_is_a_no_op(unconfigured_kv):
    assert unconfigured_kv.configured is False
    assert await unconfigured_kv.get("k") is None
    assert await unconfigured_kv.set("k", "v", ex=10) is False
    assert await unconfigured_kv.delete("k") == 0
    assert await unconfigured_kv.publish("c", "m") == 0
    assert await unconfigured_kv.lpush("k", "v") == 0
    assert await unconfigured_kv.ltrim("k", 0, 1) is False
    assert await unconfigured_kv.lrange("k", 0, -1) == []
    assert await unconfigured_kv.ping() is False


def test_unconfigured_pubsub_raises(unconfigured_kv):
    with pytest.raises(MediumError) as exc_info:
        unconfigured_kv.pubsub()
    assert exc_info.value.kind is ErrorKind.PERMANENT


def test_from_settings_without_url_is_unconfigured():
    kv = KeyValueClient.from_settings(Settings(redis_url=""))
    assert kv.configured is False


def test_token_without_url_is_rejected():
    with pytest.raises(ValueError):
        Settings(redis_url="", redis_token="secret")


@pytest.mark.asyncio
async def test_library_errors_are_translated():
    redis = AsyncMock()
    redis.get.side_effect = redis_errors.ConnectionError("connection refused")
    kv = KeyValueClient(redis)

    with pytest.raises(MediumError) as exc_info:
        await kv.get("k")

    err = exc_info.value
    assert err.kind is ErrorKind.TRANSIENT
    assert err.operation == "get"
    assert isinstance(err.__cause__, redis_errors.ConnectionError)


@pytest.mark.asyncio
async def test_operations_pass_through(kv, fake_redis):
    assert await kv.set("k", "v", ex=30) is True
    assert await kv.get("k") == "v"
    assert await kv.delete("k") == 1
    assert await kv.publish("chan", "hello") == 1
    assert fake_redis.published == [("chan", "hello")]
    assert await kv.ping() is True


@pytest.mark.asyncio
async def test_close_releases_connection(kv, fake_redis):
    await kv.close()
    assert fake_redis.closed is True
    assert kv.configured is False
