"""
Redis change feed behaviour that needs no server: the listener loop and the
bounded retry around unconditional merges, driven through stand-in clients.
"""
import asyncio
import json
import logging
from collections import deque

import pytest

from orderboard.core.config import get_settings
from orderboard.core.errors import StaleWriteError
from orderboard.feed.redis_feed import RedisChangeFeed

settings = get_settings()
ORDERS = settings.ORDERS_COLLECTION


class _FakePubSub:
    def __init__(self):
        self.queue = deque()
        self.closed = False

    async def subscribe(self, channel):
        self.channel = channel

    async def get_message(self, ignore_subscribe_messages=False, timeout=0.0):
        if self.queue:
            return {"type": "message", "data": self.queue.popleft()}
        await asyncio.sleep(timeout)
        return None

    async def unsubscribe(self, channel):
        pass

    async def aclose(self):
        self.closed = True


class _FakeRedis:
    def __init__(self):
        self.pubsub_client = _FakePubSub()

    def pubsub(self):
        return self.pubsub_client


async def _wait_for(predicate, timeout: float = 2.0) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


@pytest.mark.asyncio
async def test_listener_survives_bad_payloads_and_failing_callbacks(caplog):
    caplog.set_level(logging.WARNING)
    redis = _FakeRedis()
    feed = RedisChangeFeed(redis, "app", poll_timeout=0.01)
    received = []

    def on_change(change):
        if change.key == "K1":
            raise RuntimeError("listener blew up")
        received.append(change)

    sub = await feed.subscribe_changes(ORDERS, on_change)
    redis.pubsub_client.queue.extend([
        "not json",
        "[1, 2]",
        json.dumps({"op": "set", "key": "K1", "fields": {"a": 1}}),
        json.dumps({"op": "set", "key": "K2", "fields": {"b": 2}}),
    ])
    await _wait_for(lambda: received)

    assert [(c.key, c.fields) for c in received] == [("K2", {"b": 2})]
    assert "Ignoring malformed change" in caplog.text
    assert caplog.text.count("Could not deliver change") == 2

    await sub.unsubscribe()
    assert redis.pubsub_client.closed


@pytest.mark.asyncio
async def test_update_fields_retries_a_stale_merge(monkeypatch, caplog):
    caplog.set_level(logging.WARNING)
    monkeypatch.setattr(settings, "OPT_LOCK_BASE_DELAY_MS", 0)
    monkeypatch.setattr(settings, "OPT_LOCK_JITTER_MS", 0)
    feed = RedisChangeFeed(object(), "app")
    calls = []

    async def merge(collection, key, expected, fields):
        calls.append(fields)
        if len(calls) == 1:
            raise StaleWriteError(collection, key)
        return True

    monkeypatch.setattr(feed, "_merge", merge)
    await feed.update_fields(ORDERS, "K1", {"status": "Ready"})

    assert calls == [{"status": "Ready"}, {"status": "Ready"}]
    assert f"{ORDERS}/K1 rewritten concurrently (attempt 1/" in caplog.text


@pytest.mark.asyncio
async def test_update_fields_gives_up_after_max_retries(monkeypatch, caplog):
    caplog.set_level(logging.WARNING)
    monkeypatch.setattr(settings, "OPT_LOCK_BASE_DELAY_MS", 0)
    monkeypatch.setattr(settings, "OPT_LOCK_JITTER_MS", 0)
    monkeypatch.setattr(settings, "OPT_LOCK_MAX_RETRIES", 3)
    feed = RedisChangeFeed(object(), "app")
    calls = []

    async def always_stale(collection, key, expected, fields):
        calls.append(key)
        raise StaleWriteError(collection, key)

    monkeypatch.setattr(feed, "_merge", always_stale)
    with pytest.raises(StaleWriteError) as exc_info:
        await feed.update_fields(ORDERS, "K1", {"status": "Ready"})

    assert len(calls) == 3
    assert (exc_info.value.collection, exc_info.value.key) == (ORDERS, "K1")
    assert f"{ORDERS}/K1 still contended after 3 attempts in update_fields" in caplog.text
