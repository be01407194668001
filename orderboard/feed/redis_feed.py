"""
Orderboard — Redis-backed change feed

Layout:
  - {app_id}:{collection}           hash, document key -> JSON field map
  - {app_id}:{collection}:changes   pub/sub channel, one JSON Change per mutation

Every client subscribes to the changes channel. Snapshot subscribers re-read the
whole hash on each message, so they always see the full collection; change
subscribers get the post-image carried in the message itself.
"""
import asyncio
import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Mapping

import redis.asyncio as aioredis
from redis.exceptions import RedisError, WatchError

from orderboard.core.errors import NotFoundError, StaleWriteError, TransportError
from orderboard.core.optimistic_lock import with_optimistic_retry
from orderboard.feed.base import (
    CHANGE_DELETE,
    CHANGE_SET,
    SERVER_TIMESTAMP,
    Change,
    ChangeCallback,
    ChangeFeedClient,
    Document,
    Snapshot,
    SnapshotCallback,
    Subscription,
)

logger = logging.getLogger(__name__)


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _dumps(value: Any) -> str:
    return json.dumps(value, default=_json_default)


class RedisChangeFeed(ChangeFeedClient):
    def __init__(self, redis: aioredis.Redis, app_id: str, poll_timeout: float = 1.0):
        self._redis = redis
        self._app_id = app_id
        self._poll_timeout = poll_timeout

    def _hash(self, collection: str) -> str:
        return f"{self._app_id}:{collection}"

    def _channel(self, collection: str) -> str:
        return f"{self._app_id}:{collection}:changes"

    # ── Reads ─────────────────────────────────────────────────────────────────
    async def get_snapshot(self, collection: str) -> Snapshot:
        try:
            raw = await self._redis.hgetall(self._hash(collection))
        except RedisError as exc:
            raise TransportError(f"Could not read '{collection}': {exc}") from exc
        documents = []
        for key in sorted(raw):
            try:
                documents.append(Document(key, json.loads(raw[key])))
            except ValueError:
                logger.warning("Skipping undecodable document %s/%s", collection, key)
        return Snapshot(collection, tuple(documents))

    async def _read(self, collection: str, key: str) -> dict[str, Any] | None:
        raw = await self._redis.hget(self._hash(collection), key)
        return json.loads(raw) if raw is not None else None

    # ── Mutations ─────────────────────────────────────────────────────────────
    async def _server_now(self) -> datetime:
        seconds, micros = await self._redis.time()
        return datetime.fromtimestamp(seconds + micros / 1_000_000, tz=timezone.utc)

    async def _resolve_timestamps(self, fields: dict[str, Any]) -> dict[str, Any]:
        if not any(value is SERVER_TIMESTAMP for value in fields.values()):
            return dict(fields)
        now = await self._server_now()
        return {name: now if value is SERVER_TIMESTAMP else value for name, value in fields.items()}

    async def create_document(
        self, collection: str, fields: dict[str, Any], key: str | None = None
    ) -> str:
        key = key or uuid.uuid4().hex
        try:
            stored = json.loads(_dumps(await self._resolve_timestamps(fields)))
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.hset(self._hash(collection), key, _dumps(stored))
                pipe.publish(self._channel(collection), _dumps({"op": CHANGE_SET, "key": key, "fields": stored}))
                await pipe.execute()
        except RedisError as exc:
            raise TransportError(f"Could not create {collection}/{key}: {exc}") from exc
        return key

    @with_optimistic_retry()
    async def update_fields(self, collection: str, key: str, fields: dict[str, Any]) -> None:
        # Unconditional merge: a concurrent write just makes us re-read and merge again.
        await self._merge(collection, key, None, fields)

    async def compare_and_update(
        self,
        collection: str,
        key: str,
        expected: Mapping[str, Any],
        fields: dict[str, Any],
    ) -> bool:
        return await self._merge(collection, key, expected, fields)

    async def _merge(
        self,
        collection: str,
        key: str,
        expected: Mapping[str, Any] | None,
        fields: dict[str, Any],
    ) -> bool:
        name = self._hash(collection)
        try:
            resolved = json.loads(_dumps(await self._resolve_timestamps(fields)))
            async with self._redis.pipeline(transaction=True) as pipe:
                await pipe.watch(name)
                raw = await pipe.hget(name, key)
                if raw is None:
                    raise NotFoundError(collection, key)
                doc = json.loads(raw)
                if expected is not None and any(doc.get(f) != v for f, v in expected.items()):
                    await pipe.unwatch()
                    return False
                doc.update(resolved)
                pipe.multi()
                pipe.hset(name, key, _dumps(doc))
                pipe.publish(self._channel(collection), _dumps({"op": CHANGE_SET, "key": key, "fields": doc}))
                await pipe.execute()
                return True
        except WatchError as exc:
            raise StaleWriteError(collection, key) from exc
        except RedisError as exc:
            raise TransportError(f"Could not update {collection}/{key}: {exc}") from exc

    async def delete_document(self, collection: str, key: str) -> None:
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.hdel(self._hash(collection), key)
                pipe.publish(self._channel(collection), _dumps({"op": CHANGE_DELETE, "key": key}))
                await pipe.execute()
        except RedisError as exc:
            raise TransportError(f"Could not delete {collection}/{key}: {exc}") from exc

    # ── Subscriptions ─────────────────────────────────────────────────────────
    async def subscribe(self, collection: str, on_snapshot: SnapshotCallback) -> Subscription:
        async def _deliver(_message: dict[str, Any]) -> None:
            on_snapshot(await self.get_snapshot(collection))

        subscription = await self._listen(collection, _deliver, on_snapshot)
        try:
            on_snapshot(await self.get_snapshot(collection))
        except TransportError as exc:
            logger.warning("Initial snapshot of '%s' failed: %s", collection, exc)
            on_snapshot(exc)
        return subscription

    async def subscribe_changes(self, collection: str, on_change: ChangeCallback) -> Subscription:
        async def _deliver(message: dict[str, Any]) -> None:
            on_change(Change(message["op"], message["key"], message.get("fields") or {}))

        return await self._listen(collection, _deliver, on_change)

    async def _listen(
        self,
        collection: str,
        deliver: Callable[[dict[str, Any]], Any],
        on_error: Callable[[TransportError], None],
    ) -> Subscription:
        channel = self._channel(collection)
        pubsub = self._redis.pubsub()
        try:
            await pubsub.subscribe(channel)
        except RedisError as exc:
            await pubsub.aclose()
            raise TransportError(f"Could not subscribe to '{collection}': {exc}") from exc

        async def _loop() -> None:
            try:
                while True:
                    message = await pubsub.get_message(
                        ignore_subscribe_messages=True, timeout=self._poll_timeout
                    )
                    if not message or message["type"] != "message":
                        continue
                    try:
                        payload = json.loads(message["data"])
                    except ValueError:
                        logger.warning("Ignoring malformed change on %s: %r", channel, message["data"])
                        continue
                    try:
                        await deliver(payload)
                    except TransportError:
                        raise
                    except Exception:
                        # One bad message or listener must not end the subscription.
                        logger.exception("Could not deliver change on %s: %r", channel, payload)
            except (RedisError, TransportError) as exc:
                logger.warning("Feed for '%s' lost: %s", collection, exc)
                on_error(exc if isinstance(exc, TransportError) else TransportError(str(exc)))

        task = asyncio.create_task(_loop())

        async def _close() -> None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            try:
                await pubsub.unsubscribe(channel)
            finally:
                await pubsub.aclose()

        return Subscription(_close)
