"""
Durable work queues on Redis lists.

Reliable-queue pattern:
- publish: LPUSH a JSON envelope ``{id, attempts, body}`` onto ``<queue>``
- receive: BLMOVE from the tail of ``<queue>`` onto ``<queue>:processing``
- ack: LREM the envelope from ``<queue>:processing``
- nack: re-queue with ``attempts + 1``, or park it on ``<queue>:dead`` once
  ``max_deliveries`` is reached or the envelope cannot be read

Delivery is at-least-once: a worker that dies between receive and ack leaves
the envelope in ``:processing`` and ``recover()`` puts it back on start-up.
Each queue is meant to have a single consumer.

Usage:
    from minicrm.services.queue_service import queue_connection, WorkQueue

    queue = WorkQueue(queue_connection, "campaign_delivery_queue")
    await queue.publish({"campaignDetails": {...}, "customerIds": [...]})
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from minicrm.config import settings
from minicrm.exceptions import DependencyError, ErrorCode

logger = logging.getLogger(__name__)


class ConnectionState(str, Enum):
    CLOSED = "closed"
    CONNECTING = "connecting"
    CONNECTED = "connected"


def _default_client_factory(url: str):
    return redis.from_url(url, encoding="utf-8", decode_responses=True)


class QueueConnectionManager:
    """
    Process-wide, lazily opened Redis connection.

    Concurrent callers that arrive while a connect is in flight await the
    same attempt instead of opening their own.
    """

    def __init__(self, redis_url: str, client_factory: Optional[Callable[[str], Any]] = None):
        self._redis_url = redis_url
        self._client_factory = client_factory or _default_client_factory
        self._client = None
        self._state = ConnectionState.CLOSED
        self._connecting: Optional[asyncio.Task] = None

    @property
    def state(self) -> ConnectionState:
        return self._state

    async def connect(self):
        """Return the shared client, opening it on first use."""
        if self._state is ConnectionState.CONNECTED:
            return self._client

        if self._connecting is None:
            self._state = ConnectionState.CONNECTING
            self._connecting = asyncio.ensure_future(self._open())

        task = self._connecting
        try:
            # shield: one cancelled waiter must not abort the shared attempt
            return await asyncio.shield(task)
        finally:
            if task.done() and self._connecting is task:
                self._connecting = None
                if task.cancelled() or task.exception() is not None:
                    self._state = ConnectionState.CLOSED

    async def _open(self):
        client = self._client_factory(self._redis_url)
        try:
            await client.ping()
        except (RedisError, OSError) as e:
            logger.error(f"Failed to connect to Redis queue: {type(e).__name__}")
            await client.aclose()
            raise DependencyError("Queue", "cannot reach Redis", ErrorCode.QUEUE_ERROR) from e

        self._client = client
        self._state = ConnectionState.CONNECTED
        logger.info("Connected to Redis queue")
        return client

    async def close(self) -> None:
        """Close the shared client; the next ``connect()`` reopens it."""
        client, self._client = self._client, None
        self._state = ConnectionState.CLOSED
        if client is not None:
            await client.aclose()
            logger.info("Redis queue connection closed")


@dataclass
class QueueMessage:
    """An envelope taken off a queue; ``raw`` is the exact stored string."""

    raw: str
    id: Optional[str] = None
    attempts: int = 0
    body: Any = None
    valid: bool = True

    @classmethod
    def from_raw(cls, raw: str) -> "QueueMessage":
        try:
            envelope = json.loads(raw)
            return cls(
                raw=raw,
                id=str(envelope["id"]),
                attempts=int(envelope.get("attempts", 0)),
                body=envelope["body"],
            )
        except (ValueError, TypeError, KeyError):
            return cls(raw=raw, valid=False)


class WorkQueue:
    """One named durable queue."""

    def __init__(
        self,
        connection: QueueConnectionManager,
        name: str,
        max_deliveries: int = 5,
    ):
        self.connection = connection
        self.name = name
        self.max_deliveries = max_deliveries

    @property
    def processing_key(self) -> str:
        return f"{self.name}:processing"

    @property
    def dead_letter_key(self) -> str:
        return f"{self.name}:dead"

    async def _client(self):
        return await self.connection.connect()

    async def publish(self, body: Any) -> str:
        """Enqueue a JSON-serialisable body; returns the message id."""
        message_id = uuid.uuid4().hex
        raw = json.dumps({"id": message_id, "attempts": 0, "body": body})
        client = await self._client()
        try:
            await client.lpush(self.name, raw)
        except (RedisError, OSError) as e:
            logger.error(f"Failed to publish to {self.name}: {type(e).__name__}")
            raise DependencyError("Queue", f"publish to {self.name} failed", ErrorCode.QUEUE_ERROR) from e
        logger.info(f"Message published to queue: {self.name}", extra={"message_id": message_id})
        return message_id

    async def receive(self, timeout: float = 5) -> Optional[QueueMessage]:
        """Block up to ``timeout`` seconds for the next message."""
        client = await self._client()
        try:
            raw = await client.blmove(self.name, self.processing_key, timeout, "RIGHT", "LEFT")
        except (RedisError, OSError) as e:
            raise DependencyError("Queue", f"receive from {self.name} failed", ErrorCode.QUEUE_ERROR) from e
        if raw is None:
            return None
        return QueueMessage.from_raw(raw)

    async def ack(self, message: QueueMessage) -> None:
        client = await self._client()
        try:
            await client.lrem(self.processing_key, 1, message.raw)
        except (RedisError, OSError) as e:
            raise DependencyError("Queue", f"ack on {self.name} failed", ErrorCode.QUEUE_ERROR) from e

    async def nack(self, message: QueueMessage, reason: str = "") -> bool:
        """Reject a message. Returns True if it was re-queued, False if dead-lettered."""
        client = await self._client()
        attempts = message.attempts + 1
        requeue = message.valid and attempts < self.max_deliveries

        # Push before removing so a crash in between duplicates rather than loses
        try:
            if requeue:
                raw = json.dumps({"id": message.id, "attempts": attempts, "body": message.body})
                await client.lpush(self.name, raw)
            else:
                await client.lpush(self.dead_letter_key, message.raw)
            await client.lrem(self.processing_key, 1, message.raw)
        except (RedisError, OSError) as e:
            raise DependencyError("Queue", f"nack on {self.name} failed", ErrorCode.QUEUE_ERROR) from e

        if requeue:
            logger.warning(
                f"Message {message.id} on {self.name} rejected, re-queued (attempt {attempts})",
                extra={"reason": reason},
            )
        else:
            logger.error(
                f"Message {message.id} on {self.name} moved to dead-letter queue",
                extra={"reason": reason, "attempts": attempts},
            )
        return requeue

    async def recover(self) -> int:
        """Return messages abandoned in ``:processing`` to the queue."""
        client = await self._client()
        moved = 0
        try:
            while await client.lmove(self.processing_key, self.name, "LEFT", "RIGHT") is not None:
                moved += 1
        except (RedisError, OSError) as e:
            raise DependencyError("Queue", f"recovery on {self.name} failed", ErrorCode.QUEUE_ERROR) from e
        if moved:
            logger.warning(f"Recovered {moved} unacknowledged message(s) on {self.name}")
        return moved


# Shared connection for the API process and workers
queue_connection = QueueConnectionManager(settings.REDIS_URL)


def get_ingestion_queue() -> WorkQueue:
    return WorkQueue(queue_connection, settings.INGESTION_QUEUE, settings.QUEUE_MAX_DELIVERIES)


def get_delivery_queue() -> WorkQueue:
    return WorkQueue(queue_connection, settings.DELIVERY_QUEUE, settings.QUEUE_MAX_DELIVERIES)
