"""Queue gateway: SQS-style queues on top of Redis Streams.

Each queue is one stream read through a single consumer group, which gives
the semantics the pipeline relies on:

* **lease / visibility timeout**: a received entry stays in the group's
  pending entries list (PEL) until it is deleted. Once it has been idle for
  the visibility timeout, the next ``receive`` re-claims it (``XCLAIM`` with a
  minimum idle time, so only one consumer wins) and hands it out again.
* **receive count**: the PEL delivery counter.
* **dead-letter redrive**: an expired entry that was already delivered
  ``max_receive_count`` times is moved to the queue's dead-letter stream
  instead of being handed out again.
* **retention**: ``XADD`` trims entries older than the retention period.

Redis keys used:
    ``taskrelay:queue:{name}``              Stream (the queue URL)
    ``taskrelay:queue:{name}:attributes``   Hash with queue attributes

Consumer group: ``taskrelay-consumers``
"""

from __future__ import annotations

import json
import logging
import socket
import time
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

import redis.asyncio as aioredis
from pydantic import BaseModel

from src.pipeline.errors import AckError, DeliveryError, ProvisioningError, QueueError
from src.pipeline.messages import WireMessage

logger = logging.getLogger(__name__)

QUEUE_PREFIX = "taskrelay:queue"
CONSUMER_GROUP = "taskrelay-consumers"
DEAD_LETTER_SUFFIX = "-failed"
MAX_RECEIVE_COUNT = 3

_HANDLE_SEPARATOR = "|"


def queue_url(name: str) -> str:
    """Address of the queue called ``name``."""
    return f"{QUEUE_PREFIX}:{name}"


def dead_letter_name(source_name: str) -> str:
    """Name of the dead-letter queue owned by ``source_name``."""
    return f"{source_name}{DEAD_LETTER_SUFFIX}"


def _attributes_key(url: str) -> str:
    return f"{url}:attributes"


@dataclass(frozen=True)
class QueueAttributes:
    """Provisioned configuration of one queue."""

    name: str
    visibility_timeout: int
    message_retention_period: int
    is_dead_letter: bool = False
    dead_letter_target: str | None = None
    max_receive_count: int | None = None

    @classmethod
    def from_hash(cls, data: dict[str, str]) -> QueueAttributes:
        max_receive = data.get("max_receive_count")
        return cls(
            name=data.get("name", ""),
            visibility_timeout=int(data.get("visibility_timeout", 0)),
            message_retention_period=int(data.get("message_retention_period", 0)),
            is_dead_letter=data.get("is_dead_letter") == "1",
            dead_letter_target=data.get("dead_letter_target") or None,
            max_receive_count=int(max_receive) if max_receive else None,
        )


@dataclass(frozen=True)
class ReceivedMessage:
    """A message handed out by ``receive`` together with its lease."""

    message_id: str
    body: dict[str, Any]
    lease_handle: str
    receive_count: int


@dataclass(frozen=True)
class QueueStats:
    """Approximate queue depth, for operators."""

    name: str
    url: str
    visible: int
    in_flight: int
    dead_letter_target: str | None = None


class QueueGateway:
    """Provision, publish to, receive from and acknowledge on named queues.

    Args:
        redis: An async Redis client (``redis.asyncio.Redis``) created with
            ``decode_responses=True``.
        visibility_timeout: Lease duration in seconds for queues created here.
        message_retention_period: Seconds an entry is kept before trimming.
        consumer_name: Identity of this gateway within the consumer groups.
            Defaults to ``{hostname}-{random}``.
    """

    def __init__(
        self,
        redis: Any,
        *,
        visibility_timeout: int = 300,
        message_retention_period: int = 86400,
        consumer_name: str | None = None,
    ) -> None:
        self._redis = redis
        self._visibility_timeout = visibility_timeout
        self._retention = message_retention_period
        self.consumer_name = consumer_name or f"{socket.gethostname()}-{uuid.uuid4().hex[:8]}"

    # -- Provisioning ----------------------------------------------------------

    async def ensure_queue(
        self,
        name: str,
        is_dead_letter: bool = False,
        source_name: str | None = None,
    ) -> str:
        """Return the address of queue ``name``, creating it when absent.

        Idempotent, safe to call on every startup. When ``source_name`` is
        given for a primary queue, its dead-letter queue
        (``{source_name}-failed``) is ensured first and a redrive policy
        pointing at it is attached to the new queue.

        Raises:
            ValueError: If ``name`` is empty.
            ProvisioningError: If Redis fails for any reason other than the
                queue already existing.
        """
        if not name:
            raise ValueError("Queue name is required")

        url = queue_url(name)
        try:
            existing = await self._redis.hgetall(_attributes_key(url))
        except aioredis.RedisError as exc:
            raise ProvisioningError(f"Failed to look up queue {name}: {exc}", url) from exc
        if existing:
            logger.info("Queue URL for %s: %s", name, url)
            return url

        attributes: dict[str, str] = {
            "name": name,
            "visibility_timeout": str(self._visibility_timeout),
            "message_retention_period": str(self._retention),
            "is_dead_letter": "1" if is_dead_letter else "0",
            "created_at": datetime.now(UTC).isoformat(),
        }
        if source_name and not is_dead_letter:
            dead_letter_url = await self.ensure_queue(dead_letter_name(source_name), is_dead_letter=True)
            attributes["dead_letter_target"] = dead_letter_url
            attributes["max_receive_count"] = str(MAX_RECEIVE_COUNT)

        try:
            try:
                await self._redis.xgroup_create(url, CONSUMER_GROUP, id="0", mkstream=True)
            except aioredis.ResponseError as e:
                if "BUSYGROUP" not in str(e):
                    raise
            await self._redis.hset(_attributes_key(url), mapping=attributes)
        except aioredis.RedisError as exc:
            logger.error("Failed to create queue %s: %s", name, exc)
            raise ProvisioningError(f"Failed to create queue {name}: {exc}", url) from exc

        logger.info("Created queue %s: %s", name, url)
        return url

    async def get_attributes(self, url: str) -> QueueAttributes:
        """Read the provisioned attributes of the queue at ``url``.

        Raises:
            QueueError: If the queue was never provisioned or Redis fails.
        """
        try:
            data = await self._redis.hgetall(_attributes_key(url))
        except aioredis.RedisError as exc:
            raise QueueError(f"Failed to read attributes of {url}: {exc}", url) from exc
        if not data:
            raise QueueError(f"Queue {url} does not exist", url)
        return QueueAttributes.from_hash(data)

    # -- Publish ---------------------------------------------------------------

    async def send(self, url: str, message: BaseModel | dict[str, Any]) -> str:
        """Serialise ``message`` as JSON and append it to the queue.

        Entries older than the queue's retention period are trimmed as a
        side effect.

        Returns:
            The message ID assigned by Redis.

        Raises:
            DeliveryError: If the message could not be published.
        """
        if isinstance(message, WireMessage):
            data = message.to_wire()
        elif isinstance(message, BaseModel):
            data = message.model_dump(mode="json", by_alias=True)
        else:
            data = message
        body = json.dumps(data)

        retention_floor_ms = int(time.time() * 1000) - self._retention * 1000
        try:
            msg_id: str = await self._redis.xadd(
                url,
                {"body": body},
                minid=str(max(retention_floor_ms, 0)),
                approximate=True,
            )
        except aioredis.RedisError as exc:
            logger.error("Failed to send message to %s: %s", url, exc)
            raise DeliveryError(f"Failed to send message to {url}: {exc}", url) from exc
        return msg_id

    # -- Receive ---------------------------------------------------------------

    async def receive(self, url: str, max_messages: int = 1) -> list[ReceivedMessage]:
        """Lease up to ``max_messages`` visible messages. Never blocks.

        Expired leases are served before never-delivered messages. An empty
        list is the normal idle outcome.

        Raises:
            QueueError: On transport failure.
        """
        attributes = await self.get_attributes(url)
        visibility_ms = attributes.visibility_timeout * 1000
        received: list[ReceivedMessage] = []

        try:
            expired = await self._redis.xpending_range(
                url,
                CONSUMER_GROUP,
                min="-",
                max="+",
                count=max_messages,
                idle=visibility_ms,
            )
            for entry in expired:
                msg_id = entry["message_id"]
                times_delivered = int(entry["times_delivered"])
                if (
                    attributes.dead_letter_target
                    and attributes.max_receive_count
                    and times_delivered >= attributes.max_receive_count
                ):
                    await self._dead_letter(url, attributes.dead_letter_target, msg_id, visibility_ms, times_delivered)
                    continue

                claimed = await self._redis.xclaim(
                    url, CONSUMER_GROUP, self.consumer_name, visibility_ms, [msg_id]
                )
                for claimed_id, fields in claimed:
                    message = await self._to_received(url, claimed_id, fields, times_delivered + 1)
                    if message is not None:
                        received.append(message)

            remaining = max_messages - len(received)
            if remaining > 0:
                result = await self._redis.xreadgroup(
                    CONSUMER_GROUP,
                    self.consumer_name,
                    {url: ">"},
                    count=remaining,
                )
                for _stream_name, entries in result or []:
                    for msg_id, fields in entries:
                        message = await self._to_received(url, msg_id, fields, 1)
                        if message is not None:
                            received.append(message)
        except aioredis.RedisError as exc:
            raise QueueError(f"Failed to receive messages from {url}: {exc}", url) from exc

        return received

    async def _to_received(
        self,
        url: str,
        msg_id: str,
        fields: dict[str, str] | None,
        receive_count: int,
    ) -> ReceivedMessage | None:
        if not fields:
            # Entry trimmed by retention while leased; nothing left to deliver.
            await self._redis.xack(url, CONSUMER_GROUP, msg_id)
            return None
        try:
            body = json.loads(fields.get("body", ""))
        except (json.JSONDecodeError, TypeError):
            logger.error(
                "Undecodable message %s on %s (receive %d); leaving it for redrive",
                msg_id,
                url,
                receive_count,
            )
            return None
        if not isinstance(body, dict):
            logger.error("Message %s on %s is not a JSON object; leaving it for redrive", msg_id, url)
            return None
        handle = _HANDLE_SEPARATOR.join((msg_id, self.consumer_name, str(receive_count)))
        return ReceivedMessage(message_id=msg_id, body=body, lease_handle=handle, receive_count=receive_count)

    async def _dead_letter(
        self,
        url: str,
        dead_letter_url: str,
        msg_id: str,
        visibility_ms: int,
        times_delivered: int,
    ) -> None:
        claimed = await self._redis.xclaim(url, CONSUMER_GROUP, self.consumer_name, visibility_ms, [msg_id])
        for claimed_id, fields in claimed:
            # Move atomically; a failure leaves the entry pending on the source.
            async with self._redis.pipeline(transaction=True) as pipe:
                if fields:
                    pipe.xadd(
                        dead_letter_url,
                        {"body": fields.get("body", ""), "source_message_id": claimed_id},
                    )
                pipe.xack(url, CONSUMER_GROUP, claimed_id)
                pipe.xdel(url, claimed_id)
                await pipe.execute()
            logger.warning(
                "Message %s on %s moved to %s after %d receives",
                claimed_id,
                url,
                dead_letter_url,
                times_delivered,
            )

    # -- Acknowledge -----------------------------------------------------------

    async def delete(self, url: str, lease_handle: str) -> None:
        """Permanently remove a received message.

        Raises:
            AckError: If the handle is malformed or stale (the lease expired
                and the message was re-claimed, dead-lettered or already
                deleted), or on transport failure.
        """
        parts = lease_handle.split(_HANDLE_SEPARATOR)
        if len(parts) != 3:
            raise AckError(f"Malformed lease handle: {lease_handle!r}", url)
        msg_id, consumer, receive_count = parts

        try:
            pending = await self._redis.xpending_range(url, CONSUMER_GROUP, min=msg_id, max=msg_id, count=1)
            current = pending[0] if pending else None
            if (
                current is None
                or current["consumer"] != consumer
                or int(current["times_delivered"]) != int(receive_count)
            ):
                raise AckError(f"Lease on message {msg_id} is no longer held", url)
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.xack(url, CONSUMER_GROUP, msg_id)
                pipe.xdel(url, msg_id)
                await pipe.execute()
        except aioredis.RedisError as exc:
            raise AckError(f"Failed to delete message {msg_id} from {url}: {exc}", url) from exc

    # -- Introspection ---------------------------------------------------------

    async def stats(self, url: str) -> QueueStats:
        """Approximate number of visible and leased messages on a queue."""
        attributes = await self.get_attributes(url)
        try:
            length = int(await self._redis.xlen(url))
            summary = await self._redis.xpending(url, CONSUMER_GROUP)
        except aioredis.RedisError as exc:
            raise QueueError(f"Failed to read stats of {url}: {exc}", url) from exc
        in_flight = int((summary or {}).get("pending", 0))
        return QueueStats(
            name=attributes.name,
            url=url,
            visible=max(length - in_flight, 0),
            in_flight=in_flight,
            dead_letter_target=attributes.dead_letter_target,
        )
