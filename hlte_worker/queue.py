"""Redis stream access: dequeue-one, delete-by-id, dead-letter append.

Every call opens its own short-lived client. The worker reads from the start
of the stream without a consumer group, so an entry stays visible until it is
deleted; callers rely on the idempotent storage layout to absorb rereads.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from typing import Any

from redis import asyncio as aioredis

from hlte_worker.types import DeadLetterRecord, QueueEntry

_log = logging.getLogger(__name__)


def failed_key(stream_key: str) -> str:
    return f"{stream_key}:failed"


def _raw_reply(response: Any, **_options: Any) -> Any:
    # Keep XREAD's nested list reply as-is; the decoder validates the flat field list.
    return response


def _connect(url: str) -> aioredis.Redis:
    client = aioredis.from_url(url, decode_responses=True)
    client.set_response_callback("XREAD", _raw_reply)
    return client


def _is_seq(value: Any) -> bool:
    return isinstance(value, (list, tuple))


class QueueClient:
    def __init__(
        self,
        redis_url: str,
        *,
        logger: logging.Logger | None = None,
        client_factory: Callable[[str], aioredis.Redis] | None = None,
    ) -> None:
        self._url = redis_url
        self._log = logger or _log
        self._factory = client_factory or _connect

    @asynccontextmanager
    async def _connection(self) -> AsyncIterator[aioredis.Redis]:
        client = self._factory(self._url)
        try:
            yield client
        finally:
            await client.aclose()

    async def dequeue(self, stream_key: str) -> QueueEntry | None:
        """Return the oldest entry in the stream, or None when it is empty.

        A reply that is not one stream holding one ``(id, fields)`` entry is
        logged and treated as empty. The entry is not removed.
        """
        async with self._connection() as client:
            reply = await client.xread({stream_key: "0"}, count=1)

        if not reply:
            return None

        entry = self._single_entry(reply)
        if entry is None:
            self._log.error("Unexpected XREAD reply shape from %s: %r", stream_key, reply)
            return None

        entry_id, fields = entry
        return QueueEntry(entry_id=str(entry_id), fields=tuple(str(f) for f in fields))

    @staticmethod
    def _single_entry(reply: Any) -> tuple[Any, Any] | None:
        if not _is_seq(reply) or len(reply) != 1:
            return None
        stream = reply[0]
        if not _is_seq(stream) or len(stream) != 2:
            return None
        entries = stream[1]
        if not _is_seq(entries) or len(entries) != 1:
            return None
        entry = entries[0]
        if not _is_seq(entry) or len(entry) != 2 or not _is_seq(entry[1]):
            return None
        return entry[0], entry[1]

    async def delete(self, stream_key: str, entry_id: str) -> None:
        async with self._connection() as client:
            removed = await client.xdel(stream_key, entry_id)
        self._log.debug("XDEL %s %s removed=%s", stream_key, entry_id, removed)

    async def dead_letter(
        self, stream_key: str, entry_id: str, checksum: str, timestamp: int
    ) -> DeadLetterRecord:
        """Append the item identity to ``<stream_key>:failed``.

        The dead-letter stream assigns its own id; the source entry id travels
        as the ``original_entry_id`` field, so the same entry can be
        dead-lettered more than once. Errors from Redis propagate.
        """
        target = failed_key(stream_key)
        async with self._connection() as client:
            await client.xadd(
                target,
                {
                    "original_entry_id": entry_id,
                    "checksum": checksum,
                    "timestamp": str(timestamp),
                },
            )
        self._log.warning("Dead-lettered %s into %s (%s-%s)", entry_id, target, checksum, timestamp)
        return DeadLetterRecord(original_entry_id=entry_id, checksum=checksum, timestamp=timestamp)
