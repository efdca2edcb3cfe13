"""Read-only lookup of the annotation attached to a capture.

The annotations database is owned by another service; this module only runs
one parameterised SELECT inside a read-only transaction.
"""

from __future__ import annotations

import asyncio
import logging

import asyncpg

from hlte_worker.errors import AnnotationNotFound, MultipleAnnotations

_log = logging.getLogger(__name__)

ANNOTATION_QUERY = """
SELECT annotation
FROM hlte_annotations
WHERE checksum = $1 AND timestamp = $2
"""


class AnnotationStore:
    def __init__(
        self,
        dsn: str,
        *,
        pool_max: int = 2,
        logger: logging.Logger | None = None,
    ) -> None:
        self._dsn = dsn
        self._pool_max = pool_max
        self._pool: asyncpg.Pool | None = None
        self._pool_lock = asyncio.Lock()
        self._log = logger or _log

    async def _get_pool(self) -> asyncpg.Pool:
        async with self._pool_lock:
            if self._pool is None:
                self._log.info("Creating annotation pool (dsn hidden)")
                self._pool = await asyncpg.create_pool(
                    dsn=self._dsn,
                    min_size=1,
                    max_size=self._pool_max,
                )
        return self._pool

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    async def lookup(self, checksum: str, timestamp: int) -> str:
        """Return the annotation text for one capture.

        Raises:
            AnnotationNotFound: no row matches.
            MultipleAnnotations: more than one row matches.
        """
        pool = await self._get_pool()
        async with pool.acquire() as conn, conn.transaction(readonly=True):
            rows = await conn.fetch(ANNOTATION_QUERY, checksum, timestamp)

        if not rows:
            raise AnnotationNotFound(checksum, timestamp)
        if len(rows) > 1:
            raise MultipleAnnotations(checksum, timestamp, len(rows))
        return rows[0]["annotation"] or ""
