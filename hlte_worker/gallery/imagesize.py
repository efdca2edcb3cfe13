from __future__ import annotations

import logging

import httpx
from PIL import ImageFile

from hlte_worker.fetcher import build_http_client

_log = logging.getLogger(__name__)

DEFAULT_MAX_PROBE_BYTES = 1 << 20


class ImageSizer:
    """Reads just enough of a remote image to learn its pixel dimensions."""

    def __init__(
        self,
        *,
        client: httpx.AsyncClient | None = None,
        max_bytes: int = DEFAULT_MAX_PROBE_BYTES,
        logger: logging.Logger | None = None,
    ) -> None:
        self._client = client or build_http_client()
        self._owns_client = client is None
        self._max_bytes = max_bytes
        self._log = logger or _log

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def probe(self, url: str) -> tuple[int, int] | None:
        """Return ``(width, height)``, or None when the size cannot be determined."""
        parser = ImageFile.Parser()
        read = 0
        try:
            async with self._client.stream("GET", url) as resp:
                if resp.status_code != 200:
                    self._log.warning("Size probe of %s returned %d", url, resp.status_code)
                    return None
                async for chunk in resp.aiter_bytes():
                    parser.feed(chunk)
                    read += len(chunk)
                    if parser.image is not None:
                        return parser.image.size
                    if read >= self._max_bytes:
                        break
        except Exception:
            self._log.warning("Size probe of %s failed", url, exc_info=True)
            return None

        self._log.warning("No image header found in first %d bytes of %s", read, url)
        return None
