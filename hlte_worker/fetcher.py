"""Single-URI HTTP fetch under a probe-first or direct-GET policy."""

from __future__ import annotations

import logging
import re
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager

import httpx

from hlte_worker.types import FetchOutcome, FetchStatus, Role

_log = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "Mozilla/5.0 (compatible; hlte-worker/1.0)"

# One RFC 6838 restricted-name token; it becomes a file extension
_SUBTYPE_RE = re.compile(r"[A-Za-z0-9][A-Za-z0-9!#$&^_.+-]*")


def extension_for(content_type: str | None) -> str:
    """Map a Content-Type to a file extension: ``text/html; charset=x`` -> ``html``."""
    if not content_type:
        raise ValueError("response has no content-type")
    mime = content_type.split(";", 1)[0].strip()
    _, sep, subtype = mime.partition("/")
    if not sep or not subtype:
        raise ValueError(f"content-type without subtype: {content_type!r}")
    if not _SUBTYPE_RE.fullmatch(subtype):
        raise ValueError(f"content-type subtype is not a token: {content_type!r}")
    return subtype.lower()


def build_http_client(*, user_agent: str = DEFAULT_USER_AGENT) -> httpx.AsyncClient:
    # No timeout: a stalled transfer holds the item until it completes or fails.
    return httpx.AsyncClient(
        timeout=httpx.Timeout(None),
        headers={"User-Agent": user_agent},
        follow_redirects=True,
    )


class ResourceFetcher:
    """Fetches one resource and exposes its body as a stream.

    HTTP-level rejections (non-2xx HEAD, non-200 GET) are logged and returned
    as ``REJECTED`` outcomes. Transport errors propagate to the caller.
    """

    def __init__(
        self,
        *,
        client: httpx.AsyncClient | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._client = client or build_http_client()
        self._owns_client = client is None
        self._log = logger or _log

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def probe(self, uri: str, role: Role) -> int:
        """Issue a HEAD request and return its status code."""
        resp = await self._client.head(uri)
        if not resp.is_success:
            self._log.warning("HEAD %s (%s) returned %d; skipping", uri, role, resp.status_code)
        return resp.status_code

    @asynccontextmanager
    async def fetch(
        self,
        uri: str | None,
        role: Role,
        *,
        probe_before_fetch: bool,
        on_dispatch: Callable[[], None] | None = None,
    ) -> AsyncIterator[FetchOutcome]:
        """Yield the outcome of fetching ``uri``; the body is readable inside the block.

        ``on_dispatch`` fires once the resource has been contacted: after the
        HEAD under probe-first (whatever its status), before the GET otherwise.
        """
        if not uri:
            self._log.debug("No %s uri; skipping", role)
            yield FetchOutcome(role=role, status=FetchStatus.SKIPPED)
            return

        if probe_before_fetch:
            head_status = await self.probe(uri, role)
            if on_dispatch is not None:
                on_dispatch()
            if not 200 <= head_status < 300:
                yield FetchOutcome(role=role, status=FetchStatus.REJECTED, status_code=head_status)
                return
        elif on_dispatch is not None:
            on_dispatch()

        async with self._client.stream("GET", uri) as resp:
            if resp.status_code != 200:
                self._log.warning("GET %s (%s) returned %d; skipping", uri, role, resp.status_code)
                yield FetchOutcome(role=role, status=FetchStatus.REJECTED, status_code=resp.status_code)
                return

            self._log.info("Fetched %s (%s)", uri, role)
            yield FetchOutcome(
                role=role,
                status=FetchStatus.FETCHED,
                status_code=resp.status_code,
                headers={k.lower(): v for k, v in resp.headers.items()},
                body=resp.aiter_bytes(),
            )
