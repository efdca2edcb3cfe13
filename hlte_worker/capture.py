"""Forwarding of primary resources to the external capture (PDF) service.

Runs detached from the item's fetch/persist flow; the outcome is only logged.
"""

from __future__ import annotations

import base64
import json
import logging
from typing import Any
from urllib.parse import urlencode

import httpx

from hlte_worker.fetcher import build_http_client

_log = logging.getLogger(__name__)

TOKEN_HEADER = "x-hlte-token"


def encode_options(options: dict[str, Any]) -> str:
    raw = json.dumps(options, separators=(",", ":"), sort_keys=True)
    return base64.b64encode(raw.encode()).decode("ascii")


class CaptureForwarder:
    def __init__(
        self,
        *,
        base_url: str,
        token: str,
        pdf_options: dict[str, Any],
        client: httpx.AsyncClient | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._token = token
        # Fixed for the lifetime of the forwarder
        self._pdf_opts = encode_options(pdf_options)
        self._client = client or build_http_client()
        self._owns_client = client is None
        self._log = logger or _log

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def build_url(self, primary_uri: str, checksum: str, timestamp: int) -> str:
        query = urlencode(
            {
                "hlteUuid": f"{checksum}-{timestamp}",
                "pdfOpts": self._pdf_opts,
                "url": primary_uri,
            }
        )
        return f"{self._base_url}/?{query}"

    async def forward(self, primary_uri: str, checksum: str, timestamp: int) -> int | None:
        """Ask the capture service to render ``primary_uri``.

        Returns the response status, or None if the request failed. Never raises.
        """
        url = self.build_url(primary_uri, checksum, timestamp)
        try:
            resp = await self._client.get(url, headers={TOKEN_HEADER: self._token})
        except Exception:
            self._log.exception("Capture request failed for %s-%s", checksum, timestamp)
            return None

        if resp.is_success:
            self._log.info("Capture accepted for %s-%s (%d)", checksum, timestamp, resp.status_code)
        else:
            self._log.warning(
                "Capture service returned %d for %s-%s", resp.status_code, checksum, timestamp
            )
        return resp.status_code
