"""Content-addressed filesystem store for fetched resources.

Layout under the data root::

    <role>/<checksum>-<timestamp>.<ext>
    metadata/<checksum>-<timestamp>-<role>.json

The sidecar and the content file are written independently; a crash between
the two can leave one without the other.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator, Mapping
from pathlib import Path
from typing import Any

from hlte_worker.fetcher import extension_for
from hlte_worker.types import PersistedArtifact, Role, WorkItem

_log = logging.getLogger(__name__)

METADATA_DIR = "metadata"


def build_metadata(item: WorkItem, role: Role, headers: Mapping[str, str]) -> dict[str, Any]:
    # Derived only from the item and the response, so reruns write identical bytes.
    return {
        "checksum": item.checksum,
        "timestamp": item.timestamp,
        "primary_uri": item.primary_uri,
        "secondary_uri": item.secondary_uri,
        "extra": dict(item.extra),
        "role": role.value,
        "content_type": headers.get("content-type"),
        "headers": dict(headers),
        "captured_at": item.captured_at.isoformat(),
    }


class ContentStore:
    def __init__(self, data_root: Path, *, logger: logging.Logger | None = None) -> None:
        self._root = Path(data_root)
        self._log = logger or _log

    @property
    def root(self) -> Path:
        return self._root

    def metadata_path(self, item: WorkItem, role: Role) -> Path:
        return self._contained(self._root / METADATA_DIR / f"{item.stem}-{role.value}.json")

    def content_path(self, item: WorkItem, role: Role, ext: str) -> Path:
        return self._contained(self._root / role.value / f"{item.stem}.{ext}")

    def _contained(self, path: Path) -> Path:
        """Return ``path`` unchanged, or raise ValueError if it resolves outside the root."""
        if not path.resolve().is_relative_to(self._root.resolve()):
            raise ValueError(f"{path} resolves outside data root {self._root}")
        return path

    async def persist(
        self,
        item: WorkItem,
        role: Role,
        headers: Mapping[str, str],
        body: AsyncIterator[bytes],
    ) -> PersistedArtifact:
        content_type = headers.get("content-type")
        ext = extension_for(content_type)
        metadata = build_metadata(item, role, headers)

        meta_path = self.metadata_path(item, role)
        content_path = self.content_path(item, role, ext)

        await asyncio.to_thread(_ensure_dirs, meta_path.parent, content_path.parent)
        await asyncio.to_thread(
            meta_path.write_text,
            json.dumps(metadata, indent=2, sort_keys=True) + "\n",
            encoding="utf-8",
        )
        size = await _write_stream(content_path, body)

        self._log.info("Stored %s (%d bytes) and %s", content_path, size, meta_path.name)
        return PersistedArtifact(
            role=role,
            content_path=content_path,
            metadata_path=meta_path,
            content_type=content_type or "",
            metadata=metadata,
        )


def _ensure_dirs(*dirs: Path) -> None:
    for d in dirs:
        d.mkdir(parents=True, exist_ok=True)


async def _write_stream(path: Path, body: AsyncIterator[bytes]) -> int:
    written = 0
    fh = await asyncio.to_thread(open, path, "wb")
    try:
        async for chunk in body:
            await asyncio.to_thread(fh.write, chunk)
            written += len(chunk)
    finally:
        await asyncio.to_thread(fh.close)
    return written
