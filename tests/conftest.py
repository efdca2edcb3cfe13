"""Shared test fixtures for the hlte-worker test suite."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import replace
from pathlib import Path

import pytest

from hlte_worker.config import WorkerConfig
from hlte_worker.types import QueueEntry, WorkItem

CHECKSUM = "3f2a9c"
TIMESTAMP = 1_700_000_000_123_456_789
PRIMARY = "https://img.example.com/cat.png"
SECONDARY = "https://example.com/posts/cat"


@pytest.fixture
def stream_key() -> str:
    return "hlte:work"


@pytest.fixture
def make_config(tmp_path: Path, stream_key: str) -> Callable[..., WorkerConfig]:
    def _make(**overrides) -> WorkerConfig:
        base = WorkerConfig(
            redis_url="redis://localhost:6379/15",
            stream_key=stream_key,
            retain_entries=False,
            data_root=tmp_path / "data",
            probe_before_fetch=True,
            capture_base_url=None,
            capture_token=None,
        )
        return replace(base, **overrides)

    return _make


@pytest.fixture
def work_item() -> WorkItem:
    return WorkItem(
        checksum=CHECKSUM,
        timestamp=TIMESTAMP,
        primary_uri=PRIMARY,
        secondary_uri=SECONDARY,
        extra={"title": "A cat"},
    )


def make_entry(
    entry_id: str = "1700000000000-0",
    *,
    checksum: str = CHECKSUM,
    timestamp: int = TIMESTAMP,
    primary: str | None = PRIMARY,
    secondary: str | None = SECONDARY,
) -> QueueEntry:
    fields = ["checksum", checksum, "timestamp", str(timestamp)]
    if primary is not None:
        fields += ["primaryURI", primary]
    if secondary is not None:
        fields += ["secondaryURI", secondary]
    return QueueEntry(entry_id=entry_id, fields=tuple(fields))
