from __future__ import annotations

import enum
from collections.abc import AsyncIterator, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any


def datetime_from_ns(timestamp: int) -> datetime:
    """Nanosecond epoch -> aware UTC datetime (microsecond precision)."""
    seconds, nanos = divmod(timestamp, 1_000_000_000)
    return datetime.fromtimestamp(seconds, UTC) + timedelta(microseconds=nanos // 1000)


class Role(enum.StrEnum):
    PRIMARY = "primary"
    SECONDARY = "secondary"


class FetchStatus(enum.StrEnum):
    SKIPPED = "skipped"  # empty uri
    REJECTED = "rejected"  # non-success HEAD/GET
    FETCHED = "fetched"


@dataclass(frozen=True)
class QueueEntry:
    entry_id: str
    fields: tuple[str, ...]  # alternating key/value, as read from the stream


@dataclass(frozen=True)
class WorkItem:
    checksum: str
    timestamp: int  # nanoseconds since epoch
    primary_uri: str | None
    secondary_uri: str | None
    extra: Mapping[str, str] = field(default_factory=dict)

    @property
    def stem(self) -> str:
        return f"{self.checksum}-{self.timestamp}"

    @property
    def captured_at(self) -> datetime:
        return datetime_from_ns(self.timestamp)

    def uri_for(self, role: Role) -> str | None:
        return self.primary_uri if role is Role.PRIMARY else self.secondary_uri


@dataclass
class FetchOutcome:
    role: Role
    status: FetchStatus
    status_code: int | None = None
    headers: dict[str, str] = field(default_factory=dict)
    body: AsyncIterator[bytes] | None = None

    @property
    def content_type(self) -> str | None:
        return self.headers.get("content-type")


@dataclass(frozen=True)
class PersistedArtifact:
    role: Role
    content_path: Path
    metadata_path: Path
    content_type: str
    metadata: dict[str, Any]


@dataclass(frozen=True)
class DeadLetterRecord:
    original_entry_id: str
    checksum: str
    timestamp: int


@dataclass(frozen=True)
class GalleryCandidate:
    image_url: str
    width: int
    height: int
    annotation_text: str | None
    publish_decision: bool

    @property
    def pixels(self) -> int:
        return self.width * self.height
