"""Environment-variable-driven configuration for the hlte worker.

The core consumes a resolved ``WorkerConfig`` value; nothing below the entry
point reads the environment.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

_DEFAULT_PDF_OPTIONS: dict[str, Any] = {"format": "Letter", "printBackground": True}


def _get_bool(name: str, default: bool) -> bool:
    v = os.getenv(name)
    if v is None:
        return default
    return v.strip().lower() in ("1", "true", "t", "yes", "y", "on")


def _get_int(name: str, default: int) -> int:
    v = os.getenv(name)
    if v is None:
        return default
    return int(v)


def _get_float(name: str, default: float) -> float:
    v = os.getenv(name)
    if v is None:
        return default
    return float(v)


def _get_path(name: str) -> Path | None:
    v = os.getenv(name)
    return Path(v) if v else None


@dataclass(frozen=True)
class WorkerConfig:
    # Queue
    redis_url: str
    stream_key: str
    retain_entries: bool

    # Storage
    data_root: Path

    # Fetch policy
    probe_before_fetch: bool

    # Capture service
    capture_base_url: str | None
    capture_token: str | None
    capture_pdf_options: dict[str, Any] = field(default_factory=lambda: dict(_DEFAULT_PDF_OPTIONS))

    # Gallery
    annotation_dsn: str | None = None
    gallery_template_path: Path | None = None
    gallery_live_path: Path | None = None
    gallery_min_pixels: int = 200_000
    gallery_publish_marker: str = "#publish"

    # Runtime
    max_background_tasks: int = 8
    poll_interval_seconds: float = 5.0

    @property
    def failed_stream_key(self) -> str:
        return f"{self.stream_key}:failed"

    @property
    def capture_enabled(self) -> bool:
        return bool(self.capture_base_url)

    @property
    def gallery_enabled(self) -> bool:
        return bool(
            self.annotation_dsn and self.gallery_template_path and self.gallery_live_path
        )

    @classmethod
    def from_env(cls) -> WorkerConfig:
        stream_key = os.getenv("HLTE_STREAM_KEY")
        if not stream_key:
            raise ValueError("HLTE_STREAM_KEY is required")

        raw_opts = os.getenv("HLTE_CAPTURE_PDF_OPTS")
        if raw_opts:
            try:
                pdf_options = json.loads(raw_opts)
            except json.JSONDecodeError as e:
                raise ValueError(f"HLTE_CAPTURE_PDF_OPTS is not valid JSON: {e}") from e
            if not isinstance(pdf_options, dict):
                raise ValueError("HLTE_CAPTURE_PDF_OPTS must be a JSON object")
        else:
            pdf_options = dict(_DEFAULT_PDF_OPTIONS)

        return cls(
            redis_url=os.getenv("HLTE_REDIS_URL", "redis://localhost:6379/0"),
            stream_key=stream_key,
            retain_entries=_get_bool("HLTE_RETAIN_ENTRIES", False),
            data_root=Path(os.getenv("HLTE_DATA_ROOT", "./data")),
            probe_before_fetch=_get_bool("HLTE_PROBE_BEFORE_FETCH", True),
            capture_base_url=os.getenv("HLTE_CAPTURE_URL") or None,
            capture_token=os.getenv("HLTE_CAPTURE_TOKEN") or None,
            capture_pdf_options=pdf_options,
            annotation_dsn=os.getenv("HLTE_ANNOTATION_DSN") or None,
            gallery_template_path=_get_path("HLTE_GALLERY_TEMPLATE"),
            gallery_live_path=_get_path("HLTE_GALLERY_LIVE_PATH"),
            gallery_min_pixels=_get_int("HLTE_GALLERY_MIN_PIXELS", 200_000),
            gallery_publish_marker=os.getenv("HLTE_GALLERY_MARKER", "#publish"),
            max_background_tasks=_get_int("HLTE_MAX_BACKGROUND_TASKS", 8),
            poll_interval_seconds=_get_float("HLTE_POLL_INTERVAL_SECONDS", 5.0),
        )

    def validate(self) -> None:
        if not self.stream_key:
            raise ValueError("HLTE_STREAM_KEY must not be empty")

        if self.capture_base_url and not self.capture_token:
            raise ValueError("HLTE_CAPTURE_URL is set but HLTE_CAPTURE_TOKEN is missing")

        gallery = {
            "HLTE_ANNOTATION_DSN": self.annotation_dsn,
            "HLTE_GALLERY_TEMPLATE": self.gallery_template_path,
            "HLTE_GALLERY_LIVE_PATH": self.gallery_live_path,
        }
        missing = [k for k, v in gallery.items() if not v]
        if missing and len(missing) < len(gallery):
            raise ValueError(f"Partial gallery config, missing: {', '.join(missing)}")

        if not self.gallery_publish_marker:
            raise ValueError("HLTE_GALLERY_MARKER must not be empty")
        if self.gallery_min_pixels < 1:
            raise ValueError("HLTE_GALLERY_MIN_PIXELS must be >= 1")
        if self.max_background_tasks < 1:
            raise ValueError("HLTE_MAX_BACKGROUND_TASKS must be >= 1")
        if self.poll_interval_seconds < 0:
            raise ValueError("HLTE_POLL_INTERVAL_SECONDS must be >= 0")
