"""Conditional publish of an image capture to the live gallery page.

Gates, in order: image content type, pixel count, exactly one annotation row,
publish marker in the annotation. Only when every gate passes is the live file
replaced. Nothing raised in here reaches the work item.
"""

from __future__ import annotations

import asyncio
import logging
import os
import tempfile
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader, select_autoescape

from hlte_worker.errors import AnnotationNotFound, MultipleAnnotations
from hlte_worker.gallery.annotations import AnnotationStore
from hlte_worker.gallery.imagesize import ImageSizer
from hlte_worker.types import GalleryCandidate, Role, datetime_from_ns

_log = logging.getLogger(__name__)


def human_time(timestamp: int) -> str:
    dt = datetime_from_ns(timestamp)
    return f"{dt:%B} {dt.day}, {dt:%Y} at {dt:%H:%M} UTC"


def atomic_write_text(path: Path, text: str) -> None:
    """Replace ``path`` with ``text`` via temp file + fsync + rename."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent))
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(tmp_fd, "w", encoding="utf-8") as handle:
            handle.write(text)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_path, path)
    finally:
        if tmp_path.exists():
            tmp_path.unlink()


class GalleryPublisher:
    def __init__(
        self,
        *,
        sizer: ImageSizer,
        annotations: AnnotationStore,
        template_path: Path,
        live_path: Path,
        min_pixels: int,
        publish_marker: str,
        logger: logging.Logger | None = None,
    ) -> None:
        self._sizer = sizer
        self._annotations = annotations
        self._template_path = Path(template_path)
        self._live_path = Path(live_path)
        self._min_pixels = min_pixels
        self._marker = publish_marker
        self._log = logger or _log
        self._env = Environment(
            loader=FileSystemLoader(str(self._template_path.parent)),
            autoescape=select_autoescape(default=True),
        )

    async def aclose(self) -> None:
        await self._sizer.aclose()
        await self._annotations.close()

    @staticmethod
    def applies_to(role: Role, content_type: str | None) -> bool:
        return role is Role.PRIMARY and bool(content_type) and content_type.lower().startswith("image/")

    def should_publish(self, annotation_text: str) -> bool:
        return self._marker in annotation_text

    def render(
        self,
        *,
        image_url: str,
        checksum: str,
        timestamp: int,
        link: str | None,
        annotation: str,
    ) -> str:
        template = self._env.get_template(self._template_path.name)
        return template.render(
            image_url=image_url,
            captured=human_time(timestamp),
            link=link,
            checksum=checksum,
            timestamp=timestamp,
            annotation=annotation,
        )

    async def maybe_publish(
        self, role: Role, source_uri: str, metadata: Mapping[str, Any]
    ) -> GalleryCandidate | None:
        """Publish ``source_uri`` to the live page if every gate passes.

        Returns the candidate that was evaluated, or None when the pipeline
        stopped before the image was sized.
        """
        try:
            return await self._maybe_publish(role, source_uri, metadata)
        except Exception:
            self._log.exception("Gallery publish failed for %s", source_uri)
            return None

    async def _maybe_publish(
        self, role: Role, source_uri: str, metadata: Mapping[str, Any]
    ) -> GalleryCandidate | None:
        if not self.applies_to(role, metadata.get("content_type")):
            return None

        size = await self._sizer.probe(source_uri)
        if size is None:
            self._log.info("No size for %s; not publishing", source_uri)
            return None
        width, height = size

        if width * height < self._min_pixels:
            self._log.info(
                "Image %s is %dx%d, below %d pixels; not publishing",
                source_uri, width, height, self._min_pixels,
            )
            return GalleryCandidate(source_uri, width, height, None, False)

        checksum = str(metadata["checksum"])
        timestamp = int(metadata["timestamp"])
        try:
            text = await self._annotations.lookup(checksum, timestamp)
        except MultipleAnnotations as e:
            self._log.error("Aborting publish of %s: %s", source_uri, e)
            return GalleryCandidate(source_uri, width, height, None, False)
        except AnnotationNotFound as e:
            self._log.warning("Not publishing %s: %s", source_uri, e)
            return GalleryCandidate(source_uri, width, height, None, False)

        candidate = GalleryCandidate(source_uri, width, height, text, self.should_publish(text))
        if not candidate.publish_decision:
            self._log.info("Annotation for %s-%s lacks %r", checksum, timestamp, self._marker)
            return candidate

        html = self.render(
            image_url=source_uri,
            checksum=checksum,
            timestamp=timestamp,
            link=metadata.get("secondary_uri"),
            annotation=text,
        )
        await asyncio.to_thread(atomic_write_text, self._live_path, html)
        self._log.info("Published %s to %s", source_uri, self._live_path)
        return candidate
