from __future__ import annotations

import asyncio
import functools
import logging

from hlte_worker.capture import CaptureForwarder
from hlte_worker.config import WorkerConfig
from hlte_worker.decoder import decode_entry
from hlte_worker.errors import MalformedEntry
from hlte_worker.fetcher import ResourceFetcher
from hlte_worker.gallery.annotations import AnnotationStore
from hlte_worker.gallery.imagesize import ImageSizer
from hlte_worker.gallery.publisher import GalleryPublisher
from hlte_worker.queue import QueueClient
from hlte_worker.store import ContentStore
from hlte_worker.tasks import BackgroundTasks
from hlte_worker.types import FetchStatus, PersistedArtifact, Role, WorkItem

_log = logging.getLogger(__name__)


class WorkCoordinator:
    """Processes one queue entry per call.

    Fetch and persist of both roles form the item's outcome. Capture forwarding
    and gallery publishing run as detached tasks and never affect it.
    """

    def __init__(
        self,
        cfg: WorkerConfig,
        *,
        queue: QueueClient | None = None,
        fetcher: ResourceFetcher | None = None,
        store: ContentStore | None = None,
        forwarder: CaptureForwarder | None = None,
        publisher: GalleryPublisher | None = None,
        tasks: BackgroundTasks | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._cfg = cfg
        self._log = logger or _log
        self._queue = queue or QueueClient(cfg.redis_url, logger=self._log)
        self._fetcher = fetcher or ResourceFetcher(logger=self._log)
        self._store = store or ContentStore(cfg.data_root, logger=self._log)
        self._forwarder = forwarder
        self._publisher = publisher
        self._tasks = tasks or BackgroundTasks(limit=cfg.max_background_tasks, logger=self._log)

    @classmethod
    def from_config(cls, cfg: WorkerConfig, *, logger: logging.Logger | None = None) -> WorkCoordinator:
        """Build a coordinator with every optional side pipeline the config enables."""
        cfg.validate()
        log = logger or _log
        forwarder = None
        if cfg.capture_enabled:
            forwarder = CaptureForwarder(
                base_url=cfg.capture_base_url or "",
                token=cfg.capture_token or "",
                pdf_options=cfg.capture_pdf_options,
                logger=log,
            )

        publisher = None
        if cfg.gallery_enabled:
            publisher = GalleryPublisher(
                sizer=ImageSizer(logger=log),
                annotations=AnnotationStore(cfg.annotation_dsn, logger=log),
                template_path=cfg.gallery_template_path,
                live_path=cfg.gallery_live_path,
                min_pixels=cfg.gallery_min_pixels,
                publish_marker=cfg.gallery_publish_marker,
                logger=log,
            )
        return cls(cfg, forwarder=forwarder, publisher=publisher, logger=log)

    @property
    def tasks(self) -> BackgroundTasks:
        return self._tasks

    async def aclose(self) -> None:
        await self._fetcher.aclose()
        if self._forwarder is not None:
            await self._forwarder.aclose()
        if self._publisher is not None:
            await self._publisher.aclose()

    async def process_one(self) -> str | None:
        """Handle the oldest queue entry.

        Returns the entry id when an item was processed (successfully or
        dead-lettered), None when there was nothing to do.
        """
        key = self._cfg.stream_key
        entry = await self._queue.dequeue(key)
        if entry is None:
            return None

        try:
            item = decode_entry(entry)
        except MalformedEntry as e:
            self._log.error("%s; leaving it in %s", e, key)
            return None

        self._log.info("Processing %s (%s)", entry.entry_id, item.stem)
        role_tasks = [
            asyncio.create_task(self._process_role(item, role), name=f"{role}:{item.stem}")
            for role in Role
        ]
        try:
            await asyncio.gather(*role_tasks)
        except Exception as e:
            self._log.exception("Work item %s (%s) failed", entry.entry_id, item.stem)
            self._settle_siblings(role_tasks, e)
            await self._queue.dead_letter(key, entry.entry_id, item.checksum, item.timestamp)

        if self._cfg.retain_entries:
            self._log.info("Retaining entry %s in %s", entry.entry_id, key)
        else:
            await self._queue.delete(key, entry.entry_id)
        return entry.entry_id

    async def _process_role(self, item: WorkItem, role: Role) -> PersistedArtifact | None:
        uri = item.uri_for(role)

        on_dispatch = None
        if role is Role.PRIMARY and uri and self._forwarder is not None:
            on_dispatch = functools.partial(self._spawn_forward, self._forwarder, uri, item)

        async with self._fetcher.fetch(
            uri,
            role,
            probe_before_fetch=self._cfg.probe_before_fetch,
            on_dispatch=on_dispatch,
        ) as outcome:
            if outcome.status is not FetchStatus.FETCHED:
                return None
            if outcome.body is None:
                raise RuntimeError(f"{role} fetch of {uri} produced no body")
            artifact = await self._store.persist(item, role, outcome.headers, outcome.body)

        if (
            uri
            and self._publisher is not None
            and GalleryPublisher.applies_to(role, artifact.content_type)
        ):
            self._tasks.spawn(
                self._publisher.maybe_publish(role, uri, artifact.metadata),
                name=f"gallery:{item.stem}",
            )
        return artifact

    def _spawn_forward(self, forwarder: CaptureForwarder, uri: str, item: WorkItem) -> None:
        self._tasks.spawn(
            forwarder.forward(uri, item.checksum, item.timestamp),
            name=f"capture:{item.stem}",
        )

    def _settle_siblings(self, role_tasks: list[asyncio.Task], first: BaseException) -> None:
        # gather does not cancel the other role; keep it observable until it ends
        for task in role_tasks:
            if not task.done():
                self._tasks.track(task)
            elif not task.cancelled() and task.exception() not in (None, first):
                self._log.error("%s also failed", task.get_name(), exc_info=task.exception())
