from __future__ import annotations

import asyncio
import logging

from hlte_worker.cli import build_parser
from hlte_worker.config import WorkerConfig
from hlte_worker.coordinator import WorkCoordinator
from hlte_worker.logging_config import setup_logging


async def poll(
    coordinator: WorkCoordinator,
    *,
    interval: float,
    once: bool = False,
    logger: logging.Logger,
) -> None:
    """Call the coordinator until interrupted, sleeping whenever there was no work."""
    while True:
        try:
            entry_id = await coordinator.process_one()
        except Exception:
            logger.exception("Processing failed; backing off %.1fs", interval)
            entry_id = None

        if once:
            return
        if entry_id is None:
            await asyncio.sleep(interval)


async def _amain() -> int:
    parser = build_parser()
    args = parser.parse_args()

    setup_logging(level=args.log_level.upper(), json=True if args.json_logs else None)
    logger = logging.getLogger("hlte_worker")

    try:
        cfg = WorkerConfig.from_env()
        cfg.validate()
    except ValueError as e:
        logger.error("Invalid configuration: %s", e)
        return 1

    logger.info(
        "Draining %s (probe_before_fetch=%s, capture=%s, gallery=%s, retain=%s)",
        cfg.stream_key,
        cfg.probe_before_fetch,
        cfg.capture_enabled,
        cfg.gallery_enabled,
        cfg.retain_entries,
    )

    coordinator = WorkCoordinator.from_config(cfg, logger=logger)
    try:
        await poll(coordinator, interval=cfg.poll_interval_seconds, once=args.once, logger=logger)
        if args.once:
            # --once exits only after its capture/gallery tasks finish
            await coordinator.tasks.wait()
    finally:
        await coordinator.aclose()
    return 0


def main() -> None:
    raise SystemExit(asyncio.run(_amain()))


if __name__ == "__main__":
    main()
