"""Logging bootstrap for the worker process.

JSON lines via python-json-logger when shipping to a log collector,
plain text for local runs.
"""

from __future__ import annotations

import logging
import os

from pythonjsonlogger.json import JsonFormatter


class SeverityJsonFormatter(JsonFormatter):
    """JSON formatter that reports ``severity`` and the emitting asyncio task.

    Task names carry the work item stem (``primary:<checksum>-<timestamp>``,
    ``capture:...``, ``gallery:...``), so concurrent lines can be told apart.
    """

    def add_fields(
        self,
        log_record: dict[str, object],
        record: logging.LogRecord,
        message_dict: dict[str, object],
    ) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["severity"] = log_record.pop("levelname", record.levelname)
        # LogRecord.taskName exists from Python 3.12
        task_name = getattr(record, "taskName", None)
        if task_name:
            log_record["task"] = task_name


def _json_requested() -> bool:
    raw = os.getenv("HLTE_LOG_JSON")
    if raw is None:
        return False
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def setup_logging(*, level: str = "INFO", json: bool | None = None) -> None:
    """Install a single stream handler on the root logger."""
    use_json = _json_requested() if json is None else json

    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    for h in root.handlers[:]:
        root.removeHandler(h)

    handler = logging.StreamHandler()
    if use_json:
        handler.setFormatter(SeverityJsonFormatter(
            fmt="%(levelname)s %(message)s %(name)s %(funcName)s %(lineno)d",
            rename_fields={"name": "logger"},
        ))
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)-8s %(name)s:%(lineno)d  %(message)s",
            datefmt="%H:%M:%S",
        ))

    root.addHandler(handler)

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
