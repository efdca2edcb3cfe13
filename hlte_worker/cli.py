from __future__ import annotations

import argparse


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="hlte-worker",
        description="Drain capture work items from a Redis stream into the content store",
    )
    p.add_argument("--once", action="store_true", help="Process at most one entry and exit")
    p.add_argument(
        "--json-logs",
        action="store_true",
        help="Emit JSON log lines (default from env HLTE_LOG_JSON)",
    )
    p.add_argument("--log-level", default="INFO", help="Python logging level (INFO, DEBUG, ...)")
    return p
