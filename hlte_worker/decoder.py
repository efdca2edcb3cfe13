from __future__ import annotations

from hlte_worker.errors import MalformedEntry
from hlte_worker.types import QueueEntry, WorkItem

_PRIMARY_FIELD = "primaryURI"
_SECONDARY_FIELD = "secondaryURI"
_TYPED_FIELDS = {"checksum", "timestamp", _PRIMARY_FIELD, _SECONDARY_FIELD}

# The checksum is a filename component under the data root
_UNSAFE_CHECKSUM_PARTS = ("/", "\\", "..", "\x00")


def fold_fields(entry: QueueEntry) -> dict[str, str]:
    """Fold the flat key/value list into a mapping (later keys win)."""
    if len(entry.fields) % 2:
        raise MalformedEntry(entry.entry_id, f"odd field count {len(entry.fields)}")
    it = iter(entry.fields)
    return dict(zip(it, it, strict=True))


def decode_entry(entry: QueueEntry) -> WorkItem:
    fields = fold_fields(entry)

    checksum = fields.get("checksum")
    if not checksum:
        raise MalformedEntry(entry.entry_id, "missing checksum")
    if any(part in checksum for part in _UNSAFE_CHECKSUM_PARTS):
        raise MalformedEntry(entry.entry_id, f"unsafe checksum {checksum!r}")

    raw_ts = fields.get("timestamp")
    if not raw_ts:
        raise MalformedEntry(entry.entry_id, "missing timestamp")
    try:
        timestamp = int(raw_ts)
    except ValueError:
        raise MalformedEntry(entry.entry_id, f"non-integer timestamp {raw_ts!r}") from None
    # "<checksum>-<timestamp>" stays unambiguous only while the timestamp has no sign
    if timestamp < 0:
        raise MalformedEntry(entry.entry_id, f"negative timestamp {timestamp}")

    return WorkItem(
        checksum=checksum,
        timestamp=timestamp,
        primary_uri=fields.get(_PRIMARY_FIELD) or None,
        secondary_uri=fields.get(_SECONDARY_FIELD) or None,
        extra={k: v for k, v in fields.items() if k not in _TYPED_FIELDS},
    )
