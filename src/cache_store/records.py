"""
Persistent cache record format.

Records are JSON objects keyed by ``prefix + fingerprint``::

    {"value": ..., "expiry": <epoch-ms>, "createdAt": <epoch-ms>,
     "tags": [...], "dependencies": [...]}
"""
import json
from typing import Any

from .types import CacheEntry


def entry_to_record(entry: CacheEntry) -> dict[str, Any]:
    return {
        "value": entry.value,
        "expiry": int(entry.expiry * 1000),
        "createdAt": int(entry.created_at * 1000),
        "tags": list(entry.tags),
        "dependencies": list(entry.dependencies),
    }


def entry_from_record(record: dict[str, Any]) -> CacheEntry:
    """Rebuild an entry; raises ValueError for malformed records."""
    if not isinstance(record, dict) or "value" not in record or "expiry" not in record:
        raise ValueError("Malformed cache record")
    try:
        expiry = float(record["expiry"]) / 1000
        created_at = float(record.get("createdAt", record["expiry"])) / 1000
        tags = [str(t) for t in record.get("tags") or []]
        dependencies = [str(d) for d in record.get("dependencies") or []]
    except TypeError as error:
        raise ValueError(f"Malformed cache record: {error}") from error
    return CacheEntry(
        value=record["value"],
        expiry=expiry,
        created_at=created_at,
        access_time=created_at,
        tags=tags,
        dependencies=dependencies,
    )


def dumps_record(entry: CacheEntry) -> str:
    """Serialize an entry; raises TypeError if the value is not JSON-compatible."""
    return json.dumps(entry_to_record(entry), separators=(",", ":"), ensure_ascii=False)


def loads_record(text: str) -> CacheEntry:
    """Parse a serialized record; raises ValueError when unreadable."""
    return entry_from_record(json.loads(text))
