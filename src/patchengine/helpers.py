import hashlib
from datetime import datetime
from typing import Any, Iterable, Mapping

from .types import PatchRecord


def load_records(data: Iterable[Mapping[str, Any]] | Mapping[str, Any]) -> list[PatchRecord]:
    """
    Build PatchRecords from storage rows or from an export payload
    ({"version": 1, "exported_at": ..., "patches": [...], "settings": {...}}).
    Only applied_at, removed_at, dose_mg_per_day and id are read.
    """
    rows = data.get("patches", []) if isinstance(data, Mapping) else data
    return [r if isinstance(r, PatchRecord) else PatchRecord.from_mapping(r) for r in rows]


def active_at(records: Iterable[PatchRecord], at: datetime) -> list[PatchRecord]:
    """
    Records on the skin at `at`: applied at or before it and not yet removed.
    Works for anything with applied_at / removed_at (overlay patches included).
    """
    return [
        r for r in records
        if r.applied_at <= at and (r.removed_at is None or r.removed_at > at)
    ]


def records_fingerprint(records: Iterable[PatchRecord]) -> str:
    """
    Order-independent digest of the fields the engine reads.
    Hosts can key a memo on (fingerprint, target range, coarse now bucket).
    """
    lines = sorted(
        f"{r.applied_at.isoformat()}|{r.removed_at.isoformat() if r.removed_at else '-'}|{r.dose_mg_per_day!r}"
        for r in records
    )
    return hashlib.sha256("\n".join(lines).encode("utf-8")).hexdigest()
