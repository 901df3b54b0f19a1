# src/patchengine/types.py
from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal, Mapping, Union

# Instants are timezone-aware datetimes; every offset derived from them is in HOURS.
SECONDS_PER_HOUR = 3600.0

RecommendationType = Literal["apply", "remove"]
Urgency = Literal["now", "soon", "upcoming"]


def parse_timestamp(value: Any) -> datetime:
    """
    Turn a datetime or an ISO-8601 string into an aware UTC datetime.

    Naive values are taken as UTC. Anything else (None, numbers, garbage
    strings) raises ValueError so a bad timestamp never reaches the sums.
    """
    if isinstance(value, datetime):
        ts = value
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            ts = datetime.fromisoformat(text)
        except ValueError:
            raise ValueError(f"Unparseable timestamp: {value!r}") from None
    else:
        raise ValueError(f"Expected a datetime or ISO-8601 string (got {value!r}).")

    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def hours_between(start: datetime, end: datetime) -> float:
    """Signed distance end - start, in hours."""
    return (end - start).total_seconds() / SECONDS_PER_HOUR


@dataclass(frozen=True)
class Worn:
    """Patch still on the skin; no removal time yet."""


@dataclass(frozen=True)
class Removed:
    """
    Patch taken off after worn_h hours of wear.
    """
    worn_h: float

    def __post_init__(self):
        if not (self.worn_h >= 0) or not math.isfinite(self.worn_h):
            raise ValueError(f"worn_h must be a finite number >= 0 (got {self.worn_h}).")


Wear = Union[Worn, Removed]


@dataclass(frozen=True)
class PatchRecord:
    """
    One real patch as the storage layer knows it.

    applied_at      : when the patch went on (string timestamps are parsed)
    removed_at      : when it came off, or None while it is still worn
    dose_mg_per_day : labelled delivery rate, e.g. 0.1 for a 0.1 mg/day patch
    id              : opaque storage identifier; only the overlay looks at it
    """
    applied_at: datetime
    removed_at: datetime | None
    dose_mg_per_day: float
    id: Any = field(default=None, compare=False)

    def __post_init__(self):
        applied = parse_timestamp(self.applied_at)
        removed = None if self.removed_at is None else parse_timestamp(self.removed_at)
        try:
            dose = float(self.dose_mg_per_day)
        except (TypeError, ValueError):
            raise ValueError(f"dose_mg_per_day must be > 0 (got {self.dose_mg_per_day}).") from None
        if not (dose > 0) or not math.isfinite(dose):
            raise ValueError(f"dose_mg_per_day must be > 0 (got {self.dose_mg_per_day}).")
        if removed is not None and removed < applied:
            raise ValueError(
                f"removed_at ({removed.isoformat()}) is before applied_at ({applied.isoformat()})."
            )
        object.__setattr__(self, "applied_at", applied)
        object.__setattr__(self, "removed_at", removed)
        object.__setattr__(self, "dose_mg_per_day", dose)

    @classmethod
    def from_mapping(cls, row: Mapping[str, Any]) -> "PatchRecord":
        """Build a record from any row carrying applied_at, removed_at and dose_mg_per_day."""
        missing = [k for k in ("applied_at", "dose_mg_per_day") if k not in row]
        if missing:
            raise ValueError(f"Patch row is missing {', '.join(missing)}.")
        return cls(
            applied_at=row["applied_at"],
            removed_at=row.get("removed_at"),
            dose_mg_per_day=row["dose_mg_per_day"],
            id=row.get("id"),
        )

    @property
    def wear(self) -> Wear:
        if self.removed_at is None:
            return Worn()
        return Removed(worn_h=hours_between(self.applied_at, self.removed_at))


@dataclass(frozen=True)
class ScheduleParams:
    """
    A regular, hypothetical wear schedule.

    patches         : patches put on together at every change
    spread_h        : hours between two changes
    worn_h          : hours each patch stays on
    period_h        : length of the simulated window (672 = 4 weeks)
    dose_mg_per_day : dose of every patch in the schedule
    """
    patches: int
    spread_h: float
    worn_h: float
    period_h: float
    dose_mg_per_day: float = 0.1


@dataclass(frozen=True)
class PatchWindow:
    """Wear window of one synthetic patch, in hours from the simulation start."""
    index: int
    applied_at: float
    removed_at: float


@dataclass(frozen=True)
class SeriesPoint:
    time: float   # hours from the series origin
    value: float  # pg/mL


@dataclass(frozen=True)
class Recommendation:
    type: RecommendationType
    urgency: Urgency
    message: str
    hours_until: float


@dataclass(frozen=True)
class TargetRange:
    """
    Acceptable serum E2 band in pg/mL. Passed in on every call.
    """
    min_pg_ml: float
    max_pg_ml: float

    def __post_init__(self):
        if self.min_pg_ml > self.max_pg_ml:
            raise ValueError(
                f"Target min ({self.min_pg_ml}) must not exceed target max ({self.max_pg_ml})."
            )

    def contains(self, value: float) -> bool:
        return self.min_pg_ml <= value <= self.max_pg_ml
