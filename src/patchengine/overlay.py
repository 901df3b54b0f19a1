# src/patchengine/overlay.py
from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Iterable, Literal, Sequence

from . import config
from .advisor import get_recommendations
from .helpers import active_at
from .metrics import ExposureSummary, summarize
from .solvers import (
    calculate_personalized_e2,
    interpolate_level,
    resolve_now,
    series_origin,
    shift,
)
from .types import PatchRecord, Recommendation, SeriesPoint, TargetRange, hours_between, parse_timestamp

logger = logging.getLogger(__name__)


class Origin(str, Enum):
    REAL = "real"
    SYNTHETIC = "synthetic"


@dataclass(frozen=True)
class OverlayPatch:
    """
    A patch inside an overlay session.

    id              : record id for real patches, "pg-<n>" for added ones
    origin          : REAL (seeded from the history) or SYNTHETIC (added in the session)
    """
    id: str
    applied_at: datetime
    removed_at: datetime | None
    dose_mg_per_day: float
    origin: Origin

    def to_record(self) -> PatchRecord:
        return PatchRecord(self.applied_at, self.removed_at, self.dose_mg_per_day, id=self.id)


@dataclass(frozen=True)
class PatchEvent:
    """Chart marker for an application or a removal."""
    hour: float
    type: Literal["applied", "removed"]
    label: str
    origin: Origin


@dataclass(frozen=True)
class RemovalCandidate:
    id: str
    applied_at: datetime
    worn_h: float  # hours on the skin at the requested removal time
    origin: Origin
    dose_mg_per_day: float


@dataclass(frozen=True)
class RemovalRequest:
    """
    Outcome of asking to take a patch off at `at`.

    With several patches on at that instant nothing is removed yet
    (removed_id is None); pass the request and the chosen id to
    SpeculativeOverlay.confirm_removal().
    """
    at: datetime
    candidates: tuple[RemovalCandidate, ...]
    removed_id: str | None = None

    @property
    def resolved(self) -> bool:
        return self.removed_id is not None


@dataclass(frozen=True)
class OverlaySimulation:
    series: list[SeriesPoint]
    now_hour: float            # "now" as an offset into series
    start_time: datetime       # hour 0 of series
    current_level: float
    events: list[PatchEvent]
    recommendations: list[Recommendation]
    summary: ExposureSummary | None


class SpeculativeOverlay:
    """
    Mutable patch set for exploratory simulation.

    records      : the real history the session starts from
    target       : target range used for the advice
    now          : fixed "now" of the session (wall clock if omitted); see advance()
    projection_h : how far past now the series and advice reach (7 days)
    """

    def __init__(self, records: Iterable[PatchRecord], target: TargetRange,
                 now: datetime | str | None = None,
                 projection_h: int = config.OVERLAY_PROJECTION_HOURS,
                 default_dose_mg_per_day: float = config.DEFAULT_DOSE_MG_PER_DAY):
        self.target = target
        self.now = resolve_now(now)
        self.projection_h = projection_h
        self.default_dose_mg_per_day = default_dose_mg_per_day
        self._initial: tuple[OverlayPatch, ...] = tuple(
            OverlayPatch(
                id=str(r.id) if r.id is not None else f"real-{i}",
                applied_at=r.applied_at,
                removed_at=r.removed_at,
                dose_mg_per_day=r.dose_mg_per_day,
                origin=Origin.REAL,
            )
            for i, r in enumerate(records)
        )
        ids = [p.id for p in self._initial]
        duplicates = sorted({i for i in ids if ids.count(i) > 1})
        if duplicates:
            raise ValueError(f"Patch ids must be unique (duplicated: {', '.join(duplicates)}).")
        self._patches: list[OverlayPatch] = list(self._initial)
        self._added = 0
        self.result: OverlaySimulation | None = None
        self._refresh()

    @property
    def patches(self) -> tuple[OverlayPatch, ...]:
        return tuple(self._patches)

    # --- mutations ---

    def add_patch(self, applied_at: datetime | str, dose_mg_per_day: float | None = None) -> OverlaySimulation | None:
        """Put a hypothetical patch on at `applied_at`; it stays on until removed."""
        dose = self.default_dose_mg_per_day if dose_mg_per_day is None else dose_mg_per_day
        record = PatchRecord(applied_at, None, dose)  # validates timestamp and dose
        patch = OverlayPatch(
            id=self._next_synthetic_id(),
            applied_at=record.applied_at,
            removed_at=None,
            dose_mg_per_day=record.dose_mg_per_day,
            origin=Origin.SYNTHETIC,
        )
        self._patches.append(patch)
        logger.info("Overlay: added %s at %s (%.3f mg/day)", patch.id, patch.applied_at.isoformat(), record.dose_mg_per_day)
        return self._refresh()

    def request_removal(self, at: datetime | str) -> RemovalRequest | None:
        """
        Take a patch off at `at`.

        None if no patch is on at that instant. A single active patch is removed
        right away. With several, the returned request lists them and waits for
        confirm_removal().
        """
        at = parse_timestamp(at)
        active = active_at(self._patches, at)
        if not active:
            return None

        candidates = tuple(
            RemovalCandidate(
                id=p.id,
                applied_at=p.applied_at,
                worn_h=hours_between(p.applied_at, at),
                origin=p.origin,
                dose_mg_per_day=p.dose_mg_per_day,
            )
            for p in active
        )
        request = RemovalRequest(at=at, candidates=candidates)
        if len(active) == 1:
            return self.confirm_removal(request, active[0].id)
        logger.info("Overlay: %d patches active at %s, removal needs a choice", len(active), at.isoformat())
        return request

    def confirm_removal(self, request: RemovalRequest, patch_id: str) -> RemovalRequest:
        """Apply a pending removal to the chosen candidate."""
        if request.resolved:
            raise ValueError(f"Removal at {request.at.isoformat()} was already applied to {request.removed_id}.")
        if patch_id not in {c.id for c in request.candidates}:
            raise ValueError(f"{patch_id} is not active at {request.at.isoformat()}.")
        idx = self._index(patch_id)
        self._patches[idx] = replace(self._patches[idx], removed_at=request.at)
        logger.info("Overlay: removed %s at %s", patch_id, request.at.isoformat())
        self._refresh()
        return replace(request, removed_id=patch_id)

    def delete_patch(self, patch_id: str) -> OverlaySimulation | None:
        """Drop an added patch; for a real patch, undo any speculative removal instead."""
        idx = self._index(patch_id)
        if self._patches[idx].origin is Origin.SYNTHETIC:
            del self._patches[idx]
            logger.info("Overlay: deleted %s", patch_id)
            return self._refresh()
        return self.undo_removal(patch_id)

    def undo_removal(self, patch_id: str) -> OverlaySimulation | None:
        """Give a real patch back its original removal state."""
        idx = self._index(patch_id)
        if self._patches[idx].origin is not Origin.REAL:
            raise ValueError(f"{patch_id} was added in this session; delete it instead.")
        original = next(p for p in self._initial if p.id == patch_id)
        self._patches[idx] = replace(self._patches[idx], removed_at=original.removed_at)
        logger.info("Overlay: restored %s", patch_id)
        return self._refresh()

    def reset(self) -> OverlaySimulation | None:
        self._patches = list(self._initial)
        logger.info("Overlay: reset to %d real patch(es)", len(self._initial))
        return self._refresh()

    def advance(self, now: datetime | str | None = None) -> OverlaySimulation | None:
        """Move the session's "now" (wall clock if omitted) and recompute."""
        self.now = resolve_now(now)
        return self._refresh()

    # --- internals ---

    def _next_synthetic_id(self) -> str:
        in_use = {p.id for p in self._initial} | {p.id for p in self._patches}
        while True:
            self._added += 1
            candidate = f"pg-{self._added}"
            if candidate not in in_use:
                return candidate

    def _index(self, patch_id: str) -> int:
        for i, p in enumerate(self._patches):
            if p.id == patch_id:
                return i
        raise KeyError(patch_id)

    def _refresh(self) -> OverlaySimulation | None:
        self.result = simulate_overlay(self._patches, self.target, self.now, self.projection_h)
        return self.result


def patch_events(patches: Sequence[OverlayPatch], origin: datetime) -> list[PatchEvent]:
    """Application/removal markers in hours from `origin`, in time order."""
    events: list[PatchEvent] = []
    for p in patches:
        events.append(PatchEvent(
            hour=hours_between(origin, p.applied_at),
            type="applied",
            label=f"{p.dose_mg_per_day:g}mg/day applied",
            origin=p.origin,
        ))
        if p.removed_at is not None:
            events.append(PatchEvent(
                hour=hours_between(origin, p.removed_at),
                type="removed",
                label=f"{p.dose_mg_per_day:g}mg/day removed",
                origin=p.origin,
            ))
    events.sort(key=lambda e: e.hour)
    return events


def simulate_overlay(patches: Sequence[OverlayPatch], target: TargetRange, now: datetime,
                     projection_h: int = config.OVERLAY_PROJECTION_HOURS) -> OverlaySimulation | None:
    """
    Full pipeline for one overlay state: series from the earliest patch to
    now + projection_h, the level at now, markers and advice. None when there is
    nothing to simulate.
    """
    if not patches:
        return None
    records = [p.to_record() for p in patches]
    series = calculate_personalized_e2(records, end=shift(now, projection_h))
    if not series:
        return None

    start = series_origin(records)
    now_hour = hours_between(start, now)
    return OverlaySimulation(
        series=series,
        now_hour=now_hour,
        start_time=start,
        current_level=interpolate_level(series, now_hour),
        events=patch_events(patches, start),
        recommendations=get_recommendations(records, target, projection_h, now=now),
        summary=summarize(series, target),
    )
