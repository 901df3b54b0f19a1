# src/patchengine/simulate.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Sequence

from . import config
from .advisor import get_recommendations
from .config import Settings
from .dosing import windows_for
from .metrics import ExposureSummary, summarize
from .solvers import (
    calculate_e2_concentration,
    calculate_personalized_e2,
    current_e2_estimate,
    project_e2_forward,
    resolve_now,
)
from .types import PatchRecord, PatchWindow, Recommendation, ScheduleParams, SeriesPoint


@dataclass(frozen=True)
class ScheduleResult:
    windows: list[PatchWindow]
    series: list[SeriesPoint]
    summary: ExposureSummary | None


@dataclass(frozen=True)
class Snapshot:
    """Everything the dashboard shows, computed against one fixed `now`."""
    now: datetime
    series: list[SeriesPoint]
    current_level: float
    projection: list[SeriesPoint]
    recommendations: list[Recommendation]


def run_schedule(params: ScheduleParams, settings: Settings | None = None) -> ScheduleResult:
    """
    High-level wrapper for a what-if schedule: windows, hourly series and a
    steady-state style summary over the last full change interval.
    """
    series = calculate_e2_concentration(params)
    target = settings.target if settings is not None else None
    return ScheduleResult(
        windows=windows_for(params),
        series=series,
        summary=summarize(series, target, interval_h=params.spread_h),
    )


def run_personalized(records: Sequence[PatchRecord], settings: Settings | None = None,
                     now: datetime | str | None = None,
                     projection_h: int = config.PROJECTION_HOURS,
                     advisor_horizon_h: int = config.ADVISOR_HORIZON_HOURS) -> Snapshot:
    """
    High-level wrapper for the real history. The series, current level,
    projection and advice all share the same `now`, so they agree with each other.
    """
    settings = settings or Settings()
    at = resolve_now(now)
    return Snapshot(
        now=at,
        series=calculate_personalized_e2(records, end=at),
        current_level=current_e2_estimate(records, now=at),
        projection=project_e2_forward(records, projection_h, now=at),
        recommendations=get_recommendations(records, settings.target, advisor_horizon_h, now=at),
    )
