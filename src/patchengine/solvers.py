# src/patchengine/solvers.py
from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta, timezone
from typing import Sequence

import numpy as np

from . import config
from .dosing import windows_for
from .models.transdermal import ELIMINATION_HALF_LIFE_H, dose_factor, patch_concentration, wear_concentration
from .types import PatchRecord, Removed, ScheduleParams, SeriesPoint, hours_between, parse_timestamp

logger = logging.getLogger(__name__)


def resolve_now(now: datetime | str | None = None) -> datetime:
    """The caller's "now", or the wall clock when none is given."""
    return datetime.now(timezone.utc) if now is None else parse_timestamp(now)


def series_origin(records: Sequence[PatchRecord]) -> datetime | None:
    """Earliest application instant, i.e. hour 0 of a personalized series."""
    if not records:
        return None
    return min(r.applied_at for r in records)


def _to_points(hours: np.ndarray, total: np.ndarray) -> list[SeriesPoint]:
    rounded = np.round(total, 1)
    return [SeriesPoint(time=float(h), value=float(v)) for h, v in zip(hours, rounded)]


def _superpose(records: Sequence[PatchRecord], origin: datetime, hours: np.ndarray,
               skip_after_h: float | None = None) -> np.ndarray:
    """
    Sum every record's contribution at `hours` (offsets from `origin`).

    Records are independent, so the total is a plain sum of scaled single-patch
    curves. With skip_after_h, a removed record stops counting once it has been
    off for longer than that.
    """
    total = np.zeros_like(hours, dtype=float)
    for record in records:
        applied_h = hours_between(origin, record.applied_at)
        elapsed = hours - applied_h
        if elapsed.size and elapsed.max() <= 0.0:
            continue  # applied after every queried instant
        wear = record.wear
        contribution = wear_concentration(elapsed, wear) * dose_factor(record.dose_mg_per_day)
        if skip_after_h is not None and isinstance(wear, Removed):
            contribution = np.where(elapsed - wear.worn_h > skip_after_h, 0.0, contribution)
        total += contribution
    return total


def _negligible_after_h() -> float:
    return ELIMINATION_HALF_LIFE_H * config.NEGLIGIBLE_AFTER_HALF_LIVES


def calculate_e2_concentration(params: ScheduleParams) -> list[SeriesPoint]:
    """
    Serum E2 over a regular, hypothetical schedule ("what-if" mode).

    Every `spread_h` hours `patches` new patches go on, each worn `worn_h` hours;
    the curve is sampled once per hour from 0 to `period_h` and every patch is
    scaled by dose_mg_per_day / 0.1.

    Returns
    -------
    list[SeriesPoint]
        One point per integer hour, values rounded to 0.1 pg/mL.
    """
    windows = windows_for(params)
    factor = dose_factor(params.dose_mg_per_day)
    hours = np.arange(0.0, math.floor(params.period_h) + 1.0)

    total = np.zeros_like(hours)
    for win in windows:
        elapsed = hours - win.applied_at
        total += patch_concentration(elapsed, win.removed_at - win.applied_at) * factor

    logger.debug("Schedule series: %d windows over %d hours", len(windows), hours.size)
    return _to_points(hours, total)


def calculate_personalized_e2(records: Sequence[PatchRecord], end: datetime | str | None = None) -> list[SeriesPoint]:
    """
    Serum E2 reconstructed from real patch records.

    The series starts at the earliest application (hour 0) and runs hourly up
    to and including the first whole hour at or past `end` (default: now).
    Patches still worn are treated as staying on through `end`.

    Returns an empty list when there are no records or nothing was applied before `end`.
    """
    if not records:
        return []
    end_ts = resolve_now(end)
    origin = series_origin(records)
    span_h = hours_between(origin, end_ts)
    if span_h <= 0:
        return []

    hours = np.arange(0.0, math.ceil(span_h) + 1.0)
    total = _superpose(records, origin, hours)
    logger.debug("Personalized series: %d records over %d hours", len(records), hours.size)
    return _to_points(hours, total)


def current_e2_estimate(records: Sequence[PatchRecord], now: datetime | str | None = None) -> float:
    """
    Summed E2 from all records at the exact instant `now` (pg/mL, one decimal).

    Records applied after `now` are ignored, and so are patches removed more than
    NEGLIGIBLE_AFTER_HALF_LIVES elimination half-lives ago.
    """
    if not records:
        return 0.0
    at = resolve_now(now)
    skip_after_h = _negligible_after_h()

    total = 0.0
    for record in records:
        elapsed = hours_between(record.applied_at, at)
        if elapsed < 0:
            continue
        wear = record.wear
        if isinstance(wear, Removed) and elapsed - wear.worn_h > skip_after_h:
            continue
        total += wear_concentration(elapsed, wear) * dose_factor(record.dose_mg_per_day)
    return round(total, 1)


def project_e2_forward(records: Sequence[PatchRecord], hours: int = config.PROJECTION_HOURS,
                       now: datetime | str | None = None) -> list[SeriesPoint]:
    """
    Hourly E2 projection from `now` (hour 0) to `now + hours`.

    Assumes nothing changes: no new patches go on and the ones currently worn
    stay on for the whole horizon.
    """
    if not records:
        return []
    at = resolve_now(now)
    offsets = np.arange(0.0, float(hours) + 1.0)
    total = _superpose(records, at, offsets, skip_after_h=_negligible_after_h())
    logger.debug("Forward projection: %d records, %d hours", len(records), hours)
    return _to_points(offsets, total)


def interpolate_level(series: Sequence[SeriesPoint], hour: float) -> float:
    """
    Level at a fractional `hour` of an hourly series, by linear interpolation
    between its two neighbouring points. Clamped to the first/last point.
    """
    if not series:
        return 0.0
    t = np.fromiter((p.time for p in series), dtype=float, count=len(series))
    c = np.fromiter((p.value for p in series), dtype=float, count=len(series))
    return round(float(np.interp(hour, t, c)), 1)


def shift(instant: datetime, hours: float) -> datetime:
    """`instant` moved by a number of hours."""
    return instant + timedelta(hours=hours)
