# src/patchengine/models/transdermal.py
# Single 0.1 mg/day patch. Worn: empirical table, slow depletion past 168 h.
# Removed: C_removal * 0.5 ** (hours_off / 7). Dose scaling is the caller's job.
from __future__ import annotations

import math

import numpy as np

from ..types import Removed, Wear, Worn

REFERENCE_DOSE_MG_PER_DAY = 0.1
ELIMINATION_HALF_LIFE_H = 7.0
EXTENDED_WEAR_HALF_LIFE_H = 180.0

# Weighted average of FDA DailyMed data for Mylan (Cmax 117, Tmax 24 h) and
# Climara (Cmax 147, Cavg 87, Cmin 60) 0.1 mg/day, abdominal application.
# pg/mL at hour 0, 1, ..., 168 after application (source: hypothete/e2-patch-simulator).
E2_CONCENTRATION_TABLE: tuple[float, ...] = (
    0.0, 8.5, 17.0, 25.5, 34.0, 47.7, 59.6, 71.4, 83.3, 88.6, 93.8, 99.0, 102.7,
    103.2, 103.8, 104.3, 104.8, 105.3, 105.9, 106.4, 106.9, 107.4, 108.0, 108.5,
    108.1, 108.1, 108.1, 108.1, 108.1, 108.1, 109.2, 110.3, 111.4, 112.5,
    113.6, 114.7, 114.4, 111.9, 109.4, 106.9, 104.4, 101.9, 99.4, 96.9, 94.4,
    91.9, 89.4, 86.9, 84.9, 84.4, 84.0, 83.6, 83.2, 82.8, 82.4, 81.9, 81.5,
    81.1, 80.7, 80.3, 79.9, 78.3, 76.8, 75.3, 73.7, 72.2, 70.7, 69.2, 67.6,
    66.1, 64.6, 63.1, 61.5, 61.4, 61.3, 61.1, 61.0, 60.8, 60.7, 60.6, 60.4,
    60.3, 60.1, 60.0, 59.9, 59.4, 59.0, 58.6, 58.2, 57.8, 57.4, 56.9, 56.5, 56.1,
    55.7, 55.3, 54.9, 54.4, 54.0, 53.6, 53.2, 52.8, 52.4, 51.9, 51.5, 51.1,
    50.7, 50.3, 49.9, 49.4, 49.0, 48.6, 48.2, 47.8, 47.4, 46.9, 46.5, 46.1,
    45.7, 45.3, 44.9, 44.4, 44.0, 43.6, 43.2, 42.8, 42.4, 41.9, 41.5, 41.1,
    40.7, 40.3, 39.9, 39.4, 39.0, 38.6, 38.2, 37.8, 37.4, 36.9, 36.5, 36.1,
    35.7, 35.3, 34.9, 34.4, 34.0, 33.6, 33.2, 32.8, 32.4, 31.9, 31.5, 31.1,
    30.7, 30.3, 29.9, 29.4, 29.0, 28.6, 28.2, 27.8, 27.4, 26.9, 26.5, 26.1,
    25.7, 25.3, 24.9,
)

TABLE_LAST_HOUR = len(E2_CONCENTRATION_TABLE) - 1  # 168

_TABLE = np.asarray(E2_CONCENTRATION_TABLE, dtype=float)
_TABLE.flags.writeable = False
_TABLE_HOURS = np.arange(_TABLE.size, dtype=float)


def dose_factor(dose_mg_per_day: float) -> float:
    """Multiplier that scales the reference curve to a patch of another strength."""
    return float(dose_mg_per_day) / REFERENCE_DOSE_MG_PER_DAY


def _as_result(values: np.ndarray):
    return float(values) if values.ndim == 0 else values


def _wearing_level(hours: np.ndarray) -> np.ndarray:
    # np.interp clamps outside the table; the tail branch replaces the clamped part.
    in_table = np.interp(hours, _TABLE_HOURS, _TABLE)
    extra_h = np.maximum(hours - TABLE_LAST_HOUR, 0.0)
    tail = _TABLE[-1] * np.power(0.5, extra_h / EXTENDED_WEAR_HALF_LIFE_H)
    level = np.where(hours >= TABLE_LAST_HOUR, tail, in_table)
    return np.where(hours <= 0.0, 0.0, level)


def table_concentration(hour):
    """
    Concentration (pg/mL) of a still-worn reference patch `hour` hours after application.

    Linear interpolation between the hourly samples; beyond 168 h the last sample
    decays with EXTENDED_WEAR_HALF_LIFE_H. Accepts a scalar or an array.
    """
    return _as_result(_wearing_level(np.asarray(hour, dtype=float)))


def patch_concentration(elapsed_h, worn_h: float = math.inf):
    """
    Concentration (pg/mL) from one reference patch.

    elapsed_h : hours since application (scalar or array, may be fractional or negative)
    worn_h    : hours the patch was worn before removal; math.inf for a patch still on

    elapsed <= 0 gives 0. Up to worn_h the wearing curve applies; after that the
    level reached at removal decays with ELIMINATION_HALF_LIFE_H.
    """
    elapsed = np.asarray(elapsed_h, dtype=float)
    level = _wearing_level(elapsed)
    if math.isfinite(worn_h):
        at_removal = _wearing_level(np.asarray(float(worn_h)))
        since_removal = np.maximum(elapsed - worn_h, 0.0)
        decayed = at_removal * np.power(0.5, since_removal / ELIMINATION_HALF_LIFE_H)
        level = np.where(elapsed > worn_h, decayed, level)
    level = np.where(elapsed <= 0.0, 0.0, level)
    return _as_result(level)


def wear_concentration(elapsed_h, wear: Wear):
    """patch_concentration() driven by a record's Worn / Removed state."""
    if isinstance(wear, Worn):
        return patch_concentration(elapsed_h)
    if isinstance(wear, Removed):
        return patch_concentration(elapsed_h, wear.worn_h)
    raise TypeError(f"Unknown wear state: {wear!r}")
