# src/patchengine/metrics.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence, Tuple

import numpy as np

from .types import SeriesPoint, TargetRange


def series_arrays(series: Sequence[SeriesPoint]) -> Tuple[np.ndarray, np.ndarray]:
    """Split a SeriesPoint sequence into (t, C) arrays (hours, pg/mL)."""
    t = np.fromiter((p.time for p in series), dtype=float, count=len(series))
    C = np.fromiter((p.value for p in series), dtype=float, count=len(series))
    return t, C

def cmax(C: np.ndarray) -> float:
    """Peak concentration (pg/mL)."""
    return float(np.max(C))

def tmax(t: np.ndarray, C: np.ndarray) -> float:
    """Time of the peak (h)."""
    return float(t[int(np.argmax(C))])

def cmin(C: np.ndarray) -> float:
    """Trough concentration (pg/mL)."""
    return float(np.min(C))

def cavg(C: np.ndarray) -> float:
    """Average concentration over the samples."""
    return float(np.mean(C))

def auc_trapz(t: np.ndarray, C: np.ndarray) -> float:
    """Area Under the Curve via trapezoidal rule (pg*h/mL)."""
    return float(np.trapezoid(C, t))

def time_in_range(C: np.ndarray, target: TargetRange) -> float:
    """Fraction of samples inside the target band (0..1)."""
    if C.size == 0:
        return 0.0
    inside = (C >= target.min_pg_ml) & (C <= target.max_pg_ml)
    return float(np.count_nonzero(inside)) / C.size

def _last_interval_mask(t: np.ndarray, interval_h: float) -> np.ndarray:
    """
    Boolean mask for the last full dosing interval ending on a multiple of interval_h.
    Falls back to every sample when no full interval fits.
    """
    if interval_h <= 0:
        return np.ones_like(t, dtype=bool)
    last_edge = (t[-1] // interval_h) * interval_h
    start = last_edge - interval_h
    if start < t[0]:
        return np.ones_like(t, dtype=bool)
    return (t >= start) & (t <= last_edge)

def _window(t: np.ndarray, C: np.ndarray, interval_h: float | None) -> np.ndarray:
    return C[_last_interval_mask(t, float(interval_h))] if interval_h else C

def peak_to_trough_ratio(t: np.ndarray, C: np.ndarray, interval_h: float | None = None) -> float:
    """
    Cmax / Cmin, over the last full interval when interval_h is given.
    """
    Cw = _window(t, C, interval_h)
    lo = float(np.min(Cw))
    if lo <= 0:
        return float('inf')
    return float(np.max(Cw)) / lo

def fluctuation_index(t: np.ndarray, C: np.ndarray, interval_h: float | None = None) -> float:
    """
    (Cmax - Cmin) / Cavg, over the last full interval when interval_h is given.
    """
    Cw = _window(t, C, interval_h)
    mean = float(np.mean(Cw))
    if mean == 0.0:
        return float('inf')
    return (float(np.max(Cw)) - float(np.min(Cw))) / mean


@dataclass(frozen=True)
class ExposureSummary:
    """
    Headline numbers of a series, the same trio the patch labels report
    (Cmax / Cavg / Cmin) plus AUC and, with a target, the share of time in range.
    """
    cmax: float
    tmax: float
    cavg: float
    cmin: float
    auc: float
    time_in_range: float | None = None


def summarize(series: Sequence[SeriesPoint], target: TargetRange | None = None,
              interval_h: float | None = None) -> ExposureSummary | None:
    """
    Summarize a series; with interval_h, Cmax/Cavg/Cmin are taken over the last full
    dosing interval (steady-state style), the rest over the whole series.
    Returns None for an empty series.
    """
    if not series:
        return None
    t, C = series_arrays(series)
    mask = _last_interval_mask(t, float(interval_h)) if interval_h else np.ones_like(t, dtype=bool)
    tw, Cw = t[mask], C[mask]
    return ExposureSummary(
        cmax=cmax(Cw),
        tmax=tmax(tw, Cw),
        cavg=cavg(Cw),
        cmin=cmin(Cw),
        auc=auc_trapz(t, C),
        time_in_range=None if target is None else time_in_range(C, target),
    )
