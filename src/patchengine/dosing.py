# src/patchengine/dosing.py
from __future__ import annotations

import numpy as np

from .types import PatchWindow, ScheduleParams


def generate_patch_windows(patches: int, spread_h: float, worn_h: float, period_h: float) -> list[PatchWindow]:
    """
    Lay out the wear windows of a rolling schedule.

    Every `spread_h` hours (0, spread, 2*spread, ... while < period_h) `patches`
    new patches go on together, and each one stays on for `worn_h` hours.
    Example: 2 patches every 84 h, worn 84 h, over 672 h -> 8 changes, 16 windows.

    patches  : patches applied at every change (positive int)
    spread_h : hours between changes
    worn_h   : hours each patch is worn
    period_h : simulated window, hours
    """
    _validate_positive_int("patches", patches)
    _validate_positive("spread_h", spread_h)
    _validate_positive("worn_h", worn_h)
    _validate_positive("period_h", period_h)

    # Change times: 0, spread, 2*spread, ... < period
    starts = np.arange(0.0, float(period_h), float(spread_h))

    windows: list[PatchWindow] = []
    for t in starts:
        for _ in range(patches):
            windows.append(PatchWindow(index=len(windows), applied_at=float(t),
                                       removed_at=float(t) + float(worn_h)))
    return windows


def windows_for(params: ScheduleParams) -> list[PatchWindow]:
    """generate_patch_windows() for a ScheduleParams bundle (also checks its dose)."""
    _validate_positive("dose_mg_per_day", params.dose_mg_per_day)
    return generate_patch_windows(params.patches, params.spread_h, params.worn_h, params.period_h)


# --------------------------
# Small input validators
# --------------------------
def _validate_positive(name: str, x: float) -> None:
    if not (x > 0):
        raise ValueError(f"{name} must be > 0 (got {x}).")

def _validate_positive_int(name: str, x: int) -> None:
    if isinstance(x, bool) or not (isinstance(x, int) and x > 0):
        raise ValueError(f"{name} must be a positive integer (got {x}).")
