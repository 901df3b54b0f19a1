"""
Engine configuration.
Every tunable is a module-level constant read from the environment with a sensible default.
Per-user values normally come from the settings table of the storage layer; see Settings.
"""

import os
from dataclasses import dataclass
from typing import Mapping

from .types import ScheduleParams, TargetRange

# --- Target range (pg/mL) ---
TARGET_E2_MIN: float = float(os.getenv("PATCHENGINE_TARGET_E2_MIN", "100"))
TARGET_E2_MAX: float = float(os.getenv("PATCHENGINE_TARGET_E2_MAX", "200"))

# --- Patch defaults ---
DEFAULT_WEAR_HOURS: float = float(os.getenv("PATCHENGINE_DEFAULT_WEAR_HOURS", "84"))  # twice weekly
DEFAULT_DOSE_MG_PER_DAY: float = float(os.getenv("PATCHENGINE_DEFAULT_DOSE_MG_PER_DAY", "0.1"))
PATCHES_PER_CHANGE: int = int(os.getenv("PATCHENGINE_PATCHES_PER_CHANGE", "2"))

# --- Advisor heuristics ---
# Net rise over the lookahead that counts as "rising". Well below a fresh patch's
# 4h ramp (~8-34 pg/mL) but above rounding noise.
RISING_THRESHOLD_PG_ML: float = float(os.getenv("PATCHENGINE_RISING_THRESHOLD_PG_ML", "2"))
RISING_LOOKAHEAD_H: float = float(os.getenv("PATCHENGINE_RISING_LOOKAHEAD_H", "4"))
SOON_WITHIN_H: float = float(os.getenv("PATCHENGINE_SOON_WITHIN_H", "6"))

# Removed patches older than this many elimination half-lives are skipped
# in point estimates and projections (< 4% of their removal level remains).
NEGLIGIBLE_AFTER_HALF_LIVES: float = float(os.getenv("PATCHENGINE_NEGLIGIBLE_AFTER_HALF_LIVES", "5"))

# --- Horizons (hours) ---
PROJECTION_HOURS: int = int(os.getenv("PATCHENGINE_PROJECTION_HOURS", "48"))
ADVISOR_HORIZON_HOURS: int = int(os.getenv("PATCHENGINE_ADVISOR_HORIZON_HOURS", "72"))
OVERLAY_PROJECTION_HOURS: int = int(os.getenv("PATCHENGINE_OVERLAY_PROJECTION_HOURS", "168"))  # 7 days
HISTORY_PERIOD_HOURS: int = int(os.getenv("PATCHENGINE_HISTORY_PERIOD_HOURS", "672"))  # 28 days


@dataclass(frozen=True)
class Settings:
    """
    Per-user values, as kept by the storage layer's key/value settings table.
    """
    target_e2_min: float = TARGET_E2_MIN
    target_e2_max: float = TARGET_E2_MAX
    default_wear_hours: float = DEFAULT_WEAR_HOURS
    default_dose_mg_per_day: float = DEFAULT_DOSE_MG_PER_DAY
    patches_per_change: int = PATCHES_PER_CHANGE

    @classmethod
    def from_mapping(cls, values: Mapping[str, str]) -> "Settings":
        """
        Read the string-valued settings table. Missing keys fall back to the
        module defaults; unknown keys (reminder_hours_before, ...) are ignored.
        """
        def pick(key, cast, default):
            raw = values.get(key)
            if raw is None or raw == "":
                return default
            try:
                return cast(raw)
            except (TypeError, ValueError):
                raise ValueError(f"Setting {key} has an invalid value: {raw!r}") from None

        return cls(
            target_e2_min=pick("target_e2_min", float, TARGET_E2_MIN),
            target_e2_max=pick("target_e2_max", float, TARGET_E2_MAX),
            default_wear_hours=pick("default_wear_hours", float, DEFAULT_WEAR_HOURS),
            default_dose_mg_per_day=pick("default_dose_mg_per_day", float, DEFAULT_DOSE_MG_PER_DAY),
            patches_per_change=pick("patches_per_change", int, PATCHES_PER_CHANGE),
        )

    @property
    def target(self) -> TargetRange:
        return TargetRange(self.target_e2_min, self.target_e2_max)

    def schedule_params(self, spread_h: float | None = None,
                        period_h: float = HISTORY_PERIOD_HOURS) -> ScheduleParams:
        """Regular schedule matching these settings; patches are changed when they come off by default."""
        return ScheduleParams(
            patches=self.patches_per_change,
            spread_h=self.default_wear_hours if spread_h is None else spread_h,
            worn_h=self.default_wear_hours,
            period_h=period_h,
            dose_mg_per_day=self.default_dose_mg_per_day,
        )
