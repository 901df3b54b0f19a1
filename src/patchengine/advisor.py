# src/patchengine/advisor.py
# Output keeps detection order and is not cross-checked: a "rising, no action
# needed" apply can sit next to a later over-range remove forecast.
from __future__ import annotations

import logging
from datetime import datetime
from typing import Sequence

from . import config
from .solvers import project_e2_forward
from .types import PatchRecord, Recommendation, SeriesPoint, TargetRange, Urgency

logger = logging.getLogger(__name__)


def _urgency_for(hours_until: float) -> Urgency:
    return "soon" if hours_until <= config.SOON_WITHIN_H else "upcoming"


def is_rising(projection: Sequence[SeriesPoint]) -> bool:
    """True when the level RISING_LOOKAHEAD_H ahead beats the current one by more than the noise threshold."""
    if not projection:
        return False
    current = projection[0].value
    ahead = next((p.value for p in projection if p.time >= config.RISING_LOOKAHEAD_H), current)
    return ahead > current + config.RISING_THRESHOLD_PG_ML


def _first_drop_below(projection: Sequence[SeriesPoint], floor: float) -> float | None:
    for prev, point in zip(projection, projection[1:]):
        if point.value < floor <= prev.value:
            return point.time
    return None


def _first_rise_above(projection: Sequence[SeriesPoint], ceiling: float) -> float | None:
    for prev, point in zip(projection, projection[1:]):
        if prev.value <= ceiling < point.value:
            return point.time
    return None


def advise(projection: Sequence[SeriesPoint], target: TargetRange) -> list[Recommendation]:
    """Recommendations for a projection whose first point is "now"."""
    if not projection:
        return []

    recs: list[Recommendation] = []
    current = projection[0].value
    rising = is_rising(projection)

    if current < target.min_pg_ml:
        enter_h = next((p.time for p in projection if p.value >= target.min_pg_ml), None)
        if rising and enter_h is not None:
            recs.append(Recommendation(
                type="apply",
                urgency=_urgency_for(enter_h),
                message=(f"E2 is rising ({current:.0f} pg/mL), no action needed. "
                         f"Expected to reach target in ~{round(enter_h)}h."),
                hours_until=enter_h,
            ))
        elif rising:
            recs.append(Recommendation(
                type="apply",
                urgency="upcoming",
                message=(f"E2 is rising ({current:.0f} pg/mL) but may not reach target range. "
                         "Consider an additional patch."),
                hours_until=0.0,
            ))
        else:
            recs.append(Recommendation(
                type="apply",
                urgency="now",
                message=f"E2 is below target ({current:.0f} pg/mL). Apply a new patch now.",
                hours_until=0.0,
            ))
    elif current > target.max_pg_ml:
        recs.append(Recommendation(
            type="remove",
            urgency="now",
            message=f"E2 is above target ({current:.0f} pg/mL). Consider removing a patch.",
            hours_until=0.0,
        ))

    drop_h = _first_drop_below(projection, target.min_pg_ml)
    if drop_h is not None and current >= target.min_pg_ml:
        recs.append(Recommendation(
            type="apply",
            urgency=_urgency_for(drop_h),
            message=f"Apply a new patch in ~{round(drop_h)}h to stay in range.",
            hours_until=drop_h,
        ))

    exceed_h = _first_rise_above(projection, target.max_pg_ml)
    if exceed_h is not None and current <= target.max_pg_ml:
        recs.append(Recommendation(
            type="remove",
            urgency=_urgency_for(exceed_h),
            message=f"Consider removing a patch in ~{round(exceed_h)}h to stay in range.",
            hours_until=exceed_h,
        ))

    return recs


def get_recommendations(records: Sequence[PatchRecord], target: TargetRange,
                        horizon_h: int = config.ADVISOR_HORIZON_HOURS,
                        now: datetime | str | None = None) -> list[Recommendation]:
    """
    Project `horizon_h` hours ahead of `now` and advise against `target`.
    No records, no advice.
    """
    projection = project_e2_forward(records, horizon_h, now=now)
    recs = advise(projection, target)
    logger.info("Advisor: %d recommendation(s) for %d record(s), horizon %dh",
                len(recs), len(records), horizon_h)
    return recs
