from datetime import datetime, timedelta, timezone

import numpy as np
import pytest

from patchengine import config
from patchengine.dosing import generate_patch_windows, windows_for
from patchengine.models.transdermal import E2_CONCENTRATION_TABLE
from patchengine.solvers import (
    calculate_e2_concentration,
    calculate_personalized_e2,
    current_e2_estimate,
    interpolate_level,
    project_e2_forward,
    series_origin,
)
from patchengine.types import PatchRecord, ScheduleParams, SeriesPoint

T0 = datetime(2026, 1, 5, 8, 0, tzinfo=timezone.utc)


def hours(h):
    return timedelta(hours=h)


def test_twice_weekly_pairs_layout():
    """2 patches every 84 h, worn 84 h, over 28 days -> 8 changes of 2 patches."""
    windows = generate_patch_windows(patches=2, spread_h=84, worn_h=84, period_h=672)

    assert len(windows) == 16
    assert sorted({w.applied_at for w in windows}) == [0, 84, 168, 252, 336, 420, 504, 588]
    assert [w.index for w in windows] == list(range(16))
    assert all(w.removed_at == w.applied_at + 84 for w in windows)
    assert windows == generate_patch_windows(2, 84, 84, 672)


@pytest.mark.parametrize("kwargs", [
    dict(patches=0, spread_h=84, worn_h=84, period_h=672),
    dict(patches=1.5, spread_h=84, worn_h=84, period_h=672),
    dict(patches=True, spread_h=84, worn_h=84, period_h=672),
    dict(patches=2, spread_h=0, worn_h=84, period_h=672),
    dict(patches=2, spread_h=84, worn_h=-1, period_h=672),
    dict(patches=2, spread_h=84, worn_h=84, period_h=0),
])
def test_schedule_parameters_must_be_positive(kwargs):
    with pytest.raises(ValueError):
        generate_patch_windows(**kwargs)


def test_schedule_dose_must_be_positive():
    with pytest.raises(ValueError):
        windows_for(ScheduleParams(patches=1, spread_h=84, worn_h=84, period_h=168, dose_mg_per_day=0))


def test_single_patch_schedule_series():
    """One 0.1 mg/day patch worn 84 h, sampled hourly over a week."""
    series = calculate_e2_concentration(ScheduleParams(patches=1, spread_h=168, worn_h=84, period_h=168))

    assert len(series) == 169
    assert [p.time for p in series] == list(range(169))
    assert series[0].value == 0.0
    assert series[24].value == pytest.approx(E2_CONCENTRATION_TABLE[24])
    assert series[84].value == pytest.approx(59.9)
    assert series[91].value == pytest.approx(series[84].value / 2, abs=0.1)
    assert series[98].value == pytest.approx(series[84].value / 4, abs=0.1)
    assert all(p.value >= 0 for p in series)


def test_schedule_series_scales_with_dose_and_patch_count():
    base = calculate_e2_concentration(ScheduleParams(1, 168, 84, 168))
    half = calculate_e2_concentration(ScheduleParams(1, 168, 84, 168, dose_mg_per_day=0.05))
    pair = calculate_e2_concentration(ScheduleParams(2, 168, 84, 168))

    assert half[24].value == pytest.approx(base[24].value / 2, abs=0.06)
    assert pair[24].value == pytest.approx(2 * base[24].value, abs=0.06)


def test_overlapping_changes_add_up():
    """With spread < worn, consecutive patches overlap and their curves sum."""
    series = calculate_e2_concentration(ScheduleParams(patches=1, spread_h=48, worn_h=84, period_h=96))
    # hour 60: first patch at 60 h of wear, second at 12 h
    assert series[60].value == pytest.approx(79.9 + 102.7, abs=0.06)


def test_personalized_empty_and_degenerate():
    assert calculate_personalized_e2([], end=T0) == []
    future = PatchRecord(T0 + hours(5), None, 0.1)
    assert calculate_personalized_e2([future], end=T0) == []


def test_personalized_single_worn_patch():
    """A never-removed patch gives a non-negative curve capped by the table peak."""
    record = PatchRecord(T0, None, 0.1)
    series = calculate_personalized_e2([record], end=T0 + hours(200))

    assert len(series) == 201
    assert series[0].time == 0 and series[-1].time == 200
    values = np.array([p.value for p in series])
    assert np.all(values >= 0.0)
    assert values.max() <= max(E2_CONCENTRATION_TABLE) + 0.05
    assert series[24].value == pytest.approx(108.1)


def test_personalized_partial_hour_rounds_up():
    record = PatchRecord(T0, None, 0.1)
    series = calculate_personalized_e2([record], end=T0 + hours(10.25))
    assert series[-1].time == 11


def test_personalized_superposition_and_removal():
    """Two records with different doses, one removed: the sum follows each curve."""
    first = PatchRecord(T0, T0 + hours(84), 0.1)
    second = PatchRecord(T0 + hours(72), None, 0.05)
    series = calculate_personalized_e2([second, first], end=T0 + hours(120))

    assert series_origin([second, first]) == T0
    assert series[24].value == pytest.approx(108.1)
    # hour 91: first patch 7 h after removal, second patch 19 h worn at half dose
    assert series[91].value == pytest.approx(59.9 / 2 + 106.4 / 2, abs=0.06)


def test_current_estimate():
    record = PatchRecord(T0, None, 0.1)
    assert current_e2_estimate([], now=T0) == 0.0
    assert current_e2_estimate([record], now=T0 + hours(24)) == pytest.approx(108.1)
    assert current_e2_estimate([record], now=T0 + hours(0.5)) == pytest.approx(4.2, abs=0.06)
    assert current_e2_estimate([record], now=T0 - hours(1)) == 0.0


def test_current_estimate_skips_long_removed_patches():
    """Patches off for more than five half-lives no longer count."""
    recent = PatchRecord(T0, T0 + hours(84), 0.1)
    assert current_e2_estimate([recent], now=T0 + hours(84 + 30)) > 0.0
    assert current_e2_estimate([recent], now=T0 + hours(84 + 40)) == 0.0


def test_current_estimate_accepts_iso_now():
    record = PatchRecord("2026-01-05T08:00:00Z", None, 0.1)
    assert current_e2_estimate([record], now="2026-01-06T08:00:00Z") == pytest.approx(108.1)


def test_projection_keeps_worn_patches_on():
    """The projection starts at now and assumes no change for the whole horizon."""
    record = PatchRecord(T0, None, 0.1)
    now = T0 + hours(24)
    projection = project_e2_forward([record], 48, now=now)

    assert [p.time for p in projection] == list(range(49))
    assert projection[0].value == pytest.approx(current_e2_estimate([record], now=now))
    assert projection[12].value == pytest.approx(114.4)
    assert projection[48].value == pytest.approx(61.5)
    assert project_e2_forward([], 48, now=now) == []


def test_projection_decays_removed_patches():
    record = PatchRecord(T0, T0 + hours(84), 0.1)
    projection = project_e2_forward([record], 20, now=T0 + hours(84))
    assert projection[7].value == pytest.approx(59.9 / 2, abs=0.06)
    assert all(a.value >= b.value for a, b in zip(projection, projection[1:]))



def test_projection_drops_patches_removed_long_ago():
    """A removed patch stops counting once it has decayed for NEGLIGIBLE_AFTER_HALF_LIVES half-lives (35 h)."""
    record = PatchRecord(T0, T0 + hours(84), 0.1)
    projection = project_e2_forward([record], 48, now=T0 + hours(84))

    assert len(projection) == 49
    for point in projection[:36]:
        assert point.value == pytest.approx(59.9 * 0.5 ** (point.time / 7), abs=0.06)
    assert projection[35].value > 0
    assert all(p.value == 0.0 for p in projection[36:])


def test_projection_cutoff_follows_config(monkeypatch):
    monkeypatch.setattr(config, "NEGLIGIBLE_AFTER_HALF_LIVES", 2)
    record = PatchRecord(T0, T0 + hours(84), 0.1)
    projection = project_e2_forward([record], 48, now=T0 + hours(84))

    assert projection[14].value == pytest.approx(59.9 / 4, abs=0.06)
    assert all(p.value == 0.0 for p in projection[15:])


def test_interpolate_level():
    series = [SeriesPoint(0, 0.0), SeriesPoint(1, 10.0), SeriesPoint(2, 30.0)]
    assert interpolate_level(series, 0.25) == pytest.approx(2.5)
    assert interpolate_level(series, 1.5) == pytest.approx(20.0)
    assert interpolate_level(series, -3) == 0.0
    assert interpolate_level(series, 9) == 30.0
    assert interpolate_level([], 1.0) == 0.0


def test_repeat_calls_are_identical():
    records = [PatchRecord(T0, T0 + hours(84), 0.1), PatchRecord(T0 + hours(84), None, 0.1)]
    now = T0 + hours(100)
    params = ScheduleParams(2, 84, 84, 672)

    assert calculate_e2_concentration(params) == calculate_e2_concentration(params)
    assert calculate_personalized_e2(records, end=now) == calculate_personalized_e2(records, end=now)
    assert current_e2_estimate(records, now=now) == current_e2_estimate(records, now=now)
    assert project_e2_forward(records, now=now) == project_e2_forward(records, now=now)
