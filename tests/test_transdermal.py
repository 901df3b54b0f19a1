import math

import numpy as np
import pytest

from patchengine.models.transdermal import (
    E2_CONCENTRATION_TABLE,
    ELIMINATION_HALF_LIFE_H,
    TABLE_LAST_HOUR,
    dose_factor,
    patch_concentration,
    table_concentration,
    wear_concentration,
)
from patchengine.types import Removed, Worn


def test_nothing_before_or_at_application():
    """A patch contributes nothing at or before the moment it goes on."""
    assert patch_concentration(0.0) == 0.0
    assert patch_concentration(-5.0) == 0.0
    assert patch_concentration(-5.0, 84.0) == 0.0
    assert np.all(patch_concentration(np.array([-48.0, -1.0, -0.01, 0.0]), 84.0) == 0.0)


def test_table_lookup_and_interpolation():
    """Integer hours read the table; fractional hours interpolate linearly."""
    assert len(E2_CONCENTRATION_TABLE) == 169
    assert table_concentration(24) == pytest.approx(108.1)
    assert table_concentration(12) == pytest.approx(102.7)
    assert table_concentration(0.5) == pytest.approx(4.25)
    assert table_concentration(35.5) == pytest.approx((114.7 + 114.4) / 2)


def test_extended_wear_depletes_slowly():
    """Past the last sample a worn patch halves every 180 h."""
    last = E2_CONCENTRATION_TABLE[-1]
    assert table_concentration(TABLE_LAST_HOUR) == pytest.approx(last)
    assert table_concentration(TABLE_LAST_HOUR + 180) == pytest.approx(last / 2)
    assert patch_concentration(TABLE_LAST_HOUR + 180) == pytest.approx(last / 2)


@pytest.mark.parametrize("worn_h", [12.5, 84.0, 168.0, 200.0])
def test_continuity_at_removal(worn_h):
    """The removed branch starts exactly where the worn branch ends."""
    at_removal = patch_concentration(worn_h, worn_h)
    assert at_removal == pytest.approx(table_concentration(worn_h))
    assert patch_concentration(worn_h + 1e-9, worn_h) == pytest.approx(at_removal, rel=1e-6)


def test_decay_after_removal():
    """After removal the level halves every elimination half-life and never rises."""
    worn_h = 84.0
    at_removal = patch_concentration(worn_h, worn_h)
    assert at_removal == pytest.approx(59.9)
    assert patch_concentration(worn_h + ELIMINATION_HALF_LIFE_H, worn_h) == pytest.approx(at_removal / 2)
    assert patch_concentration(worn_h + 2 * ELIMINATION_HALF_LIFE_H, worn_h) == pytest.approx(at_removal / 4)

    t = np.linspace(worn_h, worn_h + 200.0, 801)
    C = patch_concentration(t, worn_h)
    assert np.all(np.diff(C) <= 0.0)
    assert np.all(C <= at_removal)


def test_removal_during_ramp_up_stops_the_rise():
    """A patch pulled during absorption does not keep climbing towards the table peak."""
    C = patch_concentration(np.arange(0.0, 60.0), 6.0)
    assert C.max() == pytest.approx(table_concentration(6.0))


def test_non_negative_everywhere():
    t = np.linspace(-24.0, 500.0, 2000)
    for worn_h in (0.0, 3.0, 84.0, math.inf):
        assert np.all(patch_concentration(t, worn_h) >= 0.0)


def test_scalar_in_scalar_out():
    assert isinstance(patch_concentration(10.0, 84.0), float)
    assert isinstance(patch_concentration(np.arange(3.0)), np.ndarray)


def test_wear_variants():
    """Worn behaves like an infinite wear time; Removed carries the wear duration."""
    t = np.arange(0.0, 200.0)
    assert np.allclose(wear_concentration(t, Worn()), patch_concentration(t, math.inf))
    assert np.allclose(wear_concentration(t, Removed(84.0)), patch_concentration(t, 84.0))
    with pytest.raises(TypeError):
        wear_concentration(t, 84.0)


def test_dose_factor_is_relative_to_reference():
    assert dose_factor(0.1) == pytest.approx(1.0)
    assert dose_factor(0.05) == pytest.approx(0.5)
    assert dose_factor(0.2) == pytest.approx(2.0)
