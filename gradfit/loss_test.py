import math

import numpy as np
import pytest

from gradfit.data import SampleSet
from gradfit.loss import (
    LandscapeConfig,
    confidence_band,
    landscape,
    mse,
    r_squared,
)
from gradfit.model import Parameters

LINE = Parameters(slope=2.0, intercept=1.0)


def _on_line(xs, params: Parameters = LINE) -> SampleSet:
    xs = np.asarray(xs, dtype=np.float64)
    return SampleSet(xs, params.slope * xs + params.intercept)


def test_mse_is_zero_on_the_line():
    samples = _on_line([0.0, 1.0, 2.5, 10.0])
    assert mse(LINE, samples) == 0.0


def test_mse_value():
    samples = SampleSet([0.0, 1.0], [1.0, 5.0])
    # residuals: 0 and 5 - 3 = 2
    assert mse(LINE, samples) == pytest.approx(2.0)


def test_mse_is_positive_off_the_line():
    rng = np.random.default_rng(0)
    samples = SampleSet(rng.uniform(0, 10, 20), rng.uniform(-5, 5, 20))

    for _ in range(10):
        params = Parameters(*rng.uniform(-10, 10, 2))
        assert mse(params, samples) > 0.0


def test_empty_samples():
    empty = SampleSet.empty()

    assert mse(LINE, empty) == 0.0
    assert r_squared(LINE, empty) == 0.0


def test_r_squared_perfect_fit():
    assert r_squared(LINE, _on_line([0.0, 1.0, 2.0])) == pytest.approx(1.0)


def test_r_squared_can_be_negative():
    samples = _on_line([0.0, 1.0, 2.0, 3.0])
    bad = Parameters(slope=-5.0, intercept=20.0)

    assert r_squared(bad, samples) < 0.0


def test_r_squared_without_variance():
    samples = SampleSet([0.0, 1.0], [3.0, 3.0])
    assert r_squared(LINE, samples) == 0.0


def test_confidence_band_uses_sqrt_of_loss():
    band = confidence_band(LINE, 4.0)

    assert band.upper == Parameters(slope=4.0, intercept=3.0)
    assert band.lower == Parameters(slope=0.0, intercept=-1.0)


def test_confidence_band_without_loss():
    band = confidence_band(LINE, None)
    assert band.upper == LINE
    assert band.lower == LINE


def test_landscape_grid_is_clipped_at_zero():
    samples = _on_line([0.0, 1.0, 2.0])
    surface = landscape(samples, 2.0, 1.0, LandscapeConfig())

    # slope: max(0, 2 - 5) = 0 .. 7, intercept: 0 .. 6, step 0.5
    assert surface.slopes[0] == 0.0
    assert surface.slopes[-1] == pytest.approx(7.0)
    assert surface.intercepts[0] == 0.0
    assert surface.intercepts[-1] == pytest.approx(6.0)
    assert surface.losses.shape == (15, 13)
    assert len(surface) == 15 * 13


def test_landscape_matches_mse():
    samples = SampleSet([0.0, 1.0, 4.0], [1.0, 2.0, 2.0])
    surface = landscape(samples, 7.0, 3.0, LandscapeConfig(step=1.0))

    for point in surface:
        expected = mse(Parameters(point.slope, point.intercept), samples)
        assert point.loss == pytest.approx(expected)


def test_landscape_minimum_is_the_true_line():
    samples = _on_line(np.linspace(0, 10, 11), Parameters(7.0, 3.0))
    best = landscape(samples, 7.0, 3.0).argmin()

    assert best is not None
    assert (best.slope, best.intercept) == (7.0, 3.0)
    assert math.isclose(best.loss, 0.0, abs_tol=1e-12)


def test_landscape_on_empty_samples():
    surface = landscape(SampleSet.empty(), 7.0, 3.0)
    assert np.all(surface.losses == 0.0)


def test_landscape_rejects_non_positive_step():
    with pytest.raises(ValueError):
        landscape(_on_line([0.0]), 1.0, 1.0, LandscapeConfig(step=0.0))
