import numpy as np
import pandas as pd

from stationarity import (
    estimate_differencing_order,
    estimate_seasonal_differencing_order,
    is_stationary,
    run_adf,
    run_kpss,
    seasonal_strength,
)


def test_random_walk_needs_differencing():
    rng = np.random.default_rng(11)
    walk = pd.Series(np.cumsum(rng.normal(0, 1, 200)))

    assert estimate_differencing_order(walk, max_d=2) >= 1


def test_white_noise_needs_no_differencing():
    rng = np.random.default_rng(12)
    noise = pd.Series(rng.normal(0, 1, 200))

    assert estimate_differencing_order(noise, alpha=0.01, max_d=2) == 0


def test_differencing_order_respects_cap():
    trend = pd.Series(np.arange(100, dtype=float) ** 3)

    assert estimate_differencing_order(trend, max_d=1) <= 1


def test_constant_series_is_treated_as_stationary():
    assert is_stationary(pd.Series([5.0] * 30))
    assert is_stationary(pd.Series([5.0] * 30), test="adf")


def test_seasonal_strength_separates_cycle_from_noise():
    rng = np.random.default_rng(13)
    steps = np.arange(96)
    cycle = pd.Series(10 * np.sin(2 * np.pi * steps / 12) + rng.normal(0, 0.5, steps.size))
    noise = pd.Series(rng.normal(0, 1, steps.size))

    assert seasonal_strength(cycle, 12) > 0.9
    assert seasonal_strength(noise, 12) < seasonal_strength(cycle, 12)
    assert estimate_seasonal_differencing_order(cycle, 12) == 1


def test_short_history_has_no_seasonal_strength():
    series = pd.Series(np.sin(np.arange(20)))

    assert seasonal_strength(series, 12) == 0.0
    assert estimate_seasonal_differencing_order(series, 12) == 0


def test_test_helpers_return_p_values():
    rng = np.random.default_rng(14)
    noise = pd.Series(rng.normal(0, 1, 200))

    assert run_adf(noise) < 0.01
    assert 0.0 <= run_kpss(noise) <= 1.0
