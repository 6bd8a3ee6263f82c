import numpy as np
import pandas as pd
import pytest

from arima_order_selector import ARIMAOrderSelector
from errors import RegressorMismatch
from forecaster import calculate_metrics, generate_forecast

REGRESSORS = ["WeightedDistribution", "WDPriceCut", "PPSU"]


@pytest.fixture(scope="module")
def fitted():
    rng = np.random.default_rng(21)
    n_obs = 70
    index = pd.date_range("2020-01-06", periods=n_obs, freq="7D")
    exog = pd.DataFrame(
        {
            "WeightedDistribution": 70 + rng.normal(0, 5, n_obs),
            "WDPriceCut": rng.uniform(0, 30, n_obs),
            "PPSU": 2.5 + rng.normal(0, 0.2, n_obs),
        },
        index=index,
    )
    target = 40 + 0.5 * exog["WeightedDistribution"] + 1.5 * exog["WDPriceCut"] - 8 * exog["PPSU"]
    target = target + rng.normal(0, 1, n_obs)
    selector = ARIMAOrderSelector(max_p=1, max_q=1, max_iterations=6, stationarity_alpha=0.01)
    return selector.select(target, exog)


def _future(horizon, columns=REGRESSORS, seed=22):
    rng = np.random.default_rng(seed)
    return pd.DataFrame(
        {
            "WeightedDistribution": 70 + rng.normal(0, 5, horizon),
            "WDPriceCut": rng.uniform(0, 30, horizon),
            "PPSU": 2.5 + rng.normal(0, 0.2, horizon),
        }
    )[list(columns)]


def test_forecast_length_matches_horizon(fitted):
    result = generate_forecast(fitted, 9, _future(9))

    assert result.horizon == 9
    assert len(result.points) == 9
    assert list(result.dates) == list(range(1, 10))
    assert np.isfinite(result.points).all()


def test_intervals_nest_around_point_forecast(fitted):
    frame = generate_forecast(fitted, 6, _future(6)).to_frame()

    assert (frame["lower_95"] <= frame["lower_80"]).all()
    assert (frame["lower_80"] <= frame["forecast"]).all()
    assert (frame["forecast"] <= frame["upper_80"]).all()
    assert (frame["upper_80"] <= frame["upper_95"]).all()


def test_forecast_uses_supplied_index(fitted):
    dates = pd.date_range("2021-05-03", periods=4, freq="7D", name="Date")

    result = generate_forecast(fitted, 4, _future(4), index=dates)

    assert list(result.dates) == list(dates)
    assert list(result.interval(0.8).columns) == ["lower_80", "upper_80"]


def test_missing_interval_level_raises(fitted):
    result = generate_forecast(fitted, 3, _future(3), confidence_levels=(0.9,))

    with pytest.raises(KeyError):
        result.interval(0.95)


def test_non_negative_forecasts_are_clipped(fitted):
    future = _future(5)
    future["PPSU"] = 40.0  # price per unit far outside history drives sales negative

    clipped = generate_forecast(fitted, 5, future, enforce_non_negative=True).to_frame()

    assert (clipped >= 0).all().all()


def test_fewer_regressor_columns_raise(fitted):
    with pytest.raises(RegressorMismatch):
        generate_forecast(fitted, 5, _future(5, columns=REGRESSORS[:2]))


def test_reordered_regressor_columns_raise(fitted):
    with pytest.raises(RegressorMismatch):
        generate_forecast(fitted, 5, _future(5, columns=list(reversed(REGRESSORS))))


def test_array_with_wrong_width_raises(fitted):
    with pytest.raises(RegressorMismatch):
        generate_forecast(fitted, 5, np.ones((5, 2)))


def test_regressor_rows_must_cover_horizon(fitted):
    with pytest.raises(RegressorMismatch):
        generate_forecast(fitted, 5, _future(4))


def test_missing_future_regressor_values_raise(fitted):
    future = _future(5)
    future.loc[2, "WDPriceCut"] = np.nan

    with pytest.raises(RegressorMismatch):
        generate_forecast(fitted, 5, future)


def test_absent_future_regressors_raise(fitted):
    with pytest.raises(RegressorMismatch):
        generate_forecast(fitted, 5)


def test_horizon_must_be_positive(fitted):
    with pytest.raises(ValueError):
        generate_forecast(fitted, 0, _future(1))


def test_calculate_metrics_values():
    metrics = calculate_metrics([100.0, 200.0, np.nan], [110.0, 190.0, 50.0])

    assert metrics["bias_percent"] == pytest.approx(0.0)
    assert metrics["mae_percent"] == pytest.approx(20.0 / 300.0 * 100)
    assert metrics["rmse"] == pytest.approx(10.0)
    assert metrics["mape"] == pytest.approx((0.1 + 0.05) / 2 * 100)


def test_calculate_metrics_without_overlap_is_nan():
    metrics = calculate_metrics([np.nan], [1.0])

    assert all(np.isnan(value) for value in metrics.values())


def test_flooring_truncates_bounds_and_keeps_intervals_nested(fitted):
    future = _future(5)
    future.loc[[1, 3], "PPSU"] = 40.0

    raw = generate_forecast(fitted, 5, future).to_frame()
    floored = generate_forecast(fitted, 5, future, enforce_non_negative=True).to_frame()

    pd.testing.assert_frame_equal(floored, raw.clip(lower=0))
    assert (raw["lower_95"] < 0).any()
    assert (floored["lower_95"] <= floored["lower_80"]).all()
    assert (floored["lower_80"] <= floored["forecast"]).all()
    assert (floored["forecast"] <= floored["upper_80"]).all()
    assert (floored["upper_80"] <= floored["upper_95"]).all()
