from types import SimpleNamespace

import numpy as np
import pandas as pd
import pytest

from arima_order_selector import FittedModel
from driver_attribution import REPORT_COLUMNS, attribute_drivers, compute_vif


def _fitted(params, bse, exog_names, exog_scales, target_scale=10.0):
    names = list(params)
    results = SimpleNamespace(
        params=np.array([params[name] for name in names]),
        bse=np.array([bse[name] for name in names]),
        model=SimpleNamespace(param_names=names),
    )
    return FittedModel(
        order=(1, 0, 0),
        seasonal_order=(0, 0, 0, 0),
        trend="c",
        criterion="aic",
        score=100.0,
        aic=100.0,
        exog_names=tuple(exog_names),
        results=results,
        target_scale=target_scale,
        exog_scales=tuple(exog_scales),
    )


@pytest.fixture
def fitted():
    params = {
        "intercept": 5.0,
        "WDPriceCut": 1.5,
        "PPSU": -8.0,
        "WDFeature": 0.01,
        "ar.L1": 0.4,
        "sigma2": 1.1,
    }
    bse = {
        "intercept": 1.0,
        "WDPriceCut": 0.05,
        "PPSU": 0.7,
        "WDFeature": 0.2,
        "ar.L1": 0.1,
        "sigma2": 0.2,
    }
    return _fitted(params, bse, ["WDPriceCut", "PPSU", "WDFeature"], [8.0, 0.2, 6.0])


def test_one_entry_per_estimated_coefficient(fitted):
    report = attribute_drivers(fitted)

    assert [entry.name for entry in report.entries] == ["intercept", "WDPriceCut", "PPSU", "WDFeature", "ar.L1"]
    assert len(report) == len(fitted.coefficient_names)


def test_p_values_are_probabilities_and_flags_follow_level(fitted):
    report = attribute_drivers(fitted, significance_level=0.05)

    for entry in report.entries:
        assert 0.0 <= entry.p_value <= 1.0
        assert entry.significant == (entry.p_value < 0.05)


def test_strong_regressors_are_significant(fitted):
    report = attribute_drivers(fitted)
    by_name = {entry.name: entry for entry in report.entries}

    assert by_name["WDPriceCut"].significant
    assert by_name["PPSU"].significant
    assert not by_name["WDFeature"].significant
    assert by_name["WDPriceCut"].statistic == pytest.approx(30.0)


def test_coefficient_kinds(fitted):
    kinds = {entry.name: entry.kind for entry in attribute_drivers(fitted).entries}

    assert kinds == {
        "intercept": "intercept",
        "WDPriceCut": "regressor",
        "PPSU": "regressor",
        "WDFeature": "regressor",
        "ar.L1": "arima",
    }


def test_significant_drivers_ranked_by_standardised_effect(fitted):
    drivers = attribute_drivers(fitted).significant_drivers()

    # 1.5 * 8 / 10 = 1.2 beats 8 * 0.2 / 10 = 0.16
    assert [entry.name for entry in drivers] == ["WDPriceCut", "PPSU"]
    assert drivers[0].importance == pytest.approx(1.2)


def test_undefined_standard_error_is_never_significant():
    fitted = _fitted(
        {"WDDisplay": 3.0, "sigma2": 1.0},
        {"WDDisplay": np.nan, "sigma2": 0.1},
        ["WDDisplay"],
        [1.0],
    )

    entry = attribute_drivers(fitted).entries[0]

    assert entry.p_value == 1.0
    assert not entry.significant
    assert np.isnan(entry.statistic)


def test_zero_standard_error_is_never_significant():
    fitted = _fitted({"WDDisplay": 3.0, "sigma2": 1.0}, {"WDDisplay": 0.0, "sigma2": 0.1}, ["WDDisplay"], [1.0])

    assert attribute_drivers(fitted).entries[0].p_value == 1.0


def test_sorted_by_significance_and_frame(fitted):
    report = attribute_drivers(fitted).sorted_by_significance()
    p_values = [entry.p_value for entry in report.entries]

    assert p_values == sorted(p_values)
    frame = report.to_frame()
    assert list(frame.columns) == REPORT_COLUMNS
    assert len(frame) == len(report)


def test_vif_flags_collinear_regressors():
    rng = np.random.default_rng(31)
    base = rng.normal(0, 1, 60)
    frame = pd.DataFrame(
        {
            "WDFeature": base,
            "WDDisplay": base + rng.normal(0, 0.05, 60),
            "PPSU": rng.normal(0, 1, 60),
            "WDPriceCut": np.full(60, 4.0),
        }
    )

    vif = compute_vif(frame)

    assert vif["WDFeature"] > 10
    assert vif["PPSU"] < 5
    assert np.isnan(vif["WDPriceCut"])


def test_vif_needs_two_varying_regressors():
    frame = pd.DataFrame({"PPSU": [1.0, 2.0, 3.0], "WDDisplay": [1.0, 1.0, 1.0]})

    assert all(np.isnan(value) for value in compute_vif(frame).values())
