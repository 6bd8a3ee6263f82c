"""
Stationarity diagnostics used to pick differencing orders before order search.

Non-seasonal differencing follows repeated unit-root/stationarity tests (KPSS by
default, ADF on request). Seasonal differencing is decided from the strength of
the seasonal component of an additive decomposition.
"""

from __future__ import annotations

import math
import warnings

import numpy as np
import pandas as pd
from statsmodels.tsa.seasonal import seasonal_decompose
from statsmodels.tsa.stattools import adfuller, kpss


def run_adf(series: pd.Series) -> float:
    """ADF p-value (unit-root null); NaN when statsmodels rejects the sample."""
    try:
        with warnings.catch_warnings():
            warnings.filterwarnings("ignore")
            return float(adfuller(series.dropna(), autolag="AIC")[1])
    except (ValueError, np.linalg.LinAlgError):
        return math.nan


def run_kpss(series: pd.Series) -> float:
    """KPSS level-stationarity p-value; NaN when statsmodels rejects the sample."""
    try:
        with warnings.catch_warnings():
            # p-values outside the lookup table come with an InterpolationWarning
            warnings.filterwarnings("ignore")
            return float(kpss(series.dropna(), regression="c", nlags="auto")[1])
    except (ValueError, OverflowError, ZeroDivisionError):
        return math.nan


def is_stationary(series: pd.Series, test: str = "kpss", alpha: float = 0.05) -> bool:
    """
    Decide stationarity of ``series``.

    KPSS has stationarity as the null hypothesis, so the series is stationary
    unless the null is rejected. ADF has a unit root as the null, so the series
    is stationary only if the null is rejected. Constant or untestable series are
    treated as stationary.
    """
    clean = series.dropna()
    if len(clean) < 3 or clean.nunique() <= 1:
        return True

    if test == "kpss":
        pvalue = run_kpss(clean)
        return math.isnan(pvalue) or pvalue >= alpha
    if test == "adf":
        pvalue = run_adf(clean)
        return math.isnan(pvalue) or pvalue < alpha
    raise ValueError(f"Unsupported stationarity test '{test}'")


def estimate_differencing_order(
    series: pd.Series,
    *,
    test: str = "kpss",
    alpha: float = 0.05,
    max_d: int = 2,
) -> int:
    """Number of first differences needed before the series tests stationary."""
    current = series.dropna().astype(float)
    d = 0
    while d < max_d:
        if is_stationary(current, test=test, alpha=alpha):
            break
        current = current.diff().dropna()
        d += 1
    return d


def seasonal_strength(series: pd.Series, period: int) -> float:
    """
    Strength of seasonality in [0, 1] from an additive decomposition.

    Defined as ``max(0, 1 - var(remainder) / var(seasonal + remainder))``.
    Returns 0.0 when the series covers fewer than two full periods.
    """
    clean = series.dropna().astype(float)
    if period < 2 or len(clean) < 2 * period or clean.nunique() <= 1:
        return 0.0

    decomposition = seasonal_decompose(clean.to_numpy(), model="additive", period=period)
    seasonal = np.asarray(decomposition.seasonal)
    resid = np.asarray(decomposition.resid)
    mask = np.isfinite(resid)
    if mask.sum() < 2:
        return 0.0

    remainder_var = float(np.var(resid[mask]))
    combined_var = float(np.var(seasonal[mask] + resid[mask]))
    if combined_var <= 0:
        return 0.0
    return max(0.0, 1.0 - remainder_var / combined_var)


def estimate_seasonal_differencing_order(
    series: pd.Series,
    period: int,
    *,
    threshold: float = 0.64,
    max_seasonal_d: int = 1,
) -> int:
    """Seasonal differences needed, based on the seasonal strength of the series."""
    current = series.dropna().astype(float)
    big_d = 0
    while big_d < max_seasonal_d:
        if seasonal_strength(current, period) <= threshold:
            break
        current = current.diff(period).dropna()
        big_d += 1
    return big_d


__all__ = [
    "estimate_differencing_order",
    "estimate_seasonal_differencing_order",
    "is_stationary",
    "run_adf",
    "run_kpss",
    "seasonal_strength",
]
