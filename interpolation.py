"""
Gap filling for weekly target and regressor series.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

import pandas as pd
from statsmodels.tsa.seasonal import seasonal_decompose

from errors import InsufficientData

LOGGER = logging.getLogger(__name__)


def _linear_fill(series: pd.Series) -> pd.Series:
    """Linear interpolation inside the series, nearest-value extension at the ends."""
    filled = series.interpolate(method="linear", limit_area="inside")
    return filled.ffill().bfill()


def _seasonal_fill(series: pd.Series, period: int) -> Optional[pd.Series]:
    """
    Interpolate on the seasonally adjusted series and add the seasonal pattern back.

    Returns None when there is not enough history for a decomposition.
    """
    if series.notna().sum() < 2 * period or len(series) < 2 * period:
        return None

    first_pass = _linear_fill(series)
    if first_pass.nunique() <= 1:
        return None

    decomposition = seasonal_decompose(
        first_pass.to_numpy(),
        model="additive",
        period=period,
        extrapolate_trend="freq",
    )
    seasonal = pd.Series(decomposition.seasonal, index=series.index)
    adjusted = _linear_fill(series - seasonal)
    return adjusted + seasonal


def interpolate_series(
    series: pd.Series,
    method: str = "linear",
    period: int = 52,
) -> pd.Series:
    """
    Return a copy of ``series`` with every missing entry filled.

    ``linear`` fills interior gaps between the nearest observed neighbours and
    extends the first/last observed value over leading/trailing gaps.
    ``seasonal`` removes an additive seasonal component (``period`` steps)
    before interpolating; it falls back to ``linear`` on short histories.
    """
    values = pd.to_numeric(series, errors="coerce").astype(float)
    name = series.name if series.name is not None else "series"

    if values.notna().sum() == 0:
        raise InsufficientData(f"Cannot interpolate '{name}': every value is missing")

    if not values.isna().any():
        return values

    if method == "linear":
        return _linear_fill(values)

    if method == "seasonal":
        filled = _seasonal_fill(values, period)
        if filled is None:
            LOGGER.debug("Not enough history to deseasonalise '%s'; using linear interpolation", name)
            return _linear_fill(values)
        # Observed values are never altered by the seasonal round trip
        observed = values.notna()
        filled[observed] = values[observed]
        return filled

    raise ValueError(f"Unsupported interpolation method '{method}'")


def interpolate_frame(
    frame: pd.DataFrame,
    columns: Optional[Iterable[str]] = None,
    method: str = "linear",
    period: int = 52,
) -> pd.DataFrame:
    """Interpolate each requested column independently, leaving the input untouched."""
    result = frame.copy()
    for column in (list(columns) if columns is not None else list(frame.columns)):
        try:
            result[column] = interpolate_series(frame[column], method=method, period=period)
        except InsufficientData as exc:
            raise InsufficientData(f"Column '{column}' has no observed values to interpolate from") from exc
    return result


def count_missing(frame: pd.DataFrame) -> dict:
    """Number of missing entries per column, used in run diagnostics."""
    counts = frame.isna().sum()
    return {str(column): int(value) for column, value in counts.items() if value}


__all__ = ["count_missing", "interpolate_frame", "interpolate_series"]
