"""
Point forecasts, prediction intervals and hold-out accuracy for fitted models.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Dict, Optional, Sequence, Union

import numpy as np
import pandas as pd

from arima_order_selector import FittedModel
from errors import RegressorMismatch

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class ForecastResult:
    """Forecast path and interval bounds for each future period."""

    frame: pd.DataFrame
    confidence_levels: tuple = (0.80, 0.95)

    @property
    def dates(self) -> pd.Index:
        return self.frame.index

    @property
    def points(self) -> pd.Series:
        return self.frame["forecast"]

    @property
    def horizon(self) -> int:
        return len(self.frame)

    def interval(self, level: float) -> pd.DataFrame:
        """Lower/upper bounds for one of the computed confidence levels."""
        suffix = _level_suffix(level)
        columns = [f"lower_{suffix}", f"upper_{suffix}"]
        missing = [column for column in columns if column not in self.frame.columns]
        if missing:
            raise KeyError(f"No {level:.0%} interval was computed for this forecast")
        return self.frame[columns]

    def to_frame(self) -> pd.DataFrame:
        return self.frame.copy()


def _level_suffix(level: float) -> str:
    return f"{int(round(float(level) * 100))}"


def _validate_future_exog(
    fitted: FittedModel,
    horizon: int,
    future_exog: Optional[Union[pd.DataFrame, np.ndarray]],
) -> Optional[np.ndarray]:
    """Check the future regressor matrix against the fitted model's regressor set."""
    expected = list(fitted.exog_names)

    if future_exog is None:
        if expected:
            raise RegressorMismatch(
                f"Model was fitted with regressors {expected} but no future regressors were supplied"
            )
        return None

    if isinstance(future_exog, pd.DataFrame):
        supplied = [str(column) for column in future_exog.columns]
        if supplied != expected:
            raise RegressorMismatch(
                f"Future regressors {supplied} do not match fitted regressors {expected}"
            )
        matrix = future_exog.to_numpy(dtype=float)
    else:
        matrix = np.asarray(future_exog, dtype=float)
        if matrix.ndim == 1:
            matrix = matrix.reshape(-1, 1)
        if matrix.ndim != 2 or matrix.shape[1] != len(expected):
            raise RegressorMismatch(
                f"Future regressor matrix has {matrix.shape[-1] if matrix.ndim else 0} column(s); "
                f"the fitted model expects {len(expected)}"
            )

    if not expected:
        if matrix.size:
            raise RegressorMismatch("Model was fitted without regressors but future regressors were supplied")
        return None

    if matrix.shape[0] != horizon:
        raise RegressorMismatch(
            f"Future regressor matrix has {matrix.shape[0]} row(s) for a horizon of {horizon}"
        )
    if not np.isfinite(matrix).all():
        raise RegressorMismatch("Future regressors contain missing values; interpolate them first")
    return matrix


def generate_forecast(
    fitted: FittedModel,
    horizon: int,
    future_exog: Optional[Union[pd.DataFrame, np.ndarray]] = None,
    index: Optional[Sequence] = None,
    *,
    confidence_levels: Sequence[float] = (0.80, 0.95),
    enforce_non_negative: bool = False,
) -> ForecastResult:
    """
    Generate ``horizon`` point forecasts with confidence intervals.

    Intervals come from the state-space forecast-error variance. With
    ``enforce_non_negative`` every column is floored at zero, so lower bounds
    below zero are truncated rather than reported as derived; flooring all
    columns together keeps each interval nested around its point forecast.
    """
    if horizon < 1:
        raise ValueError(f"Forecast horizon must be at least 1, got {horizon}")

    exog_matrix = _validate_future_exog(fitted, horizon, future_exog)
    if index is not None and len(index) != horizon:
        raise ValueError(f"Forecast index has {len(index)} entries for a horizon of {horizon}")

    LOGGER.info("Generating %d-week forecast with %s", horizon, fitted.descriptor)
    forecast_result = fitted.results.get_forecast(steps=horizon, exog=exog_matrix)
    forecast_mean = np.asarray(forecast_result.predicted_mean, dtype=float)

    columns: Dict[str, np.ndarray] = {"forecast": forecast_mean}
    for level in confidence_levels:
        conf_int = np.asarray(forecast_result.conf_int(alpha=1 - float(level)), dtype=float)
        suffix = _level_suffix(level)
        columns[f"lower_{suffix}"] = conf_int[:, 0]
        columns[f"upper_{suffix}"] = conf_int[:, 1]

    frame_index = pd.Index(index) if index is not None else pd.RangeIndex(1, horizon + 1, name="step")
    frame = pd.DataFrame(columns, index=frame_index)

    if enforce_non_negative:
        # Truncates the lower bounds too; see docstring
        frame = frame.clip(lower=0)

    return ForecastResult(frame=frame, confidence_levels=tuple(float(level) for level in confidence_levels))


def calculate_metrics(actual, predicted) -> Dict[str, float]:
    """
    Hold-out accuracy over the weeks where both actual and forecast are known.

    MAE% is total absolute error over total absolute sales, Bias% is mean error
    over mean sales, MAPE skips zero-sales weeks and CoV describes the actuals.
    Ratios with a zero denominator are reported as NaN.
    """
    actual = np.asarray(actual, dtype=float)
    predicted = np.asarray(predicted, dtype=float)
    known = np.isfinite(actual) & np.isfinite(predicted)
    actual, predicted = actual[known], predicted[known]

    metrics = dict.fromkeys(("bias_percent", "mae_percent", "rmse", "mape", "cov"), math.nan)
    if actual.size == 0:
        return metrics

    error = predicted - actual
    level = actual.mean()
    volume = np.abs(actual).sum()
    selling = actual != 0

    metrics["rmse"] = float(np.sqrt(np.mean(error ** 2)))
    if level != 0:
        metrics["bias_percent"] = float(error.mean() / level * 100)
        metrics["cov"] = float(actual.std() / abs(level) * 100)
    if volume != 0:
        metrics["mae_percent"] = float(np.abs(error).sum() / volume * 100)
    if selling.any():
        metrics["mape"] = float(np.mean(np.abs(error[selling] / actual[selling])) * 100)
    return metrics


__all__ = ["ForecastResult", "calculate_metrics", "generate_forecast"]
