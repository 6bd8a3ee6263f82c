"""
Crystal Ball: per-SKU weekly forecasting and driver attribution.

One ``run`` call takes a single SKU through the whole pipeline:
align to a weekly grid -> split train/test -> interpolate each partition ->
select and fit a SARIMAX model -> forecast the test weeks -> (optionally)
test which regressors drive sales. Calls share no mutable state, so
``run_many`` can fan SKUs out over worker processes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, NamedTuple, Optional, Tuple

import numpy as np
import pandas as pd
from joblib import Parallel, delayed
from statsmodels.stats.diagnostic import acorr_ljungbox

from arima_order_selector import ARIMAOrderSelector, FittedModel
from config import CrystalBallConfig
from driver_attribution import DriverReport, attribute_drivers, compute_vif
from errors import CrystalBallError, InsufficientData
from forecaster import ForecastResult, calculate_metrics, generate_forecast
from interpolation import count_missing, interpolate_frame
from panel_data import PanelDataset, observations_for_sku
from time_grid import Partition, align_weekly_grid, missing_weeks, split_train_test

LOGGER = logging.getLogger(__name__)


class CrystalBallResult(NamedTuple):
    """Forecast, driver report (None unless verbose) and run diagnostics."""

    forecast: ForecastResult
    drivers: Optional[DriverReport]
    diagnostics: Dict[str, Any]


@dataclass
class BatchResult:
    """Outcome of running many SKUs: successes and the failures that were skipped."""

    results: Dict[str, CrystalBallResult] = field(default_factory=dict)
    failures: Dict[str, CrystalBallError] = field(default_factory=dict)

    def summary_frame(self) -> pd.DataFrame:
        """One row per SKU and forecast week."""
        frames = []
        for sku_id, result in self.results.items():
            frame = result.forecast.to_frame()
            frame.insert(0, "actual", result.diagnostics.get("test_actuals", np.nan))
            frame = frame.reset_index().rename(columns={"index": "Date"})
            frame.insert(0, "sku_id", sku_id)
            frame["model"] = result.diagnostics.get("model")
            frame["aic"] = result.diagnostics.get("aic")
            frames.append(frame)
        if not frames:
            return pd.DataFrame()
        return pd.concat(frames, ignore_index=True)

    def drivers_frame(self) -> pd.DataFrame:
        frames = []
        for sku_id, result in self.results.items():
            if result.drivers is None:
                continue
            frame = result.drivers.to_frame()
            frame.insert(0, "sku_id", sku_id)
            frames.append(frame)
        if not frames:
            return pd.DataFrame()
        return pd.concat(frames, ignore_index=True)

    def failures_frame(self) -> pd.DataFrame:
        return pd.DataFrame([error.to_dict() for error in self.failures.values()])


class CrystalBall:
    """Per-SKU forecasting pipeline over a loaded panel dataset."""

    def __init__(self, dataset: PanelDataset, config: Optional[CrystalBallConfig] = None) -> None:
        self.dataset = dataset
        self.config = config or CrystalBallConfig()

    def run(
        self,
        sku_id: str,
        split_fraction: Optional[float] = None,
        verbose: bool = False,
    ) -> CrystalBallResult:
        """
        Forecast the held-out weeks of one SKU.

        Component errors propagate unchanged, tagged with ``sku_id``.
        """
        try:
            return self._run(sku_id, split_fraction, verbose)
        except CrystalBallError as exc:
            raise exc.with_sku(sku_id)

    def run_many(
        self,
        sku_ids: Iterable[str],
        split_fraction: Optional[float] = None,
        verbose: bool = False,
        n_jobs: Optional[int] = None,
    ) -> BatchResult:
        """Run every SKU, recording failures instead of stopping at the first one."""
        sku_ids = list(dict.fromkeys(sku_ids))
        n_jobs = self.config.N_JOBS if n_jobs is None else n_jobs

        if n_jobs == 1 or len(sku_ids) <= 1:
            outcomes = [self._run_safely(sku_id, split_fraction, verbose) for sku_id in sku_ids]
        else:
            outcomes = Parallel(n_jobs=n_jobs)(
                delayed(self._run_safely)(sku_id, split_fraction, verbose) for sku_id in sku_ids
            )

        batch = BatchResult()
        for sku_id, result, error in outcomes:
            if error is not None:
                LOGGER.warning("Skipping %s: %s", sku_id, error)
                batch.failures[sku_id] = error
            else:
                batch.results[sku_id] = result
        LOGGER.info("Batch complete: %d succeeded, %d failed", len(batch.results), len(batch.failures))
        return batch

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _run_safely(
        self,
        sku_id: str,
        split_fraction: Optional[float],
        verbose: bool,
    ) -> Tuple[str, Optional[CrystalBallResult], Optional[CrystalBallError]]:
        try:
            return sku_id, self.run(sku_id, split_fraction, verbose), None
        except CrystalBallError as exc:
            return sku_id, None, exc

    def _run(self, sku_id: str, split_fraction: Optional[float], verbose: bool) -> CrystalBallResult:
        config = self.config
        fraction = config.SPLIT_FRACTION if split_fraction is None else float(split_fraction)
        target_col = self.dataset.target_column
        regressors = list(self.dataset.regressor_columns)

        observations = observations_for_sku(self.dataset, sku_id)
        if observations.empty:
            raise InsufficientData(f"No observations found for SKU '{sku_id}'")
        LOGGER.info("Processing %s (%d observations)", sku_id, len(observations))

        aligned = align_weekly_grid(
            observations,
            date_column=self.dataset.date_column,
            value_columns=[target_col] + regressors,
            week_days=config.WEEK_DAYS,
        )
        partition = split_train_test(aligned, fraction)

        interpolation_kwargs = {
            "method": config.INTERPOLATION_METHOD,
            "period": config.SEASONAL_PERIOD,
        }
        train = interpolate_frame(partition.train, [target_col] + regressors, **interpolation_kwargs)
        # Unreported test-window sales stay NaN
        test_columns = list(regressors)
        if partition.test[target_col].notna().any():
            test_columns.insert(0, target_col)
        else:
            LOGGER.warning("%s: no sales reported in the test window; metrics will be NaN", sku_id)
        test = interpolate_frame(partition.test, test_columns, **interpolation_kwargs)

        selector = ARIMAOrderSelector(config)
        fitted = selector.select(train[target_col], train[regressors] if regressors else None)

        forecast = generate_forecast(
            fitted,
            horizon=partition.test_size,
            future_exog=test[regressors] if regressors else None,
            index=partition.test.index,
            confidence_levels=config.CONFIDENCE_LEVELS,
            enforce_non_negative=config.ENFORCE_NON_NEGATIVE_FORECASTS,
        )

        drivers = attribute_drivers(fitted, config.SIGNIFICANCE_LEVEL) if verbose else None

        diagnostics = self._build_diagnostics(sku_id, aligned, partition, test, fitted, forecast, verbose)
        if verbose:
            diagnostics["vif"] = compute_vif(train, regressors)
            significant = [entry.name for entry in drivers.significant_drivers()]
            LOGGER.info(
                "%s: %s, AIC=%.2f, significant drivers: %s",
                sku_id,
                fitted.descriptor,
                fitted.aic,
                ", ".join(significant) if significant else "none",
            )

        return CrystalBallResult(forecast=forecast, drivers=drivers, diagnostics=diagnostics)

    def _build_diagnostics(
        self,
        sku_id: str,
        aligned: pd.DataFrame,
        partition: Partition,
        test: pd.DataFrame,
        fitted: FittedModel,
        forecast: ForecastResult,
        verbose: bool,
    ) -> Dict[str, Any]:
        target_col = self.dataset.target_column
        raw_actuals = partition.test[target_col]

        diagnostics: Dict[str, Any] = {
            "sku_id": sku_id,
            "model": fitted.descriptor,
            "order": fitted.order,
            "seasonal_order": fitted.seasonal_order,
            "criterion": fitted.criterion,
            "aic": fitted.aic,
            "score": fitted.score,
            "train_size": partition.train_size,
            "test_size": partition.test_size,
            "candidates_evaluated": len(fitted.candidates),
            "fit_warnings": list(fitted.warnings),
            "missing_weeks": len(missing_weeks(aligned)),
            "missing_values": count_missing(aligned),
            "ljung_box_pvalue": self._ljung_box(fitted),
            "metrics": calculate_metrics(raw_actuals.to_numpy(), forecast.points.to_numpy()),
            "test_actuals": test[target_col].to_numpy(),
        }
        diagnostics.update(partition.date_ranges())
        if verbose:
            diagnostics["search_log"] = [
                {
                    "order": candidate.order,
                    "seasonal_order": candidate.seasonal_order,
                    "score": candidate.score,
                    "converged": candidate.converged,
                }
                for candidate in fitted.candidates
            ]
        return diagnostics

    def _ljung_box(self, fitted: FittedModel) -> Optional[float]:
        """Worst-case Ljung-Box p-value of the training residuals."""
        residuals = np.asarray(fitted.results.resid, dtype=float)
        residuals = residuals[np.isfinite(residuals)]
        lags = [lag for lag in self.config.LJUNG_BOX_LAGS if lag < residuals.size]
        if not lags:
            return None
        lb = acorr_ljungbox(residuals, lags=lags, return_df=True)
        return float(lb["lb_pvalue"].min())


__all__ = ["BatchResult", "CrystalBall", "CrystalBallResult"]
