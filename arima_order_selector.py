"""
Automatic SARIMAX order selection for a single weekly SKU series.

The selector follows the classic two-stage automatic ARIMA workflow:
  * Choose seasonal differencing from seasonal strength, then non-seasonal
    differencing from repeated KPSS (or ADF) tests
  * Conditional on those differences, search (p, q)(P, Q) stepwise from a few
    starting models, or exhaustively over a bounded grid
  * Fit every candidate by maximum likelihood with the regressors as exogenous
    covariates and keep the converged candidate with the lowest AIC
  * Cap the number of fitted candidates so callers can bound latency
"""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

import numpy as np
import pandas as pd
from statsmodels.tsa.statespace.sarimax import SARIMAX

from config import CrystalBallConfig
from errors import InsufficientData, ModelSelectionFailure, RegressorMismatch
from stationarity import estimate_differencing_order, estimate_seasonal_differencing_order

LOGGER = logging.getLogger(__name__)

Order = Tuple[int, int, int]
SeasonalOrder = Tuple[int, int, int, int]


@dataclass(frozen=True)
class CandidateScore:
    """Outcome of fitting one order candidate."""

    order: Order
    seasonal_order: SeasonalOrder
    trend: str
    score: float
    converged: bool
    warnings: Tuple[str, ...] = ()

    @property
    def complexity(self) -> int:
        p, _, q = self.order
        P, _, Q, _ = self.seasonal_order
        return p + q + P + Q


@dataclass(frozen=True)
class FittedModel:
    """Selected SARIMAX structure together with its estimation results."""

    order: Order
    seasonal_order: SeasonalOrder
    trend: str
    criterion: str
    score: float
    aic: float
    exog_names: Tuple[str, ...]
    results: Any  # statsmodels SARIMAXResults
    candidates: Tuple[CandidateScore, ...] = ()
    warnings: Tuple[str, ...] = ()
    target_scale: float = float("nan")
    exog_scales: Tuple[float, ...] = ()

    @property
    def params(self) -> pd.Series:
        return pd.Series(np.asarray(self.results.params, dtype=float), index=self._param_names())

    @property
    def bse(self) -> pd.Series:
        return pd.Series(np.asarray(self.results.bse, dtype=float), index=self._param_names())

    @property
    def coefficient_names(self) -> List[str]:
        """Estimated coefficients, excluding the innovation variance."""
        return [name for name in self._param_names() if name != "sigma2"]

    @property
    def seasonal_period(self) -> int:
        return int(self.seasonal_order[3])

    @property
    def nobs(self) -> int:
        return int(self.results.nobs)

    @property
    def descriptor(self) -> str:
        p, d, q = self.order
        P, D, Q, s = self.seasonal_order
        if s:
            return f"SARIMAX({p},{d},{q})x({P},{D},{Q},{s})"
        return f"ARIMAX({p},{d},{q})"

    def _param_names(self) -> List[str]:
        return [str(name) for name in self.results.model.param_names]


@dataclass
class _SearchState:
    """Mutable bookkeeping for one selection run."""

    evaluated: Dict[Tuple[Order, SeasonalOrder], CandidateScore] = field(default_factory=dict)
    best: Optional[CandidateScore] = None
    best_fit: Any = None
    fits_attempted: int = 0


class ARIMAOrderSelector:
    """Select and fit a SARIMAX model for one interpolated training series."""

    def __init__(self, config: Optional[CrystalBallConfig] = None, **overrides: Any) -> None:
        self.config = config or CrystalBallConfig()
        settings = {
            "seasonal_period": self.config.SEASONAL_PERIOD,
            "max_p": self.config.MAX_P,
            "max_d": self.config.MAX_D,
            "max_q": self.config.MAX_Q,
            "max_seasonal_p": self.config.MAX_SEASONAL_P,
            "max_seasonal_d": self.config.MAX_SEASONAL_D,
            "max_seasonal_q": self.config.MAX_SEASONAL_Q,
            "max_order": self.config.MAX_ORDER,
            "stepwise": self.config.STEPWISE,
            "criterion": self.config.INFORMATION_CRITERION,
            "max_iterations": self.config.MAX_SEARCH_ITERATIONS,
            "stationarity_test": self.config.STATIONARITY_TEST,
            "stationarity_alpha": self.config.STATIONARITY_ALPHA,
            "seasonal_strength_threshold": self.config.SEASONAL_STRENGTH_THRESHOLD,
            "maxiter": self.config.FIT_MAXITER,
            "max_retries": self.config.MAX_FIT_RETRIES,
            "enforce_stationarity": self.config.ENFORCE_STATIONARITY,
            "enforce_invertibility": self.config.ENFORCE_INVERTIBILITY,
        }
        unknown = sorted(set(overrides) - set(settings))
        if unknown:
            raise ValueError(f"Unknown order selector option(s): {', '.join(unknown)}")
        settings.update(overrides)

        self.seasonal_period = int(settings["seasonal_period"])
        self.max_p = int(settings["max_p"])
        self.max_d = int(settings["max_d"])
        self.max_q = int(settings["max_q"])
        self.max_seasonal_p = int(settings["max_seasonal_p"])
        self.max_seasonal_d = int(settings["max_seasonal_d"])
        self.max_seasonal_q = int(settings["max_seasonal_q"])
        self.max_order = int(settings["max_order"])
        self.stepwise = bool(settings["stepwise"])
        self.criterion = str(settings["criterion"])
        self.max_iterations = max(1, int(settings["max_iterations"]))
        self.stationarity_test = str(settings["stationarity_test"])
        self.stationarity_alpha = float(settings["stationarity_alpha"])
        self.seasonal_strength_threshold = float(settings["seasonal_strength_threshold"])
        self.maxiter = int(settings["maxiter"])
        self.max_retries = max(1, int(settings["max_retries"]))
        self.enforce_stationarity = bool(settings["enforce_stationarity"])
        self.enforce_invertibility = bool(settings["enforce_invertibility"])

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def select(self, target: pd.Series, exog: Optional[pd.DataFrame] = None) -> FittedModel:
        """Run the two-stage search and return the best converged model."""
        target, exog = self._prepare_inputs(target, exog)
        n_obs = len(target)

        seasonal = self._seasonal_terms_allowed(n_obs)
        if seasonal:
            big_d = estimate_seasonal_differencing_order(
                target,
                self.seasonal_period,
                threshold=self.seasonal_strength_threshold,
                max_seasonal_d=self.max_seasonal_d,
            )
        else:
            big_d = 0
            LOGGER.info(
                "History of %d weeks is shorter than two seasonal periods (%d); seasonal terms disabled",
                n_obs,
                2 * self.seasonal_period,
            )

        season = self.seasonal_period if seasonal else 0
        differenced = target.diff(season).dropna() if big_d else target
        d = estimate_differencing_order(
            differenced,
            test=self.stationarity_test,
            alpha=self.stationarity_alpha,
            max_d=self.max_d,
        )
        trend = "c" if d + big_d == 0 else "n"
        LOGGER.info("Differencing chosen: d=%d, D=%d (seasonal period %d)", d, big_d, season)

        state = _SearchState()
        if self.stepwise:
            self._stepwise_search(state, target, exog, d, big_d, season, trend)
        else:
            self._exhaustive_search(state, target, exog, d, big_d, season, trend)

        if state.best is None or state.best_fit is None:
            raise ModelSelectionFailure(
                f"None of the {state.fits_attempted} candidate models converged "
                f"(d={d}, D={big_d}, period={season})",
                candidates_tried=state.fits_attempted,
            )

        best = state.best
        fit_warnings = list(dict.fromkeys(best.warnings))
        LOGGER.info(
            "Selected SARIMAX%s x %s with %s=%.2f after %d fits",
            best.order,
            best.seasonal_order,
            self.criterion.upper(),
            best.score,
            state.fits_attempted,
        )

        return FittedModel(
            order=best.order,
            seasonal_order=best.seasonal_order,
            trend=best.trend,
            criterion=self.criterion,
            score=float(best.score),
            aic=float(state.best_fit.aic),
            exog_names=tuple(exog.columns) if exog is not None else (),
            results=state.best_fit,
            candidates=tuple(state.evaluated.values()),
            warnings=tuple(fit_warnings),
            target_scale=float(target.std(ddof=1)) if n_obs > 1 else float("nan"),
            exog_scales=tuple(float(value) for value in exog.std(ddof=1)) if exog is not None else (),
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _prepare_inputs(
        self,
        target: pd.Series,
        exog: Optional[pd.DataFrame],
    ) -> Tuple[pd.Series, Optional[pd.DataFrame]]:
        """Validate shapes and coerce to float with a shared index."""
        target = pd.Series(target, copy=True).astype(float)
        if len(target) < 2:
            raise InsufficientData(f"Need at least 2 training observations, got {len(target)}")
        if target.isna().any():
            raise ValueError("Training target contains missing values; interpolate before selection")

        if exog is None:
            return target, None

        exog = pd.DataFrame(exog).copy()
        if exog.shape[1] == 0:
            return target, None
        if len(exog) != len(target):
            raise RegressorMismatch(
                f"Regressor matrix has {len(exog)} rows but the target has {len(target)}"
            )
        exog = exog.astype(float)
        if exog.isna().any().any():
            raise ValueError("Training regressors contain missing values; interpolate before selection")
        exog.index = target.index
        exog.columns = [str(column) for column in exog.columns]
        return target, exog

    def _seasonal_terms_allowed(self, n_obs: int) -> bool:
        return self.seasonal_period >= 2 and n_obs >= 2 * self.seasonal_period

    def _is_feasible(
        self,
        n_obs: int,
        n_exog: int,
        order: Order,
        seasonal_order: SeasonalOrder,
        trend: str,
    ) -> bool:
        """Reject candidates with more parameters than the sample can identify."""
        p, d, q = order
        P, D, Q, s = seasonal_order
        effective = n_obs - d - D * s
        n_params = p + q + P + Q + n_exog + (1 if trend == "c" else 0) + 1
        if effective <= n_params:
            return False
        return p + P * s < effective and q + Q * s < effective

    def _evaluate(
        self,
        state: _SearchState,
        target: pd.Series,
        exog: Optional[pd.DataFrame],
        order: Order,
        seasonal_order: SeasonalOrder,
        trend: str,
    ) -> Optional[CandidateScore]:
        """Fit a candidate once; remember its score and keep the incumbent fit."""
        key = (order, seasonal_order)
        if key in state.evaluated:
            return state.evaluated[key]
        if state.fits_attempted >= self.max_iterations:
            return None

        n_exog = 0 if exog is None else exog.shape[1]
        if not self._is_feasible(len(target), n_exog, order, seasonal_order, trend):
            return None

        state.fits_attempted += 1
        fit_result, warnings_list = self._fit_sarimax(target, exog, order, seasonal_order, trend)
        score = float("inf")
        converged = fit_result is not None
        if converged:
            value = getattr(fit_result, self.criterion, np.nan)
            if value is not None and np.isfinite(value):
                score = float(value)
            else:
                converged = False
                warnings_list.append(f"non-finite {self.criterion}")

        candidate = CandidateScore(
            order=order,
            seasonal_order=seasonal_order,
            trend=trend,
            score=score,
            converged=converged,
            warnings=tuple(warnings_list),
        )
        state.evaluated[key] = candidate
        LOGGER.debug("Candidate %s x %s -> %s=%s", order, seasonal_order, self.criterion, score)

        if converged and (state.best is None or score < state.best.score):
            state.best = candidate
            state.best_fit = fit_result
        return candidate

    def _fit_sarimax(
        self,
        target: pd.Series,
        exog: Optional[pd.DataFrame],
        order: Order,
        seasonal_order: SeasonalOrder,
        trend: str,
    ) -> Tuple[Optional[Any], List[str]]:
        """Fit SARIMAX with retries and capture warnings."""
        warnings_accumulator: List[str] = []
        methods = ("lbfgs", "powell")

        for attempt in range(self.max_retries):
            method = methods[attempt % len(methods)]
            with warnings.catch_warnings(record=True) as caught:
                warnings.simplefilter("always")
                try:
                    model = SARIMAX(
                        target,
                        exog=exog,
                        order=order,
                        seasonal_order=seasonal_order,
                        trend=trend,
                        enforce_stationarity=self.enforce_stationarity,
                        enforce_invertibility=self.enforce_invertibility,
                    )
                    fit_result = model.fit(
                        disp=False,
                        method=method,
                        maxiter=self.maxiter,
                    )
                except (ValueError, np.linalg.LinAlgError) as exc:
                    warnings_accumulator.append(f"fit_error: {exc}")
                    fit_result = None

            for warning in caught:
                msg = str(warning.message)
                warnings_accumulator.append(msg)

            if fit_result is not None and fit_result.mle_retvals.get("converged", False):
                return fit_result, warnings_accumulator

        return None, warnings_accumulator

    def _starting_candidates(
        self,
        d: int,
        big_d: int,
        season: int,
    ) -> List[Tuple[Order, SeasonalOrder]]:
        """Hyndman-Khandakar starting models, clipped to the configured bounds."""
        raw = [
            ((2, 2), (1, 1)),
            ((0, 0), (0, 0)),
            ((1, 0), (1, 0)),
            ((0, 1), (0, 1)),
        ]
        starts: List[Tuple[Order, SeasonalOrder]] = []
        for (p, q), (P, Q) in raw:
            pair = self._make_pair(p, q, P, Q, d, big_d, season)
            if pair not in starts:
                starts.append(pair)
        return starts

    def _make_pair(
        self,
        p: int,
        q: int,
        P: int,
        Q: int,
        d: int,
        big_d: int,
        season: int,
    ) -> Tuple[Order, SeasonalOrder]:
        p = min(max(p, 0), self.max_p)
        q = min(max(q, 0), self.max_q)
        if season:
            P = min(max(P, 0), self.max_seasonal_p)
            Q = min(max(Q, 0), self.max_seasonal_q)
            return (p, d, q), (P, big_d, Q, season)
        return (p, d, q), (0, 0, 0, 0)

    def _neighbours(self, candidate: CandidateScore, season: int) -> Iterable[Tuple[Order, SeasonalOrder]]:
        """Orders one step away from the incumbent model."""
        p, d, q = candidate.order
        P, big_d, Q, _ = candidate.seasonal_order
        steps = [
            (1, 0, 0, 0), (-1, 0, 0, 0),
            (0, 1, 0, 0), (0, -1, 0, 0),
            (1, 1, 0, 0), (-1, -1, 0, 0),
        ]
        if season:
            steps += [
                (0, 0, 1, 0), (0, 0, -1, 0),
                (0, 0, 0, 1), (0, 0, 0, -1),
                (0, 0, 1, 1), (0, 0, -1, -1),
            ]
        for dp, dq, dP, dQ in steps:
            new_p, new_q, new_P, new_Q = p + dp, q + dq, P + dP, Q + dQ
            if min(new_p, new_q, new_P, new_Q) < 0:
                continue
            if new_p > self.max_p or new_q > self.max_q:
                continue
            if season and (new_P > self.max_seasonal_p or new_Q > self.max_seasonal_q):
                continue
            yield self._make_pair(new_p, new_q, new_P, new_Q, d, big_d, season)

    def _stepwise_search(
        self,
        state: _SearchState,
        target: pd.Series,
        exog: Optional[pd.DataFrame],
        d: int,
        big_d: int,
        season: int,
        trend: str,
    ) -> None:
        for order, seasonal_order in self._starting_candidates(d, big_d, season):
            self._evaluate(state, target, exog, order, seasonal_order, trend)

        improved = state.best is not None
        while improved and state.fits_attempted < self.max_iterations:
            improved = False
            incumbent = state.best
            for order, seasonal_order in self._neighbours(incumbent, season):
                self._evaluate(state, target, exog, order, seasonal_order, trend)
                if state.best is not incumbent:
                    improved = True
                    break

    def _exhaustive_search(
        self,
        state: _SearchState,
        target: pd.Series,
        exog: Optional[pd.DataFrame],
        d: int,
        big_d: int,
        season: int,
        trend: str,
    ) -> None:
        grid: List[Tuple[Order, SeasonalOrder]] = []
        seasonal_p = range(self.max_seasonal_p + 1) if season else range(1)
        seasonal_q = range(self.max_seasonal_q + 1) if season else range(1)
        for p in range(self.max_p + 1):
            for q in range(self.max_q + 1):
                for P in seasonal_p:
                    for Q in seasonal_q:
                        if p + q + P + Q > self.max_order:
                            continue
                        grid.append(self._make_pair(p, q, P, Q, d, big_d, season))

        # Simpler structures first so the iteration cap trims the complex tail
        grid.sort(key=lambda pair: (sum(pair[0]) + sum(pair[1][:3]), pair))
        for order, seasonal_order in grid:
            if state.fits_attempted >= self.max_iterations:
                break
            self._evaluate(state, target, exog, order, seasonal_order, trend)


__all__ = ["ARIMAOrderSelector", "CandidateScore", "FittedModel"]
