"""
Driver attribution for fitted SARIMAX models.

Each estimated coefficient gets a Wald test (coefficient / standard error) with a
two-sided normal p-value. Regressor coefficients are also expressed as
standardised effects so drivers measured in different units (distribution
points, price per unit) can be ranked against each other.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from statistics import NormalDist
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from statsmodels.stats.outliers_influence import variance_inflation_factor

from arima_order_selector import FittedModel

REPORT_COLUMNS = [
    "name",
    "kind",
    "coefficient",
    "std_error",
    "statistic",
    "p_value",
    "significant",
    "importance",
]


@dataclass(frozen=True)
class DriverEntry:
    """Significance test outcome for a single coefficient."""

    name: str
    kind: str  # "regressor", "arima" or "intercept"
    coefficient: float
    std_error: float
    statistic: float
    p_value: float
    significant: bool
    importance: float


@dataclass(frozen=True)
class DriverReport:
    """Per-coefficient tests in the order the model estimates them."""

    entries: Tuple[DriverEntry, ...]
    significance_level: float = 0.05

    def __len__(self) -> int:
        return len(self.entries)

    def regressors(self) -> List[DriverEntry]:
        return [entry for entry in self.entries if entry.kind == "regressor"]

    def significant_drivers(self) -> List[DriverEntry]:
        """Significant regressors, most important first."""
        drivers = [entry for entry in self.regressors() if entry.significant]
        return sorted(drivers, key=lambda entry: entry.importance, reverse=True)

    def sorted_by_significance(self) -> "DriverReport":
        ordered = sorted(self.entries, key=lambda entry: (entry.p_value, -entry.importance))
        return replace(self, entries=tuple(ordered))

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(
            [[getattr(entry, column) for column in REPORT_COLUMNS] for entry in self.entries],
            columns=REPORT_COLUMNS,
        )


def _coefficient_kind(name: str, exog_names: Sequence[str]) -> str:
    if name in exog_names:
        return "regressor"
    if name in ("intercept", "drift"):
        return "intercept"
    return "arima"


def _wald_test(coefficient: float, std_error: float) -> Tuple[float, float]:
    """Wald statistic and two-sided normal p-value; undefined SE gives p=1."""
    if not (np.isfinite(coefficient) and np.isfinite(std_error)) or std_error <= 0:
        return math.nan, 1.0
    statistic = coefficient / std_error
    p_value = 2.0 * (1.0 - NormalDist().cdf(abs(statistic)))
    return float(statistic), float(min(max(p_value, 0.0), 1.0))


def attribute_drivers(fitted: FittedModel, significance_level: float = 0.05) -> DriverReport:
    """Test every coefficient of ``fitted`` for significance."""
    params = fitted.params
    bse = fitted.bse
    exog_names = list(fitted.exog_names)
    exog_scales: Dict[str, float] = dict(zip(exog_names, fitted.exog_scales))
    target_scale = fitted.target_scale

    entries: List[DriverEntry] = []
    for name in fitted.coefficient_names:
        coefficient = float(params[name])
        std_error = float(bse[name])
        statistic, p_value = _wald_test(coefficient, std_error)
        kind = _coefficient_kind(name, exog_names)

        if kind == "regressor":
            scale = exog_scales.get(name, math.nan)
            if np.isfinite(scale) and np.isfinite(target_scale) and target_scale > 0:
                importance = abs(coefficient) * scale / target_scale
            else:
                importance = 0.0
        else:
            importance = abs(coefficient) if np.isfinite(coefficient) else 0.0

        entries.append(
            DriverEntry(
                name=name,
                kind=kind,
                coefficient=coefficient,
                std_error=std_error,
                statistic=statistic,
                p_value=p_value,
                significant=p_value < significance_level,
                importance=float(importance),
            )
        )

    return DriverReport(entries=tuple(entries), significance_level=significance_level)


def compute_vif(frame: pd.DataFrame, columns: Optional[Sequence[str]] = None) -> Dict[str, float]:
    """Variance inflation factor per regressor; constant regressors are skipped."""
    columns = list(columns) if columns is not None else list(frame.columns)
    clean = frame[columns].dropna()
    usable = [column for column in columns if clean[column].nunique() > 1]
    if len(usable) < 2 or clean.shape[0] < len(usable) + 1:
        return {column: math.nan for column in columns}

    matrix = clean[usable].to_numpy(dtype=float)
    matrix = np.column_stack([np.ones(matrix.shape[0]), matrix])

    values: Dict[str, float] = {column: math.nan for column in columns}
    with np.errstate(divide="ignore", invalid="ignore"):
        for idx, column in enumerate(usable):
            try:
                values[column] = float(variance_inflation_factor(matrix, idx + 1))
            except np.linalg.LinAlgError:
                values[column] = math.inf
    return values


__all__ = ["DriverEntry", "DriverReport", "attribute_drivers", "compute_vif"]
