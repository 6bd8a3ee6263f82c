"""
Shared utilities for loading the cleaned retail-market panel.

These helpers accept the tidy per-row-per-week export produced by the upstream
cleaning stage, collapse the composite SKU key into a single identifier and
hand back per-SKU observation slices that the forecasting core operates on.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Union

import numpy as np
import pandas as pd

from config import CrystalBallConfig

LOGGER = logging.getLogger(__name__)


@dataclass
class PanelDataset:
    """Container for the harmonised observation table."""

    data: pd.DataFrame
    regressor_columns: List[str]
    target_column: str = "ValueSalesMLC"
    date_column: str = "Date"
    sku_column: str = "sku_id"
    dropped_rows: int = 0

    @property
    def sku_ids(self) -> List[str]:
        return sorted(self.data[self.sku_column].unique().tolist())


def normalize_dates(date_series: pd.Series) -> pd.Series:
    """Convert a heterogeneous date column into pandas timestamps."""
    if date_series.empty:
        return pd.to_datetime(date_series)

    if pd.api.types.is_numeric_dtype(date_series):
        # A fully numeric column holds Excel serial day numbers
        excel_dates = pd.to_datetime("1899-12-30") + pd.to_timedelta(date_series, unit="D")
        return excel_dates.dt.normalize()

    parsed = pd.to_datetime(date_series, errors="coerce")
    unresolved_mask = parsed.isna() & date_series.notna()
    if unresolved_mask.any():
        # Spreadsheet exports sometimes leave dates as Excel serial numbers
        numeric_candidates = pd.to_numeric(
            date_series[unresolved_mask].astype(str).str.strip(),
            errors="coerce",
        )
        excel_mask = numeric_candidates.notna()
        if excel_mask.any():
            excel_dates = pd.to_datetime("1899-12-30") + pd.to_timedelta(
                numeric_candidates[excel_mask].astype(int),
                unit="D",
            )
            parsed.loc[numeric_candidates[excel_mask].index] = excel_dates.values

        remaining = parsed.isna() & date_series.notna()
        if remaining.any():
            samples = date_series[remaining].astype(str).unique().tolist()
            preview = ", ".join(samples[:5])
            raise ValueError(f"Unable to parse Date values: {preview}")

    return parsed.dt.normalize()


def _normalise_numeric_columns(df: pd.DataFrame, columns: Iterable[str]) -> None:
    """Coerce the requested columns to numeric dtype in place."""
    for column in columns:
        if column in df.columns:
            series = df[column]
            if pd.api.types.is_string_dtype(series) or series.dtype == object:
                # Strip common currency formatting artefacts before coercion.
                cleaned = (
                    series.astype("string")
                    .str.strip()
                    .replace({"": pd.NA, "nan": pd.NA, "None": pd.NA}, regex=False)
                    .str.replace(r"[\$,]", "", regex=True)
                )
                df[column] = cleaned
            df[column] = pd.to_numeric(df[column], errors="coerce").astype(float)


def build_sku_ids(
    frame: pd.DataFrame,
    key_columns: Sequence[str],
    separator: str = " | ",
) -> pd.Series:
    """Collapse the composite SKU key into a single string identifier."""
    missing = [column for column in key_columns if column not in frame.columns]
    if missing:
        raise ValueError(f"Panel data missing SKU key column(s): {', '.join(missing)}")

    parts = [
        frame[column].astype("string").str.strip().fillna("")
        for column in key_columns
    ]
    sku_ids = parts[0]
    for part in parts[1:]:
        sku_ids = sku_ids + separator + part
    return sku_ids.astype(str)


def load_panel_dataset(
    source: Union[str, Path, pd.DataFrame, None] = None,
    config: Optional[CrystalBallConfig] = None,
) -> PanelDataset:
    """
    Load the cleaned panel from CSV (or an in-memory frame), build SKU identifiers
    and return the observation table ready for per-SKU forecasting.
    """
    config = config or CrystalBallConfig()
    if source is None:
        source = config.DATA_FILE

    if isinstance(source, pd.DataFrame):
        data = source.copy()
    else:
        data = pd.read_csv(source)

    date_col = config.DATE_COLUMN
    target_col = config.TARGET_COLUMN
    sku_col = config.SKU_COLUMN
    regressors = list(config.REGRESSOR_COLUMNS)

    required = [date_col, target_col] + regressors
    if sku_col not in data.columns:
        required += list(config.SKU_KEY_COLUMNS)
    missing = [column for column in required if column not in data.columns]
    if missing:
        raise ValueError(f"Panel data missing required column(s): {', '.join(missing)}")

    if sku_col not in data.columns:
        data[sku_col] = build_sku_ids(data, config.SKU_KEY_COLUMNS, config.SKU_KEY_SEPARATOR)
    else:
        data[sku_col] = data[sku_col].astype("string").str.strip()

    data[date_col] = normalize_dates(data[date_col])
    _normalise_numeric_columns(data, [target_col] + regressors)

    data[sku_col] = data[sku_col].replace({"": pd.NA})
    usable = data[date_col].notna() & data[sku_col].notna()
    dropped = int((~usable).sum())
    if dropped:
        LOGGER.warning("Dropping %d panel rows without a date or SKU identifier", dropped)
    data = data.loc[usable].copy()
    data[sku_col] = data[sku_col].astype(str)

    keep = [sku_col, date_col, target_col] + regressors
    data = data[keep].sort_values([sku_col, date_col]).reset_index(drop=True)

    LOGGER.info(
        "Loaded %d observations across %d SKUs",
        len(data),
        data[sku_col].nunique(),
    )

    return PanelDataset(
        data=data,
        regressor_columns=regressors,
        target_column=target_col,
        date_column=date_col,
        sku_column=sku_col,
        dropped_rows=dropped,
    )


def observations_for_sku(dataset: PanelDataset, sku_id: str) -> pd.DataFrame:
    """Return the observation rows of one SKU (possibly empty)."""
    mask = dataset.data[dataset.sku_column] == sku_id
    return dataset.data.loc[mask].reset_index(drop=True)


def sample_sku_ids(dataset: PanelDataset, n: int, seed: Optional[int] = None) -> List[str]:
    """Draw ``n`` distinct SKU identifiers using a generator seeded for this call only."""
    available = dataset.sku_ids
    if n <= 0 or not available:
        return []
    rng = np.random.default_rng(seed)
    size = min(int(n), len(available))
    picked = rng.choice(len(available), size=size, replace=False)
    return [available[index] for index in sorted(picked.tolist())]


__all__ = [
    "PanelDataset",
    "build_sku_ids",
    "load_panel_dataset",
    "normalize_dates",
    "observations_for_sku",
    "sample_sku_ids",
]
