"""
Weekly time-grid alignment and chronological train/test partitioning.

Observations arrive as irregular rows (missing weeks simply have no row). The
aligner lays them onto a complete 7-day grid so that downstream models see a
regular series, and the splitter cuts that grid into a training prefix and a
test suffix without shuffling.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np
import pandas as pd

from errors import CadenceMismatch, InsufficientData


@dataclass(frozen=True)
class Partition:
    """Contiguous, non-overlapping training prefix and test suffix."""

    train: pd.DataFrame
    test: pd.DataFrame

    @property
    def train_size(self) -> int:
        return len(self.train)

    @property
    def test_size(self) -> int:
        return len(self.test)

    def date_ranges(self) -> dict:
        return {
            "train_start": self.train.index[0],
            "train_end": self.train.index[-1],
            "test_start": self.test.index[0],
            "test_end": self.test.index[-1],
        }


def _check_weekly_cadence(dates: pd.DatetimeIndex, week_days: int) -> None:
    """
    Raise when consecutive observed dates are not a whole number of weeks apart.

    Every observed row counts, including rows whose values are all missing.
    """
    if len(dates) < 2:
        return
    gaps = np.diff(dates.values).astype("timedelta64[D]").astype(int)
    irregular = np.flatnonzero(gaps % week_days != 0)
    if irregular.size:
        first = int(irregular[0])
        raise CadenceMismatch(
            f"Observations {dates[first].date()} and {dates[first + 1].date()} are "
            f"{gaps[first]} days apart, which is not a multiple of {week_days}"
        )


def align_weekly_grid(
    observations: pd.DataFrame,
    *,
    date_column: str = "Date",
    value_columns: Optional[Sequence[str]] = None,
    week_days: int = 7,
) -> pd.DataFrame:
    """
    Lay one SKU's observations onto a gap-free weekly grid.

    The grid runs from the earliest to the latest observed date in steps of
    ``week_days``. Weeks without a source row are present with ``NaN`` values;
    weeks with a row keep its values verbatim. The cadence check runs over
    every observed row, whether or not its values are missing.
    """
    if observations is None or observations.empty:
        raise InsufficientData("No observations to align")
    if date_column not in observations.columns:
        raise ValueError(f"Observations are missing the '{date_column}' column")

    if value_columns is None:
        value_columns = [col for col in observations.columns if col != date_column]
    value_columns = list(value_columns)

    frame = observations[[date_column] + value_columns].copy()
    frame[date_column] = pd.to_datetime(frame[date_column])
    if frame[date_column].isna().any():
        raise ValueError("Observations must all carry a date")

    frame = frame.drop_duplicates().sort_values(date_column)
    duplicated = frame[date_column].duplicated(keep=False)
    if duplicated.any():
        clash = frame.loc[duplicated, date_column].iloc[0]
        raise CadenceMismatch(f"Conflicting observations reported for week {clash.date()}")

    observed = pd.DatetimeIndex(frame[date_column])
    _check_weekly_cadence(observed, week_days)

    grid = pd.date_range(start=observed[0], end=observed[-1], freq=f"{week_days}D", name=date_column)
    aligned = frame.set_index(date_column).reindex(grid)
    aligned.index.name = date_column
    return aligned


def split_train_test(aligned: pd.DataFrame, split_fraction: float) -> Partition:
    """Split an aligned series positionally into train (prefix) and test (suffix)."""
    if not 0.0 < float(split_fraction) < 1.0:
        raise ValueError(f"split_fraction must lie in (0, 1), got {split_fraction}")

    n_obs = len(aligned)
    if n_obs < 2:
        raise InsufficientData(f"Need at least 2 weekly observations to split, got {n_obs}")

    # Tolerance absorbs binary representation error (0.29 * 100 == 28.999...)
    train_size = int(math.floor(split_fraction * n_obs + 1e-9))
    test_size = n_obs - train_size
    if train_size < 1 or test_size < 1:
        raise InsufficientData(
            f"Split fraction {split_fraction} leaves an empty partition "
            f"(train={train_size}, test={test_size}) for {n_obs} observations"
        )

    return Partition(train=aligned.iloc[:train_size], test=aligned.iloc[train_size:])


def missing_weeks(aligned: pd.DataFrame) -> List[pd.Timestamp]:
    """Grid weeks for which no source row existed (every column missing)."""
    if aligned.empty:
        return []
    mask = aligned.isna().all(axis=1)
    return list(aligned.index[mask])


__all__ = [
    "Partition",
    "align_weekly_grid",
    "missing_weeks",
    "split_train_test",
]
