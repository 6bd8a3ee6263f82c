"""
Crystal Ball Configuration
Easily adjustable parameters for the per-SKU forecasting workflow
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple, Union


class CrystalBallConfig:
    """Configuration class for the weekly SKU forecasting pipeline."""

    BASE_DIR = Path(__file__).resolve().parent
    MANAGED_DATA_DIR = BASE_DIR / "managed_data"

    # Data configuration
    DATA_FILE = str(MANAGED_DATA_DIR / "market_panel.csv")
    DATE_COLUMN = "Date"
    SKU_COLUMN = "sku_id"
    TARGET_COLUMN = "ValueSalesMLC"
    SKU_KEY_COLUMNS: Tuple[str, ...] = (
        "Category",
        "Company",
        "Brand",
        "Form",
        "Concentration",
        "SecondBenefit",
        "NumberOfJobs",
        "BasicSize",
        "Item",
    )
    SKU_KEY_SEPARATOR = " | "
    REGRESSOR_COLUMNS: Tuple[str, ...] = (
        "WeightedDistribution",
        "WDFeature",
        "WDDisplay",
        "WDPriceCut",
        "PPSU",
    )

    # Time grid and partitioning
    WEEK_DAYS = 7
    SPLIT_FRACTION = 0.85

    # Interpolation ("linear" or "seasonal")
    INTERPOLATION_METHOD = "linear"

    # Seasonality (weekly data with an annual cycle)
    SEASONAL_PERIOD = 52
    SEASONAL_STRENGTH_THRESHOLD = 0.64  # Seasonal differencing when strength exceeds this

    # Differencing tests ("kpss" or "adf")
    STATIONARITY_TEST = "kpss"
    STATIONARITY_ALPHA = 0.05

    # Order search bounds
    MAX_P = 5
    MAX_D = 2
    MAX_Q = 5
    MAX_SEASONAL_P = 2
    MAX_SEASONAL_D = 1
    MAX_SEASONAL_Q = 2
    MAX_ORDER = 5  # Upper bound on p + q + P + Q for exhaustive search
    STEPWISE = True
    INFORMATION_CRITERION = "aic"  # "aic", "aicc" or "bic"
    MAX_SEARCH_ITERATIONS = 94  # Cap on fitted candidates per SKU

    # SARIMAX estimation
    FIT_MAXITER = 200
    MAX_FIT_RETRIES = 2
    ENFORCE_STATIONARITY = True
    ENFORCE_INVERTIBILITY = True

    # Forecast intervals
    CONFIDENCE_LEVELS: Tuple[float, ...] = (0.80, 0.95)
    ENFORCE_NON_NEGATIVE_FORECASTS = True

    # Driver attribution
    SIGNIFICANCE_LEVEL = 0.05
    LJUNG_BOX_LAGS: Tuple[int, ...] = (10,)

    # Batch execution
    N_JOBS = 1

    # Output configuration
    SAVE_RESULTS = True
    RESULTS_FILE = "crystal_ball_forecasts.csv"
    DRIVERS_FILE = "crystal_ball_drivers.csv"

    def __init__(self, **overrides: Any) -> None:
        unknown = [key for key in overrides if not self._is_setting(key)]
        if unknown:
            raise ValueError(f"Unknown configuration setting(s): {', '.join(sorted(unknown))}")

        for key, value in overrides.items():
            setattr(self, key, value)

        self._validate()

    @classmethod
    def from_json(cls, path: Union[str, Path], **extra: Any) -> "CrystalBallConfig":
        """Build a configuration from a JSON object of setting overrides."""
        with Path(path).open(encoding="utf-8") as handle:
            payload = json.load(handle)
        if not isinstance(payload, dict):
            raise ValueError(f"Configuration file {path} must contain a JSON object")
        return cls.from_mapping(payload, **extra)

    @classmethod
    def from_mapping(cls, mapping: Optional[Mapping[str, Any]] = None, **extra: Any) -> "CrystalBallConfig":
        overrides: Dict[str, Any] = {}
        for key, value in (mapping or {}).items():
            # JSON has no tuples; keep tuple-typed settings as tuples
            if isinstance(value, list) and isinstance(getattr(cls, key, None), tuple):
                value = tuple(value)
            overrides[key] = value
        overrides.update(extra)
        return cls(**overrides)

    @classmethod
    def _is_setting(cls, key: str) -> bool:
        return key.isupper() and hasattr(cls, key)

    def as_dict(self) -> Dict[str, Any]:
        """Snapshot of every setting, used in diagnostics and logs."""
        return {
            key: getattr(self, key)
            for key in dir(self)
            if self._is_setting(key) and not callable(getattr(self, key))
        }

    def _validate(self) -> None:
        if not 0.0 < float(self.SPLIT_FRACTION) < 1.0:
            raise ValueError(f"SPLIT_FRACTION must lie in (0, 1), got {self.SPLIT_FRACTION}")
        if self.INTERPOLATION_METHOD not in ("linear", "seasonal"):
            raise ValueError(f"Unsupported INTERPOLATION_METHOD '{self.INTERPOLATION_METHOD}'")
        if self.STATIONARITY_TEST not in ("kpss", "adf"):
            raise ValueError(f"Unsupported STATIONARITY_TEST '{self.STATIONARITY_TEST}'")
        if self.INFORMATION_CRITERION not in ("aic", "aicc", "bic"):
            raise ValueError(f"Unsupported INFORMATION_CRITERION '{self.INFORMATION_CRITERION}'")
        if int(self.SEASONAL_PERIOD) < 2:
            raise ValueError(f"SEASONAL_PERIOD must be at least 2, got {self.SEASONAL_PERIOD}")
        if int(self.MAX_SEARCH_ITERATIONS) < 1:
            raise ValueError("MAX_SEARCH_ITERATIONS must be a positive integer")
        for level in self.CONFIDENCE_LEVELS:
            if not 0.0 < float(level) < 1.0:
                raise ValueError(f"Confidence level {level} must lie in (0, 1)")
        bounds = {
            "MAX_P": self.MAX_P,
            "MAX_D": self.MAX_D,
            "MAX_Q": self.MAX_Q,
            "MAX_SEASONAL_P": self.MAX_SEASONAL_P,
            "MAX_SEASONAL_D": self.MAX_SEASONAL_D,
            "MAX_SEASONAL_Q": self.MAX_SEASONAL_Q,
            "MAX_ORDER": self.MAX_ORDER,
        }
        negative = [name for name, value in bounds.items() if int(value) < 0]
        if negative:
            raise ValueError(f"Order bounds must be non-negative: {', '.join(negative)}")
