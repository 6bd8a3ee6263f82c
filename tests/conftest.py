import sys
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


REGRESSORS = ["WeightedDistribution", "WDFeature", "WDDisplay", "WDPriceCut", "PPSU"]


def make_panel(n_weeks=60, items=("A100", "B200"), seed=7, start="2020-01-06"):
    """Synthetic weekly panel where price cuts and price per unit drive sales."""
    rng = np.random.default_rng(seed)
    dates = pd.date_range(start, periods=n_weeks, freq="7D")
    rows = []
    for position, item in enumerate(items):
        distribution = 70 + rng.normal(0, 5, n_weeks)
        feature = rng.uniform(0, 20, n_weeks)
        display = rng.uniform(0, 15, n_weeks)
        price_cut = rng.uniform(0, 30, n_weeks)
        ppsu = 2.5 + rng.normal(0, 0.2, n_weeks)
        noise = rng.normal(0, 1.0, n_weeks)
        sales = 50 + 0.5 * distribution + 1.5 * price_cut - 8.0 * ppsu + noise
        for week in range(n_weeks):
            rows.append(
                {
                    "Category": "Laundry",
                    "Company": "Acme",
                    "Brand": f"Brand{position}",
                    "Form": "Liquid",
                    "Concentration": "Regular",
                    "SecondBenefit": "None",
                    "NumberOfJobs": 20,
                    "BasicSize": 1.5,
                    "Item": item,
                    "ValueSalesMLC": sales[week],
                    "Date": dates[week],
                    "WeightedDistribution": distribution[week],
                    "WDFeature": feature[week],
                    "WDDisplay": display[week],
                    "WDPriceCut": price_cut[week],
                    "PPSU": ppsu[week],
                }
            )
    return pd.DataFrame(rows)


@pytest.fixture
def panel_frame() -> pd.DataFrame:
    return make_panel()

