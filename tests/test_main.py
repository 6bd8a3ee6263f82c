import json

import pandas as pd

from conftest import make_panel
from main import main


def _write_inputs(tmp_path):
    data_path = tmp_path / "panel.csv"
    make_panel(items=("A100",)).to_csv(data_path, index=False)
    config_path = tmp_path / "settings.json"
    config_path.write_text(
        json.dumps(
            {
                "MAX_P": 1,
                "MAX_Q": 1,
                "MAX_SEARCH_ITERATIONS": 6,
                "STATIONARITY_ALPHA": 0.01,
                "DRIVERS_FILE": str(tmp_path / "drivers.csv"),
            }
        ),
        encoding="utf-8",
    )
    return data_path, config_path


def test_cli_writes_forecasts_and_reports_skipped_skus(tmp_path, capsys):
    data_path, config_path = _write_inputs(tmp_path)
    output_path = tmp_path / "out" / "forecasts.csv"
    sku_id = "Laundry | Acme | Brand0 | Liquid | Regular | None | 20 | 1.5 | A100"

    batch = main(
        [
            "--data-path", str(data_path),
            "--config", str(config_path),
            "--sku", sku_id,
            "--sku", "ghost",
            "--output-path", str(output_path),
            "--verbose",
        ]
    )

    assert list(batch.results) == [sku_id]
    assert "ghost" in batch.failures

    forecasts = pd.read_csv(output_path)
    assert len(forecasts) == 9
    assert set(forecasts["sku_id"]) == {sku_id}

    drivers = pd.read_csv(tmp_path / "drivers.csv")
    assert "WDPriceCut" in set(drivers["name"])

    captured = capsys.readouterr().out
    assert "Skipped SKUs" in captured
    assert "ghost: InsufficientData" in captured


def test_cli_sample_uses_seed(tmp_path):
    data_path, config_path = _write_inputs(tmp_path)

    batch = main(
        [
            "--data-path", str(data_path),
            "--config", str(config_path),
            "--sample", "1",
            "--seed", "3",
            "--output-path", str(tmp_path / "forecasts.csv"),
        ]
    )

    assert len(batch.results) + len(batch.failures) == 1
