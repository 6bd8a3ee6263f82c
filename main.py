"""
Main script to run the Crystal Ball SKU forecasting pipeline
Execute this file to forecast held-out weeks and report sales drivers per SKU
"""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import List, Optional, Sequence

import pandas as pd

from config import CrystalBallConfig
from crystal_ball import BatchResult, CrystalBall
from panel_data import load_panel_dataset, sample_sku_ids


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Forecast weekly SKU sales with automatic SARIMAX selection and driver attribution."
    )
    parser.add_argument(
        "--data-path",
        type=Path,
        default=None,
        help="Path to the cleaned panel CSV (defaults to the configured DATA_FILE).",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Optional JSON file with configuration overrides.",
    )
    parser.add_argument(
        "--sku",
        action="append",
        default=[],
        help="SKU identifier to forecast (repeatable). Defaults to every SKU in the panel.",
    )
    parser.add_argument(
        "--sample",
        type=int,
        default=None,
        help="Forecast a random sample of this many SKUs instead of all of them.",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Seed for --sample so the same SKUs are drawn on every run.",
    )
    parser.add_argument(
        "--split-fraction",
        type=float,
        default=None,
        help="Share of each SKU's weeks used for training (defaults to SPLIT_FRACTION).",
    )
    parser.add_argument(
        "--n-jobs",
        type=int,
        default=None,
        help="Number of parallel workers across SKUs (defaults to N_JOBS).",
    )
    parser.add_argument(
        "--output-path",
        type=Path,
        default=None,
        help="Where to write the forecast table (defaults to RESULTS_FILE).",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Run driver attribution and write the driver report.",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Logging level for pipeline progress messages.",
    )
    return parser.parse_args(argv)


def _select_skus(args: argparse.Namespace, available: List[str]) -> List[str]:
    if args.sku:
        unknown = [sku for sku in args.sku if sku not in available]
        if unknown:
            print(f"Warning: SKU(s) not present in the panel: {', '.join(unknown)}")
        return list(args.sku)
    return available


def _print_summary(batch: BatchResult, verbose: bool) -> None:
    print("\n" + "=" * 50)
    print("FORECASTING SUMMARY")
    print("=" * 50)
    print(f"SKUs forecast: {len(batch.results)}")
    print(f"SKUs skipped: {len(batch.failures)}")

    for sku_id, result in batch.results.items():
        diagnostics = result.diagnostics
        metrics = diagnostics.get("metrics", {})
        mae = metrics.get("mae_percent")
        mae_text = "N/A" if mae is None or pd.isna(mae) else f"{mae:.2f}%"
        print(f"  - {sku_id}: {diagnostics['model']} AIC={diagnostics['aic']:.2f} MAE%={mae_text}")
        if verbose and result.drivers is not None:
            drivers = result.drivers.significant_drivers()
            if drivers:
                listed = ", ".join(f"{entry.name} (p={entry.p_value:.3f})" for entry in drivers)
                print(f"      significant drivers: {listed}")
            else:
                print("      significant drivers: none")

    if batch.failures:
        print("\nSkipped SKUs:")
        for sku_id, error in batch.failures.items():
            print(f"  - {sku_id}: {error.kind} ({error.message})")
    print("=" * 50)


def main(argv: Optional[Sequence[str]] = None) -> BatchResult:
    """Main function to execute the per-SKU forecasting pipeline."""
    args = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    print("Crystal Ball SKU Forecasting")
    print("=" * 40)

    config = CrystalBallConfig.from_json(args.config) if args.config else CrystalBallConfig()
    data_source = args.data_path or config.DATA_FILE
    dataset = load_panel_dataset(data_source, config)

    print("\nCurrent Configuration:")
    print(f"  • Data file: {data_source}")
    print(f"  • Split fraction: {args.split_fraction or config.SPLIT_FRACTION}")
    print(f"  • Seasonal period: {config.SEASONAL_PERIOD} weeks")
    print(f"  • Regressors: {', '.join(dataset.regressor_columns)}")
    print(f"  • Interpolation: {config.INTERPOLATION_METHOD}")
    print(f"  • Search: {'stepwise' if config.STEPWISE else 'exhaustive'} by {config.INFORMATION_CRITERION.upper()}")

    if args.sample:
        sku_ids = sample_sku_ids(dataset, args.sample, seed=args.seed)
    else:
        sku_ids = _select_skus(args, dataset.sku_ids)

    if not sku_ids:
        print("\n[ERROR] No SKUs selected; check the panel data and --sku arguments.")
        return BatchResult()

    crystal_ball = CrystalBall(dataset, config)
    batch = crystal_ball.run_many(
        sku_ids,
        split_fraction=args.split_fraction,
        verbose=args.verbose,
        n_jobs=args.n_jobs,
    )

    if config.SAVE_RESULTS and batch.results:
        output_path = Path(args.output_path or config.RESULTS_FILE)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        batch.summary_frame().to_csv(output_path, index=False)
        print(f"\nForecasts saved to {output_path}")

        if args.verbose:
            drivers_path = Path(config.DRIVERS_FILE)
            drivers_path.parent.mkdir(parents=True, exist_ok=True)
            batch.drivers_frame().to_csv(drivers_path, index=False)
            print(f"Driver report saved to {drivers_path}")

    _print_summary(batch, args.verbose)
    return batch


if __name__ == "__main__":
    main()
