"""
Stock time series: topological clustering, forecasting and forecast comparison.

This script runs three independent analyses on one CSV (columns 2-4: high,
low, daily fluctuation):
1) Morse-Smale clustering of fluctuation over (high, low)
2) forecasting the target over a fixed test window with MSSA and a
   time-lagged KNN regressor (k picked by brute-force SSE search)
3) comparing both forecasts by summed Fréchet distance against a
   residual-permutation null, with bootstrap intervals

Notes:
- Hyperparameters are fixed in config.CONFIG; the CLI only overrides a few.
- Row order comes from the file; the split is by row index.
"""

from __future__ import annotations

import argparse
import logging
from pathlib import Path

import numpy as np
import pandas as pd

from .config import load_config
from .data import COLUMNS, load_stock_csv, split_by_row, write_example_csv
from .frechet import compare_forecasts
from .knn import knn_forecast
from .morse_smale import MorseSmaleComplex
from .plotting import plot_crystals, plot_forecasts
from .ssa import mssa_forecast

logger = logging.getLogger(__name__)


def _banner(title: str) -> None:
    print("\n" + "=" * 80)
    print(title)
    print("=" * 80)


def _figure_path(cfg: dict, name: str) -> Path | None:
    if cfg["save_dir"] is None:
        return None
    out = Path(cfg["save_dir"])
    out.mkdir(parents=True, exist_ok=True)
    return out / name


# =========================
# PIPELINE
# =========================
def run_clustering(frame: pd.DataFrame, cfg: dict) -> MorseSmaleComplex:
    """Part 1: Morse-Smale crystals of fluctuation over (high, low)."""
    x = frame[["high", "low"]].to_numpy()
    y = frame["fluctuation"].to_numpy()
    msc = MorseSmaleComplex(knn=cfg["ms_knn"], persistence_level=cfg["ms_persistence"]).fit(x, y)

    _banner("MORSE-SMALE CLUSTERING")
    print(msc.summary().to_string(float_format=lambda v: f"{v:.4f}"))

    probs = msc.partition_probabilities(x, bandwidth=cfg["ms_bandwidth"])
    agreement = float(np.mean(probs.argmax(axis=1) == msc.labels_))
    print(f"\nKernel membership (bandwidth {cfg['ms_bandwidth']}) agrees with hard labels "
          f"on {agreement:.1%} of rows")

    if cfg["plots"]:
        plot_crystals(frame, msc.labels_, save_path=_figure_path(cfg, "crystals.png"))
    return msc


def run_forecasting(frame: pd.DataFrame, cfg: dict) -> dict:
    """Part 2: MSSA vs time-lagged KNN on the last test_size rows of the target."""
    target = cfg["target"]
    if target not in COLUMNS:
        raise ValueError(f"target must be one of {COLUMNS}, got {target!r}")
    train, test = split_by_row(frame, cfg["test_size"])
    actual = test[target]

    ssa_pred = mssa_forecast(train[COLUMNS].to_numpy(), COLUMNS.index(target),
                             L=cfg["ssa_window"], rank=cfg["ssa_rank"], horizon=len(test))
    knn = knn_forecast(frame, target, cfg["test_size"], n_lags=cfg["knn_lags"],
                       max_k=cfg["knn_max_k"], skip=cfg["knn_skip"])

    forecasts = {"MSSA": ssa_pred, "KNN": knn["prediction"].to_numpy()}
    errors = pd.DataFrame({
        name: {"mse": float(np.mean((actual.to_numpy() - pred) ** 2)),
               "sse": float(np.sum((actual.to_numpy() - pred) ** 2))}
        for name, pred in forecasts.items()
    }).T.rename_axis("model")

    _banner(f"FORECASTING {target.upper()} ({len(train)} train / {len(test)} test rows)")
    print(f"KNN: k chosen = {knn['k']} (first {cfg['knn_skip']} candidates excluded)")
    print(f"MSSA: window L = {cfg['ssa_window']}, rank = {cfg['ssa_rank']}\n")
    print(errors.to_string(float_format=lambda v: f"{v:.4f}"))

    if cfg["plots"]:
        plot_forecasts(train[target], actual, forecasts,
                       save_path=_figure_path(cfg, "forecasts.png"))
    return {"actual": actual, "forecasts": forecasts, "errors": errors, "knn_k": knn["k"]}


def run_comparison(actual: pd.Series, forecasts: dict, cfg: dict) -> dict:
    """Part 3: summed Fréchet distances against the KNN residual-permutation null."""
    result = compare_forecasts(
        actual.to_numpy(), forecasts, reference="KNN",
        segment_length=cfg["frechet_segment"],
        n_permutations=cfg["n_permutations"],
        confidence=cfg["confidence"],
        n_bootstrap=cfg["n_bootstrap"],
        seed=cfg["seed"],
    )
    lo, hi = result["null_interval"]

    _banner("FRECHET COMPARISON")
    print(result["table"].to_string(float_format=lambda v: f"{v:.4f}"))
    print(f"\nPermutation null ({cfg['n_permutations']} draws) "
          f"{cfg['confidence']:.0%} interval: ({lo:.4f}, {hi:.4f})")
    return result


def run(cfg: dict) -> dict:
    frame = load_stock_csv(cfg["csv_path"])
    logger.info("loaded %d rows from %s", len(frame), cfg["csv_path"])

    msc = run_clustering(frame, cfg)
    forecast = run_forecasting(frame, cfg)
    comparison = run_comparison(forecast["actual"], forecast["forecasts"], cfg)
    return {"clustering": msc, "forecast": forecast, "comparison": comparison}


# =========================
# CLI
# =========================
def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__.strip().splitlines()[0])
    parser.add_argument("--csv", dest="csv_path", help="input CSV (columns 2-4: high, low, fluctuation)")
    parser.add_argument("--target", choices=COLUMNS, help="series to forecast")
    parser.add_argument("--test-size", type=int, help="rows in the test window")
    parser.add_argument("--seed", type=int, help="seed for permutations and bootstrap")
    parser.add_argument("--no-plots", dest="plots", action="store_false", default=None)
    parser.add_argument("--save-dir", help="write figures here instead of showing them")
    parser.add_argument("--download", metavar="TICKER",
                        help="fetch TICKER from Yahoo Finance into --csv before running")
    parser.add_argument("--start", default="2015-01-01", help="download start date")
    parser.add_argument("--end", default="2020-01-01", help="download end date")
    parser.add_argument("--log-level", default="INFO")
    return parser.parse_args(argv)


def main(argv=None) -> None:
    args = parse_args(argv)
    logging.basicConfig(level=args.log_level.upper(),
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    overrides = {key: value for key, value in {
        "csv_path": args.csv_path,
        "target": args.target,
        "test_size": args.test_size,
        "seed": args.seed,
        "plots": args.plots,
        "save_dir": args.save_dir,
    }.items() if value is not None}
    cfg = load_config(overrides)

    if args.download:
        write_example_csv(args.download, args.start, args.end, cfg["csv_path"])

    run(cfg)


if __name__ == "__main__":
    main()
