"""
Input handling for the stock dataset.

The analyses consume columns 2-4 of the CSV (high, low, daily fluctuation);
column 1 is the date. Row order is taken from the file as-is: lagging and the
train/test split are only meaningful when rows are in date order.
"""

from __future__ import annotations

import logging
from pathlib import Path

import numpy as np
import pandas as pd
import yfinance as yf

logger = logging.getLogger(__name__)

COLUMNS = ["high", "low", "fluctuation"]


# =========================
# CSV INPUT
# =========================
def load_stock_csv(path: str | Path) -> pd.DataFrame:
    """Load the CSV and return a frame with columns high, low, fluctuation."""
    # only empty cells are missing; "n/a" and similar stay text and are rejected below
    raw = pd.read_csv(path, keep_default_na=False, na_values=[""])
    if raw.shape[1] < 4:
        raise ValueError(f"{path}: expected at least 4 columns, got {raw.shape[1]}")
    if raw.empty:
        raise ValueError(f"{path}: no rows")

    frame = raw.iloc[:, 1:4].copy()
    frame.columns = COLUMNS
    for col in COLUMNS:
        converted = pd.to_numeric(frame[col], errors="coerce")
        bad = converted.isna() & frame[col].notna()
        if bad.any():
            row = int(np.flatnonzero(bad.to_numpy())[0])
            raise ValueError(f"{path}: column {col!r} is not numeric "
                             f"(row {row}: {frame[col].iloc[row]!r})")
        if converted.notna().sum() == 0:
            raise ValueError(f"{path}: column {col!r} is empty")
        frame[col] = converted.astype(float)

    first = raw.iloc[:, 0]
    dates = None if pd.api.types.is_numeric_dtype(first) else pd.to_datetime(first, errors="coerce")
    if dates is not None and dates.notna().all():
        frame.index = pd.DatetimeIndex(dates, name="date")
        if not frame.index.is_monotonic_increasing:
            logger.warning("%s: dates are not increasing; row order kept as in file", path)

    n_before = len(frame)
    frame = frame.dropna()
    if len(frame) < n_before:
        logger.info("dropped %d rows with missing values", n_before - len(frame))
    if frame.empty:
        raise ValueError(f"{path}: no complete rows")
    return frame


def split_by_row(frame: pd.DataFrame, test_size: int) -> tuple[pd.DataFrame, pd.DataFrame]:
    """Fixed row-index split: the last `test_size` rows are the test window."""
    if test_size < 1:
        raise ValueError(f"test_size must be >= 1, got {test_size}")
    if test_size >= len(frame):
        raise ValueError(f"test_size ({test_size}) leaves no training rows out of {len(frame)}")
    cut = len(frame) - test_size
    return frame.iloc[:cut], frame.iloc[cut:]


# =========================
# EXAMPLE DATA
# =========================
def download_prices(ticker: str, start: str, end: str) -> pd.DataFrame:
    """Download daily OHLC bars from Yahoo Finance."""
    data = yf.download(ticker, start=start, end=end, progress=False)
    if isinstance(data.columns, pd.MultiIndex):
        data.columns = data.columns.get_level_values(0)
    missing = {"Open", "High", "Low", "Close"} - set(data.columns)
    if missing:
        raise ValueError(f"{ticker}: download is missing columns {sorted(missing)}")
    return data[["Open", "High", "Low", "Close"]].dropna()


def build_example_frame(bars: pd.DataFrame) -> pd.DataFrame:
    """Date, High, Low, Fluctuation layout; fluctuation is close minus open."""
    out = pd.DataFrame({
        "Date": pd.DatetimeIndex(bars.index).strftime("%Y-%m-%d"),
        "High": bars["High"].to_numpy(dtype=float),
        "Low": bars["Low"].to_numpy(dtype=float),
        "Fluctuation": (bars["Close"] - bars["Open"]).to_numpy(dtype=float),
    })
    return out.replace([np.inf, -np.inf], np.nan).dropna().reset_index(drop=True)


def write_example_csv(ticker: str, start: str, end: str, path: str | Path) -> Path:
    """Download `ticker` and write it in the layout load_stock_csv expects."""
    frame = build_example_frame(download_prices(ticker, start, end))
    path = Path(path)
    frame.to_csv(path, index=False)
    logger.info("wrote %d rows for %s to %s", len(frame), ticker, path)
    return path
