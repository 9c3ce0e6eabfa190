import matplotlib

matplotlib.use("Agg")

import numpy as np
import pandas as pd
import pytest


@pytest.fixture
def stock_frame():
    """Random-walk highs with a weekly cycle, lows below them, noisy fluctuation."""
    rng = np.random.default_rng(7)
    n = 400
    t = np.arange(n)
    high = 100 + np.cumsum(rng.normal(0, 0.5, n)) + 2 * np.sin(2 * np.pi * t / 5)
    low = high - 1 - np.abs(rng.normal(0, 0.5, n))
    fluctuation = rng.normal(0, 1, n)
    dates = pd.bdate_range("2018-01-01", periods=n)
    return pd.DataFrame({"Date": dates.strftime("%Y-%m-%d"), "High": high,
                         "Low": low, "Fluctuation": fluctuation})


@pytest.fixture
def stock_csv(tmp_path, stock_frame):
    path = tmp_path / "ExampleStock.csv"
    stock_frame.to_csv(path, index=False)
    return path


@pytest.fixture
def ohlc_bars():
    """Daily bars shaped like a single-ticker yfinance download (MultiIndex columns)."""
    rng = np.random.default_rng(11)
    n = 120
    close = 50 + np.cumsum(rng.normal(0, 0.4, n))
    open_ = close + rng.normal(0, 0.3, n)
    high = np.maximum(open_, close) + np.abs(rng.normal(0, 0.2, n))
    low = np.minimum(open_, close) - np.abs(rng.normal(0, 0.2, n))
    bars = pd.DataFrame({"Close": close, "High": high, "Low": low, "Open": open_,
                         "Volume": rng.integers(1000, 5000, n)},
                        index=pd.bdate_range("2019-01-01", periods=n, name="Date"))
    bars.columns = pd.MultiIndex.from_product([bars.columns, ["TEST"]], names=["Price", "Ticker"])
    return bars


@pytest.fixture
def fake_download(monkeypatch, ohlc_bars):
    """Replace yf.download with a local frame; records the requested tickers."""
    from topoforecast import data

    calls = []

    def download(ticker, start=None, end=None, progress=True):
        calls.append((ticker, start, end))
        return ohlc_bars.copy()

    monkeypatch.setattr(data.yf, "download", download)
    return calls
