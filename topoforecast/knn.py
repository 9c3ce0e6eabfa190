"""
Time-lagged k-nearest-neighbor regression and its brute-force k search.
"""

from __future__ import annotations

import logging
from typing import Sequence

import numpy as np
import pandas as pd
from sklearn.neighbors import KNeighborsRegressor

logger = logging.getLogger(__name__)


def lagged_design(frame: pd.DataFrame, target: str, n_lags: int,
                  columns: Sequence[str] | None = None) -> tuple[pd.DataFrame, pd.Series]:
    """
    Features: every column shifted by 1..n_lags rows. Response: target at t.

    Rows without a full lag history are dropped, so the first n_lags rows
    never appear in the result.
    """
    if n_lags < 1:
        raise ValueError(f"n_lags must be >= 1, got {n_lags}")
    if target not in frame.columns:
        raise ValueError(f"unknown target column {target!r}")
    columns = list(frame.columns if columns is None else columns)

    lagged = {f"{col}_lag{lag}": frame[col].shift(lag)
              for lag in range(1, n_lags + 1) for col in columns}
    X = pd.DataFrame(lagged, index=frame.index)
    keep = X.notna().all(axis=1)
    return X[keep], frame.loc[keep, target]


def knn_sse_curve(X_train, y_train, X_test, y_test, max_k: int = 300) -> pd.Series:
    """Sum of squared test residuals for k = 1..min(max_k, n_train)."""
    X_train = np.asarray(X_train, dtype=float)
    y_train = np.asarray(y_train, dtype=float)
    X_test = np.asarray(X_test, dtype=float)
    y_test = np.asarray(y_test, dtype=float)

    k_max = min(max_k, len(X_train))
    sse = {}
    for k in range(1, k_max + 1):
        model = KNeighborsRegressor(n_neighbors=k).fit(X_train, y_train)
        resid = y_test - model.predict(X_test)
        sse[k] = float(resid @ resid)
    return pd.Series(sse, name="sse").rename_axis("k")


def select_k(sse: pd.Series, skip: int = 5) -> int:
    """Arg-min of the SSE curve, ignoring the first `skip` candidates (too unstable)."""
    candidates = sse.iloc[skip:]
    if candidates.empty:
        raise ValueError(f"no k left after skipping the first {skip} of {len(sse)} candidates")
    return int(candidates.idxmin())


def knn_forecast(frame: pd.DataFrame, target: str, test_size: int, n_lags: int = 1,
                 max_k: int = 300, skip: int = 5) -> dict:
    """
    One-step-ahead KNN forecast of the last `test_size` rows of `target`.

    Returns a dict with the chosen k, the SSE curve and the test predictions.
    """
    X, y = lagged_design(frame, target, n_lags)
    if test_size >= len(X):
        raise ValueError(f"test_size ({test_size}) leaves no lagged training rows out of {len(X)}")
    cut = len(X) - test_size
    X_train, X_test = X.iloc[:cut], X.iloc[cut:]
    y_train, y_test = y.iloc[:cut], y.iloc[cut:]

    sse = knn_sse_curve(X_train, y_train, X_test, y_test, max_k=max_k)
    best_k = select_k(sse, skip=skip)
    model = KNeighborsRegressor(n_neighbors=best_k).fit(X_train.to_numpy(), y_train.to_numpy())
    pred = pd.Series(model.predict(X_test.to_numpy()), index=y_test.index, name="knn")
    logger.info("KNN: lags=%d, k searched 1..%d, chosen k=%d (SSE %.4f)",
                n_lags, len(sse), best_k, sse[best_k])
    return {"k": best_k, "sse_curve": sse, "prediction": pred}
