"""
Forecast comparison with the discrete Fréchet distance.

A forecast and the realised series are treated as curves of (t, value)
points. Distances are computed per consecutive segment and summed. Whether a
model's summed distance is unusual is judged against a null distribution built
by permuting the reference model's residuals in time.
"""

from __future__ import annotations

import logging
from typing import Mapping

import numpy as np
import pandas as pd
from scipy import stats
from scipy.spatial.distance import cdist

logger = logging.getLogger(__name__)


# =========================
# DISTANCES
# =========================
def as_curve(values) -> np.ndarray:
    """(t, value) points with t = 0, 1, ..."""
    values = np.asarray(values, dtype=float).ravel()
    return np.column_stack([np.arange(len(values), dtype=float), values])


def frechet_distance(p, q) -> float:
    """
    Discrete Fréchet distance between two polygonal curves (Eiter & Mannila).

        ca[i, j] = max(d(p_i, q_j), min(ca[i-1, j], ca[i-1, j-1], ca[i, j-1]))
    """
    p = np.asarray(p, dtype=float)
    q = np.asarray(q, dtype=float)
    p = p[:, None] if p.ndim == 1 else p
    q = q[:, None] if q.ndim == 1 else q
    if len(p) == 0 or len(q) == 0:
        raise ValueError("Fréchet distance needs two non-empty curves")

    d = cdist(p, q)
    ca = np.empty_like(d)
    ca[:, 0] = np.maximum.accumulate(d[:, 0])
    ca[0, :] = np.maximum.accumulate(d[0, :])
    for i in range(1, d.shape[0]):
        for j in range(1, d.shape[1]):
            ca[i, j] = max(min(ca[i - 1, j], ca[i - 1, j - 1], ca[i, j - 1]), d[i, j])
    return float(ca[-1, -1])


def segment_distances(actual, forecast, segment_length: int) -> np.ndarray:
    """Fréchet distance on consecutive segments; the last one may be shorter."""
    actual = np.asarray(actual, dtype=float).ravel()
    forecast = np.asarray(forecast, dtype=float).ravel()
    if len(actual) != len(forecast):
        raise ValueError(f"length mismatch: {len(actual)} actual vs {len(forecast)} forecast")
    if segment_length < 1:
        raise ValueError(f"segment_length must be >= 1, got {segment_length}")

    pa, pf = as_curve(actual), as_curve(forecast)
    return np.array([
        frechet_distance(pa[s:s + segment_length], pf[s:s + segment_length])
        for s in range(0, len(actual), segment_length)
    ])


def summed_frechet(actual, forecast, segment_length: int) -> float:
    return float(segment_distances(actual, forecast, segment_length).sum())


# =========================
# NULL DISTRIBUTION + INTERVALS
# =========================
def residual_permutation_null(actual, forecast, segment_length: int,
                              n_permutations: int = 1000, seed: int = 42) -> np.ndarray:
    """Summed distances of actual + (time-permuted residuals of `forecast`)."""
    if n_permutations < 1:
        raise ValueError(f"n_permutations must be >= 1, got {n_permutations}")
    actual = np.asarray(actual, dtype=float).ravel()
    resid = np.asarray(forecast, dtype=float).ravel() - actual
    rng = np.random.default_rng(seed)
    return np.array([
        summed_frechet(actual, actual + rng.permutation(resid), segment_length)
        for _ in range(n_permutations)
    ])


def null_interval(null, confidence: float = 0.95) -> tuple[float, float]:
    """Central percentile interval of a null distribution."""
    if not 0.0 < confidence < 1.0:
        raise ValueError(f"confidence must be in (0, 1), got {confidence}")
    alpha = (1.0 - confidence) / 2.0
    lo, hi = np.quantile(np.asarray(null, dtype=float), [alpha, 1.0 - alpha])
    return float(lo), float(hi)


def bootstrap_ci(distances, confidence: float = 0.95, n_bootstrap: int = 2000,
                 seed: int = 42) -> tuple[float, float]:
    """Percentile bootstrap interval for the sum of per-segment distances."""
    distances = np.asarray(distances, dtype=float).ravel()
    if distances.size == 0:
        raise ValueError("bootstrap needs at least one distance")
    if distances.size == 1:
        # a single segment cannot be resampled
        total = float(distances[0])
        return total, total
    res = stats.bootstrap((distances,), np.sum, confidence_level=confidence,
                          n_resamples=n_bootstrap, method="percentile", random_state=seed)
    return float(res.confidence_interval.low), float(res.confidence_interval.high)


def compare_forecasts(actual, forecasts: Mapping[str, np.ndarray], reference: str,
                      segment_length: int = 5, n_permutations: int = 1000,
                      confidence: float = 0.95, n_bootstrap: int = 2000,
                      seed: int = 42) -> dict:
    """
    Summed Fréchet distance per model against the reference model's null.

    p_value = (1 + #{null >= observed}) / (1 + n_permutations)
    """
    if reference not in forecasts:
        raise ValueError(f"reference {reference!r} not among {sorted(forecasts)}")

    null = residual_permutation_null(actual, forecasts[reference], segment_length,
                                     n_permutations=n_permutations, seed=seed)
    lo, hi = null_interval(null, confidence)

    rows = {}
    for name, forecast in forecasts.items():
        seg = segment_distances(actual, forecast, segment_length)
        observed = float(seg.sum())
        b_lo, b_hi = bootstrap_ci(seg, confidence, n_bootstrap=n_bootstrap, seed=seed)
        rows[name] = {
            "summed_frechet": observed,
            "boot_lo": b_lo,
            "boot_hi": b_hi,
            "p_value": (1 + int(np.sum(null >= observed))) / (1 + len(null)),
            "inside_null": bool(lo <= observed <= hi),
        }
        logger.info("Fréchet %s: summed %.4f, null interval (%.4f, %.4f)", name, observed, lo, hi)

    return {
        "table": pd.DataFrame.from_dict(rows, orient="index").rename_axis("model"),
        "null": null,
        "null_interval": (lo, hi),
    }
