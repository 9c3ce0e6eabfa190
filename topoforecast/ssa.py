"""
Multichannel singular spectrum analysis (MSSA) with recurrent forecasting.

The L-lagged trajectory matrices of all channels are stacked side by side,
so the left singular vectors live in one L-dimensional space shared by every
channel and a single linear recurrence forecasts all of them.
"""

from __future__ import annotations

import logging
from typing import List, Sequence

import numpy as np

logger = logging.getLogger(__name__)


def trajectory_matrix(x: np.ndarray, L: int) -> np.ndarray:
    """Hankel matrix of shape (L, N - L + 1) with H[i, j] = x[i + j]."""
    K = len(x) - L + 1
    return np.stack([x[i:i + K] for i in range(L)])


def diagonal_average(A: np.ndarray) -> np.ndarray:
    """Hankelize: average each anti-diagonal of an (L, K) matrix into a series of length L + K - 1."""
    L, K = A.shape
    flipped = A[::-1]
    return np.array([flipped.diagonal(k).mean() for k in range(-L + 1, K)])


class MSSA:
    """
    Multichannel SSA.

    Parameters
    ----------
    X : array-like of shape (M, N)
        M series of length N each
    L : int
        Window length, 2 <= L <= N - 1
    """

    def __init__(self, X: np.ndarray, L: int):
        self._X = np.asarray(X, dtype=float)
        if self._X.ndim == 1:
            self._X = self._X[None, :]
        if self._X.ndim != 2:
            raise ValueError("X must be 2D array of shape (M, N)")
        if not np.all(np.isfinite(self._X)):
            raise ValueError("X contains non-finite values")

        self.M, self.N = self._X.shape
        if not 2 <= L <= self.N - 1:
            raise ValueError(f"window L must be in [2, {self.N - 1}], got {L}")
        self.L = L
        self.K = self.N - L + 1
        self.n_components = 0
        self._decomposed = False

    def decompose(self, k: int) -> "MSSA":
        """SVD of the stacked trajectory matrix, keeping the first k components."""
        if not 1 <= k <= self.L:
            raise ValueError(f"k must be in [1, {self.L}], got {k}")
        stacked = np.hstack([trajectory_matrix(x, self.L) for x in self._X])
        U, s, Vt = np.linalg.svd(stacked, full_matrices=False)
        self._total = float(np.sum(s ** 2))
        self.U, self.s, self.Vt = U[:, :k], s[:k], Vt[:k]
        self.n_components = k
        self._decomposed = True
        return self

    def _check(self, group: Sequence[int]) -> List[int]:
        if not self._decomposed:
            raise RuntimeError("Call decompose() first")
        group = list(group)
        if not group or min(group) < 0 or max(group) >= self.n_components:
            raise ValueError(f"group must index components 0..{self.n_components - 1}, got {group}")
        return group

    def reconstruct(self, series_idx: int, group: Sequence[int]) -> np.ndarray:
        """Reconstruct one series from the selected components."""
        group = self._check(group)
        cols = slice(series_idx * self.K, (series_idx + 1) * self.K)
        A = (self.U[:, group] * self.s[group]) @ self.Vt[group, cols]
        return diagonal_average(A)

    def reconstruct_all(self, group: Sequence[int]) -> np.ndarray:
        """Reconstructions of shape (M, N)."""
        return np.stack([self.reconstruct(m, group) for m in range(self.M)])

    def variance_explained(self, start: int = 0, end: int = -1) -> float:
        """Share of the total squared singular values held by components start..end (inclusive)."""
        if not self._decomposed:
            raise RuntimeError("Call decompose() first")
        stop = self.n_components if end < 0 else end + 1
        return float(np.sum(self.s[start:stop] ** 2) / self._total)

    def lrr(self, group: Sequence[int]) -> np.ndarray:
        """
        Linear recurrence coefficients R (length L - 1).

            pi = last row of U_group,  nu2 = ||pi||^2
            R  = U_group[:-1] @ pi / (1 - nu2)
        """
        group = self._check(group)
        U = self.U[:, group]
        pi = U[-1]
        nu2 = float(pi @ pi)
        if nu2 >= 1.0 - 1e-12:
            raise ValueError(f"verticality coefficient {nu2:.6f} >= 1; choose another group")
        return U[:-1] @ pi / (1.0 - nu2)

    def forecast(self, series_idx: int, group: Sequence[int], n_forecast: int) -> np.ndarray:
        """Recurrent forecast of one series, continuing its reconstruction."""
        if n_forecast < 1:
            raise ValueError(f"n_forecast must be >= 1, got {n_forecast}")
        R = self.lrr(group)
        series = list(self.reconstruct(series_idx, group))
        for _ in range(n_forecast):
            series.append(float(R @ np.asarray(series[-(self.L - 1):])))
        return np.asarray(series[self.N:])

    def forecast_all(self, group: Sequence[int], n_forecast: int) -> np.ndarray:
        """Forecasts of shape (M, n_forecast)."""
        return np.stack([self.forecast(m, group, n_forecast) for m in range(self.M)])


def mssa_forecast(train: np.ndarray, target_idx: int, L: int, rank: int, horizon: int) -> np.ndarray:
    """Fit MSSA on `train` (N, M) column-per-channel and forecast channel `target_idx`."""
    mssa = MSSA(np.asarray(train, dtype=float).T, L=L).decompose(rank)
    logger.info("MSSA: L=%d, rank=%d, variance explained %.4f",
                L, rank, mssa.variance_explained())
    return mssa.forecast(target_idx, range(rank), horizon)
