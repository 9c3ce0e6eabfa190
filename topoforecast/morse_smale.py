"""
Morse-Smale clustering on a k-nearest-neighbor graph.

Every sample follows steepest ascent to a local maximum and steepest descent to
a local minimum of the response y over the domain x. Samples sharing the same
(minimum, maximum) pair form one crystal. Low-persistence extrema are merged
away before the crystals are formed.
"""

from __future__ import annotations

import logging

import numpy as np
import pandas as pd
from scipy.sparse import csr_matrix
from scipy.spatial.distance import cdist
from sklearn.neighbors import NearestNeighbors

logger = logging.getLogger(__name__)


# =========================
# GRAPH + GRADIENT FLOW
# =========================
def knn_graph(x: np.ndarray, knn: int) -> csr_matrix:
    """Symmetric kNN adjacency (i~j when either is among the other's knn)."""
    n = len(x)
    nn = NearestNeighbors(n_neighbors=min(knn + 1, n)).fit(x)
    _, idx = nn.kneighbors(x)

    rows, cols = [], []
    for i, row in enumerate(idx):
        others = row[row != i][:knn]    # duplicates can push self off column 0
        rows.extend([i] * len(others))
        cols.extend(others)

    adj = csr_matrix((np.ones(len(rows)), (rows, cols)), shape=(n, n))
    adj = adj.maximum(adj.T).tocsr()
    adj.sort_indices()
    return adj


def steepest_neighbor(x: np.ndarray, y: np.ndarray, adj: csr_matrix, sign: float) -> np.ndarray:
    """
    Index of the steepest neighbour in direction `sign` (+1 ascent, -1 descent).

    The slope to neighbour j is sign * (y_j - y_i) / ||x_j - x_i||; a sample
    with no positive slope points to itself.
    """
    target = np.arange(len(y))
    for i in range(len(y)):
        nb = adj.indices[adj.indptr[i]:adj.indptr[i + 1]]
        if nb.size == 0:
            continue
        dist = np.maximum(np.linalg.norm(x[nb] - x[i], axis=1), 1e-12)
        slope = sign * (y[nb] - y[i]) / dist
        j = int(np.argmax(slope))
        if slope[j] > 0:
            target[i] = nb[j]
    return target


def follow_to_extremum(target: np.ndarray) -> np.ndarray:
    """Resolve a pointer forest to its roots by pointer jumping."""
    ext = target.copy()
    while True:
        nxt = ext[ext]
        if np.array_equal(nxt, ext):
            return ext
        ext = nxt


# =========================
# PERSISTENCE
# =========================
def merge_tree(values: np.ndarray, adj: csr_matrix) -> tuple[np.ndarray, np.ndarray]:
    """
    0-dimensional persistence of super-level sets over the graph.

    Samples are added from highest to lowest value. When two components meet at
    sample i, the one with the lower peak dies:
        persistence[peak] = values[peak] - values[i]
        merges_into[peak] = peak of the surviving component
    Peaks that never die keep persistence = inf. Pass -y for minima.
    """
    n = len(values)
    order = np.argsort(-values, kind="stable")
    rank = np.empty(n, dtype=int)
    rank[order] = np.arange(n)

    parent = np.arange(n)
    peak = np.arange(n)
    seen = np.zeros(n, dtype=bool)
    persistence = np.full(n, np.inf)
    merges_into = np.arange(n)

    def find(i: int) -> int:
        while parent[i] != i:
            parent[i] = parent[parent[i]]
            i = parent[i]
        return i

    for i in order:
        seen[i] = True
        for j in adj.indices[adj.indptr[i]:adj.indptr[i + 1]]:
            if not seen[j]:
                continue
            ri, rj = find(i), find(j)
            if ri == rj:
                continue
            if rank[peak[ri]] < rank[peak[rj]]:
                keep, drop = ri, rj
            else:
                keep, drop = rj, ri
            dying = peak[drop]
            persistence[dying] = values[dying] - values[i]
            merges_into[dying] = peak[keep]
            parent[drop] = keep

    return persistence, merges_into


def simplify(ext: np.ndarray, persistence: np.ndarray, merges_into: np.ndarray,
             threshold: float) -> np.ndarray:
    """Redirect extrema with persistence below `threshold` to the extremum they merge into."""
    resolved = {}
    for e in np.unique(ext):
        m = int(e)
        while persistence[m] < threshold:
            m = int(merges_into[m])
        resolved[int(e)] = m
    return np.array([resolved[int(e)] for e in ext], dtype=int)


# =========================
# ESTIMATOR
# =========================
class MorseSmaleComplex:
    """
    Morse-Smale partition of samples (x, y).

    Parameters
    ----------
    knn : int
        Neighbours per sample in the kNN graph.
    persistence_level : float
        Extrema whose persistence is below persistence_level * (max(y) - min(y))
        are merged into their parent extremum. 0 keeps every extremum.

    Attributes (after fit)
    ----------------------
    labels_ : crystal label per sample, 0 is the largest crystal
    crystals_ : (n_crystals, 2) array of (minimum index, maximum index)
    minima_, maxima_ : extremum index per sample after simplification
    """

    def __init__(self, knn: int = 15, persistence_level: float = 0.1):
        if knn < 1:
            raise ValueError(f"knn must be >= 1, got {knn}")
        if not 0.0 <= persistence_level <= 1.0:
            raise ValueError(f"persistence_level must be in [0, 1], got {persistence_level}")
        self.knn = knn
        self.persistence_level = persistence_level

    @staticmethod
    def _as_2d(x) -> np.ndarray:
        x = np.asarray(x, dtype=float)
        return x[:, None] if x.ndim == 1 else x

    def fit(self, x, y) -> "MorseSmaleComplex":
        x = self._as_2d(x)
        y = np.asarray(y, dtype=float).ravel()
        n = len(y)
        if len(x) != n:
            raise ValueError(f"x has {len(x)} rows but y has {n}")
        if self.knn > n - 1:
            raise ValueError(f"knn ({self.knn}) must be <= n - 1 ({n - 1})")

        adj = knn_graph(x, self.knn)
        max_of = follow_to_extremum(steepest_neighbor(x, y, adj, +1.0))
        min_of = follow_to_extremum(steepest_neighbor(x, y, adj, -1.0))

        threshold = self.persistence_level * float(y.max() - y.min())
        if threshold > 0:
            max_of = simplify(max_of, *merge_tree(y, adj), threshold)
            min_of = simplify(min_of, *merge_tree(-y, adj), threshold)

        keys = np.stack([min_of, max_of], axis=1)
        uniq, inverse, counts = np.unique(keys, axis=0, return_inverse=True, return_counts=True)
        order = np.lexsort((uniq[:, 1], uniq[:, 0], -counts))
        label_of = np.empty(len(order), dtype=int)
        label_of[order] = np.arange(len(order))

        self.x_, self.y_ = x, y
        self.minima_, self.maxima_ = min_of, max_of
        self.crystals_ = uniq[order]
        self.labels_ = label_of[np.asarray(inverse).reshape(-1)]
        logger.info("Morse-Smale: %d samples, %d maxima, %d minima, %d crystals",
                    n, len(np.unique(max_of)), len(np.unique(min_of)), len(self.crystals_))
        return self

    def fit_predict(self, x, y) -> np.ndarray:
        return self.fit(x, y).labels_

    @property
    def n_crystals(self) -> int:
        self._check_fitted()
        return len(self.crystals_)

    def _check_fitted(self) -> None:
        if not hasattr(self, "labels_"):
            raise RuntimeError("MorseSmaleComplex is not fitted")

    def partition_probabilities(self, x_new, bandwidth: float) -> np.ndarray:
        """
        Soft crystal membership from Gaussian kernels with a fixed bandwidth.

            w_c(x) = sum_{i in c} exp(-||x - x_i||^2 / (2 h^2)),  p_c = w_c / sum w
        """
        self._check_fitted()
        if bandwidth <= 0:
            raise ValueError(f"bandwidth must be > 0, got {bandwidth}")
        x_new = self._as_2d(x_new)
        d2 = cdist(x_new, self.x_, "sqeuclidean")
        # shift by the row minimum so far-away queries do not underflow to 0/0
        kern = np.exp(-(d2 - d2.min(axis=1, keepdims=True)) / (2.0 * bandwidth ** 2))

        weights = np.zeros((len(x_new), self.n_crystals))
        for c in range(self.n_crystals):
            weights[:, c] = kern[:, self.labels_ == c].sum(axis=1)
        return weights / weights.sum(axis=1, keepdims=True)

    def crystal_models(self) -> pd.DataFrame:
        """Least-squares fit y ~ 1 + x within each crystal."""
        self._check_fitted()
        p = self.x_.shape[1]
        rows = []
        for c in range(self.n_crystals):
            mask = self.labels_ == c
            design = np.column_stack([np.ones(mask.sum()), self.x_[mask]])
            yc = self.y_[mask]
            beta, *_ = np.linalg.lstsq(design, yc, rcond=None)
            ss_tot = float(np.sum((yc - yc.mean()) ** 2))
            ss_res = float(np.sum((yc - design @ beta) ** 2))
            r2 = 1.0 - ss_res / ss_tot if ss_tot > 0 else np.nan
            rows.append([beta[0], *beta[1:p + 1], r2])
        cols = ["intercept"] + [f"coef_{k}" for k in range(p)] + ["r2"]
        return pd.DataFrame(rows, columns=cols).rename_axis("crystal")

    def summary(self) -> pd.DataFrame:
        """Size, extremum values, mean response and linear-fit R² per crystal."""
        self._check_fitted()
        y = self.y_
        table = pd.DataFrame({
            "size": np.bincount(self.labels_, minlength=self.n_crystals),
            "min_index": self.crystals_[:, 0],
            "max_index": self.crystals_[:, 1],
            "y_min": y[self.crystals_[:, 0]],
            "y_max": y[self.crystals_[:, 1]],
            "y_mean": [y[self.labels_ == c].mean() for c in range(self.n_crystals)],
        }).rename_axis("crystal")
        return table.join(self.crystal_models()[["r2"]])
