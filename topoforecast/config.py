"""Fixed hyperparameters for the three analyses."""

from __future__ import annotations

import copy
from typing import Any, Mapping


# =========================
# CONFIG
# =========================
CONFIG = {
    # Input
    "csv_path": "ExampleStock.csv",
    "target": "high",            # forecast target (one of high/low/fluctuation)
    "test_size": 20,             # last N rows form the test window

    # Morse-Smale clustering (x = high/low, y = fluctuation)
    "ms_knn": 15,                # neighbours in the kNN graph
    "ms_persistence": 0.1,       # fraction of range(y) below which extrema merge
    "ms_bandwidth": 1.0,         # Gaussian kernel bandwidth for soft memberships

    # MSSA
    "ssa_window": 30,            # L
    "ssa_rank": 5,               # r leading components

    # Time-lagged KNN
    "knn_lags": 1,
    "knn_max_k": 300,
    "knn_skip": 5,               # first candidates excluded from the arg-min

    # Fréchet comparison
    "frechet_segment": 5,
    "n_permutations": 1000,
    "confidence": 0.95,
    "n_bootstrap": 2000,

    "seed": 42,
    "plots": True,
    "save_dir": None,
}


def load_config(overrides: Mapping[str, Any] | None = None) -> dict:
    """Copy of CONFIG with overrides applied; unknown keys raise KeyError."""
    cfg = copy.deepcopy(CONFIG)
    for key, value in (overrides or {}).items():
        if key not in cfg:
            raise KeyError(f"unknown config key: {key!r}")
        cfg[key] = value
    return cfg
