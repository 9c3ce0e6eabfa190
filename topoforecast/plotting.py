"""Plot windows for the clustering and forecasting parts."""

from __future__ import annotations

import logging
from pathlib import Path

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)


def _finish(fig, save_path: str | Path | None) -> None:
    fig.tight_layout()
    if save_path is None:
        plt.show()
    else:
        fig.savefig(save_path, dpi=120)
        logger.info("saved figure to %s", save_path)
    plt.close(fig)


def plot_crystals(frame: pd.DataFrame, labels: np.ndarray,
                  save_path: str | Path | None = None) -> None:
    """High vs low, coloured by Morse-Smale crystal; marker size tracks |fluctuation|."""
    fig, ax = plt.subplots(figsize=(10, 7))
    size = 10 + 60 * np.abs(frame["fluctuation"]) / max(float(np.abs(frame["fluctuation"]).max()), 1e-12)
    sc = ax.scatter(frame["high"], frame["low"], c=labels, s=size, cmap="tab10", alpha=0.8)
    ax.legend(*sc.legend_elements(), title="Crystal", loc="upper left")
    ax.set_title("Morse-Smale crystals of daily fluctuation over (high, low)")
    ax.set_xlabel("High")
    ax.set_ylabel("Low")
    ax.grid(True)
    _finish(fig, save_path)


def plot_forecasts(train: pd.Series, actual: pd.Series, forecasts: dict[str, np.ndarray],
                   history: int = 100, save_path: str | Path | None = None) -> None:
    """Tail of the training series, realised test window and each model's forecast."""
    fig, ax = plt.subplots(figsize=(15, 6))
    tail = train.iloc[-history:]
    ax.plot(tail.index, tail, linewidth=1.4, color="grey", label="Train")
    ax.plot(actual.index, actual, linewidth=1.8, color="black", label="Actual")
    for name, values in forecasts.items():
        ax.plot(actual.index, values, linewidth=1.3, alpha=0.85, marker="o", markersize=3, label=name)
    ax.axvline(actual.index[0], linestyle="--", color="grey", alpha=0.6)
    ax.set_title(f"{actual.name} forecasts over the test window")
    ax.set_ylabel(str(actual.name))
    ax.grid(True)
    ax.legend(loc="upper left")
    _finish(fig, save_path)
