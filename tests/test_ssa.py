"""
Tests for multichannel SSA: embedding, reconstruction and recurrent forecasts.
"""

import numpy as np
import pytest

from topoforecast.ssa import MSSA, diagonal_average, mssa_forecast, trajectory_matrix


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def sin_cos():
    """Two channels sharing one frequency; rank 2 in the stacked trajectory space."""
    t = np.arange(220)
    omega = 2 * np.pi / 20
    return np.vstack([np.sin(omega * t), 3 * np.cos(omega * t) + 0.0])


# =============================================================================
# Embedding
# =============================================================================

def test_trajectory_matrix_is_hankel():
    H = trajectory_matrix(np.arange(6.0), 3)
    assert H.shape == (3, 4)
    np.testing.assert_array_equal(H[:, 0], [0, 1, 2])
    np.testing.assert_array_equal(H[2], [2, 3, 4, 5])


def test_diagonal_average_inverts_embedding():
    x = np.random.default_rng(1).normal(size=30)
    np.testing.assert_allclose(diagonal_average(trajectory_matrix(x, 7)), x)


# =============================================================================
# Decomposition
# =============================================================================

def test_full_rank_reconstruction_is_exact():
    X = np.random.default_rng(2).normal(size=(3, 60))
    mssa = MSSA(X, L=10).decompose(10)
    np.testing.assert_allclose(mssa.reconstruct_all(range(10)), X, atol=1e-10)
    assert mssa.variance_explained() == pytest.approx(1.0)


def test_variance_explained_is_monotone(sin_cos):
    mssa = MSSA(sin_cos[:, :200], L=40).decompose(5)
    first = mssa.variance_explained(0, 0)
    assert 0 < first < mssa.variance_explained(0, 1) <= 1.0 + 1e-12


def test_one_dimensional_input_is_one_channel():
    mssa = MSSA(np.arange(20.0), L=5)
    assert (mssa.M, mssa.N, mssa.K) == (1, 20, 16)


# =============================================================================
# Forecasting
# =============================================================================

def test_forecast_continues_sinusoids(sin_cos):
    train, future = sin_cos[:, :200], sin_cos[:, 200:]
    mssa = MSSA(train, L=40).decompose(2)
    np.testing.assert_allclose(mssa.forecast_all([0, 1], 20), future, atol=1e-6)


def test_forecast_continues_linear_trend():
    t = np.arange(100, dtype=float)
    X = np.vstack([2.0 + 0.5 * t, -1.0 + 0.25 * t])
    mssa = MSSA(X[:, :90], L=20).decompose(2)
    np.testing.assert_allclose(mssa.forecast(0, [0, 1], 10), X[0, 90:], atol=1e-6)


def test_mssa_forecast_uses_column_per_channel(sin_cos):
    train = sin_cos[:, :200].T          # (N, M)
    pred = mssa_forecast(train, target_idx=1, L=40, rank=2, horizon=20)
    np.testing.assert_allclose(pred, sin_cos[1, 200:], atol=1e-6)


def test_verticality_violation_raises():
    mssa = MSSA(np.array([0.0, 0.0, 0.0, 0.0, 1.0]), L=2).decompose(1)
    with pytest.raises(ValueError, match="verticality"):
        mssa.lrr([0])


# =============================================================================
# Validation
# =============================================================================

@pytest.mark.parametrize("L", [1, 60, 100])
def test_window_out_of_range(L):
    with pytest.raises(ValueError):
        MSSA(np.zeros((2, 60)), L=L)


def test_rank_out_of_range():
    with pytest.raises(ValueError):
        MSSA(np.random.default_rng(3).normal(size=(2, 60)), L=10).decompose(11)


def test_non_finite_input():
    X = np.ones((2, 30))
    X[1, 4] = np.nan
    with pytest.raises(ValueError):
        MSSA(X, L=5)


def test_reconstruct_before_decompose():
    with pytest.raises(RuntimeError):
        MSSA(np.arange(20.0), L=5).reconstruct(0, [0])


def test_group_outside_decomposition(sin_cos):
    mssa = MSSA(sin_cos, L=40).decompose(2)
    with pytest.raises(ValueError):
        mssa.reconstruct(0, [2])
    with pytest.raises(ValueError):
        mssa.forecast(0, [0, 1], 0)
