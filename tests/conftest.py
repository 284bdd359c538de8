"""Pytest fixtures for kinlmm test suite."""

from __future__ import annotations

from collections.abc import Callable

import numpy as np
import pytest
import scipy.linalg

# =============================================================================
# Test Tier System
# =============================================================================
#
# tier0 - Fast Unit Tests (<5s each)
#   - Pure computation on small synthetic inputs
#   - Run: pytest -m tier0
#
# tier1 - Statistical Recovery Tests
#   - Simulate from the model with a fixed seed and check the estimates
#   - Run: pytest -m tier1
#
# tier2 - Scale Tests (memory/time intensive)
#   - Run manually
#
# Quick reference:
#   pytest -m tier0             # Fast tests only
#   pytest -m "not tier2"       # Exclude slow tests
#   pytest                      # All tests
# =============================================================================


def make_family_kinship(
    n_families: int, family_size: int, relatedness: float = 0.5
) -> np.ndarray:
    """Block-diagonal kinship: 1 on the diagonal, `relatedness` within family.

    Eigenvalues are 1 + relatedness * (family_size - 1) (once per family) and
    1 - relatedness (the rest), so K is positive definite for relatedness < 1.
    """
    block = relatedness * np.ones((family_size, family_size))
    block += (1.0 - relatedness) * np.eye(family_size)
    return scipy.linalg.block_diag(*([block] * n_families))


def simulate_lmm(
    K: np.ndarray,
    X: np.ndarray,
    beta: np.ndarray,
    sigma2: float,
    h2: float,
    n_traits: int = 1,
    seed: int = 0,
) -> np.ndarray:
    """Draw y ~ N(X beta, sigma2 * (h2*K + (1-h2)*I)), one column per trait."""
    rng = np.random.default_rng(seed)
    n = K.shape[0]
    cov = sigma2 * (h2 * K + (1.0 - h2) * np.eye(n))
    L = np.linalg.cholesky(cov)
    noise = L @ rng.standard_normal((n, n_traits))
    y = (X @ beta)[:, None] + noise
    return y[:, 0] if n_traits == 1 else y


@pytest.fixture
def family_kinship() -> Callable[..., np.ndarray]:
    """Factory for block-diagonal family kinship matrices."""
    return make_family_kinship


@pytest.fixture
def simulate() -> Callable[..., np.ndarray]:
    """Factory for phenotypes simulated from the mixed model."""
    return simulate_lmm


@pytest.fixture
def design_matrix() -> Callable[[int, int], np.ndarray]:
    """Factory for an intercept plus one standard normal covariate."""

    def _make(n: int, seed: int = 1) -> np.ndarray:
        rng = np.random.default_rng(seed)
        return np.column_stack([np.ones(n), rng.standard_normal(n)])

    return _make


@pytest.fixture
def random_spd() -> Callable[[int, int], np.ndarray]:
    """Factory for random well-conditioned symmetric positive-definite matrices."""

    def _make(n: int, seed: int = 42) -> np.ndarray:
        rng = np.random.default_rng(seed)
        G = rng.standard_normal((n, 2 * n))
        K = G @ G.T / G.shape[1] + 0.1 * np.eye(n)
        return (K + K.T) / 2.0

    return _make
