"""Property-based tests using Hypothesis for numerical accuracy verification.

These tests verify:
1. Mathematical properties that must hold (orthogonality, scale invariance)
2. numpy/JAX likelihood equivalence across random inputs
3. Likelihood invariance to the choice of kinship eigenbasis
"""

from __future__ import annotations

import numpy as np
import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from kinlmm.core.jax_config import configure_jax
from kinlmm.lmm.likelihood import log_likelihood, profile_sigma2
from kinlmm.lmm.likelihood_jax import log_likelihood_jax
from kinlmm.lmm.rotate import rotate_data
from kinlmm.lmm.wls import wls

pytestmark = pytest.mark.tier0


@pytest.fixture(autouse=True)
def setup_jax():
    """Configure JAX with 64-bit precision before each test."""
    configure_jax(enable_x64=True)


# -----------------------------------------------------------------------------
# Custom Strategies
# -----------------------------------------------------------------------------


@st.composite
def lmm_problem(draw, min_samples=8, max_samples=40, max_covariates=3):
    """Random SPD kinship, phenotype and full-rank design of matching size."""
    n = draw(st.integers(min_value=min_samples, max_value=max_samples))
    p = draw(st.integers(min_value=1, max_value=max_covariates))
    seed = draw(st.integers(min_value=0, max_value=2**32 - 1))

    rng = np.random.default_rng(seed)
    G = rng.standard_normal((n, 2 * n))
    K = G @ G.T / (2 * n) + 0.2 * np.eye(n)
    K = (K + K.T) / 2.0
    X = np.column_stack([np.ones(n), rng.standard_normal((n, p - 1))])
    y = rng.standard_normal(n)
    return y, X, K


h2_values = st.floats(min_value=0.01, max_value=0.99)
log_sigma2_values = st.floats(min_value=-3.0, max_value=3.0)

SETTINGS = settings(
    max_examples=30,
    deadline=None,
    suppress_health_check=[HealthCheck.too_slow, HealthCheck.function_scoped_fixture],
)


class TestRotationProperties:
    @SETTINGS
    @given(lmm_problem())
    def test_rotation_preserves_gram_matrix(self, problem):
        y, X, K = problem

        y_rot, X_rot, eigenvalues = rotate_data(y, X, K)

        np.testing.assert_allclose(X_rot.T @ X_rot, X.T @ X, atol=1e-8)
        assert np.isclose(y_rot @ y_rot, y @ y)
        assert np.all(eigenvalues > 0)

    @SETTINGS
    @given(lmm_problem(), log_sigma2_values, h2_values)
    def test_likelihood_basis_invariant(self, problem, log_sigma2, h2):
        """Flipping eigenvector signs leaves the likelihood unchanged."""
        y, X, K = problem
        y_rot, X_rot, eigenvalues = rotate_data(y, X, K)
        signs = np.where(np.arange(len(y)) % 2 == 0, 1.0, -1.0)

        a = log_likelihood(log_sigma2, h2, y_rot, X_rot, eigenvalues)
        b = log_likelihood(
            log_sigma2, h2, signs * y_rot, signs[:, None] * X_rot, eigenvalues
        )

        assert a == pytest.approx(b, rel=1e-9, abs=1e-9)


class TestWlsProperties:
    @SETTINGS
    @given(lmm_problem(), st.floats(min_value=1e-3, max_value=1e3))
    def test_scale_invariance(self, problem, scale):
        """b is unchanged and sigma2 scales inversely with the weights."""
        y, X, _ = problem
        w = np.linspace(0.5, 2.0, len(y))

        b1, s1 = wls(y, X, w)
        b2, s2 = wls(y, X, scale * w)

        np.testing.assert_allclose(b1, b2, rtol=1e-8, atol=1e-10)
        assert s2 * scale == pytest.approx(s1, rel=1e-8)

    @SETTINGS
    @given(lmm_problem())
    def test_unit_weights_match_lstsq(self, problem):
        y, X, _ = problem

        b, _ = wls(y, X, np.ones(len(y)))

        b_ref, *_ = np.linalg.lstsq(X, y, rcond=None)
        np.testing.assert_allclose(b, b_ref, rtol=1e-8, atol=1e-10)


class TestLikelihoodProperties:
    @SETTINGS
    @given(lmm_problem(), log_sigma2_values, h2_values, st.booleans())
    def test_numpy_jax_equivalence(self, problem, log_sigma2, h2, reml):
        data = rotate_data(*problem)

        expected = log_likelihood(log_sigma2, h2, *data, reml=reml)
        actual = log_likelihood_jax(log_sigma2, h2, *data, reml=reml)

        assert actual == pytest.approx(expected, rel=1e-8, abs=1e-8)

    @SETTINGS
    @given(lmm_problem(), h2_values, st.booleans())
    def test_profile_sigma2_is_stationary(self, problem, h2, reml):
        """d logL / d log sigma2 vanishes at the profiled sigma2."""
        data = rotate_data(*problem)
        log_s2 = np.log(profile_sigma2(h2, *data, reml=reml))
        eps = 1e-5

        up = log_likelihood(log_s2 + eps, h2, *data, reml=reml)
        down = log_likelihood(log_s2 - eps, h2, *data, reml=reml)

        assert abs(up - down) / (2 * eps) < 1e-4
