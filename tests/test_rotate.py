"""Tests for kinship eigendecomposition and data rotation."""

import numpy as np
import pytest

from kinlmm.errors import (
    DimensionMismatchError,
    NotPositiveDefiniteError,
    NotSymmetricError,
)
from kinlmm.lmm.eigen import eigendecompose_kinship
from kinlmm.lmm.rotate import RotatedData, rotate_data

pytestmark = pytest.mark.tier0


class TestEigendecomposition:
    """Tests for validated kinship eigendecomposition."""

    def test_eigenvectors_orthonormal(self, random_spd):
        """V^T V = I."""
        K = random_spd(30)

        _, V = eigendecompose_kinship(K)

        assert np.allclose(V.T @ V, np.eye(30), atol=1e-10)

    def test_reconstruction(self, random_spd):
        """K = V @ diag(eigenvalues) @ V.T."""
        K = random_spd(25)

        eigenvalues, V = eigendecompose_kinship(K)

        assert np.allclose(V @ np.diag(eigenvalues) @ V.T, K, atol=1e-10)

    def test_eigenvalues_positive_ascending(self, family_kinship):
        K = family_kinship(4, 5, relatedness=0.5)

        eigenvalues, _ = eigendecompose_kinship(K)

        assert np.all(eigenvalues > 0)
        assert np.all(np.diff(eigenvalues) >= 0)
        # 1 - r repeated, 1 + r * (size - 1) once per family
        assert np.allclose(eigenvalues[:16], 0.5)
        assert np.allclose(eigenvalues[16:], 3.0)

    def test_identity_matrix(self):
        eigenvalues, V = eigendecompose_kinship(np.eye(10))

        assert np.allclose(eigenvalues, 1.0)
        assert np.allclose(np.abs(V.T @ V), np.eye(10))

    def test_input_not_modified(self, random_spd):
        K = random_spd(20)
        K_copy = K.copy()

        eigendecompose_kinship(K)

        np.testing.assert_array_equal(K, K_copy)

    def test_asymmetric_raises(self, random_spd):
        K = random_spd(10)
        K[0, 1] += 0.1

        with pytest.raises(NotSymmetricError):
            eigendecompose_kinship(K)

    def test_tiny_asymmetry_tolerated(self, random_spd):
        """Rounding-level asymmetry passes the symmetry check."""
        K = random_spd(10)
        K[0, 1] += 1e-14

        eigenvalues, _ = eigendecompose_kinship(K)

        assert eigenvalues.shape == (10,)

    def test_indefinite_raises(self):
        """Symmetric matrix with one negative eigenvalue is rejected."""
        K = np.diag([1.0, -1.0, 2.0])

        with pytest.raises(NotPositiveDefiniteError):
            eigendecompose_kinship(K)

    def test_singular_raises(self):
        """Positive semi-definite but singular matrix is rejected."""
        K = np.ones((2, 2))

        with pytest.raises(NotPositiveDefiniteError):
            eigendecompose_kinship(K)

    def test_non_square_raises(self):
        with pytest.raises(DimensionMismatchError):
            eigendecompose_kinship(np.ones((3, 4)))

    def test_nan_raises(self):
        K = np.eye(3)
        K[1, 1] = np.nan

        with pytest.raises(ValueError, match="NaN"):
            eigendecompose_kinship(K)

    def test_errors_are_value_errors(self):
        """Validation errors can be caught as plain ValueError."""
        with pytest.raises(ValueError):
            eigendecompose_kinship(np.diag([1.0, -1.0]))


class TestRotateData:
    """Tests for rotate_data."""

    def test_shapes(self, random_spd, design_matrix):
        n = 40
        K = random_spd(n)
        X = design_matrix(n)
        y = np.random.default_rng(0).standard_normal(n)

        rotated = rotate_data(y, X, K)

        assert isinstance(rotated, RotatedData)
        assert rotated.y.shape == (n,)
        assert rotated.X.shape == (n, 2)
        assert rotated.eigenvalues.shape == (n,)
        assert rotated.n_samples == n
        assert rotated.n_covariates == 2
        assert rotated.n_traits == 1

    def test_unpacks_as_triple(self, random_spd, design_matrix):
        n = 15
        K = random_spd(n)
        y = np.arange(n, dtype=float)

        y_rot, X_rot, eigenvalues = rotate_data(y, design_matrix(n), K)

        assert y_rot.shape == (n,)
        assert X_rot.shape == (n, 2)
        assert eigenvalues.shape == (n,)

    def test_matches_eigenvectors(self, random_spd, design_matrix):
        """Rotated data equal V^T y and V^T X for the eigenvectors of K."""
        n = 20
        K = random_spd(n)
        X = design_matrix(n)
        y = np.random.default_rng(3).standard_normal(n)

        eigenvalues, V = eigendecompose_kinship(K)
        rotated = rotate_data(y, X, K)

        np.testing.assert_allclose(rotated.y, V.T @ y)
        np.testing.assert_allclose(rotated.X, V.T @ X)
        np.testing.assert_allclose(rotated.eigenvalues, eigenvalues)

    def test_preserves_norms(self, random_spd, design_matrix):
        """Rotation is orthogonal, so it preserves inner products."""
        n = 30
        K = random_spd(n)
        X = design_matrix(n)
        y = np.random.default_rng(5).standard_normal(n)

        rotated = rotate_data(y, X, K)

        assert np.isclose(rotated.y @ rotated.y, y @ y)
        np.testing.assert_allclose(rotated.X.T @ rotated.X, X.T @ X, atol=1e-10)
        np.testing.assert_allclose(rotated.X.T @ rotated.y, X.T @ y, atol=1e-10)

    def test_idempotent(self, random_spd, design_matrix):
        """Two calls on the same inputs give identical outputs."""
        n = 25
        K = random_spd(n)
        X = design_matrix(n)
        y = np.random.default_rng(1).standard_normal(n)

        first = rotate_data(y, X, K)
        second = rotate_data(y, X, K)

        for a, b in zip(first, second, strict=True):
            np.testing.assert_array_equal(a, b)

    def test_multi_trait(self, random_spd, design_matrix):
        n, m = 20, 3
        K = random_spd(n)
        Y = np.random.default_rng(2).standard_normal((n, m))

        rotated = rotate_data(Y, design_matrix(n), K)

        assert rotated.y.shape == (n, m)
        assert rotated.n_traits == m
        # Each column rotates independently
        single = rotate_data(Y[:, 1], design_matrix(n), K)
        np.testing.assert_allclose(rotated.y[:, 1], single.y)

    def test_one_dimensional_covariate(self, random_spd):
        n = 12
        rotated = rotate_data(np.ones(n), np.ones(n), random_spd(n))

        assert rotated.X.shape == (n, 1)

    def test_y_row_mismatch(self, random_spd, design_matrix):
        with pytest.raises(DimensionMismatchError):
            rotate_data(np.ones(9), design_matrix(10), random_spd(10))

    def test_x_row_mismatch(self, random_spd, design_matrix):
        with pytest.raises(DimensionMismatchError):
            rotate_data(np.ones(10), design_matrix(11), random_spd(10))

    def test_k_size_mismatch(self, random_spd, design_matrix):
        with pytest.raises(DimensionMismatchError):
            rotate_data(np.ones(10), design_matrix(10), random_spd(12))

    def test_non_square_k(self, design_matrix):
        with pytest.raises(DimensionMismatchError):
            rotate_data(np.ones(10), design_matrix(10), np.ones((10, 9)))

    def test_asymmetric_k(self, random_spd, design_matrix):
        K = random_spd(10)
        K[2, 5] += 0.5

        with pytest.raises(NotSymmetricError):
            rotate_data(np.ones(10), design_matrix(10), K)

    def test_indefinite_k(self, design_matrix):
        K = np.eye(10)
        K[4, 4] = -0.5

        with pytest.raises(NotPositiveDefiniteError):
            rotate_data(np.ones(10), design_matrix(10), K)

    def test_nan_phenotype_raises(self, random_spd, design_matrix):
        y = np.ones(10)
        y[3] = np.nan

        with pytest.raises(ValueError, match="NaN"):
            rotate_data(y, design_matrix(10), random_spd(10))
