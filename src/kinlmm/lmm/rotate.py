"""Rotation of phenotypes and covariates into the kinship eigenbasis.

With K = V diag(lambda) V^T, the covariance sigma2 * (h2*K + (1-h2)*I) of y
becomes diagonal after premultiplying by V^T: the i-th rotated observation
has variance sigma2 * (h2*lambda_i + 1 - h2). The O(n^3) decomposition is
done once here and the rotated data reused for every likelihood evaluation.
"""

from typing import NamedTuple

import numpy as np
from loguru import logger

from kinlmm.errors import DimensionMismatchError
from kinlmm.lmm.eigen import eigendecompose_kinship


class RotatedData(NamedTuple):
    """Phenotypes and covariates in the kinship eigenbasis.

    Unpacks as ``y_rot, X_rot, eigenvalues``. Shared read-only across all
    likelihood evaluations for one (y, X, K).
    """

    y: np.ndarray  # (n,) or (n, m) rotated phenotypes V^T y
    X: np.ndarray  # (n, p) rotated covariates V^T X
    eigenvalues: np.ndarray  # (n,) kinship eigenvalues, all > 0

    @property
    def n_samples(self) -> int:
        return self.y.shape[0]

    @property
    def n_covariates(self) -> int:
        return self.X.shape[1]

    @property
    def n_traits(self) -> int:
        return 1 if self.y.ndim == 1 else self.y.shape[1]


def as_design_matrix(X: np.ndarray) -> np.ndarray:
    """Return X as a float64 2-D design matrix (1-D input is one column)."""
    X = np.asarray(X, dtype=np.float64)
    if X.ndim == 1:
        X = X.reshape(-1, 1)
    if X.ndim != 2:
        raise DimensionMismatchError(
            f"Covariate matrix must be 1-D or 2-D, got shape {X.shape}"
        )
    return X


def as_phenotype(y: np.ndarray) -> np.ndarray:
    """Return y as a float64 (n,) vector or (n, m) matrix."""
    y = np.asarray(y, dtype=np.float64)
    if y.ndim not in (1, 2):
        raise DimensionMismatchError(
            f"Phenotype must be 1-D or 2-D, got shape {y.shape}"
        )
    return y


def rotate_data(
    y: np.ndarray,
    X: np.ndarray,
    K: np.ndarray,
    symmetry_tol: float = 1e-8,
) -> RotatedData:
    """Rotate phenotype and covariates by the eigenvectors of K.

    Args:
        y: Phenotypes (n_samples,) or (n_samples, n_traits).
        X: Covariates (n_samples, n_covariates); include an intercept column
            if one is wanted, none is added.
        K: Kinship matrix (n_samples, n_samples), symmetric positive definite.
        symmetry_tol: Relative tolerance for the symmetry check on K.

    Returns:
        RotatedData(y=V^T y, X=V^T X, eigenvalues=lambda).

    Raises:
        DimensionMismatchError: If row counts of y, X and K disagree.
        NotSymmetricError: If K is not symmetric.
        NotPositiveDefiniteError: If K is not positive definite.
    """
    y = as_phenotype(y)
    X = as_design_matrix(X)
    K = np.asarray(K)

    n = y.shape[0]
    if X.shape[0] != n or K.ndim != 2 or K.shape[0] != n or K.shape[1] != n:
        raise DimensionMismatchError(
            f"Dimension mismatch: y has {n} rows, X has {X.shape[0]} rows, "
            f"K has shape {K.shape}"
        )
    if not (np.all(np.isfinite(y)) and np.all(np.isfinite(X))):
        raise ValueError("Phenotype and covariates must not contain NaN or inf")

    eigenvalues, eigenvectors = eigendecompose_kinship(K, symmetry_tol=symmetry_tol)

    y_rot = eigenvectors.T @ y
    X_rot = eigenvectors.T @ X
    logger.debug(
        f"Rotated {n} samples, {X.shape[1]} covariates, "
        f"{1 if y.ndim == 1 else y.shape[1]} trait(s); "
        f"eigenvalue range [{eigenvalues[0]:.3e}, {eigenvalues[-1]:.3e}]"
    )
    return RotatedData(y_rot, X_rot, eigenvalues)
