"""Validated eigendecomposition of the kinship matrix.

The kinship matrix must be symmetric and positive definite for the rotation
to diagonalise the covariance model. Both properties are checked, not
assumed: symmetry elementwise against a relative tolerance, positive
definiteness by attempting a Cholesky factorisation and then again on the
eigenvalues LAPACK returns.

Uses scipy.linalg.eigh (LAPACK) with explicit driver selection:
- dsyevd (driver='evd'): Divide-and-conquer, fastest but O(n^2) workspace.
- dsyevr (driver='evr'): Relatively robust representations, O(n) workspace.

Unlike an in-place decomposition, the caller's K is never overwritten, so
repeated calls on the same matrix give identical results.
"""

import time

import numpy as np
import scipy.linalg
from loguru import logger

from kinlmm.core.memory import (
    check_memory_available,
    estimate_eigendecomp_memory,
    log_memory_snapshot,
    select_eigendecomp_driver,
)
from kinlmm.core.threading import blas_threads, get_blas_thread_count
from kinlmm.errors import (
    DimensionMismatchError,
    NotPositiveDefiniteError,
    NotSymmetricError,
)


def check_symmetric(K: np.ndarray, tol: float = 1e-8) -> None:
    """Raise NotSymmetricError unless max|K - K^T| <= tol * max(1, max|K|)."""
    scale = max(1.0, float(np.max(np.abs(K)))) if K.size else 1.0
    asym = float(np.max(np.abs(K - K.T))) if K.size else 0.0
    if not asym <= tol * scale:
        raise NotSymmetricError(
            f"Kinship matrix is not symmetric (max |K - K^T| = {asym:.3e}, "
            f"tolerance {tol * scale:.3e})"
        )


def check_positive_definite(K: np.ndarray) -> None:
    """Raise NotPositiveDefiniteError unless K has a Cholesky factorisation."""
    try:
        scipy.linalg.cholesky(K, lower=True, check_finite=False)
    except np.linalg.LinAlgError as e:
        raise NotPositiveDefiniteError(
            f"Kinship matrix is not positive definite: {e}"
        ) from e


def eigendecompose_kinship(
    K: np.ndarray,
    symmetry_tol: float = 1e-8,
    check_memory: bool = True,
) -> tuple[np.ndarray, np.ndarray]:
    """Validate and eigendecompose a kinship matrix.

    Args:
        K: Symmetric positive-definite kinship matrix (n_samples, n_samples).
            Not modified.
        symmetry_tol: Relative tolerance for the symmetry check.
        check_memory: If True, check available memory before decomposing.

    Returns:
        Tuple of (eigenvalues, eigenvectors) where:
        - eigenvalues: (n_samples,) sorted ascending, all strictly positive
        - eigenvectors: (n_samples, n_samples) orthonormal, column j pairs
          with eigenvalues[j]

    Raises:
        DimensionMismatchError: If K is not a square 2-D matrix.
        NotSymmetricError: If K is not symmetric within tolerance.
        NotPositiveDefiniteError: If K is not positive definite.
        ValueError: If K contains NaN or infinite values.
        MemoryError: If check_memory is set and the decomposition will not fit.
    """
    K = np.asarray(K, dtype=np.float64)
    if K.ndim != 2 or K.shape[0] != K.shape[1]:
        raise DimensionMismatchError(
            f"Kinship matrix must be square, got shape {K.shape}"
        )
    if not np.all(np.isfinite(K)):
        raise ValueError("Kinship matrix contains NaN or infinite values")

    n_samples = K.shape[0]

    check_symmetric(K, tol=symmetry_tol)
    check_positive_definite(K)

    driver = select_eigendecomp_driver(n_samples)
    if check_memory:
        check_memory_available(
            estimate_eigendecomp_memory(n_samples, driver),
            safety_margin=0.1,
            operation=f"eigendecomposition of {n_samples:,}x{n_samples:,} kinship",
        )

    n_threads = get_blas_thread_count()
    logger.info(f"Eigendecomposing kinship matrix ({n_samples:,} x {n_samples:,})")
    logger.debug(f"Eigendecomp using driver={driver}, {n_threads} BLAS threads")
    log_memory_snapshot(f"before_eigendecomp_{n_samples}samples")

    start_time = time.perf_counter()
    try:
        with blas_threads(n_threads):
            eigenvalues, eigenvectors = scipy.linalg.eigh(
                K,
                driver=driver,
                overwrite_a=False,
                check_finite=False,
            )
    except (np.linalg.LinAlgError, MemoryError) as e:
        logger.error(f"Eigendecomposition failed: {type(e).__name__}: {e}")
        raise

    elapsed = time.perf_counter() - start_time
    logger.info(f"Eigendecomposition completed in {elapsed:.2f} seconds")
    log_memory_snapshot(f"after_eigendecomp_{n_samples}samples")

    # Cholesky can succeed on matrices whose smallest eigenvalue rounds to <= 0
    n_nonpositive = int(np.sum(eigenvalues <= 0.0))
    if n_nonpositive > 0:
        raise NotPositiveDefiniteError(
            f"Kinship matrix has {n_nonpositive} non-positive eigenvalue(s) "
            f"(min = {eigenvalues.min():.3e})"
        )

    return eigenvalues, eigenvectors
