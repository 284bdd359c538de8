"""Weighted least squares via a thin QR factorisation.

Weights are per-observation variance multipliers: observation i is modelled
with variance sigma2 * w_i, so rows are whitened by 1/sqrt(w_i) before the
QR factorisation. X^T W^-1 X is never formed or inverted.
"""

from dataclasses import dataclass

import numpy as np
import scipy.linalg

from kinlmm.errors import (
    DimensionMismatchError,
    NonPositiveWeightError,
    SingularDesignError,
)
from kinlmm.lmm.rotate import as_design_matrix, as_phenotype


@dataclass(frozen=True)
class WLSFit:
    """Result of a weighted least-squares fit.

    Attributes:
        coef: Coefficients, (p,) for a single trait or (p, m).
        sigma2: Residual variance estimate, float or (m,).
        rss: Weighted residual sum of squares sum(((y - Xb) / sqrt(w))^2),
            float or (m,).
        residuals: Unscaled residuals y - Xb, same shape as y.
        logdet_xtwx: log det(X^T W^-1 X), from the diagonal of R.
    """

    coef: np.ndarray
    sigma2: float | np.ndarray
    rss: float | np.ndarray
    residuals: np.ndarray
    logdet_xtwx: float


def _check_weights(w: np.ndarray, n: int) -> np.ndarray:
    w = np.asarray(w, dtype=np.float64)
    if w.ndim != 1 or w.shape[0] != n:
        raise DimensionMismatchError(
            f"Weights must be a vector of length {n}, got shape {w.shape}"
        )
    # NaN compares False, so it is rejected here too
    if not np.all(w > 0.0):
        n_bad = int(np.sum(~(w > 0.0)))
        raise NonPositiveWeightError(f"{n_bad} weight(s) are not positive")
    if not np.all(np.isfinite(w)):
        raise NonPositiveWeightError("Weights must be finite")
    return w


def wls_fit(
    y: np.ndarray,
    X: np.ndarray,
    w: np.ndarray,
    reml: bool = False,
) -> WLSFit:
    """Weighted least-squares fit returning all intermediate quantities.

    Rows are whitened by dividing by sqrt(w), since w scales the residual
    variance of each observation.

    Args:
        y: Outcome, (n,) or (n, m). Each column is fitted separately.
        X: Design matrix (n, p), full column rank.
        w: Variance multipliers (n,), all strictly positive.
        reml: If True, sigma2 = rss / (n - p); otherwise rss / n.

    Returns:
        WLSFit with coefficients, variance, rss, residuals and log det.

    Raises:
        DimensionMismatchError: If y, X and w disagree in length.
        NonPositiveWeightError: If any weight is <= 0 or non-finite.
        SingularDesignError: If the weighted X is numerically rank-deficient,
            or if reml is set and n <= p.
    """
    y = as_phenotype(y)
    X = as_design_matrix(X)
    n = y.shape[0]
    p = X.shape[1]

    if X.shape[0] != n:
        raise DimensionMismatchError(
            f"Dimension mismatch: y has {n} rows, X has {X.shape[0]} rows"
        )
    if p == 0:
        raise DimensionMismatchError("Design matrix has no columns")
    w = _check_weights(w, n)

    if p > n:
        raise SingularDesignError(
            f"Design matrix has more columns ({p}) than rows ({n})"
        )
    df = n - p if reml else n
    if df <= 0:
        raise SingularDesignError(
            f"No residual degrees of freedom (n={n}, p={p}, reml={reml})"
        )

    sqrtw = np.sqrt(w)
    col_scale = sqrtw if y.ndim == 1 else sqrtw[:, None]
    yy = y / col_scale
    XX = X / sqrtw[:, None]

    q, r = scipy.linalg.qr(XX, mode="economic", check_finite=False)
    r_diag = np.abs(np.diag(r))
    tol = max(n, p) * np.finfo(np.float64).eps * r_diag.max()
    if r_diag.max() == 0.0 or np.any(r_diag <= tol):
        raise SingularDesignError(
            "Weighted design matrix is rank-deficient "
            f"(min |R_jj| = {r_diag.min():.3e}, tolerance {tol:.3e})"
        )

    b = scipy.linalg.solve_triangular(r, q.T @ yy, lower=False, check_finite=False)

    yhat = X @ b
    resid = y - yhat
    rss = np.sum((resid / col_scale) ** 2, axis=0)
    sigma2 = rss / df
    if y.ndim == 1:
        rss = float(rss)
        sigma2 = float(sigma2)

    return WLSFit(
        coef=b,
        sigma2=sigma2,
        rss=rss,
        residuals=resid,
        logdet_xtwx=float(2.0 * np.sum(np.log(r_diag))),
    )


def wls(
    y: np.ndarray,
    X: np.ndarray,
    w: np.ndarray,
    reml: bool = False,
    resid: bool = False,
) -> tuple:
    """Weighted least squares estimation.

    w holds variances, not precisions: row i of y and X is divided by
    sqrt(w_i) before the least-squares solve. Passing precision weights
    1 / w_i would give the same scaling written as a multiplication.

    Args:
        y: Outcome, (n,) or (n, m).
        X: Predictors (n, p).
        w: Variance multipliers (n,), must be positive.
        reml: Use n - p instead of n in the variance denominator.
        resid: Also return the unscaled residuals y - Xb.

    Returns:
        (b, sigma2) or (b, sigma2, r) when resid is True.
    """
    fit = wls_fit(y, X, w, reml=reml)
    if resid:
        return fit.coef, fit.sigma2, fit.residuals
    return fit.coef, fit.sigma2
