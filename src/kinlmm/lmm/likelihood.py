"""Profile log-likelihood of the rotated mixed model.

After rotation, observation i has variance sigma2 * w_i with
w_i = h2 * lambda_i + (1 - h2). The fixed effects are concentrated out by
weighted least squares at every evaluation, leaving a function of
(log sigma2, h2) only.

With s = sqrt(w), residuals r = y - X b and m traits sharing the variance
components, the maximum likelihood form is

    ll = -0.5 * sum((r / s)^2) / sigma2 - m * sum(log s) - (m * n / 2) * log(sigma2)

and the restricted (REML) form replaces n by n - p and subtracts
(m / 2) * log det(X^T W^-1 X).

The -(n/2) * log(2*pi) normalising constant is omitted by default; it does
not move the optimum but matters when comparing likelihoods across n.
"""

from __future__ import annotations

import numpy as np

from kinlmm.lmm.rotate import as_phenotype
from kinlmm.lmm.wls import WLSFit, wls_fit

LOG_2PI = float(np.log(2.0 * np.pi))


def variance_weights(h2: float, eigenvalues: np.ndarray) -> np.ndarray:
    """Per-observation variance multipliers h2 * lambda + (1 - h2)."""
    return h2 * np.asarray(eigenvalues, dtype=np.float64) + (1.0 - h2)


def _check_h2(h2: float) -> None:
    # Endpoints are accepted: invlogit saturates to exactly 0.0 / 1.0 in float64
    if not (np.isfinite(h2) and 0.0 <= h2 <= 1.0):
        raise ValueError(f"h2 must be in (0, 1), got {h2}")


def _fit_at(
    h2: float,
    y: np.ndarray,
    X: np.ndarray,
    eigenvalues: np.ndarray,
    reml: bool = False,
) -> tuple[WLSFit, np.ndarray]:
    _check_h2(h2)
    w = variance_weights(h2, eigenvalues)
    # sigma2 of the fit is unused; reml=True rejects n <= p
    return wls_fit(y, X, w, reml=reml), w


def log_likelihood(
    log_sigma2: float,
    h2: float,
    y: np.ndarray,
    X: np.ndarray,
    eigenvalues: np.ndarray,
    reml: bool = False,
    include_constant: bool = False,
) -> float:
    """Log-likelihood of rotated data at given variance components.

    Args:
        log_sigma2: Natural log of the variance scale sigma2.
        h2: Heritability-like mixing weight in (0, 1).
        y: Rotated phenotypes (n,) or (n, m).
        X: Rotated covariates (n, p).
        eigenvalues: Kinship eigenvalues (n,), all positive.
        reml: Return the restricted (REML) log-likelihood.
        include_constant: Add the -(n_eff/2) * log(2*pi) term per trait.

    Returns:
        Scalar log-likelihood.

    Raises:
        ValueError: If h2 is outside [0, 1] or not finite.
        NonPositiveWeightError: If any weight is not positive.
        SingularDesignError: If the weighted X is rank-deficient,
            or if reml is set and n <= p.
    """
    y = as_phenotype(y)
    fit, w = _fit_at(h2, y, X, eigenvalues, reml=reml)

    n = w.shape[0]
    p = fit.coef.shape[0]
    m = 1 if y.ndim == 1 else y.shape[1]
    n_eff = n - p if reml else n

    sigma2 = np.exp(log_sigma2)
    rss = float(np.sum(fit.rss))
    log_s = 0.5 * float(np.sum(np.log(w)))

    ll = -0.5 * rss / sigma2 - m * log_s - 0.5 * m * n_eff * log_sigma2
    if reml:
        ll -= 0.5 * m * fit.logdet_xtwx
    if include_constant:
        ll -= 0.5 * m * n_eff * LOG_2PI
    return float(ll)


def profile_sigma2(
    h2: float,
    y: np.ndarray,
    X: np.ndarray,
    eigenvalues: np.ndarray,
    reml: bool = False,
) -> float:
    """Closed-form maximiser of log_likelihood over sigma2 at fixed h2.

    Returns:
        rss / (m * n) for ML, rss / (m * (n - p)) for REML.

    Raises:
        SingularDesignError: If reml is set and n <= p.
    """
    y = as_phenotype(y)
    fit, w = _fit_at(h2, y, X, eigenvalues, reml=reml)
    n = w.shape[0]
    p = fit.coef.shape[0]
    m = 1 if y.ndim == 1 else y.shape[1]
    n_eff = n - p if reml else n
    return float(np.sum(fit.rss)) / (m * n_eff)


def gls_coefficients(
    h2: float, y: np.ndarray, X: np.ndarray, eigenvalues: np.ndarray
) -> np.ndarray:
    """Generalised least-squares fixed effects at the given h2."""
    fit, _ = _fit_at(h2, as_phenotype(y), X, eigenvalues)
    return fit.coef
