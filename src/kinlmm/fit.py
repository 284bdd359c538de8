"""Top-level model fitting API for kinlmm.

Provides a single-call entry point: validate and rotate the data, estimate
the variance components, and report them with the fixed effects and the
log-likelihood at the optimum.

Example:
    >>> from kinlmm import fit_lmm
    >>> result = fit_lmm(y, X, K)
    >>> print(f"h2={result.h2:.3f}, sigma2={result.sigma2:.3f}")
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field

import numpy as np
from loguru import logger

from kinlmm.core.backend import resolve_backend
from kinlmm.core.config import EstimatorConfig
from kinlmm.lmm.likelihood import gls_coefficients, log_likelihood
from kinlmm.lmm.optimize import minimize_variance_components, warn_if_boundary
from kinlmm.lmm.rotate import RotatedData, rotate_data
from kinlmm.lmm.transforms import from_unconstrained
from kinlmm.utils.logging import log_rss_memory


@dataclass
class LMMResult:
    """Fitted variance components of y ~ N(X beta, sigma2 * (h2*K + (1-h2)*I)).

    Attributes:
        sigma2: Total variance scale.
        h2: Fraction of sigma2 attributable to K, in (0, 1).
        beta: GLS fixed effects at the optimum, (p,) or (p, m).
        log_likelihood: Log-likelihood at the optimum, without the 2*pi
            normalising constant.
        reml: Whether the REML likelihood was maximised.
        n_samples: Number of observations.
        n_covariates: Number of fixed-effect columns.
        n_traits: Number of phenotype columns sharing the variance components.
        n_iter: Optimizer iterations.
        n_fev: Likelihood evaluations.
        backend: Likelihood backend used ('numpy' or 'jax').
        timing: Timing breakdown with keys 'eigendecomp_s', 'optimize_s',
            'total_s'.
    """

    sigma2: float
    h2: float
    beta: np.ndarray
    log_likelihood: float
    reml: bool
    n_samples: int
    n_covariates: int
    n_traits: int
    n_iter: int
    n_fev: int
    backend: str
    timing: dict[str, float] = field(default_factory=dict)

    @property
    def tau2(self) -> float:
        """Variance of the kinship-structured component, h2 * sigma2."""
        return self.h2 * self.sigma2

    @property
    def sigma2_e(self) -> float:
        """Variance of the independent noise component, (1 - h2) * sigma2."""
        return (1.0 - self.h2) * self.sigma2


def fit_rotated(
    rotated: RotatedData,
    *,
    reml: bool = False,
    log_sigma2_init: float = 0.0,
    logit_h2_init: float = 0.0,
    config: EstimatorConfig | None = None,
) -> LMMResult:
    """Fit variance components to already-rotated data.

    Use this to reuse one rotation across several fits, e.g. different
    starting values or ML and REML on the same data.

    Args:
        rotated: Output of rotate_data.
        reml: Maximise the REML likelihood instead of ML.
        log_sigma2_init: Starting value for log(sigma2).
        logit_h2_init: Starting value for logit(h2).
        config: Optimizer settings.

    Returns:
        LMMResult (timing holds 'optimize_s' only).

    Raises:
        NonConvergenceError: If the optimizer does not converge.
    """
    config = config or EstimatorConfig()
    backend = resolve_backend(config.backend)

    t_start = time.perf_counter()
    res = minimize_variance_components(
        rotated.y,
        rotated.X,
        rotated.eigenvalues,
        log_sigma2_init,
        logit_h2_init,
        reml=reml,
        config=config,
    )
    sigma2, h2 = from_unconstrained(res.x)
    warn_if_boundary(h2, config.boundary_tol)
    optimize_s = time.perf_counter() - t_start

    beta = gls_coefficients(h2, rotated.y, rotated.X, rotated.eigenvalues)
    logl = log_likelihood(
        res.x[0], h2, rotated.y, rotated.X, rotated.eigenvalues, reml=reml
    )

    logger.info(
        f"{'REML' if reml else 'ML'} fit: sigma2={sigma2:.6g}, h2={h2:.6f}, "
        f"logL={logl:.4f} ({res.nit} iterations, {optimize_s:.2f}s)"
    )

    return LMMResult(
        sigma2=sigma2,
        h2=h2,
        beta=beta,
        log_likelihood=logl,
        reml=reml,
        n_samples=rotated.n_samples,
        n_covariates=rotated.n_covariates,
        n_traits=rotated.n_traits,
        n_iter=int(res.nit),
        n_fev=int(res.nfev),
        backend=backend,
        timing={"optimize_s": optimize_s},
    )


def fit_lmm(
    y: np.ndarray,
    X: np.ndarray,
    K: np.ndarray,
    *,
    reml: bool = False,
    log_sigma2_init: float = 0.0,
    logit_h2_init: float = 0.0,
    config: EstimatorConfig | None = None,
    symmetry_tol: float = 1e-8,
) -> LMMResult:
    """Fit a linear mixed model with covariance sigma2 * (h2*K + (1-h2)*I).

    Args:
        y: Phenotypes (n_samples,) or (n_samples, n_traits). Traits share
            the variance components but get their own fixed effects.
        X: Covariates (n_samples, n_covariates). No intercept is added.
        K: Symmetric positive-definite kinship matrix (n_samples, n_samples).
        reml: Maximise the REML likelihood instead of ML.
        log_sigma2_init: Starting value for log(sigma2).
        logit_h2_init: Starting value for logit(h2).
        config: Optimizer settings.
        symmetry_tol: Relative tolerance for the symmetry check on K.

    Returns:
        LMMResult with variance components, fixed effects and timing.

    Raises:
        DimensionMismatchError: If row counts of y, X and K disagree.
        NotSymmetricError: If K is not symmetric.
        NotPositiveDefiniteError: If K is not positive definite.
        SingularDesignError: If X is rank-deficient.
        NonConvergenceError: If the optimizer does not converge.
    """
    t_start = time.perf_counter()
    log_rss_memory("eigendecomp", "start")
    rotated = rotate_data(y, X, K, symmetry_tol=symmetry_tol)
    eigendecomp_s = time.perf_counter() - t_start
    log_rss_memory("eigendecomp", "end")

    result = fit_rotated(
        rotated,
        reml=reml,
        log_sigma2_init=log_sigma2_init,
        logit_h2_init=logit_h2_init,
        config=config,
    )
    result.timing["eigendecomp_s"] = eigendecomp_s
    result.timing["total_s"] = time.perf_counter() - t_start
    log_rss_memory("optimize", "end")
    return result
