"""Variance component estimation by unconstrained numerical optimization.

Maximises the profile log-likelihood over z = [log sigma2, logit h2] with
scipy.optimize.minimize:

- numpy backend: Nelder-Mead on the numpy likelihood (derivative-free).
- jax backend: L-BFGS-B on the JAX likelihood with exact gradients.

The rotated data are bound once into the objective closure and reused for
every evaluation. Failures are raised as NonConvergenceError; retrying from
other starting values is left to the caller.
"""

import warnings
from collections.abc import Callable
from typing import NamedTuple

import numpy as np
from loguru import logger
from scipy.optimize import OptimizeResult, minimize

from kinlmm.core.backend import resolve_backend
from kinlmm.core.config import EstimatorConfig
from kinlmm.errors import NonConvergenceError
from kinlmm.lmm.likelihood import log_likelihood
from kinlmm.lmm.rotate import RotatedData, as_design_matrix, as_phenotype
from kinlmm.lmm.transforms import from_unconstrained, invlogit

# Edge length of the Nelder-Mead starting simplex in unconstrained units
SIMPLEX_STEP = 0.5


class VarianceComponents(NamedTuple):
    """Estimated variance components on their natural scale."""

    sigma2: float
    h2: float


def _numpy_objective(
    rotated: RotatedData, reml: bool
) -> Callable[[np.ndarray], float]:
    y, X, eigenvalues = rotated

    def neg_log_lik(z: np.ndarray) -> float:
        value = -log_likelihood(z[0], invlogit(z[1]), y, X, eigenvalues, reml=reml)
        if not np.isfinite(value):
            raise NonConvergenceError(
                f"Non-finite objective ({value}) at log_sigma2={z[0]:.6g}, "
                f"logit_h2={z[1]:.6g}"
            )
        return value

    return neg_log_lik


def _jax_objective(
    rotated: RotatedData, reml: bool
) -> Callable[[np.ndarray], tuple[float, np.ndarray]]:
    from kinlmm.lmm.likelihood_jax import make_objective_and_grad

    value_and_grad = make_objective_and_grad(rotated, reml=reml)

    def neg_log_lik(z: np.ndarray) -> tuple[float, np.ndarray]:
        value, grad = value_and_grad(z)
        if not (np.isfinite(value) and np.all(np.isfinite(grad))):
            raise NonConvergenceError(
                f"Non-finite objective ({value}) or gradient at "
                f"log_sigma2={z[0]:.6g}, logit_h2={z[1]:.6g}"
            )
        return value, grad

    return neg_log_lik


def minimize_variance_components(
    y: np.ndarray,
    X: np.ndarray,
    eigenvalues: np.ndarray,
    log_sigma2_init: float = 0.0,
    logit_h2_init: float = 0.0,
    *,
    reml: bool = False,
    config: EstimatorConfig | None = None,
) -> OptimizeResult:
    """Minimise the negative log-likelihood in unconstrained coordinates.

    Args:
        y: Rotated phenotypes (n,) or (n, m).
        X: Rotated covariates (n, p).
        eigenvalues: Kinship eigenvalues (n,).
        log_sigma2_init: Starting value for log(sigma2).
        logit_h2_init: Starting value for logit(h2).
        reml: Optimise the REML instead of the ML likelihood.
        config: Optimizer settings; defaults to EstimatorConfig().

    Returns:
        scipy OptimizeResult with x = [log sigma2, logit h2] at the optimum.

    Raises:
        ValueError: If the starting values are not finite.
        NonConvergenceError: If the optimizer fails or the objective is
            non-finite at any evaluated point.
        DimensionMismatchError, NonPositiveWeightError, SingularDesignError:
            From validating the data at the starting point.
    """
    config = config or EstimatorConfig()
    backend = resolve_backend(config.backend)

    x0 = np.array([log_sigma2_init, logit_h2_init], dtype=np.float64)
    if not np.all(np.isfinite(x0)):
        raise ValueError(f"Starting values must be finite, got {x0.tolist()}")

    rotated = RotatedData(
        as_phenotype(y),
        as_design_matrix(X),
        np.asarray(eigenvalues, dtype=np.float64),
    )

    # Validate shapes, weights and rank once on the numpy path, for both backends
    neg_log_lik = _numpy_objective(rotated, reml)
    f0 = neg_log_lik(x0)

    logger.debug(
        f"Optimizing variance components: backend={backend}, reml={reml}, "
        f"n={rotated.n_samples}, p={rotated.n_covariates}, "
        f"start={x0.tolist()}, f0={f0:.6g}"
    )

    if backend == "jax":
        res = minimize(
            _jax_objective(rotated, reml),
            x0,
            jac=True,
            method="L-BFGS-B",
            options={
                "maxiter": config.maxiter,
                "gtol": config.gtol,
                "ftol": config.ftol,
            },
        )
    else:
        simplex = x0 + SIMPLEX_STEP * np.array([[0.0, 0.0], [1.0, 0.0], [0.0, 1.0]])
        res = minimize(
            neg_log_lik,
            x0,
            method="Nelder-Mead",
            options={
                "maxiter": config.maxiter,
                "xatol": config.xatol,
                "fatol": config.fatol,
                "initial_simplex": simplex,
            },
        )

    if not res.success or not np.isfinite(res.fun):
        logger.error(
            f"Variance component optimization failed ({backend}): {res.message}"
        )
        raise NonConvergenceError(
            f"Optimizer did not converge after {res.nit} iterations: {res.message}",
            result=res,
        )

    logger.debug(
        f"Optimizer converged in {res.nit} iterations ({res.nfev} evaluations), "
        f"-logL={res.fun:.6f}, z={res.x.tolist()}"
    )
    return res


def estimate_variance_components(
    y: np.ndarray,
    X: np.ndarray,
    eigenvalues: np.ndarray,
    log_sigma2_init: float = 0.0,
    logit_h2_init: float = 0.0,
    *,
    reml: bool = False,
    config: EstimatorConfig | None = None,
) -> VarianceComponents:
    """Estimate sigma2 and h2 by maximum (or restricted) likelihood.

    Args:
        y: Rotated phenotypes (n,) or (n, m).
        X: Rotated covariates (n, p).
        eigenvalues: Kinship eigenvalues (n,).
        log_sigma2_init: Starting value for log(sigma2).
        logit_h2_init: Starting value for logit(h2).
        reml: Use the REML likelihood.
        config: Optimizer settings.

    Returns:
        VarianceComponents(sigma2, h2).

    Raises:
        NonConvergenceError: If the optimizer does not converge.
    """
    config = config or EstimatorConfig()
    res = minimize_variance_components(
        y,
        X,
        eigenvalues,
        log_sigma2_init,
        logit_h2_init,
        reml=reml,
        config=config,
    )
    sigma2, h2 = from_unconstrained(res.x)
    warn_if_boundary(h2, config.boundary_tol)
    return VarianceComponents(sigma2, h2)


def warn_if_boundary(h2: float, tol: float = 1e-4) -> None:
    """Warn when h2 converged next to 0 or 1."""
    if h2 <= tol:
        warnings.warn(
            f"h2 converged at lower bound ({h2:.2e}). "
            "Data show no detectable kinship-structured variance.",
            RuntimeWarning,
            stacklevel=3,
        )
    elif h2 >= 1.0 - tol:
        warnings.warn(
            f"h2 converged at upper bound ({h2:.6f}). "
            "Residual variance is not identifiable from these data.",
            RuntimeWarning,
            stacklevel=3,
        )
