"""JAX-compiled profile log-likelihood with exact gradients.

Same likelihood as kinlmm.lmm.likelihood, written with jax.numpy so it can be
JIT-compiled and differentiated. The jax backend of the optimizer minimises
neg_log_likelihood_unconstrained with L-BFGS-B, taking the gradient from
jax.value_and_grad instead of finite differences.

Argument validation (weight positivity, rank of X) is done by the numpy path;
these functions assume already-validated rotated data.

Type annotations use jaxtyping for shape documentation:
    n = n_samples, p = n_covariates, m = n_traits
"""

from __future__ import annotations

from collections.abc import Callable
from functools import partial
from typing import TYPE_CHECKING

import jax
import jax.numpy as jnp
import numpy as np
from jax import jit
from jax.scipy.linalg import solve_triangular

from kinlmm.core.jax_config import configure_jax

# Imported lazily by the jax backend, so x64 is only forced when it is used
configure_jax(enable_x64=True)

if TYPE_CHECKING:
    from jaxtyping import Array, Float

    from kinlmm.lmm.rotate import RotatedData


def _log_likelihood(
    log_sigma2: Float[Array, ""],
    h2: Float[Array, ""],
    y: Float[Array, "n m"],
    X: Float[Array, "n p"],
    eigenvalues: Float[Array, " n"],
    reml: bool,
) -> Float[Array, ""]:
    n, p = X.shape
    m = y.shape[1]
    n_eff = n - p if reml else n

    w = h2 * eigenvalues + (1.0 - h2)
    sqrtw = jnp.sqrt(w)[:, None]
    yy = y / sqrtw
    XX = X / sqrtw

    q, r = jnp.linalg.qr(XX, mode="reduced")
    b = solve_triangular(r, q.T @ yy, lower=False)
    rss = jnp.sum((yy - XX @ b) ** 2)

    ll = (
        -0.5 * rss * jnp.exp(-log_sigma2)
        - 0.5 * m * jnp.sum(jnp.log(w))
        - 0.5 * m * n_eff * log_sigma2
    )
    if reml:
        ll = ll - m * jnp.sum(jnp.log(jnp.abs(jnp.diag(r))))
    return ll


_log_likelihood_jit = jit(_log_likelihood, static_argnames=("reml",))


def log_likelihood_jax(
    log_sigma2: float,
    h2: float,
    y: np.ndarray,
    X: np.ndarray,
    eigenvalues: np.ndarray,
    reml: bool = False,
) -> float:
    """JIT-compiled log-likelihood; matches likelihood.log_likelihood.

    Args:
        log_sigma2: Natural log of the variance scale sigma2.
        h2: Heritability-like mixing weight in (0, 1).
        y: Rotated phenotypes (n,) or (n, m).
        X: Rotated covariates (n, p).
        eigenvalues: Kinship eigenvalues (n,).
        reml: Return the restricted (REML) log-likelihood.

    Returns:
        Scalar log-likelihood as a Python float.
    """
    y = jnp.asarray(y, dtype=jnp.float64)
    if y.ndim == 1:
        y = y[:, None]
    X = jnp.asarray(X, dtype=jnp.float64)
    if X.ndim == 1:
        X = X[:, None]
    ll = _log_likelihood_jit(
        jnp.float64(log_sigma2),
        jnp.float64(h2),
        y,
        X,
        jnp.asarray(eigenvalues, dtype=jnp.float64),
        reml=reml,
    )
    return float(ll)


def neg_log_likelihood_unconstrained(
    z: Float[Array, " 2"],
    y: Float[Array, "n m"],
    X: Float[Array, "n p"],
    eigenvalues: Float[Array, " n"],
    reml: bool,
) -> Float[Array, ""]:
    """Negative log-likelihood at z = [log sigma2, logit h2]."""
    h2 = jax.nn.sigmoid(z[1])
    return -_log_likelihood(z[0], h2, y, X, eigenvalues, reml)


# One compiled value-and-gradient per likelihood flavour
_value_and_grad = {
    reml: jit(jax.value_and_grad(partial(neg_log_likelihood_unconstrained, reml=reml)))
    for reml in (False, True)
}


def make_objective_and_grad(
    rotated: RotatedData, reml: bool = False
) -> Callable[[np.ndarray], tuple[float, np.ndarray]]:
    """Bind rotated data once and return a scipy-compatible fun(z) -> (f, grad).

    The arrays are transferred to the JAX device a single time; every call
    reuses them.
    """
    y = jnp.asarray(rotated.y, dtype=jnp.float64)
    if y.ndim == 1:
        y = y[:, None]
    X = jnp.asarray(rotated.X, dtype=jnp.float64)
    eigenvalues = jnp.asarray(rotated.eigenvalues, dtype=jnp.float64)

    value_and_grad = _value_and_grad[bool(reml)]

    def objective(z: np.ndarray) -> tuple[float, np.ndarray]:
        value, grad = value_and_grad(
            jnp.asarray(z, dtype=jnp.float64), y, X, eigenvalues
        )
        return float(value), np.asarray(grad, dtype=np.float64)

    return objective
