"""kinlmm: variance components for kinship-structured linear mixed models.

Estimates sigma2 and h2 in y ~ N(X beta, sigma2 * (h2*K + (1-h2)*I)) where K
is a known symmetric positive-definite relatedness matrix, as used in GWAS
and QTL mapping with related samples.

Key features:
- Single eigendecomposition of K, reused by every likelihood evaluation
- QR-based weighted least squares, no normal equations
- ML and REML profile likelihoods, numpy or JAX (autodiff) backends

Example:
    >>> from kinlmm import fit_lmm
    >>> result = fit_lmm(y, X, K)
    >>> print(f"h2={result.h2:.3f}, sigma2={result.sigma2:.3f}")
"""

import sys
from importlib.metadata import version

from loguru import logger

__version__ = version("kinlmm")

# Users can override by calling logger.remove()/add() or setup_logging()
logger.remove()
logger.add(
    sys.stdout,
    level="INFO",
    format="{time:HH:mm:ss} | <level>{level: <8}</level> | {message}",
    colorize=True,
)

from kinlmm.errors import (  # noqa: E402
    DimensionMismatchError,
    KinLMMError,
    NonConvergenceError,
    NonPositiveWeightError,
    NotPositiveDefiniteError,
    NotSymmetricError,
    SingularDesignError,
)
from kinlmm.fit import LMMResult, fit_lmm, fit_rotated  # noqa: E402

__all__ = [
    "fit_lmm",
    "fit_rotated",
    "LMMResult",
    "KinLMMError",
    "DimensionMismatchError",
    "NotSymmetricError",
    "NotPositiveDefiniteError",
    "NonPositiveWeightError",
    "SingularDesignError",
    "NonConvergenceError",
    "__version__",
]
