"""Exception types raised by kinlmm.

Every failure is raised synchronously by the call that detects it. None of
them are recovered from internally, and no partial estimate is returned.

The input-validation errors also subclass ValueError so callers that only
care about "bad input" can catch the builtin. NonConvergenceError subclasses
RuntimeError and carries the optimizer result for inspection.
"""

from __future__ import annotations

from typing import Any


class KinLMMError(Exception):
    """Base class for all kinlmm errors."""


class DimensionMismatchError(KinLMMError, ValueError):
    """Row counts of phenotype, covariates, kinship or weights disagree."""


class NotSymmetricError(KinLMMError, ValueError):
    """Kinship matrix fails the symmetry check."""


class NotPositiveDefiniteError(KinLMMError, ValueError):
    """Kinship matrix fails the positive-definiteness check."""


class NonPositiveWeightError(KinLMMError, ValueError):
    """A weight passed to the weighted least-squares solver is <= 0."""


class SingularDesignError(KinLMMError, ValueError):
    """Weighted covariate matrix is numerically rank-deficient."""


class NonConvergenceError(KinLMMError, RuntimeError):
    """Optimizer failed to find a finite, converged optimum.

    Attributes:
        result: The scipy OptimizeResult of the failed run, or None when the
            run was aborted before the optimizer returned.
    """

    def __init__(self, message: str, result: Any = None) -> None:
        super().__init__(message)
        self.result = result
