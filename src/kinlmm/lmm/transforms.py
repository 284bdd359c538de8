"""Bijections between natural and unconstrained variance parameters.

The optimizer works on z = (log(sigma2), logit(h2)), which ranges over all
of R^2, while the likelihood always sees sigma2 > 0 and h2 in (0, 1).
"""

import numpy as np
from scipy.special import expit
from scipy.special import logit as _logit


def logit(x: float) -> float:
    """Logit function log(x / (1 - x))."""
    return float(_logit(x))


def invlogit(x: float) -> float:
    """Inverse of the logit function, exp(x) / (1 + exp(x)).

    Computed without overflow for large |x|; saturates to exactly 0.0 or 1.0
    in float64 once |x| exceeds roughly 37.
    """
    return float(expit(x))


def to_unconstrained(sigma2: float, h2: float) -> np.ndarray:
    """Map (sigma2, h2) to the optimizer's coordinates [log sigma2, logit h2].

    Raises:
        ValueError: If sigma2 <= 0 or h2 is not strictly between 0 and 1.
    """
    if not sigma2 > 0.0:
        raise ValueError(f"sigma2 must be positive, got {sigma2}")
    if not 0.0 < h2 < 1.0:
        raise ValueError(f"h2 must be in (0, 1), got {h2}")
    return np.array([np.log(sigma2), logit(h2)], dtype=np.float64)


def from_unconstrained(z: np.ndarray) -> tuple[float, float]:
    """Map optimizer coordinates [log sigma2, logit h2] back to (sigma2, h2)."""
    z = np.asarray(z, dtype=np.float64)
    if z.shape != (2,):
        raise ValueError(f"Expected 2 unconstrained parameters, got shape {z.shape}")
    return float(np.exp(z[0])), invlogit(z[1])
