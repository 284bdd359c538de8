"""Configuration dataclasses for kinlmm.

This module contains the dataclass that configures variance component
estimation: which likelihood backend to use and the optimizer tolerances.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class EstimatorConfig:
    """Configuration for the variance component optimizer.

    Attributes:
        backend: Likelihood backend, "numpy" (Nelder-Mead, derivative-free) or
            "jax" (L-BFGS-B with autodiff gradients). None selects via
            get_compute_backend() (KINLMM_BACKEND env var, default numpy).
        maxiter: Maximum optimizer iterations.
        xatol: Nelder-Mead absolute tolerance on the parameter simplex.
        fatol: Nelder-Mead absolute tolerance on the objective.
        gtol: L-BFGS-B projected gradient tolerance.
        ftol: L-BFGS-B relative objective reduction tolerance.
        boundary_tol: Distance of h2 from 0 or 1 below which a boundary
            warning is emitted.
    """

    backend: str | None = None
    maxiter: int = 2000
    xatol: float = 1e-6
    fatol: float = 1e-9
    gtol: float = 1e-6
    ftol: float = 1e-10
    boundary_tol: float = 1e-4

    def __post_init__(self) -> None:
        if self.maxiter < 1:
            raise ValueError(f"maxiter must be positive, got {self.maxiter}")
        for name in ("xatol", "fatol", "gtol", "ftol", "boundary_tol"):
            value = getattr(self, name)
            if not value > 0:
                raise ValueError(f"{name} must be positive, got {value}")
