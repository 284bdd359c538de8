"""Likelihood backend detection and dispatch.

kinlmm supports two backends for the variance component optimizer:

- numpy: scipy/LAPACK likelihood minimised with derivative-free Nelder-Mead.
  Always available; the default.

- jax: JIT-compiled JAX likelihood minimised with L-BFGS-B using exact
  gradients from jax.value_and_grad. Fewer likelihood evaluations per fit,
  at the cost of a one-off compilation per input shape.

Backend selection defaults to numpy but can be overridden via the
KINLMM_BACKEND environment variable or EstimatorConfig.backend.
"""

import os
from functools import cache
from typing import Literal

from loguru import logger

Backend = Literal["numpy", "jax"]

BACKENDS: tuple[str, ...] = ("numpy", "jax")


def normalize_backend_name(value: str) -> str:
    """Normalize backend name to canonical form.

    Args:
        value: Backend name from user input or environment.

    Returns:
        Lower-cased, stripped backend name.

    Raises:
        ValueError: If the name is not a known backend or "auto".

    Examples:
        >>> normalize_backend_name(" JAX ")
        'jax'
    """
    normalized = value.lower().strip()
    if normalized not in (*BACKENDS, "auto"):
        raise ValueError(
            f"Unknown backend '{value}'. Use one of: {', '.join(BACKENDS)}, auto"
        )
    return normalized


@cache
def get_compute_backend() -> Backend:
    """Detect the compute backend for likelihood optimization.

    Priority:
    1. KINLMM_BACKEND environment variable override
       - Valid values: 'numpy', 'jax', 'auto'
    2. Auto-selection: numpy

    Returns:
        Backend identifier ('numpy' or 'jax').

    Raises:
        ValueError: If KINLMM_BACKEND names an unknown backend, or selects
            'jax' when JAX is not importable.
    """
    override = os.environ.get("KINLMM_BACKEND", "").strip()
    if override:
        override = normalize_backend_name(override)

        if override == "jax":
            if not is_jax_available():
                raise ValueError("KINLMM_BACKEND=jax but JAX is not installed")
            logger.debug("Backend override via KINLMM_BACKEND=jax")
            return "jax"

        if override == "numpy":
            logger.debug("Backend override via KINLMM_BACKEND=numpy")
            return "numpy"

    logger.debug("Using numpy backend (default)")
    return "numpy"


def resolve_backend(backend: str | None) -> Backend:
    """Return the canonical backend for an explicit choice or None (auto)."""
    if backend is None:
        return get_compute_backend()
    name = normalize_backend_name(backend)
    if name == "auto":
        return get_compute_backend()
    return name  # type: ignore[return-value]


def is_jax_available() -> bool:
    """Check if JAX can be imported (enables the jax backend)."""
    try:
        import jax  # noqa: F401

        return True
    except ImportError:
        return False


def _has_gpu() -> bool:
    """Check if a GPU is available via JAX."""
    try:
        import jax

        devices = jax.devices()
        return any(d.platform in ("gpu", "cuda", "rocm") for d in devices)
    except ImportError:
        logger.debug("JAX not installed, no GPU support")
        return False
    except RuntimeError as e:
        logger.debug(f"Error checking for GPU: {e}")
        return False


def get_backend_info() -> dict:
    """Get information about available backends.

    Returns:
        Dictionary with keys:
        - selected: Currently selected backend ('numpy' or 'jax')
        - jax_available: True if JAX is importable
        - gpu_available: True if JAX can access a GPU
        - override: Value of KINLMM_BACKEND env var, or None
    """
    return {
        "selected": get_compute_backend(),
        "jax_available": is_jax_available(),
        "gpu_available": _has_gpu(),
        "override": os.environ.get("KINLMM_BACKEND", None),
    }
