"""Core infrastructure for kinlmm.

This package contains the non-statistical plumbing:
- config: Estimator configuration dataclass
- backend: Likelihood backend selection
- jax_config: JAX configuration
- memory: Eigendecomposition memory estimation and checks
- threading: Scoped BLAS thread control
"""

from kinlmm.core.backend import get_backend_info, get_compute_backend
from kinlmm.core.config import EstimatorConfig
from kinlmm.core.memory import (
    MemorySnapshot,
    check_memory_available,
    estimate_eigendecomp_memory,
    get_memory_snapshot,
    log_memory_snapshot,
)
from kinlmm.core.threading import blas_threads, get_blas_thread_count

__all__ = [
    "EstimatorConfig",
    "get_backend_info",
    "get_compute_backend",
    "MemorySnapshot",
    "check_memory_available",
    "estimate_eigendecomp_memory",
    "get_memory_snapshot",
    "log_memory_snapshot",
    "blas_threads",
    "get_blas_thread_count",
]
