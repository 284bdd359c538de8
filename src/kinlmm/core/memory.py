"""Memory estimation and checking for the kinship eigendecomposition.

The n x n eigendecomposition dominates both time and memory. These helpers
let it fail fast with a clear MemoryError instead of being OOM-killed.
"""

from typing import NamedTuple

import psutil
from loguru import logger


def _dsyevd_workspace_gb(n: int) -> float:
    """DSYEVD workspace: LWORK=(1+6N+2N^2) doubles, LIWORK=(3+5N) ints."""
    lwork_bytes = (1 + 6 * n + 2 * n * n) * 8  # float64
    liwork_bytes = (3 + 5 * n) * 4  # int32
    return (lwork_bytes + liwork_bytes) / 1e9


def _dsyevr_workspace_gb(n: int) -> float:
    """DSYEVR workspace: LWORK=26N doubles, LIWORK=10N ints."""
    return (26 * n * 8 + 10 * n * 4) / 1e9


def estimate_eigendecomp_memory(n_samples: int, driver: str = "evd") -> float:
    """Estimate peak memory (GB) for eigendecomposition of the kinship matrix.

    The input K is copied before decomposition so the caller's matrix is left
    intact, so peak memory is:
    - K (caller's copy + working copy): 2 * n^2 * 8 bytes
    - eigenvectors (output): n^2 * 8 bytes
    - driver workspace (DSYEVD O(n^2), DSYEVR O(n))

    Args:
        n_samples: Number of samples (matrix dimension).
        driver: LAPACK driver, "evd" or "evr".

    Returns:
        Estimated peak memory in GB.
    """
    matrix_gb = n_samples**2 * 8 / 1e9
    if driver == "evd":
        workspace_gb = _dsyevd_workspace_gb(n_samples)
    else:
        workspace_gb = _dsyevr_workspace_gb(n_samples)
    return 3 * matrix_gb + workspace_gb


def select_eigendecomp_driver(n_samples: int) -> str:
    """Select LAPACK driver based on available memory.

    Returns:
        'evd' if the dsyevd workspace fits in available memory, 'evr' otherwise.
    """
    available_gb = psutil.virtual_memory().available / 1e9
    if estimate_eigendecomp_memory(n_samples, "evd") * 1.1 < available_gb:
        return "evd"
    logger.warning(
        f"dsyevd workspace ({_dsyevd_workspace_gb(n_samples):.1f}GB) too large for "
        f"available memory ({available_gb:.1f}GB), "
        "falling back to dsyevr (slower but O(n) workspace)"
    )
    return "evr"


def check_memory_available(
    required_gb: float,
    safety_margin: float = 0.1,
    operation: str = "operation",
) -> bool:
    """Check if sufficient memory is available, raise if not.

    Args:
        required_gb: Memory required in GB.
        safety_margin: Additional margin (0.1 = 10%).
        operation: Description for error message.

    Returns:
        True if sufficient memory available.

    Raises:
        MemoryError: If insufficient memory with detailed message.
    """
    available_gb = psutil.virtual_memory().available / 1e9
    required_with_margin = required_gb * (1 + safety_margin)

    if required_with_margin > available_gb:
        raise MemoryError(
            f"Insufficient memory for {operation}. "
            f"Need {required_gb:.1f}GB (+{safety_margin*100:.0f}% margin = "
            f"{required_with_margin:.1f}GB), but only {available_gb:.1f}GB available."
        )

    return True


class MemorySnapshot(NamedTuple):
    """Snapshot of current memory state for debugging.

    All values in GB.
    """

    rss_gb: float  # Resident Set Size (actual RAM used by process)
    available_gb: float  # Available system memory
    total_gb: float  # Total system memory
    percent_used: float  # Percentage of total system memory in use


def get_memory_snapshot() -> MemorySnapshot:
    """Get current memory usage snapshot."""
    mem_info = psutil.Process().memory_info()
    vm = psutil.virtual_memory()

    return MemorySnapshot(
        rss_gb=mem_info.rss / 1e9,
        available_gb=vm.available / 1e9,
        total_gb=vm.total / 1e9,
        percent_used=((vm.total - vm.available) / vm.total) * 100,
    )


def log_memory_snapshot(label: str = "", level: str = "DEBUG") -> MemorySnapshot:
    """Log current memory state with optional label.

    Args:
        label: Optional label for this snapshot (e.g., "after_eigendecomp").
        level: Log level ("DEBUG", "INFO", "WARNING").

    Returns:
        MemorySnapshot for chaining/assertions.
    """
    snap = get_memory_snapshot()
    label_str = f" [{label}]" if label else ""
    logger.log(
        level,
        f"Memory{label_str}: RSS={snap.rss_gb:.2f}GB, "
        f"Available={snap.available_gb:.1f}GB/{snap.total_gb:.1f}GB "
        f"({snap.percent_used:.1f}% used)",
    )
    return snap
