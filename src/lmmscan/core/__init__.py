"""Core infrastructure for lmmscan.

- config: Scan configuration dataclasses and mode enums
- jax_config: JAX precision and backend setup
- threading: BLAS thread limits and marker worker pools
- progress: progressbar2 wrapper
"""

from lmmscan.core.config import (
    Assumption,
    Method,
    PermutationConfig,
    ScanConfig,
    VarianceSearch,
)
from lmmscan.core.jax_config import (
    configure_jax,
    ensure_jax_configured,
    get_jax_info,
)
from lmmscan.core.threading import (
    blas_threads,
    get_blas_thread_count,
    partition_range,
    run_partitioned,
)

__all__ = [
    "Assumption",
    "Method",
    "PermutationConfig",
    "ScanConfig",
    "VarianceSearch",
    "blas_threads",
    "configure_jax",
    "ensure_jax_configured",
    "get_blas_thread_count",
    "get_jax_info",
    "partition_range",
    "run_partitioned",
]
