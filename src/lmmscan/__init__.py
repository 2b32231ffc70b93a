"""lmmscan: genome scans under a linear mixed model.

lmmscan estimates heritability for a single quantitative trait, computes
per-marker LOD scores while accounting for sample relatedness through a
kinship matrix, and builds permutation null distributions from a single
null-model fit.

Key features:
- Spectral rotation so every fit is a weighted least-squares problem
- ML or REML heritability by grid search or bounded Brent search
- Shared (null) or per-marker (alt) variance-component scans
- Permutation LOD matrices via JIT-compiled JAX kernels

Example:
    >>> from lmmscan import scan, scan_permutations
    >>> result = scan(y, G, K)
    >>> perms = scan_permutations(y, G, K)
    >>> threshold = np.quantile(perms[:-1].max(axis=1), 0.95)
"""

import sys
from importlib.metadata import PackageNotFoundError, version

from loguru import logger

try:
    __version__ = version("lmmscan")
except PackageNotFoundError:
    __version__ = "0.0.0"

# Configure loguru with sensible defaults on import
# Users can override by calling logger.remove()/add() or setup_logging()
logger.remove()
logger.add(
    sys.stdout,
    level="INFO",
    format="{time:HH:mm:ss} | <level>{level: <8}</level> | {message}",
    colorize=True,
)

from lmmscan.core.config import (  # noqa: E402
    Assumption,
    Method,
    PermutationConfig,
    ScanConfig,
    VarianceSearch,
)
from lmmscan.errors import (  # noqa: E402
    ConvergenceWarning,
    DimensionError,
    InvalidConfigurationError,
    LmmScanError,
    NumericalError,
    UnsupportedInputError,
)
from lmmscan.lmm import (  # noqa: E402
    ScanResult,
    scan,
    scan_permutations,
    scan_permutations_lite,
)

__all__ = [
    "Assumption",
    "ConvergenceWarning",
    "DimensionError",
    "InvalidConfigurationError",
    "LmmScanError",
    "Method",
    "NumericalError",
    "PermutationConfig",
    "ScanConfig",
    "ScanResult",
    "UnsupportedInputError",
    "VarianceSearch",
    "__version__",
    "scan",
    "scan_permutations",
    "scan_permutations_lite",
]
