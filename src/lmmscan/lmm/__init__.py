"""Linear mixed model genome scans.

Key components:
- eigendecompose_kinship / rotate_data: spectral rotation by the kinship matrix
- fit_wls: weighted least squares with ML/REML log-likelihood
- fit_lmm: heritability estimation by grid search or bounded Brent search
- scan: per-marker LOD scores under shared (null) or per-marker (alt)
  variance components
- scan_permutations / scan_permutations_lite: permutation null LOD matrices
  from a single null-model fit
"""

from lmmscan.lmm.eigen import (
    RotatedData,
    eigendecompose_kinship,
    rotate_data,
    rotate_data_weighted,
    transform_rotation,
)
from lmmscan.lmm.heritability import LMMEstimates, fit_lmm, make_weights
from lmmscan.lmm.io import write_permutation_lods, write_scan_results
from lmmscan.lmm.optimize import BoundedBrent, GridSearch, OptimizeResult
from lmmscan.lmm.permutation import (
    col_standardize,
    scan_permutations,
    scan_permutations_lite,
    scan_perms,
    scan_perms_lite,
    transform_permute,
    transform_reweight,
)
from lmmscan.lmm.scan import ScanResult, scan, scan_alt, scan_null
from lmmscan.lmm.wls import WLSResult, fit_wls

__all__ = [
    "BoundedBrent",
    "GridSearch",
    "LMMEstimates",
    "OptimizeResult",
    "RotatedData",
    "ScanResult",
    "WLSResult",
    "col_standardize",
    "eigendecompose_kinship",
    "fit_lmm",
    "fit_wls",
    "make_weights",
    "rotate_data",
    "rotate_data_weighted",
    "scan",
    "scan_alt",
    "scan_null",
    "scan_permutations",
    "scan_permutations_lite",
    "scan_perms",
    "scan_perms_lite",
    "transform_permute",
    "transform_reweight",
    "transform_rotation",
    "write_permutation_lods",
    "write_scan_results",
]
