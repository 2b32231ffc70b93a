"""Kinship matrix construction and I/O.

Key functions:
- compute_centered_kinship: K = X_c @ X_c.T / p
- compute_shared_allele_kinship: K_ij = 1 - mean |g_i - g_j| for probabilities
- impute_and_center: Impute missing values to marker mean and center
- read_kinship_matrix / write_kinship_matrix: whitespace-delimited text
"""

from lmmscan.kinship.compute import (
    compute_centered_kinship,
    compute_shared_allele_kinship,
)
from lmmscan.kinship.io import read_kinship_matrix, write_kinship_matrix
from lmmscan.kinship.missing import impute_and_center

__all__ = [
    "compute_centered_kinship",
    "compute_shared_allele_kinship",
    "impute_and_center",
    "read_kinship_matrix",
    "write_kinship_matrix",
]
