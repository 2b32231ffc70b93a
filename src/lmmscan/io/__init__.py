"""I/O modules for lmmscan.

- bimbam: BIMBAM genotype/phenotype text files
- align: sample-ID alignment between phenotype and genotype tables
"""

from lmmscan.io.align import align_samples
from lmmscan.io.bimbam import (
    BimbamGenotypes,
    read_bimbam_genotypes,
    read_bimbam_phenotypes,
    write_bimbam_genotypes,
    write_bimbam_phenotypes,
)

__all__ = [
    "BimbamGenotypes",
    "align_samples",
    "read_bimbam_genotypes",
    "read_bimbam_phenotypes",
    "write_bimbam_genotypes",
    "write_bimbam_phenotypes",
]
