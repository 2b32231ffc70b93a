"""Sample alignment between phenotype and genotype tables.

Phenotype and genotype sources are often keyed by different sample sets.
The scan functions match samples by row position, so both tables are
subset to their shared IDs in one common order before scanning.
"""

from collections.abc import Sequence

import numpy as np
from loguru import logger


def _index_of(ids: Sequence[str], label: str) -> dict[str, int]:
    index: dict[str, int] = {}
    for i, sample_id in enumerate(ids):
        if sample_id in index:
            raise ValueError(f"Duplicate sample ID in {label}: {sample_id!r}")
        index[sample_id] = i
    return index


def align_samples(
    pheno_ids: Sequence[str], geno_ids: Sequence[str]
) -> tuple[np.ndarray, np.ndarray]:
    """Row indices that align phenotype and genotype tables.

    The shared samples are returned in genotype order.

    Args:
        pheno_ids: Sample IDs of the phenotype rows.
        geno_ids: Sample IDs of the genotype rows.

    Returns:
        Tuple of (pheno_index, geno_index) integer arrays such that
        ``pheno_ids[pheno_index[k]] == geno_ids[geno_index[k]]``.

    Raises:
        ValueError: If either list has duplicate IDs or there is no overlap.

    Example:
        >>> align_samples(["b", "a", "x"], ["a", "b", "c"])
        (array([1, 0]), array([0, 1]))
    """
    pheno_index = _index_of(pheno_ids, "phenotypes")
    _index_of(geno_ids, "genotypes")

    geno_rows = []
    pheno_rows = []
    for j, sample_id in enumerate(geno_ids):
        i = pheno_index.get(sample_id)
        if i is not None:
            geno_rows.append(j)
            pheno_rows.append(i)

    if not geno_rows:
        raise ValueError("Phenotype and genotype tables share no sample IDs")

    n_common = len(geno_rows)
    if n_common < len(pheno_ids) or n_common < len(geno_ids):
        logger.info(
            f"Aligned {n_common:,} shared samples "
            f"({len(pheno_ids) - n_common:,} phenotype-only, "
            f"{len(geno_ids) - n_common:,} genotype-only dropped)"
        )
    return np.array(pheno_rows, dtype=np.intp), np.array(geno_rows, dtype=np.intp)
