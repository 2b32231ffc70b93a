"""BIMBAM-format genotype and phenotype text files.

BIMBAM mean-genotype file:
- Whitespace delimited (tabs, spaces or commas after the name), no header
- One marker per row: marker name, minor allele, major allele, then one
  value per sample (dosage or genotype probability)
- Missing values encoded as "NA"

BIMBAM phenotype file:
- Whitespace delimited, no header, one row per sample, one column per trait
- Missing values encoded as "NA" (or "-9")

Row order is positional; samples are matched by position, so tables keyed
by sample ID must be aligned (see lmmscan.io.align) before writing.
"""

from dataclasses import dataclass
from pathlib import Path

import numpy as np

from lmmscan.errors import DimensionError

_MISSING = {"NA", "na", "NaN", "nan"}


@dataclass(frozen=True)
class BimbamGenotypes:
    """Contents of a BIMBAM mean-genotype file.

    Attributes:
        marker_names: Marker identifiers (n_markers,).
        minor_alleles: Minor (counted) allele per marker.
        major_alleles: Major allele per marker.
        genotypes: Genotype matrix (n_samples, n_markers), NaN for missing.
    """

    marker_names: list[str]
    minor_alleles: list[str]
    major_alleles: list[str]
    genotypes: np.ndarray

    @property
    def n_samples(self) -> int:
        return self.genotypes.shape[0]

    @property
    def n_markers(self) -> int:
        return self.genotypes.shape[1]


def _parse_value(token: str, where: str) -> float:
    if token in _MISSING:
        return np.nan
    try:
        return float(token)
    except ValueError as e:
        raise ValueError(
            f"{where}: cannot parse '{token}' as numeric (use 'NA' for missing)"
        ) from e


def _split(line: str) -> list[str]:
    return line.replace(",", " ").split()


def read_bimbam_genotypes(path: Path) -> BimbamGenotypes:
    """Read a BIMBAM mean-genotype file.

    Args:
        path: Path to the genotype file.

    Returns:
        BimbamGenotypes with a (n_samples, n_markers) genotype matrix.

    Raises:
        ValueError: If the file is empty or a value cannot be parsed.
        DimensionError: If rows have different numbers of samples.

    Example:
        File contents (2 markers, 3 samples):
        ```
        rs1  A  G  0.0  1.0  2.0
        rs2  C  T  1.5  NA   0.2
        ```

        >>> geno = read_bimbam_genotypes(Path("geno.txt"))
        >>> geno.genotypes.shape
        (3, 2)
    """
    names: list[str] = []
    minor: list[str] = []
    major: list[str] = []
    rows: list[list[float]] = []

    with open(path) as f:
        for line_no, line in enumerate(f, start=1):
            parts = _split(line)
            if not parts:
                continue
            if len(parts) < 4:
                raise ValueError(
                    f"{path}:{line_no}: expected name, two alleles and at least "
                    f"one genotype value, got {len(parts)} fields"
                )
            names.append(parts[0])
            minor.append(parts[1])
            major.append(parts[2])
            where = f"{path}:{line_no}"
            rows.append([_parse_value(tok, where) for tok in parts[3:]])

    if not rows:
        raise ValueError(f"BIMBAM genotype file is empty: {path}")

    n_samples = len(rows[0])
    for i, row in enumerate(rows):
        if len(row) != n_samples:
            raise DimensionError(
                f"Marker {names[i]} has {len(row)} genotype values "
                f"but expected {n_samples} (based on first marker)"
            )

    genotypes = np.array(rows, dtype=np.float64).T
    return BimbamGenotypes(
        marker_names=names,
        minor_alleles=minor,
        major_alleles=major,
        genotypes=genotypes,
    )


def write_bimbam_genotypes(geno: BimbamGenotypes, path: Path) -> None:
    """Write a BIMBAM mean-genotype file (tab-separated, NaN as ``NA``).

    Args:
        geno: Markers and genotypes; ``genotypes`` is (n_samples, n_markers).
        path: Output path. Parent directories are created if needed.

    Raises:
        DimensionError: If annotation lengths disagree with the marker count.
    """
    n_markers = geno.genotypes.shape[1]
    for label, values in (
        ("marker_names", geno.marker_names),
        ("minor_alleles", geno.minor_alleles),
        ("major_alleles", geno.major_alleles),
    ):
        if len(values) != n_markers:
            raise DimensionError(
                f"{label} has {len(values)} entries but genotypes has "
                f"{n_markers} markers"
            )

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        for j in range(n_markers):
            values = [
                "NA" if np.isnan(v) else f"{v:.6g}" for v in geno.genotypes[:, j]
            ]
            fields = [
                geno.marker_names[j],
                geno.minor_alleles[j],
                geno.major_alleles[j],
            ]
            f.write("\t".join(fields + values) + "\n")


def read_bimbam_phenotypes(path: Path) -> np.ndarray:
    """Read a BIMBAM phenotype file.

    Args:
        path: Path to the phenotype file.

    Returns:
        Phenotype matrix (n_samples, n_traits) with NaN for missing values
        (``NA`` or ``-9``).

    Raises:
        ValueError: If the file is empty or a value cannot be parsed.
        DimensionError: If rows have different numbers of traits.
    """
    rows: list[list[float]] = []
    with open(path) as f:
        for line_no, line in enumerate(f, start=1):
            parts = _split(line)
            if not parts:
                continue
            where = f"{path}:{line_no}"
            rows.append([_parse_value(tok, where) for tok in parts])

    if not rows:
        raise ValueError(f"BIMBAM phenotype file is empty: {path}")

    n_traits = len(rows[0])
    for i, row in enumerate(rows):
        if len(row) != n_traits:
            raise DimensionError(
                f"Phenotype row {i + 1} has {len(row)} columns "
                f"but expected {n_traits} (based on first row)"
            )

    pheno = np.array(rows, dtype=np.float64)
    pheno[pheno == -9.0] = np.nan
    return pheno


def write_bimbam_phenotypes(pheno: np.ndarray, path: Path) -> None:
    """Write a BIMBAM phenotype file (tab-separated, NaN as ``NA``)."""
    pheno = np.asarray(pheno, dtype=np.float64)
    if pheno.ndim == 1:
        pheno = pheno.reshape(-1, 1)

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        for row in pheno:
            f.write("\t".join("NA" if np.isnan(v) else f"{v:.10g}" for v in row) + "\n")
