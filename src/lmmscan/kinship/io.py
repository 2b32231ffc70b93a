"""Kinship matrix text I/O (whitespace-delimited, no header)."""

from pathlib import Path

import numpy as np

from lmmscan.errors import DimensionError, NumericalError


def read_kinship_matrix(path: Path, n_samples: int | None = None) -> np.ndarray:
    """Read a kinship matrix from a whitespace-delimited text file.

    Args:
        path: Path to kinship matrix file (e.g. ``.cXX.txt``).
        n_samples: Expected number of samples (optional validation).

    Returns:
        Kinship matrix as numpy array (n x n).

    Raises:
        DimensionError: If the matrix is not square or does not match n_samples.
        NumericalError: If the matrix is not symmetric.
    """
    K = np.loadtxt(path, dtype=np.float64, ndmin=2)

    if K.shape[0] != K.shape[1]:
        raise DimensionError(f"Kinship matrix must be square, got shape {K.shape}")

    if n_samples is not None and K.shape[0] != n_samples:
        raise DimensionError(
            f"Kinship matrix dimension {K.shape[0]} does not match "
            f"expected n_samples={n_samples}"
        )

    if not np.allclose(K, K.T, rtol=1e-10):
        raise NumericalError("Kinship matrix is not symmetric")

    return K


def write_kinship_matrix(K: np.ndarray, path: Path) -> None:
    """Write a kinship matrix as tab-separated text.

    - 10 significant digits (``.10g``)
    - Tab separator between values, newline after each row
    - No header row, no sample IDs

    Args:
        K: Kinship matrix (n x n), should be symmetric.
        path: Output file path. Parent directories are created if needed.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, "w") as f:
        for row in np.asarray(K):
            f.write("\t".join(f"{v:.10g}" for v in row) + "\n")
