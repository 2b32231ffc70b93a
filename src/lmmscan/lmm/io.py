"""Writers for scan and permutation results.

Scan results are a tab-separated table with a header:

    marker  lod  [pve]

Failed markers are written as ``NA``. Permutation LOD matrices are written
one permutation per row, one marker per column, no header.
"""

from collections.abc import Sequence
from pathlib import Path

import numpy as np

from lmmscan.errors import DimensionError
from lmmscan.lmm.scan import ScanResult


def _fmt(value: float) -> str:
    return "NA" if np.isnan(value) else f"{value:.6e}"


def format_scan_lines(
    result: ScanResult, marker_names: Sequence[str] | None = None
) -> list[str]:
    """Format a ScanResult as table lines, header first."""
    n_markers = result.lod.shape[0]
    if marker_names is None:
        marker_names = [f"marker{i + 1}" for i in range(n_markers)]
    elif len(marker_names) != n_markers:
        raise DimensionError(
            f"{len(marker_names)} marker names for {n_markers} LOD scores"
        )

    header = ["marker", "lod"] + (["pve"] if result.pve is not None else [])
    lines = ["\t".join(header)]
    for i, name in enumerate(marker_names):
        fields = [str(name), _fmt(result.lod[i])]
        if result.pve is not None:
            fields.append(_fmt(result.pve[i]))
        lines.append("\t".join(fields))
    return lines


def write_scan_results(
    result: ScanResult, path: Path, marker_names: Sequence[str] | None = None
) -> None:
    """Write per-marker LOD (and PVE in Alt mode) as a tab-separated table.

    Args:
        result: Output of scan().
        path: Output file path (parent directories created if needed).
        marker_names: Marker identifiers; defaults to marker1..markerP.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        for line in format_scan_lines(result, marker_names):
            f.write(line + "\n")


def write_permutation_lods(lods: np.ndarray, path: Path) -> None:
    """Write a permutation LOD matrix, one permutation per row."""
    lods = np.asarray(lods)
    if lods.ndim != 2:
        raise DimensionError(f"Expected a 2-D LOD matrix, got shape {lods.shape}")

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        for row in lods:
            f.write("\t".join(_fmt(v) for v in row) + "\n")
