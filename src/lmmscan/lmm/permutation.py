"""Permutation scans for genome-wide LOD thresholds.

The null model is fitted once. Its reweighted residuals ``r0`` (with the
covariates projected out) are exchangeable under the null hypothesis, so
permuting ``r0`` and testing each residualized marker against each
permutation gives an empirical null LOD distribution without refitting the
variance components per permutation.

Pipeline:
1. Standardize y and each marker column (zero mean, unit variance)
2. Rotate once by the kinship eigenvectors
3. Fit the null model, reweight, residualize -> (r0, X00)
4. Permute r0 with a seeded generator (unpermuted r0 appended last)
5. LOD for every (permutation, marker) pair in chunked JAX kernels
"""

from __future__ import annotations

import time

import jax.numpy as jnp
import numpy as np
import scipy.linalg
from loguru import logger

from lmmscan.core.config import PermutationConfig
from lmmscan.core.jax_config import ensure_jax_configured
from lmmscan.core.progress import maybe_progress
from lmmscan.errors import DimensionError, InvalidConfigurationError, NumericalError
from lmmscan.lmm.eigen import RotatedData, transform_rotation
from lmmscan.lmm.heritability import LMMEstimates
from lmmscan.lmm.kernels_jax import (
    correlation_lod_jax,
    permutation_rss_jax,
    rss_to_lod_jax,
)
from lmmscan.lmm.scan import check_scan_inputs, fit_null, reweight
from lmmscan.utils.logging import log_scan_parameters


def col_standardize(A: np.ndarray) -> np.ndarray:
    """Center each column and scale it to unit sample variance (ddof=1).

    Raises:
        DimensionError: If there are fewer than two rows.
        NumericalError: If a column has zero variance.
    """
    A = np.asarray(A, dtype=np.float64)
    if A.ndim == 1:
        A = A.reshape(-1, 1)
    if A.shape[0] < 2:
        raise DimensionError(
            f"Need at least 2 samples to standardize, got {A.shape[0]}"
        )
    centered = A - A.mean(axis=0, keepdims=True)
    sd = centered.std(axis=0, ddof=1, keepdims=True)
    constant = np.flatnonzero(sd[0] == 0)
    if constant.size:
        raise NumericalError(
            f"{constant.size} column(s) have zero variance (first: {constant[0]}); "
            "remove monomorphic markers before permutation scans"
        )
    return centered / sd


def transform_reweight(
    rotated: RotatedData, config: PermutationConfig
) -> tuple[np.ndarray, np.ndarray, LMMEstimates]:
    """Fit the null model once and return reweighted, residualized data.

    Args:
        rotated: Rotated (standardized) phenotype and design.
        config: Provides prior, REML flag, method and optimizer settings.

    Returns:
        Tuple of (r0, X00, null_fit): the null-model residual vector (n,),
        the markers with covariates projected out (n, p), and the null fit.
    """
    null_fit = fit_null(rotated, config)
    weighted = reweight(rotated, null_fit.h2)

    y0 = weighted.y[:, 0]
    markers = weighted.markers
    if weighted.n_covariates == 0:
        return y0.copy(), markers.copy(), null_fit

    Q, _ = scipy.linalg.qr(weighted.covariates, mode="economic", check_finite=False)
    r0 = y0 - Q @ (Q.T @ y0)
    X00 = markers - Q @ (Q.T @ markers)
    return r0, X00, null_fit


def transform_permute(
    r0: np.ndarray,
    n_permutations: int = 1024,
    random_seed: int = 0,
    include_original: bool = True,
) -> np.ndarray:
    """Stack seeded permutations of a residual vector.

    All permutations are drawn up front from one generator, so the matrix
    depends only on the seed and never on how later work is scheduled.

    Args:
        r0: Residual vector (n,).
        n_permutations: Number of permuted copies.
        random_seed: Seed for numpy.random.default_rng.
        include_original: Append the unpermuted vector as the last row.

    Returns:
        Matrix (n_permutations [+1], n).

    Raises:
        InvalidConfigurationError: If no rows would be produced.
    """
    r0 = np.asarray(r0, dtype=np.float64).ravel()
    if n_permutations < 0:
        raise InvalidConfigurationError(
            f"n_permutations must be >= 0, got {n_permutations}"
        )
    if n_permutations == 0:
        if not include_original:
            raise InvalidConfigurationError(
                "n_permutations=0 requires include_original=True"
            )
        return r0.reshape(1, -1).copy()

    rng = np.random.default_rng(random_seed)
    permuted = rng.permuted(np.tile(r0, (n_permutations, 1)), axis=1)
    if include_original:
        permuted = np.vstack([permuted, r0])
    return permuted


def _prepare(
    y: np.ndarray, G: np.ndarray, K: np.ndarray, config: PermutationConfig, kind: str
) -> tuple[np.ndarray, np.ndarray, LMMEstimates]:
    """Shared steps 1-4: returns (permuted residuals, X00, null fit)."""
    y, G, K = check_scan_inputs(y, G, K)
    n, p = G.shape
    log_scan_parameters(kind, {"n_samples": n, "n_markers": p, **config.as_dict()})

    sy = col_standardize(y)
    sg = col_standardize(G)
    rotated = transform_rotation(sy, sg, K, add_intercept=config.add_intercept)
    r0, X00, null_fit = transform_reweight(rotated, config)
    logger.info(
        f"Null model: h2={null_fit.h2:.4f}, sigma2={null_fit.sigma2:.4g} "
        f"({'REML' if config.reml else 'ML'})"
    )

    r_perm = transform_permute(
        r0,
        n_permutations=config.n_permutations,
        random_seed=config.random_seed,
        include_original=config.include_original,
    )
    return r_perm, X00, null_fit


def _marker_chunks(n_markers: int, chunk_size: int) -> list[tuple[int, int]]:
    return [
        (start, min(start + chunk_size, n_markers))
        for start in range(0, n_markers, chunk_size)
    ]


def _check_perfect_fits(lod: np.ndarray) -> None:
    """Raise if any (permutation, marker) pair fit the residuals exactly."""
    bad = np.isnan(lod)
    if bad.any():
        rows, cols = np.nonzero(bad)
        raise NumericalError(
            f"{int(bad.sum())} permutation LODs are undefined: marker(s) "
            f"{sorted(set(cols.tolist()))[:10]} explain the residuals exactly "
            f"(first at row {int(rows[0])})"
        )


def scan_permutations(
    y: np.ndarray,
    G: np.ndarray,
    K: np.ndarray,
    config: PermutationConfig | None = None,
) -> np.ndarray:
    """LOD scores of every marker against permuted null residuals.

    Args:
        y: Phenotype (n,) or (n, 1); one trait only.
        G: Marker matrix (n, p).
        K: Kinship matrix (n, n).
        config: Permutation options; defaults to PermutationConfig().

    Returns:
        LOD matrix (n_permutations [+1], p). With ``include_original`` the
        last row is the LOD vector of the unpermuted (standardized) data.

    Raises:
        UnsupportedInputError: If y has more than one column.
        DimensionError: If y, G and K disagree in sample count.
        NumericalError: If a marker or the phenotype has zero variance, or
            if a marker explains a residual vector exactly.
    """
    config = config or PermutationConfig()
    ensure_jax_configured()
    t_start = time.perf_counter()

    r_perm, X00, _ = _prepare(y, G, K, config, "scan_permutations")
    n, p = X00.shape

    # Null RSS is identical for every row: permutation preserves the norm
    rss0 = float(np.sum(r_perm[0] ** 2))
    if not rss0 > 0:
        raise NumericalError("Null-model residuals are zero; LOD scores are undefined")
    if not np.all(np.sum(X00**2, axis=0) > 0):
        raise NumericalError("A marker is collinear with the covariates")

    R = jnp.asarray(r_perm)
    lod = np.empty((r_perm.shape[0], p))
    chunks = _marker_chunks(p, config.chunk_size)
    for start, stop in maybe_progress(
        chunks, len(chunks), "Permutation scan", config.show_progress
    ):
        rss1 = permutation_rss_jax(R, jnp.asarray(X00[:, start:stop]), rss0)
        lod[:, start:stop] = np.asarray(rss_to_lod_jax(rss1, rss0, n))
    _check_perfect_fits(lod)

    logger.info(
        f"Permutation scan: {r_perm.shape[0]:,} x {p:,} LODs in "
        f"{time.perf_counter() - t_start:.2f}s"
    )
    return lod


def scan_permutations_lite(
    y: np.ndarray,
    G: np.ndarray,
    K: np.ndarray,
    config: PermutationConfig | None = None,
) -> np.ndarray:
    """Permutation LODs computed from squared correlations.

    Rows of permuted residuals and columns of residualized markers are
    scaled to unit norm, so one matrix product yields the correlations r
    and ``LOD = -(n/2) * log10(1 - r^2)``. Matches scan_permutations()
    within floating-point tolerance.

    Args:
        y: Phenotype (n,) or (n, 1); one trait only.
        G: Marker matrix (n, p).
        K: Kinship matrix (n, n).
        config: Permutation options; defaults to PermutationConfig().

    Returns:
        LOD matrix (n_permutations [+1], p).

    Raises:
        NumericalError: If a marker explains a residual vector exactly.
    """
    config = config or PermutationConfig()
    ensure_jax_configured()
    t_start = time.perf_counter()

    r_perm, X00, _ = _prepare(y, G, K, config, "scan_permutations_lite")
    n, p = X00.shape

    r_norm = np.linalg.norm(r_perm, axis=1, keepdims=True)
    if not np.all(r_norm > 0):
        raise NumericalError("Null-model residuals are zero; LOD scores are undefined")
    x_norm = np.linalg.norm(X00, axis=0, keepdims=True)
    if not np.all(x_norm > 0):
        raise NumericalError("A marker is collinear with the covariates")

    R_unit = jnp.asarray(r_perm / r_norm)
    X_unit = X00 / x_norm
    lod = np.empty((r_perm.shape[0], p))
    chunks = _marker_chunks(p, config.chunk_size)
    for start, stop in maybe_progress(
        chunks, len(chunks), "Permutation scan (lite)", config.show_progress
    ):
        lod[:, start:stop] = np.asarray(
            correlation_lod_jax(R_unit, jnp.asarray(X_unit[:, start:stop]), n)
        )
    _check_perfect_fits(lod)

    logger.info(
        f"Permutation scan (lite): {r_perm.shape[0]:,} x {p:,} LODs in "
        f"{time.perf_counter() - t_start:.2f}s"
    )
    return lod


scan_perms = scan_permutations
scan_perms_lite = scan_permutations_lite
