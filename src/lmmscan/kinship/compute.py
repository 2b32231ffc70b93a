"""Kinship matrix construction from a genotype matrix.

Two estimators are provided:

- compute_centered_kinship: K = (1/p) * X_c @ X_c.T with X_c the
  mean-imputed, column-centered genotypes (dosages 0/1/2 or any scale).
- compute_shared_allele_kinship: K_ij = 1 - mean_k |g_ik - g_jk| for
  genotype probabilities in [0, 1], i.e. the expected proportion of shared
  alleles. The diagonal is exactly 1.

Both accumulate marker batches with JAX and return a symmetric numpy array.
"""

from __future__ import annotations

import time

import jax.numpy as jnp
import numpy as np
from jax import jit
from loguru import logger

from lmmscan.core.jax_config import ensure_jax_configured
from lmmscan.core.progress import maybe_progress
from lmmscan.errors import DimensionError
from lmmscan.kinship.missing import impute_and_center, impute_to_mean


@jit
def _accumulate_kinship(K: jnp.ndarray, X_centered: jnp.ndarray) -> jnp.ndarray:
    """Accumulate kinship contribution from a centered marker batch."""
    return K + jnp.matmul(X_centered, X_centered.T)


@jit
def _accumulate_abs_distance(D: jnp.ndarray, X: jnp.ndarray) -> jnp.ndarray:
    """Add sum_k |x_ik - x_jk| over the batch columns to D."""
    return D + jnp.sum(jnp.abs(X[:, None, :] - X[None, :, :]), axis=2)


def _batches(n_markers: int, batch_size: int) -> list[tuple[int, int]]:
    return [
        (start, min(start + batch_size, n_markers))
        for start in range(0, n_markers, batch_size)
    ]


def _check_genotypes(genotypes: np.ndarray) -> np.ndarray:
    genotypes = np.asarray(genotypes, dtype=np.float64)
    if genotypes.ndim != 2:
        raise DimensionError(
            f"Genotype matrix must be 2-D (n_samples, n_markers), "
            f"got shape {genotypes.shape}"
        )
    if genotypes.shape[1] == 0:
        raise DimensionError("Genotype matrix has no markers")
    return genotypes


def compute_centered_kinship(
    genotypes: np.ndarray,
    batch_size: int = 10000,
    show_progress: bool = False,
) -> np.ndarray:
    """Compute the centered relatedness matrix.

    Implements: K = (1/p) * X_c @ X_c.T
    where X_c is centered with missing values imputed to the marker mean.
    Monomorphic markers contribute zero columns but are still counted in p.

    Args:
        genotypes: Genotype matrix (n_samples, n_markers), NaN for missing.
        batch_size: Markers per batch.
        show_progress: Show a progress bar over batches.

    Returns:
        Kinship matrix (n_samples, n_samples), symmetric PSD.

    Raises:
        DimensionError: If genotypes is not 2-D or has no markers.

    Example:
        >>> X = np.array([[0, 1, 2], [1, 1, 1], [2, 1, 0]], dtype=np.float64)
        >>> K = compute_centered_kinship(X)
        >>> np.allclose(K, K.T)
        True
    """
    ensure_jax_configured()
    genotypes = _check_genotypes(genotypes)
    n_samples, n_markers = genotypes.shape
    t_start = time.perf_counter()

    X = jnp.asarray(genotypes)
    K = jnp.zeros((n_samples, n_samples), dtype=jnp.float64)
    batches = _batches(n_markers, batch_size)
    for start, stop in maybe_progress(batches, len(batches), "Kinship", show_progress):
        K = _accumulate_kinship(K, impute_and_center(X[:, start:stop]))

    K = K / n_markers
    # Symmetrize away accumulated rounding
    K = 0.5 * (K + K.T)
    logger.info(
        f"Centered kinship: {n_samples:,} samples x {n_markers:,} markers "
        f"in {time.perf_counter() - t_start:.2f}s"
    )
    return np.array(K)


def compute_shared_allele_kinship(
    genotypes: np.ndarray,
    batch_size: int = 256,
    show_progress: bool = False,
) -> np.ndarray:
    """Compute K_ij = 1 - mean_k |g_ik - g_jk| for genotype probabilities.

    Missing values are imputed to the marker mean first. The batch size is
    small because each batch materializes an (n, n, batch) difference array.

    Args:
        genotypes: Genotype probabilities (n_samples, n_markers) in [0, 1].
        batch_size: Markers per batch.
        show_progress: Show a progress bar over batches.

    Returns:
        Kinship matrix (n_samples, n_samples) with unit diagonal.

    Raises:
        DimensionError: If genotypes is not 2-D or has no markers.
        ValueError: If finite values fall outside [0, 1].
    """
    ensure_jax_configured()
    genotypes = _check_genotypes(genotypes)
    finite = genotypes[np.isfinite(genotypes)]
    if finite.size and (finite.min() < 0.0 or finite.max() > 1.0):
        raise ValueError(
            "Shared-allele kinship expects genotype probabilities in [0, 1], "
            f"got range [{finite.min():.3g}, {finite.max():.3g}]"
        )
    n_samples, n_markers = genotypes.shape
    t_start = time.perf_counter()

    X = jnp.asarray(genotypes)
    D = jnp.zeros((n_samples, n_samples), dtype=jnp.float64)
    batches = _batches(n_markers, batch_size)
    for start, stop in maybe_progress(batches, len(batches), "Kinship", show_progress):
        D = _accumulate_abs_distance(D, impute_to_mean(X[:, start:stop]))

    K = 1.0 - D / n_markers
    logger.info(
        f"Shared-allele kinship: {n_samples:,} samples x {n_markers:,} markers "
        f"in {time.perf_counter() - t_start:.2f}s"
    )
    return np.array(K)
