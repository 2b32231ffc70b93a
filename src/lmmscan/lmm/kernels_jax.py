"""JIT-compiled kernels for permutation scans.

Rows of ``R`` are permuted null-model residual vectors, columns of ``X`` are
reweighted markers with the covariates projected out. Every permutation of
a residual vector has the same squared norm, so the null RSS is one scalar
and the alternative RSS of regressing each row on each column is

    rss1[k, j] = rss0 * (1 - r2[k, j]),
    r2[k, j] = (R[k] . X[:, j])^2 / ((X[:, j] . X[:, j]) * rss0)

which is a single matrix product per chunk of markers instead of one
least-squares refit per (permutation, marker) pair.

Type annotations use jaxtyping for shape documentation:
    m = permutations (+1), n = samples, c = markers in the chunk
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import jax.numpy as jnp
from jax import jit

from lmmscan.lmm.wls import PERFECT_FIT_RTOL

if TYPE_CHECKING:
    from jaxtyping import Array, Float


@jit
def permutation_rss_jax(
    R: Float[Array, "m n"], X: Float[Array, "n c"], rss0: float
) -> Float[Array, "m c"]:
    """Alternative RSS for every (permutation, marker) pair.

    The explained fraction is clipped to [0, 1] so rounding can never push
    the RSS below zero.

    Args:
        R: Permuted residuals.
        X: Residualized markers.
        rss0: Null RSS shared by every row of R.

    Returns:
        RSS matrix.
    """
    xr = R @ X
    xx = jnp.sum(X * X, axis=0)
    r2 = jnp.clip(xr**2 / (xx[None, :] * rss0), 0.0, 1.0)
    return rss0 * (1.0 - r2)


@jit
def rss_to_lod_jax(
    rss1: Float[Array, "m c"], rss0: float, n: int
) -> Float[Array, "m c"]:
    """LOD = -(n/2) * (log10(rss1) - log10(rss0)), floored at 0.

    Entries with ``rss1 <= PERFECT_FIT_RTOL * rss0`` are NaN.
    """
    lod = -(n / 2.0) * (jnp.log10(rss1) - jnp.log10(rss0))
    lod = jnp.maximum(lod, 0.0)
    return jnp.where(rss1 > PERFECT_FIT_RTOL * rss0, lod, jnp.nan)


@jit
def correlation_lod_jax(
    R_unit: Float[Array, "m n"], X_unit: Float[Array, "n c"], n: int
) -> Float[Array, "m c"]:
    """LOD from squared correlations of unit-norm rows and columns.

    Args:
        R_unit: Permuted residuals scaled to unit norm per row.
        X_unit: Residualized markers scaled to unit norm per column.
        n: Number of samples.

    Returns:
        LOD matrix -(n/2) * log10(1 - r^2), NaN where
        ``1 - r^2 <= PERFECT_FIT_RTOL``.
    """
    r = R_unit @ X_unit
    unexplained = 1.0 - jnp.clip(r * r, 0.0, 1.0)
    lod = jnp.maximum(-(n / 2.0) * jnp.log10(unexplained), 0.0)
    return jnp.where(unexplained > PERFECT_FIT_RTOL, lod, jnp.nan)
