"""Missing data imputation for kinship computation.

Missing genotypes (NaN values) are imputed to the per-marker mean before
centering, so they contribute nothing to the relatedness estimate.
"""

from __future__ import annotations

import jax.numpy as jnp
from jax import jit


@jit
def impute_and_center(X: jnp.ndarray) -> jnp.ndarray:
    """Impute missing values to the marker mean and center.

    Args:
        X: Genotype matrix (n_samples, n_markers), NaN for missing values.

    Returns:
        Centered genotype matrix with missing values imputed to the marker mean.

    Example:
        >>> X = jnp.array([[0.0, 1.0], [jnp.nan, 2.0], [2.0, 1.0]])
        >>> X_centered = impute_and_center(X)
        >>> # Mean of column 0 is (0+2)/2 = 1.0 (excluding NaN)
    """
    means = jnp.nanmean(X, axis=0, keepdims=True)
    # All-missing columns: nanmean is NaN, use 0 so they center to 0
    means = jnp.nan_to_num(means, nan=0.0)
    X_imputed = jnp.where(jnp.isnan(X), means, X)
    return X_imputed - means


@jit
def impute_to_mean(X: jnp.ndarray) -> jnp.ndarray:
    """Replace missing values with the marker mean, without centering."""
    means = jnp.nan_to_num(jnp.nanmean(X, axis=0, keepdims=True), nan=0.0)
    return jnp.where(jnp.isnan(X), means, X)
