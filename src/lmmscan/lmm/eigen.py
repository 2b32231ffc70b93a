"""Spectral rotation of LMM data by the kinship matrix.

For a model with covariance ``sigma2 * (h2 * K + (1 - h2) * I)``, rotating
phenotype and design by the eigenvectors ``U`` of ``K`` turns the covariance
into a diagonal matrix with entries ``h2 * lambda_i + (1 - h2)``. Everything
downstream (heritability fits, genome scans, permutations) works on the
rotated data.

Uses scipy.linalg.eigh (LAPACK) with explicit driver selection. Thread
control is handled by lmmscan.core.threading via threadpool_limits.

Driver selection:
- dsyevd (driver='evd'): Divide-and-conquer, fastest but O(n^2) workspace.
- dsyevr (driver='evr'): Relatively robust representations, O(n) workspace fallback.
"""

import time
import warnings
from dataclasses import dataclass

import numpy as np
import psutil
import scipy.linalg
from loguru import logger

from lmmscan.core.threading import blas_threads, get_blas_thread_count
from lmmscan.errors import DimensionError, NumericalError


@dataclass(frozen=True)
class RotatedData:
    """Phenotype and design after rotation by the kinship eigenvectors.

    Attributes:
        y: Rotated phenotype ``U.T @ y`` (n_samples, 1).
        X: Rotated design ``U.T @ X`` (n_samples, n_columns).
        eigenvalues: Kinship eigenvalues (n_samples,), ascending.
        n_covariates: Leading columns of ``X`` that are covariates rather
            than markers (1 with an intercept, 0 without).
    """

    y: np.ndarray
    X: np.ndarray
    eigenvalues: np.ndarray
    n_covariates: int = 0

    @property
    def n_samples(self) -> int:
        return self.y.shape[0]

    @property
    def markers(self) -> np.ndarray:
        """Rotated marker columns (everything after the covariates)."""
        return self.X[:, self.n_covariates :]

    @property
    def covariates(self) -> np.ndarray:
        """Rotated covariate columns, shape (n_samples, n_covariates)."""
        return self.X[:, : self.n_covariates]


def _select_eigendecomp_driver(n_samples: int) -> str:
    """Select LAPACK driver based on available memory.

    We need space for a working copy of K, the eigenvectors, and the
    dsyevd workspace of (1 + 6*n + 2*n^2) * 8 + (3 + 5*n) * 4 bytes.

    Args:
        n_samples: Number of samples (matrix dimension).

    Returns:
        'evd' if dsyevd workspace fits in available memory, 'evr' otherwise.
    """
    available_gb = psutil.virtual_memory().available / 1e9
    dsyevd_workspace_gb = (
        (1 + 6 * n_samples + 2 * n_samples * n_samples) * 8 + (3 + 5 * n_samples) * 4
    ) / 1e9
    matrices_gb = 2 * n_samples**2 * 8 / 1e9
    total_needed = matrices_gb + dsyevd_workspace_gb

    if total_needed * 1.1 < available_gb:
        return "evd"
    logger.warning(
        f"dsyevd workspace ({dsyevd_workspace_gb:.1f}GB) too large for "
        f"available memory ({available_gb:.1f}GB), "
        f"falling back to dsyevr (slower but O(n) workspace)"
    )
    return "evr"


def check_kinship(K: np.ndarray, n_samples: int | None = None) -> None:
    """Validate that K is a square, symmetric matrix of the expected size.

    Raises:
        DimensionError: If K is not square or its size is not ``n_samples``.
        NumericalError: If K contains non-finite values or is not symmetric.
    """
    if K.ndim != 2 or K.shape[0] != K.shape[1]:
        raise DimensionError(f"Kinship matrix must be square, got shape {K.shape}")
    if n_samples is not None and K.shape[0] != n_samples:
        raise DimensionError(
            f"Kinship matrix is {K.shape[0]}x{K.shape[1]} but data has "
            f"{n_samples} samples"
        )
    if not np.all(np.isfinite(K)):
        raise NumericalError("Kinship matrix contains NaN or infinite values")
    scale = max(1.0, float(np.max(np.abs(K)))) if K.size else 1.0
    if not np.allclose(K, K.T, rtol=1e-10, atol=1e-10 * scale):
        raise NumericalError("Kinship matrix is not symmetric")


def eigendecompose_kinship(
    K: np.ndarray, threshold: float = 1e-10
) -> tuple[np.ndarray, np.ndarray]:
    """Eigendecompose a kinship matrix, zeroing small eigenvalues.

    - Eigenvalues with |lambda| < max(threshold, 1e-8 * max(1, max|lambda|))
      are set to 0
    - Warning if more than one eigenvalue is zero (rank deficiency)
    - NumericalError if an eigenvalue is clearly negative (K not PSD)

    The input matrix is copied, never overwritten.

    Args:
        K: Symmetric kinship matrix (n_samples, n_samples).
        threshold: Absolute floor of the zeroing tolerance (default: 1e-10).

    Returns:
        Tuple of (eigenvalues, eigenvectors) where:
        - eigenvalues: (n_samples,) sorted ascending
        - eigenvectors: (n_samples, n_samples) columns are eigenvectors

    Raises:
        DimensionError: If the kinship matrix is not square.
        NumericalError: If K is not symmetric or not positive semi-definite.
    """
    K = np.asarray(K, dtype=np.float64)
    check_kinship(K)
    n_samples = K.shape[0]

    logger.debug(f"Eigendecomposing kinship matrix ({n_samples:,} x {n_samples:,})")

    n_threads = get_blas_thread_count()
    driver = _select_eigendecomp_driver(n_samples)
    logger.debug(f"Eigendecomp using driver={driver}, {n_threads} BLAS threads")

    start_time = time.perf_counter()
    try:
        with blas_threads(n_threads):
            eigenvalues, eigenvectors = scipy.linalg.eigh(
                K,
                driver=driver,
                overwrite_a=False,
                check_finite=False,
            )
    except np.linalg.LinAlgError as e:
        raise NumericalError(f"Eigendecomposition failed: {e}") from e

    elapsed = time.perf_counter() - start_time
    logger.debug(f"Eigendecomposition completed in {elapsed:.2f} seconds")

    # Negative eigenvalues beyond rounding noise mean K is not PSD
    tol = max(threshold, 1e-8 * max(1.0, float(np.max(np.abs(eigenvalues)))))
    n_negative = int(np.sum(eigenvalues < -tol))
    if n_negative > 0:
        raise NumericalError(
            f"Kinship matrix has {n_negative} negative eigenvalue(s) "
            f"(min {eigenvalues.min():.3e}); it is not positive semi-definite"
        )

    eigenvalues = np.where(np.abs(eigenvalues) < tol, 0.0, eigenvalues)

    n_zero = int(np.sum(eigenvalues == 0.0))
    if n_zero > 1:
        warnings.warn(
            f"Kinship matrix has {n_zero} eigenvalues close to zero. "
            "Matrix may be rank-deficient.",
            stacklevel=2,
        )

    return eigenvalues, eigenvectors


def _as_column(y: np.ndarray) -> np.ndarray:
    y = np.asarray(y, dtype=np.float64)
    if y.ndim == 1:
        return y.reshape(-1, 1)
    if y.ndim != 2:
        raise DimensionError(f"Phenotype must be 1-D or 2-D, got {y.ndim}-D")
    return y


def _as_matrix(X: np.ndarray) -> np.ndarray:
    X = np.asarray(X, dtype=np.float64)
    if X.ndim == 1:
        return X.reshape(-1, 1)
    if X.ndim != 2:
        raise DimensionError(f"Design matrix must be 1-D or 2-D, got {X.ndim}-D")
    return X


def rotate_data(
    y: np.ndarray, X: np.ndarray, K: np.ndarray, n_covariates: int = 0
) -> RotatedData:
    """Rotate phenotype and design by the eigenvectors of K.

    Args:
        y: Phenotype (n_samples,) or (n_samples, n_traits).
        X: Design matrix (n_samples, n_columns).
        K: Kinship matrix (n_samples, n_samples), symmetric PSD.
        n_covariates: Number of leading covariate columns in X.

    Returns:
        RotatedData with ``U.T @ y``, ``U.T @ X`` and the eigenvalues.

    Raises:
        DimensionError: If row counts of y, X and K disagree.
    """
    y = _as_column(y)
    X = _as_matrix(X)
    n = y.shape[0]
    if X.shape[0] != n or np.shape(K)[0] != n:
        raise DimensionError(
            f"Dimension mismatch: y has {n} rows, X has {X.shape[0]}, "
            f"K has {np.shape(K)[0]}"
        )

    eigenvalues, U = eigendecompose_kinship(K)
    with blas_threads():
        Uty = U.T @ y
        UtX = U.T @ X
    return RotatedData(y=Uty, X=UtX, eigenvalues=eigenvalues, n_covariates=n_covariates)


def rotate_data_weighted(
    y: np.ndarray,
    X: np.ndarray,
    K: np.ndarray,
    weights: np.ndarray,
    n_covariates: int = 0,
) -> RotatedData:
    """Rotate data after scaling samples by per-sample weights.

    With ``D = diag(sqrt(weights))`` the kinship becomes ``D K D`` and the
    phenotype and design become ``D y`` and ``D X``; the result is then
    rotated as in rotate_data(). Weights are typically sample sizes or
    inverse error variances. Inputs are not modified.

    Args:
        y: Phenotype (n_samples,) or (n_samples, 1).
        X: Design matrix (n_samples, n_columns).
        K: Kinship matrix (n_samples, n_samples).
        weights: Per-sample weights (n_samples,), strictly positive.
        n_covariates: Number of leading covariate columns in X.

    Raises:
        DimensionError: If weights is not a length-n vector or row counts
            disagree.
        NumericalError: If any weight is non-positive or non-finite.
    """
    y = _as_column(y)
    X = _as_matrix(X)
    K = np.asarray(K, dtype=np.float64)
    weights = np.asarray(weights, dtype=np.float64)
    n = y.shape[0]

    if weights.ndim != 1 or weights.shape[0] != n:
        raise DimensionError(
            f"weights must be a vector of length {n}, got shape {weights.shape}"
        )
    if X.shape[0] != n or K.shape[0] != n:
        raise DimensionError(
            f"Dimension mismatch: y has {n} rows, X has {X.shape[0]}, "
            f"K has {K.shape[0]}"
        )
    if not np.all(np.isfinite(weights)) or np.any(weights <= 0):
        raise NumericalError("weights must be finite and strictly positive")

    w = np.sqrt(weights)
    K_scaled = w[:, None] * K * w[None, :]
    return rotate_data(w[:, None] * y, w[:, None] * X, K_scaled, n_covariates)


def transform_rotation(
    y: np.ndarray,
    G: np.ndarray,
    K: np.ndarray,
    add_intercept: bool = True,
) -> RotatedData:
    """Build the scan design (optional intercept + markers) and rotate it.

    Args:
        y: Phenotype (n_samples,) or (n_samples, 1).
        G: Marker matrix (n_samples, n_markers).
        K: Kinship matrix (n_samples, n_samples).
        add_intercept: Prepend a column of ones.

    Returns:
        RotatedData whose first ``n_covariates`` columns are the intercept.
    """
    G = _as_matrix(G)
    if add_intercept:
        X = np.column_stack([np.ones(G.shape[0]), G])
        return rotate_data(y, X, K, n_covariates=1)
    return rotate_data(y, G, K, n_covariates=0)
