"""Weighted least squares with (restricted) log-likelihood.

After rotation by the kinship eigenvectors the LMM covariance is diagonal,
so a fit at fixed heritability is a weighted regression with weights equal
to the reciprocal per-sample variances ``1 / (h2 * lambda + 1 - h2)``.

Log-likelihood (up to the constant ``-n/2 * log(2*pi)``, which cancels in
every LOD score):

    ell = -1/2 * (n * log(sigma2) - sum(log(w)) + rss / sigma2)

With REML the restricted-likelihood correction is added:

    ell += 1/2 * (p * log(sigma2) - log det(X' W X))

The residual variance optionally incorporates a scaled-inverse-chi-square
style prior ``(a, b)`` (prior variance, prior sample size):

    sigma2 = (rss + a * b) / (n - [p if reml] + b)
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
import scipy.linalg

from lmmscan.core.config import Method
from lmmscan.errors import DimensionError, NumericalError

# Relative tolerance on |diag(R)| below which the design is treated as singular
_RANK_TOL = 1e-10

# RSS at or below this fraction of the null RSS is a perfect fit; the LOD
# would only measure rounding noise
PERFECT_FIT_RTOL = 1e-12


@dataclass(frozen=True)
class WLSResult:
    """Weighted least-squares fit.

    Attributes:
        b: Coefficients (n_columns, 1).
        sigma2: Residual variance estimate.
        ell: Log-likelihood (ML or REML), or None when not requested.
        rss: Weighted residual sum of squares.
    """

    b: np.ndarray
    sigma2: float
    ell: float | None
    rss: float


def _solve_qr(XX: np.ndarray, yy: np.ndarray) -> tuple[np.ndarray, float]:
    """Least-squares solve via economic QR; returns (b, logdet(X'X))."""
    Q, R = scipy.linalg.qr(XX, mode="economic", check_finite=False)
    diag = np.abs(np.diag(R))
    if diag.size and diag.min() <= _RANK_TOL * max(1.0, diag.max()):
        raise NumericalError(
            f"Design matrix is singular or rank-deficient "
            f"(min |R_ii| = {diag.min():.3e})"
        )
    b = scipy.linalg.solve_triangular(R, Q.T @ yy, check_finite=False)
    return b, 2.0 * float(np.sum(np.log(diag)))


def _solve_cholesky(XX: np.ndarray, yy: np.ndarray) -> tuple[np.ndarray, float]:
    """Least-squares solve via Cholesky of X'X; returns (b, logdet(X'X))."""
    XtX = XX.T @ XX
    try:
        c, lower = scipy.linalg.cho_factor(XtX, lower=True, check_finite=False)
    except np.linalg.LinAlgError as e:
        raise NumericalError(f"X'WX is not positive definite: {e}") from e
    diag = np.diag(c)
    if diag.size and diag.min() <= np.sqrt(_RANK_TOL) * max(1.0, diag.max()):
        raise NumericalError(
            f"X'WX is numerically singular (min L_ii = {diag.min():.3e})"
        )
    b = scipy.linalg.cho_solve((c, lower), XX.T @ yy, check_finite=False)
    return b, 2.0 * float(np.sum(np.log(diag)))


_SOLVERS = {
    Method.QR: _solve_qr,
    Method.CHOLESKY: _solve_cholesky,
}


def least_squares(
    y: np.ndarray, X: np.ndarray, method: Method = Method.QR
) -> tuple[np.ndarray, float, float]:
    """Ordinary least squares of a single column on X.

    Args:
        y: Response (n,) or (n, 1).
        X: Design (n, p); p may be 0.
        method: Factorization to use.

    Returns:
        Tuple of (b, rss, logdet_xtx) with b shaped (p, 1).

    Raises:
        NumericalError: If X is rank-deficient.
    """
    yy = np.asarray(y, dtype=np.float64).reshape(-1, 1)
    XX = np.asarray(X, dtype=np.float64)
    if XX.shape[1] == 0:
        return np.zeros((0, 1)), float(np.sum(yy**2)), 0.0

    b, logdet = _SOLVERS[Method(method)](XX, yy)
    resid = yy - XX @ b
    return b, float(np.sum(resid**2)), logdet


def residual_sum_of_squares(
    y: np.ndarray, X: np.ndarray, method: Method = Method.QR
) -> float:
    """RSS of the least-squares fit of y on X."""
    return least_squares(y, X, method)[1]


def fit_wls(
    y: np.ndarray,
    X: np.ndarray,
    weights: np.ndarray,
    *,
    reml: bool = False,
    loglik: bool = True,
    method: Method = Method.QR,
    prior: tuple[float, float] = (0.0, 0.0),
) -> WLSResult:
    """Weighted least squares with optional (restricted) log-likelihood.

    Args:
        y: Response (n,) or (n, 1).
        X: Design (n, p). A zero-column design fits no fixed effects.
        weights: Reciprocal per-sample variances (n,), strictly positive.
        reml: Use the restricted likelihood and ``n - p`` degrees of freedom.
        loglik: Compute the log-likelihood; ``ell`` is None otherwise.
        method: QR or CHOLESKY factorization of the reweighted design.
        prior: (prior variance, prior sample size) for the residual variance.

    Returns:
        WLSResult with coefficients, residual variance, log-likelihood and RSS.

    Raises:
        DimensionError: If y, X and weights disagree in length, or y has
            more than one column.
        NumericalError: If weights are not strictly positive, the design is
            singular, or the residual variance is zero/undefined.

    Example:
        >>> r = fit_wls(np.array([1.0, 2, 3, 4]), np.ones((4, 1)), np.ones(4))
        >>> round(float(r.b[0, 0]), 10), round(r.rss, 10)
        (2.5, 5.0)
    """
    y = np.asarray(y, dtype=np.float64)
    if y.ndim == 2:
        if y.shape[1] != 1:
            raise DimensionError(f"y must have a single column, got shape {y.shape}")
        y = y[:, 0]
    X = np.asarray(X, dtype=np.float64)
    if X.ndim == 1:
        X = X.reshape(-1, 1)
    weights = np.asarray(weights, dtype=np.float64)

    n = y.shape[0]
    if X.shape[0] != n or weights.shape != (n,):
        raise DimensionError(
            f"Dimension mismatch: y has {n} rows, X has {X.shape[0]}, "
            f"weights has shape {weights.shape}"
        )
    if not np.all(np.isfinite(weights)) or np.any(weights <= 0):
        raise NumericalError("WLS weights must be finite and strictly positive")

    p = X.shape[1]
    sqrtw = np.sqrt(weights)
    b, rss, logdet_xtx = least_squares(y * sqrtw, X * sqrtw[:, None], method)

    prior_a, prior_b = prior
    dof = n - p if reml else n
    denom = dof + prior_b
    if denom <= 0:
        raise NumericalError(
            f"Residual variance undefined: {dof} degrees of freedom "
            f"with prior sample size {prior_b}"
        )
    sigma2 = (rss + prior_a * prior_b) / denom

    ell = None
    if loglik:
        if not sigma2 > 0:
            raise NumericalError(
                "Residual variance is zero (perfect fit); log-likelihood undefined"
            )
        log_sigma2 = np.log(sigma2)
        ell = -0.5 * (n * log_sigma2 - np.sum(np.log(weights)) + rss / sigma2)
        if reml:
            ell += 0.5 * (p * log_sigma2 - logdet_xtx)
        ell = float(ell)

    return WLSResult(b=b, sigma2=float(sigma2), ell=ell, rss=rss)
