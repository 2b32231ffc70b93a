"""Heritability estimation for the rotated LMM.

On rotated data the per-sample variance is ``sigma2 * (h2 * lambda + 1 - h2)``.
For a given h2 the fixed effects and sigma2 have closed forms (WLS), so the
likelihood is profiled down to a one-dimensional function of h2 that a
bounded scalar optimizer can maximize.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from loguru import logger

from lmmscan.core.config import Method, ScanConfig
from lmmscan.lmm.optimize import BoundedBrent, HeritabilityOptimizer, build_optimizer
from lmmscan.lmm.wls import fit_wls


@dataclass(frozen=True)
class LMMEstimates:
    """Fitted LMM at the optimal heritability.

    Attributes:
        b: Fixed-effect coefficients (n_columns, 1).
        sigma2: Residual variance.
        h2: Heritability in [0, 1].
        ell: Maximized (restricted) log-likelihood.
        converged: Whether the heritability search converged.
    """

    b: np.ndarray
    sigma2: float
    h2: float
    ell: float
    converged: bool = True


def make_weights(h2: float, eigenvalues: np.ndarray) -> np.ndarray:
    """Per-sample variance multipliers ``h2 * lambda + (1 - h2)``.

    The WLS weights are the reciprocals of these values.
    """
    return h2 * eigenvalues + (1.0 - h2)


def fit_lmm(
    y: np.ndarray,
    X: np.ndarray,
    eigenvalues: np.ndarray,
    *,
    prior: tuple[float, float] = (0.0, 0.0),
    reml: bool = False,
    method: Method = Method.QR,
    optimizer: HeritabilityOptimizer | None = None,
) -> LMMEstimates:
    """Fit the LMM on rotated data by optimizing h2.

    Args:
        y: Rotated phenotype (n,) or (n, 1).
        X: Rotated design (n, p).
        eigenvalues: Kinship eigenvalues (n,).
        prior: (prior variance, prior sample size) for sigma2.
        reml: Maximize the restricted likelihood.
        method: Factorization used by WLS.
        optimizer: GridSearch / BoundedBrent instance; defaults to
            BoundedBrent over [0, 1].

    Returns:
        LMMEstimates refit at the optimal h2.

    Raises:
        NumericalError: If the design is singular (propagated from WLS).
    """
    if optimizer is None:
        optimizer = BoundedBrent()

    def neg_loglik(h2: float) -> float:
        variances = make_weights(h2, eigenvalues)
        if np.any(variances <= 0):
            # Infeasible: a zero eigenvalue at h2 = 1 leaves zero variance
            return np.inf
        return -fit_wls(
            y, X, 1.0 / variances, reml=reml, loglik=True, method=method, prior=prior
        ).ell

    opt = optimizer.minimize(neg_loglik)
    h2 = min(max(opt.h2, 0.0), 1.0)
    est = fit_wls(
        y,
        X,
        1.0 / make_weights(h2, eigenvalues),
        reml=reml,
        loglik=True,
        method=method,
        prior=prior,
    )
    logger.debug(
        f"LMM fit: h2={h2:.6f}, sigma2={est.sigma2:.6g}, ell={est.ell:.6f}, "
        f"evals={opt.n_evaluations}"
    )
    return LMMEstimates(
        b=est.b, sigma2=est.sigma2, h2=h2, ell=est.ell, converged=opt.converged
    )


def fit_lmm_from_config(
    y: np.ndarray, X: np.ndarray, eigenvalues: np.ndarray, config: ScanConfig
) -> LMMEstimates:
    """fit_lmm() with prior, REML flag, method and optimizer taken from a config."""
    return fit_lmm(
        y,
        X,
        eigenvalues,
        prior=config.prior,
        reml=config.reml,
        method=config.method,
        optimizer=build_optimizer(
            config.variance_search,
            n_grid=config.n_grid,
            h2_init=config.h2_init,
            h2_radius=config.h2_radius,
        ),
    )
