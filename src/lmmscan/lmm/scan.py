"""Single-trait genome scans under the LMM.

Two variance-component assumptions are supported:

- Assumption.NULL (scan_null): h2 is estimated once from the
  intercept-only model and shared by every marker. Rotated data are
  reweighted by 1/sqrt(h2 * lambda + 1 - h2), after which each marker costs
  one ordinary least-squares solve:

      LOD_i = -(n/2) * (log10(RSS_i) - log10(RSS_0))

- Assumption.ALT (scan_alt): h2 is re-estimated with each marker as a
  covariate, and

      LOD_i = (ell_i - ell_0) / ln(10)

  The per-marker h2 is reported as ``pve``.

Markers are split into contiguous index ranges processed by a thread pool;
each range writes only its own output slots. A NumericalError in one marker
marks that slot NaN and flags it in ``failed`` without stopping the scan.
"""

from __future__ import annotations

import math
import time
from collections.abc import Callable
from dataclasses import dataclass

import numpy as np
from loguru import logger

from lmmscan.core.config import Assumption, ScanConfig
from lmmscan.core.threading import partition_range, run_partitioned
from lmmscan.errors import DimensionError, NumericalError, UnsupportedInputError
from lmmscan.lmm.eigen import RotatedData, check_kinship, transform_rotation
from lmmscan.lmm.heritability import LMMEstimates, fit_lmm_from_config, make_weights
from lmmscan.lmm.wls import PERFECT_FIT_RTOL, residual_sum_of_squares
from lmmscan.utils.logging import log_scan_parameters

# Markers per task; small enough for useful progress, large enough to
# amortize task overhead
_MARKERS_PER_TASK = 512


@dataclass(frozen=True)
class ScanResult:
    """Genome scan output.

    Attributes:
        sigma2: Residual variance of the null model.
        h2: Heritability of the null model.
        lod: LOD score per marker (n_markers,), NaN where ``failed``.
        pve: Per-marker heritability (Alt mode only, else None).
        failed: Boolean mask of markers whose computation failed.
        converged: Whether the null-model heritability search converged.
    """

    sigma2: float
    h2: float
    lod: np.ndarray
    pve: np.ndarray | None = None
    failed: np.ndarray | None = None
    converged: bool = True

    @property
    def n_failed(self) -> int:
        return 0 if self.failed is None else int(np.sum(self.failed))


def check_scan_inputs(
    y: np.ndarray, G: np.ndarray, K: np.ndarray
) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Validate and normalize scan inputs before any expensive work.

    Returns:
        Tuple of (y as (n, 1), G as (n, p), K as float64 array).

    Raises:
        UnsupportedInputError: If y has more than one column.
        DimensionError: If y, G and K disagree in sample count.
        NumericalError: If y or G contain non-finite values, or K is not
            symmetric.
    """
    y = np.asarray(y, dtype=np.float64)
    if y.ndim == 1:
        y = y.reshape(-1, 1)
    if y.ndim != 2:
        raise DimensionError(f"y must be 1-D or 2-D, got {y.ndim}-D")
    if y.shape[1] != 1:
        raise UnsupportedInputError(
            f"Can only scan one trait at a time; y has {y.shape[1]} columns"
        )

    G = np.asarray(G, dtype=np.float64)
    if G.ndim == 1:
        G = G.reshape(-1, 1)
    if G.ndim != 2:
        raise DimensionError(f"G must be 1-D or 2-D, got {G.ndim}-D")

    K = np.asarray(K, dtype=np.float64)
    n = y.shape[0]
    if G.shape[0] != n:
        raise DimensionError(f"y has {n} samples but G has {G.shape[0]} rows")
    check_kinship(K, n_samples=n)

    if not np.all(np.isfinite(y)):
        raise NumericalError("y contains missing or non-finite values")
    if not np.all(np.isfinite(G)):
        raise NumericalError(
            "G contains missing or non-finite values; impute or filter markers first"
        )
    return y, G, K


def _read_only(*arrays: np.ndarray) -> None:
    for a in arrays:
        a.flags.writeable = False


def _run_marker_tasks(
    marker_fn: Callable[[int, np.ndarray], tuple[float, ...]],
    n_markers: int,
    n_outputs: int,
    n_covariates: int,
    n_samples: int,
    config: ScanConfig,
    desc: str,
) -> tuple[np.ndarray, np.ndarray]:
    """Evaluate ``marker_fn(i, design)`` for every marker in parallel ranges.

    ``design`` is an (n_samples, n_covariates + 1) scratch array owned by
    the task; ``marker_fn`` fills it before solving.

    Returns:
        Tuple of (values (n_markers, n_outputs), failed mask (n_markers,)).
    """
    n_parts = max(config.n_workers, math.ceil(n_markers / _MARKERS_PER_TASK))
    parts = partition_range(n_markers, n_parts)

    def task(idx: range) -> tuple[range, np.ndarray, np.ndarray]:
        design = np.empty((n_samples, n_covariates + 1))
        values = np.full((len(idx), n_outputs), np.nan)
        failed = np.zeros(len(idx), dtype=bool)
        for k, i in enumerate(idx):
            try:
                values[k] = marker_fn(i, design)
            except NumericalError as e:
                failed[k] = True
                logger.warning(f"Marker {i}: {e}; LOD set to NaN")
        return idx, values, failed

    values = np.full((n_markers, n_outputs), np.nan)
    failed = np.zeros(n_markers, dtype=bool)
    for idx, part_values, part_failed in run_partitioned(
        task, parts, config.n_workers, config.show_progress, desc
    ):
        values[idx.start : idx.stop] = part_values
        failed[idx.start : idx.stop] = part_failed
    return values, failed


def reweight(rotated: RotatedData, h2: float) -> RotatedData:
    """Divide rotated rows by sqrt(h2 * lambda + 1 - h2).

    After reweighting the model errors are i.i.d. with variance sigma2, so
    ordinary least squares applies.
    """
    sqrtv = np.sqrt(make_weights(h2, rotated.eigenvalues))
    return RotatedData(
        y=rotated.y / sqrtv[:, None],
        X=rotated.X / sqrtv[:, None],
        eigenvalues=rotated.eigenvalues,
        n_covariates=rotated.n_covariates,
    )


def fit_null(rotated: RotatedData, config: ScanConfig) -> LMMEstimates:
    """Fit the covariates-only model on rotated data."""
    return fit_lmm_from_config(
        rotated.y, rotated.covariates, rotated.eigenvalues, config
    )


def scan_null(
    y: np.ndarray, G: np.ndarray, K: np.ndarray, config: ScanConfig | None = None
) -> ScanResult:
    """Genome scan with variance components shared by all markers.

    Args:
        y: Phenotype (n,) or (n, 1).
        G: Marker matrix (n, p).
        K: Kinship matrix (n, n).
        config: Scan options; defaults to ScanConfig().

    Returns:
        ScanResult with null-model sigma2/h2 and one LOD per marker.
    """
    config = config or ScanConfig()
    y, G, K = check_scan_inputs(y, G, K)
    n, p = G.shape
    log_scan_parameters(
        "scan_null", {"n_samples": n, "n_markers": p, **config.as_dict()}
    )

    t_start = time.perf_counter()
    rotated = transform_rotation(y, G, K, add_intercept=config.add_intercept)
    null_fit = fit_null(rotated, config)
    logger.info(
        f"Null model: h2={null_fit.h2:.4f}, sigma2={null_fit.sigma2:.4g} "
        f"({'REML' if config.reml else 'ML'})"
    )

    weighted = reweight(rotated, null_fit.h2)
    y0 = weighted.y
    covariates = weighted.covariates
    markers = weighted.markers
    _read_only(y0, covariates, markers)
    n_cov = weighted.n_covariates

    rss0 = residual_sum_of_squares(y0, covariates, config.method)
    if not rss0 > 0:
        raise NumericalError("Null-model RSS is zero; LOD scores are undefined")

    def marker_lod(i: int, design: np.ndarray) -> tuple[float]:
        design[:, :n_cov] = covariates
        design[:, n_cov] = markers[:, i]
        rss1 = residual_sum_of_squares(y0, design, config.method)
        if not rss1 > PERFECT_FIT_RTOL * rss0:
            raise NumericalError("marker explains the phenotype exactly (RSS ~ 0)")
        return (-(n / 2.0) * (math.log10(rss1) - math.log10(rss0)),)

    values, failed = _run_marker_tasks(
        marker_lod, p, 1, n_cov, n, config, desc="Scan (null VC)"
    )
    lod = np.maximum(values[:, 0], 0.0)

    logger.info(
        f"Null-VC scan of {p:,} markers done in "
        f"{time.perf_counter() - t_start:.2f}s ({int(failed.sum())} failed)"
    )
    return ScanResult(
        sigma2=null_fit.sigma2,
        h2=null_fit.h2,
        lod=lod,
        pve=None,
        failed=failed,
        converged=null_fit.converged,
    )


def scan_alt(
    y: np.ndarray, G: np.ndarray, K: np.ndarray, config: ScanConfig | None = None
) -> ScanResult:
    """Genome scan re-estimating variance components for every marker.

    Costs one heritability optimization per marker plus one for the null
    model.

    Args:
        y: Phenotype (n,) or (n, 1).
        G: Marker matrix (n, p).
        K: Kinship matrix (n, n).
        config: Scan options; defaults to ScanConfig(assumption="alt").

    Returns:
        ScanResult with null-model sigma2/h2, LOD per marker, and per-marker
        heritability in ``pve``.
    """
    config = config or ScanConfig(assumption=Assumption.ALT)
    y, G, K = check_scan_inputs(y, G, K)
    n, p = G.shape
    log_scan_parameters(
        "scan_alt", {"n_samples": n, "n_markers": p, **config.as_dict()}
    )

    t_start = time.perf_counter()
    rotated = transform_rotation(y, G, K, add_intercept=config.add_intercept)
    _read_only(rotated.y, rotated.X, rotated.eigenvalues)
    null_fit = fit_null(rotated, config)
    logger.info(
        f"Null model: h2={null_fit.h2:.4f}, sigma2={null_fit.sigma2:.4g} "
        f"({'REML' if config.reml else 'ML'})"
    )

    y0 = rotated.y
    covariates = rotated.covariates
    markers = rotated.markers
    eigenvalues = rotated.eigenvalues
    n_cov = rotated.n_covariates
    ln10 = math.log(10.0)

    def marker_fit(i: int, design: np.ndarray) -> tuple[float, float]:
        design[:, :n_cov] = covariates
        design[:, n_cov] = markers[:, i]
        alt_fit = fit_lmm_from_config(y0, design, eigenvalues, config)
        return (alt_fit.ell - null_fit.ell) / ln10, alt_fit.h2

    values, failed = _run_marker_tasks(
        marker_fit, p, 2, n_cov, n, config, desc="Scan (alt VC)"
    )
    lod = values[:, 0]
    n_negative = int(np.sum(lod < 0))
    if n_negative:
        logger.debug(f"Clipped {n_negative} negative alt-VC LOD(s) to 0")
    lod = np.maximum(lod, 0.0)

    logger.info(
        f"Alt-VC scan of {p:,} markers done in "
        f"{time.perf_counter() - t_start:.2f}s ({int(failed.sum())} failed)"
    )
    return ScanResult(
        sigma2=null_fit.sigma2,
        h2=null_fit.h2,
        lod=lod,
        pve=values[:, 1],
        failed=failed,
        converged=null_fit.converged,
    )


_SCANNERS: dict[Assumption, Callable[..., ScanResult]] = {
    Assumption.NULL: scan_null,
    Assumption.ALT: scan_alt,
}


def scan(
    y: np.ndarray, G: np.ndarray, K: np.ndarray, config: ScanConfig | None = None
) -> ScanResult:
    """Genome scan of one trait against every marker (one-df tests).

    Dispatches to scan_null() or scan_alt() according to
    ``config.assumption``.

    Args:
        y: Phenotype (n,) or (n, 1).
        G: Marker matrix (n, p).
        K: Kinship matrix (n, n), symmetric positive semi-definite.
        config: Scan options; defaults to ScanConfig().

    Returns:
        ScanResult. ``pve`` is only set for Assumption.ALT.

    Example:
        >>> result = scan(y, G, K, ScanConfig(reml=True))
        >>> int(np.argmax(result.lod))
    """
    config = config or ScanConfig()
    return _SCANNERS[config.assumption](y, G, K, config)
