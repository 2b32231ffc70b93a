"""Bounded scalar optimizers for the heritability search.

Both strategies implement the same contract,
``minimize(objective) -> OptimizeResult``, over h2 in [0, 1]:

- GridSearch: evaluate the objective on an even grid and keep the minimizer.
- BoundedBrent: Brent's method (golden section + parabolic interpolation)
  on a sub-interval of [0, 1], with both interval ends evaluated as
  candidates since ML optima often sit on the boundary (h2 = 0).

Objectives may return +inf for infeasible points (non-positive variances).

Reference: Brent, R.P. (1973) "Algorithms for Minimization without Derivatives"
"""

from __future__ import annotations

import warnings
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

import numpy as np
from loguru import logger

from lmmscan.core.config import VarianceSearch
from lmmscan.errors import ConvergenceWarning, InvalidConfigurationError


@dataclass(frozen=True)
class OptimizeResult:
    """Outcome of a heritability search.

    Attributes:
        h2: Minimizing heritability.
        objective: Objective value (negative log-likelihood) at ``h2``.
        converged: False if the optimizer hit its iteration budget.
        n_evaluations: Number of objective evaluations.
    """

    h2: float
    objective: float
    converged: bool
    n_evaluations: int


class HeritabilityOptimizer(Protocol):
    """Minimizes a scalar objective over h2 in [0, 1]."""

    def minimize(self, objective: Callable[[float], float]) -> OptimizeResult: ...


def brent_minimize(
    func: Callable[[float], float],
    a: float,
    b: float,
    tol: float = 1e-6,
    maxiter: int = 500,
) -> tuple[float, float, int, bool]:
    """Minimize a scalar function using Brent's method.

    Combines golden section search with parabolic interpolation for
    efficient bounded minimization without derivatives.

    Args:
        func: Scalar function to minimize
        a: Lower bound of search interval
        b: Upper bound of search interval
        tol: Relative convergence tolerance (default: 1e-6)
        maxiter: Maximum iterations (default: 500)

    Returns:
        Tuple of (x_min, f_min, n_evaluations, converged)
    """
    golden = 0.5 * (3.0 - np.sqrt(5.0))

    if a > b:
        a, b = b, a

    # x is current best, w is second best, v is previous w
    x = w = v = a + golden * (b - a)
    fx = fw = fv = func(x)
    n_eval = 1

    d = 0.0
    e = 0.0

    for _ in range(maxiter):
        midpoint = 0.5 * (a + b)
        tol1 = tol * abs(x) + 1e-10
        tol2 = 2.0 * tol1

        if abs(x - midpoint) <= (tol2 - 0.5 * (b - a)):
            return x, fx, n_eval, True

        if abs(e) > tol1:
            # Fit parabola through x, w, v
            r = (x - w) * (fx - fv)
            q = (x - v) * (fx - fw)
            p = (x - v) * q - (x - w) * r
            q = 2.0 * (q - r)

            if q > 0:
                p = -p
            else:
                q = -q

            r = e
            e = d

            if abs(p) < abs(0.5 * q * r) and p > q * (a - x) and p < q * (b - x):
                d = p / q
                u = x + d
                # Don't evaluate too close to bounds
                if (u - a) < tol2 or (b - u) < tol2:
                    d = tol1 if x < midpoint else -tol1
            else:
                e = (b if x < midpoint else a) - x
                d = golden * e
        else:
            e = (b if x < midpoint else a) - x
            d = golden * e

        if abs(d) >= tol1:
            u = x + d
        else:
            u = x + (tol1 if d > 0 else -tol1)

        fu = func(u)
        n_eval += 1

        if fu <= fx:
            if u < x:
                b = x
            else:
                a = x
            v, w, x = w, x, u
            fv, fw, fx = fw, fx, fu
        else:
            if u < x:
                a = u
            else:
                b = u
            if fu <= fw or w == x:
                v, w = w, u
                fv, fw = fw, fu
            elif fu <= fv or v == x or v == w:
                v = u
                fv = fu

    return x, fx, n_eval, False


@dataclass(frozen=True)
class GridSearch:
    """Evaluate h2 in {0, 1/n_grid, ..., 1} and keep the minimizer."""

    n_grid: int = 100

    def minimize(self, objective: Callable[[float], float]) -> OptimizeResult:
        h2_grid = np.arange(self.n_grid + 1) / self.n_grid
        values = np.array([objective(float(h2)) for h2 in h2_grid])
        # argmin picks the first (smallest h2) among ties, inf never wins
        # unless every point is infeasible
        best = int(np.argmin(values))
        return OptimizeResult(
            h2=float(h2_grid[best]),
            objective=float(values[best]),
            converged=bool(np.isfinite(values[best])),
            n_evaluations=len(h2_grid),
        )


@dataclass(frozen=True)
class BoundedBrent:
    """Brent's method on [max(h2_init - radius, 0), min(h2_init + radius, 1)]."""

    h2_init: float = 0.5
    radius: float = 1.0
    tol: float = 1e-6
    maxiter: int = 500

    @property
    def bounds(self) -> tuple[float, float]:
        lo = max(self.h2_init - self.radius, 0.0)
        return lo, min(self.h2_init + self.radius, 1.0)

    def minimize(self, objective: Callable[[float], float]) -> OptimizeResult:
        lo, hi = self.bounds
        x, fx, n_eval, converged = brent_minimize(
            objective, lo, hi, tol=self.tol, maxiter=self.maxiter
        )

        # Brent never evaluates the interval ends; ML optima are often there
        candidates = [(lo, objective(lo)), (hi, objective(hi)), (x, fx)]
        n_eval += 2
        h2, best = min(candidates, key=lambda c: c[1])

        if not converged:
            logger.warning(
                f"Brent search did not converge in {self.maxiter} iterations; "
                f"using h2={h2:.6g}"
            )
            warnings.warn(
                f"Brent heritability search did not converge in {self.maxiter} "
                f"iterations; falling back to best of bounds and last estimate "
                f"(h2={h2:.6g})",
                ConvergenceWarning,
                stacklevel=2,
            )

        return OptimizeResult(
            h2=float(h2),
            objective=float(best),
            converged=converged,
            n_evaluations=n_eval,
        )


def build_optimizer(
    variance_search: VarianceSearch,
    n_grid: int = 100,
    h2_init: float = 0.5,
    h2_radius: float = 1.0,
) -> HeritabilityOptimizer:
    """Map a VarianceSearch enum value to an optimizer instance."""
    variance_search = VarianceSearch(variance_search)
    if variance_search is VarianceSearch.GRID:
        return GridSearch(n_grid=n_grid)
    if variance_search is VarianceSearch.BRENT:
        return BoundedBrent(h2_init=h2_init, radius=h2_radius)
    raise InvalidConfigurationError(f"Unknown variance search: {variance_search!r}")
