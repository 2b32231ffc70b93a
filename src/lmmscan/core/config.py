"""Configuration dataclasses for lmmscan.

Scan options are frozen dataclasses so a configuration can be shared by
every worker of a scan without copying. Mode flags are ``str`` enums:
``ScanConfig(assumption="alt")`` is accepted and coerced to
``Assumption.ALT`` on construction, and unknown values fail immediately
with InvalidConfigurationError.
"""

from dataclasses import dataclass, fields
from enum import Enum

from lmmscan.errors import InvalidConfigurationError


class Assumption(str, Enum):
    """Variance-component assumption of a genome scan."""

    NULL = "null"  # one (sigma2, h2) fit shared by all markers
    ALT = "alt"  # h2 re-estimated with each marker as covariate


class Method(str, Enum):
    """Factorization used to solve the weighted normal equations."""

    QR = "qr"
    CHOLESKY = "cholesky"


class VarianceSearch(str, Enum):
    """Strategy used to locate the (restricted) maximum-likelihood h2."""

    GRID = "grid"
    BRENT = "brent"


_ENUM_FIELDS = {
    "assumption": Assumption,
    "method": Method,
    "variance_search": VarianceSearch,
}


@dataclass(frozen=True)
class ScanConfig:
    """Options for a single-trait genome scan.

    Attributes:
        add_intercept: Prepend a column of ones to the marker matrix.
        reml: Estimate variance components by REML instead of ML.
        assumption: NULL shares one h2 across markers, ALT refits per marker.
        method: Factorization for least-squares solves.
        prior_variance: Prior residual variance ``a``; with
            ``prior_sample_size`` ``b`` the residual variance estimate
            becomes ``(rss + a*b) / (n + b)``.
        prior_sample_size: Pseudo sample size ``b`` of the prior.
        variance_search: GRID or BRENT heritability optimizer.
        n_grid: Number of grid intervals on [0, 1] for GRID.
        h2_init: Centre of the BRENT search interval.
        h2_radius: Half-width of the BRENT search interval (clipped to [0, 1]).
        n_workers: Worker threads for per-marker work (1 = serial).
        show_progress: Show a progress bar over marker chunks.
    """

    add_intercept: bool = True
    reml: bool = False
    assumption: Assumption = Assumption.NULL
    method: Method = Method.QR
    prior_variance: float = 0.0
    prior_sample_size: float = 0.0
    variance_search: VarianceSearch = VarianceSearch.BRENT
    n_grid: int = 100
    h2_init: float = 0.5
    h2_radius: float = 1.0
    n_workers: int = 1
    show_progress: bool = False

    def __post_init__(self) -> None:
        for name, enum_cls in _ENUM_FIELDS.items():
            value = getattr(self, name)
            if isinstance(value, enum_cls):
                continue
            try:
                coerced = enum_cls(str(value).lower().strip())
            except ValueError as e:
                choices = ", ".join(m.value for m in enum_cls)
                raise InvalidConfigurationError(
                    f"{name} must be one of: {choices}; got {value!r}"
                ) from e
            object.__setattr__(self, name, coerced)

        if self.n_grid < 1:
            raise InvalidConfigurationError(f"n_grid must be >= 1, got {self.n_grid}")
        if not 0.0 <= self.h2_init <= 1.0:
            raise InvalidConfigurationError(
                f"h2_init must lie in [0, 1], got {self.h2_init}"
            )
        if self.h2_radius <= 0.0:
            raise InvalidConfigurationError(
                f"h2_radius must be positive, got {self.h2_radius}"
            )
        if self.prior_variance < 0.0 or self.prior_sample_size < 0.0:
            raise InvalidConfigurationError(
                "prior_variance and prior_sample_size must be non-negative, got "
                f"({self.prior_variance}, {self.prior_sample_size})"
            )
        if self.n_workers < 1:
            raise InvalidConfigurationError(
                f"n_workers must be >= 1, got {self.n_workers}"
            )

    @property
    def prior(self) -> tuple[float, float]:
        """(prior_variance, prior_sample_size) pair passed to the WLS fit."""
        return (self.prior_variance, self.prior_sample_size)

    def as_dict(self) -> dict:
        """Plain dict of field values, enums rendered as strings (for logging)."""
        out = {}
        for f in fields(self):
            value = getattr(self, f.name)
            out[f.name] = value.value if isinstance(value, Enum) else value
        return out


@dataclass(frozen=True)
class PermutationConfig(ScanConfig):
    """Options for permutation scans.

    Attributes:
        n_permutations: Number of permuted residual vectors.
        random_seed: Seed of the permutation generator.
        include_original: Append the unpermuted residuals as the last row.
        chunk_size: Markers per JAX kernel call.

    Only the null assumption and serial execution (n_workers=1) are
    accepted.
    """

    prior_variance: float = 1.0
    n_permutations: int = 1024
    random_seed: int = 0
    include_original: bool = True
    chunk_size: int = 1024

    def __post_init__(self) -> None:
        super().__post_init__()
        if self.assumption != Assumption.NULL:
            raise InvalidConfigurationError(
                "Permutation scans share the null-model heritability; "
                f"assumption must be 'null', got {self.assumption.value!r}"
            )
        if self.n_workers != 1:
            raise InvalidConfigurationError(
                "Permutation scans run as batched JAX kernels; "
                f"n_workers must be 1, got {self.n_workers}"
            )
        if self.n_permutations < 0:
            raise InvalidConfigurationError(
                f"n_permutations must be >= 0, got {self.n_permutations}"
            )
        if self.n_permutations == 0 and not self.include_original:
            raise InvalidConfigurationError(
                "n_permutations=0 requires include_original=True "
                "(there would be nothing to scan)"
            )
        if self.chunk_size < 1:
            raise InvalidConfigurationError(
                f"chunk_size must be >= 1, got {self.chunk_size}"
            )

    @property
    def n_rows(self) -> int:
        """Number of rows of the permutation LOD matrix."""
        return self.n_permutations + (1 if self.include_original else 0)
