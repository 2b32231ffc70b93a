"""Exception and warning types raised by lmmscan.

All errors derive from LmmScanError so callers can catch the whole family.
Each concrete error also subclasses the closest builtin (ValueError or
ArithmeticError) so generic handlers keep working.
"""


class LmmScanError(Exception):
    """Base class for all lmmscan errors."""


class DimensionError(LmmScanError, ValueError):
    """Row or column counts of y, X/G, K or a weight vector disagree."""


class UnsupportedInputError(LmmScanError, ValueError):
    """Input is well-formed but outside what the scan supports (e.g. multi-trait y)."""


class InvalidConfigurationError(LmmScanError, ValueError):
    """Configuration values are invalid or contradict each other."""


class NumericalError(LmmScanError, ArithmeticError):
    """A matrix or weight vector violates a positivity/invertibility requirement."""


class ConvergenceWarning(RuntimeWarning):
    """The heritability optimizer stopped before meeting its tolerance."""
