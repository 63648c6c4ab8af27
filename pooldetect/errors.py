"""Error taxonomy for pooldetect.

All errors derive from ``PoolDetectError`` and also from the closest
built-in exception, so callers can catch either.
"""


class PoolDetectError(Exception):
    """Base class for all pooldetect errors."""


class InvalidParameter(PoolDetectError, ValueError):
    """A model parameter is outside its valid domain.

    Raised for pool sizes <= 0, implied allele frequencies outside [0, 1],
    negative or non-integer coverage, and non-positive repetition counts.
    """


class NumericOverflow(PoolDetectError, OverflowError):
    """A value exceeds the range the binomial sampler supports."""


class ExternalResourceUnavailable(PoolDetectError, OSError):
    """The reference dataset could not be fetched or parsed."""
