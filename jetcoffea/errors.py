"""Exception hierarchy for the jetcoffea configuration core.

Routine outcomes (value out of range, run not covered by a calibration
period, trigger not fired for its momentum region) are *not* exceptions:
scalar lookups return ``None`` and array lookups return ``-1``. Only
configuration problems and data-integrity problems raise.
"""


class JetCoffeaError(Exception):
    """Base exception for all jetcoffea errors."""


class ConfigurationError(JetCoffeaError, ValueError):
    """Raised when static configuration violates an invariant.

    Examples:
    - bin edges that are not strictly increasing
    - overlapping calibration-period run ranges
    - trigger ranges with gaps or overlaps
    - pT-hat slices that are not contiguous
    - unknown era or table name
    """


class InconsistentSliceError(JetCoffeaError):
    """Raised when a generator momentum does not belong to its claimed slice."""

    def __init__(self, slice_index, pthat, low=None, high=None):
        self.slice_index = slice_index
        self.pthat = pthat
        self.low = low
        self.high = high
        if low is None:
            msg = f"Unknown pT-hat slice index {slice_index} (pT-hat = {pthat})"
        else:
            upper = "inf" if high is None else f"{high:g}"
            msg = (
                f"pT-hat {pthat:g} outside slice {slice_index} "
                f"range [{low:g}, {upper})"
            )
        super().__init__(msg)


class InconsistencyToleranceExceeded(JetCoffeaError):
    """Raised when too many events carry inconsistent slice information."""
