"""
Error types raised by the home-range pipeline.

Input errors and estimator errors propagate to the caller. Basemap
errors are caught by the map renderer and downgraded to a warning.
"""


class HomeRangeError(Exception):
    """Base class for all pipeline errors."""


class LayerNotFoundError(HomeRangeError, ValueError):
    """The requested layer is missing from the source file."""


class CRSMismatchError(HomeRangeError, ValueError):
    """Coordinates are not tagged with (or not valid in) a geographic CRS."""


class InsufficientDataError(HomeRangeError, ValueError):
    """Too few (or degenerate) points to produce an estimate."""


class BasemapUnavailableError(HomeRangeError):
    """Basemap tiles could not be fetched."""
