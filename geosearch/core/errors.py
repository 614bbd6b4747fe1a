"""Error classification shared by the search core and the HTTP layer.

Only malformed geometry and an unreachable store are raised. Out-of-range
pagination or filter values are clamped or dropped by the compiler and planner,
and "no such entity" is reported as ``None`` rather than an exception.
"""

from typing import Any, Dict, Optional


class SearchError(Exception):
    """Base class for errors surfaced by the search core."""

    code = "SEARCH_ERROR"
    retryable = False

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class InvalidGeometry(SearchError):
    """Coordinates are out of range or structurally wrong. The request is rejected."""

    code = "INVALID_GEOMETRY"


class InvalidRange(SearchError):
    """A numeric input is non-finite or inverted.

    The compiler never raises this (it coerces to "no constraint"); it exists
    for strict callers that prefer to reject such input.
    """

    code = "INVALID_RANGE"


class StoreUnavailable(SearchError):
    """The persistence layer could not be reached. Safe to retry."""

    code = "STORE_UNAVAILABLE"
    retryable = True
