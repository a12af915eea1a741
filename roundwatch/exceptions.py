# ==============================================================================
# exceptions.py  –  Failures that cross the roundwatch boundary
#
# Only transport problems are raised. Deadlines, malformed records and
# unresolvable moves degrade into the returned data instead.
# ==============================================================================

from __future__ import annotations

from typing import Optional


class RoundwatchError(Exception):
    """Base class for roundwatch errors."""


class IngestionError(RoundwatchError):
    """A round could not be ingested."""


class TransportError(IngestionError):
    """
    The PGN source could not be reached, or rejected the request, before any
    bytes were received.
    """

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code
