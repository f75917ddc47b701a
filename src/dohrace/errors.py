from __future__ import annotations

from typing import Any, Optional


class DohRaceError(Exception):
    """Brief: Base class for errors surfaced by the DoH proxy."""


class InvalidQueryError(DohRaceError, ValueError):
    """Brief: Raised when a DNS query payload or method is structurally invalid."""


class NoUpstreamsAvailable(DohRaceError):
    """Brief: Raised when the candidate set for a query is empty."""

    def __init__(self, message: str = "No upstream DoH servers available") -> None:
        super().__init__(message)


class AllUpstreamsFailed(DohRaceError):
    """
    Brief: Raised when both the top-K race and the full-pool fallback failed.

    Inputs:
      - outcome: final RaceOutcome of the fallback race (RaceAllFailed or
        RaceTimeout)

    Outputs:
      - Exception instance carrying the outcome for logging.
    """

    def __init__(
        self,
        outcome: Optional[Any] = None,
        message: str = "All upstream DoH servers failed",
    ) -> None:
        super().__init__(message)
        self.outcome = outcome
