"""Adaptive upstream selection: performance tracking, candidate ranking, racing."""

from .candidates import CandidateSetBuilder
from .performance import PerformanceRecord, PerformanceTracker
from .race import (
    AttemptStatus,
    DnsQuery,
    RaceAllFailed,
    RaceAttempt,
    RaceCoordinator,
    RaceNoUpstreams,
    RaceOutcome,
    RaceSuccess,
    RaceTimeout,
)

__all__ = [
    "AttemptStatus",
    "CandidateSetBuilder",
    "DnsQuery",
    "PerformanceRecord",
    "PerformanceTracker",
    "RaceAllFailed",
    "RaceAttempt",
    "RaceCoordinator",
    "RaceNoUpstreams",
    "RaceOutcome",
    "RaceSuccess",
    "RaceTimeout",
]
