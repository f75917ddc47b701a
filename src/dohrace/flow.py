"""
Per-query orchestration: cache, candidate selection, racing and escalation.

Brief:
  QueryFlow ties the engine together for one inbound query. It consults the
  edge cache, builds the regional + global candidate set, races the top-K
  best-scoring upstreams and, when that race does not succeed, races once
  more across the full candidate set before giving up.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from .cache import CachedAnswer, ResponseCache
from .errors import AllUpstreamsFailed, NoUpstreamsAvailable
from .geo import regional_upstreams
from .upstreams.candidates import CandidateSetBuilder
from .upstreams.race import (
    DnsQuery,
    RaceCoordinator,
    RaceNoUpstreams,
    RaceOutcome,
    RaceSuccess,
)

logger = logging.getLogger("dohrace.flow")


@dataclass(frozen=True)
class QueryResult:
    """Brief: Answer handed to the HTTP layer."""

    payload: bytes
    upstream: str
    latency_ms: float
    cache_hit: bool = False


class QueryFlow:
    """
    Brief: Resolve one DoH query through the adaptive racing engine.

    Inputs (constructor):
      - builder: CandidateSetBuilder (shares the process-wide tracker)
      - coordinator: RaceCoordinator (shares the same tracker)
      - global_upstreams: configured upstream URLs
      - cache: optional ResponseCache; None disables edge caching
      - top_k: how many upstreams the first race uses
      - attempt_timeout: per-attempt timeout in seconds
      - deadline: overall per-race deadline in seconds
      - regional_lookup: region -> upstream URLs (defaults to the static table)

    Outputs:
      - QueryFlow with resolve().
    """

    def __init__(
        self,
        builder: CandidateSetBuilder,
        coordinator: RaceCoordinator,
        global_upstreams: Sequence[str],
        *,
        cache: Optional[ResponseCache] = None,
        top_k: int = 3,
        attempt_timeout: float = 5.0,
        deadline: float = 6.0,
        regional_lookup: Optional[Callable[[str], Sequence[str]]] = None,
    ) -> None:
        self.builder = builder
        self.coordinator = coordinator
        self.global_upstreams: List[str] = list(global_upstreams)
        self.cache = cache
        self.top_k = max(1, int(top_k))
        self.attempt_timeout = float(attempt_timeout)
        self.deadline = float(deadline)
        self.regional_lookup = regional_lookup or regional_upstreams

    def candidates_for(self, region: str) -> List[str]:
        return self.builder.build(
            self.regional_lookup(region) or [], self.global_upstreams
        )

    def _race(self, endpoints: Sequence[str], query: DnsQuery) -> RaceOutcome:
        return self.coordinator.race(
            endpoints, query, self.attempt_timeout, self.deadline
        )

    def resolve(
        self, query: DnsQuery, region: str, cache_key: Optional[str] = None
    ) -> QueryResult:
        """
        Brief: Answer query from cache or by racing upstreams.

        Inputs:
          - query: validated DnsQuery
          - region: client region code (see dohrace.geo)
          - cache_key: inbound request URL; None skips the cache entirely

        Outputs:
          - QueryResult for a cache hit or a winning upstream.

        Raises:
          - NoUpstreamsAvailable: the candidate set is empty.
          - AllUpstreamsFailed: the top-K race and the full-pool fallback
            both failed or timed out.
        """
        if cache_key and self.cache is not None:
            cached = self.cache.get(cache_key)
            if cached is not None:
                return QueryResult(
                    payload=cached.payload,
                    upstream=cached.upstream,
                    latency_ms=cached.latency_ms,
                    cache_hit=True,
                )

        candidate_set = self.candidates_for(region)
        selected = self.builder.select_top(candidate_set, self.top_k)
        if not selected:
            raise NoUpstreamsAvailable()

        outcome = self._race(selected, query)
        if not isinstance(outcome, RaceSuccess):
            # Upstreams that just failed stay eligible in the fallback race.
            logger.warning(
                "Top-%d race %s for region %s; retrying across %d upstreams",
                len(selected),
                type(outcome).__name__,
                region,
                len(candidate_set),
            )
            outcome = self._race(candidate_set, query)

        if isinstance(outcome, RaceNoUpstreams):
            raise NoUpstreamsAvailable()
        if not isinstance(outcome, RaceSuccess):
            logger.warning(
                "All upstream DoH servers failed for region %s (%s)",
                region,
                type(outcome).__name__,
            )
            raise AllUpstreamsFailed(outcome)

        if cache_key and self.cache is not None:
            self.cache.put(
                cache_key,
                CachedAnswer(
                    payload=outcome.payload,
                    upstream=outcome.endpoint,
                    latency_ms=outcome.latency_ms,
                ),
            )
        return QueryResult(
            payload=outcome.payload,
            upstream=outcome.endpoint,
            latency_ms=outcome.latency_ms,
        )
