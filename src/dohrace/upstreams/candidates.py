from __future__ import annotations

import logging
from typing import Iterable, List, Sequence

from .performance import PerformanceTracker

logger = logging.getLogger("dohrace.upstreams.candidates")


class CandidateSetBuilder:
    """
    Brief: Build and rank the per-query pool of upstream DoH endpoints.

    Inputs (constructor):
      - tracker: PerformanceTracker supplying scores for ranking

    Outputs:
      - CandidateSetBuilder with build() and select_top().

    Example:
      >>> b = CandidateSetBuilder(PerformanceTracker())
      >>> b.build(["A", "B"], ["B", "C"])
      ['A', 'B', 'C']
    """

    def __init__(self, tracker: PerformanceTracker) -> None:
        self.tracker = tracker

    @staticmethod
    def build(
        regional_pool: Iterable[str], global_pool: Iterable[str]
    ) -> List[str]:
        """
        Brief: Deduplicated union of the regional and global pools.

        Inputs:
          - regional_pool: region-specific upstream URLs, in configured order
          - global_pool: configured upstream URLs, in configured order

        Outputs:
          - list[str]: regional entries first, then global ones; the first
            occurrence of each URL wins. Blank entries are dropped. Not ranked.
        """
        seen = set()
        out: List[str] = []
        for pool in (regional_pool, global_pool):
            for url in pool or ():
                url = str(url).strip()
                if not url or url in seen:
                    continue
                seen.add(url)
                out.append(url)
        return out

    def select_top(self, candidate_set: Sequence[str], k: int) -> List[str]:
        """
        Brief: Pick the k best-scoring candidates.

        Inputs:
          - candidate_set: output of build()
          - k: number of endpoints wanted

        Outputs:
          - list[str]: up to k endpoints sorted by ascending score; ties keep
            candidate-set order. An empty candidate set yields [].
        """
        if not candidate_set or k < 1:
            return []
        scored = [(self.tracker.score(url), url) for url in candidate_set]
        # sorted() is stable, so equal scores keep their build() order.
        scored = sorted(scored, key=lambda item: item[0])
        selected = [url for _score, url in scored[:k]]
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(
                "Selected upstreams: %s",
                ", ".join(f"{url} ({score:.1f})" for score, url in scored[:k]),
            )
        return selected
