"""
Thread-safe per-upstream performance history for adaptive selection.

Brief:
  PerformanceTracker keeps a rolling window of successful latencies and a
  decayed success rate for every DoH upstream that has been attempted. Races
  write into it from many worker threads at once; candidate selection reads
  scores from it.

Notes:
  - One tracker is constructed at process start and injected wherever it is
    needed. History is never persisted and is reset only by restarting the
    process.
  - A short registry lock guards record creation. Every record carries its
    own lock so updates for unrelated upstreams never serialize.
"""

from __future__ import annotations

import math
import threading
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, Optional

PERFORMANCE_WINDOW = 100
EXPLORATION_SCORE = 1000.0
SUCCESS_STEP = 0.1
FAILURE_STEP = 0.2


@dataclass
class PerformanceRecord:
    """
    Brief: Rolling latency history and decayed success rate for one upstream.

    Inputs (constructor):
      - latencies: recent successful-attempt latencies in milliseconds
      - success_rate: float in [0, 1]
      - total_requests: number of recorded attempt outcomes

    Outputs:
      - PerformanceRecord instance; mutate only through PerformanceTracker.
    """

    latencies: Deque[float] = field(
        default_factory=lambda: deque(maxlen=PERFORMANCE_WINDOW)
    )
    success_rate: float = 1.0
    total_requests: int = 0
    lock: threading.Lock = field(
        default_factory=threading.Lock, repr=False, compare=False
    )

    def average_latency(self) -> Optional[float]:
        """Brief: Mean of the latency window, or None when it is empty."""
        if not self.latencies:
            return None
        return sum(self.latencies) / len(self.latencies)


class PerformanceTracker:
    """
    Brief: Concurrency-safe store of PerformanceRecord keyed by upstream URL.

    Inputs (constructor):
      - window: latency history capacity per upstream (default 100)

    Outputs:
      - PerformanceTracker instance with record(), score() and snapshot().

    Example:
      >>> tracker = PerformanceTracker()
      >>> tracker.score("https://dns.example/dns-query")
      1000.0
      >>> tracker.record("https://dns.example/dns-query", 40.0, True)
      >>> tracker.score("https://dns.example/dns-query")
      40.0
    """

    def __init__(self, window: int = PERFORMANCE_WINDOW) -> None:
        self._window = max(1, int(window))
        self._records: Dict[str, PerformanceRecord] = {}
        self._registry_lock = threading.Lock()

    @property
    def window(self) -> int:
        return self._window

    def _get_or_create(self, endpoint: str) -> PerformanceRecord:
        rec = self._records.get(endpoint)
        if rec is not None:
            return rec
        with self._registry_lock:
            rec = self._records.get(endpoint)
            if rec is None:
                rec = PerformanceRecord(latencies=deque(maxlen=self._window))
                self._records[endpoint] = rec
            return rec

    def record(self, endpoint: str, latency_ms: float, success: bool) -> None:
        """
        Brief: Fold one attempt outcome into the upstream's record.

        Inputs:
          - endpoint: upstream URL
          - latency_ms: observed latency (or the timeout value for failures)
          - success: True when the upstream answered with a 2xx status

        Outputs:
          - None. On success the latency is appended and the success rate
            rises by 0.1 (capped at 1.0); on failure the latencies are left
            alone and the rate drops by 0.2 (floored at 0.0).
        """
        rec = self._get_or_create(endpoint)
        with rec.lock:
            rec.total_requests += 1
            if success:
                rec.latencies.append(float(latency_ms))
                rate = min(rec.success_rate + SUCCESS_STEP, 1.0)
            else:
                rate = max(rec.success_rate - FAILURE_STEP, 0.0)
            # Rounded so repeated steps land exactly on the 0.0 / 1.0 bounds.
            rec.success_rate = round(rate, 6)

    def score(self, endpoint: str) -> float:
        """
        Brief: Lower-is-better ranking score for an upstream.

        Inputs:
          - endpoint: upstream URL

        Outputs:
          - float: EXPLORATION_SCORE when nothing succeeded yet, math.inf when
            the success rate decayed to zero, else avg latency / success rate.
        """
        rec = self._records.get(endpoint)
        if rec is None:
            return EXPLORATION_SCORE
        with rec.lock:
            avg = rec.average_latency()
            rate = rec.success_rate
        if avg is None:
            return EXPLORATION_SCORE
        if rate <= 0.0:
            return math.inf
        return avg / rate

    def get(self, endpoint: str) -> Optional[PerformanceRecord]:
        """Brief: Return the live record for endpoint, or None if never observed."""
        return self._records.get(endpoint)

    def snapshot(self) -> Dict[str, Dict[str, object]]:
        """
        Brief: Point-in-time copy of every record for logging and /stats.

        Inputs:
          - None

        Outputs:
          - dict mapping upstream URL -> {avg_latency_ms, success_rate,
            total_requests, samples, score}. Infinite scores are reported
            as None so the mapping stays JSON serializable.
        """
        with self._registry_lock:
            items = list(self._records.items())
        out: Dict[str, Dict[str, object]] = {}
        for endpoint, rec in items:
            with rec.lock:
                avg = rec.average_latency()
                rate = rec.success_rate
                total = rec.total_requests
                samples = len(rec.latencies)
            score = self.score(endpoint)
            out[endpoint] = {
                "avg_latency_ms": round(avg, 2) if avg is not None else None,
                "success_rate": rate,
                "total_requests": total,
                "samples": samples,
                "score": None if math.isinf(score) else round(score, 2),
            }
        return out

    def __len__(self) -> int:
        return len(self._records)
