"""
Concurrent racing of one DNS query across several DoH upstreams.

Brief:
  RaceCoordinator launches one attempt per candidate upstream on a dedicated
  thread pool and returns as soon as the first attempt produces a 2xx answer.
  Every attempt reports its own outcome into the PerformanceTracker when it
  terminates, including attempts that finish after the race was decided.

Outcomes:
  - RaceSuccess: first successful attempt by completion order.
  - RaceAllFailed: every attempt failed or ran past its per-attempt timeout.
  - RaceTimeout: the overall deadline elapsed with attempts still pending.
  - RaceNoUpstreams: the candidate list was empty; nothing was launched.
"""

from __future__ import annotations

import dataclasses
import enum
import logging
import socket
import threading
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

from ..errors import InvalidQueryError
from ..servers.transports.doh import DoHCancelled, DoHStatusError, doh_query
from .performance import PerformanceTracker

logger = logging.getLogger("dohrace.upstreams.race")

MAX_QUERY_BYTES = 512
_METHODS = ("GET", "POST")

# transport(endpoint, payload, *, method, timeout_ms, cancel) -> response body.
# Any exception counts as a failed attempt; DoHCancelled marks an attempt that
# never reached the network.
Transport = Callable[..., bytes]


@dataclass(frozen=True)
class DnsQuery:
    """
    Brief: Opaque DNS wire message plus the HTTP method used upstream.

    Inputs (constructor):
      - payload: 1..512 bytes of DNS message, never parsed
      - method: 'GET' or 'POST' (case-insensitive)

    Outputs:
      - DnsQuery; raises InvalidQueryError for out-of-range sizes or methods.

    Example:
      >>> DnsQuery(b"\\x00\\x01", "get").method
      'GET'
    """

    payload: bytes
    method: str = "POST"

    def __post_init__(self) -> None:
        if not isinstance(self.payload, (bytes, bytearray)):
            raise InvalidQueryError("DNS query payload must be bytes")
        if not 1 <= len(self.payload) <= MAX_QUERY_BYTES:
            raise InvalidQueryError("Invalid DNS message size")
        method = str(self.method or "").upper()
        if method not in _METHODS:
            raise InvalidQueryError(f"Unsupported upstream method: {self.method!r}")
        object.__setattr__(self, "payload", bytes(self.payload))
        object.__setattr__(self, "method", method)


class AttemptStatus(str, enum.Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILURE = "failure"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"


@dataclass
class RaceAttempt:
    """
    Brief: Per-attempt state; lives only for the duration of one race.

    Notes:
      - An attempt settles exactly once. Whoever moves it out of PENDING
        under ``lock`` (the worker thread or the coordinator enforcing the
        per-attempt timeout) owns the tracker record for it.
    """

    endpoint: str
    started_at: Optional[float] = None
    status: AttemptStatus = AttemptStatus.PENDING
    latency_ms: Optional[float] = None
    error: Optional[str] = None
    finished_at: Optional[float] = None
    payload: Optional[bytes] = dataclasses.field(default=None, repr=False)
    lock: threading.Lock = dataclasses.field(
        default_factory=threading.Lock, repr=False, compare=False
    )

    def settle(
        self,
        status: AttemptStatus,
        latency_ms: Optional[float] = None,
        error: Optional[str] = None,
        payload: Optional[bytes] = None,
    ) -> bool:
        """Brief: Move a PENDING attempt to status; False if already settled."""
        with self.lock:
            if self.status is not AttemptStatus.PENDING:
                return False
            self.latency_ms = latency_ms
            self.error = error
            self.payload = payload
            self.finished_at = time.monotonic()
            self.status = status
            return True

    def snapshot(self) -> "RaceAttempt":
        with self.lock:
            return dataclasses.replace(self, lock=threading.Lock())


@dataclass(frozen=True)
class RaceSuccess:
    endpoint: str
    latency_ms: float
    payload: bytes

    ok = True


@dataclass(frozen=True)
class RaceAllFailed:
    attempts: Tuple[RaceAttempt, ...] = ()

    ok = False


@dataclass(frozen=True)
class RaceTimeout:
    attempts: Tuple[RaceAttempt, ...] = ()

    ok = False

    @property
    def pending(self) -> Tuple[str, ...]:
        return tuple(
            a.endpoint for a in self.attempts if a.status is AttemptStatus.PENDING
        )


@dataclass(frozen=True)
class RaceNoUpstreams:
    ok = False


RaceOutcome = Union[RaceSuccess, RaceAllFailed, RaceTimeout, RaceNoUpstreams]


def doh_transport(
    endpoint: str,
    payload: bytes,
    *,
    method: str = "POST",
    timeout_ms: int = 5000,
    cancel: Optional[threading.Event] = None,
) -> bytes:
    """Brief: Default transport; returns the upstream body or raises DoHError."""
    body, _headers = doh_query(
        endpoint, payload, method=method, timeout_ms=timeout_ms, cancel=cancel
    )
    return body


def _is_timeout(exc: BaseException) -> bool:
    seen: Optional[BaseException] = exc
    while seen is not None:
        # socket.timeout only became an alias of TimeoutError in 3.10.
        if isinstance(seen, (TimeoutError, socket.timeout)):
            return True
        seen = seen.__cause__ or seen.__context__
    return False


class RaceCoordinator:
    """
    Brief: Race a query across candidate upstreams; first 2xx answer wins.

    Inputs (constructor):
      - tracker: shared PerformanceTracker receiving every attempt outcome
      - transport: callable performing one upstream round trip (defaults to
        the http.client based DoH transport)

    Outputs:
      - RaceCoordinator with race().

    Notes:
      - Each race gets its own pool with one worker per candidate. The race
        loop is the only consumer of attempt outcomes, so exactly one
        success is honored even when several land at once.
      - The per-attempt timeout is enforced by the race loop itself: an
        attempt still running past it is settled as TIMEOUT and counted as
        terminated, whatever its socket timeouts do.
      - The pool is shut down without waiting once the race resolves; late
        attempts keep running, record their outcome if still unsettled and
        are otherwise ignored.
    """

    def __init__(
        self, tracker: PerformanceTracker, transport: Optional[Transport] = None
    ) -> None:
        self.tracker = tracker
        self.transport: Transport = transport or doh_transport

    def _run_attempt(
        self,
        attempt: RaceAttempt,
        query: DnsQuery,
        timeout_s: float,
        cancel: threading.Event,
    ) -> RaceAttempt:
        """
        Brief: Perform one upstream round trip and record its outcome.

        Inputs:
          - attempt: RaceAttempt to settle
          - query: DnsQuery to forward
          - timeout_s: per-attempt timeout in seconds
          - cancel: race-wide cancellation event

        Outputs:
          - The same RaceAttempt. Its outcome is only recorded when this
            call settles it; an attempt the race loop already timed out is
            left alone.
        """
        timeout_ms = int(timeout_s * 1000)
        started = attempt.started_at or time.monotonic()
        try:
            payload = self.transport(
                attempt.endpoint,
                query.payload,
                method=query.method,
                timeout_ms=timeout_ms,
                cancel=cancel,
            )
        except DoHCancelled:
            attempt.settle(AttemptStatus.CANCELLED)
            return attempt
        except Exception as exc:
            elapsed_ms = (time.monotonic() - started) * 1000.0
            error = str(exc) or exc.__class__.__name__
            if isinstance(exc, DoHStatusError) and elapsed_ms < timeout_ms:
                status, latency = AttemptStatus.FAILURE, elapsed_ms
            elif _is_timeout(exc) or elapsed_ms >= timeout_ms:
                status, latency = AttemptStatus.TIMEOUT, float(timeout_ms)
            else:
                status, latency = AttemptStatus.FAILURE, float(timeout_ms)
            if attempt.settle(status, latency, error):
                self.tracker.record(attempt.endpoint, latency, False)
                logger.debug(
                    "Upstream %s %s after %.1fms: %s",
                    attempt.endpoint,
                    status.value,
                    elapsed_ms,
                    error,
                )
            return attempt

        elapsed_ms = (time.monotonic() - started) * 1000.0
        if elapsed_ms >= timeout_ms:
            if attempt.settle(
                AttemptStatus.TIMEOUT,
                float(timeout_ms),
                "answered after per-attempt timeout",
            ):
                self.tracker.record(attempt.endpoint, float(timeout_ms), False)
            return attempt

        if attempt.settle(AttemptStatus.SUCCESS, elapsed_ms, payload=payload):
            self.tracker.record(attempt.endpoint, elapsed_ms, True)
        return attempt

    def _expire_overdue(
        self, attempts: Sequence[RaceAttempt], timeout_s: float, now: float
    ) -> None:
        timeout_ms = int(timeout_s * 1000)
        for attempt in attempts:
            if attempt.status is not AttemptStatus.PENDING:
                continue
            if now < attempt.started_at + timeout_s:
                continue
            if attempt.settle(
                AttemptStatus.TIMEOUT,
                float(timeout_ms),
                "per-attempt timeout exceeded",
            ):
                self.tracker.record(attempt.endpoint, float(timeout_ms), False)
                logger.debug(
                    "Upstream %s timed out after %dms", attempt.endpoint, timeout_ms
                )

    def race(
        self,
        candidates: Sequence[str],
        query: DnsQuery,
        per_attempt_timeout: float,
        overall_deadline: float,
    ) -> RaceOutcome:
        """
        Brief: Launch one attempt per candidate and resolve on the first success.

        Inputs:
          - candidates: ordered upstream URLs (unique)
          - query: DnsQuery forwarded unchanged to every candidate
          - per_attempt_timeout: seconds after which a running attempt is
            settled as TIMEOUT and counts as terminated
          - overall_deadline: hard ceiling in seconds for the whole race

        Outputs:
          - RaceOutcome: RaceSuccess, RaceAllFailed, RaceTimeout or
            RaceNoUpstreams (empty candidates, nothing launched).
        """
        endpoints = list(candidates)
        if not endpoints:
            return RaceNoUpstreams()

        cancel = threading.Event()
        launched = time.monotonic()
        race_ends = launched + overall_deadline
        attempts = [RaceAttempt(endpoint=url, started_at=launched) for url in endpoints]
        executor = ThreadPoolExecutor(
            max_workers=len(attempts), thread_name_prefix="dohrace-attempt"
        )
        try:
            running: Dict[Future, RaceAttempt] = {
                executor.submit(
                    self._run_attempt, attempt, query, per_attempt_timeout, cancel
                ): attempt
                for attempt in attempts
            }
            while True:
                now = time.monotonic()
                self._expire_overdue(attempts, per_attempt_timeout, now)

                winners = [a for a in attempts if a.status is AttemptStatus.SUCCESS]
                if winners:
                    done = min(winners, key=lambda a: a.finished_at or now)
                    logger.debug(
                        "Race won by %s in %.1fms", done.endpoint, done.latency_ms
                    )
                    return RaceSuccess(
                        endpoint=done.endpoint,
                        latency_ms=float(done.latency_ms or 0.0),
                        payload=done.payload or b"",
                    )

                pending = [a for a in attempts if a.status is AttemptStatus.PENDING]
                if not pending:
                    return RaceAllFailed(attempts=self._freeze(attempts))

                if now >= race_ends:
                    frozen = self._freeze(attempts)
                    logger.debug(
                        "Race deadline %.2fs elapsed; pending: %s",
                        overall_deadline,
                        [a.endpoint for a in frozen if a.status is AttemptStatus.PENDING],
                    )
                    return RaceTimeout(attempts=frozen)

                next_expiry = min(a.started_at + per_attempt_timeout for a in pending)
                finished, _ = wait(
                    list(running),
                    timeout=max(0.0, min(next_expiry, race_ends) - now),
                    return_when=FIRST_COMPLETED,
                )
                for fut in finished:
                    attempt = running.pop(fut)
                    exc = fut.exception()
                    if exc is not None and attempt.settle(  # pragma: no cover
                        AttemptStatus.FAILURE,
                        float(int(per_attempt_timeout * 1000)),
                        str(exc) or exc.__class__.__name__,
                    ):
                        logger.error("Race attempt raised unexpectedly: %s", exc)
                        self.tracker.record(
                            attempt.endpoint, attempt.latency_ms or 0.0, False
                        )
        finally:
            cancel.set()
            executor.shutdown(wait=False)

    @staticmethod
    def _freeze(attempts: List[RaceAttempt]) -> Tuple[RaceAttempt, ...]:
        return tuple(a.snapshot() for a in attempts)
