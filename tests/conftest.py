"""
Brief: Global pytest configuration enforcing a per-test 10s timeout.

Inputs:
  - None

Outputs:
  - None
"""

import os
import signal
import sys
import threading
from typing import Callable, Dict, List, Optional, Tuple

import pytest

# Ensure 'src' is on sys.path so 'dohrace' package is importable in tests
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
SRC_DIR = os.path.join(ROOT, "src")
if SRC_DIR not in sys.path:
    sys.path.insert(0, SRC_DIR)


def _alarm_handler(signum, frame):
    """
    Brief: Signal handler that raises TimeoutError when alarm triggers.

    Inputs:
      - signum: signal number (int)
      - frame: current frame (ignored)

    Outputs:
      - None: Raises TimeoutError to fail the test
    """
    raise TimeoutError("Test exceeded 10 seconds")


if hasattr(signal, "SIGALRM"):
    signal.signal(signal.SIGALRM, _alarm_handler)


@pytest.fixture(autouse=True)
def enforce_test_timeout():
    """
    Brief: Enforce a hard 10-second timeout for each test.

    Inputs:
      - None

    Outputs:
      - None: Cancels alarm after test
    """
    if hasattr(signal, "SIGALRM"):
        signal.alarm(10)
        try:
            yield
        finally:
            signal.alarm(0)
    else:
        yield


class FakeTransport:
    """
    Brief: Scripted stand-in for the DoH transport used by race tests.

    Inputs (constructor):
      - behaviours: mapping endpoint -> (delay_seconds, result) where result
        is bytes for a successful answer or an Exception instance to raise.

    Outputs:
      - Callable matching the RaceCoordinator transport signature. Every call
        is appended to ``calls`` and ``finished`` is set per endpoint once the
        call returns or raises.
    """

    def __init__(self, behaviours: Dict[str, Tuple[float, object]]) -> None:
        self.behaviours = behaviours
        self.calls: List[Tuple[str, bytes, str, int]] = []
        self.finished: Dict[str, threading.Event] = {
            url: threading.Event() for url in behaviours
        }
        self._lock = threading.Lock()

    def __call__(
        self,
        endpoint: str,
        payload: bytes,
        *,
        method: str = "POST",
        timeout_ms: int = 5000,
        cancel: Optional[threading.Event] = None,
    ) -> bytes:
        with self._lock:
            self.calls.append((endpoint, payload, method, timeout_ms))
        delay, result = self.behaviours.get(endpoint, (0.0, ConnectionError("unknown")))
        try:
            if delay:
                threading.Event().wait(delay)
            if isinstance(result, Exception):
                raise result
            return result  # type: ignore[return-value]
        finally:
            ev = self.finished.get(endpoint)
            if ev is not None:
                ev.set()

    def endpoints_called(self) -> List[str]:
        with self._lock:
            return [c[0] for c in self.calls]


@pytest.fixture
def fake_transport() -> Callable[[Dict[str, Tuple[float, object]]], FakeTransport]:
    """Brief: Factory fixture building FakeTransport instances."""
    return FakeTransport
