"""
Brief: Tests for dohrace.upstreams.candidates.CandidateSetBuilder.

Inputs:
  - None

Outputs:
  - None
"""

from dohrace.upstreams.candidates import CandidateSetBuilder
from dohrace.upstreams.performance import PerformanceTracker


def _builder():
    tracker = PerformanceTracker()
    return tracker, CandidateSetBuilder(tracker)


def test_build_dedupes_keeping_first_occurrence():
    _, builder = _builder()
    assert builder.build(["A", "B"], ["B", "C"]) == ["A", "B", "C"]


def test_build_handles_empty_pools_and_blanks():
    _, builder = _builder()
    assert builder.build([], []) == []
    assert builder.build(None, ["X", " ", "X", "Y"]) == ["X", "Y"]
    assert builder.build(["R"], []) == ["R"]


def test_select_top_orders_by_score():
    """
    Brief: select_top returns the k lowest scores in ascending order.

    Inputs:
      - None

    Outputs:
      - None: Asserts ranking uses tracker scores, not build order.
    """
    tracker, builder = _builder()
    tracker.record("A", 300.0, True)
    tracker.record("B", 20.0, True)
    tracker.record("C", 80.0, True)
    assert builder.select_top(["A", "B", "C"], 2) == ["B", "C"]
    assert builder.select_top(["A", "B", "C"], 10) == ["B", "C", "A"]


def test_select_top_ties_keep_candidate_order():
    _, builder = _builder()
    # All unseen: identical exploration score.
    assert builder.select_top(["Z", "Y", "X", "W"], 3) == ["Z", "Y", "X"]


def test_select_top_unseen_beats_decayed_endpoint():
    tracker, builder = _builder()
    tracker.record("BAD", 10.0, True)
    for _ in range(5):
        tracker.record("BAD", 5000.0, False)
    assert builder.select_top(["BAD", "NEW"], 1) == ["NEW"]


def test_select_top_prefers_reliable_endpoint():
    tracker, builder = _builder()
    for _ in range(20):
        tracker.record("P", 50.0, True)
        tracker.record("Q", 5000.0, False)
    assert builder.select_top(["P", "Q"], 1) == ["P"]
    assert builder.select_top(["Q", "P"], 1) == ["P"]


def test_select_top_empty_and_nonpositive_k():
    _, builder = _builder()
    assert builder.select_top([], 3) == []
    assert builder.select_top(["A"], 0) == []
