"""Tests for UsageTracker."""

import threading

from parley.api.usage import UsageTracker
from parley.errors import APIError, TransportError
from parley.models.response import Usage


def test_record_completed():
    tracker = UsageTracker()
    tracker.record_started("claude-a")
    tracker.record_completed("claude-a", Usage(input_tokens=100, output_tokens=20))
    stats = tracker.snapshot().models["claude-a"]
    assert (stats.requests, stats.completed) == (1, 1)
    assert stats.total_tokens == 120


def test_totals_across_models():
    tracker = UsageTracker()
    for model, usage in [("a", Usage(input_tokens=10, output_tokens=1)), ("b", Usage(input_tokens=5, output_tokens=5))]:
        tracker.record_started(model)
        tracker.record_completed(model, usage)
    snap = tracker.snapshot()
    assert snap.total_requests == 2
    assert snap.total_input_tokens == 15
    assert snap.total_output_tokens == 6
    assert snap.total_tokens == 21


def test_failures_keyed_by_model_and_class():
    tracker = UsageTracker()
    tracker.record_failed("a", APIError(500, "boom"))
    tracker.record_failed("a", APIError(529, "busy"))
    tracker.record_failed("a", TransportError("timeout"))
    assert tracker.snapshot().errors == {"a:APIError": 2, "a:TransportError": 1}
    assert tracker.snapshot().total_errors == 3


def test_snapshot_is_detached():
    tracker = UsageTracker()
    tracker.record_started("a")
    snap = tracker.snapshot()
    tracker.record_started("a")
    assert snap.models["a"].requests == 1


def test_reset():
    tracker = UsageTracker()
    tracker.record_started("a")
    tracker.record_failed("a", TransportError("x"))
    tracker.reset()
    snap = tracker.snapshot()
    assert snap.models == {}
    assert snap.errors == {}


def test_summary_text():
    tracker = UsageTracker()
    tracker.record_started("small")
    tracker.record_completed("small", Usage(input_tokens=1, output_tokens=1))
    tracker.record_started("big")
    tracker.record_completed("big", Usage(input_tokens=900, output_tokens=100))
    tracker.record_failed("big", TransportError("x"))
    text = tracker.summary()
    assert "Total requests: 2" in text
    assert "Total tokens: 1002 (input: 901, output: 101)" in text
    assert "Total errors: 1" in text
    assert text.index("big:") < text.index("small:")


def test_thread_safety():
    tracker = UsageTracker()

    def worker():
        for _ in range(200):
            tracker.record_started("m")
            tracker.record_completed("m", Usage(input_tokens=1, output_tokens=1))

    threads = [threading.Thread(target=worker) for _ in range(5)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    stats = tracker.snapshot().models["m"]
    assert stats.requests == 1000
    assert stats.total_tokens == 2000
