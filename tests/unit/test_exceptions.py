"""
Unit tests for the exception hierarchy and metrics snapshots.
"""

import pytest

from eventchain.core.exceptions import (
    CapacityExceeded,
    ChainDeclarationError,
    ErrorSeverity,
    EventChainException,
    MalformedChainArrival,
    get_error_severity,
)
from eventchain.event.metrics import EventMetrics, EventMetricsRecorder
from eventchain.event.types import ChainMode


# ============================================================================
# EXCEPTIONS
# ============================================================================


@pytest.mark.unit
class TestExceptions:
    """Test structured exception formatting."""

    def test_capacity_exceeded_details(self):
        exc = CapacityExceeded("x", 2)

        assert exc.error_code == "CAPACITY_EXCEEDED"
        assert exc.severity is ErrorSeverity.WARNING
        assert exc.details == {"event_name": "x", "max_listeners": 2}
        assert str(exc).startswith("[CAPACITY_EXCEEDED] Listener capacity exceeded for 'x'")

    def test_to_dict(self):
        exc = ChainDeclarationError("x", "depends_on must not be empty")

        assert exc.to_dict() == {
            "error_type": "ChainDeclarationError",
            "error_code": "CHAIN_DECLARATION_ERROR",
            "message": "Invalid chain declaration for 'x': depends_on must not be empty",
            "details": {"event_name": "x", "reason": "depends_on must not be empty"},
            "severity": "error",
        }

    def test_malformed_arrival_keeps_sequences(self):
        exc = MalformedChainArrival("x", ["a", "b"], ["a", "a"])

        assert exc.dependencies == ("a", "b")
        assert exc.arrivals == ("a", "a")
        assert exc.details["arrivals"] == ["a", "a"]

    def test_base_exception_defaults(self):
        exc = EventChainException("plain")

        assert exc.error_code == "EventChainException"
        assert str(exc) == "[EventChainException] plain"
        assert "severity='error'" in repr(exc)

    def test_severity_lookup(self):
        assert get_error_severity(CapacityExceeded("x", 1)) is ErrorSeverity.WARNING
        assert get_error_severity(KeyError("x")) is ErrorSeverity.ERROR


# ============================================================================
# METRICS
# ============================================================================


@pytest.mark.unit
class TestMetrics:
    """Test the metrics recorder and its snapshots."""

    def test_snapshot_is_detached(self):
        recorder = EventMetricsRecorder()
        recorder.record_emit("a")
        snapshot = recorder.snapshot()

        recorder.record_emit("a")

        assert snapshot.events_emitted == {"a": 1}
        assert recorder.snapshot().events_emitted == {"a": 2}

    def test_listener_count_never_negative(self):
        recorder = EventMetricsRecorder()
        recorder.increment_listener_count()

        recorder.adjust_listener_count(-5)

        assert recorder.total_listeners == 0

    def test_summary(self):
        recorder = EventMetricsRecorder()
        for _ in range(4):
            recorder.record_tally("a", failure=0)
        recorder.record_tally("b", failure=1)
        recorder.record_chain_completion(ChainMode.UNORDERED_ALL_FAILED)
        recorder.record_capacity_rejection("x")

        summary = recorder.snapshot().get_summary()

        assert summary["total_tallies_finalized"] == 5
        assert summary["total_listener_failures"] == 1
        assert summary["failure_rate"] == 20.0
        assert summary["chain_completions_by_mode"] == {"UNORDERED_ALL_FAILED": 1}
        assert summary["total_capacity_rejections"] == 1

    def test_empty_summary(self):
        assert EventMetrics().get_summary()["failure_rate"] == 0.0
