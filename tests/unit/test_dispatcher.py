"""
Unit tests for Dispatcher.

Tests signal injection, once-removal during iteration, chain filtering and
exception reporting.
"""

import pytest

from eventchain.event.dispatcher import Dispatcher
from eventchain.event.metrics import EventMetricsRecorder
from eventchain.event.registry import ListenerRegistry
from eventchain.event.types import LISTENING_EVENT, ChainMode, ListenerRecord


@pytest.fixture
def registry():
    return ListenerRegistry(max_listeners=0)


@pytest.fixture
def signals():
    return []


@pytest.fixture
def metrics():
    return EventMetricsRecorder()


@pytest.fixture
def dispatcher(registry, signals, metrics):
    return Dispatcher(
        registry,
        on_signal=lambda event, failed, expected: signals.append((event, failed, expected)),
        metrics=metrics,
    )


@pytest.mark.unit
class TestDispatch:
    """Test basic dispatch behaviour."""

    def test_signal_is_first_argument(self, registry, dispatcher, signals, recorder):
        registry.add_listener("x", ListenerRecord(callback=recorder.listener("a")))
        registry.add_listener("x", ListenerRecord(callback=recorder.listener("b", fail=True)))

        invoked = dispatcher.dispatch("x", (1, 2))

        assert invoked == 2
        assert recorder.calls == [("a", (1, 2)), ("b", (1, 2))]
        assert signals == [("x", False, 2), ("x", True, 2)]

    def test_no_listeners_returns_zero(self, dispatcher, signals):
        assert dispatcher.dispatch("missing") == 0
        assert signals == []

    def test_listening_event_receives_no_signal(self, registry, dispatcher, recorder):
        registry.add_listener(LISTENING_EVENT, ListenerRecord(callback=recorder.tap()))

        dispatcher.dispatch(LISTENING_EVENT, ("x", 1, 1, 0))

        assert recorder.calls == [("listening", ("x", 1, 1, 0))]

    def test_listener_added_mid_dispatch_is_not_invoked(self, registry, dispatcher, recorder):
        late = recorder.listener("late")

        def adder(done):
            registry.add_listener("x", ListenerRecord(callback=late))
            done()

        registry.add_listener("x", ListenerRecord(callback=adder))

        assert dispatcher.dispatch("x") == 1
        assert recorder.calls == []
        assert registry.get_listener_count("x") == 2

    def test_listener_removing_itself_does_not_skip_neighbour(
        self, registry, dispatcher, signals, recorder
    ):
        def removes_itself(done):
            recorder.calls.append(("a", ()))
            registry.remove_listeners("x", removes_itself)
            done()

        registry.add_listener("x", ListenerRecord(callback=removes_itself))
        registry.add_listener("x", ListenerRecord(callback=recorder.listener("b")))
        registry.add_listener("x", ListenerRecord(callback=recorder.listener("c")))

        assert dispatcher.dispatch("x") == 3
        assert recorder.tags == ["a", "b", "c"]
        # Every signal still expects the three listeners the dispatch started with
        assert signals == [("x", False, 3)] * 3

    def test_listener_removed_by_earlier_listener_is_skipped(
        self, registry, dispatcher, recorder
    ):
        later = recorder.listener("later")

        def removes_later(done):
            registry.remove_listeners("x", later)
            done()

        registry.add_listener("x", ListenerRecord(callback=removes_later))
        registry.add_listener("x", ListenerRecord(callback=later))

        assert dispatcher.dispatch("x") == 1
        assert recorder.calls == []

    def test_listener_prepended_mid_dispatch_is_not_invoked(
        self, registry, dispatcher, recorder
    ):
        front = recorder.listener("front")

        def prepends(done):
            recorder.calls.append(("a", ()))
            registry.add_listener("x", ListenerRecord(callback=front), prepend=True)
            done()

        registry.add_listener("x", ListenerRecord(callback=prepends))
        registry.add_listener("x", ListenerRecord(callback=recorder.listener("c")))

        dispatcher.dispatch("x")

        assert recorder.tags == ["a", "c"]
        assert registry.get_listener_count("x") == 3


@pytest.mark.unit
class TestOnceListeners:
    """Test once-removal during iteration."""

    def test_once_listener_removed_without_skipping_neighbour(
        self, registry, dispatcher, recorder, metrics
    ):
        registry.add_listener("x", ListenerRecord(callback=recorder.listener("a"), once=True))
        registry.add_listener("x", ListenerRecord(callback=recorder.listener("b")))
        metrics.adjust_listener_count(2)

        dispatcher.dispatch("x")
        dispatcher.dispatch("x")

        assert recorder.tags == ["a", "b", "b"]
        assert registry.get_listener_count("x") == 1
        assert metrics.total_listeners == 1

    def test_consecutive_once_listeners(self, registry, dispatcher, recorder):
        for tag in ("a", "b", "c"):
            registry.add_listener("x", ListenerRecord(callback=recorder.listener(tag), once=True))

        dispatcher.dispatch("x")

        assert recorder.tags == ["a", "b", "c"]
        assert not registry.has_listeners("x")


@pytest.mark.unit
@pytest.mark.chain
class TestChainFiltering:
    """Test which listeners a synthesized delivery reaches."""

    def test_only_matching_chain_listeners_invoked(self, registry, dispatcher, recorder):
        registry.add_listener("x", ListenerRecord(callback=recorder.listener("plain")))
        registry.add_listener(
            "x",
            ListenerRecord(
                callback=recorder.listener("match"),
                chain_mode=ChainMode.ORDERED,
                depends_on=("b", "a"),
            ),
        )
        registry.add_listener(
            "x",
            ListenerRecord(
                callback=recorder.listener("other-mode"),
                chain_mode=ChainMode.UNORDERED,
                depends_on=("a", "b"),
            ),
        )
        registry.add_listener(
            "x",
            ListenerRecord(
                callback=recorder.listener("other-deps"),
                chain_mode=ChainMode.ORDERED,
                depends_on=("a", "c"),
            ),
        )

        invoked = dispatcher.dispatch(
            "x", (), chain_mode=ChainMode.ORDERED, sorted_dependencies=("a", "b")
        )

        assert invoked == 2
        assert recorder.tags == ["plain", "match"]

    def test_plain_emit_reaches_chain_listeners(self, registry, dispatcher, recorder):
        registry.add_listener(
            "x",
            ListenerRecord(
                callback=recorder.listener("chained"),
                chain_mode=ChainMode.ORDERED,
                depends_on=("a",),
            ),
        )

        dispatcher.dispatch("x")

        assert recorder.tags == ["chained"]


@pytest.mark.unit
class TestListenerExceptions:
    """Test that listener exceptions are reported and propagate."""

    def test_exception_aborts_iteration_and_propagates(
        self, registry, dispatcher, recorder, metrics
    ):
        def broken(done):
            raise RuntimeError("listener broke")

        registry.add_listener("x", ListenerRecord(callback=broken))
        registry.add_listener("x", ListenerRecord(callback=recorder.listener("after")))

        with pytest.raises(RuntimeError, match="listener broke"):
            dispatcher.dispatch("x")

        assert recorder.calls == []
        assert metrics.snapshot().listener_errors == {"x": 1}

    def test_exception_is_logged(self, registry, dispatcher, caplog):
        def broken(done):
            raise ValueError("bad payload")

        registry.add_listener("x", ListenerRecord(callback=broken))

        with caplog.at_level("ERROR", logger="eventchain.event.dispatcher"):
            with pytest.raises(ValueError):
                dispatcher.dispatch("x")

        assert any(r.getMessage() == "EventBus listener raised" for r in caplog.records)
        record = next(r for r in caplog.records if r.getMessage() == "EventBus listener raised")
        assert record.event_name == "x"
        assert record.error_type == "ValueError"
