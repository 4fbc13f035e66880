"""
Pytest Configuration and Fixtures for eventchain Tests
======================================================

Purpose
-------
Centralized test fixtures and configuration for the eventchain test suite.

Responsibilities
----------------
- Pin the EVENTCHAIN_* environment before Config is imported
- Provide a fresh EventBus per test
- Provide a Recorder helper that captures listener invocations in order
- Restore Config class attributes mutated by a test

Architecture Notes
------------------
- Every test is a unit test: the bus is synchronous and in-memory, so no
  containers, event loops or mocks of infrastructure are needed.
- Fixtures are function-scoped; nothing is shared between tests.
"""

from __future__ import annotations

import os

# Must be set before eventchain.core.config is imported (Config loads on import)
os.environ.setdefault("EVENTCHAIN_ENVIRONMENT", "testing")
os.environ.setdefault("EVENTCHAIN_LOG_LEVEL", "DEBUG")

from typing import Any, Callable, Generator, List, Tuple  # noqa: E402

import pytest  # noqa: E402

from eventchain.core.config import Config  # noqa: E402
from eventchain.event import EventBus  # noqa: E402


# ============================================================================
# PYTEST CONFIGURATION
# ============================================================================


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: fast in-memory tests")
    config.addinivalue_line("markers", "chain: dependency-chain behaviour")


# ============================================================================
# HELPERS
# ============================================================================


class Recorder:
    """
    Collects listener invocations in call order.

    `listener(tag)` builds a callback that appends ``(tag, args)`` and then
    signals completion, failed or not, unless `signal` is False.
    """

    def __init__(self) -> None:
        self.calls: List[Tuple[str, Tuple[Any, ...]]] = []

    def listener(
        self,
        tag: str,
        *,
        fail: bool = False,
        signal: bool = True,
    ) -> Callable[..., None]:
        def callback(done, *args):
            self.calls.append((tag, args))
            if signal:
                done(fail)

        callback.__qualname__ = f"listener[{tag}]"
        return callback

    def tap(self, tag: str = "listening") -> Callable[..., None]:
        """Callback for the 'listening' event, which receives no signal."""

        def callback(event_name, total, success, failure):
            self.calls.append((tag, (event_name, total, success, failure)))

        return callback

    @property
    def tags(self) -> List[str]:
        return [tag for tag, _ in self.calls]

    def args_for(self, tag: str) -> List[Tuple[Any, ...]]:
        return [args for t, args in self.calls if t == tag]


# ============================================================================
# FIXTURES
# ============================================================================


@pytest.fixture
def bus() -> EventBus:
    """Fresh bus with the default capacity and metrics enabled."""
    return EventBus(max_listeners=10, enable_metrics=True)


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture
def restore_config() -> Generator[None, None, None]:
    """Snapshot Config's public settings and restore them after the test."""
    names = [name for name in vars(Config) if name.isupper()]
    saved = {name: getattr(Config, name) for name in names}
    yield
    for name, value in saved.items():
        setattr(Config, name, value)
