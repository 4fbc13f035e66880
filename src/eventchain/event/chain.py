"""
ChainEngine: dependency-chain completion tracking for the EventBus.

Purpose
-------
A chain is a dependency sequence declared under an owner event name, e.g.
listeners on "report" that depend on ("fetch", "parse"). Every time a member
event finalizes its tally, the engine records the arrival on each chain that
contains it. When a chain has collected as many arrivals as it has members,
the engine classifies the cycle and asks the bus to deliver synthesized
emissions of the owner event to the listeners bound to that chain.

Responsibilities
----------------
- Create (or reuse) one ChainDeclaration per (owner, dependency sequence)
- Record arrivals and success counts on every chain containing the event
- Detect completion, classify order and outcome into a ChainMode
- Trigger one or two synthesized deliveries per completed cycle
- Self-heal on duplicate arrivals (MalformedChainArrival) by resetting
- Drop an owner's declarations when the bus clears that event

Classification
--------------
- ordered: the arrival sequence equals the declared sequence element-wise
- all success: every arrival had zero failed listeners
- all failed: no arrival had zero failed listeners
- all success / all failed deliver the specific mode, then the base mode;
  mixed outcomes deliver the base mode only

Design Decisions
----------------
- **Tuple keys**: the order-preserving dependency tuple is the canonical key,
  so content-identical declarations under one owner share state.
- **Reset before delivery**: a declaration is reset before its owner event
  is delivered, so listener code never observes a half-finished cycle.
- **Snapshot iteration**: declarations are iterated from a snapshot and
  re-validated, so listeners may register or remove chains mid-delivery.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Iterable, Optional, Tuple

from eventchain.core.exceptions import MalformedChainArrival
from eventchain.core.logging.logger import get_logger
from eventchain.event.types import ChainMode, ChainSnapshot, TallyResult

if TYPE_CHECKING:
    from eventchain.event.metrics import EventMetricsRecorder

logger = get_logger(__name__)

# deliver(owner_event_name, mode, sorted_dependencies)
ChainDelivery = Callable[[str, ChainMode, Tuple[str, ...]], None]


@dataclass(slots=True)
class ChainDeclaration:
    """
    Tracking state for one declared chain.

    Attributes
    ----------
    owner_event_name:
        Event the synthesized emissions are delivered under.
    dependencies:
        Declared member sequence, immutable after creation.
    arrivals:
        Member firings observed since the last reset, in arrival order.
    success_count:
        How many of those arrivals had zero failures.
    """

    owner_event_name: str
    dependencies: Tuple[str, ...]
    members: frozenset[str] = field(init=False)
    sorted_dependencies: Tuple[str, ...] = field(init=False)
    arrivals: list[str] = field(default_factory=list)
    success_count: int = 0

    def __post_init__(self) -> None:
        self.members = frozenset(self.dependencies)
        self.sorted_dependencies = tuple(sorted(self.dependencies))

    @property
    def is_complete(self) -> bool:
        return len(self.arrivals) >= len(self.dependencies)

    def record_arrival(self, event_name: str, failure: int) -> None:
        self.arrivals.append(event_name)
        if failure == 0:
            self.success_count += 1

    def reset(self) -> None:
        self.arrivals = []
        self.success_count = 0

    def snapshot(self) -> ChainSnapshot:
        return ChainSnapshot(
            owner_event_name=self.owner_event_name,
            dependencies=self.dependencies,
            arrivals=tuple(self.arrivals),
            success_count=self.success_count,
        )


@dataclass(slots=True, frozen=True)
class ChainCompletion:
    """Result of evaluating one completed cycle."""

    owner_event_name: str
    dependencies: Tuple[str, ...]
    arrivals: Tuple[str, ...]
    mode: ChainMode

    @property
    def delivered_modes(self) -> Tuple[ChainMode, ...]:
        """Modes delivered for this cycle, in delivery order."""
        if self.mode == self.mode.base:
            return (self.mode,)
        return (self.mode, self.mode.base)


class ChainEngine:
    """
    Chain declaration table plus the completion algorithm.

    Examples
    --------
    >>> delivered = []
    >>> engine = ChainEngine(lambda owner, mode, deps: delivered.append((owner, mode)))
    >>> _ = engine.declare("x", ["a", "b"])
    >>> _ = engine.on_finalize(TallyResult("a", 1, 1, 0))
    >>> _ = engine.on_finalize(TallyResult("b", 1, 1, 0))
    >>> delivered
    [('x', <ChainMode.ORDERED_ALL_SUCCESS: 2>), ('x', <ChainMode.ORDERED: 1>)]
    """

    def __init__(
        self,
        deliver: ChainDelivery,
        metrics: Optional[EventMetricsRecorder] = None,
    ) -> None:
        self._deliver = deliver
        self._metrics = metrics
        # owner event -> dependency tuple -> declaration
        self._declarations: dict[str, dict[Tuple[str, ...], ChainDeclaration]] = {}

    # ------------------------------------------------------------------ #
    # Declarations
    # ------------------------------------------------------------------ #

    def declare(self, owner_event_name: str, dependencies: Iterable[str]) -> ChainDeclaration:
        """
        Return the declaration for (owner, dependencies), creating it if needed.

        An existing content-identical declaration keeps its in-flight state.
        """
        key = tuple(dependencies)
        by_key = self._declarations.setdefault(owner_event_name, {})
        declaration = by_key.get(key)
        if declaration is None:
            declaration = ChainDeclaration(owner_event_name=owner_event_name, dependencies=key)
            by_key[key] = declaration
            logger.debug(
                "ChainEngine: declared chain",
                extra={"event_name": owner_event_name, "dependencies": list(key)},
            )
        return declaration

    def clear(self, owner_event_name: str) -> None:
        """Forget every declaration owned by an event."""
        if self._declarations.pop(owner_event_name, None) is not None:
            logger.debug(
                "ChainEngine: cleared chains",
                extra={"event_name": owner_event_name},
            )

    def clear_all(self) -> None:
        self._declarations.clear()

    def snapshots(self, owner_event_name: str) -> list[ChainSnapshot]:
        return [d.snapshot() for d in self._declarations.get(owner_event_name, {}).values()]

    def declaration_count(self) -> int:
        return sum(len(by_key) for by_key in self._declarations.values())

    # ------------------------------------------------------------------ #
    # Completion
    # ------------------------------------------------------------------ #

    def on_finalize(self, result: TallyResult) -> list[ChainCompletion]:
        """
        Feed one finalized tally into every chain that contains its event.

        Returns
        -------
        list[ChainCompletion]:
            Cycles completed (and delivered) by this finalization.
        """
        completions: list[ChainCompletion] = []

        snapshot = [
            (owner, key, declaration)
            for owner, by_key in self._declarations.items()
            for key, declaration in by_key.items()
        ]

        for owner, key, declaration in snapshot:
            # A listener delivered earlier in this loop may have cleared the owner.
            if self._declarations.get(owner, {}).get(key) is not declaration:
                continue
            if result.event_name not in declaration.members:
                continue

            declaration.record_arrival(result.event_name, result.failure)
            if not declaration.is_complete:
                continue

            try:
                completion = self._evaluate(declaration)
            except MalformedChainArrival as exc:
                declaration.reset()
                if self._metrics is not None:
                    self._metrics.record_malformed_reset(owner)
                logger.warning(
                    "ChainEngine: discarded malformed chain cycle",
                    extra={"event_name": owner, "error": exc.to_dict()},
                )
                continue

            declaration.reset()
            completions.append(completion)

            if self._metrics is not None:
                self._metrics.record_chain_completion(completion.mode)
            logger.debug(
                "ChainEngine: chain completed",
                extra={
                    "event_name": owner,
                    "dependencies": list(completion.dependencies),
                    "arrivals": list(completion.arrivals),
                    "mode": completion.mode.name,
                },
            )

            for mode in completion.delivered_modes:
                self._deliver(owner, mode, declaration.sorted_dependencies)

        return completions

    @staticmethod
    def _evaluate(declaration: ChainDeclaration) -> ChainCompletion:
        """
        Classify a declaration that has collected a full cycle of arrivals.

        Raises
        ------
        MalformedChainArrival:
            If the arrivals are not a permutation of the dependencies.
        """
        arrivals = tuple(declaration.arrivals)
        if tuple(sorted(arrivals)) != declaration.sorted_dependencies:
            raise MalformedChainArrival(
                declaration.owner_event_name, declaration.dependencies, arrivals
            )

        length = len(declaration.dependencies)
        mode = ChainMode.classify(
            ordered=arrivals == declaration.dependencies,
            all_success=declaration.success_count == length,
            all_failed=declaration.success_count == 0,
        )
        return ChainCompletion(
            owner_event_name=declaration.owner_event_name,
            dependencies=declaration.dependencies,
            arrivals=arrivals,
            mode=mode,
        )
