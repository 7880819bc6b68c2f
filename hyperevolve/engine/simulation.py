"""Simulation controller: drives rule application over a hypergraph.

The manager owns one hypergraph, one rule set, the step counter and the event
history. Each step tries the rules in rule-set order, takes the first match of
the first rule that has any, applies it and records the event.

The manager itself is not synchronized; SimulationService serializes access
when the manager is shared with a background run.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

from .core import Hypergraph
from .matching import find_first_match
from .patterns import RuleSet
from .rewriter import apply_rule
from .state import HypergraphState, SimulationEvent

logger = logging.getLogger(__name__)

NO_APPLICABLE_RULES = "no applicable rules"


class SimulationStatus(str, Enum):
    READY = "ready"
    # Last attempted step found no match; informational only
    EXHAUSTED = "exhausted"


class StopReason(str, Enum):
    """Why run_continuous returned."""

    MAX_STEPS = "max_steps"
    FIXED_POINT = "fixed_point"
    CANCELLED = "cancelled"
    REWRITE_FAILED = "rewrite_failed"


@dataclass
class StepResult:
    """Outcome of one step attempt.

    Attributes:
        success: Whether a rule was applied
        event: The recorded event, None when nothing was applied
        state: Snapshot taken after the attempt
        message: Human-readable outcome
    """

    success: bool
    event: SimulationEvent | None
    state: HypergraphState
    message: str


@dataclass
class ContinuousSimulationConfig:
    """Settings for run_continuous.

    Attributes:
        max_steps: Upper bound on step attempts, None for unbounded
        stop_on_fixed_point: End the run at the first attempt with no match;
            when False such attempts only count against max_steps
        report_interval: Report progress every N successful steps, 0 to disable
    """

    max_steps: int | None = None
    stop_on_fixed_point: bool = True
    report_interval: int = 1

    def __post_init__(self) -> None:
        if self.max_steps is not None and self.max_steps < 0:
            raise ValueError(f"max_steps must be non-negative, got: {self.max_steps}")
        if self.report_interval < 0:
            raise ValueError(f"report_interval must be non-negative, got: {self.report_interval}")


@dataclass
class ContinuousRunResult:
    steps_executed: int
    events: list[SimulationEvent] = field(default_factory=list)
    stop_reason: StopReason = StopReason.MAX_STEPS
    final_state: HypergraphState = field(default_factory=HypergraphState)


class SimulationManager:
    """Stateful rewrite simulation over one hypergraph and one rule set.

    Example:
        manager = SimulationManager.from_state(get_example("single_edge"))
        result = manager.step()
        result.event.atoms_created  # (2,)
    """

    def __init__(self, graph: Hypergraph | None = None, rules: RuleSet | None = None) -> None:
        self._graph = graph if graph is not None else Hypergraph()
        self._rules = rules if rules is not None else RuleSet.basic()
        self._step_number = 0
        self._events: list[SimulationEvent] = []
        self._status = SimulationStatus.READY

    @classmethod
    def from_state(cls, state: HypergraphState, rules: RuleSet | None = None) -> SimulationManager:
        """Build a manager from a snapshot, restoring counters and step number.

        Raises:
            StructuralViolation: If the snapshot has a dangling atom reference
                or inconsistent counters
        """
        manager = cls(state.to_hypergraph(), rules)
        manager._step_number = state.step_number
        return manager

    # ========== Accessors ==========

    @property
    def graph(self) -> Hypergraph:
        return self._graph

    @property
    def rules(self) -> RuleSet:
        return self._rules

    def set_rules(self, rules: RuleSet) -> None:
        self._rules = rules
        self._status = SimulationStatus.READY

    @property
    def step_number(self) -> int:
        return self._step_number

    @property
    def status(self) -> SimulationStatus:
        return self._status

    @property
    def events(self) -> list[SimulationEvent]:
        """Copy of the event history, oldest first."""
        return list(self._events)

    def recent_events(self, limit: int) -> list[SimulationEvent]:
        if limit <= 0:
            return []
        return self._events[-limit:]

    def get_current_state(self) -> HypergraphState:
        return HypergraphState.from_hypergraph(self._graph, self._step_number)

    def load_state(self, state: HypergraphState) -> None:
        """Replace the graph, counters and step number with a snapshot's.

        The event history is cleared. On failure the manager is unchanged.

        Raises:
            StructuralViolation: If the snapshot is inconsistent
        """
        graph = state.to_hypergraph()
        self._graph = graph
        self._step_number = state.step_number
        self._events = []
        self._status = SimulationStatus.READY

    # ========== Stepping ==========

    def step(self) -> StepResult:
        """Attempt one rewrite.

        Returns:
            StepResult; on no match success is False, the step number is
            unchanged and the message is "no applicable rules"
        """
        with self._graph.batch():
            for rule in self._rules:
                match = find_first_match(rule.pattern, self._graph)
                if match is None:
                    continue
                result = apply_rule(self._graph, rule, match)
                if not result.success:
                    logger.error(
                        "Rewrite of rule %s at step %d failed: %s",
                        rule.id,
                        self._step_number + 1,
                        result.error_message,
                    )
                    return StepResult(
                        False, None, self.get_current_state(), result.error_message or ""
                    )

                self._step_number += 1
                event = SimulationEvent(
                    step_number=self._step_number,
                    rule_id=rule.id,
                    atoms_created=tuple(result.new_atoms),
                    relations_created=tuple(result.new_relations),
                    relations_removed=tuple(result.removed_relations),
                    description=f"Applied {rule} to relations {result.removed_relations}",
                )
                self._events.append(event)
                self._status = SimulationStatus.READY
                logger.debug(
                    "Step %d: rule %s removed %s, created atoms %s and relations %s",
                    event.step_number,
                    rule.id,
                    list(event.relations_removed),
                    list(event.atoms_created),
                    list(event.relations_created),
                )
                return StepResult(True, event, self.get_current_state(), f"Applied {rule}")

            self._status = SimulationStatus.EXHAUSTED
            return StepResult(False, None, self.get_current_state(), NO_APPLICABLE_RULES)

    def step_multiple(self, count: int) -> list[StepResult]:
        """Attempt up to count steps, stopping after the first failure."""
        results: list[StepResult] = []
        for _ in range(count):
            result = self.step()
            results.append(result)
            if not result.success:
                break
        return results

    def run_continuous(
        self,
        config: ContinuousSimulationConfig | None = None,
        cancel: threading.Event | None = None,
        on_progress: Callable[[int, HypergraphState], None] | None = None,
    ) -> ContinuousRunResult:
        """Step repeatedly until a stop condition holds.

        Args:
            config: Run settings, defaults to ContinuousSimulationConfig()
            cancel: Checked before every attempt; setting it ends the run
                with StopReason.CANCELLED
            on_progress: Called with (steps_executed, state) at every
                report_interval successful steps

        Returns:
            ContinuousRunResult with the events of this run only

        Raises:
            ValueError: If the configuration could never terminate
        """
        config = config or ContinuousSimulationConfig()
        if config.max_steps is None and not config.stop_on_fixed_point and cancel is None:
            raise ValueError(
                "run_continuous needs max_steps, stop_on_fixed_point or a cancel event"
            )

        logger.info(
            "Starting continuous run at step %d (max_steps=%s, stop_on_fixed_point=%s)",
            self._step_number,
            config.max_steps,
            config.stop_on_fixed_point,
        )
        events: list[SimulationEvent] = []
        attempts = 0
        while True:
            if cancel is not None and cancel.is_set():
                reason = StopReason.CANCELLED
                break
            if config.max_steps is not None and attempts >= config.max_steps:
                reason = StopReason.MAX_STEPS
                break

            result = self.step()
            attempts += 1
            if result.success:
                assert result.event is not None
                events.append(result.event)
                if config.report_interval and len(events) % config.report_interval == 0:
                    logger.info(
                        "Step %d: %d atoms, %d relations",
                        result.state.step_number,
                        len(result.state.atoms),
                        len(result.state.relations),
                    )
                    if on_progress is not None:
                        on_progress(len(events), result.state)
            elif result.message != NO_APPLICABLE_RULES:
                reason = StopReason.REWRITE_FAILED
                break
            elif config.stop_on_fixed_point:
                reason = StopReason.FIXED_POINT
                break

        logger.info("Continuous run stopped (%s) after %d steps", reason.value, len(events))
        return ContinuousRunResult(
            steps_executed=len(events),
            events=events,
            stop_reason=reason,
            final_state=self.get_current_state(),
        )
