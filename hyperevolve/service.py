"""SimulationService: the concurrency wrapper and service boundary.

Owns one SimulationManager, one PersistenceManager, a running flag and at
most one background run task, all guarded by a single reentrant lock.
Request/response operations take the lock, do their synchronous work and
return a pydantic response model; the background run is the only operation
that spans more than one event-loop slice, and it never holds the lock
across an await.

Example:
    ```python
    service = SimulationService()
    service.initialize(example="triangle")
    service.step(3)

    async for update in service.run(update_interval_ms=100):
        print(update.step_number, len(update.state.atoms))
        if update.step_number >= 10:
            break
    service.stop()
    ```
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import AsyncIterator
from contextlib import suppress
from pathlib import Path

from hyperevolve.engine.core import Atom as CoreAtom
from hyperevolve.engine.core import Relation as CoreRelation
from hyperevolve.engine.core import StructuralViolation
from hyperevolve.engine.examples import get_all_example_info, get_example
from hyperevolve.engine.patterns import RuleSet
from hyperevolve.engine.persistence import (
    DEFAULT_SAVE_DIRECTORY,
    PersistenceError,
    PersistenceManager,
    SaveConfig,
    loads_state,
)
from hyperevolve.engine.simulation import NO_APPLICABLE_RULES, SimulationManager, StepResult
from hyperevolve.engine.state import HypergraphState as CoreState
from hyperevolve.engine.state import SimulationEvent as CoreEvent
from hyperevolve.models import (
    Atom,
    ExampleInfo,
    HypergraphState,
    InitializeResponse,
    LoadResponse,
    Relation,
    SaveResponse,
    SimulationEvent,
    SimulationStats,
    StateUpdate,
    StepResponse,
    StopResponse,
)

logger = logging.getLogger(__name__)

FIXED_POINT_MESSAGE = "Simulation reached fixed point - no more applicable rules"

# --- Conversion helpers: engine types <-> pydantic models ---


def _core_state_to_model(state: CoreState) -> HypergraphState:
    return HypergraphState(
        atoms=[Atom(id=a.id, metadata=a.metadata) for a in state.atoms],
        relations=[
            Relation(id=r.id, atoms=list(r.atoms), metadata=r.metadata) for r in state.relations
        ],
        step_number=state.step_number,
        next_atom_id=state.next_atom_id,
        next_relation_id=state.next_relation_id,
    )


def _model_to_core_state(model: HypergraphState) -> CoreState:
    return CoreState(
        atoms=[CoreAtom(a.id, a.metadata) for a in model.atoms],
        relations=[CoreRelation(r.id, list(r.atoms), r.metadata) for r in model.relations],
        step_number=model.step_number,
        next_atom_id=model.next_atom_id,
        next_relation_id=model.next_relation_id,
    )


def _core_event_to_model(event: CoreEvent) -> SimulationEvent:
    return SimulationEvent(
        step_number=event.step_number,
        rule_id=event.rule_id,
        atoms_created=list(event.atoms_created),
        relations_created=list(event.relations_created),
        relations_removed=list(event.relations_removed),
        description=event.description,
    )


def _cancel_task(task: asyncio.Task) -> None:
    """Cancel a task from any thread."""
    if task.done():
        return
    loop = task.get_loop()
    if loop.is_closed():
        return
    try:
        current = asyncio.get_running_loop()
    except RuntimeError:
        current = None
    if current is loop:
        task.cancel()
    else:
        loop.call_soon_threadsafe(task.cancel)


class UpdateChannel:
    """Bounded, single-subscriber stream of StateUpdate messages.

    The producer never blocks: publish() fails when the buffer is full or the
    subscriber has closed the channel. Iteration ends once the producer task
    has finished and the buffer is drained.
    """

    def __init__(self, capacity: int) -> None:
        self._queue: asyncio.Queue[StateUpdate] = asyncio.Queue(maxsize=capacity)
        self._closed = False
        self._producer: asyncio.Task | None = None

    def attach(self, producer: asyncio.Task) -> None:
        self._producer = producer

    @property
    def closed(self) -> bool:
        return self._closed

    def publish(self, update: StateUpdate) -> bool:
        """Offer an update without waiting.

        Returns:
            False if the channel is closed or full
        """
        if self._closed:
            return False
        try:
            self._queue.put_nowait(update)
        except asyncio.QueueFull:
            return False
        return True

    def close(self) -> None:
        self._closed = True

    async def get(self) -> StateUpdate | None:
        """Next update, or None once the producer is done and nothing is buffered."""
        while True:
            if not self._queue.empty():
                return self._queue.get_nowait()
            if self._producer is None or self._producer.done():
                return None
            getter = asyncio.ensure_future(self._queue.get())
            done, _ = await asyncio.wait(
                {getter, self._producer}, return_when=asyncio.FIRST_COMPLETED
            )
            if getter in done:
                return getter.result()
            getter.cancel()
            with suppress(asyncio.CancelledError):
                await getter

    async def __aiter__(self) -> AsyncIterator[StateUpdate]:
        while True:
            update = await self.get()
            if update is None:
                return
            yield update


class SimulationService:
    """Thread-safe owner of one simulation and its optional background run.

    Args:
        rules: Rule set used for every (re)initialization; defaults to the
            edge-splitting rule only
        save_directory: Directory for default-named snapshot saves
        channel_capacity: Buffered updates before a run treats its
            subscriber as gone
        min_update_interval_ms: Floor applied to the run's inter-step delay
        recent_event_limit: Events attached to each StateUpdate
    """

    def __init__(
        self,
        rules: RuleSet | None = None,
        save_directory: str | Path | None = None,
        channel_capacity: int = 16,
        min_update_interval_ms: int = 10,
        recent_event_limit: int = 10,
    ) -> None:
        self._rules = rules if rules is not None else RuleSet.basic()
        self._manager = SimulationManager(rules=self._rules)
        self._persistence = PersistenceManager(save_directory or DEFAULT_SAVE_DIRECTORY)
        self._channel_capacity = channel_capacity
        self._min_update_interval_ms = min_update_interval_ms
        self._recent_event_limit = recent_event_limit
        self._lock = threading.RLock()
        self._running = False
        self._task: asyncio.Task | None = None
        self._channel: UpdateChannel | None = None

    @property
    def persistence(self) -> PersistenceManager:
        return self._persistence

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._running

    # ========== Run Control ==========

    def _abort_run(self) -> None:
        """Clear the running flag and cancel any background task. Caller holds the lock."""
        self._running = False
        task, self._task = self._task, None
        channel, self._channel = self._channel, None
        if channel is not None:
            channel.close()
        if task is not None:
            _cancel_task(task)

    def start_run(self, update_interval_ms: int = 1000) -> UpdateChannel:
        """Start stepping in the background and return the update stream.

        Any previous background task is aborted first. Must be called from a
        running event loop.

        Raises:
            RuntimeError: If no event loop is running in this thread
        """
        loop = asyncio.get_running_loop()
        interval = max(update_interval_ms, self._min_update_interval_ms) / 1000
        with self._lock:
            self._abort_run()
            channel = UpdateChannel(self._channel_capacity)
            self._running = True
            task = loop.create_task(self._run_loop(channel, interval))
            channel.attach(task)
            self._task = task
            self._channel = channel
            logger.info(
                "Background run started at step %d (interval %.3fs)",
                self._manager.step_number,
                interval,
            )
        return channel

    async def run(self, update_interval_ms: int = 1000) -> AsyncIterator[StateUpdate]:
        """Start a background run and yield its updates.

        Leaving the iteration closes the stream, which ends the run at its
        next publish.
        """
        channel = self.start_run(update_interval_ms)
        try:
            async for update in channel:
                yield update
        finally:
            channel.close()

    async def _run_loop(self, channel: UpdateChannel, interval: float) -> None:
        me = asyncio.current_task()
        try:
            while True:
                with self._lock:
                    if not self._running or self._task is not me:
                        break
                    result = self._manager.step()
                    if not result.success:
                        self._running = False
                    update = self._build_update(result)

                if not channel.publish(update):
                    logger.warning(
                        "Update subscriber gone, ending run at step %d", update.step_number
                    )
                    break
                if not result.success:
                    logger.info("Run ended at step %d: %s", update.step_number, result.message)
                    break
                await asyncio.sleep(interval)
        finally:
            with self._lock:
                if self._task is me:
                    self._task = None
                    self._running = False
                    self._channel = None
            channel.close()

    def _build_update(self, result: StepResult) -> StateUpdate:
        if result.success:
            message = result.message
        elif result.message == NO_APPLICABLE_RULES:
            message = FIXED_POINT_MESSAGE
        else:
            message = result.message
        return StateUpdate(
            state=_core_state_to_model(result.state),
            recent_events=[
                _core_event_to_model(e)
                for e in self._manager.recent_events(self._recent_event_limit)
            ],
            step_number=result.state.step_number,
            running=result.success,
            status_message=message,
        )

    def stop(self) -> StopResponse:
        """Stop any background run and return the final snapshot.

        No step begins after this returns.
        """
        with self._lock:
            was_running = self._running or self._task is not None
            self._abort_run()
            state = self._manager.get_current_state()
        if was_running:
            logger.info("Background run stopped at step %d", state.step_number)
        return StopResponse(
            success=True,
            message="Simulation stopped" if was_running else "Simulation was not running",
            final_state=_core_state_to_model(state),
        )

    async def wait(self) -> None:
        """Wait for the current background task, if any, to finish."""
        with self._lock:
            task = self._task
        if task is not None:
            with suppress(asyncio.CancelledError):
                await task

    # ========== Request/Response Operations ==========

    def initialize(
        self, state: HypergraphState | None = None, example: str | None = None
    ) -> InitializeResponse:
        """Replace the simulation with a given state, a catalog example or an empty graph.

        Any background run is stopped first. An explicit state wins over an
        example name.
        """
        with self._lock:
            self._abort_run()
            if state is not None:
                core_state = _model_to_core_state(state)
                source = "provided state"
            elif example is not None:
                found = get_example(example)
                if found is None:
                    return InitializeResponse(
                        success=False, message=f"Unknown example: {example!r}"
                    )
                core_state = found
                source = f"example '{example}'"
            else:
                core_state = CoreState()
                source = "empty graph"

            try:
                self._manager = SimulationManager.from_state(core_state, self._rules)
            except StructuralViolation as exc:
                logger.warning("Rejected initial state: %s", exc)
                return InitializeResponse(success=False, message=str(exc))

            logger.info("Simulation initialized from %s", source)
            return InitializeResponse(
                success=True,
                message=f"Simulation initialized from {source}",
                state=_core_state_to_model(self._manager.get_current_state()),
            )

    def step(self, count: int = 1) -> StepResponse:
        """Execute up to count steps (at least one), stopping at the first failure.

        success is True if any step was applied.
        """
        count = max(count, 1)
        with self._lock:
            results = self._manager.step_multiple(count)
            state = self._manager.get_current_state()
        events = [r.event for r in results if r.event is not None]
        executed = len(events)
        failure = next((r for r in results if not r.success), None)
        if failure is None:
            message = f"Executed {executed} steps successfully"
        elif executed:
            message = f"Executed {executed} of {count} steps: {failure.message}"
        else:
            message = failure.message
        return StepResponse(
            success=executed > 0,
            message=message,
            steps_executed=executed,
            state=_core_state_to_model(state),
            events=[_core_event_to_model(e) for e in events],
        )

    def get_current_state(self) -> HypergraphState:
        with self._lock:
            return _core_state_to_model(self._manager.get_current_state())

    def recent_events(self, limit: int = 10) -> list[SimulationEvent]:
        with self._lock:
            return [_core_event_to_model(e) for e in self._manager.recent_events(limit)]

    def save(
        self,
        path: str | None = None,
        overwrite: bool = False,
        pretty_print: bool = True,
    ) -> SaveResponse:
        """Write the current snapshot to disk.

        Without a path a step-and-timestamp file name in the save directory
        is used.
        """
        with self._lock:
            state = self._manager.get_current_state()
        try:
            saved = self._persistence.save_state(
                state,
                path,
                SaveConfig(overwrite_existing=overwrite, pretty_print=pretty_print),
            )
        except PersistenceError as exc:
            logger.warning("Save failed (%s): %s", exc.kind, exc)
            return SaveResponse(success=False, message=str(exc))
        return SaveResponse(
            success=True,
            message=f"Saved step {state.step_number} to {saved}",
            path=str(saved),
        )

    def load(
        self,
        path: str | None = None,
        example: str | None = None,
        content: str | None = None,
    ) -> LoadResponse:
        """Replace the simulation from exactly one of a file, an example or JSON text.

        Any background run is stopped first. On failure the current
        simulation is left as it was, apart from the stopped run.
        """
        sources = [s for s in (path, example, content) if s is not None]
        if len(sources) != 1:
            return LoadResponse(
                success=False, message="Provide exactly one of path, example or content"
            )

        with self._lock:
            self._abort_run()
            try:
                if example is not None:
                    state = get_example(example)
                    if state is None:
                        return LoadResponse(
                            success=False, message=f"Unknown example: {example!r}"
                        )
                    source = f"example '{example}'"
                elif content is not None:
                    state = loads_state(content)
                    source = "provided content"
                else:
                    state = self._persistence.load_state(path)
                    source = f"file {path}"
                self._manager.load_state(state)
            except (PersistenceError, StructuralViolation) as exc:
                logger.warning("Load failed: %s", exc)
                return LoadResponse(success=False, message=str(exc))

            logger.info("Loaded simulation from %s", source)
            return LoadResponse(
                success=True,
                message=f"Loaded {source} at step {state.step_number}",
                state=_core_state_to_model(self._manager.get_current_state()),
            )

    def list_examples(self) -> list[ExampleInfo]:
        return [ExampleInfo(**info) for info in get_all_example_info()]

    def list_saves(self) -> list[str]:
        """Snapshot files in the save directory, most recent first."""
        return [str(p) for p in self._persistence.list_saved()]

    def stats(self) -> SimulationStats:
        with self._lock:
            graph_stats = self._manager.graph.stats()
            return SimulationStats(
                atom_count=graph_stats["atom_count"],
                relation_count=graph_stats["relation_count"],
                relations_by_arity=graph_stats["relations_by_arity"],
                step_number=self._manager.step_number,
                next_atom_id=graph_stats["next_atom_id"],
                next_relation_id=graph_stats["next_relation_id"],
                event_count=len(self._manager.events),
                running=self._running,
                status=self._manager.status.value,
            )
