"""Pydantic models for the hyperevolve service boundary.

These are thin wrappers over the engine types (engine.core, engine.state),
providing validation and serialization for callers of SimulationService and
the MCP server. Every response carries an explicit success flag and message.
"""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, Field, model_validator


class Atom(BaseModel):
    """A vertex of the hypergraph."""

    id: int = Field(ge=0)
    metadata: str | None = None


class Relation(BaseModel):
    """An ordered hyperedge. Atom order is significant and may repeat."""

    id: int = Field(ge=0)
    atoms: list[int] = Field(default_factory=list)
    metadata: str | None = None

    @model_validator(mode="after")
    def _check_atom_ids(self) -> Relation:
        for atom_id in self.atoms:
            if atom_id < 0:
                raise ValueError(f"Relation {self.id} has negative atom reference {atom_id}")
        return self

    @property
    def arity(self) -> int:
        return len(self.atoms)


class HypergraphState(BaseModel):
    """A snapshot: atoms, relations, step number and id counters.

    Validation rejects dangling atom references and counters that do not lie
    past every id in use.
    """

    atoms: list[Atom] = Field(default_factory=list)
    relations: list[Relation] = Field(default_factory=list)
    step_number: int = Field(default=0, ge=0)
    next_atom_id: int = Field(default=0, ge=0)
    next_relation_id: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def _check_consistency(self) -> HypergraphState:
        atom_ids = {a.id for a in self.atoms}
        for relation in self.relations:
            for atom_id in relation.atoms:
                if atom_id not in atom_ids:
                    raise ValueError(
                        f"Relation {relation.id} references non-existent atom {atom_id}"
                    )
        if atom_ids and self.next_atom_id <= max(atom_ids):
            raise ValueError(
                f"next_atom_id ({self.next_atom_id}) must be greater than "
                f"maximum existing atom ID ({max(atom_ids)})"
            )
        relation_ids = [r.id for r in self.relations]
        if relation_ids and self.next_relation_id <= max(relation_ids):
            raise ValueError(
                f"next_relation_id ({self.next_relation_id}) must be greater than "
                f"maximum existing relation ID ({max(relation_ids)})"
            )
        return self


class SimulationEvent(BaseModel):
    """One applied rewrite."""

    step_number: int
    rule_id: int
    atoms_created: list[int] = Field(default_factory=list)
    relations_created: list[int] = Field(default_factory=list)
    relations_removed: list[int] = Field(default_factory=list)
    description: str | None = None


class InitializeResponse(BaseModel):
    success: bool
    message: str
    state: HypergraphState | None = None


class StepResponse(BaseModel):
    """Outcome of one or more manual steps.

    success is True when at least one step was applied.
    """

    success: bool
    message: str
    steps_executed: int = 0
    state: HypergraphState
    events: list[SimulationEvent] = Field(default_factory=list)


class StateUpdate(BaseModel):
    """One message of the continuous-run stream."""

    state: HypergraphState
    recent_events: list[SimulationEvent] = Field(default_factory=list)
    step_number: int
    running: bool
    status_message: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class StopResponse(BaseModel):
    success: bool
    message: str
    final_state: HypergraphState


class SaveResponse(BaseModel):
    success: bool
    message: str
    path: str | None = None


class LoadResponse(BaseModel):
    success: bool
    message: str
    state: HypergraphState | None = None


class ExampleInfo(BaseModel):
    """Summary of one catalog example."""

    name: str
    description: str
    atom_count: int
    relation_count: int


class SimulationStats(BaseModel):
    """Summary counts for the current simulation.

    Reports atom and relation counts, relations broken down by arity, the
    step number and whether a background run is active.
    """

    atom_count: int
    relation_count: int
    relations_by_arity: dict[int, int]
    step_number: int
    next_atom_id: int
    next_relation_id: int
    event_count: int
    running: bool
    status: str
