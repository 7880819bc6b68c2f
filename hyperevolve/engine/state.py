"""Snapshot and event records produced by the simulation.

A HypergraphState is a self-contained, caller-owned copy of a hypergraph plus
the simulation step it was taken at. It is the unit of persistence and of
transmission to observers. A SimulationEvent records the structural change
made by one successful rewrite step.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from .core import Atom, AtomId, Hypergraph, Relation, RelationId, StructuralViolation


@dataclass(frozen=True)
class SimulationEvent:
    """One applied rewrite.

    Attributes:
        step_number: Step the event produced (1 for the first step)
        rule_id: Id of the applied rule
        atoms_created: Fresh atoms, in creation order
        relations_created: Replacement relations, in creation order
        relations_removed: Matched relations, in pattern order
        description: Human-readable summary
    """

    step_number: int
    rule_id: int
    atoms_created: tuple[AtomId, ...] = ()
    relations_created: tuple[RelationId, ...] = ()
    relations_removed: tuple[RelationId, ...] = ()
    description: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "step_number": self.step_number,
            "rule_id": self.rule_id,
            "atoms_created": list(self.atoms_created),
            "relations_created": list(self.relations_created),
            "relations_removed": list(self.relations_removed),
            "description": self.description,
        }


def _require_int(data: dict[str, Any], key: str) -> int:
    value = data.get(key)
    if not isinstance(value, int) or isinstance(value, bool) or value < 0:
        raise ValueError(f"Field '{key}' must be a non-negative integer, got: {value!r}")
    return value


def _optional_str(data: dict[str, Any], key: str) -> str | None:
    value = data.get(key)
    if value is not None and not isinstance(value, str):
        raise ValueError(f"Field '{key}' must be a string or null, got: {value!r}")
    return value


@dataclass
class HypergraphState:
    """Snapshot of a hypergraph at a given simulation step.

    Atoms and relations are held in ascending id order so that snapshots of
    equal graphs compare equal.
    """

    atoms: list[Atom] = field(default_factory=list)
    relations: list[Relation] = field(default_factory=list)
    step_number: int = 0
    next_atom_id: AtomId = 0
    next_relation_id: RelationId = 0

    @classmethod
    def from_hypergraph(cls, graph: Hypergraph, step_number: int = 0) -> HypergraphState:
        """Take a snapshot of a live hypergraph.

        Atoms and relations are copied so later mutations of the graph do not
        leak into the snapshot.
        """
        with graph.batch():
            atoms = [Atom(a.id, a.metadata) for a in sorted(graph.atoms(), key=lambda a: a.id)]
            relations = [
                Relation(r.id, list(r.atoms), r.metadata)
                for r in sorted(graph.relations(), key=lambda r: r.id)
            ]
            return cls(
                atoms=atoms,
                relations=relations,
                step_number=step_number,
                next_atom_id=graph.next_atom_id,
                next_relation_id=graph.next_relation_id,
            )

    def validate(self) -> list[str]:
        """Check the snapshot for dangling references and stale counters.

        Returns:
            List of error descriptions, empty when the snapshot is consistent
        """
        errors: list[str] = []
        atom_ids = {atom.id for atom in self.atoms}
        if len(atom_ids) != len(self.atoms):
            errors.append("Snapshot contains duplicate atom ids")
        relation_ids = {relation.id for relation in self.relations}
        if len(relation_ids) != len(self.relations):
            errors.append("Snapshot contains duplicate relation ids")

        for relation in self.relations:
            for atom_id in relation.atoms:
                if atom_id not in atom_ids:
                    errors.append(
                        f"Relation {relation.id} references non-existent atom {atom_id}"
                    )

        if atom_ids and self.next_atom_id <= max(atom_ids):
            errors.append(
                f"next_atom_id ({self.next_atom_id}) must be greater than "
                f"maximum existing atom ID ({max(atom_ids)})"
            )
        if relation_ids and self.next_relation_id <= max(relation_ids):
            errors.append(
                f"next_relation_id ({self.next_relation_id}) must be greater than "
                f"maximum existing relation ID ({max(relation_ids)})"
            )
        return errors

    def check(self) -> None:
        """Raise if the snapshot is inconsistent.

        Raises:
            StructuralViolation: With the first validation error
        """
        errors = self.validate()
        if errors:
            raise StructuralViolation(errors[0])

    def to_hypergraph(self) -> Hypergraph:
        """Rebuild a hypergraph from this snapshot, restoring both counters.

        Raises:
            StructuralViolation: If the snapshot is inconsistent
        """
        self.check()
        graph = Hypergraph()
        with graph.batch():
            for atom in self.atoms:
                graph.add_atom(Atom(atom.id, atom.metadata))
            for relation in self.relations:
                graph.add_relation(Relation(relation.id, list(relation.atoms), relation.metadata))
            graph.set_next_atom_id(self.next_atom_id)
            graph.set_next_relation_id(self.next_relation_id)
        return graph

    # ========== Serialization ==========

    def to_dict(self) -> dict[str, Any]:
        return {
            "atoms": [{"id": a.id, "metadata": a.metadata} for a in self.atoms],
            "relations": [
                {"id": r.id, "atoms": list(r.atoms), "metadata": r.metadata}
                for r in self.relations
            ],
            "step_number": self.step_number,
            "next_atom_id": self.next_atom_id,
            "next_relation_id": self.next_relation_id,
        }

    @classmethod
    def from_dict(cls, data: Any) -> HypergraphState:
        """Parse a snapshot dict.

        Only the shape is checked here; use validate() or check() for the
        structural invariants.

        Raises:
            ValueError: If a field is missing or has the wrong type
        """
        if not isinstance(data, dict):
            raise ValueError(f"Snapshot must be a JSON object, got: {type(data).__name__}")
        raw_atoms = data.get("atoms")
        raw_relations = data.get("relations")
        if not isinstance(raw_atoms, list):
            raise ValueError("Field 'atoms' must be a list")
        if not isinstance(raw_relations, list):
            raise ValueError("Field 'relations' must be a list")

        atoms = []
        for entry in raw_atoms:
            if not isinstance(entry, dict):
                raise ValueError(f"Atom entry must be an object, got: {entry!r}")
            atoms.append(Atom(_require_int(entry, "id"), _optional_str(entry, "metadata")))

        relations = []
        for entry in raw_relations:
            if not isinstance(entry, dict):
                raise ValueError(f"Relation entry must be an object, got: {entry!r}")
            members = entry.get("atoms")
            if not isinstance(members, list):
                raise ValueError(f"Relation {entry.get('id')!r} field 'atoms' must be a list")
            for member in members:
                if not isinstance(member, int) or isinstance(member, bool) or member < 0:
                    raise ValueError(
                        f"Relation {entry.get('id')!r} has invalid atom reference {member!r}"
                    )
            relations.append(
                Relation(_require_int(entry, "id"), members, _optional_str(entry, "metadata"))
            )

        return cls(
            atoms=atoms,
            relations=relations,
            step_number=_require_int(data, "step_number"),
            next_atom_id=_require_int(data, "next_atom_id"),
            next_relation_id=_require_int(data, "next_relation_id"),
        )
