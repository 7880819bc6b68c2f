"""Core hypergraph data structures and operations.

A hypergraph of integer-identified atoms connected by ordered, n-ary relations,
as evolved by Wolfram-style rewrite rules. Relations are ordered tuples of atom
references; the same atom may appear more than once in one relation.

Invariants maintained by every mutation:
    - every atom referenced by a stored relation exists in the hypergraph;
    - the atom -> incident relations index mirrors relation membership exactly;
    - the id counters are strictly greater than any id in use.

Thread Safety:
    All operations on Hypergraph are protected by an internal RLock. Callers
    that need several operations to appear atomic use the batch() context
    manager:
        with graph.batch():
            a = graph.create_atom()
            b = graph.create_atom()
            graph.create_relation([a, b])
"""

import copy
import threading
from collections import defaultdict
from collections.abc import Generator, Iterable
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any

AtomId = int
RelationId = int


class StructuralViolation(ValueError):
    """A mutation or snapshot would break a structural invariant of the hypergraph."""


def _check_id(value: Any, kind: str) -> None:
    # bool is an int subclass but never a valid id
    if not isinstance(value, int) or isinstance(value, bool):
        raise TypeError(f"{kind} id must be an int, got: {type(value).__name__}")
    if value < 0:
        raise ValueError(f"{kind} id must be non-negative, got: {value}")


@dataclass
class Atom:
    """A vertex of the hypergraph.

    Attributes:
        id: Unique non-negative identifier within one hypergraph
        metadata: Optional free-form label

    Raises:
        TypeError: If id is not an int
        ValueError: If id is negative
    """

    id: AtomId
    metadata: str | None = None

    def __post_init__(self) -> None:
        _check_id(self.id, "Atom")


@dataclass
class Relation:
    """An ordered hyperedge over atoms.

    Order is significant: (a, b) and (b, a) are different relations.

    Attributes:
        id: Unique non-negative identifier within one hypergraph
        atoms: Ordered atom references, repetition allowed
        metadata: Optional free-form label

    Raises:
        TypeError: If id or any atom reference is not an int
        ValueError: If id or any atom reference is negative
    """

    id: RelationId
    atoms: list[AtomId] = field(default_factory=list)
    metadata: str | None = None

    def __post_init__(self) -> None:
        _check_id(self.id, "Relation")
        self.atoms = list(self.atoms)
        for atom_id in self.atoms:
            _check_id(atom_id, "Atom")

    @property
    def arity(self) -> int:
        """Number of atom positions in this relation."""
        return len(self.atoms)

    def contains_atom(self, atom_id: AtomId) -> bool:
        return atom_id in self.atoms


class Hypergraph:
    """Mutable store of atoms and relations with an atom -> relations index.

    Ids are minted by two monotonic counters owned by the hypergraph. Explicit
    insertion (add_atom, add_relation) and the counter setters exist for
    reconstructing a graph from a snapshot.
    """

    def __init__(self) -> None:
        self._atoms: dict[AtomId, Atom] = {}
        self._relations: dict[RelationId, Relation] = {}
        # Derived index, rebuilt only through _index_relation / _unindex_relation
        self._atom_to_relations: dict[AtomId, set[RelationId]] = defaultdict(set)
        self._next_atom_id: AtomId = 0
        self._next_relation_id: RelationId = 0
        self._lock = threading.RLock()

    def __getstate__(self) -> dict[str, Any]:
        """Support for pickle/deepcopy - exclude the lock."""
        state = self.__dict__.copy()
        del state["_lock"]
        return state

    def __setstate__(self, state: dict[str, Any]) -> None:
        """Support for pickle/deepcopy - recreate the lock."""
        self.__dict__.update(state)
        self._lock = threading.RLock()

    def __deepcopy__(self, memo: dict) -> "Hypergraph":
        with self._lock:
            new_graph = Hypergraph.__new__(Hypergraph)
            memo[id(self)] = new_graph
            new_graph._atoms = copy.deepcopy(self._atoms, memo)
            new_graph._relations = copy.deepcopy(self._relations, memo)
            new_graph._atom_to_relations = copy.deepcopy(self._atom_to_relations, memo)
            new_graph._next_atom_id = self._next_atom_id
            new_graph._next_relation_id = self._next_relation_id
            new_graph._lock = threading.RLock()
            return new_graph

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Hypergraph):
            return NotImplemented
        if other is self:
            return True
        return self._comparable() == other._comparable()

    def _comparable(self) -> tuple:
        # One lock at a time; comparing two graphs never nests their locks
        with self._lock:
            return (
                dict(self._atoms),
                dict(self._relations),
                self._next_atom_id,
                self._next_relation_id,
            )

    def __repr__(self) -> str:
        return f"Hypergraph(atoms={len(self._atoms)}, relations={len(self._relations)})"

    # ========== Thread Safety ==========

    @contextmanager
    def batch(self) -> Generator[None, None, None]:
        """Hold the lock for multiple operations - provides isolation, NOT rollback.

        Other threads see either none or all of the changes made inside the
        block. If an exception occurs mid-batch, partial changes persist.

        Yields:
            None
        """
        with self._lock:
            yield

    # ========== Index Maintenance ==========

    def _index_relation(self, relation: Relation) -> None:
        self._relations[relation.id] = relation
        for atom_id in relation.atoms:
            self._atom_to_relations[atom_id].add(relation.id)

    def _unindex_relation(self, relation_id: RelationId) -> Relation | None:
        relation = self._relations.pop(relation_id, None)
        if relation is None:
            return None
        for atom_id in relation.atoms:
            incident = self._atom_to_relations.get(atom_id)
            if incident is not None:
                incident.discard(relation_id)
        return relation

    def _check_atoms_exist(self, atom_ids: Iterable[AtomId]) -> None:
        for atom_id in atom_ids:
            if atom_id not in self._atoms:
                raise StructuralViolation(f"Atom {atom_id} does not exist")

    # ========== Atom Operations ==========

    def create_atom(self) -> AtomId:
        """Mint a fresh atom and return its id."""
        return self.create_atom_with_metadata(None)

    def create_atom_with_metadata(self, metadata: str | None) -> AtomId:
        """Mint a fresh atom carrying metadata and return its id.

        Raises:
            StructuralViolation: If next_atom_id lags behind an atom already stored
        """
        with self._lock:
            atom_id = self._next_atom_id
            if atom_id in self._atoms:
                raise StructuralViolation(
                    f"next_atom_id ({atom_id}) is already in use; restore the counter first"
                )
            self._next_atom_id += 1
            self._atoms[atom_id] = Atom(atom_id, metadata)
            self._atom_to_relations[atom_id] = set()
            return atom_id

    def add_atom(self, atom: Atom) -> bool:
        """Insert an atom under its own id, replacing any atom with that id.

        The id counters are not touched; snapshot reconstruction restores
        them explicitly.

        Returns:
            True if an existing atom was replaced
        """
        with self._lock:
            replaced = atom.id in self._atoms
            self._atoms[atom.id] = atom
            # Keeps the incident set of a replaced atom
            self._atom_to_relations.setdefault(atom.id, set())
            return replaced

    def remove_atom(self, atom_id: AtomId) -> Atom | None:
        """Remove an atom together with every relation incident to it.

        Returns:
            The removed atom, or None if no such atom exists
        """
        with self._lock:
            if atom_id not in self._atoms:
                return None
            for relation_id in sorted(self._atom_to_relations.get(atom_id, ())):
                self._unindex_relation(relation_id)
            self._atom_to_relations.pop(atom_id, None)
            return self._atoms.pop(atom_id)

    def get_atom(self, atom_id: AtomId) -> Atom | None:
        """Get an atom by id, or None if not found.

        The stored object is returned; changing its metadata updates the graph.
        """
        with self._lock:
            return self._atoms.get(atom_id)

    def atoms(self) -> list[Atom]:
        with self._lock:
            return list(self._atoms.values())

    def atom_ids(self) -> list[AtomId]:
        with self._lock:
            return list(self._atoms)

    def contains_atom(self, atom_id: AtomId) -> bool:
        with self._lock:
            return atom_id in self._atoms

    @property
    def atom_count(self) -> int:
        return len(self._atoms)

    # ========== Relation Operations ==========

    def create_relation(self, atom_ids: Iterable[AtomId]) -> RelationId:
        """Mint a fresh relation over existing atoms and return its id.

        Raises:
            StructuralViolation: If any referenced atom does not exist; the
                graph and its counters are left unchanged
        """
        return self.create_relation_with_metadata(atom_ids, None)

    def create_relation_with_metadata(
        self, atom_ids: Iterable[AtomId], metadata: str | None
    ) -> RelationId:
        """Mint a fresh relation carrying metadata and return its id.

        Raises:
            StructuralViolation: If any referenced atom does not exist, or
                next_relation_id lags behind a relation already stored
        """
        atom_ids = list(atom_ids)
        with self._lock:
            self._check_atoms_exist(atom_ids)
            if self._next_relation_id in self._relations:
                raise StructuralViolation(
                    f"next_relation_id ({self._next_relation_id}) is already in use; "
                    "restore the counter first"
                )
            relation = Relation(self._next_relation_id, atom_ids, metadata)
            self._next_relation_id += 1
            self._index_relation(relation)
            return relation.id

    def add_relation(self, relation: Relation) -> bool:
        """Insert a relation under its own id, replacing any relation with that id.

        Returns:
            True if an existing relation was replaced

        Raises:
            StructuralViolation: If any referenced atom does not exist
        """
        with self._lock:
            self._check_atoms_exist(relation.atoms)
            replaced = self._unindex_relation(relation.id) is not None
            self._index_relation(relation)
            return replaced

    def remove_relation(self, relation_id: RelationId) -> Relation | None:
        """Remove a relation and detach it from its atoms.

        Returns:
            The removed relation, or None if no such relation exists
        """
        with self._lock:
            return self._unindex_relation(relation_id)

    def get_relation(self, relation_id: RelationId) -> Relation | None:
        """Get a relation by id, or None if not found."""
        with self._lock:
            return self._relations.get(relation_id)

    def relations(self) -> list[Relation]:
        with self._lock:
            return list(self._relations.values())

    def relation_ids(self) -> list[RelationId]:
        with self._lock:
            return list(self._relations)

    def contains_relation(self, relation_id: RelationId) -> bool:
        with self._lock:
            return relation_id in self._relations

    @property
    def relation_count(self) -> int:
        return len(self._relations)

    def find_relations_with_atom(self, atom_id: AtomId) -> list[Relation]:
        """Get every relation incident to an atom, in O(degree) via the index.

        The order is unspecified; sort by id when a stable order is needed.
        """
        with self._lock:
            return [
                self._relations[relation_id]
                for relation_id in self._atom_to_relations.get(atom_id, ())
            ]

    # ========== Counters ==========

    @property
    def next_atom_id(self) -> AtomId:
        return self._next_atom_id

    @property
    def next_relation_id(self) -> RelationId:
        return self._next_relation_id

    def set_next_atom_id(self, value: AtomId) -> None:
        """Restore the atom counter.

        Raises:
            StructuralViolation: If value is not greater than every stored atom id
        """
        _check_id(value, "Atom")
        with self._lock:
            if self._atoms and value <= max(self._atoms):
                raise StructuralViolation(
                    f"next_atom_id ({value}) must be greater than "
                    f"maximum existing atom ID ({max(self._atoms)})"
                )
            self._next_atom_id = value

    def set_next_relation_id(self, value: RelationId) -> None:
        _check_id(value, "Relation")
        with self._lock:
            if self._relations and value <= max(self._relations):
                raise StructuralViolation(
                    f"next_relation_id ({value}) must be greater than "
                    f"maximum existing relation ID ({max(self._relations)})"
                )
            self._next_relation_id = value

    def clear(self) -> None:
        """Remove all atoms and relations. The id counters keep their values."""
        with self._lock:
            self._atoms.clear()
            self._relations.clear()
            self._atom_to_relations.clear()

    # ========== Statistics & Validation ==========

    def stats(self) -> dict[str, Any]:
        """Get hypergraph statistics.

        Returns:
            Dict with atom_count, relation_count, relations_by_arity,
            next_atom_id and next_relation_id
        """
        with self._lock:
            by_arity: dict[int, int] = defaultdict(int)
            for relation in self._relations.values():
                by_arity[relation.arity] += 1
            return {
                "atom_count": len(self._atoms),
                "relation_count": len(self._relations),
                "relations_by_arity": dict(sorted(by_arity.items())),
                "next_atom_id": self._next_atom_id,
                "next_relation_id": self._next_relation_id,
            }

    def validate(self) -> dict[str, Any]:
        """Check the structural invariants of the hypergraph.

        Checks for:
        - Relations referencing non-existent atoms
        - Atom-to-relations index consistency, in both directions
        - Counters not ahead of every id in use

        Returns:
            Dict with 'valid' (bool) and 'errors' (list of error descriptions)
        """
        with self._lock:
            errors: list[str] = []

            for relation_id, relation in self._relations.items():
                for atom_id in relation.atoms:
                    if atom_id not in self._atoms:
                        errors.append(
                            f"Relation {relation_id} references non-existent atom {atom_id}"
                        )
                    elif relation_id not in self._atom_to_relations.get(atom_id, ()):
                        errors.append(
                            f"Index for atom {atom_id} is missing relation {relation_id}"
                        )

            for atom_id, relation_ids in self._atom_to_relations.items():
                if atom_id not in self._atoms:
                    errors.append(f"Index contains non-existent atom {atom_id}")
                for relation_id in relation_ids:
                    relation = self._relations.get(relation_id)
                    if relation is None:
                        errors.append(
                            f"Index for atom {atom_id} references "
                            f"non-existent relation {relation_id}"
                        )
                    elif atom_id not in relation.atoms:
                        errors.append(
                            f"Index for atom {atom_id} lists relation {relation_id} "
                            f"which does not contain it"
                        )

            if self._atoms and self._next_atom_id <= max(self._atoms):
                errors.append(
                    f"next_atom_id ({self._next_atom_id}) must be greater than "
                    f"maximum existing atom ID ({max(self._atoms)})"
                )
            if self._relations and self._next_relation_id <= max(self._relations):
                errors.append(
                    f"next_relation_id ({self._next_relation_id}) must be greater than "
                    f"maximum existing relation ID ({max(self._relations)})"
                )

            return {"valid": len(errors) == 0, "errors": errors}
