"""Catalog of named seed hypergraphs.

Every example is a step-0 snapshot whose atom and relation ids start at 0 and
whose counters sit one past the largest id in use.
"""

from __future__ import annotations

from typing import Any

from .core import Atom, Relation
from .state import HypergraphState

_DESCRIPTIONS: dict[str, str] = {
    "empty_graph": (
        "An empty hypergraph with no atoms or relations. "
        "Good starting point for custom simulations."
    ),
    "single_edge": (
        "A simple edge connecting two atoms (A--B). Classic starting point for edge splitting."
    ),
    "triangle": "Three atoms connected in a triangle (A--B--C--A). Demonstrates a basic cycle.",
    "small_path": (
        "Four atoms connected in a linear path (A--B--C--D). Good for studying linear evolution."
    ),
    "small_cycle": (
        "Four atoms connected in a cycle (A--B--C--D--A). More complex cyclic structure."
    ),
}

_EDGES: dict[str, tuple[int, list[tuple[int, ...]]]] = {
    "empty_graph": (0, []),
    "single_edge": (2, [(0, 1)]),
    "triangle": (3, [(0, 1), (1, 2), (2, 0)]),
    "small_path": (4, [(0, 1), (1, 2), (2, 3)]),
    "small_cycle": (4, [(0, 1), (1, 2), (2, 3), (3, 0)]),
}


def _build(atom_count: int, edges: list[tuple[int, ...]]) -> HypergraphState:
    return HypergraphState(
        atoms=[Atom(i) for i in range(atom_count)],
        relations=[Relation(i, list(edge)) for i, edge in enumerate(edges)],
        step_number=0,
        next_atom_id=atom_count,
        next_relation_id=len(edges),
    )


def list_examples() -> list[str]:
    return list(_EDGES)


def get_example(name: str) -> HypergraphState | None:
    """Fresh snapshot of the named example, or None if unknown."""
    edges = _EDGES.get(name)
    if edges is None:
        return None
    return _build(*edges)


def get_description(name: str) -> str | None:
    return _DESCRIPTIONS.get(name)


def get_all_example_info() -> list[dict[str, Any]]:
    """Name, description and size of every example, in catalog order."""
    info = []
    for name in list_examples():
        state = _build(*_EDGES[name])
        info.append(
            {
                "name": name,
                "description": _DESCRIPTIONS.get(name, "No description available"),
                "atom_count": len(state.atoms),
                "relation_count": len(state.relations),
            }
        )
    return info


def validate_all_examples() -> dict[str, Any]:
    """Check every example snapshot for consistency.

    Returns:
        Dict with 'valid' (bool) and 'errors' (list of error descriptions,
        each prefixed with the example name)
    """
    errors: list[str] = []
    for name in list_examples():
        state = get_example(name)
        if state is None:
            errors.append(f"Example '{name}' not found")
            continue
        errors.extend(f"Example '{name}': {error}" for error in state.validate())
    return {"valid": len(errors) == 0, "errors": errors}
