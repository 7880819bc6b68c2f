"""Sub-hypergraph pattern matching.

Finds every embedding of a pattern in a hypergraph: an assignment of distinct
hypergraph relations to the pattern's relations (in pattern order) such that
arities agree, concrete atoms match by identity and every variable resolves
to one atom across the whole pattern.

The search is plain recursive backtracking over pattern positions. Candidate
relations are tried in ascending relation-id order, so the order of the
returned matches is deterministic for a given graph.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field

from .core import Hypergraph, Relation, RelationId
from .patterns import Binding, Pattern, PatternRelation, Variable


@dataclass
class Match:
    """One embedding of a pattern.

    Attributes:
        binding: Variable assignment covering every pattern variable
        matched_relations: One distinct relation id per pattern relation,
            in pattern order
    """

    binding: Binding
    matched_relations: list[RelationId] = field(default_factory=list)


def _try_match_relation(
    pattern_relation: PatternRelation,
    relation: Relation,
    binding: Binding,
) -> Binding | None:
    """Unify one pattern relation with one hypergraph relation.

    Works on a copy; the caller's binding is never modified.

    Returns:
        The extended binding, or None on arity mismatch, concrete atom
        mismatch or a variable conflict
    """
    if pattern_relation.arity != relation.arity:
        return None
    extended = binding.copy()
    for element, atom_id in zip(pattern_relation.elements, relation.atoms):
        if isinstance(element, Variable):
            if not extended.bind(element, atom_id):
                return None
        elif element != atom_id:
            return None
    return extended


def iter_pattern_matches(pattern: Pattern, graph: Hypergraph) -> Iterator[Match]:
    """Lazily yield the embeddings of pattern in graph.

    The graph must not be mutated while the iterator is live; callers that
    share the graph across threads hold graph.batch() around consumption.
    """
    if pattern.is_empty():
        return
    candidates = sorted(graph.relation_ids())
    consumed: list[RelationId] = []

    def search(index: int, binding: Binding) -> Iterator[Match]:
        if index == len(pattern):
            yield Match(binding.copy(), list(consumed))
            return
        pattern_relation = pattern.relations[index]
        for relation_id in candidates:
            if relation_id in consumed:
                continue
            relation = graph.get_relation(relation_id)
            if relation is None:
                continue
            extended = _try_match_relation(pattern_relation, relation, binding)
            if extended is None:
                continue
            consumed.append(relation_id)
            yield from search(index + 1, extended)
            consumed.pop()

    yield from search(0, Binding())


def find_pattern_matches(pattern: Pattern, graph: Hypergraph) -> list[Match]:
    """Return every embedding of pattern in graph.

    An empty pattern has no matches. A pattern with k relations over a graph
    with n relations may have up to n!/(n-k)! matches.
    """
    with graph.batch():
        return list(iter_pattern_matches(pattern, graph))


def find_first_match(pattern: Pattern, graph: Hypergraph) -> Match | None:
    """Return the first embedding in search order, or None."""
    with graph.batch():
        return next(iter_pattern_matches(pattern, graph), None)
