"""Rewrite engine: turns a rule plus a match into a structural change.

Application happens in three phases against the live hypergraph:

1. remove every matched relation, in match order;
2. mint one fresh atom per distinct replacement variable the match left
   unbound, in order of first occurrence;
3. create every replacement relation, resolving each element to a concrete
   atom and copying the template's metadata.

There is no rollback. A failure in phase 1 leaves earlier removals in place;
the caller reports it as a failed step.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from .core import AtomId, Hypergraph, RelationId, StructuralViolation
from .matching import Match, find_first_match
from .patterns import Rule, RuleSet, Variable


@dataclass
class RewriteResult:
    """Outcome of applying one rule to one match."""

    success: bool
    new_atoms: list[AtomId] = field(default_factory=list)
    new_relations: list[RelationId] = field(default_factory=list)
    removed_relations: list[RelationId] = field(default_factory=list)
    error_message: str | None = None

    @classmethod
    def succeeded(
        cls,
        new_atoms: list[AtomId],
        new_relations: list[RelationId],
        removed_relations: list[RelationId],
    ) -> RewriteResult:
        return cls(True, new_atoms, new_relations, removed_relations)

    @classmethod
    def failed(cls, error_message: str) -> RewriteResult:
        return cls(False, error_message=error_message)


def apply_rule(graph: Hypergraph, rule: Rule, match: Match) -> RewriteResult:
    """Apply rule at match, mutating graph.

    Args:
        graph: Hypergraph the match was found in
        rule: Rule whose pattern produced the match
        match: Embedding to rewrite

    Returns:
        RewriteResult listing created atoms, created relations and removed
        relations, or a failed result if the graph no longer agrees with the
        match
    """
    with graph.batch():
        removed: list[RelationId] = []
        for relation_id in match.matched_relations:
            if graph.remove_relation(relation_id) is None:
                return RewriteResult.failed(
                    f"Failed to remove relation {relation_id} during rewrite"
                )
            removed.append(relation_id)

        fresh: dict[Variable, AtomId] = {}
        new_atoms: list[AtomId] = []
        for variable in rule.replacement.variables():
            if not match.binding.is_bound(variable):
                try:
                    atom_id = graph.create_atom()
                except StructuralViolation as exc:
                    return RewriteResult.failed(f"Failed to create fresh atom: {exc}")
                fresh[variable] = atom_id
                new_atoms.append(atom_id)

        new_relations: list[RelationId] = []
        for template in rule.replacement:
            atom_ids: list[AtomId] = []
            for element in template.elements:
                if isinstance(element, Variable):
                    bound = match.binding.get(element)
                    atom_ids.append(bound if bound is not None else fresh[element])
                else:
                    atom_ids.append(element)
            try:
                relation_id = graph.create_relation_with_metadata(atom_ids, template.metadata)
            except StructuralViolation as exc:
                return RewriteResult.failed(f"Failed to create replacement relation: {exc}")
            new_relations.append(relation_id)

        return RewriteResult.succeeded(new_atoms, new_relations, removed)


def apply_first_available_rule(
    graph: Hypergraph, rules: RuleSet
) -> tuple[Rule, RewriteResult] | None:
    """Apply the first match of the first rule (in rule order) that has one.

    Returns:
        The applied rule and its result, or None if no rule matches
    """
    with graph.batch():
        for rule in rules:
            match = find_first_match(rule.pattern, graph)
            if match is not None:
                return rule, apply_rule(graph, rule, match)
        return None
