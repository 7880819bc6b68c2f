"""Pattern, binding and rule data model.

A pattern is an ordered list of pattern relations. Each element of a pattern
relation is either a concrete AtomId, which matches only that atom, or a
Variable, which matches any atom consistently across the whole pattern.

    >>> rule = Rule.edge_splitting()
    >>> rule.pattern
    Pattern([PatternRelation(['x', 'y'])])
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass, field
from typing import Union

from .core import AtomId

RuleId = int


@dataclass(frozen=True)
class Variable:
    """A named placeholder; two variables are equal when their names are."""

    name: str

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name:
            raise ValueError(f"Variable name must be a non-empty string, got: {self.name!r}")

    def __repr__(self) -> str:
        return repr(self.name)


PatternElement = Union[AtomId, Variable]


def _to_element(value: object) -> PatternElement:
    """Coerce shorthand into a pattern element: str -> Variable, int -> atom."""
    if isinstance(value, Variable):
        return value
    if isinstance(value, str):
        return Variable(value)
    if isinstance(value, int) and not isinstance(value, bool) and value >= 0:
        return value
    raise TypeError(f"Pattern element must be a Variable, str or atom id, got: {value!r}")


class Binding:
    """Partial, single-valued assignment of variables to atoms."""

    def __init__(self, assignments: dict[Variable, AtomId] | None = None) -> None:
        self._map: dict[Variable, AtomId] = dict(assignments or {})

    def bind(self, variable: Variable, atom_id: AtomId) -> bool:
        """Bind a variable to an atom.

        Rebinding a variable to the atom it already holds is a no-op success.

        Returns:
            False if the variable is bound to a different atom; the binding
            is left unchanged in that case
        """
        current = self._map.get(variable)
        if current is None:
            self._map[variable] = atom_id
            return True
        return current == atom_id

    def get(self, variable: Variable) -> AtomId | None:
        return self._map.get(variable)

    def is_bound(self, variable: Variable) -> bool:
        return variable in self._map

    def merge(self, other: Binding) -> Binding | None:
        """Combine two bindings into a new one.

        Returns:
            The union, or None if any shared variable disagrees
        """
        merged = self.copy()
        for variable, atom_id in other.items():
            if not merged.bind(variable, atom_id):
                return None
        return merged

    def copy(self) -> Binding:
        return Binding(self._map)

    def clear(self) -> None:
        self._map.clear()

    def items(self) -> Iterator[tuple[Variable, AtomId]]:
        return iter(self._map.items())

    def as_dict(self) -> dict[str, AtomId]:
        return {variable.name: atom_id for variable, atom_id in self._map.items()}

    def __len__(self) -> int:
        return len(self._map)

    def __iter__(self) -> Iterator[Variable]:
        return iter(self._map)

    def __contains__(self, variable: object) -> bool:
        return variable in self._map

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Binding):
            return NotImplemented
        return self._map == other._map

    def __repr__(self) -> str:
        return f"Binding({self.as_dict()!r})"


@dataclass
class PatternRelation:
    """One relation template inside a pattern."""

    elements: list[PatternElement] = field(default_factory=list)
    metadata: str | None = None

    def __post_init__(self) -> None:
        self.elements = [_to_element(e) for e in self.elements]

    @property
    def arity(self) -> int:
        return len(self.elements)

    def variables(self) -> list[Variable]:
        """Distinct variables in order of first occurrence."""
        seen: list[Variable] = []
        for element in self.elements:
            if isinstance(element, Variable) and element not in seen:
                seen.append(element)
        return seen

    def __repr__(self) -> str:
        return f"PatternRelation({self.elements!r})"


@dataclass
class Pattern:
    """Ordered list of pattern relations."""

    relations: list[PatternRelation] = field(default_factory=list)

    @classmethod
    def from_elements(cls, elements: Sequence[object]) -> Pattern:
        """Build a single-relation pattern."""
        return cls([PatternRelation(list(elements))])

    @classmethod
    def of(cls, relations: Iterable[Sequence[object]]) -> Pattern:
        """Build a pattern from nested shorthand.

        Strings become variables and ints become concrete atoms:
            Pattern.of([["x", "y"], ["y", 3]])
        """
        return cls([PatternRelation(list(elements)) for elements in relations])

    def add_relation(self, relation: PatternRelation) -> None:
        self.relations.append(relation)

    def is_empty(self) -> bool:
        return not self.relations

    def variables(self) -> list[Variable]:
        """Distinct variables across all relations, in order of first occurrence."""
        seen: list[Variable] = []
        for relation in self.relations:
            for variable in relation.variables():
                if variable not in seen:
                    seen.append(variable)
        return seen

    def __len__(self) -> int:
        return len(self.relations)

    def __iter__(self) -> Iterator[PatternRelation]:
        return iter(self.relations)

    def __repr__(self) -> str:
        return f"Pattern({self.relations!r})"


@dataclass
class Rule:
    """A rewrite rule: replace one embedding of pattern with replacement.

    Variables that occur in the replacement but not in the pattern denote
    atoms created fresh on every application.
    """

    id: RuleId
    pattern: Pattern
    replacement: Pattern
    name: str | None = None

    @classmethod
    def edge_splitting(cls) -> Rule:
        """The reference rule {{x,y}} -> {{x,z},{z,y}}."""
        return cls(
            id=0,
            pattern=Pattern.of([["x", "y"]]),
            replacement=Pattern.of([["x", "z"], ["z", "y"]]),
            name="Edge Splitting Rule {{x,y}} -> {{x,z},{z,y}}",
        )

    def fresh_variables(self) -> list[Variable]:
        """Replacement variables absent from the pattern."""
        bound = set(self.pattern.variables())
        return [v for v in self.replacement.variables() if v not in bound]

    def __str__(self) -> str:
        return self.name or f"Rule {self.id}"


class RuleSet:
    """Ordered collection of rules; iteration order is trial priority."""

    def __init__(self, rules: Iterable[Rule] = ()) -> None:
        self._rules: list[Rule] = []
        for rule in rules:
            self.add_rule(rule)

    @classmethod
    def basic(cls) -> RuleSet:
        """Rule set containing only the edge-splitting rule."""
        return cls([Rule.edge_splitting()])

    def add_rule(self, rule: Rule) -> None:
        """Append a rule.

        Raises:
            ValueError: If a rule with the same id is already present
        """
        if self.get_rule(rule.id) is not None:
            raise ValueError(f"Rule id {rule.id} already present in rule set")
        self._rules.append(rule)

    def get_rule(self, rule_id: RuleId) -> Rule | None:
        for rule in self._rules:
            if rule.id == rule_id:
                return rule
        return None

    def is_empty(self) -> bool:
        return not self._rules

    def __len__(self) -> int:
        return len(self._rules)

    def __iter__(self) -> Iterator[Rule]:
        return iter(self._rules)
