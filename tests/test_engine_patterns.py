"""Tests for the pattern, binding and rule data model."""

import pytest

from hyperevolve.engine.patterns import (
    Binding,
    Pattern,
    PatternRelation,
    Rule,
    RuleSet,
    Variable,
)

X, Y, Z = Variable("x"), Variable("y"), Variable("z")


class TestVariable:
    def test_equality_by_name(self):
        assert Variable("x") == Variable("x")
        assert Variable("x") != Variable("y")
        assert len({Variable("x"), Variable("x")}) == 1

    def test_empty_name_rejected(self):
        with pytest.raises(ValueError):
            Variable("")


class TestBinding:
    """Tests for Binding consistency."""

    def test_bind_new_variable(self):
        binding = Binding()
        assert binding.bind(X, 1)
        assert binding.get(X) == 1
        assert binding.is_bound(X)
        assert len(binding) == 1

    def test_rebind_same_atom_is_noop(self):
        binding = Binding()
        binding.bind(X, 1)
        assert binding.bind(X, 1)
        assert len(binding) == 1

    def test_rebind_different_atom_fails_unchanged(self):
        binding = Binding()
        binding.bind(X, 1)
        assert not binding.bind(X, 2)
        assert binding.get(X) == 1

    def test_unbound_lookup(self):
        binding = Binding()
        assert binding.get(Y) is None
        assert not binding.is_bound(Y)

    def test_merge_disjoint(self):
        left = Binding({X: 1})
        right = Binding({Y: 2})
        merged = left.merge(right)
        assert merged.as_dict() == {"x": 1, "y": 2}
        assert len(left) == 1

    def test_merge_agreeing_overlap(self):
        merged = Binding({X: 1, Y: 2}).merge(Binding({Y: 2, Z: 3}))
        assert merged.as_dict() == {"x": 1, "y": 2, "z": 3}

    def test_merge_conflict_returns_none(self):
        left = Binding({X: 1})
        assert left.merge(Binding({Z: 5, X: 2})) is None
        assert left.as_dict() == {"x": 1}

    def test_copy_is_independent(self):
        original = Binding({X: 1})
        clone = original.copy()
        clone.bind(Y, 2)
        assert not original.is_bound(Y)

    def test_clear_and_iteration(self):
        binding = Binding({X: 1, Y: 2})
        assert set(binding) == {X, Y}
        assert dict(binding.items()) == {X: 1, Y: 2}
        binding.clear()
        assert len(binding) == 0


class TestPatterns:
    def test_shorthand_elements(self):
        relation = PatternRelation(["x", 3, Variable("y")])
        assert relation.elements == [X, 3, Y]
        assert relation.arity == 3

    def test_invalid_element_rejected(self):
        with pytest.raises(TypeError):
            PatternRelation([1.5])

    def test_relation_variables_first_occurrence(self):
        assert PatternRelation(["y", "x", "y"]).variables() == [Y, X]

    def test_from_elements_single_relation(self):
        pattern = Pattern.from_elements(["x", "y"])
        assert len(pattern) == 1
        assert pattern.relations[0].elements == [X, Y]

    def test_of_and_variables(self):
        pattern = Pattern.of([["x", "y"], ["y", "z"], [0, "x"]])
        assert len(pattern) == 3
        assert pattern.variables() == [X, Y, Z]

    def test_add_relation(self):
        pattern = Pattern()
        assert pattern.is_empty()
        pattern.add_relation(PatternRelation(["x"], metadata="tag"))
        assert not pattern.is_empty()
        assert pattern.relations[0].metadata == "tag"


class TestRules:
    def test_edge_splitting_rule(self):
        rule = Rule.edge_splitting()
        assert rule.id == 0
        assert rule.name == "Edge Splitting Rule {{x,y}} -> {{x,z},{z,y}}"
        assert [r.elements for r in rule.pattern] == [[X, Y]]
        assert [r.elements for r in rule.replacement] == [[X, Z], [Z, Y]]
        assert rule.fresh_variables() == [Z]

    def test_rule_str_falls_back_to_id(self):
        assert str(Rule(4, Pattern(), Pattern())) == "Rule 4"

    def test_basic_ruleset(self):
        rules = RuleSet.basic()
        assert len(rules) == 1
        assert rules.get_rule(0).name.startswith("Edge Splitting")

    def test_ruleset_order_and_lookup(self):
        first = Rule(5, Pattern.of([["x"]]), Pattern())
        second = Rule(2, Pattern.of([["x", "y"]]), Pattern())
        rules = RuleSet([first, second])
        assert [r.id for r in rules] == [5, 2]
        assert rules.get_rule(2) is second
        assert rules.get_rule(9) is None

    def test_ruleset_rejects_duplicate_id(self):
        rules = RuleSet.basic()
        with pytest.raises(ValueError, match="already present"):
            rules.add_rule(Rule.edge_splitting())
