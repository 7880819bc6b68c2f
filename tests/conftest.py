"""Shared fixtures for hyperevolve tests."""

import pytest

from hyperevolve.engine import Hypergraph, Pattern, Rule, RuleSet
from hyperevolve.engine.examples import get_example
from hyperevolve.service import SimulationService


@pytest.fixture()
def graph():
    """Fresh empty Hypergraph."""
    return Hypergraph()


@pytest.fixture()
def single_edge_graph():
    """Hypergraph with atoms 0, 1 and the relation 0: (0, 1)."""
    return get_example("single_edge").to_hypergraph()


@pytest.fixture()
def triangle_graph():
    """Hypergraph with atoms 0, 1, 2 and relations (0,1), (1,2), (2,0) with ids 0, 1, 2."""
    return get_example("triangle").to_hypergraph()


@pytest.fixture()
def deleting_rules():
    """Rule set whose only rule {{x,y}} -> {} deletes one binary relation per step."""
    rule = Rule(id=7, pattern=Pattern.of([["x", "y"]]), replacement=Pattern(), name="delete")
    return RuleSet([rule])


@pytest.fixture()
def service(tmp_path):
    """SimulationService saving into a temporary directory, with no minimum step delay."""
    svc = SimulationService(save_directory=tmp_path / "saves", min_update_interval_ms=0)
    yield svc
    svc.stop()
