"""hyperevolve: Wolfram-style hypergraph rewriting with a live, cancellable simulation service."""

__version__ = "0.1.0"

from hyperevolve.engine import (
    Hypergraph,
    HypergraphState,
    Pattern,
    Rule,
    RuleSet,
    SimulationManager,
    StructuralViolation,
)
from hyperevolve.service import SimulationService

__all__ = [
    "Hypergraph",
    "HypergraphState",
    "Pattern",
    "Rule",
    "RuleSet",
    "SimulationManager",
    "SimulationService",
    "StructuralViolation",
    "__version__",
]
