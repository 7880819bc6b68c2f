from hyperevolve.engine.core import (
    Atom,
    AtomId,
    Hypergraph,
    Relation,
    RelationId,
    StructuralViolation,
)
from hyperevolve.engine.matching import Match, find_first_match, find_pattern_matches
from hyperevolve.engine.patterns import (
    Binding,
    Pattern,
    PatternElement,
    PatternRelation,
    Rule,
    RuleId,
    RuleSet,
    Variable,
)
from hyperevolve.engine.persistence import (
    InvalidPathError,
    InvalidSnapshotError,
    PersistenceError,
    PersistenceIOError,
    PersistenceManager,
    SaveConfig,
    SnapshotExistsError,
    SnapshotNotFoundError,
)
from hyperevolve.engine.rewriter import RewriteResult, apply_first_available_rule, apply_rule
from hyperevolve.engine.simulation import (
    ContinuousRunResult,
    ContinuousSimulationConfig,
    SimulationManager,
    SimulationStatus,
    StepResult,
    StopReason,
)
from hyperevolve.engine.state import HypergraphState, SimulationEvent

__all__ = [
    "Atom",
    "AtomId",
    "Relation",
    "RelationId",
    "Hypergraph",
    "StructuralViolation",
    "Variable",
    "Binding",
    "PatternElement",
    "PatternRelation",
    "Pattern",
    "Rule",
    "RuleId",
    "RuleSet",
    "Match",
    "find_pattern_matches",
    "find_first_match",
    "RewriteResult",
    "apply_rule",
    "apply_first_available_rule",
    "HypergraphState",
    "SimulationEvent",
    "SimulationManager",
    "SimulationStatus",
    "StepResult",
    "StopReason",
    "ContinuousSimulationConfig",
    "ContinuousRunResult",
    "PersistenceManager",
    "SaveConfig",
    "PersistenceError",
    "PersistenceIOError",
    "InvalidPathError",
    "SnapshotExistsError",
    "SnapshotNotFoundError",
    "InvalidSnapshotError",
]
