"""Data quality test engine: rules, bounds and evaluation."""

from tpch_duck.quality.bounds import UNBOUNDED, Bound, Inclusive, Unbounded, to_bound
from tpch_duck.quality.engine import (
    RuleResult,
    RuleStatus,
    RunStatus,
    TestRunSummary,
    Violation,
    evaluate_rule,
    run_rules,
)
from tpch_duck.quality.rules import (
    RULE_TYPES,
    AcceptedValuesRule,
    AggregateReconciliationRule,
    ChronologicalOrderRule,
    CustomSqlRule,
    NotNullRule,
    RelationshipsRule,
    Rule,
    Severity,
    StateConsistencyRule,
    StringLengthBoundsRule,
    UniqueRule,
    ValuesInRangeRule,
    rule_from_config,
)

__all__ = [
    # Bounds
    "Bound",
    "Inclusive",
    "Unbounded",
    "UNBOUNDED",
    "to_bound",
    # Rules
    "Rule",
    "Severity",
    "UniqueRule",
    "NotNullRule",
    "AcceptedValuesRule",
    "ValuesInRangeRule",
    "StringLengthBoundsRule",
    "RelationshipsRule",
    "AggregateReconciliationRule",
    "StateConsistencyRule",
    "ChronologicalOrderRule",
    "CustomSqlRule",
    "RULE_TYPES",
    "rule_from_config",
    # Engine
    "RuleResult",
    "RuleStatus",
    "RunStatus",
    "TestRunSummary",
    "Violation",
    "evaluate_rule",
    "run_rules",
]
