"""Data quality rules.

Each rule compiles to one DuckDB SQL query that returns the violating rows;
an empty result means the rule passed. Rules read relations by model name,
so they run against persisted models (views or tables).

Generic rules (one relation, one column):
    - UniqueRule: no duplicated non-null key values
    - NotNullRule: no nulls
    - AcceptedValuesRule: non-null values belong to a fixed set
    - ValuesInRangeRule: numeric values within optional inclusive bounds
    - StringLengthBoundsRule: string lengths within optional inclusive bounds

Relational rules:
    - RelationshipsRule: every non-null foreign key has a parent row
    - AggregateReconciliationRule: child aggregate matches a stored parent value
    - StateConsistencyRule: terminal parents have no inconsistent children
    - ChronologicalOrderRule: date columns are non-decreasing across a row

Custom rules:
    - CustomSqlRule: any SELECT returning violating rows
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from enum import Enum
from typing import Any

from tpch_duck.exceptions import RuleConfigurationError
from tpch_duck.quality.bounds import (
    Bound,
    above_sql,
    below_sql,
    describe,
    literal_sql,
    to_bound,
)


class Severity(str, Enum):
    """Whether violations block promotion of the build."""

    ERROR = "error"
    WARN = "warn"


def sql_literal(value: Any) -> str:
    """Render a Python value as a DuckDB literal."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return repr(value)
    escaped = str(value).replace("'", "''")
    return f"'{escaped}'"


def _select_list(columns: Sequence[str]) -> str:
    return "".join(f"{column}, " for column in columns)


class Rule(ABC):
    """Base rule - compiles to a SQL query returning violating rows."""

    rule_type: str = "rule"

    def __init__(
        self,
        rule_id: str,
        severity: Severity | str = Severity.ERROR,
        description: str = "",
        key_columns: Sequence[str] = (),
    ):
        self.rule_id = rule_id
        self.severity = Severity(severity)
        self.description = description
        self.key_columns = tuple(key_columns)

    @property
    @abstractmethod
    def relations(self) -> list[str]:
        """Model names the rule reads."""

    @abstractmethod
    def get_sql(self) -> str:
        """Return the SQL query selecting violating rows."""

    def describe_violation(self, row: dict[str, Any]) -> str:
        """Human-readable description of one violating row."""
        return self.description or f"{self.rule_type} violated"

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.rule_id!r}, severity={self.severity.value!r})"


class ColumnRule(Rule):
    """Rule over a single column of a single model."""

    def __init__(
        self,
        model: str,
        column: str,
        rule_id: str | None = None,
        severity: Severity | str = Severity.ERROR,
        description: str = "",
        key_columns: Sequence[str] = (),
    ):
        self.model = model
        self.column = column
        super().__init__(
            rule_id or f"{self.rule_type}_{model}_{column}",
            severity=severity,
            description=description,
            key_columns=key_columns,
        )

    @property
    def relations(self) -> list[str]:
        return [self.model]


class UniqueRule(ColumnRule):
    """One violation group per duplicated non-null value."""

    rule_type = "unique"

    def __init__(self, model: str, column: str, **kwargs: Any):
        super().__init__(model, column, **kwargs)
        self.key_columns = ("unique_field",)

    def get_sql(self) -> str:
        return f"""
            SELECT
                {self.column} AS unique_field,
                count(*) AS n_records
            FROM {self.model}
            WHERE {self.column} IS NOT NULL
            GROUP BY {self.column}
            HAVING count(*) > 1
        """

    def describe_violation(self, row: dict[str, Any]) -> str:
        return f"{self.column}={row['unique_field']!r} appears {row['n_records']} times"


class NotNullRule(ColumnRule):
    rule_type = "not_null"

    def get_sql(self) -> str:
        return f"""
            SELECT {_select_list(self.key_columns)}{self.column}
            FROM {self.model}
            WHERE {self.column} IS NULL
        """

    def describe_violation(self, row: dict[str, Any]) -> str:
        return f"{self.column} is null"


class AcceptedValuesRule(ColumnRule):
    """Non-null values outside ``values``, grouped by value."""

    rule_type = "accepted_values"

    def __init__(self, model: str, column: str, values: Sequence[Any], **kwargs: Any):
        if not values:
            raise RuleConfigurationError("accepted_values requires a non-empty 'values' list")
        self.values = list(values)
        super().__init__(model, column, **kwargs)
        self.key_columns = ("value_field",)

    def get_sql(self) -> str:
        accepted = ", ".join(sql_literal(value) for value in self.values)
        return f"""
            SELECT
                {self.column} AS value_field,
                count(*) AS n_records
            FROM {self.model}
            WHERE {self.column} IS NOT NULL
              AND {self.column} NOT IN ({accepted})
            GROUP BY {self.column}
        """

    def describe_violation(self, row: dict[str, Any]) -> str:
        return (
            f"{self.column}={row['value_field']!r} ({row['n_records']} rows) "
            f"not in {self.values}"
        )


class ValuesInRangeRule(ColumnRule):
    """Numeric values outside ``[min_value, max_value]``; either bound may be open."""

    rule_type = "values_in_range"

    def __init__(
        self,
        model: str,
        column: str,
        min_value: Bound | int | float | None = None,
        max_value: Bound | int | float | None = None,
        **kwargs: Any,
    ):
        try:
            self.min_value = to_bound(min_value)
            self.max_value = to_bound(max_value)
        except TypeError as e:
            raise RuleConfigurationError(str(e)) from e
        super().__init__(model, column, **kwargs)

    def get_sql(self) -> str:
        return f"""
            WITH validation AS (
                SELECT
                    {_select_list(self.key_columns)}{self.column} AS value,
                    {below_sql(self.min_value, self.column)} AS below_min,
                    {above_sql(self.max_value, self.column)} AS above_max
                FROM {self.model}
                WHERE {self.column} IS NOT NULL
            )
            SELECT
                *,
                CASE WHEN below_min THEN 'Below minimum' ELSE 'Above maximum' END
                    AS violation_type
            FROM validation
            WHERE below_min OR above_max
        """

    def describe_violation(self, row: dict[str, Any]) -> str:
        interval = describe(self.min_value, self.max_value)
        return f"{row['violation_type']}: {self.column}={row['value']} outside {interval}"


class StringLengthBoundsRule(ColumnRule):
    """String values whose character length is outside ``[min_length, max_length]``."""

    rule_type = "string_length_bounds"

    def __init__(
        self,
        model: str,
        column: str,
        min_length: Bound | int | None = None,
        max_length: Bound | int | None = None,
        **kwargs: Any,
    ):
        try:
            self.min_length = to_bound(min_length)
            self.max_length = to_bound(max_length)
        except TypeError as e:
            raise RuleConfigurationError(str(e)) from e
        super().__init__(model, column, **kwargs)

    def get_sql(self) -> str:
        length = f"length({self.column})"
        return f"""
            WITH validation AS (
                SELECT
                    {_select_list(self.key_columns)}{self.column} AS value,
                    {length} AS actual_length,
                    {below_sql(self.min_length, length)} AS too_short,
                    {above_sql(self.max_length, length)} AS too_long
                FROM {self.model}
                WHERE {self.column} IS NOT NULL
            )
            SELECT
                {_select_list(self.key_columns)}value,
                actual_length,
                {literal_sql(self.min_length)} AS min_allowed,
                {literal_sql(self.max_length)} AS max_allowed,
                CASE
                    WHEN too_short THEN 'String too short'
                    WHEN too_long THEN 'String too long'
                END AS violation_type
            FROM validation
            WHERE too_short OR too_long
        """

    def describe_violation(self, row: dict[str, Any]) -> str:
        interval = describe(self.min_length, self.max_length)
        return f"{row['violation_type']}: length {row['actual_length']} outside {interval}"


class RelationshipsRule(ColumnRule):
    """Child rows whose non-null foreign key has no matching parent ("orphans")."""

    rule_type = "relationships"

    def __init__(self, model: str, column: str, to: str, field: str, **kwargs: Any):
        self.to = to
        self.field = field
        kwargs.setdefault("rule_id", f"relationships_{model}_{column}__{field}__{to}")
        super().__init__(model, column, **kwargs)

    @property
    def relations(self) -> list[str]:
        return [self.model, self.to]

    def get_sql(self) -> str:
        keys = "".join(f"child.{column}, " for column in self.key_columns)
        return f"""
            SELECT {keys}child.{self.column} AS from_field
            FROM {self.model} AS child
            WHERE child.{self.column} IS NOT NULL
              AND NOT EXISTS (
                  SELECT 1
                  FROM {self.to} AS parent
                  WHERE parent.{self.field} = child.{self.column}
              )
        """

    def describe_violation(self, row: dict[str, Any]) -> str:
        return f"{self.column}={row['from_field']!r} has no match in {self.to}.{self.field}"


class AggregateReconciliationRule(Rule):
    """A child aggregate must match a stored parent value within a relative tolerance.

    Violations: ``|stored - aggregate| / |stored| > tolerance`` (so a difference of
    exactly ``tolerance`` passes), no child rows at all for the parent, or a
    stored value of zero with any non-zero difference (the relative difference
    is undefined there). A null stored value is not compared.
    """

    rule_type = "aggregate_reconciliation"

    def __init__(
        self,
        parent_model: str,
        parent_key: str,
        parent_value: str,
        child_model: str,
        child_key: str,
        child_expression: str,
        tolerance: float = 0.01,
        aggregate: str = "sum",
        rule_id: str | None = None,
        severity: Severity | str = Severity.ERROR,
        description: str = "",
    ):
        if tolerance < 0:
            raise RuleConfigurationError(f"tolerance must not be negative, got: {tolerance}")
        self.parent_model = parent_model
        self.parent_key = parent_key
        self.parent_value = parent_value
        self.child_model = child_model
        self.child_key = child_key
        self.child_expression = child_expression
        self.tolerance = float(tolerance)
        self.aggregate = aggregate
        super().__init__(
            rule_id or f"{self.rule_type}_{parent_model}_{parent_value}",
            severity=severity,
            description=description,
            key_columns=(parent_key,),
        )

    @property
    def relations(self) -> list[str]:
        return [self.parent_model, self.child_model]

    def get_sql(self) -> str:
        return f"""
            WITH parent_values AS (
                SELECT
                    {self.parent_key} AS parent_key,
                    CAST({self.parent_value} AS DOUBLE) AS stored_total
                FROM {self.parent_model}
            ),
            child_aggregates AS (
                SELECT
                    {self.child_key} AS parent_key,
                    CAST({self.aggregate}({self.child_expression}) AS DOUBLE) AS calculated_total
                FROM {self.child_model}
                GROUP BY {self.child_key}
            ),
            comparison AS (
                SELECT
                    p.parent_key AS {self.parent_key},
                    p.stored_total,
                    c.calculated_total,
                    abs(p.stored_total - c.calculated_total) AS difference,
                    abs(p.stored_total - c.calculated_total)
                        / nullif(abs(p.stored_total), 0) AS pct_difference
                FROM parent_values p
                LEFT JOIN child_aggregates c ON c.parent_key = p.parent_key
            )
            SELECT *
            FROM comparison
            WHERE pct_difference > CAST({self.tolerance!r} AS DOUBLE)
               OR calculated_total IS NULL
               OR (stored_total = 0 AND difference > 0)
        """

    def describe_violation(self, row: dict[str, Any]) -> str:
        if row.get("calculated_total") is None:
            return f"No {self.child_model} rows for {self.parent_key}={row[self.parent_key]!r}"
        if row.get("pct_difference") is None:
            return (
                f"{self.parent_value}=0 but calculated {row['calculated_total']} "
                f"(difference {row['difference']})"
            )
        return (
            f"{self.parent_value}={row['stored_total']} differs from calculated "
            f"{row['calculated_total']} by {row['pct_difference']:.2%} "
            f"(tolerance {self.tolerance:.2%})"
        )


class StateConsistencyRule(Rule):
    """Parents in a terminal state must not have children in an inconsistent state.

    Reports one row per parent key with the number of inconsistent children.
    """

    rule_type = "state_consistency"

    def __init__(
        self,
        parent_model: str,
        parent_key: str,
        parent_state_column: str,
        terminal_states: Sequence[Any],
        child_model: str,
        child_key: str,
        child_state_column: str,
        inconsistent_states: Sequence[Any],
        count_column: str = "inconsistent_child_count",
        issue_template: str = "Terminal parent has {count} inconsistent child rows",
        rule_id: str | None = None,
        severity: Severity | str = Severity.ERROR,
        description: str = "",
    ):
        if not terminal_states or not inconsistent_states:
            raise RuleConfigurationError(
                "state_consistency requires 'terminal_states' and 'inconsistent_states'"
            )
        if "{count}" not in issue_template:
            raise RuleConfigurationError("issue_template must contain '{count}'")
        self.parent_model = parent_model
        self.parent_key = parent_key
        self.parent_state_column = parent_state_column
        self.terminal_states = list(terminal_states)
        self.child_model = child_model
        self.child_key = child_key
        self.child_state_column = child_state_column
        self.inconsistent_states = list(inconsistent_states)
        self.count_column = count_column
        self.issue_template = issue_template
        super().__init__(
            rule_id or f"{self.rule_type}_{parent_model}_{child_model}",
            severity=severity,
            description=description,
            key_columns=(parent_key,),
        )

    @property
    def relations(self) -> list[str]:
        return [self.parent_model, self.child_model]

    def get_sql(self) -> str:
        terminal = ", ".join(sql_literal(value) for value in self.terminal_states)
        inconsistent = ", ".join(sql_literal(value) for value in self.inconsistent_states)
        prefix, _, suffix = self.issue_template.partition("{count}")
        return f"""
            SELECT
                p.{self.parent_key} AS {self.parent_key},
                count(*) AS {self.count_column},
                {sql_literal(prefix)} || CAST(count(*) AS VARCHAR) || {sql_literal(suffix)}
                    AS issue_description
            FROM {self.parent_model} AS p
            JOIN {self.child_model} AS c ON c.{self.child_key} = p.{self.parent_key}
            WHERE p.{self.parent_state_column} IN ({terminal})
              AND c.{self.child_state_column} IN ({inconsistent})
            GROUP BY p.{self.parent_key}
        """

    def describe_violation(self, row: dict[str, Any]) -> str:
        return str(row["issue_description"])


def _column_label(column: str) -> str:
    return column.removesuffix("_date").removesuffix("_at").replace("_", " ")


class ChronologicalOrderRule(Rule):
    """Columns must be non-decreasing in the given order across each row.

    Every out-of-order adjacent pair ``(a, b)`` with ``b < a`` is its own
    violation, typed ``"<B> before <a>"`` (e.g. "Ship before commit"). Pairs
    with a null side are skipped.
    """

    rule_type = "chronological_order"

    def __init__(
        self,
        model: str,
        columns: Sequence[str],
        key_columns: Sequence[str] = (),
        rule_id: str | None = None,
        severity: Severity | str = Severity.WARN,
        description: str = "",
    ):
        if len(columns) < 2:
            raise RuleConfigurationError("chronological_order requires at least two columns")
        self.model = model
        self.columns = list(columns)
        super().__init__(
            rule_id or f"{self.rule_type}_{model}_{'_'.join(self.columns)}",
            severity=severity,
            description=description,
            key_columns=key_columns,
        )

    @property
    def relations(self) -> list[str]:
        return [self.model]

    @staticmethod
    def violation_type(earlier: str, later: str) -> str:
        return f"{_column_label(later).capitalize()} before {_column_label(earlier)}"

    def get_sql(self) -> str:
        selected = _select_list(self.key_columns) + ", ".join(self.columns)
        branches = [
            f"""
            SELECT {selected}, {sql_literal(self.violation_type(earlier, later))} AS violation_type
            FROM {self.model}
            WHERE {earlier} IS NOT NULL
              AND {later} IS NOT NULL
              AND {later} < {earlier}
            """
            for earlier, later in zip(self.columns, self.columns[1:])
        ]
        return "\nUNION ALL\n".join(branches)

    def describe_violation(self, row: dict[str, Any]) -> str:
        return str(row["violation_type"])


class CustomSqlRule(Rule):
    """Any SELECT statement returning violating rows."""

    rule_type = "custom_sql"

    def __init__(
        self,
        rule_id: str,
        sql: str,
        relations: Sequence[str] = (),
        severity: Severity | str = Severity.ERROR,
        description: str = "",
        key_columns: Sequence[str] = (),
    ):
        self.sql = sql
        self._relations = list(relations)
        super().__init__(rule_id, severity=severity, description=description, key_columns=key_columns)

    @property
    def relations(self) -> list[str]:
        return list(self._relations)

    def get_sql(self) -> str:
        return self.sql


RULE_TYPES: dict[str, type[Rule]] = {
    cls.rule_type: cls
    for cls in (
        UniqueRule,
        NotNullRule,
        AcceptedValuesRule,
        ValuesInRangeRule,
        StringLengthBoundsRule,
        RelationshipsRule,
        AggregateReconciliationRule,
        StateConsistencyRule,
        ChronologicalOrderRule,
        CustomSqlRule,
    )
}


def rule_from_config(config: dict[str, Any]) -> Rule:
    """Build a rule from a declarative mapping.

    Example:
        >>> rule_from_config({
        ...     "type": "values_in_range",
        ...     "model": "stg_tpch__customer",
        ...     "column": "nation_key",
        ...     "min_value": 0,
        ...     "max_value": 24,
        ... })

    Raises:
        RuleConfigurationError: If the type is unknown or parameters are invalid
    """
    params = dict(config)
    rule_type = params.pop("type", None)
    rule_cls = RULE_TYPES.get(rule_type)  # type: ignore[arg-type]
    if rule_cls is None:
        raise RuleConfigurationError(
            f"Unknown rule type: {rule_type!r}. Available: {sorted(RULE_TYPES)}"
        )
    if "severity" in params:
        try:
            params["severity"] = Severity(params["severity"])
        except ValueError as e:
            raise RuleConfigurationError(
                f"Invalid severity {params['severity']!r}, expected 'error' or 'warn'"
            ) from e
    if "id" in params:
        params["rule_id"] = params.pop("id")

    try:
        return rule_cls(**params)
    except TypeError as e:
        raise RuleConfigurationError(f"Invalid parameters for {rule_type} rule: {e}") from e
