"""Tests for data quality rules and the test-run status."""

import duckdb
import pytest

from conftest import D, insert_lineitems
from tpch_duck.exceptions import RuleConfigurationError
from tpch_duck.quality import (
    UNBOUNDED,
    AcceptedValuesRule,
    AggregateReconciliationRule,
    ChronologicalOrderRule,
    CustomSqlRule,
    Inclusive,
    NotNullRule,
    RelationshipsRule,
    RuleStatus,
    RunStatus,
    Severity,
    StateConsistencyRule,
    StringLengthBoundsRule,
    UniqueRule,
    ValuesInRangeRule,
    evaluate_rule,
    rule_from_config,
    run_rules,
)
from tpch_duck.runner import ProjectRunner


@pytest.fixture
def conn(empty_conn: duckdb.DuckDBPyConnection) -> duckdb.DuckDBPyConnection:
    empty_conn.execute("CREATE TABLE parent (id INTEGER, label VARCHAR)")
    empty_conn.execute("INSERT INTO parent VALUES (10, 'a'), (10, 'a-again'), (20, 'b')")
    empty_conn.execute("CREATE TABLE child (id INTEGER, parent_id INTEGER)")
    empty_conn.execute("INSERT INTO child VALUES (1, 10), (2, 99), (3, 20), (4, NULL), (5, 10)")
    return empty_conn


class TestUniqueRule:
    """Tests for uniqueness grouping."""

    def test_one_group_per_duplicated_value(self, conn: duckdb.DuckDBPyConnection) -> None:
        conn.execute("CREATE TABLE t AS SELECT * FROM (VALUES (1), (1), (1), (2), (NULL), (NULL)) v(k)")
        result = evaluate_rule(conn, UniqueRule("t", "k"))

        assert result.status is RuleStatus.FAIL
        assert result.violations.to_dicts() == [{"unique_field": 1, "n_records": 3}]

    def test_default_rule_id(self) -> None:
        assert UniqueRule("stg_tpch__orders", "order_key").rule_id == (
            "unique_stg_tpch__orders_order_key"
        )

    def test_passes_on_distinct_values(self, conn: duckdb.DuckDBPyConnection) -> None:
        result = evaluate_rule(conn, UniqueRule("child", "id"))
        assert result.status is RuleStatus.PASS
        assert result.failures == 0


class TestNotNullAndAcceptedValues:
    """Tests for not_null and accepted_values."""

    def test_not_null(self, conn: duckdb.DuckDBPyConnection) -> None:
        result = evaluate_rule(conn, NotNullRule("child", "parent_id", key_columns=["id"]))

        assert result.failures == 1
        assert result.violation_records()[0].keys == {"id": 4}

    def test_accepted_values_groups_by_value(self, conn: duckdb.DuckDBPyConnection) -> None:
        conn.execute("CREATE TABLE s AS SELECT * FROM (VALUES ('O'), ('F'), ('X'), ('X'), (NULL)) v(status)")
        result = evaluate_rule(conn, AcceptedValuesRule("s", "status", values=["O", "F", "P"]))

        assert result.violations.to_dicts() == [{"value_field": "X", "n_records": 2}]

    def test_accepted_values_requires_values(self) -> None:
        with pytest.raises(RuleConfigurationError):
            AcceptedValuesRule("s", "status", values=[])


class TestRelationshipsRule:
    """Tests for referential integrity."""

    def test_orphan_reported_once(self, conn: duckdb.DuckDBPyConnection) -> None:
        rule = RelationshipsRule("child", "parent_id", to="parent", field="id", key_columns=["id"])
        result = evaluate_rule(conn, rule)

        assert result.status is RuleStatus.FAIL
        assert result.violations.to_dicts() == [{"id": 2, "from_field": 99}]

    def test_rule_id_names_both_sides(self) -> None:
        rule = RelationshipsRule("child", "parent_id", to="parent", field="id")
        assert rule.rule_id == "relationships_child_parent_id__id__parent"
        assert rule.relations == ["child", "parent"]


class TestValuesInRangeRule:
    """Tests for inclusive optional range bounds."""

    @pytest.fixture
    def nations(self, conn: duckdb.DuckDBPyConnection) -> duckdb.DuckDBPyConnection:
        conn.execute("CREATE TABLE n AS SELECT * FROM (VALUES (-1), (0), (24), (25), (NULL)) v(nation_key)")
        return conn

    def test_bounds_are_inclusive(self, nations: duckdb.DuckDBPyConnection) -> None:
        rule = ValuesInRangeRule("n", "nation_key", min_value=0, max_value=24)
        rows = evaluate_rule(nations, rule).violations.sort("value").to_dicts()

        assert [(r["value"], r["violation_type"]) for r in rows] == [
            (-1, "Below minimum"),
            (25, "Above maximum"),
        ]
        assert rows[0]["below_min"] is True
        assert rows[1]["above_max"] is True

    def test_unbounded_side(self, nations: duckdb.DuckDBPyConnection) -> None:
        rule = ValuesInRangeRule("n", "nation_key", min_value=Inclusive(0), max_value=UNBOUNDED)
        rows = evaluate_rule(nations, rule).violations.to_dicts()

        assert [r["value"] for r in rows] == [-1]

    def test_non_numeric_bound_rejected(self) -> None:
        with pytest.raises(RuleConfigurationError):
            ValuesInRangeRule("n", "nation_key", min_value="zero")  # type: ignore[arg-type]


class TestStringLengthBoundsRule:
    """Tests for string length bounds."""

    def test_too_short_and_too_long(self, conn: duckdb.DuckDBPyConnection) -> None:
        conn.execute(
            "CREATE TABLE c AS SELECT * FROM (VALUES "
            "(1, '25-989-741-2988'), (2, '12345'), (3, '25-989-741-29881'), (4, NULL)) v(id, phone)"
        )
        rule = StringLengthBoundsRule("c", "phone", min_length=15, max_length=15, key_columns=["id"])
        rows = evaluate_rule(conn, rule).violations.sort("id").to_dicts()

        assert [(r["id"], r["actual_length"], r["violation_type"]) for r in rows] == [
            (2, 5, "String too short"),
            (3, 16, "String too long"),
        ]
        assert rows[0]["min_allowed"] == 15
        assert rows[0]["max_allowed"] == 15

    def test_unbounded_max_reported_as_null(self, conn: duckdb.DuckDBPyConnection) -> None:
        conn.execute("CREATE TABLE c2 AS SELECT * FROM (VALUES ('ab')) v(code)")
        rows = evaluate_rule(conn, StringLengthBoundsRule("c2", "code", min_length=3)).violations

        assert rows["max_allowed"].to_list() == [None]


class TestAggregateReconciliationRule:
    """Tests for the 1% tolerance boundary."""

    @pytest.fixture
    def totals(self, conn: duckdb.DuckDBPyConnection) -> duckdb.DuckDBPyConnection:
        conn.execute("CREATE TABLE o (order_key INTEGER, total_price DOUBLE)")
        conn.execute("INSERT INTO o VALUES (1, 100.0), (2, 100.0), (3, 100.0)")
        conn.execute("CREATE TABLE l (order_key INTEGER, amount DOUBLE)")
        # 1: exactly 1.0% off; 2: 1.01% off; 3: no lines at all
        conn.execute("INSERT INTO l VALUES (1, 60.0), (1, 41.0), (2, 60.0), (2, 41.01)")
        return conn

    def _rule(self) -> AggregateReconciliationRule:
        return AggregateReconciliationRule(
            parent_model="o",
            parent_key="order_key",
            parent_value="total_price",
            child_model="l",
            child_key="order_key",
            child_expression="amount",
        )

    def test_boundary_is_inclusive(self, totals: duckdb.DuckDBPyConnection) -> None:
        rows = evaluate_rule(totals, self._rule()).violations.sort("order_key").to_dicts()

        assert [r["order_key"] for r in rows] == [2, 3]
        assert rows[0]["pct_difference"] > 0.01
        assert rows[1]["calculated_total"] is None

    def test_zero_and_negative_totals_compared(self, conn: duckdb.DuckDBPyConnection) -> None:
        conn.execute("CREATE TABLE o (order_key INTEGER, total_price DOUBLE)")
        conn.execute("INSERT INTO o VALUES (1, 0.0), (2, 0.0), (3, -100.0), (4, -100.0)")
        conn.execute("CREATE TABLE l (order_key INTEGER, amount DOUBLE)")
        conn.execute("INSERT INTO l VALUES (1, 5.0), (2, 0.0), (3, -50.0), (4, -100.5)")

        result = evaluate_rule(conn, self._rule())
        rows = result.violations.sort("order_key").to_dicts()

        assert [r["order_key"] for r in rows] == [1, 3]
        assert rows[0]["pct_difference"] is None
        assert rows[1]["pct_difference"] == pytest.approx(0.5)
        descriptions = [v.description for v in result.violation_records()]
        assert any("total_price=0" in d for d in descriptions)

    def test_negative_tolerance_rejected(self) -> None:
        with pytest.raises(RuleConfigurationError):
            AggregateReconciliationRule("o", "k", "v", "l", "k", "x", tolerance=-0.1)


class TestStateConsistencyRule:
    """Tests for terminal parents with inconsistent children."""

    def test_one_row_per_parent_with_count(self, conn: duckdb.DuckDBPyConnection) -> None:
        conn.execute(
            "CREATE TABLE o AS SELECT * FROM (VALUES (1, 'F'), (2, 'F'), (3, 'O')) v(k, status)"
        )
        conn.execute(
            "CREATE TABLE l AS SELECT * FROM (VALUES "
            "(1, 'O'), (1, 'O'), (1, 'F'), (2, 'F'), (3, 'O')"
            ") v(k, line_status)"
        )
        rule = StateConsistencyRule(
            "o", "k", "status", ["F"], "l", "k", "line_status", ["O"],
            count_column="open_lines_count",
            issue_template="Fulfilled order has {count} open line items",
        )
        result = evaluate_rule(conn, rule)

        assert result.status is RuleStatus.FAIL
        assert result.violations.to_dicts() == [
            {
                "k": 1,
                "open_lines_count": 2,
                "issue_description": "Fulfilled order has 2 open line items",
            }
        ]
        [violation] = result.violation_records()
        assert violation.keys == {"k": 1}

    def test_template_needs_count(self) -> None:
        with pytest.raises(RuleConfigurationError):
            StateConsistencyRule(
                "o", "k", "s", ["F"], "l", "k", "s", ["O"], issue_template="no count"
            )


class TestChronologicalOrderRule:
    """Tests for per-pair date ordering violations."""

    def test_each_out_of_order_pair_is_a_violation(self, conn: duckdb.DuckDBPyConnection) -> None:
        conn.execute(
            "CREATE TABLE li AS SELECT * FROM (VALUES "
            "(1, DATE '2024-01-05', DATE '2024-01-03', DATE '2024-01-04'), "
            "(2, DATE '2024-01-01', DATE '2024-01-05', DATE '2024-01-02'), "
            "(3, DATE '2024-01-05', DATE '2024-01-03', DATE '2024-01-01'), "
            "(4, DATE '2024-01-01', NULL, DATE '2024-01-02')"
            ") v(id, commit_date, ship_date, receipt_date)"
        )
        rule = ChronologicalOrderRule(
            "li", ["commit_date", "ship_date", "receipt_date"], key_columns=["id"]
        )
        result = evaluate_rule(conn, rule)
        rows = sorted((r["id"], r["violation_type"]) for r in result.violations.to_dicts())

        assert rule.severity is Severity.WARN
        assert result.status is RuleStatus.WARN
        assert rows == [
            (1, "Ship before commit"),
            (2, "Receipt before ship"),
            (3, "Receipt before ship"),
            (3, "Ship before commit"),
        ]

    def test_needs_two_columns(self) -> None:
        with pytest.raises(RuleConfigurationError):
            ChronologicalOrderRule("li", ["ship_date"])


class TestRuleFromConfig:
    """Tests for building rules from mappings."""

    def test_builds_rule_with_severity(self) -> None:
        rule = rule_from_config(
            {
                "type": "values_in_range",
                "model": "stg_tpch__customer",
                "column": "nation_key",
                "min_value": 0,
                "max_value": 24,
                "severity": "warn",
            }
        )
        assert isinstance(rule, ValuesInRangeRule)
        assert rule.severity is Severity.WARN
        assert rule.rule_id == "values_in_range_stg_tpch__customer_nation_key"

    def test_explicit_id(self) -> None:
        rule = rule_from_config({"type": "not_null", "model": "m", "column": "c", "id": "my_rule"})
        assert rule.rule_id == "my_rule"

    def test_unknown_type(self) -> None:
        with pytest.raises(RuleConfigurationError, match="Unknown rule type"):
            rule_from_config({"type": "nope", "model": "m", "column": "c"})

    def test_bad_severity(self) -> None:
        with pytest.raises(RuleConfigurationError, match="severity"):
            rule_from_config({"type": "unique", "model": "m", "column": "c", "severity": "fatal"})

    def test_missing_parameter(self) -> None:
        with pytest.raises(RuleConfigurationError, match="relationships"):
            rule_from_config({"type": "relationships", "model": "m", "column": "c"})


class TestEvaluation:
    """Tests for rule execution failures and the run status."""

    def test_missing_relation_is_runtime_error(self, conn: duckdb.DuckDBPyConnection) -> None:
        result = evaluate_rule(conn, NotNullRule("missing_table", "id"))

        assert result.status is RuleStatus.RUNTIME_ERROR
        assert not result.executed
        assert result.failures == 0
        assert "missing_table" in result.message

    def test_runtime_error_does_not_stop_other_rules(self, conn: duckdb.DuckDBPyConnection) -> None:
        summary = run_rules(
            conn,
            [NotNullRule("missing_table", "id"), NotNullRule("child", "id")],
        )

        assert [r.status for r in summary.results] == [RuleStatus.RUNTIME_ERROR, RuleStatus.PASS]
        assert summary.status is RunStatus.PASS
        assert len(summary.runtime_errors) == 1

    def test_warn_violations_give_warn_status(self, conn: duckdb.DuckDBPyConnection) -> None:
        summary = run_rules(
            conn,
            [
                NotNullRule("child", "parent_id", severity="warn"),
                UniqueRule("child", "id"),
            ],
        )
        assert summary.status is RunStatus.WARN
        assert not summary.blocks_promotion

    def test_error_violations_give_error_status(self, conn: duckdb.DuckDBPyConnection) -> None:
        summary = run_rules(
            conn,
            [
                NotNullRule("child", "parent_id", severity="warn"),
                UniqueRule("parent", "id"),
            ],
        )
        assert summary.status is RunStatus.ERROR
        assert summary.blocks_promotion
        assert summary.counts()["fail"] == 1
        assert summary.counts()["warn"] == 1

    def test_custom_sql_rule(self, conn: duckdb.DuckDBPyConnection) -> None:
        rule = CustomSqlRule(
            "no_label_b", "SELECT id FROM parent WHERE label = 'b'", relations=["parent"]
        )
        assert evaluate_rule(conn, rule).failures == 1

    def test_statement_without_rows_is_runtime_error(
        self, conn: duckdb.DuckDBPyConnection
    ) -> None:
        rule = CustomSqlRule("not_a_query", "CREATE TABLE scratch (id INTEGER)")

        summary = run_rules(conn, [rule, NotNullRule("child", "id")])

        assert [r.status for r in summary.results] == [RuleStatus.RUNTIME_ERROR, RuleStatus.PASS]
        assert "expected a SELECT" in summary.results[0].message

    def test_summary_format_lists_every_rule(self, conn: duckdb.DuckDBPyConnection) -> None:
        summary = run_rules(conn, [UniqueRule("parent", "id"), NotNullRule("missing_table", "id")])
        text = summary.format()

        assert "unique_parent_id" in text
        assert "RUNTIME_ERROR" in text
        assert "Test run status: ERROR" in text


class TestOrderScenarios:
    """Business rules against the built TPC-H models."""

    def test_seed_data_passes_every_rule(self, built_runner: ProjectRunner) -> None:
        summary = built_runner.test_all()

        assert summary.status is RunStatus.PASS, summary.format()
        assert not summary.runtime_errors

    def test_order_total_within_tolerance(self, built_runner: ProjectRunner) -> None:
        conn = built_runner.conn
        conn.execute("UPDATE raw.lineitem SET l_extendedprice = 40.5 WHERE l_orderkey = 1 AND l_linenumber = 2")

        summary = built_runner.test_all(select=["assert_order_totals_match"])
        assert summary.get("assert_order_totals_match").status is RuleStatus.PASS

        # A third line pushes the sum to 102.00 (2% off)
        insert_lineitems(
            conn,
            [(1, 15, 105, 3, 1.0, 1.5, 0.0, 0.0, "N", "O",
              D("2024-01-13"), D("2024-01-12"), D("2024-01-15"), "NONE", "AIR", "f")],
        )
        result = built_runner.test_all(select=["assert_order_totals_match"]).get(
            "assert_order_totals_match"
        )

        assert result.status is RuleStatus.FAIL
        row = result.violations.to_dicts()[0]
        assert row["order_key"] == 1
        assert row["calculated_total"] == pytest.approx(102.0)
        assert row["pct_difference"] == pytest.approx(0.02)

    def test_fulfilled_order_with_open_line(self, built_runner: ProjectRunner) -> None:
        built_runner.conn.execute("UPDATE raw.lineitem SET l_linestatus = 'O' WHERE l_orderkey = 2")

        result = built_runner.test_all(
            select=["assert_fulfilled_orders_have_no_open_lines"]
        ).get("assert_fulfilled_orders_have_no_open_lines")

        assert result.status is RuleStatus.FAIL
        assert result.violations.to_dicts() == [
            {
                "order_key": 2,
                "open_lines_count": 1,
                "issue_description": "Fulfilled order has 1 open line items",
            }
        ]

    def test_ship_before_commit(self, built_runner: ProjectRunner) -> None:
        built_runner.conn.execute(
            "UPDATE raw.lineitem SET l_commitdate = DATE '2024-01-05', l_shipdate = DATE '2024-01-03' "
            "WHERE l_orderkey = 1 AND l_linenumber = 1"
        )

        summary = built_runner.test_all(select=["assert_lineitem_dates_logical"])
        result = summary.get("assert_lineitem_dates_logical")

        assert summary.status is RunStatus.WARN
        assert result.violations["violation_type"].to_list() == ["Ship before commit"]
        assert result.violation_records()[0].keys == {"order_key": 1, "line_number": 1}
