"""Data quality rules for the TPC-H models.

Generic column rules are declared as plain mappings (the same shape as a
dbt ``schema.yml`` test entry) and built with ``rule_from_config``. The
cross-table business rules are built directly.
"""

from tpch_duck.quality import (
    AggregateReconciliationRule,
    ChronologicalOrderRule,
    Rule,
    Severity,
    StateConsistencyRule,
    rule_from_config,
)

from . import constants

COLUMN_RULES: list[dict] = [
    # stg_tpch__orders
    {"type": "unique", "model": "stg_tpch__orders", "column": "order_key"},
    {"type": "not_null", "model": "stg_tpch__orders", "column": "order_key"},
    {
        "type": "accepted_values",
        "model": "stg_tpch__orders",
        "column": "order_status",
        "values": list(constants.ORDER_STATUSES),
    },
    {
        "type": "relationships",
        "model": "stg_tpch__orders",
        "column": "customer_key",
        "to": "stg_tpch__customer",
        "field": "customer_key",
        "key_columns": ["order_key"],
    },
    {
        "type": "values_in_range",
        "model": "stg_tpch__orders",
        "column": "total_price",
        "min_value": 0,
        "key_columns": ["order_key"],
    },
    # stg_tpch__customer
    {"type": "unique", "model": "stg_tpch__customer", "column": "customer_key"},
    {"type": "not_null", "model": "stg_tpch__customer", "column": "customer_key"},
    {
        "type": "values_in_range",
        "model": "stg_tpch__customer",
        "column": "nation_key",
        "min_value": constants.NATION_KEY_MIN,
        "max_value": constants.NATION_KEY_MAX,
        "key_columns": ["customer_key"],
    },
    {
        "type": "string_length_bounds",
        "model": "stg_tpch__customer",
        "column": "phone",
        "min_length": constants.PHONE_LENGTH,
        "max_length": constants.PHONE_LENGTH,
        "key_columns": ["customer_key"],
    },
    # stg_tpch__lineitem
    {
        "type": "relationships",
        "model": "stg_tpch__lineitem",
        "column": "order_key",
        "to": "stg_tpch__orders",
        "field": "order_key",
        "key_columns": ["order_key", "line_number"],
    },
    {
        "type": "accepted_values",
        "model": "stg_tpch__lineitem",
        "column": "line_status",
        "values": list(constants.LINE_STATUSES),
    },
    {
        "type": "values_in_range",
        "model": "stg_tpch__lineitem",
        "column": "discount",
        "min_value": 0,
        "max_value": 1,
        "key_columns": ["order_key", "line_number"],
    },
    {
        "type": "values_in_range",
        "model": "stg_tpch__lineitem",
        "column": "quantity",
        "min_value": 0,
        "key_columns": ["order_key", "line_number"],
    },
    # fct_tpch__orders
    {"type": "unique", "model": "fct_tpch__orders", "column": "order_key"},
    {"type": "not_null", "model": "fct_tpch__orders", "column": "order_key"},
    {
        "type": "accepted_values",
        "model": "fct_tpch__orders",
        "column": "order_size",
        "values": list(constants.ORDER_SIZES),
    },
    {
        "type": "accepted_values",
        "model": "fct_tpch__orders",
        "column": "priority_level",
        "values": list(constants.PRIORITY_LEVELS),
    },
    {
        "type": "accepted_values",
        "model": "fct_tpch__orders",
        "column": "fulfillment_status",
        "values": list(constants.FULFILLMENT_STATUSES),
    },
    # fct_tpch__lineitem
    {
        "type": "not_null",
        "model": "fct_tpch__lineitem",
        "column": "order_key",
        "key_columns": ["line_number"],
    },
]


def build_rules(reconciliation_tolerance: float = constants.RECONCILIATION_TOLERANCE) -> list[Rule]:
    """All project rules: column rules followed by the business rules."""
    rules = [rule_from_config(config) for config in COLUMN_RULES]
    rules += [
        AggregateReconciliationRule(
            rule_id="assert_order_totals_match",
            parent_model="fct_tpch__orders",
            parent_key="order_key",
            parent_value="total_price",
            child_model="stg_tpch__lineitem",
            child_key="order_key",
            child_expression="extended_price * (1 - discount) * (1 + tax)",
            tolerance=reconciliation_tolerance,
            severity=Severity.ERROR,
            description="Order total_price must equal the sum of its line items' final prices",
        ),
        StateConsistencyRule(
            rule_id="assert_fulfilled_orders_have_no_open_lines",
            parent_model="stg_tpch__orders",
            parent_key="order_key",
            parent_state_column="order_status",
            terminal_states=[constants.FULFILLED_ORDER_STATUS],
            child_model="stg_tpch__lineitem",
            child_key="order_key",
            child_state_column="line_status",
            inconsistent_states=[constants.OPEN_LINE_STATUS],
            count_column="open_lines_count",
            issue_template="Fulfilled order has {count} open line items",
            severity=Severity.ERROR,
        ),
        ChronologicalOrderRule(
            rule_id="assert_lineitem_dates_logical",
            model="stg_tpch__lineitem",
            columns=["commit_date", "ship_date", "receipt_date"],
            key_columns=["order_key", "line_number"],
            severity=Severity.WARN,
        ),
    ]
    return rules
