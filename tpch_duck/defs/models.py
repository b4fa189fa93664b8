"""TPC-H transformation models.

Model Graph
-----------
    source tpch.orders ──→ stg_tpch__orders ──→ int_orders_with_status ──→ int_orders_enriched ──→ fct_tpch__orders
    source tpch.lineitem ──→ stg_tpch__lineitem ──→ fct_tpch__lineitem
    source tpch.customer ──→ stg_tpch__customer
    source tpch.orders ──→ orders
    source tpch.customer ──→ customers_by_nation, customers_by_nation_view

Layers
------
- staging: views renaming TPC-H columns (o_orderkey -> order_key, ...)
- intermediate: ephemeral models deriving order categories, inlined into marts
- marts: incremental fact tables merged by unique key
- demo: one model per materialization
"""

from tpch_duck.base import Materialization, Model, ModelConfig

from .config import CONFIG
from .helpers import AssetGroups

# -----------------------------------------------------------------------------
# Staging
# -----------------------------------------------------------------------------

stg_tpch__orders = Model(
    name="stg_tpch__orders",
    description="TPC-H orders with readable column names.",
    group=AssetGroups.STAGING,
    config=ModelConfig(materialized=Materialization.VIEW),
    sql="""
select
    o_orderkey      as order_key,
    o_custkey       as customer_key,
    o_orderstatus   as order_status,
    o_totalprice    as total_price,
    o_orderdate     as order_date,
    o_orderpriority as order_priority,
    o_clerk         as clerk,
    o_shippriority  as ship_priority,
    _loaded_at      as loaded_at
from {{ source('tpch', 'orders') }}
""",
)

stg_tpch__lineitem = Model(
    name="stg_tpch__lineitem",
    description="TPC-H line items with readable column names.",
    group=AssetGroups.STAGING,
    config=ModelConfig(materialized=Materialization.VIEW),
    sql="""
select
    l_orderkey      as order_key,
    l_partkey       as part_key,
    l_suppkey       as supplier_key,
    l_linenumber    as line_number,
    l_quantity      as quantity,
    l_extendedprice as extended_price,
    l_discount      as discount,
    l_tax           as tax,
    l_returnflag    as return_flag,
    l_linestatus    as line_status,
    l_shipdate      as ship_date,
    l_commitdate    as commit_date,
    l_receiptdate   as receipt_date,
    l_shipinstruct  as ship_instructions,
    l_shipmode      as ship_mode,
    l_comment       as comment,
    _loaded_at      as loaded_at
from {{ source('tpch', 'lineitem') }}
""",
)

stg_tpch__customer = Model(
    name="stg_tpch__customer",
    description="TPC-H customers with readable column names.",
    group=AssetGroups.STAGING,
    config=ModelConfig(materialized=Materialization.VIEW),
    sql="""
select
    c_custkey    as customer_key,
    c_name       as name,
    c_address    as address,
    c_nationkey  as nation_key,
    c_phone      as phone,
    c_acctbal    as account_balance,
    c_mktsegment as market_segment,
    c_comment    as comment,
    _loaded_at   as loaded_at
from {{ source('tpch', 'customer') }}
""",
)

# -----------------------------------------------------------------------------
# Intermediate (ephemeral)
# -----------------------------------------------------------------------------

int_orders_with_status = Model(
    name="int_orders_with_status",
    description="Orders with status category and completion flag.",
    group=AssetGroups.INTERMEDIATE,
    config=ModelConfig(materialized=Materialization.EPHEMERAL),
    sql="""
select *,
    case
        when order_status = 'O' then 'Open'
        when order_status = 'F' then 'Fulfilled'
        when order_status = 'P' then 'Partial'
        else 'Unknown'
    end as status_category,

    case
        when order_status = 'O' then false
        when order_status = 'F' then true
        when order_status = 'P' then false
        else null
    end as is_completed
from {{ ref('stg_tpch__orders') }}
""",
)

int_orders_enriched = Model(
    name="int_orders_enriched",
    description="Orders with size bucket and priority level.",
    group=AssetGroups.INTERMEDIATE,
    config=ModelConfig(materialized=Materialization.EPHEMERAL),
    sql="""
select *,
    case
        when total_price < {{ var('order_size_small_max') }} then 'Small'
        when total_price < {{ var('order_size_medium_max') }} then 'Medium'
        when total_price < {{ var('order_size_large_max') }} then 'Large'
        else 'Very Large'
    end as order_size,

    case
        when order_priority in ('{{ var('high_priorities') | join("', '") }}') then 'High Priority'
        when order_priority in ('{{ var('medium_priorities') | join("', '") }}') then 'Medium Priority'
        else 'Low Priority'
    end as priority_level
from {{ ref('int_orders_with_status') }}
""",
)

# -----------------------------------------------------------------------------
# Marts (incremental)
# -----------------------------------------------------------------------------

fct_tpch__orders = Model(
    name="fct_tpch__orders",
    description="Order fact table with derived categories and fulfillment status.",
    group=AssetGroups.MARTS,
    config=ModelConfig(
        materialized=Materialization.INCREMENTAL,
        unique_key="order_key",
        date_column="order_date",
        lookback=CONFIG.lookback,
    ),
    sql="""
select
    order_key,
    customer_key,
    order_status,
    order_date,
    total_price,
    status_category,
    is_completed,
    order_size,
    priority_level,

    case
        when is_completed and priority_level = 'High Priority'
        then 'Completed High Priority'
        when is_completed
        then 'Completed Normal'
        when priority_level = 'High Priority'
        then 'Pending High Priority'
        else 'Pending Normal'
    end as fulfillment_status,

    current_timestamp as processed_at
from {{ ref('int_orders_enriched') }}
""",
)

fct_tpch__lineitem = Model(
    name="fct_tpch__lineitem",
    description="Line item fact table with discounted/final prices and ship date parts.",
    group=AssetGroups.MARTS,
    config=ModelConfig(
        materialized=Materialization.INCREMENTAL,
        unique_key=("order_key", "line_number"),
        date_column="ship_date",
        lookback=CONFIG.lookback,
        cluster_by=("ship_date", "return_flag", "ship_mode"),
    ),
    sql="""
select
    order_key,
    part_key,
    supplier_key,
    line_number,
    quantity,
    extended_price,
    discount,
    tax,
    return_flag,
    line_status,
    ship_date,
    commit_date,
    receipt_date,
    ship_instructions,
    ship_mode,
    comment,

    -- Derived metrics
    extended_price * (1 - discount) as discounted_price,
    extended_price * (1 - discount) * (1 + tax) as final_price,

    -- Date parts for analysis
    year(ship_date) as ship_year,
    month(ship_date) as ship_month,
    quarter(ship_date) as ship_quarter,

    current_timestamp as loaded_at
from {{ ref('stg_tpch__lineitem') }}
""",
)

# -----------------------------------------------------------------------------
# Materialization demos
# -----------------------------------------------------------------------------

orders = Model(
    name="orders",
    description="Orders read straight from the source and merged incrementally.",
    group=AssetGroups.DEMO,
    config=ModelConfig(
        materialized=Materialization.INCREMENTAL,
        unique_key="order_key",
        date_column="order_date",
        lookback=CONFIG.lookback,
    ),
    sql="""
select
    o_orderkey      as order_key,
    o_custkey       as customer_key,
    o_orderstatus   as order_status,
    o_totalprice    as total_price,
    o_orderdate     as order_date,
    o_orderpriority as order_priority,
    o_clerk         as clerk,
    o_shippriority  as ship_priority,
    current_timestamp as loaded_at
from {{ source('tpch', 'orders') }}
""",
)

_CUSTOMERS_BY_NATION_SQL = """
select
    c_nationkey as nation_key,
    count(*) as customer_count,
    avg(c_acctbal) as avg_balance
from {{ source('tpch', 'customer') }}
group by c_nationkey
"""

customers_by_nation = Model(
    name="customers_by_nation",
    description="Customer count and average account balance per nation (table).",
    group=AssetGroups.DEMO,
    config=ModelConfig(materialized=Materialization.TABLE, cluster_by=("nation_key",)),
    sql=_CUSTOMERS_BY_NATION_SQL,
)

customers_by_nation_view = Model(
    name="customers_by_nation_view",
    description="Customer count and average account balance per nation (view).",
    group=AssetGroups.DEMO,
    config=ModelConfig(materialized=Materialization.VIEW),
    sql=_CUSTOMERS_BY_NATION_SQL,
)


MODELS = [
    stg_tpch__orders,
    stg_tpch__lineitem,
    stg_tpch__customer,
    int_orders_with_status,
    int_orders_enriched,
    fct_tpch__orders,
    fct_tpch__lineitem,
    orders,
    customers_by_nation,
    customers_by_nation_view,
]
