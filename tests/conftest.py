"""Pytest fixtures for tpch-duck tests.

Provides small TPC-H-shaped raw tables in an in-memory DuckDB warehouse so
models, rules and incremental merges can be exercised without generating
real TPC-H data.

Key fixtures:
- warehouse: in-memory connection with raw.orders / raw.lineitem / raw.customer
- project: the TPC-H project (models, sources, rules)
- runner: ProjectRunner for the project against the warehouse
- built_runner: runner after a successful build of every model

Seed data (all rules pass):

    orders    1  O  100.00     2024-01-10  1-URGENT   lines (1,1) 60.00 O, (1,2) 40.00 O
              2  F  200.00     2024-01-12  3-MEDIUM   lines (2,1) 200.00 F
              3  P  60000.00   2024-01-15  5-LOW      lines (3,1) 30000.00 F, (3,2) 30000.00 O

Line items carry no discount or tax, so order totals reconcile exactly.
"""

import os
import tempfile
from datetime import date
from pathlib import Path

import duckdb
import pytest

# Keep the configured warehouse out of the project tree during tests
os.environ.setdefault(
    "TPCH_DUCK_DB_PATH", str(Path(tempfile.mkdtemp(prefix="tpch_duck_")) / "tpch.duckdb")
)

from tpch_duck.runner import Project, ProjectRunner  # noqa: E402

D = date.fromisoformat

ORDERS_DDL = """
CREATE TABLE raw.orders (
    o_orderkey BIGINT,
    o_custkey BIGINT,
    o_orderstatus VARCHAR,
    o_totalprice DOUBLE,
    o_orderdate DATE,
    o_orderpriority VARCHAR,
    o_clerk VARCHAR,
    o_shippriority INTEGER,
    o_comment VARCHAR
)
"""

LINEITEM_DDL = """
CREATE TABLE raw.lineitem (
    l_orderkey BIGINT,
    l_partkey BIGINT,
    l_suppkey BIGINT,
    l_linenumber BIGINT,
    l_quantity DOUBLE,
    l_extendedprice DOUBLE,
    l_discount DOUBLE,
    l_tax DOUBLE,
    l_returnflag VARCHAR,
    l_linestatus VARCHAR,
    l_shipdate DATE,
    l_commitdate DATE,
    l_receiptdate DATE,
    l_shipinstruct VARCHAR,
    l_shipmode VARCHAR,
    l_comment VARCHAR
)
"""

CUSTOMER_DDL = """
CREATE TABLE raw.customer (
    c_custkey BIGINT,
    c_name VARCHAR,
    c_address VARCHAR,
    c_nationkey BIGINT,
    c_phone VARCHAR,
    c_acctbal DOUBLE,
    c_mktsegment VARCHAR,
    c_comment VARCHAR
)
"""

ORDERS = [
    (1, 1, "O", 100.0, D("2024-01-10"), "1-URGENT", "Clerk#000000001", 0, "first"),
    (2, 2, "F", 200.0, D("2024-01-12"), "3-MEDIUM", "Clerk#000000002", 0, "second"),
    (3, 1, "P", 60000.0, D("2024-01-15"), "5-LOW", "Clerk#000000003", 0, "third"),
]

LINEITEMS = [
    (1, 10, 100, 1, 1.0, 60.0, 0.0, 0.0, "N", "O",
     D("2024-01-12"), D("2024-01-11"), D("2024-01-14"), "DELIVER IN PERSON", "AIR", "a"),
    (1, 11, 101, 2, 2.0, 40.0, 0.0, 0.0, "N", "O",
     D("2024-01-13"), D("2024-01-12"), D("2024-01-15"), "NONE", "MAIL", "b"),
    (2, 12, 102, 1, 5.0, 200.0, 0.0, 0.0, "R", "F",
     D("2024-01-13"), D("2024-01-13"), D("2024-01-16"), "TAKE BACK RETURN", "SHIP", "c"),
    (3, 13, 103, 1, 10.0, 30000.0, 0.0, 0.0, "A", "F",
     D("2024-01-16"), D("2024-01-15"), D("2024-01-18"), "NONE", "RAIL", "d"),
    (3, 14, 104, 2, 10.0, 30000.0, 0.0, 0.0, "N", "O",
     D("2024-01-17"), D("2024-01-16"), D("2024-01-20"), "COLLECT COD", "TRUCK", "e"),
]

CUSTOMERS = [
    (1, "Customer#000000001", "addr 1", 5, "25-989-741-2988", 711.56, "BUILDING", "x"),
    (2, "Customer#000000002", "addr 2", 24, "23-768-687-3665", 121.65, "AUTOMOBILE", "y"),
]


def insert_orders(conn: duckdb.DuckDBPyConnection, rows: list[tuple]) -> None:
    conn.executemany("INSERT INTO raw.orders VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)", rows)


def insert_lineitems(conn: duckdb.DuckDBPyConnection, rows: list[tuple]) -> None:
    conn.executemany(
        "INSERT INTO raw.lineitem VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)", rows
    )


def insert_customers(conn: duckdb.DuckDBPyConnection, rows: list[tuple]) -> None:
    conn.executemany("INSERT INTO raw.customer VALUES (?, ?, ?, ?, ?, ?, ?, ?)", rows)


@pytest.fixture
def warehouse() -> duckdb.DuckDBPyConnection:
    """In-memory warehouse seeded with the raw TPC-H tables."""
    conn = duckdb.connect(":memory:")
    conn.execute("CREATE SCHEMA raw")
    conn.execute(ORDERS_DDL)
    conn.execute(LINEITEM_DDL)
    conn.execute(CUSTOMER_DDL)
    insert_orders(conn, ORDERS)
    insert_lineitems(conn, LINEITEMS)
    insert_customers(conn, CUSTOMERS)
    yield conn
    conn.close()


@pytest.fixture
def empty_conn() -> duckdb.DuckDBPyConnection:
    """In-memory connection with nothing in it."""
    conn = duckdb.connect(":memory:")
    yield conn
    conn.close()


@pytest.fixture
def project() -> Project:
    from tpch_duck.defs.project import build_project

    return build_project()


@pytest.fixture
def runner(project: Project, warehouse: duckdb.DuckDBPyConnection) -> ProjectRunner:
    return ProjectRunner(project, warehouse)


@pytest.fixture
def built_runner(runner: ProjectRunner) -> ProjectRunner:
    """Runner whose models have all been built once."""
    summary = runner.build_all()
    assert summary.success, summary.format()
    return runner
