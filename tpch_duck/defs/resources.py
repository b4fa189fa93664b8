"""Resource registration for the tpch-duck project.

Every asset and check shares one DuckDB warehouse file through
``DuckDBResource``. Raw tables live in the ``raw`` schema, models in ``main``.
"""

from dagster_duckdb import DuckDBResource

from .config import CONFIG


def warehouse_resource(database: str | None = None) -> DuckDBResource:
    """DuckDB resource for the configured warehouse (or ``database`` if given)."""
    return DuckDBResource(database=database or str(CONFIG.duckdb_path))
