"""Utility functions for reading built models with clear error messages."""

import duckdb
import polars as pl

from tpch_duck.exceptions import MissingColumnError, MissingTableError


def read_model(
    conn: duckdb.DuckDBPyConnection,
    relation: str,
    required_columns: list[str] | None = None,
    asset_name: str = "unknown",
) -> pl.DataFrame:
    """Read a built model (table or view in the main schema) as a Polars DataFrame.

    Args:
        conn: Warehouse connection
        relation: Model name
        required_columns: Optional list of required column names
        asset_name: Name of calling asset (for error messages)

    Raises:
        MissingTableError: If the model hasn't been built
        MissingColumnError: If required columns are missing

    Example:
        >>> orders = read_model(
        ...     conn,
        ...     "fct_tpch__orders",
        ...     required_columns=["order_key", "total_price"],
        ...     asset_name="check_fct_tpch__orders_schema",
        ... )
    """
    rows = conn.execute(
        "SELECT table_name FROM information_schema.tables WHERE table_schema = 'main'"
    ).fetchall()
    available_tables = sorted(row[0] for row in rows)
    if relation not in available_tables:
        raise MissingTableError(asset_name, relation, available_tables)

    df = conn.sql(f"SELECT * FROM {relation}").pl()

    if required_columns:
        missing = set(required_columns) - set(df.columns)
        if missing:
            raise MissingColumnError(asset_name, missing, df.columns)

    return df
