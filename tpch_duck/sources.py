"""Source adapter: exposes raw tables with a freshness timestamp field.

Raw TPC-H tables live in the ``raw`` schema of the warehouse. They can be
loaded from Parquet/CSV files (one file per table) or generated with DuckDB's
``tpch`` extension. Every source exposes a loaded-at column: either a native
column cast to TIMESTAMP, or ``current_timestamp`` injected through a view.
"""

from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path

import dagster as dg
import duckdb

from tpch_duck.exceptions import MissingTableError

logger = dg.get_dagster_logger(__name__)

RAW_SCHEMA = "raw"
LOADED_AT_COLUMN = "_loaded_at"

# Tables produced by DuckDB's dbgen
TPCH_TABLES = ("customer", "lineitem", "nation", "orders", "part", "partsupp", "region", "supplier")


@dataclass(frozen=True)
class SourceTable:
    """A raw table declared as a project source.

    Attributes:
        source_name: Logical source group (``source('tpch', ...)``)
        name: Table name within the source
        table: Physical table name in the raw schema
        loaded_at_field: Native updated-at column; when None, the current
            time is injected as ``_loaded_at``
        warn_after: Age of the newest row after which freshness warns
        error_after: Age of the newest row after which freshness errors
    """

    source_name: str
    name: str
    table: str
    loaded_at_field: str | None = None
    warn_after: timedelta | None = None
    error_after: timedelta | None = None

    @property
    def raw_relation(self) -> str:
        return f"{RAW_SCHEMA}.{self.table}"

    @property
    def relation(self) -> str:
        """Relation models read from (the loaded-at view)."""
        return f"{RAW_SCHEMA}.{self.name}_with_loaded_at"

    @property
    def key(self) -> tuple[str, str]:
        return (self.source_name, self.name)

    def view_sql(self) -> str:
        if self.loaded_at_field:
            loaded_at = f"CAST({self.loaded_at_field} AS TIMESTAMP)"
        else:
            loaded_at = "CAST(current_timestamp AS TIMESTAMP)"
        return (
            f"CREATE OR REPLACE VIEW {self.relation} AS "
            f"SELECT *, {loaded_at} AS {LOADED_AT_COLUMN} FROM {self.raw_relation}"
        )


def available_raw_tables(conn: duckdb.DuckDBPyConnection) -> list[str]:
    rows = conn.execute(
        "SELECT table_name FROM information_schema.tables "
        "WHERE table_schema = ? AND table_type = 'BASE TABLE'",
        [RAW_SCHEMA],
    ).fetchall()
    return sorted(row[0] for row in rows)


def register_sources(
    conn: duckdb.DuckDBPyConnection,
    sources: list[SourceTable],
    strict: bool = True,
) -> list[SourceTable]:
    """Create the loaded-at view for every declared source.

    Args:
        conn: Warehouse connection
        sources: Declared sources
        strict: Raise on the first missing raw table; otherwise skip it and
            let the models reading it fail at build time

    Returns:
        Sources whose raw table is missing (empty when strict)

    Raises:
        MissingTableError: If strict and a source's raw table hasn't been loaded
    """
    conn.execute(f"CREATE SCHEMA IF NOT EXISTS {RAW_SCHEMA}")
    available = available_raw_tables(conn)
    missing = []
    for source in sources:
        if source.table not in available:
            if strict:
                raise MissingTableError(
                    f"source:{source.source_name}.{source.name}", source.raw_relation, available
                )
            logger.warning(f"Raw table {source.raw_relation} not found; skipping source view")
            missing.append(source)
            continue
        conn.execute(source.view_sql())
    logger.info(
        f"Registered {len(sources) - len(missing)} source views in schema '{RAW_SCHEMA}'"
    )
    return missing


def load_raw_files(conn: duckdb.DuckDBPyConnection, raw_dir: str | Path) -> list[str]:
    """Load ``<table>.parquet`` / ``<table>.csv`` files into the raw schema.

    Returns:
        Names of the tables loaded
    """
    raw_dir = Path(raw_dir)
    if not raw_dir.exists():
        raise FileNotFoundError(
            f"Raw data directory not found at {raw_dir}. "
            f"Generate data first: python -m tpch_duck generate"
        )

    conn.execute(f"CREATE SCHEMA IF NOT EXISTS {RAW_SCHEMA}")
    loaded = []
    for path in sorted(raw_dir.iterdir()):
        suffix = path.suffix.lower()
        if suffix == ".parquet":
            reader = f"read_parquet('{path}')"
        elif suffix == ".csv":
            reader = f"read_csv_auto('{path}')"
        else:
            continue
        conn.execute(f"CREATE OR REPLACE TABLE {RAW_SCHEMA}.{path.stem} AS SELECT * FROM {reader}")
        loaded.append(path.stem)

    logger.info(f"Loaded {len(loaded)} raw tables from {raw_dir}")
    return loaded


def generate_tpch(conn: duckdb.DuckDBPyConnection, scale_factor: float = 0.01) -> list[str]:
    """Generate TPC-H data with DuckDB's ``tpch`` extension into the raw schema."""
    conn.execute("INSTALL tpch")
    conn.execute("LOAD tpch")
    conn.execute(f"CREATE SCHEMA IF NOT EXISTS {RAW_SCHEMA}")
    # dbgen refuses to overwrite; models in main may share table names
    for table in TPCH_TABLES:
        conn.execute(f"DROP TABLE IF EXISTS {RAW_SCHEMA}.{table}")
    conn.execute(f"CALL dbgen(sf = {scale_factor}, schema = '{RAW_SCHEMA}')")

    logger.info(f"Generated TPC-H data at scale factor {scale_factor}")
    return list(TPCH_TABLES)


def export_raw_files(conn: duckdb.DuckDBPyConnection, raw_dir: str | Path) -> list[Path]:
    """Write every raw table to ``<raw_dir>/<table>.parquet``."""
    raw_dir = Path(raw_dir)
    raw_dir.mkdir(parents=True, exist_ok=True)
    written = []
    for table in available_raw_tables(conn):
        path = raw_dir / f"{table}.parquet"
        conn.execute(f"COPY {RAW_SCHEMA}.{table} TO '{path}' (FORMAT PARQUET)")
        written.append(path)
    return written
