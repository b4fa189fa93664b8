"""Incremental fact builder: watermark, reprocessing window and merge.

Policy for each run of an incremental model:

1. ``compute_watermark`` over the rows already in the target table. An absent
   or empty target, or a null maximum, gives no watermark.
2. ``reprocessing_window_start`` = watermark - lookback. No watermark means a
   full load of every source row.
3. ``select_window`` keeps source rows with ``date_column >= window_start``.
   Rows older than the window are never revisited, even if they changed.
4. ``deduplicate_batch`` keeps the last row per unique key (ordered by the
   optional tiebreak column, then by source position).
5. ``merge_rows`` fully overwrites rows whose key already exists and inserts
   new keys. Deletes in the source are not propagated.

The pure functions work on Polars DataFrames. ``IncrementalFactBuilder``
applies the same policy to a DuckDB table inside a single transaction.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any

import dagster as dg
import duckdb
import polars as pl

from tpch_duck.base import ModelConfig
from tpch_duck.exceptions import ModelBuildError

logger = dg.get_dagster_logger(__name__)

_POSITION = "__source_position"
_INCOMING = "__incoming_batch"

FULL_LOAD = "full"
INCREMENTAL_LOAD = "incremental"


def compute_watermark(
    existing_rows: pl.DataFrame | None, date_column: str
) -> date | datetime | None:
    """Maximum of ``date_column`` over the existing target rows.

    Returns None when there are no rows, the column is missing, or every
    value is null. Callers treat None as "full load".
    """
    if existing_rows is None or existing_rows.height == 0:
        return None
    if date_column not in existing_rows.columns:
        return None
    return existing_rows[date_column].max()  # type: ignore[return-value]


def reprocessing_window_start(
    watermark: date | datetime | None, lookback: timedelta
) -> date | datetime | None:
    """Lower bound (inclusive) of the rows to reprocess, or None for a full load."""
    if watermark is None:
        return None
    return watermark - lookback


def select_window(
    source: pl.DataFrame,
    date_column: str,
    window_start: date | datetime | None,
) -> pl.DataFrame:
    """Source rows to reprocess on this run.

    A full load (no window) keeps every row, including rows with a null date.
    """
    if window_start is None:
        return source
    return source.filter(pl.col(date_column) >= window_start)


def deduplicate_batch(
    batch: pl.DataFrame,
    unique_key: list[str],
    order_by: str | None = None,
) -> tuple[pl.DataFrame, int]:
    """Keep one row per unique key: the last one.

    Rows are ordered by ``order_by`` (nulls first) when given, then by their
    position in the source. The surviving rows keep source order.

    Returns:
        Tuple of (deduplicated batch, number of rows dropped)
    """
    if batch.height == 0:
        return batch, 0

    sort_columns = [order_by, _POSITION] if order_by else [_POSITION]
    deduped = (
        batch.with_row_index(_POSITION)
        .sort(sort_columns, nulls_last=False)
        .unique(subset=unique_key, keep="last", maintain_order=True)
        .sort(_POSITION)
        .drop(_POSITION)
    )
    return deduped, batch.height - deduped.height


def merge_rows(
    target: pl.DataFrame | None,
    batch: pl.DataFrame,
    unique_key: list[str],
) -> pl.DataFrame:
    """Upsert ``batch`` into ``target`` by ``unique_key``.

    Existing rows with a key present in the batch are replaced whole (no
    field-level patching); other target rows are kept untouched. Null key
    values match each other, so a null-keyed row is replaced rather than
    duplicated.
    """
    if target is None or target.height == 0:
        return batch
    kept = target.join(batch.select(unique_key), on=unique_key, how="anti", nulls_equal=True)
    return pl.concat([kept, batch], how="diagonal_relaxed")


@dataclass
class IncrementalResult:
    """Outcome of one incremental build."""

    target: str
    mode: str
    watermark: date | datetime | None
    window_start: date | datetime | None
    rows_selected: int
    rows_inserted: int
    rows_updated: int
    duplicate_keys_dropped: int = 0
    elapsed_ms: float = 0.0
    extra: dict[str, Any] = field(default_factory=dict)

    def as_metadata(self) -> dict[str, Any]:
        """JSON-friendly dict for Dagster metadata and run summaries."""
        return {
            "mode": self.mode,
            "watermark": str(self.watermark) if self.watermark is not None else None,
            "window_start": str(self.window_start) if self.window_start is not None else None,
            "rows_selected": self.rows_selected,
            "rows_inserted": self.rows_inserted,
            "rows_updated": self.rows_updated,
            "duplicate_keys_dropped": self.duplicate_keys_dropped,
            "processing_time_ms": round(self.elapsed_ms, 2),
            **self.extra,
        }


def incremental_merge(
    existing: pl.DataFrame | None,
    source: pl.DataFrame,
    config: ModelConfig,
    target: str = "target",
) -> tuple[pl.DataFrame, IncrementalResult]:
    """Apply one incremental run entirely in memory.

    Returns:
        Tuple of (new target rows, result summary)
    """
    unique_key = config.unique_key_columns
    date_column = config.date_column or ""

    watermark = compute_watermark(existing, date_column)
    window_start = reprocessing_window_start(watermark, config.lookback)
    batch = select_window(source, date_column, window_start)
    batch, dropped = deduplicate_batch(batch, unique_key, config.tiebreak_column)

    if existing is None or existing.height == 0:
        updated = 0
    else:
        updated = batch.join(
            existing.select(unique_key).unique(), on=unique_key, how="semi", nulls_equal=True
        ).height

    merged = merge_rows(existing, batch, unique_key)
    result = IncrementalResult(
        target=target,
        mode=FULL_LOAD if window_start is None else INCREMENTAL_LOAD,
        watermark=watermark,
        window_start=window_start,
        rows_selected=batch.height + dropped,
        rows_inserted=batch.height - updated,
        rows_updated=updated,
        duplicate_keys_dropped=dropped,
    )
    return merged, result


class IncrementalFactBuilder:
    """Merge a model's source rows into a persisted DuckDB table.

    Assumes at most one writer per target table; concurrent merges into the
    same table are not coordinated.
    """

    def __init__(self, conn: duckdb.DuckDBPyConnection):
        self.conn = conn

    def table_exists(self, relation: str) -> bool:
        schema, _, table = relation.rpartition(".")
        row = self.conn.execute(
            "SELECT count(*) FROM information_schema.tables "
            "WHERE table_name = ? AND table_schema = ?",
            [table, schema or "main"],
        ).fetchone()
        return bool(row and row[0])

    def existing_watermark(self, relation: str, date_column: str) -> date | datetime | None:
        """Watermark of the current target table (None when absent or empty)."""
        if not self.table_exists(relation):
            return None
        # Aggregate in the engine; the max of a one-row frame is the same max
        max_rows = self.conn.sql(
            f"SELECT max({date_column}) AS {date_column} FROM {relation}"
        ).pl()
        return compute_watermark(max_rows, date_column)

    def build(
        self,
        target: str,
        select_sql: str,
        config: ModelConfig,
        full_refresh: bool = False,
    ) -> IncrementalResult:
        """Run one incremental build of ``target`` from ``select_sql``.

        With ``full_refresh`` the existing table is replaced in the same
        transaction as the load, so a failed refresh leaves it in place.

        Raises:
            ModelBuildError: If any statement is rejected, or the selected rows
                lack a configured column; the merge is rolled back
        """
        start_time = time.perf_counter()
        unique_key = config.unique_key_columns
        date_column = config.date_column or ""

        try:
            exists = self.table_exists(target)
            merge_existing = exists and not full_refresh

            watermark = self.existing_watermark(target, date_column) if merge_existing else None
            window_start = reprocessing_window_start(watermark, config.lookback)

            query = f"SELECT * FROM (\n{select_sql}\n) AS model_source"
            if window_start is None:
                source_rows = self.conn.execute(query).pl()
            else:
                source_rows = self.conn.execute(
                    f"{query} WHERE {date_column} >= ?", [window_start]
                ).pl()
        except duckdb.Error as e:
            raise ModelBuildError(target, f"Failed to select source rows: {e}") from e

        configured = [*unique_key, date_column]
        if config.tiebreak_column:
            configured.append(config.tiebreak_column)
        missing = [col for col in configured if col not in source_rows.columns]
        if missing:
            raise ModelBuildError(
                target,
                f"Configured columns {missing} are not selected by the model. "
                f"Selected columns: {source_rows.columns}",
            )

        batch, dropped = deduplicate_batch(source_rows, unique_key, config.tiebreak_column)
        if dropped:
            logger.warning(
                f"[{target}] {dropped} rows share a unique key with a later row "
                f"in the same batch; keeping the last row per key"
            )

        rows_updated = self._write(target, batch, unique_key, config.cluster_by, merge_existing)
        elapsed_ms = (time.perf_counter() - start_time) * 1000

        result = IncrementalResult(
            target=target,
            mode=FULL_LOAD if window_start is None else INCREMENTAL_LOAD,
            watermark=watermark,
            window_start=window_start,
            rows_selected=source_rows.height,
            rows_inserted=batch.height - rows_updated,
            rows_updated=rows_updated,
            duplicate_keys_dropped=dropped,
            elapsed_ms=elapsed_ms,
        )
        logger.info(
            f"[{target}] {result.mode} load: {result.rows_inserted} inserted, "
            f"{result.rows_updated} updated (window start: {window_start}) in {elapsed_ms:.1f}ms"
        )
        return result

    def _write(
        self,
        target: str,
        batch: pl.DataFrame,
        unique_key: list[str],
        cluster_by: tuple[str, ...],
        merge_existing: bool,
    ) -> int:
        order_clause = f" ORDER BY {', '.join(cluster_by)}" if cluster_by else ""
        # Null keys match each other so reruns replace null-keyed rows
        key_match = " AND ".join(f"t.{col} IS NOT DISTINCT FROM s.{col}" for col in unique_key)

        self.conn.register(_INCOMING, batch)
        try:
            self.conn.execute("BEGIN TRANSACTION")
            try:
                if not merge_existing:
                    self.conn.execute(
                        f"CREATE OR REPLACE TABLE {target} AS "
                        f"SELECT * FROM {_INCOMING}{order_clause}"
                    )
                    rows_updated = 0
                else:
                    row = self.conn.execute(
                        f"SELECT count(*) FROM {_INCOMING} s "
                        f"WHERE EXISTS (SELECT 1 FROM {target} t WHERE {key_match})"
                    ).fetchone()
                    rows_updated = int(row[0]) if row else 0
                    self.conn.execute(
                        f"DELETE FROM {target} AS t USING {_INCOMING} AS s WHERE {key_match}"
                    )
                    self.conn.execute(
                        f"INSERT INTO {target} BY NAME SELECT * FROM {_INCOMING}{order_clause}"
                    )
                self.conn.execute("COMMIT")
            except duckdb.Error as e:
                self.conn.execute("ROLLBACK")
                raise ModelBuildError(target, f"Merge failed and was rolled back: {e}") from e
        finally:
            self.conn.unregister(_INCOMING)
        return rows_updated
