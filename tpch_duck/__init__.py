"""Incremental TPC-H fact models and data quality tests on DuckDB."""

from tpch_duck.base import Materialization, Model, ModelConfig
from tpch_duck.freshness import FreshnessResult, FreshnessStatus, check_source_freshness
from tpch_duck.graph import ModelGraph
from tpch_duck.incremental import (
    IncrementalFactBuilder,
    IncrementalResult,
    compute_watermark,
    deduplicate_batch,
    incremental_merge,
    merge_rows,
    reprocessing_window_start,
    select_window,
)
from tpch_duck.runner import BuildStatus, BuildSummary, ModelResult, Project, ProjectRunner
from tpch_duck.sources import SourceTable

__all__ = [
    # Models
    "Materialization",
    "Model",
    "ModelConfig",
    "ModelGraph",
    "SourceTable",
    # Incremental
    "IncrementalFactBuilder",
    "IncrementalResult",
    "compute_watermark",
    "reprocessing_window_start",
    "select_window",
    "deduplicate_batch",
    "merge_rows",
    "incremental_merge",
    # Runner
    "Project",
    "ProjectRunner",
    "BuildStatus",
    "BuildSummary",
    "ModelResult",
    # Freshness
    "FreshnessResult",
    "FreshnessStatus",
    "check_source_freshness",
]
