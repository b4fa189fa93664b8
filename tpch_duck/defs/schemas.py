"""Pandera schemas for the fact tables.

These schemas define the expected structure and constraints of the marts.
Used by blocking asset checks to prevent bad data being reported as built.

Note: Uses pandera.polars for validating Polars DataFrames.

Usage:
    # Fail-fast validation (default)
    FctOrdersSchema.validate(df)

    # Lazy validation - collect all errors for check metadata
    passed, metadata = validate_with_report(df, FctOrdersSchema)
"""

from __future__ import annotations

from typing import TYPE_CHECKING, TypeVar

import pandera.polars as pa

from . import constants

if TYPE_CHECKING:
    import polars as pl


T = TypeVar("T", bound=pa.DataFrameModel)


def validate_with_report(
    df: pl.DataFrame,
    schema: type[T],
    asset_name: str | None = None,
) -> tuple[bool, dict]:
    """Validate DataFrame lazily and return a structured report for metadata.

    Returns:
        Tuple of (passed, metadata_dict)
    """
    metadata: dict = {
        "schema": schema.__name__,
        "record_count": len(df),
    }
    if asset_name:
        metadata["asset"] = asset_name

    try:
        schema.validate(df, lazy=True)
    except pa.errors.SchemaErrors as e:
        # Summarize errors by column
        error_summary: dict[str, list[str]] = {}
        failures = e.failure_cases.to_dicts()
        for failure in failures:
            column = str(failure.get("column") or "dataframe")
            error_summary.setdefault(column, []).append(str(failure.get("check")))
        metadata["error_count"] = len(failures)
        metadata["error_summary"] = error_summary
        return False, metadata

    metadata["error_count"] = 0
    return True, metadata


class FctOrdersSchema(pa.DataFrameModel):
    """Schema for the fct_tpch__orders fact table."""

    order_key: int = pa.Field(unique=True)
    customer_key: int
    order_status: str = pa.Field(isin=list(constants.ORDER_STATUSES))
    total_price: float = pa.Field(ge=0)
    status_category: str = pa.Field(isin=list(constants.STATUS_CATEGORIES))
    is_completed: bool = pa.Field(nullable=True)
    order_size: str = pa.Field(isin=list(constants.ORDER_SIZES))
    priority_level: str = pa.Field(isin=list(constants.PRIORITY_LEVELS))
    fulfillment_status: str = pa.Field(isin=list(constants.FULFILLMENT_STATUSES))

    class Config:
        coerce = True
        strict = False  # Allow extra columns


class FctLineitemSchema(pa.DataFrameModel):
    """Schema for the fct_tpch__lineitem fact table."""

    order_key: int
    line_number: int = pa.Field(ge=1)
    quantity: float = pa.Field(ge=0)
    extended_price: float = pa.Field(ge=0)
    discount: float = pa.Field(ge=0, le=1)
    tax: float = pa.Field(ge=0)
    line_status: str = pa.Field(isin=list(constants.LINE_STATUSES))
    discounted_price: float
    final_price: float
    ship_year: int = pa.Field(nullable=True)
    ship_month: int = pa.Field(ge=1, le=12, nullable=True)
    ship_quarter: int = pa.Field(ge=1, le=4, nullable=True)

    class Config:
        coerce = True
        strict = False  # Allow extra columns
