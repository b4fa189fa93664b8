"""Helper functions shared by the Dagster assets and checks."""

import dagster as dg
import polars as pl


class AssetGroups:
    """Standard asset group names (one per layer)."""

    SOURCE = "source"
    STAGING = "staging"
    INTERMEDIATE = "intermediate"
    MARTS = "marts"
    DEMO = "demo"


def preview_markdown(df: pl.DataFrame, rows: int = 5) -> dg.MetadataValue:
    """First rows of a DataFrame as a markdown table for the Dagster UI."""
    return dg.MetadataValue.md(df.head(rows).to_pandas().to_markdown(index=False))


def to_metadata(values: dict) -> dict[str, dg.MetadataValue]:
    """Wrap plain values as Dagster metadata, dropping None."""
    metadata = {}
    for key, value in values.items():
        if value is None:
            continue
        if isinstance(value, bool):
            metadata[key] = dg.MetadataValue.bool(value)
        elif isinstance(value, int):
            metadata[key] = dg.MetadataValue.int(value)
        elif isinstance(value, float):
            metadata[key] = dg.MetadataValue.float(value)
        elif isinstance(value, (list, dict)):
            metadata[key] = dg.MetadataValue.json(value)
        else:
            metadata[key] = dg.MetadataValue.text(str(value))
    return metadata
