"""Custom exceptions for the tpch-duck project.

These exceptions provide better error messages and help distinguish between
different failure modes: graph configuration, model builds, rule
configuration and missing data.
"""

from typing import Any

import dagster as dg


class TpchDuckError(Exception):
    """Base exception for all tpch-duck errors."""

    pass


class ConfigurationError(TpchDuckError):
    """Raised when configuration is invalid or incomplete.

    Examples:
    - Environment variables have invalid values
    - Lookback or tolerance is negative
    - Database directory is not writable
    """

    pass


class ModelGraphError(TpchDuckError):
    """Raised when the model dependency graph is invalid."""

    pass


class CyclicDependencyError(ModelGraphError):
    """Raised when models reference each other in a cycle."""

    def __init__(self, cycle: list[str]):
        self.cycle = cycle
        super().__init__(f"Cyclic model dependency: {' -> '.join(cycle)}")


class MissingDependencyError(ModelGraphError):
    """Raised when a model references a model or source that isn't declared."""

    def __init__(self, model_name: str, dependency: str, available: list[str]):
        self.model_name = model_name
        self.dependency = dependency
        self.available = available
        super().__init__(
            f"[{model_name}] references unknown model '{dependency}'. "
            f"Declared models: {sorted(available)}"
        )


class ModelBuildError(TpchDuckError):
    """Raised when the query engine rejects a model build."""

    def __init__(self, model_name: str, message: str):
        self.model_name = model_name
        super().__init__(f"[{model_name}] {message}")


class RuleConfigurationError(TpchDuckError):
    """Raised when a data quality rule is declared with bad parameters.

    Examples:
    - Unknown rule type
    - Missing required parameter (column, accepted values, ...)
    - Negative tolerance
    """

    pass


class DataValidationError(TpchDuckError):
    """Raised when data fails validation checks."""

    def __init__(self, asset_name: str, message: str):
        """Initialize with asset context.

        Args:
            asset_name: Name of the asset that failed validation
            message: Detailed error message
        """
        self.asset_name = asset_name
        super().__init__(f"[{asset_name}] {message}")


class MissingTableError(DataValidationError):
    """Raised when a required database table doesn't exist.

    Examples:
    - Sources haven't been loaded yet
    - Upstream model failed to build
    - Wrong database path
    """

    def __init__(self, asset_name: str, table_name: str, available_tables: list[str]):
        self.table_name = table_name
        self.available_tables = available_tables
        message = (
            f"Table '{table_name}' not found in database. "
            f"Available tables: {available_tables}. "
            f"Did you run the build job first?"
        )
        super().__init__(asset_name, message)


class MissingColumnError(DataValidationError):
    """Raised when required columns are missing from a relation."""

    def __init__(
        self, asset_name: str, missing_columns: set[str], available_columns: list[str]
    ):
        self.missing_columns = missing_columns
        self.available_columns = available_columns
        message = (
            f"Missing required columns: {sorted(missing_columns)}. "
            f"Available columns: {sorted(available_columns)}"
        )
        super().__init__(asset_name, message)


def raise_as_dagster_failure(error: Exception) -> None:
    """Convert a project exception to a Dagster Failure with structured metadata.

    Metadata is displayed in the Dagster UI for better debugging.

    Raises:
        dagster.Failure: Always raises with metadata attached
    """
    metadata: dict[str, Any] = {
        "error_type": dg.MetadataValue.text(type(error).__name__),
        "error_message": dg.MetadataValue.text(str(error)),
    }

    if isinstance(error, MissingTableError):
        metadata.update(
            {
                "asset_name": dg.MetadataValue.text(error.asset_name),
                "missing_table": dg.MetadataValue.text(error.table_name),
                "available_tables": dg.MetadataValue.json(error.available_tables),
                "suggestion": dg.MetadataValue.text(
                    "Build upstream models first: dagster job execute -j build_all"
                ),
            }
        )
    elif isinstance(error, MissingColumnError):
        metadata.update(
            {
                "asset_name": dg.MetadataValue.text(error.asset_name),
                "missing_columns": dg.MetadataValue.json(sorted(error.missing_columns)),
                "available_columns": dg.MetadataValue.json(sorted(error.available_columns)),
            }
        )
    elif isinstance(error, ModelBuildError):
        metadata["model"] = dg.MetadataValue.text(error.model_name)
    elif isinstance(error, CyclicDependencyError):
        metadata["cycle"] = dg.MetadataValue.json(error.cycle)

    raise dg.Failure(
        description=str(error),
        metadata=metadata,
    ) from error
