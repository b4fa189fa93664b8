"""Base model classes."""

from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum

from tpch_duck.exceptions import ConfigurationError

DEFAULT_LOOKBACK = timedelta(days=3)


class Materialization(str, Enum):
    """How a model is persisted in the warehouse."""

    VIEW = "view"
    TABLE = "table"
    INCREMENTAL = "incremental"
    EPHEMERAL = "ephemeral"


@dataclass(frozen=True)
class ModelConfig:
    """Per-model configuration.

    Attributes:
        materialized: Persistence strategy
        unique_key: Merge key for incremental models (single column or composite)
        incremental_strategy: Only "merge" is supported
        cluster_by: Columns the persisted rows are ordered by (advisory for scan pruning)
        date_column: Column the watermark is computed over (incremental only)
        lookback: Interval subtracted from the watermark to catch late updates
        tiebreak_column: Orders duplicate keys within one batch; the last row wins
    """

    materialized: Materialization = Materialization.VIEW
    unique_key: str | tuple[str, ...] | None = None
    incremental_strategy: str = "merge"
    cluster_by: tuple[str, ...] = ()
    date_column: str | None = None
    lookback: timedelta = DEFAULT_LOOKBACK
    tiebreak_column: str | None = None

    def __post_init__(self) -> None:
        # Accept plain strings for the enum and lists for tuples
        object.__setattr__(self, "materialized", Materialization(self.materialized))
        if isinstance(self.unique_key, list):
            object.__setattr__(self, "unique_key", tuple(self.unique_key))
        object.__setattr__(self, "cluster_by", tuple(self.cluster_by))

        if self.materialized is Materialization.INCREMENTAL:
            if not self.unique_key:
                raise ConfigurationError("Incremental models require a unique_key")
            if not self.date_column:
                raise ConfigurationError("Incremental models require a date_column")
            if self.incremental_strategy != "merge":
                raise ConfigurationError(
                    f"Unsupported incremental_strategy: {self.incremental_strategy!r}. "
                    f"Only 'merge' is supported."
                )
        if self.lookback < timedelta(0):
            raise ConfigurationError(f"lookback must not be negative, got: {self.lookback}")

    @property
    def unique_key_columns(self) -> list[str]:
        """Unique key as a list of column names (empty when unset)."""
        if self.unique_key is None:
            return []
        if isinstance(self.unique_key, str):
            return [self.unique_key]
        return list(self.unique_key)


@dataclass(frozen=True)
class Model:
    """A named SQL transformation in the project DAG.

    The SQL is a Jinja2 template that may call ``ref('model')``,
    ``source('source', 'table')``, ``is_incremental()`` and use ``this``.
    """

    name: str
    sql: str
    config: ModelConfig = field(default_factory=ModelConfig)
    description: str = ""
    group: str = "default"

    @property
    def materialized(self) -> Materialization:
        return self.config.materialized

    @property
    def is_persisted(self) -> bool:
        return self.config.materialized is not Materialization.EPHEMERAL
