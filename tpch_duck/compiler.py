"""Render model SQL templates.

Model SQL is a Jinja2 template. The compiler provides:

- ``ref('model')``: relation name of a persisted model, or the compiled SQL
  of an ephemeral model inlined as a parenthesised subquery
- ``source('source', 'table')``: the source's loaded-at view
- ``var('name')``: project variable (business thresholds, lookback, ...)
- ``this``: relation name of the model being compiled
- ``is_incremental()``: True only while building an incremental model
  against an existing target
"""

from typing import Any

from jinja2 import Environment, StrictUndefined, UndefinedError

from tpch_duck.base import Model
from tpch_duck.exceptions import MissingDependencyError
from tpch_duck.sources import SourceTable

_NO_DEFAULT = object()


class _Recorder:
    """Collects ref()/source() calls while rendering a template."""

    def __init__(self) -> None:
        self.refs: list[str] = []
        self.sources: list[tuple[str, str]] = []

    def ref(self, name: str) -> str:
        if name not in self.refs:
            self.refs.append(name)
        return name

    def source(self, source_name: str, table_name: str) -> str:
        key = (source_name, table_name)
        if key not in self.sources:
            self.sources.append(key)
        return f"{source_name}.{table_name}"


class SqlCompiler:
    """Compiles model templates against a set of models, sources and variables."""

    def __init__(
        self,
        models: dict[str, Model],
        sources: list[SourceTable],
        variables: dict[str, Any] | None = None,
    ):
        self.models = models
        self.sources = {source.key: source for source in sources}
        self.variables = dict(variables or {})
        self.env = Environment(undefined=StrictUndefined, autoescape=False)

    def var(self, name: str, default: Any = _NO_DEFAULT) -> Any:
        if name in self.variables:
            return self.variables[name]
        if default is not _NO_DEFAULT:
            return default
        raise UndefinedError(f"Project variable {name!r} is not defined")

    def references(self, model: Model) -> tuple[list[str], list[tuple[str, str]]]:
        """Return the models and sources a model's SQL references.

        Both branches of ``is_incremental()`` are rendered so references made
        only on incremental runs still become graph edges.
        """
        recorder = _Recorder()
        template = self.env.from_string(model.sql)
        for incremental in (False, True):
            template.render(
                ref=recorder.ref,
                source=recorder.source,
                var=self.var,
                this=model.name,
                is_incremental=lambda incremental=incremental: incremental,
            )
        return recorder.refs, recorder.sources

    def validate_sources(self, model: Model) -> None:
        """Raises MissingDependencyError if the model reads an undeclared source."""
        for source_name, table_name in self.references(model)[1]:
            self._source(model.name, source_name, table_name)

    def compile(self, model: Model, incremental: bool = False) -> str:
        """Render a model's SQL.

        Raises:
            MissingDependencyError: If the SQL references an undeclared model or source
        """
        template = self.env.from_string(model.sql)
        return template.render(
            ref=lambda name: self._ref(model.name, name),
            source=lambda source_name, table_name: self._source(
                model.name, source_name, table_name
            ),
            var=self.var,
            this=model.name,
            is_incremental=lambda: incremental,
        ).strip()

    def _ref(self, caller: str, name: str) -> str:
        target = self.models.get(name)
        if target is None:
            raise MissingDependencyError(caller, name, list(self.models))
        if target.is_persisted:
            return target.name
        # Ephemeral models are inlined wherever they are referenced
        return f"(\n{self.compile(target)}\n)"

    def _source(self, caller: str, source_name: str, table_name: str) -> str:
        source = self.sources.get((source_name, table_name))
        if source is None:
            available = [f"{s}.{t}" for s, t in self.sources]
            raise MissingDependencyError(caller, f"source {source_name}.{table_name}", available)
        return source.relation
