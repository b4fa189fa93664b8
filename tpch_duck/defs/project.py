"""The TPC-H project: models, sources and rules wired together."""

from tpch_duck.runner import Project

from .config import CONFIG, TpchDuckConfig
from .models import MODELS
from .quality import build_rules
from .sources import TPCH_SOURCES


def build_project(config: TpchDuckConfig = CONFIG) -> Project:
    """Create the project with the thresholds of ``config``."""
    return Project(
        models=MODELS,
        sources=TPCH_SOURCES,
        rules=build_rules(config.reconciliation_tolerance),
        variables=config.variables,
    )


# Built on import so graph errors (cycles, unknown refs) fail at load time
PROJECT = build_project()
