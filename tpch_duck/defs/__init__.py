"""Dagster definitions and the TPC-H project declarations.

Load with: dagster dev -m tpch_duck.defs.definitions
"""
