"""Whitelisted query templates and their SQLite executor."""

from .executor import SQLiteQueryExecutor, fetch_concurrently, initialize_tenant_database
from .templates import DIMENSIONS, TEMPLATES, DimensionSpec, QueryTemplate, dimension_spec, get_template

__all__ = [
    "DIMENSIONS",
    "TEMPLATES",
    "DimensionSpec",
    "QueryTemplate",
    "SQLiteQueryExecutor",
    "dimension_spec",
    "fetch_concurrently",
    "get_template",
    "initialize_tenant_database",
]
