"""Whitelisted query templates.

All templates are:
- Read-only
- Parameterised (window bounds are always the first two parameters)
- Deterministic
- Composed from clauses, so filters are added as WHERE predicates rather
  than spliced into SQL text

Tenant databases are SQLite files with two tables: an hourly
``overall_summary`` rollup and one row per order in ``orders``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from rcaflow.core.exceptions import InvalidFilterError, UnknownTemplateError
from rcaflow.core.interfaces import EqualityFilter, HourOfDayFilter, QueryFilter

IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z0-9_]+$")

GROUP_COLUMN_PLACEHOLDER = "{group_column}"


# -----------------------------------------------------------------------------
# Schema
# -----------------------------------------------------------------------------

TENANT_SCHEMA = """
CREATE TABLE IF NOT EXISTS overall_summary (
    bucket_start TEXT NOT NULL,
    total_sessions INTEGER DEFAULT 0,
    total_orders INTEGER DEFAULT 0,
    total_sales REAL DEFAULT 0.0
);

CREATE INDEX IF NOT EXISTS idx_overall_summary_bucket ON overall_summary(bucket_start);

CREATE TABLE IF NOT EXISTS orders (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    created_at TEXT NOT NULL,
    payment_gateway_names TEXT,
    financial_status TEXT,
    discount_codes TEXT,
    item_name TEXT,
    line_item_price REAL,
    total_price REAL,
    customer_id TEXT,
    city TEXT,
    utm_source TEXT,
    utm_campaign TEXT
);

CREATE INDEX IF NOT EXISTS idx_orders_created_at ON orders(created_at);
"""


# -----------------------------------------------------------------------------
# Template builder
# -----------------------------------------------------------------------------


def check_identifier(name: str) -> str:
    """Ensure a column name is alphanumeric/underscore only."""
    if not isinstance(name, str) or not IDENTIFIER_PATTERN.match(name):
        raise InvalidFilterError(f"Invalid filter column: {name}")
    return name


@dataclass(frozen=True)
class QueryTemplate:
    """A SELECT statement described clause by clause."""
    name: str
    select: str
    source: str
    time_column: str
    predicates: Tuple[str, ...] = ()
    group_by: Optional[str] = None
    order_by: Optional[str] = None
    limit: Optional[int] = None

    @property
    def needs_group_column(self) -> bool:
        return GROUP_COLUMN_PLACEHOLDER in self.select

    def render(
        self,
        params: Sequence[Any],
        filters: Sequence[QueryFilter] = (),
        group_column: Optional[str] = None,
    ) -> Tuple[str, List[Any]]:
        """Build SQL text and its ordered parameter list.

        Args:
            params: Template parameters (window start and end).
            filters: Extra predicates, bound after ``params`` in order.
            group_column: Column for templates grouped by a caller-chosen column.

        Returns:
            (sql, bound_params)
        """
        where = [f"{self.time_column} >= ?", f"{self.time_column} < ?", *self.predicates]
        bound: List[Any] = list(params)

        for query_filter in filters:
            if isinstance(query_filter, EqualityFilter):
                where.append(f"{check_identifier(query_filter.column)} = ?")
                bound.append(query_filter.value)
            elif isinstance(query_filter, HourOfDayFilter):
                where.append(f"CAST(strftime('%H', {self.time_column}) AS INTEGER) = ?")
                bound.append(int(query_filter.hour))
            else:
                raise InvalidFilterError(f"Unsupported filter: {query_filter!r}")

        select = self.select
        group_by = self.group_by
        if self.needs_group_column:
            if group_column is None:
                raise InvalidFilterError(f"Template {self.name} requires a group column")
            column = check_identifier(group_column)
            select = select.replace(GROUP_COLUMN_PLACEHOLDER, column)
            group_by = (group_by or "").replace(GROUP_COLUMN_PLACEHOLDER, column)

        clauses = [f"SELECT {select}", f"FROM {self.source}", "WHERE " + " AND ".join(where)]
        if group_by:
            clauses.append(f"GROUP BY {group_by}")
        if self.order_by:
            clauses.append(f"ORDER BY {self.order_by}")
        if self.limit is not None:
            clauses.append(f"LIMIT {int(self.limit)}")
        return "\n".join(clauses), bound


# -----------------------------------------------------------------------------
# Templates
# -----------------------------------------------------------------------------

_ORDER_COUNT = "COUNT(*) AS order_count"


def _orders_template(name: str, select: str, group_by: str, **kwargs: Any) -> QueryTemplate:
    return QueryTemplate(
        name=name,
        select=select,
        source="orders",
        time_column="created_at",
        group_by=group_by,
        **kwargs,
    )


def _price_buckets(column: str, alias: str) -> str:
    return f"""CASE
        WHEN {column} < 500 THEN '<500'
        WHEN {column} BETWEEN 500 AND 1000 THEN '500-1000'
        WHEN {column} BETWEEN 1000 AND 3000 THEN '1000-3000'
        ELSE '>3000'
    END AS {alias}"""


TEMPLATES: Dict[str, QueryTemplate] = {
    t.name: t
    for t in [
        # 1. Overall / baseline metrics
        QueryTemplate(
            name="OVERALL_SUMMARY",
            select=(
                "SUM(total_sessions) AS sessions, "
                "SUM(total_orders) AS orders, "
                "SUM(total_sales) AS gmv, "
                "(SUM(total_orders) * 1.0 / NULLIF(SUM(total_sessions), 0)) * 100 AS cvr"
            ),
            source="overall_summary",
            time_column="bucket_start",
        ),
        # 2. Order status & payment health
        _orders_template(
            "PAYMENT_GATEWAY_DISTRIBUTION",
            f"payment_gateway_names AS gateway, {_ORDER_COUNT}",
            "payment_gateway_names",
            order_by="order_count DESC",
        ),
        _orders_template(
            "PAYMENT_GATEWAY_PENDING_RATE",
            (
                "payment_gateway_names AS gateway, "
                "SUM(financial_status = 'pending') AS pending_orders, "
                "COUNT(*) AS total_orders, "
                "(SUM(financial_status = 'pending') * 1.0 / NULLIF(COUNT(*), 0)) * 100 AS pending_rate"
            ),
            "payment_gateway_names",
        ),
        # 3. Discount & promotion behaviour
        _orders_template(
            "DISCOUNT_USAGE_DISTRIBUTION",
            (
                "CASE WHEN discount_codes IS NULL OR discount_codes = '' "
                f"THEN 'no_discount' ELSE 'discounted' END AS discount_flag, {_ORDER_COUNT}"
            ),
            "discount_flag",
        ),
        _orders_template(
            "DISCOUNT_CODE_BREAKDOWN",
            f"discount_codes, {_ORDER_COUNT}",
            "discount_codes",
            predicates=("discount_codes IS NOT NULL",),
            order_by="order_count DESC",
        ),
        # 4. Product-level analysis
        _orders_template(
            "PRODUCT_CONVERSION_CONTRIBUTION",
            f"item_name AS product_name, {_ORDER_COUNT}",
            "item_name",
            order_by="order_count DESC",
            limit=20,
        ),
        _orders_template(
            "PRODUCT_PRICE_BUCKET_DISTRIBUTION",
            f"{_price_buckets('line_item_price', 'price_bucket')}, {_ORDER_COUNT}",
            "price_bucket",
            order_by="order_count DESC",
        ),
        # 5. AOV & mix shift
        _orders_template(
            "AOV_DISTRIBUTION",
            f"{_price_buckets('total_price', 'aov_bucket')}, {_ORDER_COUNT}",
            "aov_bucket",
        ),
        # 6. Customer type behaviour
        _orders_template(
            "NEW_VS_RETURNING_CUSTOMERS",
            (
                "CASE WHEN customer_id IS NULL THEN 'guest' ELSE 'returning' END "
                f"AS customer_type, {_ORDER_COUNT}"
            ),
            "customer_type",
        ),
        # 7. Time-based failure clustering
        _orders_template(
            "ORDER_FAILURE_TIME_CLUSTER",
            f"strftime('%Y-%m-%d %H:00:00', created_at) AS hour, {_ORDER_COUNT}",
            "1",
            predicates=("financial_status = 'pending'",),
            order_by="1",
        ),
        # 8. Acquisition & geography
        _orders_template("GEO_DISTRIBUTION", f"city, {_ORDER_COUNT}", "city", order_by="order_count DESC"),
        _orders_template(
            "UTM_SOURCE_DISTRIBUTION", f"utm_source, {_ORDER_COUNT}", "utm_source", order_by="order_count DESC"
        ),
        _orders_template(
            "UTM_CAMPAIGN_DISTRIBUTION",
            f"utm_campaign, {_ORDER_COUNT}",
            "utm_campaign",
            order_by="order_count DESC",
        ),
        # 9. Any other order column
        _orders_template(
            "DIMENSION_DISTRIBUTION",
            f"{GROUP_COLUMN_PLACEHOLDER} AS dimension_value, {_ORDER_COUNT}",
            GROUP_COLUMN_PLACEHOLDER,
            order_by="order_count DESC",
        ),
    ]
}


def get_template(name: str) -> QueryTemplate:
    """Fetch a whitelisted query template."""
    template = TEMPLATES.get(name)
    if template is None:
        raise UnknownTemplateError(f'Query template "{name}" not found or not allowed.')
    return template


# -----------------------------------------------------------------------------
# Dimension catalogue
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class DimensionSpec:
    """How a dimension is fetched and how a drill-down filters on it."""
    template: str
    filter_column: str
    group_column: Optional[str] = field(default=None)


DIMENSIONS: Dict[str, DimensionSpec] = {
    "payment_gateway": DimensionSpec("PAYMENT_GATEWAY_DISTRIBUTION", "payment_gateway_names"),
    "payment_failure_rate": DimensionSpec("PAYMENT_GATEWAY_PENDING_RATE", "payment_gateway_names"),
    "discount_usage": DimensionSpec("DISCOUNT_USAGE_DISTRIBUTION", "discount_codes"),
    "discount_code": DimensionSpec("DISCOUNT_CODE_BREAKDOWN", "discount_codes"),
    "product": DimensionSpec("PRODUCT_CONVERSION_CONTRIBUTION", "item_name"),
    "product_id": DimensionSpec("PRODUCT_CONVERSION_CONTRIBUTION", "item_name"),
    "price_bucket": DimensionSpec("PRODUCT_PRICE_BUCKET_DISTRIBUTION", "price_bucket"),
    "aov_bucket": DimensionSpec("AOV_DISTRIBUTION", "aov_bucket"),
    "customer_type": DimensionSpec("NEW_VS_RETURNING_CUSTOMERS", "customer_type"),
    "time_clustering": DimensionSpec("ORDER_FAILURE_TIME_CLUSTER", "created_at"),
    "city": DimensionSpec("GEO_DISTRIBUTION", "city"),
    "utm_source": DimensionSpec("UTM_SOURCE_DISTRIBUTION", "utm_source"),
    "utm_campaign": DimensionSpec("UTM_CAMPAIGN_DISTRIBUTION", "utm_campaign"),
}


def dimension_spec(dimension: str) -> DimensionSpec:
    """Catalogue entry for a dimension; unknown ones group by their own column."""
    spec = DIMENSIONS.get(dimension)
    if spec is not None:
        return spec
    return DimensionSpec("DIMENSION_DISTRIBUTION", dimension, group_column=dimension)
