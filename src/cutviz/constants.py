"""
Static lookup tables shared by every element.

All tables are immutable (ibis ``FrozenDict`` and tuples) and built once at
import time.
"""

from __future__ import annotations

from ibis.common.collections import FrozenDict

# Allowed element types mapped by their dimensionality
ELEMENT_TYPES: FrozenDict = FrozenDict(
    {
        "mono_dimensional": ("bar", "bubble", "column", "donut", "line", "table", "geo"),
        "multi_dimensional": ("summary",),
    }
)


def _is_geo(field) -> bool:
    return field.type == "geo"


def _is_string(field) -> bool:
    return field.type == "string"


def _never(field) -> bool:
    return False


def _always(field) -> bool:
    return True


# Field predicates restricting which fields each element type can use as a
# dimension. Unlisted types use "default".
ALLOWED_FIELDS: FrozenDict = FrozenDict(
    {
        "geo": _is_geo,
        "navigation": _is_string,
        "summary": _never,
        "default": _always,
    }
)

# Field types with an associated "dimensions" connection holding labels.
# Numeric and date fields use observation ids as labels.
DIMENSION_FIELDS: tuple[str, ...] = ("string", "geo")

# Measure aggregation types
AGGREGATION_TYPES: tuple[FrozenDict, ...] = (
    FrozenDict({"name": "sum", "label": "Total"}),
    FrozenDict({"name": "mean", "label": "Average"}),
)

ROW_COUNT_AGGREGATION = "count"
ROW_COUNT_LABEL = "Total count of rows"

# Field types whose values can be bucketed; cut values on those fields are
# ranges of values.
BUCKET_FIELDS: tuple[str, ...] = ("date", "float", "integer")

# Bucket intervals available per field type
BUCKET_INTERVALS: FrozenDict = FrozenDict(
    {
        "date": FrozenDict(
            {
                "year": "Year",
                "quarter": "Quarter",
                "month": "Month",
                "week": "Week",
                "day": "Day",
            }
        ),
        "integer": FrozenDict({"custom": "Custom"}),
        "float": FrozenDict({"custom": "Custom"}),
    }
)

# Allowed measure formats for different element types
MEASURE_FORMATS: FrozenDict = FrozenDict(
    {
        "donut": ("tooltip",),
        "summary": ("tooltip",),
        "table": ("tooltip",),
        "default": ("scale", "tooltip"),
    }
)

# Element types whose observations can be reordered
SORTABLE_TYPES: tuple[str, ...] = ("bar", "column", "table", "line")

SORT_DIRECTIONS: tuple[str, ...] = ("asc", "desc")

__all__ = [
    "AGGREGATION_TYPES",
    "ALLOWED_FIELDS",
    "BUCKET_FIELDS",
    "BUCKET_INTERVALS",
    "DIMENSION_FIELDS",
    "ELEMENT_TYPES",
    "MEASURE_FORMATS",
    "ROW_COUNT_AGGREGATION",
    "ROW_COUNT_LABEL",
    "SORTABLE_TYPES",
    "SORT_DIRECTIONS",
]
