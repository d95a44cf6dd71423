"""Concrete element variants."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from .connection import Connection
from .constants import DIMENSION_FIELDS
from .element import DynamicElement
from .formatting import date_range, format_range
from .signals import Signal


class DimensionalElement(DynamicElement):
    """Element grouped by one dimension (bar, column, line, table, geo, ...).

    Each dimension slot gets an "observations" connection for its values and,
    for string and geo fields, a "dimensions" connection for its labels.
    """

    def init_connections(self) -> None:
        self._connections: dict[tuple[str, str], Connection] = {}
        for dimension in self.dimensions:
            f = self.dataset.fields.get(dimension.field)
            if f is None:
                continue
            if f.type in DIMENSION_FIELDS:
                self._connections[("dimensions", f.id)] = self._create_connection("dimensions", dimension)
            self._connections[("observations", f.id)] = self._create_connection("observations", dimension)

    def get_connections(self) -> list[Connection]:
        return list(self._connections.values())

    def remove_connections(self) -> None:
        self._connections = {}

    def is_loaded(self) -> bool:
        return all(connection.loaded for connection in self.get_connections())

    def _get_connection(self, kind: str, field_id: str | None = None) -> Connection | None:
        return self._connections.get((kind, field_id or self._get_field_id()))

    def build_cut_args(self, cut_value: Any, index: int = 0) -> Any:
        """Cut value for a clicked id; bucketed dimensions cut on the bucket's range."""
        dimension = self.dimensions.at(index)
        field_type = self.get_field_type(index)
        if field_type in ("integer", "float") and dimension.bucket is not None:
            return format_range(cut_value, cut_value + dimension.bucket)
        if field_type == "date" and dimension.bucket_interval is not None:
            return format_range(*date_range(cut_value, dimension.bucket_interval))
        return cut_value

    def is_sortable(self, index: int = 0) -> bool:
        """Sortable element types, except a line chart over a date dimension.

        A line over dates always runs chronologically; this rule belongs to
        this variant only.
        """
        return super().is_sortable(index) and not (self.type == "line" and self.get_field_type(index) == "date")


class MeasureElement(DynamicElement):
    """Summary element: one aggregate of the measure, no grouping."""

    _connection: Connection | None = None

    def init_connections(self) -> None:
        self._connection = self._create_connection("observations")

    def get_connections(self) -> list[Connection]:
        return [self._connection] if self._connection is not None else []

    def remove_connections(self) -> None:
        self._connection = None

    def is_loaded(self) -> bool:
        return self._connection is not None and self._connection.loaded

    def _get_connection(self, kind: str, field_id: str | None = None) -> Connection | None:
        return self._connection if kind == "observations" else None

    def build_cut_args(self, cut_value: Any, index: int = 0) -> Any:
        return cut_value

    def get_total(self) -> float:
        return self._connection.get_total() if self._connection is not None else 0.0

    def get_formatted_total(self, format_name: str = "tooltip") -> str:
        return self.get_measure_formatter(format_name)(self.get_total())


class StaticElement:
    """Element without data, such as a text block. Always ready."""

    def __init__(self, *, id: str, type: str, label: str | None = None, settings: Mapping[str, Any] | None = None):
        self.id = id
        self.type = type
        self.label = label
        self.settings = dict(settings or {})
        self.ready_signal = Signal("element:ready")

    def __repr__(self) -> str:
        return f"StaticElement(id={self.id!r}, type={self.type!r})"

    def is_loaded(self) -> bool:
        return True

    def ready(self) -> None:
        self.ready_signal.emit(self)

    def reset_connections(self) -> StaticElement:
        self.ready()
        return self

    def destroy(self) -> None:
        self.ready_signal.clear()

    def get_state(self) -> dict[str, Any]:
        return {"type": self.type, "settings": dict(self.settings)}

    def set_state(self, state: Mapping[str, Any]) -> None:
        self.type = state.get("type", self.type)
        self.settings = dict(state.get("settings") or self.settings)

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "type": self.type, "label": self.label, "settings": dict(self.settings)}
