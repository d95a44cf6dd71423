"""
Dataset collaborator: field catalog, cut storage and drill-down state.

Elements never mutate a Dataset directly. They emit cut intents which the
ElementCollection forwards to ``add_cut`` / ``remove_cut``; the dataset then
broadcasts ``cut_changed`` so every element can rebuild its connections.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Iterator, Mapping, Sequence
from typing import Any, Literal

from attrs import define, field, frozen

from .signals import Signal

logger = logging.getLogger(__name__)

FieldType = Literal["string", "integer", "float", "date", "geo"]

FIELD_TYPES: tuple[str, ...] = ("string", "integer", "float", "date", "geo")


class DatasetError(Exception):
    """Raised when dataset metadata is invalid."""


@frozen(kw_only=True, slots=True)
class Field:
    id: str
    type: FieldType = "string"
    label: str | None = None

    def __attrs_post_init__(self):
        if self.type not in FIELD_TYPES:
            raise DatasetError(f"Unknown field type {self.type!r} for field {self.id!r}")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Field:
        return cls(
            id=data["id"],
            type=data.get("type", "string"),
            label=data.get("label", data["id"]),
        )

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "type": self.type, "label": self.label}


class FieldCatalog:
    """Ordered, read-only collection of fields keyed by id."""

    def __init__(self, fields: Iterable[Field | Mapping[str, Any]] = ()):
        self._fields: dict[str, Field] = {}
        for f in fields:
            f = f if isinstance(f, Field) else Field.from_dict(f)
            if f.id in self._fields:
                raise DatasetError(f"Duplicate field id: {f.id}")
            self._fields[f.id] = f

    def get(self, field_id: str | None) -> Field | None:
        return self._fields.get(field_id) if field_id is not None else None

    def filter(self, predicate: Callable[[Field], bool]) -> list[Field]:
        return [f for f in self._fields.values() if predicate(f)]

    def __iter__(self) -> Iterator[Field]:
        return iter(self._fields.values())

    def __len__(self) -> int:
        return len(self._fields)

    def __contains__(self, field_id: object) -> bool:
        return field_id in self._fields


@define(eq=False)
class Dataset:
    """In-memory dataset state shared by all elements of a visualisation.

    Args:
        id: Dataset identifier used in connection URLs.
        fields: Field catalog (or iterable of fields / field dicts).
        hierarchies: Optional ``{field_id: {"level_field": ..., ...}}`` for
            drillable dimensions.
    """

    id: str
    fields: FieldCatalog = field(converter=lambda f: f if isinstance(f, FieldCatalog) else FieldCatalog(f))
    hierarchies: dict[str, dict[str, Any]] = field(factory=dict)
    cut: dict[str, Any] = field(factory=dict, init=False)
    drill_path: dict[str, list[tuple[Any, Any]]] = field(factory=dict, init=False)
    cut_changed: Signal = field(init=False, factory=lambda: Signal("cut_changed"))
    drilled: Signal = field(init=False, factory=lambda: Signal("drilled"))

    def is_cut(self, field_id: str | None) -> bool:
        return field_id is not None and field_id in self.cut

    def get_cut(self, field_id: str | None) -> Any:
        return self.cut.get(field_id) if field_id is not None else None

    def has_cut_id(self, field_id: str | None, value: Any) -> bool:
        current = self.get_cut(field_id)
        if current is None:
            return False
        if isinstance(current, list):
            return value in current
        return current == value

    def add_cut(self, cut: Mapping[str, Any], exclusive: bool = True) -> None:
        """Apply a cut intent.

        With ``exclusive`` the value replaces the field's current cut,
        otherwise it is added to the field's set of cut values.
        """
        for field_id, value in cut.items():
            if exclusive or field_id not in self.cut:
                self.cut[field_id] = value
                continue
            current = self.cut[field_id]
            values = list(current) if isinstance(current, list) else [current]
            if value not in values:
                values.append(value)
            self.cut[field_id] = values
        logger.debug("Dataset %s cut is now %s", self.id, self.cut)
        self.cut_changed.emit(self)

    def remove_cut(self, field_ids: Sequence[str], values: Sequence[Any] | None = None) -> None:
        """Remove the cut on ``field_ids``, or only ``values`` when given."""
        changed = False
        for i, field_id in enumerate(field_ids):
            if field_id not in self.cut:
                continue
            if values is None:
                del self.cut[field_id]
                changed = True
                continue
            current = self.cut[field_id]
            remaining = [v for v in (current if isinstance(current, list) else [current]) if v != values[i]]
            if remaining:
                self.cut[field_id] = remaining if len(remaining) > 1 else remaining[0]
            else:
                del self.cut[field_id]
            changed = True
        if changed:
            logger.debug("Dataset %s cut is now %s", self.id, self.cut)
            self.cut_changed.emit(self)

    def get_dimension_hierarchy(self, field_id: str | None) -> dict[str, Any] | None:
        return self.hierarchies.get(field_id) if field_id is not None else None

    def drill_down(self, field_id: str, level_value: Any, parent_id: Any) -> None:
        if field_id not in self.hierarchies:
            raise DatasetError(f"Field {field_id!r} has no hierarchy")
        self.drill_path.setdefault(field_id, []).append((level_value, parent_id))
        logger.debug("Dataset %s drilled %s to %s/%s", self.id, field_id, level_value, parent_id)
        self.drilled.emit(self, field_id, level_value, parent_id)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Dataset:
        return cls(
            id=data["id"],
            fields=data.get("fields", ()),
            hierarchies=dict(data.get("hierarchies") or {}),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "fields": [f.to_dict() for f in self.fields],
            "hierarchies": dict(self.hierarchies),
        }
