from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from typing import Any

from attrs import asdict, define


@define
class ElementDimension:
    """One dimension slot of an element: a field and optional bucketing.

    ``field`` is ``None`` for the degenerate slot held by multi-dimensional
    elements.
    """

    field: str | None = None
    bucket: int | None = None
    bucket_interval: str | None = None

    def set(self, field: str | None, bucket: int | None = None, bucket_interval: str | None = None) -> None:
        self.field = field
        self.bucket = bucket
        self.bucket_interval = bucket_interval

    def update(self, **attrs: Any) -> None:
        self.set(
            attrs.get("field", self.field),
            attrs.get("bucket", self.bucket),
            attrs.get("bucket_interval", self.bucket_interval),
        )

    @property
    def is_bucketed(self) -> bool:
        return self.bucket is not None or self.bucket_interval is not None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: ElementDimension | Mapping[str, Any]) -> ElementDimension:
        if isinstance(data, ElementDimension):
            return cls(data.field, data.bucket, data.bucket_interval)
        field = data.get("field")
        if isinstance(field, Mapping):
            field = field.get("id")
        return cls(field, data.get("bucket"), data.get("bucket_interval"))


class DimensionSlots:
    """Ordered, bounds-checked container of an element's dimensions."""

    def __init__(self, dimensions: Iterable[ElementDimension | Mapping[str, Any]] = ()):
        self._slots: list[ElementDimension] = []
        self.set(dimensions)

    def set(self, dimensions: Iterable[ElementDimension | Mapping[str, Any]]) -> None:
        self._slots = [ElementDimension.from_dict(d) for d in dimensions]

    reset = set

    def at(self, index: int | None = None) -> ElementDimension:
        index = index or 0
        if not 0 <= index < len(self._slots):
            raise IndexError(f"Dimension index {index} out of range for {len(self._slots)} slot(s)")
        return self._slots[index]

    def fields(self) -> list[str]:
        return [d.field for d in self._slots if d.field is not None]

    def to_list(self) -> list[dict[str, Any]]:
        return [d.to_dict() for d in self._slots]

    def __iter__(self) -> Iterator[ElementDimension]:
        return iter(self._slots)

    def __len__(self) -> int:
        return len(self._slots)

    def __repr__(self) -> str:
        return f"DimensionSlots({self._slots!r})"
