"""
ElementCollection: the elements of one visualisation and their wiring.

The collection is the only place where elements and the dataset meet. Cut
intents emitted by an element are forwarded to the dataset, and every cut
change on the dataset rebuilds the connections of all dynamic elements.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Mapping
from pathlib import Path
from typing import TYPE_CHECKING, Any

from ibis.common.collections import FrozenDict

from .config import options
from .connection import ConnectionCache
from .dataset import Dataset
from .element import DynamicElement, ElementConfigError
from .elements import DimensionalElement, MeasureElement, StaticElement
from .signals import Subscription, cancel_all
from .utils import read_yaml_file, write_yaml_file

if TYPE_CHECKING:
    from .transport import Transport

logger = logging.getLogger(__name__)

Element = DynamicElement | StaticElement

# Element types served by a dedicated class; everything else is dimensional
ELEMENT_VARIANTS: FrozenDict = FrozenDict(
    {
        "summary": MeasureElement,
        "text": StaticElement,
    }
)


def element_class(element_type: str) -> type:
    return ELEMENT_VARIANTS.get(element_type, DimensionalElement)


class ElementCollection:
    """Ordered elements sharing one dataset and transport.

    Args:
        dataset: Dataset whose cut all elements follow.
        transport: Transport used by every dynamic element.
        elements: Optional element definitions to add, in order.
        cache: Connection cache shared by the elements. A new cache is created
            when ``options.connections.cache`` is enabled and none is given.
    """

    def __init__(
        self,
        dataset: Dataset,
        transport: Transport,
        elements: Iterable[Mapping[str, Any]] = (),
        cache: ConnectionCache | None = None,
    ):
        self.dataset = dataset
        self.transport = transport
        if cache is None and options.connections.cache:
            cache = ConnectionCache()
        self.cache = cache

        self._elements: dict[str, Element] = {}
        self._wiring: dict[str, list[Subscription]] = {}
        self._dataset_subscription = dataset.cut_changed.connect(self._on_cut_changed)

        for attrs in elements:
            self.add(attrs)

    def __repr__(self) -> str:
        return f"ElementCollection(dataset={self.dataset.id!r}, elements={list(self._elements)!r})"

    def __iter__(self) -> Iterator[Element]:
        return iter(list(self._elements.values()))

    def __len__(self) -> int:
        return len(self._elements)

    def __contains__(self, element_id: object) -> bool:
        return element_id in self._elements

    def __getitem__(self, element_id: str) -> Element:
        try:
            return self._elements[element_id]
        except KeyError:
            raise KeyError(f"Unknown element: {element_id}") from None

    def get(self, element_id: str) -> Element | None:
        return self._elements.get(element_id)

    # Building and wiring

    def _build(self, attrs: Mapping[str, Any]) -> Element:
        cls = element_class(attrs["type"])
        common = {
            "id": attrs["id"],
            "type": attrs["type"],
            "label": attrs.get("label"),
            "settings": attrs.get("settings"),
        }
        if not issubclass(cls, DynamicElement):
            return cls(**common)

        element = cls(
            **common,
            dimensions=attrs.get("dimensions"),
            dataset=self.dataset,
            transport=self.transport,
            cache=self.cache,
        )
        self._wiring[element.id] = [
            element.add_cut_signal.connect(self._on_add_cut),
            element.remove_cut_signal.connect(self._on_remove_cut),
        ]
        return element

    def _unwire(self, element: Element) -> None:
        cancel_all(self._wiring.pop(element.id, ()))
        element.destroy()

    def _replace(self, element: Element, attrs: Mapping[str, Any]) -> Element:
        """Swap ``element`` for a new one built from ``attrs``, keeping its position."""
        self._unwire(element)
        replacement = self._build(attrs)
        self._elements[element.id] = replacement
        logger.debug("Replaced %r with %r", element, replacement)
        return replacement

    def add(self, attrs: Mapping[str, Any]) -> Element:
        """Build an element from its definition and wire it to the dataset.

        ``attrs`` holds ``id``, ``type`` and optionally ``label``,
        ``settings`` and ``dimensions`` (also accepted inside ``settings``).
        """
        if attrs["id"] in self._elements:
            raise ElementConfigError(f"Duplicate element id: {attrs['id']}")
        element = self._build(attrs)
        self._elements[element.id] = element
        logger.debug("Added %r", element)
        return element

    def remove(self, element_id: str) -> Element:
        element = self[element_id]
        del self._elements[element_id]
        self._unwire(element)
        logger.debug("Removed %r", element)
        return element

    def close(self) -> None:
        """Remove every element and stop following the dataset."""
        for element_id in list(self._elements):
            self.remove(element_id)
        self._dataset_subscription.cancel()
        if self.cache is not None:
            self.cache.clear()

    def _on_add_cut(self, cut: Mapping[str, Any]) -> None:
        self.dataset.add_cut(cut)

    def _on_remove_cut(self, field_ids: list[str]) -> None:
        if field_ids:
            self.dataset.remove_cut(field_ids)

    def _on_cut_changed(self, dataset: Dataset) -> None:
        for element in self:
            if isinstance(element, DynamicElement):
                element.reset_connections()

    # Type changes

    def update_type(self, element_id: str, element_type: str) -> Element:
        """Change an element's type, rebuilding it when the variant changes.

        A rebuilt element keeps its settings but gets the default dimensions
        of its new type; the old element's cut is removed first.
        """
        element = self[element_id]
        if element_class(element_type) is type(element):
            if isinstance(element, DynamicElement):
                element.update_type(element_type)
            else:
                element.set_state({"type": element_type})
            return element

        if isinstance(element, DynamicElement):
            element.remove_cut()
        attrs = element.to_dict()
        attrs["type"] = element_type
        attrs["settings"] = dict(attrs["settings"])
        attrs["settings"].pop("dimensions", None)
        return self._replace(element, attrs)

    # State

    def get_state(self) -> dict[str, dict[str, Any]]:
        return {element.id: element.get_state() for element in self}

    def set_state(self, states: Mapping[str, Mapping[str, Any]]) -> None:
        """Restore element states from ``get_state()``.

        Ids without a matching element are ignored. Each restored element
        rebuilds its connections.
        """
        for element in self:
            state = states.get(element.id)
            if state is None:
                continue
            element_type = state.get("type", element.type)
            if element_class(element_type) is not type(element):
                attrs = element.to_dict()
                settings = dict(state.get("settings") or {})
                if "measure" in settings and "measure_label" not in settings:
                    settings["measure_label"] = None
                attrs["settings"] = {**attrs["settings"], **settings}
                attrs["settings"].pop("dimensions", None)
                attrs["type"] = element_type
                attrs["dimensions"] = state.get("dimensions")
                self._replace(element, attrs)
                continue
            element.set_state(state)
            element.reset_connections()

    # Persistence

    def to_dicts(self) -> list[dict[str, Any]]:
        return [element.to_dict() for element in self]

    def save(self, path: str | Path) -> Path:
        """Write the dataset and element definitions to a YAML file."""
        content = {
            "dataset": self.dataset.to_dict(),
            "elements": self.to_dicts(),
        }
        return write_yaml_file(path, content)

    @classmethod
    def from_yaml(
        cls,
        path: str | Path,
        transport: Transport,
        dataset: Dataset | None = None,
        cache: ConnectionCache | None = None,
    ) -> ElementCollection:
        """Load a collection saved with ``save()``.

        Args:
            path: YAML file with an ``elements`` list and, unless ``dataset``
                is given, a ``dataset`` definition.
            transport: Transport for the loaded elements.
            dataset: Dataset to attach the elements to instead of the one
                defined in the file.
        """
        content = read_yaml_file(path)
        if dataset is None:
            if "dataset" not in content:
                raise ValueError(f"{path} has no dataset definition and no dataset was given")
            dataset = Dataset.from_dict(content["dataset"])
        return cls(dataset, transport, elements=content.get("elements") or (), cache=cache)


__all__ = ["ELEMENT_VARIANTS", "Element", "ElementCollection", "element_class"]
