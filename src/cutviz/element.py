"""
Abstract base class for dynamic (data-bound) elements.

Derived elements implement:

- ``init_connections()``: build the connections the current configuration
  needs (reset_connections subscribes to and fetches them)
- ``get_connections()``: every connection currently held
- ``remove_connections()``: drop the held connections
- ``is_loaded()``
- ``_get_connection(kind, field_id=None)``
- ``build_cut_args(cut_value, index=0)``

``reset_connections()`` is the only place connections are replaced; it stops
listening to the old set before building the new one, so a late completion of
an orphaned connection never reaches the element.
"""

from __future__ import annotations

import asyncio
import logging
import re
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Mapping
from typing import TYPE_CHECKING, Any

from attrs import asdict, define
from returns.maybe import Maybe
from returns.pipeline import is_successful
from returns.result import safe

from . import formatting
from .connection import Connection, ConnectionCache, ConnectionKey
from .constants import (
    AGGREGATION_TYPES,
    ALLOWED_FIELDS,
    BUCKET_FIELDS,
    BUCKET_INTERVALS,
    ELEMENT_TYPES,
    MEASURE_FORMATS,
    ROW_COUNT_AGGREGATION,
    ROW_COUNT_LABEL,
    SORTABLE_TYPES,
)
from .dimension import DimensionSlots, ElementDimension
from .signals import Signal, Subscription, cancel_all

if TYPE_CHECKING:
    from .dataset import Dataset, Field
    from .transport import Transport

logger = logging.getLogger(__name__)

# A valid parent marker in a hierarchical dimension id
VALID_PARENT = re.compile(r"\d+")


class ElementConfigError(ValueError):
    """Raised when an element configuration change is invalid."""


@define
class ElementSettings:
    measure: str | None = None
    aggregation: str | None = ROW_COUNT_AGGREGATION
    measure_label: str | None = ROW_COUNT_LABEL
    sort: str | None = None
    sort_direction: str | None = None
    format: dict[str, dict[str, str]] | None = None
    interactive: bool = True

    def update(self, **attrs: Any) -> None:
        for name, value in attrs.items():
            if name not in _SETTING_NAMES:
                raise ElementConfigError(f"Unknown element setting: {name}")
            setattr(self, name, value)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> ElementSettings:
        known = {name: value for name, value in (data or {}).items() if name in _SETTING_NAMES}
        return cls(**known)


_SETTING_NAMES = frozenset(("measure", "aggregation", "measure_label", "sort", "sort_direction", "format", "interactive"))

# Settings written to the persisted element state
STATE_SETTINGS: tuple[str, ...] = ("measure", "aggregation", "measure_label", "sort", "sort_direction", "format")


def is_multi_dimensional(element_type: str) -> bool:
    return element_type in ELEMENT_TYPES["multi_dimensional"]


@safe
def _parse_bucket(value: str) -> int | None:
    value = value.strip()
    return int(value) if value else None


class DynamicElement(ABC):
    """Element whose data comes from dataset connections.

    Signals:
        ready_signal: emitted with the element when every connection has loaded.
        add_cut_signal: emitted with ``{field_id: value}`` for the dataset to apply.
        remove_cut_signal: emitted with ``[field_id, ...]`` for the dataset to apply.
    """

    def __init__(
        self,
        *,
        id: str,
        type: str,
        dataset: Dataset,
        transport: Transport,
        label: str | None = None,
        settings: Mapping[str, Any] | None = None,
        dimensions: Iterable[ElementDimension | Mapping[str, Any]] | None = None,
        cache: ConnectionCache | None = None,
    ):
        self.id = id
        self.type = type
        self.label = label
        self.dataset = dataset
        self.transport = transport
        self.cache = cache

        settings = dict(settings or {})
        # Persisted element definitions keep dimensions inside their settings
        if dimensions is None:
            dimensions = settings.pop("dimensions", None)
        self.settings = ElementSettings.from_dict(settings)
        if settings.get("measure_label") is None:
            self.settings.measure_label = self._measure_label(self.settings.aggregation, self.settings.measure)
        self.dimensions = DimensionSlots(dimensions if dimensions is not None else self.default_dimensions())

        self.ready_signal = Signal("element:ready")
        self.add_cut_signal = Signal("addCut")
        self.remove_cut_signal = Signal("removeCut")

        self._listening: list[Subscription] = []
        self._generation = 0
        self._announced = -1

        self.reset_connections()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.id!r}, type={self.type!r})"

    # Connection protocol

    @abstractmethod
    def init_connections(self) -> None: ...

    @abstractmethod
    def get_connections(self) -> list[Connection]: ...

    @abstractmethod
    def remove_connections(self) -> None: ...

    @abstractmethod
    def is_loaded(self) -> bool: ...

    @abstractmethod
    def _get_connection(self, kind: str, field_id: str | None = None) -> Connection | None: ...

    @abstractmethod
    def build_cut_args(self, cut_value: Any, index: int = 0) -> Any: ...

    def _create_connection(self, kind: str, dimension: ElementDimension | None = None) -> Connection:
        """Build a connection for the current measure and dataset cut."""
        key = ConnectionKey(
            dataset_id=self.dataset.id,
            kind=kind,
            dimension=dimension.field if dimension else None,
            measure=self.settings.measure,
            aggregation=self.settings.aggregation,
            cut=self.dataset.cut,
            bucket=dimension.bucket if dimension else None,
            bucket_interval=dimension.bucket_interval if dimension else None,
        )
        return Connection(key, self.transport, cache=self.cache)

    def reset_connections(self) -> DynamicElement:
        """Replace every connection to match the current configuration.

        Raises:
            RuntimeError: without a running event loop; the element keeps
                its previous connections.
        """
        try:
            asyncio.get_running_loop()
        except RuntimeError as e:
            raise RuntimeError(f"{self!r} needs a running event loop to fetch its connections") from e

        self.stop_listening()
        self.remove_connections()
        self._generation += 1

        self.init_connections()
        connections = self.get_connections()
        for connection in connections:
            self._listening.append(connection.synced.connect(self._on_sync))
        # Fetch after subscribing; cache hits complete synchronously
        for connection in connections:
            connection.fetch()
        logger.debug("%r rebuilt %d connection(s)", self, len(connections))

        # Covers connections that were already loaded; otherwise the last
        # connection to load announces readiness through _on_sync
        if self._announced != self._generation:
            self.ready()
        return self

    def stop_listening(self) -> None:
        cancel_all(self._listening)
        self._listening = []

    def _on_sync(self, connection: Connection) -> None:
        if self._announced == self._generation:
            return
        self.ready()

    def ready(self) -> None:
        """Emit ``ready_signal`` if every connection has loaded."""
        if self.is_loaded():
            self._announced = self._generation
            self.ready_signal.emit(self)

    def destroy(self) -> None:
        """Release connections and every signal subscriber."""
        self.stop_listening()
        self.remove_connections()
        for signal in (self.ready_signal, self.add_cut_signal, self.remove_cut_signal):
            signal.clear()

    # Fields

    def _get_field(self, index: int | None = None) -> Field | None:
        return self.dataset.fields.get(self.dimensions.at(index).field)

    def _get_field_id(self, index: int | None = None) -> str | None:
        f = self._get_field(index)
        return f.id if f is not None else None

    def _get_measure_field(self) -> Field | None:
        return self.dataset.fields.get(self.settings.measure)

    def get_field_type(self, index: int | None = None) -> str | None:
        f = self._get_field(index)
        return f.type if f is not None else None

    def get_dimension_fields(self) -> list[Field]:
        """Fields allowed as a dimension for this element type."""
        predicate = ALLOWED_FIELDS.get(self.type, ALLOWED_FIELDS["default"])
        return self.dataset.fields.filter(predicate)

    def default_dimensions(self) -> list[ElementDimension]:
        """Dimension slots appropriate for this element's type."""
        if is_multi_dimensional(self.type):
            return [ElementDimension()]
        candidates = self.get_dimension_fields()
        return [ElementDimension(candidates[0].id if candidates else None)]

    def has_valid_arity(self) -> bool:
        if len(self.dimensions) != 1:
            return False
        degenerate = self.dimensions.at(0).field is None
        return degenerate if is_multi_dimensional(self.type) else not degenerate

    # Mutations

    def update_dimension(
        self, field_id: str, index: int = 0, bucketing: Mapping[str, Any] | None = None
    ) -> None:
        f = self.dataset.fields.get(field_id)
        if f is None:
            raise ElementConfigError(f"Unknown dimension field: {field_id}")
        bucketing = dict(bucketing or {}) if f.type in BUCKET_FIELDS else {}
        self.dimensions.at(index).set(f.id, bucketing.get("bucket"), bucketing.get("bucket_interval"))
        self.reset_connections()

    def update_dimensions(self, dimensions: Iterable[ElementDimension | Mapping[str, Any]] | None = None) -> None:
        """Replace the dimensions, or reconcile them with the element's type.

        Without ``dimensions`` the slots are rebuilt from the type defaults
        only when they do not fit the type (switching between mono and
        multi-dimensional); the previous cut is cleared in that case.
        """
        if dimensions is not None:
            self.dimensions.set(dimensions)
        elif not self.has_valid_arity():
            self.remove_cut()
            self.dimensions.reset(self.default_dimensions())
        self.reset_connections()

    def update_type(self, element_type: str) -> None:
        if is_multi_dimensional(element_type) != is_multi_dimensional(self.type):
            raise ElementConfigError(
                f"Cannot switch {self!r} to {element_type!r} in place; use ElementCollection.update_type()"
            )
        self.type = element_type
        self.update_dimensions()

    def update_measure(self, value: str) -> None:
        """Set measure and aggregation from ``"aggregation"`` or ``"aggregation:field"``."""
        aggregation, _, field_id = value.partition(":")
        self.settings.update(
            measure=field_id or None,
            aggregation=aggregation,
            measure_label=self._measure_label(aggregation, field_id),
        )
        self.reset_connections()

    def _measure_label(self, aggregation: str | None, field_id: str | None) -> str:
        """Label such as "Total Amount"; the row count label without a field."""
        if not field_id:
            return ROW_COUNT_LABEL
        aggregation_type = next((a for a in AGGREGATION_TYPES if a["name"] == aggregation), None)
        if aggregation_type is None:
            raise ElementConfigError(f"Unknown aggregation: {aggregation}")
        measure = self.dataset.fields.get(field_id)
        if measure is None:
            raise ElementConfigError(f"Unknown measure field: {field_id}")
        return f"{aggregation_type['label']} {measure.label or measure.id}"

    def update_sort(self, field_id: str) -> None:
        if self.settings.sort is not None and self.settings.sort == field_id:
            self.settings.sort_direction = "desc" if self.settings.sort_direction == "asc" else "asc"
        else:
            self.settings.update(sort=field_id, sort_direction="asc")
        self.ready()

    def update_bucketing_numeric(self, value: str, index: int = 0) -> None:
        """Set a custom bucket width; ``""`` or ``"0"`` clears bucketing."""
        bucket = self._bucket_or_raise(value)
        bucket_interval = None if bucket is None else "custom"
        if bucket == 0:
            bucket = bucket_interval = None
        self._update_bucketing(bucket, bucket_interval, index)

    def _bucket_or_raise(self, value: str) -> int | None:
        result = _parse_bucket(value)
        if not is_successful(result):
            raise ElementConfigError(f"Bucket size must be an integer, got {value!r}")
        return result.unwrap()

    def update_bucketing_date(self, value: str, index: int = 0) -> None:
        intervals = BUCKET_INTERVALS.get(self.get_field_type(index), {})
        self._update_bucketing(None, value if value in intervals else None, index)

    def _update_bucketing(self, bucket: int | None, bucket_interval: str | None, index: int = 0) -> None:
        if self.is_cut(index):
            self.remove_cut(index)
        dimension = self.dimensions.at(index)
        if self.get_field_type(index) not in BUCKET_FIELDS:
            bucket = bucket_interval = None
        dimension.update(bucket=bucket, bucket_interval=bucket_interval)
        self.reset_connections()

    def update_measure_format_type(self, format_name: str, value: str | None) -> None:
        """Switch a measure format between "value" and "percentage"."""
        fmt = dict(self.settings.format or {})
        fmt[format_name] = self.get_default_measure_format(format_name, value)
        self.settings.format = fmt
        self.ready()

    def update_measure_format_value(self, format_name: str, value: str) -> None:
        """Set the number format string of a measure format."""
        formatting.number_formatter(value)
        fmt = dict(self.settings.format or {})
        fmt[format_name] = {**self.get_measure_format(format_name), "format": value}
        self.settings.format = fmt
        self.ready()

    # Measure formats

    def get_measure_formats(self) -> dict[str, dict[str, str]]:
        names = MEASURE_FORMATS.get(self.type, MEASURE_FORMATS["default"])
        return {name: self.get_measure_format(name) for name in names}

    def get_default_measure_format(self, format_name: str, value: str | None = None) -> dict[str, str]:
        if value == "percentage":
            return {"type": "percentage", "format": ".2%"}
        measure = self._get_measure_field()
        # Row counts are integers too
        is_integer = measure is None or measure.type == "integer"
        if format_name == "tooltip":
            return {"type": "value", "format": ",f" if is_integer else ",.2f"}
        return {"type": "value", "format": "s" if is_integer else ".2s"}

    def get_measure_format(self, format_name: str) -> dict[str, str]:
        fmt = self.settings.format
        if fmt and fmt.get(format_name):
            return fmt[format_name]
        return self.get_default_measure_format(format_name)

    def get_measure_format_type(self, format_name: str | None = None) -> str:
        return self.get_measure_format(format_name or "scale")["type"]

    def get_measure_formatter(self, format_name: str) -> Callable[[Any], str]:
        return formatting.number_formatter(self.get_measure_format(format_name)["format"])

    def get_measure_label(self) -> str | None:
        return self.settings.measure_label

    def get_aggregation_types(self) -> tuple:
        return AGGREGATION_TYPES

    # Observations and labels

    def get_observation(self, index: int, field_id: str | None = None, format_name: str | None = None):
        connection = self._get_connection("observations", field_id)
        if connection is None:
            return None
        return connection.get_value(index, self.get_measure_format_type(format_name))

    def get_observation_by_id(self, observation_id: Any, field_id: str | None = None, format_name: str | None = None):
        connection = self._get_connection("observations", field_id)
        if connection is None:
            return None
        return connection.get_value_by_id(observation_id, self.get_measure_format_type(format_name))

    def get_observations(self, field_id: str | None = None, format_name: str | None = None) -> list[dict[str, Any]]:
        connection = self._get_connection("observations", field_id)
        if connection is None:
            return []
        return connection.get_data(
            self.get_measure_format_type(format_name),
            self.get_sort() if self.is_sortable() else None,
            self.settings.sort_direction,
        )

    def get_label(self, value: Mapping[str, Any], index: int = 0) -> dict[str, Any]:
        """Resolve display labels for an observation row."""
        f = self._get_field(index)
        dimension = self.dimensions.at(index)

        if f is None:
            return {**value, "label": self.get_measure_label()}

        if f.type == "date":
            interval = dimension.bucket_interval
            return {
                **value,
                "label": formatting.date_long(value["id"], interval),
                "short_label": formatting.date_short(value["id"], interval),
            }

        if f.type in ("integer", "float"):
            label = formatting.format_number(value["id"])
            if dimension.bucket is not None:
                label += " to " + formatting.format_number(value["id"] + dimension.bucket)
            return {**value, "label": label}

        # Unknown field or id: use the id as label
        return (
            Maybe.from_optional(self._get_connection("dimensions", f.id))
            .bind_optional(lambda connection: connection.get_value(value["id"]))
            .value_or({"label": value["id"], **value})
        )

    def get_label_value(self, value: Mapping[str, Any]) -> Any:
        return self.get_label(value)["label"]

    def get_labels(self, field_id: str | None = None) -> list[dict[str, Any]] | None:
        connection = self._get_connection("dimensions", field_id)
        return connection.get_data() if connection is not None else None

    # Sorting

    def is_sortable(self, index: int = 0) -> bool:
        return self.type in SORTABLE_TYPES

    def get_sort(self, index: int = 0) -> str | Callable[[Mapping[str, Any]], Any] | None:
        """Property or key function to sort observations with.

        ``None`` until a sort direction has been set.
        """
        if self.settings.sort_direction is None:
            return None
        if self.settings.sort is None or self.settings.sort != self._get_field_id(index):
            return "total"
        if self.get_field_type(index) in BUCKET_FIELDS:
            return "id"
        return self.get_label_value

    # Bucketing

    def get_bucket_intervals(self, index: int = 0) -> Mapping[str, str]:
        return BUCKET_INTERVALS.get(self.get_field_type(index), {})

    def can_be_bucketed(self, dimension_field: Field) -> bool:
        """True if this element is mono-dimensional and ``dimension_field`` is bucketable."""
        return self.type in ELEMENT_TYPES["mono_dimensional"] and dimension_field.type in BUCKET_FIELDS

    def is_bucketed(self, index: int = 0) -> bool:
        return self.dimensions.at(index).is_bucketed and self.get_field_type(index) in BUCKET_FIELDS

    # Types

    def get_types(self, mono: bool = True, multi: bool = True) -> list[str]:
        types: list[str] = []
        if mono:
            types.extend(ELEMENT_TYPES["mono_dimensional"])
        if multi:
            types.extend(ELEMENT_TYPES["multi_dimensional"])
        return types

    # Cuts

    def feature_click(self, datum: Mapping[str, Any]) -> bool:
        """Toggle the cut on, or drill into, the clicked feature.

        Returns True if a cut or drill-down was requested.
        """
        if not self.settings.interactive:
            return False

        observation = self.get_observation_by_id(datum["id"])
        if observation is None:
            return False

        field_id = self._get_field_id()
        hierarchy = self.dataset.get_dimension_hierarchy(field_id)

        if hierarchy is None:
            if self.has_cut_id(datum["id"]):
                self.remove_cut()
            else:
                self.add_cut(self.build_cut_args(datum["id"]))
            return True

        match = VALID_PARENT.search(str(datum["id"]))
        if match is None:
            return False
        self.dataset.drill_down(field_id, observation.get(hierarchy["level_field"]), int(match.group(0)))
        return True

    def add_cut(self, value: Any, index: int = 0) -> None:
        """Ask the dataset to cut this element's dimension on ``value``."""
        self.add_cut_signal.emit({self._get_field_id(index): value})

    def remove_cut(self, index: int | None = None) -> None:
        """Ask the dataset to drop the cut on one, or every, dimension."""
        if index is not None:
            field_ids = [self._get_field_id(index)]
        else:
            field_ids = self.dimensions.fields()
        self.remove_cut_signal.emit([f for f in field_ids if f is not None])

    def get_cut(self, index: int = 0) -> Any:
        return self.dataset.get_cut(self._get_field_id(index))

    def is_cut(self, index: int | None = None) -> bool:
        """True if the dimension at ``index`` is cut; without an index, if any is."""
        if index is not None or len(self.dimensions) == 1:
            return self.dataset.is_cut(self._get_field_id(index))
        return any(self.is_cut(i) for i in range(len(self.dimensions)))

    def has_cut_id(self, value: Any, index: int = 0) -> bool:
        return self.dataset.has_cut_id(self._get_field_id(index), self.build_cut_args(value, index))

    # State

    def get_state(self) -> dict[str, Any]:
        settings = self.settings.to_dict()
        return {
            "type": self.type,
            "settings": {name: settings[name] for name in STATE_SETTINGS},
            "dimensions": self.dimensions.to_list(),
        }

    def set_state(self, state: Mapping[str, Any]) -> None:
        """Restore a state from ``get_state()``; connections are not reset."""
        self.type = state.get("type", self.type)
        self.settings.update(**dict(state.get("settings") or {}))
        if state.get("dimensions") is not None:
            self.dimensions.set(state["dimensions"])

    def to_dict(self) -> dict[str, Any]:
        """Persisted element definition."""
        settings = self.settings.to_dict()
        settings["dimensions"] = self.dimensions.to_list()
        return {"id": self.id, "type": self.type, "label": self.label, "settings": settings}
