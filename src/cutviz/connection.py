"""
Connections: addressable, asynchronously fetched data slices backing an element.

A connection is identified by its ConnectionKey. Two connections with equal
keys address the same remote resource and serialize to the same URL, which is
also what the optional ConnectionCache is keyed by.
"""

from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict
from collections.abc import Callable, Mapping
from decimal import Decimal
from operator import itemgetter
from typing import TYPE_CHECKING, Any, Literal
from urllib.parse import urlencode

import pandas as pd
from attrs import field, frozen
from toolz import keyfilter

from .config import options
from .signals import Signal
from .transport import TransportError

if TYPE_CHECKING:
    from .transport import Transport

logger = logging.getLogger(__name__)

ConnectionKind = Literal["dimensions", "observations"]


def _freeze(value: Any) -> Any:
    return tuple(value) if isinstance(value, list | tuple | set | frozenset) else value


def _freeze_cut(cut: Mapping[str, Any] | tuple | None) -> tuple[tuple[str, Any], ...]:
    """Hashable, insertion-ordered form of a cut mapping."""
    if not cut:
        return ()
    items = cut.items() if isinstance(cut, Mapping) else cut
    return tuple((field_id, _freeze(value)) for field_id, value in items)


@frozen(kw_only=True)
class ConnectionKey:
    dataset_id: str
    kind: ConnectionKind
    dimension: str | None = None
    measure: str | None = None
    aggregation: str | None = None
    cut: tuple[tuple[str, Any], ...] = field(default=(), converter=_freeze_cut)
    bucket: int | None = None
    bucket_interval: str | None = None

    @property
    def path(self) -> str:
        path = f"/datasets/{self.dataset_id}/{self.kind}"
        return f"{path}/{self.dimension}" if self.dimension else path

    @property
    def params(self) -> list[tuple[str, str]]:
        """Query parameters in their fixed order.

        Cut pairs first (the connection's own dimension excluded, insertion
        order, one pair per value), then aggregation, measure, bucket and
        bucket interval, each omitted when unset.
        """
        cut = keyfilter(lambda field_id: field_id != self.dimension, dict(self.cut))
        pairs = [
            (field_id, str(v))
            for field_id, value in cut.items()
            for v in (value if isinstance(value, tuple) else (value,))
        ]
        for name in ("aggregation", "measure", "bucket", "bucket_interval"):
            value = getattr(self, name)
            if value is not None:
                pairs.append((name, str(value)))
        return pairs

    def url(self, prefix: str | None = None) -> str:
        prefix = options.connections.url_prefix if prefix is None else prefix
        params = self.params
        return f"{prefix}{self.path}?{urlencode(params)}" if params else f"{prefix}{self.path}"


class ConnectionCache(OrderedDict):
    """Fetched payloads keyed by connection URL, least recently used first.

    Holds at most ``max_size`` payloads (``options.connections.cache_size``
    by default); storing past that evicts the least recently used one.
    """

    def __init__(self, max_size: int | None = None):
        super().__init__()
        self.max_size = options.connections.cache_size if max_size is None else max_size

    def lookup(self, key: ConnectionKey) -> Any:
        url = key.url()
        if url not in self:
            return None
        self.move_to_end(url)
        return self[url]

    def store(self, key: ConnectionKey, payload: Any) -> None:
        url = key.url()
        self[url] = payload
        self.move_to_end(url)
        while len(self) > self.max_size:
            self.popitem(last=False)


class Connection:
    """A single data slice fetched once through a transport.

    ``synced`` is emitted with the connection when its data has loaded.
    """

    def __init__(self, key: ConnectionKey, transport: Transport, cache: ConnectionCache | None = None):
        self.key = key
        self.transport = transport
        self.cache = cache
        self.loaded = False
        self.data: Any = None
        self.error: Exception | None = None
        self.synced = Signal("sync")
        self._task: asyncio.Task | None = None
        self._fetching = False

    def __repr__(self) -> str:
        return f"Connection({self.url()!r}, loaded={self.loaded})"

    @property
    def kind(self) -> ConnectionKind:
        return self.key.kind

    @property
    def dimension(self) -> str | None:
        return self.key.dimension

    def url(self) -> str:
        return self.key.url()

    def fetch(self) -> asyncio.Task | None:
        """Start loading; completes synchronously on a cache hit.

        Returns the pending task, or ``None`` when served from the cache.

        Raises:
            RuntimeError: if called more than once, or without a running
                event loop on a cache miss.
        """
        if self._fetching:
            raise RuntimeError(f"{self!r} was already fetched")

        if self.cache is not None and self.key.url() in self.cache:
            self._fetching = True
            logger.debug("Serving %s from cache", self.url())
            self._complete(self.cache.lookup(self.key))
            return None

        # Raises before marking the connection, so it can be fetched later
        loop = asyncio.get_running_loop()
        self._fetching = True
        self._task = loop.create_task(self._load())
        return self._task

    async def _load(self) -> None:
        try:
            payload = await self.transport.fetch(self.key.path, self.key.params)
        except TransportError as e:
            self.error = e
            logger.error("Failed to load %s: %s", self.url(), e, exc_info=True)
            return
        if self.cache is not None:
            self.cache.store(self.key, payload)
        self._complete(payload)

    def _complete(self, payload: Any) -> None:
        self.data = self.parse(payload)
        self.loaded = True
        logger.debug("Loaded %s", self.url())
        self.synced.emit(self)

    def parse(self, payload: Any) -> Any:
        """Normalize a transport payload.

        Payloads may be wrapped in a ``{dimension: data}`` envelope. Dimension
        data becomes an ``id -> record`` mapping, observation data a list of
        rows.
        """
        if isinstance(payload, Mapping) and self.dimension is not None and self.dimension in payload:
            payload = payload[self.dimension]
        if self.kind == "dimensions":
            if isinstance(payload, Mapping):
                return dict(payload)
            return {record["id"]: record for record in payload or ()}
        if isinstance(payload, Mapping):
            return list(payload.values())
        return list(payload or ())

    def get_value(self, index_or_id: Any, format_type: str | None = None) -> dict[str, Any] | None:
        """Label record by id (dimensions) or formatted row by position (observations)."""
        if self.data is None:
            return None
        if self.kind == "dimensions":
            record = self.data.get(index_or_id)
            if record is None and not isinstance(index_or_id, str):
                record = self.data.get(str(index_or_id))
            return record
        if not 0 <= index_or_id < len(self.data):
            return None
        return self._format_row(self.data[index_or_id], format_type, self._grand_total(format_type))

    def get_value_by_id(self, id: Any, format_type: str | None = None) -> dict[str, Any] | None:
        for row in self.data or ():
            if row.get("id") == id:
                return self._format_row(row, format_type, self._grand_total(format_type))
        return None

    def get_data(
        self,
        format_type: str | None = None,
        sort_key: str | Callable[[dict[str, Any]], Any] | None = None,
        sort_direction: str | None = None,
    ) -> list[dict[str, Any]]:
        if self.data is None:
            return []
        if self.kind == "dimensions":
            return list(self.data.values())

        total = self._grand_total(format_type)
        rows = [self._format_row(row, format_type, total) for row in self.data]
        if sort_key is None:
            return rows
        key = sort_key if callable(sort_key) else itemgetter(sort_key)
        rows = sorted(rows, key=key)
        if sort_direction == "desc":
            rows.reverse()
        return rows

    def get_total(self) -> float:
        """Sum of ``total`` over all rows, accumulated in decimal."""
        if self.kind != "observations" or not self.data:
            return 0.0
        total = sum((Decimal(str(row.get("total") or 0)) for row in self.data), Decimal(0))
        return float(total)

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(self.get_data())

    def _grand_total(self, format_type: str | None) -> float | None:
        return self.get_total() if format_type == "percentage" else None

    def _format_row(self, row: Mapping[str, Any], format_type: str | None, total: float | None) -> dict[str, Any]:
        row = dict(row)
        if format_type == "percentage" and row.get("total") is not None:
            row["total"] = row["total"] / total if total else 0.0
        return row
