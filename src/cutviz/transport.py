"""
Transports answer connection requests.

A transport receives a connection path (``/datasets/{id}/{kind}[/{dimension}]``)
and its ordered query parameters, and returns the decoded payload:

- ``dimensions``: mapping ``id -> {"id": ..., "label": ...}``
- ``observations``: list of ``{"id": ..., "total": ...}`` rows

``HttpTransport`` talks to a remote dataset API; ``IbisTransport`` answers the
same requests from local Ibis tables.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Mapping, Sequence
from datetime import date, datetime
from operator import itemgetter
from typing import Any, Protocol

import httpx
import ibis
import ibis.expr.datatypes as dt
import ibis.expr.types as ir
import pandas as pd
from ibis.common.exceptions import IbisError
from toolz import groupby

from .config import options
from .formatting import parse_range

logger = logging.getLogger(__name__)

# Parameters that are not cut pairs
RESERVED_PARAMS: frozenset[str] = frozenset({"aggregation", "measure", "bucket", "bucket_interval"})

# Date bucket intervals mapped to ibis truncate units
TRUNCATE_UNITS: Mapping[str, str] = {
    "year": "Y",
    "quarter": "Q",
    "month": "M",
    "week": "W",
    "day": "D",
}


class TransportError(Exception):
    """Raised when a transport cannot answer a connection request."""


class Transport(Protocol):
    async def fetch(self, path: str, params: Sequence[tuple[str, str]]) -> Any: ...


class HttpTransport:
    """Fetch connection payloads from a dataset HTTP API.

    Args:
        base_url: API root, e.g. ``https://example.org/api``. Defaults to
            ``options.transport.base_url``.
        timeout: Request timeout in seconds. Defaults to
            ``options.transport.timeout``.
        client: Optional shared ``httpx.AsyncClient``; a short-lived client is
            opened per request otherwise.
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.base_url = (base_url or options.transport.base_url).rstrip("/")
        self.timeout = options.transport.timeout if timeout is None else timeout
        self._client = client

    async def fetch(self, path: str, params: Sequence[tuple[str, str]]) -> Any:
        url = f"{self.base_url}{path}"
        try:
            if self._client is not None:
                response = await self._client.get(url, params=list(params))
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.get(url, params=list(params))
            response.raise_for_status()
            return response.json()
        except httpx.TimeoutException as e:
            raise TransportError(f"GET {url} timed out after {self.timeout}s") from e
        except httpx.HTTPError as e:
            raise TransportError(f"GET {url} failed: {e}") from e
        except ValueError as e:
            raise TransportError(f"GET {url} returned invalid JSON: {e}") from e


def _convert_value(value: str, target_type: dt.DataType) -> Any:
    """Convert a query-string value to match the column type."""
    if target_type.is_integer():
        return int(float(value))
    if target_type.is_floating() or target_type.is_decimal():
        return float(value)
    if target_type.is_boolean():
        return value.lower() in ("1", "true")
    if target_type.is_date():
        return ibis.literal(value, type="date")
    if target_type.is_timestamp():
        return ibis.literal(value, type="timestamp")
    return value


def _cut_predicate(column: ir.Column, values: Sequence[str]) -> ir.BooleanValue:
    target_type = column.type()
    predicates = []
    for value in values:
        bounds = parse_range(value)
        if bounds is None:
            predicates.append(column == _convert_value(value, target_type))
        else:
            low, high = bounds
            predicates.append(
                (column >= _convert_value(low, target_type)) & (column < _convert_value(high, target_type))
            )
    predicate = predicates[0]
    for other in predicates[1:]:
        predicate = predicate | other
    return predicate


def _native(value: Any) -> Any:
    if isinstance(value, pd.Timestamp | datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return value


class IbisTransport:
    """Answer connection requests from Ibis tables.

    Queries run in a worker thread, one at a time, so the event loop keeps
    running while a table is aggregated.

    Args:
        tables: Dataset id to Ibis table (or pandas DataFrame, wrapped with
            ``ibis.memtable``).
        labels: Optional dimension field to label column mapping used for
            ``dimensions`` requests; ids are used as labels otherwise.
    """

    def __init__(
        self,
        tables: Mapping[str, ir.Table | pd.DataFrame],
        labels: Mapping[str, str] | None = None,
    ):
        self.tables = {
            dataset_id: table if isinstance(table, ir.Table) else ibis.memtable(table)
            for dataset_id, table in tables.items()
        }
        self.labels = dict(labels or {})
        self._lock = threading.Lock()

    async def fetch(self, path: str, params: Sequence[tuple[str, str]]) -> Any:
        try:
            return await asyncio.to_thread(self._query_locked, path, params)
        except (KeyError, ValueError, IbisError) as e:
            raise TransportError(f"Cannot answer {path}: {type(e).__name__}: {e}") from e

    def _query_locked(self, path: str, params: Sequence[tuple[str, str]]) -> Any:
        # Queries run in worker threads and share one backend connection
        with self._lock:
            return self.query(path, params)

    def query(self, path: str, params: Sequence[tuple[str, str]]) -> Any:
        parts = path.strip("/").split("/")
        if parts[0] != "datasets" or len(parts) not in (3, 4):
            raise TransportError(f"Unsupported path: {path}")
        dataset_id, kind = parts[1], parts[2]
        dimension = parts[3] if len(parts) == 4 else None

        settings = {name: value for name, value in params if name in RESERVED_PARAMS}
        cut = groupby(itemgetter(0), [p for p in params if p[0] not in RESERVED_PARAMS])

        table = self.tables[dataset_id]
        if cut:
            table = table.filter(
                *[_cut_predicate(table[field_id], [v for _, v in pairs]) for field_id, pairs in cut.items()]
            )

        logger.debug("Querying %s %s on %s with %s", kind, dimension, dataset_id, params)
        if kind == "dimensions":
            return self._dimensions(table, dimension)
        if kind == "observations":
            return self._observations(table, dimension, settings)
        raise TransportError(f"Unsupported connection kind: {kind}")

    def _dimensions(self, table: ir.Table, dimension: str | None) -> dict[Any, dict[str, Any]]:
        if dimension is None:
            raise TransportError("A dimensions request needs a dimension")
        label_column = self.labels.get(dimension)
        columns = [table[dimension].name("id")]
        if label_column:
            columns.append(table[label_column].name("label"))
        df = table.select(*columns).distinct().order_by("id").to_pandas()
        return {
            _native(row["id"]): {"id": _native(row["id"]), "label": row.get("label", _native(row["id"]))}
            for row in df.to_dict(orient="records")
        }

    def _observations(
        self, table: ir.Table, dimension: str | None, settings: Mapping[str, str]
    ) -> list[dict[str, Any]]:
        measure = settings.get("measure")
        if measure is None:
            metric = table.count()
        elif settings.get("aggregation") == "mean":
            metric = table[measure].mean()
        else:
            metric = table[measure].sum()

        if dimension is None:
            expr = table.aggregate(total=metric)
        else:
            key = table[dimension]
            if settings.get("bucket"):
                bucket = int(settings["bucket"])
                key = (key / bucket).floor() * bucket
            elif settings.get("bucket_interval") in TRUNCATE_UNITS and key.type().is_temporal():
                key = key.truncate(TRUNCATE_UNITS[settings["bucket_interval"]])
            expr = table.group_by(id=key).aggregate(total=metric).order_by("id")

        rows = expr.to_pandas().to_dict(orient="records")
        return [{name: _native(value) for name, value in row.items()} for row in rows]
