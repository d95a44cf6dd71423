"""Tests for connection keys, URLs, fetching and data access."""

from __future__ import annotations

import asyncio
import logging

import pytest

from cutviz import Connection, ConnectionCache, ConnectionKey, TransportError, options

from .fakes import FakeTransport


def _key(**kwargs):
    attrs = {"dataset_id": "test01", "kind": "observations", "dimension": "test03"}
    attrs.update(kwargs)
    return ConnectionKey(**attrs)


class TestConnectionKey:
    def test_dimensions_url(self):
        key = _key(kind="dimensions", measure="test04", aggregation="sum")
        assert key.url() == "/api/datasets/test01/dimensions/test03?aggregation=sum&measure=test04"

    def test_cut_comes_first_and_skips_own_dimension(self):
        key = _key(measure="test04", aggregation="sum", cut={"test05": "x", "test03": "a"})
        assert key.url() == "/api/datasets/test01/observations/test03?test05=x&aggregation=sum&measure=test04"

    def test_multiple_cut_values_repeat_the_parameter(self):
        key = _key(aggregation="count", cut={"test05": ["x", "y"]})
        assert key.params == [("test05", "x"), ("test05", "y"), ("aggregation", "count")]

    def test_dimensionless_path(self):
        key = _key(dimension=None, aggregation="count")
        assert key.path == "/datasets/test01/observations"
        assert key.url() == "/api/datasets/test01/observations?aggregation=count"

    def test_bucketing_parameters_follow_measure(self):
        key = _key(dimension="test04", aggregation="sum", measure="test04", bucket=5, bucket_interval="custom")
        assert key.params[-2:] == [("bucket", "5"), ("bucket_interval", "custom")]

    def test_equal_keys_share_url_and_hash(self):
        a = _key(cut={"test05": ["x"]})
        b = _key(cut={"test05": ("x",)})
        assert a == b
        assert hash(a) == hash(b)

    def test_url_prefix_follows_options(self):
        original = options.connections.url_prefix
        try:
            options.connections.url_prefix = "/v2"
            assert _key().url().startswith("/v2/datasets/test01")
        finally:
            options.connections.url_prefix = original


class TestConnection:
    @pytest.mark.asyncio
    async def test_fetch_loads_and_emits_synced(self):
        connection = Connection(_key(), FakeTransport())
        synced = []
        connection.synced.connect(synced.append)

        await connection.fetch()

        assert connection.loaded
        assert synced == [connection]
        assert connection.get_total() == 2000.0

    @pytest.mark.asyncio
    async def test_fetch_twice_raises(self):
        connection = Connection(_key(), FakeTransport())
        await connection.fetch()
        with pytest.raises(RuntimeError):
            connection.fetch()

    @pytest.mark.asyncio
    async def test_cache_hit_completes_synchronously(self):
        transport = FakeTransport()
        cache = ConnectionCache()
        await Connection(_key(), transport, cache=cache).fetch()

        second = Connection(_key(), transport, cache=cache)
        assert second.fetch() is None
        assert second.loaded
        assert len(transport.requests) == 1

    @pytest.mark.asyncio
    async def test_transport_failure_is_logged_and_kept(self, caplog):
        transport = FakeTransport()
        transport.failing.add("/datasets/test01/observations/test03")
        connection = Connection(_key(), transport)

        with caplog.at_level(logging.ERROR, logger="cutviz.connection"):
            await connection.fetch()

        assert not connection.loaded
        assert isinstance(connection.error, TransportError)
        assert "Failed to load" in caplog.text

    @pytest.mark.asyncio
    async def test_dimension_values_by_id(self):
        connection = Connection(_key(kind="dimensions"), FakeTransport())
        await connection.fetch()

        assert connection.get_value("a") == {"id": "a", "label": "Alpha"}
        assert connection.get_value("z") is None
        assert [record["id"] for record in connection.get_data()] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_observation_values_by_index_and_id(self):
        connection = Connection(_key(), FakeTransport())
        await connection.fetch()

        assert connection.get_value(0) == {"id": "b", "total": 500}
        assert connection.get_value(5) is None
        assert connection.get_value_by_id("a") == {"id": "a", "total": 1500}
        assert connection.get_value_by_id("a", "percentage") == {"id": "a", "total": 0.75}

    @pytest.mark.asyncio
    async def test_get_data_sorting(self):
        connection = Connection(_key(), FakeTransport())
        await connection.fetch()

        assert [r["id"] for r in connection.get_data()] == ["b", "a"]
        assert [r["id"] for r in connection.get_data(sort_key="id")] == ["a", "b"]
        assert [r["id"] for r in connection.get_data(sort_key="total", sort_direction="desc")] == ["a", "b"]
        # Direction alone does not reorder
        assert [r["id"] for r in connection.get_data(sort_direction="desc")] == ["b", "a"]

    @pytest.mark.asyncio
    async def test_to_frame(self):
        connection = Connection(_key(), FakeTransport())
        await connection.fetch()

        df = connection.to_frame()
        assert list(df.columns) == ["id", "total"]
        assert df["total"].sum() == 2000


def test_unloaded_connection_is_empty():
    connection = Connection(_key(), FakeTransport())
    assert connection.get_data() == []
    assert connection.get_total() == 0.0
    assert connection.get_value(0) is None


class _StaticTransport:
    def __init__(self, payload):
        self.payload = payload

    async def fetch(self, path, params):
        return self.payload


@pytest.mark.asyncio
async def test_total_is_exact():
    rows = [{"id": i, "total": total} for i, total in enumerate([1000, 999.99, 0.01])]
    connection = Connection(_key(), _StaticTransport(rows))
    await connection.fetch()
    assert connection.get_total() == 2000.0


@pytest.mark.asyncio
async def test_enveloped_observations():
    connection = Connection(_key(), _StaticTransport({"test03": {"a": {"id": "a", "total": 1}}}))
    await connection.fetch()
    assert connection.get_data() == [{"id": "a", "total": 1}]


def test_fetch_without_event_loop_can_be_retried():
    connection = Connection(_key(), FakeTransport())
    with pytest.raises(RuntimeError):
        connection.fetch()
    assert not connection.loaded

    async def load():
        await connection.fetch()

    asyncio.run(load())
    assert connection.loaded


@pytest.mark.asyncio
async def test_percentage_rows_share_one_grand_total():
    connection = Connection(_key(), FakeTransport())
    await connection.fetch()
    calls = []
    get_total = connection.get_total
    connection.get_total = lambda: calls.append(1) or get_total()

    rows = connection.get_data("percentage")

    assert [r["total"] for r in rows] == [0.25, 0.75]
    assert len(calls) == 1


class TestConnectionCache:
    def test_least_recently_used_payload_is_evicted(self):
        cache = ConnectionCache(max_size=2)
        a, b, c = _key(measure="a"), _key(measure="b"), _key(measure="c")
        cache.store(a, 1)
        cache.store(b, 2)
        assert cache.lookup(a) == 1

        cache.store(c, 3)

        assert cache.lookup(b) is None
        assert cache.lookup(a) == 1
        assert cache.lookup(c) == 3
        assert len(cache) == 2

    def test_default_size_follows_options(self):
        original = options.connections.cache_size
        try:
            options.connections.cache_size = 5
            assert ConnectionCache().max_size == 5
        finally:
            options.connections.cache_size = original
