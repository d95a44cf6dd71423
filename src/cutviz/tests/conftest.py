"""Shared fixtures: a small dataset and a controllable in-memory transport."""

from __future__ import annotations

import pytest

from cutviz import ConnectionCache, Dataset, ElementCollection

from .fakes import FakeTransport


@pytest.fixture
def dataset():
    return Dataset(
        id="test01",
        fields=[
            {"id": "test02", "type": "date", "label": "Day"},
            {"id": "test03", "type": "string", "label": "Region"},
            {"id": "test04", "type": "integer", "label": "Amount"},
            {"id": "test05", "type": "float", "label": "Ratio"},
            {"id": "test06", "type": "geo", "label": "Place"},
        ],
        hierarchies={"test06": {"level_field": "level"}},
    )


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def collection(dataset, transport):
    return ElementCollection(dataset, transport, cache=ConnectionCache())
