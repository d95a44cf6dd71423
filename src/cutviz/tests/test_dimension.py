from __future__ import annotations

import pytest

from cutviz import DimensionSlots, ElementDimension


def test_from_dict_accepts_field_records():
    dimension = ElementDimension.from_dict({"field": {"id": "test03", "type": "string"}})
    assert dimension == ElementDimension("test03")


def test_update_keeps_unspecified_attributes():
    dimension = ElementDimension("test04", bucket=5, bucket_interval="custom")
    dimension.update(bucket=10)
    assert dimension.to_dict() == {"field": "test04", "bucket": 10, "bucket_interval": "custom"}
    assert dimension.is_bucketed


def test_slots():
    slots = DimensionSlots([{"field": "test03"}, ElementDimension()])

    assert len(slots) == 2
    assert slots.at() is slots.at(0)
    assert slots.fields() == ["test03"]
    assert slots.to_list()[1] == {"field": None, "bucket": None, "bucket_interval": None}

    slots.reset([ElementDimension("test04")])
    assert slots.fields() == ["test04"]
    with pytest.raises(IndexError):
        slots.at(1)
