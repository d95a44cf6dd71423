"""Tests for the dataset, its field catalog and cut bookkeeping."""

from __future__ import annotations

import pytest

from cutviz import Dataset, DatasetError, Field


class TestFields:
    def test_catalog(self, dataset):
        assert len(dataset.fields) == 5
        assert "test03" in dataset.fields
        assert dataset.fields.get("test03").label == "Region"
        assert dataset.fields.get("missing") is None
        assert dataset.fields.get(None) is None
        assert [f.id for f in dataset.fields.filter(lambda f: f.type == "geo")] == ["test06"]

    def test_unknown_field_type(self):
        with pytest.raises(DatasetError):
            Field(id="x", type="blob")

    def test_duplicate_field(self):
        with pytest.raises(DatasetError):
            Dataset(id="d", fields=[{"id": "x"}, {"id": "x"}])

    def test_label_defaults_to_id(self):
        assert Field.from_dict({"id": "x"}).label == "x"

    def test_dict_round_trip(self, dataset):
        copy = Dataset.from_dict(dataset.to_dict())
        assert copy.id == dataset.id
        assert list(copy.fields) == list(dataset.fields)
        assert copy.hierarchies == dataset.hierarchies


class TestCuts:
    def test_exclusive_cut_replaces(self, dataset):
        changes = []
        dataset.cut_changed.connect(changes.append)

        dataset.add_cut({"test03": "a"})
        dataset.add_cut({"test03": "b"})

        assert dataset.cut == {"test03": "b"}
        assert dataset.is_cut("test03")
        assert dataset.has_cut_id("test03", "b")
        assert not dataset.has_cut_id("test03", "a")
        assert changes == [dataset, dataset]

    def test_non_exclusive_cut_accumulates(self, dataset):
        dataset.add_cut({"test03": "a"}, exclusive=False)
        dataset.add_cut({"test03": "b"}, exclusive=False)
        dataset.add_cut({"test03": "b"}, exclusive=False)

        assert dataset.get_cut("test03") == ["a", "b"]
        assert dataset.has_cut_id("test03", "a")

        dataset.remove_cut(["test03"], ["a"])
        assert dataset.get_cut("test03") == "b"

    def test_remove_cut(self, dataset):
        changes = []
        dataset.add_cut({"test03": "a", "test04": "1"})
        dataset.cut_changed.connect(changes.append)

        dataset.remove_cut(["test03", "test05"])
        assert dataset.cut == {"test04": "1"}

        dataset.remove_cut(["test05"])
        assert len(changes) == 1

    def test_unset_field(self, dataset):
        assert not dataset.is_cut(None)
        assert dataset.get_cut("test03") is None
        assert not dataset.has_cut_id("test03", "a")


class TestDrillDown:
    def test_drill_down(self, dataset):
        events = []
        dataset.drilled.connect(lambda *args: events.append(args))

        dataset.drill_down("test06", "city", 75)

        assert events == [(dataset, "test06", "city", 75)]
        assert dataset.get_dimension_hierarchy("test06") == {"level_field": "level"}

    def test_drill_down_without_hierarchy(self, dataset):
        with pytest.raises(DatasetError):
            dataset.drill_down("test03", "city", 1)
