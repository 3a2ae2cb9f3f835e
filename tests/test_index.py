"""Tests for the Snapshot, the inverted index and the export document."""

import sys
import os
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

import json
from datetime import datetime, timezone

import pytest

from marketlens.errors import IndexFormatError
from marketlens.index import (
    Snapshot,
    build_index,
    load_snapshot,
    save_snapshot,
    snapshot_from_document,
    snapshot_to_document,
)
from marketlens.models import Item

BUILT = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


def _items():
    return [
        Item(id="a", question="Bitcoin price", volume=5000, entity_tags=("bitcoin",), generic_tags=("price",)),
        Item(id="b", question="Trump election", volume=9000, entity_tags=("trump",), generic_tags=("election",)),
        Item(id="c", question="Bitcoin and Trump", volume=100, entity_tags=("bitcoin", "trump")),
    ]


class TestBuildIndex:
    def test_positions(self):
        index = build_index(_items())
        assert index["bitcoin"] == (0, 2)
        assert index["trump"] == (1, 2)
        assert index["price"] == (0,)

    def test_only_used_keywords(self):
        index = build_index(_items())
        assert set(index) == {"bitcoin", "trump", "price", "election"}

    def test_index_is_read_only(self):
        index = build_index(_items())
        with pytest.raises(TypeError):
            index["new"] = (0,)

    def test_empty(self):
        assert len(build_index([])) == 0


class TestSnapshot:
    def test_lookup_and_get(self):
        snapshot = Snapshot.create(_items(), built_at=BUILT)
        assert [i.id for i in snapshot.lookup("bitcoin")] == ["a", "c"]
        assert snapshot.lookup("unknown") == ()
        assert snapshot.get("b").question == "Trump election"
        assert snapshot.get("zzz") is None
        assert len(snapshot) == 3
        assert snapshot.keyword_count == 4

    def test_counts_default_to_items(self):
        snapshot = Snapshot.create(_items(), built_at=BUILT)
        assert snapshot.raw_count == 3
        assert snapshot.quality_count == 3


class TestExportDocument:
    def test_round_trip(self):
        snapshot = Snapshot.create(_items(), built_at=BUILT, partial=True)
        restored = snapshot_from_document(json.loads(json.dumps(snapshot_to_document(snapshot))))
        assert restored.items == snapshot.items
        assert dict(restored.index) == dict(snapshot.index)
        assert restored.built_at == BUILT
        assert restored.partial is True

    def test_document_shape(self):
        document = snapshot_to_document(Snapshot.create(_items(), built_at=BUILT))
        assert document["version"] == 1
        assert document["index"]["bitcoin"] == [0, 2]
        assert document["items"][0]["id"] == "a"

    def test_unknown_version_refused(self):
        document = snapshot_to_document(Snapshot.create(_items(), built_at=BUILT))
        document["version"] = 2
        with pytest.raises(IndexFormatError):
            snapshot_from_document(document)

    @pytest.mark.parametrize("version", [True, 1.0, "1", None])
    def test_version_must_be_integer(self, version):
        document = snapshot_to_document(Snapshot.create(_items(), built_at=BUILT))
        document["version"] = version
        with pytest.raises(IndexFormatError):
            snapshot_from_document(document)

    def test_extra_fields_ignored(self):
        document = snapshot_to_document(Snapshot.create(_items(), built_at=BUILT))
        document["generator"] = "offline"
        assert len(snapshot_from_document(document)) == 3

    @pytest.mark.parametrize("key", ["builtAt", "items", "index"])
    def test_missing_key(self, key):
        document = snapshot_to_document(Snapshot.create(_items(), built_at=BUILT))
        del document[key]
        with pytest.raises(IndexFormatError):
            snapshot_from_document(document)

    def test_position_out_of_range(self):
        document = snapshot_to_document(Snapshot.create(_items(), built_at=BUILT))
        document["index"]["bitcoin"] = [0, 7]
        with pytest.raises(IndexFormatError):
            snapshot_from_document(document)

    def test_not_an_object(self):
        with pytest.raises(IndexFormatError):
            snapshot_from_document([1, 2, 3])

    def test_save_and_load(self, tmp_path):
        path = str(tmp_path / "market_index.json")
        save_snapshot(Snapshot.create(_items(), built_at=BUILT), path)
        restored = load_snapshot(path)
        assert [i.id for i in restored.lookup("trump")] == ["b", "c"]

    def test_load_invalid_json(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(IndexFormatError):
            load_snapshot(str(path))
