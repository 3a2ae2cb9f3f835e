"""
Tests for corpus ingestion: quality filter, tagging, snapshot build.
"""

import sys
import os
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from datetime import datetime, timedelta, timezone

import pytest

from marketlens.data_source import StaticDataSource
from marketlens.errors import DataSourceError
from marketlens.ingestion import (
    LOOSE,
    STRICT,
    QualityPolicy,
    build_snapshot,
    build_text_blob,
    ingest,
    rejection_reason,
    tag_items,
)
from marketlens.models import RawItem
from marketlens.vocabulary import Vocabulary

NOW = datetime(2025, 1, 1, tzinfo=timezone.utc)

VOCAB = Vocabulary.from_lines(["bitcoin", "trump", "eth"], ["price", "election"])


def _raw(**overrides):
    data = {
        "id": "1",
        "question": "Will Bitcoin price exceed $100k?",
        "volumeNum": 5000,
        "liquidityNum": 500,
        "endDate": (NOW + timedelta(days=30)).isoformat(),
    }
    data.update(overrides)
    return RawItem.model_validate(data)


class TestQualityPolicy:
    def test_presets(self):
        assert QualityPolicy.preset("strict") == STRICT
        assert QualityPolicy.preset("LOOSE") == LOOSE
        assert LOOSE.min_volume == 500
        assert LOOSE.min_liquidity == 10
        assert LOOSE.min_days_until_end == 0.5

    def test_unknown_preset(self):
        with pytest.raises(ValueError):
            QualityPolicy.preset("medium")

    def test_overrides_ignore_none(self):
        policy = STRICT.with_overrides(min_volume=200, min_liquidity=None)
        assert policy.min_volume == 200
        assert policy.min_liquidity == STRICT.min_liquidity


class TestRejectionReason:
    def test_passes(self):
        assert rejection_reason(_raw(), STRICT, NOW) is None

    def test_boundary_values_pass(self):
        raw = _raw(volumeNum=1000, liquidityNum=100, endDate=(NOW + timedelta(days=1)).isoformat())
        assert rejection_reason(raw, STRICT, NOW) is None

    @pytest.mark.parametrize("overrides,reason", [
        ({"volumeNum": 999}, "low_volume"),
        ({"liquidityNum": 99}, "low_liquidity"),
        ({"resolved": True}, "resolved"),
        ({"closed": True}, "closed"),
        ({"active": False}, "inactive"),
        ({"endDate": (NOW + timedelta(hours=12)).isoformat()}, "ending_soon"),
    ])
    def test_strict_rejections(self, overrides, reason):
        assert rejection_reason(_raw(**overrides), STRICT, NOW) == reason

    def test_loose_accepts_what_strict_rejects(self):
        raw = _raw(volumeNum=600, liquidityNum=20, endDate=(NOW + timedelta(hours=18)).isoformat())
        assert rejection_reason(raw, STRICT, NOW) is not None
        assert rejection_reason(raw, LOOSE, NOW) is None

    def test_missing_end_date_passes(self):
        raw = RawItem.model_validate({"id": "9", "volumeNum": 5000, "liquidityNum": 500})
        assert rejection_reason(raw, STRICT, NOW) is None

    def test_missing_active_flag_counts_as_active(self):
        raw = RawItem.model_validate({"id": "9", "volumeNum": 5000, "liquidityNum": 500, "active": None})
        assert rejection_reason(raw, STRICT, NOW) is None


class TestTagging:
    def test_text_blob_includes_event_title(self):
        raw = _raw(question="Q", description="D", events=[{"title": "Event"}])
        assert build_text_blob(raw) == "q d event"

    def test_tags_from_all_fields(self):
        raw = _raw(question="Who wins?", description="Trump vs field", events=[{"title": "US Election"}])
        [item] = tag_items([raw], VOCAB)
        assert item.entity_tags == ("trump",)
        assert item.generic_tags == ("election",)

    def test_untagged_dropped(self):
        raw = _raw(question="Will it rain in Paris?")
        assert tag_items([raw], VOCAB) == []

    def test_substring_matching(self):
        raw = _raw(question="A new method for counting")
        [item] = tag_items([raw], VOCAB)
        assert item.entity_tags == ("eth",)


class TestBuildSnapshot:
    def test_snapshot_counts(self):
        raws = [
            _raw(id="a"),
            _raw(id="b", volumeNum=10),
            _raw(id="c", question="Nothing relevant"),
        ]
        snapshot = build_snapshot(raws, VOCAB, STRICT, now=NOW)
        assert snapshot.raw_count == 3
        assert snapshot.quality_count == 2
        assert [i.id for i in snapshot.items] == ["a"]
        assert snapshot.built_at == NOW

    def test_index_covers_every_tag(self):
        raws = [
            _raw(id="a", question="Bitcoin price"),
            _raw(id="b", question="Trump election"),
            _raw(id="c", question="Bitcoin and Trump"),
        ]
        snapshot = build_snapshot(raws, VOCAB, STRICT, now=NOW)
        for position, item in enumerate(snapshot.items):
            for keyword in item.tags:
                assert position in snapshot.index[keyword]
        for keyword, positions in snapshot.index.items():
            for position in positions:
                assert keyword in snapshot.items[position].tags
        assert {i.id for i in snapshot.lookup("bitcoin")} == {"a", "c"}

    def test_every_item_passes_quality(self):
        raws = [_raw(id=str(i), volumeNum=i * 300) for i in range(10)]
        snapshot = build_snapshot(raws, VOCAB, STRICT, now=NOW)
        assert all(item.volume >= STRICT.min_volume for item in snapshot.items)
        assert all(item.tags for item in snapshot.items)

    def test_duplicate_ids_collapsed(self):
        raws = [
            _raw(id="a", question="Bitcoin price"),
            _raw(id="b", question="Trump election"),
            _raw(id="a", question="Bitcoin price again"),
        ]
        snapshot = build_snapshot(raws, VOCAB, STRICT, now=NOW)
        assert [i.id for i in snapshot.items] == ["a", "b"]
        assert snapshot.items[0].question == "Bitcoin price"
        assert snapshot.lookup("bitcoin") == (snapshot.items[0],)
        assert snapshot.raw_count == 3
        assert snapshot.quality_count == 2


class TestIngest:
    @pytest.mark.asyncio
    async def test_ingest_static_source(self):
        end = (datetime.now(timezone.utc) + timedelta(days=30)).isoformat()
        source = StaticDataSource([
            {"id": "1", "question": "Bitcoin price", "volumeNum": 5000, "liquidityNum": 500, "endDate": end},
            {"id": "2", "question": "Trump election", "volumeNum": 50, "liquidityNum": 500, "endDate": end},
        ])
        snapshot = await ingest(source, VOCAB, STRICT, page_size=1)
        assert [i.id for i in snapshot.items] == ["1"]
        assert snapshot.raw_count == 2
        assert not snapshot.partial

    @pytest.mark.asyncio
    async def test_ingest_skips_malformed_market(self):
        source = StaticDataSource([
            {"id": "1", "question": "Bitcoin price", "volumeNum": 5000, "liquidityNum": 500, "endDate": "2099-01-01"},
            {"id": "2", "question": "Bitcoin crash", "volumeNum": 5000, "liquidityNum": 500, "active": "maybe"},
            {"id": "3", "question": "Trump election", "volumeNum": 5000, "liquidityNum": 500, "endDate": "2099-01-01"},
        ])
        snapshot = await ingest(source, VOCAB, STRICT)
        assert [i.id for i in snapshot.items] == ["1", "3"]
        assert not snapshot.partial

    @pytest.mark.asyncio
    async def test_ingest_partial(self):
        class Flaky:
            async def fetch_candidates(self, page_size, offset):
                if offset:
                    raise DataSourceError("down", offset)
                return [_raw(id="1", endDate="2099-01-01T00:00:00Z")]

        snapshot = await ingest(Flaky(), VOCAB, LOOSE, page_size=1)
        assert snapshot.partial
        assert snapshot.fetch_error == "down"
        assert len(snapshot.items) == 1

    @pytest.mark.asyncio
    async def test_ingest_total_failure_raises(self):
        class Down:
            async def fetch_candidates(self, page_size, offset):
                raise DataSourceError("down", offset)

        with pytest.raises(DataSourceError):
            await ingest(Down(), VOCAB, STRICT)
