"""
Snapshot + inverted keyword index
=================================
A Snapshot is one ingestion cycle's immutable output: the tagged items, the
keyword → item-position index built from exactly those items, and when it
was built. It is never mutated; a refresh produces a new Snapshot.

Snapshots can be exported to / loaded from a JSON document so the index can
be precomputed offline and shipped::

    {"version": 1, "builtAt": "...", "items": [...], "index": {"bitcoin": [0, 4]}}
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from pydantic import ValidationError

from marketlens.errors import IndexFormatError
from marketlens.models import Item

logger = logging.getLogger("MarketIndex")

INDEX_FORMAT_VERSION = 1

KeywordIndex = Mapping[str, Tuple[int, ...]]


def build_index(items: Iterable[Item]) -> KeywordIndex:
    """Invert item tags. Only keywords that tag at least one item appear."""
    index: Dict[str, List[int]] = {}
    for position, item in enumerate(items):
        for keyword in item.tags:
            index.setdefault(keyword, []).append(position)
    return MappingProxyType({kw: tuple(p) for kw, p in index.items()})


@dataclass(frozen=True)
class Snapshot:
    items: Tuple[Item, ...]
    index: KeywordIndex
    built_at: datetime
    partial: bool = False
    fetch_error: Optional[str] = None
    raw_count: int = 0
    quality_count: int = 0
    _by_id: Mapping[str, Item] = field(default_factory=lambda: MappingProxyType({}), repr=False, compare=False)

    @classmethod
    def create(
        cls,
        items: Iterable[Item],
        built_at: Optional[datetime] = None,
        partial: bool = False,
        fetch_error: Optional[str] = None,
        raw_count: Optional[int] = None,
        quality_count: Optional[int] = None,
    ) -> "Snapshot":
        items = tuple(items)
        return cls(
            items=items,
            index=build_index(items),
            built_at=built_at or datetime.now(timezone.utc),
            partial=partial,
            fetch_error=fetch_error,
            raw_count=len(items) if raw_count is None else raw_count,
            quality_count=len(items) if quality_count is None else quality_count,
            _by_id=MappingProxyType({item.id: item for item in items}),
        )

    @property
    def keyword_count(self) -> int:
        return len(self.index)

    def lookup(self, keyword: str) -> Tuple[Item, ...]:
        return tuple(self.items[i] for i in self.index.get(keyword, ()))

    def get(self, item_id: str) -> Optional[Item]:
        return self._by_id.get(item_id)

    def __len__(self) -> int:
        return len(self.items)


# ──────────────────────────────────────────────────────────────────
# Export document
# ──────────────────────────────────────────────────────────────────

def snapshot_to_document(snapshot: Snapshot) -> Dict[str, Any]:
    return {
        "version": INDEX_FORMAT_VERSION,
        "builtAt": snapshot.built_at.isoformat(),
        "partial": snapshot.partial,
        "items": [item.model_dump(mode="json") for item in snapshot.items],
        "index": {kw: list(positions) for kw, positions in snapshot.index.items()},
    }


def snapshot_from_document(document: Any) -> Snapshot:
    """Rebuild a Snapshot. Unknown extra fields are ignored; unknown versions are refused."""
    if not isinstance(document, dict):
        raise IndexFormatError("Index document must be a JSON object")

    version = document.get("version")
    if type(version) is not int or version != INDEX_FORMAT_VERSION:
        raise IndexFormatError(f"Unsupported index version: {version!r}")

    for key in ("builtAt", "items", "index"):
        if key not in document:
            raise IndexFormatError(f"Index document is missing '{key}'")

    try:
        built_at = datetime.fromisoformat(str(document["builtAt"]).replace("Z", "+00:00"))
    except ValueError as e:
        raise IndexFormatError(f"Invalid builtAt: {document['builtAt']!r}") from e
    if built_at.tzinfo is None:
        built_at = built_at.replace(tzinfo=timezone.utc)

    raw_items = document["items"]
    if not isinstance(raw_items, list):
        raise IndexFormatError("'items' must be a list")
    try:
        items = tuple(Item.model_validate(entry) for entry in raw_items)
    except ValidationError as e:
        raise IndexFormatError(f"Invalid item in index document: {e}") from e

    raw_index = document["index"]
    if not isinstance(raw_index, dict):
        raise IndexFormatError("'index' must be an object")
    index: Dict[str, Tuple[int, ...]] = {}
    for keyword, positions in raw_index.items():
        if not isinstance(positions, list):
            raise IndexFormatError(f"Positions for '{keyword}' must be a list")
        for position in positions:
            if not isinstance(position, int) or isinstance(position, bool) or not 0 <= position < len(items):
                raise IndexFormatError(f"Position {position!r} for '{keyword}' is out of range")
        index[keyword] = tuple(positions)

    return Snapshot(
        items=items,
        index=MappingProxyType(index),
        built_at=built_at,
        partial=bool(document.get("partial", False)),
        raw_count=len(items),
        quality_count=len(items),
        _by_id=MappingProxyType({item.id: item for item in items}),
    )


def save_snapshot(snapshot: Snapshot, path: str) -> None:
    with open(path, "w", encoding="utf-8") as f:
        json.dump(snapshot_to_document(snapshot), f)
    logger.info(f"Saved {len(snapshot.items)} markets across {snapshot.keyword_count} keywords to {path}")


def load_snapshot(path: str) -> Snapshot:
    try:
        with open(path, "r", encoding="utf-8") as f:
            document = json.load(f)
    except ValueError as e:
        raise IndexFormatError(f"{path} is not valid JSON: {e}") from e
    snapshot = snapshot_from_document(document)
    logger.info(f"Loaded {len(snapshot.items)} markets across {snapshot.keyword_count} keywords from {path}")
    return snapshot
