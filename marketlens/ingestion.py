"""
Corpus ingestion
================
Fetch raw markets → quality filter → build a lowercase text blob per market
→ tag each market with every vocabulary keyword contained in its blob →
drop untagged markets → build the Snapshot / inverted index.

Tagging is plain substring containment, not word-boundary matching: a short
keyword also matches inside longer words ("eth" in "method").
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Tuple

from marketlens.data_source import DataSource, fetch_all
from marketlens.index import Snapshot
from marketlens.models import Item, RawItem
from marketlens.vocabulary import Vocabulary

logger = logging.getLogger("Ingestion")

SECONDS_PER_DAY = 60 * 60 * 24


@dataclass(frozen=True)
class QualityPolicy:
    """Minimums a market must meet to enter the corpus."""
    min_volume: float = 1000.0
    min_liquidity: float = 100.0
    min_days_until_end: float = 1.0

    @classmethod
    def preset(cls, name: str) -> "QualityPolicy":
        try:
            return QUALITY_PRESETS[name.lower()]
        except KeyError:
            raise ValueError(f"Unknown quality preset '{name}' (expected one of {sorted(QUALITY_PRESETS)})")

    def with_overrides(self, **overrides: Optional[float]) -> "QualityPolicy":
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


STRICT = QualityPolicy(min_volume=1000.0, min_liquidity=100.0, min_days_until_end=1.0)
LOOSE = QualityPolicy(min_volume=500.0, min_liquidity=10.0, min_days_until_end=0.5)

QUALITY_PRESETS = {"strict": STRICT, "loose": LOOSE}


def days_until_end(raw: RawItem, now: datetime) -> Optional[float]:
    if raw.end_date is None:
        return None
    return (raw.end_date - now).total_seconds() / SECONDS_PER_DAY


def rejection_reason(raw: RawItem, policy: QualityPolicy, now: Optional[datetime] = None) -> Optional[str]:
    """Why a market fails the quality filter, or None if it passes."""
    if raw.volume < policy.min_volume:
        return "low_volume"
    if raw.liquidity < policy.min_liquidity:
        return "low_liquidity"
    if raw.resolved:
        return "resolved"
    if raw.closed:
        return "closed"
    if not raw.active:
        return "inactive"
    remaining = days_until_end(raw, now or datetime.now(timezone.utc))
    if remaining is not None and remaining < policy.min_days_until_end:
        return "ending_soon"
    return None


def passes_quality(raw: RawItem, policy: QualityPolicy, now: Optional[datetime] = None) -> bool:
    return rejection_reason(raw, policy, now) is None


def build_text_blob(raw: RawItem) -> str:
    return f"{raw.question} {raw.description} {raw.event_title}".lower()


def tag_blob(blob: str, vocabulary: Vocabulary) -> Tuple[Tuple[str, ...], Tuple[str, ...]]:
    entities = tuple(kw for kw in vocabulary.entities if kw in blob)
    generic = tuple(kw for kw in vocabulary.generic if kw in blob)
    return entities, generic


def to_item(raw: RawItem, entity_tags: Tuple[str, ...] = (), generic_tags: Tuple[str, ...] = ()) -> Item:
    return Item(
        id=raw.id,
        question=raw.question,
        description=raw.description,
        event_title=raw.event_title,
        slug=raw.slug,
        event_slug=raw.event_slug,
        outcome_prices=raw.outcome_prices,
        volume=raw.volume,
        liquidity=raw.liquidity,
        active=raw.active,
        closed=raw.closed,
        resolved=raw.resolved,
        end_date=raw.end_date,
        entity_tags=entity_tags,
        generic_tags=generic_tags,
    )


def tag_items(raw_items: Iterable[RawItem], vocabulary: Vocabulary) -> List[Item]:
    """Tag each market; markets with no keyword at all are dropped."""
    items = []
    for raw in raw_items:
        entities, generic = tag_blob(build_text_blob(raw), vocabulary)
        if not entities and not generic:
            continue
        items.append(to_item(raw, entities, generic))
    return items


def dedupe_by_id(raw_items: Iterable[RawItem]) -> List[RawItem]:
    """Keep the first copy of each market id; pages may overlap between offsets."""
    seen = set()
    unique = []
    for raw in raw_items:
        if raw.id and raw.id in seen:
            continue
        seen.add(raw.id)
        unique.append(raw)
    return unique


def build_snapshot(
    raw_items: List[RawItem],
    vocabulary: Vocabulary,
    policy: QualityPolicy,
    now: Optional[datetime] = None,
    partial: bool = False,
    fetch_error: Optional[str] = None,
) -> Snapshot:
    now = now or datetime.now(timezone.utc)
    unique = dedupe_by_id(raw_items)
    if len(unique) < len(raw_items):
        logger.info(f"Dropped {len(raw_items) - len(unique)} duplicate markets")
    quality = [raw for raw in unique if passes_quality(raw, policy, now)]
    logger.info(f"Quality filter: {len(raw_items)} → {len(quality)} markets")

    items = tag_items(quality, vocabulary)
    snapshot = Snapshot.create(
        items,
        built_at=now,
        partial=partial,
        fetch_error=fetch_error,
        raw_count=len(raw_items),
        quality_count=len(quality),
    )
    logger.info(f"Indexed {len(snapshot.items)} markets across {snapshot.keyword_count} keywords")
    return snapshot


async def ingest(
    source: DataSource,
    vocabulary: Vocabulary,
    policy: QualityPolicy,
    page_size: int = 500,
    page_delay: float = 0.0,
) -> Snapshot:
    """Run one full ingestion cycle. Raises DataSourceError only if no page was fetched."""
    outcome = await fetch_all(source, page_size=page_size, page_delay=page_delay)
    if outcome.partial:
        logger.warning(f"Partial ingestion: {len(outcome.items)} markets before failure ({outcome.error})")
    return build_snapshot(
        outcome.items,
        vocabulary,
        policy,
        partial=outcome.partial,
        fetch_error=outcome.error,
    )
