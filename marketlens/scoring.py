"""
Relevance scoring
=================
score = shared_entities * entity_weight
      + shared_generic  * generic_weight
      + log10(1 + liquidity) * liquidity_weight
      + log10(1 + volume)    * volume_weight
      + co_occurrence_bonus  (if at least one entity AND one generic keyword are shared)

A market sharing no keyword with the text scores 0 and is never returned.
Ranking order: score desc, volume desc, id asc.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from typing import Iterable, List, Optional

from marketlens.models import Item, MarketStats, MatchResult, RankedMatch


@dataclass(frozen=True)
class ScoringWeights:
    entity_weight: float = 15.0
    generic_weight: float = 8.0
    liquidity_weight: float = 2.0
    volume_weight: float = 3.0
    co_occurrence_bonus: float = 15.0

    @classmethod
    def preset(cls, name: str) -> "ScoringWeights":
        try:
            return SCORING_PRESETS[name.lower()]
        except KeyError:
            raise ValueError(f"Unknown scoring preset '{name}' (expected one of {sorted(SCORING_PRESETS)})")

    def with_overrides(self, **overrides: Optional[float]) -> "ScoringWeights":
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


REFERENCE = ScoringWeights()
# Entity matches dominate; liquidity favoured over volume
ENTITY_HEAVY = ScoringWeights(entity_weight=20.0, generic_weight=5.0, liquidity_weight=3.0, volume_weight=2.0, co_occurrence_bonus=10.0)
# Popularity signals dominate over generic matches
LIQUIDITY_HEAVY = ScoringWeights(entity_weight=10.0, generic_weight=1.0, liquidity_weight=3.0, volume_weight=2.0, co_occurrence_bonus=5.0)

SCORING_PRESETS = {
    "reference": REFERENCE,
    "entity_heavy": ENTITY_HEAVY,
    "liquidity_heavy": LIQUIDITY_HEAVY,
}


def score(item: Item, match: MatchResult, weights: ScoringWeights = REFERENCE) -> float:
    matched_entities = set(match.matched_entities)
    matched_generic = set(match.matched_generic)
    shared_entities = sum(1 for kw in set(item.entity_tags) if kw in matched_entities)
    shared_generic = sum(1 for kw in set(item.generic_tags) if kw in matched_generic)

    if shared_entities + shared_generic == 0:
        return 0.0

    total = (
        shared_entities * weights.entity_weight
        + shared_generic * weights.generic_weight
        + math.log10(1 + item.liquidity) * weights.liquidity_weight
        + math.log10(1 + item.volume) * weights.volume_weight
    )
    if shared_entities > 0 and shared_generic > 0:
        total += weights.co_occurrence_bonus
    return total


def _ranking_key(ranked: RankedMatch):
    return (-ranked.score, -ranked.item.volume, ranked.item.id)


def rank(candidates: Iterable[Item], match: MatchResult, weights: ScoringWeights = REFERENCE) -> List[RankedMatch]:
    scored = [RankedMatch(item=item, score=score(item, match, weights)) for item in candidates]
    return sorted((r for r in scored if r.score > 0), key=_ranking_key)


def select_top_k(candidates: Iterable[Item], match: MatchResult, weights: ScoringWeights = REFERENCE, k: int = 2) -> List[Item]:
    if k <= 0:
        return []
    return [r.item for r in rank(candidates, match, weights)[:k]]


def top_by_popularity(items: Iterable[Item], k: int = 10) -> List[Item]:
    if k <= 0:
        return []
    return sorted(items, key=lambda item: (-item.volume, item.id))[:k]


def summarize(items: Iterable[Item]) -> MarketStats:
    """Average odds over markets with a positive price, plus total volume."""
    items = list(items)
    if not items:
        return MarketStats()

    yes_odds = [item.yes_price for item in items if item.yes_price > 0]
    no_odds = [item.no_price for item in items if item.no_price > 0]
    return MarketStats(
        total_markets=len(items),
        avg_yes_odds=sum(yes_odds) / len(yes_odds) if yes_odds else 0.0,
        avg_no_odds=sum(no_odds) / len(no_odds) if no_odds else 0.0,
        total_volume=sum(item.volume for item in items),
    )
