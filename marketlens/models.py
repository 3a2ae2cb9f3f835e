"""
Market data models
==================
RawItem: one market as returned by the data source (Gamma API shape).
Item: a quality-filtered, keyword-tagged corpus entry (immutable).
MatchResult / RankedMatch / MarketStats: per-query results.
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

POLYMARKET_BASE_URL = "https://polymarket.com"


def to_float(value: Any) -> float:
    """Lenient numeric parse: anything unparseable, NaN or negative becomes 0."""
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(number) or math.isinf(number) or number < 0:
        return 0.0
    return number


def parse_outcome_prices(value: Any) -> Tuple[float, float]:
    """Gamma sends outcomePrices either as a JSON-encoded string or a list."""
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            return (0.0, 0.0)
    if isinstance(value, (list, tuple)) and len(value) >= 2:
        return (to_float(value[0]), to_float(value[1]))
    return (0.0, 0.0)


def parse_end_date(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class RawItem(BaseModel):
    """A market exactly as the data source reports it, normalised to safe types."""

    model_config = ConfigDict(extra="allow")

    id: str = ""
    question: str = ""
    description: str = ""
    events: List[Dict[str, Any]] = []
    outcome_prices: Tuple[float, float] = (0.0, 0.0)
    volume: float = 0.0
    liquidity: float = 0.0
    active: bool = True
    closed: bool = False
    resolved: bool = False
    end_date: Optional[datetime] = None
    slug: str = ""

    @model_validator(mode="before")
    @classmethod
    def _from_gamma_payload(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        # Gamma exposes both a numeric and a string variant of some fields
        if "volumeNum" in data and data["volumeNum"] is not None:
            data["volume"] = data.pop("volumeNum")
        if "liquidityNum" in data and data["liquidityNum"] is not None:
            data["liquidity"] = data.pop("liquidityNum")
        if "outcomePrices" in data:
            data["outcome_prices"] = data.pop("outcomePrices")
        for key in ("endDate", "end_date_iso"):
            if data.get(key) and not data.get("end_date"):
                data["end_date"] = data[key]
        # null flags fall back to the field default
        for key in ("active", "closed", "resolved"):
            if key in data and data[key] is None:
                del data[key]
        return data

    @field_validator("id", "question", "description", "slug", mode="before")
    @classmethod
    def _text(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("events", mode="before")
    @classmethod
    def _events(cls, value: Any) -> List[Dict[str, Any]]:
        if not isinstance(value, list):
            return []
        return [e for e in value if isinstance(e, dict)]

    @field_validator("outcome_prices", mode="before")
    @classmethod
    def _prices(cls, value: Any) -> Tuple[float, float]:
        return parse_outcome_prices(value)

    @field_validator("volume", "liquidity", mode="before")
    @classmethod
    def _amount(cls, value: Any) -> float:
        return to_float(value)

    @field_validator("end_date", mode="before")
    @classmethod
    def _end_date(cls, value: Any) -> Optional[datetime]:
        return parse_end_date(value)

    @property
    def primary_event(self) -> Dict[str, Any]:
        return self.events[0] if self.events else {}

    @property
    def event_title(self) -> str:
        return str(self.primary_event.get("title") or "")

    @property
    def event_slug(self) -> str:
        return str(self.primary_event.get("slug") or "")


class Item(BaseModel):
    """Corpus entry with its keyword tags. Never mutated once built."""

    model_config = ConfigDict(frozen=True)

    id: str
    question: str = ""
    description: str = ""
    event_title: str = ""
    slug: str = ""
    event_slug: str = ""
    outcome_prices: Tuple[float, float] = (0.0, 0.0)
    volume: float = 0.0
    liquidity: float = 0.0
    active: bool = True
    closed: bool = False
    resolved: bool = False
    end_date: Optional[datetime] = None
    # Vocabulary order; semantically sets
    entity_tags: Tuple[str, ...] = ()
    generic_tags: Tuple[str, ...] = ()

    @property
    def yes_price(self) -> float:
        return self.outcome_prices[0]

    @property
    def no_price(self) -> float:
        no = self.outcome_prices[1]
        return no if no > 0 else max(0.0, 1.0 - self.yes_price)

    @property
    def tags(self) -> Tuple[str, ...]:
        return self.entity_tags + self.generic_tags

    @property
    def url(self) -> str:
        """Link to the market page, most specific form first."""
        if self.event_slug and self.slug and self.id:
            return f"{POLYMARKET_BASE_URL}/event/{self.event_slug}/{self.slug}?tid={self.id}"
        if self.slug and self.id:
            return f"{POLYMARKET_BASE_URL}/event/{self.slug}?tid={self.id}"
        if self.event_slug:
            return f"{POLYMARKET_BASE_URL}/event/{self.event_slug}"
        return "#"


@dataclass(frozen=True)
class MatchResult:
    """Keywords spotted in one piece of text, in vocabulary order."""
    matched_entities: Tuple[str, ...] = ()
    matched_generic: Tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.matched_entities and not self.matched_generic

    @property
    def keywords(self) -> Tuple[str, ...]:
        return self.matched_entities + self.matched_generic


@dataclass(frozen=True)
class RankedMatch:
    item: Item
    score: float


@dataclass(frozen=True)
class MarketStats:
    """Aggregate figures shown above a result list."""
    total_markets: int = 0
    avg_yes_odds: float = 0.0
    avg_no_odds: float = 0.0
    total_volume: float = 0.0
