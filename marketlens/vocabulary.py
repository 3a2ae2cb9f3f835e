"""
Keyword vocabulary
==================
Two disjoint classes of normalised phrases:

  entity: proper nouns, tickers, organisations (weighted higher)
  generic: topical / common words (weighted lower)

A phrase listed in both files is classified as an entity.

The module also carries the offline tooling used to curate the lists:
``clean_keywords`` (dedupe + sort a raw dump) and ``split_keywords``
(heuristic entity / generic / uncertain split for manual review).
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Protocol, Tuple

from marketlens.errors import VocabularyLoadError

logger = logging.getLogger("Vocabulary")

ENTITY = "entity"
GENERIC = "generic"


def normalize_keyword(raw: str) -> str:
    return raw.strip().lower()


def _normalize_all(lines: Iterable[str]) -> List[str]:
    seen = set()
    result = []
    for line in lines:
        keyword = normalize_keyword(line)
        if not keyword or keyword in seen:
            continue
        seen.add(keyword)
        result.append(keyword)
    return result


@dataclass(frozen=True)
class Vocabulary:
    entities: Tuple[str, ...] = ()
    generic: Tuple[str, ...] = ()

    @classmethod
    def from_lines(cls, entity_lines: Iterable[str], generic_lines: Iterable[str]) -> "Vocabulary":
        entities = _normalize_all(entity_lines)
        entity_set = set(entities)
        generic = [kw for kw in _normalize_all(generic_lines) if kw not in entity_set]
        return cls(entities=tuple(entities), generic=tuple(generic))

    @property
    def is_empty(self) -> bool:
        return not self.entities and not self.generic

    def __len__(self) -> int:
        return len(self.entities) + len(self.generic)

    def classify(self, keyword: str) -> Optional[str]:
        keyword = normalize_keyword(keyword)
        if keyword in self.entities:
            return ENTITY
        if keyword in self.generic:
            return GENERIC
        return None


def _read_lines(path: str) -> List[str]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            # splitlines() handles both \n and \r\n files
            return f.read().splitlines()
    except (OSError, UnicodeDecodeError) as e:
        raise VocabularyLoadError(str(path), str(e)) from e


def load_vocabulary(entity_source: str, generic_source: str) -> Vocabulary:
    """Read both keyword files. An empty file is valid; a missing one is not."""
    vocabulary = Vocabulary.from_lines(_read_lines(entity_source), _read_lines(generic_source))
    logger.info(
        f"Loaded {len(vocabulary.entities)} entity keywords, "
        f"{len(vocabulary.generic)} generic keywords"
    )
    return vocabulary


class VocabularySource(Protocol):
    def load_vocabulary(self) -> Vocabulary:
        ...


class FileVocabularySource:
    def __init__(self, entity_path: str, generic_path: str):
        self.entity_path = entity_path
        self.generic_path = generic_path

    def load_vocabulary(self) -> Vocabulary:
        return load_vocabulary(self.entity_path, self.generic_path)


# ──────────────────────────────────────────────────────────────────
# Offline curation helpers
# ──────────────────────────────────────────────────────────────────

def clean_keywords(lines: Iterable[str]) -> List[str]:
    """Trim, drop single characters, dedupe case-insensitively and sort."""
    unique = {}
    for line in lines:
        keyword = line.strip()
        if len(keyword) <= 1:
            continue
        unique.setdefault(keyword.lower(), keyword)
    return sorted(unique.values(), key=str.lower)


ENTITY_PATTERNS = [
    re.compile(r"^[A-Z][a-z]+\s+[A-Z][a-z]+"),
    re.compile(r"^(btc|eth|sol|ada|matic|avax|link|uni|aave|snx|crv|comp|mkr|yfi|sushi|cake|bnb|doge|shib|pepe|floki)", re.I),
    re.compile(r"Trump|Biden|Harris|Obama|Xi|Putin|Zelenskyy|Netanyahu|Modi|Musk|Bezos|Zuckerberg|Gates|Buffett", re.I),
    re.compile(r"Tesla|Apple|Microsoft|Google|Amazon|Meta|Netflix|Nvidia|AMD|Intel|OpenAI|Anthropic", re.I),
    re.compile(r"Polymarket|Binance|Coinbase|Kraken|FTX|Uniswap|Aave|Compound|MakerDAO|Worldcoin", re.I),
    re.compile(r"(FC|United|City|Madrid|Barcelona|Bayern|PSG|Arsenal|Chelsea|Liverpool)"),
    re.compile(r"(NBA|NFL|MLB|NHL|UFC|FIFA|Olympics|Premier League|Champions League)"),
    re.compile(r"^[A-Z]{2,}$"),
    re.compile(r"Pudgy Penguins|Bored Ape|CryptoPunks|Azuki|Milady", re.I),
]

GENERIC_PATTERNS = [
    re.compile(r"^(price|volume|revenue|profit|loss|gain|increase|decrease|drop|pump|dump|surge|crash)", re.I),
    re.compile(r"^(success|failure|win|lose|growth|decline|rise|fall|high|low|peak|bottom)", re.I),
    re.compile(r"^(election|vote|poll|campaign|debate|policy|regulation|ban|law|court)", re.I),
    re.compile(r"^(crypto|blockchain|token|coin|nft|defi|web3|metaverse|ai|tech)", re.I),
    re.compile(r"^(market|trading|investment|hedge|risk|volatility|liquidity)", re.I),
    re.compile(r"^(award|ranking|rating|score|points|win|loss|tie)", re.I),
    re.compile(r"^\$?\d+"),
    re.compile(r"^\d+[-‒–—]\d+"),
    re.compile(r"^(above|below|over|under|between|more|less|than)", re.I),
    re.compile(r"^(will|would|could|should|might|may|can)", re.I),
    re.compile(r"percentage|%|basis points|bps", re.I),
]

GENERIC_WORDS = {
    "price", "volume", "revenue", "profit", "loss", "gain", "increase", "decrease",
    "success", "failure", "growth", "decline", "win", "lose", "above", "below",
    "election", "vote", "poll", "campaign", "debate", "market", "trading",
    "crypto", "token", "coin", "blockchain", "defi", "nft", "award", "ranking",
    "season", "game", "match", "championship", "tournament", "league", "division",
}


def is_entity_keyword(keyword: str) -> bool:
    if len(keyword) <= 2:
        return False
    if any(p.search(keyword) for p in ENTITY_PATTERNS):
        return True
    # Capitalised multi-word phrase that is not a dated title ("2024 ...")
    return keyword[:1].isupper() and " " in keyword and "20" not in keyword


def is_generic_keyword(keyword: str) -> bool:
    if any(p.search(keyword) for p in GENERIC_PATTERNS):
        return True
    return keyword.lower() in GENERIC_WORDS


def split_keywords(lines: Iterable[str]) -> Tuple[List[str], List[str], List[str]]:
    """Split raw (case-preserved) keywords into entity, generic and uncertain lists."""
    entities: List[str] = []
    generic: List[str] = []
    uncertain: List[str] = []
    for line in lines:
        keyword = line.strip()
        if not keyword:
            continue
        if is_entity_keyword(keyword):
            entities.append(keyword)
        elif is_generic_keyword(keyword):
            generic.append(keyword)
        else:
            uncertain.append(keyword)
    logger.info(f"Split keywords: {len(entities)} entity, {len(generic)} generic, {len(uncertain)} uncertain")
    return entities, generic, uncertain


def write_keyword_file(path: str, keywords: Iterable[str]) -> None:
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        f.write("\n".join(keywords))
