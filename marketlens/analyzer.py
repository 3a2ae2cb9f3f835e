import logging
import re
from typing import Optional

from marketlens.models import MatchResult
from marketlens.vocabulary import Vocabulary

logger = logging.getLogger("TextAnalyzer")

TEXT_LIMIT = 20000  # characters

_WHITESPACE = re.compile(r"\s+")


def clean_text(text: Optional[str], limit: int = TEXT_LIMIT) -> str:
    """Collapse whitespace runs and cap the length of scraped page text."""
    if not text:
        return ""
    return _WHITESPACE.sub(" ", text).strip()[:limit]


def analyze(text: Optional[str], vocabulary: Vocabulary) -> MatchResult:
    """Report which vocabulary keywords occur (as substrings) in the text."""
    if not text:
        return MatchResult()

    lower = text.lower()
    entities = tuple(kw for kw in vocabulary.entities if kw in lower)
    generic = tuple(kw for kw in vocabulary.generic if kw in lower)

    logger.debug(f"Matched entities={list(entities[:5])} generic={list(generic[:3])}")
    return MatchResult(matched_entities=entities, matched_generic=generic)
