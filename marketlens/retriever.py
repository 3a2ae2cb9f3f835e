from dataclasses import dataclass
from typing import Iterable, List, Set

from marketlens.index import Snapshot
from marketlens.models import Item, MatchResult


@dataclass(frozen=True)
class RetrievalConfig:
    # True: only add generic-keyword candidates when entities found too few.
    # False: always add them.
    widen_with_generic: bool = True
    min_candidates_before_widening: int = 5  # 0 disables widening


def _union(keywords: Iterable[str], snapshot: Snapshot, seen: Set[str], out: List[Item]) -> None:
    for keyword in keywords:
        for item in snapshot.lookup(keyword):
            if item.id in seen:
                continue
            seen.add(item.id)
            out.append(item)


def retrieve(match: MatchResult, snapshot: Snapshot, config: RetrievalConfig = RetrievalConfig()) -> List[Item]:
    """Deduplicated candidates, first-seen order by matched keyword."""
    seen: Set[str] = set()
    candidates: List[Item] = []

    _union(match.matched_entities, snapshot, seen, candidates)

    if config.widen_with_generic:
        if len(candidates) < config.min_candidates_before_widening:
            _union(match.matched_generic, snapshot, seen, candidates)
    else:
        _union(match.matched_generic, snapshot, seen, candidates)

    return candidates
