"""
MatchEngine: text in, ranked markets out
=========================================
One engine instance owns the vocabulary, the scoring / retrieval / quality
configuration and the SnapshotController. Build it once and share it::

    engine = MatchEngine.from_settings(settings)
    outcome = await engine.get_ranked_matches("Bitcoin price is pumping", k=2)
    if outcome.status is MatchStatus.MATCHED:
        for match in outcome.matches:
            print(match.item.question, match.score)

Analysis, retrieval and scoring are synchronous and pure; only snapshot
acquisition awaits.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional

from marketlens.analyzer import analyze, clean_text
from marketlens.controller import Clock, ControllerStatus, SnapshotController
from marketlens.data_source import DataSource, GammaMarketSource
from marketlens.errors import IngestionError
from marketlens.index import Snapshot, load_snapshot
from marketlens.ingestion import STRICT, QualityPolicy, ingest
from marketlens.models import Item, MatchResult, RankedMatch
from marketlens.retriever import RetrievalConfig, retrieve
from marketlens.scoring import REFERENCE, ScoringWeights, rank, top_by_popularity
from marketlens.vocabulary import Vocabulary, load_vocabulary

logger = logging.getLogger("MatchEngine")


class MatchStatus(str, Enum):
    MATCHED = "matched"
    NO_MATCH = "no_match"  # index ready, nothing relevant
    NOT_READY = "not_ready"  # first build still running
    INGESTION_FAILED = "ingestion_failed"  # no snapshot could be built


@dataclass(frozen=True)
class RankingOutcome:
    status: MatchStatus
    matches: List[RankedMatch] = field(default_factory=list)
    match_result: MatchResult = MatchResult()
    snapshot_built_at: Optional[datetime] = None
    partial: bool = False
    error: Optional[str] = None

    @property
    def items(self) -> List[Item]:
        return [m.item for m in self.matches]


class MatchEngine:
    def __init__(
        self,
        vocabulary: Vocabulary,
        source: DataSource,
        policy: QualityPolicy = STRICT,
        weights: ScoringWeights = REFERENCE,
        retrieval: RetrievalConfig = RetrievalConfig(),
        ttl_seconds: float = 300,
        serve_stale: bool = True,
        page_size: int = 500,
        page_delay: float = 0.0,
        inline_limit: int = 2,
        full_limit: int = 10,
        auto_refresh: bool = True,
        clock: Optional[Clock] = None,
    ):
        self.vocabulary = vocabulary
        self.source = source
        self.policy = policy
        self.weights = weights
        self.retrieval = retrieval
        self.page_size = page_size
        self.page_delay = page_delay
        self.inline_limit = inline_limit
        self.full_limit = full_limit
        self.auto_refresh = auto_refresh
        self.controller = SnapshotController(
            builder=self._build_snapshot,
            ttl_seconds=ttl_seconds,
            serve_stale=serve_stale,
            clock=clock,
        )

    @classmethod
    def from_settings(cls, cfg=None, source: Optional[DataSource] = None) -> "MatchEngine":
        """Wire an engine from GlobalConfig. VocabularyLoadError propagates."""
        if cfg is None:
            from marketlens.config import settings as cfg
        vocabulary = load_vocabulary(cfg.ENTITY_KEYWORDS_PATH, cfg.GENERIC_KEYWORDS_PATH)
        if source is None:
            source = GammaMarketSource(base_url=cfg.GAMMA_API_URL, timeout=cfg.REQUEST_TIMEOUT_SECONDS)
        return cls(
            vocabulary=vocabulary,
            source=source,
            policy=cfg.quality_policy(),
            weights=cfg.scoring_weights(),
            retrieval=cfg.retrieval_config(),
            ttl_seconds=cfg.CACHE_TTL_SECONDS,
            serve_stale=cfg.SERVE_STALE_WHILE_REFRESHING,
            page_size=cfg.PAGE_SIZE,
            page_delay=cfg.PAGE_DELAY_SECONDS,
            inline_limit=cfg.INLINE_RESULT_LIMIT,
            full_limit=cfg.FULL_RESULT_LIMIT,
            auto_refresh=cfg.AUTO_REFRESH,
        )

    async def _build_snapshot(self) -> Snapshot:
        return await ingest(
            self.source,
            self.vocabulary,
            self.policy,
            page_size=self.page_size,
            page_delay=self.page_delay,
        )

    # ------------------------------------------------------------------
    # Pure operations
    # ------------------------------------------------------------------

    def analyze_text(self, text: Optional[str]) -> MatchResult:
        return analyze(clean_text(text), self.vocabulary)

    def _rank(self, match: MatchResult, snapshot: Snapshot, k: int) -> List[RankedMatch]:
        if match.is_empty or k <= 0:
            return []
        candidates = retrieve(match, snapshot, self.retrieval)
        return rank(candidates, match, self.weights)[:k]

    def rank_in_snapshot(self, text: Optional[str], snapshot: Snapshot, k: Optional[int] = None) -> List[RankedMatch]:
        return self._rank(self.analyze_text(text), snapshot, self.inline_limit if k is None else k)

    # ------------------------------------------------------------------
    # Snapshot-backed operations
    # ------------------------------------------------------------------

    async def get_ranked_matches(self, text: Optional[str], k: Optional[int] = None, wait: bool = True) -> RankingOutcome:
        """
        Rank markets for *text*. With wait=False and no snapshot yet, a build is
        started in the background and NOT_READY is returned immediately, or
        INGESTION_FAILED if the previous build already failed.
        """
        match = self.analyze_text(text)
        k = self.inline_limit if k is None else k

        if self.controller.snapshot is None and not wait:
            last_error = self.controller.last_error
            await self.controller.trigger()
            if last_error is not None:
                return RankingOutcome(status=MatchStatus.INGESTION_FAILED, match_result=match, error=str(last_error))
            return RankingOutcome(status=MatchStatus.NOT_READY, match_result=match)

        try:
            snapshot = await self.controller.get_snapshot()
        except IngestionError as e:
            return RankingOutcome(status=MatchStatus.INGESTION_FAILED, match_result=match, error=str(e))
        except asyncio.TimeoutError:
            return RankingOutcome(status=MatchStatus.NOT_READY, match_result=match)

        matches = self._rank(match, snapshot, k)

        logger.debug(
            f"Ranked {len(matches)} markets for entities={list(match.matched_entities[:5])} "
            f"generic={list(match.matched_generic[:3])}"
        )
        return RankingOutcome(
            status=MatchStatus.MATCHED if matches else MatchStatus.NO_MATCH,
            matches=matches,
            match_result=match,
            snapshot_built_at=snapshot.built_at,
            partial=snapshot.partial,
            # set when serving an older snapshot because the last refresh failed
            error=str(self.controller.last_error) if self.controller.last_error else None,
        )

    async def get_top_by_popularity(self, k: Optional[int] = None) -> List[Item]:
        snapshot = await self.controller.get_snapshot()
        return top_by_popularity(snapshot.items, self.full_limit if k is None else k)

    async def force_refresh(self) -> Snapshot:
        return await self.controller.force_refresh()

    def status(self) -> ControllerStatus:
        return self.controller.status()

    def load_snapshot(self, path: str) -> Snapshot:
        snapshot = load_snapshot(path)
        self.controller.install(snapshot)
        return snapshot

    def start(self, interval_seconds: Optional[float] = None) -> None:
        if not self.auto_refresh:
            logger.info("Auto refresh disabled; snapshots rebuild on demand only")
            return
        self.controller.start(interval_seconds)

    def shutdown(self) -> None:
        self.controller.shutdown()
