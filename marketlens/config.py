from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional

from marketlens.ingestion import QualityPolicy
from marketlens.retriever import RetrievalConfig
from marketlens.scoring import ScoringWeights


class GlobalConfig(BaseSettings):
    # Platform Info
    PLATFORM_NAME: str = "MarketLens"
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # Gamma API (market data source)
    GAMMA_API_URL: str = "https://gamma-api.polymarket.com/markets"
    PAGE_SIZE: int = 500
    REQUEST_TIMEOUT_SECONDS: float = 10.0
    PAGE_DELAY_SECONDS: float = 0.1  # pause between pages

    # Vocabulary files (one phrase per line)
    ENTITY_KEYWORDS_PATH: str = "data/entity_keywords.txt"
    GENERIC_KEYWORDS_PATH: str = "data/generic_keywords.txt"

    # Quality filter: preset name plus optional per-field overrides
    QUALITY_PRESET: str = "strict"  # strict | loose
    MIN_VOLUME: Optional[float] = None
    MIN_LIQUIDITY: Optional[float] = None
    MIN_DAYS_UNTIL_END: Optional[float] = None

    # Scoring weights: preset name plus optional per-field overrides
    SCORING_PRESET: str = "reference"  # reference | entity_heavy | liquidity_heavy
    ENTITY_WEIGHT: Optional[float] = None
    GENERIC_WEIGHT: Optional[float] = None
    LIQUIDITY_WEIGHT: Optional[float] = None
    VOLUME_WEIGHT: Optional[float] = None
    CO_OCCURRENCE_BONUS: Optional[float] = None

    # Candidate retrieval
    WIDEN_WITH_GENERIC: bool = True
    MIN_CANDIDATES_BEFORE_WIDENING: int = 5  # 0 disables widening

    # Snapshot cache
    CACHE_TTL_SECONDS: int = 300  # 5 minutes
    SERVE_STALE_WHILE_REFRESHING: bool = True
    AUTO_REFRESH: bool = True

    # Result limits
    INLINE_RESULT_LIMIT: int = 2  # cards injected next to a post
    FULL_RESULT_LIMIT: int = 10  # side panel list

    # Offline index export
    INDEX_EXPORT_PATH: str = "data/market_index.json"

    model_config = SettingsConfigDict(env_file=".env", env_prefix="MARKETLENS_", extra="ignore")

    def quality_policy(self) -> QualityPolicy:
        base = QualityPolicy.preset(self.QUALITY_PRESET)
        return base.with_overrides(
            min_volume=self.MIN_VOLUME,
            min_liquidity=self.MIN_LIQUIDITY,
            min_days_until_end=self.MIN_DAYS_UNTIL_END,
        )

    def scoring_weights(self) -> ScoringWeights:
        base = ScoringWeights.preset(self.SCORING_PRESET)
        return base.with_overrides(
            entity_weight=self.ENTITY_WEIGHT,
            generic_weight=self.GENERIC_WEIGHT,
            liquidity_weight=self.LIQUIDITY_WEIGHT,
            volume_weight=self.VOLUME_WEIGHT,
            co_occurrence_bonus=self.CO_OCCURRENCE_BONUS,
        )

    def retrieval_config(self) -> RetrievalConfig:
        return RetrievalConfig(
            widen_with_generic=self.WIDEN_WITH_GENERIC,
            min_candidates_before_widening=self.MIN_CANDIDATES_BEFORE_WIDENING,
        )


# Singleton instance
settings = GlobalConfig()
