"""
Configuration management for Narrative Radar.

Every weight, threshold and window used by the analytics engine is a
settings field, so narrative granularity can be tuned from the environment
without touching code. Static vocabulary (entity aliases, suffixes, generic
entities) lives below as module constants.
"""

import json
import logging
from functools import lru_cache
from typing import Dict

from pydantic import Field
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)

_DEFAULT_SCORING_WEIGHTS = {
    "magnitude": 0.25,
    "velocity": 0.30,
    "novelty": 0.25,
    "confidence": 0.20,
}


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # LLM Configuration
    # Provider: gemini | groq | glm | fallback (chain of all configured) | none
    llm_provider: str = Field(default="gemini", alias="LLM_PROVIDER")
    gemini_api_key: str = Field(default="", alias="GEMINI_API_KEY")
    gemini_model: str = Field(default="gemini-2.5-flash", alias="GEMINI_MODEL")
    groq_api_key: str = Field(default="", alias="GROQ_API_KEY")
    groq_model: str = Field(default="llama-3.3-70b-versatile", alias="GROQ_MODEL")
    glm_api_key: str = Field(default="", alias="GLM_API_KEY")
    glm_model: str = Field(default="zai-org/GLM-5-FP8", alias="GLM_MODEL")
    glm_base_url: str = Field(default="https://api.us-west-2.modal.direct/v1", alias="GLM_BASE_URL")
    llm_json_max_retries: int = Field(default=2, alias="LLM_JSON_MAX_RETRIES")
    synthesis_temperature: float = Field(default=0.3, alias="SYNTHESIS_TEMPERATURE")
    idea_temperature: float = Field(default=0.7, alias="IDEA_TEMPERATURE")

    # ── Signal Scoring ──
    # Velocity carries the largest weight: fast-changing signals outrank merely large ones.
    # Weights should sum to 1.0 so the composite stays on the 0-100 scale.
    scoring_weights: str = Field(
        default='{"magnitude":0.25,"velocity":0.30,"novelty":0.25,"confidence":0.20}',
        alias="SCORING_WEIGHTS",
    )
    strength_extreme: float = Field(default=75.0, alias="STRENGTH_EXTREME")
    strength_strong: float = Field(default=55.0, alias="STRENGTH_STRONG")
    strength_medium: float = Field(default=35.0, alias="STRENGTH_MEDIUM")

    # ── Anomaly Detection (z-score vs. rolling per-source baseline) ──
    z_score_extreme: float = Field(default=3.0, alias="Z_SCORE_EXTREME")
    z_score_strong: float = Field(default=2.0, alias="Z_SCORE_STRONG")
    z_score_medium: float = Field(default=1.0, alias="Z_SCORE_MEDIUM")
    # Cold start: in-batch baseline needs at least this many signals per source
    z_score_min_batch: int = Field(default=3, alias="Z_SCORE_MIN_BATCH")
    baseline_window_days: int = Field(default=90, alias="BASELINE_WINDOW_DAYS")

    # ── Clustering ──
    # 0.12 initial / 0.08 bonus / 0.25 merge are tuned together. Lower initial
    # threshold = bigger, looser narratives. Higher merge threshold = more of them.
    cluster_min_signal_score: float = Field(default=30.0, alias="CLUSTER_MIN_SIGNAL_SCORE")
    cluster_initial_threshold: float = Field(default=0.12, alias="CLUSTER_INITIAL_THRESHOLD")
    cluster_cross_source_bonus: float = Field(default=0.08, alias="CLUSTER_CROSS_SOURCE_BONUS")
    cluster_merge_threshold: float = Field(default=0.25, alias="CLUSTER_MERGE_THRESHOLD")
    cluster_max_proto_narratives: int = Field(default=15, alias="CLUSTER_MAX_PROTO_NARRATIVES")
    cluster_min_size: int = Field(default=2, alias="CLUSTER_MIN_SIZE")

    # ── Correlation ──
    correlation_min_mentions: int = Field(default=2, alias="CORRELATION_MIN_MENTIONS")
    correlation_min_source_diversity: int = Field(default=2, alias="CORRELATION_MIN_SOURCE_DIVERSITY")
    correlation_min_average_score: float = Field(default=40.0, alias="CORRELATION_MIN_AVERAGE_SCORE")

    # ── Analysis job ──
    analysis_window_days: int = Field(default=14, alias="ANALYSIS_WINDOW_DAYS")
    analysis_min_signals: int = Field(default=50, alias="ANALYSIS_MIN_SIGNALS")
    analysis_max_signals_to_load: int = Field(default=1000, alias="ANALYSIS_MAX_SIGNALS_TO_LOAD")
    analysis_top_narratives_for_ideas: int = Field(default=5, alias="ANALYSIS_TOP_NARRATIVES_FOR_IDEAS")
    analysis_max_protos_for_llm: int = Field(default=15, alias="ANALYSIS_MAX_PROTOS_FOR_LLM")
    min_narrative_confidence: float = Field(default=30.0, alias="MIN_NARRATIVE_CONFIDENCE")

    # ── Evidence chain / synthesis payload sizes ──
    evidence_max_signals: int = Field(default=10, alias="EVIDENCE_MAX_SIGNALS")
    evidence_max_correlations: int = Field(default=8, alias="EVIDENCE_MAX_CORRELATIONS")
    synthesis_max_entities: int = Field(default=10, alias="SYNTHESIS_MAX_ENTITIES")
    synthesis_max_tags: int = Field(default=10, alias="SYNTHESIS_MAX_TAGS")
    synthesis_max_signal_summaries: int = Field(default=8, alias="SYNTHESIS_MAX_SIGNAL_SUMMARIES")
    fallback_max_tags: int = Field(default=8, alias="FALLBACK_MAX_TAGS")

    # Database
    database_url: str = Field(default="sqlite:///./radar.db", alias="DATABASE_URL")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"
        populate_by_name = True

    def get_scoring_weights(self) -> Dict[str, float]:
        """Parse SCORING_WEIGHTS, falling back to the defaults on bad JSON.

        Missing dimensions keep their default weight.
        """
        try:
            parsed = json.loads(self.scoring_weights)
        except (TypeError, ValueError) as e:
            logger.warning(f"Invalid SCORING_WEIGHTS ({e}), using defaults")
            return dict(_DEFAULT_SCORING_WEIGHTS)
        weights = dict(_DEFAULT_SCORING_WEIGHTS)
        for key in weights:
            if key in parsed:
                weights[key] = float(parsed[key])
        return weights

    def get_strength_thresholds(self) -> Dict[str, float]:
        return {
            "extreme": self.strength_extreme,
            "strong": self.strength_strong,
            "medium": self.strength_medium,
        }

    def get_z_score_thresholds(self) -> Dict[str, float]:
        return {
            "extreme": self.z_score_extreme,
            "strong": self.z_score_strong,
            "medium": self.z_score_medium,
        }

    def has_llm_credentials(self) -> bool:
        """True when the selected provider (or any, for 'fallback') has a key."""
        provider = self.llm_provider.lower()
        keys = {
            "gemini": self.gemini_api_key,
            "groq": self.groq_api_key,
            "glm": self.glm_api_key,
        }
        if provider == "fallback":
            return any(keys.values())
        return bool(keys.get(provider))


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# ── Entity normalization tables ────────────────────────────────────────
# Maps lowercase alias → canonical key. Tickers, org slugs and spelling
# variants of one protocol collapse to a single key.
ENTITY_ALIASES: Dict[str, str] = {
    # Core chain
    "solana-labs": "solana",
    "solana-foundation": "solana",
    "sol": "solana",
    "solana-ecosystem": "solana",
    "solana-tvl": "solana-defi",
    "defi-ecosystem": "solana-defi",
    "defi-categories": "solana-defi",
    "solana-dex": "solana-defi",

    # Protocols
    "jito-foundation": "jito",
    "jito-labs": "jito",
    "jto": "jito",
    "jupiter-exchange": "jupiter",
    "jup": "jupiter",
    "marinade-finance": "marinade",
    "mnde": "marinade",
    "msol": "marinade",
    "raydium-io": "raydium",
    "ray": "raydium",
    "drift-labs": "drift",
    "drift protocol": "drift",
    "tensor-hq": "tensor",
    "tnsr": "tensor",
    "helius-labs": "helius",
    "metaplex-foundation": "metaplex",
    "orca-so": "orca",
    "squads-protocol": "squads",
    "kamino-finance": "kamino",
    "sanctum-so": "sanctum",
    "pyth-network": "pyth",
    "switchboard-xyz": "switchboard",
    "wormhole-foundation": "wormhole",
    "anchor-lang": "anchor",

    # Concepts
    "liquid staking": "liquid-staking",
    "lending": "lending",
    "dexes": "dexes",
}

# Organizational suffixes stripped before a second alias lookup
ENTITY_STRIP_SUFFIXES = [
    "-foundation", "-labs", "-exchange", "-protocol",
    "-finance", "-hq", "-so", "-io", "-xyz", "-network",
]

# Too broad to discriminate between narratives; excluded from clustering
GENERIC_ENTITIES = frozenset({
    "solana", "defi", "sol", "crypto", "blockchain", "token", "nft",
})
