"""
Narrative data models.

Derived structures produced by the analytics engine, leaves first:

  EntityCorrelation   entity → signals index entry (recomputed every run)
  ProtoNarrative      a cluster of related signals, pre-naming
  EvidenceChain       fixed-shape audit projection of a ProtoNarrative
  SynthesizedNarrative  titled narrative + its evidence chain
  ProductIdea         follow-on idea generated for a narrative

V1 VALIDATION: narrative status accepts freeform lifecycle words and maps
them onto the enum; confidence and idea scores are clamped to their ranges.
Every coercion is logged.
"""

import logging
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from .base import NarrativeStatus, SignalSource
from .signals import ScoredSignal

logger = logging.getLogger(__name__)

# Freeform status strings (as produced by text synthesis) → enum
_STATUS_ALIASES = {
    "emerging": NarrativeStatus.EMERGING,
    "new": NarrativeStatus.EMERGING,
    "early": NarrativeStatus.EMERGING,
    "nascent": NarrativeStatus.EMERGING,
    "active": NarrativeStatus.ACTIVE,
    "growing": NarrativeStatus.ACTIVE,
    "growth": NarrativeStatus.ACTIVE,
    "accelerating": NarrativeStatus.ACTIVE,
    "peak": NarrativeStatus.ACTIVE,
    "mature": NarrativeStatus.ACTIVE,
    "declining": NarrativeStatus.DECLINING,
    "decline": NarrativeStatus.DECLINING,
    "fading": NarrativeStatus.DECLINING,
    "waning": NarrativeStatus.DECLINING,
}


def coerce_status(value) -> NarrativeStatus:
    """Map a freeform status onto NarrativeStatus, defaulting to EMERGING."""
    if isinstance(value, NarrativeStatus):
        return value
    key = str(value or "").strip().lower()
    status = _STATUS_ALIASES.get(key)
    if status is None:
        logger.debug(f"Unknown narrative status '{value}' → emerging")
        return NarrativeStatus.EMERGING
    return status


class EntityCorrelation(BaseModel):
    """How one canonical entity is mentioned across the current signal window."""
    entity: str
    sources: List[SignalSource] = Field(default_factory=list)
    source_diversity: int = 0
    total_mentions: int = 0
    average_score: float = 0.0
    temporal_density: float = 0.0
    signals: List[ScoredSignal] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_counts(self):
        if self.source_diversity != len(self.sources):
            raise ValueError(
                f"source_diversity={self.source_diversity} but {len(self.sources)} sources"
            )
        if self.total_mentions != len(self.signals):
            raise ValueError(
                f"total_mentions={self.total_mentions} but {len(self.signals)} signals"
            )
        return self


class TemporalSpan(BaseModel):
    start: datetime
    end: datetime


class ProtoNarrative(BaseModel):
    """An algorithmically detected cluster of correlated signals.

    ``entities``/``tags`` are the union of the members' normalized sets,
    kept in first-seen order so downstream naming is deterministic.
    """
    id: str
    signals: List[ScoredSignal]
    entities: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    average_score: float = 0.0
    source_diversity: int = 0
    temporal_span: TemporalSpan

    def ranked(self) -> "ProtoNarrative":
        """Copy with member signals sorted by composite score, best first."""
        ordered = sorted(self.signals, key=lambda s: s.composite_score, reverse=True)
        return self.model_copy(update={"signals": ordered})


# ── Evidence chain ─────────────────────────────────────────────────────

class RawDataPoint(BaseModel):
    source: str
    title: str
    url: Optional[str] = None
    timestamp: str
    value: str


class ScoredSignalSummary(BaseModel):
    title: str
    composite_score: float
    strength: str


class CorrelationSummary(BaseModel):
    entity: str
    source_count: int
    average_score: float


class ClusterInfo(BaseModel):
    signal_count: int
    entity_count: int
    average_score: float


class EvidenceChain(BaseModel):
    """Audit trail: raw data points → scored signals → correlations → cluster."""
    raw_data_points: List[RawDataPoint] = Field(default_factory=list)
    scored_signals: List[ScoredSignalSummary] = Field(default_factory=list)
    correlations: List[CorrelationSummary] = Field(default_factory=list)
    cluster_info: ClusterInfo


class SynthesizedNarrative(BaseModel):
    """A proto-narrative with a human-readable (or fallback) description."""
    title: str
    slug: str
    summary: str
    explanation: str
    confidence_score: float = Field(ge=0.0, le=100.0)
    status: NarrativeStatus = NarrativeStatus.EMERGING
    tags: List[str] = Field(default_factory=list)
    evidence_chain: EvidenceChain
    # distinct sources across every member signal of the cluster
    source_diversity: int = 0
    # ProtoNarrative.id this narrative was synthesized from
    proto_id: Optional[str] = None

    @field_validator("status", mode="before")
    @classmethod
    def _coerce_status(cls, v):
        return coerce_status(v)

    @field_validator("confidence_score", mode="before")
    @classmethod
    def _clamp_confidence(cls, v):
        value = float(v)
        clamped = min(100.0, max(0.0, value))
        if clamped != value:
            logger.debug(f"confidence_score {value} clamped to {clamped}")
        return clamped

    @property
    def signal_count(self) -> int:
        return self.evidence_chain.cluster_info.signal_count


class ProductIdea(BaseModel):
    """A concrete follow-on product idea for a narrative."""
    title: str
    description: str
    target_user: str
    technical_approach: str
    differentiation: str
    feasibility_score: int = Field(ge=1, le=10)
    impact_score: int = Field(ge=1, le=10)

    @field_validator("feasibility_score", "impact_score", mode="before")
    @classmethod
    def _clamp_score(cls, v):
        return int(min(10, max(1, round(float(v)))))
