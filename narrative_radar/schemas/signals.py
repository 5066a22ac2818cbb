"""
Signal data models.

RawObservation is what a collector emits; ScoredSignal is the same fact
after the scorer (composite score + strength) and the trend detector
(z-score, possibly escalated strength) have run. BaselinePoint is one row of
the per-source historical time series the trend detector reads and grows.

V1 VALIDATION: tags/entities are de-duplicated (order kept, empties dropped)
and naive timestamps are read as UTC. Every coercion is logged.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from .base import SignalSource, SignalStrength

logger = logging.getLogger(__name__)

COMPOSITE_SCORE_METRIC = "composite_score"
SIGNAL_COUNT_METRIC = "signal_count"


def _ensure_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _unique_strings(values: Any, field_name: str) -> List[str]:
    if values is None:
        return []
    values = [values] if isinstance(values, str) else list(values)
    seen: Dict[str, None] = {}
    for value in values:
        if value is None:
            continue
        text = str(value).strip()
        if text and text not in seen:
            seen[text] = None
    result = list(seen)
    if len(result) != len(values):
        logger.debug(f"{field_name}: dropped {len(values) - len(result)} duplicate/empty values")
    return result


class RawObservation(BaseModel):
    """One atomic fact from a collector.

    The four dimension scores are producer-supplied on a nominal 0-100 scale
    and are NOT validated here: out-of-range values are clamped by the scorer.
    ``raw_data`` is an opaque payload carried through for audit, never read.
    """
    source: SignalSource
    source_url: Optional[str] = None
    title: str
    description: str = ""
    raw_data: Dict[str, Any] = Field(default_factory=dict)
    tags: List[str] = Field(default_factory=list)
    entities: List[str] = Field(default_factory=list)
    magnitude: float
    velocity: float
    novelty: float
    confidence: float
    detected_at: datetime

    class Config:
        frozen = True

    @field_validator("tags", "entities", mode="before")
    @classmethod
    def _dedupe(cls, v, info):
        return _unique_strings(v, info.field_name)

    @field_validator("detected_at")
    @classmethod
    def _utc(cls, v: datetime) -> datetime:
        return _ensure_utc(v)


class ScoredSignal(RawObservation):
    """RawObservation plus composite score, z-score and strength.

    ``id`` is assigned by persistence and is None for signals that have not
    been stored yet.
    """
    composite_score: float = Field(ge=0.0, le=100.0)
    z_score: Optional[float] = None
    strength: SignalStrength
    id: Optional[str] = None

    def summary_line(self) -> str:
        """Short one-line description used in synthesis prompts."""
        return (
            f"[{self.source.value}] {self.title} "
            f"(score: {self.composite_score:.0f}, strength: {self.strength.value})"
        )


class BaselinePoint(BaseModel):
    """One point of the append-only per-source metric history."""
    source: SignalSource
    metric_name: str
    value: float
    recorded_at: datetime

    class Config:
        frozen = True

    @field_validator("recorded_at")
    @classmethod
    def _utc(cls, v: datetime) -> datetime:
        return _ensure_utc(v)
