"""
Evidence chain builder — fixed-shape audit projection of a proto-narrative.

  raw_data_points  first N member signals (source, title, url, timestamp, value)
  scored_signals   the same N signals (title, composite score, strength)
  correlations     first M proto entities, each re-scored over THIS cluster's
                   signals whose raw entity list contains it (case-insensitive)
  cluster_info     signal count, entity count, average score

Member order is used as-is: callers rank signals before building (see
ProtoNarrative.ranked()). Pure function of its input; no clock, no
randomness, so repeated builds serialize identically.
"""

from typing import Optional

import numpy as np

from narrative_radar.config import get_settings
from narrative_radar.schemas import (
    ClusterInfo, CorrelationSummary, EvidenceChain, ProtoNarrative,
    RawDataPoint, ScoredSignal, ScoredSignalSummary,
)


def _value_line(signal: ScoredSignal) -> str:
    return (
        f"Score: {signal.composite_score:.0f}, "
        f"Magnitude: {signal.magnitude:.0f}, "
        f"Velocity: {signal.velocity:.0f}"
    )


def _cluster_correlation(proto: ProtoNarrative, entity: str) -> CorrelationSummary:
    key = entity.lower()
    related = [
        s for s in proto.signals
        if any(e.lower() == key for e in s.entities)
    ]
    return CorrelationSummary(
        entity=entity,
        source_count=len({s.source for s in related}),
        average_score=float(np.mean([s.composite_score for s in related])) if related else 0.0,
    )


def build_evidence_chain(
    proto: ProtoNarrative,
    max_signals: Optional[int] = None,
    max_correlations: Optional[int] = None,
) -> EvidenceChain:
    settings = get_settings()
    max_signals = settings.evidence_max_signals if max_signals is None else max_signals
    max_correlations = settings.evidence_max_correlations if max_correlations is None else max_correlations

    top = proto.signals[:max_signals]
    return EvidenceChain(
        raw_data_points=[
            RawDataPoint(
                source=s.source.value,
                title=s.title,
                url=s.source_url,
                timestamp=s.detected_at.isoformat(),
                value=_value_line(s),
            )
            for s in top
        ],
        scored_signals=[
            ScoredSignalSummary(
                title=s.title,
                composite_score=s.composite_score,
                strength=s.strength.value,
            )
            for s in top
        ],
        correlations=[
            _cluster_correlation(proto, entity)
            for entity in proto.entities[:max_correlations]
        ],
        cluster_info=ClusterInfo(
            signal_count=len(proto.signals),
            entity_count=len(proto.entities),
            average_score=proto.average_score,
        ),
    )
