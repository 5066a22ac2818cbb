"""
Cross-source entity correlation.

Builds an inverted index entity → signals over the current signal window
(entities expanded via the normalizer, so "jito-labs" and "JTO" meet under
"jito"), then summarises each entity:

  source_diversity  distinct signal sources mentioning it
  total_mentions    number of signals mentioning it
  average_score     mean composite score of those signals
  temporal_density  mentions / max(1 day, span between first and last mention)

Output order is load-bearing: source_diversity desc, then average_score
desc. Candidate selection and UI ranking both rely on it.

Narrative candidates must be corroborated across independently operated
sources (diversity >= 2) with average score > 40, not just repeated within
one source.
"""

import logging
from typing import Dict, List, Optional

import numpy as np

from narrative_radar.config import get_settings
from narrative_radar.schemas import EntityCorrelation, ScoredSignal
from narrative_radar.signals.entity_normalizer import expand_entities

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400.0


def build_entity_index(signals: List[ScoredSignal]) -> Dict[str, List[ScoredSignal]]:
    """entity → signals mentioning it, in signal order. A signal may appear under many entities."""
    index: Dict[str, List[ScoredSignal]] = {}
    for signal in signals:
        for entity in expand_entities(signal.entities):
            index.setdefault(entity, []).append(signal)
    return index


def _summarise(entity: str, entity_signals: List[ScoredSignal]) -> EntityCorrelation:
    sources = list(dict.fromkeys(s.source for s in entity_signals))
    timestamps = [s.detected_at.timestamp() for s in entity_signals]
    span_days = max(1.0, (max(timestamps) - min(timestamps)) / SECONDS_PER_DAY)

    return EntityCorrelation(
        entity=entity,
        sources=sources,
        source_diversity=len(sources),
        total_mentions=len(entity_signals),
        average_score=float(np.mean([s.composite_score for s in entity_signals])),
        temporal_density=len(entity_signals) / span_days,
        signals=entity_signals,
    )


def correlate_signals(
    signals: List[ScoredSignal],
    min_mentions: Optional[int] = None,
) -> List[EntityCorrelation]:
    """Summarise every entity with at least ``min_mentions`` mentions.

    Args:
        signals: Scored signals in the analysis window.
        min_mentions: Minimum mentions to report an entity (default from settings).

    Returns:
        Correlations sorted by source_diversity desc, then average_score desc.
    """
    if min_mentions is None:
        min_mentions = get_settings().correlation_min_mentions

    index = build_entity_index(signals)
    correlations = [
        _summarise(entity, entity_signals)
        for entity, entity_signals in index.items()
        if len(entity_signals) >= min_mentions
    ]
    correlations.sort(key=lambda c: (-c.source_diversity, -c.average_score))

    logger.info(
        f"Correlated {len(signals)} signals → {len(index)} entities, "
        f"{len(correlations)} with >= {min_mentions} mentions"
    )
    return correlations


def find_narrative_candidates(
    correlations: List[EntityCorrelation],
    min_source_diversity: Optional[int] = None,
    min_average_score: Optional[float] = None,
) -> List[EntityCorrelation]:
    """Entities corroborated across sources: diversity >= min AND average score > min."""
    settings = get_settings()
    if min_source_diversity is None:
        min_source_diversity = settings.correlation_min_source_diversity
    if min_average_score is None:
        min_average_score = settings.correlation_min_average_score

    candidates = [
        c for c in correlations
        if c.source_diversity >= min_source_diversity and c.average_score > min_average_score
    ]
    logger.info(f"Found {len(candidates)} narrative candidates from {len(correlations)} correlations")
    return candidates
