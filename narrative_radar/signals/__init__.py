"""
Layer 1: Signal ingestion and scoring.

Modules:
- collectors: Collector interface + JSONL replay collector
- entity_normalizer: Alias + suffix-stripping entity canonicalization
- scorer: Weighted composite score and strength classification
"""

from narrative_radar.signals.collectors import (
    Collector, JsonLinesCollector, JsonLinesFile, collectors_for_file,
)
from narrative_radar.signals.entity_normalizer import normalize_entity, expand_entities
from narrative_radar.signals.scorer import score_signal, score_signals, classify_strength
