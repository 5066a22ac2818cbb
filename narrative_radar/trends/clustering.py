"""
Narrative clustering — greedy agglomerative grouping of signals into
proto-narratives.

Pipeline: score filter → single assignment pass → merge pass → size filter → rank

1. Keep signals with composite_score > min_signal_score.
2. For each signal (in the order given): combined = normalized entities
   (minus GENERIC_ENTITIES) ∪ lower-cased tags. Compare against every
   cluster's entities ∪ tags with Jaccard similarity; clusters that do not
   yet contain the signal's source get +cross_source_bonus. Join the best
   cluster if the adjusted similarity > initial_threshold, else start a new
   singleton.
3. Merge pass: while any pair of clusters has entity-only Jaccard >
   merge_threshold, merge the later one into the earlier one and rescan.
4. Drop clusters smaller than min_cluster_size.
5. Sort by source_diversity desc, then average_score desc; keep the top
   max_proto_narratives.

DESIGN NOTES:
  - Order-dependent by construction (single greedy pass). The analysis job
    feeds signals ranked by composite score, so runs are reproducible;
    presort=True applies that ranking here explicitly.
  - Jaccard(∅, ∅) = 0, so a signal with no entities/tags never matches
    every cluster.
  - The thresholds (0.12 / 0.08 / 0.25) are tuned together and are the main
    knobs for narrative granularity. See config.py.
  - No randomness anywhere: identical input → identical output.
"""

import logging
from dataclasses import dataclass, field
from typing import AbstractSet, Dict, List, Optional

import numpy as np

from narrative_radar.config import GENERIC_ENTITIES, get_settings
from narrative_radar.schemas import EntityCorrelation, ProtoNarrative, ScoredSignal, TemporalSpan
from narrative_radar.signals.entity_normalizer import expand_entities

logger = logging.getLogger(__name__)


def jaccard_similarity(a: AbstractSet[str], b: AbstractSet[str]) -> float:
    """|A ∩ B| / |A ∪ B|, defined as 0.0 when both sets are empty."""
    union = len(a | b)
    if union == 0:
        return 0.0
    return len(a & b) / union


@dataclass
class _Cluster:
    signals: List[ScoredSignal] = field(default_factory=list)
    # dicts as ordered sets: first-seen order survives into the ProtoNarrative
    entities: Dict[str, None] = field(default_factory=dict)
    tags: Dict[str, None] = field(default_factory=dict)

    @property
    def sources(self) -> set:
        return {s.source for s in self.signals}

    def combined(self) -> set:
        return set(self.entities) | set(self.tags)

    def add(self, signal: ScoredSignal, entities: Dict[str, None], tags: Dict[str, None]) -> None:
        self.signals.append(signal)
        self.entities.update(entities)
        self.tags.update(tags)

    def absorb(self, other: "_Cluster") -> None:
        self.signals.extend(other.signals)
        self.entities.update(other.entities)
        self.tags.update(other.tags)


class NarrativeClusterer:
    """Groups high-scoring signals into ranked proto-narratives."""

    def __init__(
        self,
        min_signal_score: Optional[float] = None,
        initial_threshold: Optional[float] = None,
        cross_source_bonus: Optional[float] = None,
        merge_threshold: Optional[float] = None,
        min_cluster_size: Optional[int] = None,
        max_proto_narratives: Optional[int] = None,
        generic_entities: Optional[AbstractSet[str]] = None,
        presort: bool = False,
    ):
        settings = get_settings()

        def pick(value, default):
            return default if value is None else value

        self.min_signal_score = pick(min_signal_score, settings.cluster_min_signal_score)
        self.initial_threshold = pick(initial_threshold, settings.cluster_initial_threshold)
        self.cross_source_bonus = pick(cross_source_bonus, settings.cluster_cross_source_bonus)
        self.merge_threshold = pick(merge_threshold, settings.cluster_merge_threshold)
        self.min_cluster_size = pick(min_cluster_size, settings.cluster_min_size)
        self.max_proto_narratives = pick(max_proto_narratives, settings.cluster_max_proto_narratives)
        self.generic_entities = frozenset(pick(generic_entities, GENERIC_ENTITIES))
        self.presort = presort

    def signal_features(self, signal: ScoredSignal):
        """(entities, tags) ordered sets used for similarity."""
        entities = {
            e: None for e in expand_entities(signal.entities)
            if e not in self.generic_entities
        }
        tags = {t.lower().strip(): None for t in signal.tags if t.strip()}
        return entities, tags

    def cluster(
        self,
        signals: List[ScoredSignal],
        correlations: Optional[List[EntityCorrelation]] = None,
    ) -> List[ProtoNarrative]:
        """Cluster signals into proto-narratives.

        Args:
            signals: Scored signals; processed in the given order unless presort.
            correlations: Optional correlator output. Only used to report how
                many correlated entities the resulting clusters cover.

        Returns:
            Proto-narratives (each with >= min_cluster_size signals), ranked.
            Empty list when nothing qualifies.
        """
        strong = [s for s in signals if s.composite_score > self.min_signal_score]
        if not strong:
            logger.info(f"No signals above score {self.min_signal_score}, nothing to cluster")
            return []
        if self.presort:
            strong.sort(key=lambda s: s.composite_score, reverse=True)

        clusters = self._assign(strong)
        n_initial = len(clusters)
        self._merge(clusters)

        protos = [
            self._to_proto(f"proto-{i}", c)
            for i, c in enumerate(c for c in clusters if len(c.signals) >= self.min_cluster_size)
        ]
        protos.sort(key=lambda p: (-p.source_diversity, -p.average_score))
        protos = protos[: self.max_proto_narratives]

        logger.info(
            f"Clustered {len(strong)}/{len(signals)} signals: {n_initial} initial clusters → "
            f"{len(clusters)} after merge → {len(protos)} proto-narratives"
        )
        if correlations:
            covered = set().union(*(p.entities for p in protos)) if protos else set()
            hits = sum(1 for c in correlations if c.entity in covered)
            logger.debug(f"Proto-narratives cover {hits}/{len(correlations)} correlated entities")
        return protos

    # ── Internal helpers ─────────────────────────────────────────────

    def _assign(self, signals: List[ScoredSignal]) -> List[_Cluster]:
        clusters: List[_Cluster] = []
        for signal in signals:
            entities, tags = self.signal_features(signal)
            combined = set(entities) | set(tags)

            best_index = -1
            best_similarity = 0.0
            for i, cluster in enumerate(clusters):
                similarity = jaccard_similarity(combined, cluster.combined())
                if signal.source not in cluster.sources:
                    similarity += self.cross_source_bonus
                if similarity > best_similarity and similarity > self.initial_threshold:
                    best_similarity = similarity
                    best_index = i

            if best_index >= 0:
                clusters[best_index].add(signal, entities, tags)
            else:
                new_cluster = _Cluster()
                new_cluster.add(signal, entities, tags)
                clusters.append(new_cluster)
        return clusters

    def _merge(self, clusters: List[_Cluster]) -> None:
        """Merge overlapping clusters in place until no pair exceeds merge_threshold."""
        merged = True
        while merged:
            merged = False
            for i in range(len(clusters)):
                for j in range(i + 1, len(clusters)):
                    similarity = jaccard_similarity(
                        set(clusters[i].entities), set(clusters[j].entities)
                    )
                    if similarity > self.merge_threshold:
                        clusters[i].absorb(clusters.pop(j))
                        merged = True
                        break
                if merged:
                    break

    @staticmethod
    def _to_proto(proto_id: str, cluster: _Cluster) -> ProtoNarrative:
        detected = [s.detected_at for s in cluster.signals]
        return ProtoNarrative(
            id=proto_id,
            signals=list(cluster.signals),
            entities=list(cluster.entities),
            tags=list(cluster.tags),
            average_score=float(np.mean([s.composite_score for s in cluster.signals])),
            source_diversity=len(cluster.sources),
            temporal_span=TemporalSpan(start=min(detected), end=max(detected)),
        )


def cluster_signals(
    signals: List[ScoredSignal],
    correlations: Optional[List[EntityCorrelation]] = None,
) -> List[ProtoNarrative]:
    """Convenience wrapper using settings defaults."""
    return NarrativeClusterer().cluster(signals, correlations)
