"""
Trend layer tests: baseline store, anomaly detector, correlator, clusterer.
"""

from datetime import timedelta

import pytest

from narrative_radar.schemas import BaselinePoint, SignalStrength
from narrative_radar.schemas.signals import COMPOSITE_SCORE_METRIC, SIGNAL_COUNT_METRIC
from narrative_radar.trends.baseline import BaselineStore, InMemoryBaselineStore
from narrative_radar.trends.clustering import NarrativeClusterer, jaccard_similarity
from narrative_radar.trends.correlation import (
    build_entity_index, correlate_signals, find_narrative_candidates,
)
from narrative_radar.trends.detector import TrendDetector, compute_z_score, escalate_strength

Z_THRESHOLDS = {"extreme": 3.0, "strong": 2.0, "medium": 1.0}


class FailingLoadStore(BaselineStore):
    def __init__(self):
        self.appended = []

    def load(self, since, metric_name=None):
        raise ConnectionError("baseline store down")

    def append(self, points):
        self.appended.extend(points)


class FailingAppendStore(InMemoryBaselineStore):
    def append(self, points):
        raise ConnectionError("read-only replica")


def _history(now, source, values):
    return [
        BaselinePoint(
            source=source, metric_name=COMPOSITE_SCORE_METRIC,
            value=v, recorded_at=now - timedelta(days=i + 1),
        )
        for i, v in enumerate(values)
    ]


# ════════════════════════════════════════════════════════════════════
# Z-score and escalation
# ════════════════════════════════════════════════════════════════════

def test_compute_z_score():
    assert compute_z_score(85, 50, 10) == pytest.approx(3.5)
    assert compute_z_score(85, 50, 0) is None


def test_escalation_never_downgrades():
    assert escalate_strength(SignalStrength.EXTREME, 1.5, Z_THRESHOLDS) == SignalStrength.EXTREME
    assert escalate_strength(SignalStrength.WEAK, 1.5, Z_THRESHOLDS) == SignalStrength.MEDIUM
    assert escalate_strength(SignalStrength.WEAK, 2.5, Z_THRESHOLDS) == SignalStrength.STRONG
    assert escalate_strength(SignalStrength.MEDIUM, -4.0, Z_THRESHOLDS) == SignalStrength.MEDIUM
    assert escalate_strength(SignalStrength.WEAK, None, Z_THRESHOLDS) == SignalStrength.WEAK
    # thresholds are strict
    assert escalate_strength(SignalStrength.WEAK, 1.0, Z_THRESHOLDS) == SignalStrength.WEAK


# ════════════════════════════════════════════════════════════════════
# Trend detector
# ════════════════════════════════════════════════════════════════════

def test_baseline_z_score_escalates_to_extreme(make_signal, now):
    # population std of [40, 60] is 10, mean 50
    store = InMemoryBaselineStore(_history(now, "github", [40.0, 60.0]))
    signal = make_signal("github", 85.0, strength=SignalStrength.MEDIUM)

    [enhanced] = TrendDetector(store).detect([signal], now=now)
    assert enhanced.z_score == pytest.approx(3.5)
    assert enhanced.strength == SignalStrength.EXTREME
    assert enhanced.composite_score == 85.0


def test_history_outside_window_is_ignored(make_signal, now):
    old = [
        BaselinePoint(source="github", metric_name=COMPOSITE_SCORE_METRIC,
                      value=v, recorded_at=now - timedelta(days=120))
        for v in (10.0, 90.0)
    ]
    store = InMemoryBaselineStore(old)
    [enhanced] = TrendDetector(store).detect([make_signal("github", 85.0)], now=now)
    assert enhanced.z_score is None


def test_cold_start_uses_in_batch_stats(make_signal, now):
    signals = [make_signal("defi", s) for s in (40.0, 50.0, 60.0)]
    enhanced = TrendDetector(InMemoryBaselineStore()).detect(signals, now=now)

    std = (200 / 3) ** 0.5
    assert enhanced[2].z_score == pytest.approx(10 / std)
    assert enhanced[1].z_score == pytest.approx(0.0)
    assert enhanced[0].z_score == pytest.approx(-10 / std)
    assert [s.composite_score for s in enhanced] == [40.0, 50.0, 60.0]


def test_small_batch_without_history_has_no_z(make_signal, now):
    signals = [make_signal("rss", 40.0), make_signal("rss", 90.0)]
    enhanced = TrendDetector(InMemoryBaselineStore()).detect(signals, now=now)
    assert all(s.z_score is None for s in enhanced)
    assert [s.strength for s in enhanced] == [s.strength for s in signals]


def test_zero_spread_history_falls_back_to_batch(make_signal, now):
    store = InMemoryBaselineStore(_history(now, "github", [50.0, 50.0, 50.0]))
    signals = [make_signal("github", s) for s in (40.0, 50.0, 60.0)]
    enhanced = TrendDetector(store).detect(signals, now=now)
    assert enhanced[2].z_score is not None
    assert enhanced[2].z_score > 0


def test_detector_appends_two_points_per_source(make_signal, now):
    store = InMemoryBaselineStore()
    signals = [make_signal("github", 40.0), make_signal("github", 60.0), make_signal("market", 70.0)]
    TrendDetector(store).detect(signals, now=now)

    points = {(p.source.value, p.metric_name): p.value for p in store.points}
    assert points == {
        ("github", COMPOSITE_SCORE_METRIC): 50.0,
        ("github", SIGNAL_COUNT_METRIC): 2.0,
        ("market", COMPOSITE_SCORE_METRIC): 70.0,
        ("market", SIGNAL_COUNT_METRIC): 1.0,
    }
    assert all(p.recorded_at == now for p in store.points)


def test_baseline_read_failure_returns_signals_unchanged(make_signal, now):
    store = FailingLoadStore()
    signals = [make_signal("github", s) for s in (40.0, 50.0, 60.0)]
    result = TrendDetector(store).detect(signals, now=now)
    assert result == signals
    assert store.appended == []


def test_baseline_write_failure_still_enriches(make_signal, now):
    signals = [make_signal("github", s) for s in (40.0, 50.0, 60.0)]
    result = TrendDetector(FailingAppendStore()).detect(signals, now=now)
    assert result[2].z_score is not None


def test_detect_empty_batch(now):
    store = InMemoryBaselineStore()
    assert TrendDetector(store).detect([], now=now) == []
    assert store.points == []


def test_in_memory_store_filters_by_time_and_metric(now):
    store = InMemoryBaselineStore()
    store.append([
        BaselinePoint(source="github", metric_name=SIGNAL_COUNT_METRIC, value=3, recorded_at=now),
        BaselinePoint(source="github", metric_name=COMPOSITE_SCORE_METRIC, value=55, recorded_at=now),
        BaselinePoint(source="github", metric_name=COMPOSITE_SCORE_METRIC, value=45,
                      recorded_at=now - timedelta(days=100)),
    ])
    loaded = store.load(now - timedelta(days=90), metric_name=COMPOSITE_SCORE_METRIC)
    assert [p.value for p in loaded] == [55]
    assert len(store.load(now - timedelta(days=90))) == 2


# ════════════════════════════════════════════════════════════════════
# Correlator
# ════════════════════════════════════════════════════════════════════

def test_jito_correlation(jito_signals):
    correlations = correlate_signals(jito_signals)
    jito = next(c for c in correlations if c.entity == "jito")
    assert jito.source_diversity == 2
    assert jito.total_mentions == 4
    assert jito.average_score == pytest.approx(60.0)
    # single-mention aliases are below min_mentions
    assert all(c.total_mentions >= 2 for c in correlations)


def test_index_lists_signal_under_every_expanded_entity(jito_signals):
    index = build_entity_index(jito_signals)
    assert len(index["jito"]) == 4
    assert len(index["jto"]) == 1
    assert len(index["bonk"]) == 1


def test_temporal_density_uses_one_day_floor(make_signal):
    same_day = [make_signal("github", 50, entities=["drift"], hours_ago=h) for h in (1, 2, 3)]
    [c] = correlate_signals(same_day)
    assert c.temporal_density == pytest.approx(3.0)

    spread = [make_signal("github", 50, entities=["drift"], hours_ago=h) for h in (0, 48, 96)]
    [c] = correlate_signals(spread)
    assert c.temporal_density == pytest.approx(3 / 4)


def test_correlation_ordering(make_signal):
    signals = [
        make_signal("github", 90, entities=["tensor"]),
        make_signal("github", 80, entities=["tensor"]),
        make_signal("github", 50, entities=["drift"]),
        make_signal("market", 45, entities=["drift"]),
        make_signal("github", 70, entities=["orca"]),
        make_signal("defi", 60, entities=["orca"]),
        make_signal("rss", 20, entities=["orca"]),
    ]
    correlations = correlate_signals(signals)
    assert [c.entity for c in correlations] == ["orca", "drift", "tensor"]
    for a, b in zip(correlations, correlations[1:]):
        assert a.source_diversity > b.source_diversity or (
            a.source_diversity == b.source_diversity and a.average_score >= b.average_score
        )


def test_candidate_filter_is_exact(make_signal):
    signals = [
        make_signal("github", 90, entities=["tensor"]),
        make_signal("github", 80, entities=["tensor"]),
        make_signal("github", 41, entities=["drift"]),
        make_signal("market", 41, entities=["drift"]),
        make_signal("github", 40, entities=["orca"]),
        make_signal("defi", 40, entities=["orca"]),
    ]
    correlations = correlate_signals(signals)
    candidates = find_narrative_candidates(correlations)
    assert [c.entity for c in candidates] == ["drift"]

    expected = [c for c in correlations if c.source_diversity >= 2 and c.average_score > 40]
    assert candidates == expected


def test_correlate_empty():
    assert correlate_signals([]) == []
    assert find_narrative_candidates([]) == []


# ════════════════════════════════════════════════════════════════════
# Jaccard + clusterer
# ════════════════════════════════════════════════════════════════════

def test_jaccard_properties():
    a, b = {"x", "y"}, {"y", "z"}
    assert jaccard_similarity(a, a) == 1.0
    assert jaccard_similarity({"x"}, {"z"}) == 0.0
    assert jaccard_similarity(set(), set()) == 0.0
    assert jaccard_similarity(a, b) == jaccard_similarity(b, a) == pytest.approx(1 / 3)


def test_jito_cluster(jito_signals):
    protos = NarrativeClusterer(min_signal_score=30).cluster(jito_signals)
    assert len(protos) == 1
    proto = protos[0]
    assert len(proto.signals) == 4
    assert all(s.composite_score == 60.0 for s in proto.signals)
    assert "bonk" not in proto.entities
    assert proto.source_diversity == 2
    assert proto.average_score == pytest.approx(60.0)
    assert proto.id == "proto-0"
    assert proto.temporal_span.start < proto.temporal_span.end


def test_no_signals_above_threshold(make_signal):
    signals = [make_signal("github", 30.0, entities=["jito"]) for _ in range(3)]
    assert NarrativeClusterer(min_signal_score=30).cluster(signals) == []
    assert NarrativeClusterer().cluster([]) == []


def test_minimum_cluster_size_invariant(make_signal):
    signals = [
        make_signal("github", 60, entities=["jito"]),
        make_signal("market", 60, entities=["jito"]),
        make_signal("github", 60, entities=["tensor"]),
        make_signal("defi", 60, entities=["kamino"]),
    ]
    for size in (2, 3):
        protos = NarrativeClusterer(min_cluster_size=size).cluster(signals)
        assert all(len(p.signals) >= size for p in protos)


def test_generic_entities_do_not_cluster(make_signal):
    signals = [make_signal("github", 60, entities=["solana", "DeFi"]) for _ in range(4)]
    assert NarrativeClusterer().cluster(signals) == []


def test_cross_source_bonus_decides_membership(make_signal):
    wide = ["a", "b", "c", "d", "e", "f", "g", "h"]
    # Jaccard 1/9 ≈ 0.111 < 0.12 without the bonus
    same_source = [make_signal("github", 60, tags=wide), make_signal("github", 60, tags=["a", "z"])]
    assert NarrativeClusterer().cluster(same_source) == []

    cross_source = [make_signal("github", 60, tags=wide), make_signal("market", 60, tags=["a", "z"])]
    [proto] = NarrativeClusterer().cluster(cross_source)
    assert proto.source_diversity == 2


def test_merge_pass_joins_entity_overlap(make_signal):
    signals = [
        make_signal("github", 60, entities=["jupiter", "raydium"], tags=["x1"]),
        make_signal("github", 60, entities=["jupiter", "orca"],
                    tags=["y1", "y2", "y3", "y4", "y5", "y6"]),
    ]
    # combined Jaccard 1/10 keeps them apart; entity Jaccard 1/3 merges them
    [proto] = NarrativeClusterer().cluster(signals)
    assert len(proto.signals) == 2
    assert proto.entities == ["jupiter", "raydium", "orca"]


def test_clustering_depends_on_input_order(make_signal):
    s1 = make_signal("github", 50, tags=["a", "b"], title="s1")
    s2 = make_signal("github", 55, tags=["c", "d"], title="s2")
    s3 = make_signal("github", 90, tags=["a", "b", "c", "d"], title="s3")

    [first] = NarrativeClusterer().cluster([s1, s2, s3])
    assert [s.title for s in first.signals] == ["s1", "s3"]

    [second] = NarrativeClusterer().cluster([s3, s1, s2])
    assert [s.title for s in second.signals] == ["s3", "s1", "s2"]

    # presort ranks by score first, so both orders agree
    a = NarrativeClusterer(presort=True).cluster([s1, s2, s3])
    b = NarrativeClusterer(presort=True).cluster([s3, s1, s2])
    assert a == b


def test_protos_ranked_by_diversity_then_score(make_signal):
    signals = [
        make_signal("github", 95, entities=["tensor"]),
        make_signal("github", 95, entities=["tensor"]),
        make_signal("github", 50, entities=["drift"]),
        make_signal("market", 50, entities=["drift"]),
        make_signal("github", 70, entities=["kamino"]),
        make_signal("github", 70, entities=["kamino"]),
    ]
    protos = NarrativeClusterer().cluster(signals)
    assert [p.entities[0] for p in protos] == ["drift", "tensor", "kamino"]

    limited = NarrativeClusterer(max_proto_narratives=1).cluster(signals)
    assert [p.entities[0] for p in limited] == ["drift"]


def test_clustering_is_deterministic(jito_signals):
    first = NarrativeClusterer().cluster(jito_signals)
    second = NarrativeClusterer().cluster(jito_signals)
    assert [p.model_dump() for p in first] == [p.model_dump() for p in second]


def test_correlations_argument_does_not_change_result(jito_signals):
    correlations = find_narrative_candidates(correlate_signals(jito_signals))
    assert NarrativeClusterer().cluster(jito_signals, correlations) == NarrativeClusterer().cluster(jito_signals)
