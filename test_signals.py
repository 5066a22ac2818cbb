"""
Signal layer tests: observation model, entity normalizer, scorer, collectors.
"""

import asyncio
import json
from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from narrative_radar.config import ENTITY_ALIASES
from narrative_radar.schemas import RawObservation, SignalSource, SignalStrength
from narrative_radar.signals.collectors import JsonLinesCollector, JsonLinesFile, collectors_for_file
from narrative_radar.signals.entity_normalizer import expand_entities, normalize_entity
from narrative_radar.signals.scorer import classify_strength, clamp, score_signal, score_signals


# ════════════════════════════════════════════════════════════════════
# RawObservation model
# ════════════════════════════════════════════════════════════════════

def test_observation_dedupes_tags_and_entities(make_raw):
    raw = make_raw(entities=["jito", "jito", " ", "jup"], tags=["mev", "mev", "staking"])
    assert raw.entities == ["jito", "jup"]
    assert raw.tags == ["mev", "staking"]


def test_observation_naive_timestamp_is_utc():
    raw = RawObservation(
        source="github", title="t", magnitude=1, velocity=1, novelty=1, confidence=1,
        detected_at=datetime(2026, 1, 1, 12, 0),
    )
    assert raw.detected_at.tzinfo == timezone.utc


def test_observation_rejects_unknown_source():
    with pytest.raises(ValidationError):
        RawObservation(
            source="telegram", title="t", magnitude=1, velocity=1, novelty=1, confidence=1,
            detected_at=datetime.now(timezone.utc),
        )


def test_observation_requires_dimensions():
    with pytest.raises(ValidationError):
        RawObservation(source="github", title="t", detected_at=datetime.now(timezone.utc))


# ════════════════════════════════════════════════════════════════════
# Entity normalizer
# ════════════════════════════════════════════════════════════════════

def test_alias_lookup():
    assert normalize_entity("JTO") == "jito"
    assert normalize_entity("  Jupiter-Exchange ") == "jupiter"
    assert normalize_entity("mSOL") == "marinade"


def test_suffix_stripping_then_alias():
    # not in the alias table, suffix removed
    assert normalize_entity("phoenix-labs") == "phoenix"
    # stripped form is itself an alias
    assert normalize_entity("sol-foundation") == "solana"


def test_short_and_empty_pass_through():
    assert normalize_entity("") == ""
    assert normalize_entity("W") == "w"


def test_alias_table_has_no_unreachable_keys():
    # keys shorter than 2 characters are returned before the alias lookup
    assert all(len(alias) >= 2 for alias in ENTITY_ALIASES)


def test_unknown_entity_is_lowercased():
    assert normalize_entity("Bonk") == "bonk"


def test_custom_tables():
    assert normalize_entity("abc-corp", aliases={"abc": "alpha"}, suffixes=["-corp"]) == "alpha"


def test_expand_keeps_canonical_and_original():
    assert expand_entities(["jito-labs", "JTO", "jito"]) == ["jito", "jito-labs", "jto"]


def test_expand_drops_short_forms():
    assert expand_entities(["x", ""]) == []


# ════════════════════════════════════════════════════════════════════
# Scorer
# ════════════════════════════════════════════════════════════════════

def test_composite_uses_default_weights(make_raw):
    raw = make_raw(magnitude=100, velocity=0, novelty=0, confidence=0)
    assert score_signal(raw).composite_score == pytest.approx(25.0)
    raw = make_raw(magnitude=0, velocity=100, novelty=0, confidence=0)
    assert score_signal(raw).composite_score == pytest.approx(30.0)


def test_out_of_range_dimensions_are_clamped(make_raw):
    scored = score_signal(make_raw(magnitude=250, velocity=-40, novelty=100, confidence=100))
    assert scored.magnitude == 100
    assert scored.velocity == 0
    assert 0 <= scored.composite_score <= 100
    assert scored.composite_score == pytest.approx(25 + 0 + 25 + 20)


def test_scoring_bounds_and_monotonicity(make_raw):
    previous = -1.0
    for velocity in (-10, 0, 20, 40, 60, 80, 100, 150):
        score = score_signal(make_raw(value=50, velocity=velocity)).composite_score
        assert 0 <= score <= 100
        assert score >= previous
        previous = score


def test_scoring_is_idempotent(make_raw):
    once = score_signal(make_raw(value=70))
    twice = score_signal(once)
    assert twice.composite_score == once.composite_score
    assert twice.strength == once.strength


def test_strength_thresholds_inclusive():
    assert classify_strength(75.0) == SignalStrength.EXTREME
    assert classify_strength(74.999) == SignalStrength.STRONG
    assert classify_strength(55.0) == SignalStrength.STRONG
    assert classify_strength(35.0) == SignalStrength.MEDIUM
    assert classify_strength(34.9) == SignalStrength.WEAK


def test_scored_signal_has_no_z_score(make_raw):
    assert score_signal(make_raw()).z_score is None


def test_score_signals_sorted_desc(make_raw):
    scored = score_signals([make_raw(value=v, title=f"s{v}") for v in (10, 90, 50)])
    assert [s.title for s in scored] == ["s90", "s50", "s10"]


def test_clamp():
    assert clamp(-1) == 0
    assert clamp(101) == 100
    assert clamp(42.5) == 42.5


# ════════════════════════════════════════════════════════════════════
# Collectors
# ════════════════════════════════════════════════════════════════════

def _write_jsonl(path, records):
    with open(path, "w", encoding="utf-8") as fh:
        for record in records:
            fh.write(record if isinstance(record, str) else json.dumps(record))
            fh.write("\n")


def _record(source, title, detected_at):
    return {
        "source": source, "title": title,
        "magnitude": 50, "velocity": 50, "novelty": 50, "confidence": 50,
        "detected_at": detected_at.isoformat(),
    }


def test_jsonl_collector_filters_source_since_and_bad_lines(tmp_path, now):
    path = tmp_path / "obs.jsonl"
    _write_jsonl(path, [
        _record("github", "new commit", now),
        _record("github", "old commit", now - timedelta(days=3)),
        _record("market", "price move", now),
        "{not json",
        {"source": "github", "title": "missing dims"},
        "",
    ])

    collector = JsonLinesCollector(path, SignalSource.GITHUB)
    observations = asyncio.run(collector.collect(since=now - timedelta(days=1)))
    assert [o.title for o in observations] == ["new commit"]

    everything = asyncio.run(collector.collect(since=None))
    assert {o.title for o in everything} == {"new commit", "old commit"}


def test_collectors_for_file_covers_every_source(tmp_path):
    path = tmp_path / "obs.jsonl"
    _write_jsonl(path, [])
    collectors = collectors_for_file(path)
    assert {c.source for c in collectors} == set(SignalSource)
    assert collectors[0].name.startswith("jsonl:")


def test_file_is_parsed_once_for_all_sources(tmp_path, now, caplog):
    path = tmp_path / "obs.jsonl"
    _write_jsonl(path, [
        _record("github", "new commit", now),
        _record("market", "price move", now),
        "{not json",
    ])
    collectors = collectors_for_file(path)
    assert len({id(c.file) for c in collectors}) == 1

    with caplog.at_level("WARNING", logger="narrative_radar.signals.collectors"):
        results = [asyncio.run(c.collect()) for c in collectors]

    assert sum(len(r) for r in results) == 2
    assert len([r for r in caplog.records if "skipping invalid observation" in r.message]) == 1


def test_collector_accepts_shared_file(tmp_path, now):
    path = tmp_path / "obs.jsonl"
    _write_jsonl(path, [_record("rss", "blog post", now)])
    shared = JsonLinesFile(path)
    collector = JsonLinesCollector(shared, SignalSource.RSS)
    assert [o.title for o in asyncio.run(collector.collect())] == ["blog post"]
    assert shared.load() is shared.load()
