"""Shared factories for the root-level test modules."""

from datetime import datetime, timedelta, timezone

import pytest

from narrative_radar.schemas import (
    ProtoNarrative, RawObservation, ScoredSignal, SignalSource, TemporalSpan,
)
from narrative_radar.signals.scorer import classify_strength

NOW = datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc)


def _signal(
    source="github",
    score=60.0,
    entities=(),
    tags=(),
    title=None,
    strength=None,
    hours_ago=1.0,
    **extra,
) -> ScoredSignal:
    return ScoredSignal(
        source=SignalSource(source),
        title=title or f"{source} signal {score}",
        entities=list(entities),
        tags=list(tags),
        magnitude=score,
        velocity=score,
        novelty=score,
        confidence=score,
        composite_score=score,
        strength=strength or classify_strength(score),
        detected_at=NOW - timedelta(hours=hours_ago),
        **extra,
    )


def _raw(source="github", value=50.0, entities=(), tags=(), title=None, hours_ago=1.0, **dims) -> RawObservation:
    fields = {d: value for d in ("magnitude", "velocity", "novelty", "confidence")}
    fields.update(dims)
    return RawObservation(
        source=SignalSource(source),
        title=title or f"{source} observation",
        entities=list(entities),
        tags=list(tags),
        detected_at=NOW - timedelta(hours=hours_ago),
        **fields,
    )


def _proto(signals, entities, tags=(), proto_id="proto-0", average_score=None, source_diversity=None):
    detected = [s.detected_at for s in signals]
    return ProtoNarrative(
        id=proto_id,
        signals=list(signals),
        entities=list(entities),
        tags=list(tags),
        average_score=(
            average_score if average_score is not None
            else sum(s.composite_score for s in signals) / len(signals)
        ),
        source_diversity=(
            source_diversity if source_diversity is not None
            else len({s.source for s in signals})
        ),
        temporal_span=TemporalSpan(start=min(detected), end=max(detected)),
    )


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def make_signal():
    return _signal


@pytest.fixture
def make_raw():
    return _raw


@pytest.fixture
def make_proto():
    return _proto


@pytest.fixture
def jito_signals():
    """4 jito signals (2 github, 2 market) at score 60 plus 1 unrelated at 20."""
    return [
        _signal("github", 60.0, entities=["jito-labs"], title="jito-labs/jito-solana release", hours_ago=1),
        _signal("github", 60.0, entities=["Jito"], title="jito-foundation/restaking commits", hours_ago=2),
        _signal("market", 60.0, entities=["JTO"], title="JTO volume spike", hours_ago=3),
        _signal("market", 60.0, entities=["jito-foundation"], title="JTO price breakout", hours_ago=4),
        _signal("reddit", 20.0, entities=["bonk"], title="bonk meme thread", hours_ago=5),
    ]
