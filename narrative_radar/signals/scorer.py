"""
Signal scorer — composite 0-100 score and strength class per observation.

composite = Σ clamp(dimension, 0, 100) × weight

Default weights: magnitude 0.25, velocity 0.30, novelty 0.25, confidence
0.20. Velocity is weighted highest to favour signals that are changing fast
over signals that are merely large.

Strength: ≥75 extreme, ≥55 strong, ≥35 medium, else weak (all configurable).

Out-of-range dimensions are clamped, never rejected; scoring is total.
"""

import logging
from typing import Dict, Iterable, List, Optional

from narrative_radar.config import get_settings
from narrative_radar.schemas import RawObservation, ScoredSignal, SignalStrength

logger = logging.getLogger(__name__)

DIMENSIONS = ("magnitude", "velocity", "novelty", "confidence")


def clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return min(high, max(low, value))


def classify_strength(
    score: float,
    thresholds: Optional[Dict[str, float]] = None,
) -> SignalStrength:
    """Map a composite score onto a strength bucket (thresholds inclusive)."""
    thresholds = thresholds or get_settings().get_strength_thresholds()
    if score >= thresholds["extreme"]:
        return SignalStrength.EXTREME
    if score >= thresholds["strong"]:
        return SignalStrength.STRONG
    if score >= thresholds["medium"]:
        return SignalStrength.MEDIUM
    return SignalStrength.WEAK


def score_signal(
    raw: RawObservation,
    weights: Optional[Dict[str, float]] = None,
    thresholds: Optional[Dict[str, float]] = None,
) -> ScoredSignal:
    """Score one observation. z_score is left None for the trend detector."""
    settings = get_settings()
    weights = weights or settings.get_scoring_weights()
    thresholds = thresholds or settings.get_strength_thresholds()

    clamped = {dim: clamp(float(getattr(raw, dim))) for dim in DIMENSIONS}
    composite = clamp(sum(clamped[dim] * weights[dim] for dim in DIMENSIONS))

    return ScoredSignal(
        **{**raw.model_dump(include=set(RawObservation.model_fields)), **clamped},
        composite_score=composite,
        z_score=None,
        strength=classify_strength(composite, thresholds),
    )


def score_signals(
    raws: Iterable[RawObservation],
    weights: Optional[Dict[str, float]] = None,
    thresholds: Optional[Dict[str, float]] = None,
) -> List[ScoredSignal]:
    """Score a batch, sorted by composite score descending.

    Ties keep input order (sorted() is stable).
    """
    scored = [score_signal(raw, weights, thresholds) for raw in raws]
    scored.sort(key=lambda s: s.composite_score, reverse=True)
    if scored:
        logger.debug(
            f"Scored {len(scored)} signals (top {scored[0].composite_score:.1f}, "
            f"bottom {scored[-1].composite_score:.1f})"
        )
    return scored
