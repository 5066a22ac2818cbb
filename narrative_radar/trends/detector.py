"""
Anomaly (trend) detector — z-scores against a rolling per-source baseline.

For every signal:
  z = (composite_score - mean) / stddev

where mean/stddev come from the source's composite_score history over the
last `baseline_window_days` (long-run baseline). Cold start: when a source
has no history, or its history has zero spread, the current batch for that
source is used instead, provided it holds at least `z_score_min_batch`
signals. Otherwise z stays None.

Strength escalation (never downgrade):
  z > 3 → extreme, z > 2 → strong, z > 1 → medium

After scoring, two points per source are appended to the store
(composite_score = batch mean, signal_count = batch size) — this is how the
baseline grows run over run.

Trend enrichment is best-effort: a failed baseline read returns the signals
untouched (z None, scorer strength) and appends nothing; a failed append is
logged and the enriched signals are still returned.

Standard deviation is the population form (numpy default ddof=0).
"""

import logging
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple

import numpy as np

from narrative_radar.config import get_settings
from narrative_radar.schemas import (
    BaselinePoint, ScoredSignal, SignalStrength,
    COMPOSITE_SCORE_METRIC, SIGNAL_COUNT_METRIC,
)
from narrative_radar.trends.baseline import BaselineStore

logger = logging.getLogger(__name__)


def compute_z_score(value: float, mean: float, std: float) -> Optional[float]:
    """z-score, or None when the spread is zero."""
    if std <= 0:
        return None
    return (value - mean) / std


def escalate_strength(
    strength: SignalStrength,
    z: Optional[float],
    thresholds: Dict[str, float],
) -> SignalStrength:
    """Raise strength according to z; never lower it."""
    if z is None:
        return strength
    if z > thresholds["extreme"]:
        candidate = SignalStrength.EXTREME
    elif z > thresholds["strong"]:
        candidate = SignalStrength.STRONG
    elif z > thresholds["medium"]:
        candidate = SignalStrength.MEDIUM
    else:
        return strength
    return candidate if candidate.rank > strength.rank else strength


def _stats(values: List[float]) -> Tuple[float, float]:
    arr = np.asarray(values, dtype=float)
    return float(arr.mean()), float(arr.std())


class TrendDetector:
    """Computes z-scores for a batch and grows the historical baseline."""

    def __init__(
        self,
        store: BaselineStore,
        window_days: Optional[int] = None,
        thresholds: Optional[Dict[str, float]] = None,
        min_batch: Optional[int] = None,
    ):
        settings = get_settings()
        self.store = store
        self.window_days = window_days if window_days is not None else settings.baseline_window_days
        self.thresholds = thresholds or settings.get_z_score_thresholds()
        self.min_batch = min_batch if min_batch is not None else settings.z_score_min_batch

    def load_baselines(self, now: datetime) -> Dict[Tuple[str, str], Tuple[float, float]]:
        """(source, metric) → (mean, std) over the trailing window."""
        since = now - timedelta(days=self.window_days)
        history = self.store.load(since, metric_name=COMPOSITE_SCORE_METRIC)

        by_metric: Dict[Tuple[str, str], List[float]] = defaultdict(list)
        for point in history:
            by_metric[(point.source.value, point.metric_name)].append(point.value)

        baselines = {key: _stats(values) for key, values in by_metric.items() if values}
        logger.debug(f"Loaded {len(history)} baseline points → {len(baselines)} baselines")
        return baselines

    def detect(
        self,
        signals: List[ScoredSignal],
        now: Optional[datetime] = None,
    ) -> List[ScoredSignal]:
        """Return copies of ``signals`` (same order) with z_score/strength refined."""
        if not signals:
            return []
        now = now or datetime.now(timezone.utc)

        by_source: Dict[str, List[ScoredSignal]] = defaultdict(list)
        for signal in signals:
            by_source[signal.source.value].append(signal)

        try:
            baselines = self.load_baselines(now)
        except Exception as e:
            logger.warning(f"Baseline store read failed, skipping trend enrichment: {e}")
            return list(signals)

        # In-batch fallback stats, only where the batch is large enough
        batch_stats: Dict[str, Tuple[float, float]] = {
            source: _stats([s.composite_score for s in group])
            for source, group in by_source.items()
            if len(group) >= self.min_batch
        }

        enhanced = []
        anomalies = 0
        for signal in signals:
            source = signal.source.value
            z = None
            baseline = baselines.get((source, COMPOSITE_SCORE_METRIC))
            if baseline and baseline[1] > 0:
                z = compute_z_score(signal.composite_score, *baseline)
            elif source in batch_stats:
                z = compute_z_score(signal.composite_score, *batch_stats[source])

            strength = escalate_strength(signal.strength, z, self.thresholds)
            if strength != signal.strength:
                anomalies += 1
            enhanced.append(signal.model_copy(update={"z_score": z, "strength": strength}))

        logger.info(
            f"Trend detection: {len(signals)} signals across {len(by_source)} sources, "
            f"{anomalies} escalated"
        )

        self._record_baseline(by_source, now)
        return enhanced

    def _record_baseline(self, by_source: Dict[str, List[ScoredSignal]], now: datetime) -> None:
        points = []
        for source, group in by_source.items():
            mean_score, _ = _stats([s.composite_score for s in group])
            points.append(BaselinePoint(
                source=source, metric_name=COMPOSITE_SCORE_METRIC,
                value=mean_score, recorded_at=now,
            ))
            points.append(BaselinePoint(
                source=source, metric_name=SIGNAL_COUNT_METRIC,
                value=float(len(group)), recorded_at=now,
            ))
        try:
            self.store.append(points)
        except Exception as e:
            logger.warning(f"Baseline store append failed ({len(points)} points dropped): {e}")


def detect_trends(
    signals: List[ScoredSignal],
    store: BaselineStore,
    now: Optional[datetime] = None,
) -> List[ScoredSignal]:
    """Convenience wrapper using settings defaults."""
    return TrendDetector(store).detect(signals, now=now)
