"""
Collection job — collectors → scorer → storage → trend detection.

One run:
  1. since = completion time of the last completed run (None on first run)
  2. create a collection_runs row (running)
  3. per collector: collect → score → save. A failing collector records
     0 signals and its error; the others still run.
  4. trend detection over everything collected this run (best effort), then
     write back z_score/strength for signals that received a z-score
  5. mark the run completed (or failed, if something unexpected escapes)
"""

import logging
from collections import Counter
from datetime import datetime, timezone
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from ..database import Database, SqlBaselineStore, get_database
from ..schemas import CollectionStatus, ScoredSignal
from ..signals.collectors import Collector
from ..signals.scorer import score_signals
from ..trends.baseline import BaselineStore
from ..trends.detector import TrendDetector

logger = logging.getLogger(__name__)


class CollectionReport(BaseModel):
    run_id: Optional[str] = None
    status: CollectionStatus
    since: Optional[datetime] = None
    signals_collected: int = 0
    source_counts: Dict[str, int] = Field(default_factory=dict)
    trend_enriched: int = 0
    escalated: int = 0
    errors: List[str] = Field(default_factory=list)


async def run_collection(
    collectors: List[Collector],
    database: Optional[Database] = None,
    baseline_store: Optional[BaselineStore] = None,
    now: Optional[datetime] = None,
) -> CollectionReport:
    """Run every collector once and store the scored, trend-enriched signals."""
    db = database or get_database()
    store = baseline_store or SqlBaselineStore(db)
    now = now or datetime.now(timezone.utc)

    since = db.last_completed_run_at()
    run_id = db.create_collection_run()
    logger.info(f"Collection run {run_id}: {len(collectors)} collectors, since={since}")

    source_counts: Counter = Counter()
    errors: List[str] = []
    try:
        collected: List[ScoredSignal] = []
        for collector in collectors:
            try:
                observations = await collector.collect(since)
                scored = score_signals(observations)
                collected.extend(db.save_signals(run_id, scored))
                source_counts[collector.source.value] += len(scored)
                logger.info(f"  {collector.name}: {len(scored)} signals")
            except Exception as e:
                logger.warning(f"  {collector.name}: collection failed: {e}")
                source_counts[collector.source.value] += 0
                errors.append(f"{collector.name}: {e}")

        enriched = TrendDetector(store).detect(collected, now=now)
        escalated = sum(
            1 for before, after in zip(collected, enriched) if after.strength != before.strength
        )
        trend_enriched = db.update_signal_trends(enriched)

        db.complete_collection_run(run_id, len(collected), dict(source_counts), errors)
        logger.info(
            f"Collection run {run_id} completed: {len(collected)} signals, "
            f"{trend_enriched} with z-scores, {escalated} escalated, {len(errors)} collector errors"
        )
        return CollectionReport(
            run_id=run_id,
            status=CollectionStatus.COMPLETED,
            since=since,
            signals_collected=len(collected),
            source_counts=dict(source_counts),
            trend_enriched=trend_enriched,
            escalated=escalated,
            errors=errors,
        )
    except Exception as e:
        logger.error(f"Collection run {run_id} failed: {e}")
        db.fail_collection_run(run_id, str(e))
        return CollectionReport(
            run_id=run_id,
            status=CollectionStatus.FAILED,
            since=since,
            source_counts=dict(source_counts),
            errors=errors + [str(e)],
        )
