"""
Historical baseline store — append-only per-source metric time series.

The trend detector reads the trailing window of points and appends two new
points (composite_score mean, signal_count) per source per collection run.
The store is passed in explicitly; callers own its lifecycle. Runs are
single-flight, so no locking beyond "one job at a time" is assumed.
Implementations should append a run's points atomically.

Implementations:
  - InMemoryBaselineStore (here): tests and ad-hoc runs
  - SqlBaselineStore (database.py): metric_history table
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Iterable, List, Optional

from narrative_radar.schemas import BaselinePoint

logger = logging.getLogger(__name__)


class BaselineStore(ABC):
    """Read-then-append access to the historical baseline."""

    @abstractmethod
    def load(self, since: datetime, metric_name: Optional[str] = None) -> List[BaselinePoint]:
        """Points with recorded_at >= since, oldest first."""

    @abstractmethod
    def append(self, points: Iterable[BaselinePoint]) -> None:
        """Append points as one unit."""


class InMemoryBaselineStore(BaselineStore):
    """List-backed store. Not shared across processes."""

    def __init__(self, points: Optional[Iterable[BaselinePoint]] = None):
        self.points: List[BaselinePoint] = list(points or [])

    def load(self, since: datetime, metric_name: Optional[str] = None) -> List[BaselinePoint]:
        selected = [
            p for p in self.points
            if p.recorded_at >= since and (metric_name is None or p.metric_name == metric_name)
        ]
        return sorted(selected, key=lambda p: p.recorded_at)

    def append(self, points: Iterable[BaselinePoint]) -> None:
        batch = list(points)
        self.points.extend(batch)
        logger.debug(f"Baseline store: appended {len(batch)} points ({len(self.points)} total)")
