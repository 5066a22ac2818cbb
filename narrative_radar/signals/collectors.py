"""
Collector interface.

Upstream fetchers (GitHub, market, DeFi, social...) live outside this
package; all the engine needs from them is a list of RawObservation per run.
JsonLinesCollector replays observations exported to a JSONL file, which is
how the CLI feeds the collection job.
"""

import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

from narrative_radar.schemas import RawObservation, SignalSource

logger = logging.getLogger(__name__)


class Collector(ABC):
    """One upstream data source reporting under a single source category."""

    name: str = "collector"
    source: SignalSource

    @abstractmethod
    async def collect(self, since: Optional[datetime] = None) -> List[RawObservation]:
        """Return observations detected after ``since`` (None = first run)."""


class JsonLinesFile:
    """A JSONL export of RawObservation records, parsed once and shared.

    Invalid lines are logged with their line number on the first load only.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._observations: Optional[List[RawObservation]] = None

    def load(self) -> List[RawObservation]:
        if self._observations is not None:
            return self._observations
        observations: List[RawObservation] = []
        skipped = 0
        with self.path.open(encoding="utf-8") as fh:
            for lineno, line in enumerate(fh, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    observations.append(RawObservation.model_validate(json.loads(line)))
                except (json.JSONDecodeError, ValidationError) as e:
                    skipped += 1
                    logger.warning(f"{self.path}:{lineno}: skipping invalid observation ({e})")
        logger.info(f"{self.path}: parsed {len(observations)} observations, skipped {skipped} lines")
        self._observations = observations
        return observations


class JsonLinesCollector(Collector):
    """Replays one source category from a JSONL export.

    Lines for other sources and lines older than ``since`` are skipped.
    Collectors built over the same JsonLinesFile share a single parse.
    """

    def __init__(self, path, source: SignalSource, name: Optional[str] = None):
        self.file = path if isinstance(path, JsonLinesFile) else JsonLinesFile(path)
        self.source = SignalSource(source)
        self.name = name or f"jsonl:{self.source.value}"

    async def collect(self, since: Optional[datetime] = None) -> List[RawObservation]:
        observations = [
            obs for obs in self.file.load()
            if obs.source == self.source and (since is None or obs.detected_at > since)
        ]
        logger.info(f"{self.name}: read {len(observations)} observations from {self.file.path}")
        return observations


def collectors_for_file(path: Path) -> List[Collector]:
    """One JsonLinesCollector per source category, so failures stay per-source.

    The file itself is read once for all of them.
    """
    shared = JsonLinesFile(path)
    return [JsonLinesCollector(shared, source) for source in SignalSource]
