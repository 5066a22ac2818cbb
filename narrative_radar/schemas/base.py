"""
Common enums used across the entire application.

These define the vocabulary of the system: where a signal came from, how
strong it is, where a narrative sits in its lifecycle, and the state of a
collection run.
"""

from enum import Enum


class SignalSource(str, Enum):
    """Data source category a collector reports under."""
    GITHUB = "github"
    ONCHAIN = "onchain"
    DEFI = "defi"
    MARKET = "market"
    SOCIAL = "social"
    TWITTER = "twitter"
    REDDIT = "reddit"
    RSS = "rss"


class SignalStrength(str, Enum):
    """
    Discrete strength bucket derived from the composite score.

    The scorer assigns it from fixed thresholds; the trend detector may
    escalate it when the score is anomalous for its source.
    """
    WEAK = "weak"
    MEDIUM = "medium"
    STRONG = "strong"
    EXTREME = "extreme"

    @property
    def rank(self) -> int:
        return _STRENGTH_RANK[self]


_STRENGTH_RANK = {
    SignalStrength.WEAK: 0,
    SignalStrength.MEDIUM: 1,
    SignalStrength.STRONG: 2,
    SignalStrength.EXTREME: 3,
}


class NarrativeStatus(str, Enum):
    """Narrative lifecycle status."""
    EMERGING = "emerging"
    ACTIVE = "active"
    DECLINING = "declining"


class CollectionStatus(str, Enum):
    """Collection run status."""
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
