"""
Schemas package — all data models for Narrative Radar.

Models are organized by domain in submodules:
  - base.py: Common enums (SignalSource, SignalStrength, NarrativeStatus, CollectionStatus)
  - signals.py: RawObservation, ScoredSignal, BaselinePoint
  - narratives.py: EntityCorrelation, ProtoNarrative, EvidenceChain, SynthesizedNarrative, ProductIdea
  - llm_outputs.py: Structured input/output for the text-synthesis boundary
"""

# base.py — enums
from narrative_radar.schemas.base import (
    SignalSource, SignalStrength, NarrativeStatus, CollectionStatus,
)

# signals.py — observation models
from narrative_radar.schemas.signals import (
    RawObservation, ScoredSignal, BaselinePoint,
    COMPOSITE_SCORE_METRIC, SIGNAL_COUNT_METRIC,
)

# narratives.py — derived models
from narrative_radar.schemas.narratives import (
    EntityCorrelation, TemporalSpan, ProtoNarrative,
    RawDataPoint, ScoredSignalSummary, CorrelationSummary, ClusterInfo, EvidenceChain,
    SynthesizedNarrative, ProductIdea, coerce_status,
)

# llm_outputs.py — synthesis boundary
from narrative_radar.schemas.llm_outputs import (
    ProtoNarrativeBrief, SynthesizedNarrativeLLM, NarrativeSynthesisLLM,
    ProductIdeaLLM, ProductIdeasLLM,
)

__all__ = [
    # base
    "SignalSource", "SignalStrength", "NarrativeStatus", "CollectionStatus",
    # signals
    "RawObservation", "ScoredSignal", "BaselinePoint",
    "COMPOSITE_SCORE_METRIC", "SIGNAL_COUNT_METRIC",
    # narratives
    "EntityCorrelation", "TemporalSpan", "ProtoNarrative",
    "RawDataPoint", "ScoredSignalSummary", "CorrelationSummary", "ClusterInfo", "EvidenceChain",
    "SynthesizedNarrative", "ProductIdea", "coerce_status",
    # llm outputs
    "ProtoNarrativeBrief", "SynthesizedNarrativeLLM", "NarrativeSynthesisLLM",
    "ProductIdeaLLM", "ProductIdeasLLM",
]
