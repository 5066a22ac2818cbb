"""
Layer 2: Trend analytics.

Modules:
- baseline: Historical baseline store interface + in-memory store
- detector: z-score anomaly detection and strength escalation
- correlation: Cross-source entity correlation + candidate filter
- clustering: Greedy Jaccard clustering into proto-narratives
- evidence: Evidence chain projection
- synthesis: LLM / algorithmic narrative synthesis
- ideas: Product idea generation
"""

from narrative_radar.trends.baseline import BaselineStore, InMemoryBaselineStore
from narrative_radar.trends.detector import TrendDetector, detect_trends, compute_z_score, escalate_strength
from narrative_radar.trends.correlation import correlate_signals, find_narrative_candidates, build_entity_index
from narrative_radar.trends.clustering import NarrativeClusterer, cluster_signals, jaccard_similarity
from narrative_radar.trends.evidence import build_evidence_chain
from narrative_radar.trends.synthesis import (
    NarrativeSynthesizer, LLMNarrativeSynthesizer, AlgorithmicNarrativeSynthesizer,
    SynthesisOutcome, synthesize_narratives, get_narrative_synthesizer, is_rate_limit_error,
)
from narrative_radar.trends.ideas import IdeaGenerator, get_idea_generator, template_idea
