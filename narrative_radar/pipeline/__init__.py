"""
Layer 3: Batch jobs.

- collection: collectors → score → store → trend detection
- analysis: stored signals → correlate → cluster → synthesize → persist → ideas
"""

from narrative_radar.pipeline.collection import CollectionReport, run_collection
from narrative_radar.pipeline.analysis import (
    AnalysisReport, InsufficientSignalsError, create_analysis_graph, run_analysis,
)
