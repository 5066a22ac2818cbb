"""
Narrative Radar — detects emerging ecosystem narratives from multi-source signals.

Layers:
  signals/   observation ingestion, entity normalization, scoring
  trends/    anomaly detection, correlation, clustering, evidence, synthesis
  pipeline/  collection and analysis batch jobs
"""

__version__ = "0.1.0"
