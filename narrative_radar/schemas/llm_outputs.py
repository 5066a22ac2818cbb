"""
Pydantic models for the text-synthesis boundary.

ProtoNarrativeBrief is the bounded, serializable summary sent out for each
proto-narrative. The "LLM"-suffixed models define ONLY what the model
produces; slugs and evidence chains are set programmatically afterwards.
"""

from typing import List

from pydantic import BaseModel, Field


class ProtoNarrativeBrief(BaseModel):
    """What the synthesis capability sees of one proto-narrative."""
    cluster_index: int
    entities: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    average_score: float
    source_diversity: int
    signal_summaries: List[str] = Field(default_factory=list)


class SynthesizedNarrativeLLM(BaseModel):
    """Single narrative as returned by the model."""
    cluster_index: int = Field(description="0-based index of the cluster this narrative describes")
    title: str = Field(description="Short, memorable narrative title (5-8 words)")
    summary: str = Field(default="", description="One-sentence summary")
    explanation: str = Field(default="", description="2-3 paragraphs citing the evidence")
    confidence_score: float = Field(default=0.0, description="0-100, strength of the evidence")
    status: str = Field(default="emerging", description="emerging | active | declining")
    tags: List[str] = Field(default_factory=list)


class NarrativeSynthesisLLM(BaseModel):
    narratives: List[SynthesizedNarrativeLLM] = Field(default_factory=list)


class ProductIdeaLLM(BaseModel):
    """Single product idea as returned by the model."""
    narrative_index: int = 0
    title: str
    description: str = ""
    target_user: str = ""
    technical_approach: str = ""
    differentiation: str = ""
    feasibility_score: float = 5
    impact_score: float = 5


class ProductIdeasLLM(BaseModel):
    ideas: List[ProductIdeaLLM] = Field(default_factory=list)
