"""
Product idea generation for synthesized narratives.

generate_batch() asks for one idea per narrative in a single call, keyed by
narrative_index. If the batch call fails it retries one call per narrative;
a narrative whose own call fails gets a deterministic template idea, so every
narrative passed in comes back with exactly one idea.
"""

import logging
from typing import Dict, List, Optional, Tuple

from narrative_radar.config import Settings, get_settings
from narrative_radar.schemas import (
    ProductIdea, ProductIdeaLLM, ProductIdeasLLM, SynthesizedNarrative,
)

logger = logging.getLogger(__name__)

# (narrative, signal evidence lines)
NarrativeWithEvidence = Tuple[SynthesizedNarrative, List[str]]


def evidence_lines(narrative: SynthesizedNarrative) -> List[str]:
    """Signal evidence for the idea prompt, taken from the evidence chain."""
    return [
        f"[{dp.source}] {dp.title} ({dp.value})"
        for dp in narrative.evidence_chain.raw_data_points
    ]


def template_idea(narrative: SynthesizedNarrative) -> ProductIdea:
    return ProductIdea(
        title=f"{narrative.title} - Builder Tool",
        description=f"A tool leveraging the {narrative.title} trend to provide value to the Solana ecosystem.",
        target_user="Solana developers and power users",
        technical_approach="Build on existing Solana programs and SDKs",
        differentiation="First-mover advantage in this emerging narrative",
        feasibility_score=6,
        impact_score=6,
    )


def _to_idea(raw: ProductIdeaLLM) -> ProductIdea:
    return ProductIdea(
        title=raw.title,
        description=raw.description,
        target_user=raw.target_user,
        technical_approach=raw.technical_approach,
        differentiation=raw.differentiation,
        feasibility_score=raw.feasibility_score,
        impact_score=raw.impact_score,
    )


class IdeaGenerator:
    """Generates one concrete product idea per narrative."""

    SYSTEM_PROMPT = """You are a senior product strategist and technical architect specializing in the Solana ecosystem.
You know Solana programs, SDKs (Anchor, @solana/web3.js, @solana/kit), existing protocols and builder tools.

QUALITY REQUIREMENTS:
- title is a creative product name, NOT a generic label like "DeFi Dashboard"
- description is 4-6 sentences: what it does, the problem, who benefits, why now
- target_user is a specific persona with context
- technical_approach names specific programs, CPIs, SDKs or protocols to integrate with
- differentiation names existing products and the gap this fills
- feasibility_score and impact_score are integers 1-10

Do NOT propose generic dashboards, vague AI tools, or products that already exist.
Always respond with valid JSON."""

    def __init__(self, llm=None, temperature: Optional[float] = None, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.llm = llm
        self.temperature = self.settings.idea_temperature if temperature is None else temperature

    @staticmethod
    def _narrative_block(index: int, narrative: SynthesizedNarrative, evidence: List[str]) -> str:
        lines = "\n".join(f"- {e}" for e in evidence)
        return (
            f"NARRATIVE {index}: {narrative.title}\n"
            f"SUMMARY: {narrative.summary}\n"
            f"EXPLANATION: {narrative.explanation}\n"
            f"TAGS: {', '.join(narrative.tags)}\n"
            f"SIGNAL EVIDENCE:\n{lines}"
        )

    def build_batch_prompt(self, items: List[NarrativeWithEvidence]) -> str:
        blocks = "\n---\n".join(
            self._narrative_block(i, n, ev) for i, (n, ev) in enumerate(items)
        )
        return (
            f"{blocks}\n\n"
            f"Generate exactly {len(items)} ideas, one per narrative. Each idea must be "
            f"substantially different from the others.\n"
            '{"ideas": [{"narrative_index": 0, "title": "...", "description": "...", '
            '"target_user": "...", "technical_approach": "...", "differentiation": "...", '
            '"feasibility_score": 1-10, "impact_score": 1-10}]}\n'
            "narrative_index is the number after NARRATIVE above."
        )

    def build_single_prompt(self, narrative: SynthesizedNarrative, evidence: List[str]) -> str:
        return (
            f"{self._narrative_block(0, narrative, evidence)}\n\n"
            "Generate exactly 1 product idea.\n"
            '{"ideas": [{"title": "...", "description": "...", "target_user": "...", '
            '"technical_approach": "...", "differentiation": "...", '
            '"feasibility_score": 1-10, "impact_score": 1-10}]}'
        )

    async def generate(self, narrative: SynthesizedNarrative, evidence: Optional[List[str]] = None) -> ProductIdea:
        """One idea for one narrative; template idea on any failure."""
        if self.llm is None:
            return template_idea(narrative)
        evidence = evidence_lines(narrative) if evidence is None else evidence
        try:
            result: ProductIdeasLLM = await self.llm.generate_model(
                self.build_single_prompt(narrative, evidence),
                ProductIdeasLLM,
                system_prompt=self.SYSTEM_PROMPT,
                temperature=self.temperature,
            )
            if result.ideas:
                return _to_idea(result.ideas[0])
            logger.warning(f"Idea generation for '{narrative.title}' returned no ideas, using template")
        except Exception as e:
            logger.warning(f"Idea generation for '{narrative.title}' failed, using template: {e}")
        return template_idea(narrative)

    async def generate_batch(self, items: List[NarrativeWithEvidence]) -> Dict[int, ProductIdea]:
        """Ideas keyed by position in ``items``; every position gets one idea."""
        if not items:
            return {}

        ideas: Dict[int, ProductIdea] = {}
        if self.llm is not None:
            try:
                result: ProductIdeasLLM = await self.llm.generate_model(
                    self.build_batch_prompt(items),
                    ProductIdeasLLM,
                    system_prompt=self.SYSTEM_PROMPT,
                    temperature=self.temperature,
                )
                for raw in result.ideas:
                    if 0 <= raw.narrative_index < len(items) and raw.narrative_index not in ideas:
                        ideas[raw.narrative_index] = _to_idea(raw)
                logger.info(f"Batch idea generation: {len(ideas)}/{len(items)} narratives covered")
            except Exception as e:
                logger.warning(f"Batch idea generation failed, falling back to individual calls: {e}")

        for i, (narrative, evidence) in enumerate(items):
            if i not in ideas:
                ideas[i] = await self.generate(narrative, evidence)
        return ideas


def get_idea_generator(settings: Optional[Settings] = None) -> IdeaGenerator:
    settings = settings or get_settings()
    if settings.llm_provider.lower() != "none" and settings.has_llm_credentials():
        from narrative_radar.tools.llm_service import LLMService
        return IdeaGenerator(LLMService(settings), settings=settings)
    return IdeaGenerator(settings=settings)
