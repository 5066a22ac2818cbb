"""
Narrative synthesis — turns ranked proto-narratives into titled narratives.

Two interchangeable implementations of NarrativeSynthesizer:

  LLMNarrativeSynthesizer          one prompt for all clusters; the reply is
                                   filtered (bad/repeated cluster_index, low
                                   confidence) and normalized (status, slug)
  AlgorithmicNarrativeSynthesizer  deterministic templates, no I/O

synthesize_narratives() is the boundary the analysis job calls: any
exception from the configured synthesizer (rate limits included) degrades
to the algorithmic output plus a warning string, never a failed run.

DESIGN NOTES:
  - cluster_index is 0-based and refers to the position in the protos list
    sent in the same call.
  - Evidence chains are built here from the proto, never from the model's
    reply, so the audit trail cannot be hallucinated.
  - Fallback confidence = min(100, average_score * source_diversity / 3).
"""

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional

from narrative_radar.config import Settings, get_settings
from narrative_radar.schemas import (
    NarrativeStatus, NarrativeSynthesisLLM, ProtoNarrative, ProtoNarrativeBrief,
    SynthesizedNarrative,
)
from narrative_radar.trends.evidence import build_evidence_chain

logger = logging.getLogger(__name__)

_RATE_LIMIT_MARKERS = (
    "429", "rate limit", "rate_limit_exceeded", "quota",
    "too many requests", "resource exhausted", "resource_exhausted",
)


def is_rate_limit_error(error: BaseException) -> bool:
    """True when the exception text looks like a provider rate limit / quota."""
    text = str(error).lower()
    return any(marker in text for marker in _RATE_LIMIT_MARKERS)


def slugify(text: str) -> str:
    """Lower-case, non-alphanumeric runs → '-', no leading/trailing '-'."""
    return re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")


def build_briefs(protos: List[ProtoNarrative], settings: Optional[Settings] = None) -> List[ProtoNarrativeBrief]:
    """Bounded summary of each proto-narrative, in list order."""
    settings = settings or get_settings()
    return [
        ProtoNarrativeBrief(
            cluster_index=i,
            entities=p.entities[: settings.synthesis_max_entities],
            tags=p.tags[: settings.synthesis_max_tags],
            average_score=p.average_score,
            source_diversity=p.source_diversity,
            signal_summaries=[
                s.summary_line() for s in p.signals[: settings.synthesis_max_signal_summaries]
            ],
        )
        for i, p in enumerate(protos)
    ]


class NarrativeSynthesizer(ABC):
    """Names and explains proto-narratives."""

    name: str = "synthesizer"

    @abstractmethod
    async def synthesize(self, protos: List[ProtoNarrative]) -> List[SynthesizedNarrative]:
        ...


# ── Deterministic fallback ─────────────────────────────────────────────

class AlgorithmicNarrativeSynthesizer(NarrativeSynthesizer):
    """Template narratives built only from cluster statistics."""

    name = "algorithmic"

    def __init__(self, max_tags: Optional[int] = None):
        self.max_tags = get_settings().fallback_max_tags if max_tags is None else max_tags

    @staticmethod
    def confidence(proto: ProtoNarrative) -> float:
        return min(100.0, proto.average_score * proto.source_diversity / 3)

    def build(self, proto: ProtoNarrative) -> SynthesizedNarrative:
        top = proto.entities[:3]
        label = ", ".join(top or proto.tags[:3]) or proto.id
        slug = re.sub(r"[^a-z0-9-]+", "", "-".join(top).lower()) or slugify(label)
        n = len(proto.signals)

        return SynthesizedNarrative(
            title=f"Emerging: {label}",
            slug=slug,
            summary=(
                f"Signal cluster around {', '.join(proto.entities[:5]) or label} "
                f"with {n} correlated signals from {proto.source_diversity} sources."
            ),
            explanation=(
                f"This narrative was detected algorithmically based on {n} signals "
                f"with an average score of {proto.average_score:.1f}/100. "
                f"Key entities include {', '.join(proto.entities[:8]) or 'none'}. "
                f"The signals span {proto.source_diversity} distinct data sources, "
                f"indicating cross-domain correlation."
            ),
            confidence_score=self.confidence(proto),
            status=NarrativeStatus.EMERGING,
            tags=proto.tags[: self.max_tags],
            evidence_chain=build_evidence_chain(proto),
            source_diversity=proto.source_diversity,
            proto_id=proto.id,
        )

    async def synthesize(self, protos: List[ProtoNarrative]) -> List[SynthesizedNarrative]:
        return [self.build(p) for p in protos]


# ── LLM-backed synthesis ───────────────────────────────────────────────

class LLMNarrativeSynthesizer(NarrativeSynthesizer):
    """
    Synthesize narratives from proto-narratives with one LLM call.

    ``llm`` is anything with ``async generate_model(prompt, output_type,
    system_prompt=..., temperature=...)`` (LLMService in production).
    """

    name = "llm"

    SYSTEM_PROMPT = """You are an expert analyst of the Solana blockchain ecosystem.
Your task is to synthesize algorithmically-detected signal clusters into coherent narratives.
Each cluster was detected through z-score anomaly detection and cross-source correlation:
these are statistically significant patterns, not just keyword matches.

RULES:
- Only synthesize narratives where the evidence genuinely supports a coherent trend
- Confidence score (0-100) should reflect how strong the evidence is
- If a cluster doesn't form a coherent narrative, set confidence_score below 30
- Be specific: reference actual protocols, programs and ecosystem dynamics
- Distinguish genuinely emerging trends from known ongoing developments
- status is one of: emerging, active, declining

Always respond with valid JSON."""

    def __init__(
        self,
        llm,
        min_confidence: Optional[float] = None,
        temperature: Optional[float] = None,
        settings: Optional[Settings] = None,
    ):
        self.llm = llm
        self.settings = settings or get_settings()
        self.min_confidence = (
            self.settings.min_narrative_confidence if min_confidence is None else min_confidence
        )
        self.temperature = (
            self.settings.synthesis_temperature if temperature is None else temperature
        )

    @staticmethod
    def build_prompt(briefs: List[ProtoNarrativeBrief]) -> str:
        blocks = []
        for b in briefs:
            evidence = "\n".join(f"  * {line}" for line in b.signal_summaries)
            blocks.append(
                f"Cluster {b.cluster_index}:\n"
                f"- Key Entities: {', '.join(b.entities)}\n"
                f"- Tags: {', '.join(b.tags)}\n"
                f"- Average Signal Score: {b.average_score:.1f}/100\n"
                f"- Source Diversity: {b.source_diversity} distinct sources\n"
                f"- Signal Evidence:\n{evidence}"
            )
        clusters = "\n---\n".join(blocks)
        return f"""CLUSTERS:
{clusters}

For each cluster, respond with:
{{
  "narratives": [
    {{
      "cluster_index": 0,
      "title": "Short, memorable narrative title (5-8 words)",
      "summary": "One-sentence summary of the narrative",
      "explanation": "2-3 paragraphs: what is happening, why it matters, what it signals. Reference specific data points from the evidence.",
      "confidence_score": 0-100,
      "status": "emerging|active|declining",
      "tags": ["tag1", "tag2"]
    }}
  ]
}}

cluster_index is the number after "Cluster" above."""

    async def synthesize(self, protos: List[ProtoNarrative]) -> List[SynthesizedNarrative]:
        if not protos:
            return []

        briefs = build_briefs(protos, self.settings)
        result: NarrativeSynthesisLLM = await self.llm.generate_model(
            self.build_prompt(briefs),
            NarrativeSynthesisLLM,
            system_prompt=self.SYSTEM_PROMPT,
            temperature=self.temperature,
        )

        narratives: List[SynthesizedNarrative] = []
        seen = set()
        for entry in result.narratives:
            idx = entry.cluster_index
            if not 0 <= idx < len(protos):
                logger.debug(f"Dropping narrative '{entry.title}': cluster_index {idx} out of range")
                continue
            if idx in seen:
                logger.debug(f"Dropping narrative '{entry.title}': cluster_index {idx} repeated")
                continue
            if entry.confidence_score < self.min_confidence:
                logger.debug(
                    f"Dropping narrative '{entry.title}': confidence "
                    f"{entry.confidence_score:.0f} < {self.min_confidence:.0f}"
                )
                continue
            seen.add(idx)

            proto = protos[idx]
            narratives.append(SynthesizedNarrative(
                title=entry.title,
                slug=slugify(entry.title) or proto.id,
                summary=entry.summary,
                explanation=entry.explanation,
                confidence_score=entry.confidence_score,
                status=entry.status,
                tags=entry.tags,
                evidence_chain=build_evidence_chain(proto),
                source_diversity=proto.source_diversity,
                proto_id=proto.id,
            ))

        logger.info(f"LLM synthesis: {len(narratives)}/{len(protos)} clusters kept")
        return narratives


# ── Boundary ───────────────────────────────────────────────────────────

@dataclass
class SynthesisOutcome:
    narratives: List[SynthesizedNarrative]
    warning: Optional[str] = None
    used_fallback: bool = False


async def synthesize_narratives(
    protos: List[ProtoNarrative],
    synthesizer: Optional[NarrativeSynthesizer] = None,
    max_protos: Optional[int] = None,
) -> SynthesisOutcome:
    """Synthesize the top ``max_protos`` protos, degrading to the fallback on error."""
    if max_protos is None:
        max_protos = get_settings().analysis_max_protos_for_llm
    protos = protos[:max_protos]
    if not protos:
        return SynthesisOutcome(narratives=[])

    synthesizer = synthesizer or get_narrative_synthesizer()
    try:
        return SynthesisOutcome(narratives=await synthesizer.synthesize(protos))
    except Exception as e:
        if is_rate_limit_error(e):
            warning = "LLM rate limited: narratives generated with algorithmic fallback"
        else:
            warning = f"LLM synthesis failed ({str(e)[:120]}): narratives generated with algorithmic fallback"
        logger.warning(f"{synthesizer.name} synthesis failed, using algorithmic fallback: {e}")

    fallback = AlgorithmicNarrativeSynthesizer()
    return SynthesisOutcome(
        narratives=await fallback.synthesize(protos),
        warning=warning,
        used_fallback=True,
    )


def get_narrative_synthesizer(settings: Optional[Settings] = None) -> NarrativeSynthesizer:
    """LLM synthesizer when a provider is configured, algorithmic otherwise."""
    settings = settings or get_settings()
    if settings.llm_provider.lower() != "none" and settings.has_llm_credentials():
        from narrative_radar.tools.llm_service import LLMService
        return LLMNarrativeSynthesizer(LLMService(settings), settings=settings)
    logger.info("No LLM provider configured, using algorithmic narrative synthesis")
    return AlgorithmicNarrativeSynthesizer()
