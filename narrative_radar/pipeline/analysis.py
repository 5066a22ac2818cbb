"""
LangGraph analysis job — stored signals → narratives → ideas.

Flow: load → correlate → cluster → synthesize → persist → ideas → END
  - load routes to END when fewer than analysis_min_signals signals are in
    the window; run_analysis() then raises InsufficientSignalsError
  - cluster routes to END when no proto-narrative survives (a valid,
    "nothing interesting yet" outcome)

Failures in synthesis degrade to the algorithmic fallback; failures while
persisting one narrative or generating ideas add a warning and never discard
narratives already stored.
"""

import logging
import operator
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Annotated, Any, Dict, List, Optional, Tuple, TypedDict

from langgraph.graph import StateGraph, START, END
from pydantic import BaseModel, Field

from ..config import Settings, get_settings
from ..database import Database, get_database
from ..schemas import EntityCorrelation, ProtoNarrative, ScoredSignal, SynthesizedNarrative
from ..trends.clustering import NarrativeClusterer
from ..trends.correlation import correlate_signals, find_narrative_candidates
from ..trends.ideas import IdeaGenerator, evidence_lines, get_idea_generator
from ..trends.synthesis import NarrativeSynthesizer, synthesize_narratives

logger = logging.getLogger(__name__)


class InsufficientSignalsError(RuntimeError):
    """Not enough signals in the analysis window to run."""

    def __init__(self, found: int, required: int):
        self.found = found
        self.required = required
        self.missing = max(0, required - found)
        super().__init__(
            f"Insufficient signals for analysis: found {found}, need {required} "
            f"(need {self.missing} more signals)"
        )


class AnalysisReport(BaseModel):
    signals_analyzed: int = 0
    correlations_found: int = 0
    candidates_found: int = 0
    proto_narratives: int = 0
    narratives_generated: int = 0
    ideas_generated: int = 0
    narrative_ids: List[str] = Field(default_factory=list)
    used_fallback: bool = False
    warning: Optional[str] = None


@dataclass
class AnalysisDeps:
    """Collaborators shared by every node."""
    database: Database
    synthesizer: Optional[NarrativeSynthesizer]
    idea_generator: IdeaGenerator
    settings: Settings
    now: datetime


# ── Graph State ──────────────────────────────────────────────────────────────

class AnalysisState(TypedDict):
    deps: Any                                       # AnalysisDeps instance
    signals: List[ScoredSignal]
    insufficient: bool
    correlations: List[EntityCorrelation]
    candidates: List[EntityCorrelation]
    protos: List[ProtoNarrative]
    narratives: List[SynthesizedNarrative]
    stored: List[Tuple[str, SynthesizedNarrative]]  # (narrative_id, narrative)
    ideas_generated: int
    used_fallback: bool
    warnings: Annotated[List[str], operator.add]


# ── Nodes ────────────────────────────────────────────────────────────────────

def load_node(state: AnalysisState) -> dict:
    deps: AnalysisDeps = state["deps"]
    settings = deps.settings
    since = deps.now - timedelta(days=settings.analysis_window_days)
    signals = deps.database.load_signals(since, settings.analysis_max_signals_to_load)
    logger.info(f"Loaded {len(signals)} signals since {since.isoformat()}")
    return {
        "signals": signals,
        "insufficient": len(signals) < settings.analysis_min_signals,
    }


def load_route(state: AnalysisState) -> str:
    return "end" if state["insufficient"] else "correlate"


def correlate_node(state: AnalysisState) -> dict:
    correlations = correlate_signals(state["signals"])
    return {
        "correlations": correlations,
        "candidates": find_narrative_candidates(correlations),
    }


def cluster_node(state: AnalysisState) -> dict:
    protos = NarrativeClusterer().cluster(state["signals"], state["candidates"])
    # Evidence chains take the first N members, so rank them first
    return {"protos": [p.ranked() for p in protos]}


def cluster_route(state: AnalysisState) -> str:
    return "synthesize" if state["protos"] else "end"


async def synthesize_node(state: AnalysisState) -> dict:
    deps: AnalysisDeps = state["deps"]
    outcome = await synthesize_narratives(
        state["protos"],
        deps.synthesizer,
        max_protos=deps.settings.analysis_max_protos_for_llm,
    )
    return {
        "narratives": outcome.narratives,
        "used_fallback": outcome.used_fallback,
        "warnings": [outcome.warning] if outcome.warning else [],
    }


def persist_node(state: AnalysisState) -> dict:
    deps: AnalysisDeps = state["deps"]
    protos_by_id = {p.id: p for p in state["protos"]}

    stored = []
    failures = 0
    for narrative in state["narratives"]:
        proto = protos_by_id.get(narrative.proto_id)
        signal_ids = [s.id for s in proto.signals if s.id] if proto else []
        try:
            narrative_id = deps.database.save_narrative(narrative, signal_ids)
            stored.append((narrative_id, narrative))
        except Exception as e:
            failures += 1
            logger.warning(f"Failed to store narrative '{narrative.title}': {e}")

    logger.info(f"Stored {len(stored)}/{len(state['narratives'])} narratives")
    warnings = [f"{failures} narratives could not be stored"] if failures else []
    return {"stored": stored, "warnings": warnings}


async def ideas_node(state: AnalysisState) -> dict:
    deps: AnalysisDeps = state["deps"]
    top = sorted(state["stored"], key=lambda item: item[1].confidence_score, reverse=True)
    top = top[: deps.settings.analysis_top_narratives_for_ideas]
    if not top:
        return {"ideas_generated": 0}

    saved = 0
    try:
        ideas = await deps.idea_generator.generate_batch(
            [(narrative, evidence_lines(narrative)) for _, narrative in top]
        )
        for i, (narrative_id, _) in enumerate(top):
            idea = ideas.get(i)
            if idea is not None:
                deps.database.save_idea(narrative_id, idea)
                saved += 1
    except Exception as e:
        logger.warning(f"Idea generation failed after {saved} ideas: {e}")
        return {"ideas_generated": saved, "warnings": [f"Idea generation failed: {str(e)[:120]}"]}

    logger.info(f"Generated {saved} ideas for {len(top)} narratives")
    return {"ideas_generated": saved}


def create_analysis_graph():
    """Build and compile the analysis graph.

    Flow:
      load ─┬─ (insufficient) → END
            └─ correlate → cluster ─┬─ (no protos) → END
                                    └─ synthesize → persist → ideas → END
    """
    workflow = StateGraph(AnalysisState)

    workflow.add_node("load",       load_node)
    workflow.add_node("correlate",  correlate_node)
    workflow.add_node("cluster",    cluster_node)
    workflow.add_node("synthesize", synthesize_node)
    workflow.add_node("persist",    persist_node)
    workflow.add_node("ideas",      ideas_node)

    workflow.add_edge(START, "load")
    workflow.add_conditional_edges("load", load_route, {"correlate": "correlate", "end": END})
    workflow.add_edge("correlate", "cluster")
    workflow.add_conditional_edges("cluster", cluster_route, {"synthesize": "synthesize", "end": END})
    workflow.add_edge("synthesize", "persist")
    workflow.add_edge("persist", "ideas")
    workflow.add_edge("ideas", END)

    return workflow.compile()


# ── Public Entry Point ───────────────────────────────────────────────────────

async def run_analysis(
    database: Optional[Database] = None,
    synthesizer: Optional[NarrativeSynthesizer] = None,
    idea_generator: Optional[IdeaGenerator] = None,
    now: Optional[datetime] = None,
    settings: Optional[Settings] = None,
) -> AnalysisReport:
    """Run one analysis pass over the stored signal window.

    Raises:
        InsufficientSignalsError: fewer than analysis_min_signals signals.
    """
    settings = settings or get_settings()
    deps = AnalysisDeps(
        database=database or get_database(),
        synthesizer=synthesizer,
        idea_generator=idea_generator or get_idea_generator(settings),
        settings=settings,
        now=now or datetime.now(timezone.utc),
    )

    initial_state: AnalysisState = {
        "deps": deps,
        "signals": [],
        "insufficient": False,
        "correlations": [],
        "candidates": [],
        "protos": [],
        "narratives": [],
        "stored": [],
        "ideas_generated": 0,
        "used_fallback": False,
        "warnings": [],
    }

    logger.info("=" * 50)
    logger.info("ANALYSIS RUN")
    logger.info("=" * 50)

    final_state: Dict[str, Any] = await create_analysis_graph().ainvoke(initial_state)

    if final_state["insufficient"]:
        error = InsufficientSignalsError(len(final_state["signals"]), settings.analysis_min_signals)
        logger.error(str(error))
        raise error

    warnings = final_state.get("warnings", [])
    report = AnalysisReport(
        signals_analyzed=len(final_state["signals"]),
        correlations_found=len(final_state["correlations"]),
        candidates_found=len(final_state["candidates"]),
        proto_narratives=len(final_state["protos"]),
        narratives_generated=len(final_state["stored"]),
        ideas_generated=final_state["ideas_generated"],
        narrative_ids=[narrative_id for narrative_id, _ in final_state["stored"]],
        used_fallback=final_state["used_fallback"],
        warning="; ".join(warnings) if warnings else None,
    )
    logger.info(
        f"Analysis complete: {report.signals_analyzed} signals → {report.candidates_found} candidates → "
        f"{report.proto_narratives} protos → {report.narratives_generated} narratives → "
        f"{report.ideas_generated} ideas"
    )
    return report
