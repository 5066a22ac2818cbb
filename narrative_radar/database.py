"""
SQLite database — stores collection runs, signals, narratives and ideas.

Tables:
  - collection_runs: Run history with status, per-source counts, errors
  - signals: ScoredSignal rows (flat fields + JSON raw_data/tags/entities)
  - narratives: Indexed scalars + the evidence chain as a JSON document
  - narrative_signals: narrative ↔ signal links
  - ideas: Product ideas per narrative
  - metric_history: Append-only per-source baseline (see SqlBaselineStore)

Timestamps are stored as naive UTC and read back as aware UTC.
"""

import json
import logging
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

from sqlalchemy import (
    create_engine, Column, String, Integer, Float, Text, DateTime, ForeignKey,
)
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from sqlalchemy.pool import StaticPool

from .config import get_settings
from .schemas import (
    BaselinePoint, CollectionStatus, ProductIdea, ScoredSignal, SynthesizedNarrative,
)
from .trends.baseline import BaselineStore

logger = logging.getLogger(__name__)

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _to_db_time(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _from_db_time(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    return value.replace(tzinfo=timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


# ── Models ───────────────────────────────────────────────────────────────────

class CollectionRunModel(Base):
    """Collection run history."""
    __tablename__ = "collection_runs"

    id = Column(String(36), primary_key=True, default=_new_id)
    status = Column(String(20), default=CollectionStatus.RUNNING.value)
    signals_collected = Column(Integer, default=0)
    source_counts = Column(Text, default="{}")  # JSON object source → count
    errors = Column(Text, default="[]")  # JSON array
    error_message = Column(Text)
    started_at = Column(DateTime, default=_utcnow)
    completed_at = Column(DateTime, index=True)


class SignalModel(Base):
    """One scored signal."""
    __tablename__ = "signals"

    id = Column(String(36), primary_key=True, default=_new_id)
    run_id = Column(String(36), ForeignKey("collection_runs.id"), index=True)

    source = Column(String(20), nullable=False, index=True)
    source_url = Column(String(1000))
    title = Column(String(500), nullable=False)
    description = Column(Text, default="")
    raw_data = Column(Text, default="{}")  # JSON object, opaque
    tags = Column(Text, default="[]")  # JSON array
    entities = Column(Text, default="[]")  # JSON array

    magnitude = Column(Float, default=0.0)
    velocity = Column(Float, default=0.0)
    novelty = Column(Float, default=0.0)
    confidence = Column(Float, default=0.0)
    composite_score = Column(Float, default=0.0, index=True)
    z_score = Column(Float)
    strength = Column(String(20))

    detected_at = Column(DateTime, nullable=False, index=True)
    created_at = Column(DateTime, default=_utcnow)


class NarrativeModel(Base):
    """Synthesized narrative; evidence chain kept as a JSON document."""
    __tablename__ = "narratives"

    id = Column(String(36), primary_key=True, default=_new_id)
    title = Column(String(500), nullable=False)
    slug = Column(String(300), nullable=False, unique=True)
    summary = Column(Text)
    explanation = Column(Text)
    confidence_score = Column(Float, default=0.0, index=True)
    signal_count = Column(Integer, default=0)
    source_diversity = Column(Integer, default=0)
    status = Column(String(20), index=True)
    tags = Column(Text, default="[]")  # JSON array
    evidence_chain = Column(Text)  # JSON object
    created_at = Column(DateTime, default=_utcnow)


class NarrativeSignalModel(Base):
    __tablename__ = "narrative_signals"

    narrative_id = Column(String(36), ForeignKey("narratives.id"), primary_key=True)
    signal_id = Column(String(36), ForeignKey("signals.id"), primary_key=True)


class IdeaModel(Base):
    """Product idea for a narrative."""
    __tablename__ = "ideas"

    id = Column(String(36), primary_key=True, default=_new_id)
    narrative_id = Column(String(36), ForeignKey("narratives.id"), nullable=False, index=True)
    title = Column(String(500), nullable=False)
    description = Column(Text)
    target_user = Column(Text)
    technical_approach = Column(Text)
    differentiation = Column(Text)
    feasibility_score = Column(Integer, default=5)
    impact_score = Column(Integer, default=5)
    created_at = Column(DateTime, default=_utcnow)


class MetricHistoryModel(Base):
    """Append-only per-source metric time series (trend baseline)."""
    __tablename__ = "metric_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    source = Column(String(20), nullable=False, index=True)
    metric_name = Column(String(50), nullable=False, index=True)
    value = Column(Float, nullable=False)
    recorded_at = Column(DateTime, nullable=False, index=True)


# ── Database class ───────────────────────────────────────────────────────────

class Database:
    """Database manager — singleton via get_database(), or constructed directly."""

    def __init__(self, database_url: Optional[str] = None):
        settings = get_settings()
        url = database_url or settings.database_url

        if url in ("sqlite://", "sqlite:///:memory:"):
            # One shared connection, otherwise every session sees an empty database
            self.engine = create_engine(
                url, echo=False,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        else:
            self.engine = create_engine(url, echo=False)
        self.SessionLocal = sessionmaker(bind=self.engine, expire_on_commit=False)

    def create_tables(self):
        """Create all tables (safe to call multiple times)."""
        Base.metadata.create_all(self.engine)

    @contextmanager
    def get_session(self) -> Session:
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # ── Collection runs ───────────────────────────────────────────────

    def create_collection_run(self) -> str:
        with self.get_session() as session:
            run = CollectionRunModel(id=_new_id(), status=CollectionStatus.RUNNING.value)
            session.add(run)
            return run.id

    def complete_collection_run(
        self,
        run_id: str,
        signals_collected: int,
        source_counts: Dict[str, int],
        errors: List[str],
    ):
        with self.get_session() as session:
            run = session.query(CollectionRunModel).filter_by(id=run_id).first()
            if run:
                run.status = CollectionStatus.COMPLETED.value
                run.signals_collected = signals_collected
                run.source_counts = json.dumps(source_counts)
                run.errors = json.dumps(errors)
                run.completed_at = _utcnow()

    def fail_collection_run(self, run_id: str, error: str):
        with self.get_session() as session:
            run = session.query(CollectionRunModel).filter_by(id=run_id).first()
            if run:
                run.status = CollectionStatus.FAILED.value
                run.error_message = error
                run.completed_at = _utcnow()

    def get_collection_runs(self, limit: int = 20) -> List[Dict]:
        """Recent collection runs, newest first."""
        with self.get_session() as session:
            runs = session.query(CollectionRunModel).order_by(
                CollectionRunModel.started_at.desc()
            ).limit(limit).all()
            return [
                {
                    "run_id": r.id,
                    "status": r.status,
                    "signals_collected": r.signals_collected,
                    "source_counts": json.loads(r.source_counts) if r.source_counts else {},
                    "errors": json.loads(r.errors) if r.errors else [],
                    "error_message": r.error_message,
                    "started_at": r.started_at.isoformat() if r.started_at else None,
                    "completed_at": r.completed_at.isoformat() if r.completed_at else None,
                }
                for r in runs
            ]

    def last_completed_run_at(self) -> Optional[datetime]:
        """Completion time of the latest completed collection run."""
        with self.get_session() as session:
            run = session.query(CollectionRunModel).filter(
                CollectionRunModel.status == CollectionStatus.COMPLETED.value
            ).order_by(CollectionRunModel.completed_at.desc()).first()
            return _from_db_time(run.completed_at) if run else None

    # ── Signals ───────────────────────────────────────────────────────

    def save_signals(self, run_id: Optional[str], signals: List[ScoredSignal]) -> List[ScoredSignal]:
        """Insert signals; returns copies carrying their new ids."""
        saved = []
        with self.get_session() as session:
            for s in signals:
                signal_id = s.id or _new_id()
                session.add(SignalModel(
                    id=signal_id,
                    run_id=run_id,
                    source=s.source.value,
                    source_url=s.source_url,
                    title=s.title,
                    description=s.description,
                    raw_data=json.dumps(s.raw_data, default=str),
                    tags=json.dumps(s.tags),
                    entities=json.dumps(s.entities),
                    magnitude=s.magnitude,
                    velocity=s.velocity,
                    novelty=s.novelty,
                    confidence=s.confidence,
                    composite_score=s.composite_score,
                    z_score=s.z_score,
                    strength=s.strength.value,
                    detected_at=_to_db_time(s.detected_at),
                ))
                saved.append(s.model_copy(update={"id": signal_id}))
        logger.debug(f"Saved {len(saved)} signals (run {run_id})")
        return saved

    def update_signal_trends(self, signals: Iterable[ScoredSignal]) -> int:
        """Write back z_score/strength for stored signals that received a z-score."""
        updated = 0
        with self.get_session() as session:
            for s in signals:
                if s.id is None or s.z_score is None:
                    continue
                updated += session.query(SignalModel).filter_by(id=s.id).update(
                    {"z_score": s.z_score, "strength": s.strength.value}
                )
        return updated

    def load_signals(self, since: datetime, limit: int) -> List[ScoredSignal]:
        """Signals detected at or after ``since``, best composite score first."""
        with self.get_session() as session:
            rows = session.query(SignalModel).filter(
                SignalModel.detected_at >= _to_db_time(since)
            ).order_by(
                SignalModel.composite_score.desc(), SignalModel.detected_at.desc()
            ).limit(limit).all()
            return [
                ScoredSignal(
                    id=r.id,
                    source=r.source,
                    source_url=r.source_url,
                    title=r.title,
                    description=r.description or "",
                    raw_data=json.loads(r.raw_data) if r.raw_data else {},
                    tags=json.loads(r.tags) if r.tags else [],
                    entities=json.loads(r.entities) if r.entities else [],
                    magnitude=r.magnitude,
                    velocity=r.velocity,
                    novelty=r.novelty,
                    confidence=r.confidence,
                    composite_score=r.composite_score,
                    z_score=r.z_score,
                    strength=r.strength,
                    detected_at=_from_db_time(r.detected_at),
                )
                for r in rows
            ]

    def count_signals(self) -> int:
        with self.get_session() as session:
            return session.query(SignalModel).count()

    # ── Narratives & ideas ────────────────────────────────────────────

    def save_narrative(self, narrative: SynthesizedNarrative, signal_ids: Iterable[str]) -> str:
        """Insert a narrative and its signal links. The stored slug gets a unique suffix."""
        with self.get_session() as session:
            row = NarrativeModel(
                id=_new_id(),
                title=narrative.title,
                slug=f"{narrative.slug or 'narrative'}-{uuid.uuid4().hex[:6]}",
                summary=narrative.summary,
                explanation=narrative.explanation,
                confidence_score=narrative.confidence_score,
                signal_count=narrative.signal_count,
                source_diversity=narrative.source_diversity,
                status=narrative.status.value,
                tags=json.dumps(narrative.tags),
                evidence_chain=narrative.evidence_chain.model_dump_json(),
            )
            session.add(row)
            session.flush()
            for signal_id in dict.fromkeys(signal_ids):
                session.add(NarrativeSignalModel(narrative_id=row.id, signal_id=signal_id))
            return row.id

    def save_idea(self, narrative_id: str, idea: ProductIdea) -> str:
        with self.get_session() as session:
            row = IdeaModel(
                id=_new_id(),
                narrative_id=narrative_id,
                **idea.model_dump(),
            )
            session.add(row)
            return row.id

    def get_narratives(self, limit: int = 20) -> List[Dict]:
        """Stored narratives, highest confidence first."""
        with self.get_session() as session:
            rows = session.query(NarrativeModel).order_by(
                NarrativeModel.confidence_score.desc()
            ).limit(limit).all()
            result = []
            for r in rows:
                links = session.query(NarrativeSignalModel).filter_by(narrative_id=r.id).count()
                ideas = session.query(IdeaModel).filter_by(narrative_id=r.id).all()
                result.append({
                    "id": r.id,
                    "title": r.title,
                    "slug": r.slug,
                    "confidence_score": r.confidence_score,
                    "signal_count": r.signal_count,
                    "source_diversity": r.source_diversity,
                    "status": r.status,
                    "tags": json.loads(r.tags) if r.tags else [],
                    "evidence_chain": json.loads(r.evidence_chain) if r.evidence_chain else None,
                    "linked_signals": links,
                    "ideas": [i.title for i in ideas],
                })
            return result


# ── Baseline store on metric_history ─────────────────────────────────────────

class SqlBaselineStore(BaselineStore):
    """BaselineStore backed by the metric_history table."""

    def __init__(self, database: Database):
        self.database = database

    def load(self, since: datetime, metric_name: Optional[str] = None) -> List[BaselinePoint]:
        with self.database.get_session() as session:
            q = session.query(MetricHistoryModel).filter(
                MetricHistoryModel.recorded_at >= _to_db_time(since)
            )
            if metric_name is not None:
                q = q.filter(MetricHistoryModel.metric_name == metric_name)
            rows = q.order_by(MetricHistoryModel.recorded_at.asc()).all()
            return [
                BaselinePoint(
                    source=r.source,
                    metric_name=r.metric_name,
                    value=r.value,
                    recorded_at=_from_db_time(r.recorded_at),
                )
                for r in rows
            ]

    def append(self, points: Iterable[BaselinePoint]) -> None:
        # One session = one transaction for the whole run
        with self.database.get_session() as session:
            for p in points:
                session.add(MetricHistoryModel(
                    source=p.source.value,
                    metric_name=p.metric_name,
                    value=p.value,
                    recorded_at=_to_db_time(p.recorded_at),
                ))


# Singleton instance
_db: Optional[Database] = None


def get_database() -> Database:
    """Get or create database instance."""
    global _db
    if _db is None:
        _db = Database()
        _db.create_tables()
    return _db
