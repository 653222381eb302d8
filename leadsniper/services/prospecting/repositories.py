"""Persistence backends for leads, research runs, and interactions."""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Iterable, Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from threading import Lock
from typing import Any, Protocol
from uuid import UUID

from sqlalchemy import delete, func, or_
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, OperationalError, ProgrammingError, SQLAlchemyError
from sqlmodel import Session, select

from leadsniper.config import settings
from leadsniper.core.database import create_database_engine
from leadsniper.models.lead import (
    Interaction,
    Lead,
    LeadPage,
    LeadStats,
    MarketingBreakdown,
)
from leadsniper.models.records import (
    LEAD_LEGACY_CONFLICT,
    LEAD_PRIMARY_CONFLICT,
    InteractionRecord,
    LeadRecord,
    ResearchRunRecord,
)
from leadsniper.models.research import ResearchRun, RunStatistics, RunStatus
from leadsniper.observability.metrics import metrics
from leadsniper.services.prospecting.errors import (
    LeadNotFoundError,
    PersistenceError,
    ResearchRunNotFoundError,
)
from leadsniper.services.prospecting.mapper import (
    DISCOVERY_FIELDS,
    MARKETING_STORAGE_COLUMNS,
    interaction_to_domain,
    interaction_to_storage,
    run_to_domain,
    run_to_storage,
    to_domain,
    to_storage,
)
from leadsniper.services.prospecting.scoring import score_lead

logger = logging.getLogger(__name__)

ORDERABLE_FIELDS = ("score", "created_at", "name", "rating", "review_count", "city")
_RESCORED_FIELDS = ("base_score", "score", "classification")
_IMMUTABLE_COLUMNS = {"id", "owner_id", "created_at"}
# Columns a marketing verification may write; contact and status columns stay as stored.
_VERIFICATION_COLUMNS = MARKETING_STORAGE_COLUMNS + _RESCORED_FIELDS
_ANALYSIS_COLUMNS = ("analysis",) + _VERIFICATION_COLUMNS


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class UpsertOutcome:
    id: UUID
    is_new: bool


@dataclass
class LeadFilters:
    """Optional narrowing applied when listing an owner's leads."""

    classification: str | None = None
    status: str | None = None
    city: str | None = None
    business_type: str | None = None
    score_min: int | None = None
    score_max: int | None = None
    has_website: bool | None = None
    has_whatsapp: bool | None = None
    research_run_id: UUID | None = None
    marketing_level: str | None = None
    search: str | None = None
    order_by: str = "score"
    order_dir: str = "desc"


class ProspectingRepository(Protocol):
    """Persistence contract for the prospecting pipeline."""

    def upsert(self, lead: Lead, owner_id: str) -> UpsertOutcome:
        ...

    def get_lead(self, owner_id: str, lead_id: UUID) -> Lead | None:
        ...

    def list_leads(
        self, owner_id: str, filters: LeadFilters | None = None, *, page: int = 1, limit: int = 20
    ) -> LeadPage:
        ...

    def update_lead(self, lead: Lead) -> Lead:
        ...

    def update_marketing(self, lead: Lead) -> Lead:
        """Persist only the marketing verification and score of ``lead``."""
        ...

    def update_analysis(self, lead: Lead) -> Lead:
        """Persist the AI analysis of ``lead`` along with its marketing and score."""
        ...

    def delete_lead(self, owner_id: str, lead_id: UUID) -> bool:
        ...

    def pending_verification(self, owner_id: str) -> list[Lead]:
        ...

    def count_pending_verification(self, owner_id: str) -> int:
        ...

    def lead_stats(self, owner_id: str) -> LeadStats:
        ...

    def add_interaction(self, interaction: Interaction) -> Interaction:
        ...

    def list_interactions(self, owner_id: str, lead_id: UUID) -> list[Interaction]:
        ...

    def create_run(self, run: ResearchRun) -> ResearchRun:
        ...

    def get_run(self, owner_id: str, run_id: UUID) -> ResearchRun | None:
        ...

    def list_runs(self, owner_id: str, *, limit: int = 50) -> list[ResearchRun]:
        ...

    def finish_run(
        self,
        run_id: UUID,
        *,
        status: RunStatus,
        statistics: RunStatistics | None = None,
        error_message: str | None = None,
    ) -> ResearchRun:
        ...


def merge_discovery(existing: Lead, incoming: Lead) -> Lead:
    """Overlay discovery-stage fields from ``incoming`` onto ``existing``.

    Verification, outreach, diagnosis and notes stay untouched; the score is
    recomputed from the new signals plus the existing marketing bonus.
    """
    updates = {field: getattr(incoming, field) for field in DISCOVERY_FIELDS}
    updates["legacy_place_id"] = existing.legacy_place_id or incoming.legacy_place_id
    updates["updated_at"] = _utcnow()
    return score_lead(existing.model_copy(update=updates))


def compute_lead_stats(leads: Iterable[Lead]) -> LeadStats:
    """Aggregate classification, status, city and marketing counts."""
    classification: Counter[str] = Counter()
    status: Counter[str] = Counter()
    city: Counter[str] = Counter()
    levels: Counter[str] = Counter()
    marketing = MarketingBreakdown()
    total = with_whatsapp = without_website = score_sum = 0
    for lead in leads:
        total += 1
        score_sum += lead.score
        classification[lead.classification.value] += 1
        status[lead.status.value] += 1
        if lead.city:
            city[lead.city] += 1
        if lead.has_whatsapp:
            with_whatsapp += 1
        if not lead.has_website:
            without_website += 1
        if lead.marketing_verified and lead.marketing is not None:
            marketing.verified += 1
            levels[lead.marketing.level.value] += 1
            if lead.marketing.google_ads:
                marketing.with_google_ads += 1
            if lead.marketing.facebook_ads:
                marketing.with_facebook_ads += 1
            if not lead.marketing.has_any_marketing:
                marketing.without_marketing += 1
        else:
            marketing.unverified += 1
    marketing.by_level = dict(levels)
    return LeadStats(
        total=total,
        by_classification=dict(classification),
        by_status=dict(status),
        by_city=dict(city),
        with_whatsapp=with_whatsapp,
        without_website=without_website,
        average_score=round(score_sum / total, 1) if total else 0.0,
        marketing=marketing,
    )


def _needs_verification(lead: Lead) -> bool:
    return lead.has_website and not lead.marketing_verified


def _resolve_order(filters: LeadFilters) -> tuple[str, bool]:
    order_by = filters.order_by if filters.order_by in ORDERABLE_FIELDS else "score"
    return order_by, (filters.order_dir or "desc").lower() != "asc"


def _page_bounds(page: int, limit: int) -> tuple[int, int]:
    return max(page, 1), min(max(limit, 1), 100)


class InMemoryProspectingRepository(ProspectingRepository):
    """Thread-safe repository used for API/local development."""

    def __init__(self) -> None:
        self._leads: dict[UUID, Lead] = {}
        self._place_index: dict[tuple[str, str], UUID] = {}
        self._legacy_index: dict[tuple[str, str], UUID] = {}
        self._interactions: dict[UUID, list[Interaction]] = {}
        self._runs: dict[UUID, ResearchRun] = {}
        self._lock = Lock()

    def upsert(self, lead: Lead, owner_id: str) -> UpsertOutcome:
        incoming = lead.model_copy(update={"owner_id": owner_id})
        with self._lock:
            existing_id = self._place_index.get((owner_id, incoming.place_id))
            if existing_id is None and incoming.legacy_place_id:
                existing_id = self._legacy_index.get((owner_id, incoming.legacy_place_id))
            if existing_id is not None:
                merged = merge_discovery(self._leads[existing_id], incoming)
                self._leads[existing_id] = merged
                outcome = UpsertOutcome(id=existing_id, is_new=False)
            else:
                self._store(incoming)
                outcome = UpsertOutcome(id=incoming.id, is_new=True)
        metrics.increment(
            "prospecting.persistence.upsert",
            tags={"repository": "memory", "is_new": outcome.is_new},
        )
        return outcome

    def get_lead(self, owner_id: str, lead_id: UUID) -> Lead | None:
        with self._lock:
            lead = self._leads.get(lead_id)
        if lead is None or lead.owner_id != owner_id:
            return None
        return lead

    def list_leads(
        self, owner_id: str, filters: LeadFilters | None = None, *, page: int = 1, limit: int = 20
    ) -> LeadPage:
        filters = filters or LeadFilters()
        page, limit = _page_bounds(page, limit)
        with self._lock:
            owned = [lead for lead in self._leads.values() if lead.owner_id == owner_id]
        matches = [lead for lead in owned if _matches(lead, filters)]
        order_by, descending = _resolve_order(filters)
        matches.sort(key=lambda lead: _sort_key(lead, order_by), reverse=descending)
        start = (page - 1) * limit
        return LeadPage(items=matches[start : start + limit], total=len(matches), page=page, limit=limit)

    def update_lead(self, lead: Lead) -> Lead:
        with self._lock:
            current = self._owned(lead)
            updated = lead.model_copy(update={"updated_at": _utcnow()})
            if current.legacy_place_id != updated.legacy_place_id:
                stale = (current.owner_id, current.legacy_place_id)
                if self._legacy_index.get(stale) == current.id:
                    del self._legacy_index[stale]
                if updated.legacy_place_id:
                    self._legacy_index[(updated.owner_id, updated.legacy_place_id)] = updated.id
            self._leads[lead.id] = updated
        return updated

    def update_marketing(self, lead: Lead) -> Lead:
        return self._merge(lead, ("marketing", *_RESCORED_FIELDS))

    def update_analysis(self, lead: Lead) -> Lead:
        return self._merge(lead, ("analysis", "marketing", *_RESCORED_FIELDS))

    def _merge(self, lead: Lead, fields: Iterable[str]) -> Lead:
        with self._lock:
            current = self._owned(lead)
            updates = {field: getattr(lead, field) for field in fields}
            updates["updated_at"] = _utcnow()
            updated = current.model_copy(update=updates)
            self._leads[lead.id] = updated
        return updated

    def _owned(self, lead: Lead) -> Lead:
        current = self._leads.get(lead.id)
        if current is None or current.owner_id != lead.owner_id:
            raise LeadNotFoundError()
        return current

    def delete_lead(self, owner_id: str, lead_id: UUID) -> bool:
        with self._lock:
            lead = self._leads.get(lead_id)
            if lead is None or lead.owner_id != owner_id:
                return False
            del self._leads[lead_id]
            self._place_index.pop((owner_id, lead.place_id), None)
            if lead.legacy_place_id:
                self._legacy_index.pop((owner_id, lead.legacy_place_id), None)
            self._interactions.pop(lead_id, None)
        return True

    def pending_verification(self, owner_id: str) -> list[Lead]:
        with self._lock:
            pending = [
                lead
                for lead in self._leads.values()
                if lead.owner_id == owner_id and _needs_verification(lead)
            ]
        return sorted(pending, key=lambda lead: (-lead.score, lead.created_at))

    def count_pending_verification(self, owner_id: str) -> int:
        return len(self.pending_verification(owner_id))

    def lead_stats(self, owner_id: str) -> LeadStats:
        with self._lock:
            owned = [lead for lead in self._leads.values() if lead.owner_id == owner_id]
        return compute_lead_stats(owned)

    def add_interaction(self, interaction: Interaction) -> Interaction:
        with self._lock:
            if interaction.lead_id not in self._leads:
                raise LeadNotFoundError()
            self._interactions.setdefault(interaction.lead_id, []).append(interaction)
        return interaction

    def list_interactions(self, owner_id: str, lead_id: UUID) -> list[Interaction]:
        with self._lock:
            entries = [
                entry
                for entry in self._interactions.get(lead_id, [])
                if entry.owner_id == owner_id
            ]
        return sorted(entries, key=lambda entry: entry.created_at, reverse=True)

    def create_run(self, run: ResearchRun) -> ResearchRun:
        with self._lock:
            self._runs[run.id] = run
        return run

    def get_run(self, owner_id: str, run_id: UUID) -> ResearchRun | None:
        with self._lock:
            run = self._runs.get(run_id)
        if run is None or run.owner_id != owner_id:
            return None
        return run

    def list_runs(self, owner_id: str, *, limit: int = 50) -> list[ResearchRun]:
        with self._lock:
            runs = [run for run in self._runs.values() if run.owner_id == owner_id]
        runs.sort(key=lambda run: run.created_at, reverse=True)
        return runs[: max(0, limit)]

    def finish_run(
        self,
        run_id: UUID,
        *,
        status: RunStatus,
        statistics: RunStatistics | None = None,
        error_message: str | None = None,
    ) -> ResearchRun:
        with self._lock:
            run = self._runs.get(run_id)
            if run is None:
                raise ResearchRunNotFoundError()
            finished = _finished_run(run, status, statistics, error_message)
            self._runs[run_id] = finished
        return finished

    def _store(self, lead: Lead) -> None:
        self._leads[lead.id] = lead
        self._place_index[(lead.owner_id, lead.place_id)] = lead.id
        if lead.legacy_place_id:
            self._legacy_index[(lead.owner_id, lead.legacy_place_id)] = lead.id


class SqlProspectingRepository(ProspectingRepository):
    """SQLModel-backed repository that persists to Postgres/Supabase or SQLite.

    Upserts go through ``INSERT ... ON CONFLICT DO NOTHING`` against each entry
    of ``conflict_targets`` in order; a target the database rejects (no matching
    unique index, or a collision on another unique key) falls through to the next.
    """

    def __init__(
        self,
        database_url: str | None = None,
        *,
        engine: Engine | None = None,
        conflict_targets: Sequence[Sequence[str]] = (LEAD_PRIMARY_CONFLICT, LEAD_LEGACY_CONFLICT),
        pool_min_size: int | None = None,
        pool_max_size: int | None = None,
        auto_create_schema: bool = False,
    ) -> None:
        if engine is None:
            if not database_url:
                raise ValueError("DATABASE_URL is required for SqlProspectingRepository.")
            engine, backend = create_database_engine(
                database_url,
                pool_min_size=pool_min_size,
                pool_max_size=pool_max_size,
                auto_create_schema=auto_create_schema,
            )
        else:
            backend = engine.dialect.name
        if not conflict_targets:
            raise ValueError("At least one conflict target is required.")
        self._engine = engine
        self._conflict_targets = tuple(tuple(target) for target in conflict_targets)
        self._metrics_tags = {"repository": backend}

    @property
    def engine(self) -> Engine:
        return self._engine

    def dispose(self) -> None:
        """Close the underlying SQLAlchemy engine."""
        self._engine.dispose()

    def upsert(self, lead: Lead, owner_id: str) -> UpsertOutcome:
        row = self._lead_row(lead.model_copy(update={"owner_id": owner_id}))
        last_index = len(self._conflict_targets) - 1
        for index, target in enumerate(self._conflict_targets):
            try:
                outcome = self._upsert_on(target, row, lead)
            except (ProgrammingError, OperationalError, IntegrityError) as exc:
                if index == last_index:
                    logger.exception(
                        "prospecting.persistence.upsert_failed",
                        extra={"owner_id": owner_id, "place_id": lead.place_id, **self._metrics_tags},
                    )
                    raise PersistenceError(f"Failed to upsert lead {lead.place_id}.") from exc
                logger.warning(
                    "prospecting.persistence.upsert_fallback",
                    extra={
                        "owner_id": owner_id,
                        "place_id": lead.place_id,
                        "conflict_target": ",".join(target),
                        "error": type(exc).__name__,
                    },
                )
                continue
            except SQLAlchemyError as exc:
                logger.exception(
                    "prospecting.persistence.upsert_failed",
                    extra={"owner_id": owner_id, "place_id": lead.place_id, **self._metrics_tags},
                )
                raise PersistenceError(f"Failed to upsert lead {lead.place_id}.") from exc
            metrics.increment(
                "prospecting.persistence.upsert",
                tags={**self._metrics_tags, "is_new": outcome.is_new},
            )
            return outcome
        raise PersistenceError("No conflict target accepted the upsert.")  # pragma: no cover

    def get_lead(self, owner_id: str, lead_id: UUID) -> Lead | None:
        with self._guard("get_lead", owner_id=owner_id, lead_id=str(lead_id)):
            with self._session() as session:
                record = self._owned_lead(session, owner_id, lead_id)
                return to_domain(record) if record else None

    def list_leads(
        self, owner_id: str, filters: LeadFilters | None = None, *, page: int = 1, limit: int = 20
    ) -> LeadPage:
        filters = filters or LeadFilters()
        page, limit = _page_bounds(page, limit)
        conditions = _sql_conditions(owner_id, filters)
        order_by, descending = _resolve_order(filters)
        column = getattr(LeadRecord, order_by)
        with self._guard("list_leads", owner_id=owner_id):
            with self._session() as session:
                total = session.exec(
                    select(func.count()).select_from(LeadRecord).where(*conditions)
                ).one()
                statement = (
                    select(LeadRecord)
                    .where(*conditions)
                    .order_by(column.desc() if descending else column.asc(), LeadRecord.id)
                    .offset((page - 1) * limit)
                    .limit(limit)
                )
                records = session.exec(statement).all()
                return LeadPage(
                    items=[to_domain(record) for record in records],
                    total=int(total),
                    page=page,
                    limit=limit,
                )

    def update_lead(self, lead: Lead) -> Lead:
        row = self._lead_row(lead)
        columns = [column for column in row if column not in _IMMUTABLE_COLUMNS]
        return self._write_columns("update_lead", lead, row, columns)

    def update_marketing(self, lead: Lead) -> Lead:
        return self._write_columns(
            "update_marketing", lead, self._lead_row(lead), _VERIFICATION_COLUMNS
        )

    def update_analysis(self, lead: Lead) -> Lead:
        return self._write_columns(
            "update_analysis", lead, self._lead_row(lead), _ANALYSIS_COLUMNS
        )

    def _write_columns(
        self, operation: str, lead: Lead, row: dict[str, Any], columns: Iterable[str]
    ) -> Lead:
        with self._guard(operation, owner_id=lead.owner_id, lead_id=str(lead.id)):
            with self._session() as session:
                record = self._owned_lead(session, lead.owner_id, lead.id)
                if record is None:
                    raise LeadNotFoundError()
                for column in columns:
                    setattr(record, column, row[column])
                record.updated_at = _utcnow()
                session.add(record)
                session.commit()
                session.refresh(record)
                return to_domain(record)

    def delete_lead(self, owner_id: str, lead_id: UUID) -> bool:
        with self._guard("delete_lead", owner_id=owner_id, lead_id=str(lead_id)):
            with self._session() as session:
                record = self._owned_lead(session, owner_id, lead_id)
                if record is None:
                    return False
                session.execute(delete(InteractionRecord).where(InteractionRecord.lead_id == lead_id))
                session.delete(record)
                session.commit()
                return True

    def pending_verification(self, owner_id: str) -> list[Lead]:
        with self._guard("pending_verification", owner_id=owner_id):
            with self._session() as session:
                statement = (
                    select(LeadRecord)
                    .where(*_pending_conditions(owner_id))
                    .order_by(LeadRecord.score.desc(), LeadRecord.created_at.asc())
                )
                return [to_domain(record) for record in session.exec(statement).all()]

    def count_pending_verification(self, owner_id: str) -> int:
        with self._guard("count_pending_verification", owner_id=owner_id):
            with self._session() as session:
                statement = (
                    select(func.count())
                    .select_from(LeadRecord)
                    .where(*_pending_conditions(owner_id))
                )
                return int(session.exec(statement).one())

    def lead_stats(self, owner_id: str) -> LeadStats:
        with self._guard("lead_stats", owner_id=owner_id):
            with self._session() as session:
                records = session.exec(
                    select(LeadRecord).where(LeadRecord.owner_id == owner_id)
                ).all()
                return compute_lead_stats(to_domain(record) for record in records)

    def add_interaction(self, interaction: Interaction) -> Interaction:
        with self._guard("add_interaction", lead_id=str(interaction.lead_id)):
            with self._session() as session:
                if self._owned_lead(session, interaction.owner_id, interaction.lead_id) is None:
                    raise LeadNotFoundError()
                record = InteractionRecord(**interaction_to_storage(interaction))
                session.add(record)
                session.commit()
                session.refresh(record)
                return interaction_to_domain(record)

    def list_interactions(self, owner_id: str, lead_id: UUID) -> list[Interaction]:
        with self._guard("list_interactions", owner_id=owner_id, lead_id=str(lead_id)):
            with self._session() as session:
                statement = (
                    select(InteractionRecord)
                    .where(
                        InteractionRecord.owner_id == owner_id,
                        InteractionRecord.lead_id == lead_id,
                    )
                    .order_by(InteractionRecord.created_at.desc())
                )
                return [interaction_to_domain(record) for record in session.exec(statement).all()]

    def create_run(self, run: ResearchRun) -> ResearchRun:
        with self._guard("create_run", owner_id=run.owner_id):
            with self._session() as session:
                record = ResearchRunRecord(**run_to_storage(run))
                session.add(record)
                session.commit()
                session.refresh(record)
                return run_to_domain(record)

    def get_run(self, owner_id: str, run_id: UUID) -> ResearchRun | None:
        with self._guard("get_run", owner_id=owner_id, run_id=str(run_id)):
            with self._session() as session:
                record = session.get(ResearchRunRecord, run_id)
                if record is None or record.owner_id != owner_id:
                    return None
                return run_to_domain(record)

    def list_runs(self, owner_id: str, *, limit: int = 50) -> list[ResearchRun]:
        with self._guard("list_runs", owner_id=owner_id):
            with self._session() as session:
                statement = (
                    select(ResearchRunRecord)
                    .where(ResearchRunRecord.owner_id == owner_id)
                    .order_by(ResearchRunRecord.created_at.desc())
                    .limit(max(0, limit))
                )
                return [run_to_domain(record) for record in session.exec(statement).all()]

    def finish_run(
        self,
        run_id: UUID,
        *,
        status: RunStatus,
        statistics: RunStatistics | None = None,
        error_message: str | None = None,
    ) -> ResearchRun:
        with self._guard("finish_run", run_id=str(run_id)):
            with self._session() as session:
                record = session.get(ResearchRunRecord, run_id)
                if record is None:
                    raise ResearchRunNotFoundError()
                finished = _finished_run(run_to_domain(record), status, statistics, error_message)
                record.status = finished.status.value
                record.statistics = finished.statistics.model_dump(mode="json")
                record.error_message = finished.error_message
                record.finished_at = finished.finished_at
                session.add(record)
                session.commit()
                session.refresh(record)
                return run_to_domain(record)

    def _upsert_on(
        self, target: tuple[str, ...], row: dict[str, Any], lead: Lead
    ) -> UpsertOutcome:
        table = LeadRecord.__table__
        statement = (
            self._insert(table).values(**row).on_conflict_do_nothing(index_elements=list(target))
        )
        with self._session() as session:
            try:
                result = session.execute(statement)
                if result.rowcount == 1:
                    session.commit()
                    return UpsertOutcome(id=row["id"], is_new=True)
                lookup = select(LeadRecord).where(
                    *[getattr(LeadRecord, column) == row[column] for column in target]
                )
                record = session.exec(lookup).first()
                if record is None:
                    raise PersistenceError(
                        f"Conflicting lead {lead.place_id} vanished before merge."
                    )
                merged = merge_discovery(to_domain(record), lead)
                merged_row = to_storage(merged)
                for column in (*DISCOVERY_FIELDS, *_RESCORED_FIELDS, "legacy_place_id"):
                    setattr(record, column, merged_row[column])
                record.updated_at = merged.updated_at
                session.add(record)
                session.commit()
                return UpsertOutcome(id=record.id, is_new=False)
            except SQLAlchemyError:
                session.rollback()
                raise

    def _insert(self, table: Any) -> Any:
        if self._engine.dialect.name == "postgresql":
            return postgresql_insert(table)
        return sqlite_insert(table)

    @staticmethod
    def _lead_row(lead: Lead) -> dict[str, Any]:
        columns = LeadRecord.__table__.c
        return {key: value for key, value in to_storage(lead).items() if key in columns}

    @staticmethod
    def _owned_lead(session: Session, owner_id: str, lead_id: UUID) -> LeadRecord | None:
        record = session.get(LeadRecord, lead_id)
        if record is None or record.owner_id != owner_id:
            return None
        return record

    @contextmanager
    def _session(self) -> Iterator[Session]:
        with Session(self._engine) as session:
            yield session

    @contextmanager
    def _guard(self, operation: str, **context: Any) -> Iterator[None]:
        try:
            yield
        except SQLAlchemyError as exc:
            logger.exception(
                "prospecting.persistence.error",
                extra={"operation": operation, **context, **self._metrics_tags},
            )
            metrics.increment(
                "prospecting.persistence.error", tags={**self._metrics_tags, "operation": operation}
            )
            raise PersistenceError(f"Failed to {operation.replace('_', ' ')}.") from exc


def _finished_run(
    run: ResearchRun,
    status: RunStatus,
    statistics: RunStatistics | None,
    error_message: str | None,
) -> ResearchRun:
    if run.status is not RunStatus.PROCESSING:
        raise PersistenceError(
            f"Research run {run.id} already finished as {run.status.value}.",
            code="409_RUN_ALREADY_FINISHED",
        )
    if status is RunStatus.PROCESSING:
        raise PersistenceError("A run can only finish as completed or failed.")
    return run.model_copy(
        update={
            "status": status,
            "statistics": statistics or run.statistics,
            "error_message": error_message,
            "finished_at": _utcnow(),
        }
    )


def _matches(lead: Lead, filters: LeadFilters) -> bool:
    if filters.classification and lead.classification.value != filters.classification.upper():
        return False
    if filters.status and lead.status.value != filters.status.upper():
        return False
    if filters.city and (lead.city or "").lower() != filters.city.lower():
        return False
    if filters.business_type and (lead.business_type or "").lower() != filters.business_type.lower():
        return False
    if filters.score_min is not None and lead.score < filters.score_min:
        return False
    if filters.score_max is not None and lead.score > filters.score_max:
        return False
    if filters.has_website is not None and lead.has_website != filters.has_website:
        return False
    if filters.has_whatsapp is not None and lead.has_whatsapp != filters.has_whatsapp:
        return False
    if filters.research_run_id and lead.research_run_id != filters.research_run_id:
        return False
    if filters.marketing_level:
        level = lead.marketing.level.value if lead.marketing_verified and lead.marketing else None
        if level != filters.marketing_level.upper():
            return False
    if filters.search:
        needle = filters.search.lower()
        haystack = " ".join(filter(None, (lead.name, lead.address, lead.category))).lower()
        if needle not in haystack:
            return False
    return True


def _sort_key(lead: Lead, order_by: str) -> Any:
    value = getattr(lead, order_by)
    if value is None:
        return (0, "")
    if isinstance(value, str):
        return (1, value.lower())
    return (1, value)


def _has_website_clause() -> Any:
    return (LeadRecord.website.is_not(None)) & (LeadRecord.website != "")


def _pending_conditions(owner_id: str) -> list[Any]:
    return [
        LeadRecord.owner_id == owner_id,
        LeadRecord.marketing_verified.is_(False),
        _has_website_clause(),
    ]


def _sql_conditions(owner_id: str, filters: LeadFilters) -> list[Any]:
    conditions: list[Any] = [LeadRecord.owner_id == owner_id]
    if filters.classification:
        conditions.append(LeadRecord.classification == filters.classification.upper())
    if filters.status:
        conditions.append(LeadRecord.status == filters.status.upper())
    if filters.city:
        conditions.append(func.lower(LeadRecord.city) == filters.city.lower())
    if filters.business_type:
        conditions.append(func.lower(LeadRecord.business_type) == filters.business_type.lower())
    if filters.score_min is not None:
        conditions.append(LeadRecord.score >= filters.score_min)
    if filters.score_max is not None:
        conditions.append(LeadRecord.score <= filters.score_max)
    if filters.has_website is True:
        conditions.append(_has_website_clause())
    elif filters.has_website is False:
        conditions.append(or_(LeadRecord.website.is_(None), LeadRecord.website == ""))
    if filters.has_whatsapp is not None:
        conditions.append(LeadRecord.has_whatsapp.is_(filters.has_whatsapp))
    if filters.research_run_id:
        conditions.append(LeadRecord.research_run_id == filters.research_run_id)
    if filters.marketing_level:
        conditions.append(LeadRecord.marketing_verified.is_(True))
        conditions.append(LeadRecord.marketing_level == filters.marketing_level.upper())
    if filters.search:
        pattern = f"%{filters.search}%"
        conditions.append(
            or_(
                LeadRecord.name.ilike(pattern),
                LeadRecord.address.ilike(pattern),
                LeadRecord.category.ilike(pattern),
            )
        )
    return conditions


def build_prospecting_repository(database_url: str | None = None) -> ProspectingRepository:
    """Instantiate a ProspectingRepository using DATABASE_URL when available."""
    resolved_url = database_url or settings.database_url
    if not resolved_url:
        logger.info("prospecting.repository.initialized", extra={"backend": "memory"})
        return InMemoryProspectingRepository()
    try:
        repository = SqlProspectingRepository(
            resolved_url,
            pool_min_size=settings.db_pool_min_size,
            pool_max_size=settings.db_pool_max_size,
            auto_create_schema=settings.auto_create_schema,
        )
        logger.info("prospecting.repository.initialized", extra={"backend": "database"})
        return repository
    except Exception:
        logger.exception("prospecting.repository.init_failed", extra={"backend": "database"})
        raise
