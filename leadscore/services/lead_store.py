"""
Lead persistence — the LeadStore contract and its SQLAlchemy implementation.

Every read skips soft-deleted leads. Store failures surface as PersistenceError;
bulk_write isolates per-lead failures instead of failing the whole batch.
"""
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError

from leadscore.config import BULK_WRITE_CHUNK_SIZE
from leadscore.database import get_session
from leadscore.errors import LeadNotFoundError, PersistenceError, StatusConflictError, ValidationError
from leadscore.models.lead import Lead
from leadscore.scoring.base import BulkWriteResult, LeadRecord, LeadUpdate

logger = logging.getLogger('services.lead_store')

FILTERABLE_FIELDS = frozenset({
    'id', 'client_id', 'status', 'service', 'ad_set_name', 'ad_name', 'zip',
    'lead_date', 'email', 'phone', 'rate_batch_id',
})
UPDATABLE_FIELDS = frozenset({
    'lead_score', 'conversion_rates', 'rate_batch_id', 'status',
    'unqualified_lead_reason', 'proposal_amount', 'job_booked_amount',
    'status_history', 'last_manual_update',
})
_OPERATORS = ('gte', 'lte', 'ne')


class LeadStore(ABC):
    """Persistence of lead records, partitioned by client_id."""

    @abstractmethod
    def get_leads_by_client_id(self, client_id: str) -> List[LeadRecord]:
        ...

    @abstractmethod
    def find_leads(self, filter: Dict[str, Any]) -> List[LeadRecord]:
        ...

    @abstractmethod
    def bulk_write(self, updates: List[LeadUpdate]) -> BulkWriteResult:
        ...

    @abstractmethod
    def update_many(self, filter: Dict[str, Any], values: Dict[str, Any]) -> int:
        """Apply the same values to every matching lead. Returns modified count."""
        ...

    @abstractmethod
    def get_distinct_client_ids(self) -> List[str]:
        ...

    @abstractmethod
    def get_lead(self, lead_id: str) -> Optional[LeadRecord]:
        ...

    @abstractmethod
    def update_lead(self, lead_id: str, values: Dict[str, Any],
                    expected_status: Optional[str] = None) -> LeadRecord:
        """Update one lead; with expected_status, only while its status still matches."""
        ...


# ── Filter helpers ───────────────────────────────────────────────────────────

def build_conditions(filter: Dict[str, Any]) -> list:
    """
    Translate a filter dict into SQLAlchemy conditions.

    Supported forms:
        {'status': 'new'}                   equality
        {'status': ['new', 'in_progress']}  IN
        {'rate_batch_id': None}             IS NULL
        {'lead_date__gte': '2025-01-01'}    >=, <=, != via __gte/__lte/__ne
    """
    if not isinstance(filter, dict):
        raise ValidationError(f"Lead filter must be a dict, got {type(filter).__name__}")

    conditions = [Lead.is_deleted.is_(False)]
    for raw_key, value in filter.items():
        name, _, op = raw_key.partition('__')
        if name not in FILTERABLE_FIELDS:
            raise ValidationError(f"Unsupported lead filter field: '{raw_key}'")
        if op and op not in _OPERATORS:
            raise ValidationError(f"Unsupported lead filter operator: '{raw_key}'")

        column = getattr(Lead, name)
        if op == 'gte':
            conditions.append(column >= value)
        elif op == 'lte':
            conditions.append(column <= value)
        elif op == 'ne':
            conditions.append(column.is_not(None) if value is None else column != value)
        elif value is None:
            conditions.append(column.is_(None))
        elif isinstance(value, (list, tuple, set, frozenset)):
            conditions.append(column.in_(list(value)))
        else:
            conditions.append(column == value)
    return conditions


def _check_values(values: Dict[str, Any]) -> Dict[str, Any]:
    if not isinstance(values, dict) or not values:
        raise ValidationError("Lead update values must be a non-empty dict")
    unknown = set(values) - UPDATABLE_FIELDS
    if unknown:
        raise ValidationError(f"Lead fields cannot be updated here: {sorted(unknown)}")
    return values


def to_record(lead: Lead) -> LeadRecord:
    return LeadRecord(
        id=lead.id,
        client_id=lead.client_id,
        status=lead.status or 'new',
        service=lead.service or '',
        ad_set_name=lead.ad_set_name or '',
        ad_name=lead.ad_name or '',
        zip=lead.zip or '',
        lead_date=lead.lead_date,
        email=lead.email or '',
        phone=lead.phone or '',
        unqualified_lead_reason=lead.unqualified_lead_reason or '',
        proposal_amount=lead.proposal_amount or 0.0,
        job_booked_amount=lead.job_booked_amount or 0.0,
        lead_score=lead.lead_score or 0,
        conversion_rates=dict(lead.conversion_rates or {}),
        status_history=list(lead.status_history or []),
        rate_batch_id=lead.rate_batch_id,
    )


# ── SQLAlchemy implementation ────────────────────────────────────────────────

class SqlLeadStore(LeadStore):
    """LeadStore over the `leads` table."""

    def __init__(self, session_factory=None, chunk_size: int = BULK_WRITE_CHUNK_SIZE):
        self._session_factory = session_factory or get_session
        self.chunk_size = max(1, chunk_size)

    def get_leads_by_client_id(self, client_id: str) -> List[LeadRecord]:
        return self.find_leads({'client_id': client_id})

    def find_leads(self, filter: Dict[str, Any]) -> List[LeadRecord]:
        conditions = build_conditions(filter)
        session = self._session_factory()
        try:
            rows = session.scalars(
                select(Lead).where(*conditions).order_by(Lead.created_at, Lead.id)
            ).all()
            return [to_record(row) for row in rows]
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to load leads for filter {filter}: {e}") from e
        finally:
            session.close()

    def add_leads(self, records: List[LeadRecord]) -> int:
        """Insert new leads (used by ingestion collaborators and fixtures)."""
        if not records:
            return 0
        now = datetime.now(timezone.utc).isoformat()
        session = self._session_factory()
        try:
            for record in records:
                session.add(Lead(
                    id=record.id,
                    client_id=record.client_id,
                    email=record.email,
                    phone=record.phone,
                    service=record.service,
                    ad_set_name=record.ad_set_name,
                    ad_name=record.ad_name,
                    zip=record.zip,
                    lead_date=record.lead_date,
                    status=record.status,
                    unqualified_lead_reason=record.unqualified_lead_reason,
                    proposal_amount=record.proposal_amount,
                    job_booked_amount=record.job_booked_amount,
                    lead_score=record.lead_score,
                    conversion_rates=record.conversion_rates,
                    status_history=record.status_history or [
                        {'status': record.status, 'timestamp': now},
                    ],
                    rate_batch_id=record.rate_batch_id,
                ))
            session.commit()
            return len(records)
        except SQLAlchemyError as e:
            session.rollback()
            raise PersistenceError(f"Failed to insert {len(records)} leads: {e}") from e
        finally:
            session.close()

    def bulk_write(self, updates: List[LeadUpdate]) -> BulkWriteResult:
        """
        Write planned score/snapshot updates.

        Each chunk goes in one transaction; a failing chunk is retried lead by
        lead so only the offending leads end up in failed_ids.
        """
        result = BulkWriteResult()
        for start in range(0, len(updates), self.chunk_size):
            chunk = updates[start:start + self.chunk_size]
            session = self._session_factory()
            try:
                live = set(session.scalars(
                    select(Lead.id).where(
                        Lead.id.in_([u.lead_id for u in chunk]), Lead.is_deleted.is_(False),
                    )
                ).all())
                rows = [
                    {
                        'id': u.lead_id,
                        'lead_score': u.lead_score,
                        'conversion_rates': u.conversion_rates,
                    }
                    for u in chunk if u.lead_id in live
                ]
                if rows:
                    session.execute(update(Lead), rows)
                session.commit()
                result.modified_count += len(rows)
            except SQLAlchemyError:
                session.rollback()
                logger.warning("Chunk of %d lead updates failed, retrying one by one",
                               len(chunk), exc_info=True)
                self._write_one_by_one(session, chunk, result)
            finally:
                session.close()
        return result

    def _write_one_by_one(self, session, chunk: List[LeadUpdate], result: BulkWriteResult):
        for u in chunk:
            try:
                res = session.execute(
                    update(Lead)
                    .where(Lead.id == u.lead_id, Lead.is_deleted.is_(False))
                    .values(lead_score=u.lead_score, conversion_rates=u.conversion_rates)
                )
                session.commit()
                result.modified_count += res.rowcount or 0
            except SQLAlchemyError as e:
                session.rollback()
                result.failed_ids.append(u.lead_id)
                result.errors.append(f"Lead {u.lead_id}: write failed ({e.__class__.__name__}: {e})")
                logger.error("Failed to write score for lead %s", u.lead_id, exc_info=True)

    def update_many(self, filter: Dict[str, Any], values: Dict[str, Any]) -> int:
        conditions = build_conditions(filter)
        _check_values(values)
        session = self._session_factory()
        try:
            res = session.execute(
                update(Lead).where(*conditions).values(**values).execution_options(synchronize_session=False)
            )
            session.commit()
            return res.rowcount or 0
        except SQLAlchemyError as e:
            session.rollback()
            raise PersistenceError(f"Failed to update leads for filter {filter}: {e}") from e
        finally:
            session.close()

    def get_distinct_client_ids(self) -> List[str]:
        session = self._session_factory()
        try:
            ids = session.scalars(
                select(Lead.client_id).where(Lead.is_deleted.is_(False)).distinct().order_by(Lead.client_id)
            ).all()
            return [client_id for client_id in ids if client_id]
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to list client ids: {e}") from e
        finally:
            session.close()

    def get_lead(self, lead_id: str) -> Optional[LeadRecord]:
        session = self._session_factory()
        try:
            lead = session.scalars(
                select(Lead).where(Lead.id == lead_id, Lead.is_deleted.is_(False))
            ).first()
            return to_record(lead) if lead else None
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to load lead {lead_id}: {e}") from e
        finally:
            session.close()

    def update_lead(self, lead_id: str, values: Dict[str, Any],
                    expected_status: Optional[str] = None) -> LeadRecord:
        _check_values(values)
        conditions = [Lead.id == lead_id, Lead.is_deleted.is_(False)]
        if expected_status is not None:
            conditions.append(Lead.status == expected_status)

        session = self._session_factory()
        try:
            res = session.execute(
                update(Lead).where(*conditions).values(**values).execution_options(synchronize_session=False)
            )
            if not res.rowcount:
                session.rollback()
                current = session.scalars(
                    select(Lead.status).where(Lead.id == lead_id, Lead.is_deleted.is_(False))
                ).first()
                if current is None:
                    raise LeadNotFoundError(lead_id)
                raise StatusConflictError(lead_id, expected_status, current)
            session.commit()
            lead = session.scalars(select(Lead).where(Lead.id == lead_id)).first()
            return to_record(lead)
        except SQLAlchemyError as e:
            session.rollback()
            raise PersistenceError(f"Failed to update lead {lead_id}: {e}") from e
        finally:
            session.close()
