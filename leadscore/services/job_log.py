"""
Scoring job log — one scoring_job_logs row per job execution.

All writes are wrapped in try/except so a job never fails because its log row
could not be written.
"""
import logging
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import select

from leadscore.database import get_session
from leadscore.models.job_log import ScoringJobLog

logger = logging.getLogger('services.job_log')


def log_job_start(job_name: str, trigger: str = 'manual', client_id: str = None,
                  session_factory=None) -> Optional[str]:
    """Insert a 'started' row. Returns its id, or None when the write failed."""
    session = (session_factory or get_session)()
    try:
        entry = ScoringJobLog(job_name=job_name, trigger=trigger, client_id=client_id,
                              status='started', details={})
        session.add(entry)
        session.commit()
        return entry.id
    except Exception:
        session.rollback()
        logger.error("Failed to log start of %s", job_name, exc_info=True)
        return None
    finally:
        session.close()


def _finish(log_id, status, details=None, processed_count=None, error=None, session_factory=None):
    if not log_id:
        return
    session = (session_factory or get_session)()
    try:
        entry = session.get(ScoringJobLog, log_id)
        if entry is None:
            logger.warning("Job log %s not found", log_id)
            return
        entry.status = status
        entry.details = details or {}
        entry.processed_count = processed_count
        entry.error = error
        entry.finished_at = datetime.now(timezone.utc)
        session.commit()
    except Exception:
        session.rollback()
        logger.error("Failed to finish job log %s", log_id, exc_info=True)
    finally:
        session.close()


def log_job_success(log_id, details=None, processed_count=None, session_factory=None):
    _finish(log_id, 'success', details=details, processed_count=processed_count,
            session_factory=session_factory)


def log_job_failure(log_id, error, details=None, session_factory=None):
    _finish(log_id, 'failure', details=details, error=str(error)[:2000],
            session_factory=session_factory)


def recent_job_logs(limit: int = 50, job_name: str = None, client_id: str = None,
                    session_factory=None) -> List[dict]:
    session = (session_factory or get_session)()
    try:
        stmt = select(ScoringJobLog)
        if job_name:
            stmt = stmt.where(ScoringJobLog.job_name == job_name)
        if client_id:
            stmt = stmt.where(ScoringJobLog.client_id == client_id)
        rows = session.scalars(
            stmt.order_by(ScoringJobLog.started_at.desc(), ScoringJobLog.id).limit(limit)
        ).all()
        return [
            {
                'id': row.id,
                'job_name': row.job_name,
                'trigger': row.trigger,
                'status': row.status,
                'client_id': row.client_id,
                'details': row.details or {},
                'processed_count': row.processed_count,
                'error': row.error,
                'started_at': row.started_at.isoformat() if row.started_at else None,
                'finished_at': row.finished_at.isoformat() if row.finished_at else None,
            }
            for row in rows
        ]
    finally:
        session.close()
