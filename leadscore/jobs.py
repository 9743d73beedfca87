"""
Background scoring jobs (enqueued via RQ).

    run_full_recompute(client_id)  — one client, from scratch
    run_fleet_sync()               — weekly incremental sync across every client

Both write a scoring_job_logs row and post to Slack on completion/failure.
"""
import logging
import time

from leadscore.config import JOB_TIMEOUT
from leadscore.errors import ClientBusyError
from leadscore.scoring.orchestrator import ScoringOrchestrator
from leadscore.services.job_log import log_job_start, log_job_success, log_job_failure
from leadscore.services.lead_store import SqlLeadStore
from leadscore.services.locks import RedisClientLocks
from leadscore.services.notifications import notify_sync_complete, notify_job_failed
from leadscore.services.rate_store import SqlConversionRateStore

logger = logging.getLogger('leadscore.jobs')

_queue = None


def _get_queue():
    global _queue
    if _queue is None:
        from leadscore.extensions import rq_connection
        from rq import Queue
        _queue = Queue(connection=rq_connection)
    return _queue


def build_orchestrator() -> ScoringOrchestrator:
    """Orchestrator wired to the SQL stores and Redis locks."""
    from leadscore.extensions import redis_client
    return ScoringOrchestrator(
        lead_store=SqlLeadStore(),
        rate_store=SqlConversionRateStore(),
        locks=RedisClientLocks(redis_client),
    )


# ── Enqueue helpers ───────────────────────────────────────────────────────────

def enqueue_full_recompute(client_id: str, trigger: str = 'manual'):
    job = _get_queue().enqueue(run_full_recompute, client_id, trigger, job_timeout=JOB_TIMEOUT)
    logger.info("Enqueued full recompute for client %s (job %s)", client_id, job.id,
                extra={'client_id': client_id})
    return job


def enqueue_fleet_sync(trigger: str = 'manual'):
    job = _get_queue().enqueue(run_fleet_sync, trigger, job_timeout=JOB_TIMEOUT)
    logger.info("Enqueued fleet-wide sync (job %s)", job.id)
    return job


# ── Job functions ─────────────────────────────────────────────────────────────

def run_full_recompute(client_id: str, trigger: str = 'manual', orchestrator=None) -> dict:
    log_id = log_job_start('full_recompute', trigger=trigger, client_id=client_id)
    extra = {'client_id': client_id, 'job_name': 'full_recompute'}
    logger.info("Full recompute started for client %s", client_id, extra=extra)
    try:
        orchestrator = orchestrator or build_orchestrator()
        result = orchestrator.full_recompute(client_id)
    except ClientBusyError as e:
        logger.warning("Full recompute skipped: %s", e, extra=extra)
        log_job_failure(log_id, e)
        raise
    except Exception as e:
        logger.error("Full recompute failed for client %s", client_id, exc_info=True, extra=extra)
        log_job_failure(log_id, e)
        notify_job_failed('full_recompute', e, client_id=client_id)
        raise

    details = result.to_dict()
    if result.errors:
        log_job_failure(log_id, '; '.join(result.errors), details=details)
        notify_job_failed('full_recompute', '; '.join(result.errors), client_id=client_id)
    else:
        log_job_success(log_id, details=details, processed_count=result.total_processed_leads)
    logger.info("Full recompute finished for client %s: %d rates, %d leads updated",
                client_id, result.updated_conversion_rates, result.updated_leads, extra=extra)
    return details


def run_fleet_sync(trigger: str = 'cron', orchestrator=None) -> dict:
    log_id = log_job_start('fleet_sync', trigger=trigger)
    extra = {'job_name': 'fleet_sync'}
    start = time.time()
    logger.info("Fleet-wide sync started", extra=extra)
    try:
        orchestrator = orchestrator or build_orchestrator()
        result = orchestrator.fleet_wide_incremental_sync()
    except Exception as e:
        logger.error("Fleet-wide sync failed", exc_info=True, extra=extra)
        log_job_failure(log_id, e)
        notify_job_failed('fleet_sync', e)
        raise

    duration = time.time() - start
    details = result.to_dict()
    if result.errors:
        log_job_failure(log_id, '; '.join(result.errors), details=details)
        notify_job_failed('fleet_sync', '; '.join(result.errors))
    else:
        log_job_success(log_id, details=details, processed_count=result.total_processed_leads)
    notify_sync_complete(result, duration_s=duration)
    logger.info("Fleet-wide sync finished in %.1fs: %d clients, %d errors",
                duration, result.processed_clients, len(result.errors), extra=extra)
    return details
