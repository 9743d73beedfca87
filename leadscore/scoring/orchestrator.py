"""
Scoring orchestrator — full recompute, incremental update, fleet-wide sync.

    full_recompute(client_id)
        all leads → aggregate → upsert rates (keys no lead carries any more are
        zeroed) → read back → plan → bulk write
    weekly_incremental_update(client_id, new_leads)
        new leads → re-read their batch marks → aggregate the uncounted ones
        → merge into stored rates → upsert
        → re-score ALL of the client's leads (any of them may map to a changed rate)
    sync_pending_leads(client_id)
        incremental update with the client's pending batch, selected under the lock
    fleet_wide_incremental_sync()
        sync_pending_leads for every client, sequentially; one client's failure
        never stops the others

Each single-client operation holds the client's lock for its whole
read-merge-write cycle. Leads counted into the stored rates carry the id of the
batch that counted them (rate_batch_id). The marks are read from the store while
the lock is held, never from the caller's records, so a lead is counted once.
"""
import logging
import time
import uuid
from dataclasses import replace
from typing import Callable, Dict, List, Mapping, Optional

from leadscore.config import DECIDED_STATUSES
from leadscore.errors import ClientBusyError, PersistenceError
from leadscore.scoring.aggregator import aggregate
from leadscore.scoring.base import (
    LeadRecord, RateRow, ScoringResult, SyncResult,
    build_rate_table, require_client_id,
)
from leadscore.scoring.merger import changed_rows, merge_conversion_rates
from leadscore.scoring.planner import plan_lead_updates
from leadscore.scoring.scorer import load_weights, validate_weights
from leadscore.services.lead_store import LeadStore
from leadscore.services.locks import ClientLocks, LocalClientLocks
from leadscore.services.rate_store import ConversionRateStore

logger = logging.getLogger('scoring.orchestrator')

FLEET_LOCK_KEY = 'fleet-sync'
MARK_CHUNK_SIZE = 500


class ScoringOrchestrator:
    """Composes aggregator, merger, scorer and planner over the two stores."""

    def __init__(
        self,
        lead_store: LeadStore,
        rate_store: ConversionRateStore,
        weights: Optional[Mapping[str, float]] = None,
        locks: Optional[ClientLocks] = None,
        batch_id_factory: Optional[Callable[[], str]] = None,
    ):
        self.lead_store = lead_store
        self.rate_store = rate_store
        self.weights = validate_weights(weights) if weights is not None else load_weights()
        self.locks = locks or LocalClientLocks()
        self._new_batch_id = batch_id_factory or (lambda: str(uuid.uuid4()))

    # ── Public API ───────────────────────────────────────────────────────────

    def full_recompute(self, client_id: str) -> ScoringResult:
        """Authoritative recompute of a client's rates and scores from all history."""
        client_id = require_client_id(client_id)
        with self.locks.hold(client_id):
            return self._full_recompute(client_id)

    def weekly_incremental_update(self, client_id: str, new_leads: List[LeadRecord]) -> ScoringResult:
        """Merge a batch of newly-arrived leads into the stored rates, then re-score."""
        client_id = require_client_id(client_id)
        if not new_leads:
            return ScoringResult(client_id=client_id)
        with self.locks.hold(client_id):
            return self._incremental_update(client_id, new_leads)

    def sync_pending_leads(self, client_id: str) -> ScoringResult:
        """Incremental update with every decided lead no batch has counted yet."""
        client_id = require_client_id(client_id)
        with self.locks.hold(client_id):
            batch = self.pending_leads(client_id)
            if not batch:
                return ScoringResult(client_id=client_id)
            return self._incremental_update(client_id, batch)

    def rescore_client(self, client_id: str) -> ScoringResult:
        """Re-score every lead against the stored rates without re-aggregating."""
        client_id = require_client_id(client_id)
        with self.locks.hold(client_id):
            result = ScoringResult(client_id=client_id)
            leads = self.lead_store.get_leads_by_client_id(client_id)
            if not leads:
                return result
            result.total_processed_leads = len(leads)

            # No rates yet: the empty table scores every lead 0 with an all-zero snapshot
            rows = self.rate_store.get_rates({'client_id': client_id})
            self._write_scores(client_id, leads, build_rate_table(rows), result)
            return result

    def pending_leads(self, client_id: str) -> List[LeadRecord]:
        """Decided leads of a client that no batch has counted yet."""
        return self.lead_store.find_leads({
            'client_id': client_id,
            'status': sorted(DECIDED_STATUSES),
            'rate_batch_id': None,
        })

    def fleet_wide_incremental_sync(self) -> SyncResult:
        """Incremental update for every client, one after another."""
        try:
            with self.locks.hold(FLEET_LOCK_KEY, blocking=False):
                return self._fleet_sync()
        except ClientBusyError:
            logger.warning("Fleet sync already running — skipping this trigger")
            return SyncResult(errors=['Fleet-wide sync is already running'])

    # ── Pipelines ────────────────────────────────────────────────────────────

    def _full_recompute(self, client_id: str) -> ScoringResult:
        result = ScoringResult(client_id=client_id)

        leads = self.lead_store.get_leads_by_client_id(client_id)
        if not leads:
            logger.info("No leads for client %s — nothing to recompute", client_id,
                        extra={'client_id': client_id})
            return result

        batch_id = self._new_batch_id()
        result.batch_id = batch_id
        result.total_processed_leads = len(leads)

        aggregation = aggregate(leads, client_id)
        result.warnings.extend(aggregation.warnings)
        result.counted_leads = len(aggregation.counted_lead_ids)

        # Replace semantics: stored keys no current lead carries drop to 0/0
        rows = [replace(row, last_batch_id=batch_id) for row in aggregation.rows]
        fresh_keys = {row.key for row in rows}
        for stale in self.rate_store.get_rates({'client_id': client_id}):
            if stale.key not in fresh_keys:
                rows.append(RateRow(client_id, stale.key_field, stale.key_name, last_batch_id=batch_id))

        stats = self.rate_store.batch_upsert(rows)
        result.updated_conversion_rates = stats.total
        result.conversion_rate_stats = {'new_inserts': stats.new_inserts, 'updated': stats.updated}

        # This run is authoritative: reset every mark, then mark what it counted
        try:
            self.lead_store.update_many(
                {'client_id': client_id, 'rate_batch_id__ne': None},
                {'rate_batch_id': None},
            )
            self._mark_counted(client_id, aggregation.counted_lead_ids, batch_id, result)
        except PersistenceError as e:
            result.errors.append(f"Batch {batch_id}: failed to mark counted leads ({e})")
            logger.error("Failed to mark counted leads for client %s", client_id, exc_info=True)

        self._rescore_from_store(client_id, leads, result)

        logger.info(
            "Full recompute for client %s: %d leads, %d rates changed, %d leads updated",
            client_id, len(leads), result.updated_conversion_rates, result.updated_leads,
            extra={'client_id': client_id, 'batch_id': batch_id},
        )
        return result

    def _incremental_update(self, client_id: str, new_leads: List[LeadRecord]) -> ScoringResult:
        result = ScoringResult(client_id=client_id)

        fresh = self._uncounted(client_id, new_leads, result)
        aggregation = aggregate(fresh, client_id)
        result.warnings.extend(aggregation.warnings)
        if not aggregation.rows:
            return result

        batch_id = self._new_batch_id()
        result.batch_id = batch_id
        result.counted_leads = len(aggregation.counted_lead_ids)

        existing = self.rate_store.get_rates({'client_id': client_id})
        merged = merge_conversion_rates(existing, aggregation.rows, batch_id)
        stats = self.rate_store.batch_upsert(changed_rows(existing, merged))
        result.updated_conversion_rates = stats.total
        result.conversion_rate_stats = {'new_inserts': stats.new_inserts, 'updated': stats.updated}

        try:
            self._mark_counted(client_id, aggregation.counted_lead_ids, batch_id, result)
        except PersistenceError as e:
            # Rates already include this batch; re-running it would double count
            result.errors.append(
                f"Batch {batch_id}: merged but leads not marked ({e}); run a full recompute"
            )
            logger.error("Failed to mark batch %s for client %s", batch_id, client_id, exc_info=True)

        leads = self.lead_store.get_leads_by_client_id(client_id)
        result.total_processed_leads = len(leads)
        self._rescore_from_store(client_id, leads, result)

        logger.info(
            "Incremental update for client %s: %d new leads, %d rates changed, %d leads updated",
            client_id, result.counted_leads, result.updated_conversion_rates,
            result.updated_leads, extra={'client_id': client_id, 'batch_id': batch_id},
        )
        return result

    def _fleet_sync(self) -> SyncResult:
        sync = SyncResult()
        client_ids = self.lead_store.get_distinct_client_ids()
        logger.info("Fleet sync starting for %d clients", len(client_ids))

        for client_id in client_ids:
            started = time.monotonic()
            try:
                res = self.sync_pending_leads(client_id)
            except Exception as e:
                msg = f"Client {client_id}: {e.__class__.__name__}: {e}"
                logger.error("Fleet sync failed for client %s", client_id, exc_info=True,
                             extra={'client_id': client_id})
                sync.errors.append(msg)
                sync.client_results.append({
                    'client_id': client_id,
                    'success': False,
                    'new_leads': 0,
                    'updated_conversion_rates': 0,
                    'updated_leads': 0,
                    'total_processed_leads': 0,
                    'errors': [msg],
                    'duration_ms': int((time.monotonic() - started) * 1000),
                })
                continue

            sync.total_updated_rates += res.updated_conversion_rates
            sync.total_updated_leads += res.updated_leads
            sync.total_processed_leads += res.total_processed_leads
            sync.errors.extend(f"Client {client_id}: {err}" for err in res.errors)
            sync.client_results.append({
                'client_id': client_id,
                'success': res.ok,
                'new_leads': res.counted_leads,
                'updated_conversion_rates': res.updated_conversion_rates,
                'updated_leads': res.updated_leads,
                'total_processed_leads': res.total_processed_leads,
                'errors': list(res.errors),
                'duration_ms': int((time.monotonic() - started) * 1000),
            })

        sync.processed_clients = len(client_ids)
        logger.info(
            "Fleet sync done: %d clients, %d rates changed, %d leads updated, %d errors",
            sync.processed_clients, sync.total_updated_rates, sync.total_updated_leads, len(sync.errors),
        )
        return sync

    # ── Helpers ──────────────────────────────────────────────────────────────

    def _uncounted(self, client_id: str, new_leads: List[LeadRecord], result: ScoringResult) -> List[LeadRecord]:
        """
        Stored versions of the batch's leads that no batch has counted yet.

        Must run under the client's lock: the marks read here are the ones the
        following merge relies on.
        """
        requested = list(dict.fromkeys(lead.id for lead in new_leads))
        stored: Dict[str, LeadRecord] = {}
        for start in range(0, len(requested), MARK_CHUNK_SIZE):
            chunk = requested[start:start + MARK_CHUNK_SIZE]
            for lead in self.lead_store.find_leads({'client_id': client_id, 'id': chunk}):
                stored[lead.id] = lead

        fresh = []
        for lead_id in requested:
            lead = stored.get(lead_id)
            if lead is None:
                msg = f"Lead {lead_id} is not a stored lead of client {client_id} — skipped"
            elif lead.rate_batch_id:
                msg = f"Lead {lead_id} was already counted in batch {lead.rate_batch_id} — skipped"
            else:
                fresh.append(lead)
                continue
            logger.warning(msg, extra={'client_id': client_id})
            result.warnings.append(msg)
        return fresh

    def _mark_counted(self, client_id: str, lead_ids: List[str], batch_id: str, result: ScoringResult):
        marked = 0
        for start in range(0, len(lead_ids), MARK_CHUNK_SIZE):
            chunk = lead_ids[start:start + MARK_CHUNK_SIZE]
            marked += self.lead_store.update_many(
                {'client_id': client_id, 'id': chunk},
                {'rate_batch_id': batch_id},
            )
        if marked != len(lead_ids):
            result.errors.append(
                f"Batch {batch_id}: marked {marked} of {len(lead_ids)} counted leads; "
                f"run a full recompute"
            )
            logger.error("Batch %s marked %d of %d counted leads for client %s",
                         batch_id, marked, len(lead_ids), client_id,
                         extra={'client_id': client_id, 'batch_id': batch_id})

    def _rescore_from_store(self, client_id: str, leads: List[LeadRecord], result: ScoringResult):
        rows = self.rate_store.get_rates({'client_id': client_id})
        self._write_scores(client_id, leads, build_rate_table(rows), result)

    def _write_scores(self, client_id: str, leads: List[LeadRecord], rate_table: Dict, result: ScoringResult):
        plan = plan_lead_updates(leads, rate_table, self.weights)
        if not plan.writes:
            return

        written = self.lead_store.bulk_write(plan.writes)
        result.updated_leads = written.modified_count
        if written.failed_ids:
            result.errors.extend(written.errors)
            logger.error("%d of %d lead writes failed for client %s",
                         len(written.failed_ids), plan.changed_count, client_id,
                         extra={'client_id': client_id})
