"""
Lead status transitions and their side effects.

Rules applied on every status update:
  - entering `unqualified` requires a reason; any other status clears it
  - proposal_amount survives only in estimate_set / virtual_quote /
    proposal_presented / job_lost; job_booked_amount only in job_booked
  - explicit amounts for a status that does not permit them are rejected
  - status_history keeps one entry per status, refreshed to the latest timestamp
  - entering job_booked from another status sends exactly one conversion event;
    re-applying the current status sends nothing and leaves history untouched

Notifier failures never undo the status update: the update is committed first,
and a failed send is logged and reported on the result.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from leadscore.config import (
    LEAD_STATUSES, PROPOSAL_AMOUNT_STATUSES, JOB_BOOKED_AMOUNT_STATUSES,
    CONVERSION_EVENT_STATUSES,
)
from leadscore.errors import LeadNotFoundError, StatusConflictError, ValidationError
from leadscore.scoring.base import LeadRecord, normalize_amount
from leadscore.services.lead_store import LeadStore

logger = logging.getLogger('scoring.status')

CredentialsLookup = Callable[[str], Optional[Tuple[str, str]]]

STATUS_UPDATE_ATTEMPTS = 3


class ConversionNotifier(ABC):
    """Sends the external "conversion" event for a lead."""

    @abstractmethod
    def send(self, pixel_id: str, pixel_token: str, email: str, phone: str, lead_id: str):
        ...


@dataclass
class StatusChangeResult:
    lead: LeadRecord
    status_changed: bool = False
    notification_sent: bool = False
    notification_error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'lead_id': self.lead.id,
            'status': self.lead.status,
            'unqualified_lead_reason': self.lead.unqualified_lead_reason,
            'proposal_amount': self.lead.proposal_amount,
            'job_booked_amount': self.lead.job_booked_amount,
            'status_history': self.lead.status_history,
            'status_changed': self.status_changed,
            'notification_sent': self.notification_sent,
            'notification_error': self.notification_error,
        }


def record_status_history(history: List[Dict[str, Any]], status: str, timestamp: str) -> List[Dict[str, Any]]:
    """Return a new history with `status` stamped at `timestamp` (one entry per status)."""
    updated = [dict(entry) for entry in (history or [])]
    for entry in updated:
        if entry.get('status') == status:
            entry['timestamp'] = timestamp
            return updated
    updated.append({'status': status, 'timestamp': timestamp})
    return updated


def _amount_for(status, requested, current, allowed_statuses, field_name):
    if status not in allowed_statuses:
        if requested is not None:
            raise ValidationError(
                f"{field_name} can only be set when status is one of: "
                f"{', '.join(sorted(allowed_statuses))}. Status: {status}"
            )
        return 0.0
    if requested is not None:
        return normalize_amount(requested)
    return current


def update_lead_status(
    lead_store: LeadStore,
    lead_id: str,
    status: str,
    unqualified_lead_reason: Optional[str] = None,
    proposal_amount=None,
    job_booked_amount=None,
    notifier: Optional[ConversionNotifier] = None,
    credentials_lookup: Optional[CredentialsLookup] = None,
    now: Optional[datetime] = None,
) -> StatusChangeResult:
    """
    Apply a status update to a lead and fire the conversion event if due.

    The write only lands while the stored status is still the one the
    transition was computed from. A concurrent change makes this re-read the
    lead and try again, so exactly one caller sees a given transition happen.
    Raises StatusConflictError if the status keeps moving underneath it.
    """
    if status not in LEAD_STATUSES:
        raise ValidationError(f"Unknown lead status '{status}'")
    reason = (unqualified_lead_reason or '').strip()
    now = now or datetime.now(timezone.utc)

    for attempt in range(1, STATUS_UPDATE_ATTEMPTS + 1):
        lead = lead_store.get_lead(lead_id)
        if lead is None:
            raise LeadNotFoundError(lead_id)

        changed = lead.status != status
        values = _status_values(lead, status, reason, proposal_amount, job_booked_amount, now)
        try:
            updated = lead_store.update_lead(lead_id, values, expected_status=lead.status)
            break
        except StatusConflictError:
            if attempt == STATUS_UPDATE_ATTEMPTS:
                raise
            logger.warning("Lead %s status moved during update (attempt %d), re-reading",
                           lead_id, attempt, extra={'client_id': lead.client_id})

    result = StatusChangeResult(lead=updated, status_changed=changed)
    if changed:
        logger.info("Lead %s status %s → %s", lead_id, lead.status, status,
                    extra={'client_id': lead.client_id})

    if changed and status in CONVERSION_EVENT_STATUSES:
        _send_conversion_event(result, notifier, credentials_lookup)
    return result


def _status_values(lead: LeadRecord, status, reason, proposal_amount, job_booked_amount, now) -> Dict[str, Any]:
    values: Dict[str, Any] = {'last_manual_update': now}

    if lead.status != status:
        if status == 'unqualified' and not reason:
            raise ValidationError("A reason is required to mark a lead unqualified")
        values['status'] = status
        values['status_history'] = record_status_history(lead.status_history, status, now.isoformat())

    if status == 'unqualified':
        values['unqualified_lead_reason'] = reason or lead.unqualified_lead_reason
    else:
        values['unqualified_lead_reason'] = ''

    values['proposal_amount'] = _amount_for(
        status, proposal_amount, lead.proposal_amount, PROPOSAL_AMOUNT_STATUSES, 'proposal_amount')
    values['job_booked_amount'] = _amount_for(
        status, job_booked_amount, lead.job_booked_amount, JOB_BOOKED_AMOUNT_STATUSES, 'job_booked_amount')
    return values


def _send_conversion_event(result: StatusChangeResult, notifier, credentials_lookup):
    lead = result.lead
    if notifier is None:
        return
    try:
        credentials = credentials_lookup(lead.client_id) if credentials_lookup else None
        if not credentials:
            logger.info("No pixel credentials for client %s — conversion event skipped", lead.client_id,
                        extra={'client_id': lead.client_id})
            return
        pixel_id, pixel_token = credentials
        notifier.send(
            pixel_id=pixel_id,
            pixel_token=pixel_token,
            email=lead.email,
            phone=lead.phone,
            lead_id=lead.id,
        )
        result.notification_sent = True
        logger.info("Conversion event sent for lead %s", lead.id, extra={'client_id': lead.client_id})
    except Exception as e:
        result.notification_error = f"{e.__class__.__name__}: {e}"
        logger.error("Conversion event failed for lead %s", lead.id, exc_info=True,
                     extra={'client_id': lead.client_id})
