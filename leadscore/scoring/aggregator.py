"""
Conversion-rate aggregation — per-dimension statistics from a set of leads.

For every key field (service, ad_set_name, ad_name, lead_date as month, zip) and
every distinct non-empty value present in the input:

    past_total_count = decided leads carrying that value
    past_total_est   = positive leads carrying that value
    conversion_rate  = est / count, rounded half-up to 2 decimals

Neutral leads (new, in_progress) never enter the counts, but their values still
produce a row (0 / 0). Values are matched exactly; casing is the caller's job.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List

from leadscore.config import KEY_FIELDS, POSITIVE_STATUSES, DECIDED_STATUSES
from leadscore.errors import ComputationError
from leadscore.scoring.base import LeadRecord, RateRow, RateKey, compute_rate, month_name

logger = logging.getLogger('scoring.aggregator')


@dataclass
class Aggregation:
    """Rows plus bookkeeping about which leads were counted or skipped."""
    rows: List[RateRow] = field(default_factory=list)
    counted_lead_ids: List[str] = field(default_factory=list)
    skipped_lead_ids: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


def lead_dimension_values(lead: LeadRecord) -> Dict[str, str]:
    """
    Map each key field to the lead's key_name for it ('' when empty).

    Raises ComputationError when lead_date is present but unparseable.
    """
    values = {}
    for key_field in KEY_FIELDS:
        if key_field == 'lead_date':
            values[key_field] = month_name(lead.lead_date) or ''
        else:
            values[key_field] = lead.dimension_value(key_field)
    return values


def aggregate(leads: Iterable[LeadRecord], client_id: str) -> Aggregation:
    """Single pass over the leads, accumulating counters per (key_field, key_name)."""
    result = Aggregation()
    counters: Dict[RateKey, List[int]] = {}     # key → [count, est]
    seen_by_field: Dict[str, Dict[str, None]] = {f: {} for f in KEY_FIELDS}

    for lead in leads:
        if lead.client_id != client_id:
            msg = f"Lead {lead.id} belongs to client {lead.client_id}, not {client_id} — skipped"
            logger.warning(msg)
            result.warnings.append(msg)
            result.skipped_lead_ids.append(lead.id)
            continue

        try:
            values = lead_dimension_values(lead)
        except ComputationError as e:
            msg = f"Lead {lead.id}: {e} — skipped"
            logger.warning(msg, extra={'client_id': client_id})
            result.warnings.append(msg)
            result.skipped_lead_ids.append(lead.id)
            continue

        decided = lead.status in DECIDED_STATUSES
        positive = lead.status in POSITIVE_STATUSES

        for key_field, key_name in values.items():
            if not key_name:
                continue
            seen_by_field[key_field][key_name] = None
            counter = counters.setdefault((key_field, key_name), [0, 0])
            if decided:
                counter[0] += 1
                if positive:
                    counter[1] += 1

        if decided:
            result.counted_lead_ids.append(lead.id)

    # Emit rows grouped by key field, values in first-seen order
    for key_field in KEY_FIELDS:
        for key_name in seen_by_field[key_field]:
            count, est = counters[(key_field, key_name)]
            result.rows.append(RateRow(
                client_id=client_id,
                key_field=key_field,
                key_name=key_name,
                past_total_count=count,
                past_total_est=est,
                conversion_rate=compute_rate(est, count),
            ))

    return result


def compute_conversion_rates(leads: Iterable[LeadRecord], client_id: str) -> List[RateRow]:
    """Conversion-rate rows for one client's leads (see module docstring)."""
    return aggregate(leads, client_id).rows
