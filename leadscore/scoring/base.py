"""
Scoring engine contracts.

Typed records that flow between the aggregator, merger, scorer, planner and the
orchestrator, plus the two pure helpers every stage shares: month-name
extraction for the lead_date dimension and the single rounding rule for rates.
"""
import math
from dataclasses import dataclass, field, asdict
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Any, Optional, Tuple

from leadscore.config import LEAD_STATUSES
from leadscore.errors import ComputationError, ValidationError


MONTH_NAMES = (
    'January', 'February', 'March', 'April', 'May', 'June',
    'July', 'August', 'September', 'October', 'November', 'December',
)

RateKey = Tuple[str, str]          # (key_field, key_name)
RateTable = Dict[RateKey, float]


# ── Records ──────────────────────────────────────────────────────────────────

@dataclass
class LeadRecord:
    """A validated lead as the engine sees it. Dimension values may be empty."""
    id: str
    client_id: str
    status: str = 'new'
    service: str = ''
    ad_set_name: str = ''
    ad_name: str = ''
    zip: str = ''
    lead_date: Optional[str] = None
    email: str = ''
    phone: str = ''
    unqualified_lead_reason: str = ''
    proposal_amount: float = 0.0
    job_booked_amount: float = 0.0
    lead_score: int = 0
    conversion_rates: Dict[str, float] = field(default_factory=dict)
    status_history: List[Dict[str, Any]] = field(default_factory=list)
    rate_batch_id: Optional[str] = None

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> 'LeadRecord':
        """Build a record from an ingestion payload, rejecting malformed ones."""
        if not payload.get('id'):
            raise ValidationError("Lead payload is missing 'id'")
        if not payload.get('client_id'):
            raise ValidationError(f"Lead {payload.get('id')} is missing 'client_id'")

        status = payload.get('status') or 'new'
        if status not in LEAD_STATUSES:
            raise ValidationError(f"Lead {payload['id']} has unknown status '{status}'")

        known = {f for f in cls.__dataclass_fields__}
        values = {k: v for k, v in payload.items() if k in known}
        values['status'] = status
        for text_field in ('service', 'ad_set_name', 'ad_name', 'zip', 'email', 'phone',
                           'unqualified_lead_reason'):
            raw = values.get(text_field)
            values[text_field] = '' if raw is None else str(raw).strip()
        for amount_field in ('proposal_amount', 'job_booked_amount'):
            values[amount_field] = normalize_amount(values.get(amount_field))
        values['lead_score'] = int(values.get('lead_score') or 0)
        values['conversion_rates'] = dict(values.get('conversion_rates') or {})
        values['status_history'] = list(values.get('status_history') or [])
        return cls(**values)

    def dimension_value(self, key_field: str) -> str:
        """Raw value for a non-date dimension ('' when missing)."""
        return getattr(self, key_field, '') or ''


@dataclass
class RateRow:
    """One conversion-rate aggregate for (client_id, key_field, key_name)."""
    client_id: str
    key_field: str
    key_name: str
    past_total_count: int = 0
    past_total_est: int = 0
    conversion_rate: float = 0.0
    last_batch_id: Optional[str] = None

    @property
    def key(self) -> RateKey:
        return (self.key_field, self.key_name)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class LeadUpdate:
    """A single planned lead write: new score + snapshot."""
    lead_id: str
    lead_score: int
    conversion_rates: Dict[str, float]


@dataclass
class BulkWriteResult:
    modified_count: int = 0
    failed_ids: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


@dataclass
class UpsertStats:
    total: int = 0          # new_inserts + rows whose values actually changed
    new_inserts: int = 0
    updated: int = 0


# ── Results ──────────────────────────────────────────────────────────────────

@dataclass
class ScoringResult:
    """Uniform output of every single-client orchestrator operation."""
    client_id: str = ''
    updated_conversion_rates: int = 0
    updated_leads: int = 0
    total_processed_leads: int = 0
    counted_leads: int = 0          # decided leads folded into the rates by this run
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    conversion_rate_stats: Dict[str, int] = field(
        default_factory=lambda: {'new_inserts': 0, 'updated': 0}
    )
    batch_id: Optional[str] = None

    @property
    def ok(self) -> bool:
        return not self.errors

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class SyncResult:
    """Output of the fleet-wide incremental sync."""
    processed_clients: int = 0
    total_updated_rates: int = 0
    total_updated_leads: int = 0
    total_processed_leads: int = 0
    errors: List[str] = field(default_factory=list)
    client_results: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ── Helpers ──────────────────────────────────────────────────────────────────

def month_name(lead_date) -> Optional[str]:
    """
    English calendar-month name for a lead date.

    Returns None for an empty value. Raises ComputationError when a non-empty
    value cannot be parsed. Pure: no caching.
    """
    if lead_date is None:
        return None
    if isinstance(lead_date, (date, datetime)):
        return MONTH_NAMES[lead_date.month - 1]

    text = str(lead_date).strip()
    if not text:
        return None
    try:
        parsed = datetime.fromisoformat(text.replace('Z', '+00:00'))
    except ValueError as e:
        raise ComputationError(f"Unparseable lead_date '{text}'") from e
    return MONTH_NAMES[parsed.month - 1]


def compute_rate(past_total_est: int, past_total_count: int) -> float:
    """est / count rounded half-up to 2 decimals; 0.0 when count is 0."""
    if not past_total_count:
        return 0.0
    ratio = Decimal(past_total_est) / Decimal(past_total_count)
    return float(ratio.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP))


def normalize_amount(value) -> float:
    """Coerce a monetary value to a finite non-negative float (else 0.0)."""
    try:
        amount = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(amount) or amount < 0:
        return 0.0
    return amount


def build_rate_table(rows: List[RateRow]) -> RateTable:
    """Index stored rows by (key_field, key_name) for O(1) lookups."""
    return {(row.key_field, row.key_name): row.conversion_rate for row in rows}


def require_client_id(client_id) -> str:
    if not client_id or not str(client_id).strip():
        raise ValidationError("client_id is required")
    return str(client_id)
