"""
Centralized configuration — env vars, outcome taxonomy, scoring knobs.
"""
import os


# ── Redis (per-client locks + RQ queue) ──────────────────────────────────────
REDIS_URL = os.getenv('REDIS_URL', 'redis://localhost:6379/0')

# ── PostgreSQL ────────────────────────────────────────────────────────────────
DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///local.db')

# ── Scoring ───────────────────────────────────────────────────────────────────
SCORING_CONFIG_PATH = os.getenv(
    'SCORING_CONFIG_PATH',
    os.path.join(os.path.dirname(__file__), 'scoring', 'scoring_config.yaml'),
)
SCORING_LOCK_TIMEOUT = float(os.getenv('SCORING_LOCK_TIMEOUT', '300'))   # seconds to wait
SCORING_LOCK_TTL = int(os.getenv('SCORING_LOCK_TTL', '3600'))            # seconds a lock may live
BULK_WRITE_CHUNK_SIZE = int(os.getenv('BULK_WRITE_CHUNK_SIZE', '500'))
JOB_TIMEOUT = int(os.getenv('SCORING_JOB_TIMEOUT', '14400'))

# ── Facebook Conversion API ──────────────────────────────────────────────────
FB_GRAPH_API_URL = os.getenv('FB_GRAPH_API_URL', 'https://graph.facebook.com')
FB_API_VERSION = os.getenv('FB_API_VERSION', 'v21.0')

# ── Slack notifications ──────────────────────────────────────────────────────
SLACK_WEBHOOK_URL = os.getenv('SLACK_WEBHOOK_URL')

# ── Scoring dimensions ───────────────────────────────────────────────────────
KEY_FIELDS = [
    'service',
    'ad_set_name',
    'ad_name',
    'lead_date',
    'zip',
]

# ── Lead outcome taxonomy ────────────────────────────────────────────────────
POSITIVE_STATUSES = frozenset({
    'estimate_set',
    'virtual_quote',
    'proposal_presented',
    'job_booked',
})
NEGATIVE_STATUSES = frozenset({
    'unqualified',
    'estimate_canceled',
    'job_lost',
})
NEUTRAL_STATUSES = frozenset({
    'new',
    'in_progress',
})
DECIDED_STATUSES = POSITIVE_STATUSES | NEGATIVE_STATUSES
LEAD_STATUSES = DECIDED_STATUSES | NEUTRAL_STATUSES

# Statuses that may carry a monetary amount
PROPOSAL_AMOUNT_STATUSES = frozenset({
    'estimate_set',
    'virtual_quote',
    'proposal_presented',
    'job_lost',
})
JOB_BOOKED_AMOUNT_STATUSES = frozenset({'job_booked'})

# Entering one of these sends a conversion event
CONVERSION_EVENT_STATUSES = frozenset({'job_booked'})
