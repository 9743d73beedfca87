"""
Lead scoring — combine a client's stored rates with one lead's dimension values.

    snapshot[f] = rate_table[(f, lead's value for f)]   (0 when absent or empty)
    lead_score  = round_half_up(clamp(Σ snapshot[f] * weights[f], 0, 100))

Weights come from scoring_config.yaml (or SCORING_CONFIG_PATH) and must sum to
100; the scorer itself assumes nothing about how they are split.
"""
import logging
import math
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Mapping, Optional

import yaml

from leadscore.config import KEY_FIELDS, SCORING_CONFIG_PATH
from leadscore.errors import ComputationError, ValidationError
from leadscore.scoring.base import LeadRecord, RateTable, month_name

logger = logging.getLogger('scoring.scorer')

WEIGHT_TOTAL = 100


# ── Scoring config (YAML with hardcoded fallback) ────────────────────────────

def _default_config():
    """Hardcoded fallback if YAML is missing."""
    return {
        'version': 'default',
        'weights': {
            'service': 30,
            'ad_set_name': 10,
            'ad_name': 10,
            'lead_date': 0,
            'zip': 50,
        },
    }


def load_scoring_config(path: Optional[str] = None) -> dict:
    """Read the scoring config from YAML, falling back to the defaults."""
    config_path = path or SCORING_CONFIG_PATH
    try:
        with open(config_path, 'r') as f:
            config = yaml.safe_load(f) or {}
        logger.info("Scoring config loaded from %s (version=%s)", config_path, config.get('version', '?'))
    except (OSError, yaml.YAMLError) as e:
        logger.warning("Scoring config not loaded (%s), using defaults", e)
        config = _default_config()
    return config


def validate_weights(weights: Mapping[str, float]) -> Dict[str, float]:
    """
    Check a weight mapping and return it as {key_field: float} for every field.

    Missing fields weigh 0. Unknown fields, negative or non-numeric weights and
    totals other than 100 raise ValidationError.
    """
    if not isinstance(weights, Mapping):
        raise ValidationError("weights must be a mapping of key field → weight")

    unknown = set(weights) - set(KEY_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown weight fields: {sorted(unknown)}")

    clean = {}
    for key_field in KEY_FIELDS:
        raw = weights.get(key_field, 0)
        try:
            value = float(raw)
        except (TypeError, ValueError):
            raise ValidationError(f"Weight for '{key_field}' is not a number: {raw!r}")
        if not math.isfinite(value) or value < 0:
            raise ValidationError(f"Weight for '{key_field}' must be a non-negative number")
        clean[key_field] = value

    total = sum(clean.values())
    if not math.isclose(total, WEIGHT_TOTAL, abs_tol=1e-9):
        raise ValidationError(f"Weights must sum to {WEIGHT_TOTAL}, got {total:g}")
    return clean


def load_weights(path: Optional[str] = None) -> Dict[str, float]:
    """Validated weights from the scoring config."""
    config = load_scoring_config(path)
    return validate_weights(config.get('weights') or _default_config()['weights'])


# ── Scoring ──────────────────────────────────────────────────────────────────

@dataclass
class LeadScore:
    snapshot: Dict[str, float]
    lead_score: int


def _lookup(rate_table: RateTable, key_field: str, key_name: str) -> float:
    if not key_name:
        return 0.0
    return float(rate_table.get((key_field, key_name), 0.0))


def lead_snapshot(lead: LeadRecord, rate_table: RateTable) -> Dict[str, float]:
    """Per-dimension rates for a lead. An unparseable lead_date scores 0."""
    snapshot = {}
    for key_field in KEY_FIELDS:
        if key_field == 'lead_date':
            try:
                key_name = month_name(lead.lead_date) or ''
            except ComputationError:
                key_name = ''
        else:
            key_name = lead.dimension_value(key_field)
        snapshot[key_field] = _lookup(rate_table, key_field, key_name)
    return snapshot


def weighted_score(snapshot: Mapping[str, float], weights: Mapping[str, float]) -> int:
    total = sum(snapshot.get(f, 0.0) * weights.get(f, 0.0) for f in KEY_FIELDS)
    clamped = max(0.0, min(float(WEIGHT_TOTAL), total))
    return int(Decimal(repr(clamped)).quantize(Decimal('1'), rounding=ROUND_HALF_UP))


def score_lead(lead: LeadRecord, rate_table: RateTable, weights: Mapping[str, float]) -> LeadScore:
    """Snapshot + 0-100 score for one lead. Pure."""
    snapshot = lead_snapshot(lead, rate_table)
    return LeadScore(snapshot=snapshot, lead_score=weighted_score(snapshot, weights))
