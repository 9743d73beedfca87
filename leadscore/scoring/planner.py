"""
Bulk update planning — emit a lead write only when its score or snapshot moved.

Running the planner twice over unchanged leads and rates yields zero writes the
second time, which is what keeps repeated full recomputes cheap.
"""
from dataclasses import dataclass, field
from typing import Iterable, List, Mapping

from leadscore.scoring.base import LeadRecord, LeadUpdate, RateTable
from leadscore.scoring.scorer import score_lead


@dataclass
class UpdatePlan:
    writes: List[LeadUpdate] = field(default_factory=list)
    considered_count: int = 0
    changed_count: int = 0


def needs_update(lead: LeadRecord, lead_score: int, snapshot: Mapping[str, float]) -> bool:
    stored = lead.conversion_rates or {}
    return lead.lead_score != lead_score or dict(stored) != dict(snapshot)


def plan_lead_updates(
    leads: Iterable[LeadRecord],
    rate_table: RateTable,
    weights: Mapping[str, float],
) -> UpdatePlan:
    plan = UpdatePlan()
    for lead in leads:
        plan.considered_count += 1
        scored = score_lead(lead, rate_table, weights)
        if needs_update(lead, scored.lead_score, scored.snapshot):
            plan.writes.append(LeadUpdate(
                lead_id=lead.id,
                lead_score=scored.lead_score,
                conversion_rates=scored.snapshot,
            ))
    plan.changed_count = len(plan.writes)
    return plan
