"""Tests for leadscore.scoring.planner — minimal lead writes."""
from leadscore.scoring.planner import plan_lead_updates, needs_update

WEIGHTS = {'service': 30, 'ad_set_name': 10, 'ad_name': 10, 'lead_date': 0, 'zip': 50}
TABLE = {('service', 'Roofing'): 0.5, ('zip', '30301'): 1.0}


class TestPlanLeadUpdates:

    def test_writes_changed_leads(self, make_lead):
        plan = plan_lead_updates([make_lead(), make_lead()], TABLE, WEIGHTS)
        assert plan.considered_count == 2
        assert plan.changed_count == 2
        assert plan.writes[0].lead_score == 65
        assert plan.writes[0].conversion_rates['zip'] == 1.0

    def test_second_plan_over_written_leads_is_empty(self, make_lead):
        leads = [make_lead(), make_lead(zip='99999')]
        first = plan_lead_updates(leads, TABLE, WEIGHTS)
        applied = []
        for lead, write in zip(leads, first.writes):
            lead.lead_score = write.lead_score
            lead.conversion_rates = write.conversion_rates
            applied.append(lead)
        second = plan_lead_updates(applied, TABLE, WEIGHTS)
        assert second.writes == []
        assert second.changed_count == 0
        assert second.considered_count == 2

    def test_snapshot_change_alone_triggers_write(self, make_lead):
        lead = make_lead(lead_score=15, conversion_rates={
            'service': 0.5, 'ad_set_name': 0.0, 'ad_name': 0.0, 'lead_date': 0.0, 'zip': 0.0,
        })
        assert needs_update(lead, 15, {
            'service': 0.5, 'ad_set_name': 0.0, 'ad_name': 0.0, 'lead_date': 0.0, 'zip': 0.0,
        }) is False
        assert needs_update(lead, 15, {
            'service': 0.5, 'ad_set_name': 0.0, 'ad_name': 0.0, 'lead_date': 0.1, 'zip': 0.0,
        }) is True
