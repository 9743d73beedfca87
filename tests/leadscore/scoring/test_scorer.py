"""Tests for leadscore.scoring.scorer — weights, snapshots and scores."""
import pytest

from leadscore.errors import ValidationError
from leadscore.scoring.scorer import (
    load_scoring_config, load_weights, validate_weights,
    lead_snapshot, weighted_score, score_lead, _default_config,
)

WEIGHTS = {'service': 30, 'ad_set_name': 10, 'ad_name': 10, 'lead_date': 0, 'zip': 50}


class TestScoringConfig:

    def test_missing_file_falls_back_to_defaults(self, tmp_path):
        config = load_scoring_config(str(tmp_path / 'missing.yaml'))
        assert config == _default_config()

    def test_invalid_yaml_falls_back(self, tmp_path):
        path = tmp_path / 'bad.yaml'
        path.write_text('weights: [unclosed')
        assert load_scoring_config(str(path)) == _default_config()

    def test_reads_weights_from_yaml(self, tmp_path):
        path = tmp_path / 'scoring.yaml'
        path.write_text(
            "version: test\n"
            "weights:\n"
            "  service: 50\n"
            "  zip: 50\n"
        )
        weights = load_weights(str(path))
        assert weights['service'] == 50.0
        assert weights['zip'] == 50.0
        assert weights['ad_name'] == 0.0

    def test_bundled_config_is_valid(self):
        weights = load_weights()
        assert sum(weights.values()) == 100


class TestValidateWeights:

    def test_accepts_default_split(self):
        assert validate_weights(WEIGHTS)['zip'] == 50.0

    @pytest.mark.parametrize('weights', [
        {'service': 60, 'zip': 50},
        {'service': 100, 'campaign': 0},
        {'service': 'lots', 'zip': 50},
        {'service': 120, 'zip': -20},
        [('service', 100)],
    ])
    def test_rejects_bad_weights(self, weights):
        with pytest.raises(ValidationError):
            validate_weights(weights)


class TestScoring:

    def test_snapshot_defaults_to_zero(self, make_lead):
        snapshot = lead_snapshot(make_lead(), {('service', 'Roofing'): 0.75})
        assert snapshot == {'service': 0.75, 'ad_set_name': 0.0, 'ad_name': 0.0, 'lead_date': 0.0, 'zip': 0.0}

    def test_snapshot_uses_month_for_lead_date(self, make_lead):
        snapshot = lead_snapshot(make_lead(lead_date='2025-03-02'), {('lead_date', 'March'): 0.4})
        assert snapshot['lead_date'] == 0.4

    def test_unparseable_date_scores_zero_for_that_field(self, make_lead):
        snapshot = lead_snapshot(make_lead(lead_date='garbage'), {('service', 'Roofing'): 1.0})
        assert snapshot['lead_date'] == 0.0
        assert snapshot['service'] == 1.0

    def test_weighted_sum(self, make_lead):
        table = {('service', 'Roofing'): 0.75, ('zip', '30301'): 0.5}
        result = score_lead(make_lead(), table, WEIGHTS)
        # 0.75*30 + 0.5*50 = 47.5 → 48
        assert result.lead_score == 48

    def test_all_ones_scores_100(self, make_lead):
        lead = make_lead()
        table = {
            ('service', 'Roofing'): 1.0, ('ad_set_name', 'Spring Promo'): 1.0,
            ('ad_name', 'Ad 1'): 1.0, ('lead_date', 'March'): 1.0, ('zip', '30301'): 1.0,
        }
        assert score_lead(lead, table, WEIGHTS).lead_score == 100

    def test_no_rates_scores_zero(self, make_lead):
        assert score_lead(make_lead(), {}, WEIGHTS).lead_score == 0

    @pytest.mark.parametrize('rate', [0.0, 0.01, 0.33, 0.5, 0.67, 0.99, 1.0])
    def test_score_within_bounds(self, rate):
        snapshot = {f: rate for f in WEIGHTS}
        score = weighted_score(snapshot, WEIGHTS)
        assert isinstance(score, int)
        assert 0 <= score <= 100

    def test_half_rounds_up(self):
        assert weighted_score({'service': 0.05}, {'service': 10}) == 1
        assert weighted_score({'zip': 0.25}, {'zip': 50}) == 13
