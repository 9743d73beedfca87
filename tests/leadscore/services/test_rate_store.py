"""Tests for leadscore.services.rate_store — conversion-rate persistence."""
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from leadscore.errors import PersistenceError, ValidationError
from leadscore.scoring.base import RateRow
from leadscore.services.rate_store import SqlConversionRateStore


class TestBatchUpsert:

    def test_inserts_new_rows(self, rate_store):
        stats = rate_store.batch_upsert([
            RateRow('client-a', 'zip', '111', 2, 1, 0.5, 'batch-1'),
            RateRow('client-a', 'service', 'Roofing', 4, 3, 0.75, 'batch-1'),
        ])
        assert (stats.total, stats.new_inserts, stats.updated) == (2, 2, 0)
        rows = rate_store.get_rates({'client_id': 'client-a'})
        assert [r.key for r in rows] == [('zip', '111'), ('service', 'Roofing')]
        assert rows[0].last_batch_id == 'batch-1'

    def test_unchanged_rows_not_counted(self, rate_store):
        row = RateRow('client-a', 'zip', '111', 2, 1, 0.5)
        rate_store.batch_upsert([row])
        stats = rate_store.batch_upsert([row])
        assert (stats.total, stats.new_inserts, stats.updated) == (0, 0, 0)

    def test_updates_changed_rows(self, rate_store):
        rate_store.batch_upsert([RateRow('client-a', 'zip', '111', 2, 1, 0.5)])
        stats = rate_store.batch_upsert([RateRow('client-a', 'zip', '111', 3, 1, 0.33, 'batch-2')])
        assert stats.updated == 1
        stored = rate_store.get_rates({'client_id': 'client-a', 'key_name': '111'})[0]
        assert (stored.past_total_count, stored.conversion_rate, stored.last_batch_id) == (3, 0.33, 'batch-2')

    def test_clients_are_partitioned(self, rate_store):
        rate_store.batch_upsert([
            RateRow('client-a', 'zip', '111', 1, 1, 1.0),
            RateRow('client-b', 'zip', '111', 1, 0, 0.0),
        ])
        assert rate_store.get_rates({'client_id': 'client-b'})[0].conversion_rate == 0.0
        assert len(rate_store.get_rates({'key_field': 'zip'})) == 2

    def test_empty_batch(self, rate_store):
        assert rate_store.batch_upsert([]).total == 0

    def test_failure_rolls_back(self):
        session = MagicMock()
        session.scalars.side_effect = OperationalError('SELECT', {}, Exception('gone'))
        store = SqlConversionRateStore(session_factory=lambda: session)
        with pytest.raises(PersistenceError):
            store.batch_upsert([RateRow('client-a', 'zip', '111', 1, 1, 1.0)])
        session.rollback.assert_called_once()


class TestGetRates:

    def test_rejects_unknown_filter(self, rate_store):
        with pytest.raises(ValidationError):
            rate_store.get_rates({'conversion_rate': 1})
