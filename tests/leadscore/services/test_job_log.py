"""Tests for leadscore.services.job_log — scoring job log rows."""
from unittest.mock import MagicMock

from leadscore.services.job_log import (
    log_job_start, log_job_success, log_job_failure, recent_job_logs,
)


class TestJobLog:

    def test_start_then_success(self):
        log_id = log_job_start('full_recompute', trigger='manual', client_id='client-a')
        assert log_id
        log_job_success(log_id, details={'updated_leads': 3}, processed_count=10)

        [entry] = recent_job_logs()
        assert entry['status'] == 'success'
        assert entry['client_id'] == 'client-a'
        assert entry['processed_count'] == 10
        assert entry['details'] == {'updated_leads': 3}
        assert entry['finished_at'] is not None

    def test_failure_records_error(self):
        log_id = log_job_start('fleet_sync', trigger='cron')
        log_job_failure(log_id, RuntimeError('redis down'))
        [entry] = recent_job_logs(job_name='fleet_sync')
        assert entry['status'] == 'failure'
        assert entry['error'] == 'redis down'

    def test_filters(self):
        log_job_start('full_recompute', client_id='client-a')
        log_job_start('full_recompute', client_id='client-b')
        log_job_start('fleet_sync')
        assert len(recent_job_logs(job_name='full_recompute')) == 2
        assert len(recent_job_logs(client_id='client-b')) == 1
        assert len(recent_job_logs(limit=1)) == 1

    def test_write_failure_never_raises(self):
        session = MagicMock()
        session.commit.side_effect = RuntimeError('db gone')
        assert log_job_start('fleet_sync', session_factory=lambda: session) is None
        session.rollback.assert_called_once()

    def test_finish_without_id_is_noop(self):
        log_job_success(None)
        assert recent_job_logs() == []
