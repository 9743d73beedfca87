"""Tests for leadscore.services.notifications — Slack webhook posts."""
from unittest.mock import patch

from leadscore.scoring.base import SyncResult
from leadscore.services.notifications import notify_sync_complete, notify_job_failed


def _sync_result():
    return SyncResult(
        processed_clients=2,
        total_updated_rates=5,
        total_updated_leads=9,
        total_processed_leads=20,
        errors=['Client b: PersistenceError: boom'],
        client_results=[{'client_id': 'a', 'success': True}, {'client_id': 'b', 'success': False}],
    )


class TestNotifySyncComplete:

    def test_skipped_without_webhook(self):
        with patch('leadscore.config.SLACK_WEBHOOK_URL', None), \
             patch('leadscore.services.notifications.requests.post') as post:
            notify_sync_complete(_sync_result())
        post.assert_not_called()

    def test_posts_summary(self):
        with patch('leadscore.config.SLACK_WEBHOOK_URL', 'https://hooks.slack.test/x'), \
             patch('leadscore.services.notifications.requests.post') as post:
            notify_sync_complete(_sync_result(), duration_s=3.2)
        url = post.call_args[0][0]
        blocks = post.call_args[1]['json']['blocks']
        assert url == 'https://hooks.slack.test/x'
        text = str(blocks)
        assert '*Clients:* 2' in text
        assert '*Failed clients:* 1' in text
        assert 'PersistenceError' in text

    def test_post_failure_swallowed(self):
        with patch('leadscore.config.SLACK_WEBHOOK_URL', 'https://hooks.slack.test/x'), \
             patch('leadscore.services.notifications.requests.post', side_effect=RuntimeError('down')):
            notify_sync_complete(_sync_result())


class TestNotifyJobFailed:

    def test_posts_alert(self):
        with patch('leadscore.config.SLACK_WEBHOOK_URL', 'https://hooks.slack.test/x'), \
             patch('leadscore.services.notifications.requests.post') as post:
            notify_job_failed('full_recompute', 'boom', client_id='client-a')
        text = str(post.call_args[1]['json']['blocks'])
        assert 'full_recompute' in text
        assert 'client-a' in text
