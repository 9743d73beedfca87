"""Tests for leadscore.services.conversion_events — Facebook Conversion API."""
import hashlib
from unittest.mock import MagicMock

import pytest
import requests

from leadscore.errors import ConversionEventError
from leadscore.services.conversion_events import (
    FacebookConversionNotifier, build_lead_event, hash_value, normalize_phone, numeric_lead_id,
)


def _sha(value):
    return hashlib.sha256(value.encode()).hexdigest()


class TestHashing:

    def test_email_lowercased_and_trimmed(self):
        assert hash_value('  Owner@Example.COM ') == _sha('owner@example.com')

    @pytest.mark.parametrize('raw,expected', [
        ('(404) 555-0100', '+14045550100'),
        ('+44 20 7946 0958', '+442079460958'),
        ('404.555.0100', '+14045550100'),
    ])
    def test_normalize_phone(self, raw, expected):
        assert normalize_phone(raw) == expected

    def test_numeric_lead_id_is_stable(self):
        assert numeric_lead_id('lead-001') == numeric_lead_id('lead-001')
        assert numeric_lead_id('lead-001') != numeric_lead_id('lead-002')
        assert numeric_lead_id('lead-001') < 16 ** 15


class TestBuildLeadEvent:

    def test_payload_shape(self):
        payload = build_lead_event('a@b.com', '4045550100', 'lead-1', event_time=1700000000)
        event = payload['data'][0]
        assert event['event_name'] == 'Lead'
        assert event['action_source'] == 'system_generated'
        assert event['event_time'] == 1700000000
        assert event['user_data']['em'] == [_sha('a@b.com')]
        assert event['user_data']['ph'] == [_sha('+14045550100')]
        assert event['user_data']['lead_id'] == numeric_lead_id('lead-1')

    def test_blank_contact_fields_omitted(self):
        user_data = build_lead_event('', '  ', 'lead-1')['data'][0]['user_data']
        assert 'em' not in user_data
        assert 'ph' not in user_data


class TestFacebookConversionNotifier:

    def test_posts_to_pixel_endpoint(self):
        http = MagicMock()
        http.post.return_value = MagicMock(status_code=200, json=lambda: {'events_received': 1})
        notifier = FacebookConversionNotifier(base_url='https://graph.example/', api_version='v21.0', http=http)

        notifier.send('pixel-1', 'token-1', 'a@b.com', '4045550100', 'lead-1')

        args, kwargs = http.post.call_args
        assert args[0] == 'https://graph.example/v21.0/pixel-1/events'
        assert kwargs['params'] == {'access_token': 'token-1'}
        assert kwargs['json']['data'][0]['event_name'] == 'Lead'

    def test_missing_credentials(self):
        with pytest.raises(ConversionEventError):
            FacebookConversionNotifier(http=MagicMock()).send('', 'token', 'a@b.com', '', 'lead-1')

    def test_error_status_raises(self):
        http = MagicMock()
        http.post.return_value = MagicMock(status_code=400, text='Invalid OAuth access token')
        with pytest.raises(ConversionEventError, match='400'):
            FacebookConversionNotifier(http=http).send('p', 't', 'a@b.com', '', 'lead-1')

    def test_network_error_raises(self):
        http = MagicMock()
        http.post.side_effect = requests.ConnectionError('unreachable')
        with pytest.raises(ConversionEventError):
            FacebookConversionNotifier(http=http).send('p', 't', 'a@b.com', '', 'lead-1')
