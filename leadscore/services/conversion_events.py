"""
Facebook Conversion API — sends a "Lead" event when a lead is booked.

User data is hashed before it leaves the process: email and phone with SHA-256,
the lead id folded into a stable numeric id via MD5.
"""
import hashlib
import logging
import re
import time

import requests

from leadscore.config import FB_GRAPH_API_URL, FB_API_VERSION
from leadscore.errors import ConversionEventError
from leadscore.scoring.status import ConversionNotifier

logger = logging.getLogger('services.conversion_events')

REQUEST_TIMEOUT = 15
DEFAULT_COUNTRY_CODE = '+1'


def hash_value(value: str) -> str:
    return hashlib.sha256(value.strip().lower().encode('utf-8')).hexdigest()


def normalize_phone(phone: str) -> str:
    """Strip everything but digits and a leading +; assume US when no country code."""
    normalized = re.sub(r'[^\d+]', '', phone or '')
    if not normalized.startswith('+'):
        normalized = DEFAULT_COUNTRY_CODE + normalized
    return normalized


def numeric_lead_id(lead_id: str) -> int:
    return int(hashlib.md5(lead_id.encode('utf-8')).hexdigest()[:15], 16)


def build_lead_event(email: str, phone: str, lead_id: str, event_time: int = None) -> dict:
    user_data = {'lead_id': numeric_lead_id(lead_id)}
    if email and email.strip():
        user_data['em'] = [hash_value(email)]
    if phone and phone.strip():
        user_data['ph'] = [hash_value(normalize_phone(phone))]

    return {
        'data': [{
            'action_source': 'system_generated',
            'custom_data': {
                'event_source': 'crm',
                'lead_event_source': 'leadscore',
            },
            'event_name': 'Lead',
            'event_time': int(event_time if event_time is not None else time.time()),
            'user_data': user_data,
        }],
    }


class FacebookConversionNotifier(ConversionNotifier):
    """ConversionNotifier backed by the Graph API /{pixel_id}/events endpoint."""

    def __init__(self, base_url: str = FB_GRAPH_API_URL, api_version: str = FB_API_VERSION,
                 http=None):
        self.base_url = base_url.rstrip('/')
        self.api_version = api_version
        self.http = http or requests

    def send(self, pixel_id, pixel_token, email, phone, lead_id):
        if not pixel_id or not pixel_token:
            raise ConversionEventError("Facebook pixel id and token are required")

        url = f"{self.base_url}/{self.api_version}/{pixel_id}/events"
        payload = build_lead_event(email, phone, lead_id)
        try:
            resp = self.http.post(
                url,
                params={'access_token': pixel_token},
                json=payload,
                timeout=REQUEST_TIMEOUT,
            )
        except requests.RequestException as e:
            raise ConversionEventError(f"Conversion API request failed: {e}") from e

        if resp.status_code >= 400:
            raise ConversionEventError(
                f"Conversion API error: {resp.status_code} - {resp.text[:500]}"
            )
        logger.info("Conversion event accepted for lead %s (pixel %s)", lead_id, pixel_id)
        return resp.json()
