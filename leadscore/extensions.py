"""
Shared client instances — Redis.

redis.from_url() does not open a connection, so importing this module is always
safe (even when Redis is unreachable during tests).
"""
import logging

import redis

from leadscore.config import REDIS_URL

logger = logging.getLogger('leadscore.extensions')

# ── Redis ─────────────────────────────────────────────────────────────────────
redis_client = redis.from_url(REDIS_URL, decode_responses=True)

# RQ pickles job payloads, so its connection must return raw bytes
rq_connection = redis.from_url(REDIS_URL)
