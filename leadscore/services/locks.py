"""
Per-client mutual exclusion for aggregation jobs.

Two aggregation runs for the same client would each read the rate table, merge
independently and overwrite each other on upsert. Every read-merge-write runs
inside `locks.hold(client_id)`.

  - RedisClientLocks: redis-py Lock, shared by every worker process.
  - LocalClientLocks: threading.Lock per key, for single-process use and tests.
"""
import logging
import threading
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager

import redis
from redis.exceptions import LockError

from leadscore.config import SCORING_LOCK_TIMEOUT, SCORING_LOCK_TTL
from leadscore.errors import ClientBusyError, PersistenceError

logger = logging.getLogger('services.locks')


class ClientLocks(ABC):
    """Lock provider keyed by client id (or any job key)."""

    @abstractmethod
    def hold(self, key: str, blocking: bool = True):
        """Context manager; raises ClientBusyError when the lock is not acquired."""
        ...


class LocalClientLocks(ClientLocks):

    def __init__(self, timeout: float = SCORING_LOCK_TIMEOUT):
        self.timeout = timeout
        self._locks = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, key):
        with self._registry_lock:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    def is_locked(self, key: str) -> bool:
        return self._lock_for(key).locked()

    @contextmanager
    def hold(self, key: str, blocking: bool = True):
        lock = self._lock_for(key)
        started = time.monotonic()
        acquired = lock.acquire(timeout=self.timeout) if blocking else lock.acquire(blocking=False)
        if not acquired:
            raise ClientBusyError(key, waited=time.monotonic() - started if blocking else None)
        try:
            yield
        finally:
            lock.release()


class RedisClientLocks(ClientLocks):
    """
    Redis-backed locks: key `scoring:lock:{key}`.

    `ttl` bounds how long a crashed worker can keep a client locked;
    `timeout` is how long a caller waits for a busy lock.
    """

    PREFIX = 'scoring:lock'

    def __init__(self, redis_client, timeout: float = SCORING_LOCK_TIMEOUT, ttl: int = SCORING_LOCK_TTL):
        self.redis = redis_client
        self.timeout = timeout
        self.ttl = ttl

    def _name(self, key):
        return f'{self.PREFIX}:{key}'

    @contextmanager
    def hold(self, key: str, blocking: bool = True):
        lock = self.redis.lock(self._name(key), timeout=self.ttl, blocking_timeout=self.timeout)
        started = time.monotonic()
        try:
            acquired = lock.acquire(blocking=blocking)
        except redis.RedisError as e:
            raise PersistenceError(f"Could not reach Redis to lock '{key}': {e}") from e
        if not acquired:
            raise ClientBusyError(key, waited=time.monotonic() - started if blocking else None)
        try:
            yield
        finally:
            try:
                lock.release()
            except LockError:
                # TTL expired mid-job; another worker may already hold it
                logger.warning("Lock for '%s' expired before release", key)
            except redis.RedisError:
                logger.error("Failed to release lock for '%s'", key, exc_info=True)
