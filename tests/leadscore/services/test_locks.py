"""Tests for leadscore.services.locks — per-client mutual exclusion."""
import threading
from unittest.mock import MagicMock

import pytest
import redis
from redis.exceptions import LockError

from leadscore.errors import ClientBusyError, PersistenceError
from leadscore.services.locks import LocalClientLocks, RedisClientLocks


class TestLocalClientLocks:

    def test_hold_and_release(self):
        locks = LocalClientLocks(timeout=0.1)
        with locks.hold('client-a'):
            assert locks.is_locked('client-a')
            assert not locks.is_locked('client-b')
        assert not locks.is_locked('client-a')

    def test_busy_client_times_out(self):
        locks = LocalClientLocks(timeout=0.05)
        entered = threading.Event()
        release = threading.Event()

        def holder():
            with locks.hold('client-a'):
                entered.set()
                release.wait(2)

        t = threading.Thread(target=holder)
        t.start()
        entered.wait(2)
        try:
            with pytest.raises(ClientBusyError) as exc:
                with locks.hold('client-a'):
                    pass
            assert exc.value.client_id == 'client-a'
        finally:
            release.set()
            t.join()

    def test_non_blocking_fails_fast(self):
        locks = LocalClientLocks(timeout=5)
        with locks.hold('fleet-sync'):
            with pytest.raises(ClientBusyError):
                with locks.hold('fleet-sync', blocking=False):
                    pass

    def test_released_on_exception(self):
        locks = LocalClientLocks(timeout=0.1)
        with pytest.raises(RuntimeError):
            with locks.hold('client-a'):
                raise RuntimeError('boom')
        assert not locks.is_locked('client-a')


class TestRedisClientLocks:

    def _locks(self, acquire=True):
        client = MagicMock()
        lock = MagicMock()
        lock.acquire.return_value = acquire
        client.lock.return_value = lock
        return RedisClientLocks(client, timeout=3, ttl=60), client, lock

    def test_acquires_namespaced_lock(self):
        locks, client, lock = self._locks()
        with locks.hold('client-a'):
            pass
        client.lock.assert_called_once_with('scoring:lock:client-a', timeout=60, blocking_timeout=3)
        lock.release.assert_called_once()

    def test_not_acquired_raises_busy(self):
        locks, _, lock = self._locks(acquire=False)
        with pytest.raises(ClientBusyError):
            with locks.hold('client-a'):
                pass
        lock.release.assert_not_called()

    def test_redis_down_raises_persistence_error(self):
        locks, _, lock = self._locks()
        lock.acquire.side_effect = redis.ConnectionError('refused')
        with pytest.raises(PersistenceError):
            with locks.hold('client-a'):
                pass

    def test_expired_lock_release_is_logged_not_raised(self):
        locks, _, lock = self._locks()
        lock.release.side_effect = LockError('not owned')
        with locks.hold('client-a'):
            pass
