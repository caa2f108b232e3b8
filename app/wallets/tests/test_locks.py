"""
Tests for the Redis distributed locks.

Redis is the MagicMock installed by the autouse ``mock_redis`` fixture.
"""

from unittest.mock import patch

import pytest

from wallets.exceptions import LockAcquisitionError
from wallets.locks import DistributedLock, poller_run_lock, withdrawal_request_lock


class TestDistributedLock:
    def test_acquire_sets_key_with_ttl(self, mock_redis):
        lock = DistributedLock("thing", ttl=45)

        assert lock.acquire() is True

        key, token = mock_redis.set.call_args.args
        assert key == "lock:thing"
        assert token
        assert mock_redis.set.call_args.kwargs == {"nx": True, "ex": 45}
        assert lock.is_held

    def test_release_uses_token(self, mock_redis):
        lock = DistributedLock("thing")
        lock.acquire()
        token = mock_redis.set.call_args.args[1]

        assert lock.release() is True

        assert mock_redis.eval.call_args.args[2:] == ("lock:thing", token)
        assert not lock.is_held

    def test_release_without_acquire(self, mock_redis):
        assert DistributedLock("thing").release() is False
        mock_redis.eval.assert_not_called()

    def test_extend(self, mock_redis):
        lock = DistributedLock("thing", ttl=30)
        lock.acquire()

        assert lock.extend(90) is True
        assert mock_redis.eval.call_args.args[-1] == 90

    def test_non_blocking_raises_when_held(self, mock_redis):
        mock_redis.set.return_value = None

        with pytest.raises(LockAcquisitionError) as exc_info:
            DistributedLock("thing", blocking=False).acquire()

        assert exc_info.value.details == {"key": "lock:thing"}

    def test_blocking_times_out(self, mock_redis):
        mock_redis.set.return_value = None

        with patch("wallets.locks.time.sleep"):
            with pytest.raises(LockAcquisitionError):
                DistributedLock("thing", timeout=0.01).acquire()

    def test_context_manager_releases_on_error(self, mock_redis):
        with pytest.raises(ValueError):
            with DistributedLock("thing"):
                raise ValueError("boom")

        mock_redis.eval.assert_called_once()


class TestLockFactories:
    def test_withdrawal_request_lock(self):
        lock = withdrawal_request_lock(42)

        assert lock.key == "lock:wallets:withdrawal:user:42"
        assert lock.ttl == 60
        assert lock.blocking is True

    def test_poller_run_lock(self):
        lock = poller_run_lock()

        assert lock.key == "lock:wallets:withdrawal-poller"
        assert lock.blocking is False
