"""
Redis distributed locks for wallet operations.

Two code paths need mutual exclusion that a database row lock cannot give:

1. Withdrawal requests from one user. The daily limit is a count query,
   so two concurrent requests could both pass it. Requests are serialized
   per user with ``withdrawal_request_lock(user_id)``.

2. The reconciliation poller. Only one run may walk the pending
   withdrawals at a time; an overlapping beat tick skips instead of
   waiting (``poller_run_lock()``).

Per-wallet balance changes do NOT use these locks. They rely on
select_for_update plus a conditional UPDATE in LedgerService.

Usage:
    from wallets.locks import withdrawal_request_lock

    with withdrawal_request_lock(user.id):
        orchestrator.execute(...)
"""

from __future__ import annotations

import time
import uuid as uuid_module
from typing import TYPE_CHECKING

from django_redis import get_redis_connection

from wallets.exceptions import LockAcquisitionError

if TYPE_CHECKING:
    from typing import Any

    from redis import Redis


class DistributedLock:
    """
    Redis lock owned through a random token and expired by TTL.

    A crashed holder cannot block others for longer than ``ttl``. Release
    and extend run as Lua scripts that compare the token first, so a holder
    whose TTL ran out never frees a lock someone else has taken since.

    Blocking locks poll every 50ms for up to ``timeout`` seconds;
    non-blocking locks try once. Both raise LockAcquisitionError on failure.

    Example:
        lock = poller_run_lock()
        try:
            with lock:
                for withdrawal in batch:
                    reconcile(withdrawal)
                    lock.extend()
        except LockAcquisitionError:
            return  # a previous run is still going
    """

    POLL_INTERVAL_SECONDS = 0.05

    # Delete only if we still own the key
    RELEASE_SCRIPT = """
    if redis.call("get", KEYS[1]) == ARGV[1] then
        return redis.call("del", KEYS[1])
    else
        return 0
    end
    """

    # Reset the TTL only if we still own the key
    EXTEND_SCRIPT = """
    if redis.call("get", KEYS[1]) == ARGV[1] then
        return redis.call("expire", KEYS[1], ARGV[2])
    else
        return 0
    end
    """

    def __init__(
        self,
        key: str,
        ttl: int = 30,
        blocking: bool = True,
        timeout: float = 10.0,
    ) -> None:
        self.key = f"lock:{key}"
        self.ttl = ttl
        self.blocking = blocking
        self.timeout = timeout
        self._token: str | None = None
        self._redis: Redis | None = None

    def _get_redis(self) -> Redis:
        if self._redis is None:
            self._redis = get_redis_connection("default")
        return self._redis

    def acquire(self) -> bool:
        """Take the lock or raise LockAcquisitionError."""
        self._token = uuid_module.uuid4().hex
        redis = self._get_redis()

        if self.blocking:
            deadline = time.monotonic() + self.timeout
            while time.monotonic() < deadline:
                if self._try_acquire(redis):
                    return True
                time.sleep(self.POLL_INTERVAL_SECONDS)

            self._token = None
            raise LockAcquisitionError(
                f"Failed to acquire lock '{self.key}' within {self.timeout}s",
                details={"key": self.key, "timeout": self.timeout},
            )

        if not self._try_acquire(redis):
            self._token = None
            raise LockAcquisitionError(
                f"Lock '{self.key}' is already held",
                details={"key": self.key},
            )
        return True

    def _try_acquire(self, redis: Redis) -> bool:
        return bool(redis.set(self.key, self._token, nx=True, ex=self.ttl))

    def release(self) -> bool:
        """Release the lock if we still hold it; a no-op otherwise."""
        if self._token is None:
            return False

        redis = self._get_redis()
        result = redis.eval(self.RELEASE_SCRIPT, 1, self.key, self._token)
        self._token = None
        return bool(result)

    def extend(self, additional_ttl: int | None = None) -> bool:
        """Restart the TTL (replaces the remaining time, does not add to it)."""
        if self._token is None:
            return False

        ttl = additional_ttl or self.ttl
        redis = self._get_redis()
        result = redis.eval(self.EXTEND_SCRIPT, 1, self.key, self._token, ttl)
        return bool(result)

    @property
    def is_held(self) -> bool:
        return self._token is not None

    def __enter__(self) -> DistributedLock:
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> bool:
        self.release()
        return False


# =============================================================================
# Lock Factories
# =============================================================================


def withdrawal_request_lock(user_id: Any) -> DistributedLock:
    """
    Lock serializing withdrawal requests from one user.

    The TTL covers the provider call timeout with headroom.
    """
    return DistributedLock(f"wallets:withdrawal:user:{user_id}", ttl=60, timeout=10.0)


def poller_run_lock() -> DistributedLock:
    """Non-blocking lock ensuring a single reconciliation poller run."""
    return DistributedLock("wallets:withdrawal-poller", ttl=300, blocking=False)


__all__ = [
    "DistributedLock",
    "poller_run_lock",
    "withdrawal_request_lock",
]
