"""
Per-session assembly lease.

Two completion requests for the same session would otherwise both list the
chunks, both write the target and race on cleanup. The lease makes the
second one fail fast with AssemblyInProgress instead.

On Redis the lease is a plain key taken with SET NX EX and released by a
Lua compare-and-delete, so a holder whose lease already expired can never
delete its successor's lease. Other cache backends (the in-process cache
used in tests) go through the Django cache API under a process-wide lock.
The TTL bounds how long a crashed worker can block a session.
"""

from __future__ import annotations

import logging
import threading
import uuid
from typing import TYPE_CHECKING

from django.conf import settings
from django.core.cache import cache
from django_redis import get_redis_connection

from uploads.exceptions import AssemblyInProgress

if TYPE_CHECKING:
    from redis import Redis

logger = logging.getLogger(__name__)

LEASE_KEY_PREFIX = "uploads:assembly_lease"

# Serializes check-then-act on non-Redis caches within one process
_local_lock = threading.Lock()


def _uses_redis() -> bool:
    backend = settings.CACHES.get("default", {}).get("BACKEND", "")
    return backend.startswith("django_redis.")


class SessionLease:
    """
    Exclusive, expiring claim on one upload session.

    Usage:
        with SessionLease(session_id):
            ...  # list, reconstruct, cleanup

    Raises:
        AssemblyInProgress: On enter, if another holder owns the lease
    """

    # Lua script for atomic check-and-delete (release)
    RELEASE_SCRIPT = """
    if redis.call("get", KEYS[1]) == ARGV[1] then
        return redis.call("del", KEYS[1])
    else
        return 0
    end
    """

    def __init__(self, session_id: str, ttl: int | None = None):
        self.session_id = session_id
        if ttl is None:
            ttl = getattr(settings, "UPLOAD_SESSION_LEASE_SECONDS", None)
        if ttl is None:
            ttl = getattr(settings, "UPLOAD_ASSEMBLY_TIMEOUT_SECONDS", 300) + 60
        self.ttl = ttl
        self.token = uuid.uuid4().hex
        self.held = False
        self._redis: Redis | None = None

    @property
    def cache_key(self) -> str:
        return f"{LEASE_KEY_PREFIX}:{self.session_id}"

    def _get_redis(self) -> Redis | None:
        """Redis connection when the default cache is django-redis."""
        if self._redis is None and _uses_redis():
            self._redis = get_redis_connection("default")
        return self._redis

    def acquire(self) -> bool:
        redis = self._get_redis()
        if redis is not None:
            acquired = redis.set(self.cache_key, self.token, nx=True, ex=self.ttl)
        else:
            with _local_lock:
                acquired = cache.add(self.cache_key, self.token, timeout=self.ttl)
        self.held = bool(acquired)
        return self.held

    def is_held(self) -> bool:
        """Whether anyone currently holds this session's lease."""
        redis = self._get_redis()
        if redis is not None:
            return bool(redis.exists(self.cache_key))
        return cache.get(self.cache_key) is not None

    def release(self) -> None:
        """Release the lease if this instance still owns it."""
        if not self.held:
            return
        self.held = False

        redis = self._get_redis()
        if redis is not None:
            released = bool(redis.eval(self.RELEASE_SCRIPT, 1, self.cache_key, self.token))
        else:
            with _local_lock:
                released = cache.get(self.cache_key) == self.token
                if released:
                    cache.delete(self.cache_key)

        if not released:
            logger.warning(
                f"Assembly lease for {self.session_id} expired before release",
                extra={"event_type": "assembly_lease_expired", "session_id": self.session_id},
            )

    def __enter__(self) -> SessionLease:
        if not self.acquire():
            raise AssemblyInProgress(self.session_id)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()
