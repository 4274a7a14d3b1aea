"""
Admission policy: whether the queue is enforced and how many sessions may be
active at once.

Layers, highest priority first:
  1. Redis override written by an admin (shared by every app instance, 24h TTL)
  2. In-process override written by an admin on this instance
  3. Settings (QUEUE_ENABLED, QUEUE_MAX_ACTIVE_USERS)

A decision reads the policy once, at its start, and uses that value
throughout. Changes apply to later decisions only; existing leases keep
the expiry they were granted with.

Failure mode:
  If Redis is configured and reachable but the read itself fails, the store
  returns an *enforcing* policy (enabled=True). Letting everyone in when we
  cannot tell whether the queue is on risks overselling active-session
  capacity, which costs more than making people wait.
"""

from dataclasses import dataclass
from datetime import timedelta
from typing import Awaitable, Callable, Optional

import redis.asyncio as redis

from ticketing.core.config import Settings, get_settings
from ticketing.core.logging import get_logger
from ticketing.core.metrics import policy_read_failures, redis_connection_errors
from ticketing.services.cache_service import get_redis

logger = get_logger(__name__)

LEASE_DURATION = timedelta(minutes=15)
MINUTES_PER_QUEUED_USER = 2

ENABLED_KEY = "queue:enabled"
MAX_ACTIVE_KEY = "queue:max_active_users"

RedisGetter = Callable[[], Awaitable[Optional[redis.Redis]]]


@dataclass(frozen=True)
class AdmissionPolicy:
    enabled: bool
    max_active_users: int
    lease_duration: timedelta = LEASE_DURATION

    @property
    def lease_minutes(self) -> int:
        return int(self.lease_duration.total_seconds() // 60)


class AdmissionPolicyStore:
    def __init__(
        self,
        defaults: AdmissionPolicy,
        redis_getter: Optional[RedisGetter] = None,
        ttl_seconds: int = 86400,
    ):
        self._defaults = defaults
        self._redis_getter = redis_getter
        self._ttl_seconds = ttl_seconds
        self._overrides: dict = {}

    @classmethod
    def from_settings(cls, settings: Settings, redis_getter: Optional[RedisGetter] = get_redis) -> "AdmissionPolicyStore":
        return cls(
            AdmissionPolicy(
                enabled=settings.QUEUE_ENABLED,
                max_active_users=settings.QUEUE_MAX_ACTIVE_USERS,
            ),
            redis_getter=redis_getter,
            ttl_seconds=settings.REDIS_POLICY_TTL,
        )

    def _local(self) -> AdmissionPolicy:
        return AdmissionPolicy(
            enabled=self._overrides.get("enabled", self._defaults.enabled),
            max_active_users=self._overrides.get("max_active_users", self._defaults.max_active_users),
        )

    async def read(self) -> AdmissionPolicy:
        local = self._local()
        client = await self._redis_getter() if self._redis_getter else None
        if client is None:
            return local

        try:
            cached_enabled, cached_max = await client.mget(ENABLED_KEY, MAX_ACTIVE_KEY)
            enabled = local.enabled if cached_enabled is None else cached_enabled == "1"
            max_active = local.max_active_users if cached_max is None else int(cached_max)
        except Exception as e:
            policy_read_failures.inc()
            logger.warning("policy_read_failed", error=str(e), fallback="enforce_queue")
            return AdmissionPolicy(enabled=True, max_active_users=local.max_active_users)

        return AdmissionPolicy(enabled=enabled, max_active_users=max_active)

    async def set_enabled(self, enabled: bool) -> AdmissionPolicy:
        self._overrides["enabled"] = enabled
        await self._publish(ENABLED_KEY, "1" if enabled else "0")
        logger.info("queue_policy_updated", enabled=enabled)
        return await self.read()

    async def set_max_active_users(self, max_active_users: int) -> AdmissionPolicy:
        if max_active_users < 1:
            raise ValueError("max_active_users must be at least 1")
        self._overrides["max_active_users"] = max_active_users
        await self._publish(MAX_ACTIVE_KEY, str(max_active_users))
        logger.info("queue_policy_updated", max_active_users=max_active_users)
        return await self.read()

    async def _publish(self, key: str, value: str) -> None:
        client = await self._redis_getter() if self._redis_getter else None
        if client is None:
            return
        try:
            await client.set(key, value, ex=self._ttl_seconds)
        except Exception as e:
            # The in-process layer still holds the new value
            redis_connection_errors.inc()
            logger.error("policy_publish_failed", key=key, error=str(e))


_store: Optional[AdmissionPolicyStore] = None


def get_policy_store() -> AdmissionPolicyStore:
    """Process-wide policy store built from settings."""
    global _store
    if _store is None:
        _store = AdmissionPolicyStore.from_settings(get_settings())
    return _store
