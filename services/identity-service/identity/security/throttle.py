"""Sliding window throttling for the public auth endpoints.

Login and registration are throttled under separate scopes with their own
limits. Login windows are keyed by client address plus email and are cleared
after a successful login; registration windows are keyed by client address.
"""

from __future__ import annotations

import logging
import math
import time
from collections import defaultdict, deque
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from threading import Lock
from typing import Deque, Protocol

from ..config import Settings

logger = logging.getLogger(__name__)


class ThrottleScope(str, Enum):
    LOGIN = "login"
    REGISTER = "register"


@dataclass(frozen=True, slots=True)
class ThrottlePolicy:
    max_requests: int
    window_seconds: int


@dataclass(frozen=True, slots=True)
class Admission:
    """Outcome of one attempt; ``retry_after`` is whole seconds until a slot frees up."""

    allowed: bool
    retry_after: int = 0


class Throttle(Protocol):
    def admit(self, scope: ThrottleScope, subject: str) -> Admission:
        ...

    def reset(self, scope: ThrottleScope, subject: str) -> None:
        ...


def policies_from_settings(settings: Settings) -> dict[ThrottleScope, ThrottlePolicy]:
    window = settings.rate_limit_window_seconds
    return {
        ThrottleScope.LOGIN: ThrottlePolicy(settings.login_rate_limit_requests, window),
        ThrottleScope.REGISTER: ThrottlePolicy(settings.register_rate_limit_requests, window),
    }


class SlidingWindowThrottle:
    """Thread-safe in-process throttle; each worker process keeps its own windows."""

    def __init__(self, policies: Mapping[ThrottleScope, ThrottlePolicy]) -> None:
        self._policies = dict(policies)
        self._attempts: defaultdict[tuple[ThrottleScope, str], Deque[float]] = defaultdict(deque)
        self._lock = Lock()

    def admit(self, scope: ThrottleScope, subject: str) -> Admission:
        policy = self._policies[scope]
        now = time.monotonic()
        with self._lock:
            attempts = self._attempts[(scope, subject)]
            while attempts and now - attempts[0] >= policy.window_seconds:
                attempts.popleft()
            if len(attempts) >= policy.max_requests:
                wait = attempts[0] + policy.window_seconds - now
                return Admission(allowed=False, retry_after=max(1, math.ceil(wait)))
            attempts.append(now)
            return Admission(allowed=True)

    def reset(self, scope: ThrottleScope, subject: str) -> None:
        with self._lock:
            self._attempts.pop((scope, subject), None)


def build_throttle(settings: Settings) -> Throttle:
    """Instantiate the configured throttle backend, preferring Redis when reachable."""
    policies = policies_from_settings(settings)
    if settings.rate_limit_backend == "redis" and settings.redis_url:
        import redis
        from redis.exceptions import RedisError

        from .redis_throttle import RedisSlidingWindowThrottle

        client = redis.from_url(settings.redis_url)
        try:
            client.ping()
        except RedisError as exc:
            logger.warning("redis throttle unavailable, falling back to in-memory: %s", exc)
        else:
            logger.info("throttle configured for redis backend at %s", settings.redis_url)
            return RedisSlidingWindowThrottle(client, policies)

    logger.info("throttle using in-memory backend")
    return SlidingWindowThrottle(policies)
