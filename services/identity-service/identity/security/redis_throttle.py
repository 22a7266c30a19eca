"""Redis-backed login/registration throttle shared by every worker process."""

from __future__ import annotations

import math
import time
import uuid
from collections.abc import Mapping
from typing import Final

from redis import Redis

from .throttle import Admission, ThrottlePolicy, ThrottleScope


class RedisSlidingWindowThrottle:
    """Keeps one sorted set of attempt timestamps per ``<prefix>:<scope>:<subject>``."""

    # Returns 0 when the attempt is recorded, otherwise milliseconds until the
    # oldest attempt in the window expires.
    _ATTEMPT_SCRIPT: Final[str] = """
    local key = KEYS[1]
    local now_ms = tonumber(ARGV[1])
    local window_ms = tonumber(ARGV[2])
    local limit = tonumber(ARGV[3])

    redis.call('ZREMRANGEBYSCORE', key, '-inf', now_ms - window_ms)
    if redis.call('ZCARD', key) >= limit then
        local oldest = redis.call('ZRANGE', key, 0, 0, 'WITHSCORES')
        return math.max(1, tonumber(oldest[2]) + window_ms - now_ms)
    end
    redis.call('ZADD', key, now_ms, ARGV[4])
    redis.call('PEXPIRE', key, window_ms)
    return 0
    """

    def __init__(
        self,
        client: Redis,
        policies: Mapping[ThrottleScope, ThrottlePolicy],
        *,
        key_prefix: str = "identity:throttle",
    ) -> None:
        self._client = client
        self._policies = dict(policies)
        self._key_prefix = key_prefix
        self._attempt = client.register_script(self._ATTEMPT_SCRIPT)

    def key_for(self, scope: ThrottleScope, subject: str) -> str:
        return f"{self._key_prefix}:{scope.value}:{subject}"

    def admit(self, scope: ThrottleScope, subject: str) -> Admission:
        policy = self._policies[scope]
        wait_ms = int(
            self._attempt(
                keys=[self.key_for(scope, subject)],
                args=[
                    int(time.time() * 1000),
                    policy.window_seconds * 1000,
                    policy.max_requests,
                    uuid.uuid4().hex,
                ],
            )
        )
        if wait_ms == 0:
            return Admission(allowed=True)
        return Admission(allowed=False, retry_after=math.ceil(wait_ms / 1000))

    def reset(self, scope: ThrottleScope, subject: str) -> None:
        self._client.delete(self.key_for(scope, subject))
