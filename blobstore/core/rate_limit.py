from __future__ import annotations

import logging
import threading
from time import monotonic, time
from typing import Dict, Optional, Tuple

import redis

logger = logging.getLogger("blobstore.rate_limit")


class RateLimiter:
    """Fixed window rate limiter with Redis or in-memory storage per client."""

    def __init__(self, limit: int, window_seconds: int = 60, redis_url: str = "") -> None:
        self.limit = max(limit, 1)
        self.window_seconds = window_seconds
        self._clients: Dict[str, Tuple[int, float]] = {}
        self._lock = threading.Lock()
        self._redis: Optional[redis.Redis] = self._connect(redis_url) if redis_url else None

    @staticmethod
    def _connect(redis_url: str) -> Optional[redis.Redis]:
        client = redis.from_url(redis_url)
        try:
            client.ping()
        except redis.RedisError as exc:
            logger.warning("event=rate_limit_redis_unavailable error=%s", exc)
            return None
        return client

    @property
    def use_redis(self) -> bool:
        return self._redis is not None

    def hit(self, key: str) -> Tuple[bool, int]:
        """
        Register a hit for the given key.
        Returns (allowed, retry_after_seconds).
        """
        if self._redis is not None:
            try:
                return self._hit_redis(key)
            except redis.RedisError as exc:
                logger.warning("event=rate_limit_redis_error error=%s", exc)
        return self._hit_memory(key)

    def _hit_redis(self, key: str) -> Tuple[bool, int]:
        now = time()
        window = int(now // self.window_seconds)
        reset_at = (window + 1) * self.window_seconds
        redis_key = f"rate_limit:{key}:{window}"

        pipe = self._redis.pipeline()
        pipe.incr(redis_key)
        pipe.expire(redis_key, self.window_seconds)
        count, _ = pipe.execute()

        retry_after = max(0, int(reset_at - now))
        if int(count) > self.limit:
            return False, retry_after or 1
        return True, retry_after

    def _hit_memory(self, key: str) -> Tuple[bool, int]:
        now = monotonic()
        with self._lock:
            count, reset_at = self._clients.get(key, (0, now + self.window_seconds))
            if now > reset_at:
                count = 0
                reset_at = now + self.window_seconds
            if count >= self.limit:
                retry_after = max(0, int(reset_at - now))
                return False, retry_after or 1

            self._clients[key] = (count + 1, reset_at)
            retry_after = max(0, int(reset_at - now))
            return True, retry_after
