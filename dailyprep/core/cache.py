import json
import logging
from datetime import date
from typing import List, Optional

import redis

from dailyprep.core.config import settings

logger = logging.getLogger(__name__)


def daily_set_key(test_date: date) -> str:
    return f"daily_set:{test_date.isoformat()}"


class DailySetCache:
    """Read-through cache for persisted daily set orderings.

    A daily set never changes once stored, so entries are only written from
    the persisted row and simply expire. Redis failures degrade to a miss.
    """

    def __init__(self, client: redis.Redis, ttl: int = settings.DAILY_SET_CACHE_TTL):
        self.client = client
        self.ttl = ttl

    def get(self, test_date: date) -> Optional[List[int]]:
        try:
            raw = self.client.get(daily_set_key(test_date))
        except redis.RedisError as e:
            logger.error(f"Daily set cache get error: {e}")
            return None
        if raw is None:
            return None
        try:
            return [int(q) for q in json.loads(raw)]
        except (json.JSONDecodeError, TypeError, ValueError):
            logger.warning(f"Discarding malformed cache entry for {test_date}")
            return None

    def set(self, test_date: date, question_ids: List[int]) -> None:
        try:
            self.client.set(daily_set_key(test_date), json.dumps(question_ids), ex=self.ttl)
        except redis.RedisError as e:
            logger.error(f"Daily set cache set error: {e}")


_cache: Optional[DailySetCache] = None


def get_daily_set_cache() -> Optional[DailySetCache]:
    global _cache
    if not settings.DAILY_SET_CACHE_ENABLED:
        return None
    if _cache is None:
        _cache = DailySetCache(redis.Redis.from_url(settings.REDIS_URL, decode_responses=True))
    return _cache
