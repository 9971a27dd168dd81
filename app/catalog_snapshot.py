import json
import logging
import time
from typing import Any, Dict, List, Optional

import redis
from redis.exceptions import RedisError

from .models import CatalogItem


logger = logging.getLogger(__name__)

SNAPSHOT_KEY = "ec_products_v1"
SNAPSHOT_TTL_SECONDS = 60 * 60


class SnapshotUnavailable(RuntimeError):
    pass


class CatalogSnapshotStore:
    """Stores the last full catalog pull in Redis with a TTL.
    Read-mostly cache owned outside the resolver; entries go stale after the TTL.
    """

    def __init__(self, client: "redis.Redis", key: str = SNAPSHOT_KEY, ttl_seconds: int = SNAPSHOT_TTL_SECONDS):
        self.redis = client
        self.key = key
        self.ttl_seconds = ttl_seconds

    @classmethod
    def from_url(cls, url: str) -> "CatalogSnapshotStore":
        if not url:
            raise SnapshotUnavailable("REDIS_URL is not set")
        client = redis.Redis.from_url(url, decode_responses=True, socket_timeout=10, socket_connect_timeout=5)
        return cls(client)

    def save(self, items: List[CatalogItem]) -> Dict[str, Any]:
        payload = {
            "updatedAt": int(time.time() * 1000),
            "items": [i.model_dump(mode="json") for i in items],
        }
        try:
            self.redis.set(self.key, json.dumps(payload, ensure_ascii=False), ex=self.ttl_seconds)
        except RedisError as e:
            logger.error("snapshot write failed: %s", e)
            raise SnapshotUnavailable(str(e)) from e
        logger.info("snapshot saved: key=%s count=%d", self.key, len(items))
        return payload

    def load(self) -> Optional[Dict[str, Any]]:
        """Read side of the snapshot, for consumers outside this service
        (storefront widgets, batch jobs). The chat path queries the shop API
        directly. Returns None when the key is missing, expired or unreadable.
        """
        try:
            raw = self.redis.get(self.key)
        except RedisError as e:
            logger.warning("snapshot read failed: %s", e)
            return None
        if not raw:
            return None
        try:
            data = json.loads(raw)
        except ValueError:
            return None
        return data if isinstance(data, dict) else None
