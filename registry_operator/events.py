"""
Notification sink — Kubernetes Events plus an optional Redis Stream.

Fire-and-forget: nothing here may influence reconciliation, so every
failure is logged and dropped.
"""

import json as _json
import logging
from datetime import datetime, timezone
from typing import Optional

import kopf
import redis

from registry_operator.apply import OperationResult
from registry_operator.config import settings
from registry_operator.models import ObjectKey

logger = logging.getLogger("model-registry-operator")

STREAM_MAXLEN = 100


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class Notifier:
    def __init__(self, redis_url: Optional[str] = None):
        self.redis_url = settings.REDIS_URL if redis_url is None else redis_url
        self._redis_client = None

    def _get_redis(self):
        """Lazy-init Redis client. Returns None if unavailable."""
        if self._redis_client is not None:
            return self._redis_client
        if not self.redis_url:
            return None
        try:
            client = redis.Redis.from_url(self.redis_url, decode_responses=True)
            client.ping()
            logger.info(f"Redis connected: {self.redis_url}")
            self._redis_client = client
            return client
        except redis.RedisError as e:
            logger.warning(f"Redis unavailable (non-fatal): {e}")
            return None

    def notify(self, obj: dict, severity: str, reason: str, message: str):
        """Record an event against `obj`."""
        try:
            kopf.event(obj, type=severity, reason=reason, message=message)
        except Exception as e:
            logger.debug(f"Event posting failed (non-fatal): {e}")
        self._publish(ObjectKey.from_object(obj), severity, reason, message)

    def _publish(self, key: ObjectKey, severity: str, reason: str, message: str):
        r = self._get_redis()
        if not r:
            return
        entry = {
            "registry": str(key),
            "type": severity,
            "reason": reason,
            "message": message,
            "timestamp": _now(),
        }
        try:
            r.xadd(f"registry:events:{key}", entry, maxlen=STREAM_MAXLEN)
            r.publish("registry:events", _json.dumps(entry))
        except redis.RedisError as e:
            logger.debug(f"Redis publish failed (non-fatal): {e}")

    def log_result(self, obj: dict, result: OperationResult):
        """Normal event for a cycle that created or updated managed resources."""
        meta = obj["metadata"]
        if result == OperationResult.CREATED:
            self.notify(obj, "Normal", "ServiceCreated",
                        f"Created service for custom resource {meta['name']} in namespace {meta['namespace']}")
        elif result == OperationResult.UPDATED:
            self.notify(obj, "Normal", "ServiceUpdated",
                        f"Updated service for custom resource {meta['name']} in namespace {meta['namespace']}")
