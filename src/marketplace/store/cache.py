"""
TTL cache over the key/value store.

Each entry is an envelope {"fetchedAt": <epoch ms>, "data": <json>}.
A read is valid only while now - fetchedAt <= max_age_ms; anything
missing, malformed or stale reads as None. Writes overwrite wholesale.
"""
import json
import logging
from typing import Any, Optional

from marketplace.clock import Clock
from marketplace.store.kv import KeyValueStore

logger = logging.getLogger(__name__)


class TTLCache:
    def __init__(self, kv: KeyValueStore, clock: Optional[Clock] = None):
        self.kv = kv
        self.clock = clock or Clock()

    def get(self, key: str, max_age_ms: int) -> Optional[Any]:
        raw = self.kv.get(key)
        if raw is None:
            return None
        try:
            envelope = json.loads(raw)
        except ValueError:
            logger.debug("Ignoring malformed cache entry %s", key)
            return None
        if not isinstance(envelope, dict):
            return None

        fetched_at = envelope.get("fetchedAt")
        # bool is an int subclass; reject it explicitly
        if isinstance(fetched_at, bool) or not isinstance(fetched_at, (int, float)):
            return None
        if fetched_at <= 0:
            return None
        if self.clock.now_ms() - fetched_at > max_age_ms:
            return None
        return envelope.get("data")

    def set(self, key: str, value: Any) -> None:
        """Store value under key, stamped with the current time.

        Raises:
            TypeError: if value is not JSON-serializable.
        """
        envelope = {"fetchedAt": self.clock.now_ms(), "data": value}
        self.kv.put(key, json.dumps(envelope))
