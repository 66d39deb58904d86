"""Per-phone conversational state with slot-scoped expiry.

Each phone number owns four independent slots. Writing a slot replaces any
previous value for that number; reading a slot whose value is older than the
slot's TTL behaves as if nothing was stored.
"""

import json
import logging
import threading
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any

import redis

logger = logging.getLogger(__name__)


class Slot(str, Enum):
    """Named session slots tracked per phone number."""

    LAST_BUS_QUERY = "last_bus_query"
    PENDING_RIDE = "pending_ride"
    ACTIVE_RIDE = "active_ride"
    PENDING_AUTH = "pending_auth"


# None means the slot never expires on its own
DEFAULT_TTLS: dict[Slot, timedelta | None] = {
    Slot.LAST_BUS_QUERY: timedelta(minutes=20),
    Slot.PENDING_RIDE: timedelta(minutes=10),
    Slot.PENDING_AUTH: timedelta(minutes=10),
    Slot.ACTIVE_RIDE: None,
}

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(UTC)


class SessionStore:
    """In-memory session store.

    Safe for concurrent use across phone numbers; each slot write is atomic.
    """

    def __init__(
        self,
        ttls: dict[Slot, timedelta | None] | None = None,
        clock: Clock | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            ttls: Optional per-slot TTL overrides
            clock: Callable returning the current UTC time (injectable for tests)
        """
        self.ttls = {**DEFAULT_TTLS, **(ttls or {})}
        self.clock = clock or _utcnow
        # Maps (phone, slot) -> (captured_at, value)
        self._entries: dict[tuple[str, Slot], tuple[datetime, dict[str, Any]]] = {}
        self._lock = threading.Lock()

    def _is_expired(self, slot: Slot, captured_at: datetime, now: datetime) -> bool:
        ttl = self.ttls.get(slot)
        return ttl is not None and now - captured_at > ttl

    def put(self, phone: str, slot: Slot, value: dict[str, Any]) -> None:
        """Store a value in a slot, replacing any previous value.

        Args:
            phone: Sender phone number
            slot: Slot to write
            value: JSON-serialisable payload
        """
        if not phone:
            return

        with self._lock:
            self._entries[(phone, slot)] = (self.clock(), dict(value))

    def get(self, phone: str, slot: Slot) -> dict[str, Any] | None:
        """Read a slot.

        Args:
            phone: Sender phone number
            slot: Slot to read

        Returns:
            Copy of the stored value with a ``captured_at`` ISO timestamp,
            or None if absent or expired
        """
        if not phone:
            return None

        with self._lock:
            entry = self._entries.get((phone, slot))
            if entry is None:
                return None

            captured_at, value = entry
            if self._is_expired(slot, captured_at, self.clock()):
                del self._entries[(phone, slot)]
                return None

        return {**value, "captured_at": captured_at.isoformat()}

    def clear(self, phone: str, slot: Slot) -> None:
        """Remove a slot value for a phone number."""
        with self._lock:
            self._entries.pop((phone, slot), None)

    def clear_all(self, phone: str) -> None:
        """Remove every slot for a phone number."""
        with self._lock:
            for slot in Slot:
                self._entries.pop((phone, slot), None)

    def cleanup_expired(self) -> int:
        """Remove all expired entries.

        Reads already ignore expired values; this only reclaims memory.

        Returns:
            Number of entries removed
        """
        now = self.clock()
        with self._lock:
            expired = [
                key
                for key, (captured_at, _) in self._entries.items()
                if self._is_expired(key[1], captured_at, now)
            ]
            for key in expired:
                del self._entries[key]

        return len(expired)


class RedisSessionStore:
    """Redis-backed session store.

    This implementation provides:
    - Session state that survives process restarts and is shared by workers
    - Redis key TTLs for storage hygiene, plus lazy expiry checks at read time
    - Fallback to in-memory if Redis unavailable
    """

    def __init__(
        self,
        redis_client: redis.Redis | None = None,
        ttls: dict[Slot, timedelta | None] | None = None,
        clock: Clock | None = None,
        key_prefix: str = "sms_session:",
    ) -> None:
        """Initialize the Redis-backed store.

        Args:
            redis_client: Redis client instance (None to use in-memory fallback)
            ttls: Optional per-slot TTL overrides
            clock: Callable returning the current UTC time
            key_prefix: Prefix for Redis keys (default: "sms_session:")
        """
        self.redis = redis_client
        self.ttls = {**DEFAULT_TTLS, **(ttls or {})}
        self.clock = clock or _utcnow
        self.key_prefix = key_prefix

        if self.redis is None:
            logger.warning("Redis not available, using in-memory fallback for session store")
            self._fallback: SessionStore | None = SessionStore(ttls=self.ttls, clock=self.clock)
        else:
            logger.info("Using Redis-backed session store")
            self._fallback = None

    def _make_redis_key(self, phone: str, slot: Slot) -> str:
        """Create a Redis key for a phone/slot pair."""
        return f"{self.key_prefix}{phone}:{slot.value}"

    def put(self, phone: str, slot: Slot, value: dict[str, Any]) -> None:
        """Store a value in a slot, replacing any previous value."""
        if not phone:
            return

        if self._fallback is not None:
            self._fallback.put(phone, slot, value)
            return

        captured_at = self.clock()
        serialized = json.dumps({"captured_at": captured_at.isoformat(), "value": value})
        redis_key = self._make_redis_key(phone, slot)
        ttl = self.ttls.get(slot)

        try:
            if ttl is None:
                self.redis.set(redis_key, serialized)
            else:
                self.redis.setex(redis_key, int(ttl.total_seconds()), serialized)
            logger.debug("Stored %s for %s", slot.value, phone[-4:])
        except redis.RedisError as e:
            logger.error("Redis error storing session slot %s: %s", slot.value, e)

    def get(self, phone: str, slot: Slot) -> dict[str, Any] | None:
        """Read a slot, returning None if absent or expired."""
        if not phone:
            return None

        if self._fallback is not None:
            return self._fallback.get(phone, slot)

        redis_key = self._make_redis_key(phone, slot)
        try:
            data = self.redis.get(redis_key)
            if data is None:
                return None

            if isinstance(data, bytes):
                data = data.decode()

            obj = json.loads(data)
            captured_at = datetime.fromisoformat(obj["captured_at"])
            ttl = self.ttls.get(slot)
            if ttl is not None and self.clock() - captured_at > ttl:
                self.redis.delete(redis_key)
                return None

            return {**obj["value"], "captured_at": obj["captured_at"]}

        except redis.RedisError as e:
            logger.error("Redis error reading session slot %s: %s", slot.value, e)
            return None
        except (json.JSONDecodeError, KeyError, ValueError) as e:
            logger.error("Error deserializing session slot %s: %s", slot.value, e)
            return None

    def clear(self, phone: str, slot: Slot) -> None:
        """Remove a slot value for a phone number."""
        if self._fallback is not None:
            self._fallback.clear(phone, slot)
            return

        try:
            self.redis.delete(self._make_redis_key(phone, slot))
        except redis.RedisError as e:
            logger.error("Redis error clearing session slot %s: %s", slot.value, e)

    def clear_all(self, phone: str) -> None:
        """Remove every slot for a phone number."""
        if self._fallback is not None:
            self._fallback.clear_all(phone)
            return

        try:
            self.redis.delete(*(self._make_redis_key(phone, slot) for slot in Slot))
        except redis.RedisError as e:
            logger.error("Redis error clearing session for %s: %s", phone[-4:], e)

    def cleanup_expired(self) -> int:
        """Remove expired entries.

        Redis expires keys on its own, so only the fallback has work to do.
        """
        if self._fallback is not None:
            return self._fallback.cleanup_expired()

        logger.debug("cleanup_expired called on Redis backend (no-op)")
        return 0
