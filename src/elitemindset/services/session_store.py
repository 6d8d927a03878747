import logging
import threading
import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from dataclasses import replace
from typing import Callable, List

from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from ..models import CoachingState, Session
from ..settings import Settings
from .redis import RedisCrudService, get_redis_crud_service

logger = logging.getLogger(__name__)

SESSION_KEY_PREFIX = "session:"


class SessionStore(ABC):
    """Per-caller interaction counters keyed by an opaque session key."""

    @abstractmethod
    async def record_interaction(self, key: str, state: CoachingState) -> Session:
        """Increment the counter for key, record state and return a snapshot."""

    @abstractmethod
    async def get(self, key: str) -> Session | None:
        """Return a snapshot of the session for key, or None if unknown."""

    async def close(self) -> None:
        """Release any resources held by the store."""


class _Shard:
    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.sessions: "OrderedDict[str, Session]" = OrderedDict()


class InMemorySessionStore(SessionStore):
    """Bounded in-process store: LRU eviction plus idle TTL, sharded by key.

    Each shard has its own lock, so callers with different keys rarely contend
    and callers with the same key are serialized. ``max_entries`` bounds the
    whole store; when it is exceeded the least recently seen session across
    all shards is evicted.
    """

    def __init__(
        self,
        max_entries: int = 10_000,
        ttl_seconds: float | None = None,
        shards: int = 16,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self._shards: List[_Shard] = [_Shard() for _ in range(max(1, shards))]
        self._max_entries = max_entries
        self._size = 0
        self._size_lock = threading.Lock()
        self._ttl = ttl_seconds if ttl_seconds and ttl_seconds > 0 else None
        self._clock = clock

    def _shard(self, key: str) -> _Shard:
        return self._shards[hash(key) % len(self._shards)]

    def _expired(self, session: Session, now: float) -> bool:
        return self._ttl is not None and now - session.last_seen > self._ttl

    def _adjust_size(self, delta: int) -> int:
        with self._size_lock:
            self._size += delta
            return self._size

    def _purge_expired(self, shard: _Shard, now: float) -> None:
        # Entries are kept in last-access order, so expired ones sit at the front.
        removed = 0
        while shard.sessions:
            oldest = next(iter(shard.sessions.values()))
            if not self._expired(oldest, now):
                break
            shard.sessions.popitem(last=False)
            removed += 1
        if removed:
            self._adjust_size(-removed)

    def _evict_oldest(self, keep: str) -> None:
        # Shard locks are taken one at a time, never nested.
        victim_shard: _Shard | None = None
        victim_key = ""
        oldest_seen = 0.0
        for shard in self._shards:
            with shard.lock:
                for key, session in shard.sessions.items():
                    if key == keep:
                        continue
                    if victim_shard is None or session.last_seen < oldest_seen:
                        victim_shard, victim_key, oldest_seen = shard, key, session.last_seen
                    break
        if victim_shard is None:
            return
        with victim_shard.lock:
            if victim_shard.sessions.pop(victim_key, None) is not None:
                self._adjust_size(-1)
                logger.debug("Evicted session %s", victim_key)

    def _upsert(self, key: str, update: Callable[[Session], None]) -> Session:
        shard = self._shard(key)
        created = False
        with shard.lock:
            now = self._clock()
            self._purge_expired(shard, now)
            session = shard.sessions.get(key)
            if session is None:
                session = Session(key=key)
                shard.sessions[key] = session
                created = True
            else:
                shard.sessions.move_to_end(key)
            update(session)
            session.last_seen = now
            snapshot = replace(session)
        if created and self._adjust_size(1) > self._max_entries:
            self._evict_oldest(keep=key)
        return snapshot

    def increment(self, key: str, state: CoachingState) -> Session:
        """Atomically get-or-create the session, bump its count and return a copy."""

        def bump(session: Session) -> None:
            session.interaction_count += 1
            session.last_state = state

        return self._upsert(key, bump)

    def seed(self, key: str, interaction_count: int, state: CoachingState) -> Session:
        """Raise the stored count to ``interaction_count``; never lowers it."""

        def raise_to(session: Session) -> None:
            if interaction_count > session.interaction_count:
                session.interaction_count = interaction_count
            session.last_state = state

        return self._upsert(key, raise_to)

    def lookup(self, key: str) -> Session | None:
        shard = self._shard(key)
        with shard.lock:
            session = shard.sessions.get(key)
            if session is None or self._expired(session, self._clock()):
                return None
            return replace(session)

    def __len__(self) -> int:
        return sum(len(shard.sessions) for shard in self._shards)

    async def record_interaction(self, key: str, state: CoachingState) -> Session:
        return self.increment(key, state)

    async def get(self, key: str) -> Session | None:
        return self.lookup(key)


class RedisSessionStore(SessionStore):
    """Counters kept in Redis hashes with expiry; degrades to memory on errors.

    Every count Redis hands out is mirrored into the memory store, so an outage
    continues from the last known value. When Redis answers again with a count
    the memory store has already reached, the larger value wins and is written
    back with HSET.
    """

    def __init__(
        self,
        redis_crud: RedisCrudService,
        ttl_seconds: int | None,
        fallback: InMemorySessionStore,
        retry_seconds: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._redis = redis_crud
        self._ttl = ttl_seconds
        self._fallback = fallback
        self._retry_seconds = retry_seconds
        self._clock = clock
        self._next_connect_at = 0.0

    def _key(self, key: str) -> str:
        return f"{SESSION_KEY_PREFIX}{key}"

    async def _ensure_connected(self) -> None:
        if self._redis.client is not None or self._clock() < self._next_connect_at:
            return
        try:
            await self._redis.connect()
        except (RedisConnectionError, RedisTimeoutError, ConnectionError, TimeoutError) as e:
            self._next_connect_at = self._clock() + self._retry_seconds
            logger.warning(
                "Session store unavailable (Redis), counting in memory; retry in %.0fs: %s",
                self._retry_seconds,
                e,
            )

    async def record_interaction(self, key: str, state: CoachingState) -> Session:
        await self._ensure_connected()
        redis_key = self._key(key)
        count = await self._redis.increment_hash(
            redis_key,
            "interaction_count",
            {"last_state": state.value},
            ttl_seconds=self._ttl,
        )
        if count is None:
            logger.warning("Redis increment unavailable for session %s; using memory", key)
            return await self._fallback.record_interaction(key, state)

        known = self._fallback.lookup(key)
        if known is not None and known.interaction_count >= count:
            count = known.interaction_count + 1
            logger.info("Reconciled session %s to count %d after Redis outage", key, count)
            await self._redis.set_hash(
                redis_key,
                {"interaction_count": str(count), "last_state": state.value},
                ttl_seconds=self._ttl,
            )
        return self._fallback.seed(key, count, state)

    async def get(self, key: str) -> Session | None:
        await self._ensure_connected()
        data = await self._redis.get_hash(self._key(key))
        if data is None:
            return await self._fallback.get(key)
        try:
            last_state = data.get("last_state")
            return Session(
                key=key,
                interaction_count=int(data.get("interaction_count", 0)),
                last_state=CoachingState(last_state) if last_state else None,
            )
        except (TypeError, ValueError) as e:
            logger.warning("Invalid session data for %s: %s", key, e)
            return None

    async def close(self) -> None:
        await self._redis.close()


def build_session_store(settings: Settings) -> SessionStore:
    """Return a Redis-backed store if redis_url is configured, else in-memory."""
    memory = InMemorySessionStore(
        max_entries=settings.session_max_entries,
        ttl_seconds=settings.session_ttl_seconds,
        shards=settings.session_shards,
    )
    redis_crud = get_redis_crud_service(settings.redis_url)
    if redis_crud is None:
        return memory
    return RedisSessionStore(
        redis_crud=redis_crud,
        ttl_seconds=settings.session_ttl_seconds,
        fallback=memory,
        retry_seconds=settings.redis_retry_seconds,
    )
