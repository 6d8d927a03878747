from concurrent.futures import ThreadPoolExecutor

import pytest

from elitemindset.models import CoachingState
from elitemindset.services.session_store import (
    InMemorySessionStore,
    RedisSessionStore,
    build_session_store,
)
from elitemindset.settings import Settings


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def store() -> InMemorySessionStore:
    return InMemorySessionStore(max_entries=100, shards=4)


@pytest.mark.asyncio
async def test_sequential_counts(store: InMemorySessionStore) -> None:
    """n calls with the same key yield counts 1..n in order."""
    counts = [
        (await store.record_interaction("s1", CoachingState.STUCK)).interaction_count
        for _ in range(5)
    ]
    assert counts == [1, 2, 3, 4, 5]


@pytest.mark.asyncio
async def test_keys_do_not_share_counters(store: InMemorySessionStore) -> None:
    await store.record_interaction("a", CoachingState.STUCK)
    await store.record_interaction("a", CoachingState.STUCK)
    b = await store.record_interaction("b", CoachingState.STUCK)
    assert b.interaction_count == 1
    a = await store.get("a")
    assert a is not None and a.interaction_count == 2


@pytest.mark.asyncio
async def test_records_last_state(store: InMemorySessionStore) -> None:
    await store.record_interaction("s", CoachingState.STUCK)
    await store.record_interaction("s", CoachingState.READY_TO_ACT)
    session = await store.get("s")
    assert session is not None
    assert session.last_state is CoachingState.READY_TO_ACT


@pytest.mark.asyncio
async def test_get_unknown_returns_none(store: InMemorySessionStore) -> None:
    assert await store.get("missing") is None


def test_returned_session_is_a_snapshot(store: InMemorySessionStore) -> None:
    first = store.increment("s", CoachingState.STUCK)
    store.increment("s", CoachingState.STUCK)
    assert first.interaction_count == 1


def test_concurrent_increments_same_key_are_not_lost(store: InMemorySessionStore) -> None:
    """Concurrent callers with one key see each count value exactly once."""
    with ThreadPoolExecutor(max_workers=8) as pool:
        counts = list(
            pool.map(
                lambda _: store.increment("shared", CoachingState.STUCK).interaction_count,
                range(200),
            )
        )
    assert sorted(counts) == list(range(1, 201))


def test_lru_eviction_bounds_the_store() -> None:
    """Least recently used session is evicted once capacity is exceeded."""
    store = InMemorySessionStore(max_entries=2, shards=1)
    store.increment("a", CoachingState.STUCK)
    store.increment("b", CoachingState.STUCK)
    store.increment("a", CoachingState.STUCK)
    store.increment("c", CoachingState.STUCK)
    assert len(store) == 2
    assert store.lookup("b") is None
    assert store.lookup("a").interaction_count == 2


def test_idle_ttl_restarts_counter() -> None:
    clock = FakeClock()
    store = InMemorySessionStore(max_entries=10, ttl_seconds=60, shards=1, clock=clock)
    store.increment("a", CoachingState.STUCK)
    store.increment("a", CoachingState.STUCK)
    clock.now += 30
    assert store.increment("a", CoachingState.STUCK).interaction_count == 3
    clock.now += 61
    assert store.lookup("a") is None
    assert store.increment("a", CoachingState.STUCK).interaction_count == 1


def test_expired_entries_are_purged() -> None:
    clock = FakeClock()
    store = InMemorySessionStore(max_entries=10, ttl_seconds=10, shards=1, clock=clock)
    store.increment("old", CoachingState.STUCK)
    clock.now += 11
    store.increment("new", CoachingState.STUCK)
    assert len(store) == 1


def test_bound_applies_to_whole_store() -> None:
    """Sessions are kept up to max_entries in total, however keys hash to shards."""
    clock = FakeClock()
    store = InMemorySessionStore(max_entries=4, shards=4, clock=clock)
    for key in ("k0", "k1", "k2", "k3"):
        clock.now += 1
        store.increment(key, CoachingState.STUCK)
    assert len(store) == 4
    assert all(store.lookup(key) is not None for key in ("k0", "k1", "k2", "k3"))

    clock.now += 1
    store.increment("k0", CoachingState.STUCK)
    clock.now += 1
    store.increment("k4", CoachingState.STUCK)
    assert len(store) == 4
    assert store.lookup("k1") is None
    assert store.lookup("k0").interaction_count == 2
    assert store.lookup("k4").interaction_count == 1


def test_seed_only_raises_the_count(store: InMemorySessionStore) -> None:
    assert store.seed("s", 4, CoachingState.STUCK).interaction_count == 4
    assert store.seed("s", 2, CoachingState.READY_TO_ACT).interaction_count == 4
    assert store.increment("s", CoachingState.STUCK).interaction_count == 5


def test_rejects_non_positive_capacity() -> None:
    with pytest.raises(ValueError):
        InMemorySessionStore(max_entries=0)


def test_build_session_store_memory_when_no_redis() -> None:
    settings = Settings(redis_url=None, session_max_entries=5)
    assert isinstance(build_session_store(settings), InMemorySessionStore)


def test_build_session_store_redis_when_url_set() -> None:
    settings = Settings(redis_url="redis://localhost:6379/0")
    assert isinstance(build_session_store(settings), RedisSessionStore)
