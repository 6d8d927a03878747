from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from elitemindset.models import CoachingState
from elitemindset.services.redis import RedisCrudService
from elitemindset.services.session_store import InMemorySessionStore, RedisSessionStore


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def mock_redis_crud() -> MagicMock:
    """Mock Redis CRUD with async hash operations; connect() sets a client."""
    m = MagicMock(spec=RedisCrudService)
    m.client = None

    async def _connect() -> None:
        m.client = MagicMock()

    m.connect = AsyncMock(side_effect=_connect)
    m.close = AsyncMock(return_value=None)
    m.increment_hash = AsyncMock(return_value=1)
    m.set_hash = AsyncMock(return_value=True)
    m.get_hash = AsyncMock(return_value=None)
    return m


@pytest.fixture
def fallback() -> InMemorySessionStore:
    return InMemorySessionStore(max_entries=10, shards=1)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def redis_store(
    mock_redis_crud: MagicMock, fallback: InMemorySessionStore, clock: FakeClock
) -> RedisSessionStore:
    """RedisSessionStore with mocked Redis, TTL 3600 and a 30s reconnect backoff."""
    return RedisSessionStore(
        redis_crud=mock_redis_crud,
        ttl_seconds=3600,
        fallback=fallback,
        retry_seconds=30,
        clock=clock,
    )


@pytest.mark.asyncio
async def test_record_interaction_uses_redis_counter(
    redis_store: RedisSessionStore, mock_redis_crud: MagicMock
) -> None:
    mock_redis_crud.increment_hash.return_value = 3
    session = await redis_store.record_interaction("s1", CoachingState.STUCK)
    assert session.interaction_count == 3
    assert session.last_state is CoachingState.STUCK
    mock_redis_crud.increment_hash.assert_awaited_once_with(
        "session:s1", "interaction_count", {"last_state": "stuck"}, ttl_seconds=3600
    )
    mock_redis_crud.set_hash.assert_not_awaited()


@pytest.mark.asyncio
async def test_redis_counts_are_mirrored_in_memory(
    redis_store: RedisSessionStore,
    mock_redis_crud: MagicMock,
    fallback: InMemorySessionStore,
) -> None:
    mock_redis_crud.increment_hash.return_value = 7
    await redis_store.record_interaction("s1", CoachingState.READY_TO_ACT)
    mirrored = fallback.lookup("s1")
    assert mirrored.interaction_count == 7
    assert mirrored.last_state is CoachingState.READY_TO_ACT


@pytest.mark.asyncio
async def test_outage_mid_session_keeps_counts_increasing(
    redis_store: RedisSessionStore, mock_redis_crud: MagicMock
) -> None:
    """A failed increment continues from the last count; recovery reconciles upward."""
    mock_redis_crud.increment_hash.side_effect = [1, 2, 3, 4, None, 5]
    counts = [
        (await redis_store.record_interaction("s", CoachingState.STUCK)).interaction_count
        for _ in range(6)
    ]
    assert counts == [1, 2, 3, 4, 5, 6]
    mock_redis_crud.set_hash.assert_awaited_once_with(
        "session:s",
        {"interaction_count": "6", "last_state": "stuck"},
        ttl_seconds=3600,
    )


@pytest.mark.asyncio
async def test_connects_once_while_connected(
    redis_store: RedisSessionStore, mock_redis_crud: MagicMock
) -> None:
    await redis_store.record_interaction("s1", CoachingState.STUCK)
    await redis_store.record_interaction("s1", CoachingState.STUCK)
    mock_redis_crud.connect.assert_awaited_once()


@pytest.mark.asyncio
async def test_falls_back_to_memory_when_redis_unavailable(
    redis_store: RedisSessionStore,
    mock_redis_crud: MagicMock,
    fallback: InMemorySessionStore,
) -> None:
    """Connection failure degrades to in-memory counting instead of raising."""
    mock_redis_crud.connect.side_effect = RedisConnectionError("down")
    mock_redis_crud.increment_hash.return_value = None
    first = await redis_store.record_interaction("s1", CoachingState.STUCK)
    second = await redis_store.record_interaction("s1", CoachingState.STUCK)
    assert (first.interaction_count, second.interaction_count) == (1, 2)
    assert fallback.lookup("s1").interaction_count == 2


@pytest.mark.asyncio
async def test_reconnects_after_backoff(
    redis_store: RedisSessionStore, mock_redis_crud: MagicMock, clock: FakeClock
) -> None:
    """A failed connect is retried once the backoff has elapsed, not only once."""
    mock_redis_crud.connect.side_effect = RedisConnectionError("down")
    mock_redis_crud.increment_hash.return_value = None
    await redis_store.record_interaction("s1", CoachingState.STUCK)
    clock.now += 10
    await redis_store.record_interaction("s1", CoachingState.STUCK)
    assert mock_redis_crud.connect.await_count == 1

    clock.now += 25
    await redis_store.record_interaction("s1", CoachingState.STUCK)
    assert mock_redis_crud.connect.await_count == 2


@pytest.mark.asyncio
async def test_recovery_after_startup_outage_continues_from_memory(
    redis_store: RedisSessionStore, mock_redis_crud: MagicMock, clock: FakeClock
) -> None:
    """Counts taken in memory during an outage are not repeated once Redis is back."""
    attempts = []

    async def _connect() -> None:
        attempts.append(1)
        if len(attempts) == 1:
            raise RedisConnectionError("down")
        mock_redis_crud.client = MagicMock()

    mock_redis_crud.connect.side_effect = _connect
    mock_redis_crud.increment_hash.side_effect = [None, None, 1]
    counts = []
    for _ in range(2):
        session = await redis_store.record_interaction("s", CoachingState.STUCK)
        counts.append(session.interaction_count)
    clock.now += 31
    session = await redis_store.record_interaction("s", CoachingState.STUCK)
    counts.append(session.interaction_count)
    assert counts == [1, 2, 3]
    mock_redis_crud.set_hash.assert_awaited_once()


@pytest.mark.asyncio
async def test_get_parses_hash(
    redis_store: RedisSessionStore, mock_redis_crud: MagicMock
) -> None:
    mock_redis_crud.get_hash.return_value = {
        "interaction_count": "4",
        "last_state": "ready_to_act",
    }
    session = await redis_store.get("s1")
    assert session is not None
    assert session.interaction_count == 4
    assert session.last_state is CoachingState.READY_TO_ACT
    mock_redis_crud.get_hash.assert_awaited_once_with("session:s1")


@pytest.mark.asyncio
async def test_get_invalid_data_returns_none(
    redis_store: RedisSessionStore, mock_redis_crud: MagicMock
) -> None:
    mock_redis_crud.get_hash.return_value = {"interaction_count": "x"}
    assert await redis_store.get("s1") is None


@pytest.mark.asyncio
async def test_close_closes_redis(
    redis_store: RedisSessionStore, mock_redis_crud: MagicMock
) -> None:
    await redis_store.close()
    mock_redis_crud.close.assert_awaited_once()
