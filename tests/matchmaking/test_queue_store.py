import pytest

from duelqueue.data.repositories import InMemoryQueueStore
from duelqueue.data.repositories.queue_store import MODE_SWITCH_REPLACE
from duelqueue.errors import AlreadyQueuedError, PairingInProgress


@pytest.mark.asyncio
async def test_enqueue_and_snapshot_oldest_first(store, clock):
    await store.enqueue("a", "ranked", 1500)
    clock.advance(1)
    await store.enqueue("b", "ranked", 1400)
    await store.enqueue("c", "casual", 1300)

    snapshot = await store.snapshot("ranked")

    assert [e.user_id for e in snapshot] == ["a", "b"]
    assert await store.modes() == ["casual", "ranked"]


@pytest.mark.asyncio
async def test_same_timestamp_keeps_insertion_order(store):
    for user_id in ("z", "y", "x"):
        await store.enqueue(user_id, "ranked", 1500)

    snapshot = await store.snapshot("ranked")

    assert [e.user_id for e in snapshot] == ["z", "y", "x"]


@pytest.mark.asyncio
async def test_dequeue_is_idempotent(store):
    await store.enqueue("a", "ranked", 1500)

    assert await store.dequeue("a") is True
    assert await store.dequeue("a") is False
    assert await store.dequeue("never-queued") is False


@pytest.mark.asyncio
async def test_enqueue_same_mode_replaces_entry(store, clock):
    await store.enqueue("a", "ranked", 1500)
    clock.advance(10)
    entry = await store.enqueue("a", "ranked", 1520)

    assert len(store) == 1
    assert entry.rating == 1520
    assert entry.queued_at == clock()


@pytest.mark.asyncio
async def test_enqueue_other_mode_is_rejected(store):
    await store.enqueue("a", "ranked", 1500)

    with pytest.raises(AlreadyQueuedError) as exc_info:
        await store.enqueue("a", "casual", 1500)

    assert exc_info.value.status_code == 409
    assert (await store.get("a")).mode == "ranked"


@pytest.mark.asyncio
async def test_enqueue_other_mode_replaces_with_replace_policy(clock):
    store = InMemoryQueueStore(clock=clock, mode_switch_policy=MODE_SWITCH_REPLACE)
    await store.enqueue("a", "ranked", 1500)
    await store.enqueue("a", "casual", 1500)

    assert await store.snapshot("ranked") == []
    assert [e.user_id for e in await store.snapshot("casual")] == ["a"]


def test_unknown_mode_switch_policy():
    with pytest.raises(ValueError):
        InMemoryQueueStore(mode_switch_policy="merge")


@pytest.mark.asyncio
async def test_enqueue_while_claimed_is_rejected(store):
    await store.enqueue("a", "ranked", 1500)
    await store.try_claim("a")

    with pytest.raises(AlreadyQueuedError):
        await store.enqueue("a", "ranked", 1500)


@pytest.mark.asyncio
async def test_claim_is_exclusive(store):
    await store.enqueue("a", "ranked", 1500)

    token = await store.try_claim("a")

    assert token is not None
    assert token.mode == "ranked"
    assert await store.try_claim("a") is None
    assert (await store.get("a")).claimed


@pytest.mark.asyncio
async def test_claim_missing_player(store):
    assert await store.try_claim("ghost") is None


@pytest.mark.asyncio
async def test_release_makes_entry_claimable_again(store):
    await store.enqueue("a", "ranked", 1500)
    token = await store.try_claim("a")

    assert await store.release(token) is True
    assert not (await store.get("a")).claimed
    assert await store.try_claim("a") is not None


@pytest.mark.asyncio
async def test_stale_token_cannot_release_or_remove(store):
    await store.enqueue("a", "ranked", 1500)
    stale = await store.try_claim("a")
    await store.release(stale)
    current = await store.try_claim("a")

    assert await store.release(stale) is False
    assert await store.remove(stale) is False
    assert await store.remove(current) is True
    assert await store.get("a") is None


@pytest.mark.asyncio
async def test_claim_wins_over_dequeue(store):
    await store.enqueue("a", "ranked", 1500)
    token = await store.try_claim("a")

    with pytest.raises(PairingInProgress):
        await store.dequeue("a")

    assert (await store.get("a")).claimed
    assert await store.remove(token) is True
    assert await store.dequeue("a") is False


@pytest.mark.asyncio
async def test_dequeue_after_release(store):
    await store.enqueue("a", "ranked", 1500)
    token = await store.try_claim("a")
    await store.release(token)

    assert await store.dequeue("a") is True


@pytest.mark.asyncio
async def test_snapshot_returns_copies(store):
    await store.enqueue("a", "ranked", 1500)

    snapshot = await store.snapshot("ranked")
    snapshot[0].claim_id = "tampered"

    assert not (await store.get("a")).claimed
