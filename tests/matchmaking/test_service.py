import asyncio

import pytest

from duelqueue.data.schemas import MatchTier, OutcomeStatus
from duelqueue.errors import (
    AlreadyQueuedError,
    PairingInProgress,
    ResourceNotFoundException,
    SearchTimedOut,
    ValidationException,
)


@pytest.mark.asyncio
async def test_join_queue_uses_stored_rating(service, ratings, store):
    ratings["a"] = 1640

    status = await service.join_queue("a", "ranked")

    assert status.in_queue is True
    assert status.rating == 1640
    assert status.position == 1
    assert status.queue_size == 1
    assert status.allowed_range == 50
    assert status.tier is MatchTier.CLOSE
    assert status.estimated_wait_seconds == 5
    assert (await store.get("a")).rating == 1640


@pytest.mark.asyncio
async def test_join_unknown_mode(service, store):
    with pytest.raises(ValidationException):
        await service.join_queue("a", "blitz")

    assert await store.get("a") is None


@pytest.mark.asyncio
async def test_join_in_second_mode_is_rejected(service):
    await service.join_queue("a", "ranked")

    with pytest.raises(AlreadyQueuedError):
        await service.join_queue("a", "casual")


@pytest.mark.asyncio
async def test_queue_status_position_and_estimate(service, clock):
    for user_id in ("a", "b", "c"):
        await service.join_queue(user_id, "ranked")
        clock.advance(1)

    status = await service.queue_status("c")

    assert status.position == 3
    assert status.queue_size == 3
    assert status.estimated_wait_seconds == 30
    assert status.wait_seconds == 1.0


@pytest.mark.asyncio
async def test_queue_status_not_queued(service):
    status = await service.queue_status("nobody")

    assert status.in_queue is False
    assert status.position is None


@pytest.mark.asyncio
async def test_leave_queue_cancels_search(service, broker, notify_player):
    await service.join_queue("a", "ranked")

    assert await service.leave_queue("a") is True
    assert await service.leave_queue("a") is False

    assert broker.latest("a").status is OutcomeStatus.CANCELLED
    notify_player.assert_awaited_once()
    assert notify_player.await_args.args[1]["status"] == "search_cancelled"


@pytest.mark.asyncio
async def test_wait_for_match_resolves_after_tick(service, ratings):
    ratings["a"] = 1500
    ratings["b"] = 1510
    await service.join_queue("a", "ranked")
    await service.join_queue("b", "ranked")

    waiter = asyncio.create_task(service.wait_for_match("a", timeout=1))
    await asyncio.sleep(0)
    report = await service.run_once()
    outcome = await waiter

    assert report.committed == [outcome.match_id]
    assert outcome.status is OutcomeStatus.MATCHED
    assert outcome.opponent_id == "b"


@pytest.mark.asyncio
async def test_wait_for_match_still_searching(service):
    await service.join_queue("a", "ranked")

    assert await service.wait_for_match("a", timeout=0.01) is None


@pytest.mark.asyncio
async def test_wait_for_match_without_search(service):
    with pytest.raises(ResourceNotFoundException):
        await service.wait_for_match("nobody", timeout=0.01)


@pytest.mark.asyncio
async def test_wait_for_match_after_timeout(service, clock):
    await service.join_queue("a", "ranked")
    clock.advance(300)
    await service.run_once()

    with pytest.raises(SearchTimedOut) as exc_info:
        await service.wait_for_match("a", timeout=0.01)

    assert exc_info.value.status_code == 408


@pytest.mark.asyncio
async def test_queue_stats(service, ratings, clock):
    ratings["a"] = 1000
    ratings["b"] = 2000
    await service.join_queue("a", "ranked")
    clock.advance(60)
    await service.join_queue("b", "ranked")

    stats = await service.queue_stats()

    assert stats.total_in_queue == 2
    assert stats.modes["ranked"].queue_size == 2
    assert stats.modes["ranked"].max_wait_seconds == 60.0
    assert stats.modes["ranked"].average_wait_seconds == 30.0
    assert stats.modes["ranked"].average_allowed_range == 125.0
    assert stats.modes["casual"].queue_size == 0


@pytest.mark.asyncio
async def test_leave_during_match_creation_keeps_the_match(
    service, create_match, broker, notify_player
):
    release = asyncio.Event()
    entered = asyncio.Event()

    async def slow_create(player1, player2, mode, puzzle):
        entered.set()
        await release.wait()
        return "m1"

    create_match.side_effect = slow_create
    await service.join_queue("a", "ranked")
    await service.join_queue("b", "ranked")

    tick = asyncio.create_task(service.run_once())
    await entered.wait()
    with pytest.raises(PairingInProgress):
        await service.leave_queue("a")
    release.set()
    report = await tick

    assert report.committed == ["m1"]
    assert broker.latest("a").status is OutcomeStatus.MATCHED
    sent_to_a = [
        call.args[1]["status"] for call in notify_player.await_args_list if call.args[0] == "a"
    ]
    assert sent_to_a == ["match_found"]


@pytest.mark.asyncio
async def test_leaving_clears_creation_failures(service, create_match):
    create_match.side_effect = RuntimeError("database is down")
    await service.join_queue("a", "ranked")
    await service.join_queue("b", "ranked")

    report = await service.run_once()
    assert report.failed == 1
    assert service.driver.committer.pending_failures == 1

    assert await service.leave_queue("a") is True
    assert service.driver.committer.pending_failures == 0


@pytest.mark.asyncio
async def test_finished_searches_are_released(service, broker, store, clock):
    for i in range(50):
        await service.join_queue(f"p{i}", "ranked")

    await service.run_once()
    assert len(store) == 0
    assert len(broker) == 50

    clock.advance(300)
    await service.run_once()

    assert len(broker) == 0
