from typing import Awaitable, Callable, Iterable, Optional

from duelqueue.business.matchmaking import (
    MatchmakingDriver,
    UNBOUNDED_RANGE,
    OutcomeBroker,
    RangeEscalationPolicy,
)
from duelqueue.config import logger
from duelqueue.data.repositories.queue_store import QueueStore
from duelqueue.data.schemas import (
    ModeStats,
    OutcomeStatus,
    QueueStats,
    QueueStatus,
    SearchOutcome,
    TickReport,
)
from duelqueue.errors import (
    PairingInProgress,
    ResourceNotFoundException,
    SearchTimedOut,
    ValidationException,
)
from duelqueue.utils.clock import Clock, utc_now

service_logger = logger.getChild("matchmaking.service")

RatingProvider = Callable[[str], Awaitable[int]]

# Rough per-position wait used for the estimate shown to players
SECONDS_PER_POSITION = 15
MIN_ESTIMATED_WAIT = 5


class MatchmakingService:
    """
    Entry point used by the API layer. Owns no state of its own, it ties the
    queue store, the driver and the outcome broker together.
    """

    def __init__(
        self,
        store: QueueStore,
        driver: MatchmakingDriver,
        broker: OutcomeBroker,
        policy: RangeEscalationPolicy,
        rating_provider: RatingProvider,
        modes: Iterable[str],
        close_range: int = 50,
        clock: Clock = utc_now,
    ):
        self.store = store
        self.driver = driver
        self.broker = broker
        self.policy = policy
        self.rating_provider = rating_provider
        self.modes = list(modes)
        self.close_range = close_range
        self.clock = clock

    async def join_queue(self, user_id: str, mode: str) -> QueueStatus:
        if mode not in self.modes:
            service_logger.warning(f"Join rejected for player {user_id}: unknown mode {mode}")
            raise ValidationException(
                detail=f"Unknown mode '{mode}'. Available modes: {', '.join(self.modes)}"
            )

        rating = await self.rating_provider(user_id)
        await self.store.enqueue(user_id, mode, rating)
        self.broker.open(user_id)
        service_logger.info(f"Player {user_id} joined the {mode} queue with rating {rating}")
        return await self.queue_status(user_id)

    async def leave_queue(self, user_id: str) -> bool:
        """
        Cancel the player's search. Raises PairingInProgress when a pairing
        already claimed the entry, in which case the match goes ahead.
        """
        entry = await self.store.get(user_id)
        try:
            removed = await self.store.dequeue(user_id)
        except PairingInProgress:
            service_logger.info(f"Player {user_id} tried to leave while being paired")
            raise
        if not removed:
            service_logger.info(f"Player {user_id} was not in the queue")
            return False

        self.driver.committer.forget(user_id)
        await self.broker.announce(
            SearchOutcome(
                user_id=user_id,
                mode=entry.mode if entry else "",
                status=OutcomeStatus.CANCELLED,
            ),
            {"status": "search_cancelled", "mode": entry.mode if entry else None},
        )
        service_logger.info(f"Player {user_id} left the queue")
        return True

    async def queue_status(self, user_id: str) -> QueueStatus:
        entry = await self.store.get(user_id)
        if entry is None:
            return QueueStatus(in_queue=False, user_id=user_id)

        now = self.clock()
        snapshot = await self.store.snapshot(entry.mode)
        position = next(
            (i + 1 for i, e in enumerate(snapshot) if e.user_id == user_id),
            len(snapshot),
        )
        return QueueStatus(
            in_queue=True,
            user_id=user_id,
            mode=entry.mode,
            rating=entry.rating,
            position=position,
            queue_size=len(snapshot),
            queued_at=entry.queued_at,
            wait_seconds=round(entry.wait_seconds(now), 3),
            allowed_range=self.policy.allowed_range(entry, now),
            tier=self.policy.tier_for(entry, now, self.close_range),
            estimated_wait_seconds=max(
                MIN_ESTIMATED_WAIT, (position - 1) * SECONDS_PER_POSITION
            ),
        )

    async def wait_for_match(
        self, user_id: str, timeout: Optional[float]
    ) -> Optional[SearchOutcome]:
        """
        Block until the player's search ends or `timeout` runs out.

        Returns None while the search is still going on. Raises
        SearchTimedOut when the search was evicted for waiting too long.
        """
        if not self.broker.has_search(user_id) and await self.store.get(user_id) is None:
            raise ResourceNotFoundException(detail="Player has no active search")

        outcome = await self.broker.wait(user_id, timeout)
        if outcome is not None and outcome.status is OutcomeStatus.TIMED_OUT:
            raise SearchTimedOut(user_id, outcome.mode)
        return outcome

    async def queue_stats(self) -> QueueStats:
        now = self.clock()
        stats = QueueStats()
        modes = list(self.modes)
        for mode in await self.store.modes():
            if mode not in modes:
                modes.append(mode)

        for mode in modes:
            snapshot = await self.store.snapshot(mode)
            mode_stats = ModeStats(queue_size=len(snapshot))
            if snapshot:
                waits = [e.wait_seconds(now) for e in snapshot]
                # Desperate players accept anyone, they would swamp the average
                ranges = [
                    r
                    for r in (self.policy.allowed_range(e, now) for e in snapshot)
                    if r != UNBOUNDED_RANGE
                ]
                mode_stats.average_wait_seconds = round(sum(waits) / len(waits), 3)
                mode_stats.max_wait_seconds = round(max(waits), 3)
                if ranges:
                    mode_stats.average_allowed_range = round(sum(ranges) / len(ranges), 3)
            stats.modes[mode] = mode_stats
            stats.total_in_queue += len(snapshot)
        return stats

    async def run_once(self) -> TickReport:
        return await self.driver.run_once()
