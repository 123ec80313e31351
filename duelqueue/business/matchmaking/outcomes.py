import asyncio
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, Optional

from duelqueue.config import logger
from duelqueue.data.schemas import SearchOutcome
from duelqueue.utils.clock import Clock, utc_now

outcome_logger = logger.getChild("matchmaking.outcomes")

PlayerNotifier = Callable[[str, Dict[str, Any]], Awaitable[None]]


class OutcomeBroker:
    """
    Delivers the end of a search to whoever is waiting for it.

    Each player gets one future per search, created when they join the queue.
    A terminal outcome (matched, timed out, cancelled) resolves it and stays
    readable until the player starts a new search or `retention` seconds have
    passed and `prune` drops it. Non-terminal outcomes only produce a push
    notification.
    """

    def __init__(
        self,
        notify_player: Optional[PlayerNotifier] = None,
        retention: Optional[float] = 300.0,
        clock: Clock = utc_now,
    ):
        self.notify_player = notify_player
        self.retention = retention
        self.clock = clock
        self._waiters: Dict[str, asyncio.Future] = {}
        self._finished_at: Dict[str, datetime] = {}

    def __len__(self):
        return len(self._waiters)

    def open(self, user_id: str) -> asyncio.Future:
        """Start tracking a search, reusing the pending future if there is one."""
        future = self._waiters.get(user_id)
        if future is None or future.done():
            future = asyncio.get_running_loop().create_future()
            self._waiters[user_id] = future
            self._finished_at.pop(user_id, None)
        return future

    def has_search(self, user_id: str) -> bool:
        return user_id in self._waiters

    def latest(self, user_id: str) -> Optional[SearchOutcome]:
        future = self._waiters.get(user_id)
        if future is None or not future.done() or future.cancelled():
            return None
        return future.result()

    def publish(self, outcome: SearchOutcome) -> None:
        if not outcome.status.terminal:
            return
        future = self._waiters.get(outcome.user_id)
        if future is None or future.done():
            future = asyncio.get_running_loop().create_future()
            self._waiters[outcome.user_id] = future
        future.set_result(outcome)
        self._finished_at[outcome.user_id] = self.clock()

    async def announce(self, outcome: SearchOutcome, payload: Dict[str, Any]) -> None:
        """
        Publish the outcome and push a notification to the player. Delivery
        problems are logged and never propagate to the caller.
        """
        self.publish(outcome)
        if self.notify_player is None:
            return
        try:
            await self.notify_player(outcome.user_id, payload)
        except Exception as e:
            outcome_logger.error(
                f"Error sending {outcome.status.value} notification to user "
                f"{outcome.user_id}: {str(e)}"
            )

    async def wait(self, user_id: str, timeout: Optional[float]) -> Optional[SearchOutcome]:
        """
        Wait for the current search of `user_id` to finish.

        Returns the outcome, or None if it did not finish within `timeout`.
        A search that already ended returns its outcome straight away.
        """
        future = self._waiters.get(user_id) or self.open(user_id)
        try:
            return await asyncio.wait_for(asyncio.shield(future), timeout)
        except asyncio.TimeoutError:
            return None

    def prune(self, now: Optional[datetime] = None) -> int:
        """Forget finished searches older than the retention window."""
        if self.retention is None:
            return 0
        cutoff = (now or self.clock()) - timedelta(seconds=self.retention)
        expired = [u for u, finished in self._finished_at.items() if finished <= cutoff]
        for user_id in expired:
            del self._finished_at[user_id]
            self._waiters.pop(user_id, None)
        if expired:
            outcome_logger.debug(f"Pruned {len(expired)} finished searches")
        return len(expired)

    def discard(self, user_id: str) -> None:
        self._finished_at.pop(user_id, None)
        future = self._waiters.pop(user_id, None)
        if future is not None and not future.done():
            future.cancel()
