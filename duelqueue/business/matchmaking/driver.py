import asyncio
from enum import Enum
from typing import Iterable, List, Optional

from duelqueue.config import logger
from duelqueue.data.repositories.queue_store import QueueStore
from duelqueue.data.schemas import (
    CommitStatus,
    OutcomeStatus,
    QueueEntry,
    SearchOutcome,
    TickReport,
)
from duelqueue.utils.clock import Clock, utc_now

from .committer import PairingCommitter
from .matcher import ProximityMatcher
from .outcomes import OutcomeBroker

driver_logger = logger.getChild("matchmaking.driver")


class DriverState(str, Enum):
    IDLE = "idle"
    TICKING = "ticking"
    STOPPED = "stopped"


class MatchmakingDriver:
    """
    Periodically evicts stale searches and matches everyone else.

        driver = MatchmakingDriver(store, matcher, committer, modes=["ranked"])
        driver.start()
        ...
        await driver.run_once()   # out of band tick, e.g. right after a join
        ...
        await driver.stop()

    Ticks never overlap inside one process: scheduled and manual ticks share
    a lock. Stopping waits for the tick in progress to finish.
    """

    def __init__(
        self,
        store: QueueStore,
        matcher: ProximityMatcher,
        committer: PairingCommitter,
        broker: Optional[OutcomeBroker] = None,
        modes: Iterable[str] = (),
        tick_interval: float = 2.0,
        max_wait: float = 300.0,
        clock: Clock = utc_now,
    ):
        self.store = store
        self.matcher = matcher
        self.committer = committer
        self.broker = broker or committer.broker
        self.modes = list(modes)
        self.tick_interval = tick_interval
        self.max_wait = max_wait
        self.clock = clock

        self.state = DriverState.IDLE
        self._lock = asyncio.Lock()
        self._stop_requested = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.state is DriverState.STOPPED:
            raise RuntimeError("A stopped matchmaking driver cannot be restarted")
        if self.is_running:
            driver_logger.warning("Matchmaking driver is already running")
            return
        driver_logger.info(
            f"Starting matchmaking driver (interval: {self.tick_interval}s, "
            f"modes: {', '.join(self.modes) or 'from queue'})"
        )
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        if self.state is DriverState.STOPPED:
            return
        self._stop_requested.set()
        # Never interrupt a tick: wait until the current one releases the lock
        async with self._lock:
            self.state = DriverState.STOPPED
        if self._task is not None:
            await self._task
            self._task = None
        driver_logger.info("Matchmaking driver stopped")

    async def _run(self) -> None:
        while not self._stop_requested.is_set():
            try:
                await asyncio.wait_for(
                    self._stop_requested.wait(), timeout=self.tick_interval
                )
                break
            except asyncio.TimeoutError:
                pass

            try:
                await self.run_once()
            except asyncio.CancelledError:
                break
            except Exception:
                driver_logger.exception("Unexpected error during matchmaking tick!")
                # To avoid potential busy loops
                await asyncio.sleep(1)

    async def run_once(self) -> TickReport:
        """
        Run one full tick now: timeouts first, then matching, for every mode.
        """
        async with self._lock:
            if self.state is DriverState.STOPPED:
                driver_logger.warning("Ignoring tick request, driver is stopped")
                return TickReport()
            self.state = DriverState.TICKING
            try:
                return await self._tick()
            finally:
                self.state = DriverState.IDLE

    async def _active_modes(self) -> List[str]:
        modes = list(self.modes)
        for mode in await self.store.modes():
            if mode not in modes:
                modes.append(mode)
        return modes

    async def _tick(self) -> TickReport:
        report = TickReport()
        for mode in await self._active_modes():
            report.modes.append(mode)
            try:
                snapshot = await self.store.snapshot(mode)
                snapshot = await self._evict_timed_out(snapshot, report)
                if len(snapshot) < 2:
                    continue
                pairs = self.matcher.propose(snapshot, self.clock())
            except Exception:
                driver_logger.exception(f"Failed to process the {mode} queue")
                continue

            for pair in pairs:
                # One bad pair must not stop the rest of the tick
                try:
                    result = await self.committer.commit(pair)
                except Exception:
                    driver_logger.exception(
                        f"Unexpected error committing {pair.a.user_id} vs {pair.b.user_id}"
                    )
                    report.failed += 1
                    continue

                if result.status is CommitStatus.COMMITTED:
                    report.committed.append(result.match_id)
                elif result.status is CommitStatus.LOST:
                    report.lost += 1
                else:
                    report.failed += 1

        self.broker.prune(self.clock())
        self.committer.forget(*report.timed_out)
        if report.committed or report.timed_out or report.failed:
            driver_logger.info(
                f"Tick complete: {len(report.committed)} matches, {report.lost} lost, "
                f"{report.failed} failed, {len(report.timed_out)} timed out"
            )
        return report

    async def _evict_timed_out(
        self, snapshot: List[QueueEntry], report: TickReport
    ) -> List[QueueEntry]:
        now = self.clock()
        remaining = []
        for entry in snapshot:
            if entry.wait_seconds(now) < self.max_wait:
                remaining.append(entry)
                continue

            # Claim first so a concurrent commit keeps the player if it got there first
            token = await self.store.try_claim(entry.user_id)
            if token is None or not await self.store.remove(token):
                continue

            driver_logger.info(
                f"Search for player {entry.user_id} in {entry.mode} timed out "
                f"after {entry.wait_seconds(now):.0f}s"
            )
            report.timed_out.append(entry.user_id)
            await self.broker.announce(
                SearchOutcome(
                    user_id=entry.user_id,
                    mode=entry.mode,
                    status=OutcomeStatus.TIMED_OUT,
                ),
                {
                    "status": "search_timed_out",
                    "mode": entry.mode,
                    "message": "No opponent found, please try again",
                },
            )
        return remaining
