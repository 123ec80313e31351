import itertools
import uuid
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from duelqueue.config import logger
from duelqueue.data.schemas import ClaimToken, QueueEntry
from duelqueue.errors import AlreadyQueuedError, PairingInProgress
from duelqueue.utils.clock import Clock, utc_now

queue_logger = logger.getChild("queue")

MODE_SWITCH_REJECT = "reject"
MODE_SWITCH_REPLACE = "replace"


class QueueStore(ABC):
    """
    Holding area for players waiting for an opponent.

    Every operation is atomic on its own. The claim operations implement a
    compare-and-set on the entry's claim marker so that two concurrent
    committers can never both own the same player.
    """

    def __init__(self, clock: Clock = utc_now, mode_switch_policy: str = MODE_SWITCH_REJECT):
        if mode_switch_policy not in (MODE_SWITCH_REJECT, MODE_SWITCH_REPLACE):
            raise ValueError(f"Unknown mode switch policy: {mode_switch_policy}")
        self.clock = clock
        self.mode_switch_policy = mode_switch_policy

    @abstractmethod
    async def enqueue(self, user_id: str, mode: str, rating: int) -> QueueEntry:
        """Insert the player, or replace their existing search in the same mode."""

    @abstractmethod
    async def dequeue(self, user_id: str) -> bool:
        """
        Remove the player if present. Safe to call repeatedly.

        Raises PairingInProgress while the entry is claimed: the claim came
        first, so the pairing owns the entry until it removes or releases it.
        """

    @abstractmethod
    async def snapshot(self, mode: str) -> List[QueueEntry]:
        """All entries of a mode, oldest first."""

    @abstractmethod
    async def get(self, user_id: str) -> Optional[QueueEntry]:
        pass

    @abstractmethod
    async def modes(self) -> List[str]:
        """Modes that currently have at least one waiting player."""

    @abstractmethod
    async def try_claim(self, user_id: str) -> Optional[ClaimToken]:
        pass

    @abstractmethod
    async def release(self, token: ClaimToken) -> bool:
        pass

    @abstractmethod
    async def remove(self, token: ClaimToken) -> bool:
        pass

    @staticmethod
    def new_claim_id() -> str:
        return uuid.uuid4().hex


class InMemoryQueueStore(QueueStore):
    """
    Process-local queue store.

    None of the methods await while touching the entries, so each call runs
    to completion on the event loop without interleaving with other callers.
    """

    def __init__(self, clock: Clock = utc_now, mode_switch_policy: str = MODE_SWITCH_REJECT):
        super().__init__(clock=clock, mode_switch_policy=mode_switch_policy)
        self._entries: Dict[str, QueueEntry] = {}
        # Insertion sequence, breaks ties between identical timestamps
        self._order: Dict[str, int] = {}
        self._seq = itertools.count()

    async def enqueue(self, user_id: str, mode: str, rating: int) -> QueueEntry:
        existing = self._entries.get(user_id)
        if existing is not None:
            if existing.claimed:
                raise AlreadyQueuedError(
                    user_id,
                    existing.mode,
                    detail="A match is already being set up for this player",
                )
            if existing.mode != mode and self.mode_switch_policy == MODE_SWITCH_REJECT:
                raise AlreadyQueuedError(user_id, existing.mode)
            queue_logger.info(
                f"Replacing queue entry for player {user_id} ({existing.mode} -> {mode})"
            )

        entry = QueueEntry(
            user_id=user_id, rating=rating, mode=mode, queued_at=self.clock()
        )
        self._entries[user_id] = entry
        self._order[user_id] = next(self._seq)
        queue_logger.info(
            f"Player {user_id} queued in {mode} with rating {rating}. "
            f"Queue size: {len(self._entries)}"
        )
        return entry.model_copy()

    async def dequeue(self, user_id: str) -> bool:
        entry = self._entries.get(user_id)
        if entry is None:
            return False
        if entry.claimed:
            raise PairingInProgress(user_id)
        del self._entries[user_id]
        self._order.pop(user_id, None)
        queue_logger.info(
            f"Player {user_id} removed from {entry.mode} queue. "
            f"Queue size: {len(self._entries)}"
        )
        return True

    async def snapshot(self, mode: str) -> List[QueueEntry]:
        entries = [e for e in self._entries.values() if e.mode == mode]
        entries.sort(key=lambda e: (e.queued_at, self._order[e.user_id]))
        return [e.model_copy() for e in entries]

    async def get(self, user_id: str) -> Optional[QueueEntry]:
        entry = self._entries.get(user_id)
        return entry.model_copy() if entry is not None else None

    async def modes(self) -> List[str]:
        return sorted({e.mode for e in self._entries.values()})

    async def try_claim(self, user_id: str) -> Optional[ClaimToken]:
        entry = self._entries.get(user_id)
        if entry is None or entry.claimed:
            return None
        entry.claim_id = self.new_claim_id()
        return ClaimToken(user_id=user_id, mode=entry.mode, claim_id=entry.claim_id)

    async def release(self, token: ClaimToken) -> bool:
        entry = self._entries.get(token.user_id)
        if entry is None or entry.claim_id != token.claim_id:
            return False
        entry.claim_id = None
        return True

    async def remove(self, token: ClaimToken) -> bool:
        entry = self._entries.get(token.user_id)
        if entry is None or entry.claim_id != token.claim_id:
            return False
        del self._entries[token.user_id]
        self._order.pop(token.user_id, None)
        return True

    def __len__(self):
        return len(self._entries)
