from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel


class QueueEntry(BaseModel):
    """
    Represents a player waiting in a matchmaking pool.
    """

    user_id: str
    rating: int
    mode: str
    queued_at: datetime
    claim_id: Optional[str] = None

    @property
    def claimed(self) -> bool:
        return self.claim_id is not None

    def wait_seconds(self, now: datetime) -> float:
        return max(0.0, (now - self.queued_at).total_seconds())


class ClaimToken(BaseModel):
    """
    Proof that a queue entry was claimed for pairing. Only the holder of the
    matching claim id may release or remove the entry.
    """

    user_id: str
    mode: str
    claim_id: str


class MatchTier(str, Enum):
    EXACT = "exact"
    CLOSE = "close"
    WIDE = "wide"
    DESPERATE = "desperate"


class MatchQuality(str, Enum):
    EXCELLENT = "excellent"
    VERY_GOOD = "very_good"
    GOOD = "good"
    FAIR = "fair"


def quality_for_distance(distance: int) -> MatchQuality:
    if distance <= 25:
        return MatchQuality.EXCELLENT
    if distance <= 50:
        return MatchQuality.VERY_GOOD
    if distance <= 100:
        return MatchQuality.GOOD
    return MatchQuality.FAIR


class ProposedPair(BaseModel):
    a: QueueEntry
    b: QueueEntry
    tier: MatchTier

    @property
    def mode(self) -> str:
        return self.a.mode

    @property
    def rating_distance(self) -> int:
        return abs(self.a.rating - self.b.rating)

    @property
    def quality(self) -> MatchQuality:
        return quality_for_distance(self.rating_distance)

    @property
    def user_ids(self) -> frozenset:
        return frozenset((self.a.user_id, self.b.user_id))


class CommitStatus(str, Enum):
    COMMITTED = "committed"
    LOST = "lost"
    FAILED = "failed"


class CommitResult(BaseModel):
    status: CommitStatus
    pair: ProposedPair
    match_id: Optional[str] = None
    error: Optional[str] = None
    puzzle_degraded: bool = False

    @classmethod
    def committed(cls, pair: ProposedPair, match_id: str, puzzle_degraded: bool = False):
        return cls(
            status=CommitStatus.COMMITTED,
            pair=pair,
            match_id=match_id,
            puzzle_degraded=puzzle_degraded,
        )

    @classmethod
    def lost(cls, pair: ProposedPair):
        return cls(status=CommitStatus.LOST, pair=pair)

    @classmethod
    def failed(cls, pair: ProposedPair, error: Exception):
        return cls(status=CommitStatus.FAILED, pair=pair, error=str(error))


class OutcomeStatus(str, Enum):
    MATCHED = "matched"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"
    UNAVAILABLE = "unavailable"

    @property
    def terminal(self) -> bool:
        return self is not OutcomeStatus.UNAVAILABLE


class SearchOutcome(BaseModel):
    """
    What happened to a player's search. Delivered to whoever is waiting on it.
    """

    user_id: str
    mode: str
    status: OutcomeStatus
    match_id: Optional[str] = None
    opponent_id: Optional[str] = None
    opponent_rating: Optional[int] = None
    problem_id: Optional[str] = None


class QueueStatus(BaseModel):
    in_queue: bool
    user_id: str
    mode: Optional[str] = None
    rating: Optional[int] = None
    position: Optional[int] = None
    queue_size: Optional[int] = None
    queued_at: Optional[datetime] = None
    wait_seconds: Optional[float] = None
    allowed_range: Optional[int] = None
    tier: Optional[MatchTier] = None
    estimated_wait_seconds: Optional[int] = None


class ModeStats(BaseModel):
    queue_size: int = 0
    average_wait_seconds: float = 0.0
    max_wait_seconds: float = 0.0
    average_allowed_range: float = 0.0


class QueueStats(BaseModel):
    total_in_queue: int = 0
    modes: Dict[str, ModeStats] = {}


class TickReport(BaseModel):
    modes: List[str] = []
    committed: List[str] = []
    lost: int = 0
    failed: int = 0
    timed_out: List[str] = []


class JoinQueueRequest(BaseModel):
    user_id: str
    mode: str = "ranked"
