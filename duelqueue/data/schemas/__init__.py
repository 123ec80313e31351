from .base import BaseModel
from .match import Match, MatchStatus
from .problem import Problem, Puzzle
from .queue import (
    ClaimToken,
    CommitResult,
    CommitStatus,
    JoinQueueRequest,
    MatchQuality,
    MatchTier,
    ModeStats,
    OutcomeStatus,
    ProposedPair,
    QueueEntry,
    QueueStats,
    QueueStatus,
    SearchOutcome,
    TickReport,
    quality_for_distance,
)
from .user import User

__all__ = [
    "BaseModel",
    "User",
    "Match",
    "MatchStatus",
    "Problem",
    "Puzzle",
    "QueueEntry",
    "ClaimToken",
    "MatchTier",
    "MatchQuality",
    "quality_for_distance",
    "ProposedPair",
    "CommitStatus",
    "CommitResult",
    "OutcomeStatus",
    "SearchOutcome",
    "QueueStatus",
    "ModeStats",
    "QueueStats",
    "TickReport",
    "JoinQueueRequest",
]
