from .collaborators import ProblemPuzzleGenerator, SqlMatchCreator, SqlRatingProvider
from .events import MatchEventPublisher
from .factory import build_matchmaking, create_queue_store
from .matchmaking import MatchmakingService, RatingProvider

__all__ = [
    "MatchmakingService",
    "RatingProvider",
    "SqlRatingProvider",
    "SqlMatchCreator",
    "ProblemPuzzleGenerator",
    "MatchEventPublisher",
    "build_matchmaking",
    "create_queue_store",
]
