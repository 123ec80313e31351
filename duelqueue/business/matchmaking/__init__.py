from .committer import MatchCreator, PairingCommitter, PuzzleGenerator
from .driver import DriverState, MatchmakingDriver
from .escalation import DEFAULT_RANGE_STEPS, UNBOUNDED_RANGE, RangeEscalationPolicy
from .matcher import ProximityMatcher
from .outcomes import OutcomeBroker, PlayerNotifier

__all__ = [
    "RangeEscalationPolicy",
    "DEFAULT_RANGE_STEPS",
    "UNBOUNDED_RANGE",
    "ProximityMatcher",
    "PairingCommitter",
    "MatchCreator",
    "PuzzleGenerator",
    "MatchmakingDriver",
    "DriverState",
    "OutcomeBroker",
    "PlayerNotifier",
]
