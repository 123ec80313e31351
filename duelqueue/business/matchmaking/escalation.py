import sys
from datetime import datetime
from typing import Iterable, List, Optional, Tuple

from duelqueue.data.schemas import MatchTier, QueueEntry

# Stands in for "any opponent in the mode"
UNBOUNDED_RANGE = sys.maxsize

DEFAULT_RANGE_STEPS = ((0, 50), (60, 200), (120, 300))


class RangeEscalationPolicy:
    """ Maps how long a player has waited to how far apart in rating their
    opponent may be.

        policy = RangeEscalationPolicy(desperation_timeout=125)
        policy.allowed_range(entry, now)   # 50, 200, 300 ... UNBOUNDED_RANGE

    Steps are `(elapsed_seconds, max_distance)` pairs: the last step whose
    threshold has been reached applies. Once the desperation timeout has
    passed the range is unbounded. The ceiling never shrinks as time passes,
    which is checked when the policy is built.
    """

    def __init__(
        self,
        steps: Iterable[Tuple[float, int]] = DEFAULT_RANGE_STEPS,
        desperation_timeout: Optional[float] = 125.0,
    ):
        self.steps: List[Tuple[float, int]] = sorted(
            (float(threshold), int(distance)) for threshold, distance in steps
        )
        if not self.steps:
            raise ValueError("At least one range step is required")
        if self.steps[0][0] > 0:
            raise ValueError("The first range step must start at 0 seconds")
        for (_, previous), (threshold, distance) in zip(self.steps, self.steps[1:]):
            if distance < previous:
                raise ValueError(
                    f"Range step at {threshold}s narrows the range "
                    f"({previous} -> {distance})"
                )
        self.desperation_timeout = desperation_timeout

    def step_range_for_wait(self, wait_seconds: float) -> int:
        """The range from the steps alone, ignoring desperation."""
        allowed = self.steps[0][1]
        for threshold, distance in self.steps:
            if wait_seconds < threshold:
                break
            allowed = distance
        return allowed

    def range_for_wait(self, wait_seconds: float) -> int:
        if self.is_desperate_after(wait_seconds):
            return UNBOUNDED_RANGE
        return self.step_range_for_wait(wait_seconds)

    def step_range(self, entry: QueueEntry, now: datetime) -> int:
        return self.step_range_for_wait(entry.wait_seconds(now))

    def allowed_range(self, entry: QueueEntry, now: datetime) -> int:
        return self.range_for_wait(entry.wait_seconds(now))

    def is_desperate_after(self, wait_seconds: float) -> bool:
        return (
            self.desperation_timeout is not None
            and wait_seconds >= self.desperation_timeout
        )

    def is_desperate(self, entry: QueueEntry, now: datetime) -> bool:
        return self.is_desperate_after(entry.wait_seconds(now))

    def tier_for(self, entry: QueueEntry, now: datetime, close_range: int = 50) -> MatchTier:
        """ The loosest tier this entry is currently eligible for. """
        if self.is_desperate(entry, now):
            return MatchTier.DESPERATE
        if self.allowed_range(entry, now) > close_range:
            return MatchTier.WIDE
        return MatchTier.CLOSE
