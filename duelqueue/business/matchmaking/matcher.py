from collections import OrderedDict
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence, Set

from duelqueue.config import logger
from duelqueue.data.schemas import MatchTier, ProposedPair, QueueEntry

from .escalation import RangeEscalationPolicy

matcher_logger = logger.getChild("matchmaking.matcher")


class ProximityMatcher:
    """
    Proposes disjoint pairs from a queue snapshot. Read only: nothing is
    claimed here, the committer decides which proposals actually happen.

    Four greedy passes run in order, each over the entries the previous
    passes left unmatched:

        exact       identical ratings, oldest first within each rating
        close       nearest rating within `close_range`
        wide        nearest rating within the scanning entry's step range
        desperate   entries past the desperation timeout take the oldest
                    remaining player, whatever the rating distance

    Snapshot order (oldest first) is the priority order. When two candidates
    are equally close the older one wins.
    """

    def __init__(self, policy: RangeEscalationPolicy, close_range: int = 50):
        self.policy = policy
        self.close_range = close_range

    def propose(self, entries: Sequence[QueueEntry], now: datetime) -> List[ProposedPair]:
        pools: Dict[str, List[QueueEntry]] = OrderedDict()
        seen: Set[str] = set()
        for entry in entries:
            # A player can only be proposed once per snapshot
            if entry.user_id in seen:
                continue
            seen.add(entry.user_id)
            pools.setdefault(entry.mode, []).append(entry)

        pairs: List[ProposedPair] = []
        for mode, pool in pools.items():
            mode_pairs = self._propose_for_pool(pool, now)
            matcher_logger.debug(
                f"Proposed {len(mode_pairs)} pairs from {len(pool)} entries in {mode}"
            )
            pairs.extend(mode_pairs)
        return pairs

    def _propose_for_pool(self, pool: List[QueueEntry], now: datetime) -> List[ProposedPair]:
        matched: Set[int] = set()
        pairs: List[ProposedPair] = []

        self._exact_pass(pool, matched, pairs)
        self._nearest_pass(
            pool,
            matched,
            pairs,
            MatchTier.CLOSE,
            lambda entry: min(self.close_range, self.policy.allowed_range(entry, now)),
        )
        self._nearest_pass(
            pool,
            matched,
            pairs,
            MatchTier.WIDE,
            lambda entry: self.policy.step_range(entry, now),
        )
        self._desperation_pass(pool, matched, pairs, now)
        return pairs

    @staticmethod
    def _pair(
        pool: List[QueueEntry],
        i: int,
        j: int,
        tier: MatchTier,
        matched: Set[int],
        pairs: List[ProposedPair],
    ) -> None:
        matched.add(i)
        matched.add(j)
        pairs.append(ProposedPair(a=pool[i], b=pool[j], tier=tier))

    def _exact_pass(
        self, pool: List[QueueEntry], matched: Set[int], pairs: List[ProposedPair]
    ) -> None:
        # Buckets keep the order in which their oldest member appears
        buckets: Dict[int, List[int]] = OrderedDict()
        for index, entry in enumerate(pool):
            if index not in matched:
                buckets.setdefault(entry.rating, []).append(index)

        for indexes in buckets.values():
            for k in range(0, len(indexes) - 1, 2):
                self._pair(pool, indexes[k], indexes[k + 1], MatchTier.EXACT, matched, pairs)

    def _nearest_pass(
        self,
        pool: List[QueueEntry],
        matched: Set[int],
        pairs: List[ProposedPair],
        tier: MatchTier,
        limit_for: Callable[[QueueEntry], int],
    ) -> None:
        for i, entry in enumerate(pool):
            if i in matched:
                continue
            j = self._nearest_candidate(pool, matched, i, limit_for(entry))
            if j is not None:
                self._pair(pool, i, j, tier, matched, pairs)

    @staticmethod
    def _nearest_candidate(
        pool: List[QueueEntry], matched: Set[int], i: int, limit: int
    ) -> Optional[int]:
        rating = pool[i].rating
        best: Optional[int] = None
        best_distance = None
        for j, other in enumerate(pool):
            if j == i or j in matched:
                continue
            distance = abs(rating - other.rating)
            if distance > limit:
                continue
            # Strict comparison keeps the older candidate on ties
            if best is None or distance < best_distance:
                best, best_distance = j, distance
        return best

    def _desperation_pass(
        self,
        pool: List[QueueEntry],
        matched: Set[int],
        pairs: List[ProposedPair],
        now: datetime,
    ) -> None:
        for i, entry in enumerate(pool):
            if i in matched or not self.policy.is_desperate(entry, now):
                continue
            for j in range(len(pool)):
                if j != i and j not in matched:
                    self._pair(pool, i, j, MatchTier.DESPERATE, matched, pairs)
                    break
