from typing import Awaitable, Callable, Dict, FrozenSet, Optional, Tuple

from duelqueue.config import logger
from duelqueue.data.repositories.queue_store import QueueStore
from duelqueue.data.schemas import (
    ClaimToken,
    CommitResult,
    OutcomeStatus,
    ProposedPair,
    Puzzle,
    QueueEntry,
    SearchOutcome,
)
from duelqueue.errors import ClaimRaceLost, MatchCreationFailed

from .outcomes import OutcomeBroker

committer_logger = logger.getChild("matchmaking.committer")

MatchCreator = Callable[[QueueEntry, QueueEntry, str, Optional[Puzzle]], Awaitable[str]]
PuzzleGenerator = Callable[[str, int], Awaitable[Optional[Puzzle]]]


class PairingCommitter:
    """
    Turns a proposed pair into a real match.

    Both players are claimed one after the other. If the second claim fails
    the first one is released again, so a lost race never costs the surviving
    player their place in the queue. If match creation fails both claims are
    released and the pair is simply proposed again on a later tick.
    """

    def __init__(
        self,
        store: QueueStore,
        create_match: MatchCreator,
        generate_puzzle: Optional[PuzzleGenerator] = None,
        broker: Optional[OutcomeBroker] = None,
        max_creation_failures: int = 3,
    ):
        self.store = store
        self.create_match = create_match
        self.generate_puzzle = generate_puzzle
        self.broker = broker or OutcomeBroker()
        self.max_creation_failures = max_creation_failures
        self._creation_failures: Dict[FrozenSet[str], int] = {}

    async def commit(self, pair: ProposedPair) -> CommitResult:
        try:
            token_a, token_b = await self._claim_both(pair)
        except ClaimRaceLost as e:
            committer_logger.info(f"Dropping pair for this tick: {str(e)}")
            return CommitResult.lost(pair)

        puzzle = await self._fetch_puzzle(pair)

        try:
            match_id = await self.create_match(pair.a, pair.b, pair.mode, puzzle)
        except Exception as e:
            error = MatchCreationFailed(pair.a.user_id, pair.b.user_id, e)
            committer_logger.error(str(error))
            await self.store.release(token_a)
            await self.store.release(token_b)
            await self._register_creation_failure(pair)
            return CommitResult.failed(pair, error)

        self.forget(pair.a.user_id, pair.b.user_id)
        for token in (token_a, token_b):
            if not await self.store.remove(token):
                # Claimed entries cannot be dequeued, so this means the store lost them
                committer_logger.warning(
                    f"Entry for player {token.user_id} vanished while match {match_id} "
                    f"was being created"
                )

        committer_logger.info(
            f"Match {match_id} created in {pair.mode}: {pair.a.user_id} ({pair.a.rating}) "
            f"vs {pair.b.user_id} ({pair.b.rating}), distance {pair.rating_distance}, "
            f"tier {pair.tier.value}, quality {pair.quality.value}"
        )
        await self._announce_match(pair, str(match_id), puzzle)
        return CommitResult.committed(pair, str(match_id), puzzle_degraded=puzzle is None)

    def forget(self, *user_ids: str) -> None:
        """Drop the creation failure counters of every pair involving these players."""
        gone = set(user_ids)
        for key in [k for k in self._creation_failures if k & gone]:
            del self._creation_failures[key]

    @property
    def pending_failures(self) -> int:
        return len(self._creation_failures)

    async def _claim_both(self, pair: ProposedPair) -> Tuple[ClaimToken, ClaimToken]:
        token_a = await self.store.try_claim(pair.a.user_id)
        if token_a is None:
            raise ClaimRaceLost(pair.a.user_id)
        if token_a.mode != pair.mode:
            await self.store.release(token_a)
            raise ClaimRaceLost(pair.a.user_id)

        token_b = await self.store.try_claim(pair.b.user_id)
        if token_b is None or token_b.mode != pair.mode:
            if token_b is not None:
                await self.store.release(token_b)
            await self.store.release(token_a)
            raise ClaimRaceLost(pair.b.user_id)

        return token_a, token_b

    async def _fetch_puzzle(self, pair: ProposedPair) -> Optional[Puzzle]:
        if self.generate_puzzle is None:
            return None
        difficulty = (pair.a.rating + pair.b.rating) // 2
        try:
            puzzle = await self.generate_puzzle(pair.mode, difficulty)
        except Exception as e:
            committer_logger.warning(
                f"Puzzle generation failed for {pair.a.user_id} vs {pair.b.user_id}, "
                f"creating the match without a problem: {str(e)}"
            )
            return None
        if puzzle is None:
            committer_logger.warning(
                f"No puzzle available for {pair.mode} at difficulty {difficulty}"
            )
        return puzzle

    async def _register_creation_failure(self, pair: ProposedPair) -> None:
        key = pair.user_ids
        failures = self._creation_failures.get(key, 0) + 1
        if failures < self.max_creation_failures:
            self._creation_failures[key] = failures
            return

        self._creation_failures.pop(key, None)
        committer_logger.error(
            f"Match creation failed {failures} times in a row for "
            f"{pair.a.user_id} vs {pair.b.user_id}, notifying players"
        )
        for entry in (pair.a, pair.b):
            await self.broker.announce(
                SearchOutcome(
                    user_id=entry.user_id,
                    mode=pair.mode,
                    status=OutcomeStatus.UNAVAILABLE,
                ),
                {
                    "status": "matchmaking_unavailable",
                    "mode": pair.mode,
                    "message": "Matchmaking is temporarily unavailable, still searching",
                },
            )

    async def _announce_match(
        self, pair: ProposedPair, match_id: str, puzzle: Optional[Puzzle]
    ) -> None:
        problem_id = str(puzzle.problem_id) if puzzle else None
        for player, opponent in ((pair.a, pair.b), (pair.b, pair.a)):
            await self.broker.announce(
                SearchOutcome(
                    user_id=player.user_id,
                    mode=pair.mode,
                    status=OutcomeStatus.MATCHED,
                    match_id=match_id,
                    opponent_id=opponent.user_id,
                    opponent_rating=opponent.rating,
                    problem_id=problem_id,
                ),
                {
                    "status": "match_found",
                    "match_id": match_id,
                    "mode": pair.mode,
                    "opponent_id": opponent.user_id,
                    "opponent_rating": opponent.rating,
                    "rating_difference": pair.rating_distance,
                    "match_quality": pair.quality.value,
                    "problem_id": problem_id,
                    "puzzle_pending": puzzle is None,
                },
            )
