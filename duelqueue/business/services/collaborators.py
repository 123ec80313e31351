import uuid
from typing import Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from duelqueue.config import logger
from duelqueue.data.repositories.match_repository import create_match
from duelqueue.data.repositories.problem import select_problem_for_match
from duelqueue.data.repositories.user_repository import get_user_rating
from duelqueue.data.schemas import Puzzle, QueueEntry
from duelqueue.errors import BadRequestException

collaborator_logger = logger.getChild("matchmaking.collaborators")


def parse_user_id(user_id: str) -> uuid.UUID:
    try:
        return uuid.UUID(str(user_id))
    except ValueError:
        raise BadRequestException(detail="Invalid user ID format")


class SqlRatingProvider:
    """Reads a player's rating from the users table."""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def __call__(self, user_id: str) -> int:
        async with self.session_factory() as db:
            return await get_user_rating(db, parse_user_id(user_id))


class ProblemPuzzleGenerator:
    """Picks the stored problem closest to the pair's average rating."""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def __call__(self, mode: str, difficulty: int) -> Optional[Puzzle]:
        async with self.session_factory() as db:
            problem = await select_problem_for_match(db, mode, difficulty)
        if problem is None:
            return None
        return Puzzle(
            problem_id=problem.id,
            prompt=problem.prompt,
            test_cases=problem.test_cases,
            rating=problem.rating,
        )


class SqlMatchCreator:
    """Persists a pending match for a claimed pair and returns its id."""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def __call__(
        self,
        player1: QueueEntry,
        player2: QueueEntry,
        mode: str,
        puzzle: Optional[Puzzle],
    ) -> str:
        async with self.session_factory() as db:
            try:
                match = await create_match(
                    db,
                    player1_id=parse_user_id(player1.user_id),
                    player2_id=parse_user_id(player2.user_id),
                    player1_rating=player1.rating,
                    player2_rating=player2.rating,
                    mode=mode,
                    puzzle=puzzle,
                )
            except Exception:
                await db.rollback()
                raise
        if puzzle is None:
            collaborator_logger.warning(f"No problem assigned to match ID {match.id}")
        else:
            collaborator_logger.info(
                f"Assigned problem ID {puzzle.problem_id} to match ID {match.id}"
            )
        return str(match.id)
