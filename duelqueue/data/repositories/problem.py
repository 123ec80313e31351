import random
from typing import List, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from duelqueue.config import logger
from duelqueue.data.schemas import Problem

problem_logger = logger.getChild("problem")

# Problems within this distance of the target rating are candidates
PROBLEM_RATING_WINDOW = 200
MAX_CANDIDATES = 10


async def select_problem_for_match(
    db: AsyncSession, mode: str, target_rating: int
) -> Optional[Problem]:
    """
    Select a problem for a match.

    Args:
        db: Database session
        mode: Matchmaking mode of the match
        target_rating: Usually the average rating of both players

    Returns:
        A Problem object or None if the table has no usable problem
    """
    mode_filter = or_(Problem.mode == mode, Problem.mode.is_(None))
    query = (
        select(Problem)
        .where(
            mode_filter,
            Problem.rating >= target_rating - PROBLEM_RATING_WINDOW,
            Problem.rating <= target_rating + PROBLEM_RATING_WINDOW,
        )
        .order_by(func.abs(Problem.rating - target_rating))
        .limit(MAX_CANDIDATES)
    )
    result = await db.execute(query)
    problems: List[Problem] = list(result.scalars().all())

    if not problems:
        problem_logger.warning(
            f"No problems within {PROBLEM_RATING_WINDOW} of rating {target_rating} "
            f"for mode {mode}, falling back to the closest one"
        )
        fallback = (
            select(Problem)
            .where(mode_filter)
            .order_by(func.abs(Problem.rating - target_rating))
            .limit(1)
        )
        result = await db.execute(fallback)
        problems = list(result.scalars().all())
        if not problems:
            problem_logger.error("No problems found in the database")
            return None

    selected = random.choice(problems)
    problem_logger.info(
        f"Selected problem {selected.id} with rating {selected.rating} "
        f"for target rating {target_rating}"
    )
    return selected
