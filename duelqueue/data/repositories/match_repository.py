from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from duelqueue.data.schemas import Match, MatchStatus, Puzzle
from duelqueue.errors import ResourceNotFoundException


async def get_match_by_id(db: AsyncSession, match_id: UUID) -> Match:
    """Get a match by ID from the database."""
    result = await db.execute(select(Match).where(Match.id == match_id))
    match = result.scalar_one_or_none()
    if not match:
        raise ResourceNotFoundException(detail="Match not found")
    return match


async def create_match(
    db: AsyncSession,
    player1_id: UUID,
    player2_id: UUID,
    player1_rating: int,
    player2_rating: int,
    mode: str,
    puzzle: Optional[Puzzle],
) -> Match:
    """Create a new pending match in the database."""
    match = Match(
        player1_id=player1_id,
        player2_id=player2_id,
        player1_rating=player1_rating,
        player2_rating=player2_rating,
        mode=mode,
        problem_id=puzzle.problem_id if puzzle else None,
        status=MatchStatus.PENDING,
    )
    db.add(match)
    await db.commit()
    await db.refresh(match)
    return match
