from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import UUID4
from sqlalchemy import Column, DateTime, String
from sqlalchemy import Enum as SQLEnum
from sqlmodel import Field

from duelqueue.data.schemas.base import BaseModel


class MatchStatus(str, Enum):
    CREATED = "created"
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    DECLINED = "declined"
    CANCELLED = "cancelled"


class Match(BaseModel, table=True):
    __tablename__ = "matches"

    player1_id: UUID4 = Field(nullable=False, index=True)
    player2_id: UUID4 = Field(nullable=False, index=True)
    problem_id: Optional[UUID4] = Field(default=None, nullable=True)
    mode: str = Field(sa_column=Column(String(32), nullable=False))
    status: MatchStatus = Field(
        default=MatchStatus.PENDING,
        sa_column=Column(
            SQLEnum(MatchStatus), nullable=False, default=MatchStatus.PENDING
        ),
    )
    player1_rating: int = Field(nullable=False)
    player2_rating: int = Field(nullable=False)
    start_time: datetime = Field(
        default_factory=datetime.utcnow,
        sa_column=Column(DateTime, default=datetime.utcnow, nullable=False),
    )
    end_time: Optional[datetime] = Field(
        default=None, sa_column=Column(DateTime, nullable=True)
    )
