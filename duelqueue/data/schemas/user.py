from sqlalchemy import Column, INTEGER, String
from sqlmodel import Field

from duelqueue.data.schemas.base import BaseModel


class User(BaseModel, table=True):
    """Database model for a user. Only the fields matchmaking reads."""

    __tablename__ = "users"

    username: str = Field(
        sa_column=Column(String(50), unique=True, nullable=False),
        description="Unique username for the user.",
    )
    rating: int = Field(
        default=1000,
        sa_column=Column(INTEGER, default=1000, nullable=False),
        description="User's rating for matchmaking.",
    )
