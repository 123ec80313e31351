from typing import Any, Dict, List, Optional

from pydantic import UUID4, BaseModel as PydanticBaseModel
from sqlalchemy import JSON, Column, String, Text
from sqlmodel import Field

from duelqueue.data.schemas.base import BaseModel


class Problem(BaseModel, table=True):
    """
    Represents a coding problem that can be assigned to a duel.
    A problem with no mode can be used in every mode.
    """

    __tablename__ = "problems"

    title: str = Field(sa_column=Column(String(200), nullable=False))
    rating: int = Field(nullable=False)
    mode: Optional[str] = Field(default=None, sa_column=Column(String(32), nullable=True))
    prompt: str = Field(sa_column=Column(Text, nullable=False))
    test_cases: List[Dict[str, Any]] = Field(
        default_factory=list, sa_column=Column(JSON, nullable=False)
    )


class Puzzle(PydanticBaseModel):
    """Challenge content handed to the match creator."""

    problem_id: UUID4
    prompt: str
    test_cases: List[Dict[str, Any]] = []
    rating: int
