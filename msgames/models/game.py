from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class GameStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"


class Game(BaseModel):
    id: str
    name: str = "Beer Game"
    status: GameStatus = GameStatus.ACTIVE
    players: List[str] = []
    score: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CreateGameRequest(BaseModel):
    name: str = Field(default="Beer Game", min_length=1)
    players: List[str] = []


class UpdateGameRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    score: Optional[int] = None


class AddPlayerRequest(BaseModel):
    player: str


class ScoreUpdateRequest(BaseModel):
    # Signed delta applied to the current score
    points: int
