from .game import (
    Game,
    GameStatus,
    CreateGameRequest,
    UpdateGameRequest,
    AddPlayerRequest,
    ScoreUpdateRequest,
)

__all__ = [
    "Game",
    "GameStatus",
    "CreateGameRequest",
    "UpdateGameRequest",
    "AddPlayerRequest",
    "ScoreUpdateRequest",
]
