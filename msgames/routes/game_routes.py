from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response

from msgames.dao.db import Db
from msgames.logic.auth import authenticate
from msgames.logic.game_service import MAX_PAGE_SIZE, GameService
from msgames.models.game import (
    AddPlayerRequest,
    CreateGameRequest,
    Game,
    GameStatus,
    ScoreUpdateRequest,
    UpdateGameRequest,
)

router = APIRouter(prefix="/api/games", tags=["games"])


def get_game_service() -> GameService:
    return GameService(Db.get_instance().games)


@router.get("", response_model=List[Game])
async def list_games(
    status: Optional[GameStatus] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=MAX_PAGE_SIZE),
    service: GameService = Depends(get_game_service),
):
    """
    List games, newest first.

    Args:
        status: Only return games in this status ("active" or "completed")
        skip: Number of games to skip
        limit: Maximum number of games to return
    """
    return await service.list_games(status=status, skip=skip, limit=limit)


@router.post("", response_model=Game, status_code=201, dependencies=[Depends(authenticate)])
async def create_game(
    body: CreateGameRequest,
    service: GameService = Depends(get_game_service),
):
    return await service.create_game(body)


@router.get("/{game_id}", response_model=Game)
async def get_game(game_id: str, service: GameService = Depends(get_game_service)):
    return await service.get_game(game_id)


@router.put("/{game_id}", response_model=Game, dependencies=[Depends(authenticate)])
async def update_game(
    game_id: str,
    body: UpdateGameRequest,
    service: GameService = Depends(get_game_service),
):
    return await service.update_game(game_id, body)


@router.delete("/{game_id}", status_code=204, dependencies=[Depends(authenticate)])
async def delete_game(
    game_id: str,
    service: GameService = Depends(get_game_service),
):
    await service.delete_game(game_id)
    return Response(status_code=204)


@router.post("/{game_id}/players", response_model=Game, dependencies=[Depends(authenticate)])
async def add_player(
    game_id: str,
    body: AddPlayerRequest,
    service: GameService = Depends(get_game_service),
):
    return await service.add_player(game_id, body.player)


@router.post("/{game_id}/score", response_model=Game, dependencies=[Depends(authenticate)])
async def add_score(
    game_id: str,
    body: ScoreUpdateRequest,
    service: GameService = Depends(get_game_service),
):
    return await service.add_score(game_id, body.points)


@router.post("/{game_id}/complete", response_model=Game, dependencies=[Depends(authenticate)])
async def complete_game(
    game_id: str,
    service: GameService = Depends(get_game_service),
):
    """Move an active game to completed. Completed games cannot be reopened."""
    return await service.complete_game(game_id)
