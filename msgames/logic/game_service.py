import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorCollection

from msgames.dao.db import rewrite_id, to_object_id
from msgames.models.game import CreateGameRequest, Game, GameStatus, UpdateGameRequest
from msgames.utils.errors import GameError, GameNotFoundError

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 200


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _clean_name(name: str) -> str:
    name = name.strip()
    if not name:
        raise GameError("Game name must not be empty")
    return name


def _clean_players(players: List[str]) -> List[str]:
    cleaned = []
    for player in players:
        name = player.strip()
        if not name:
            raise GameError("Player name must not be empty")
        if name not in cleaned:
            cleaned.append(name)
    return cleaned


class GameService:
    """
    Game CRUD and lifecycle operations on the `games` collection.

    Every mutation is one conditional update_one. When nothing matches, the
    game is reloaded to tell a missing game from a rejected change.
    """

    def __init__(self, collection: AsyncIOMotorCollection):
        self.collection = collection

    async def _load(self, game_id: str) -> Dict[str, Any]:
        document = await self.collection.find_one({"_id": to_object_id(game_id)})
        if document is None:
            raise GameNotFoundError(game_id)
        return document

    async def _update(self, game_id: str, conditions: Dict[str, Any], update: Dict[str, Any]) -> bool:
        """Apply `update` if the game still matches `conditions`. Returns whether it matched."""
        query = {"_id": to_object_id(game_id)}
        query.update(conditions)
        update.setdefault("$set", {})["updated_at"] = _now()
        result = await self.collection.update_one(query, update)
        return result.matched_count > 0

    def _ensure_active(self, game_id: str, document: Dict[str, Any], action: str):
        if document.get("status") == GameStatus.COMPLETED.value:
            logger.warning(f"Refused to {action} completed game {game_id}")
            raise GameError(f"Cannot {action} a completed game")

    async def create_game(self, request: CreateGameRequest) -> Game:
        now = _now()
        document = {
            "name": _clean_name(request.name),
            "status": GameStatus.ACTIVE.value,
            "players": _clean_players(request.players),
            "score": 0,
            "created_at": now,
            "updated_at": now,
        }
        result = await self.collection.insert_one(document)
        document["_id"] = result.inserted_id
        logger.info(f"Created game {result.inserted_id} with {len(document['players'])} players")
        return Game(**rewrite_id(document))

    async def list_games(self, status: Optional[GameStatus] = None, skip: int = 0, limit: int = 50) -> List[Game]:
        if skip < 0:
            raise GameError("skip must not be negative")
        if limit < 1 or limit > MAX_PAGE_SIZE:
            raise GameError(f"limit must be between 1 and {MAX_PAGE_SIZE}")
        query = {}
        if status is not None:
            query["status"] = GameStatus(status).value
        cursor = self.collection.find(query).sort("created_at", -1).skip(skip).limit(limit)
        documents = await cursor.to_list(length=limit)
        return [Game(**rewrite_id(document)) for document in documents]

    async def get_game(self, game_id: str) -> Game:
        return Game(**rewrite_id(await self._load(game_id)))

    async def update_game(self, game_id: str, request: UpdateGameRequest) -> Game:
        changes = request.model_dump(exclude_none=True)
        if not changes:
            raise GameError("Nothing to update")
        if "name" in changes:
            changes["name"] = _clean_name(changes["name"])
        conditions = {}
        if "score" in changes:
            if changes["score"] < 0:
                raise GameError("Score must not be negative")
            conditions["status"] = GameStatus.ACTIVE.value
        if not await self._update(game_id, conditions, {"$set": changes}):
            document = await self._load(game_id)
            self._ensure_active(game_id, document, "change the score of")
            raise GameNotFoundError(game_id)
        return await self.get_game(game_id)

    async def delete_game(self, game_id: str) -> None:
        result = await self.collection.delete_one({"_id": to_object_id(game_id)})
        if result.deleted_count == 0:
            raise GameNotFoundError(game_id)
        logger.info(f"Deleted game {game_id}")

    async def add_player(self, game_id: str, player: str) -> Game:
        name = player.strip()
        if not name:
            raise GameError("Player name must not be empty")
        joined = await self._update(
            game_id,
            {"status": GameStatus.ACTIVE.value, "players": {"$ne": name}},
            {"$push": {"players": name}},
        )
        if not joined:
            document = await self._load(game_id)
            self._ensure_active(game_id, document, "join")
            raise GameError(f"Player '{name}' already joined this game")
        logger.info(f"Player {name} joined game {game_id}")
        return await self.get_game(game_id)

    async def add_score(self, game_id: str, points: int) -> Game:
        scored = await self._update(
            game_id,
            {"status": GameStatus.ACTIVE.value, "score": {"$gte": -points}},
            {"$inc": {"score": points}},
        )
        if not scored:
            document = await self._load(game_id)
            self._ensure_active(game_id, document, "change the score of")
            raise GameError("Score must not be negative")
        return await self.get_game(game_id)

    async def complete_game(self, game_id: str) -> Game:
        completed = await self._update(
            game_id,
            {"status": GameStatus.ACTIVE.value},
            {"$set": {"status": GameStatus.COMPLETED.value}},
        )
        if not completed:
            await self._load(game_id)
            raise GameError("Game is already completed")
        game = await self.get_game(game_id)
        logger.info(f"Game {game_id} completed with score {game.score}")
        return game
