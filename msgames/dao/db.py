import logging
from typing import Any, Dict, Optional

from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo.errors import ConnectionFailure
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from msgames.config import Settings, get_settings
from msgames.utils.errors import GameError

logger = logging.getLogger(__name__)


def rewrite_id(document: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Return a copy of a Mongo document with `_id` replaced by a string `id`."""
    if document is None:
        return None
    document = dict(document)
    if "_id" in document:
        document["id"] = str(document.pop("_id"))
    return document


def to_object_id(value: str) -> ObjectId:
    if not isinstance(value, str):
        raise GameError(f"Invalid game id '{value}'")
    try:
        return ObjectId(value)
    except InvalidId:
        raise GameError(f"Invalid game id '{value}'")


class Db:
    _instance = None

    @staticmethod
    def get_instance():
        if not Db._instance:
            Db._instance = Db()
        return Db._instance

    @staticmethod
    def reset():
        Db._instance = None

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.client: Optional[AsyncIOMotorClient] = None
        self.database: Optional[AsyncIOMotorDatabase] = None

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(ConnectionFailure),
        reraise=True,
    )
    async def _ping(self):
        await self.client.admin.command("ping")

    async def connect(self):
        if self.client is None:
            self.client = AsyncIOMotorClient(self.settings.mongodb_url)
            self.database = self.client[self.settings.mongodb_db]
        try:
            await self._ping()
        except ConnectionFailure as e:
            logger.error(f"Could not reach MongoDB at database '{self.settings.mongodb_db}': {e}")
            raise
        logger.info(f"Connected to MongoDB database '{self.settings.mongodb_db}'")

    def close(self):
        if self.client is not None:
            self.client.close()
            logger.info("MongoDB connection closed")
        self.client = None
        self.database = None

    @property
    def games(self) -> AsyncIOMotorCollection:
        if self.database is None:
            raise RuntimeError("Database is not connected")
        return self.database["games"]
