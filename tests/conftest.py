"""Shared fixtures: an in-memory stand-in for the motor `games` collection and an API client."""
import asyncio
import copy
from types import SimpleNamespace

import pytest
from bson import ObjectId
from fastapi.testclient import TestClient

from msgames.config import get_settings
from msgames.logic.game_service import GameService
from msgames.routes.game_routes import get_game_service


class FakeCursor:
    def __init__(self, documents):
        self.documents = documents

    def sort(self, key, direction=1):
        self.documents.sort(key=lambda document: document.get(key), reverse=direction < 0)
        return self

    def skip(self, count):
        self.documents = self.documents[count:]
        return self

    def limit(self, count):
        self.documents = self.documents[:count]
        return self

    async def to_list(self, length=None):
        return [copy.deepcopy(document) for document in self.documents[:length]]


class FakeCollection:
    def __init__(self):
        self.documents = []

    def _matches_value(self, actual, condition):
        if isinstance(condition, dict) and condition and all(key.startswith("$") for key in condition):
            for operator, operand in condition.items():
                if operator == "$ne":
                    if isinstance(actual, list) and operand in actual:
                        return False
                    if actual == operand:
                        return False
                elif operator == "$gte":
                    if actual is None or actual < operand:
                        return False
                else:
                    raise NotImplementedError(operator)
            return True
        return actual == condition

    def _matches(self, document, query):
        return all(self._matches_value(document.get(key), value) for key, value in query.items())

    def _apply(self, document, update):
        for operator, fields in update.items():
            for key, value in fields.items():
                if operator == "$set":
                    document[key] = copy.deepcopy(value)
                elif operator == "$inc":
                    document[key] = document.get(key, 0) + value
                elif operator == "$push":
                    document.setdefault(key, []).append(copy.deepcopy(value))
                else:
                    raise NotImplementedError(operator)

    async def insert_one(self, document):
        stored = copy.deepcopy(document)
        stored["_id"] = ObjectId()
        self.documents.append(stored)
        return SimpleNamespace(inserted_id=stored["_id"])

    async def find_one(self, query):
        for document in self.documents:
            if self._matches(document, query):
                return copy.deepcopy(document)
        return None

    def find(self, query=None):
        return FakeCursor([document for document in self.documents if self._matches(document, query or {})])

    async def update_one(self, query, update):
        for document in self.documents:
            if self._matches(document, query):
                self._apply(document, update)
                return SimpleNamespace(matched_count=1, modified_count=1)
        return SimpleNamespace(matched_count=0, modified_count=0)

    async def delete_one(self, query):
        for index, document in enumerate(self.documents):
            if self._matches(document, query):
                del self.documents[index]
                return SimpleNamespace(deleted_count=1)
        return SimpleNamespace(deleted_count=0)


@pytest.fixture
def jwt_secret(monkeypatch):
    monkeypatch.setenv("JWT_SECRET", "test-secret")
    get_settings.cache_clear()
    yield "test-secret"
    get_settings.cache_clear()


@pytest.fixture
def games():
    return FakeCollection()


@pytest.fixture
def service(games):
    return GameService(games)


@pytest.fixture
def client(games, jwt_secret):
    from main import app

    app.dependency_overrides[get_game_service] = lambda: GameService(games)
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(jwt_secret):
    from msgames.logic.auth import create_token

    return {"Authorization": f"Bearer {create_token('alice')}"}


class YieldingCollection(FakeCollection):
    """Hands control back to the event loop on every round trip, like a network call."""

    async def find_one(self, query):
        await asyncio.sleep(0)
        return await super().find_one(query)

    async def update_one(self, query, update):
        await asyncio.sleep(0)
        return await super().update_one(query, update)


@pytest.fixture
def yielding_games():
    return YieldingCollection()
