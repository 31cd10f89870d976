"""Tests for Mongo id handling and the Db singleton."""
import pytest
from bson import ObjectId
from pymongo.errors import ConnectionFailure
from tenacity import wait_none

from msgames.config import Settings
from msgames.dao.db import Db, rewrite_id, to_object_id
from msgames.utils.errors import GameError


class TestRewriteId:
    def test_replaces_object_id_with_string(self):
        oid = ObjectId()
        document = {"_id": oid, "status": "active"}

        rewritten = rewrite_id(document)

        assert rewritten == {"id": str(oid), "status": "active"}
        assert "_id" in document

    def test_none_passes_through(self):
        assert rewrite_id(None) is None

    def test_document_without_id_is_unchanged(self):
        assert rewrite_id({"score": 3}) == {"score": 3}


class TestToObjectId:
    def test_valid_hex(self):
        oid = ObjectId()

        assert to_object_id(str(oid)) == oid

    @pytest.mark.parametrize("value", ["", "123", "zzzzzzzzzzzzzzzzzzzzzzzz", None])
    def test_invalid_values(self, value):
        with pytest.raises(GameError) as exc_info:
            to_object_id(value)
        assert exc_info.value.status_code == 400


class TestDbSingleton:
    def setup_method(self):
        Db.reset()

    def teardown_method(self):
        Db.reset()

    def test_get_instance_is_shared(self):
        assert Db.get_instance() is Db.get_instance()

    def test_reset_drops_instance(self):
        first = Db.get_instance()
        Db.reset()

        assert Db.get_instance() is not first

    def test_games_requires_connection(self):
        db = Db(Settings(mongodb_db="test"))

        with pytest.raises(RuntimeError):
            db.games

    def test_close_without_connection(self):
        db = Db(Settings())
        db.close()

        assert db.client is None


class FakeAdmin:
    def __init__(self, failures):
        self.failures = failures
        self.calls = 0

    async def command(self, name):
        assert name == "ping"
        self.calls += 1
        if self.failures is None or self.calls <= self.failures:
            raise ConnectionFailure("server unreachable")
        return {"ok": 1}


class FakeMotorClient:
    instances = []

    def __init__(self, url, failures=0):
        self.url = url
        self.admin = FakeAdmin(failures)
        self.closed = False
        FakeMotorClient.instances.append(self)

    def __getitem__(self, name):
        return {"name": name, "games": f"{name}.games"}

    def close(self):
        self.closed = True


@pytest.fixture
def fake_motor(monkeypatch):
    def install(failures):
        FakeMotorClient.instances = []
        monkeypatch.setattr(
            "msgames.dao.db.AsyncIOMotorClient", lambda url: FakeMotorClient(url, failures)
        )
        monkeypatch.setattr(Db._ping.retry, "wait", wait_none())
        return FakeMotorClient.instances

    return install


class TestDbConnect:
    @pytest.mark.asyncio
    async def test_connect_selects_database(self, fake_motor):
        instances = fake_motor(failures=0)
        db = Db(Settings(mongodb_url="mongodb://mongodb:27017/", mongodb_db="beergame"))

        await db.connect()

        assert instances[0].url == "mongodb://mongodb:27017/"
        assert db.database["name"] == "beergame"
        assert db.games == "beergame.games"

    @pytest.mark.asyncio
    async def test_ping_is_retried_until_it_succeeds(self, fake_motor):
        instances = fake_motor(failures=2)
        db = Db(Settings())

        await db.connect()

        assert instances[0].admin.calls == 3
        assert db.database is not None

    @pytest.mark.asyncio
    async def test_gives_up_after_three_attempts(self, fake_motor):
        instances = fake_motor(failures=None)
        db = Db(Settings())

        with pytest.raises(ConnectionFailure):
            await db.connect()

        assert instances[0].admin.calls == 3

    @pytest.mark.asyncio
    async def test_close_releases_client(self, fake_motor):
        instances = fake_motor(failures=0)
        db = Db(Settings())
        await db.connect()

        db.close()

        assert instances[0].closed
        assert db.client is None
        assert db.database is None
