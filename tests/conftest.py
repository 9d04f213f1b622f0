"""
Shared fixtures: in-memory MongoDB, managers and an HTTP test client.

Runs against mongomock behind a thin awaitable wrapper shaped like motor's
database/collection/cursor API, so no live database or server is needed.
"""

import mongomock
import pytest
from fastapi.testclient import TestClient

from cagematch.accounts import AccountManager, TokenService
from cagematch.api import create_app
from cagematch.challenge import ChallengeManager
from cagematch.config import AppConfig, DatabaseConfig
from cagematch.database import ChallengeOps, UserOps, create_indexes

PASSWORD = "Str0ng!pass"


# ======================================================================
# Async wrapper over mongomock
# ======================================================================


class AsyncCursor:
    def __init__(self, cursor):
        self._cursor = cursor
        self._iterator = None

    def sort(self, *args, **kwargs):
        self._cursor = self._cursor.sort(*args, **kwargs)
        return self

    def skip(self, count):
        self._cursor = self._cursor.skip(count)
        return self

    def limit(self, count):
        self._cursor = self._cursor.limit(count)
        return self

    def __aiter__(self):
        self._iterator = iter(self._cursor)
        return self

    async def __anext__(self):
        try:
            return next(self._iterator)
        except StopIteration:
            raise StopAsyncIteration

    async def to_list(self, length=None):
        return list(self._cursor)


class AsyncCollection:
    def __init__(self, collection):
        self._collection = collection

    def find(self, *args, **kwargs):
        return AsyncCursor(self._collection.find(*args, **kwargs))

    def __getattr__(self, name):
        method = getattr(self._collection, name)

        async def call(*args, **kwargs):
            return method(*args, **kwargs)

        return call


class AsyncDatabase:
    def __init__(self, database):
        self._database = database

    def __getitem__(self, name):
        return AsyncCollection(self._database[name])

    def raw(self, name):
        """Synchronous mongomock collection, for direct assertions."""
        return self._database[name]


# ======================================================================
# Configuration and stores
# ======================================================================


@pytest.fixture
def config():
    return AppConfig(
        jwt_secret="test-secret-with-at-least-32-bytes",
        bcrypt_rounds=4,
        environment="development",
        log_to_file=False,
    )


@pytest.fixture
def db_config():
    return DatabaseConfig(enable_indexes=True)


@pytest.fixture
def database():
    """Fresh in-memory database for each test."""
    return AsyncDatabase(mongomock.MongoClient()["cagematch_test"])


@pytest.fixture
async def indexed_database(database, db_config):
    await create_indexes(database, db_config)
    return database


@pytest.fixture
def user_ops(indexed_database, db_config):
    return UserOps(indexed_database, db_config)


@pytest.fixture
def challenge_ops(indexed_database, db_config):
    return ChallengeOps(indexed_database, db_config)


@pytest.fixture
def tokens(config):
    return TokenService(config)


@pytest.fixture
def accounts(user_ops, tokens, config):
    return AccountManager(user_ops, tokens, config)


@pytest.fixture
def challenges(challenge_ops, user_ops):
    return ChallengeManager(challenge_ops, user_ops)


@pytest.fixture
def make_fighter(accounts):
    """Sign up an account and promote it to fighter."""

    async def _make(username):
        user = await accounts.signup(username, f"{username}@example.com", PASSWORD)
        return await accounts.become_fighter(user.id)

    return _make


@pytest.fixture
def make_fan(accounts):

    async def _make(username):
        return await accounts.signup(username, f"{username}@example.com", PASSWORD)

    return _make


# ======================================================================
# HTTP
# ======================================================================


@pytest.fixture
def client(config, db_config, database):
    """FastAPI test client backed by the in-memory database."""
    app = create_app(config, db_config, database=database)
    with TestClient(app) as c:
        yield c


class ApiUser:
    """A signed-in account driving the HTTP API."""

    def __init__(self, client, username, token, user):
        self.client = client
        self.username = username
        self.token = token
        self.id = user["_id"]

    @property
    def headers(self):
        return {"Authorization": f"Bearer {self.token}"}

    def get(self, url, **kwargs):
        return self.client.get(url, headers=self.headers, **kwargs)

    def post(self, url, **kwargs):
        return self.client.post(url, headers=self.headers, **kwargs)

    def patch(self, url, **kwargs):
        return self.client.patch(url, headers=self.headers, **kwargs)

    def delete(self, url, **kwargs):
        return self.client.request("DELETE", url, headers=self.headers, **kwargs)


def signup_and_signin(client, username):
    resp = client.post("/api/users/signup", json={
        "username": username,
        "email": f"{username}@example.com",
        "password": PASSWORD,
    })
    assert resp.status_code == 201, resp.text
    resp = client.post("/api/users/signin", json={"username": username, "password": PASSWORD})
    assert resp.status_code == 200, resp.text
    data = resp.json()["data"]
    return ApiUser(client, username, data["token"], data["user"])


@pytest.fixture
def api_fan(client):
    def _make(username):
        return signup_and_signin(client, username)
    return _make


@pytest.fixture
def api_fighter(client):
    def _make(username):
        user = signup_and_signin(client, username)
        resp = user.post("/api/users/become-fighter")
        assert resp.status_code == 200, resp.text
        return user
    return _make
