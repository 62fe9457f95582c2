"""Shared fixtures: in-memory stores and a stubbed GitHub API."""

import asyncio

import bson
import httpx
import pytest
from bson.codec_options import CodecOptions
from fastapi.testclient import TestClient

from config import Settings
from dependencies import build_context
from errors import DuplicateUsername
from main import create_app
from models import StarEvent

TEST_SECRET = "test-secret"


class FakeAccountStore:
    def __init__(self):
        self.accounts = {}

    async def create(self, account):
        await asyncio.sleep(0)
        if account.username in self.accounts:
            raise DuplicateUsername(account.username)
        self.accounts[account.username] = account

    async def get(self, username):
        await asyncio.sleep(0)
        return self.accounts.get(username)


class FakeStarRecordStore:
    """Keeps records as encoded BSON, the way MongoDB would store them."""

    def __init__(self):
        self.records = {}

    async def get(self, url):
        await asyncio.sleep(0)
        data = self.records.get(url)
        if data is None:
            return None
        doc = bson.decode(data, codec_options=CodecOptions(tz_aware=True))
        return [StarEvent(**star) for star in doc["stars"]]

    async def save(self, url, stars):
        await asyncio.sleep(0)
        if url in self.records:
            return False
        self.put(url, stars)
        return True

    def put(self, url, stars):
        self.records[url] = bson.encode(
            {"url": url, "stars": [star.model_dump() for star in stars]}
        )


def stargazers(*user_ids):
    """Build a stargazers payload, one star per day starting 2020-01-01."""
    return [
        {"starred_at": f"2020-01-{day:02d}T12:00:00Z", "user": {"id": user_id, "login": f"u{user_id}"}}
        for day, user_id in enumerate(user_ids, start=1)
    ]


class GitHubStub:
    """Answers ``/repos/{owner}/{name}/stargazers`` from a dict of payloads."""

    def __init__(self):
        self.repos = {}
        self.requests = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        parts = request.url.path.strip("/").split("/")
        key = f"{parts[1]}/{parts[2]}"
        reply = self.repos.get(key)
        if reply is None:
            return httpx.Response(404, json={"message": "Not Found"})
        if isinstance(reply, int):
            return httpx.Response(reply, json={"message": "error"})
        return httpx.Response(200, json=reply)

    @property
    def calls(self):
        return len(self.requests)


@pytest.fixture
def settings():
    return Settings(
        jwt_secret=TEST_SECRET,
        bcrypt_rounds=4,
        github_token="gh-test-token",
        _env_file=None,
    )


@pytest.fixture
def github():
    stub = GitHubStub()
    stub.repos["a/b"] = stargazers(11, 12, 13)
    stub.repos["c/d"] = stargazers(21, 22)
    return stub


@pytest.fixture
def accounts():
    return FakeAccountStore()


@pytest.fixture
def star_records():
    return FakeStarRecordStore()


@pytest.fixture
def http(github):
    return httpx.AsyncClient(transport=httpx.MockTransport(github.handler))


@pytest.fixture
def context(settings, accounts, star_records, http):
    return build_context(settings, accounts, star_records, http)


@pytest.fixture
def client(context):
    app = create_app(context=context)
    with TestClient(app) as test_client:
        yield test_client
