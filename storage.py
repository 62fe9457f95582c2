"""MongoDB storage for accounts and cached repository star records."""

import logging
from datetime import datetime, timezone
from typing import List, Optional

from motor.motor_asyncio import (
    AsyncIOMotorClient,
    AsyncIOMotorCollection,
    AsyncIOMotorDatabase,
)
from pymongo import ASCENDING
from pymongo.errors import ConnectionFailure, DuplicateKeyError

from errors import DuplicateUsername
from models import Account, StarEvent

logger = logging.getLogger(__name__)

USERS_COLLECTION = "users"
REPOS_COLLECTION = "repos"


def as_utc(value: datetime) -> datetime:
    """BSON datetimes are UTC; clients without tz_aware hand them back naive."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class MongoAccountStore:
    """Credential store backed by the ``users`` collection."""

    def __init__(self, collection: AsyncIOMotorCollection) -> None:
        self.collection = collection

    async def create(self, account: Account) -> None:
        """Insert a new account.

        Raises:
            DuplicateUsername: If the unique index on username rejects the insert
        """
        try:
            await self.collection.insert_one(account.model_dump())
        except DuplicateKeyError as e:
            raise DuplicateUsername(f"Username {account.username!r} already exists") from e

    async def get(self, username: str) -> Optional[Account]:
        doc = await self.collection.find_one({"username": username})
        if doc is None:
            return None
        return Account(username=doc["username"], password_hash=doc["password_hash"])


class MongoStarRecordStore:
    """Repository cache backed by the ``repos`` collection.

    A record is written once per repository and never updated: ``save`` uses
    an upsert with ``$setOnInsert`` so an existing record always wins.
    """

    def __init__(self, collection: AsyncIOMotorCollection) -> None:
        self.collection = collection

    async def get(self, url: str) -> Optional[List[StarEvent]]:
        doc = await self.collection.find_one({"url": url})
        if doc is None:
            return None
        return [
            StarEvent(date=as_utc(star["date"]), count=star["count"])
            for star in doc.get("stars", [])
        ]

    async def save(self, url: str, stars: List[StarEvent]) -> bool:
        """Store the star list for ``url`` unless a record already exists.

        Args:
            url: Repository key in ``owner/name`` form
            stars: Star events to persist

        Returns:
            True if this call created the record, False if one was already there
        """
        document = {
            "url": url,
            "stars": [star.model_dump() for star in stars],
            "fetched_at": datetime.now(timezone.utc),
        }
        try:
            result = await self.collection.update_one(
                {"url": url}, {"$setOnInsert": document}, upsert=True
            )
        except DuplicateKeyError:
            # Lost an insert race against another process
            logger.info(f"Star record for {url} was created concurrently")
            return False
        return result.upserted_id is not None


class MongoDatabase:
    """Owns the Motor client and hands out the two stores.

    Example:
        ```python
        database = MongoDatabase("mongodb://localhost:27017", "stargazer")
        await database.startup()
        account = await database.accounts.get("alice")
        await database.shutdown()
        ```
    """

    def __init__(self, uri: str, database: str) -> None:
        self.uri = uri
        self.database_name = database
        self._client: Optional[AsyncIOMotorClient] = None
        self._db: Optional[AsyncIOMotorDatabase] = None
        self.accounts: Optional[MongoAccountStore] = None
        self.star_records: Optional[MongoStarRecordStore] = None

    async def startup(self) -> None:
        """Connect, verify the server is reachable and create unique indexes.

        Raises:
            ConnectionError: If unable to connect to MongoDB
        """
        try:
            self._client = AsyncIOMotorClient(self.uri, tz_aware=True)
            self._db = self._client[self.database_name]
            await self._client.admin.command("ping")
            logger.info(f"Connected to MongoDB database {self.database_name}")
        except ConnectionFailure as e:
            logger.error(f"Failed to connect to MongoDB: {e}")
            raise ConnectionError("Unable to connect to MongoDB") from e

        users = self._db[USERS_COLLECTION]
        repos = self._db[REPOS_COLLECTION]
        await users.create_index([("username", ASCENDING)], unique=True)
        await repos.create_index([("url", ASCENDING)], unique=True)

        self.accounts = MongoAccountStore(users)
        self.star_records = MongoStarRecordStore(repos)

    async def shutdown(self) -> None:
        """Close the client. Safe to call multiple times."""
        if self._client:
            self._client.close()
            self._client = None
            self._db = None
            logger.info("Closed MongoDB connection")
