"""Registration, login and access token handling."""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
import jwt

from errors import Forbidden, InvalidCredentials, UnknownUser
from models import Account

logger = logging.getLogger(__name__)


def hash_password(password: str, rounds: int) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds)).decode("utf-8")


def check_password(password: str, password_hash: str) -> bool:
    return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))


class SessionIssuer:
    """Verifies credentials and issues signed access tokens.

    Tokens carry only the username. They get an ``exp`` claim when
    ``expire_minutes`` is set; otherwise they stay valid until the secret
    changes.
    """

    def __init__(
        self,
        accounts,
        secret: str,
        algorithm: str = "HS256",
        expire_minutes: Optional[int] = None,
        bcrypt_rounds: int = 10,
    ):
        self.accounts = accounts
        self.secret = secret
        self.algorithm = algorithm
        self.expire_minutes = expire_minutes
        self.bcrypt_rounds = bcrypt_rounds

    async def register(self, username: str, password: str) -> Account:
        """Hash the password and store a new account.

        Raises DuplicateUsername (from the store) if the name is taken.
        """
        password_hash = await asyncio.to_thread(hash_password, password, self.bcrypt_rounds)
        account = Account(username=username, password_hash=password_hash)
        await self.accounts.create(account)
        logger.info(f"Registered user {username}")
        return account

    async def login(self, username: str, password: str) -> str:
        account = await self.accounts.get(username)
        if account is None:
            raise UnknownUser(f"Cannot find user {username!r}")

        matches = await asyncio.to_thread(check_password, password, account.password_hash)
        if not matches:
            logger.info(f"Rejected login for {username}")
            raise InvalidCredentials("Not Allowed")

        logger.info(f"User {username} logged in")
        return self.issue_token(account.username)

    def issue_token(self, username: str) -> str:
        claims = {"username": username}
        if self.expire_minutes is not None:
            claims["exp"] = datetime.now(timezone.utc) + timedelta(minutes=self.expire_minutes)
        return jwt.encode(claims, self.secret, algorithm=self.algorithm)

    def verify_token(self, token: str) -> str:
        """Check the token signature and return the embedded username."""
        try:
            claims = jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except jwt.ExpiredSignatureError as e:
            raise Forbidden("Access token expired") from e
        except jwt.InvalidTokenError as e:
            raise Forbidden("Invalid access token") from e

        username = claims.get("username")
        if not isinstance(username, str) or not username:
            raise Forbidden("Access token carries no username")
        return username
