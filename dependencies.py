"""FastAPI dependencies.

Components are built once per application and kept in an ``AppContext`` on
``app.state``; routes reach them through the dependencies below instead of
module-level globals.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional

import httpx
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from auth import SessionIssuer
from config import Settings
from errors import Forbidden, Unauthorized
from stars import StarFetcher
from storage import MongoDatabase

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass
class AppContext:
    settings: Settings
    sessions: SessionIssuer
    fetcher: StarFetcher
    # Resources owned by this context, closed on shutdown
    resources: List[Any] = field(default_factory=list)

    async def close(self) -> None:
        for resource in reversed(self.resources):
            if isinstance(resource, httpx.AsyncClient):
                await resource.aclose()
            else:
                await resource.shutdown()
        self.resources.clear()


def build_context(
    settings: Settings, accounts, star_records, http: httpx.AsyncClient
) -> AppContext:
    """Wire the components around the given stores and HTTP client."""
    sessions = SessionIssuer(
        accounts,
        secret=settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
        expire_minutes=settings.token_expire_minutes,
        bcrypt_rounds=settings.bcrypt_rounds,
    )
    fetcher = StarFetcher(
        http,
        star_records,
        token=settings.github_token,
        api_url=settings.github_api_url,
        per_page=settings.github_per_page,
    )
    return AppContext(settings=settings, sessions=sessions, fetcher=fetcher)


async def connect_context(settings: Settings) -> AppContext:
    """Connect MongoDB and open the GitHub HTTP client."""
    database = MongoDatabase(settings.mongodb_uri, settings.mongodb_db)
    await database.startup()
    http = httpx.AsyncClient(timeout=settings.github_timeout)

    context = build_context(settings, database.accounts, database.star_records, http)
    context.resources.extend([database, http])
    return context


def get_context(request: Request) -> AppContext:
    context: Optional[AppContext] = request.app.state.context
    if context is None:
        raise RuntimeError("Application context is not initialized")
    return context


def get_sessions(context: AppContext = Depends(get_context)) -> SessionIssuer:
    return context.sessions


def get_fetcher(context: AppContext = Depends(get_context)) -> StarFetcher:
    return context.fetcher


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    sessions: SessionIssuer = Depends(get_sessions),
) -> str:
    """Username from a verified bearer token.

    Raises Unauthorized when no token is sent and Forbidden when it does not verify.
    """
    if credentials is None or not credentials.credentials:
        raise Unauthorized("Missing access token")
    try:
        return sessions.verify_token(credentials.credentials)
    except Forbidden as e:
        logger.info(f"Rejected access token: {e}")
        raise
