import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

import uvicorn
from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse, PlainTextResponse
from pymongo.errors import PyMongoError

from auth import SessionIssuer
from config import Settings
from dependencies import (
    AppContext,
    connect_context,
    get_current_user,
    get_fetcher,
    get_sessions,
)
from errors import (
    DuplicateUsername,
    Forbidden,
    InvalidCredentials,
    InvalidRequest,
    RepositoryNotFound,
    Unauthorized,
    UnknownUser,
    UpstreamFetchError,
)
from models import CompareRequest, CompareResponse, Credentials, LoginResponse
from stars import StarFetcher, compare

STATIC_DIR = Path(__file__).resolve().parent / "static"

logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stdout,
    )
    if logging.getLogger().level > logging.DEBUG:
        logging.getLogger("httpcore").setLevel(logging.WARNING)
        logging.getLogger("httpx").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    owned = app.state.context is None
    if owned:
        logger.info("Connecting storage and GitHub client...")
        app.state.context = await connect_context(app.state.settings)
    yield
    if owned:
        context: AppContext = app.state.context
        await context.close()
        app.state.context = None
        logger.info("Shutdown complete")


def create_app(
    settings: Optional[Settings] = None, context: Optional[AppContext] = None
) -> FastAPI:
    """Build the application; pass ``context`` to supply ready-made components."""
    if settings is None:
        settings = context.settings if context is not None else Settings()

    app = FastAPI(
        title="GitHub Stars Comparison",
        description="Compare the star history of two GitHub repositories",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.context = context

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.origins,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    @app.exception_handler(Unauthorized)
    async def unauthorized_handler(request: Request, exc: Unauthorized) -> JSONResponse:
        return JSONResponse(status_code=status.HTTP_401_UNAUTHORIZED, content={"detail": "Unauthorized"})

    @app.exception_handler(Forbidden)
    async def forbidden_handler(request: Request, exc: Forbidden) -> JSONResponse:
        return JSONResponse(status_code=status.HTTP_403_FORBIDDEN, content={"detail": "Forbidden"})

    @app.get("/", include_in_schema=False)
    async def index():
        return FileResponse(STATIC_DIR / "index.html")

    @app.get("/health")
    async def health_check():
        return {"status": "healthy"}

    @app.post("/register", status_code=status.HTTP_201_CREATED, response_class=PlainTextResponse)
    async def register(
        credentials: Credentials, sessions: SessionIssuer = Depends(get_sessions)
    ):
        try:
            await sessions.register(credentials.username, credentials.password)
        except DuplicateUsername:
            return PlainTextResponse("Username already exists", status_code=status.HTTP_409_CONFLICT)
        except PyMongoError as e:
            logger.error(f"Error registering user: {e}")
            return PlainTextResponse(
                "Error registering user", status_code=status.HTTP_500_INTERNAL_SERVER_ERROR
            )
        return "User registered successfully"

    @app.post("/login", response_model=LoginResponse)
    async def login(credentials: Credentials, sessions: SessionIssuer = Depends(get_sessions)):
        try:
            token = await sessions.login(credentials.username, credentials.password)
        except UnknownUser:
            return PlainTextResponse("Cannot find user", status_code=status.HTTP_400_BAD_REQUEST)
        except InvalidCredentials:
            return PlainTextResponse("Not Allowed", status_code=status.HTTP_401_UNAUTHORIZED)
        except PyMongoError as e:
            logger.error(f"Error logging in: {e}")
            return PlainTextResponse(
                "Error logging in", status_code=status.HTTP_500_INTERNAL_SERVER_ERROR
            )
        return {"accessToken": token}

    @app.post(
        "/fetch-stars",
        response_model=CompareResponse,
        summary="Compare the star history of two repositories",
        description="Returns the cached or freshly fetched star events for both repositories",
    )
    async def fetch_stars(
        body: CompareRequest,
        username: str = Depends(get_current_user),
        fetcher: StarFetcher = Depends(get_fetcher),
    ):
        logger.info(f"{username} compares {body.repo1!r} with {body.repo2!r}")

        try:
            series1, series2 = await compare(fetcher, body.repo1, body.repo2)
        except InvalidRequest as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
        except RepositoryNotFound as e:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
        except UpstreamFetchError as e:
            logger.warning(f"Upstream fetch failed: {e} ({e.cause!r})")
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))
        except PyMongoError as e:
            logger.error(f"Storage error while fetching stars: {e}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Error fetching stars"
            )

        return {"repo1": series1, "repo2": series2}

    return app


def run() -> None:
    settings = Settings()
    configure_logging(settings.log_level)
    uvicorn.run(create_app(settings), host="0.0.0.0", port=settings.port)


if __name__ == "__main__":
    run()
