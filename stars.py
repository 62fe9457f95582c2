import asyncio
import logging
import weakref
from typing import List, Optional, Tuple

import httpx
from pydantic import ValidationError

from errors import InvalidRequest, RepositoryNotFound, UpstreamFetchError
from models import StarEvent

logger = logging.getLogger(__name__)

STAR_MEDIA_TYPE = "application/vnd.github.v3.star+json"


def parse_repository(identifier: str) -> Tuple[str, str]:
    """Take owner and name from the last two path segments of a URL-like string"""
    segments = identifier.strip().rstrip("/").split("/")
    if len(segments) < 2 or not segments[-2] or not segments[-1]:
        raise InvalidRequest(f"Cannot read owner/name from {identifier!r}")
    return segments[-2], segments[-1]


class StarFetcher:
    """Returns a repository's star events, from the cache or from GitHub.

    The first successful fetch of a repository is stored and served for every
    later request; cached records are never refreshed. Misses for the same
    repository are serialized so GitHub is asked at most once.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        records,
        token: Optional[str] = None,
        api_url: str = "https://api.github.com",
        per_page: int = 100,
    ):
        self.http = http
        self.records = records
        self.token = token
        self.api_url = api_url.rstrip("/")
        self.per_page = per_page
        # Entries vanish once no fetch holds or waits on the lock
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = (
            weakref.WeakValueDictionary()
        )

    async def fetch(self, identifier: str) -> List[StarEvent]:
        owner, name = parse_repository(identifier)
        key = f"{owner}/{name}"

        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        async with lock:
            cached = await self.records.get(key)
            if cached is not None:
                logger.info(f"Cache hit for {key}")
                return cached

            logger.info(f"Cache miss for {key}, asking GitHub")
            stars = await self._fetch_stargazers(owner, name)
            if not await self.records.save(key, stars):
                # Another writer got there first; its record is authoritative
                stored = await self.records.get(key)
                if stored is not None:
                    return stored
            return stars

    async def _fetch_stargazers(self, owner: str, name: str) -> List[StarEvent]:
        url = f"{self.api_url}/repos/{owner}/{name}/stargazers"
        headers = {"Accept": STAR_MEDIA_TYPE}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        try:
            response = await self.http.get(
                url, headers=headers, params={"per_page": self.per_page}
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                raise RepositoryNotFound(
                    f"Repository {owner}/{name} not found or not public"
                ) from e
            raise UpstreamFetchError(f"GitHub error: {e.response.status_code}", e) from e
        except httpx.RequestError as e:
            raise UpstreamFetchError("Could not connect to GitHub", e) from e
        except ValueError as e:
            raise UpstreamFetchError("GitHub returned invalid JSON", e) from e

        try:
            return [
                StarEvent(date=item["starred_at"], count=item["user"]["id"])
                for item in data
            ]
        except (KeyError, TypeError, ValidationError) as e:
            raise UpstreamFetchError("Unexpected stargazers payload from GitHub", e) from e


async def compare(
    fetcher: StarFetcher, repo1: Optional[str], repo2: Optional[str]
) -> Tuple[List[StarEvent], List[StarEvent]]:
    """Fetch both repositories; either failure fails the whole comparison"""
    if not repo1 or not repo1.strip() or not repo2 or not repo2.strip():
        raise InvalidRequest("Please enter both repository URLs")

    series1, series2 = await asyncio.gather(fetcher.fetch(repo1), fetcher.fetch(repo2))
    return series1, series2
