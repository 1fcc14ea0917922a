"""
Code4rena contest discovery.

Reads the public contests page and returns the GitHub repositories of
contests with a given status. When the page yields nothing (it is rendered
client-side more often than not) the JSON contest API is tried instead.

Note: Always verify contest details manually before participating.
"""

import asyncio
import json
import logging
from typing import Any

import aiohttp
from bs4 import BeautifulSoup

from .config import DEFAULT_CONTESTS_URL

logger = logging.getLogger(__name__)

STATUSES = ("active", "upcoming")
GITHUB_PREFIX = "https://github.com/"
CODE4RENA_API_URL = "https://code4rena.com/api/contests"


def _unique(urls: list[str]) -> list[str]:
    seen = set()
    unique = []
    for url in urls:
        if url not in seen:
            seen.add(url)
            unique.append(url)
    return unique


def parse_contest_repos(html: str, status: str) -> list[str]:
    """Extract repository links from contest tiles with the given status."""
    soup = BeautifulSoup(html, "html.parser")
    repos = []
    for tile in soup.select(f"div.contest-tile.{status}"):
        for link in tile.select("a.dropdown__button"):
            href = link.get("href") or ""
            if href.startswith(GITHUB_PREFIX):
                repos.append(href)
    return _unique(repos)


def parse_api_repos(data: Any, status: str) -> list[str]:
    """Extract repository links from the contest API payload."""
    if not isinstance(data, list):
        return []
    repos = []
    for contest in data:
        if not isinstance(contest, dict):
            continue
        if str(contest.get("status", "")).lower() != status:
            continue
        repo = contest.get("repo")
        if isinstance(repo, str) and repo.startswith(GITHUB_PREFIX):
            repos.append(repo)
    return _unique(repos)


class ContestDiscovery:
    """Finds contest repositories by contest status."""

    def __init__(
        self,
        session: aiohttp.ClientSession | None = None,
        contests_url: str = DEFAULT_CONTESTS_URL,
        api_url: str = CODE4RENA_API_URL,
        user_agent: str = "contest-harvester",
        timeout: float = 30,
    ):
        self._session = session
        self._owns_session = False
        self.contests_url = contests_url
        self.api_url = api_url
        self.user_agent = user_agent
        self.timeout = timeout

    async def __aenter__(self):
        if self._session is None:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self

    async def __aexit__(self, *args):
        if self._owns_session and self._session:
            await self._session.close()
            self._session = None
            self._owns_session = False

    @property
    def session(self) -> aiohttp.ClientSession:
        if self._session is None:
            raise RuntimeError("Discovery not initialized. Use async with or call __aenter__")
        return self._session

    async def discover(self, status: str) -> list[str]:
        """Return repository URLs of contests with `status` (active or upcoming)."""
        if status not in STATUSES:
            raise ValueError(f"Unknown contest status: {status}. Available: {list(STATUSES)}")

        repos = await self._from_page(status)
        if not repos:
            repos = await self._from_api(status)
        logger.info("Found %d %s contest repositories", len(repos), status)
        return repos

    async def discover_all(self, statuses: tuple[str, ...] | list[str] = STATUSES) -> list[str]:
        """Discover several statuses in order, without duplicates."""
        repos = []
        for status in statuses:
            repos.extend(await self.discover(status))
        return _unique(repos)

    async def _get_text(self, url: str) -> str | None:
        try:
            async with self.session.get(
                url,
                headers={"User-Agent": self.user_agent},
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            ) as resp:
                if resp.status != 200:
                    logger.warning("%s returned HTTP %d", url, resp.status)
                    return None
                return await resp.text()
        except UnicodeDecodeError as e:
            logger.warning("%s returned an undecodable body: %s", url, e)
            return None
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning("Contest discovery request to %s failed: %s", url, str(e) or type(e).__name__)
            return None

    async def _from_page(self, status: str) -> list[str]:
        html = await self._get_text(self.contests_url)
        if html is None:
            return []
        return parse_contest_repos(html, status)

    async def _from_api(self, status: str) -> list[str]:
        body = await self._get_text(self.api_url)
        if body is None:
            return []
        try:
            data = json.loads(body)
        except json.JSONDecodeError as e:
            logger.warning("Contest API returned invalid JSON: %s", e)
            return []
        return parse_api_repos(data, status)
