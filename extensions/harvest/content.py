"""
GitHub contents API client.

Lists one directory of a remote repository and parses the response into
typed entries. Accessibility, transport and decoding failures are raised
as distinct errors so the pipeline can decide what to skip.
"""

import asyncio
import logging
from urllib.parse import quote

import aiohttp
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from .errors import DecodeError, InaccessibleRepository, NetworkError

logger = logging.getLogger(__name__)

DEFAULT_API_BASE = "https://api.github.com"
DEFAULT_USER_AGENT = "contest-harvester"


class ContentLinks(BaseModel):
    """The `_links` object of a contents entry."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    self_link: str | None = Field(default=None, alias="self")
    git: str | None = None
    html: str | None = None


class ContentEntry(BaseModel):
    """One item of a repository directory listing."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    name: str | None = None
    path: str | None = None
    sha: str | None = None
    size: int | None = None
    url: str | None = None
    kind: str | None = Field(default=None, alias="type")
    html_url: str | None = None
    git_url: str | None = None
    download_url: str | None = None
    links: ContentLinks | None = Field(default=None, alias="_links")

    @property
    def is_file(self) -> bool:
        return self.kind == "file"

    @property
    def is_dir(self) -> bool:
        return self.kind == "dir"


_LISTING = TypeAdapter(list[ContentEntry])


def parse_listing(body: str | bytes) -> list[ContentEntry]:
    """Parse a contents API response body.

    Raises:
        DecodeError: If the body is not a JSON array of entry objects
    """
    if isinstance(body, bytes):
        try:
            body = body.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecodeError(f"Listing body is not valid UTF-8: {e.reason} at byte {e.start}") from e
    try:
        return _LISTING.validate_json(body)
    except ValidationError as e:
        raise DecodeError(f"Unexpected listing payload: {e.error_count()} error(s), first: {e.errors()[0]['msg']}") from e


class ContentLister:
    """Lists repository contents through the GitHub REST API."""

    def __init__(
        self,
        session: aiohttp.ClientSession | None = None,
        api_base: str = DEFAULT_API_BASE,
        user_agent: str = DEFAULT_USER_AGENT,
        token: str | None = None,
        timeout: float = 30,
    ):
        """Initialize lister.

        Args:
            session: Shared aiohttp session. If None, one is created on enter.
            api_base: API root, without trailing slash
            user_agent: Value for the required User-Agent header
            token: Optional GitHub token, raises the rate limit
            timeout: Per-request timeout in seconds
        """
        if not user_agent:
            raise ValueError("user_agent must be a non-empty string")
        self._session = session
        self._owns_session = False
        self.api_base = api_base.rstrip("/")
        self.user_agent = user_agent
        self.token = token
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
            raise RuntimeError("Lister not initialized. Use async with or call __aenter__")
        return self._session

    def contents_url(self, owner: str, repo: str, path: str = "") -> str:
        url = f"{self.api_base}/repos/{owner}/{repo}/contents"
        path = path.strip("/")
        if path:
            url += f"/{quote(path)}"
        return url

    def _headers(self) -> dict[str, str]:
        headers = {
            "User-Agent": self.user_agent,
            "Accept": "application/vnd.github+json",
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def list_contents(self, owner: str, repo: str, path: str = "") -> list[ContentEntry]:
        """List one directory of a repository.

        Args:
            owner: Repository owner
            repo: Repository name
            path: Directory path inside the repository, "" for the root

        Returns:
            Entries in the order the API returned them

        Raises:
            InaccessibleRepository: On HTTP status >= 400
            NetworkError: On transport failure or timeout
            DecodeError: If the body is not a listing
        """
        url = self.contents_url(owner, repo, path)
        logger.debug("GET %s", url)

        try:
            async with self.session.get(
                url,
                headers=self._headers(),
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            ) as resp:
                if resp.status >= 400:
                    raise InaccessibleRepository(url, resp.status)
                body = await resp.read()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise NetworkError(f"GET {url} failed: {str(e) or type(e).__name__}") from e

        return parse_listing(body)
