"""Repository identity parsed from a contest repository URL."""

from dataclasses import dataclass

from .errors import InvalidRepositoryUrl


@dataclass(frozen=True)
class RepositoryTarget:
    """A remote repository, e.g. https://github.com/code-423n4/2024-01-foo."""

    owner: str
    name: str
    url: str
    host: str = "github.com"

    @classmethod
    def from_url(cls, url: str) -> "RepositoryTarget":
        """Parse owner and name out of a repository URL.

        The URL must have at least five `/`-separated segments:
        scheme, empty, host, owner, name.

        Raises:
            InvalidRepositoryUrl: If the URL is malformed
        """
        parts = url.strip().split("/")
        if len(parts) < 5:
            raise InvalidRepositoryUrl(f"Not a repository URL: {url!r}")

        host, owner, name = parts[2], parts[3], parts[4]
        if name.endswith(".git"):
            name = name[: -len(".git")]
        if not host or not owner or not name or name in (".", ".."):
            raise InvalidRepositoryUrl(f"Missing host, owner or name in {url!r}")

        return cls(owner=owner, name=name, url=url, host=host)

    @property
    def clone_url(self) -> str:
        return f"https://{self.host}/{self.owner}/{self.name}"

    @property
    def slug(self) -> str:
        return f"{self.owner}/{self.name}"

    def __str__(self) -> str:
        return self.slug
