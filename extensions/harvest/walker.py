"""
Remote repository tree walker.

Expands directory entries through the contents API and collects eligible
contract sources. Pending directories are kept on an explicit worklist so
deep repositories cannot exhaust the call stack.
"""

import logging
from collections import deque

from .content import ContentEntry, ContentLister
from .sources import is_eligible

logger = logging.getLogger(__name__)


class TreeWalker:
    """Walks a repository listing and returns eligible source entries."""

    def __init__(self, lister: ContentLister, max_depth: int | None = None):
        """Initialize walker.

        Args:
            lister: Content lister used to expand directories
            max_depth: Deepest directory level to expand (root entries are
                level 0). None walks the whole tree.
        """
        self.lister = lister
        self.max_depth = max_depth

    async def walk(
        self,
        entries: list[ContentEntry],
        owner: str,
        repo: str,
    ) -> list[ContentEntry]:
        """Collect eligible source files below the given listing.

        Any failed sub-listing propagates and fails the whole walk.

        Args:
            entries: Listing to start from, usually the repository root
            owner: Repository owner
            repo: Repository name

        Returns:
            Eligible file entries, in traversal order
        """
        found: list[ContentEntry] = []
        pending: deque[tuple[list[ContentEntry], int]] = deque([(entries, 0)])
        listed_dirs = 0

        while pending:
            batch, depth = pending.popleft()
            for entry in batch:
                if entry.is_file:
                    if is_eligible(entry):
                        found.append(entry)
                elif entry.is_dir:
                    if not entry.path:
                        continue
                    if self.max_depth is not None and depth >= self.max_depth:
                        logger.warning(
                            "%s/%s: not expanding %s (max depth %d)",
                            owner, repo, entry.path, self.max_depth,
                        )
                        continue
                    children = await self.lister.list_contents(owner, repo, entry.path)
                    listed_dirs += 1
                    pending.append((children, depth + 1))

        logger.debug(
            "%s/%s: %d eligible sources in %d directories",
            owner, repo, len(found), listed_dirs,
        )
        return found
