"""Local staging directory holding one cloned repository per name."""

import asyncio
import logging
import shutil
from pathlib import Path

from .errors import CleanupError

logger = logging.getLogger(__name__)


class Workspace:
    """Staging root for cloned repositories, e.g. ./repos/<name>."""

    def __init__(self, root: Path):
        self.root = Path(root)

    def path_for(self, repo_name: str) -> Path:
        # Only the root is resolved; a leftover symlink at repos/<name> is
        # removed by `remove`, never followed.
        root = self.root.resolve()
        path = root / repo_name
        if repo_name in ("", ".", "..") or path.parent != root:
            raise ValueError(f"Repository name escapes workspace root: {repo_name!r}")
        return path

    async def remove(self, path: Path) -> bool:
        """Delete a workspace directory if it exists.

        Best-effort: failures are logged, never raised. A symlink or
        stray file at `path` is unlinked; its target is left alone.

        Returns:
            True if the directory is gone afterwards
        """
        try:
            await asyncio.to_thread(self._remove_tree, path)
        except CleanupError as e:
            logger.error("%s", e)
            return False
        return True

    @staticmethod
    def _remove_tree(path: Path) -> None:
        try:
            if path.is_symlink() or path.is_file():
                path.unlink()
            elif path.exists():
                shutil.rmtree(path)
        except OSError as e:
            raise CleanupError(f"Failed to delete repository at {path}: {e}") from e
