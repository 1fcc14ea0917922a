"""Clones contest repositories with the git command line."""

import asyncio
import logging
import os
import shutil
import subprocess
from pathlib import Path

from .errors import CloneError, ProcessTimeoutError

logger = logging.getLogger(__name__)


class GitCloner:
    """Materializes a remote repository into a local directory."""

    def __init__(
        self,
        git_bin: str = "git",
        timeout: float = 600,
        depth: int | None = 1,
        recurse_submodules: bool = False,
    ):
        self.git_bin = git_bin
        self.timeout = timeout
        self.depth = depth
        self.recurse_submodules = recurse_submodules

    def is_available(self) -> tuple[bool, str]:
        """Check if git is installed."""
        if not shutil.which(self.git_bin):
            return False, f"{self.git_bin} not found in PATH"
        try:
            result = subprocess.run(
                [self.git_bin, "--version"],
                capture_output=True,
                text=True,
                timeout=10,
            )
            if result.returncode == 0:
                return True, result.stdout.strip()
            return False, result.stderr.strip()
        except subprocess.TimeoutExpired:
            return False, "timeout checking git version"
        except OSError as e:
            return False, str(e)

    def _env(self) -> dict[str, str]:
        env = os.environ.copy()
        env.setdefault("GIT_TERMINAL_PROMPT", "0")
        return env

    def build_command(self, remote_url: str, destination: Path) -> list[str]:
        cmd = [self.git_bin, "clone", "--quiet"]
        if self.depth:
            cmd.extend(["--depth", str(self.depth)])
        if self.recurse_submodules:
            cmd.append("--recurse-submodules")
            if self.depth:
                cmd.append("--shallow-submodules")
        cmd.extend([remote_url, str(destination)])
        return cmd

    async def clone(self, remote_url: str, destination: Path) -> None:
        """Clone `remote_url` into `destination`.

        Raises:
            CloneError: git failed, could not start, or timed out
        """
        cmd = self.build_command(remote_url, destination)
        logger.debug("Running %s", " ".join(cmd))
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise CloneError(f"cannot create {destination.parent}: {e}") from e

        try:
            result = await asyncio.to_thread(
                subprocess.run,
                cmd,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                env=self._env(),
            )
        except subprocess.TimeoutExpired as e:
            raise CloneError(str(ProcessTimeoutError(cmd, self.timeout))) from e
        except OSError as e:
            raise CloneError(f"failed to run {self.git_bin}: {e}") from e

        if result.returncode != 0:
            raise CloneError(
                f"git clone {remote_url} failed with status {result.returncode}: "
                f"{(result.stderr or '').strip()[:300]}"
            )
