"""
Foundry (forge) wrapper.

Compiles a cloned repository and reads the bytecode of single contracts
with `forge inspect`. Every invocation runs in a worker thread with an
explicit timeout.
"""

import asyncio
import logging
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path

from .errors import ExtractionError, ProcessTimeoutError
from .sources import contract_identifier

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompileOutcome:
    """Result of one `forge compile` invocation."""

    success: bool
    exit_status: int | None = None
    stderr: str = ""
    timed_out: bool = False

    @property
    def summary(self) -> str:
        if self.success:
            return "compiled"
        if self.timed_out:
            return "compile timed out"
        if self.exit_status is None:
            return f"compile could not start: {self.stderr}"
        return f"compile failed with status {self.exit_status}"


class ForgeRunner:
    """Runs forge compile and forge inspect inside a workspace."""

    def __init__(
        self,
        forge_bin: str = "forge",
        compile_timeout: float = 900,
        inspect_timeout: float = 180,
    ):
        """Initialize forge runner.

        Args:
            forge_bin: forge executable name or path
            compile_timeout: Maximum seconds for `forge compile`
            inspect_timeout: Maximum seconds for one `forge inspect`
        """
        self.forge_bin = forge_bin
        self.compile_timeout = compile_timeout
        self.inspect_timeout = inspect_timeout

    def is_available(self) -> tuple[bool, str]:
        """Check if forge is installed.

        Returns:
            Tuple of (available, version_or_error)
        """
        if not shutil.which(self.forge_bin):
            return False, f"{self.forge_bin} not found in PATH"

        try:
            result = subprocess.run(
                [self.forge_bin, "--version"],
                capture_output=True,
                text=True,
                timeout=10,
            )
            if result.returncode == 0:
                return True, result.stdout.strip().splitlines()[0] if result.stdout.strip() else "unknown"
            return False, result.stderr.strip()
        except subprocess.TimeoutExpired:
            return False, "timeout checking forge version"
        except OSError as e:
            return False, str(e)

    async def _run(self, args: list[str], cwd: Path, timeout: float) -> subprocess.CompletedProcess:
        cmd = [self.forge_bin, *args]
        logger.debug("Running %s in %s", " ".join(cmd), cwd)
        try:
            return await asyncio.to_thread(
                subprocess.run,
                cmd,
                capture_output=True,
                text=True,
                timeout=timeout,
                cwd=cwd,
            )
        except subprocess.TimeoutExpired as e:
            raise ProcessTimeoutError(cmd, timeout) from e

    async def compile(self, workspace: Path) -> CompileOutcome:
        """Compile the project in a workspace.

        Never raises for tool failures; the outcome carries the details.
        """
        try:
            result = await self._run(["compile"], workspace, self.compile_timeout)
        except ProcessTimeoutError:
            return CompileOutcome(success=False, timed_out=True, stderr=f"timed out after {self.compile_timeout}s")
        except OSError as e:
            return CompileOutcome(success=False, stderr=str(e))

        if result.returncode != 0:
            return CompileOutcome(success=False, exit_status=result.returncode, stderr=result.stderr or "")
        return CompileOutcome(success=True, exit_status=0)

    async def inspect_bytecode(self, workspace: Path, file_name: str) -> str:
        """Return the bytecode of the contract defined in `file_name`.

        stdout is returned verbatim.

        Raises:
            ExtractionError: forge exited non-zero or could not be started
            ProcessTimeoutError: forge did not finish in time
        """
        identifier = contract_identifier(file_name)
        try:
            result = await self._run(["inspect", identifier, "bytecode"], workspace, self.inspect_timeout)
        except OSError as e:
            raise ExtractionError(file_name, None, str(e)) from e

        if result.returncode != 0:
            raise ExtractionError(file_name, result.returncode, result.stderr or "")
        return result.stdout
