"""
Repository lifecycle orchestration.

Per repository:
    DISCOVERING → CHECKING_ACCESS → CLEANING_PRE → CLONING → COMPILING
        → WALKING → EXTRACTING → CLEANING_POST → DONE

Failures local to one file or one repository are logged and skipped;
the run always continues with the next repository.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from enum import Enum
from pathlib import Path

from .config import HarvestSettings
from .content import ContentEntry, ContentLister
from .errors import (
    CloneError,
    DecodeError,
    ExtractionError,
    InaccessibleRepository,
    InvalidRepositoryUrl,
    NetworkError,
    ProcessTimeoutError,
)
from .forge_runner import ForgeRunner
from .git_cloner import GitCloner
from .models import EligibleSource, HarvestReport, RepositoryResult, SkippedRepository
from .sources import pragma_version
from .target import RepositoryTarget
from .walker import TreeWalker
from .workspace import Workspace

logger = logging.getLogger(__name__)


class RepositoryStage(Enum):
    """Lifecycle stages of one repository."""
    DISCOVERING = "discovering"
    CHECKING_ACCESS = "checking_access"
    CLEANING_PRE = "cleaning_pre"
    CLONING = "cloning"
    COMPILING = "compiling"
    WALKING = "walking"
    EXTRACTING = "extracting"
    CLEANING_POST = "cleaning_post"
    DONE = "done"
    FAILED = "failed"


class HarvestPipeline:
    """Clones, compiles and extracts bytecode for a list of repositories."""

    def __init__(
        self,
        lister: ContentLister,
        cloner: GitCloner,
        forge: ForgeRunner,
        workspace: Workspace,
        max_depth: int | None = None,
        workers: int = 1,
    ):
        """Initialize the pipeline.

        Args:
            lister: Contents API client
            cloner: Clone collaborator
            forge: Compiler and bytecode inspector
            workspace: Staging root for clones
            max_depth: Directory depth limit for the tree walk
            workers: Repositories processed concurrently (1 = sequential)
        """
        if workers < 1:
            raise ValueError("workers must be at least 1")
        self.lister = lister
        self.cloner = cloner
        self.forge = forge
        self.workspace = workspace
        self.walker = TreeWalker(lister, max_depth=max_depth)
        self.workers = workers
        self._workspace_locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}

    @classmethod
    def from_settings(cls, settings: HarvestSettings, lister: ContentLister) -> "HarvestPipeline":
        return cls(
            lister=lister,
            cloner=GitCloner(
                git_bin=settings.git_bin,
                timeout=settings.clone_timeout,
                depth=settings.clone_depth or None,
                recurse_submodules=settings.recurse_submodules,
            ),
            forge=ForgeRunner(
                forge_bin=settings.forge_bin,
                compile_timeout=settings.compile_timeout,
                inspect_timeout=settings.inspect_timeout,
            ),
            workspace=Workspace(settings.workspace_root),
            max_depth=settings.max_depth,
            workers=settings.workers,
        )

    async def run(self, repo_urls: list[str]) -> HarvestReport:
        """Process every repository and aggregate the results.

        Results keep the order in which repositories were supplied.
        """
        report = HarvestReport()
        semaphore = asyncio.Semaphore(self.workers)

        async def guarded(url: str) -> RepositoryResult | SkippedRepository | None:
            async with semaphore:
                return await self._process_safely(url)

        outcomes = await asyncio.gather(*(guarded(url) for url in repo_urls))

        for outcome in outcomes:
            if isinstance(outcome, RepositoryResult):
                report.results.append(outcome)
            elif isinstance(outcome, SkippedRepository):
                report.skipped.append(outcome)

        logger.info(
            "Processed %d repositories: %d with results, %d skipped",
            len(repo_urls), len(report.results), len(report.skipped),
        )
        return report

    async def process_repository(self, url: str) -> RepositoryResult | None:
        """Process a single repository URL."""
        outcome = await self._process_safely(url)
        return outcome if isinstance(outcome, RepositoryResult) else None

    def _skip(self, url: str, stage: RepositoryStage, error: Exception) -> SkippedRepository:
        return SkippedRepository(url=url, stage=stage.value, reason=str(error) or type(error).__name__)

    async def _process_safely(self, url: str) -> RepositoryResult | SkippedRepository | None:
        try:
            return await self._process(url)
        except Exception as e:
            logger.exception("Unexpected failure processing %s", url)
            return self._skip(url, RepositoryStage.FAILED, e)

    @asynccontextmanager
    async def _workspace_lock(self, repo_name: str):
        """Serialize repositories sharing a workspace name.

        The lock is dropped once nobody holds or waits for it.
        """
        lock = self._workspace_locks.setdefault(repo_name, asyncio.Lock())
        self._lock_users[repo_name] = self._lock_users.get(repo_name, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[repo_name] -= 1
            if not self._lock_users[repo_name]:
                del self._lock_users[repo_name]
                del self._workspace_locks[repo_name]

    async def _process(self, url: str) -> RepositoryResult | SkippedRepository | None:
        try:
            target = RepositoryTarget.from_url(url)
        except InvalidRepositoryUrl as e:
            logger.error("Skipping %s: %s", url, e)
            return self._skip(url, RepositoryStage.DISCOVERING, e)

        logger.info("Contest repo: %s", target)
        try:
            root_entries = await self.lister.list_contents(target.owner, target.name)
        except InaccessibleRepository as e:
            logger.warning("Repo not accessible: %s (HTTP %d)", target, e.status)
            return self._skip(url, RepositoryStage.CHECKING_ACCESS, e)
        except (NetworkError, DecodeError) as e:
            logger.error("Could not list %s: %s", target, e)
            return self._skip(url, RepositoryStage.CHECKING_ACCESS, e)

        async with self._workspace_lock(target.name):
            repo_path = self.workspace.path_for(target.name)
            try:
                return await self._clone_and_extract(target, root_entries, repo_path)
            finally:
                logger.debug("%s: %s", target, RepositoryStage.CLEANING_POST.value)
                await self.workspace.remove(repo_path)

    async def _clone_and_extract(
        self,
        target: RepositoryTarget,
        root_entries: list[ContentEntry],
        repo_path: Path,
    ) -> RepositoryResult | SkippedRepository | None:
        # Leftovers from a crashed run would make the clone fail
        await self.workspace.remove(repo_path)

        try:
            await self.cloner.clone(target.clone_url, repo_path)
        except CloneError as e:
            logger.error("Failed to clone %s: %s", target, e)
            return self._skip(target.url, RepositoryStage.CLONING, e)
        logger.info("Repo cloned. Attempting compilation.")

        outcome = await self.forge.compile(repo_path)
        if outcome.success:
            logger.info("%s: compiled", target)
        else:
            logger.warning("%s: %s; extracting anyway", target, outcome.summary)
            if outcome.stderr:
                logger.debug("forge compile stderr:\n%s", outcome.stderr)

        try:
            eligible = await self.walker.walk(root_entries, target.owner, target.name)
        except (InaccessibleRepository, NetworkError, DecodeError) as e:
            logger.error("Walking %s failed: %s", target, e)
            return self._skip(target.url, RepositoryStage.WALKING, e)

        sources = await self._extract_all(target, repo_path, eligible)
        if not sources:
            logger.info("%s: no contracts extracted", target)
            return None

        logger.debug("%s: %s", target, RepositoryStage.DONE.value)
        return RepositoryResult(repository=target.name, sources=tuple(sources))

    async def _extract_all(
        self,
        target: RepositoryTarget,
        repo_path: Path,
        eligible: list[ContentEntry],
    ) -> list[EligibleSource]:
        sources = []
        for entry in eligible:
            file_name = entry.name
            try:
                bytecode = await self.forge.inspect_bytecode(repo_path, file_name)
            except (ExtractionError, ProcessTimeoutError) as e:
                logger.warning("Bytecode not found for %s: %s", file_name, e)
                continue

            logger.info("Bytecode exists for: %s", file_name)
            sources.append(EligibleSource(
                file_name=file_name,
                bytecode=bytecode,
                path=entry.path,
                pragma=self._read_pragma(repo_path, entry.path),
            ))
        return sources

    def _read_pragma(self, repo_path: Path, relative_path: str | None) -> str | None:
        if not relative_path:
            return None
        source_path = (repo_path / relative_path).resolve()
        if not source_path.is_relative_to(repo_path.resolve()) or not source_path.is_file():
            return None
        try:
            return pragma_version(source_path.read_text(errors="replace"))
        except OSError as e:
            logger.debug("Could not read %s: %s", source_path, e)
            return None
