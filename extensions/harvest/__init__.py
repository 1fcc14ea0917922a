"""
Bytecode harvesting for audit-contest repositories.

Discovers contest repositories, walks their file trees through the
GitHub contents API, clones and compiles them with Foundry, and extracts
the bytecode of every production contract:
- Contest discovery (Code4rena)
- Remote tree walk and source filtering
- forge compile / forge inspect
- Per-repository lifecycle with workspace cleanup
"""

from .config import HarvestSettings
from .content import ContentEntry, ContentLister
from .discovery import ContestDiscovery
from .errors import (
    CleanupError,
    CloneError,
    DecodeError,
    ExtractionError,
    HarvestError,
    InaccessibleRepository,
    InvalidRepositoryUrl,
    NetworkError,
    ProcessTimeoutError,
)
from .forge_runner import CompileOutcome, ForgeRunner
from .git_cloner import GitCloner
from .models import EligibleSource, HarvestReport, RepositoryResult, SkippedRepository
from .pipeline import HarvestPipeline, RepositoryStage
from .sources import is_eligible, is_eligible_name
from .target import RepositoryTarget
from .walker import TreeWalker
from .workspace import Workspace

__all__ = [
    # Config
    "HarvestSettings",
    # Listing
    "ContentEntry",
    "ContentLister",
    "TreeWalker",
    "is_eligible",
    "is_eligible_name",
    # Discovery
    "ContestDiscovery",
    "RepositoryTarget",
    # Tools
    "ForgeRunner",
    "CompileOutcome",
    "GitCloner",
    "Workspace",
    # Pipeline
    "HarvestPipeline",
    "RepositoryStage",
    "EligibleSource",
    "RepositoryResult",
    "SkippedRepository",
    "HarvestReport",
    # Errors
    "HarvestError",
    "InvalidRepositoryUrl",
    "NetworkError",
    "DecodeError",
    "InaccessibleRepository",
    "CloneError",
    "ExtractionError",
    "ProcessTimeoutError",
    "CleanupError",
]
