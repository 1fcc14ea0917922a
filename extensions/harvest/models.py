"""
Result model for a harvest run.

A run produces one RepositoryResult per repository that yielded at least
one extracted contract, plus a record of the repositories that were skipped.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any


@dataclass(frozen=True)
class EligibleSource:
    """A contract source file and its compiled bytecode."""

    file_name: str
    bytecode: str
    path: str | None = None
    pragma: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "file_name": self.file_name,
            "path": self.path,
            "pragma": self.pragma,
            "bytecode": self.bytecode,
        }


@dataclass(frozen=True)
class RepositoryResult:
    """Extracted sources for one repository."""

    repository: str
    sources: tuple[EligibleSource, ...]

    def as_tuple(self) -> tuple[str, list[tuple[str, str]]]:
        return self.repository, [(s.file_name, s.bytecode) for s in self.sources]

    def to_dict(self) -> dict[str, Any]:
        return {
            "repository": self.repository,
            "sources": [s.to_dict() for s in self.sources],
        }


@dataclass(frozen=True)
class SkippedRepository:
    """A repository that produced no result because of an error."""

    url: str
    stage: str
    reason: str

    def to_dict(self) -> dict[str, Any]:
        return {"url": self.url, "stage": self.stage, "reason": self.reason}


@dataclass
class HarvestReport:
    """Aggregate of a harvest run, in the order repositories were supplied."""

    results: list[RepositoryResult] = field(default_factory=list)
    skipped: list[SkippedRepository] = field(default_factory=list)
    started_at: datetime = field(default_factory=datetime.now)

    @property
    def total_sources(self) -> int:
        return sum(len(r.sources) for r in self.results)

    def as_tuples(self) -> list[tuple[str, list[tuple[str, str]]]]:
        """Return results as [(repository, [(file_name, bytecode), ...]), ...]."""
        return [r.as_tuple() for r in self.results]

    def summary(self) -> str:
        lines = [
            "Harvest Results:",
            f"  Repositories with results: {len(self.results)}",
            f"  Contracts extracted: {self.total_sources}",
            f"  Repositories skipped: {len(self.skipped)}",
        ]
        return "\n".join(lines)

    def to_dict(self) -> dict[str, Any]:
        return {
            "started_at": self.started_at.isoformat(),
            "results": [r.to_dict() for r in self.results],
            "skipped": [s.to_dict() for s in self.skipped],
        }

    def save(self, output_path: Path) -> Path:
        """Write the report as JSON."""
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, "w") as f:
            json.dump(self.to_dict(), f, indent=2)
        return output_path
