"""
Tests for the repository lifecycle.

The lister, cloner and forge are fakes; the workspace is a real
directory under tmp_path so cleanup is observable.
"""

import asyncio
import json
from pathlib import Path

import pytest

from extensions.harvest.content import ContentEntry
from extensions.harvest.errors import (
    CloneError,
    DecodeError,
    ExtractionError,
    InaccessibleRepository,
    NetworkError,
    ProcessTimeoutError,
)
from extensions.harvest.forge_runner import CompileOutcome
from extensions.harvest.models import EligibleSource, HarvestReport, RepositoryResult
from extensions.harvest.pipeline import HarvestPipeline, RepositoryStage
from extensions.harvest.workspace import Workspace

BYTECODE = "0x6080604052348015600e575f80fd5b50\n"


def file_entry(path: str) -> ContentEntry:
    return ContentEntry.model_validate({"name": path.rsplit("/", 1)[-1], "path": path, "type": "file"})


def dir_entry(path: str) -> ContentEntry:
    return ContentEntry.model_validate({"name": path.rsplit("/", 1)[-1], "path": path, "type": "dir"})


class FakeLister:
    """Listings keyed by (owner, repo, path); exceptions are raised."""

    def __init__(self, listings: dict):
        self.listings = listings
        self.calls: list[tuple[str, str, str]] = []

    async def list_contents(self, owner, repo, path=""):
        self.calls.append((owner, repo, path))
        value = self.listings.get((owner, repo, path))
        if value is None:
            raise InaccessibleRepository(f"https://api.github.com/repos/{owner}/{repo}/contents/{path}", 404)
        if isinstance(value, Exception):
            raise value
        return value


class FakeCloner:
    """Creates the destination directory and writes the given files."""

    def __init__(self, files: dict[str, dict[str, str]] | None = None, failing: set[str] | None = None):
        self.files = files or {}
        self.failing = failing or set()
        self.clones: list[tuple[str, Path]] = []
        self.existed_before_clone: list[bool] = []

    async def clone(self, remote_url, destination):
        self.clones.append((remote_url, destination))
        self.existed_before_clone.append(destination.exists())
        if remote_url in self.failing:
            destination.mkdir(parents=True)
            raise CloneError(f"git clone {remote_url} failed with status 128")
        destination.mkdir(parents=True)
        for rel_path, content in self.files.get(remote_url, {}).items():
            path = destination / rel_path
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content)


class FakeForge:
    """Bytecode per file name; missing names fail like forge does."""

    def __init__(self, bytecodes: dict[str, object] | None = None, compile_ok: bool = True):
        self.bytecodes = bytecodes or {}
        self.compile_ok = compile_ok
        self.compiled: list[Path] = []
        self.inspected: list[tuple[Path, str]] = []

    async def compile(self, workspace):
        self.compiled.append(workspace)
        assert workspace.is_dir()
        if self.compile_ok:
            return CompileOutcome(success=True, exit_status=0)
        return CompileOutcome(success=False, exit_status=1, stderr="Error: Compiler run failed")

    async def inspect_bytecode(self, workspace, file_name):
        self.inspected.append((workspace, file_name))
        value = self.bytecodes.get(file_name)
        if value is None:
            raise ExtractionError(file_name, 1, "No contract found")
        if isinstance(value, Exception):
            raise value
        return value


def make_pipeline(tmp_path, lister, cloner=None, forge=None, workers=1) -> HarvestPipeline:
    return HarvestPipeline(
        lister=lister,
        cloner=cloner or FakeCloner(),
        forge=forge or FakeForge(),
        workspace=Workspace(tmp_path / "repos"),
        workers=workers,
    )


def run(pipeline: HarvestPipeline, urls: list[str]) -> HarvestReport:
    return asyncio.run(pipeline.run(urls))


class TestEndToEnd:

    def test_accessible_and_inaccessible(self, tmp_path):
        lister = FakeLister({
            ("ownerA", "repoA", ""): [file_entry("File.sol"), file_entry("File.t.sol")],
        })
        forge = FakeForge({"File.sol": "<bytecode>"})
        pipeline = make_pipeline(tmp_path, lister, forge=forge)

        report = run(pipeline, [
            "https://github.com/ownerA/repoA",
            "https://github.com/ownerB/repoB",
        ])

        assert report.as_tuples() == [("repoA", [("File.sol", "<bytecode>")])]
        assert [s.url for s in report.skipped] == ["https://github.com/ownerB/repoB"]
        assert report.skipped[0].stage == RepositoryStage.CHECKING_ACCESS.value

    def test_nested_sources(self, tmp_path):
        lister = FakeLister({
            ("ownerA", "repoA", ""): [file_entry("A.sol"), dir_entry("lib")],
            ("ownerA", "repoA", "lib"): [file_entry("lib/B.sol"), file_entry("lib/B.t.sol")],
        })
        forge = FakeForge({"A.sol": "0xaa", "B.sol": "0xbb"})
        pipeline = make_pipeline(tmp_path, lister, forge=forge)

        report = run(pipeline, ["https://github.com/ownerA/repoA"])

        (result,) = report.results
        assert sorted((s.file_name, s.bytecode) for s in result.sources) == [("A.sol", "0xaa"), ("B.sol", "0xbb")]
        assert sorted(name for _, name in forge.inspected) == ["A.sol", "B.sol"]


class TestLifecycle:

    def test_clone_compile_then_cleanup(self, tmp_path):
        lister = FakeLister({("ownerA", "repoA", ""): [file_entry("Token.sol")]})
        cloner = FakeCloner()
        forge = FakeForge({"Token.sol": BYTECODE})
        pipeline = make_pipeline(tmp_path, lister, cloner, forge)

        result = asyncio.run(pipeline.process_repository("https://github.com/ownerA/repoA"))

        assert result == RepositoryResult(
            repository="repoA",
            sources=(EligibleSource(file_name="Token.sol", bytecode=BYTECODE, path="Token.sol"),),
        )
        workspace = (tmp_path / "repos" / "repoA").resolve()
        assert cloner.clones == [("https://github.com/ownerA/repoA", workspace)]
        assert forge.compiled == [workspace]
        assert forge.inspected == [(workspace, "Token.sol")]
        assert not workspace.exists()

    def test_stale_workspace_removed_before_clone(self, tmp_path):
        stale = tmp_path / "repos" / "repoA"
        stale.mkdir(parents=True)
        (stale / "leftover.txt").write_text("from a crashed run")
        lister = FakeLister({("ownerA", "repoA", ""): [file_entry("Token.sol")]})
        cloner = FakeCloner()
        pipeline = make_pipeline(tmp_path, lister, cloner, FakeForge({"Token.sol": BYTECODE}))

        report = run(pipeline, ["https://github.com/ownerA/repoA"])

        assert cloner.existed_before_clone == [False]
        assert len(report.results) == 1
        assert not stale.exists()

    def test_leftover_symlink_unlinked_before_clone(self, tmp_path):
        elsewhere = tmp_path / "elsewhere"
        elsewhere.mkdir()
        (elsewhere / "keep.txt").write_text("not ours")
        (tmp_path / "repos").mkdir()
        (tmp_path / "repos" / "repoA").symlink_to(elsewhere, target_is_directory=True)
        lister = FakeLister({
            ("ownerA", "repoA", ""): [file_entry("A.sol")],
            ("ownerC", "repoC", ""): [file_entry("C.sol")],
        })
        cloner = FakeCloner()
        pipeline = make_pipeline(tmp_path, lister, cloner, FakeForge({"A.sol": "0xaa", "C.sol": "0x01"}))

        report = run(pipeline, ["https://github.com/ownerA/repoA", "https://github.com/ownerC/repoC"])

        assert report.as_tuples() == [("repoA", [("A.sol", "0xaa")]), ("repoC", [("C.sol", "0x01")])]
        assert cloner.existed_before_clone == [False, False]
        assert (elsewhere / "keep.txt").read_text() == "not ours"

    def test_unexpected_listing_error_skips_only_that_repository(self, tmp_path):
        lister = FakeLister({
            ("ownerA", "repoA", ""): RuntimeError("listing exploded"),
            ("ownerC", "repoC", ""): [file_entry("C.sol")],
        })
        pipeline = make_pipeline(tmp_path, lister, forge=FakeForge({"C.sol": "0x01"}))

        report = run(pipeline, ["https://github.com/ownerA/repoA", "https://github.com/ownerC/repoC"])

        assert report.as_tuples() == [("repoC", [("C.sol", "0x01")])]
        assert [(s.url, s.stage) for s in report.skipped] == [
            ("https://github.com/ownerA/repoA", RepositoryStage.FAILED.value),
        ]
        assert "listing exploded" in report.skipped[0].reason

    def test_unexpected_extraction_error_cleans_up(self, tmp_path):
        lister = FakeLister({("ownerA", "repoA", ""): [file_entry("A.sol")]})
        pipeline = make_pipeline(tmp_path, lister, forge=FakeForge({"A.sol": KeyError("artifact")}))

        report = run(pipeline, ["https://github.com/ownerA/repoA"])

        assert report.results == []
        assert report.skipped[0].stage == RepositoryStage.FAILED.value
        assert not (tmp_path / "repos" / "repoA").exists()

    def test_inaccessible_creates_nothing(self, tmp_path):
        lister = FakeLister({})
        cloner = FakeCloner()
        pipeline = make_pipeline(tmp_path, lister, cloner)

        report = run(pipeline, ["https://github.com/ownerB/repoB"])

        assert report.results == []
        assert cloner.clones == []
        assert "404" in report.skipped[0].reason

    @pytest.mark.parametrize("error", [NetworkError("connection reset"), DecodeError("not a listing")])
    def test_root_listing_failure_skips(self, tmp_path, error):
        lister = FakeLister({
            ("ownerA", "repoA", ""): error,
            ("ownerC", "repoC", ""): [file_entry("C.sol")],
        })
        pipeline = make_pipeline(tmp_path, lister, forge=FakeForge({"C.sol": "0xcc"}))

        report = run(pipeline, ["https://github.com/ownerA/repoA", "https://github.com/ownerC/repoC"])

        assert report.as_tuples() == [("repoC", [("C.sol", "0xcc")])]
        assert report.skipped[0].stage == "checking_access"

    def test_zero_eligible_sources(self, tmp_path):
        lister = FakeLister({
            ("ownerA", "repoA", ""): [file_entry("README.md"), dir_entry("test")],
            ("ownerA", "repoA", "test"): [file_entry("test/Token.t.sol")],
        })
        cloner = FakeCloner()
        forge = FakeForge()
        pipeline = make_pipeline(tmp_path, lister, cloner, forge)

        report = run(pipeline, ["https://github.com/ownerA/repoA"])

        assert report.results == []
        assert report.skipped == []
        assert len(cloner.clones) == 1
        assert len(forge.compiled) == 1
        assert forge.inspected == []

    def test_clone_failure_skips_and_continues(self, tmp_path):
        lister = FakeLister({
            ("ownerA", "repoA", ""): [file_entry("A.sol")],
            ("ownerC", "repoC", ""): [file_entry("C.sol")],
        })
        cloner = FakeCloner(failing={"https://github.com/ownerA/repoA"})
        forge = FakeForge({"A.sol": "0xaa", "C.sol": "0xcc"})
        pipeline = make_pipeline(tmp_path, lister, cloner, forge)

        report = run(pipeline, ["https://github.com/ownerA/repoA", "https://github.com/ownerC/repoC"])

        assert report.as_tuples() == [("repoC", [("C.sol", "0xcc")])]
        assert report.skipped[0].stage == "cloning"
        assert not (tmp_path / "repos" / "repoA").exists()
        assert len(forge.compiled) == 1

    def test_compile_failure_is_not_fatal(self, tmp_path):
        lister = FakeLister({("ownerA", "repoA", ""): [file_entry("Token.sol")]})
        forge = FakeForge({"Token.sol": BYTECODE}, compile_ok=False)
        pipeline = make_pipeline(tmp_path, lister, forge=forge)

        report = run(pipeline, ["https://github.com/ownerA/repoA"])

        assert report.as_tuples() == [("repoA", [("Token.sol", BYTECODE)])]

    def test_walk_failure_aborts_repository_and_cleans_up(self, tmp_path):
        lister = FakeLister({
            ("ownerA", "repoA", ""): [file_entry("A.sol"), dir_entry("src")],
            ("ownerA", "repoA", "src"): NetworkError("GET src failed"),
            ("ownerC", "repoC", ""): [file_entry("C.sol")],
        })
        forge = FakeForge({"A.sol": "0xaa", "C.sol": "0xcc"})
        pipeline = make_pipeline(tmp_path, lister, forge=forge)

        report = run(pipeline, ["https://github.com/ownerA/repoA", "https://github.com/ownerC/repoC"])

        assert report.as_tuples() == [("repoC", [("C.sol", "0xcc")])]
        assert report.skipped[0].stage == "walking"
        assert [name for _, name in forge.inspected] == ["C.sol"]
        assert not (tmp_path / "repos" / "repoA").exists()

    def test_extraction_failure_omits_file(self, tmp_path):
        lister = FakeLister({
            ("ownerA", "repoA", ""): [file_entry("Good.sol"), file_entry("Broken.sol"), file_entry("Slow.sol")],
        })
        forge = FakeForge({
            "Good.sol": "0x01",
            "Slow.sol": ProcessTimeoutError(["forge", "inspect", "Slow", "bytecode"], 180),
        })
        pipeline = make_pipeline(tmp_path, lister, forge=forge)

        report = run(pipeline, ["https://github.com/ownerA/repoA"])

        assert report.as_tuples() == [("repoA", [("Good.sol", "0x01")])]
        assert len(forge.inspected) == 3

    def test_all_extractions_fail(self, tmp_path):
        lister = FakeLister({("ownerA", "repoA", ""): [file_entry("Broken.sol")]})
        pipeline = make_pipeline(tmp_path, lister)

        report = run(pipeline, ["https://github.com/ownerA/repoA"])

        assert report.results == []
        assert report.skipped == []

    def test_invalid_url_skipped(self, tmp_path):
        lister = FakeLister({("ownerA", "repoA", ""): [file_entry("A.sol")]})
        pipeline = make_pipeline(tmp_path, lister, forge=FakeForge({"A.sol": "0xaa"}))

        report = run(pipeline, ["https://github.com/broken", "https://github.com/ownerA/repoA"])

        assert report.skipped[0].url == "https://github.com/broken"
        assert report.skipped[0].stage == "discovering"
        assert len(report.results) == 1

    def test_reads_pragma_from_clone(self, tmp_path):
        url = "https://github.com/ownerA/repoA"
        lister = FakeLister({
            ("ownerA", "repoA", ""): [dir_entry("src")],
            ("ownerA", "repoA", "src"): [file_entry("src/Token.sol")],
        })
        cloner = FakeCloner(files={url: {"src/Token.sol": "pragma solidity ^0.8.20;\ncontract Token {}\n"}})
        pipeline = make_pipeline(tmp_path, lister, cloner, FakeForge({"Token.sol": "0x01"}))

        report = run(pipeline, [url])

        source = report.results[0].sources[0]
        assert source.path == "src/Token.sol"
        assert source.pragma == "^0.8.20"

    def test_empty_input(self, tmp_path):
        report = run(make_pipeline(tmp_path, FakeLister({})), [])
        assert report.results == []
        assert report.skipped == []


class TestWorkers:

    def test_results_keep_input_order(self, tmp_path):
        names = [f"repo{i}" for i in range(6)]
        lister = FakeLister({("owner", name, ""): [file_entry(f"{name}.sol")] for name in names})
        forge = FakeForge({f"{name}.sol": f"0x{i:02x}" for i, name in enumerate(names)})
        pipeline = make_pipeline(tmp_path, lister, forge=forge, workers=3)

        report = run(pipeline, [f"https://github.com/owner/{name}" for name in names])

        assert [r.repository for r in report.results] == names

    def test_same_name_different_owners(self, tmp_path):
        lister = FakeLister({
            ("ownerA", "repo", ""): [file_entry("A.sol")],
            ("ownerB", "repo", ""): [file_entry("B.sol")],
        })
        cloner = FakeCloner()
        forge = FakeForge({"A.sol": "0xaa", "B.sol": "0xbb"})
        pipeline = make_pipeline(tmp_path, lister, cloner, forge, workers=2)

        report = run(pipeline, ["https://github.com/ownerA/repo", "https://github.com/ownerB/repo"])

        assert report.as_tuples() == [("repo", [("A.sol", "0xaa")]), ("repo", [("B.sol", "0xbb")])]
        assert cloner.existed_before_clone == [False, False]

    def test_workspace_locks_released(self, tmp_path):
        names = ["repo", "repo", "other"]
        lister = FakeLister({(f"owner{i}", name, ""): [file_entry(f"{i}.sol")] for i, name in enumerate(names)})
        pipeline = make_pipeline(tmp_path, lister, forge=FakeForge({"0.sol": "0x00", "1.sol": "0x01", "2.sol": "0x02"}), workers=3)

        report = run(pipeline, [f"https://github.com/owner{i}/{name}" for i, name in enumerate(names)])

        assert len(report.results) == 3
        assert pipeline._workspace_locks == {}
        assert pipeline._lock_users == {}

    def test_rejects_zero_workers(self, tmp_path):
        with pytest.raises(ValueError):
            make_pipeline(tmp_path, FakeLister({}), workers=0)


class TestReport:

    def test_save(self, tmp_path):
        report = HarvestReport()
        report.results.append(RepositoryResult(
            repository="repoA",
            sources=(EligibleSource(file_name="Token.sol", bytecode="0x01", path="src/Token.sol", pragma="^0.8.20"),),
        ))
        path = report.save(tmp_path / "out" / "report.json")

        data = json.loads(path.read_text())
        assert data["results"][0]["repository"] == "repoA"
        assert data["results"][0]["sources"][0]["bytecode"] == "0x01"
        assert data["skipped"] == []
        assert "Contracts extracted: 1" in report.summary()
