"""Tests for harvest settings."""

from pathlib import Path

import pytest

from extensions.harvest.config import HarvestSettings


class TestHarvestSettings:

    def test_defaults(self):
        settings = HarvestSettings.load(env={})
        assert settings.api_base == "https://api.github.com"
        assert settings.user_agent == "contest-harvester"
        assert settings.github_token is None
        assert settings.workspace_root == Path("repos")
        assert settings.forge_bin == "forge"
        assert settings.clone_depth == 1
        assert settings.max_depth is None
        assert settings.workers == 1

    def test_environment(self):
        settings = HarvestSettings.load(env={
            "GITHUB_TOKEN": "ghp_x",
            "HARVEST_USER_AGENT": "Rust",
            "HARVEST_WORKSPACE": "/tmp/stage",
            "HARVEST_INSPECT_TIMEOUT": "30",
            "HARVEST_MAX_DEPTH": "4",
            "HARVEST_RECURSE_SUBMODULES": "yes",
            "HARVEST_WORKERS": "3",
        })
        assert settings.github_token == "ghp_x"
        assert settings.user_agent == "Rust"
        assert settings.workspace_root == Path("/tmp/stage")
        assert settings.inspect_timeout == 30.0
        assert settings.max_depth == 4
        assert settings.recurse_submodules is True
        assert settings.workers == 3

    def test_empty_environment_values_ignored(self):
        settings = HarvestSettings.load(env={"GITHUB_TOKEN": "", "HARVEST_USER_AGENT": ""})
        assert settings.github_token is None
        assert settings.user_agent == "contest-harvester"

    def test_yaml_file(self, tmp_path):
        config = tmp_path / "harvest.yaml"
        config.write_text("forge_bin: /opt/foundry/forge\nclone_depth: 0\nworkers: 2\n")

        settings = HarvestSettings.load(config, env={})

        assert settings.forge_bin == "/opt/foundry/forge"
        assert settings.clone_depth == 0
        assert settings.workers == 2

    def test_environment_beats_yaml(self, tmp_path):
        config = tmp_path / "harvest.yaml"
        config.write_text("workers: 2\n")

        settings = HarvestSettings.load(config, env={"HARVEST_WORKERS": "5"})

        assert settings.workers == 5

    def test_unknown_yaml_key(self, tmp_path):
        config = tmp_path / "harvest.yaml"
        config.write_text("wrokers: 2\n")
        with pytest.raises(ValueError, match="wrokers"):
            HarvestSettings.load(config, env={})

    def test_yaml_must_be_mapping(self, tmp_path):
        config = tmp_path / "harvest.yaml"
        config.write_text("- forge\n- git\n")
        with pytest.raises(ValueError):
            HarvestSettings.load(config, env={})

    def test_bad_number_names_variable(self):
        with pytest.raises(ValueError, match="HARVEST_COMPILE_TIMEOUT"):
            HarvestSettings.load(env={"HARVEST_COMPILE_TIMEOUT": "soon"})

    def test_bad_bool(self):
        with pytest.raises(ValueError, match="HARVEST_RECURSE_SUBMODULES"):
            HarvestSettings.load(env={"HARVEST_RECURSE_SUBMODULES": "maybe"})

    def test_blank_user_agent_rejected(self, tmp_path):
        config = tmp_path / "harvest.yaml"
        config.write_text("user_agent: '   '\n")
        with pytest.raises(ValueError, match="user_agent"):
            HarvestSettings.load(config, env={})

    def test_zero_workers_rejected(self):
        with pytest.raises(ValueError, match="workers"):
            HarvestSettings.load(env={"HARVEST_WORKERS": "0"})

    def test_negative_clone_depth_rejected(self):
        with pytest.raises(ValueError, match="clone_depth"):
            HarvestSettings.load(env={"HARVEST_CLONE_DEPTH": "-1"})

    def test_zero_clone_depth_allowed(self):
        assert HarvestSettings.load(env={"HARVEST_CLONE_DEPTH": "0"}).clone_depth == 0

    def test_merged_ignores_none(self):
        settings = HarvestSettings().merged({"workers": None, "workspace_root": "/tmp/x"})
        assert settings.workers == 1
        assert settings.workspace_root == Path("/tmp/x")
