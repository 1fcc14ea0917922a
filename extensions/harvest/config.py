"""
Harvest settings.

Precedence: defaults < YAML config file < environment variables.
CLI options are applied on top by the commands. The entry point calls
`load_dotenv()` so a local .env file feeds the environment.
"""

import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Mapping

import yaml

from .content import DEFAULT_API_BASE, DEFAULT_USER_AGENT

DEFAULT_CONTESTS_URL = "https://code4rena.com/contests"

# Setting name -> environment variable
ENV_VARS = {
    "api_base": "HARVEST_API_BASE",
    "user_agent": "HARVEST_USER_AGENT",
    "github_token": "GITHUB_TOKEN",
    "contests_url": "HARVEST_CONTESTS_URL",
    "workspace_root": "HARVEST_WORKSPACE",
    "forge_bin": "FORGE_BIN",
    "git_bin": "GIT_BIN",
    "request_timeout": "HARVEST_REQUEST_TIMEOUT",
    "clone_timeout": "HARVEST_CLONE_TIMEOUT",
    "compile_timeout": "HARVEST_COMPILE_TIMEOUT",
    "inspect_timeout": "HARVEST_INSPECT_TIMEOUT",
    "clone_depth": "HARVEST_CLONE_DEPTH",
    "recurse_submodules": "HARVEST_RECURSE_SUBMODULES",
    "max_depth": "HARVEST_MAX_DEPTH",
    "workers": "HARVEST_WORKERS",
}

_FLOAT_FIELDS = {"request_timeout", "clone_timeout", "compile_timeout", "inspect_timeout"}
_INT_FIELDS = {"clone_depth", "workers"}
_OPTIONAL_INT_FIELDS = {"max_depth"}
_BOOL_FIELDS = {"recurse_submodules"}
_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


@dataclass
class HarvestSettings:
    """Runtime configuration for a harvest run."""

    api_base: str = DEFAULT_API_BASE
    user_agent: str = DEFAULT_USER_AGENT
    github_token: str | None = None
    contests_url: str = DEFAULT_CONTESTS_URL
    workspace_root: Path = field(default_factory=lambda: Path("repos"))
    forge_bin: str = "forge"
    git_bin: str = "git"
    request_timeout: float = 30
    clone_timeout: float = 600
    compile_timeout: float = 900
    inspect_timeout: float = 180
    clone_depth: int = 1  # 0 = full history
    recurse_submodules: bool = False
    max_depth: int | None = None
    workers: int = 1

    @classmethod
    def load(
        cls,
        config_path: Path | None = None,
        env: Mapping[str, str] | None = None,
    ) -> "HarvestSettings":
        """Build settings from an optional YAML file and the environment.

        Raises:
            ValueError: On unknown keys or values that cannot be converted
        """
        settings = cls()
        if config_path is not None:
            settings = settings.merged(cls._read_yaml(config_path), source=str(config_path))

        env = os.environ if env is None else env
        from_env = {
            name: env[var] for name, var in ENV_VARS.items() if env.get(var) not in (None, "")
        }
        settings = settings.merged(from_env, source="environment", env_names=True)
        settings.validate()
        return settings

    @staticmethod
    def _read_yaml(config_path: Path) -> dict[str, Any]:
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"{config_path}: expected a mapping of settings")
        return data

    def merged(
        self,
        values: Mapping[str, Any],
        source: str = "overrides",
        env_names: bool = False,
    ) -> "HarvestSettings":
        """Return a copy with `values` applied. None values are ignored."""
        known = {f.name for f in fields(self)}
        changes: dict[str, Any] = {}
        for name, raw in values.items():
            if name not in known:
                raise ValueError(f"Unknown setting {name!r} in {source}")
            if raw is None:
                continue
            label = ENV_VARS[name] if env_names else name
            changes[name] = _coerce(name, raw, label)
        return replace(self, **changes)

    def validate(self) -> None:
        if not self.user_agent or not self.user_agent.strip():
            raise ValueError("user_agent must be a non-empty string")
        if self.workers < 1:
            raise ValueError("workers must be at least 1")
        if self.max_depth is not None and self.max_depth < 0:
            raise ValueError("max_depth must not be negative")
        if self.clone_depth < 0:
            raise ValueError("clone_depth must not be negative (0 clones full history)")
        for name in _FLOAT_FIELDS:
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")


def _coerce(name: str, raw: Any, label: str) -> Any:
    try:
        if name in _FLOAT_FIELDS:
            return float(raw)
        if name in _INT_FIELDS:
            return int(raw)
        if name in _OPTIONAL_INT_FIELDS:
            if isinstance(raw, str) and raw.strip().lower() in ("", "none"):
                return None
            return int(raw)
        if name in _BOOL_FIELDS:
            if isinstance(raw, bool):
                return raw
            text = str(raw).strip().lower()
            if text in _TRUE:
                return True
            if text in _FALSE:
                return False
            raise ValueError(text)
        if name == "workspace_root":
            return Path(raw)
        return str(raw)
    except (TypeError, ValueError) as e:
        raise ValueError(f"Invalid value for {label}: {raw!r}") from e
