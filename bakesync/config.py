"""Configuration loading for bakesync."""

import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .errors import ConfigurationError


@dataclass
class GitHubConfig:
    """Repository that holds the website data."""

    owner: str = "drycout"
    repo: str = "djandes-site"
    token: str | None = None
    api_url: str = "https://api.github.com"
    branch: str | None = None
    timeout_seconds: float = 30.0
    conflict_retries: int = 2

    def validate(self) -> None:
        """Raise ConfigurationError if the settings cannot address a repo."""
        if not self.owner or not self.owner.strip():
            raise ConfigurationError("GitHub owner must not be empty")
        if not self.repo or not self.repo.strip():
            raise ConfigurationError("GitHub repository must not be empty")
        if not self.api_url.startswith(("http://", "https://")):
            raise ConfigurationError(f"Invalid GitHub API URL: {self.api_url}")
        if self.conflict_retries < 0:
            raise ConfigurationError("conflict_retries must be >= 0")

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GitHubConfig":
        """Build a config from a stored blob, ignoring unknown keys."""
        defaults = cls()
        return cls(
            owner=data.get("owner", defaults.owner),
            repo=data.get("repo", defaults.repo),
            token=data.get("token"),
            api_url=data.get("api_url", defaults.api_url),
            branch=data.get("branch"),
            timeout_seconds=data.get("timeout_seconds", defaults.timeout_seconds),
            conflict_retries=data.get("conflict_retries", defaults.conflict_retries),
        )


@dataclass
class StorageConfig:
    """Local persisted settings."""

    db_path: str = "~/.bakesync/settings.db"


@dataclass
class Config:
    github: GitHubConfig = field(default_factory=GitHubConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)


def _get_env(key: str, default: Any = None) -> Any:
    """Get environment variable with BAKESYNC_ prefix."""
    return os.environ.get(f"BAKESYNC_{key}", default)


def _apply_env_overrides(config: Config) -> Config:
    """Apply environment variable overrides to config."""
    if owner := _get_env("GITHUB_OWNER"):
        config.github.owner = owner
    if repo := _get_env("GITHUB_REPO"):
        config.github.repo = repo
    if token := _get_env("GITHUB_TOKEN"):
        config.github.token = token
    if api_url := _get_env("GITHUB_API_URL"):
        config.github.api_url = api_url
    if branch := _get_env("GITHUB_BRANCH"):
        config.github.branch = branch
    if timeout := _get_env("GITHUB_TIMEOUT"):
        config.github.timeout_seconds = float(timeout)

    if db_path := _get_env("STORAGE_DB_PATH"):
        config.storage.db_path = db_path

    return config


def load_config(config_path: str | Path | None = None) -> Config:
    """Load configuration from YAML file with environment variable overrides.

    Args:
        config_path: Path to YAML config file. If None, uses default config.

    Returns:
        Loaded Config object.
    """
    config = Config()

    if config_path:
        path = Path(config_path)
        if path.exists():
            with open(path) as f:
                data = yaml.safe_load(f) or {}

            if "github" in data:
                gh_data = data["github"] or {}
                config.github = GitHubConfig(
                    owner=gh_data.get("owner", config.github.owner),
                    repo=gh_data.get("repo", config.github.repo),
                    token=gh_data.get("token"),
                    api_url=gh_data.get("api_url", config.github.api_url),
                    branch=gh_data.get("branch"),
                    timeout_seconds=gh_data.get(
                        "timeout_seconds", config.github.timeout_seconds
                    ),
                    conflict_retries=gh_data.get(
                        "conflict_retries", config.github.conflict_retries
                    ),
                )

            if "storage" in data:
                storage_data = data["storage"] or {}
                config.storage = StorageConfig(
                    db_path=storage_data.get("db_path", config.storage.db_path),
                )

    return _apply_env_overrides(config)
