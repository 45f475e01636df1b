"""bakesync - keeps a bakery website's JSON records in a GitHub repository."""

from .config import Config, GitHubConfig, StorageConfig, load_config
from .errors import (
    ConfigurationError,
    ConflictError,
    NotFoundError,
    RemoteError,
    SyncError,
    ValidationError,
)
from .store import ConfigStore
from .sync import SyncClient

__version__ = "0.1.0"

__all__ = [
    "Config",
    "GitHubConfig",
    "StorageConfig",
    "load_config",
    "ConfigStore",
    "SyncClient",
    "SyncError",
    "ConfigurationError",
    "RemoteError",
    "ConflictError",
    "NotFoundError",
    "ValidationError",
]
