"""Local persisted settings for bakesync."""

from .config_store import ConfigStore

__all__ = ["ConfigStore"]
