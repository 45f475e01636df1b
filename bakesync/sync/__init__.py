"""Synchronization of the website documents with a GitHub repository."""

from .sync_client import CONFIG_KEY, SyncClient

__all__ = ["CONFIG_KEY", "SyncClient"]
