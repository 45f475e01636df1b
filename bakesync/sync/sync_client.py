"""Sync client for the bakery data stored in a GitHub repository.

Each document is a JSON file read and written through the repository
contents API. Writes carry the file's `sha` so GitHub can reject an update
made against a stale copy.
"""

import logging
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

import httpx

from ..config import GitHubConfig
from ..documents import (
    BACKUPS_DIR,
    CATEGORIES_PATH,
    CONTACTS_PATH,
    ORDERS_PATH,
    PRODUCTS_PATH,
    REQUIRED_SNAPSHOT_FIELDS,
    SNAPSHOT_DOCUMENTS,
    WEBSITE_PATH,
    backup_path,
    decode_document,
    default_document,
    encode_document,
    has_default,
    next_record_id,
    now_ms,
)
from ..errors import (
    ConfigurationError,
    ConflictError,
    NotFoundError,
    RemoteError,
    SyncError,
    ValidationError,
)
from ..store import ConfigStore

logger = logging.getLogger(__name__)

# Key the GitHub settings are persisted under in the ConfigStore
CONFIG_KEY = "githubConfig"

Record = dict[str, Any]
Mutation = Callable[[list[Record]], tuple[list[Record], Any]]


def _utc_timestamp() -> str:
    stamp = datetime.now(timezone.utc).isoformat(timespec="milliseconds")
    return stamp.replace("+00:00", "Z")


class SyncClient:
    """Reads and writes the website's JSON documents in a GitHub repository.

    Supports:
    - Document reads with built-in defaults for files that do not exist yet
    - Create-or-update writes
    - Per-record add/update/delete on the sequence documents
    - Snapshot export/import, backups and restore

    Record mutations write with the `sha` of the copy they read. If GitHub
    reports a conflict (409) the read-modify-write is re-run, up to
    `config.conflict_retries` times.
    """

    def __init__(
        self,
        config: GitHubConfig | None = None,
        store: ConfigStore | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        """Initialize the sync client.

        Args:
            config: Repository settings. If None, loaded from store, falling
                back to the placeholder repository.
            store: Local store used to load and persist settings.
            http_client: Client to send requests with. If None, one is
                created on first use and closed by close().

        Raises:
            ConfigurationError: If the settings cannot address a repository.
        """
        self.store = store
        self.config = config if config is not None else self._load_config()
        self.config.validate()
        self._client = http_client
        self._owns_client = http_client is None

    def _load_config(self) -> GitHubConfig:
        if self.store is not None:
            saved = self.store.get(CONFIG_KEY)
            if saved:
                return GitHubConfig.from_dict(saved)
        return GitHubConfig()

    def set_config(self, config: GitHubConfig) -> None:
        """Replace the repository settings and persist them.

        Args:
            config: New settings.
        """
        config.validate()
        self.config = config
        if self.store is not None:
            self.store.set(CONFIG_KEY, config.to_dict())
        logger.info(f"GitHub repository set to {config.owner}/{config.repo}")

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.config.timeout_seconds)
        return self._client

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._client and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "SyncClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    # ==================== Transport ====================

    def _url(self, path: str) -> str:
        repo_url = (
            f"{self.config.api_url.rstrip('/')}/repos/"
            f"{self.config.owner}/{self.config.repo}"
        )
        if not path:
            return repo_url
        return f"{repo_url}/contents/{path.lstrip('/')}"

    @staticmethod
    def _error_from_response(response: httpx.Response) -> RemoteError:
        try:
            payload = response.json()
        except ValueError:
            payload = None

        message = payload.get("message") if isinstance(payload, dict) else None
        if not message:
            message = response.reason_phrase or f"HTTP {response.status_code}"

        if response.status_code == 409:
            return ConflictError(response.status_code, message)
        return RemoteError(response.status_code, message)

    async def request(
        self,
        path: str,
        method: str = "GET",
        body: dict[str, Any] | None = None,
    ) -> Any:
        """Send one authenticated request to the repository API.

        Args:
            path: File or directory path in the repository. The empty path
                addresses the repository itself.
            method: HTTP method.
            body: JSON body for PUT/POST requests.

        Returns:
            Decoded JSON response body.

        Raises:
            ConfigurationError: If no token is configured.
            RemoteError: On a non-success status.
        """
        if not self.config.token:
            raise ConfigurationError("GitHub token not configured")

        headers = {
            "Authorization": f"Bearer {self.config.token}",
            "Accept": "application/vnd.github+json",
        }

        params = None
        payload = None
        if method in ("PUT", "POST"):
            payload = dict(body or {})
            if self.config.branch:
                payload["branch"] = self.config.branch
        elif method == "GET" and path and self.config.branch:
            params = {"ref": self.config.branch}

        client = await self._get_client()
        logger.debug(f"{method} {path or '<repository>'}")
        response = await client.request(
            method, self._url(path), headers=headers, params=params, json=payload
        )

        if not response.is_success:
            raise self._error_from_response(response)
        return response.json()

    # ==================== Documents ====================

    async def _read_document(self, path: str) -> tuple[Any, str | None]:
        """Return the decoded document and its sha (None for a default)."""
        try:
            payload = await self.request(path)
        except RemoteError as e:
            if e.status_code == 404 and has_default(path):
                logger.info(f"{path} not found, using built-in default")
                return default_document(path), None
            raise

        if not isinstance(payload, dict) or "content" not in payload:
            raise ValidationError(f"{path} is not a file")
        return decode_document(payload["content"], path), payload.get("sha")

    async def get_document(self, path: str) -> Any:
        """Read and decode a JSON document.

        A document that does not exist yet reads as its built-in default.
        Paths without a default re-raise the 404.
        """
        value, _ = await self._read_document(path)
        return value

    async def put_document(
        self,
        path: str,
        value: Any,
        message: str | None = None,
    ) -> dict[str, Any]:
        """Create or update a JSON document.

        Looks up the current sha first: if the file exists it is updated with
        that sha, if the lookup 404s it is created. Any other lookup failure
        propagates before anything is written.

        Args:
            path: Document path.
            value: JSON-serializable value.
            message: Commit message. Defaults to "Update <path>".

        Returns:
            The API response body.
        """
        message = message or f"Update {path}"
        body = {"message": message, "content": encode_document(value)}

        try:
            existing = await self.request(path)
        except RemoteError as e:
            if e.status_code != 404:
                raise
            logger.info(f"Creating {path}")
            return await self.request(path, "PUT", body)

        if not isinstance(existing, dict) or "sha" not in existing:
            raise ValidationError(f"{path} is not a file")
        body["sha"] = existing["sha"]
        return await self.request(path, "PUT", body)

    async def _write_document(
        self,
        path: str,
        value: Any,
        message: str,
        sha: str | None,
    ) -> dict[str, Any]:
        """Write a document conditionally on the sha it was read with.

        Without a sha the write is a create. GitHub answers 422 if the file
        was created in the meantime, which is raised as a ConflictError.
        """
        body = {"message": message, "content": encode_document(value)}
        if sha:
            body["sha"] = sha

        try:
            return await self.request(path, "PUT", body)
        except RemoteError as e:
            if not sha and e.status_code == 422:
                raise ConflictError(e.status_code, e.message) from e
            raise

    async def _mutate_sequence(
        self,
        path: str,
        mutate: Mutation,
        message: str,
    ) -> Any:
        """Read a sequence document, apply mutate, and write it back.

        Args:
            path: Sequence document path.
            mutate: Gets the current records, returns (new_records, result).
                May raise to abort before anything is written.
            message: Commit message.

        Returns:
            The result returned by mutate.
        """
        attempts = self.config.conflict_retries + 1
        for attempt in range(attempts):
            records, sha = await self._read_document(path)
            if not isinstance(records, list):
                raise ValidationError(f"{path} does not hold a list of records")

            updated, result = mutate(records)
            try:
                await self._write_document(path, updated, message, sha)
                return result
            except ConflictError:
                if attempt == attempts - 1:
                    raise
                logger.warning(
                    f"{path} changed during write, "
                    f"retry {attempt + 1}/{self.config.conflict_retries}"
                )

    # ==================== Records ====================

    async def _add_record(self, path: str, data: Record, message: str) -> Record:
        def mutate(records: list[Record]) -> tuple[list[Record], Record]:
            if data.get("id") is not None:
                if any(r.get("id") == data["id"] for r in records):
                    raise ValidationError(f"Duplicate id {data['id']} in {path}")
                record = dict(data)
            else:
                fields = {k: v for k, v in data.items() if k != "id"}
                record = {"id": next_record_id(records), **fields}
            return records + [record], record

        return await self._mutate_sequence(path, mutate, message)

    async def _update_record(
        self,
        path: str,
        record_id: Any,
        patch: Record,
        label: str,
        message: str,
    ) -> Record:
        def mutate(records: list[Record]) -> tuple[list[Record], Record]:
            for index, record in enumerate(records):
                if record.get("id") == record_id:
                    merged = {**record, **patch, "id": record["id"]}
                    updated = list(records)
                    updated[index] = merged
                    return updated, merged
            raise NotFoundError(f"{label} {record_id} not found")

        return await self._mutate_sequence(path, mutate, message)

    async def _delete_record(self, path: str, record_id: Any, message: str) -> bool:
        def mutate(records: list[Record]) -> tuple[list[Record], bool]:
            return [r for r in records if r.get("id") != record_id], True

        return await self._mutate_sequence(path, mutate, message)

    # Products

    async def get_products(self) -> list[Record]:
        return await self.get_document(PRODUCTS_PATH)

    async def add_product(self, product: Record) -> Record:
        return await self._add_record(PRODUCTS_PATH, product, "Add new product")

    async def update_product(self, product_id: Any, patch: Record) -> Record:
        return await self._update_record(
            PRODUCTS_PATH, product_id, patch, "Product", f"Update product {product_id}"
        )

    async def delete_product(self, product_id: Any) -> bool:
        return await self._delete_record(
            PRODUCTS_PATH, product_id, f"Delete product {product_id}"
        )

    # Categories

    async def get_categories(self) -> list[Record]:
        return await self.get_document(CATEGORIES_PATH)

    async def add_category(self, category: Record) -> Record:
        return await self._add_record(CATEGORIES_PATH, category, "Add new category")

    async def update_category(self, category_id: Any, patch: Record) -> Record:
        return await self._update_record(
            CATEGORIES_PATH,
            category_id,
            patch,
            "Category",
            f"Update category {category_id}",
        )

    async def delete_category(self, category_id: Any) -> bool:
        return await self._delete_record(
            CATEGORIES_PATH, category_id, f"Delete category {category_id}"
        )

    # Orders

    async def get_orders(self) -> list[Record]:
        return await self.get_document(ORDERS_PATH)

    async def add_order(self, order: Record) -> Record:
        return await self._add_record(
            ORDERS_PATH, order, f"Save order {order.get('id', 'new')}"
        )

    async def update_order(self, order_id: Any, patch: Record) -> Record:
        return await self._update_record(
            ORDERS_PATH, order_id, patch, "Order", f"Update order {order_id}"
        )

    async def update_order_status(self, order_id: Any, status: str) -> Record:
        return await self._update_record(
            ORDERS_PATH,
            order_id,
            {"status": status},
            "Order",
            f"Update order status {order_id}",
        )

    async def delete_order(self, order_id: Any) -> bool:
        return await self._delete_record(
            ORDERS_PATH, order_id, f"Delete order {order_id}"
        )

    # Contacts

    async def get_contacts(self) -> list[Record]:
        return await self.get_document(CONTACTS_PATH)

    async def add_contact(self, contact: Record) -> Record:
        return await self._add_record(
            CONTACTS_PATH, contact, f"Save contact {contact.get('id', 'new')}"
        )

    async def update_contact(self, contact_id: Any, patch: Record) -> Record:
        return await self._update_record(
            CONTACTS_PATH, contact_id, patch, "Contact", f"Update contact {contact_id}"
        )

    async def delete_contact(self, contact_id: Any) -> bool:
        return await self._delete_record(
            CONTACTS_PATH, contact_id, f"Delete contact {contact_id}"
        )

    # Website settings

    async def get_settings(self) -> Record:
        return await self.get_document(WEBSITE_PATH)

    async def update_settings(self, settings: Record) -> Record:
        await self.put_document(WEBSITE_PATH, settings, "Update website configuration")
        return settings

    # ==================== Bulk operations ====================

    async def initialize_data(self) -> bool:
        """Write the built-in documents unless the products can be read.

        Returns:
            True if the defaults were written.
        """
        try:
            await self.get_products()
            logger.info("Data already initialized")
            return False
        except Exception as e:
            logger.info(f"Initializing data files ({e})")

        for field, path in SNAPSHOT_DOCUMENTS.items():
            await self.put_document(
                path, default_document(path), f"Initialize {field} data"
            )

        logger.info("Data files initialized successfully")
        return True

    async def _collect_snapshot(self) -> dict[str, Any]:
        snapshot: dict[str, Any] = {"timestamp": _utc_timestamp()}
        for field, path in SNAPSHOT_DOCUMENTS.items():
            snapshot[field] = await self.get_document(path)
        return snapshot

    async def _apply_snapshot(self, snapshot: Any, message_template: str) -> None:
        """Overwrite the live documents from a snapshot.

        products and categories are required; the other documents are only
        written when present.
        """
        if not isinstance(snapshot, dict):
            raise ValidationError("Invalid import data format")
        missing = [f for f in REQUIRED_SNAPSHOT_FIELDS if snapshot.get(f) is None]
        if missing:
            raise ValidationError(
                f"Invalid import data format: missing {', '.join(missing)}"
            )

        for field, path in SNAPSHOT_DOCUMENTS.items():
            if snapshot.get(field) is None:
                continue
            await self.put_document(
                path, snapshot[field], message_template.format(field=field)
            )

    async def export_all(self) -> dict[str, Any]:
        """Read all five documents into a timestamped snapshot."""
        try:
            return await self._collect_snapshot()
        except SyncError as e:
            raise e.wrap("Failed to export data") from e

    async def import_all(self, snapshot: dict[str, Any]) -> dict[str, Any]:
        """Overwrite the live documents from a caller-supplied snapshot.

        Raises:
            ValidationError: If products or categories are missing.
        """
        try:
            await self._apply_snapshot(snapshot, "Import {field}")
        except SyncError as e:
            raise e.wrap("Failed to import data") from e

        logger.info("Data imported successfully")
        return {"success": True, "message": "Data imported successfully"}

    async def backup(self) -> dict[str, Any]:
        """Store a snapshot of all documents under backups/.

        Returns:
            Dict with success, the backup path and the snapshot timestamp.
        """
        try:
            snapshot = await self._collect_snapshot()
            stamp = now_ms()
            path = backup_path(stamp)
            await self.put_document(path, snapshot, f"Create backup {stamp}")
        except SyncError as e:
            raise e.wrap("Failed to create backup") from e

        logger.info(f"Backup written to {path}")
        return {"success": True, "path": path, "timestamp": snapshot["timestamp"]}

    async def restore(self, path: str) -> dict[str, Any]:
        """Overwrite the live documents from a stored backup.

        Args:
            path: Backup path, e.g. "backups/backup-1700000000000.json".
        """
        try:
            snapshot = await self.get_document(path)
            await self._apply_snapshot(snapshot, "Restore {field} from backup")
        except SyncError as e:
            raise e.wrap("Failed to restore backup") from e

        logger.info(f"Restored data from {path}")
        return {"success": True, "timestamp": snapshot.get("timestamp")}

    async def list_backups(self) -> list[dict[str, Any]]:
        """List stored backups, newest first.

        Returns:
            List of {name, path, size, downloadUrl}. Empty if no backup
            directory exists.
        """
        try:
            entries = await self.request(BACKUPS_DIR)
        except RemoteError as e:
            if e.status_code == 404:
                return []
            raise

        if not isinstance(entries, list):
            raise ValidationError(f"{BACKUPS_DIR} is not a directory")

        backups = [
            {
                "name": entry["name"],
                "path": entry.get("path"),
                "size": entry.get("size"),
                "downloadUrl": entry.get("download_url"),
            }
            for entry in entries
            if entry.get("name", "").endswith(".json")
        ]
        backups.sort(key=lambda b: b["name"], reverse=True)
        return backups

    # ==================== Repository ====================

    async def test_connection(self) -> dict[str, Any]:
        """Check that the repository is reachable. Never raises."""
        try:
            info = await self.request("")
        except Exception as e:
            logger.debug(f"Connection test failed: {e}")
            return {"success": False, "message": str(e)}

        return {
            "success": True,
            "message": "Connection successful",
            "repo": info.get("full_name"),
        }

    async def get_repo_info(self) -> dict[str, Any]:
        """Return basic metadata about the configured repository."""
        try:
            info = await self.request("")
        except SyncError as e:
            raise e.wrap("Failed to get repository info") from e

        return {
            "name": info.get("name"),
            "fullName": info.get("full_name"),
            "description": info.get("description"),
            "url": info.get("html_url"),
            "defaultBranch": info.get("default_branch"),
        }
