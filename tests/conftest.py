"""Shared fixtures: an in-memory stand-in for the GitHub contents API."""

import base64
import hashlib
import json
from dataclasses import dataclass
from typing import Any, Callable

import httpx
import pytest

from bakesync.config import GitHubConfig
from bakesync.documents import encode_document
from bakesync.sync import SyncClient


@dataclass
class RecordedRequest:
    method: str
    path: str
    body: dict[str, Any] | None
    params: dict[str, str]


def _sha(content: bytes) -> str:
    return hashlib.sha1(content).hexdigest()


class FakeGitHub:
    """Serves repository metadata and contents for one repository.

    Files are kept as raw bytes keyed by path. Writes enforce the same sha
    rules as GitHub: updating an existing file requires its current sha, and
    a stale sha is answered with 409.
    """

    def __init__(self, owner: str = "bakery", repo: str = "site", token: str = "test-token"):
        self.owner = owner
        self.repo = repo
        self.token = token
        self.files: dict[str, bytes] = {}
        self.requests: list[RecordedRequest] = []
        self._failures: dict[tuple[str, str], list[httpx.Response]] = {}
        self.before_write: Callable[[str], None] | None = None

    # Test helpers

    def put_file(self, path: str, value: Any) -> None:
        self.files[path] = base64.b64decode(encode_document(value))

    def read_json(self, path: str) -> Any:
        return json.loads(self.files[path].decode("utf-8"))

    def fail_once(self, method: str, path: str, status: int, body: Any = None) -> None:
        """Answer the next matching request with status instead of serving it."""
        if body is None:
            response = httpx.Response(status)
        else:
            response = httpx.Response(status, json=body)
        self._failures.setdefault((method, path), []).append(response)

    def writes(self, path: str | None = None) -> list[RecordedRequest]:
        return [
            r for r in self.requests
            if r.method == "PUT" and (path is None or r.path == path)
        ]

    # Transport

    def handle(self, request: httpx.Request) -> httpx.Response:
        if request.headers.get("Authorization") != f"Bearer {self.token}":
            return httpx.Response(401, json={"message": "Bad credentials"})

        repo_prefix = f"/repos/{self.owner}/{self.repo}"
        url_path = request.url.path
        if url_path == repo_prefix:
            path = ""
        elif url_path.startswith(repo_prefix + "/contents/"):
            path = url_path[len(repo_prefix + "/contents/"):]
        else:
            return httpx.Response(404, json={"message": "Not Found"})

        body = json.loads(request.content) if request.content else None
        self.requests.append(
            RecordedRequest(request.method, path, body, dict(request.url.params))
        )

        queued = self._failures.get((request.method, path))
        if queued:
            return queued.pop(0)

        if request.method == "GET":
            return self._get(path)
        if request.method == "PUT":
            return self._put(path, body or {})
        return httpx.Response(405, json={"message": "Method Not Allowed"})

    def _get(self, path: str) -> httpx.Response:
        if path == "":
            return httpx.Response(200, json={
                "name": self.repo,
                "full_name": f"{self.owner}/{self.repo}",
                "description": "Bakery website",
                "html_url": f"https://github.com/{self.owner}/{self.repo}",
                "default_branch": "main",
            })

        if path in self.files:
            content = self.files[path]
            return httpx.Response(200, json={
                "type": "file",
                "name": path.rsplit("/", 1)[-1],
                "path": path,
                "size": len(content),
                "encoding": "base64",
                "content": base64.encodebytes(content).decode("ascii"),
                "sha": _sha(content),
            })

        prefix = path.rstrip("/") + "/"
        entries = [
            {
                "type": "file",
                "name": p[len(prefix):],
                "path": p,
                "size": len(c),
                "sha": _sha(c),
                "download_url": (
                    f"https://raw.githubusercontent.com/{self.owner}/{self.repo}/main/{p}"
                ),
            }
            for p, c in sorted(self.files.items())
            if p.startswith(prefix) and "/" not in p[len(prefix):]
        ]
        if entries:
            return httpx.Response(200, json=entries)

        return httpx.Response(404, json={"message": "Not Found"})

    def _put(self, path: str, body: dict[str, Any]) -> httpx.Response:
        if self.before_write is not None:
            hook, self.before_write = self.before_write, None
            hook(path)

        existing = self.files.get(path)
        sha = body.get("sha")
        if existing is not None:
            if sha is None:
                return httpx.Response(
                    422, json={"message": "Invalid request.\n\n\"sha\" wasn't supplied."}
                )
            if sha != _sha(existing):
                return httpx.Response(409, json={"message": f"{path} does not match {sha}"})

        content = base64.b64decode(body["content"])
        self.files[path] = content
        return httpx.Response(200 if existing is not None else 201, json={
            "content": {"name": path.rsplit("/", 1)[-1], "path": path, "sha": _sha(content)},
            "commit": {"message": body.get("message")},
        })


@pytest.fixture
def github():
    """Create an empty fake repository."""
    return FakeGitHub()


@pytest.fixture
def github_config(github):
    return GitHubConfig(owner=github.owner, repo=github.repo, token=github.token)


@pytest.fixture
def client(github, github_config):
    """Create a SyncClient wired to the fake repository."""
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(github.handle))
    return SyncClient(github_config, http_client=http_client)
