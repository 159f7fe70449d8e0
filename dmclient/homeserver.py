"""
Homeserver storage backend.

Talks to a homeserver over HTTP. Each owner's tree is served at
``{homeserver_url}/{owner}{path}``; listing a directory path (trailing
slash) returns one entry per line, either as a bare path or as a full URL.
Sign-in is handled elsewhere: this adapter only carries the resulting
bearer token on writes and deletes.
"""

import logging
from typing import List, Optional

import httpx

from .backend import NotFound, StorageReadFailure, StorageWriteFailure
from .config import Settings, get_settings

logger = logging.getLogger(__name__)


class HomeserverStorage:
    """StorageBackend implementation over a homeserver's HTTP API."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        auth_token: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize the homeserver backend.

        Args:
            settings: Client settings (defaults to environment settings)
            auth_token: Session token authorizing writes to our own tree
            http_client: Pre-built client, mainly for tests
        """
        self.settings = settings or get_settings()
        self.base_url = self.settings.homeserver_url.rstrip("/")
        self.auth_token = auth_token
        self.http_client = http_client or httpx.AsyncClient(timeout=self.settings.request_timeout)

    def _url(self, owner: str, path: str) -> str:
        return f"{self.base_url}/{owner}{path}"

    def _auth_headers(self) -> dict:
        if not self.auth_token:
            return {}
        return {"Authorization": f"Bearer {self.auth_token}"}

    async def put(self, owner: str, path: str, body: bytes) -> None:
        try:
            response = await self.http_client.put(
                self._url(owner, path),
                content=body,
                headers={"Content-Type": "application/json", **self._auth_headers()},
            )
        except httpx.HTTPError as e:
            raise StorageWriteFailure(f"Failed to store message at {path}: {e}", path=path) from e

        if not response.is_success:
            raise StorageWriteFailure(
                f"Failed to store message at {path}: {response.status_code}",
                path=path,
                status_code=response.status_code,
            )

    async def get(self, owner: str, path: str) -> bytes:
        try:
            response = await self.http_client.get(self._url(owner, path))
        except httpx.HTTPError as e:
            raise StorageReadFailure(f"Failed to read {path}: {e}", path=path) from e

        if response.status_code == 404:
            raise NotFound(f"No entry at {path}", path=path, status_code=404)
        if not response.is_success:
            raise StorageReadFailure(
                f"Failed to read {path}: {response.status_code}",
                path=path,
                status_code=response.status_code,
            )
        return response.content

    async def list(self, owner: str, prefix: str) -> List[str]:
        """
        List paths under a directory prefix.

        A missing directory lists as empty.
        """
        if not prefix.endswith("/"):
            prefix += "/"
        try:
            response = await self.http_client.get(self._url(owner, prefix))
        except httpx.HTTPError as e:
            raise StorageReadFailure(f"Failed to list {prefix}: {e}", path=prefix) from e

        if response.status_code == 404:
            return []
        if not response.is_success:
            raise StorageReadFailure(
                f"Failed to list {prefix}: {response.status_code}",
                path=prefix,
                status_code=response.status_code,
            )

        paths = []
        for line in response.text.splitlines():
            path = _entry_path(line.strip(), prefix)
            if path is None:
                if line.strip():
                    logger.debug("Ignoring listing line outside %s: %s", prefix, line)
                continue
            paths.append(path)
        return paths

    async def delete(self, owner: str, path: str) -> None:
        try:
            response = await self.http_client.delete(self._url(owner, path), headers=self._auth_headers())
        except httpx.HTTPError as e:
            raise StorageWriteFailure(f"Failed to delete message at {path}: {e}", path=path) from e

        if response.status_code == 404:
            raise NotFound(f"No entry at {path}", path=path, status_code=404)
        if not response.is_success:
            raise StorageWriteFailure(
                f"Failed to delete message at {path}: {response.status_code}",
                path=path,
                status_code=response.status_code,
            )

    async def close(self):
        """Close the underlying HTTP client"""
        await self.http_client.aclose()


def _entry_path(line: str, prefix: str) -> Optional[str]:
    # Lines may be "pubky://<owner>/pub/...", "http(s)://host/<owner>/pub/..." or "/pub/..."
    index = line.find(prefix)
    if index < 0:
        return None
    return line[index:]
