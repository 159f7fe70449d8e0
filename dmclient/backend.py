"""
Storage backend interface.

The messaging core talks to the storage network only through four calls,
all scoped to an owner (hex public key):

- put(owner, path, body): write bytes into the owner's tree (authenticated)
- get(owner, path): read bytes from any owner's public tree
- list(owner, prefix): paths under a prefix in any owner's public tree
- delete(owner, path): remove a path from the owner's tree (authenticated)
"""

from typing import List, Optional, Protocol, runtime_checkable


class StorageError(Exception):
    """Base exception for storage backend failures"""

    def __init__(self, message: str, path: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.path = path
        self.status_code = status_code


class StorageReadFailure(StorageError):
    """Reading or listing a path failed"""
    pass


class StorageWriteFailure(StorageError):
    """Writing or deleting a path failed"""
    pass


class NotFound(StorageError):
    """No entry exists at the path"""
    pass


@runtime_checkable
class StorageBackend(Protocol):
    async def put(self, owner: str, path: str, body: bytes) -> None: ...
    async def get(self, owner: str, path: str) -> bytes: ...
    async def list(self, owner: str, prefix: str) -> List[str]: ...
    async def delete(self, owner: str, path: str) -> None: ...


def entry_id(path: str) -> Optional[str]:
    """Message id (filename stem) of a `.json` entry path, or None"""
    name = path.rstrip("/").rsplit("/", 1)[-1]
    if not name.endswith(".json") or len(name) <= len(".json"):
        return None
    return name[:-len(".json")]
