"""
Messaging client bound to one identity.

Provides the day-to-day API for:
- Sending encrypted private messages
- Reading a conversation from both participants' trees
- Deleting our own sent messages
"""

import inspect
from typing import Iterable, List, Optional, Union

from dmcrypto.identity import Identity
from dmcrypto.message import Message
from dmcrypto.primitives import parse_public_key_hex

from .backend import StorageBackend
from .config import Settings, get_settings
from .homeserver import HomeserverStorage
from .store import DeleteResult, MessageStore

PeerKey = Union[bytes, str]


def _peer_bytes(peer: PeerKey) -> bytes:
    """
    Normalize a peer identifier to its 32 raw key bytes.

    Peers are given as raw bytes or as a 64-character hex string. Other
    textual encodings (such as z-base32 pkarr ids) are not decoded and fail
    with InvalidKeyEncoding.
    """
    if isinstance(peer, str):
        return parse_public_key_hex(peer)
    return bytes(peer)


class MessengerClient:
    """
    End-to-end encrypted private messaging client.
    """

    def __init__(self, identity: Identity, backend: StorageBackend, settings: Optional[Settings] = None):
        """
        Initialize the client.

        Args:
            identity: Our signing identity
            backend: Storage backend holding everyone's public trees
            settings: Client settings
        """
        self.identity = identity
        self.backend = backend
        self.settings = settings or get_settings()
        self.store = MessageStore(backend, self.settings)

    @classmethod
    def connect(
        cls,
        identity: Identity,
        auth_token: Optional[str] = None,
        settings: Optional[Settings] = None,
    ) -> 'MessengerClient':
        """
        Create a client talking to the configured homeserver.

        Args:
            identity: Our signing identity
            auth_token: Session token from homeserver sign-in
            settings: Client settings
        """
        settings = settings or get_settings()
        return cls(identity, HomeserverStorage(settings, auth_token=auth_token), settings)

    @property
    def public_key(self) -> bytes:
        return self.identity.public_key

    @property
    def public_key_hex(self) -> str:
        return self.identity.public_key_hex

    def conversation_id(self, peer: PeerKey) -> str:
        """Conversation id shared with a peer"""
        return self.store.conversation_id(self.identity, _peer_bytes(peer))

    async def send_message(self, recipient: PeerKey, content: str) -> str:
        """Send an encrypted message; returns its id"""
        return await self.store.send(self.identity, _peer_bytes(recipient), content)

    async def get_messages(self, peer: PeerKey) -> List[Message]:
        """All readable messages with a peer, oldest first"""
        return await self.store.get_messages(self.identity, _peer_bytes(peer))

    async def get_message(self, peer: PeerKey, message_id: str, sent_by_me: bool = False) -> Message:
        """Fetch one message from the peer's tree (or ours, if sent_by_me)"""
        owner = self.identity.public_key if sent_by_me else None
        return await self.store.get_message(self.identity, _peer_bytes(peer), message_id, owner)

    async def delete_message(self, message_id: str, peer: PeerKey) -> None:
        """Delete a single message we sent"""
        await self.store.delete_message(self.identity, message_id, _peer_bytes(peer))

    async def delete_messages(self, message_ids: Iterable[str], peer: PeerKey) -> DeleteResult:
        """Delete several messages we sent; failures are reported, not raised"""
        return await self.store.delete_messages(self.identity, message_ids, _peer_bytes(peer))

    async def clear_messages(self, peer: PeerKey) -> DeleteResult:
        """Delete every message we sent to a peer"""
        return await self.store.clear_messages(self.identity, _peer_bytes(peer))

    async def close(self):
        """Release backend resources"""
        close = getattr(self.backend, "close", None)
        if close is None:
            return
        result = close()
        if inspect.isawaitable(result):
            await result

    async def __aenter__(self) -> 'MessengerClient':
        return self

    async def __aexit__(self, *exc_info):
        await self.close()
