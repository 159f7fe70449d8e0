"""
Private message store.

Maps the messaging protocol onto a StorageBackend. Every message lives in
its sender's own tree at

    /pub/private_messages/{conversation_id}/{message_id}.json

so reading a conversation scans both participants' trees, and deleting only
ever touches the caller's tree.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from dmcrypto.identity import Identity
from dmcrypto.message import Message, SealedMessage, generate_message_id, open_message, seal_message
from dmcrypto.primitives import (
    CryptoError,
    conversation_id,
    conversation_path,
    derive_shared_secret,
    message_path,
    to_dh_public,
)

from .backend import StorageBackend, StorageError, entry_id
from .config import Settings, get_settings

logger = logging.getLogger(__name__)


@dataclass
class DeleteResult:
    """
    Outcome of a best-effort batch deletion.

    Attributes:
        deleted: Message ids removed
        failed: Message id -> error for every deletion that did not succeed
    """
    deleted: List[str] = field(default_factory=list)
    failed: Dict[str, StorageError] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed


class MessageStore:
    """
    Create, read and delete private messages on a storage backend.

    Holds no per-conversation state: each call recomputes the shared secret
    and conversation id from the keys it is given.
    """

    def __init__(self, backend: StorageBackend, settings: Optional[Settings] = None):
        """
        Initialize the message store.

        Args:
            backend: Storage backend to read from and write to
            settings: Client settings (defaults to environment settings)
        """
        self.backend = backend
        self.settings = settings or get_settings()

    def shared_secret(self, local: Identity, peer_public: bytes) -> bytes:
        """Raw ECDH secret between our identity and a peer public key"""
        return derive_shared_secret(local.dh_private(), to_dh_public(peer_public))

    def conversation_id(self, local: Identity, peer_public: bytes) -> str:
        return conversation_id(self.shared_secret(local, peer_public))

    async def send(self, sender: Identity, recipient_public: bytes, content: str) -> str:
        """
        Encrypt a message and store it in the sender's tree.

        Args:
            sender: Sending identity
            recipient_public: Recipient's raw public key
            content: Message text

        Returns:
            The new message id

        Raises:
            InvalidKeyEncoding: If the recipient key is not a valid point
            KeyAgreementFailure: If the shared secret is degenerate
            StorageWriteFailure: If the backend rejects the write
        """
        secret = self.shared_secret(sender, recipient_public)
        conv_id = conversation_id(secret)

        sealed = seal_message(content, sender, secret)
        msg_id = generate_message_id()
        path = message_path(conv_id, msg_id)

        await self.backend.put(sender.public_key_hex, path, sealed.to_json().encode("utf-8"))
        logger.debug("Stored message %s in conversation %s", msg_id, conv_id)
        return msg_id

    async def get_messages(self, local: Identity, peer_public: bytes) -> List[Message]:
        """
        Read every message of a conversation from both participants' trees.

        A tree that cannot be listed is logged and the other tree is still
        read. Entries that cannot be fetched, parsed or decrypted are logged and
        skipped. Results are ordered by timestamp, then message id.

        Args:
            local: Our identity
            peer_public: The other participant's raw public key

        Returns:
            Decrypted messages, oldest first

        Raises:
            StorageReadFailure: If no tree could be listed
        """
        secret = self.shared_secret(local, peer_public)
        prefix = conversation_path(conversation_id(secret))

        owners = [peer_public.hex(), local.public_key_hex]
        if owners[0] == owners[1]:
            owners = owners[:1]

        listings = await asyncio.gather(
            *(self.backend.list(owner, prefix) for owner in owners),
            return_exceptions=True,
        )

        entries: List[Tuple[str, str]] = []
        failures: List[StorageError] = []
        for owner, paths in zip(owners, listings):
            if isinstance(paths, StorageError):
                logger.warning("Could not list tree %s: %s", owner, paths)
                failures.append(paths)
                continue
            if isinstance(paths, BaseException):
                raise paths
            for path in paths:
                entries.append((owner, path))

        if len(failures) == len(owners):
            raise failures[0]

        opened = await asyncio.gather(*(self._fetch_entry(owner, path, secret) for owner, path in entries))
        messages = [message for message in opened if message is not None]
        messages.sort(key=lambda m: (m.timestamp, m.message_id or ""))
        return messages

    async def _fetch_entry(self, owner: str, path: str, secret: bytes) -> Optional[Message]:
        msg_id = entry_id(path)
        if msg_id is None:
            logger.warning("Skipping non-message entry %s in tree %s", path, owner)
            return None
        try:
            body = await self.backend.get(owner, path)
            return open_message(SealedMessage.from_json(body), secret, message_id=msg_id,
                                owner=bytes.fromhex(owner))
        except (StorageError, CryptoError) as e:
            logger.warning("Skipping entry %s in tree %s: %s", path, owner, e)
            return None

    async def get_message(
        self,
        local: Identity,
        peer_public: bytes,
        message_id: str,
        owner_public: Optional[bytes] = None,
    ) -> Message:
        """
        Fetch and decrypt one message.

        Unlike get_messages, every failure is raised.

        Args:
            local: Our identity
            peer_public: The other participant's raw public key
            message_id: Id of the message
            owner_public: Tree holding the message (defaults to the peer's)

        Raises:
            NotFound: If there is no such entry
            MalformedMessage: If the entry is not a sealed message
            DecryptionFailure: If the entry does not decrypt under this pair's key
        """
        secret = self.shared_secret(local, peer_public)
        owner = (owner_public if owner_public is not None else peer_public).hex()
        path = message_path(conversation_id(secret), message_id)

        body = await self.backend.get(owner, path)
        return open_message(SealedMessage.from_json(body), secret, message_id=message_id,
                            owner=bytes.fromhex(owner))

    async def delete_message(self, owner: Identity, message_id: str, peer_public: bytes) -> None:
        """
        Delete one of our own messages.

        Raises:
            NotFound: If our tree holds no message with this id
            StorageWriteFailure: If the backend rejects the deletion
        """
        conv_id = self.conversation_id(owner, peer_public)
        await self.backend.delete(owner.public_key_hex, message_path(conv_id, message_id))
        logger.debug("Deleted message %s from conversation %s", message_id, conv_id)

    async def delete_messages(
        self,
        owner: Identity,
        message_ids: Iterable[str],
        peer_public: bytes,
    ) -> DeleteResult:
        """
        Delete several of our own messages, best effort.

        Each deletion is attempted independently; failures are collected in
        the result rather than raised.
        """
        conv_id = self.conversation_id(owner, peer_public)
        paths = {msg_id: message_path(conv_id, msg_id) for msg_id in message_ids}
        return await self._delete_paths(owner.public_key_hex, paths)

    async def clear_messages(self, owner: Identity, peer_public: bytes) -> DeleteResult:
        """Delete every message we sent in a conversation, best effort"""
        conv_id = self.conversation_id(owner, peer_public)
        listed = await self.backend.list(owner.public_key_hex, conversation_path(conv_id))

        paths = {}
        for path in listed:
            msg_id = entry_id(path)
            paths[msg_id if msg_id is not None else path] = path
        return await self._delete_paths(owner.public_key_hex, paths)

    async def _delete_paths(self, owner: str, paths: Dict[str, str]) -> DeleteResult:
        result = DeleteResult()
        items = list(paths.items())
        batch_size = self.settings.delete_batch_size

        for start in range(0, len(items), batch_size):
            batch = items[start:start + batch_size]
            outcomes = await asyncio.gather(
                *(self.backend.delete(owner, path) for _, path in batch),
                return_exceptions=True,
            )
            for (msg_id, path), outcome in zip(batch, outcomes):
                if outcome is None:
                    result.deleted.append(msg_id)
                elif isinstance(outcome, StorageError):
                    logger.warning("Failed to delete message %s: %s", msg_id, outcome)
                    result.failed[msg_id] = outcome
                else:
                    raise outcome

        if result.failed:
            logger.info("Deleted %d messages, %d failed", len(result.deleted), len(result.failed))
        return result
