"""
Private Message Codec

Builds the sealed (encrypted and signed) form of a message and recovers the
verified plaintext from it. The sender identity and the content are each
sealed with AES-256-GCM under the raw pair shared secret, each with its own
random nonce. The Ed25519 signature covers the plaintext digest, so it is
checked after decryption.
"""

import json
import time
import uuid
from typing import Any, Dict, Optional
from dataclasses import dataclass, field

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_serializer, field_validator

from .identity import Identity
from .primitives import (
    INT64_MAX,
    INT64_MIN,
    KEY_LENGTH,
    NONCE_LENGTH,
    SIGNATURE_LENGTH,
    TAG_LENGTH,
    InvalidEncoding,
    MalformedMessage,
    decrypt_message,
    encrypt_message,
    message_digest,
    verify_signature,
)


# Field labels bound as associated data so the two ciphertexts cannot be swapped
SENDER_AAD = b"dm/v1/sender"
CONTENT_AAD = b"dm/v1/content"

_MIN_SEALED_LENGTH = NONCE_LENGTH + TAG_LENGTH


class SealedMessage(BaseModel):
    """
    Wire/storage representation of a message.

    Binary fields are lowercase hex in the JSON body.

    Attributes:
        timestamp: Nanoseconds since the Unix epoch (signed 64-bit)
        encrypted_sender: nonce + ciphertext + tag of the sender public key
        encrypted_content: nonce + ciphertext + tag of the UTF-8 content
        signature: Ed25519 signature over the plaintext digest
    """

    model_config = ConfigDict(frozen=True)

    timestamp: int = Field(..., strict=True, ge=INT64_MIN, le=INT64_MAX)
    encrypted_sender: bytes = Field(..., min_length=_MIN_SEALED_LENGTH)
    encrypted_content: bytes = Field(..., min_length=_MIN_SEALED_LENGTH)
    signature: bytes = Field(..., min_length=SIGNATURE_LENGTH, max_length=SIGNATURE_LENGTH)

    @field_validator("encrypted_sender", "encrypted_content", "signature", mode="before")
    @classmethod
    def decode_hex(cls, value: Any) -> bytes:
        """Accept raw bytes, or hex text as found in stored bodies."""
        if isinstance(value, (bytes, bytearray)):
            return bytes(value)
        if not isinstance(value, str):
            raise ValueError("must be a hex string")
        return bytes.fromhex(value)

    @field_serializer("encrypted_sender", "encrypted_content", "signature")
    def encode_hex(self, value: bytes) -> str:
        return value.hex()

    def to_dict(self) -> Dict:
        """Convert to dictionary for serialization"""
        return self.model_dump()

    @classmethod
    def from_dict(cls, data: Any) -> 'SealedMessage':
        """
        Create from dictionary.

        Raises:
            MalformedMessage: If a field is missing or has the wrong shape
        """
        if not isinstance(data, dict):
            raise MalformedMessage("Sealed message must be a JSON object")
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise MalformedMessage(f"Invalid sealed message: {e}") from e

    def to_json(self) -> str:
        return self.model_dump_json()

    @classmethod
    def from_json(cls, raw) -> 'SealedMessage':
        """Parse a stored entry body (str or bytes)"""
        try:
            data = json.loads(raw)
        except (ValueError, TypeError) as e:
            raise MalformedMessage(f"Entry is not valid JSON: {e}") from e
        return cls.from_dict(data)


@dataclass(frozen=True)
class Message:
    """
    Decrypted message for application use.

    Attributes:
        timestamp: Nanoseconds since the Unix epoch
        sender: Sender's raw public key
        content: Message text
        verified: Whether the signature matched the decrypted sender
        message_id: Storage filename stem, if known
        owner: Public key of the tree the entry was read from, if known
    """
    timestamp: int
    sender: bytes
    content: str
    verified: bool
    message_id: Optional[str] = None
    owner: Optional[bytes] = field(default=None, compare=False)

    @property
    def sender_hex(self) -> str:
        return self.sender.hex()

    def to_dict(self) -> Dict:
        return {
            'message_id': self.message_id,
            'timestamp': self.timestamp,
            'sender': self.sender.hex(),
            'content': self.content,
            'verified': self.verified,
        }


def generate_message_id() -> str:
    """Random 128-bit message identifier (UUID v4)"""
    return str(uuid.uuid4())


def _check_key(shared_secret: bytes) -> bytes:
    if not isinstance(shared_secret, (bytes, bytearray)) or len(shared_secret) != KEY_LENGTH:
        raise ValueError("shared secret must be 32 bytes")
    return bytes(shared_secret)


def seal_message(
    content: str,
    sender: Identity,
    shared_secret: bytes,
    timestamp: Optional[int] = None,
) -> SealedMessage:
    """
    Encrypt and sign a message.

    Args:
        content: Message text
        sender: Sender identity (signs the digest)
        shared_secret: Raw ECDH output for the sender/recipient pair
        timestamp: Override for the nanosecond timestamp (defaults to now)

    Returns:
        SealedMessage ready for storage
    """
    key = _check_key(shared_secret)
    if timestamp is None:
        timestamp = time.time_ns()

    content_bytes = content.encode("utf-8")
    sender_bytes = sender.public_key

    digest = message_digest(content_bytes, sender_bytes, timestamp)
    signature = sender.sign(digest)

    return SealedMessage(
        timestamp=timestamp,
        encrypted_sender=encrypt_message(key, sender_bytes, SENDER_AAD),
        encrypted_content=encrypt_message(key, content_bytes, CONTENT_AAD),
        signature=signature,
    )


def open_message(
    sealed: SealedMessage,
    shared_secret: bytes,
    message_id: Optional[str] = None,
    owner: Optional[bytes] = None,
) -> Message:
    """
    Decrypt a sealed message and check its signature.

    A bad signature does not raise: the message comes back with
    verified=False and the caller decides what to do with it.

    Args:
        sealed: Sealed message
        shared_secret: Raw ECDH output for the pair
        message_id: Storage id to attach to the result
        owner: Tree owner to attach to the result

    Returns:
        Decrypted Message

    Raises:
        DecryptionFailure: If either field fails authentication
        InvalidEncoding: If the content is not UTF-8
    """
    key = _check_key(shared_secret)

    sender_bytes = decrypt_message(key, sealed.encrypted_sender, SENDER_AAD)
    content_bytes = decrypt_message(key, sealed.encrypted_content, CONTENT_AAD)

    digest = message_digest(content_bytes, sender_bytes, sealed.timestamp)
    verified = verify_signature(sender_bytes, sealed.signature, digest)

    try:
        content = content_bytes.decode("utf-8")
    except UnicodeDecodeError as e:
        raise InvalidEncoding(f"Message content is not valid UTF-8: {e}") from e

    return Message(
        timestamp=sealed.timestamp,
        sender=sender_bytes,
        content=content,
        verified=verified,
        message_id=message_id,
        owner=owner,
    )
