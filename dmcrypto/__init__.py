"""
Cryptographic core for end-to-end encrypted private messages.

Implements the per-pair protocol:
- Ed25519 identity keys converted to X25519 for key agreement
- Conversation addressing from the shared secret
- AES-256-GCM sealed sender and content, Ed25519-signed digest
"""

from .primitives import (
    CryptoError,
    InvalidKeyEncoding,
    KeyAgreementFailure,
    DecryptionFailure,
    InvalidEncoding,
    MalformedMessage,
    to_dh_private,
    to_dh_public,
    derive_shared_secret,
    compute_shared_secret,
    conversation_id,
    conversation_path,
    generate_conversation_path,
    message_path,
    parse_public_key_hex,
)
from .identity import Identity
from .message import Message, SealedMessage, seal_message, open_message, generate_message_id

__all__ = [
    'CryptoError',
    'InvalidKeyEncoding',
    'KeyAgreementFailure',
    'DecryptionFailure',
    'InvalidEncoding',
    'MalformedMessage',
    'to_dh_private',
    'to_dh_public',
    'derive_shared_secret',
    'compute_shared_secret',
    'conversation_id',
    'conversation_path',
    'generate_conversation_path',
    'message_path',
    'parse_public_key_hex',
    'Identity',
    'Message',
    'SealedMessage',
    'seal_message',
    'open_message',
    'generate_message_id',
]
