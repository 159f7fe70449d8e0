"""
Cryptographic Primitives for Private Messaging

This module provides the building blocks of the private message protocol:
converting Ed25519 identity keys into X25519 keys, deriving the per-pair
shared secret, addressing a conversation, hashing/signing message digests
and sealing individual fields with AES-256-GCM.

Everything here is pure and synchronous.
"""

import os
import hmac
import hashlib
import struct
from typing import Tuple, Union

import blake3
from cryptography.exceptions import InvalidSignature, InvalidTag
from cryptography.hazmat.primitives.asymmetric.x25519 import X25519PrivateKey, X25519PublicKey
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from nacl import exceptions as nacl_exceptions
from nacl.bindings import crypto_sign_ed25519_pk_to_curve25519


KEY_LENGTH = 32
SIGNATURE_LENGTH = 64
NONCE_LENGTH = 12
TAG_LENGTH = 16

CONVERSATION_ROOT = "/pub/private_messages/"

INT64_MIN = -(2 ** 63)
INT64_MAX = 2 ** 63 - 1


class CryptoError(Exception):
    """Base exception for cryptographic errors"""
    pass


class InvalidKeyEncoding(CryptoError):
    """Key material is not a valid scalar/point encoding for its curve"""
    pass


class KeyAgreementFailure(CryptoError):
    """Diffie-Hellman produced a degenerate (all-zero) shared secret"""
    pass


class DecryptionFailure(CryptoError):
    """AEAD authentication tag did not verify"""
    pass


class InvalidEncoding(CryptoError):
    """Decrypted content is not valid UTF-8"""
    pass


class MalformedMessage(CryptoError):
    """A stored entry is not a well-formed sealed message"""
    pass


def generate_identity_keypair() -> Tuple[Ed25519PrivateKey, Ed25519PublicKey]:
    """
    Generate an Ed25519 keypair for digital signatures (identity keys).

    Returns:
        Tuple of (private_key, public_key)
    """
    private_key = Ed25519PrivateKey.generate()
    public_key = private_key.public_key()
    return private_key, public_key


def _signing_seed(signing_private: Union[Ed25519PrivateKey, bytes]) -> bytes:
    if isinstance(signing_private, Ed25519PrivateKey):
        return signing_private.private_bytes_raw()
    if not isinstance(signing_private, (bytes, bytearray)) or len(signing_private) != KEY_LENGTH:
        raise InvalidKeyEncoding("Ed25519 private key must be a 32-byte seed")
    return bytes(signing_private)


def _signing_public_bytes(signing_public: Union[Ed25519PublicKey, bytes]) -> bytes:
    if isinstance(signing_public, Ed25519PublicKey):
        return serialize_identity_public_key(signing_public)
    if not isinstance(signing_public, (bytes, bytearray)) or len(signing_public) != KEY_LENGTH:
        raise InvalidKeyEncoding("Ed25519 public key must be 32 bytes")
    return bytes(signing_public)


def to_dh_private(signing_private: Union[Ed25519PrivateKey, bytes]) -> X25519PrivateKey:
    """
    Convert an Ed25519 private key (or its 32-byte seed) to an X25519 private key.

    The seed is hashed with SHA-512 and the first half is clamped as per
    RFC 7748, which is the same scalar Ed25519 itself signs with.

    Args:
        signing_private: Ed25519 private key or raw 32-byte seed

    Returns:
        X25519 private key

    Raises:
        InvalidKeyEncoding: If the seed has the wrong length
    """
    digest = hashlib.sha512(_signing_seed(signing_private)).digest()

    scalar = bytearray(digest[:32])
    scalar[0] &= 248
    scalar[31] &= 127
    scalar[31] |= 64

    return X25519PrivateKey.from_private_bytes(bytes(scalar))


def to_dh_public(signing_public: Union[Ed25519PublicKey, bytes]) -> X25519PublicKey:
    """
    Convert an Ed25519 public key to an X25519 public key.

    Applies the birational map u = (1 + y) / (1 - y) from the Edwards curve
    to the Montgomery curve. Points that do not decode, or that lie in a
    small-order subgroup, are rejected.

    Args:
        signing_public: Ed25519 public key or its raw 32 bytes

    Returns:
        X25519 public key

    Raises:
        InvalidKeyEncoding: If the bytes are not a valid Ed25519 point
    """
    raw = _signing_public_bytes(signing_public)
    try:
        montgomery = crypto_sign_ed25519_pk_to_curve25519(raw)
    except nacl_exceptions.CryptoError as e:
        raise InvalidKeyEncoding(f"Failed to convert public key to X25519: {e}") from e
    return X25519PublicKey.from_public_bytes(montgomery)


def derive_shared_secret(dh_private: X25519PrivateKey, dh_peer_public: X25519PublicKey) -> bytes:
    """
    Perform Diffie-Hellman key exchange.

    Args:
        dh_private: Our X25519 private key
        dh_peer_public: Their X25519 public key

    Returns:
        32-byte raw shared secret (not hashed)

    Raises:
        KeyAgreementFailure: If the result is the all-zero point
    """
    try:
        shared = dh_private.exchange(dh_peer_public)
    except ValueError as e:
        # OpenSSL refuses all-zero outputs itself
        raise KeyAgreementFailure(f"Key agreement failed: {e}") from e

    if constant_time_compare(shared, b"\x00" * KEY_LENGTH):
        raise KeyAgreementFailure("Key agreement produced the neutral element")
    return shared


def compute_shared_secret(
    signing_private: Union[Ed25519PrivateKey, bytes],
    peer_signing_public: Union[Ed25519PublicKey, bytes],
) -> bytes:
    """Shared secret between our identity and a peer identity (both Ed25519)"""
    return derive_shared_secret(to_dh_private(signing_private), to_dh_public(peer_signing_public))


def conversation_id(shared_secret: bytes) -> str:
    """
    Derive the conversation identifier from a shared secret.

    Args:
        shared_secret: Raw 32-byte ECDH output

    Returns:
        Lowercase hex BLAKE3-256 digest, safe to use as a path segment
    """
    return blake3.blake3(shared_secret).hexdigest()


def conversation_path(conv_id: str) -> str:
    """Storage prefix holding every message of a conversation"""
    return f"{CONVERSATION_ROOT}{conv_id}/"


def message_path(conv_id: str, message_id: str) -> str:
    """Storage path of a single message"""
    return f"{conversation_path(conv_id)}{message_id}.json"


def generate_conversation_path(
    signing_private: Union[Ed25519PrivateKey, bytes],
    peer_signing_public: Union[Ed25519PublicKey, bytes],
) -> str:
    """
    Storage prefix of the conversation between our identity and a peer.

    Both participants get the same prefix, each under their own tree.

    Raises:
        InvalidKeyEncoding: If either key is malformed
        KeyAgreementFailure: If the exchange is degenerate
    """
    shared = compute_shared_secret(signing_private, peer_signing_public)
    return conversation_path(conversation_id(shared))


def encode_int64(value: int) -> bytes:
    """Big-endian signed 64-bit encoding"""
    if not INT64_MIN <= value <= INT64_MAX:
        raise ValueError(f"Value out of int64 range: {value}")
    return struct.pack(">q", value)


def message_digest(content: bytes, sender_public: bytes, timestamp: int) -> bytes:
    """
    Compute the digest a message signature covers.

    Args:
        content: UTF-8 content bytes
        sender_public: Sender's raw Ed25519 public key
        timestamp: Nanosecond timestamp

    Returns:
        32-byte BLAKE3 digest of content || sender || int64_be(timestamp)
    """
    hasher = blake3.blake3()
    hasher.update(content)
    hasher.update(sender_public)
    hasher.update(encode_int64(timestamp))
    return hasher.digest()


def verify_signature(sender_public: bytes, signature: bytes, digest: bytes) -> bool:
    """Check an Ed25519 signature; any malformed input simply fails verification"""
    if len(signature) != SIGNATURE_LENGTH:
        return False
    try:
        deserialize_identity_public_key(sender_public).verify(signature, digest)
        return True
    except (InvalidSignature, InvalidKeyEncoding):
        return False


def encrypt_message(key: bytes, plaintext: bytes, associated_data: bytes = b"") -> bytes:
    """
    Encrypt a message using AES-256-GCM.

    Args:
        key: 32-byte encryption key
        plaintext: Message to encrypt
        associated_data: Additional authenticated data

    Returns:
        nonce (12 bytes) + ciphertext + tag (16 bytes)
    """
    nonce = os.urandom(NONCE_LENGTH)
    aesgcm = AESGCM(key)
    ciphertext = aesgcm.encrypt(nonce, plaintext, associated_data)
    return nonce + ciphertext


def decrypt_message(key: bytes, ciphertext: bytes, associated_data: bytes = b"") -> bytes:
    """
    Decrypt a message using AES-256-GCM.

    Args:
        key: 32-byte encryption key
        ciphertext: nonce + encrypted message + tag
        associated_data: Additional authenticated data

    Returns:
        Decrypted plaintext

    Raises:
        DecryptionFailure: If the tag does not verify
    """
    if len(ciphertext) < NONCE_LENGTH + TAG_LENGTH:
        raise DecryptionFailure("Ciphertext too short")

    nonce = ciphertext[:NONCE_LENGTH]
    actual_ciphertext = ciphertext[NONCE_LENGTH:]

    aesgcm = AESGCM(key)
    try:
        return aesgcm.decrypt(nonce, actual_ciphertext, associated_data)
    except InvalidTag as e:
        raise DecryptionFailure("Decryption failed: authentication tag mismatch") from e


def serialize_identity_public_key(public_key: Ed25519PublicKey) -> bytes:
    """Serialize Ed25519 public key to bytes"""
    return public_key.public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw
    )


def deserialize_identity_public_key(key_bytes: bytes) -> Ed25519PublicKey:
    """Deserialize bytes to Ed25519 public key"""
    if len(key_bytes) != KEY_LENGTH:
        raise InvalidKeyEncoding("Ed25519 public key must be 32 bytes")
    try:
        return Ed25519PublicKey.from_public_bytes(key_bytes)
    except ValueError as e:
        raise InvalidKeyEncoding(f"Invalid Ed25519 public key: {e}") from e


def parse_public_key_hex(value: str) -> bytes:
    """Decode a hex public identifier into its 32 raw bytes"""
    try:
        raw = bytes.fromhex(value.strip())
    except ValueError as e:
        raise InvalidKeyEncoding(f"Invalid hex public key: {e}") from e
    if len(raw) != KEY_LENGTH:
        raise InvalidKeyEncoding("Public key must be 32 bytes")
    return raw


def constant_time_compare(a: bytes, b: bytes) -> bool:
    """
    Constant-time comparison to prevent timing attacks.

    Args:
        a: First byte string
        b: Second byte string

    Returns:
        True if equal, False otherwise
    """
    return hmac.compare_digest(a, b)
