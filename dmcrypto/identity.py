"""
Identity keys

An identity is a long-term Ed25519 signing keypair. Its raw 32-byte public
key is the identifier used as message sender and as storage tree owner.
"""

from typing import Optional
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey
from cryptography.hazmat.primitives.asymmetric.x25519 import X25519PrivateKey

from .primitives import (
    KEY_LENGTH,
    InvalidKeyEncoding,
    generate_identity_keypair,
    serialize_identity_public_key,
    to_dh_private,
)


class Identity:
    """
    Holds an Ed25519 signing keypair.

    The private half never leaves this object except through `seed`, which
    exists so callers can persist the key with their own recovery scheme.
    """

    def __init__(self, signing_key: Ed25519PrivateKey):
        """
        Wrap an existing Ed25519 private key.

        Args:
            signing_key: Ed25519 private key
        """
        self._signing_key = signing_key
        self._public_key: Ed25519PublicKey = signing_key.public_key()
        self._public_bytes = serialize_identity_public_key(self._public_key)
        self._dh_private: Optional[X25519PrivateKey] = None

    @classmethod
    def generate(cls) -> 'Identity':
        """Generate a fresh random identity"""
        private_key, _ = generate_identity_keypair()
        return cls(private_key)

    @classmethod
    def from_seed(cls, seed: bytes) -> 'Identity':
        """
        Load an identity from its 32-byte secret seed.

        Raises:
            InvalidKeyEncoding: If the seed is not 32 bytes
        """
        if not isinstance(seed, (bytes, bytearray)) or len(seed) != KEY_LENGTH:
            raise InvalidKeyEncoding("Identity seed must be 32 bytes")
        return cls(Ed25519PrivateKey.from_private_bytes(bytes(seed)))

    @classmethod
    def from_hex(cls, seed_hex: str) -> 'Identity':
        """Load an identity from a hex-encoded seed"""
        try:
            seed = bytes.fromhex(seed_hex.strip())
        except ValueError as e:
            raise InvalidKeyEncoding(f"Invalid hex seed: {e}") from e
        return cls.from_seed(seed)

    @property
    def public_key(self) -> bytes:
        """Raw 32-byte public identifier"""
        return self._public_bytes

    @property
    def public_key_hex(self) -> str:
        return self._public_bytes.hex()

    @property
    def seed(self) -> bytes:
        return self._signing_key.private_bytes_raw()

    @property
    def signing_key(self) -> Ed25519PrivateKey:
        return self._signing_key

    def dh_private(self) -> X25519PrivateKey:
        """X25519 private key derived from this identity (computed once)"""
        if self._dh_private is None:
            self._dh_private = to_dh_private(self._signing_key)
        return self._dh_private

    def sign(self, data: bytes) -> bytes:
        """Ed25519 signature over data (64 bytes)"""
        return self._signing_key.sign(data)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Identity):
            return NotImplemented
        return self._public_bytes == other._public_bytes

    def __hash__(self) -> int:
        return hash(self._public_bytes)

    def __repr__(self) -> str:
        return f"Identity({self.public_key_hex})"
