#!/usr/bin/env python3
"""
Tests for the cryptographic primitives: key conversion, key agreement,
conversation addressing and field encryption.
"""

import sys

import blake3
import pytest
from cryptography.hazmat.primitives.asymmetric.x25519 import X25519PrivateKey, X25519PublicKey

from dmcrypto.identity import Identity
from dmcrypto.primitives import (
    to_dh_private,
    to_dh_public,
    derive_shared_secret,
    compute_shared_secret,
    conversation_id,
    conversation_path,
    message_path,
    encrypt_message,
    decrypt_message,
    generate_conversation_path,
    parse_public_key_hex,
    DecryptionFailure,
    InvalidKeyEncoding,
    KeyAgreementFailure,
)

ALICE_SEED = bytes(range(32))
BOB_SEED = bytes(range(32, 64))


def test_key_conversion_is_deterministic():
    """Converting the same identity twice gives the same X25519 keys"""
    print("Testing key conversion determinism...")

    alice = Identity.from_seed(ALICE_SEED)
    again = Identity.from_seed(ALICE_SEED)

    assert to_dh_private(alice.signing_key).private_bytes_raw() == \
        to_dh_private(again.seed).private_bytes_raw(), "Private conversion not deterministic"
    assert to_dh_public(alice.public_key).public_bytes_raw() == \
        to_dh_public(again.public_key).public_bytes_raw(), "Public conversion not deterministic"

    print("✓ Key conversion is deterministic")


def test_private_and_public_conversion_agree():
    """Public of the converted private key equals the converted public key"""
    print("Testing conversion paths agree...")

    for _ in range(5):
        identity = Identity.generate()
        from_private = to_dh_private(identity.signing_key).public_key().public_bytes_raw()
        from_public = to_dh_public(identity.public_key).public_bytes_raw()
        assert from_private == from_public, "Conversion paths disagree"

    print("✓ Conversion paths agree")


def test_private_conversion_is_clamped():
    """Converted scalar is clamped as per RFC 7748"""
    scalar = to_dh_private(ALICE_SEED).private_bytes_raw()

    assert len(scalar) == 32
    assert scalar[0] & 7 == 0
    assert scalar[31] & 128 == 0
    assert scalar[31] & 64 == 64


def test_invalid_public_key_rejected():
    """Small-order points and wrong lengths are not valid Ed25519 keys"""
    print("Testing invalid key encodings...")

    identity_point = b"\x01" + b"\x00" * 31
    with pytest.raises(InvalidKeyEncoding):
        to_dh_public(identity_point)

    with pytest.raises(InvalidKeyEncoding):
        to_dh_public(b"\x02" * 31)

    with pytest.raises(InvalidKeyEncoding):
        to_dh_private(b"short")

    with pytest.raises(InvalidKeyEncoding):
        Identity.from_seed(b"\x00" * 16)

    with pytest.raises(InvalidKeyEncoding):
        parse_public_key_hex("not hex")

    print("✓ Invalid keys rejected")


def test_shared_secret_symmetry():
    """Both directions of the exchange produce the same secret"""
    print("Testing shared secret symmetry...")

    for _ in range(5):
        alice = Identity.generate()
        bob = Identity.generate()

        alice_shared = derive_shared_secret(to_dh_private(alice.signing_key), to_dh_public(bob.public_key))
        bob_shared = derive_shared_secret(to_dh_private(bob.signing_key), to_dh_public(alice.public_key))

        assert alice_shared == bob_shared, "Shared secrets don't match"
        assert len(alice_shared) == 32, "Wrong shared secret length"

    print("✓ Shared secret is symmetric")


def test_compute_shared_secret_matches_identity_path():
    alice = Identity.from_seed(ALICE_SEED)
    bob = Identity.from_seed(BOB_SEED)

    direct = compute_shared_secret(ALICE_SEED, bob.public_key)
    via_identity = derive_shared_secret(alice.dh_private(), to_dh_public(bob.public_key))

    assert direct == via_identity


def test_degenerate_key_agreement_rejected():
    """An all-zero result must not be used"""
    print("Testing degenerate key agreement...")

    private_key = X25519PrivateKey.generate()
    zero_point = X25519PublicKey.from_public_bytes(b"\x00" * 32)

    with pytest.raises(KeyAgreementFailure):
        derive_shared_secret(private_key, zero_point)

    print("✓ Degenerate key agreement rejected")


def test_conversation_id_symmetry():
    """Both participants address the same conversation"""
    print("Testing conversation id...")

    alice = Identity.from_seed(ALICE_SEED)
    bob = Identity.from_seed(BOB_SEED)

    alice_view = conversation_id(compute_shared_secret(alice.signing_key, bob.public_key))
    bob_view = conversation_id(compute_shared_secret(bob.signing_key, alice.public_key))

    assert alice_view == bob_view, "Conversation ids differ"
    assert len(alice_view) == 64
    assert alice_view == alice_view.lower()
    int(alice_view, 16)

    print("✓ Conversation id is symmetric")


def test_conversation_id_is_hash_of_raw_secret():
    secret = compute_shared_secret(ALICE_SEED, Identity.from_seed(BOB_SEED).public_key)
    assert conversation_id(secret) == blake3.blake3(secret).hexdigest()


def test_conversation_differs_per_pair():
    alice = Identity.generate()
    bob = Identity.generate()
    carol = Identity.generate()

    with_bob = conversation_id(compute_shared_secret(alice.signing_key, bob.public_key))
    with_carol = conversation_id(compute_shared_secret(alice.signing_key, carol.public_key))

    assert with_bob != with_carol


def test_paths():
    conv = "ab" * 32
    assert conversation_path(conv) == f"/pub/private_messages/{conv}/"
    assert message_path(conv, "m1") == f"/pub/private_messages/{conv}/m1.json"


def test_generate_conversation_path():
    """Both participants derive the same storage prefix from their own keys"""
    print("Testing conversation path generation...")

    alice = Identity.from_seed(ALICE_SEED)
    bob = Identity.from_seed(BOB_SEED)

    alice_path = generate_conversation_path(alice.signing_key, bob.public_key)
    bob_path = generate_conversation_path(BOB_SEED, alice.public_key)

    expected = conversation_id(compute_shared_secret(alice.signing_key, bob.public_key))
    assert alice_path == bob_path == f"/pub/private_messages/{expected}/"

    carol = Identity.generate()
    assert generate_conversation_path(alice.signing_key, carol.public_key) != alice_path

    with pytest.raises(InvalidKeyEncoding):
        generate_conversation_path(alice.signing_key, b"\x01" + b"\x00" * 31)

    print("✓ Conversation path generation works")


def test_encryption():
    """Test symmetric encryption"""
    print("Testing encryption...")

    key = b"0" * 32  # 32-byte key
    plaintext = b"Hello, World!"

    ciphertext = encrypt_message(key, plaintext)
    decrypted = decrypt_message(key, ciphertext)

    assert decrypted == plaintext, "Decryption failed"
    assert ciphertext != plaintext, "Ciphertext equals plaintext"
    assert len(ciphertext) == 12 + len(plaintext) + 16

    with pytest.raises(DecryptionFailure):
        decrypt_message(b"1" * 32, ciphertext)

    with pytest.raises(DecryptionFailure):
        decrypt_message(key, ciphertext, b"other label")

    with pytest.raises(DecryptionFailure):
        decrypt_message(key, ciphertext[:20])

    print("✓ Encryption/decryption works")


def test_nonces_are_fresh():
    key = b"k" * 32
    first = encrypt_message(key, b"same")
    second = encrypt_message(key, b"same")

    assert first[:12] != second[:12], "Nonce reused"
    assert first != second


def run_all_tests():
    """Run all tests"""
    print("\n" + "="*50)
    print("Running Cryptographic Tests")
    print("="*50 + "\n")

    try:
        test_key_conversion_is_deterministic()
        test_private_and_public_conversion_agree()
        test_invalid_public_key_rejected()
        test_shared_secret_symmetry()
        test_degenerate_key_agreement_rejected()
        test_conversation_id_symmetry()
        test_generate_conversation_path()
        test_encryption()

        print("\n" + "="*50)
        print("✓ All tests passed!")
        print("="*50 + "\n")
        return 0

    except AssertionError as e:
        print(f"\n✗ Test failed: {e}")
        return 1
    except Exception as e:
        print(f"\n✗ Unexpected error: {e}")
        import traceback
        traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(run_all_tests())
