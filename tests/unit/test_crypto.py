"""
Unit tests for account keys and message signatures.
"""

import pytest

from gavel.crypto import (
    CURVE_ORDER,
    KeyPair,
    account_public_key,
    generate_keypair,
    keccak256,
    message_digest,
    sign,
    sign_message,
    verify,
    verify_message,
)


class TestDigests:
    def test_keccak256_known_vector(self):
        """Keccak-256, not NIST SHA3-256."""
        assert keccak256(b"").hex() == "c5d2460186f7233c927e7db2dcc703c0e500b653ca82273b7bfad8045d85a470"

    def test_message_digest_is_utf8_keccak(self):
        assert message_digest("héllo") == keccak256("héllo".encode("utf-8"))


class TestKeys:
    def test_keypair_shape(self):
        kp = generate_keypair()
        assert len(kp.private_key) == 32
        assert len(kp.public_key) == 64
        assert kp.account_id == kp.public_key.hex()
        assert len(kp.account_id) == 128

    def test_from_private_key_is_deterministic(self):
        kp = generate_keypair()
        assert KeyPair.from_private_key(kp.private_key) == kp

    def test_from_private_key_range(self):
        with pytest.raises(ValueError):
            KeyPair.from_private_key(bytes(32))
        with pytest.raises(ValueError):
            KeyPair.from_private_key(CURVE_ORDER.to_bytes(32, "big"))
        with pytest.raises(ValueError):
            KeyPair.from_private_key(b"\x01" * 31)

    def test_account_public_key(self):
        kp = generate_keypair()
        assert account_public_key(kp.account_id) == kp.public_key
        with pytest.raises(ValueError):
            account_public_key("ab" * 32)
        with pytest.raises(ValueError):
            account_public_key("not-hex")


class TestSignatures:
    def test_sign_verify(self):
        kp = generate_keypair()
        digest = keccak256(b"hello")
        assert verify(digest, sign(digest, kp.private_key), kp.public_key)

    def test_signatures_are_low_s(self):
        kp = generate_keypair()
        for i in range(5):
            signature = sign(keccak256(bytes([i])), kp.private_key)
            assert int.from_bytes(signature[32:], "big") <= CURVE_ORDER // 2

    def test_high_s_twin_rejected(self):
        kp = generate_keypair()
        digest = keccak256(b"hello")
        signature = sign(digest, kp.private_key)
        s = int.from_bytes(signature[32:], "big")
        twin = signature[:32] + (CURVE_ORDER - s).to_bytes(32, "big")
        assert not verify(digest, twin, kp.public_key)

    def test_wrong_key_rejected(self):
        kp, other = generate_keypair(), generate_keypair()
        digest = keccak256(b"hello")
        assert not verify(digest, sign(digest, kp.private_key), other.public_key)

    def test_malformed_inputs_rejected(self):
        kp = generate_keypair()
        digest = keccak256(b"hello")
        assert not verify(digest, b"\x00" * 64, kp.public_key)
        assert not verify(digest, b"short", kp.public_key)
        assert not verify(b"short", sign(digest, kp.private_key), kp.public_key)

    def test_sign_rejects_bad_lengths(self):
        kp = generate_keypair()
        with pytest.raises(ValueError):
            sign(b"short", kp.private_key)
        with pytest.raises(ValueError):
            sign(keccak256(b"x"), b"short")


class TestMessages:
    def test_round_trip(self):
        kp = generate_keypair()
        signature = sign_message("Sign in to Gavel", kp.private_key)
        assert verify_message("Sign in to Gavel", signature, kp.account_id)

    def test_tampered_message_rejected(self):
        kp = generate_keypair()
        signature = sign_message("Sign in to Gavel", kp.private_key)
        assert not verify_message("Sign in to gavel", signature, kp.account_id)

    def test_malformed_hex_is_false(self):
        kp = generate_keypair()
        assert not verify_message("m", "zz", kp.account_id)
        assert not verify_message("m", sign_message("m", kp.private_key), "zz")
        assert not verify_message("m", sign_message("m", kp.private_key), None)
