"""
Account keys and message signatures.

An account id is the hex form of a 64-byte uncompressed secp256k1 public
key (x || y). Clients sign the keccak256 digest of a UTF-8 message; the
server recovers the public key from the signature and compares it with
the account id.
"""

import secrets
from dataclasses import dataclass

from Crypto.Hash import keccak
from py_ecc.secp256k1 import secp256k1

# Group order n of secp256k1
CURVE_ORDER = secp256k1.N
HALF_ORDER = CURVE_ORDER // 2

ACCOUNT_KEY_BYTES = 64
SIGNATURE_BYTES = 64


# =============================================================================
# Digests
# =============================================================================


def keccak256(data: bytes) -> bytes:
    """Keccak-256 (pre-NIST padding, as wallets use)."""
    return keccak.new(data=data, digest_bits=256).digest()


def message_digest(message: str) -> bytes:
    return keccak256(message.encode("utf-8"))


# =============================================================================
# Keys
# =============================================================================


@dataclass
class KeyPair:
    private_key: bytes  # 32 bytes, big-endian scalar in [1, n-1]
    public_key: bytes  # 64 bytes, x || y

    @property
    def account_id(self) -> str:
        return self.public_key.hex()

    @classmethod
    def from_private_key(cls, private_key: bytes) -> "KeyPair":
        if len(private_key) != 32:
            raise ValueError("Private key must be 32 bytes")
        scalar = int.from_bytes(private_key, "big")
        if not 0 < scalar < CURVE_ORDER:
            raise ValueError("Private key out of range")
        x, y = secp256k1.privtopub(private_key)
        return cls(private_key, x.to_bytes(32, "big") + y.to_bytes(32, "big"))


def generate_keypair() -> KeyPair:
    """Fresh random account key."""
    scalar = secrets.randbelow(CURVE_ORDER - 1) + 1
    return KeyPair.from_private_key(scalar.to_bytes(32, "big"))


def account_public_key(account_id: str) -> bytes:
    """
    Decode an account id into its public key bytes.

    Raises:
        ValueError: Not hex, or not 64 bytes long
    """
    key = bytes.fromhex(account_id)
    if len(key) != ACCOUNT_KEY_BYTES:
        raise ValueError(f"Account key must be {ACCOUNT_KEY_BYTES} bytes, got {len(key)}")
    return key


# =============================================================================
# Signatures
# =============================================================================


def sign(digest: bytes, private_key: bytes) -> bytes:
    """
    ECDSA-sign a 32-byte digest.

    Returns:
        r || s (64 bytes) with s in the lower half of the group order
    """
    if len(digest) != 32:
        raise ValueError("Digest must be 32 bytes")
    if len(private_key) != 32:
        raise ValueError("Private key must be 32 bytes")

    _, r, s = secp256k1.ecdsa_raw_sign(digest, private_key)
    if s > HALF_ORDER:
        s = CURVE_ORDER - s
    return r.to_bytes(32, "big") + s.to_bytes(32, "big")


def verify(digest: bytes, signature: bytes, public_key: bytes) -> bool:
    """True when `signature` over `digest` recovers to `public_key`."""
    if len(digest) != 32 or len(signature) != SIGNATURE_BYTES or len(public_key) != ACCOUNT_KEY_BYTES:
        return False

    r = int.from_bytes(signature[:32], "big")
    s = int.from_bytes(signature[32:], "big")
    # High-s twins of valid signatures are refused
    if not (0 < r < CURVE_ORDER and 0 < s <= HALF_ORDER):
        return False

    expected = (int.from_bytes(public_key[:32], "big"), int.from_bytes(public_key[32:], "big"))
    for v in (27, 28):
        try:
            recovered = secp256k1.ecdsa_raw_recover(digest, (v, r, s))
        except (ValueError, ZeroDivisionError, TypeError):
            continue
        if recovered and tuple(recovered[:2]) == expected:
            return True
    return False


def sign_message(message: str, private_key: bytes) -> str:
    """Hex signature over keccak256(message); what a wallet would send."""
    return sign(message_digest(message), private_key).hex()


def verify_message(message: str, signature: str, account_id: str) -> bool:
    """Check a hex signature against an account id; malformed input is False."""
    try:
        public_key = account_public_key(account_id)
        signature_bytes = bytes.fromhex(signature)
    except (TypeError, ValueError):
        return False
    return verify(message_digest(message), signature_bytes, public_key)
