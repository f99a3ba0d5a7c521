from __future__ import annotations

from cryptography.hazmat.primitives.asymmetric import ec

CURVE = ec.SECP256K1()


def generate_secret_key_hex() -> str:
    """Return a fresh 32-byte secp256k1 secret key as hex."""
    private_key = ec.generate_private_key(CURVE)
    return format(private_key.private_numbers().private_value, "064x")


def load_private_key_from_hex(secret_key_hex: str) -> ec.EllipticCurvePrivateKey:
    """Load a secp256k1 private key from its 32-byte hex form."""
    try:
        value = int(secret_key_hex, 16)
    except ValueError as e:
        raise ValueError(f"Secret key must be hex: {e}") from e
    return ec.derive_private_key(value, CURVE)


def xonly_pubkey_hex(private_key: ec.EllipticCurvePrivateKey) -> str:
    """Nostr public key: the 32-byte x coordinate, hex encoded."""
    return format(private_key.public_key().public_numbers().x, "064x")


def load_public_key_from_xonly_hex(pubkey_hex: str) -> ec.EllipticCurvePublicKey:
    """Lift an x-only public key to a curve point.

    Nostr keys drop the y parity; ECDH only depends on the shared x coordinate,
    so the even point is used.
    """
    raw = bytes.fromhex(pubkey_hex)
    if len(raw) != 32:
        raise ValueError("Public key must be 32 bytes")
    return ec.EllipticCurvePublicKey.from_encoded_point(CURVE, b"\x02" + raw)
