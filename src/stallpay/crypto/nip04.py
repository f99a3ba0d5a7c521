"""NIP-04 encrypted direct messages.

The shared key is the raw x coordinate of the secp256k1 ECDH point; content is
AES-256-CBC with PKCS7 padding, serialized as ``base64(ciphertext)?iv=base64(iv)``.
"""

from __future__ import annotations

import base64
import binascii
import os

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from .key_utils import load_public_key_from_xonly_hex


def shared_secret(private_key: ec.EllipticCurvePrivateKey, peer_pubkey_hex: str) -> bytes:
    peer_public_key = load_public_key_from_xonly_hex(peer_pubkey_hex)
    return private_key.exchange(ec.ECDH(), peer_public_key)


def encrypt(
    private_key: ec.EllipticCurvePrivateKey, peer_pubkey_hex: str, plaintext: str
) -> str:
    key = shared_secret(private_key, peer_pubkey_hex)
    iv = os.urandom(16)
    padder = padding.PKCS7(algorithms.AES.block_size).padder()
    padded = padder.update(plaintext.encode("utf-8")) + padder.finalize()
    encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
    ciphertext = encryptor.update(padded) + encryptor.finalize()
    return (
        f"{base64.b64encode(ciphertext).decode('ascii')}"
        f"?iv={base64.b64encode(iv).decode('ascii')}"
    )


def decrypt(
    private_key: ec.EllipticCurvePrivateKey, peer_pubkey_hex: str, content: str
) -> str:
    """Decrypt NIP-04 ``content``. Raises ValueError on any malformed input."""
    ciphertext_b64, sep, iv_b64 = content.partition("?iv=")
    if not sep:
        raise ValueError("NIP-04 content is missing the iv")
    try:
        ciphertext = base64.b64decode(ciphertext_b64, validate=True)
        iv = base64.b64decode(iv_b64, validate=True)
    except binascii.Error as e:
        raise ValueError(f"NIP-04 content is not valid base64: {e}") from e
    if len(iv) != 16 or not ciphertext or len(ciphertext) % 16:
        raise ValueError("NIP-04 content has an invalid iv or block size")

    key = shared_secret(private_key, peer_pubkey_hex)
    decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
    padded = decryptor.update(ciphertext) + decryptor.finalize()
    unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
    plaintext = unpadder.update(padded) + unpadder.finalize()
    return plaintext.decode("utf-8")
