"""Signer backed by a secp256k1 secret key held in process memory.

Event ids follow NIP-01 and signatures are BIP-340 Schnorr over the event id,
hex encoded (64 bytes), as relays expect.
"""

from __future__ import annotations

import os

from coincurve import PrivateKey, PublicKeyXOnly
from cryptography.hazmat.primitives.asymmetric import ec

from . import nip04
from .events import SignedEvent, UnsignedEvent, compute_event_id
from .key_utils import load_private_key_from_hex, xonly_pubkey_hex


class LocalNip04:
    """NIP-04 capability bound to a local private key."""

    def __init__(self, private_key: ec.EllipticCurvePrivateKey) -> None:
        self._private_key = private_key

    async def encrypt(self, peer_pubkey: str, plaintext: str) -> str:
        return nip04.encrypt(self._private_key, peer_pubkey, plaintext)

    async def decrypt(self, peer_pubkey: str, ciphertext: str) -> str:
        return nip04.decrypt(self._private_key, peer_pubkey, ciphertext)


class LocalKeySigner:
    def __init__(self, secret_key_hex: str, *, enable_nip04: bool = True) -> None:
        self._private_key = load_private_key_from_hex(secret_key_hex)
        self._schnorr_key = PrivateKey(
            self._private_key.private_numbers().private_value.to_bytes(32, "big")
        )
        self._pubkey = xonly_pubkey_hex(self._private_key)
        self._nip04 = LocalNip04(self._private_key) if enable_nip04 else None

    @property
    def pubkey(self) -> str:
        return self._pubkey

    @property
    def nip04(self) -> LocalNip04 | None:
        return self._nip04

    async def sign_event(self, event: UnsignedEvent) -> SignedEvent:
        if event.pubkey != self._pubkey:
            raise ValueError("Event pubkey does not match the signer")
        event_id = compute_event_id(event)
        signature = self._schnorr_key.sign_schnorr(
            bytes.fromhex(event_id), os.urandom(32)
        )
        return SignedEvent(**event.model_dump(), id=event_id, sig=signature.hex())


def verify_event(event: SignedEvent) -> bool:
    """Check the NIP-01 id and the BIP-340 signature of ``event``."""
    unsigned = UnsignedEvent(
        pubkey=event.pubkey,
        created_at=event.created_at,
        kind=event.kind,
        tags=event.tags,
        content=event.content,
    )
    if compute_event_id(unsigned) != event.id:
        return False
    try:
        public_key = PublicKeyXOnly(bytes.fromhex(event.pubkey))
        return public_key.verify(bytes.fromhex(event.sig), bytes.fromhex(event.id))
    except ValueError:
        return False
