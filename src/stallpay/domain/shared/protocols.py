"""Protocol interfaces for the external collaborators of the checkout engine.

The engine only talks to the event network, the buyer's signer and the
wallets through these contracts, so tests and alternative transports can be
plugged in without touching the use cases.
"""

from __future__ import annotations

from typing import Any, Optional, Protocol, TYPE_CHECKING

if TYPE_CHECKING:
    from ...crypto.events import EventFilter, SignedEvent, UnsignedEvent
    from ..checkout.entities import WalletPayment


class Nip04Capability(Protocol):
    """NIP-04 encryption offered by a signer."""

    async def encrypt(self, peer_pubkey: str, plaintext: str) -> str:
        """Encrypt ``plaintext`` to ``peer_pubkey``."""
        ...

    async def decrypt(self, peer_pubkey: str, ciphertext: str) -> str:
        """Decrypt ``ciphertext`` received from ``peer_pubkey``.

        Raises:
            ValueError: If the content cannot be decrypted.
        """
        ...


class SignerProtocol(Protocol):
    """The buyer's signing identity.

    ``nip04`` is ``None`` when the identity cannot encrypt direct messages;
    callers query it instead of inspecting the signer's type.
    """

    @property
    def pubkey(self) -> str:
        """Hex x-only public key of the identity."""
        ...

    @property
    def nip04(self) -> Optional[Nip04Capability]:
        ...

    async def sign_event(self, event: "UnsignedEvent") -> "SignedEvent":
        """Return ``event`` with its id and signature."""
        ...


class EventNetworkProtocol(Protocol):
    """Request/response access to the relay network."""

    async def query(
        self, filters: list["EventFilter"], *, timeout: float
    ) -> list["SignedEvent"]:
        """Return stored events matching any of ``filters``.

        Raises:
            QueryTransientFailure: If no relay could answer.
        """
        ...

    async def publish(self, event: "SignedEvent", *, timeout: float) -> None:
        """Publish ``event`` and wait for at least one relay to accept it.

        Raises:
            PublishTimeout: If no relay acknowledged within ``timeout``.
        """
        ...


class InAppWalletProtocol(Protocol):
    """A wallet agent running next to the buyer (WebLN-style)."""

    async def enable(self) -> None:
        ...

    async def send_payment(self, bolt11: str) -> dict[str, Any]:
        """Pay ``bolt11`` and return at least ``{"preimage": ...}``."""
        ...


class RemoteWalletProtocol(Protocol):
    """A remote-controlled wallet reached over an established connection."""

    async def send_payment(self, connection: Any, bolt11: str) -> "WalletPayment":
        """Pay ``bolt11`` through ``connection``.

        Raises:
            SettlementFailure: If the wallet reports an error or never answers.
        """
        ...


class QrRendererProtocol(Protocol):
    async def render(self, payload: str) -> str:
        """Render ``payload`` as a QR image and return it as a data URL."""
        ...
