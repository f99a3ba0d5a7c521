"""Shared domain utilities.

This package is domain-accessible and should not depend on application code.
"""

from .protocols import (
    EventNetworkProtocol,
    InAppWalletProtocol,
    Nip04Capability,
    QrRendererProtocol,
    RemoteWalletProtocol,
    SignerProtocol,
)

__all__ = [
    "EventNetworkProtocol",
    "InAppWalletProtocol",
    "Nip04Capability",
    "QrRendererProtocol",
    "RemoteWalletProtocol",
    "SignerProtocol",
]
