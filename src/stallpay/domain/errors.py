"""Domain-specific exceptions."""

from __future__ import annotations


class CheckoutError(Exception):
    """Base class for every failure raised by the checkout engine."""


class AuthenticationRequired(CheckoutError):
    """Raised when no signing identity is active."""


class UnsupportedEncryption(CheckoutError):
    """Raised when the active identity cannot perform NIP-04 encryption."""


class MalformedAddress(CheckoutError):
    """Raised when a Lightning address is not of the form user@domain."""


class ConversionError(CheckoutError):
    """Raised when a fiat amount cannot be converted to satoshis."""


class LnurlError(CheckoutError):
    """Raised when an LNURL-pay endpoint cannot be used."""


class AmountOutOfRange(CheckoutError):
    """Raised when an amount falls outside the LNURL-pay sendable bounds."""


class InvoiceError(CheckoutError):
    """Raised when the LNURL-pay callback does not return an invoice."""


class PublishTimeout(CheckoutError):
    """Raised when the event network does not acknowledge a publish in time."""


class QueryTransientFailure(CheckoutError):
    """Raised by the event network when a query round fails.

    Poll loops recover from it locally; it never reaches the buyer.
    """


class ListenerTimeout(CheckoutError):
    """Raised when a merchant reply does not arrive before the deadline."""


class SettlementFailure(CheckoutError):
    """Raised when a payment channel fails to settle an invoice."""


class CheckoutCancelled(CheckoutError):
    """Raised inside a poll loop once its checkout session has been closed."""


class PaymentInProgress(CheckoutError):
    """Raised when a payment is attempted while another one is in flight."""


class PaymentNotAvailable(CheckoutError):
    """Raised when the merchant offers no way to obtain an invoice."""


class InvalidCheckoutState(CheckoutError):
    """Raised when a session operation is not allowed in the current step."""
