"""Exception hierarchy for simpletls.

Every failure raised by the builder, the certificate loader and the
certificate manager derives from :class:`SimpleTLSError`.  Wrapping
errors always chain the underlying cause (``raise ... from exc``) so
callers can inspect ``__cause__`` for the original failure.
"""

from __future__ import annotations


class SimpleTLSError(Exception):
    """Base class for all simpletls errors.

    Parameters
    ----------
    detail:
        Human-readable description of the failure.

    """

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(detail)


class AddressParseError(SimpleTLSError):
    """The address is not a valid ``host``, ``host:port`` or ``[host]:port``."""


class CertificateLoadError(SimpleTLSError):
    """A static certificate/key pair is missing, malformed or mismatched."""


class TLSSetupError(SimpleTLSError):
    """Building the TLS configuration for a listener failed."""


class ListenError(SimpleTLSError):
    """The listening socket could not be created or bound."""


class HostNotAllowedError(SimpleTLSError):
    """The certificate manager refused to serve a host name."""


class CertificateIssueError(SimpleTLSError):
    """Obtaining a certificate from the ACME CA failed.

    Parameters
    ----------
    detail:
        Human-readable description of the failure.
    retryable:
        Whether the failure looks transient (network, rate limit, 5xx).

    """

    def __init__(self, detail: str, *, retryable: bool = False) -> None:
        self.retryable = retryable
        super().__init__(detail)
