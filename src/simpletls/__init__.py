"""simpletls: TLS listeners with Let's Encrypt or static certificates.

Public API::

    from simpletls import AcquisitionMode, build_config, build_listener

    cfg = build_config("example.com:443", AcquisitionMode.AUTOMATED)
    ctx = cfg.server_context()

    with build_listener("example.com:443", AcquisitionMode.STATIC) as ln:
        conn, peer = ln.accept()
"""

from simpletls.builder import Listener, TLSConfig, build_config, build_listener
from simpletls.certs import CertificateInfo, KeyPair
from simpletls.config.settings import (
    AcmeSettings,
    AcquisitionMode,
    CertificateLocations,
    default_locations,
)
from simpletls.errors import (
    AddressParseError,
    CertificateIssueError,
    CertificateLoadError,
    HostNotAllowedError,
    ListenError,
    SimpleTLSError,
    TLSSetupError,
)

__version__ = "1.0.0"

__all__ = [
    "AcmeSettings",
    "AcquisitionMode",
    "AddressParseError",
    "CertificateInfo",
    "CertificateIssueError",
    "CertificateLoadError",
    "CertificateLocations",
    "HostNotAllowedError",
    "KeyPair",
    "ListenError",
    "Listener",
    "SimpleTLSError",
    "TLSConfig",
    "TLSSetupError",
    "__version__",
    "build_config",
    "build_listener",
    "default_locations",
]
