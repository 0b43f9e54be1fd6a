"""Automatic certificate management against an ACME CA.

Public API::

    from simpletls.autocert import CertManager, DirCache, host_whitelist

    manager = CertManager(
        cache=DirCache("/var/lib/simpletls/cache"),
        host_policy=host_whitelist("example.com"),
    )
    pair = manager.get_certificate("example.com")
"""

from simpletls.autocert.cache import CacheMiss, DirCache
from simpletls.autocert.handlers import ChallengeHandlerFactory, load_challenge_handler
from simpletls.autocert.manager import LETS_ENCRYPT_URL, CertManager
from simpletls.autocert.policy import accept_tos, host_whitelist, normalize_host

__all__ = [
    "LETS_ENCRYPT_URL",
    "CacheMiss",
    "CertManager",
    "ChallengeHandlerFactory",
    "DirCache",
    "accept_tos",
    "host_whitelist",
    "load_challenge_handler",
    "normalize_host",
]
