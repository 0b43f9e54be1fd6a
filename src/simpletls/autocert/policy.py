"""Host policies and terms-of-service prompts for the certificate manager."""

from __future__ import annotations

from typing import Callable

from simpletls.errors import HostNotAllowedError

HostPolicy = Callable[[str], None]
Prompt = Callable[[str], bool]


def normalize_host(name: str) -> str:
    """Lower-case *name*, drop a trailing dot and IDNA-encode it.

    Raises
    ------
    HostNotAllowedError
        If *name* cannot be IDNA-encoded.

    """
    name = name.strip().rstrip(".").lower()
    try:
        return name.encode("idna").decode("ascii")
    except UnicodeError as exc:
        msg = f"invalid host name {name!r}: {exc}"
        raise HostNotAllowedError(msg) from exc


def host_whitelist(*hosts: str) -> HostPolicy:
    """Return a policy that only allows the given host names.

    Names are compared after :func:`normalize_host`, so ``Example.COM``
    and ``example.com.`` match ``example.com``.  Wildcards are not
    supported.
    """
    allowed = frozenset(normalize_host(h) for h in hosts if h)

    def policy(host: str) -> None:
        if normalize_host(host) not in allowed:
            msg = f"host {host!r} not configured in host whitelist"
            raise HostNotAllowedError(msg)

    return policy


def accept_tos(directory_url: str) -> bool:  # noqa: ARG001
    """Prompt that always agrees to the CA's terms of service."""
    return True
