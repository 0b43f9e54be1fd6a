"""Listener address parsing.

Addresses follow the usual ``host:port`` conventions: a bare host name,
``host:port``, or ``[ipv6-literal]:port``.  An address without a colon
is taken as a host name in its own right.
"""

from __future__ import annotations

from simpletls.errors import AddressParseError


def split_host_port(address: str) -> tuple[str, str]:
    """Split *address* into ``(host, port)``.

    The port is returned as a string and may be empty (``"host:"``).
    IPv6 literals must be enclosed in brackets.

    Raises
    ------
    AddressParseError
        If *address* has no port, has too many colons, or has
        unbalanced brackets.

    """
    colon = address.rfind(":")
    if colon < 0:
        msg = f"address {address!r}: missing port in address"
        raise AddressParseError(msg)

    if address.startswith("["):
        end = address.find("]")
        if end < 0:
            msg = f"address {address!r}: missing ']' in address"
            raise AddressParseError(msg)
        if end + 1 == len(address):
            msg = f"address {address!r}: missing port in address"
            raise AddressParseError(msg)
        if end + 1 != colon:
            # Either "[host]junk:port" or "[host]:port:more".
            if address[end + 1] == ":":
                msg = f"address {address!r}: too many colons in address"
            else:
                msg = f"address {address!r}: missing port in address"
            raise AddressParseError(msg)
        host = address[1:end]
        if "[" in host or "]" in address[end + 1 :]:
            msg = f"address {address!r}: unexpected bracket in address"
            raise AddressParseError(msg)
    else:
        host = address[:colon]
        if ":" in host:
            msg = f"address {address!r}: too many colons in address"
            raise AddressParseError(msg)
        if "[" in host or "]" in host:
            msg = f"address {address!r}: unexpected bracket in address"
            raise AddressParseError(msg)

    port = address[colon + 1 :]
    if "[" in port or "]" in port:
        msg = f"address {address!r}: unexpected bracket in address"
        raise AddressParseError(msg)
    return host, port


def hostname_from_address(address: str) -> str:
    """Return the host part of *address*.

    An address without a colon is returned unchanged.  Anything with a
    colon must split cleanly with :func:`split_host_port`; its parse
    error is chained onto the :class:`AddressParseError` raised here.
    """
    if not address:
        msg = "address must not be empty"
        raise AddressParseError(msg)
    if ":" not in address:
        return address
    try:
        host, _ = split_host_port(address)
    except AddressParseError as exc:
        msg = f"invalid listen address {address!r}: {exc.detail}"
        raise AddressParseError(msg) from exc
    return host
