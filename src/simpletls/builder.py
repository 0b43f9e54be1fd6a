"""TLS configuration and listener construction.

:func:`build_config` turns a listen address and an
:class:`~simpletls.config.settings.AcquisitionMode` into a
:class:`TLSConfig`; :func:`build_listener` additionally binds a TCP
socket and wraps it with that configuration::

    from simpletls import AcquisitionMode, build_listener

    with build_listener("example.com:443", AcquisitionMode.AUTOMATED) as ln:
        conn, peer = ln.accept()

Both calls are single-attempt and synchronous.  In automated mode no
network traffic happens here; the certificate manager talks to the CA
during the first handshakes.
"""

from __future__ import annotations

import logging
import os
import socket
import ssl
from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING, Callable

from simpletls.address import hostname_from_address, split_host_port
from simpletls.autocert import CertManager, DirCache, accept_tos, host_whitelist
from simpletls.certs import KeyPair, load_key_pair, utc_now
from simpletls.config.settings import (
    AcmeSettings,
    AcquisitionMode,
    CertificateLocations,
    default_locations,
)
from simpletls.errors import (
    AddressParseError,
    HostNotAllowedError,
    ListenError,
    SimpleTLSError,
    TLSSetupError,
)

if TYPE_CHECKING:
    from datetime import datetime

log = logging.getLogger(__name__)

HTTP11 = "http/1.1"


def _refuse_tos(directory_url: str) -> bool:  # noqa: ARG001
    return False


@dataclass(frozen=True)
class TLSConfig:
    """Server-side TLS configuration.

    Exactly one of ``certificates`` (static mode) and
    ``get_certificate`` (automated mode) is set.  Call
    :meth:`server_context` to obtain an :class:`ssl.SSLContext`.

    Attributes
    ----------
    rand:
        Cryptographically secure randomness source.
    clock:
        Returns the current aware UTC time.
    alpn_protocols:
        Application protocols offered during ALPN (``http/1.1`` only).
    certificates:
        Static key pairs, in preference order.
    get_certificate:
        Called with the SNI server name on every handshake.

    """

    rand: Callable[[int], bytes]
    clock: Callable[[], datetime]
    alpn_protocols: tuple[str, ...]
    certificates: tuple[KeyPair, ...] = ()
    get_certificate: Callable[[str | None], KeyPair] | None = None

    def base_context(self) -> ssl.SSLContext:
        """Return an SSLContext with protocol settings but no certificate."""
        ctx = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
        ctx.minimum_version = ssl.TLSVersion.TLSv1_2
        ctx.set_alpn_protocols(list(self.alpn_protocols))
        return ctx

    def server_context(self) -> ssl.SSLContext:
        """Render the configuration as a fresh :class:`ssl.SSLContext`."""
        ctx = self.base_context()
        for pair in self.certificates:
            ctx.load_cert_chain(certfile=pair.certfile, keyfile=pair.keyfile)
        if self.get_certificate is not None:
            ctx.sni_callback = _SNIResolver(self)
        return ctx


class _SNIResolver:
    """SNI callback switching each connection to its host's certificate.

    The context of the most recent certificate is kept, so a handshake
    only pays for ``load_cert_chain`` after the certificate changed.
    """

    def __init__(self, config: TLSConfig) -> None:
        self._config = config
        self._current: tuple[str, ssl.SSLContext] | None = None

    def _context_for(self, pair: KeyPair) -> ssl.SSLContext:
        current = self._current
        if current is not None and current[0] == pair.leaf.fingerprint:
            return current[1]
        ctx = self._config.base_context()
        ctx.load_cert_chain(certfile=pair.certfile, keyfile=pair.keyfile)
        self._current = (pair.leaf.fingerprint, ctx)
        return ctx

    def __call__(
        self,
        sock: ssl.SSLObject | ssl.SSLSocket,
        server_name: str | None,
        ctx: ssl.SSLContext,  # noqa: ARG002
    ) -> int | None:
        try:
            pair = self._config.get_certificate(server_name)
            sock.context = self._context_for(pair)
        except HostNotAllowedError as exc:
            log.warning("TLS handshake rejected: %s", exc.detail)
            return ssl.ALERT_DESCRIPTION_UNRECOGNIZED_NAME
        except (SimpleTLSError, ssl.SSLError, OSError):
            log.exception("No certificate available for %r", server_name)
            return ssl.ALERT_DESCRIPTION_INTERNAL_ERROR
        return None


def new_cert_manager(
    hostname: str,
    *,
    locations: CertificateLocations,
    acme: AcmeSettings | None = None,
    clock: Callable[[], datetime] = utc_now,
    rand: Callable[[int], bytes] = os.urandom,
) -> CertManager:
    """Create a certificate manager restricted to *hostname*."""
    acme = acme or AcmeSettings()
    return CertManager(
        cache=DirCache(locations.cache_dir),
        host_policy=host_whitelist(hostname),
        prompt=accept_tos if acme.accept_tos else _refuse_tos,
        directory_url=acme.directory_url,
        email=acme.email,
        challenge_type=acme.challenge_type,
        challenge_handler=acme.challenge_handler,
        challenge_handler_config=acme.challenge_handler_config,
        renew_before=timedelta(days=acme.renew_before_days),
        key_type=acme.key_type,
        clock=clock,
        rand=rand,
    )


def build_config(  # noqa: PLR0913
    address: str,
    mode: AcquisitionMode,
    *,
    locations: CertificateLocations | None = None,
    acme: AcmeSettings | None = None,
    clock: Callable[[], datetime] | None = None,
    rand: Callable[[int], bytes] | None = None,
) -> TLSConfig:
    """Build the TLS configuration for a listener on *address*.

    Parameters
    ----------
    address:
        ``host``, ``host:port`` or ``[host]:port``.
    mode:
        :attr:`AcquisitionMode.AUTOMATED` whitelists the host name with
        an ACME certificate manager caching in ``locations.cache_dir``;
        :attr:`AcquisitionMode.STATIC` loads ``locations.cert_file`` and
        ``locations.key_file``.
    locations:
        Certificate paths; defaults to :func:`default_locations`.
    acme:
        Automated-mode settings; defaults to :class:`AcmeSettings`.
    clock, rand:
        Time and randomness sources; default to the UTC wall clock and
        :func:`os.urandom`.

    Raises
    ------
    AddressParseError
        If *address* is malformed, or in automated mode has an empty
        host or one that is not a valid host name.
    CertificateLoadError
        If the static key pair cannot be loaded.
    HomeDirectoryError
        If *locations* is omitted and ``$HOME`` is unset.
    ValueError
        If ``acme.key_type`` is not supported.

    """
    hostname = hostname_from_address(address)
    locations = locations or default_locations()
    clock = clock or utc_now
    rand = rand or os.urandom

    if mode is AcquisitionMode.AUTOMATED:
        if not hostname:
            msg = f"address {address!r} has no host name to request a certificate for"
            raise AddressParseError(msg)
        try:
            manager = new_cert_manager(
                hostname,
                locations=locations,
                acme=acme,
                clock=clock,
                rand=rand,
            )
        except HostNotAllowedError as exc:
            msg = f"invalid host name in address {address!r}: {exc.detail}"
            raise AddressParseError(msg) from exc
        log.info(
            "TLS for %s: automated certificates from %s, cache %s",
            hostname,
            manager.directory_url,
            locations.cache_dir,
        )
        return TLSConfig(
            rand=rand,
            clock=clock,
            alpn_protocols=(HTTP11,),
            get_certificate=manager.get_certificate,
        )

    pair = load_key_pair(locations.cert_file, locations.key_file)
    log.info("TLS for %s: static certificate %s", hostname or "*", locations.cert_file)
    return TLSConfig(
        rand=rand,
        clock=clock,
        alpn_protocols=(HTTP11,),
        certificates=(pair,),
    )


def _bind_address(address: str) -> tuple[str, int]:
    try:
        host, port = split_host_port(address)
    except AddressParseError as exc:
        msg = f"could not listen on {address!r}: {exc.detail}"
        raise ListenError(msg) from exc
    if not port:
        msg = f"could not listen on {address!r}: missing port"
        raise ListenError(msg)
    try:
        port_number = int(port) if port.isdigit() else socket.getservbyname(port, "tcp")
    except OSError as exc:
        msg = f"could not listen on {address!r}: unknown port {port!r}"
        raise ListenError(msg) from exc
    if not 0 <= port_number <= 65535:  # noqa: PLR2004
        msg = f"could not listen on {address!r}: port out of range"
        raise ListenError(msg)
    return host, port_number


class Listener:
    """A bound TCP socket whose accepted connections speak TLS.

    The caller owns the listener and must :meth:`close` it (or use it
    as a context manager).

    :meth:`accept` returns as soon as the TCP connection is accepted.
    The TLS handshake runs on the connection's first read or write, or
    on an explicit ``do_handshake()``, so a slow or broken client only
    ever fails its own connection.
    """

    def __init__(self, sock: ssl.SSLSocket, config: TLSConfig, address: str) -> None:
        self.socket = sock
        self.config = config
        self.address = address

    def accept(self) -> tuple[ssl.SSLSocket, tuple]:
        """Accept a connection; its TLS handshake has not run yet."""
        return self.socket.accept()

    def getsockname(self) -> tuple:
        """Return the bound local address."""
        return self.socket.getsockname()

    def fileno(self) -> int:
        return self.socket.fileno()

    def close(self) -> None:
        self.socket.close()

    def __enter__(self) -> Listener:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"<Listener {self.address}>"


def build_listener(  # noqa: PLR0913
    address: str,
    mode: AcquisitionMode,
    *,
    locations: CertificateLocations | None = None,
    acme: AcmeSettings | None = None,
    clock: Callable[[], datetime] | None = None,
    rand: Callable[[int], bytes] | None = None,
) -> Listener:
    """Build the TLS configuration and a TCP listener on *address*.

    Raises
    ------
    TLSSetupError
        Wrapping any failure of :func:`build_config`, including a
        missing ``$HOME`` and an unsupported key type.
    ListenError
        If the socket cannot be created or bound (address in use,
        permission denied, bad address or port).

    """
    try:
        config = build_config(
            address,
            mode,
            locations=locations,
            acme=acme,
            clock=clock,
            rand=rand,
        )
    except (SimpleTLSError, ValueError) as exc:
        detail = exc.detail if isinstance(exc, SimpleTLSError) else str(exc)
        msg = f"could not configure TLS connection: {detail}"
        raise TLSSetupError(msg) from exc

    host, port = _bind_address(address)
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    try:
        raw = socket.create_server((host, port), family=family)
    except OSError as exc:
        msg = f"could not listen on {address!r}: {exc}"
        raise ListenError(msg) from exc

    try:
        tls_sock = config.server_context().wrap_socket(
            raw,
            server_side=True,
            do_handshake_on_connect=False,
        )
    except (ssl.SSLError, OSError) as exc:
        raw.close()
        msg = f"could not configure TLS connection: {exc}"
        raise TLSSetupError(msg) from exc

    log.info("Listening for TLS on %s", tls_sock.getsockname())
    return Listener(tls_sock, config, address)
