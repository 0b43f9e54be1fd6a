"""Automatic certificate manager.

:class:`CertManager` answers "give me a certificate for this host name"
during TLS handshakes.  Certificates come from, in order, the in-memory
state, the persistent :class:`~simpletls.autocert.cache.DirCache`, and
finally the ACME CA via ACMEOW.  Nothing touches the network until the
first handshake that needs a certificate.

Renewal is lazy: a handshake that finds its certificate inside the
renewal window still gets the current certificate, and a background
thread fetches the replacement.
"""

from __future__ import annotations

import logging
import os
import threading
from datetime import timedelta
from typing import TYPE_CHECKING, Any, Callable, Mapping

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.x509.oid import NameOID

from simpletls.autocert.cache import CacheMiss, DirCache
from simpletls.autocert.handlers import load_challenge_handler
from simpletls.autocert.policy import HostPolicy, Prompt, accept_tos, normalize_host
from simpletls.certs import KeyPair, certificate_info, parse_pem_bundle, utc_now
from simpletls.errors import CertificateIssueError, HostNotAllowedError, SimpleTLSError

if TYPE_CHECKING:
    from datetime import datetime

log = logging.getLogger(__name__)

LETS_ENCRYPT_URL = "https://acme-v02.api.letsencrypt.org/directory"

# ACMEOW keeps its account key and state here, inside the cache directory.
# "+" cannot appear in a host name, so this never collides with an entry.
ACCOUNT_STORAGE_NAME = "acme_account+state"

_DEFAULT_RENEW_BEFORE = timedelta(days=30)
_MAX_RENEW_JITTER_SECONDS = 3600
_RSA_KEY_SIZE = 2048


class CertManager:
    """Obtain, cache and renew certificates for whitelisted host names.

    Safe for concurrent use from simultaneous handshakes: each host
    name has its own lock, and the stateful ACMEOW client is guarded
    by a separate lock.

    Parameters
    ----------
    cache:
        Persistent store for certificate bundles.
    host_policy:
        Callable that raises :class:`HostNotAllowedError` for names the
        manager must not request certificates for.
    prompt:
        Called with the ACME directory URL before the account is
        registered; returning ``False`` refuses the CA's terms.
    directory_url:
        ACME directory of the CA.
    email:
        Contact address for the ACME account.
    challenge_type, challenge_handler, challenge_handler_config:
        How ACMEOW proves control of the host name
        (see :mod:`simpletls.autocert.handlers`).
    renew_before:
        Renew once the certificate expires within this period.
    key_type:
        ``"ec"`` (P-256) or ``"rsa"`` (2048 bit) certificate keys.
    clock:
        Returns the current aware UTC time.
    rand:
        Entropy source, used for the renewal jitter.

    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        cache: DirCache,
        host_policy: HostPolicy,
        prompt: Prompt = accept_tos,
        directory_url: str = LETS_ENCRYPT_URL,
        email: str = "",
        challenge_type: str = "http-01",
        challenge_handler: str = "file_http",
        challenge_handler_config: Mapping[str, Any] | None = None,
        renew_before: timedelta = _DEFAULT_RENEW_BEFORE,
        key_type: str = "ec",
        clock: Callable[[], datetime] = utc_now,
        rand: Callable[[int], bytes] = os.urandom,
    ) -> None:
        if key_type not in ("ec", "rsa"):
            msg = f"unsupported key type {key_type!r}"
            raise ValueError(msg)
        self.cache = cache
        self.host_policy = host_policy
        self.prompt = prompt
        self.directory_url = directory_url
        self.email = email
        self.challenge_type = challenge_type
        self.challenge_handler = challenge_handler
        self.challenge_handler_config = dict(challenge_handler_config or {})
        self.renew_before = renew_before
        self.key_type = key_type
        self.clock = clock
        self.rand = rand

        self._state: dict[str, KeyPair] = {}
        self._host_locks: dict[str, threading.Lock] = {}
        self._renewing: set[str] = set()
        self._mu = threading.Lock()

        self._client: Any = None
        self._handler: Any = None
        self._client_lock = threading.Lock()

    # -- public API ---------------------------------------------------------

    def get_certificate(self, server_name: str | None) -> KeyPair:
        """Return a valid certificate for *server_name*.

        Raises
        ------
        HostNotAllowedError
            If the name is missing or rejected by the host policy.
        CertificateIssueError
            If no valid certificate is cached and issuance fails.

        """
        if not server_name:
            msg = "missing server name"
            raise HostNotAllowedError(msg)
        name = normalize_host(server_name)
        self.host_policy(name)

        with self._lock_for(name):
            pair = self._state.get(name) or self._load_cached(name)
            now = self.clock()
            if pair is not None and pair.leaf.is_current(now):
                self._state[name] = pair
                if self._needs_renewal(pair, now):
                    self._start_renewal(name)
                return pair

            pair = self._issue(name)
            self._state[name] = pair
            return pair

    def obtain(self, server_name: str, *, force: bool = False) -> KeyPair:
        """Fetch a certificate now, waiting for issuance or renewal.

        Unlike :meth:`get_certificate` this never hands back a
        certificate inside its renewal window; it renews synchronously
        instead.  ``force=True`` always requests a new certificate.
        """
        name = normalize_host(server_name)
        self.host_policy(name)

        with self._lock_for(name):
            if not force:
                pair = self._state.get(name) or self._load_cached(name)
                now = self.clock()
                if (
                    pair is not None
                    and pair.leaf.is_current(now)
                    and not self._needs_renewal(pair, now)
                ):
                    self._state[name] = pair
                    return pair
            pair = self._issue(name)
            self._state[name] = pair
            return pair

    # -- cache --------------------------------------------------------------

    def _lock_for(self, name: str) -> threading.Lock:
        with self._mu:
            lock = self._host_locks.get(name)
            if lock is None:
                lock = self._host_locks[name] = threading.Lock()
            return lock

    def _load_cached(self, name: str) -> KeyPair | None:
        try:
            data = self.cache.get(name)
        except CacheMiss:
            return None

        try:
            _, chain = parse_pem_bundle(data)
        except (ValueError, TypeError) as exc:
            log.warning("Ignoring unusable cache entry for %s: %s", name, exc)
            return None

        leaf = certificate_info(chain[0])
        if not leaf.covers(name):
            log.warning(
                "Ignoring cache entry for %s: certificate is for %s",
                name,
                ", ".join(leaf.names),
            )
            return None

        path = self.cache.path(name)
        log.debug("Loaded cached certificate for %s (expires %s)", name, leaf.not_after)
        return KeyPair(certfile=path, keyfile=path, chain=tuple(chain), leaf=leaf)

    # -- renewal ------------------------------------------------------------

    def _needs_renewal(self, pair: KeyPair, now: datetime) -> bool:
        jitter = int.from_bytes(self.rand(4), "big") % _MAX_RENEW_JITTER_SECONDS
        renew_at = pair.leaf.not_after - self.renew_before - timedelta(seconds=jitter)
        return now >= renew_at

    def _start_renewal(self, name: str) -> None:
        with self._mu:
            if name in self._renewing:
                return
            self._renewing.add(name)
        thread = threading.Thread(
            target=self._renew,
            args=(name,),
            name=f"autocert-renew-{name}",
            daemon=True,
        )
        thread.start()

    def _renew(self, name: str) -> None:
        try:
            log.info("Renewing certificate for %s", name, extra={"hostname": name})
            pair = self._issue(name)
            with self._lock_for(name):
                self._state[name] = pair
        except SimpleTLSError:
            # The current certificate stays in use; the next handshake
            # inside the renewal window tries again.
            log.warning("Certificate renewal for %s failed", name, exc_info=True)
        finally:
            with self._mu:
                self._renewing.discard(name)

    # -- issuance -----------------------------------------------------------

    def _new_key(self):
        if self.key_type == "rsa":
            return rsa.generate_private_key(public_exponent=65537, key_size=_RSA_KEY_SIZE)
        return ec.generate_private_key(ec.SECP256R1())

    @staticmethod
    def _build_csr(name: str, key) -> bytes:
        csr = (
            x509.CertificateSigningRequestBuilder()
            .subject_name(x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, name)]))
            .add_extension(
                x509.SubjectAlternativeName([x509.DNSName(name)]),
                critical=False,
            )
            .sign(key, hashes.SHA256())
        )
        return csr.public_bytes(serialization.Encoding.DER)

    def _issue(self, name: str) -> KeyPair:
        """Request a certificate for *name* and store it in the cache."""
        key = self._new_key()
        csr_der = self._build_csr(name, key)

        with self._client_lock:
            client = self._ensure_client()
            try:
                cert_pem = self._execute_order(client, name, csr_der)
            except CertificateIssueError:
                raise
            except Exception as exc:  # noqa: BLE001
                msg = f"ACME error for {name} ({type(exc).__name__}): {exc}"
                raise CertificateIssueError(msg, retryable=_is_retryable(exc)) from exc

        if isinstance(cert_pem, bytes):
            cert_pem = cert_pem.decode("ascii")
        key_pem = key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )
        bundle = cert_pem.rstrip("\n").encode("ascii") + b"\n" + key_pem

        try:
            _, chain = parse_pem_bundle(bundle)
        except (ValueError, TypeError) as exc:
            msg = f"CA returned an unusable certificate for {name}: {exc}"
            raise CertificateIssueError(msg) from exc

        try:
            self.cache.put(name, bundle)
        except OSError as exc:
            msg = f"Failed to store certificate for {name} in {self.cache.directory}: {exc}"
            raise CertificateIssueError(msg) from exc

        leaf = certificate_info(chain[0])
        log.info(
            "Obtained certificate for %s (serial %s, expires %s)",
            name,
            leaf.serial_number,
            leaf.not_after.isoformat(),
            extra={"hostname": name},
        )
        path = self.cache.path(name)
        return KeyPair(certfile=path, keyfile=path, chain=tuple(chain), leaf=leaf)

    def _ensure_client(self) -> Any:
        """Return the ACMEOW client, registering the account on first use.

        Must be called with ``_client_lock`` held.
        """
        if self._client is not None:
            return self._client

        if not self.prompt(self.directory_url):
            msg = f"Terms of service of {self.directory_url} were not accepted"
            raise CertificateIssueError(msg)

        storage = self.cache.directory / ACCOUNT_STORAGE_NAME
        try:
            self.cache.directory.mkdir(mode=0o700, parents=True, exist_ok=True)
            storage.mkdir(mode=0o700, exist_ok=True)
        except OSError as exc:
            msg = f"Failed to create ACME storage directory '{storage}': {exc}"
            raise CertificateIssueError(msg) from exc

        try:
            from acmeow import AcmeClient  # noqa: PLC0415
        except ImportError as exc:
            msg = "ACMEOW is not installed. Install with: pip install acmeow"
            raise CertificateIssueError(msg) from exc

        handler = load_challenge_handler(
            self.challenge_handler,
            self.challenge_handler_config,
        )

        try:
            client = AcmeClient(
                directory_url=self.directory_url,
                storage_path=str(storage),
            )
            client.create_account(email=self.email)
        except Exception as exc:  # noqa: BLE001
            msg = f"Failed to register ACME account with {self.directory_url}: {exc}"
            raise CertificateIssueError(msg, retryable=True) from exc

        log.info("Registered ACME account with %s", self.directory_url)
        self._client = client
        self._handler = handler
        return client

    def _execute_order(self, client: Any, name: str, csr_der: bytes) -> str | bytes:
        """Run the order, challenge and finalize steps for *name*."""
        log.info("Creating ACME order for %s", name, extra={"hostname": name})
        client.create_order([name])

        log.info("Completing %s challenge for %s", self.challenge_type, name)
        client.complete_challenges(self._handler, challenge_type=self.challenge_type)

        client.finalize_order(csr=csr_der)
        cert_pem, _ = client.get_certificate()
        return cert_pem

    def __repr__(self) -> str:
        return f"<CertManager directory_url={self.directory_url} cache={self.cache.directory}>"


def _is_retryable(exc: Exception) -> bool:
    """Guess whether an ACME error is transient."""
    exc_name = type(exc).__name__.lower()
    msg = str(exc).lower()
    patterns = ("timeout", "connection", "network", "server", "503", "429")
    return any(p in exc_name or p in msg for p in patterns)
