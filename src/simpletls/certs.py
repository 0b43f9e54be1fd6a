"""PEM certificate and key pair handling.

Loads the static certificate/key pair used in static mode, and parses
the PEM bundles (certificate chain followed by the private key) that
the certificate manager keeps in its cache.
"""

from __future__ import annotations

import hashlib
import logging
import re
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.types import PrivateKeyTypes
from cryptography.x509.oid import ExtensionOID, NameOID

from simpletls.errors import CertificateLoadError

log = logging.getLogger(__name__)

_PEM_BLOCK_RE = re.compile(
    rb"-----BEGIN ([A-Z0-9 ]+)-----"
    rb"[\s\S]*?"
    rb"-----END \1-----",
)


@dataclass(frozen=True)
class CertificateInfo:
    """Metadata of a leaf certificate.

    Attributes
    ----------
    names:
        DNS names from the SAN extension, or the subject CN when the
        certificate carries no SAN.
    serial_number:
        Hex-encoded serial number.
    not_before:
        Validity start (UTC).
    not_after:
        Validity end (UTC).
    fingerprint:
        SHA-256 hex digest of the DER encoding.

    """

    names: tuple[str, ...]
    serial_number: str
    not_before: datetime
    not_after: datetime
    fingerprint: str

    def covers(self, hostname: str) -> bool:
        """Return whether the certificate is valid for *hostname*."""
        hostname = hostname.lower()
        for name in self.names:
            name = name.lower()
            if name == hostname:
                return True
            if name.startswith("*.") and "." in hostname:
                if hostname.split(".", 1)[1] == name[2:]:
                    return True
        return False

    def is_current(self, now: datetime) -> bool:
        """Return whether *now* falls inside the validity period."""
        return self.not_before <= now < self.not_after


@dataclass(frozen=True)
class KeyPair:
    """A certificate chain and the files OpenSSL loads it from.

    ``certfile`` and ``keyfile`` may point to the same file when the
    chain and the key are bundled together.
    """

    certfile: Path
    keyfile: Path
    chain: tuple[x509.Certificate, ...]
    leaf: CertificateInfo


def certificate_info(cert: x509.Certificate) -> CertificateInfo:
    """Extract :class:`CertificateInfo` from a parsed certificate."""
    names: list[str] = []
    try:
        san = cert.extensions.get_extension_for_oid(
            ExtensionOID.SUBJECT_ALTERNATIVE_NAME,
        )
        names.extend(san.value.get_values_for_type(x509.DNSName))
    except x509.ExtensionNotFound:
        pass
    if not names:
        for attr in cert.subject.get_attributes_for_oid(NameOID.COMMON_NAME):
            names.append(str(attr.value))

    fingerprint = hashlib.sha256(
        cert.public_bytes(serialization.Encoding.DER),
    ).hexdigest()

    return CertificateInfo(
        names=tuple(names),
        serial_number=format(cert.serial_number, "x"),
        not_before=cert.not_valid_before_utc,
        not_after=cert.not_valid_after_utc,
        fingerprint=fingerprint,
    )


def _public_der(key) -> bytes:
    return key.public_bytes(
        serialization.Encoding.DER,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    )


def check_key_matches(
    key: PrivateKeyTypes,
    cert: x509.Certificate,
) -> None:
    """Raise :class:`ValueError` if *key* is not the key of *cert*."""
    if _public_der(key.public_key()) != _public_der(cert.public_key()):
        msg = "private key does not match certificate public key"
        raise ValueError(msg)


def parse_pem_bundle(data: bytes) -> tuple[PrivateKeyTypes, list[x509.Certificate]]:
    """Split a PEM bundle into its private key and certificate chain.

    The bundle must hold exactly one private key and at least one
    certificate; the first certificate is the leaf.

    Raises
    ------
    ValueError
        If the bundle is malformed or the key does not match the leaf.

    """
    keys = [
        m.group(0)
        for m in _PEM_BLOCK_RE.finditer(data)
        if m.group(1).endswith(b"PRIVATE KEY")
    ]
    if len(keys) != 1:
        msg = f"PEM bundle must hold exactly one private key (found {len(keys)})"
        raise ValueError(msg)

    chain = x509.load_pem_x509_certificates(data)
    key = serialization.load_pem_private_key(keys[0], password=None)
    check_key_matches(key, chain[0])
    return key, chain


def load_key_pair(cert_file: str | Path, key_file: str | Path) -> KeyPair:
    """Load and verify a PEM certificate chain and its private key.

    Raises
    ------
    CertificateLoadError
        If either file is missing or unreadable, is not valid PEM, the
        key is encrypted, or the key does not belong to the certificate.

    """
    cert_path = Path(cert_file)
    key_path = Path(key_file)
    try:
        chain = x509.load_pem_x509_certificates(cert_path.read_bytes())
        key = serialization.load_pem_private_key(
            key_path.read_bytes(),
            password=None,
        )
        check_key_matches(key, chain[0])
    except (OSError, ValueError, TypeError) as exc:
        msg = f"Failed to load TLS cert {cert_path} / key {key_path}: {exc}"
        raise CertificateLoadError(msg) from exc

    leaf = certificate_info(chain[0])
    log.info(
        "Loaded TLS certificate %s for %s (serial %s, expires %s)",
        cert_path,
        ", ".join(leaf.names) or "?",
        leaf.serial_number,
        leaf.not_after.isoformat(),
    )
    return KeyPair(
        certfile=cert_path,
        keyfile=key_path,
        chain=tuple(chain),
        leaf=leaf,
    )


def utc_now() -> datetime:
    """Return the current wall-clock time as an aware UTC datetime."""
    return datetime.now(UTC)
