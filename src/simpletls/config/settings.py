"""Typed, frozen dataclasses for every configuration section.

This module is the **single source of truth** for default values.
JSON Schema defaults exist only for documentation; these builders are
what the application actually reads.

Access pattern::

    from simpletls.config import load_settings

    settings = load_settings("simpletls.yaml")
    settings.locations.cert_file     # typed, IDE-autocompleted
"""

from __future__ import annotations

import enum
import os
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping

from simpletls.autocert.manager import LETS_ENCRYPT_URL
from simpletls.errors import SimpleTLSError

# ---------------------------------------------------------------------------
# Mode
# ---------------------------------------------------------------------------


class AcquisitionMode(enum.Enum):
    """Where the listener's certificate comes from."""

    AUTOMATED = "automated"
    STATIC = "static"

    @classmethod
    def from_flag(cls, autocert: bool) -> AcquisitionMode:  # noqa: FBT001
        """Map the ``--autocert`` command-line switch onto a mode."""
        return cls.AUTOMATED if autocert else cls.STATIC


# ---------------------------------------------------------------------------
# Certificate locations
# ---------------------------------------------------------------------------


class HomeDirectoryError(SimpleTLSError, ValueError):
    """``$HOME`` is unset or empty, so no default paths can be derived."""


@dataclass(frozen=True)
class CertificateLocations:
    """Files used by the two acquisition modes.

    ``key_file`` and ``cert_file`` are read in static mode;
    ``cache_dir`` holds the automated mode's certificates and ACME
    account state.
    """

    key_file: Path
    cert_file: Path
    cache_dir: Path


def default_locations(environ: Mapping[str, str] | None = None) -> CertificateLocations:
    """Compute the default locations below ``$HOME/keys``.

    Raises
    ------
    HomeDirectoryError
        If ``HOME`` is unset or empty.

    """
    env = os.environ if environ is None else environ
    home = env.get("HOME", "")
    if not home:
        msg = "HOME is not set; configure locations.key_file, cert_file and cache_dir explicitly"
        raise HomeDirectoryError(msg)
    keys = Path(home) / "keys"
    return CertificateLocations(
        key_file=keys / "key.pem",
        cert_file=keys / "cert.pem",
        cache_dir=keys / "letsencrypt.cache",
    )


def _build_locations(
    data: dict | None,
    environ: Mapping[str, str] | None = None,
) -> CertificateLocations:
    d = data or {}
    names = ("key_file", "cert_file", "cache_dir")
    defaults = None if all(d.get(k) for k in names) else default_locations(environ)

    def pick(name: str) -> Path:
        if d.get(name):
            return Path(d[name]).expanduser()
        return getattr(defaults, name)

    return CertificateLocations(**{name: pick(name) for name in names})


# ---------------------------------------------------------------------------
# ACME
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AcmeSettings:
    """Automated-mode settings for the ACME certificate manager."""

    directory_url: str = LETS_ENCRYPT_URL
    email: str = ""
    accept_tos: bool = True
    challenge_type: str = "http-01"
    challenge_handler: str = "file_http"
    challenge_handler_config: Mapping[str, Any] = field(
        default_factory=lambda: MappingProxyType({}),
    )
    renew_before_days: int = 30
    key_type: str = "ec"


def _build_acme(data: dict | None) -> AcmeSettings:
    d = data or {}
    return AcmeSettings(
        directory_url=d.get("directory_url", LETS_ENCRYPT_URL),
        email=d.get("email", ""),
        accept_tos=d.get("accept_tos", True),
        challenge_type=d.get("challenge_type", "http-01"),
        challenge_handler=d.get("challenge_handler", "file_http"),
        challenge_handler_config=MappingProxyType(
            dict(d.get("challenge_handler_config") or {}),
        ),
        renew_before_days=d.get("renew_before_days", 30),
        key_type=d.get("key_type", "ec"),
    )


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LoggingSettings:
    """Application logging configuration (level and format)."""

    level: str = "INFO"
    format: str = "text"


def _build_logging(data: dict | None) -> LoggingSettings:
    d = data or {}
    return LoggingSettings(
        level=d.get("level", "INFO"),
        format=d.get("format", "text"),
    )


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SimpleTLSSettings:
    """Root of the typed settings tree."""

    mode: AcquisitionMode
    locations: CertificateLocations
    acme: AcmeSettings
    logging: LoggingSettings


def build_settings(
    data: dict | None,
    environ: Mapping[str, str] | None = None,
) -> SimpleTLSSettings:
    """Build the settings tree from a raw (validated) config dict."""
    d = data or {}
    return SimpleTLSSettings(
        mode=AcquisitionMode(d.get("mode", AcquisitionMode.AUTOMATED.value)),
        locations=_build_locations(d.get("locations"), environ),
        acme=_build_acme(d.get("acme")),
        logging=_build_logging(d.get("logging")),
    )
