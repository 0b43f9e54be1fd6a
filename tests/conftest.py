"""Root conftest for the simpletls test suite."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import pytest

# ---------------------------------------------------------------------------
# Make ``src/`` importable without installing the package
# ---------------------------------------------------------------------------
_SRC = str(Path(__file__).resolve().parent.parent / "src")
if _SRC not in sys.path:
    sys.path.insert(0, _SRC)

from simpletls.config.settings import CertificateLocations  # noqa: E402
from tests.pki import cert_pem, key_pem, make_cert, make_key  # noqa: E402


@pytest.fixture()
def locations(tmp_path: Path) -> CertificateLocations:
    """Certificate locations inside the test's temporary directory."""
    keys = tmp_path / "keys"
    return CertificateLocations(
        key_file=keys / "key.pem",
        cert_file=keys / "cert.pem",
        cache_dir=keys / "letsencrypt.cache",
    )


@pytest.fixture()
def static_pair(locations: CertificateLocations) -> CertificateLocations:
    """Write a valid self-signed pair for localhost/example.com to *locations*."""
    key = make_key()
    cert = make_cert(key, ("localhost", "example.com"))
    locations.cert_file.parent.mkdir(parents=True, exist_ok=True)
    locations.cert_file.write_bytes(cert_pem(cert))
    locations.key_file.write_bytes(key_pem(key))
    return locations


@pytest.fixture(autouse=True)
def _reset_simpletls_logger():
    """Undo ``configure_logging`` so later tests see default propagation."""
    yield
    logger = logging.getLogger("simpletls")
    logger.handlers.clear()
    logger.setLevel(logging.NOTSET)
    logger.propagate = True
