"""``simpletls obtain``: fetch or renew the certificate ahead of time."""

from __future__ import annotations

import logging
import sys

log = logging.getLogger(__name__)


def run_obtain(settings, args) -> None:
    """Warm the certificate cache for the host of ``args.address``."""
    from simpletls.address import hostname_from_address
    from simpletls.builder import new_cert_manager
    from simpletls.config import AcquisitionMode
    from simpletls.errors import AddressParseError

    if settings.mode is not AcquisitionMode.AUTOMATED:
        print(  # noqa: T201
            "simpletls: error: obtain needs automated mode (drop --no-autocert)",
            file=sys.stderr,
        )
        sys.exit(1)

    hostname = hostname_from_address(args.address)
    if not hostname:
        msg = f"address {args.address!r} has no host name to request a certificate for"
        raise AddressParseError(msg)

    manager = new_cert_manager(
        hostname,
        locations=settings.locations,
        acme=settings.acme,
    )
    pair = manager.obtain(hostname, force=args.force)
    log.info("Certificate for %s ready in %s", hostname, pair.certfile)
    print(  # noqa: T201
        f"{hostname}: serial {pair.leaf.serial_number}, "
        f"expires {pair.leaf.not_after.isoformat()}, stored in {pair.certfile}",
    )
