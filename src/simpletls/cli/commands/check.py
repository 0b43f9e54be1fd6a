"""``simpletls check``: build the TLS configuration and describe it."""

from __future__ import annotations

import logging

log = logging.getLogger(__name__)


def run_check(settings, args) -> None:
    """Build the configuration for ``args.address`` and print a summary."""
    from simpletls.address import hostname_from_address
    from simpletls.builder import build_config

    config = build_config(
        args.address,
        settings.mode,
        locations=settings.locations,
        acme=settings.acme,
    )

    lines = [
        f"address:     {args.address}",
        f"hostname:    {hostname_from_address(args.address) or '*'}",
        f"mode:        {settings.mode.value}",
        f"alpn:        {', '.join(config.alpn_protocols)}",
    ]
    for pair in config.certificates:
        leaf = pair.leaf
        lines.extend(
            [
                f"certificate: {pair.certfile}",
                f"  names:     {', '.join(leaf.names)}",
                f"  serial:    {leaf.serial_number}",
                f"  expires:   {leaf.not_after.isoformat()}",
            ]
        )
    if config.get_certificate is not None:
        lines.append(f"cache:       {settings.locations.cache_dir}")
        lines.append(f"acme:        {settings.acme.directory_url}")
    print("\n".join(lines))  # noqa: T201
