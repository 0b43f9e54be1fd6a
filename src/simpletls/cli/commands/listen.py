"""``simpletls listen``: bind the TLS listener to check the address."""

from __future__ import annotations

import logging

log = logging.getLogger(__name__)


def run_listen(settings, args) -> None:
    """Bind ``args.address``, report the local address and close again."""
    from simpletls.builder import build_listener

    with build_listener(
        args.address,
        settings.mode,
        locations=settings.locations,
        acme=settings.acme,
    ) as listener:
        host, port = listener.getsockname()[:2]
        print(f"listening on {host}:{port} ({settings.mode.value})")  # noqa: T201
