"""simpletls command-line entry point.

Usage::

    simpletls check example.com:443
    simpletls --no-autocert check example.com:443
    simpletls -c simpletls.yaml obtain example.com
    simpletls -c simpletls.yaml listen :8443
    simpletls -c simpletls.yaml --validate-only
    python -m simpletls check example.com:443
"""

from __future__ import annotations

import argparse
import dataclasses
import logging
import sys
from pathlib import Path

log = logging.getLogger(__name__)


def _get_version() -> str:
    from simpletls import __version__

    return __version__


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="simpletls",
        description="Set up TLS listeners with Let's Encrypt or static certificates.",
    )
    parser.add_argument(
        "-c",
        "--config",
        metavar="PATH",
        default=None,
        help="Path to a configuration file (YAML or JSON). Optional.",
    )
    parser.add_argument(
        "--autocert",
        action=argparse.BooleanOptionalAction,
        default=None,
        help=(
            "Get the https certificate from Let's Encrypt, cached in "
            "locations.cache_dir (default). --no-autocert loads "
            "locations.cert_file and locations.key_file instead."
        ),
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        default=False,
        help="Enable debug output (full tracebacks, verbose logging).",
    )
    parser.add_argument(
        "--validate-only",
        action="store_true",
        default=False,
        help="Validate the configuration and exit.",
    )
    parser.add_argument(
        "-v",
        "--version",
        action="version",
        version=f"%(prog)s {_get_version()}",
    )

    subparsers = parser.add_subparsers(dest="command")

    check = subparsers.add_parser("check", help="Build the TLS configuration and describe it")
    check.add_argument("address", help="host, host:port or [host]:port")

    obtain = subparsers.add_parser(
        "obtain",
        help="Fetch or renew the certificate now (automated mode)",
    )
    obtain.add_argument("address", help="host, host:port or [host]:port")
    obtain.add_argument(
        "--force",
        action="store_true",
        default=False,
        help="Request a new certificate even if the cached one is still fresh.",
    )

    listen = subparsers.add_parser("listen", help="Bind the TLS listener and report it")
    listen.add_argument("address", help="host:port or [host]:port to bind")

    return parser


def _print_error(message: str) -> None:
    """Print a user-facing error to stderr."""
    print(f"simpletls: error: {message}", file=sys.stderr)  # noqa: T201


def main(argv: list[str] | None = None) -> None:
    """CLI entry point.  Parses arguments, loads config, runs the command."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.config is not None and not Path(args.config).is_file():
        _print_error(f"configuration file not found: {args.config}")
        sys.exit(1)

    # -- bootstrap logging early (basic stderr until config is loaded) ---
    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.WARNING,
        format="%(levelname)s: %(message)s",
        stream=sys.stderr,
    )

    from simpletls.config import (
        AcquisitionMode,
        ConfigValidationError,
        check_settings,
        load_settings,
    )

    try:
        settings = load_settings(args.config)
    except ConfigValidationError as exc:
        _print_error(str(exc))
        sys.exit(1)

    if args.autocert is not None:
        settings = dataclasses.replace(
            settings,
            mode=AcquisitionMode.from_flag(args.autocert),
        )

    # -- replace bootstrap logging with configured logging ---
    from simpletls.logging import configure_logging

    logging_settings = settings.logging
    if args.debug:
        logging_settings = dataclasses.replace(logging_settings, level="DEBUG")
    configure_logging(logging_settings)

    if args.validate_only:
        _print_settings_summary(settings)
        sys.exit(0)

    if args.command is None:
        parser.print_usage(sys.stderr)
        _print_error("a command is required (check, obtain or listen)")
        sys.exit(2)

    # Listeners and issuance in automated mode need a usable ACME setup even
    # when no file was validated.
    if (
        args.command in ("listen", "obtain")
        and settings.mode is AcquisitionMode.AUTOMATED
        and (args.config is None or args.autocert is not None)
    ):
        try:
            check_settings(settings)
        except ConfigValidationError as exc:
            _print_error(str(exc))
            sys.exit(1)

    from simpletls.errors import SimpleTLSError

    try:
        if args.command == "check":
            from simpletls.cli.commands.check import run_check

            run_check(settings, args)
        elif args.command == "obtain":
            from simpletls.cli.commands.obtain import run_obtain

            run_obtain(settings, args)
        elif args.command == "listen":
            from simpletls.cli.commands.listen import run_listen

            run_listen(settings, args)
    except SimpleTLSError as exc:
        if args.debug:
            raise
        _print_error(exc.detail)
        sys.exit(1)


def _print_settings_summary(settings) -> None:
    """Print a short summary of the loaded configuration."""
    lines = [
        f"mode:        {settings.mode.value}",
        f"cert_file:   {settings.locations.cert_file}",
        f"key_file:    {settings.locations.key_file}",
        f"cache_dir:   {settings.locations.cache_dir}",
        f"acme:        {settings.acme.directory_url}",
        f"challenge:   {settings.acme.challenge_type} via {settings.acme.challenge_handler}",
        f"log level:   {settings.logging.level}",
    ]
    print("\n".join(lines))  # noqa: T201
