"""simpletls configuration loader.

Lifecycle::

    # At startup (CLI), with or without a config file
    settings = load_settings("/etc/simpletls.yaml")
    settings = load_settings()              # defaults from $HOME

    # Then pass the parts explicitly
    build_listener(addr, settings.mode, locations=settings.locations,
                   acme=settings.acme)

The file (YAML or JSON) is validated against the bundled
``schema.json`` after ``${VAR}`` / ``${VAR:-default}`` references have
been expanded, then checked for cross-field problems.
"""

from __future__ import annotations

import json
import logging
import os
import re
from pathlib import Path
from typing import Any, Mapping

import jsonschema
import yaml

from simpletls.autocert.handlers import BUILTIN_HANDLERS
from simpletls.config.settings import HomeDirectoryError, SimpleTLSSettings, build_settings

SCHEMA_PATH = Path(__file__).parent / "schema.json"

_ENV_RE = re.compile(
    r"^\$\{([^}:]+?)(?::-(.*))?\}$",
    re.DOTALL,
)

_HANDLER_CHALLENGE_TYPES = {
    "file_http": "http-01",
    "callback_http": "http-01",
    "callback_dns": "dns-01",
}

log = logging.getLogger(__name__)


class ConfigValidationError(Exception):
    """Raised when loading or validating the configuration fails."""

    def __init__(self, errors: list[str]) -> None:
        """Store *errors* and build a human-readable message."""
        self.errors = errors
        body = "\n".join(f"  - {e}" for e in errors)
        super().__init__(f"Configuration validation failed:\n{body}")


# ---------------------------------------------------------------------------
# Environment variable resolution
# ---------------------------------------------------------------------------


def _resolve_value(value: str, path: str, environ: Mapping[str, str]) -> str:
    """Replace ``${VAR}`` or ``${VAR:-default}`` with the env var value."""
    match = _ENV_RE.match(value)
    if match is None:
        return value
    var_name = match.group(1)
    fallback = match.group(2)
    resolved = environ.get(var_name)
    if resolved is not None:
        return resolved
    if fallback is not None:
        return fallback
    raise ConfigValidationError(
        [
            f"Environment variable '${{{var_name}}}' referenced "
            f"at '{path}' is not set and has no default",
        ],
    )


def _resolve_env_vars(
    data: Any,  # noqa: ANN401
    environ: Mapping[str, str],
    path: str = "",
) -> None:
    """Walk *data* in-place and resolve ``${VAR}``/``${VAR:-default}`` strings."""
    if isinstance(data, dict):
        for key in data:
            child_path = f"{path}.{key}" if path else key
            if isinstance(data[key], str):
                data[key] = _resolve_value(data[key], child_path, environ)
            elif isinstance(data[key], (dict, list)):
                _resolve_env_vars(data[key], environ, child_path)
    elif isinstance(data, list):
        for idx, item in enumerate(data):
            child_path = f"{path}[{idx}]"
            if isinstance(item, str):
                data[idx] = _resolve_value(item, child_path, environ)
            elif isinstance(item, (dict, list)):
                _resolve_env_vars(item, environ, child_path)


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


def _read_file(config_file: Path) -> dict:
    try:
        with config_file.open(encoding="utf-8") as f:
            if config_file.suffix in (".yaml", ".yml"):
                data = yaml.safe_load(f)
            else:
                data = json.load(f)
    except OSError as exc:
        msg = f"cannot read configuration file {config_file}: {exc}"
        raise ConfigValidationError([msg]) from exc
    except (yaml.YAMLError, ValueError) as exc:
        msg = f"cannot parse configuration file {config_file}: {exc}"
        raise ConfigValidationError([msg]) from exc

    if data is None:
        return {}
    if not isinstance(data, dict):
        msg = f"configuration file {config_file} must contain a mapping at top level"
        raise ConfigValidationError([msg])
    return data


def _load_schema() -> dict:
    with SCHEMA_PATH.open(encoding="utf-8") as f:
        return json.load(f)


def validate_data(data: dict) -> None:
    """Validate raw config *data* against the schema and cross-field rules.

    Raises
    ------
    ConfigValidationError
        Listing every problem found.

    """
    validator = jsonschema.Draft202012Validator(_load_schema())
    errors = [
        f"{'.'.join(str(p) for p in err.absolute_path) or '<root>'}: {err.message}"
        for err in sorted(validator.iter_errors(data), key=lambda e: list(e.absolute_path))
    ]
    if errors:
        raise ConfigValidationError(errors)

    additional_checks(data)


def additional_checks(data: dict) -> None:
    """Semantic and cross-field validation, run after schema validation."""
    errors: list[str] = []
    warnings: list[str] = []

    mode = data.get("mode", "automated")
    acme = data.get("acme") or {}

    directory_url = acme.get("directory_url", "")
    if directory_url and not directory_url.startswith("https://"):
        errors.append(
            f"acme.directory_url must be an https:// URL (got '{directory_url}')",
        )

    handler = acme.get("challenge_handler", "file_http")
    handler_config = acme.get("challenge_handler_config") or {}
    challenge_type = acme.get("challenge_type", "http-01")
    if handler not in BUILTIN_HANDLERS and not handler.startswith("ext:"):
        errors.append(
            f"acme.challenge_handler '{handler}' is unknown; built-in options: "
            f"{sorted(BUILTIN_HANDLERS)} or 'ext:package.module.FactoryClass'",
        )
    expected_type = _HANDLER_CHALLENGE_TYPES.get(handler)
    if expected_type is not None and expected_type != challenge_type:
        errors.append(
            f"acme.challenge_handler '{handler}' solves {expected_type} "
            f"but acme.challenge_type is '{challenge_type}'",
        )

    if mode == "automated":
        if handler == "file_http" and not handler_config.get("webroot"):
            errors.append(
                "acme.challenge_handler_config.webroot is required when "
                "acme.challenge_handler is 'file_http'",
            )
        if not acme.get("accept_tos", True):
            warnings.append(
                "acme.accept_tos is false; the CA's terms of service will be "
                "refused and no certificate can be obtained",
            )
        if not acme.get("email"):
            warnings.append(
                "acme.email is empty; the CA cannot send expiry notices",
            )
    elif acme:
        warnings.append("acme section is ignored in static mode")

    for w in warnings:
        log.warning("Config warning: %s", w)

    if errors:
        raise ConfigValidationError(errors)


def check_settings(settings: SimpleTLSSettings) -> None:
    """Run :func:`additional_checks` against an already built settings tree.

    Used when the tree did not come from a validated file (no file at all,
    or a mode switched on the command line), so that an automated
    listener that could never obtain a certificate is refused at startup.

    Raises
    ------
    ConfigValidationError
        Listing every problem found.

    """
    acme = settings.acme
    data: dict = {"mode": settings.mode.value}
    if settings.mode.value == "automated":
        data["acme"] = {
            "directory_url": acme.directory_url,
            "email": acme.email,
            "accept_tos": acme.accept_tos,
            "challenge_type": acme.challenge_type,
            "challenge_handler": acme.challenge_handler,
            "challenge_handler_config": dict(acme.challenge_handler_config),
        }
    additional_checks(data)


def load_settings(
    config_file: str | Path | None = None,
    *,
    environ: Mapping[str, str] | None = None,
) -> SimpleTLSSettings:
    """Load, validate and materialise the settings tree.

    Parameters
    ----------
    config_file:
        Optional YAML/JSON file.  Without one, every setting takes its
        default and only the automated-mode checks that need explicit
        values are skipped.
    environ:
        Environment used for ``${VAR}`` expansion and ``$HOME``;
        defaults to :data:`os.environ`.

    Raises
    ------
    ConfigValidationError
        If the file cannot be read or parsed, fails validation, or no
        default locations can be derived because ``$HOME`` is unset.

    """
    env = os.environ if environ is None else environ

    if config_file is None:
        data: dict = {}
    else:
        data = _read_file(Path(config_file))
        _resolve_env_vars(data, env)
        validate_data(data)

    try:
        settings = build_settings(data, env)
    except HomeDirectoryError as exc:
        raise ConfigValidationError([str(exc)]) from exc

    if config_file is not None:
        log.debug("Loaded configuration from %s", config_file)
    return settings
