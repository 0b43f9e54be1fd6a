"""ACME challenge handlers for the certificate manager.

The ACMEOW client proves control of a host name through a
``ChallengeHandler``.  This module builds one from configuration.

Built-in factories:

- ``file_http``     -- write HTTP-01 tokens below a webroot directory
- ``callback_http`` -- run scripts to deploy/clean up HTTP-01 tokens
- ``callback_dns``  -- run scripts to create/delete DNS-01 TXT records

Custom factories are loaded with the ``ext:`` prefix
(e.g. ``ext:mypackage.handlers.MyFactory``).
"""

from __future__ import annotations

import abc
import importlib
import logging
import subprocess
from typing import Any, Mapping

from simpletls.errors import CertificateIssueError

log = logging.getLogger(__name__)

_DEFAULT_SCRIPT_TIMEOUT = 60
_DEFAULT_PROPAGATION_DELAY = 10


class ChallengeHandlerFactory(abc.ABC):
    """Create an ACMEOW ChallengeHandler from a config mapping."""

    @abc.abstractmethod
    def create(self, config: Mapping[str, Any]) -> Any:
        """Build and return a ChallengeHandler instance."""


def _run_script(argv: list[str], timeout: int) -> None:
    subprocess.run(  # noqa: S603
        argv,
        check=True,
        timeout=timeout,
        capture_output=True,
        text=True,
    )


class FileHttpFactory(ChallengeHandlerFactory):
    """Factory for ACMEOW's FileHttpHandler.

    Required config keys:

    - ``webroot``: directory served at ``/`` by the HTTP server on
      port 80; tokens land in ``.well-known/acme-challenge/``.

    """

    def create(self, config: Mapping[str, Any]) -> Any:
        webroot = config.get("webroot")
        if not webroot:
            msg = "file_http challenge handler requires 'webroot' in config"
            raise CertificateIssueError(msg)

        from acmeow.handlers import FileHttpHandler  # noqa: PLC0415

        return FileHttpHandler(webroot=webroot)


class CallbackHttpFactory(ChallengeHandlerFactory):
    """Factory for ACMEOW's CallbackHttpHandler.

    Required config keys:

    - ``deploy_script``: called as ``script <domain> <token> <key_authorization>``
    - ``cleanup_script``: called as ``script <domain> <token>``

    """

    def create(self, config: Mapping[str, Any]) -> Any:
        deploy_script = config.get("deploy_script")
        cleanup_script = config.get("cleanup_script")
        if not deploy_script:
            msg = "callback_http challenge handler requires 'deploy_script' in config"
            raise CertificateIssueError(msg)
        if not cleanup_script:
            msg = "callback_http challenge handler requires 'cleanup_script' in config"
            raise CertificateIssueError(msg)

        from acmeow.handlers import CallbackHttpHandler  # noqa: PLC0415

        script_timeout = config.get("script_timeout", _DEFAULT_SCRIPT_TIMEOUT)

        def deploy(domain: str, token: str, key_authorization: str) -> None:
            log.info("HTTP-01 deploy for %s via %s", domain, deploy_script)
            _run_script(
                [deploy_script, domain, token, key_authorization],
                script_timeout,
            )

        def cleanup(domain: str, token: str) -> None:
            log.info("HTTP-01 cleanup for %s via %s", domain, cleanup_script)
            _run_script([cleanup_script, domain, token], script_timeout)

        return CallbackHttpHandler(deploy=deploy, cleanup=cleanup)


class CallbackDnsFactory(ChallengeHandlerFactory):
    """Factory for ACMEOW's CallbackDnsHandler.

    Required config keys:

    - ``create_script``: called as ``script <domain> <record_name> <record_value>``
    - ``delete_script``: called as ``script <domain> <record_name>``

    Optional: ``propagation_delay`` (seconds, default 10) and
    ``script_timeout`` (seconds, default 60).
    """

    def create(self, config: Mapping[str, Any]) -> Any:
        create_script = config.get("create_script")
        delete_script = config.get("delete_script")
        if not create_script:
            msg = "callback_dns challenge handler requires 'create_script' in config"
            raise CertificateIssueError(msg)
        if not delete_script:
            msg = "callback_dns challenge handler requires 'delete_script' in config"
            raise CertificateIssueError(msg)

        from acmeow.handlers import CallbackDnsHandler  # noqa: PLC0415

        propagation_delay = config.get("propagation_delay", _DEFAULT_PROPAGATION_DELAY)
        script_timeout = config.get("script_timeout", _DEFAULT_SCRIPT_TIMEOUT)

        def create_record(domain: str, record_name: str, record_value: str) -> None:
            log.info("DNS-01 create %s via %s", record_name, create_script)
            _run_script(
                [create_script, domain, record_name, record_value],
                script_timeout,
            )

        def delete_record(domain: str, record_name: str) -> None:
            log.info("DNS-01 delete %s via %s", record_name, delete_script)
            _run_script([delete_script, domain, record_name], script_timeout)

        return CallbackDnsHandler(
            create_record=create_record,
            delete_record=delete_record,
            propagation_delay=propagation_delay,
        )


_BUILTIN_FACTORIES: dict[str, ChallengeHandlerFactory] = {
    "file_http": FileHttpFactory(),
    "callback_http": CallbackHttpFactory(),
    "callback_dns": CallbackDnsFactory(),
}

BUILTIN_HANDLERS = frozenset(_BUILTIN_FACTORIES)


def load_challenge_handler(name: str, config: Mapping[str, Any]) -> Any:
    """Create the challenge handler called *name*.

    Parameters
    ----------
    name:
        A built-in name (``file_http``, ``callback_http``,
        ``callback_dns``) or ``ext:fully.qualified.FactoryClass``.
    config:
        The ``acme.challenge_handler_config`` mapping.

    Raises
    ------
    CertificateIssueError
        If the handler is unknown or cannot be created.

    """
    if name in _BUILTIN_FACTORIES:
        return _BUILTIN_FACTORIES[name].create(config)

    if name.startswith("ext:"):
        return _load_external_handler(name[4:], config)

    msg = (
        f"Unknown challenge handler '{name}'; "
        f"built-in options: {sorted(_BUILTIN_FACTORIES)}. "
        "Use 'ext:mypackage.module.FactoryClass' for custom handlers."
    )
    raise CertificateIssueError(msg)


def _load_external_handler(fqn: str, config: Mapping[str, Any]) -> Any:
    module_path, _, cls_name = fqn.rpartition(".")
    if not module_path:
        msg = (
            f"Invalid challenge handler factory '{fqn}': must be "
            "fully qualified (e.g. 'mypackage.module.FactoryClass')"
        )
        raise CertificateIssueError(msg)
    try:
        module = importlib.import_module(module_path)
        cls = getattr(module, cls_name)
    except (ImportError, AttributeError) as exc:
        msg = f"Failed to load challenge handler factory '{fqn}': {exc}"
        raise CertificateIssueError(msg) from exc

    if not (isinstance(cls, type) and issubclass(cls, ChallengeHandlerFactory)):
        msg = f"Challenge handler factory '{fqn}' must be a subclass of ChallengeHandlerFactory"
        raise CertificateIssueError(msg)

    try:
        return cls().create(config)
    except CertificateIssueError:
        raise
    except Exception as exc:  # noqa: BLE001
        msg = f"Challenge handler factory '{fqn}' failed: {exc}"
        raise CertificateIssueError(msg) from exc
