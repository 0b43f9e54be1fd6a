"""Tests for the ACME challenge handler factories."""

from __future__ import annotations

import subprocess
import sys
from unittest.mock import MagicMock, patch

import pytest

from simpletls.autocert.handlers import (
    BUILTIN_HANDLERS,
    CallbackDnsFactory,
    CallbackHttpFactory,
    ChallengeHandlerFactory,
    FileHttpFactory,
    load_challenge_handler,
)
from simpletls.errors import CertificateIssueError


@pytest.fixture()
def mock_acmeow_handlers():
    """Temporarily inject a mock acmeow.handlers module into sys.modules."""
    mock_handlers = MagicMock()
    mock_acmeow = MagicMock()
    mock_acmeow.handlers = mock_handlers

    with patch.dict(sys.modules, {"acmeow": mock_acmeow, "acmeow.handlers": mock_handlers}):
        yield mock_handlers


class _StubFactory(ChallengeHandlerFactory):
    def create(self, config):
        return ("stub", dict(config))


class _BrokenFactory(ChallengeHandlerFactory):
    def create(self, config):
        raise RuntimeError("token store offline")


class _NotAFactory:
    pass


def test_builtin_names():
    assert frozenset({"file_http", "callback_http", "callback_dns"}) == BUILTIN_HANDLERS


class TestFileHttpFactory:
    def test_missing_webroot(self):
        with pytest.raises(CertificateIssueError, match="webroot"):
            FileHttpFactory().create({})

    def test_creates_handler(self, mock_acmeow_handlers):
        result = FileHttpFactory().create({"webroot": "/var/www"})

        mock_acmeow_handlers.FileHttpHandler.assert_called_once_with(webroot="/var/www")
        assert result is mock_acmeow_handlers.FileHttpHandler.return_value


class TestCallbackHttpFactory:
    def test_missing_deploy_script(self):
        with pytest.raises(CertificateIssueError, match="deploy_script"):
            CallbackHttpFactory().create({"cleanup_script": "/bin/true"})

    def test_missing_cleanup_script(self):
        with pytest.raises(CertificateIssueError, match="cleanup_script"):
            CallbackHttpFactory().create({"deploy_script": "/bin/true"})

    def test_callbacks_run_scripts(self, mock_acmeow_handlers):
        CallbackHttpFactory().create(
            {
                "deploy_script": "/usr/bin/deploy.sh",
                "cleanup_script": "/usr/bin/cleanup.sh",
                "script_timeout": 5,
            }
        )
        kwargs = mock_acmeow_handlers.CallbackHttpHandler.call_args[1]

        with patch("simpletls.autocert.handlers.subprocess.run") as mock_run:
            kwargs["deploy"]("example.com", "tok", "tok.thumb")
            kwargs["cleanup"]("example.com", "tok")

        assert mock_run.call_args_list[0][0][0] == [
            "/usr/bin/deploy.sh",
            "example.com",
            "tok",
            "tok.thumb",
        ]
        assert mock_run.call_args_list[0][1]["timeout"] == 5
        assert mock_run.call_args_list[1][0][0] == ["/usr/bin/cleanup.sh", "example.com", "tok"]

    def test_script_failure_propagates(self, mock_acmeow_handlers):
        CallbackHttpFactory().create(
            {"deploy_script": "/bin/deploy", "cleanup_script": "/bin/cleanup"},
        )
        deploy = mock_acmeow_handlers.CallbackHttpHandler.call_args[1]["deploy"]

        with patch(
            "simpletls.autocert.handlers.subprocess.run",
            side_effect=subprocess.CalledProcessError(1, "/bin/deploy"),
        ):
            with pytest.raises(subprocess.CalledProcessError):
                deploy("example.com", "tok", "auth")


class TestCallbackDnsFactory:
    def test_missing_create_script(self):
        with pytest.raises(CertificateIssueError, match="create_script"):
            CallbackDnsFactory().create({"delete_script": "/bin/true"})

    def test_missing_delete_script(self):
        with pytest.raises(CertificateIssueError, match="delete_script"):
            CallbackDnsFactory().create({"create_script": "/bin/true"})

    def test_creates_handler(self, mock_acmeow_handlers):
        CallbackDnsFactory().create(
            {
                "create_script": "/usr/bin/dns-create.sh",
                "delete_script": "/usr/bin/dns-delete.sh",
                "propagation_delay": 20,
            }
        )
        kwargs = mock_acmeow_handlers.CallbackDnsHandler.call_args[1]

        assert kwargs["propagation_delay"] == 20
        assert callable(kwargs["create_record"])
        assert callable(kwargs["delete_record"])

    def test_default_propagation_delay(self, mock_acmeow_handlers):
        CallbackDnsFactory().create({"create_script": "/c", "delete_script": "/d"})

        assert mock_acmeow_handlers.CallbackDnsHandler.call_args[1]["propagation_delay"] == 10


class TestLoadChallengeHandler:
    def test_builtin(self, mock_acmeow_handlers):
        result = load_challenge_handler("file_http", {"webroot": "/srv"})

        assert result is mock_acmeow_handlers.FileHttpHandler.return_value

    def test_unknown(self):
        with pytest.raises(CertificateIssueError, match="Unknown challenge handler"):
            load_challenge_handler("carrier_pigeon", {})

    def test_external(self):
        result = load_challenge_handler(f"ext:{__name__}._StubFactory", {"a": 1})

        assert result == ("stub", {"a": 1})

    def test_external_not_fully_qualified(self):
        with pytest.raises(CertificateIssueError, match="fully qualified"):
            load_challenge_handler("ext:Factory", {})

    def test_external_missing_module(self):
        with pytest.raises(CertificateIssueError, match="Failed to load"):
            load_challenge_handler("ext:no_such_module_xyz.Factory", {})

    def test_external_missing_class(self):
        with pytest.raises(CertificateIssueError, match="Failed to load"):
            load_challenge_handler(f"ext:{__name__}.Missing", {})

    def test_external_wrong_type(self):
        with pytest.raises(CertificateIssueError, match="subclass of ChallengeHandlerFactory"):
            load_challenge_handler(f"ext:{__name__}._NotAFactory", {})

    def test_external_factory_failure_wrapped(self):
        with pytest.raises(CertificateIssueError, match="failed: token store offline") as excinfo:
            load_challenge_handler(f"ext:{__name__}._BrokenFactory", {})

        assert isinstance(excinfo.value.__cause__, RuntimeError)
