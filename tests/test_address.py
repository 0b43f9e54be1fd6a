"""Tests for listen address parsing."""

from __future__ import annotations

import pytest

from simpletls.address import hostname_from_address, split_host_port
from simpletls.errors import AddressParseError


class TestSplitHostPort:
    """Tests for split_host_port."""

    @pytest.mark.parametrize(
        ("address", "expected"),
        [
            ("example.com:443", ("example.com", "443")),
            ("example.com:https", ("example.com", "https")),
            ("127.0.0.1:8443", ("127.0.0.1", "8443")),
            ("[::1]:443", ("::1", "443")),
            ("[fe80::1%eth0]:80", ("fe80::1%eth0", "80")),
            (":443", ("", "443")),
            ("example.com:", ("example.com", "")),
        ],
    )
    def test_valid(self, address, expected):
        assert split_host_port(address) == expected

    @pytest.mark.parametrize(
        ("address", "reason"),
        [
            ("example.com", "missing port"),
            ("host:port:extra", "too many colons"),
            ("::1", "too many colons"),
            ("[::1]", "missing port"),
            ("[::1]:443:1", "too many colons"),
            ("[::1]x:443", "missing port"),
            ("[::1:443", "missing ']'"),
            ("ex]ample:443", "unexpected bracket"),
            ("example.com:4[4]3", "unexpected bracket"),
        ],
    )
    def test_invalid(self, address, reason):
        with pytest.raises(AddressParseError, match=reason):
            split_host_port(address)


class TestHostnameFromAddress:
    """Tests for hostname_from_address."""

    @pytest.mark.parametrize("port", ["1", "80", "443", "8443", "65535", "https"])
    def test_host_independent_of_port(self, port):
        assert hostname_from_address(f"example.com:{port}") == "example.com"

    def test_bare_hostname_unchanged(self):
        assert hostname_from_address("example.com") == "example.com"

    def test_bare_hostname_with_odd_characters_unchanged(self):
        assert hostname_from_address("Über.example") == "Über.example"

    def test_bracketed_ipv6(self):
        assert hostname_from_address("[2001:db8::1]:443") == "2001:db8::1"

    def test_empty_host(self):
        assert hostname_from_address(":443") == ""

    def test_malformed_chains_parse_error(self):
        with pytest.raises(AddressParseError) as excinfo:
            hostname_from_address("host:port:extra")

        assert isinstance(excinfo.value.__cause__, AddressParseError)
        assert "too many colons" in excinfo.value.detail

    def test_empty_address_rejected(self):
        with pytest.raises(AddressParseError, match="must not be empty"):
            hostname_from_address("")
