"""
Unit tests for the trust gate.
"""

import pytest
from unittest.mock import MagicMock
from starlette.requests import Request

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from service_directory.app.trust import TrustGate
from service_directory.app.trust.gate import parse_allowlist, strip_domain
from shared.errors import ConfigurationError, UntrustedSourceError
from shared.test_helpers import DirectoryDataFactory


def make_request(host="10.0.0.5", headers=None):
    """Build a bare ASGI request as seen by the service."""
    raw_headers = [
        (name.lower().encode("latin-1"), value.encode("latin-1"))
        for name, value in (headers or {}).items()
    ]
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/ad/whoami",
        "headers": raw_headers,
        "client": (host, 51234) if host else None,
    }
    return Request(scope)


def make_gate(**overrides):
    gate = TrustGate(DirectoryDataFactory.create_config(**overrides))
    gate.logger = MagicMock()
    return gate


class TestHelpers:
    """Test cases for allowlist parsing and domain stripping."""

    def test_strip_domain(self):
        assert strip_domain("CORP\\jdoe") == "jdoe"
        assert strip_domain("jdoe") == "jdoe"
        assert strip_domain("EU\\CORP\\jdoe") == "jdoe"
        assert strip_domain("CORP\\") == ""

    def test_parse_allowlist(self):
        networks = parse_allowlist(["10.0.0.5", "192.168.0.0/16", "::1"])

        # Assertions
        assert [str(n) for n in networks] == ["10.0.0.5/32", "192.168.0.0/16", "::1/128"]

    def test_parse_allowlist_rejects_garbage(self):
        with pytest.raises(ConfigurationError) as exc_info:
            parse_allowlist(["10.0.0.5", "proxy.corp"])

        # Assertions
        assert exc_info.value.details["entry"] == "proxy.corp"


class TestTrustGate:
    """Test cases for TrustGate."""

    def test_empty_allowlist_trusts_any_peer_and_warns(self):
        """Test the header is accepted from anyone, with a warning, when no proxies are listed."""
        gate = make_gate()

        identity = gate.get_identity(make_request(headers={"X-Control-Header": "CORP\\jdoe"}))

        # Assertions
        assert identity == "jdoe"
        gate.logger.warning.assert_called_once()

    def test_trusted_peer(self):
        """Test a listed proxy may assert an identity."""
        gate = make_gate(trusted_proxy_ips="10.0.0.5, 10.0.0.6")

        identity = gate.get_identity(make_request("10.0.0.6", {"X-Control-Header": "jsmith"}))

        # Assertions
        assert identity == "jsmith"
        gate.logger.warning.assert_not_called()

    def test_untrusted_peer_rejected(self):
        """Test a peer outside the allowlist is rejected and logged."""
        gate = make_gate(trusted_proxy_ips="10.0.0.5")

        with pytest.raises(UntrustedSourceError) as exc_info:
            gate.get_identity(make_request("10.0.0.99", {"X-Control-Header": "CORP\\jdoe"}))

        # Assertions
        assert exc_info.value.status_code == 401
        assert exc_info.value.details == {"source": "10.0.0.99"}
        gate.logger.error.assert_called_once()

    def test_missing_peer_rejected_when_allowlist_set(self):
        gate = make_gate(trusted_proxy_ips="10.0.0.5")

        with pytest.raises(UntrustedSourceError):
            gate.get_identity(make_request(None, {"X-Control-Header": "jdoe"}))

    def test_cidr_allowlist(self):
        """Test ranges in the allowlist."""
        gate = make_gate(trusted_proxy_ips="10.20.0.0/16")

        # Assertions
        assert gate.is_trusted_source("10.20.3.4") is True
        assert gate.is_trusted_source("10.21.3.4") is False
        assert gate.is_trusted_source("not-an-ip") is False

    def test_ipv4_mapped_peer(self):
        """Test IPv4 peers reported through a dual-stack socket."""
        gate = make_gate(trusted_proxy_ips="10.0.0.5")

        # Assertions
        assert gate.is_trusted_source("::ffff:10.0.0.5") is True
        assert gate.is_trusted_source("::ffff:10.0.0.6") is False

    def test_malformed_allowlist_fails_construction(self):
        with pytest.raises(ConfigurationError):
            TrustGate(DirectoryDataFactory.create_config(trusted_proxy_ips="10.0.0.5,300.1.1.1"))

    def test_missing_header(self):
        """Test an absent or empty header yields no identity."""
        gate = make_gate()

        # Assertions
        assert gate.get_identity(make_request()) is None
        assert gate.get_identity(make_request(headers={"X-Control-Header": ""})) is None
        assert gate.get_identity(make_request(headers={"X-Control-Header": "CORP\\"})) is None

    def test_custom_header_name(self):
        gate = make_gate(trusted_header="X-Remote-User")

        request = make_request(headers={"X-Remote-User": "jdoe", "X-Control-Header": "intruder"})

        # Assertions
        assert gate.get_identity(request) == "jdoe"

    def test_override_user(self):
        """Test the override replaces any asserted identity and bypasses the allowlist."""
        gate = make_gate(override_user_with_value="testuser", trusted_proxy_ips="10.0.0.5")

        identity = gate.get_identity(make_request("10.9.9.9", {"X-Control-Header": "jdoe"}))

        # Assertions
        assert identity == "testuser"
        gate.logger.warning.assert_called_once()

    def test_lookup_disabled(self):
        """Test no identity is produced while directory lookups are off."""
        gate = make_gate(lookup_active=False, trusted_proxy_ips="10.0.0.5")

        identity = gate.get_identity(make_request("10.9.9.9", {"X-Control-Header": "jdoe"}))

        # Assertions
        assert identity is None
        gate.logger.error.assert_not_called()
