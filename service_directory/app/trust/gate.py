"""
Trust gate: identity asserted by the upstream proxy.

The proxy authenticates the user and forwards the account name in a trusted
header (``X-Control-Header`` unless configured otherwise). This service must
only honour that header when the request's immediate peer is the proxy, so
the peer address is checked against an allowlist before the header is read.
"""

import ipaddress
from typing import List, Optional, Union

from fastapi import Request

from shared.config import DirectoryConfig
from shared.errors import ConfigurationError, UntrustedSourceError
from shared.logging import get_logger

IPNetwork = Union[ipaddress.IPv4Network, ipaddress.IPv6Network]

DOMAIN_SEPARATOR = "\\"


def parse_allowlist(entries: List[str]) -> List[IPNetwork]:
    """Parse addresses and CIDR ranges; a single address becomes a /32 or /128."""
    networks = []
    for entry in entries:
        try:
            networks.append(ipaddress.ip_network(entry, strict=False))
        except ValueError as e:
            raise ConfigurationError(
                f"Invalid entry {entry!r} in AD_TRUSTED_PROXY_IPS",
                details={"entry": entry, "error": str(e)},
            ) from e
    return networks


def strip_domain(account: str) -> str:
    """``CORP\\jdoe`` -> ``jdoe``."""
    if DOMAIN_SEPARATOR in account:
        return account.rsplit(DOMAIN_SEPARATOR, 1)[-1]
    return account


class TrustGate:
    """Extracts the caller's account name from a proxied request."""

    def __init__(self, config: DirectoryConfig):
        self.lookup_active = config.lookup_active
        self.trusted_header = config.trusted_header or "X-Control-Header"
        self.override_user = (config.override_user_with_value or "").strip() or None
        self.allowlist = parse_allowlist(config.trusted_proxy_ip_list)
        self.logger = get_logger("directory.trust_gate")

    def is_trusted_source(self, host: Optional[str]) -> bool:
        """True if ``host`` may set the trusted header. An empty allowlist trusts everyone."""
        if not self.allowlist:
            return True
        if not host:
            return False
        try:
            address = ipaddress.ip_address(host)
        except ValueError:
            return False
        if isinstance(address, ipaddress.IPv6Address) and address.ipv4_mapped:
            address = address.ipv4_mapped
        return any(address in network for network in self.allowlist)

    def get_identity(self, request: Request) -> Optional[str]:
        """Return the account name asserted for ``request``.

        Returns None when lookup is disabled or the header is absent. Raises
        UntrustedSourceError when the request did not come through a trusted
        proxy.
        """
        if not self.lookup_active:
            return None

        if self.override_user:
            self.logger.warning(
                "AD_OVERRIDE_USER_WITH_VALUE is set! Using it as user name for all directory "
                "functions. DON'T USE THIS IN PRODUCTION!",
                user=self.override_user,
            )
            return self.override_user

        # The immediate peer, not X-Forwarded-For: only the last hop can set the header.
        host = request.client.host if request.client else None

        if not self.is_trusted_source(host):
            e = UntrustedSourceError(
                f"Directory authentication does not allow requests from {host}",
                details={"source": host},
            )
            self.logger.error(e.message, source=host)
            raise e

        if not self.allowlist:
            self.logger.warning(
                "Directory authentication is active but no trusted proxy IPs are configured. "
                "The trusted header is accepted from any request, which is a security risk!",
                header=self.trusted_header,
            )

        self.logger.debug("Request accepted by trust gate", source=host)

        value = request.headers.get(self.trusted_header)
        if not value:
            return None

        account = strip_domain(value)
        self.logger.debug("Trusted header read", header=self.trusted_header, account=account)
        return account or None
