"""
Trust gate package.

Establishes the caller's directory account from a header injected by the
authenticating reverse proxy, gated by a source-IP allowlist.
"""

from .gate import TrustGate, parse_allowlist, strip_domain

__all__ = [
    "TrustGate",
    "parse_allowlist",
    "strip_domain",
]
