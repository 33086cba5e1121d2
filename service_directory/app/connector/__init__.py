"""
Directory connector package.

Wraps the LDAP client library behind the ``DirectoryConnector`` protocol so
the cache and bootstrap code never touch ldap3 directly.
"""

from .client import DirectoryConnector, DirectoryRecord, LDAPConnector, TLSMaterial

__all__ = [
    "DirectoryConnector",
    "DirectoryRecord",
    "LDAPConnector",
    "TLSMaterial",
]
