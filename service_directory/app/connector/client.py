"""
Directory connector backed by ldap3.

The cache layer only depends on the ``DirectoryConnector`` protocol. The
``LDAPConnector`` implementation runs the blocking ldap3 calls in a worker
thread and lifts every library failure into ``DirectoryLookupError``.
"""

from __future__ import annotations

import asyncio
import ssl
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol

from ldap3 import NONE, SUBTREE, Connection, Server, Tls
from ldap3.core.exceptions import LDAPException
from ldap3.utils.conv import escape_filter_chars

from shared.errors import DirectoryLookupError
from shared.logging import get_logger
from shared.retry import RetryConfig, retry_on_exception

DirectoryRecord = Dict[str, Any]

USER_ATTRIBUTES = [
    "userPrincipalName", "sAMAccountName", "mail", "lockoutTime", "whenCreated",
    "pwdLastSet", "userAccountControl", "employeeID", "sn", "givenName",
    "initials", "cn", "displayName", "comment", "description",
]
GROUP_ATTRIBUTES = ["objectCategory", "distinguishedName", "cn", "description"]

USER_FILTER = (
    "(&(|(objectClass=user)(objectClass=person))(!(objectClass=computer))(!(objectClass=group))"
    "(|(sAMAccountName={name})(userPrincipalName={name})))"
)
GROUP_FILTER = "(&(objectClass=group)(!(objectClass=computer))(!(objectClass=user)){query})"
# LDAP_MATCHING_RULE_IN_CHAIN resolves nested group membership server side.
MEMBERSHIP_FILTER = "(&(objectClass=group)(member:1.2.840.113556.1.4.1941:={dn}))"


class DirectoryConnector(Protocol):
    """Capability the lookup cache is written against."""

    async def find(self, query: Optional[str] = None, size_limit: int = 0) -> List[DirectoryRecord]:
        ...

    async def find_user(self, name: str) -> Optional[DirectoryRecord]:
        ...

    async def find_groups(self, query: str = "CN=*") -> List[DirectoryRecord]:
        ...

    async def get_group_membership_for_user(self, principal_name: str) -> Optional[List[DirectoryRecord]]:
        ...


@dataclass(frozen=True)
class TLSMaterial:
    """Client certificate material for LDAPS connections."""

    key_file: str
    cert_file: str
    ca_file: str
    passphrase: Optional[str] = None

    def to_ldap3(self) -> Tls:
        return Tls(
            local_private_key_file=self.key_file,
            local_certificate_file=self.cert_file,
            local_private_key_password=self.passphrase,
            ca_certs_file=self.ca_file,
            validate=ssl.CERT_REQUIRED,
        )


def _as_filter(query: Optional[str]) -> str:
    if not query:
        return "(objectClass=*)"
    query = query.strip()
    return query if query.startswith("(") else f"({query})"


def _entry_to_record(entry) -> DirectoryRecord:
    """Flatten an ldap3 entry; single-valued attributes become scalars."""
    record: DirectoryRecord = {"dn": entry.entry_dn}
    for name, values in entry.entry_attributes_as_dict.items():
        if not values:
            continue
        record[name] = values[0] if len(values) == 1 else list(values)
    return record


class LDAPConnector:
    """Active Directory client implementing ``DirectoryConnector``."""

    def __init__(
        self,
        url: str,
        base_dn: str,
        username: str,
        password: str,
        *,
        tls: Optional[TLSMaterial] = None,
        timeout: Optional[float] = None,
        retry_attempts: int = 1,
    ) -> None:
        self.url = url
        self.base_dn = base_dn
        self.username = username
        self._password = password
        self.logger = get_logger("directory.connector")

        self.server = Server(
            url,
            tls=tls.to_ldap3() if tls else None,
            get_info=NONE,
            connect_timeout=timeout,
        )
        self.retry_config = RetryConfig(
            max_attempts=retry_attempts,
            base_delay=0.5,
            max_delay=10.0,
            timeout=timeout,
        )

    async def find(self, query: Optional[str] = None, size_limit: int = 0) -> List[DirectoryRecord]:
        """Run a raw subtree search below the base DN."""
        return await self._call("find", _as_filter(query), None, size_limit)

    async def find_user(self, name: str) -> Optional[DirectoryRecord]:
        search_filter = USER_FILTER.format(name=escape_filter_chars(name))
        users = await self._call("find_user", search_filter, USER_ATTRIBUTES, 1)
        return users[0] if users else None

    async def find_groups(self, query: str = "CN=*") -> List[DirectoryRecord]:
        search_filter = GROUP_FILTER.format(query=_as_filter(query))
        return await self._call("find_groups", search_filter, GROUP_ATTRIBUTES, 0)

    async def get_group_membership_for_user(self, principal_name: str) -> Optional[List[DirectoryRecord]]:
        """Return every group the principal belongs to, nested groups included.

        ``None`` means the principal itself does not exist.
        """
        user = await self.find_user(principal_name)
        if user is None:
            return None
        search_filter = MEMBERSHIP_FILTER.format(dn=escape_filter_chars(user["dn"]))
        return await self._call("get_group_membership_for_user", search_filter, GROUP_ATTRIBUTES, 0)

    async def _call(self, operation: str, search_filter: str,
                    attributes: Optional[List[str]], size_limit: int) -> List[DirectoryRecord]:
        @retry_on_exception((DirectoryLookupError,), self.retry_config)
        async def _search() -> List[DirectoryRecord]:
            return await asyncio.to_thread(self._search, operation, search_filter, attributes, size_limit)

        try:
            return await _search()
        except asyncio.TimeoutError as e:
            raise DirectoryLookupError(
                operation,
                "timed out",
                details={"timeout": self.retry_config.timeout},
            ) from e

    def _search(self, operation: str, search_filter: str,
                attributes: Optional[List[str]], size_limit: int) -> List[DirectoryRecord]:
        self.logger.debug("LDAP search", operation=operation, filter=search_filter, size_limit=size_limit)
        try:
            with Connection(
                self.server,
                user=self.username,
                password=self._password,
                auto_bind=True,
                read_only=True,
                # Bounds the socket read in this worker thread; wait_for alone cannot stop it.
                receive_timeout=self.retry_config.timeout,
            ) as conn:
                # A sizeLimitExceeded result still carries the entries we asked for.
                conn.search(
                    self.base_dn,
                    search_filter,
                    search_scope=SUBTREE,
                    attributes=attributes or [],
                    size_limit=size_limit,
                )
                return [_entry_to_record(entry) for entry in conn.entries]
        except LDAPException as e:
            raise DirectoryLookupError(
                operation,
                str(e) or type(e).__name__,
                details={"url": self.url, "filter": search_filter},
            ) from e
