"""
Lookup orchestration over the directory cache stores.
"""

import asyncio
from typing import Any, List, Optional, TYPE_CHECKING

from shared.errors import InvalidArgumentError, NotFoundError
from shared.logging import get_logger
from .store import DirectoryCacheStore, UserRecord, normalize_identity

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector
    from ..connector import DirectoryConnector

ACCOUNT_NAME_ATTRIBUTE = "sAMAccountName"
PRINCIPAL_NAME_ATTRIBUTE = "userPrincipalName"
GROUP_NAME_ATTRIBUTE = "cn"


class DirectoryLookupService:
    """Fills the cache stores on demand from a directory connector.

    Lookups never raise connector errors to the caller: a user that cannot
    be resolved is cached as ``None`` and a membership that cannot be
    resolved settles to an empty list. Only malformed arguments raise.
    """

    def __init__(
        self,
        connector: "DirectoryConnector",
        store: Optional[DirectoryCacheStore] = None,
        *,
        metrics: Optional["MetricsCollector"] = None,
    ) -> None:
        self.connector = connector
        self.store = store or DirectoryCacheStore()
        self.metrics = metrics
        self.logger = get_logger("directory.lookup")

    async def find_user(self, identity: Any) -> UserRecord:
        """Return the directory record for ``identity`` or ``None`` if not found."""
        key = normalize_identity(identity)

        if self.store.has_user(key):
            self.record_metric("directory_cache_hits_total", store="users")
            return self.store.get_user(key)

        self.record_metric("directory_cache_misses_total", store="users")
        self.logger.debug("Looking up user in directory", identity=key)
        generation = self.store.generation
        try:
            record = await self.connector.find_user(key)
        except Exception as e:
            self.logger.error("User lookup failed", identity=key, error=str(e))
            self.record_metric("directory_calls_total", operation="find_user", status="error")
            record = None
        else:
            if record:
                self.record_metric("directory_calls_total", operation="find_user", status="ok")
            else:
                self.logger.warning("User not found in directory", identity=key)
                self.record_metric("directory_calls_total", operation="find_user", status="not_found")
                record = None

        if self.store.generation != generation:
            self.logger.debug("Stores flushed during lookup, not caching result", identity=key)
            return record
        return self.store.add_user(key, record)

    async def is_user_valid(self, identity: Any) -> bool:
        user = await self.find_user(identity)
        is_valid = user is not None and ACCOUNT_NAME_ATTRIBUTE in user
        self.logger.debug("User validity checked", identity=identity, valid=is_valid)
        return is_valid

    def get_group_membership_for_user(self, identity: Any) -> "asyncio.Future[List[str]]":
        """Return the memoized membership future for ``identity``.

        The future is registered before anything is awaited, so concurrent
        callers for the same account share a single directory call. It always
        settles to a sorted list of group names, empty on any failure.
        """
        key = normalize_identity(identity)

        future = self.store.get_membership(key)
        if future is not None:
            self.record_metric("directory_cache_hits_total", store="groups_per_user")
            return future

        self.record_metric("directory_cache_misses_total", store="groups_per_user")
        self.logger.debug("No membership entry yet, populating", identity=key)
        future = asyncio.ensure_future(self._resolve_membership(key))
        self.store.add_membership(key, future)
        return future

    async def _resolve_membership(self, key: str) -> List[str]:
        try:
            user = await self.find_user(key)
            principal_name = user.get(PRINCIPAL_NAME_ATTRIBUTE) if user else None
            if not principal_name:
                raise NotFoundError(f"User {key} not found.")

            groups = await self.connector.get_group_membership_for_user(principal_name)
            if groups is None:
                raise NotFoundError(f"User {principal_name} not found.")
            self.record_metric("directory_calls_total", operation="get_group_membership_for_user", status="ok")

            names = sorted(g[GROUP_NAME_ATTRIBUTE] for g in groups if g.get(GROUP_NAME_ATTRIBUTE))
            self.logger.debug("Membership resolved", identity=key, groups=names)
            return names
        except Exception as e:
            self.logger.error("Membership lookup failed", identity=key, error=str(e))
            self.record_metric("directory_calls_total", operation="get_group_membership_for_user", status="error")
            return []

    async def is_user_member_of(self, identity: Any, group_name: Optional[str]) -> bool:
        """Membership predicate. Fails closed on anything but missing arguments."""
        if identity is None:
            raise InvalidArgumentError("Cannot lookup group membership for undefined user")
        if group_name is None:
            raise InvalidArgumentError("Cannot lookup membership if group isn't specified")

        try:
            groups = await self.get_group_membership_for_user(identity)
            return group_name in groups
        except Exception as e:
            self.logger.error("Membership check failed", identity=identity, group=group_name, error=str(e))
            return False

    def flush_stores(self) -> str:
        """Drop every cached user, group and membership.

        Futures already handed out keep their original result.
        """
        self.logger.info("Flushing local cache stores", **self.store.stats())
        self.store.clear()
        self.record_metric("directory_flushes_total")
        return "All local caches successfully flushed."

    async def get_store(self, name: str) -> Optional[Any]:
        """Serializable view of one store for operators; ``None`` for unknown names."""
        store_name = name.lower().replace("_", "")

        if store_name == "users":
            return dict(self.store.users)
        if store_name == "groups":
            return sorted(self.store.groups)
        if store_name == "groupsperuser":
            entries = list(self.store.groups_per_user.items())
            results = await asyncio.gather(*(future for _, future in entries))
            return {key: groups for (key, _), groups in zip(entries, results)}
        return None

    def record_metric(self, metric_name: str, **labels) -> None:
        if self.metrics:
            self.metrics.increment_counter(metric_name, **labels)
