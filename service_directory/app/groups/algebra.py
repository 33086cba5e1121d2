"""
Group catalogue and multi-user group intersections.
"""

import asyncio
from functools import reduce
from typing import List, Sequence

from shared.errors import InvalidArgumentError
from shared.logging import get_logger
from ..cache.lookup import DirectoryLookupService, GROUP_NAME_ATTRIBUTE


class GroupAlgebra:
    """Set operations over cached group memberships."""

    def __init__(self, lookup: DirectoryLookupService):
        self.lookup = lookup
        self.logger = get_logger("directory.groups")

    async def get_available_groups(self) -> List[str]:
        """Sorted names of every group in the directory.

        The catalogue is fetched once and served from cache until the next
        flush. A failed fetch returns an empty list and leaves the cache empty.
        """
        store = self.lookup.store
        if not store.groups:
            generation = store.generation
            try:
                groups = await self.lookup.connector.find_groups("CN=*")
            except Exception as e:
                self.logger.error("Group catalogue lookup failed", error=str(e))
                self.lookup.record_metric("directory_calls_total", operation="find_groups", status="error")
                return []
            self.lookup.record_metric("directory_calls_total", operation="find_groups", status="ok")
            names = {g[GROUP_NAME_ATTRIBUTE] for g in groups if g.get(GROUP_NAME_ATTRIBUTE)}
            if store.generation != generation:
                return sorted(names)
            store.replace_groups(names)
        else:
            self.lookup.record_metric("directory_cache_hits_total", store="groups")

        return sorted(store.groups)

    async def find_common_groups_for_users(self, identities: Sequence[str]) -> List[str]:
        """Groups every one of ``identities`` is a member of, in first-user order."""
        if not identities:
            raise InvalidArgumentError("Can't find common groups if no users are supplied")

        memberships = await asyncio.gather(
            *(self.lookup.get_group_membership_for_user(identity) for identity in identities)
        )
        common = reduce(lambda a, b: [g for g in a if g in b], memberships)

        self.logger.debug("Common groups computed", users=list(identities), groups=common)
        return common
