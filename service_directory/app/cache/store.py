"""
In-process stores for directory lookups.
"""

import asyncio
from typing import Any, Dict, List, Optional, Set

from shared.errors import InvalidArgumentError

UserRecord = Optional[Dict[str, Any]]


def normalize_identity(identity: Any) -> str:
    """Return the cache key for an account name.

    Raises InvalidArgumentError for anything that is not a non-blank string.
    """
    if not isinstance(identity, str):
        raise InvalidArgumentError(
            f"{identity!r} is not a string, hence it can't be a valid account name",
            details={"identity": repr(identity)},
        )
    identity = identity.strip()
    if not identity:
        raise InvalidArgumentError("Empty string is not a valid account name")
    return identity


class DirectoryCacheStore:
    """Users, group catalogue and per-user membership futures.

    All three stores are plain containers mutated only from the event loop
    thread. A user entry of ``None`` records a lookup that found nothing.
    ``generation`` changes on every ``clear()``; a lookup that started in an
    older generation must not write its result back.
    """

    def __init__(self) -> None:
        self.generation = 0
        self.users: Dict[str, UserRecord] = {}
        self.groups: Set[str] = set()
        self.groups_per_user: Dict[str, "asyncio.Future[List[str]]"] = {}

    def has_user(self, key: str) -> bool:
        return key in self.users

    def get_user(self, key: str) -> UserRecord:
        return self.users.get(key)

    def add_user(self, key: str, record: UserRecord) -> UserRecord:
        """Store ``record`` unless an entry already exists; return the stored value."""
        return self.users.setdefault(key, record)

    def get_membership(self, key: str) -> Optional["asyncio.Future[List[str]]"]:
        return self.groups_per_user.get(key)

    def add_membership(self, key: str, future: "asyncio.Future[List[str]]") -> None:
        self.groups_per_user[key] = future

    def replace_groups(self, groups: Set[str]) -> None:
        self.groups = set(groups)

    def clear(self) -> None:
        self.generation += 1
        self.users.clear()
        self.groups.clear()
        self.groups_per_user.clear()

    def stats(self) -> Dict[str, int]:
        return {
            "users": len(self.users),
            "groups": len(self.groups),
            "groups_per_user": len(self.groups_per_user),
        }
