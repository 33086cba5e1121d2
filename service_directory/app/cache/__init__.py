"""
Cache package for the Directory Service.

Holds the in-process stores (users, group catalogue, per-user membership
futures) and the lookup service that fills them from the directory.
Nothing here is persisted; a restart or an explicit flush starts over.
"""

from .store import DirectoryCacheStore, normalize_identity
from .lookup import DirectoryLookupService

__all__ = [
    "DirectoryCacheStore",
    "DirectoryLookupService",
    "normalize_identity",
]
