"""
Directory service for the Directory Access Layer.
"""

from typing import Dict, List, Optional

from fastapi import Body, Depends, HTTPException, Request

from shared.base_service import BaseService
from shared.config import DirectoryConfig, ServiceConfig, get_directory_config
from shared.errors import AuthorizationError, ServiceError, UntrustedSourceError
from shared.logging import set_account_context
from .bootstrap import DirectoryBootstrap
from .bootstrap.health_check import ConnectorFactory
from .cache import DirectoryLookupService
from .connector import LDAPConnector
from .groups import GroupAlgebra
from .trust import TrustGate


class DirectoryService(BaseService):
    """Directory service implementation.

    Lifecycle: construct (settings and TLS validated) -> startup (directory
    connection checked, fatal on failure) -> serve -> optional flush via the
    admin routes -> shutdown.
    """

    def __init__(
        self,
        directory_config: Optional[DirectoryConfig] = None,
        *,
        connector_factory: ConnectorFactory = LDAPConnector,
        config: Optional[ServiceConfig] = None,
    ):
        super().__init__("directory", 8020, config=config)
        self.directory_config = directory_config or get_directory_config()
        self.trust_gate = TrustGate(self.directory_config)

        self.bootstrap: Optional[DirectoryBootstrap] = None
        if self.directory_config.lookup_active:
            self.bootstrap = DirectoryBootstrap(
                self.directory_config,
                connector_factory,
                metrics=self.metrics,
            )
        else:
            self.logger.info(
                "AD_LOOKUP_ACTIVE is not set. Directory authentication is disabled.",
                lookup_active=self.directory_config.lookup_active,
            )

        self.lookup: Optional[DirectoryLookupService] = None
        self.groups: Optional[GroupAlgebra] = None

        self._setup_directory_routes()

    async def startup(self) -> None:
        if self.bootstrap is None:
            return
        self.lookup = await self.bootstrap.run()
        self.groups = GroupAlgebra(self.lookup)

    async def shutdown(self) -> None:
        if self.lookup is not None:
            self.logger.info("Directory service stopping", **self.lookup.store.stats())

    def _require_lookup(self) -> DirectoryLookupService:
        if self.lookup is None:
            raise ServiceError("Can't access directory functions because AD lookup is disabled")
        return self.lookup

    def _require_groups(self) -> GroupAlgebra:
        self._require_lookup()
        return self.groups

    async def require_admin(self, request: Request) -> Optional[str]:
        """Gate for the administrative routes when AD_ADMIN_GROUP is set."""
        lookup = self._require_lookup()
        admin_group = self.directory_config.admin_group
        if not admin_group:
            return None

        identity = self.trust_gate.get_identity(request)
        if identity is None:
            raise UntrustedSourceError("No identity asserted by the trusted header")
        set_account_context(identity)

        if not await lookup.is_user_member_of(identity, admin_group):
            raise AuthorizationError(
                f"{identity} is not a member of {admin_group}",
                details={"required_group": admin_group},
            )
        return identity

    def _setup_directory_routes(self):
        """Set up directory-specific routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "directory",
                "message": "Directory Access Layer - Directory Service",
                "version": "1.0.0",
                "lookup_active": self.directory_config.lookup_active,
            }

        @self.app.get("/ad/whoami")
        async def whoami(request: Request):
            """Identity asserted for this request and its group membership."""
            identity = self.trust_gate.get_identity(request)
            if identity is None or self.lookup is None:
                return {"user": identity, "valid": False, "groups": []}

            set_account_context(identity)
            return {
                "user": identity,
                "valid": await self.lookup.is_user_valid(identity),
                "groups": await self.lookup.get_group_membership_for_user(identity),
            }

        @self.app.get("/ad/users/{identity}/member-of/{group}")
        async def is_member_of(identity: str, group: str):
            """Membership predicate; unknown users and groups answer false."""
            lookup = self._require_lookup()
            return {
                "user": identity,
                "group": group,
                "member": await lookup.is_user_member_of(identity, group),
            }

        @self.app.get("/ad/store/{name}")
        async def get_store(name: str, _admin: Optional[str] = Depends(self.require_admin)):
            """Diagnostic view of one cache store."""
            store = await self._require_lookup().get_store(name)
            if store is None:
                raise HTTPException(status_code=404, detail=f"Unknown store: {name}")
            return store

        @self.app.post("/ad/flush")
        async def flush_stores(_admin: Optional[str] = Depends(self.require_admin)):
            """Drop all cached directory data."""
            return {"message": self._require_lookup().flush_stores()}

        @self.app.get("/ad/groups")
        async def get_available_groups(_admin: Optional[str] = Depends(self.require_admin)) -> List[str]:
            """Every group known to the directory."""
            return await self._require_groups().get_available_groups()

        @self.app.post("/ad/groups/common")
        async def find_common_groups(
            users: List[str] = Body(...),
            _admin: Optional[str] = Depends(self.require_admin),
        ) -> List[str]:
            """Groups shared by all of the given users."""
            return await self._require_groups().find_common_groups_for_users(users)

    async def _check_dependencies(self) -> Dict[str, str]:
        """Check directory dependencies."""
        if self.lookup is None:
            return {"directory": "disabled"}
        return {"directory": "ok"}


def create_app():
    """Create FastAPI application."""
    service = DirectoryService()
    return service.app


if __name__ == "__main__":
    service = DirectoryService()
    service.run()
