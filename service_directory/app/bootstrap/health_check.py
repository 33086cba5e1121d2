"""
Directory bootstrap: settings validation, TLS material and the startup
connectivity check.

Every failure here is fatal. The service must not start with a broken or
unauthenticated directory link, so callers let these exceptions propagate
out of the application lifespan.
"""

import os
from typing import Callable, Optional, TYPE_CHECKING

from shared.config import DirectoryConfig
from shared.errors import ConfigurationError, DirectoryConnectionError
from shared.logging import get_logger
from ..cache import DirectoryLookupService
from ..connector import DirectoryConnector, LDAPConnector, TLSMaterial

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector

ConnectorFactory = Callable[..., DirectoryConnector]

REQUIRED_SETTINGS = {
    "url": "AD_URL",
    "base_dn": "AD_BASE_DN",
    "username": "AD_USERNAME",
    "password": "AD_PASSWORD",
}


def _is_readable_file(path: str) -> bool:
    return os.path.isfile(path) and os.access(path, os.R_OK)


class DirectoryBootstrap:
    """Builds a verified directory connector for the lookup cache.

    Construction validates the settings and TLS material synchronously;
    ``run()`` performs the awaited connectivity check and hands back a ready
    ``DirectoryLookupService``.
    """

    def __init__(
        self,
        config: DirectoryConfig,
        connector_factory: ConnectorFactory = LDAPConnector,
        *,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.config = config
        self.metrics = metrics
        self.logger = get_logger("directory.bootstrap")

        self._validate_settings()
        self.tls = self._load_tls_material()

        self.logger.debug("Setting up directory connection", url=config.url)
        self.connector = connector_factory(
            config.url,
            config.base_dn,
            config.username,
            config.password,
            tls=self.tls,
            timeout=config.call_timeout_seconds,
            retry_attempts=config.retry_attempts,
        )

    def _validate_settings(self) -> None:
        missing = [env for field, env in REQUIRED_SETTINGS.items() if not getattr(self.config, field)]
        if missing:
            e = ConfigurationError(
                "One or more directory settings are missing. If you want to run without "
                "directory lookups, set AD_LOOKUP_ACTIVE=false.",
                details={"missing": missing},
            )
            self.logger.critical(e.message, missing=missing)
            raise e

    def _load_tls_material(self) -> Optional[TLSMaterial]:
        """All three TLS paths or none; a partial set aborts startup."""
        paths = self.config.tls_paths
        configured = [p for p in paths if p]

        if not configured:
            if self.config.url.lower().startswith("ldaps://"):
                self.logger.warning(
                    "The configured AD_URL uses ldaps:// but no TLS certificates were provided",
                    url=self.config.url,
                )
            return None

        unreadable = [p or "<unset>" for p in paths if not p or not _is_readable_file(p)]
        if unreadable:
            e = ConfigurationError(
                "Could not read TLS certificate files. Check your AD_TLS_PATH_* settings. "
                "ABORTING STARTUP.",
                details={"unreadable": unreadable},
            )
            self.logger.critical(e.message, unreadable=unreadable)
            raise e

        key, cert, ca = paths
        self.logger.info("Client TLS material loaded", key=key, cert=cert, ca=ca)
        return TLSMaterial(
            key_file=key,
            cert_file=cert,
            ca_file=ca,
            passphrase=self.config.tls_passphrase,
        )

    async def check_connection(self) -> None:
        """Issue one query limited to a single result; raise if nothing comes back."""
        query = self.config.check_connection_query or None
        self.logger.info("Testing the directory connection", url=self.config.url, query=query)

        try:
            results = await self.connector.find(query, size_limit=1)
        except Exception as e:
            error = DirectoryConnectionError(
                f"Connection to {self.config.url} failed. Check your AD_* settings, the "
                "certificates, CA and passphrase, and that this host can reach the server. "
                "ABORTING STARTUP.",
                details={"url": self.config.url, "error": str(e)},
            )
            self.logger.critical(error.message, error=str(e))
            raise error from e

        if not results:
            error = DirectoryConnectionError(
                f"Connection to {self.config.url} returned no results for the check query. "
                "ABORTING STARTUP.",
                details={"url": self.config.url, "query": query},
            )
            self.logger.critical(error.message, query=query)
            raise error

        self.logger.info("Directory connection succeeded", url=self.config.url)

    async def run(self) -> DirectoryLookupService:
        await self.check_connection()
        return DirectoryLookupService(self.connector, metrics=self.metrics)
