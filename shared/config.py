"""
Shared configuration management for the Directory Access Layer.
"""

from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="ACCESS_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int
    host: str = "0.0.0.0"

    def __init__(self, service_name: str, port: int, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)


class DirectoryConfig(BaseSettings):
    """Active Directory settings, read from the ``AD_*`` environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="AD_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )

    lookup_active: bool = Field(default=False)

    # Connection
    url: Optional[str] = None
    base_dn: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    check_connection_query: Optional[str] = None

    # Client TLS material (all three paths or none)
    tls_path_to_key: Optional[str] = None
    tls_path_to_cert: Optional[str] = None
    tls_path_to_ca: Optional[str] = None
    tls_passphrase: Optional[str] = None

    # Trust boundary
    trusted_header: str = Field(default="X-Control-Header")
    trusted_proxy_ips: str = Field(default="")
    override_user_with_value: Optional[str] = None

    # Directory call budget; unset timeout means wait indefinitely
    call_timeout_seconds: Optional[float] = None
    retry_attempts: int = Field(default=1, ge=1)

    # Members of this group may use the administrative routes
    admin_group: Optional[str] = None

    @property
    def trusted_proxy_ip_list(self) -> List[str]:
        """Allowlist entries; an empty list means every source is accepted."""
        return [ip.strip() for ip in self.trusted_proxy_ips.split(",") if ip.strip()]

    @property
    def tls_paths(self) -> List[Optional[str]]:
        return [self.tls_path_to_key, self.tls_path_to_cert, self.tls_path_to_ca]


def get_config(service_name: str, port: int) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port)


def get_directory_config() -> DirectoryConfig:
    """Get the directory settings from the environment."""
    return DirectoryConfig()
