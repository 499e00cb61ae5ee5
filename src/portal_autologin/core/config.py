"""
Configuration management using Pydantic settings.

Two layers:
- ``Settings``: runtime knobs, read from the environment (``PORTAL_AUTOLOGIN_*``)
  and an optional ``.env`` file.
- ``PortalConfig``: the operator's portal description, read once at startup from
  a JSON file. Anything missing or invalid there just disables the feature that
  depends on it.
"""

import json
import logging
from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..paths import get_config_dir, get_log_dir, get_state_dir
from .errors import ConfigurationError
from .models import AllowList, ConflictPolicy, MatchPolicy

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings with automatic validation."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="PORTAL_AUTOLOGIN_",
        case_sensitive=False,
    )

    # Identity used to key the credential store
    app_id: str = Field(default="portal-autologin", description="Application identity")

    # Engine behaviour
    match_policy: MatchPolicy = Field(
        default=MatchPolicy.EITHER, description="Allow-list match on ssid, bssid or either"
    )
    conflict_policy: ConflictPolicy = Field(
        default=ConflictPolicy.SUPPRESS,
        description="Terminate the native portal helper per cycle, or warn once at startup",
    )
    retry_budget: int = Field(default=3, gt=0, description="Login submissions per cycle")
    request_timeout: float = Field(
        default=10.0, ge=1.0, le=60.0, description="Probe/login/logout HTTP timeout in seconds"
    )

    # Conflict guard
    conflicting_processes: list[str] = Field(
        default_factory=lambda: ["gnome-shell-portal-helper"],
        description="Command lines of competing captive-portal handlers",
    )

    # Network watcher
    watch_patterns: list[str] = Field(
        default_factory=lambda: [
            "primary connection",
            "is now the primary",
            "connectivity is now",
            "networkmanager is now in the",
        ],
        description="nmcli monitor line fragments that signal a routing state change",
    )
    monitor_restart_delay: float = Field(
        default=5.0, description="Delay before restarting the nmcli monitor (seconds)"
    )

    # Control API
    web_enabled: bool = Field(default=True, description="Serve the local control API")
    web_host: str = Field(default="127.0.0.1", description="Control API bind address")
    web_port: int = Field(default=8765, description="Control API port")

    # Runtime settings
    debug: bool = Field(default=False, description="Enable debug logging")

    # Paths
    state_dir: Path = Field(default_factory=get_state_dir, description="Credential directory")
    log_dir: Path = Field(default_factory=get_log_dir, description="Log file directory")
    config_file: Path = Field(
        default_factory=lambda: get_config_dir() / "config.json",
        description="Static portal configuration (JSON)",
    )

    @property
    def credentials_file(self) -> Path:
        return self.state_dir / "credentials.json"

    def ensure_directories(self) -> None:
        """Ensure required directories exist."""
        self.state_dir.mkdir(parents=True, exist_ok=True)
        self.log_dir.mkdir(parents=True, exist_ok=True)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


class PortalConfig(BaseModel):
    """Static description of the operator's captive portal."""

    allowed_networks: list[str] = Field(default_factory=list)
    portal_host: str | None = None
    logout_url: str | None = None
    test_url: str | None = None
    test_success_body: str | None = None

    @field_validator("allowed_networks", mode="before")
    @classmethod
    def validate_allowed_networks(cls, v):
        if v is None:
            return []
        if not isinstance(v, list) or not all(isinstance(item, str) for item in v):
            logger.warning("allowed_networks must be a list of strings, ignoring it")
            return []
        return v

    @field_validator("portal_host", "test_success_body", mode="before")
    @classmethod
    def validate_text(cls, v, info):
        if v is None or isinstance(v, str):
            return v
        logger.warning(f"{info.field_name} must be a string, ignoring {v!r}")
        return None

    @field_validator("logout_url", "test_url", mode="before")
    @classmethod
    def validate_url(cls, v):
        if v is None:
            return None
        if not isinstance(v, str) or not v.startswith(("http://", "https://")):
            logger.warning(f"Ignoring invalid URL in portal config: {v!r}")
            return None
        return v

    @property
    def allow_list(self) -> AllowList:
        return AllowList(self.allowed_networks)

    @classmethod
    def from_file(cls, path: Path) -> "PortalConfig":
        """Parse a config file.

        Raises:
            ConfigurationError: If the file cannot be read or is not a JSON object
        """
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError("Cannot read portal config", {"path": path}, cause=e) from e

        if not isinstance(data, dict):
            raise ConfigurationError("Portal config must be a JSON object", {"path": path})

        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise ConfigurationError("Invalid portal config", {"path": path}, cause=e) from e


def load_portal_config(path: Path) -> PortalConfig:
    """Load the portal configuration, falling back to an empty one.

    An empty configuration is valid: with no allow-list no network ever
    qualifies, with no test URL no probe is ever made.
    """
    if not path.exists():
        logger.warning(f"Portal config {path} not found, automatic login disabled")
        return PortalConfig()

    try:
        config = PortalConfig.from_file(path)
    except ConfigurationError as e:
        logger.error(f"{e}: {e.cause}")
        return PortalConfig()

    if not config.allowed_networks:
        logger.warning("No allowed networks configured, no network will qualify")
    if not config.test_url:
        logger.warning("No connectivity test URL configured, probing disabled")
    if not config.portal_host:
        logger.warning("No portal host configured, every portal will be unrecognized")

    logger.info(f"Loaded portal config from {path} ({len(config.allowed_networks)} networks)")
    return config
