"""
Centralized path management for development and production environments.

Environment variables can override any path:
- PORTAL_AUTOLOGIN_STATE_DIR: Credential storage directory
- PORTAL_AUTOLOGIN_LOG_DIR: Log directory
- PORTAL_AUTOLOGIN_CONFIG_DIR: Directory holding config.json
- PORTAL_AUTOLOGIN_TEMPLATES_DIR: Jinja2 templates directory

Development mode is auto-detected by checking for a pyproject.toml at the root
of the source tree.
"""

import os
from functools import lru_cache
from pathlib import Path


@lru_cache(maxsize=1)
def get_project_root() -> Path:
    """Get project root directory (3 levels up from src/portal_autologin/paths.py)."""
    return Path(__file__).parent.parent.parent


@lru_cache(maxsize=1)
def _is_development() -> bool:
    """Detect if running from a source checkout rather than an installed package."""
    return (get_project_root() / "pyproject.toml").exists()


def get_state_dir() -> Path:
    """Get state storage directory.

    Priority:
    1. PORTAL_AUTOLOGIN_STATE_DIR environment variable
    2. ./var/lib/portal-autologin (development)
    3. ~/.local/share/portal-autologin (production)
    """
    if override := os.getenv("PORTAL_AUTOLOGIN_STATE_DIR"):
        return Path(override)

    if _is_development():
        return get_project_root() / "var" / "lib" / "portal-autologin"

    return Path.home() / ".local" / "share" / "portal-autologin"


def get_log_dir() -> Path:
    """Get log directory.

    Priority:
    1. PORTAL_AUTOLOGIN_LOG_DIR environment variable
    2. ./var/log/portal-autologin (development)
    3. ~/.local/state/portal-autologin (production)
    """
    if override := os.getenv("PORTAL_AUTOLOGIN_LOG_DIR"):
        return Path(override)

    if _is_development():
        return get_project_root() / "var" / "log" / "portal-autologin"

    return Path.home() / ".local" / "state" / "portal-autologin"


def get_config_dir() -> Path:
    """Get directory holding the static portal configuration."""
    if override := os.getenv("PORTAL_AUTOLOGIN_CONFIG_DIR"):
        return Path(override)

    if _is_development():
        return get_project_root() / "config"

    return Path.home() / ".config" / "portal-autologin"


def get_templates_dir() -> Path:
    """Get Jinja2 templates directory (shipped inside the package)."""
    if override := os.getenv("PORTAL_AUTOLOGIN_TEMPLATES_DIR"):
        return Path(override)

    return Path(__file__).parent / "templates"


def is_development_mode() -> bool:
    return _is_development()
