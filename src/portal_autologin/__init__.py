"""Portal AutoLogin.

Background daemon that detects an allow-listed captive-portal WiFi network and
authenticates through the portal on the user's behalf.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("portal-autologin")
except PackageNotFoundError:
    __version__ = "unknown"

__all__ = ["__version__"]
