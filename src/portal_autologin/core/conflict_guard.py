"""Neutralizes the desktop's own captive-portal handler.

The native helper intercepts the same redirect traffic and races with our
login. Two strategies are available, selected by ``ConflictPolicy``:

- suppress: terminate the helper before every probe cycle
- warn: check once at startup and raise a user-acknowledged alert
"""

import asyncio
import logging
import os
import signal
from dataclasses import dataclass

from .models import ConflictPolicy

logger = logging.getLogger(__name__)

NM_BUS_NAME = "org.freedesktop.NetworkManager"
NM_OBJECT_PATH = "/org/freedesktop/NetworkManager"

REMEDIATION = (
    "Disable NetworkManager connectivity checking by adding "
    "'[connectivity]\\nenabled=false' to /etc/NetworkManager/conf.d/portal-autologin.conf "
    "(or turn off 'Connectivity Checking' in the privacy settings), stop the captive "
    "portal helper, then restart this service."
)


@dataclass(frozen=True)
class ConflictWarning:
    """Competing handler detected at startup."""

    reasons: tuple[str, ...]

    @property
    def message(self) -> str:
        return (
            "A native captive-portal handler is active and will race with automatic "
            f"login ({'; '.join(self.reasons)}). {REMEDIATION}"
        )


class ConflictGuard:
    def __init__(self, policy: ConflictPolicy, process_names: list[str]):
        self.policy = policy
        self.process_names = list(process_names)

    async def _run_command(self, cmd: list[str]) -> tuple[int | None, str, str]:
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd, stdout=asyncio.subprocess.PIPE, stderr=asyncio.subprocess.PIPE
            )
            stdout, stderr = await process.communicate()

            return (
                process.returncode,
                stdout.decode("utf-8").strip(),
                stderr.decode("utf-8").strip(),
            )
        except Exception as e:
            logger.error(f"Command execution failed: {e}")
            return (1, "", str(e))

    async def _find_pids(self, name: str) -> list[int]:
        returncode, stdout, _ = await self._run_command(["pgrep", "-f", name])
        if returncode != 0:
            return []

        own_pid = os.getpid()
        pids = []
        for line in stdout.split("\n"):
            line = line.strip()
            if line.isdigit() and int(line) != own_pid:
                pids.append(int(line))
        return pids

    async def run_cycle_hook(self) -> None:
        """Terminate competing handlers. Only active with the suppress policy.

        Failing to terminate is not fatal: the race is possible, not certain.
        """
        if self.policy != ConflictPolicy.SUPPRESS:
            return

        for name in self.process_names:
            for pid in await self._find_pids(name):
                try:
                    os.kill(pid, signal.SIGTERM)
                    logger.info(f"Terminated competing portal handler {name} (pid {pid})")
                except ProcessLookupError:
                    # Already gone
                    continue
                except PermissionError as e:
                    logger.warning(f"Failed to kill {name} (pid {pid}): {e}")

    async def _connectivity_check_enabled(self) -> bool:
        returncode, stdout, stderr = await self._run_command(
            [
                "busctl",
                "get-property",
                NM_BUS_NAME,
                NM_OBJECT_PATH,
                NM_BUS_NAME,
                "ConnectivityCheckEnabled",
            ]
        )
        if returncode != 0:
            logger.debug(f"Could not query connectivity checking: {stderr}")
            return False
        return stdout.strip() == "b true"

    async def check_engaged(self) -> ConflictWarning | None:
        """Startup check for the warn policy. Returns None when nothing competes."""
        if self.policy != ConflictPolicy.WARN:
            return None

        reasons = []
        if await self._connectivity_check_enabled():
            reasons.append("NetworkManager connectivity checking is enabled")

        for name in self.process_names:
            if await self._find_pids(name):
                reasons.append(f"{name} is running")

        if not reasons:
            logger.debug("No competing captive-portal handler detected")
            return None

        return ConflictWarning(reasons=tuple(reasons))
