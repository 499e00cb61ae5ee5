"""Watches OS network configuration and resolves the active WiFi identity."""

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable

from .models import InterfaceHardware, NetworkIdentity

logger = logging.getLogger(__name__)

NetworkChangeCallback = Callable[[NetworkIdentity | None], Awaitable[None]]

_HARDWARE_TYPES = {
    "wifi": InterfaceHardware.WIRELESS,
    "ethernet": InterfaceHardware.WIRED,
}


def split_terse(line: str) -> list[str]:
    """Split one line of ``nmcli -t`` output.

    Terse mode separates fields with ':' and escapes literal ':' and '\\'
    inside values with a backslash (BSSIDs come out as AA\\:BB\\:...).
    """
    fields = []
    current = []
    chars = iter(line)
    for char in chars:
        if char == "\\":
            current.append(next(chars, ""))
        elif char == ":":
            fields.append("".join(current))
            current = []
        else:
            current.append(char)
    fields.append("".join(current))
    return fields


def parse_default_route(output: str) -> str | None:
    """Pick the interface of the preferred IPv4 default route from ``ip -j`` output."""
    try:
        routes = json.loads(output) if output else []
    except json.JSONDecodeError:
        logger.debug(f"Unparseable route table: {output[:200]}")
        return None

    candidates = [route for route in routes if isinstance(route, dict) and route.get("dev")]
    if not candidates:
        return None

    best = min(candidates, key=lambda route: route.get("metric", 0))
    return best["dev"]


def parse_wifi_association(output: str) -> tuple[str | None, str | None] | None:
    """Extract (ssid, bssid) of the active row of ``nmcli device wifi list``."""
    for line in output.split("\n"):
        if not line:
            continue
        parts = split_terse(line)
        if len(parts) < 3 or parts[0] != "yes":
            continue

        ssid = parts[1] or None
        bssid = parts[2].lower() or None
        if ssid or bssid:
            return (ssid, bssid)
    return None


class NetworkWatcher:
    """Surfaces a ``NetworkIdentity`` for every routing-state notification.

    Subscribes to ``nmcli monitor`` (the NetworkManager notification stream)
    and, for lines announcing a change of the global routing state, resolves
    primary interface -> hardware class -> WiFi association. Any step that
    fails means "no signal this round": nothing is delivered and the next
    notification gets another chance. Repeats of the same network are
    delivered too, since they can mean the portal session was reset.
    """

    def __init__(self, watch_patterns: list[str], restart_delay: float = 5.0):
        self.watch_patterns = [pattern.lower() for pattern in watch_patterns]
        self.restart_delay = restart_delay
        self._callbacks: list[NetworkChangeCallback] = []

    def subscribe(self, on_change: NetworkChangeCallback) -> None:
        """Register an async callback receiving the resolved identity."""
        self._callbacks.append(on_change)

    async def _notify(self, identity: NetworkIdentity | None) -> None:
        # Awaited one after another: deliveries never overlap
        for callback in self._callbacks:
            try:
                await callback(identity)
            except Exception as e:
                logger.error(f"Error in network change callback: {e}", exc_info=True)

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

    async def _primary_interface(self) -> str | None:
        returncode, stdout, stderr = await self._run_command(
            ["ip", "-j", "-4", "route", "show", "default"]
        )
        if returncode != 0:
            logger.debug(f"Failed to read routing table: {stderr}")
            return None
        return parse_default_route(stdout)

    async def _interface_hardware(self, interface: str) -> InterfaceHardware | None:
        returncode, stdout, stderr = await self._run_command(
            ["nmcli", "-t", "-g", "GENERAL.TYPE", "device", "show", interface]
        )
        if returncode != 0:
            logger.debug(f"Failed to query device {interface}: {stderr}")
            return None
        return _HARDWARE_TYPES.get(stdout.strip(), InterfaceHardware.OTHER)

    async def _wifi_association(self, interface: str) -> tuple[str | None, str | None] | None:
        returncode, stdout, stderr = await self._run_command(
            [
                "nmcli",
                "-t",
                "-f",
                "ACTIVE,SSID,BSSID",
                "device",
                "wifi",
                "list",
                "ifname",
                interface,
                "--rescan",
                "no",
            ]
        )
        if returncode != 0:
            logger.debug(f"Failed to query WiFi state for {interface}: {stderr}")
            return None
        return parse_wifi_association(stdout)

    async def resolve_identity(self) -> NetworkIdentity | None:
        """Resolve the identity of the network carrying the primary route."""
        interface = await self._primary_interface()
        if not interface:
            logger.info("Failed to fetch primary network service (offline?)")
            return None

        hardware = await self._interface_hardware(interface)
        if hardware is None:
            logger.info(f"Failed to fetch interface state for {interface}")
            return None
        if hardware != InterfaceHardware.WIRELESS:
            logger.info(f"Primary interface {interface} is {hardware.value}, ignoring")
            return None

        association = await self._wifi_association(interface)
        if association is None:
            logger.info(f"Failed to fetch network state for interface {interface}")
            return None

        ssid, bssid = association
        identity = NetworkIdentity(interface=interface, hardware=hardware, ssid=ssid, bssid=bssid)
        logger.debug(f"Resolved network identity: {identity}")
        return identity

    def is_routing_change(self, event: str) -> bool:
        lowered = event.lower()
        return any(pattern in lowered for pattern in self.watch_patterns)

    async def handle_notification(self) -> None:
        identity = await self.resolve_identity()
        if identity is not None:
            await self._notify(identity)

    async def run(self) -> None:
        """Resolve once, then follow NetworkManager notifications forever."""
        logger.info("Starting network watcher")
        await self.handle_notification()

        while True:
            try:
                process = await asyncio.create_subprocess_exec(
                    "nmcli",
                    "monitor",
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.DEVNULL,
                )

                try:
                    while True:
                        line = await process.stdout.readline()
                        if not line:
                            logger.warning("NetworkManager monitor process ended, restarting...")
                            break

                        event = line.decode("utf-8", errors="replace").strip()
                        if not event:
                            continue

                        logger.debug(f"NetworkManager event: {event}")
                        if self.is_routing_change(event):
                            await self.handle_notification()
                finally:
                    if process.returncode is None:
                        try:
                            process.terminate()
                        except ProcessLookupError:
                            pass

            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"NetworkManager monitor error: {e}", exc_info=True)

            logger.info(f"Restarting network watcher in {self.restart_delay} seconds...")
            await asyncio.sleep(self.restart_delay)
