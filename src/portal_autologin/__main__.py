#!/usr/bin/env python3
"""Portal AutoLogin daemon."""

import argparse
import asyncio
import logging
import socket
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

import uvicorn

from portal_autologin.core.config import PortalConfig, Settings, get_settings, load_portal_config
from portal_autologin.core.conflict_guard import ConflictGuard
from portal_autologin.core.connectivity import ConnectivityProbe
from portal_autologin.core.credentials import CredentialStore
from portal_autologin.core.engine import LoginEngine
from portal_autologin.core.errors import NetworkError
from portal_autologin.core.network_watcher import NetworkWatcher
from portal_autologin.core.portal_client import PortalClient
from portal_autologin.paths import get_log_dir, is_development_mode
from portal_autologin.services.web_server import WebServer

logger = logging.getLogger(__name__)


def setup_logging(debug: bool = False, log_dir: Path | None = None):
    log_level = logging.DEBUG if debug else logging.INFO
    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    handlers: list[logging.Handler] = [
        logging.StreamHandler(sys.stdout),
    ]

    # Add file handler if we have write permissions
    try:
        log_dir = log_dir or get_log_dir()
        log_dir.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(
            log_dir / "portal-autologin.log",
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=3,
            encoding="utf-8",
        )
        file_handler.setFormatter(logging.Formatter(log_format))
        handlers.append(file_handler)
    except (PermissionError, OSError) as e:
        print(f"Warning: Could not create log file: {e}", file=sys.stderr)

    logging.basicConfig(
        level=log_level,
        format=log_format,
        handlers=handlers,
        force=True,
    )


def check_port_available(host: str, port: int) -> bool:
    """Test if port can be bound on specified host."""
    try:
        family = socket.AF_INET6 if ":" in host else socket.AF_INET
        with socket.socket(family, socket.SOCK_STREAM) as s:
            s.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            s.bind((host, port))
            return True
    except OSError:
        return False


class PortalAutoLoginApp:
    def __init__(self, settings: Settings | None = None, portal_config: PortalConfig | None = None):
        self.settings = settings or get_settings()
        self.running = False

        self.portal_config = portal_config or load_portal_config(self.settings.config_file)
        self.credential_store = CredentialStore(
            self.settings.credentials_file, app_id=self.settings.app_id
        )
        self.engine = LoginEngine(
            portal_config=self.portal_config,
            probe=ConnectivityProbe(
                portal_host=self.portal_config.portal_host,
                timeout=self.settings.request_timeout,
            ),
            portal_client=PortalClient(timeout=self.settings.request_timeout),
            conflict_guard=ConflictGuard(
                self.settings.conflict_policy, self.settings.conflicting_processes
            ),
            credential_store=self.credential_store,
            match_policy=self.settings.match_policy,
            retry_budget=self.settings.retry_budget,
        )
        self.network_watcher = NetworkWatcher(
            watch_patterns=self.settings.watch_patterns,
            restart_delay=self.settings.monitor_restart_delay,
        )
        self.network_watcher.subscribe(self.engine.on_network_change)

        self.web_server = WebServer(self.settings, self.engine, self.credential_store)
        self.tasks: list[asyncio.Task] = []
        self.server: uvicorn.Server | None = None

    async def initialize(self):
        logger.info("Initializing Portal AutoLogin...")
        if is_development_mode():
            logger.info("Running in development mode")
        logger.info(f"Allowed networks: {', '.join(self.engine.allow_list.entries) or '(none)'}")
        logger.info(f"Match policy: {self.settings.match_policy.value}")
        logger.info(f"Conflict policy: {self.settings.conflict_policy.value}")

        username, _ = self.credential_store.load()
        if not username:
            logger.warning("No portal credentials stored yet")

        await self.engine.initialize()

    async def run_web_server(self):
        uvicorn_logger = logging.getLogger("uvicorn.error")
        if not self.settings.debug:
            uvicorn_logger.setLevel(logging.ERROR)

        host = self.settings.web_host
        port = self.settings.web_port
        if not check_port_available(host, port):
            logger.critical(f"Port {port} on {host} is occupied. Cannot start control API.")
            raise NetworkError("Control API port unavailable", {"host": host, "port": port})

        logger.info(f"Starting control API on http://{host}:{port}")

        config = uvicorn.Config(
            app=self.web_server.get_app(),
            host=host,
            port=port,
            log_level="info" if self.settings.debug else "error",
            access_log=self.settings.debug,
        )
        self.server = uvicorn.Server(config)
        await self.server.serve()

    async def run(self):
        self.running = True

        try:
            await self.initialize()
            self.tasks = [asyncio.create_task(self.network_watcher.run())]
            if self.settings.web_enabled:
                self.tasks.append(asyncio.create_task(self.run_web_server()))

            logger.info("All services started successfully")

            done, _ = await asyncio.wait(self.tasks, return_when=asyncio.FIRST_COMPLETED)
            for task in done:
                if not task.cancelled() and task.exception():
                    raise task.exception()

        except Exception as e:
            logger.error(f"Application error: {e}")
            raise
        finally:
            await self.shutdown()

    async def shutdown(self):
        logger.info("Shutting down services...")
        self.running = False

        if self.server:
            self.server.should_exit = True
        for task in self.tasks:
            if not task.done():
                task.cancel()

        if self.tasks:
            try:
                await asyncio.wait_for(
                    asyncio.gather(*self.tasks, return_exceptions=True), timeout=5.0
                )
            except TimeoutError:
                logger.warning("Some tasks did not complete within timeout")

        await self.engine.shutdown()
        logger.info("Shutdown complete")


def main():
    parser = argparse.ArgumentParser(description="Captive portal auto-login daemon")
    parser.add_argument("--config", type=str, help="Path to portal configuration file (JSON)")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument("--port", type=int, help="Control API port")
    parser.add_argument("--no-web", action="store_true", help="Do not serve the control API")

    args = parser.parse_args()
    settings = get_settings()

    if args.debug:
        settings.debug = True
    if args.config:
        settings.config_file = Path(args.config)
    if args.port:
        settings.web_port = args.port
    if args.no_web:
        settings.web_enabled = False

    setup_logging(debug=settings.debug, log_dir=settings.log_dir)
    settings.ensure_directories()

    app = PortalAutoLoginApp(settings)

    try:
        asyncio.run(app.run())
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    except Exception as e:
        logger.error(f"Fatal error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
