"""
Login engine: the captive-portal detection and authentication state machine.

    IDLE -> PROBING -> IDLE                         (authenticated)
                    -> AUTHENTICATING -> PROBING    (portal, budget left)
                    -> IDLE                         (portal, budget exhausted)
                    -> IDLE                         (unrecognized portal / unreachable)

Each cycle is tagged with a generation number when it starts. A new
qualifying event bumps the generation, and a cycle whose generation is no
longer current drops whatever its in-flight request returns without touching
the status or issuing another request.
"""

import asyncio
import logging

from .config import PortalConfig
from .conflict_guard import ConflictGuard
from .connectivity import ConnectivityProbe
from .credentials import CredentialStore
from .models import Credentials, LoginAttempt, MatchPolicy, NetworkIdentity, ProbeOutcome
from .portal_client import PortalClient
from .state import EngineState, EngineStatus, StateManager

logger = logging.getLogger(__name__)


class LoginEngine:
    def __init__(
        self,
        portal_config: PortalConfig,
        probe: ConnectivityProbe,
        portal_client: PortalClient,
        conflict_guard: ConflictGuard,
        credential_store: CredentialStore,
        match_policy: MatchPolicy = MatchPolicy.EITHER,
        retry_budget: int = 3,
    ):
        if retry_budget <= 0:
            raise ValueError("retry_budget must be a positive integer")

        self.config = portal_config
        self.allow_list = portal_config.allow_list
        self.probe = probe
        self.portal_client = portal_client
        self.conflict_guard = conflict_guard
        self.credential_store = credential_store
        self.match_policy = match_policy
        self.retry_budget = retry_budget

        self.state_manager = StateManager()
        self._generation = 0
        self._conflict_pending = False
        self._tasks: set[asyncio.Task] = set()
        self._attempt: LoginAttempt | None = None

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def current_attempt(self) -> LoginAttempt | None:
        """The login attempt of the current cycle, None between cycles."""
        return self._attempt

    def get_status(self) -> EngineStatus:
        """Snapshot of the engine status, safe to hand to the presentation layer."""
        return self.state_manager.get_state()

    async def initialize(self) -> None:
        """Run the one-shot conflict check of the warn policy."""
        warning = await self.conflict_guard.check_engaged()
        if warning is None:
            return

        logger.critical(warning.message)
        self._conflict_pending = True
        self.state_manager.update_state(
            state=EngineState.SUPPRESSED, conflict_warning=warning.message
        )

    def acknowledge_conflict(self) -> bool:
        """Clear a pending conflict warning. Returns False if none was pending."""
        if not self._conflict_pending:
            return False

        self._conflict_pending = False
        logger.info("Conflict warning acknowledged, automatic login enabled")
        if self.state_manager.state.state == EngineState.SUPPRESSED:
            self.state_manager.update_state(state=EngineState.IDLE, conflict_warning=None)
        else:
            self.state_manager.update_state(conflict_warning=None)
        return True

    async def on_network_change(self, identity: NetworkIdentity | None) -> asyncio.Task | None:
        """Start a fresh cycle for an allow-listed WiFi network.

        Always starts over with the full budget, even if the same network
        was verified moments ago or a cycle is still in flight.
        """
        if identity is None or not identity.is_wireless:
            logger.debug("Ignoring network change without a WiFi association")
            return None

        if not self.allow_list.matches(identity, self.match_policy):
            logger.debug(f"{identity} is not an allowed network")
            return None

        if self._conflict_pending:
            logger.warning(
                f"Ignoring {identity}: acknowledge the captive-portal handler warning first"
            )
            return None

        logger.info(f"Joined allowed network {identity}, checking for captive portal")
        return self._start_cycle(network=identity)

    def trigger_manual_login(self) -> asyncio.Task:
        """User-initiated login: full budget, no allow-list check."""
        logger.info("Manual login requested")
        return self._start_cycle()

    async def logout(self, url: str | None = None) -> bool:
        """Fire one logout request. No retry and no state transition."""
        await self.conflict_guard.run_cycle_hook()

        target = url or self.config.logout_url
        if not target:
            logger.warning("No logout URL given and none configured")
            return False
        return await self.portal_client.logout(target)

    async def shutdown(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    def _start_cycle(self, network: NetworkIdentity | None = None) -> asyncio.Task:
        self._generation += 1
        generation = self._generation

        self.state_manager.update_state(
            state=EngineState.PROBING,
            attempts_left=self.retry_budget,
            generation=generation,
            network=network,
            last_error=None,
        )

        task = asyncio.get_running_loop().create_task(
            self._run_cycle(generation), name=f"login-cycle-{generation}"
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation

    def _finish(self, generation: int, error: str | None = None) -> None:
        if not self._is_current(generation):
            return

        self._attempt = None
        final_state = EngineState.SUPPRESSED if self._conflict_pending else EngineState.IDLE
        self.state_manager.update_state(state=final_state, attempts_left=None, last_error=error)

    async def _run_cycle(self, generation: int) -> None:
        attempt = LoginAttempt(generation=generation, attempts_left=self.retry_budget)
        if self._is_current(generation):
            self._attempt = attempt

        try:
            while True:
                await self.conflict_guard.run_cycle_hook()
                if not self._is_current(generation):
                    return

                if not self.config.test_url:
                    logger.error("Connectivity test disabled: no test URL configured")
                    self._finish(generation, error="No connectivity test URL configured")
                    return

                self.state_manager.update_state(
                    state=EngineState.PROBING, attempts_left=attempt.attempts_left
                )
                result = await self.probe.check(self.config.test_url, self.config.test_success_body)

                if not self._is_current(generation):
                    logger.debug(f"Discarding probe result of superseded cycle {generation}")
                    return

                self.state_manager.update_state(last_result=result)

                if result.outcome == ProbeOutcome.AUTHENTICATED:
                    logger.info("Internet access verified")
                    self._finish(generation)
                    return

                if result.outcome == ProbeOutcome.UNREACHABLE:
                    logger.info(f"Request failed (offline?): {result.cause}")
                    self._finish(generation, error=f"Network unreachable: {result.cause}")
                    return

                if result.outcome == ProbeOutcome.UNRECOGNIZED_PORTAL:
                    logger.warning(f"Unrecognized portal: {result.url}")
                    self._finish(generation, error=f"Unrecognized portal: {result.url}")
                    return

                if attempt.attempts_left == 0:
                    logger.error(f"Failed to login (wrong password?):\n{result.body}")
                    self._finish(
                        generation, error=f"Failed to login (wrong password?): {result.body}"
                    )
                    return

                attempt.attempts_left -= 1
                attempt.portal_url = result.url
                self.state_manager.update_state(
                    state=EngineState.AUTHENTICATING, attempts_left=attempt.attempts_left
                )

                attempt.credentials = Credentials.from_pair(self.credential_store.load())
                if not attempt.credentials.username:
                    logger.warning("No portal credentials stored, submitting empty login")

                await self.conflict_guard.run_cycle_hook()
                if not self._is_current(generation):
                    return

                # The answer is inconclusive either way: the next probe decides
                await self.portal_client.submit_credentials(
                    attempt.portal_url, attempt.credentials
                )
                if not self._is_current(generation):
                    logger.debug(f"Discarding login response of superseded cycle {generation}")
                    return

        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Login cycle {generation} failed: {e}", exc_info=True)
            self._finish(generation, error=str(e))
