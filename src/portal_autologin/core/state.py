"""
Engine status with event-driven updates.

Kept in memory only: nothing about login history survives a restart.
"""

import asyncio
import inspect
import logging
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from .models import NetworkIdentity, ProbeResult

logger = logging.getLogger(__name__)


class EngineState(str, Enum):
    """Login engine states."""

    IDLE = "IDLE"
    PROBING = "PROBING"
    AUTHENTICATING = "AUTHENTICATING"
    SUPPRESSED = "SUPPRESSED"


class EngineStatus(BaseModel):
    """Complete engine status."""

    state: EngineState = EngineState.IDLE
    attempts_left: int | None = None  # Only meaningful while a cycle is active
    generation: int = 0
    network: NetworkIdentity | None = None  # Last qualifying network
    last_result: ProbeResult | None = None
    last_error: str | None = None
    conflict_warning: str | None = None  # Pending user-acknowledged alert
    updated_at: datetime = Field(default_factory=datetime.now)


_UNSET: Any = object()


class StateManager:
    """
    Holds the engine status and notifies listeners of state changes.

    Updates are synchronous so a caller can check its generation and write in
    one step without another coroutine running in between. Coroutine
    callbacks are scheduled on the running loop.
    """

    def __init__(self):
        self.state = EngineStatus()
        self._callbacks: dict[str, list[Any]] = {}
        self._background_tasks: set[asyncio.Task] = set()

    def update_state(
        self,
        state: EngineState | None = None,
        attempts_left: int | None = _UNSET,
        generation: int | None = None,
        network: NetworkIdentity | None = None,
        last_result: ProbeResult | None = None,
        last_error: str | None = _UNSET,
        conflict_warning: str | None = _UNSET,
    ) -> None:
        """Update engine status and trigger callbacks."""
        old_state = self.state.state

        if state is not None:
            self.state.state = state

        if attempts_left is not _UNSET:
            self.state.attempts_left = attempts_left

        if generation is not None:
            self.state.generation = generation

        if network is not None:
            self.state.network = network

        if last_result is not None:
            self.state.last_result = last_result

        if last_error is not _UNSET:
            self.state.last_error = last_error

        if conflict_warning is not _UNSET:
            self.state.conflict_warning = conflict_warning

        self.state.updated_at = datetime.now()

        if old_state != self.state.state:
            logger.debug(f"Engine state {old_state.value} -> {self.state.state.value}")
            self._trigger_callbacks("state_change", old_state, self.state.state)

    def on_state_change(self, callback: Any) -> None:
        """Register a callback for state changes."""
        if "state_change" not in self._callbacks:
            self._callbacks["state_change"] = []
        self._callbacks["state_change"].append(callback)

    def _trigger_callbacks(self, event: str, *args, **kwargs) -> None:
        """Trigger registered callbacks for an event."""
        for callback in self._callbacks.get(event, []):
            try:
                if inspect.iscoroutinefunction(callback):
                    task = asyncio.get_running_loop().create_task(callback(*args, **kwargs))
                    self._background_tasks.add(task)
                    task.add_done_callback(self._background_tasks.discard)
                else:
                    callback(*args, **kwargs)
            except Exception as e:
                logger.error(f"Callback error for {event}: {e}")

    def get_state(self) -> EngineStatus:
        """Get a copy of the current status."""
        return self.state.model_copy(deep=True)
