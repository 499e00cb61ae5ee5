# tests/test_conflict_guard.py
import signal
from unittest.mock import AsyncMock, patch

from portal_autologin.core.conflict_guard import ConflictGuard
from portal_autologin.core.models import ConflictPolicy

HELPER = "gnome-shell-portal-helper"


def make_guard(policy, responses):
    guard = ConflictGuard(policy, [HELPER])

    async def run(cmd):
        return responses.get(cmd[0], (1, "", ""))

    guard._run_command = AsyncMock(side_effect=run)
    return guard


async def test_suppress_terminates_every_matching_process():
    guard = make_guard(ConflictPolicy.SUPPRESS, {"pgrep": (0, "4242\n4343", "")})

    with patch("portal_autologin.core.conflict_guard.os.kill") as kill:
        await guard.run_cycle_hook()

    kill.assert_any_call(4242, signal.SIGTERM)
    kill.assert_any_call(4343, signal.SIGTERM)
    assert kill.call_count == 2


async def test_suppress_with_nothing_running():
    guard = make_guard(ConflictPolicy.SUPPRESS, {"pgrep": (1, "", "")})

    with patch("portal_autologin.core.conflict_guard.os.kill") as kill:
        await guard.run_cycle_hook()

    kill.assert_not_called()


async def test_suppress_failure_is_not_fatal():
    guard = make_guard(ConflictPolicy.SUPPRESS, {"pgrep": (0, "4242\n4343", "")})

    with patch(
        "portal_autologin.core.conflict_guard.os.kill",
        side_effect=[PermissionError("not permitted"), ProcessLookupError()],
    ) as kill:
        await guard.run_cycle_hook()

    assert kill.call_count == 2


async def test_warn_policy_never_kills():
    guard = make_guard(ConflictPolicy.WARN, {"pgrep": (0, "4242", "")})

    with patch("portal_autologin.core.conflict_guard.os.kill") as kill:
        await guard.run_cycle_hook()

    kill.assert_not_called()
    guard._run_command.assert_not_awaited()


async def test_warn_detects_connectivity_checking():
    guard = make_guard(ConflictPolicy.WARN, {"busctl": (0, "b true", ""), "pgrep": (1, "", "")})

    warning = await guard.check_engaged()

    assert warning is not None
    assert "connectivity checking" in warning.message
    assert "restart" in warning.message


async def test_warn_detects_running_helper():
    guard = make_guard(ConflictPolicy.WARN, {"busctl": (0, "b false", ""), "pgrep": (0, "77", "")})

    warning = await guard.check_engaged()

    assert warning.reasons == (f"{HELPER} is running",)


async def test_warn_nothing_engaged():
    guard = make_guard(ConflictPolicy.WARN, {"busctl": (0, "b false", ""), "pgrep": (1, "", "")})
    assert await guard.check_engaged() is None


async def test_suppress_policy_skips_startup_check():
    guard = make_guard(ConflictPolicy.SUPPRESS, {"busctl": (0, "b true", "")})

    assert await guard.check_engaged() is None
    guard._run_command.assert_not_awaited()
