# tests/test_main.py
import json
import logging
from unittest.mock import AsyncMock

import pytest

from portal_autologin.__main__ import PortalAutoLoginApp, setup_logging
from portal_autologin.core.config import Settings
from portal_autologin.core.models import ConflictPolicy, MatchPolicy
from portal_autologin.core.state import EngineState


@pytest.fixture
def settings(tmp_path):
    config_file = tmp_path / "config.json"
    config_file.write_text(
        json.dumps(
            {
                "allowed_networks": ["EFREI-5G"],
                "portal_host": "portal.example",
                "test_url": "http://connectivity.test/check",
                "test_success_body": "OK",
            }
        )
    )
    return Settings(
        state_dir=tmp_path / "state",
        log_dir=tmp_path / "logs",
        config_file=config_file,
        match_policy=MatchPolicy.SSID,
        conflict_policy=ConflictPolicy.WARN,
        retry_budget=2,
        web_enabled=False,
    )


def test_app_wires_components(settings):
    app = PortalAutoLoginApp(settings)

    assert app.engine.allow_list.entries == ("EFREI-5G",)
    assert app.engine.match_policy == MatchPolicy.SSID
    assert app.engine.retry_budget == 2
    assert app.engine.probe.portal_host == "portal.example"
    assert app.network_watcher._callbacks == [app.engine.on_network_change]
    assert app.credential_store.path == settings.credentials_file


async def test_initialize_raises_conflict_warning(settings):
    app = PortalAutoLoginApp(settings)
    app.engine.conflict_guard._run_command = AsyncMock(return_value=(0, "b true", ""))

    await app.initialize()

    status = app.engine.get_status()
    assert status.state == EngineState.SUPPRESSED
    assert "connectivity checking" in status.conflict_warning


def test_setup_logging_writes_rotating_file(tmp_path):
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level

    setup_logging(debug=True, log_dir=tmp_path)
    try:
        logging.getLogger("portal_autologin.test").debug("hello")
        for handler in root.handlers:
            handler.flush()
        assert "hello" in (tmp_path / "portal-autologin.log").read_text()
    finally:
        for handler in root.handlers:
            handler.close()
        root.handlers = saved_handlers
        root.setLevel(saved_level)
