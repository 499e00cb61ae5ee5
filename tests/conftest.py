# tests/conftest.py
import asyncio

import pytest

from portal_autologin.core.config import PortalConfig
from portal_autologin.core.conflict_guard import ConflictGuard
from portal_autologin.core.credentials import CredentialStore
from portal_autologin.core.engine import LoginEngine
from portal_autologin.core.models import (
    ConflictPolicy,
    InterfaceHardware,
    MatchPolicy,
    NetworkIdentity,
    ProbeResult,
)

PORTAL_HOST = "portal.example"
TEST_URL = "http://connectivity.test/check"
PORTAL_URL = "https://portal.example/auth"


class ScriptedProbe:
    """Returns queued results in order, repeating the last one when exhausted."""

    def __init__(self, *results: ProbeResult):
        self.results = list(results)
        self.calls: list[tuple[str, str | None]] = []

    async def check(self, test_url, expected_body):
        self.calls.append((test_url, expected_body))
        if len(self.results) > 1:
            return self.results.pop(0)
        return self.results[0]


class GatedProbe:
    """Each call blocks until the test resolves its future."""

    def __init__(self):
        self.pending: list[asyncio.Future] = []

    async def check(self, test_url, expected_body):
        future = asyncio.get_running_loop().create_future()
        self.pending.append(future)
        return await future


class RecordingPortalClient:
    def __init__(self, response: str | None = "welcome"):
        self.response = response
        self.submissions = []
        self.logouts = []

    async def submit_credentials(self, url, credentials):
        self.submissions.append((url, credentials))
        return self.response

    async def logout(self, url):
        self.logouts.append(url)
        return True


class GatedPortalClient(RecordingPortalClient):
    """Login submissions block until the test resolves them."""

    def __init__(self):
        super().__init__()
        self.pending: list[asyncio.Future] = []

    async def submit_credentials(self, url, credentials):
        self.submissions.append((url, credentials))
        future = asyncio.get_running_loop().create_future()
        self.pending.append(future)
        return await future


async def wait_until(predicate, attempts: int = 200):
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition never became true")


@pytest.fixture
def portal_config():
    return PortalConfig(
        allowed_networks=["EFREI-5G", "aa:bb:cc:dd:ee:ff"],
        portal_host=PORTAL_HOST,
        logout_url="https://portal.example/logout",
        test_url=TEST_URL,
        test_success_body="OK",
    )


@pytest.fixture
def credential_store(tmp_path):
    store = CredentialStore(tmp_path / "credentials.json", app_id="portal-autologin-test")
    store.save("alice", "s3cret")
    return store


@pytest.fixture
def quiet_guard():
    # Warn policy: nothing runs per cycle
    return ConflictGuard(ConflictPolicy.WARN, [])


@pytest.fixture
def portal_client():
    return RecordingPortalClient()


@pytest.fixture
def make_engine(portal_config, credential_store, quiet_guard, portal_client):
    def _make(probe, config=None, match_policy=MatchPolicy.EITHER, retry_budget=3, guard=None):
        return LoginEngine(
            portal_config=config or portal_config,
            probe=probe,
            portal_client=portal_client,
            conflict_guard=guard or quiet_guard,
            credential_store=credential_store,
            match_policy=match_policy,
            retry_budget=retry_budget,
        )

    return _make


@pytest.fixture
def efrei():
    return NetworkIdentity(
        interface="wlan0",
        hardware=InterfaceHardware.WIRELESS,
        ssid="EFREI-5G",
        bssid="11:22:33:44:55:66",
    )


@pytest.fixture
def foreign():
    return NetworkIdentity(
        interface="wlan0",
        hardware=InterfaceHardware.WIRELESS,
        ssid="CoffeeShop",
        bssid="99:88:77:66:55:44",
    )
