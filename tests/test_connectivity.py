# tests/test_connectivity.py
import httpx

from portal_autologin.core.connectivity import ConnectivityProbe, classify, decode_body
from portal_autologin.core.models import ProbeOutcome

TEST_URL = "http://connectivity.test/check"


def make_probe(handler, portal_host="portal.example"):
    return ConnectivityProbe(portal_host=portal_host, transport=httpx.MockTransport(handler))


def test_expected_body_is_authenticated_regardless_of_host():
    for url in ("http://portal.example/auth", "http://elsewhere.test/", TEST_URL):
        result = classify("OK", url, "OK", "portal.example")
        assert result.outcome == ProbeOutcome.AUTHENTICATED


def test_portal_host_is_captive_portal():
    result = classify("redirect page", "https://portal.example/auth?x=1", "OK", "portal.example")
    assert result.outcome == ProbeOutcome.CAPTIVE_PORTAL
    assert result.url == "https://portal.example/auth?x=1"
    assert result.body == "redirect page"


def test_other_host_is_unrecognized_portal():
    result = classify("redirect page", "http://hotspot.other/login", "OK", "portal.example")
    assert result.outcome == ProbeOutcome.UNRECOGNIZED_PORTAL
    assert result.url == "http://hotspot.other/login"


def test_body_comparison_is_exact():
    assert classify("OK\n", TEST_URL, "OK", "portal.example").outcome != ProbeOutcome.AUTHENTICATED
    assert classify("ok", TEST_URL, "OK", "portal.example").outcome != ProbeOutcome.AUTHENTICATED


def test_no_portal_host_configured_is_unrecognized():
    result = classify("login", "https://portal.example/auth", "OK", None)
    assert result.outcome == ProbeOutcome.UNRECOGNIZED_PORTAL


def test_no_expected_body_never_authenticates():
    result = classify("", TEST_URL, None, "portal.example")
    assert result.outcome == ProbeOutcome.UNRECOGNIZED_PORTAL


def test_decode_body_rejects_invalid_utf8():
    assert decode_body(b"OK") == "OK"
    assert decode_body(b"\xff\xfe") is None


async def test_check_follows_redirect_to_portal():
    def handler(request):
        if request.url.host == "connectivity.test":
            return httpx.Response(302, headers={"Location": "https://portal.example/auth"})
        return httpx.Response(200, text="please log in")

    result = await make_probe(handler).check(TEST_URL, "OK")

    assert result.outcome == ProbeOutcome.CAPTIVE_PORTAL
    assert result.url == "https://portal.example/auth"
    assert result.body == "please log in"


async def test_check_success():
    result = await make_probe(lambda request: httpx.Response(200, text="OK")).check(TEST_URL, "OK")
    assert result.outcome == ProbeOutcome.AUTHENTICATED


async def test_status_code_is_ignored():
    result = await make_probe(lambda request: httpx.Response(503, text="OK")).check(TEST_URL, "OK")
    assert result.outcome == ProbeOutcome.AUTHENTICATED


async def test_binary_body_is_not_authenticated():
    probe = make_probe(lambda request: httpx.Response(200, content=b"\xff\xfe"))
    result = await probe.check(TEST_URL, "OK")
    assert result.outcome == ProbeOutcome.UNRECOGNIZED_PORTAL


async def test_connection_refused_is_unreachable():
    def handler(request):
        raise httpx.ConnectError("Connection refused", request=request)

    result = await make_probe(handler).check(TEST_URL, "OK")

    assert result.outcome == ProbeOutcome.UNREACHABLE
    assert "refused" in result.cause.lower()


async def test_timeout_is_unreachable():
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    result = await make_probe(handler).check(TEST_URL, "OK")

    assert result.outcome == ProbeOutcome.UNREACHABLE
    assert "timeout" in result.cause


async def test_each_check_uses_an_isolated_session():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, text="login", headers={"Set-Cookie": "session=abc; Path=/"})

    probe = make_probe(handler)
    await probe.check(TEST_URL, "OK")
    await probe.check(TEST_URL, "OK")

    assert len(seen) == 2
    assert "cookie" not in seen[1].headers
    assert seen[0].headers["cache-control"] == "no-cache"
    assert seen[1].headers["pragma"] == "no-cache"
