"""Connectivity probe: one isolated HTTP GET, classified against the portal."""

import logging

import httpx

from .models import ProbeResult

logger = logging.getLogger(__name__)

NO_CACHE_HEADERS = {"Cache-Control": "no-cache", "Pragma": "no-cache"}


def decode_body(content: bytes) -> str | None:
    """Decode a response body as UTF-8, None when it is not valid text."""
    try:
        return content.decode("utf-8")
    except UnicodeDecodeError:
        return None


def classify(
    body: str | None,
    final_url: httpx.URL | str,
    expected_body: str | None,
    portal_host: str | None,
) -> ProbeResult:
    """Classify a completed probe response.

    Pure function of (body, final URL host): the status code is never looked
    at, since portals commonly answer 200 with their login page.

    Args:
        body: Decoded response body, None if it was not valid UTF-8
        final_url: URL of the last response after following redirects
        expected_body: Body served by the test URL when the internet is reachable
        portal_host: Host of the operator's portal

    Returns:
        ProbeResult: authenticated, captive_portal or unrecognized_portal
    """
    if body is not None and expected_body is not None and body == expected_body:
        return ProbeResult.authenticated()

    url = httpx.URL(str(final_url))
    if portal_host and url.host == portal_host:
        return ProbeResult.captive_portal(str(url), body)

    return ProbeResult.unrecognized_portal(str(url), body)


class ConnectivityProbe:
    """Determines whether the machine has internet access or sits behind a portal.

    Every check uses a fresh client: no cookie, connection or cache is shared
    between probes, so the result reflects the network's current interception
    state.
    """

    def __init__(
        self,
        portal_host: str | None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.portal_host = portal_host
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            follow_redirects=True,
            timeout=self.timeout,
            headers=NO_CACHE_HEADERS,
            transport=self._transport,
        )

    async def check(self, test_url: str, expected_body: str | None) -> ProbeResult:
        """Probe the test URL once. Never raises for network problems."""
        try:
            async with self._client() as client:
                response = await client.get(test_url)
        except httpx.TimeoutException as e:
            logger.info(f"Connectivity check timed out (offline?): {test_url}")
            return ProbeResult.unreachable(f"timeout: {e}")
        except httpx.RequestError as e:
            logger.info(f"Request failed (offline?): {e}")
            return ProbeResult.unreachable(str(e) or e.__class__.__name__)

        result = classify(
            decode_body(response.content), response.url, expected_body, self.portal_host
        )
        logger.debug(f"Connectivity check {test_url} -> {result.describe()}")
        return result
