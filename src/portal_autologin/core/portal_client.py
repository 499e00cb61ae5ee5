"""HTTP calls made against the captive portal itself."""

import logging

import httpx

from .connectivity import NO_CACHE_HEADERS, decode_body
from .models import Credentials

logger = logging.getLogger(__name__)

FORM_HEADERS = {"Content-Type": "application/x-www-form-urlencoded"}


class PortalClient:
    """Submits credentials to the portal and fires logout requests."""

    def __init__(self, timeout: float = 10.0, transport: httpx.AsyncBaseTransport | None = None):
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            follow_redirects=True,
            timeout=self.timeout,
            headers=NO_CACHE_HEADERS,
            transport=self._transport,
        )

    async def submit_credentials(self, url: str, credentials: Credentials) -> str | None:
        """POST the login form to the portal.

        The outcome is inconclusive by nature: only the next probe tells whether
        the portal accepted the credentials. Transport failures are logged and
        reported as None instead of raised.

        Returns:
            The decoded response body, or None if the request failed
        """
        logger.info(f"Submitting credentials for '{credentials.username}' to {url}")
        try:
            async with self._client() as client:
                response = await client.post(
                    url, content=credentials.form_body(), headers=FORM_HEADERS
                )
        except httpx.RequestError as e:
            logger.warning(f"Login submission failed, re-probing anyway: {e}")
            return None

        logger.debug(f"Login submission answered HTTP {response.status_code}")
        return decode_body(response.content)

    async def logout(self, url: str) -> bool:
        """Fire a single logout GET. Best effort, no retry."""
        logger.info(f"Logging out via {url}")
        try:
            async with self._client() as client:
                response = await client.get(url)
        except httpx.RequestError as e:
            logger.warning(f"Logout request failed: {e}")
            return False

        logger.debug(f"Logout answered HTTP {response.status_code}")
        return True
