"""REST client for the WhatsApp bridge (Baileys session host)."""

import logging
from typing import Any, Dict, List, Optional

import httpx

from leadbot.errors import TransportError

logger = logging.getLogger(__name__)


class BridgeTransport:
    """Async client for the WhatsApp bridge REST API."""

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize bridge client.

        Args:
            base_url: Base URL of the bridge
            token: Bearer token, if the bridge requires one
            timeout: Request timeout in seconds
            transport: Optional httpx transport (tests)
        """
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self.transport = transport

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _url(self, endpoint: str) -> str:
        if endpoint.startswith(("http://", "https://")):
            return endpoint
        return f"{self.base_url}/{endpoint.lstrip('/')}"

    async def _request(
        self, method: str, endpoint: str, payload: Optional[Dict[str, Any]] = None
    ) -> httpx.Response:
        """Make one bridge request; outbound sends are never retried.

        Raises:
            TransportError: Timeout, connection error or non-2xx status
        """
        url = self._url(endpoint)
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self.transport
            ) as client:
                response = await client.request(
                    method, url, json=payload, headers=self._headers()
                )
        except httpx.TimeoutException as e:
            raise TransportError(f"Timeout at {endpoint}") from e
        except httpx.HTTPError as e:
            raise TransportError(f"Error at {endpoint}: {e}") from e

        if response.status_code not in (200, 201, 202, 204):
            raise TransportError(
                f"HTTP {response.status_code} at {endpoint}: {response.text[:200]}"
            )
        return response

    async def send_message(self, jid: str, text: str):
        """Send a text message."""
        await self._request("POST", "messages/send", {"jid": jid, "message": {"text": text}})
        logger.info(f"Sent message to {jid}")

    async def send_presence_update(self, jid: str, presence: str = "composing"):
        """Show a presence hint ("composing", "paused", ...) in the chat."""
        await self._request("POST", "presence", {"jid": jid, "presence": presence})

    async def read_messages(self, keys: List[Dict[str, Any]]):
        """Mark inbound messages as read."""
        await self._request("POST", "messages/read", {"keys": keys})

    async def download_media(self, media_url: str) -> bytes:
        """Download media (voice notes) referenced by an inbound message."""
        response = await self._request("GET", media_url)
        logger.info(f"Downloaded {len(response.content)} bytes of media")
        return response.content

    async def reconnect(self):
        """Ask the bridge to re-open its WhatsApp session."""
        await self._request("POST", "session/reconnect")
        logger.info("Requested bridge reconnect")
