"""Clock probe: reads a trustworthy timestamp from the hosted backend."""

from datetime import datetime, timezone
from email.utils import parsedate_to_datetime

import httpx

from core.errors import NetworkError


class ClockProbe:
    """Issues a lightweight HEAD request and reads the ``Date`` header.

    Only the header is used; the response body and status are ignored.
    """

    PROBE_PATH = "/rest/v1/premium_codes"

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            headers = {}
            if self.api_key:
                headers["apikey"] = self.api_key
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=headers,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def server_time(self) -> datetime | None:
        """
        Fetch the server's current time.

        Returns:
            Server time (UTC), or None if the response carries no usable
            ``Date`` header

        Raises:
            NetworkError: The backend could not be reached
        """
        client = await self._get_client()
        try:
            response = await client.head(
                self.PROBE_PATH, params={"select": "id", "limit": 1}
            )
        except httpx.HTTPError as e:
            raise NetworkError(f"Clock probe failed: {e}") from e

        date_header = response.headers.get("date")
        if not date_header:
            return None

        try:
            server_time = parsedate_to_datetime(date_header)
        except (TypeError, ValueError):
            return None

        if server_time.tzinfo is None:
            server_time = server_time.replace(tzinfo=timezone.utc)
        return server_time.astimezone(timezone.utc)
