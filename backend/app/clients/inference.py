"""Inference endpoint client."""

import re
from typing import Any

import httpx
import orjson

from core.errors import NetworkError

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


def extract_json_object(body: str) -> dict:
    """Decode a JSON object, tolerating prose around it.

    Raises:
        ValueError: No JSON object could be decoded
    """
    try:
        data = orjson.loads(body)
    except orjson.JSONDecodeError:
        match = _JSON_OBJECT.search(body)
        if match is None:
            raise ValueError("response contains no JSON object")
        try:
            data = orjson.loads(match.group(0))
        except orjson.JSONDecodeError as e:
            raise ValueError(f"response JSON is malformed: {e}") from e

    if not isinstance(data, dict):
        raise ValueError("response JSON is not an object")
    return data


class InferenceClient:
    """Client for the external signal inference endpoint.

    Request: ``{symbol, currentPrice, RSI, EMA7, tier}``.
    Response: ``{signal, confidence, trend, patternsDetected[], keySupport,
    keyResistance, reasoning}``; field validation is left to the caller.
    """

    def __init__(
        self,
        url: str,
        api_key: str = "",
        timeout: float = 20.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.url = url
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def enabled(self) -> bool:
        return bool(self.url)

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            headers = {"Content-Type": "application/json"}
            if self.api_key:
                headers["Authorization"] = f"Bearer {self.api_key}"
            self._client = httpx.AsyncClient(
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

    async def analyze(self, payload: dict[str, Any]) -> dict:
        """
        Request an analysis.

        Raises:
            NetworkError: Endpoint unreachable, timed out, returned an error
                status or an undecodable body
        """
        client = await self._get_client()
        try:
            response = await client.post(self.url, content=orjson.dumps(payload))
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise NetworkError(f"Inference request failed: {e}") from e

        try:
            return extract_json_object(response.text)
        except ValueError as e:
            raise NetworkError(f"Inference response unusable: {e}") from e
