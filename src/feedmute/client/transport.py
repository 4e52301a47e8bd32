"""Transports that carry single comparison requests to the oracle."""

from typing import Optional, Protocol

import httpx

from ..errors import OracleRequestError
from ..logging import get_logger

logger = get_logger(__name__)


class OracleTransport(Protocol):
    """One comparison round-trip to the similarity oracle."""

    async def compare(self, img1: str, img2: str) -> float:
        ...


class HttpOracleTransport:
    """POST /compare against a running oracle server."""

    def __init__(
        self,
        server_url: str = "http://localhost:3000",
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.server_url = server_url.rstrip("/")
        self._timeout = timeout
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.server_url,
                headers={"Content-Type": "application/json"},
                timeout=httpx.Timeout(self._timeout, connect=5.0),
            )
        return self._client

    async def compare(self, img1: str, img2: str) -> float:
        """
        Ask the oracle for the similarity of two image URLs.

        Raises:
            OracleRequestError: On transport errors, non-success status or a
                malformed body
        """
        client = await self._get_client()
        try:
            response = await client.post("/compare", json={"img1": img1, "img2": img2})
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise OracleRequestError(f"Oracle request failed for {img1} vs {img2}: {exc}") from exc

        value = data.get("similarity") if isinstance(data, dict) else None
        if not isinstance(value, (int, float)):
            raise OracleRequestError(f"Oracle returned no similarity for {img1} vs {img2}")
        return min(1.0, max(0.0, float(value)))

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None
