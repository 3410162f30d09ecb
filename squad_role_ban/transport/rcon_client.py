from typing import Any, Dict, Optional

import httpx
from loguru import logger
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
)

# Define common HTTP status codes that warrant a retry
RETRYABLE_STATUS_CODES = {408, 429, 500, 502, 503, 504}


class TransportError(Exception):
    """Custom exception for warn delivery errors."""

    pass


class AuthenticationError(TransportError):
    """Exception raised for authentication failures (401, 403)."""

    pass


class RateLimitError(TransportError):
    """Exception raised for rate limit errors (429)."""

    pass


class RconWarnClient:
    """Delivers in-game warnings through an HTTP bridge in front of RCON."""

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self.client = client or httpx.AsyncClient(
            base_url=base_url,
            timeout=httpx.Timeout(10.0),
            headers=headers,
        )

    async def warn(self, player_id: str, message: str) -> None:
        """Sends one warning message to a player.

        Raises:
            TransportError: When the bridge rejects the message.
            httpx.HTTPError: When the bridge stays unreachable after retries.
        """
        logger.debug(f"Warn {player_id}: {message!r}")
        await self._post("/warn", {"player_id": player_id, "message": message})

    @retry(
        stop=stop_after_attempt(4),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception_type(
            (httpx.RequestError, httpx.HTTPStatusError, RateLimitError)
        ),
        reraise=True,
    )
    async def _post(self, url: str, json_data: Dict[str, Any]) -> httpx.Response:
        """Makes a POST request to the bridge with retry logic."""
        try:
            response = await self.client.post(url, json=json_data)

            if response.status_code in {401, 403}:
                logger.warning(
                    f"Authentication error ({response.status_code}) from RCON bridge at {url}. Check the bridge token."
                )
                raise AuthenticationError(
                    f"RCON bridge authentication failed ({response.status_code})"
                )

            if response.status_code == 429:
                retry_after = response.headers.get("Retry-After")
                logger.warning(
                    f"Rate limit hit (429) at RCON bridge {url}. Retry-After: {retry_after}"
                )
                raise RateLimitError("Rate limited by RCON bridge")

            response.raise_for_status()
            return response

        except httpx.HTTPStatusError as e:
            if e.response.status_code in RETRYABLE_STATUS_CODES:
                logger.warning(
                    f"Retrying RCON bridge request due to status {e.response.status_code}: {e}"
                )
                raise
            logger.error(f"HTTP error from RCON bridge: {e.response.status_code} - {e}")
            raise TransportError(f"HTTP error: {e.response.status_code}") from e
        except httpx.RequestError as e:
            logger.warning(f"Request error for RCON bridge, retrying: {e}")
            raise

    async def close(self):
        """Closes the underlying HTTP client."""
        await self.client.aclose()
        logger.info("Closed HTTP client for RCON bridge")
