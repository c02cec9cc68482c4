"""
JSON-over-HTTP transport shared by the bundler and paymaster clients
"""

import asyncio
import logging
from typing import Any, Dict

import requests

from errors import TransportError

logger = logging.getLogger(__name__)


class HttpTransport:
    """POSTs JSON bodies and returns decoded JSON. Fail-fast, no retry."""

    def __init__(self, timeout: int = 30):
        self.timeout = timeout

    async def post_json(self, url: str, body: Dict[str, Any]) -> Any:
        return await asyncio.to_thread(self._post, url, body)

    def _post(self, url: str, body: Dict[str, Any]) -> Any:
        try:
            response = requests.post(
                url,
                json=body,
                headers={'Content-Type': 'application/json'},
                timeout=self.timeout
            )
        except requests.RequestException as e:
            logger.error(f"Request to {url} failed: {e}")
            raise TransportError(f"Request to {url} failed: {e}") from e

        if response.status_code != 200:
            logger.error(f"HTTP error: {response.status_code}")
            raise TransportError(
                f"HTTP error {response.status_code} from {url}",
                status_code=response.status_code,
                body=response.text,
            )

        try:
            return response.json()
        except ValueError as e:
            raise TransportError(
                f"Invalid JSON response from {url}",
                status_code=response.status_code,
                body=response.text,
            ) from e
