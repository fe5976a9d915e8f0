"""Completion callbacks for batch requests.

Fires a single POST to the caller-supplied URL when a batch finishes.
Delivery is best-effort: failures are logged and never retried.
"""

from typing import Any

import httpx

from ..logging import get_context_logger

logger = get_context_logger(__name__)


class WebhookNotifier:
    """Posts batch completion payloads to client webhooks."""

    def __init__(self, timeout: float = 10.0, client: httpx.AsyncClient | None = None):
        self.timeout = timeout
        self._client = client

    async def notify(self, url: str, payload: dict[str, Any]) -> bool:
        """Send ``payload`` as JSON to ``url``.

        Returns:
            True if the endpoint answered with a 2xx status
        """
        try:
            if self._client is not None:
                response = await self._client.post(url, json=payload, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(url, json=payload)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(f"Webhook delivery to {url} failed: {e}")
            return False

        logger.info(f"Webhook delivered to {url}")
        return True
