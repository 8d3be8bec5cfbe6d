"""
Webhook delivery of the generated post text and image.
"""

import asyncio
import base64
import logging
from typing import Optional

import aiohttp

from ..schemas import WebhookPayload

logger = logging.getLogger(__name__)


class WebhookClient:
    """POSTs ``{"content": ..., "image": ...}`` as JSON to a webhook URL."""

    def __init__(self, url: Optional[str], timeout: float = 60):
        self.url = url
        self.timeout = timeout

    async def deliver(self, text: str, image_bytes: Optional[bytes]) -> bool:
        """Send the payload.

        Returns:
            bool: True on a 2xx response. A missing URL, a transport error or
            any other status is reported as False and logged.
        """
        if not self.url:
            logger.error("Webhook URL not found. Please set WEBHOOK_URL.")
            return False

        payload = WebhookPayload(
            content=text,
            image=base64.b64encode(image_bytes).decode() if image_bytes else None,
        )

        logger.info(f"Sending content to webhook: {self.url}")
        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(
                    self.url,
                    json=payload.model_dump(),
                    timeout=aiohttp.ClientTimeout(total=self.timeout),
                ) as response:
                    if not 200 <= response.status < 300:
                        error_text = await response.text()
                        logger.error(f"Failed to send to webhook: {response.status} {response.reason} - {error_text[:200]}")
                        return False
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"Error sending to webhook: {e}")
            return False

        logger.info("Successfully sent to webhook")
        return True
