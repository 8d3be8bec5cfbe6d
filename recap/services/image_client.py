"""
Image generation through the OpenAI images API.
"""

import base64
import binascii
import logging
from typing import Optional

from openai import AsyncOpenAI, OpenAIError

from ..errors import GenerationFailed

logger = logging.getLogger(__name__)


class ImageClient:
    """Generates a single image from a text prompt."""

    def __init__(
        self,
        api_key: Optional[str],
        model: str = "gpt-image-1",
        size: str = "1024x1024",
        api_base: Optional[str] = None,
        client: Optional[AsyncOpenAI] = None,
    ):
        self.model = model
        self.size = size
        self.client = client
        if self.client is None and api_key:
            self.client = AsyncOpenAI(api_key=api_key, base_url=api_base)

    async def generate_image(self, prompt_text: str) -> bytes:
        """Return the decoded image for ``prompt_text``.

        Raises:
            GenerationFailed: if the client is not configured, the request
                fails or the response holds no image data.
        """
        if self.client is None:
            raise GenerationFailed("OpenAI API key not configured. Set OPENAI_API_KEY.")

        logger.info(f"Generating image with model: {self.model}")
        try:
            rsp = await self.client.images.generate(
                model=self.model,
                prompt=prompt_text,
                n=1,
                size=self.size,
            )
        except OpenAIError as e:
            raise GenerationFailed(f"image generation request failed: {e}") from e

        if not rsp or not rsp.data:
            raise GenerationFailed("Invalid response structure from image generation")
        b64 = rsp.data[0].b64_json
        if not b64:
            raise GenerationFailed("Response missing image data")

        try:
            image = base64.b64decode(b64)
        except (binascii.Error, ValueError) as e:
            raise GenerationFailed(f"image data is not valid base64: {e}") from e
        logger.info(f"Received generated image ({len(image)} bytes)")
        return image
