#!/usr/bin/env python3
"""
OpenRouter Vision Client

Sends the compressed batch summary to a vision-capable model on OpenRouter
and returns the generated text. Uses aiohttp for direct HTTP calls.
"""

import asyncio
import base64
import json
import logging
from typing import Optional

import aiohttp

from ..errors import AnalysisFailed
from ..schemas import vision_messages

logger = logging.getLogger(__name__)

OPENROUTER_URL = "https://openrouter.ai/api/v1/chat/completions"


class VisionClient:
    """OpenRouter client for vision completions using aiohttp."""

    def __init__(
        self,
        api_key: Optional[str],
        model: str = "openai/gpt-4.1",
        api_url: str = OPENROUTER_URL,
        max_tokens: int = 1000,
        temperature: float = 0.7,
        timeout: float = 120,
    ):
        self.api_key = api_key
        self.model = model
        self.api_url = api_url
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.timeout = timeout

        masked = f"{api_key[:6]}...{api_key[-4:]}" if api_key and len(api_key) > 10 else "None"
        logger.info(f"Vision client initialized (model: {self.model}, key: {masked})")

    async def analyze(self, prompt_text: str, image_bytes: bytes) -> str:
        """
        Ask the model to analyze one image.

        Args:
            prompt_text: System prompt describing what to produce
            image_bytes: Encoded JPEG image

        Returns:
            The model response text

        Raises:
            AnalysisFailed: on a missing key, transport error, non-200 status,
                malformed body or empty content
        """
        if not self.api_key:
            raise AnalysisFailed("OpenRouter key not configured. Set OPENROUTER_API_KEY.")

        base64_image = base64.b64encode(image_bytes).decode()
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "HTTP-Referer": "http://localhost",
            "X-Title": "recap batch analysis",
        }
        payload = {
            "model": self.model,
            "messages": vision_messages(prompt_text, base64_image),
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
        }

        logger.info("OpenRouter vision completion request")
        logger.info(f"   Model: {self.model}")
        logger.info(f"   Prompt length: {len(prompt_text)} characters")
        logger.info(f"   Image size: {len(base64_image)} base64 characters")

        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(
                    self.api_url,
                    headers=headers,
                    json=payload,
                    timeout=aiohttp.ClientTimeout(total=self.timeout),
                ) as response:
                    response_text = await response.text()
                    if response.status != 200:
                        raise AnalysisFailed(f"OpenRouter API error {response.status}: {response_text}")
        except asyncio.TimeoutError as e:
            raise AnalysisFailed(f"OpenRouter request timeout after {self.timeout}s") from e
        except aiohttp.ClientError as e:
            raise AnalysisFailed(f"OpenRouter request failed: {e}") from e

        try:
            content = json.loads(response_text)["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise AnalysisFailed(f"Unexpected OpenRouter response: {response_text[:200]}") from e

        if not content or not content.strip():
            raise AnalysisFailed("OpenRouter returned empty response")

        logger.info(f"OpenRouter vision success ({len(content)} characters)")
        return content
