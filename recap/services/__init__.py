"""
External provider adapters: vision analysis, image generation and webhook delivery.
"""

from .vision_client import VisionClient
from .image_client import ImageClient
from .webhook import WebhookClient

__all__ = ["VisionClient", "ImageClient", "WebhookClient"]
