"""Shared helpers for the recap test modules."""

import os
import sys
from datetime import datetime, timedelta

import pytest
from PIL import Image

# Add the project root to the path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from recap.batch_store import Capture
from recap.errors import AnalysisFailed, GenerationFailed

BASE_TIME = datetime(2025, 3, 14, 9, 30, 0)

PALETTE = [
    (230, 25, 75), (60, 180, 75), (255, 225, 25), (0, 130, 200), (245, 130, 48),
    (145, 30, 180), (70, 240, 240), (240, 50, 230), (210, 245, 60), (250, 190, 212),
    (0, 128, 128), (220, 190, 255),
]


def make_capture(i: int = 0, size=(80, 60), display_index: int = 0, when: datetime = None) -> Capture:
    """A solid-color capture whose color identifies its position in a batch."""
    return Capture(
        display_index=display_index,
        captured_at=when or BASE_TIME + timedelta(minutes=i),
        image=Image.new("RGB", size, PALETTE[i % len(PALETTE)]),
        source_id=f"screen:{display_index}",
    )


class FakeVision:
    def __init__(self, text="Shipped the grid composer today.", error=None):
        self.text = text
        self.error = error
        self.calls = []

    async def analyze(self, prompt_text, image_bytes):
        self.calls.append((prompt_text, image_bytes))
        if self.error:
            raise self.error
        return self.text


class FakeImages:
    def __init__(self, image=b"\x89PNG fake", error=None):
        self.image = image
        self.error = error
        self.calls = []

    async def generate_image(self, prompt_text):
        self.calls.append(prompt_text)
        if self.error:
            raise self.error
        return self.image


class FakeWebhook:
    def __init__(self, ok=True):
        self.ok = ok
        self.calls = []

    async def deliver(self, text, image_bytes):
        self.calls.append((text, image_bytes))
        return self.ok


class FakeClock:
    """Returns increasing timestamps, one second apart."""

    def __init__(self, start: datetime = BASE_TIME, step: timedelta = timedelta(seconds=1)):
        self.now = start
        self.step = step

    def __call__(self) -> datetime:
        current = self.now
        self.now += self.step
        return current


@pytest.fixture
def vision():
    return FakeVision()


@pytest.fixture
def failing_vision():
    return FakeVision(error=AnalysisFailed("model unavailable"))


@pytest.fixture
def images():
    return FakeImages()


@pytest.fixture
def failing_images():
    return FakeImages(error=GenerationFailed("quota exceeded"))


@pytest.fixture
def webhook():
    return FakeWebhook()
