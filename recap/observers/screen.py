from __future__ import annotations
###############################################################################
# Imports                                                                     #
###############################################################################

# — Standard library —
import asyncio
import logging
from datetime import datetime
from typing import Any, Callable, Optional

# — Third-party —
import mss
import mss.exception
from PIL import Image

# — Local —
from ..batch_store import Capture
from ..errors import CaptureUnavailable

log = logging.getLogger("Screen")

###############################################################################
# Screen capture                                                              #
###############################################################################


def _pointer_position() -> tuple[float, float]:
    """Current mouse pointer position in global screen coordinates."""
    # pynput selects a platform backend on import and fails without a display
    from pynput import mouse
    return mouse.Controller().position


class Screen:
    """Capture provider for the display under the mouse pointer.

    Displays are enumerated through ``mss``; the first entry of
    ``sct.monitors`` (the union of all screens) is skipped so display index 0
    is the first physical display.

    Args:
        sct_factory (Callable, optional): Returns an ``mss`` context manager.
            Defaults to ``mss.mss``.
        pointer (Callable, optional): Returns the pointer ``(x, y)``.
            Defaults to a ``pynput`` mouse controller.
        clock (Callable, optional): Returns the capture timestamp.

    Attributes:
        last_used_fallback (bool): True when the most recent capture could not
            match the pointer to a display and used the first one instead.
    """

    _MON_START: int = 1     # first real display in mss

    # ─────────────────────────────── construction
    def __init__(
        self,
        sct_factory: Callable[[], Any] = mss.mss,
        pointer: Callable[[], tuple[float, float]] = _pointer_position,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._sct_factory = sct_factory
        self._pointer = pointer
        self._clock = clock
        self.last_used_fallback = False

    # ─────────────────────────────── tiny sync helpers
    @staticmethod
    def _mon_for(x: float, y: float, mons: list[dict]) -> Optional[int]:
        """Find which monitor contains the given coordinates.

        Returns:
            Optional[int]: 0-based monitor index if found, None otherwise.
        """
        for idx, m in enumerate(mons):
            if m["left"] <= x < m["left"] + m["width"] and m["top"] <= y < m["top"] + m["height"]:
                return idx
        return None

    def resolve_display(self, mons: list[dict]) -> tuple[int, bool]:
        """Pick the display under the pointer.

        Returns:
            tuple[int, bool]: the display index and whether the first display
            was used as a fallback.
        """
        if not mons:
            raise CaptureUnavailable("no displays available")
        try:
            x, y = self._pointer()
        except Exception as e:
            log.warning(f"Pointer position unavailable ({e}), using first display")
            return 0, True

        idx = self._mon_for(x, y, mons)
        if idx is None:
            log.info(
                f"Pointer @({x:.1f},{y:.1f}) is outside all displays "
                f"{[(m['left'], m['top'], m['width'], m['height']) for m in mons]}; using first display"
            )
            return 0, True
        return idx, False

    def _grab(self, display_index: Optional[int]) -> Capture:
        try:
            with self._sct_factory() as sct:
                mons = list(sct.monitors[self._MON_START:])
                if display_index is None:
                    idx, fallback = self.resolve_display(mons)
                elif 0 <= display_index < len(mons):
                    idx, fallback = display_index, False
                else:
                    raise CaptureUnavailable(
                        f"display {display_index} not found ({len(mons)} available)"
                    )
                frame = sct.grab(mons[idx])
        except mss.exception.ScreenShotError as e:
            raise CaptureUnavailable(f"screen grab failed: {e}") from e

        self.last_used_fallback = fallback
        image = Image.frombytes("RGB", (frame.width, frame.height), frame.rgb)
        return Capture(
            display_index=idx,
            captured_at=self._clock(),
            image=image,
            source_id=f"screen:{idx}",
            metadata={"fallback": fallback, "monitor": dict(mons[idx])},
        )

    # ─────────────────────────────── public API
    async def capture(self, display_index: Optional[int] = None) -> Capture:
        """Capture one display.

        Args:
            display_index (Optional[int]): Display to capture. Defaults to the
                display under the pointer.

        Raises:
            CaptureUnavailable: if no matching display can be captured.
        """
        capture = await asyncio.to_thread(self._grab, display_index)
        log.debug(f"Captured display {capture.display_index} ({capture.width}x{capture.height})")
        return capture

    def log_display_info(self) -> None:
        """Log the available displays and where the pointer is."""
        try:
            with self._sct_factory() as sct:
                mons = list(sct.monitors[self._MON_START:])
            for i, m in enumerate(mons):
                log.info(f"Display {i}: left={m['left']} top={m['top']} {m['width']}x{m['height']}")
            x, y = self._pointer()
            log.info(f"Cursor position: ({x:.0f}, {y:.0f}) -> display {self._mon_for(x, y, mons)}")
        except Exception as e:
            log.error(f"Error logging display info: {e}")
