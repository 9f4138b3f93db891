import logging

import mss
import numpy as np
from mss.exception import ScreenShotError

from capture.frame_source import CaptureError, FrameSource
from frame.frame import Frame
from utils.logger import LOGGER_NAME

logger = logging.getLogger(LOGGER_NAME)

# mss hands back BGRA pixels
BGRA_TO_RGBA = [2, 1, 0, 3]


class MssFrameSource(FrameSource):
    """Monitor snapshots through mss."""

    def __init__(self, monitor_id: int = 1):
        """
        Args:
            monitor_id: Index into mss' monitor list (0 is all monitors combined)
        """
        self.monitor_id = monitor_id
        self._sct = None
        self._monitor = None

    def open(self):
        if self._sct is not None:
            return

        try:
            sct = mss.mss()
        except ScreenShotError as e:
            raise CaptureError(f"Failed to open screen capture: {e}") from e

        monitors = sct.monitors
        if not 0 <= self.monitor_id < len(monitors):
            sct.close()
            raise CaptureError(
                f"No monitor with id {self.monitor_id} "
                f"({len(monitors)} available: 0-{len(monitors) - 1})"
            )

        self._sct = sct
        self._monitor = monitors[self.monitor_id]
        logger.info(f"Capturing monitor {self.monitor_id}: {self._monitor}")

    def acquire(self) -> Frame:
        if self._sct is None:
            self.open()

        try:
            shot = self._sct.grab(self._monitor)
        except ScreenShotError as e:
            raise CaptureError(f"Failed to grab frame: {e}") from e

        try:
            return Frame.from_array(np.asarray(shot)[..., BGRA_TO_RGBA])
        except (IndexError, ValueError) as e:
            raise CaptureError(f"Unexpected frame from monitor {self.monitor_id}: {e}") from e

    def close(self):
        if self._sct is not None:
            self._sct.close()
            self._sct = None
            self._monitor = None
