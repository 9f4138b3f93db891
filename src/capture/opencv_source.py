import logging

import cv2

from capture.frame_source import CaptureError, FrameSource
from frame.frame import Frame
from utils.logger import LOGGER_NAME

logger = logging.getLogger(LOGGER_NAME)


class OpenCVFrameSource(FrameSource):
    """Polls a capture device (HDMI grabber, webcam) through OpenCV."""

    def __init__(self, device_id: int = 0, width: int | None = None, height: int | None = None):
        """
        Args:
            device_id: OpenCV capture device index
            width: Requested capture width, device default if None
            height: Requested capture height, device default if None
        """
        self.device_id = device_id
        self.width = width
        self.height = height
        self.video_stream = None

    def open(self):
        if self.video_stream is not None:
            return

        cap = cv2.VideoCapture(self.device_id)
        if not cap.isOpened():
            cap.release()
            raise CaptureError(f"No capture device with id {self.device_id}")

        # Set resolution before capturing frames
        if self.width:
            cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.width)
        if self.height:
            cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.height)

        self.video_stream = cap
        logger.info(f"Capturing from device {self.device_id}")

    def acquire(self) -> Frame:
        if self.video_stream is None:
            self.open()

        ret, image = self.video_stream.read()
        if not ret or image is None:
            raise CaptureError(f"Device {self.device_id} returned no frame")

        try:
            return Frame.from_array(cv2.cvtColor(image, cv2.COLOR_BGR2RGB))
        except (cv2.error, ValueError) as e:
            raise CaptureError(f"Unexpected frame from device {self.device_id}: {e}") from e

    def close(self):
        """Release all resources"""
        if self.video_stream is not None and self.video_stream.isOpened():
            self.video_stream.release()
        self.video_stream = None
