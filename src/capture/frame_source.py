from abc import ABC, abstractmethod

from frame.frame import Frame


class CaptureError(Exception):
    """The frame source could not produce a frame."""


class FrameSource(ABC):
    """
    Something that produces screen frames on demand.

    A source is owned by a single consumer: open, acquire and close are
    always called from the same thread.
    """

    def open(self) -> None:
        """
        Acquire the underlying capture resource.

        Raises:
            CaptureError: If the configured monitor/device does not exist
        """

    @abstractmethod
    def acquire(self) -> Frame:
        """
        Grab the next frame.

        Raises:
            CaptureError: If no frame is available right now
        """

    def close(self) -> None:
        """Release the capture resource."""
