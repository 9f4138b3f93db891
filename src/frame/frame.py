from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True)
class Frame:
    """
    A single captured screen image.

    Attributes:
        width: Width in pixels
        height: Height in pixels
        buffer: Interleaved, row-major RGB (3 channels) or RGBA (4 channels) bytes
        channels: 3 for RGB, 4 for RGBA
    """

    width: int
    height: int
    buffer: bytes
    channels: int = 3

    def __post_init__(self):
        """
        Raises:
            ValueError: If the dimensions are not positive, the channel count is
                unsupported or the buffer is too short for the dimensions
        """
        if self.width <= 0 or self.height <= 0:
            raise ValueError("Frame dimensions must be positive")

        if self.channels not in (3, 4):
            raise ValueError("Frame must have 3 (RGB) or 4 (RGBA) channels")

        if len(self.buffer) < self.width * self.height * self.channels:
            raise ValueError(
                f"Buffer of {len(self.buffer)} bytes is too short for "
                f"{self.width}x{self.height}x{self.channels}"
            )

    @classmethod
    def from_array(cls, image: np.ndarray) -> "Frame":
        """Build a frame from an (height, width, channels) uint8 RGB/RGBA array."""
        if image.ndim != 3:
            raise ValueError("Image must have shape (height, width, channels)")

        height, width, channels = image.shape
        data = np.ascontiguousarray(image, dtype=np.uint8).tobytes()
        return cls(width=width, height=height, buffer=data, channels=channels)

    @property
    def has_alpha(self) -> bool:
        return self.channels == 4

    def pixels(self) -> np.ndarray:
        """Read-only (height, width, channels) view over the buffer."""
        size = self.width * self.height * self.channels
        view = np.frombuffer(self.buffer, dtype=np.uint8, count=size)
        return view.reshape(self.height, self.width, self.channels)

    def __repr__(self) -> str:
        return f"Frame({self.width}x{self.height}, channels={self.channels})"
