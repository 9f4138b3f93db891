from enum import Enum
from typing import Tuple


class Region(Enum):
    """Screen area a light follows."""

    TOP = "top"
    BOTTOM = "bottom"
    LEFT = "left"
    RIGHT = "right"
    FULL = "full"

    @classmethod
    def parse(cls, value: str) -> "Region":
        """
        Look up a region by its settings name.

        Raises:
            ValueError: If the name is not one of top/bottom/left/right/full
        """
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            names = ", ".join(region.value for region in cls)
            raise ValueError(f"Unknown region {value!r}, expected one of: {names}")

    def bounds(self, width: int, height: int) -> Tuple[int, int, int, int]:
        """
        Rectangle covered by this region on a width x height frame.

        Returns:
            (x_start, x_end, y_start, y_end), end exclusive
        """
        if self is Region.TOP:
            return 0, width, 0, height // 3
        if self is Region.BOTTOM:
            return 0, width, 2 * height // 3, height
        if self is Region.LEFT:
            return 0, width // 3, 0, height
        if self is Region.RIGHT:
            return 2 * width // 3, width, 0, height
        return 0, width, 0, height

    def __str__(self) -> str:
        return self.value
