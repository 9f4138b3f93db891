from typing import Sequence

# Home Assistant accepts brightness on a 0-255 scale; some integrations
# expose the wider 16-bit scale instead.
BRIGHTNESS_SCALES = (255, 65535)


def calculate_brightness(rgb_values: Sequence[int], scale: int = 255) -> int:
    """
    Calculate brightness from RGB values.

    V from the HSV color model, i.e. the maximum channel, mapped onto
    the requested brightness scale.

    Args:
        rgb_values: List or tuple of RGB values [R, G, B] (0-255)
        scale: Upper bound of the brightness range (255 or 65535)

    Returns:
        Brightness value from 0 to scale
    """
    if scale not in BRIGHTNESS_SCALES:
        raise ValueError(f"Unsupported brightness scale: {scale}")

    r, g, b = rgb_values
    v = max(r, g, b)
    return int(v) * scale // 255
