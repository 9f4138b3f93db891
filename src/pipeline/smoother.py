from typing import Dict, Mapping, Optional

from pipeline.aggregator import RGB
from pipeline.region import Region

# Last smoothed color per region. Regions appear only once observed.
SmoothState = Dict[Region, RGB]

BASELINE: RGB = (0, 0, 0)


def smooth(previous: Optional[RGB], observed: RGB, alpha: float) -> RGB:
    """
    Exponential moving average of a color.

    smoothed = alpha * previous + (1 - alpha) * observed, truncated per channel.
    alpha near 1 holds the previous color, alpha near 0 follows the observation.

    Args:
        previous: Last smoothed color, None for a region not seen before
        observed: Color aggregated this cycle
        alpha: Smoothing factor in [0, 1]
    """
    if not 0.0 <= alpha <= 1.0:
        raise ValueError(f"Smoothing factor must be within [0, 1], got {alpha}")

    if previous is None:
        previous = BASELINE

    # Exact at both ends of the range
    if alpha == 1.0:
        return tuple(int(c) for c in previous)
    if alpha == 0.0:
        return tuple(int(c) for c in observed)

    r, g, b = (
        int(alpha * prev + (1.0 - alpha) * obs)
        for prev, obs in zip(previous, observed)
    )
    return (r, g, b)


def smooth_all(
    state: Mapping[Region, RGB], observed: Mapping[Region, RGB], alpha: float
) -> SmoothState:
    """Smooth every observed region against `state`, returning the next state."""
    next_state: SmoothState = dict(state)
    for region, color in observed.items():
        next_state[region] = smooth(state.get(region), color, alpha)
    return next_state
