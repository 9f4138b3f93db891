import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Sequence, Tuple

from frame.frame import Frame
from pipeline.aggregator import RGB
from pipeline.region import Region
from pipeline.smoother import SmoothState, smooth_all
from utils.color.color_utils import calculate_brightness
from utils.logger import LOGGER_NAME

logger = logging.getLogger(LOGGER_NAME)

Aggregate = Callable[[Frame, Region], RGB]


@dataclass(frozen=True)
class LightTarget:
    """A Home Assistant light entity and the screen region it follows."""

    entity_id: str
    region: Region


@dataclass(frozen=True)
class DispatchRequest:
    """One light's color for one cycle."""

    entity_id: str
    rgb_color: RGB
    brightness: int

    def to_service_data(self) -> dict:
        """Body of a light.turn_on service call."""
        return {
            "entity_id": self.entity_id,
            "rgb_color": list(self.rgb_color),
            "brightness": self.brightness,
        }


class FanOutResolver:
    """
    Turns one frame into one DispatchRequest per light.

    Each distinct region is aggregated and smoothed once per cycle, however
    many lights watch it; lights sharing a region get the same color.
    """

    def __init__(
        self,
        aggregate: Aggregate,
        smoothing_factor: float,
        brightness_scale: int = 255,
    ):
        self.aggregate = aggregate
        self.smoothing_factor = smoothing_factor
        self.brightness_scale = brightness_scale

    @staticmethod
    def distinct_regions(lights: Sequence[LightTarget]) -> List[Region]:
        """Regions referenced by `lights`, first-seen order, no repeats."""
        return list(dict.fromkeys(light.region for light in lights))

    def observe(self, frame: Frame, lights: Sequence[LightTarget]) -> Dict[Region, RGB]:
        """Aggregate each referenced region of `frame` exactly once."""
        return {
            region: self.aggregate(frame, region)
            for region in self.distinct_regions(lights)
        }

    def resolve(
        self, frame: Frame, lights: Sequence[LightTarget], state: SmoothState
    ) -> Tuple[List[DispatchRequest], SmoothState]:
        """
        Run one cycle's aggregation, smoothing and fan-out.

        Args:
            frame: This cycle's frame
            lights: Configured light targets
            state: Smoothed colors committed by the previous cycle (not modified)

        Returns:
            (one request per light in `lights` order, the next SmoothState)
        """
        observed = self.observe(frame, lights)
        next_state = smooth_all(state, observed, self.smoothing_factor)

        for region, color in observed.items():
            logger.debug(f"{region}: observed {color}, smoothed {next_state[region]}")

        requests = []
        for light in lights:
            color = next_state[light.region]
            requests.append(
                DispatchRequest(
                    entity_id=light.entity_id,
                    rgb_color=color,
                    brightness=calculate_brightness(color, self.brightness_scale),
                )
            )
        return requests, next_state
