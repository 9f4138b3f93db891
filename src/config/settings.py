import json
import os
from dataclasses import dataclass
from typing import Any, Callable, Dict, Tuple

from constants import (
    BRIGHTNESS_SCALE,
    CAPTURE_BACKENDS,
    CAPTURE_TIMEOUT_MS,
    GRAB_INTERVAL_MS,
    MONITOR_ID,
    SCHEDULES,
    SKIP_PIXELS,
    SMOOTHING_FACTOR,
    TRANSPORTS,
)
from pipeline.fan_out import LightTarget
from pipeline.region import Region
from utils.color.color_utils import BRIGHTNESS_SCALES

_MISSING = object()

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class SettingsError(Exception):
    """Settings are missing or invalid."""


def _value(
    data: dict,
    key: str,
    kind: type | Tuple[type, ...],
    default: Any = _MISSING,
    check: Callable[[Any], bool] | None = None,
    expected: str = "",
):
    if key not in data or data[key] is None:
        if default is _MISSING:
            raise SettingsError(f"Missing required setting '{key}'")
        return default

    value = data[key]
    # bool is an int subclass; only accept it where a bool is asked for
    if isinstance(value, bool) and kind is not bool:
        raise SettingsError(f"Setting '{key}' must be {expected or kind}, got {value!r}")
    if not isinstance(value, kind):
        raise SettingsError(f"Setting '{key}' must be {expected or kind}, got {value!r}")
    if check is not None and not check(value):
        raise SettingsError(f"Setting '{key}' must be {expected}, got {value!r}")
    return value


def _lights(data: dict) -> Tuple[LightTarget, ...]:
    lights = _value(data, "lights", list, expected="a list of lights")
    if not lights:
        raise SettingsError("Setting 'lights' must name at least one light")

    targets = []
    for i, light in enumerate(lights):
        if not isinstance(light, dict):
            raise SettingsError(f"lights[{i}] must be an object")

        entity = light.get("entity_name")
        if not isinstance(entity, str) or not entity.strip():
            raise SettingsError(f"lights[{i}].entity_name must be a non-empty string")

        try:
            region = Region.parse(light.get("position", ""))
        except ValueError as e:
            raise SettingsError(f"lights[{i}].position: {e}") from e

        targets.append(LightTarget(entity_id=entity.strip(), region=region))
    return tuple(targets)


@dataclass(frozen=True)
class Settings:
    api_endpoint: str
    token: str
    lights: Tuple[LightTarget, ...]
    grab_interval: int = GRAB_INTERVAL_MS
    skip_pixels: int = SKIP_PIXELS
    smoothing_factor: float = SMOOTHING_FACTOR
    monitor_id: int = MONITOR_ID
    dispatch_enabled: bool = True
    transport: str = "rest"
    exclude_black: bool = False
    brightness_scale: int = BRIGHTNESS_SCALE
    schedule: str = "fixed_delay"
    await_dispatch: bool = True
    capture_backend: str = "mss"
    capture_timeout_ms: int = CAPTURE_TIMEOUT_MS
    aggregation_workers: int = 1
    verify_ssl: bool = True
    log_level: str = "INFO"

    @classmethod
    def from_dict(cls, data: dict) -> "Settings":
        """
        Build validated settings from a parsed settings.json.

        Raises:
            SettingsError: On the first missing or invalid setting
        """
        if not isinstance(data, dict):
            raise SettingsError("Settings must be a JSON object")

        non_empty = lambda v: bool(v.strip())

        return cls(
            api_endpoint=_value(
                data, "api_endpoint", str, check=non_empty, expected="a URL"
            ).strip(),
            token=_value(data, "token", str, check=non_empty, expected="a token"),
            lights=_lights(data),
            grab_interval=_value(
                data, "grab_interval", int, GRAB_INTERVAL_MS,
                lambda v: v >= 0, "an integer >= 0",
            ),
            skip_pixels=_value(
                data, "skip_pixels", int, SKIP_PIXELS, lambda v: v >= 1, "an integer >= 1"
            ),
            smoothing_factor=float(
                _value(
                    data, "smoothing_factor", (int, float), SMOOTHING_FACTOR,
                    lambda v: 0.0 <= v <= 1.0, "a number within [0, 1]",
                )
            ),
            monitor_id=_value(
                data, "monitor_id", int, MONITOR_ID, lambda v: v >= 0, "an integer >= 0"
            ),
            dispatch_enabled=_value(data, "dispatch_enabled", bool, True),
            transport=_value(
                data, "transport", str, "rest",
                lambda v: v in TRANSPORTS, f"one of {TRANSPORTS}",
            ),
            exclude_black=_value(data, "exclude_black", bool, False),
            brightness_scale=_value(
                data, "brightness_scale", int, BRIGHTNESS_SCALE,
                lambda v: v in BRIGHTNESS_SCALES, f"one of {BRIGHTNESS_SCALES}",
            ),
            schedule=_value(
                data, "schedule", str, "fixed_delay",
                lambda v: v in SCHEDULES, f"one of {SCHEDULES}",
            ),
            await_dispatch=_value(data, "await_dispatch", bool, True),
            capture_backend=_value(
                data, "capture_backend", str, "mss",
                lambda v: v in CAPTURE_BACKENDS, f"one of {CAPTURE_BACKENDS}",
            ),
            capture_timeout_ms=_value(
                data, "capture_timeout_ms", int, CAPTURE_TIMEOUT_MS,
                lambda v: v > 0, "an integer > 0",
            ),
            aggregation_workers=_value(
                data, "aggregation_workers", int, 1, lambda v: v >= 1, "an integer >= 1"
            ),
            verify_ssl=_value(data, "verify_ssl", bool, True),
            log_level=_value(
                data, "log_level", str, "INFO",
                lambda v: v.upper() in LOG_LEVELS, f"one of {LOG_LEVELS}",
            ).upper(),
        )

    def to_dict(self) -> dict:
        return {
            "api_endpoint": self.api_endpoint,
            "token": self.token,
            "lights": [
                {"entity_name": light.entity_id, "position": light.region.value}
                for light in self.lights
            ],
            "grab_interval": self.grab_interval,
            "skip_pixels": self.skip_pixels,
            "smoothing_factor": self.smoothing_factor,
            "monitor_id": self.monitor_id,
            "dispatch_enabled": self.dispatch_enabled,
            "transport": self.transport,
            "exclude_black": self.exclude_black,
            "brightness_scale": self.brightness_scale,
            "schedule": self.schedule,
            "await_dispatch": self.await_dispatch,
            "capture_backend": self.capture_backend,
            "capture_timeout_ms": self.capture_timeout_ms,
            "aggregation_workers": self.aggregation_workers,
            "verify_ssl": self.verify_ssl,
            "log_level": self.log_level,
        }


def load_settings(path: str, environ: Dict[str, str] | None = None) -> Settings:
    """
    Read and validate a settings file.

    HASS_URL and HASS_ACCESS_TOKEN in the environment take precedence over
    api_endpoint and token from the file.

    Raises:
        SettingsError: If the file is missing, not JSON or invalid
    """
    environ = os.environ if environ is None else environ

    try:
        with open(path, "r") as f:
            data = json.load(f)
    except FileNotFoundError as e:
        raise SettingsError(f"{path} file does not exist") from e
    except (OSError, ValueError) as e:
        raise SettingsError(f"Failed to parse {path}: {e}") from e

    if isinstance(data, dict):
        if environ.get("HASS_URL"):
            data["api_endpoint"] = environ["HASS_URL"]
        if environ.get("HASS_ACCESS_TOKEN"):
            data["token"] = environ["HASS_ACCESS_TOKEN"]

    return Settings.from_dict(data)
