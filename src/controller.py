import logging

from capture.frame_source import FrameSource
from capture.mss_source import MssFrameSource
from capture.opencv_source import OpenCVFrameSource
from config.settings import Settings
from constants import AUTH_TIMEOUT_SEC
from home_assistant.dispatch_sink import DispatchSink, DryRunDispatchSink
from home_assistant.home_assistant import HomeAssistant
from home_assistant.websocket_client import HomeAssistantWebSocket
from pipeline.aggregator import RegionAggregator
from pipeline.driver import PipelineDriver
from pipeline.fan_out import FanOutResolver
from utils.logger import LOGGER_NAME

logger = logging.getLogger(LOGGER_NAME)


class Controller:
    """Builds the pipeline described by a Settings object and runs it."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.aggregator = RegionAggregator(
            stride=settings.skip_pixels,
            exclude_black=settings.exclude_black,
            workers=settings.aggregation_workers,
        )
        self.driver = PipelineDriver(
            source=self._frame_source(settings),
            sink=self._dispatch_sink(settings),
            resolver=FanOutResolver(
                self.aggregator,
                smoothing_factor=settings.smoothing_factor,
                brightness_scale=settings.brightness_scale,
            ),
            lights=settings.lights,
            interval_ms=settings.grab_interval,
            schedule=settings.schedule,
            await_dispatch=settings.await_dispatch,
            capture_timeout_ms=settings.capture_timeout_ms,
        )

    @staticmethod
    def _frame_source(settings: Settings) -> FrameSource:
        if settings.capture_backend == "opencv":
            return OpenCVFrameSource(device_id=settings.monitor_id)
        return MssFrameSource(monitor_id=settings.monitor_id)

    @staticmethod
    def _dispatch_sink(settings: Settings) -> DispatchSink:
        if not settings.dispatch_enabled:
            logger.info("Dispatch disabled, running dry")
            return DryRunDispatchSink()

        if settings.transport == "websocket":
            return HomeAssistantWebSocket(
                settings.api_endpoint,
                settings.token,
                verify_ssl=settings.verify_ssl,
                auth_timeout=AUTH_TIMEOUT_SEC,
            )
        return HomeAssistant(
            settings.api_endpoint, settings.token, verify_ssl=settings.verify_ssl
        )

    def run(self):
        """Block running the pipeline until stop() is called."""
        try:
            self.driver.run()
        finally:
            self.aggregator.close()

    def stop(self):
        self.driver.stop()
