import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass

from pipeline.fan_out import DispatchRequest
from utils.logger import LOGGER_NAME

logger = logging.getLogger(LOGGER_NAME)


@dataclass(frozen=True)
class DispatchResult:
    """Outcome of delivering one DispatchRequest."""

    entity_id: str
    success: bool
    error: str | None = None

    @classmethod
    def ok(cls, request: DispatchRequest) -> "DispatchResult":
        return cls(entity_id=request.entity_id, success=True)

    @classmethod
    def failed(cls, request: DispatchRequest, error: str) -> "DispatchResult":
        return cls(entity_id=request.entity_id, success=False, error=error)


class DispatchSink(ABC):
    """
    Delivers a color and brightness to a Home Assistant light.

    `send` may be called from several threads at once. It never raises for
    transport or encoding problems; those come back as a failed result.
    """

    def open(self) -> None:
        """Establish whatever connection the sink needs before the first send."""

    @abstractmethod
    def send(self, request: DispatchRequest) -> DispatchResult:
        pass

    def close(self) -> None:
        pass


class DryRunDispatchSink(DispatchSink):
    """Logs requests instead of sending them."""

    def send(self, request: DispatchRequest) -> DispatchResult:
        logger.info(
            f"[dry-run] {request.entity_id} -> rgb={list(request.rgb_color)} "
            f"brightness={request.brightness}"
        )
        return DispatchResult.ok(request)
