import concurrent.futures
import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from enum import Enum
from typing import Dict, List, Sequence

from capture.frame_source import CaptureError, FrameSource
from frame.frame import Frame
from home_assistant.dispatch_sink import DispatchResult, DispatchSink
from pipeline.fan_out import DispatchRequest, FanOutResolver, LightTarget
from pipeline.smoother import SmoothState
from utils.logger import LOGGER_NAME

logger = logging.getLogger(LOGGER_NAME)


class DriverState(Enum):
    IDLE = "idle"
    CAPTURING = "capturing"
    AGGREGATING = "aggregating"
    DISPATCHING = "dispatching"
    SLEEPING = "sleeping"
    STOPPED = "stopped"


class PipelineDriver:
    """
    Runs the capture -> aggregate -> smooth -> dispatch loop.

    The loop thread is the only one that touches the smoothed colors, so
    cycle n+1 always smooths against what cycle n committed. Captures run on
    a single dedicated thread so a hung capture can be timed out. Dispatches
    fan out over a thread pool, one task per light.

    Cadence:
        fixed_delay: sleep `interval_ms` after each cycle finishes
        fixed_rate: start a cycle every `interval_ms`, independent of how long
            capture and aggregation took; missed ticks are dropped

    Fan-out:
        await_dispatch=True: wait for every light's send before sleeping, so
            cycles never overlap on the network
        await_dispatch=False: sleep immediately; sends from consecutive cycles
            may overlap, which keeps the cadence steady on a slow network.
            A light whose previous send is still pending is skipped for the
            cycle, so at most one send per light is ever queued
    """

    def __init__(
        self,
        source: FrameSource,
        sink: DispatchSink,
        resolver: FanOutResolver,
        lights: Sequence[LightTarget],
        interval_ms: int,
        schedule: str = "fixed_delay",
        await_dispatch: bool = True,
        capture_timeout_ms: int = 1000,
    ):
        if schedule not in ("fixed_delay", "fixed_rate"):
            raise ValueError(f"Unknown schedule: {schedule}")

        self.source = source
        self.sink = sink
        self.resolver = resolver
        self.lights = tuple(lights)
        self.interval_ms = interval_ms
        self.schedule = schedule
        self.await_dispatch = await_dispatch
        self.capture_timeout_ms = capture_timeout_ms

        self.state = DriverState.IDLE
        self.smooth_state: SmoothState = {}
        self.cycles = 0

        self._stop_event = threading.Event()
        self._capture_pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="Capture")
        self._dispatch_pool = ThreadPoolExecutor(
            max_workers=max(1, len(self.lights)), thread_name_prefix="Dispatch"
        )
        self._pending_capture: Future | None = None
        self._pending_sends: Dict[str, Future] = {}
        self._next_tick = 0.0

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    def start(self):
        """
        Open the frame source and the dispatch session.

        Raises:
            CaptureError: If the configured monitor/device does not exist
            SessionError: If the persistent session cannot be authenticated
        """
        self._capture_pool.submit(self.source.open).result()
        self.sink.open()

    def stop(self):
        """Ask the loop to exit at the next cycle boundary. Safe from any thread."""
        self._stop_event.set()

    def capture(self) -> Frame | None:
        """Grab one frame, or None if the cycle should be skipped."""
        if self._pending_capture is not None and not self._pending_capture.done():
            logger.warning("Previous capture still running, skipping cycle")
            return None

        future = self._capture_pool.submit(self.source.acquire)
        self._pending_capture = future
        try:
            return future.result(timeout=self.capture_timeout_ms / 1000)
        except concurrent.futures.TimeoutError:
            logger.warning(
                f"Capture took longer than {self.capture_timeout_ms}ms, skipping cycle"
            )
        except CaptureError as e:
            logger.warning(f"Failed to grab frame: {e}")
        return None

    def run_cycle(self) -> List[Future]:
        """
        One capture -> aggregate -> smooth -> dispatch pass.

        Returns:
            The dispatch futures, one per light without a pending send
            ([] if the capture failed)
        """
        self.state = DriverState.CAPTURING
        frame = self.capture()
        if frame is None:
            return []

        self.state = DriverState.AGGREGATING
        requests, self.smooth_state = self.resolver.resolve(
            frame, self.lights, self.smooth_state
        )

        self.state = DriverState.DISPATCHING
        requests = [r for r in requests if self._ready_for_send(r)]
        futures = [self._dispatch_pool.submit(self.sink.send, r) for r in requests]
        for request, future in zip(requests, futures):
            self._pending_sends[request.entity_id] = future

        if self.await_dispatch:
            concurrent.futures.wait(futures)
            for request, future in zip(requests, futures):
                self._log_result(request, future)
        else:
            for request, future in zip(requests, futures):
                future.add_done_callback(
                    lambda f, request=request: self._log_result(request, f)
                )
        return futures

    def _ready_for_send(self, request: DispatchRequest) -> bool:
        pending = self._pending_sends.get(request.entity_id)
        if pending is not None and not pending.done():
            logger.warning(
                f"Previous send to {request.entity_id} still pending, skipping it this cycle"
            )
            return False
        return True

    @staticmethod
    def _log_result(request: DispatchRequest, future: Future):
        if future.cancelled():
            logger.debug(f"Dropped send to {request.entity_id} on shutdown")
            return

        error = future.exception()
        if error is not None:
            logger.error(f"Dispatch to {request.entity_id} raised: {error!r}")
            return

        result: DispatchResult = future.result()
        if result.success:
            logger.debug(
                f"Sent {list(request.rgb_color)} @ {request.brightness} to {request.entity_id}"
            )
        else:
            logger.warning(f"Dispatch to {result.entity_id} failed: {result.error}")

    def _sleep_seconds(self, now: float) -> float:
        interval = self.interval_ms / 1000
        if self.schedule == "fixed_rate":
            self._next_tick += interval
            if self._next_tick < now:
                self._next_tick = now
            return self._next_tick - now
        return interval

    def run(self):
        """Start, loop until stop() is called, then shut down."""
        logger.info(
            f"Starting pipeline: {len(self.lights)} light(s), {self.interval_ms}ms "
            f"{self.schedule}, {'awaited' if self.await_dispatch else 'detached'} dispatch"
        )
        try:
            self.start()
            self._next_tick = time.monotonic()
            while not self._stop_event.is_set():
                self.run_cycle()
                self.cycles += 1

                self.state = DriverState.SLEEPING
                self._stop_event.wait(self._sleep_seconds(time.monotonic()))
        finally:
            self.shutdown()

    def shutdown(self):
        """
        Let in-flight dispatches finish, then release the source and the sink.
        Sends still waiting for a worker are dropped.
        """
        if self.state is DriverState.STOPPED:
            return

        self._stop_event.set()
        self._dispatch_pool.shutdown(wait=True, cancel_futures=True)

        closing = self._capture_pool.submit(self.source.close)
        try:
            closing.result(timeout=self.capture_timeout_ms / 1000)
        except concurrent.futures.TimeoutError:
            logger.warning("Frame source did not close in time")
        finally:
            self._capture_pool.shutdown(wait=False)
            self.sink.close()
            self.state = DriverState.STOPPED
        logger.info(f"Pipeline stopped after {self.cycles} cycle(s)")
