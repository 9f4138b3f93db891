import threading

import numpy as np
import pytest

from capture.frame_source import CaptureError, FrameSource
from frame.frame import Frame
from home_assistant.dispatch_sink import DispatchResult, DispatchSink


def solid_frame(color, width=100, height=100):
    """Uniform RGB (or RGBA, for a 4-tuple) frame."""
    image = np.empty((height, width, len(color)), dtype=np.uint8)
    image[:] = color
    return Frame.from_array(image)


class CountingAggregator:
    """Wraps an aggregate callable and records which regions it was asked for."""

    def __init__(self, aggregate):
        self.aggregate = aggregate
        self.calls = []

    def __call__(self, frame, region):
        self.calls.append(region)
        return self.aggregate(frame, region)


class FakeFrameSource(FrameSource):
    """Replays a list of frames; CaptureError instances in the list are raised."""

    def __init__(self, frames):
        self.frames = list(frames)
        self.opened = False
        self.closed = False
        self.acquired = 0

    def open(self):
        self.opened = True

    def acquire(self):
        self.acquired += 1
        item = self.frames[min(self.acquired, len(self.frames)) - 1]
        if isinstance(item, CaptureError):
            raise item
        return item

    def close(self):
        self.closed = True


class RecordingSink(DispatchSink):
    def __init__(self, fail_for=()):
        self.fail_for = set(fail_for)
        self.requests = []
        self.opened = False
        self.closed = False
        self._lock = threading.Lock()

    def open(self):
        self.opened = True

    def send(self, request):
        with self._lock:
            self.requests.append(request)
        if request.entity_id in self.fail_for:
            return DispatchResult.failed(request, "boom")
        return DispatchResult.ok(request)

    def close(self):
        self.closed = True


@pytest.fixture
def white_frame():
    return solid_frame((255, 255, 255))
