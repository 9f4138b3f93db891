import logging
import threading
import time

import pytest

from capture.frame_source import CaptureError, FrameSource
from conftest import CountingAggregator, FakeFrameSource, RecordingSink, solid_frame
from home_assistant.dispatch_sink import DispatchResult, DispatchSink
from pipeline.aggregator import RegionAggregator
from pipeline.driver import DriverState, PipelineDriver
from pipeline.fan_out import FanOutResolver, LightTarget
from pipeline.region import Region
from utils.logger import LOGGER_NAME

LIGHTS = (LightTarget("A", Region.TOP), LightTarget("B", Region.TOP))


def make_driver(source, sink, alpha=0.5, lights=LIGHTS, **kwargs):
    counter = CountingAggregator(RegionAggregator())
    resolver = FanOutResolver(counter, smoothing_factor=alpha)
    kwargs.setdefault("interval_ms", 1)
    driver = PipelineDriver(source, sink, resolver, lights, **kwargs)
    return driver, counter


class TestRunCycle:
    def test_two_lights_share_one_aggregation(self, white_frame):
        sink = RecordingSink()
        driver, counter = make_driver(FakeFrameSource([white_frame]), sink)

        futures = driver.run_cycle()

        assert len(futures) == 2
        assert all(f.result().success for f in futures)
        assert counter.calls == [Region.TOP]
        assert sorted((r.entity_id, r.rgb_color, r.brightness) for r in sink.requests) == [
            ("A", (127, 127, 127), 127),
            ("B", (127, 127, 127), 127),
        ]
        assert driver.smooth_state == {Region.TOP: (127, 127, 127)}
        driver.shutdown()

    def test_without_smoothing_lights_get_the_frame_color(self, white_frame):
        sink = RecordingSink()
        driver, counter = make_driver(FakeFrameSource([white_frame]), sink, alpha=0.0)

        driver.run_cycle()

        assert counter.calls == [Region.TOP]
        assert {(r.entity_id, r.rgb_color, r.brightness) for r in sink.requests} == {
            ("A", (255, 255, 255), 255),
            ("B", (255, 255, 255), 255),
        }
        driver.shutdown()

    def test_capture_failure_skips_cycle(self, white_frame, caplog):
        sink = RecordingSink()
        source = FakeFrameSource([CaptureError("display asleep"), white_frame])
        driver, counter = make_driver(source, sink)

        with caplog.at_level(logging.WARNING, logger=LOGGER_NAME):
            assert driver.run_cycle() == []

        assert "display asleep" in caplog.text
        assert sink.requests == []
        assert driver.smooth_state == {}

        driver.run_cycle()
        assert len(sink.requests) == 2
        driver.shutdown()

    def test_failed_light_does_not_affect_others(self, white_frame, caplog):
        sink = RecordingSink(fail_for={"A"})
        driver, _ = make_driver(FakeFrameSource([white_frame]), sink)

        with caplog.at_level(logging.WARNING, logger=LOGGER_NAME):
            futures = driver.run_cycle()

        results = {f.result().entity_id: f.result().success for f in futures}
        assert results == {"A": False, "B": True}
        assert "Dispatch to A failed: boom" in caplog.text

        driver.run_cycle()
        assert len(sink.requests) == 4
        driver.shutdown()

    def test_raising_sink_is_logged(self, white_frame, caplog):
        class ExplodingSink(DispatchSink):
            def send(self, request):
                raise RuntimeError("unexpected")

        driver, _ = make_driver(FakeFrameSource([white_frame]), ExplodingSink())

        with caplog.at_level(logging.ERROR, logger=LOGGER_NAME):
            futures = driver.run_cycle()

        assert all(isinstance(f.exception(), RuntimeError) for f in futures)
        assert "Dispatch to A raised" in caplog.text
        driver.shutdown()

    def test_cycles_commit_state_in_order(self):
        frames = [solid_frame((200, 0, 0)), solid_frame((0, 200, 0))]
        sink = RecordingSink()
        driver, _ = make_driver(FakeFrameSource(frames), sink)

        driver.run_cycle()
        assert driver.smooth_state == {Region.TOP: (100, 0, 0)}
        driver.run_cycle()
        assert driver.smooth_state == {Region.TOP: (50, 100, 0)}
        driver.shutdown()


class SlowSource(FrameSource):
    def __init__(self, frame, delay):
        self.frame = frame
        self.delay = delay

    def acquire(self):
        time.sleep(self.delay)
        return self.frame


def test_slow_capture_times_out(white_frame, caplog):
    sink = RecordingSink()
    driver, _ = make_driver(SlowSource(white_frame, 0.5), sink, capture_timeout_ms=50)

    with caplog.at_level(logging.WARNING, logger=LOGGER_NAME):
        assert driver.run_cycle() == []
        # previous capture has not finished yet
        assert driver.run_cycle() == []

    assert "longer than 50ms" in caplog.text
    assert "still running" in caplog.text
    assert sink.requests == []
    driver.shutdown()


def test_detached_dispatch_returns_before_sends_finish(white_frame):
    release = threading.Event()

    class BlockingSink(DispatchSink):
        def send(self, request):
            release.wait(5)
            return DispatchResult.ok(request)

    driver, _ = make_driver(
        FakeFrameSource([white_frame]), BlockingSink(), await_dispatch=False
    )

    futures = driver.run_cycle()
    assert not any(f.done() for f in futures)

    release.set()
    assert all(f.result(timeout=5).success for f in futures)
    driver.shutdown()


def test_detached_dispatch_keeps_one_send_per_light(white_frame, caplog):
    release = threading.Event()
    sent = []
    lock = threading.Lock()

    class BlockingSink(DispatchSink):
        def send(self, request):
            with lock:
                sent.append(request.entity_id)
            release.wait(5)
            return DispatchResult.ok(request)

    driver, _ = make_driver(
        FakeFrameSource([white_frame]), BlockingSink(), await_dispatch=False
    )

    first = driver.run_cycle()
    with caplog.at_level(logging.WARNING, logger=LOGGER_NAME):
        later = [driver.run_cycle() for _ in range(49)]

    assert len(first) == 2
    assert all(futures == [] for futures in later)
    assert "Previous send to A still pending" in caplog.text

    release.set()
    assert all(f.result(timeout=5).success for f in first)
    # a light is sent to again once its previous send completed
    assert len(driver.run_cycle()) == 2

    driver.shutdown()
    assert sorted(sent) == ["A", "A", "B", "B"]


def test_run_until_stopped(white_frame):
    sink = RecordingSink()
    source = FakeFrameSource([white_frame])
    driver, _ = make_driver(source, sink, schedule="fixed_rate")

    thread = threading.Thread(target=driver.run)
    thread.start()

    deadline = time.monotonic() + 5
    while len(sink.requests) < 6 and time.monotonic() < deadline:
        time.sleep(0.01)
    driver.stop()
    thread.join(timeout=5)

    assert not thread.is_alive()
    assert len(sink.requests) >= 6
    assert driver.state is DriverState.STOPPED
    assert source.opened and source.closed
    assert sink.opened and sink.closed
    assert driver.cycles >= 3


def test_stop_before_run_exits_immediately(white_frame):
    sink = RecordingSink()
    driver, _ = make_driver(FakeFrameSource([white_frame]), sink)

    driver.stop()
    driver.run()

    assert sink.requests == []
    assert driver.state is DriverState.STOPPED


def test_fixed_rate_sleeps_until_next_tick(white_frame):
    driver, _ = make_driver(
        FakeFrameSource([white_frame]), RecordingSink(), interval_ms=100, schedule="fixed_rate"
    )
    driver._next_tick = 10.0

    assert driver._sleep_seconds(10.02) == pytest.approx(0.08)
    # running late drops the missed tick instead of bursting
    assert driver._sleep_seconds(10.5) == 0
    assert driver._sleep_seconds(10.55) == pytest.approx(0.05)
    driver.shutdown()


def test_fixed_delay_always_sleeps_interval(white_frame):
    driver, _ = make_driver(FakeFrameSource([white_frame]), RecordingSink(), interval_ms=250)

    assert driver._sleep_seconds(0.0) == 0.25
    assert driver._sleep_seconds(1000.0) == 0.25
    driver.shutdown()


def test_rejects_unknown_schedule(white_frame):
    with pytest.raises(ValueError):
        make_driver(FakeFrameSource([white_frame]), RecordingSink(), schedule="sometimes")
