"""
Tests for the per-frame tick and the frame loop
"""

import asyncio
import threading

import pytest

from conftest import FakeCapture, FakeEstimator, make_pose
from shouldercheck.errors import EstimationFailure
from shouldercheck.services.camera import Camera
from shouldercheck.services.frame_compositor import FrameCompositor
from shouldercheck.services.frame_scheduler import FrameScheduler
from shouldercheck.services.presence_monitor import PresenceMonitor


class EmptyCapture(FakeCapture):
    def read(self):
        return False, None


class BlockingEstimator(FakeEstimator):
    def __init__(self):
        super().__init__(default=make_pose())
        self.entered = threading.Event()
        self.release = threading.Event()

    def estimate(self, frame, timestamp=0.0):
        self.entered.set()
        self.release.wait(timeout=2.0)
        return super().estimate(frame, timestamp)


class PoseSink:
    def __init__(self):
        self.poses = []

    def record_pose(self, pose, captured_at=None):
        self.poses.append((pose, captured_at))
        return pose is not None


def build_scheduler(estimator, capture=None, clock=None):
    camera = Camera(capture_factory=lambda index: capture or FakeCapture())
    camera.open()
    kwargs = {"clock": clock} if clock else {}
    return FrameScheduler(camera, estimator, FrameCompositor(), PresenceMonitor("Raise your arm"), **kwargs)


def test_tick_estimates_and_renders():
    estimator = FakeEstimator(default=make_pose())
    scheduler = build_scheduler(estimator)

    result = scheduler.process_next_frame()

    assert result.pose is not None
    assert result.event.kind == "instruction"
    assert scheduler.latest_pose is result.pose
    assert scheduler.compositor.surface_size == (640, 480)


def test_pose_timestamps_follow_the_clock(fake_clock):
    scheduler = build_scheduler(FakeEstimator(default=make_pose()), clock=fake_clock)
    fake_clock.advance(0.25)

    assert scheduler.process_next_frame().pose.timestamp == pytest.approx(0.25)


def test_estimation_failure_is_absorbed():
    estimator = FakeEstimator(results=[EstimationFailure("model crashed")], default=make_pose())
    scheduler = build_scheduler(estimator)

    failed = scheduler.process_next_frame()
    recovered = scheduler.process_next_frame()

    assert failed.estimation_failed is True
    assert failed.pose is None
    assert scheduler.estimation_failures == 1
    assert recovered.pose is not None


def test_missing_frame_skips_estimation():
    estimator = FakeEstimator(default=make_pose())
    scheduler = build_scheduler(estimator, capture=EmptyCapture())

    result = scheduler.process_next_frame()

    assert result.no_frame is True
    assert estimator.calls == 0


def test_poses_go_to_the_active_recording():
    scheduler = build_scheduler(FakeEstimator(results=[make_pose(), None]))
    sink = PoseSink()
    scheduler.recording = sink

    scheduler.process_next_frame()
    scheduler.process_next_frame()

    assert [pose is not None for pose, _ in sink.poses] == [True, False]


def test_overlapping_tick_is_skipped():
    estimator = BlockingEstimator()
    scheduler = build_scheduler(estimator)
    results = []
    worker = threading.Thread(target=lambda: results.append(scheduler.process_next_frame()))
    worker.start()
    assert estimator.entered.wait(timeout=2.0)

    skipped = scheduler.process_next_frame()
    estimator.release.set()
    worker.join(timeout=2.0)

    assert skipped.skipped is True
    assert estimator.calls == 1
    assert results[0].skipped is False


@pytest.mark.asyncio
async def test_run_forwards_prompts_until_stopped():
    scheduler = build_scheduler(FakeEstimator(default=None))
    stop = asyncio.Event()
    events = []

    task = asyncio.create_task(scheduler.run(stop, on_event=events.append, max_rate=200.0))
    await asyncio.sleep(0.1)
    stop.set()
    await asyncio.wait_for(task, timeout=2.0)

    assert scheduler.ticks > 1
    # Out of frame the whole time: one reminder, the rest rate limited
    assert [e.kind for e in events] == ["reminder"]
