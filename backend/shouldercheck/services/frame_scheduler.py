"""
Frame scheduler
Single per-tick entry point (read -> estimate -> composite -> record -> presence)
and the async loop that drives it.
"""

import asyncio
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

from shouldercheck.errors import EstimationFailure
from shouldercheck.models.pose import Pose
from shouldercheck.services.camera import Camera
from shouldercheck.services.frame_compositor import FrameCompositor
from shouldercheck.services.pose_estimation import PoseEstimator
from shouldercheck.services.presence_monitor import PresenceEvent, PresenceMonitor
from shouldercheck.services.recording_session import RecordingSession
from shouldercheck.utils.logger import PerformanceLogger, get_logger

logger = get_logger(__name__)


@dataclass
class TickResult:
    tick: int
    pose: Optional[Pose] = None
    event: Optional[PresenceEvent] = None
    skipped: bool = False
    no_frame: bool = False
    estimation_failed: bool = False


class FrameScheduler:
    """
    Processes one frame per call and never overlaps two calls.

    A call arriving while the previous tick is still running is reported as
    skipped rather than queued, so a slow model drops frames instead of
    building a backlog.
    """

    def __init__(
        self,
        camera: Camera,
        estimator: PoseEstimator,
        compositor: FrameCompositor,
        monitor: PresenceMonitor,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.camera = camera
        self.estimator = estimator
        self.compositor = compositor
        self.monitor = monitor
        self.recording: Optional[RecordingSession] = None
        self.latest_pose: Optional[Pose] = None
        self.ticks = 0
        self.estimation_failures = 0
        self._clock = clock
        self._origin = clock()
        self._busy = threading.Lock()
        self._perf = PerformanceLogger("frame_tick")

    def process_next_frame(self) -> TickResult:
        if not self._busy.acquire(blocking=False):
            return TickResult(tick=self.ticks, skipped=True)
        try:
            return self._tick()
        finally:
            self._busy.release()

    def _tick(self) -> TickResult:
        self._perf.start()
        self.ticks += 1
        captured_at = self._clock()
        frame = self.camera.read()
        if frame is None:
            self._perf.end()
            return TickResult(tick=self.ticks, no_frame=True)

        pose: Optional[Pose] = None
        failed = False
        try:
            pose = self.estimator.estimate(frame, timestamp=captured_at - self._origin)
        except EstimationFailure as e:
            # Retried on the next tick
            failed = True
            self.estimation_failures += 1
            logger.warning(f"Pose estimation failed on tick {self.ticks}: {e.message}")

        self.latest_pose = pose
        self.compositor.render(frame, pose)

        recording = self.recording
        if recording is not None:
            recording.record_pose(pose, captured_at=captured_at)

        height, width = frame.shape[:2]
        event = self.monitor.update(pose, (width, height))
        self._perf.end()
        return TickResult(tick=self.ticks, pose=pose, event=event, estimation_failed=failed)

    async def run(
        self,
        stop: asyncio.Event,
        on_event: Optional[Callable[[PresenceEvent], None]] = None,
        max_rate: float = 60.0,
    ) -> None:
        """
        Drive ticks until stop is set.

        Each tick runs in a worker thread and is awaited before the next one
        starts, capped at max_rate ticks per second.
        """
        min_interval = 1.0 / max_rate if max_rate > 0 else 0.0
        logger.info("▶️ Frame loop started")
        try:
            while not stop.is_set():
                started = time.monotonic()
                result = await asyncio.to_thread(self.process_next_frame)
                if result.event is not None and on_event is not None:
                    on_event(result.event)
                remaining = min_interval - (time.monotonic() - started)
                await asyncio.sleep(remaining if remaining > 0 else 0)
        finally:
            logger.info(f"⏸️ Frame loop stopped after {self.ticks} ticks ({self.estimation_failures} estimation failures)")
