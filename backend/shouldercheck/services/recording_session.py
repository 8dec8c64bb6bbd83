"""
Recording session
Captures the compositor stream into an encoded clip on its own thread
"""

import os
import threading
import time
import uuid
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Optional

import cv2

from shouldercheck.errors import CaptureUnsupported, NotRecording, PreconditionNotMet
from shouldercheck.models.pose import Pose, PoseSequence
from shouldercheck.services.camera import Camera
from shouldercheck.services.frame_compositor import CompositorStream
from shouldercheck.utils.logger import get_logger

logger = get_logger(__name__)


class RecordingState(str, Enum):
    IDLE = "idle"
    RECORDING = "recording"
    FLUSHING = "flushing"
    COMPLETE = "complete"


@dataclass
class RecordedClip:
    """Playable clip handle plus the poses gathered while recording"""
    clip_id: str
    path: str
    frame_count: int
    fps: int
    poses: PoseSequence

    @property
    def duration(self) -> float:
        return self.frame_count / self.fps if self.fps > 0 else 0.0


def _default_writer_factory(path: str, fourcc: str, fps: int, size):
    return cv2.VideoWriter(path, cv2.VideoWriter_fourcc(*fourcc), float(fps), size)


class RecordingSession:
    """
    Idle -> Recording -> Flushing -> Complete.

    Frames are sampled from the compositor stream at a fixed wall-clock rate,
    independent of how many estimation ticks complete, so the clip length never
    depends on pose model speed. Poses are appended separately via record_pose().
    """

    def __init__(
        self,
        camera: Camera,
        stream: CompositorStream,
        output_dir: str,
        fps: int = 30,
        fourcc: str = "mp4v",
        writer_factory: Callable = _default_writer_factory,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.camera = camera
        self.stream = stream
        self.output_dir = output_dir
        self.fps = fps
        self.fourcc = fourcc
        self._writer_factory = writer_factory
        self._clock = clock

        self.clip_id = uuid.uuid4().hex
        self.path = os.path.join(output_dir, f"recording_{self.clip_id}.mp4")
        self.state = RecordingState.IDLE
        self.poses = PoseSequence(nominal_fps=fps)
        self.frame_count = 0
        self.clip: Optional[RecordedClip] = None

        self._writer = None
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._started_at: Optional[float] = None
        self._stopped_at: Optional[float] = None
        self._capture_error: Optional[Exception] = None

    def start(self) -> None:
        if self.state != RecordingState.IDLE:
            raise PreconditionNotMet(
                f"Recording session cannot start from state {self.state.value}",
                details={"state": self.state.value},
            )

        self.camera.claim(self)
        os.makedirs(self.output_dir, exist_ok=True)

        self._started_at = self._clock()
        self.state = RecordingState.RECORDING
        self._thread = threading.Thread(target=self._capture_loop, name=f"recording-{self.clip_id[:8]}", daemon=True)
        self._thread.start()
        logger.info(f"🔴 Recording {self.clip_id} started at {self.fps} fps -> {self.path}")

    def elapsed(self) -> float:
        """Seconds recorded so far; frozen once the recording stops"""
        if self._started_at is None:
            return 0.0
        end = self._stopped_at if self._stopped_at is not None else self._clock()
        return end - self._started_at

    def record_pose(self, pose: Optional[Pose], captured_at: Optional[float] = None) -> bool:
        """
        Append a pose stamped relative to the recording start.

        Returns False when the pose was not recorded (not recording, no pose,
        or the frame predates the recording).
        """
        if pose is None or self.state != RecordingState.RECORDING:
            return False
        timestamp = (captured_at if captured_at is not None else self._clock()) - self._started_at
        if timestamp < 0:
            return False
        self.poses.append(replace(pose, timestamp=timestamp))
        return True

    def _open_writer(self, frame):
        height, width = frame.shape[:2]
        writer = self._writer_factory(self.path, self.fourcc, self.fps, (width, height))
        if writer is None or not writer.isOpened():
            raise CaptureUnsupported(
                f"Could not open video writer for {self.path}",
                details={"fourcc": self.fourcc, "size": [width, height]},
            )
        return writer

    def _capture_loop(self) -> None:
        interval = 1.0 / self.fps
        next_due = self._clock()
        try:
            while not self._stop_event.is_set():
                frame, _ = self.stream.read()
                if frame is not None:
                    if self._writer is None:
                        self._writer = self._open_writer(frame)
                    self._writer.write(frame)
                    self.frame_count += 1

                next_due += interval
                delay = next_due - self._clock()
                if delay > 0:
                    self._stop_event.wait(delay)
                elif delay < -interval:
                    # Fell behind; drop instead of bursting
                    next_due = self._clock()
        except Exception as e:
            self._capture_error = e
            logger.error(f"Recording {self.clip_id} capture failed: {e}")

    def stop(self, strict: bool = False) -> Optional[RecordedClip]:
        """
        Flush and finish the recording.

        Calling stop() when not recording is reported as NotRecording: logged and
        None returned, or raised when strict=True.
        """
        if self.state != RecordingState.RECORDING:
            condition = NotRecording(
                f"Recording {self.clip_id} is not recording",
                details={"state": self.state.value},
            )
            logger.warning(f"{condition.error_code}: {condition.message}")
            if strict:
                raise condition
            return None

        self.state = RecordingState.FLUSHING
        try:
            self._halt_capture()
        finally:
            self._release()

        self.poses.freeze()
        self.clip = RecordedClip(
            clip_id=self.clip_id,
            path=self.path,
            frame_count=self.frame_count,
            fps=self.fps,
            poses=self.poses,
        )
        self.state = RecordingState.COMPLETE
        logger.info(f"⏹️ Recording {self.clip_id} complete: {self.frame_count} frames, {len(self.poses)} poses")

        if self._capture_error is not None:
            error = self._capture_error
            if isinstance(error, CaptureUnsupported):
                raise error
            raise CaptureUnsupported(f"Recording capture failed: {error}") from error
        return self.clip

    def _halt_capture(self) -> None:
        self._stopped_at = self._clock()
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=5.0)
            self._thread = None

    def _release(self) -> None:
        writer, self._writer = self._writer, None
        if writer is not None:
            writer.release()
        self.camera.release_claim(self)

    def close(self) -> None:
        """Release capture resources on any exit path"""
        if self.state == RecordingState.RECORDING:
            self.state = RecordingState.FLUSHING
            try:
                self._halt_capture()
            finally:
                self._release()
                self.poses.freeze()
                self.state = RecordingState.COMPLETE
            logger.info(f"Recording {self.clip_id} closed before stop()")
        else:
            self._release()

    def __enter__(self) -> "RecordingSession":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False
