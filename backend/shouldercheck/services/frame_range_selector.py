"""
Frame range selector
Inclusive start/end frame selection over a recorded clip
"""

import asyncio
import math
from enum import Enum
from typing import Callable, Optional, Tuple

from shouldercheck.errors import DurationUnavailable, PreconditionNotMet
from shouldercheck.models.measurement import FrameRange
from shouldercheck.utils.logger import get_logger

logger = get_logger(__name__)


class SelectorState(str, Enum):
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


class FrameRangeSelector:
    """
    Start/end handles over the clip's nominal frame index space.

    Frame indices are playback positions at the nominal rate
    (frame / fps seconds), not indices into the recorded pose list.
    """

    def __init__(
        self,
        duration_probe: Callable[[], float],
        fps: int = 30,
        max_retries: int = 8,
        initial_backoff: float = 0.25,
        timeout: float = 10.0,
    ):
        self._duration_probe = duration_probe
        self.fps = fps
        self.max_retries = max_retries
        self.initial_backoff = initial_backoff
        self.timeout = timeout

        self.state = SelectorState.LOADING
        self.duration: Optional[float] = None
        self.total_frames = 0
        self.start_frame = 0
        self.end_frame = 0
        self.confirmed = False

    def _accept_duration(self, duration) -> bool:
        if duration is None:
            return False
        try:
            duration = float(duration)
        except (TypeError, ValueError):
            return False
        if not math.isfinite(duration) or duration <= 0:
            return False
        total = int(math.floor(duration * self.fps))
        if total < 1:
            return False

        self.duration = duration
        self.total_frames = total
        self.start_frame = 0
        self.end_frame = total - 1
        self.state = SelectorState.READY
        return True

    async def resolve(self) -> "FrameRangeSelector":
        """
        Poll the duration probe until it reports a finite duration.

        Retries with exponential backoff; raises DurationUnavailable once the
        retries or the timeout are exhausted.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout
        backoff = self.initial_backoff
        last_value = None

        for attempt in range(self.max_retries + 1):
            last_value = await asyncio.to_thread(self._duration_probe)
            if self._accept_duration(last_value):
                logger.info(f"Clip duration resolved: {self.duration:.2f}s, {self.total_frames} frames")
                return self

            remaining = deadline - loop.time()
            if attempt == self.max_retries or remaining <= 0:
                break
            logger.debug(f"Clip duration not available yet ({last_value}); retry {attempt + 1} in {backoff:.2f}s")
            await asyncio.sleep(min(backoff, remaining))
            backoff *= 2

        self.state = SelectorState.FAILED
        raise DurationUnavailable(
            "Clip duration could not be resolved",
            details={"last_value": repr(last_value), "timeout": self.timeout, "retries": self.max_retries},
        )

    def _require_adjustable(self) -> None:
        if self.state != SelectorState.READY:
            raise PreconditionNotMet(
                f"Frame range selector is {self.state.value}",
                details={"state": self.state.value},
            )
        if self.confirmed:
            raise PreconditionNotMet("Frame range already confirmed")

    def _clamp(self, frame) -> int:
        return min(max(int(frame), 0), self.total_frames - 1)

    def set_start_frame(self, frame: int) -> int:
        """Move the start handle; it never passes end_frame - 1"""
        self._require_adjustable()
        self.start_frame = min(self._clamp(frame), max(self.end_frame - 1, 0))
        return self.start_frame

    def set_end_frame(self, frame: int) -> int:
        """Move the end handle; it never drops below start_frame + 1"""
        self._require_adjustable()
        self.end_frame = max(self._clamp(frame), min(self.start_frame + 1, self.total_frames - 1))
        return self.end_frame

    def set_fractions(self, start: float, end: float) -> Tuple[int, int]:
        """Apply slider positions given as fractions of the clip in [0, 1]"""
        self._require_adjustable()
        last = self.total_frames - 1
        start_frame = round(min(max(float(start), 0.0), 1.0) * last)
        end_frame = round(min(max(float(end), 0.0), 1.0) * last)

        self.start_frame = 0
        self.set_end_frame(end_frame)
        self.set_start_frame(start_frame)
        return self.start_frame, self.end_frame

    def seek(self, frame: int) -> float:
        """Playback time in seconds for a frame index"""
        if self.state != SelectorState.READY:
            raise PreconditionNotMet(f"Frame range selector is {self.state.value}")
        return self._clamp(frame) / self.fps

    def time_window(self) -> Tuple[float, float]:
        return self.seek(self.start_frame), self.seek(self.end_frame)

    def frame_range(self) -> FrameRange:
        if self.state != SelectorState.READY:
            raise PreconditionNotMet(f"Frame range selector is {self.state.value}")
        return FrameRange(
            start_frame=self.start_frame,
            end_frame=self.end_frame,
            total_frames=self.total_frames,
        )

    def confirm(self) -> FrameRange:
        frame_range = self.frame_range()
        self.confirmed = True
        logger.info(f"Frame range confirmed: {frame_range.start_frame}..{frame_range.end_frame}")
        return frame_range
