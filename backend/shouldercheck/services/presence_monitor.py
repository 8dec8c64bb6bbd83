"""
Presence monitor
Decides whether the whole body is inside the frame and when to speak guidance
"""

import time
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

from shouldercheck.models.pose import BODY_LANDMARKS, Pose
from shouldercheck.utils.logger import get_logger

logger = get_logger(__name__)

POSITION_REMINDER = "Please position your whole body within the frame."
START_THEN_POSITION_REMINDER = "Please start recording, then position your whole body within the frame."


@dataclass(frozen=True)
class SpeakPrompt:
    """Spoken guidance to play; kind is 'instruction' or 'reminder'"""
    text: str
    kind: str = "instruction"


PresenceEvent = SpeakPrompt


def is_body_in_frame(
    pose: Optional[Pose],
    frame_size: Tuple[int, int],
    confidence_threshold: float = 0.5,
    inset: float = 0.05,
) -> bool:
    """Every non-facial landmark confident and inside the inset band on both axes"""
    if pose is None:
        return False
    width, height = frame_size
    x_min, x_max = inset * width, (1.0 - inset) * width
    y_min, y_max = inset * height, (1.0 - inset) * height

    for name in BODY_LANDMARKS:
        kp = pose.get(name)
        if kp is None or not kp.is_confident(confidence_threshold):
            return False
        if not (x_min <= kp.x <= x_max and y_min <= kp.y <= y_max):
            return False
    return True


class PresenceMonitor:
    """
    Edge-triggered instruction prompt plus rate-limited reminders.

    A SpeakPrompt with the movement instruction is emitted once on every
    out-of-frame -> in-frame transition. While out of frame, a reminder is
    emitted at most once per reminder interval, however often update() runs.
    """

    def __init__(
        self,
        instruction_text: str,
        reminder_interval: float = 15.0,
        confidence_threshold: float = 0.5,
        inset: float = 0.05,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.instruction_text = instruction_text
        self.reminder_interval = reminder_interval
        self.confidence_threshold = confidence_threshold
        self.inset = inset
        self.recording_started = False
        self.in_frame = False
        self._clock = clock
        self._last_prompt_at: Optional[float] = None

    def reminder_text(self) -> str:
        return POSITION_REMINDER if self.recording_started else START_THEN_POSITION_REMINDER

    def update(self, pose: Optional[Pose], frame_size: Tuple[int, int]) -> Optional[PresenceEvent]:
        now = self._clock()
        in_frame = is_body_in_frame(pose, frame_size, self.confidence_threshold, self.inset)
        was_in_frame, self.in_frame = self.in_frame, in_frame

        if in_frame:
            if not was_in_frame:
                self._last_prompt_at = now
                logger.info("Subject entered the frame")
                return SpeakPrompt(self.instruction_text, kind="instruction")
            return None

        if self._last_prompt_at is None or now - self._last_prompt_at >= self.reminder_interval:
            self._last_prompt_at = now
            return SpeakPrompt(self.reminder_text(), kind="reminder")
        return None
