"""
Recorded clip processing core
Metadata container and the processor interface used by trimming
"""

import math
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Tuple

from shouldercheck.errors import AssessmentError
from shouldercheck.utils.logger import get_logger


class ClipProcessingError(AssessmentError):
    """Recorded clip could not be opened or read"""
    error_code = "CLIP_PROCESSING_FAILED"


@dataclass
class ClipMetadata:
    """Recorded clip metadata container"""
    duration: float
    fps: float
    width: int
    height: int
    total_frames: int
    codec: str
    file_size: int

    def is_valid(self) -> bool:
        """Duration is usable for trimming"""
        return (
            math.isfinite(self.duration) and
            self.duration > 0 and
            self.fps > 0 and
            self.width > 0 and
            self.height > 0
        )


class ClipProcessor(ABC):
    """Abstract base class for recorded clip processors"""

    def __init__(self, name: str):
        self.name = name
        self.logger = get_logger(f"{__name__}.{name}")

    @abstractmethod
    def get_clip_metadata(self, clip_path: str) -> ClipMetadata:
        """Extract clip metadata"""
        pass

    @abstractmethod
    def thumbnail_strip(self, clip_path: str, count: int, size: Tuple[int, int]) -> bytes:
        """Render evenly spaced thumbnails side by side as one JPEG"""
        pass

    def probe_duration(self, clip_path: str) -> float:
        """
        Clip duration in seconds, or NaN while the container does not report one.

        Never raises; trimming polls this until it becomes finite.
        """
        try:
            self.validate_clip_file(clip_path)
            return self.get_clip_metadata(clip_path).duration
        except ClipProcessingError as e:
            self.logger.debug(f"Duration probe for {clip_path} not ready: {e.error_code}")
            return float("nan")

    def validate_clip_file(self, clip_path: str) -> None:
        """Validate clip file before processing"""
        if not os.path.exists(clip_path):
            raise ClipProcessingError(
                f"Clip file not found: {clip_path}",
                "FILE_NOT_FOUND",
                {"path": clip_path}
            )

        file_size = os.path.getsize(clip_path)
        if file_size == 0:
            raise ClipProcessingError(
                f"Clip file is empty: {clip_path}",
                "FILE_EMPTY",
                {"path": clip_path}
            )
