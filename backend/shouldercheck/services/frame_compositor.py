"""
Frame compositor
Draws the mirrored camera image plus the pose skeleton onto an off-screen
surface and exposes that surface as a capturable stream.
"""

import threading
from io import BytesIO
from typing import Optional, Tuple

import cv2
import numpy as np
from PIL import Image

from shouldercheck.models.pose import BODY_LANDMARKS, SKELETON_EDGES, Pose
from shouldercheck.utils.logger import get_logger

logger = get_logger(__name__)

# BGR
SKELETON_COLOR = (255, 255, 255)
EDGE_THICKNESS = 2
POINT_RADIUS = 4


def mirror_point(x: float, y: float, width: int) -> Tuple[int, int]:
    """Pixel position of (x, y) after a horizontal flip of a frame width pixels wide"""
    return (int(round(width - 1 - x)), int(round(y)))


class CompositorStream:
    """
    Read side of the compositor surface.

    Independent of the on-screen preview, so recording never sees preview
    scaling. Each read returns a copy of the latest composited frame.
    """

    def __init__(self, compositor: "FrameCompositor"):
        self._compositor = compositor

    @property
    def frame_size(self) -> Optional[Tuple[int, int]]:
        return self._compositor.surface_size

    def read(self) -> Tuple[Optional[np.ndarray], int]:
        """Returns (frame copy or None, tick number of that frame)"""
        return self._compositor.snapshot()


class FrameCompositor:
    """Renders one composited frame per tick"""

    def __init__(self, confidence_threshold: float = 0.5):
        self.confidence_threshold = confidence_threshold
        self._surface: Optional[np.ndarray] = None
        self._tick = 0
        self._lock = threading.Lock()

    @property
    def surface_size(self) -> Optional[Tuple[int, int]]:
        with self._lock:
            if self._surface is None:
                return None
            height, width = self._surface.shape[:2]
            return (width, height)

    def render(self, frame: np.ndarray, pose: Optional[Pose]) -> np.ndarray:
        """Mirror the frame, overlay the skeleton and publish the result"""
        surface = cv2.flip(frame, 1)
        if pose is not None:
            self.draw_skeleton(surface, pose)

        with self._lock:
            self._surface = surface
            self._tick += 1
        return surface

    def draw_skeleton(self, surface: np.ndarray, pose: Pose) -> None:
        """
        Draw edges whose endpoints are both confident and confident points only.

        Keypoints are in unmirrored source coordinates, so x is flipped here.
        Facial landmarks are never drawn.
        """
        width = surface.shape[1]

        def mirrored(kp) -> Tuple[int, int]:
            return mirror_point(kp.x, kp.y, width)

        for start, end in SKELETON_EDGES:
            a, b = pose.get(start), pose.get(end)
            if a is None or b is None:
                continue
            if a.is_confident(self.confidence_threshold) and b.is_confident(self.confidence_threshold):
                cv2.line(surface, mirrored(a), mirrored(b), SKELETON_COLOR, EDGE_THICKNESS, cv2.LINE_AA)

        for name in BODY_LANDMARKS:
            kp = pose.get(name)
            if kp is not None and kp.is_confident(self.confidence_threshold):
                cv2.circle(surface, mirrored(kp), POINT_RADIUS, SKELETON_COLOR, -1, cv2.LINE_AA)

    def snapshot(self) -> Tuple[Optional[np.ndarray], int]:
        with self._lock:
            if self._surface is None:
                return None, self._tick
            return self._surface.copy(), self._tick

    def capture_stream(self) -> CompositorStream:
        return CompositorStream(self)

    def preview_jpeg(self, max_width: Optional[int] = None, quality: int = 80) -> Optional[bytes]:
        """Encode the latest surface for the on-screen preview, optionally downscaled"""
        surface, _ = self.snapshot()
        if surface is None:
            return None

        height, width = surface.shape[:2]
        if max_width and width > max_width:
            scale = max_width / width
            surface = cv2.resize(surface, (max_width, int(height * scale)), interpolation=cv2.INTER_AREA)

        rgb = cv2.cvtColor(surface, cv2.COLOR_BGR2RGB)
        buffer = BytesIO()
        Image.fromarray(rgb).save(buffer, format='JPEG', quality=quality)
        return buffer.getvalue()
