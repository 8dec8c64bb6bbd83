"""
Camera device handle
"""

import threading
from typing import Callable, Dict, Optional, Tuple

import cv2
import numpy as np

from shouldercheck.errors import CameraUnavailable, SessionAlreadyActive
from shouldercheck.utils.logger import get_logger

logger = get_logger(__name__)


class Camera:
    """
    Owned webcam handle.

    Opened explicitly and released on every exit path (use as a context
    manager). Sessions sharing the device each pair open() with close(); the
    device is released when the last one closes. At most one recording
    session may hold the camera at a time.
    """

    def __init__(
        self,
        index: int = 0,
        frame_size: Tuple[int, int] = (640, 480),
        capture_factory: Callable[[int], "cv2.VideoCapture"] = cv2.VideoCapture,
    ):
        self.index = index
        self.frame_size = frame_size
        self._capture_factory = capture_factory
        self._capture = None
        self._lock = threading.Lock()
        self._owner: Optional[object] = None
        self._users = 0

    @property
    def is_open(self) -> bool:
        return self._capture is not None

    def open(self) -> "Camera":
        with self._lock:
            if self._capture is None:
                self._capture = self._open_device()
            self._users += 1
        return self

    def _open_device(self):
        capture = self._capture_factory(self.index)
        if capture is None or not capture.isOpened():
            if capture is not None:
                capture.release()
            raise CameraUnavailable(
                f"Could not open camera {self.index}",
                details={"index": self.index},
            )

        width, height = self.frame_size
        capture.set(cv2.CAP_PROP_FRAME_WIDTH, width)
        capture.set(cv2.CAP_PROP_FRAME_HEIGHT, height)
        logger.info(f"📷 Camera {self.index} opened at {width}x{height}")
        return capture

    def read(self) -> Optional[np.ndarray]:
        """Grab the latest frame, or None if the device produced nothing"""
        with self._lock:
            if self._capture is None:
                raise CameraUnavailable("Camera is not open", details={"index": self.index})
            ok, frame = self._capture.read()
        if not ok or frame is None:
            return None
        return frame

    def claim(self, owner: object) -> None:
        """Reserve the camera for a recording session"""
        with self._lock:
            if self._owner is not None and self._owner is not owner:
                raise SessionAlreadyActive(
                    "Another recording session is active on this camera",
                    details={"index": self.index},
                )
            self._owner = owner

    def release_claim(self, owner: object) -> None:
        with self._lock:
            if self._owner is owner:
                self._owner = None

    def close(self) -> None:
        """Drop one user; the device is released when none remain"""
        with self._lock:
            if self._users > 1:
                self._users -= 1
                return
            capture = self._detach()
        self._release_device(capture)

    def release(self) -> None:
        """Release the device regardless of how many sessions opened it"""
        with self._lock:
            capture = self._detach()
        self._release_device(capture)

    def _detach(self):
        capture, self._capture = self._capture, None
        self._owner = None
        self._users = 0
        return capture

    def _release_device(self, capture) -> None:
        if capture is not None:
            capture.release()
            logger.info(f"📷 Camera {self.index} released")

    def __enter__(self) -> "Camera":
        return self.open()

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False


class CameraPool:
    """One Camera per device index, shared by every session in the process"""

    def __init__(
        self,
        frame_size: Tuple[int, int] = (640, 480),
        capture_factory: Callable[[int], "cv2.VideoCapture"] = cv2.VideoCapture,
    ):
        self.frame_size = frame_size
        self._capture_factory = capture_factory
        self._cameras: Dict[int, Camera] = {}
        self._lock = threading.Lock()

    def get(self, index: int) -> Camera:
        with self._lock:
            camera = self._cameras.get(index)
            if camera is None:
                camera = Camera(index=index, frame_size=self.frame_size, capture_factory=self._capture_factory)
                self._cameras[index] = camera
            return camera

    def close_all(self) -> None:
        with self._lock:
            cameras = list(self._cameras.values())
        for camera in cameras:
            camera.release()
