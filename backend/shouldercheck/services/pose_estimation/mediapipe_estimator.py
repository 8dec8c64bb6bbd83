"""
MediaPipe Pose Landmarker estimator
Maps the 33-point BlazePose output onto the 17 MoveNet/COCO landmark names
"""

import os
from typing import Optional

import cv2
import numpy as np

from shouldercheck.errors import EstimationFailure
from shouldercheck.models.pose import Keypoint, Landmark, Pose
from .core import PoseEstimator


# BlazePose landmark index for each COCO-17 name
BLAZEPOSE_INDEX = {
    Landmark.NOSE: 0,
    Landmark.LEFT_EYE: 2,
    Landmark.RIGHT_EYE: 5,
    Landmark.LEFT_EAR: 7,
    Landmark.RIGHT_EAR: 8,
    Landmark.LEFT_SHOULDER: 11,
    Landmark.RIGHT_SHOULDER: 12,
    Landmark.LEFT_ELBOW: 13,
    Landmark.RIGHT_ELBOW: 14,
    Landmark.LEFT_WRIST: 15,
    Landmark.RIGHT_WRIST: 16,
    Landmark.LEFT_HIP: 23,
    Landmark.RIGHT_HIP: 24,
    Landmark.LEFT_KNEE: 25,
    Landmark.RIGHT_KNEE: 26,
    Landmark.LEFT_ANKLE: 27,
    Landmark.RIGHT_ANKLE: 28,
}


class MediaPipePoseEstimator(PoseEstimator):
    """
    MediaPipe Pose Landmarker in VIDEO running mode.

    Notes:
    - MediaPipe returns normalized coordinates; they are converted to pixel space.
    - `visibility` is used as the keypoint confidence.
    - VIDEO mode needs strictly increasing timestamps, tracked internally.
    """

    def __init__(
        self,
        model_path: str,
        min_detection_confidence: float = 0.5,
        min_tracking_confidence: float = 0.5,
    ):
        super().__init__("MediaPipe")
        self.model_path = model_path
        self.min_detection_confidence = float(min_detection_confidence)
        self.min_tracking_confidence = float(min_tracking_confidence)
        self._mp = None
        self._landmarker = None
        self._last_timestamp_ms = -1

    def is_available(self) -> bool:
        try:
            import mediapipe  # noqa: F401
        except ImportError:
            self.logger.warning("mediapipe is not installed; install the 'pose' extra")
            return False
        if not os.path.exists(self.model_path):
            self.logger.warning(f"Pose model not found at {self.model_path}")
            return False
        return True

    def _ensure_landmarker(self):
        if self._landmarker is not None:
            return self._landmarker

        import mediapipe as mp

        options = mp.tasks.vision.PoseLandmarkerOptions(
            base_options=mp.tasks.BaseOptions(model_asset_path=self.model_path),
            running_mode=mp.tasks.vision.RunningMode.VIDEO,
            num_poses=1,
            min_pose_detection_confidence=self.min_detection_confidence,
            min_tracking_confidence=self.min_tracking_confidence,
        )
        self._mp = mp
        self._landmarker = mp.tasks.vision.PoseLandmarker.create_from_options(options)
        self.logger.info(f"Pose landmarker loaded from {self.model_path}")
        return self._landmarker

    def _next_timestamp_ms(self, timestamp: float) -> int:
        ts = max(int(timestamp * 1000.0), self._last_timestamp_ms + 1)
        self._last_timestamp_ms = ts
        return ts

    def estimate(self, frame: np.ndarray, timestamp: float = 0.0) -> Optional[Pose]:
        height, width = frame.shape[:2]
        try:
            landmarker = self._ensure_landmarker()
            rgb = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
            image = self._mp.Image(image_format=self._mp.ImageFormat.SRGB, data=rgb)
            result = landmarker.detect_for_video(image, self._next_timestamp_ms(timestamp))
        except Exception as e:
            raise EstimationFailure(
                f"MediaPipe inference failed: {e}",
                details={"exception_type": type(e).__name__},
            ) from e

        if not result.pose_landmarks:
            return None

        landmarks = result.pose_landmarks[0]
        keypoints = []
        for name, idx in BLAZEPOSE_INDEX.items():
            if idx >= len(landmarks):
                continue
            lm = landmarks[idx]
            keypoints.append(Keypoint(
                name=name,
                x=float(lm.x) * width,
                y=float(lm.y) * height,
                confidence=float(lm.visibility or 0.0),
            ))
        return Pose.from_keypoints(keypoints, timestamp=timestamp)

    def close(self) -> None:
        if self._landmarker is not None:
            try:
                self._landmarker.close()
            except Exception as e:
                self.logger.warning(f"Error closing pose landmarker: {e}")
            self._landmarker = None
