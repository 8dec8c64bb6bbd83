"""
Pose estimation package
Model-agnostic estimator interface plus the MediaPipe backend
"""

from typing import Optional

from shouldercheck.config.base import Settings, settings as default_settings
from shouldercheck.errors import ResourceUnavailable

from .core import PoseEstimator, EstimatorFactory
from .mediapipe_estimator import MediaPipePoseEstimator


def build_pose_estimator(settings: Optional[Settings] = None) -> PoseEstimator:
    """
    Build a fresh estimator for one assessment session.

    Each session owns its own estimator; nothing is shared across sessions.
    """
    settings = settings or default_settings
    factory = EstimatorFactory()

    if settings.POSE_BACKEND.lower() == "mediapipe":
        factory.register_estimator(MediaPipePoseEstimator(
            model_path=settings.POSE_MODEL_PATH,
            min_detection_confidence=settings.POSE_MIN_DETECTION_CONFIDENCE,
            min_tracking_confidence=settings.POSE_MIN_TRACKING_CONFIDENCE,
        ))

    estimator = factory.get_best_estimator()
    if estimator is None:
        raise ResourceUnavailable(
            "No pose estimator available",
            "NO_ESTIMATOR_AVAILABLE",
            {"backend": settings.POSE_BACKEND, "model_path": settings.POSE_MODEL_PATH},
        )
    return estimator


__all__ = [
    'PoseEstimator',
    'EstimatorFactory',
    'MediaPipePoseEstimator',
    'build_pose_estimator',
]
