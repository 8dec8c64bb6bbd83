"""
Pose estimation core
Model-agnostic estimator interface and a factory picking the best available backend
"""

from abc import ABC, abstractmethod
from typing import List, Optional

import numpy as np

from shouldercheck.models.pose import Pose
from shouldercheck.utils.logger import get_logger

logger = get_logger(__name__)


class PoseEstimator(ABC):
    """
    Abstract base class for per-frame keypoint models.

    Implementations take a BGR frame (H, W, 3 uint8) and return a Pose in the
    frame's pixel space, or None when no body is detected. Model errors are
    raised as EstimationFailure.
    """

    def __init__(self, name: str):
        self.name = name
        self.logger = get_logger(f"{__name__}.{name}")

    @abstractmethod
    def is_available(self) -> bool:
        """Check if this estimator can run on the system"""
        pass

    @abstractmethod
    def estimate(self, frame: np.ndarray, timestamp: float = 0.0) -> Optional[Pose]:
        """Estimate the pose in a single frame"""
        pass

    def close(self) -> None:
        """Release model resources"""
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False


class EstimatorFactory:
    """Factory for selecting a pose estimator"""

    def __init__(self):
        self._estimators: List[PoseEstimator] = []
        self.logger = get_logger(f"{__name__}.EstimatorFactory")

    def register_estimator(self, estimator: PoseEstimator) -> None:
        """Register a pose estimator"""
        self._estimators.append(estimator)
        self.logger.info(f"Registered estimator: {estimator.name}")

    def get_available_estimators(self) -> List[PoseEstimator]:
        """Get all available estimators, in registration order"""
        available = []
        for estimator in self._estimators:
            try:
                if estimator.is_available():
                    available.append(estimator)
                    self.logger.info(f"Estimator {estimator.name} is available")
                else:
                    self.logger.warning(f"Estimator {estimator.name} is not available")
            except Exception as e:
                self.logger.error(f"Error checking estimator {estimator.name}: {e}")

        return available

    def get_best_estimator(self) -> Optional[PoseEstimator]:
        """Get the first available estimator"""
        available = self.get_available_estimators()
        return available[0] if available else None
