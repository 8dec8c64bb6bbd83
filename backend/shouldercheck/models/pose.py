"""
Pose data models

Keypoints are in the pixel space of the source frame at capture time.
"""

import bisect
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Tuple


class Landmark(str, Enum):
    """MoveNet / COCO-17 landmark identifiers"""
    NOSE = "nose"
    LEFT_EYE = "left_eye"
    RIGHT_EYE = "right_eye"
    LEFT_EAR = "left_ear"
    RIGHT_EAR = "right_ear"
    LEFT_SHOULDER = "left_shoulder"
    RIGHT_SHOULDER = "right_shoulder"
    LEFT_ELBOW = "left_elbow"
    RIGHT_ELBOW = "right_elbow"
    LEFT_WRIST = "left_wrist"
    RIGHT_WRIST = "right_wrist"
    LEFT_HIP = "left_hip"
    RIGHT_HIP = "right_hip"
    LEFT_KNEE = "left_knee"
    RIGHT_KNEE = "right_knee"
    LEFT_ANKLE = "left_ankle"
    RIGHT_ANKLE = "right_ankle"


FACIAL_LANDMARKS = frozenset({
    Landmark.NOSE, Landmark.LEFT_EYE, Landmark.RIGHT_EYE, Landmark.LEFT_EAR, Landmark.RIGHT_EAR,
})

# Shoulders, elbows, wrists, hips, knees, ankles
BODY_LANDMARKS: Tuple[Landmark, ...] = tuple(lm for lm in Landmark if lm not in FACIAL_LANDMARKS)

SKELETON_EDGES: Tuple[Tuple[Landmark, Landmark], ...] = (
    (Landmark.LEFT_SHOULDER, Landmark.RIGHT_SHOULDER),
    (Landmark.LEFT_SHOULDER, Landmark.LEFT_ELBOW),
    (Landmark.LEFT_ELBOW, Landmark.LEFT_WRIST),
    (Landmark.RIGHT_SHOULDER, Landmark.RIGHT_ELBOW),
    (Landmark.RIGHT_ELBOW, Landmark.RIGHT_WRIST),
    (Landmark.LEFT_SHOULDER, Landmark.LEFT_HIP),
    (Landmark.RIGHT_SHOULDER, Landmark.RIGHT_HIP),
    (Landmark.LEFT_HIP, Landmark.RIGHT_HIP),
    (Landmark.LEFT_HIP, Landmark.LEFT_KNEE),
    (Landmark.LEFT_KNEE, Landmark.LEFT_ANKLE),
    (Landmark.RIGHT_HIP, Landmark.RIGHT_KNEE),
    (Landmark.RIGHT_KNEE, Landmark.RIGHT_ANKLE),
)


@dataclass(frozen=True)
class Keypoint:
    """A single 2D keypoint; position is only trustworthy above the confidence threshold."""
    name: Landmark
    x: float
    y: float
    confidence: float

    def is_confident(self, threshold: float = 0.5) -> bool:
        return self.confidence > threshold


@dataclass(frozen=True)
class Pose:
    """
    Keypoints captured at one instant, at most one per landmark.

    Attributes:
        keypoints: Read-only mapping from landmark to keypoint
        timestamp: Seconds since the recording (or capture) started
    """
    keypoints: Mapping[Landmark, Keypoint]
    timestamp: float = 0.0

    @classmethod
    def from_keypoints(cls, keypoints: Iterable[Keypoint], timestamp: float = 0.0) -> "Pose":
        by_name: Dict[Landmark, Keypoint] = {}
        for kp in keypoints:
            if kp.name in by_name:
                raise ValueError(f"Duplicate keypoint for landmark {kp.name.value}")
            by_name[kp.name] = kp
        return cls(keypoints=MappingProxyType(by_name), timestamp=timestamp)

    @classmethod
    def from_coordinates(
        cls,
        coordinates: Mapping[str, Tuple[float, float, float]],
        timestamp: float = 0.0,
    ) -> "Pose":
        """Build a pose from {landmark name: (x, y, confidence)}"""
        return cls.from_keypoints(
            (Keypoint(Landmark(name), float(x), float(y), float(conf)) for name, (x, y, conf) in coordinates.items()),
            timestamp=timestamp,
        )

    def get(self, name: Landmark) -> Optional[Keypoint]:
        return self.keypoints.get(Landmark(name))

    def __contains__(self, name) -> bool:
        return Landmark(name) in self.keypoints


class PoseSequence:
    """
    Append-only, capture-ordered sequence of poses for one recording.

    Frozen once the recording stops; reads are allowed at any time.
    """

    def __init__(self, nominal_fps: int = 30):
        self.nominal_fps = nominal_fps
        self._poses: List[Pose] = []
        self._frozen = False

    @property
    def frozen(self) -> bool:
        return self._frozen

    def append(self, pose: Pose) -> None:
        if self._frozen:
            raise RuntimeError("PoseSequence is frozen; recording already stopped")
        if self._poses and pose.timestamp < self._poses[-1].timestamp:
            raise ValueError("Poses must be appended in capture order")
        self._poses.append(pose)

    def freeze(self) -> None:
        self._frozen = True

    def __len__(self) -> int:
        return len(self._poses)

    def __getitem__(self, index: int) -> Pose:
        return self._poses[index]

    def __iter__(self) -> Iterator[Pose]:
        return iter(self._poses)

    def aligned_to(self, total_frames: int, fps: Optional[float] = None) -> List[Optional[Pose]]:
        """
        Resample onto the clip's nominal frame index space.

        Frame i (at i / fps seconds) takes the pose with the nearest timestamp
        if it lies within one frame interval, otherwise None. Ties go to the
        earlier pose.
        """
        fps = float(fps or self.nominal_fps)
        interval = 1.0 / fps
        timestamps = [p.timestamp for p in self._poses]
        aligned: List[Optional[Pose]] = []

        for frame in range(max(0, total_frames)):
            t = frame / fps
            idx = bisect.bisect_left(timestamps, t)
            best: Optional[Pose] = None
            best_dt = None
            for candidate in (idx - 1, idx):
                if 0 <= candidate < len(timestamps):
                    dt = abs(timestamps[candidate] - t)
                    if best_dt is None or dt < best_dt:
                        best, best_dt = self._poses[candidate], dt
            aligned.append(best if best_dt is not None and best_dt <= interval else None)

        return aligned
