"""
Motion scorer
Turns a trimmed pose sequence into per-measurement values and a pass/fail outcome
"""

import math
from typing import Callable, Dict, List, Optional, Sequence

import numpy as np

from shouldercheck.models.measurement import (
    AssessmentOutcome,
    FrameRange,
    MeasurementKind,
    MeasurementResult,
    MeasurementSpec,
    MotionAnalysisSpec,
)
from shouldercheck.models.pose import Keypoint, Pose


def angle_degrees(a: Keypoint, vertex: Keypoint, b: Keypoint) -> float:
    """
    Signed angle from ray(vertex->a) to ray(vertex->b), normalised into [0, 360).
    """
    radians = math.atan2(b.y - vertex.y, b.x - vertex.x) - math.atan2(a.y - vertex.y, a.x - vertex.x)
    value = (math.degrees(radians) + 360.0) % 360.0
    # -1e-15 % 360 rounds to 360.0
    return 0.0 if value >= 360.0 else value


def distance_pixels(a: Keypoint, b: Keypoint) -> float:
    return math.hypot(b.x - a.x, b.y - a.y)


def _angle(points: List[Keypoint]) -> float:
    return angle_degrees(points[0], points[1], points[2])


def _distance(points: List[Keypoint]) -> float:
    return distance_pixels(points[0], points[1])


# Velocity needs a paired previous-frame pose and is not computed per frame
CALCULATORS: Dict[MeasurementKind, Callable[[List[Keypoint]], float]] = {
    MeasurementKind.ANGLE: _angle,
    MeasurementKind.DISTANCE: _distance,
}


def measure_frame(pose: Optional[Pose], spec: MeasurementSpec) -> Optional[float]:
    """
    Value of one measurement in one frame, or None if a landmark is missing.

    Confidence is not re-checked: any detected position is used.
    """
    calculator = CALCULATORS.get(spec.kind)
    if calculator is None or pose is None:
        return None
    points = [pose.get(name) for name in spec.points]
    if any(p is None for p in points):
        return None
    return calculator(points)


def score_measurement(
    poses: Sequence[Optional[Pose]],
    frame_range: FrameRange,
    spec: MeasurementSpec,
) -> MeasurementResult:
    per_frame: List[Optional[float]] = []
    for frame in frame_range.frames():
        pose = poses[frame] if frame < len(poses) else None
        per_frame.append(measure_frame(pose, spec))

    values = [v for v in per_frame if v is not None]
    average = float(np.mean(values)) if values else None
    within = average is not None and spec.threshold_low <= average <= spec.threshold_high

    return MeasurementResult(
        spec=spec,
        per_frame_values=per_frame,
        average=average,
        within_threshold=within,
        supported=spec.kind in CALCULATORS,
    )


def score(
    poses: Sequence[Optional[Pose]],
    frame_range: FrameRange,
    spec: MotionAnalysisSpec,
) -> AssessmentOutcome:
    """
    Score every measurement over frame_range (inclusive).

    poses is indexed by clip frame; frames past its end count as undetected.
    overallSuccess is the AND of withinThreshold over supported measurements,
    so it is True when there is nothing to score. Unsupported kinds (velocity)
    are reported with all-null values and left out of the AND.
    """
    results = [score_measurement(poses, frame_range, measurement) for measurement in spec.measurements]
    overall = all(r.within_threshold for r in results if r.supported)
    return AssessmentOutcome(results=results, overall_success=overall)
