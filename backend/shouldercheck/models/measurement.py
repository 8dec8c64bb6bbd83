"""
Measurement data models

Measurement specs arrive as JSON from the generation service and are treated
as untrusted: they are validated here, before anything reaches the scorer.
"""

import math
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from shouldercheck.errors import InvalidMeasurementSpec
from shouldercheck.models.pose import Landmark


class MeasurementKind(str, Enum):
    ANGLE = "angle"
    DISTANCE = "distance"
    VELOCITY = "velocity"


POINT_COUNTS = {
    MeasurementKind.ANGLE: 3,
    MeasurementKind.DISTANCE: 2,
    MeasurementKind.VELOCITY: 2,
}


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)


class MeasurementSpec(CamelModel):
    """
    A named geometric computation with acceptance thresholds.

    For angles the points are (a, vertex, b).
    """
    kind: MeasurementKind
    points: List[Landmark]
    threshold_low: float = Field(alias="thresholdLow")
    threshold_high: float = Field(alias="thresholdHigh")

    @field_validator("threshold_low", "threshold_high")
    @classmethod
    def _finite(cls, value: float) -> float:
        if not math.isfinite(value):
            raise ValueError("thresholds must be finite numbers")
        return value

    @model_validator(mode="after")
    def _check_shape(self) -> "MeasurementSpec":
        expected = POINT_COUNTS[self.kind]
        if len(self.points) != expected:
            raise ValueError(f"{self.kind.value} measurement needs {expected} points, got {len(self.points)}")
        if self.threshold_low > self.threshold_high:
            raise ValueError(
                f"thresholdLow ({self.threshold_low}) must not exceed thresholdHigh ({self.threshold_high})"
            )
        return self

    @property
    def label(self) -> str:
        return f"{self.kind.value}({', '.join(p.value for p in self.points)})"


class MotionAnalysisSpec(CamelModel):
    """Spoken instruction plus the ordered measurements to score"""
    description: str
    measurements: List[MeasurementSpec] = Field(default_factory=list)


class FrameRange(CamelModel):
    """Inclusive frame window over a clip: 0 <= startFrame <= endFrame < totalFrames"""
    start_frame: int = Field(alias="startFrame", ge=0)
    end_frame: int = Field(alias="endFrame", ge=0)
    total_frames: int = Field(alias="totalFrames", ge=1)

    @model_validator(mode="after")
    def _check_bounds(self) -> "FrameRange":
        if not (self.start_frame <= self.end_frame < self.total_frames):
            raise ValueError(
                f"frame range {self.start_frame}..{self.end_frame} invalid for {self.total_frames} frames"
            )
        return self

    def frames(self) -> range:
        return range(self.start_frame, self.end_frame + 1)


class MeasurementResult(CamelModel):
    spec: MeasurementSpec
    per_frame_values: List[Optional[float]] = Field(alias="perFrameValues")
    average: Optional[float] = None
    within_threshold: bool = Field(alias="withinThreshold")
    supported: bool = True


class AssessmentOutcome(CamelModel):
    results: List[MeasurementResult] = Field(default_factory=list)
    overall_success: bool = Field(alias="overallSuccess")


def parse_motion_analysis(payload: Any) -> MotionAnalysisSpec:
    """
    Validate an untrusted motion analysis payload (dict or JSON string).

    Raises:
        InvalidMeasurementSpec: on unknown landmarks, wrong point counts or inverted thresholds
    """
    if isinstance(payload, MotionAnalysisSpec):
        return payload
    try:
        if isinstance(payload, (str, bytes)):
            return MotionAnalysisSpec.model_validate_json(payload)
        return MotionAnalysisSpec.model_validate(payload)
    except ValidationError as e:
        raise InvalidMeasurementSpec(
            "Motion analysis spec failed validation",
            details={"errors": _error_summary(e)},
        ) from e


def _error_summary(error: ValidationError) -> List[Dict[str, Any]]:
    return [
        {"loc": ".".join(str(part) for part in err["loc"]), "msg": err["msg"]}
        for err in error.errors()
    ]
