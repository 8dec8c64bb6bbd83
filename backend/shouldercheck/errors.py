"""
Assessment error taxonomy

Transient errors (estimation, speech) are absorbed where they occur. Precondition,
resource and data-unavailable errors propagate to the orchestrator.
"""

from datetime import datetime, timezone
from typing import Any, Dict


class AssessmentError(Exception):
    """Base exception for assessment pipeline errors"""

    error_code = "ASSESSMENT_ERROR"

    def __init__(self, message: str, error_code: str = None, details: Dict[str, Any] = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.error_code
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc).isoformat()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
            "timestamp": self.timestamp,
        }


# Transient / recoverable

class EstimationFailure(AssessmentError):
    """The pose model failed on a single frame; retry on the next tick"""
    error_code = "ESTIMATION_FAILURE"


class SpeechSynthesisError(AssessmentError):
    """Text-to-audio request failed"""
    error_code = "SPEECH_SYNTHESIS_FAILED"


class GenerationServiceError(AssessmentError):
    """Question or diagnosis generation failed; the step may be retried"""
    error_code = "GENERATION_FAILED"


# Precondition violations

class PreconditionNotMet(AssessmentError):
    """Invalid orchestrator transition"""
    error_code = "PRECONDITION_NOT_MET"


class InvalidMeasurementSpec(AssessmentError):
    """Malformed measurement specification"""
    error_code = "INVALID_MEASUREMENT_SPEC"


# Resource failures

class ResourceUnavailable(AssessmentError):
    """Terminal for the session; requires restart"""
    error_code = "RESOURCE_UNAVAILABLE"


class CameraUnavailable(ResourceUnavailable):
    error_code = "CAMERA_UNAVAILABLE"


class CaptureUnsupported(ResourceUnavailable):
    error_code = "CAPTURE_UNSUPPORTED"


class SessionAlreadyActive(ResourceUnavailable):
    error_code = "SESSION_ALREADY_ACTIVE"


# Data unavailable

class DurationUnavailable(AssessmentError):
    """Clip duration could not be resolved before the timeout"""
    error_code = "DURATION_UNAVAILABLE"


# Conditions

class NotRecording(AssessmentError):
    """stop() was called on a session that is not recording"""
    error_code = "NOT_RECORDING"
