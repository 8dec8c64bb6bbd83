"""
HTTP status mapping for assessment errors
"""

from shouldercheck.errors import (
    AssessmentError,
    DurationUnavailable,
    GenerationServiceError,
    InvalidMeasurementSpec,
    NotRecording,
    PreconditionNotMet,
    ResourceUnavailable,
    SpeechSynthesisError,
)
from shouldercheck.services.video_processing.core import ClipProcessingError

STATUS_CODES = [
    (InvalidMeasurementSpec, 422),
    (PreconditionNotMet, 409),
    (NotRecording, 409),
    (ResourceUnavailable, 503),
    (DurationUnavailable, 504),
    (ClipProcessingError, 504),
    (GenerationServiceError, 502),
    (SpeechSynthesisError, 502),
]


def status_for(error: AssessmentError) -> int:
    for error_type, status_code in STATUS_CODES:
        if isinstance(error, error_type):
            return status_code
    return 500
