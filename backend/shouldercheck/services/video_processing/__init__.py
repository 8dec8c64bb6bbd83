"""
Recorded clip processing package
Duration probing and thumbnail strips for the trimming step
"""

from .core import (
    ClipMetadata,
    ClipProcessingError,
    ClipProcessor,
)

from .opencv_processor import OpenCVClipProcessor


def get_clip_processor() -> ClipProcessor:
    """Clip processors are stateless, so a fresh one per caller is fine"""
    return OpenCVClipProcessor()


__all__ = [
    'ClipMetadata',
    'ClipProcessingError',
    'ClipProcessor',
    'OpenCVClipProcessor',
    'get_clip_processor',
]
