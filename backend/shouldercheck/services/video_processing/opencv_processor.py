"""
OpenCV clip processor
Duration probing and thumbnail strips for recorded clips
"""

import os
from io import BytesIO
from typing import Tuple

import cv2
import numpy as np
from PIL import Image

from .core import ClipMetadata, ClipProcessingError, ClipProcessor


class OpenCVClipProcessor(ClipProcessor):
    """OpenCV implementation backed by the FFMPEG capture backend"""

    def __init__(self, jpeg_quality: int = 85, backend: int = cv2.CAP_ANY):
        super().__init__("OpenCV")
        self.jpeg_quality = jpeg_quality
        self.backend = backend

    def _open(self, clip_path: str) -> "cv2.VideoCapture":
        cap = cv2.VideoCapture(clip_path, self.backend)
        if not cap.isOpened():
            cap.release()
            raise ClipProcessingError(
                f"Could not open clip {clip_path}",
                "OPEN_FAILED",
                {"path": clip_path}
            )
        return cap

    def get_clip_metadata(self, clip_path: str) -> ClipMetadata:
        cap = self._open(clip_path)
        try:
            fps = cap.get(cv2.CAP_PROP_FPS)
            total_frames = int(cap.get(cv2.CAP_PROP_FRAME_COUNT))
            width = int(cap.get(cv2.CAP_PROP_FRAME_WIDTH))
            height = int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT))
            fourcc = cap.get(cv2.CAP_PROP_FOURCC)
        finally:
            cap.release()

        # Unseekable or still-being-written containers report no frame count
        duration = total_frames / fps if fps > 0 and total_frames > 0 else float("nan")
        fourcc_str = "".join([chr((int(fourcc) >> 8 * i) & 0xFF) for i in range(4)]).strip()

        metadata = ClipMetadata(
            duration=duration,
            fps=fps,
            width=width,
            height=height,
            total_frames=total_frames,
            codec=fourcc_str,
            file_size=os.path.getsize(clip_path),
        )
        self.logger.info(f"Clip metadata: {duration:.2f}s, {width}x{height}, {total_frames} frames, {fps:.1f} FPS")
        return metadata

    def thumbnail_strip(self, clip_path: str, count: int = 20, size: Tuple[int, int] = (640, 64)) -> bytes:
        metadata = self.get_clip_metadata(clip_path)
        if not metadata.is_valid():
            raise ClipProcessingError(
                f"Invalid clip duration: {metadata.duration}",
                "INVALID_DURATION",
                {"path": clip_path}
            )

        strip_width, strip_height = size
        thumb_width = max(1, strip_width // count)
        strip = np.zeros((strip_height, thumb_width * count, 3), dtype=np.uint8)

        cap = self._open(clip_path)
        try:
            for i in range(count):
                cap.set(cv2.CAP_PROP_POS_MSEC, (metadata.duration / count) * i * 1000.0)
                ok, frame = cap.read()
                if not ok or frame is None:
                    self.logger.warning(f"Could not read thumbnail {i} of {clip_path}")
                    continue
                thumb = cv2.resize(frame, (thumb_width, strip_height), interpolation=cv2.INTER_AREA)
                strip[:, i * thumb_width:(i + 1) * thumb_width] = thumb
        finally:
            cap.release()

        rgb = cv2.cvtColor(strip, cv2.COLOR_BGR2RGB)
        buffer = BytesIO()
        Image.fromarray(rgb).save(buffer, format='JPEG', quality=self.jpeg_quality)
        return buffer.getvalue()
