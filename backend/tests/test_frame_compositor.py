"""
Tests for the frame compositor
"""

from io import BytesIO

import cv2
import numpy as np
import pytest
from PIL import Image

from shouldercheck.models.pose import Pose
from shouldercheck.services.frame_compositor import FrameCompositor, mirror_point


@pytest.fixture
def compositor():
    return FrameCompositor(confidence_threshold=0.5)


@pytest.fixture
def blank():
    return np.zeros((480, 640, 3), dtype=np.uint8)


def shoulders(left_conf=0.9, right_conf=0.9):
    return Pose.from_coordinates({
        "left_shoulder": (100, 100, left_conf),
        "right_shoulder": (200, 100, right_conf),
    })


def test_frame_is_mirrored(compositor, blank):
    blank[5, 10] = (0, 0, 255)
    surface = compositor.render(blank, None)

    assert tuple(surface[5, 629]) == (0, 0, 255)
    assert tuple(surface[5, 10]) == (0, 0, 0)


@pytest.mark.parametrize("x", [0, 1, 320, 638, 639])
def test_mirror_point_matches_frame_flip(x):
    frame = np.zeros((4, 640), dtype=np.uint8)
    frame[2, x] = 255
    flipped = cv2.flip(frame, 1)

    mx, my = mirror_point(x, 2, 640)

    assert flipped[my, mx] == 255


def test_marker_at_left_edge_lands_on_last_column(compositor, blank):
    surface = compositor.render(blank, Pose.from_coordinates({"left_wrist": (0, 100, 0.9)}))

    assert surface[100, 639].max() > 0
    assert surface[100, 636].max() > 0


def test_source_frame_is_untouched(compositor, blank):
    compositor.render(blank, shoulders())
    assert not blank.any()


def test_confident_keypoints_are_drawn_mirrored(compositor, blank):
    surface = compositor.render(blank, shoulders())

    assert surface[100, 540].max() > 0
    assert surface[100, 440].max() > 0
    # Edge between the two shoulders
    assert surface[100, 490].max() > 0
    # Unmirrored positions stay empty
    assert surface[100, 100].max() == 0


def test_low_confidence_keypoint_and_its_edges_are_skipped(compositor, blank):
    surface = compositor.render(blank, shoulders(right_conf=0.5))

    assert surface[100, 540].max() > 0
    assert surface[100, 440].max() == 0
    assert surface[100, 490].max() == 0


def test_facial_landmarks_are_not_drawn(compositor, blank):
    pose = Pose.from_coordinates({"nose": (320, 50, 0.99)})
    surface = compositor.render(blank, pose)
    assert not surface.any()


def test_snapshot_returns_a_copy(compositor, blank):
    assert compositor.snapshot() == (None, 0)
    compositor.render(blank, None)

    frame, tick = compositor.snapshot()
    frame[:] = 255

    assert tick == 1
    assert not compositor.snapshot()[0].any()


def test_capture_stream_reads_latest_surface(compositor, blank):
    stream = compositor.capture_stream()
    assert stream.frame_size is None

    compositor.render(blank, None)
    compositor.render(blank, None)
    frame, tick = stream.read()

    assert stream.frame_size == (640, 480)
    assert frame.shape == (480, 640, 3)
    assert tick == 2


def test_preview_jpeg(compositor, blank):
    assert compositor.preview_jpeg() is None
    compositor.render(blank, shoulders())

    jpeg = compositor.preview_jpeg(max_width=320)

    assert jpeg[:2] == b"\xff\xd8"
    assert Image.open(BytesIO(jpeg)).size == (320, 240)
