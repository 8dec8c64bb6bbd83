"""
Pytest configuration and fixtures for testing
"""

import os

# Keep test runs from writing log files into the working tree
os.environ.setdefault("LOG_FILE", "")
os.environ.setdefault("OPENAI_API_KEY", "test-key")

import json
from types import SimpleNamespace

import numpy as np
import pytest
from fastapi import Depends
from fastapi.testclient import TestClient

from shouldercheck.config.base import Settings
from shouldercheck.main import app
from shouldercheck.models.measurement import MotionAnalysisSpec
from shouldercheck.models.pose import Pose
from shouldercheck.routers.assessment import get_camera_pool, get_orchestrator_factory
from shouldercheck.routers.intake import get_openai_service, get_speech_service
from shouldercheck.services.assessment_orchestrator import AssessmentOrchestrator
from shouldercheck.services.camera import Camera, CameraPool
from shouldercheck.services.openai_service import OpenAIService
from shouldercheck.services.pose_estimation import PoseEstimator
from shouldercheck.services.recording_session import RecordingSession
from shouldercheck.services.speech_service import SpeechService
from shouldercheck.services.video_processing import ClipMetadata, ClipProcessor

FRAME_WIDTH = 640
FRAME_HEIGHT = 480

# Standing figure, well inside a 640x480 frame
STANDING_COORDINATES = {
    "left_shoulder": (360, 140),
    "right_shoulder": (280, 140),
    "left_elbow": (380, 200),
    "right_elbow": (260, 200),
    "left_wrist": (390, 260),
    "right_wrist": (250, 260),
    "left_hip": (350, 260),
    "right_hip": (290, 260),
    "left_knee": (350, 340),
    "right_knee": (290, 340),
    "left_ankle": (350, 420),
    "right_ankle": (290, 420),
}


def make_pose(overrides=None, confidence=0.9, timestamp=0.0, drop=()):
    """Standing pose with optional per-landmark (x, y[, confidence]) overrides"""
    coordinates = {}
    for name, (x, y) in STANDING_COORDINATES.items():
        if name in drop:
            continue
        coordinates[name] = (x, y, confidence)
    for name, value in (overrides or {}).items():
        coordinates[name] = value if len(value) == 3 else (value[0], value[1], confidence)
    return Pose.from_coordinates(coordinates, timestamp=timestamp)


class FakeClock:
    def __init__(self, start=100.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class FakeCapture:
    """Stands in for cv2.VideoCapture"""

    def __init__(self, opened=True, frame=None):
        self.opened = opened
        self.frame = frame if frame is not None else np.zeros((FRAME_HEIGHT, FRAME_WIDTH, 3), dtype=np.uint8)
        self.properties = {}
        self.released = False
        self.reads = 0

    def isOpened(self):
        return self.opened

    def set(self, prop, value):
        self.properties[prop] = value
        return True

    def read(self):
        self.reads += 1
        return True, self.frame.copy()

    def release(self):
        self.released = True
        self.opened = False


class FakeWriter:
    """Stands in for cv2.VideoWriter"""

    def __init__(self, path, fourcc, fps, size, opened=True):
        self.path = path
        self.fourcc = fourcc
        self.fps = fps
        self.size = size
        self.opened = opened
        self.frames = []
        self.released = False

    def isOpened(self):
        return self.opened

    def write(self, frame):
        self.frames.append(frame)

    def release(self):
        self.released = True


class FakeEstimator(PoseEstimator):
    """Replays scripted results; an exception instance is raised instead of returned"""

    def __init__(self, results=None, default=None):
        super().__init__("Fake")
        self.results = list(results or [])
        self.default = default
        self.calls = 0
        self.closed = False

    def is_available(self):
        return True

    def estimate(self, frame, timestamp=0.0):
        self.calls += 1
        result = self.results.pop(0) if self.results else self.default
        if isinstance(result, Exception):
            raise result
        if result is None:
            return None
        return Pose(keypoints=result.keypoints, timestamp=timestamp)

    def close(self):
        self.closed = True


class _Completions:
    def __init__(self, client):
        self._client = client

    async def create(self, **kwargs):
        self._client.chat_calls.append(kwargs)
        if self._client.chat_error is not None:
            raise self._client.chat_error
        content = self._client.chat_responses.pop(0)
        if not isinstance(content, str):
            content = json.dumps(content)
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


class _Speech:
    def __init__(self, client):
        self._client = client

    async def create(self, **kwargs):
        self._client.speech_calls.append(kwargs)
        if self._client.speech_error is not None:
            raise self._client.speech_error
        return SimpleNamespace(content=b"ID3" + kwargs["input"].encode())


class FakeOpenAIClient:
    """Implements the slice of AsyncOpenAI the services use"""

    def __init__(self, chat_responses=None):
        self.chat_responses = list(chat_responses or [])
        self.chat_calls = []
        self.speech_calls = []
        self.chat_error = None
        self.speech_error = None
        self.chat = SimpleNamespace(completions=_Completions(self))
        self.audio = SimpleNamespace(speech=_Speech(self))


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def standing_pose():
    return make_pose()


@pytest.fixture
def frame_size():
    return (FRAME_WIDTH, FRAME_HEIGHT)


@pytest.fixture
def fake_openai():
    return FakeOpenAIClient()


@pytest.fixture
def arm_raise_spec():
    """Shoulder abduction: angle at the left shoulder from the wrist to the hip"""
    return MotionAnalysisSpec.model_validate({
        "description": "Raise your left arm out to the side as high as you can.",
        "measurements": [
            {
                "kind": "angle",
                "points": ["left_wrist", "left_shoulder", "left_hip"],
                "thresholdLow": 80,
                "thresholdHigh": 100,
            }
        ],
    })


@pytest.fixture
def sample_diagnosis():
    return {
        "condition": "Rotator cuff tendinopathy",
        "reasoning": "Painful arc with preserved range of motion.",
        "exercises": ["Pendulum swings"],
        "protocols": ["Three sets daily"],
        "suggestions": ["Avoid overhead lifting"],
        "nextSteps": ["Review in two weeks"],
    }



class FakeClipProcessor(ClipProcessor):
    """Reports scripted durations; NaN stands for a container still being finalized"""

    def __init__(self, *durations):
        super().__init__("Fake")
        self.durations = list(durations or [3.0])
        self.probes = 0
        self.thumbnail_error = None

    def probe_duration(self, clip_path):
        self.probes += 1
        if len(self.durations) > 1:
            return self.durations.pop(0)
        return self.durations[0]

    def get_clip_metadata(self, clip_path):
        duration = self.durations[0]
        return ClipMetadata(duration, 30.0, FRAME_WIDTH, FRAME_HEIGHT, int(duration * 30), "mp4v", 1024)

    def thumbnail_strip(self, clip_path, count, size):
        if self.thumbnail_error is not None:
            raise self.thumbnail_error
        return b"\xff\xd8thumbnails"


def arm_raised_pose():
    """Left arm held straight out at shoulder height"""
    return make_pose(overrides={"left_shoulder": (360, 140), "left_hip": (360, 260), "left_wrist": (480, 140)})


@pytest.fixture
def test_settings(tmp_path):
    return Settings(
        RECORDINGS_DIR=str(tmp_path / "recordings"),
        DURATION_MAX_RETRIES=1,
        DURATION_INITIAL_BACKOFF_SECONDS=0.0,
        DURATION_TIMEOUT_SECONDS=1.0,
        REPROMPT_INTERVAL_SECONDS=15.0,
    )


@pytest.fixture
def build_test_orchestrator(test_settings, fake_openai, arm_raise_spec):
    """Orchestrator wired to fake devices; keyword overrides replace individual collaborators"""

    def build(capture=None, estimator=None, clip_processor=None, motion_spec=None, camera=None):
        capture = capture or FakeCapture()
        estimator = estimator or FakeEstimator(default=arm_raised_pose())

        def session_factory(camera, stream):
            return RecordingSession(
                camera,
                stream,
                test_settings.RECORDINGS_DIR,
                fps=test_settings.NOMINAL_FPS,
                writer_factory=FakeWriter,
            )

        return AssessmentOrchestrator(
            motion_spec=motion_spec or arm_raise_spec,
            camera=camera or Camera(capture_factory=lambda index: capture),
            estimator_factory=lambda: estimator,
            generation=OpenAIService(client=fake_openai),
            speech=SpeechService(client=fake_openai),
            questionnaire_results=[{"role": "user", "content": "It aches when I lift my arm"}],
            initial_assessment={"diagnosis": "Possible impingement"},
            session_factory=session_factory,
            clip_processor=clip_processor or FakeClipProcessor(3.0),
            settings=test_settings,
        )

    return build


@pytest.fixture
def camera_pool():
    """Process-wide cameras backed by fake captures"""
    pool = CameraPool(capture_factory=lambda index: FakeCapture())
    yield pool
    pool.close_all()


@pytest.fixture
def client(fake_openai, build_test_orchestrator, camera_pool):
    """Test client for the FastAPI app with devices and OpenAI replaced by fakes"""
    app.dependency_overrides[get_openai_service] = lambda: OpenAIService(client=fake_openai)
    app.dependency_overrides[get_speech_service] = lambda: SpeechService(client=fake_openai)

    def orchestrator_factory(cameras: CameraPool = Depends(get_camera_pool)):
        return lambda motion_spec, questionnaire_results, initial_assessment: build_test_orchestrator(
            motion_spec=motion_spec, camera=cameras.get(0)
        )

    app.dependency_overrides[get_camera_pool] = lambda: camera_pool
    app.dependency_overrides[get_orchestrator_factory] = orchestrator_factory
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
