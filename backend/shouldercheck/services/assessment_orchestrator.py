"""
Assessment orchestrator
NotStarted -> AwaitingCapture -> Recording -> Trimming -> Scoring -> Done
"""

import asyncio
import uuid
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from shouldercheck.analyzers import motion_scorer
from shouldercheck.config.base import Settings, settings as default_settings
from shouldercheck.errors import (
    AssessmentError,
    DurationUnavailable,
    PreconditionNotMet,
    ResourceUnavailable,
    SessionAlreadyActive,
)
from shouldercheck.models.intake import ConversationTurn, Diagnosis, DiagnosisRequest
from shouldercheck.models.measurement import AssessmentOutcome, FrameRange, MotionAnalysisSpec
from shouldercheck.services.camera import Camera
from shouldercheck.services.frame_compositor import CompositorStream, FrameCompositor
from shouldercheck.services.frame_range_selector import FrameRangeSelector, SelectorState
from shouldercheck.services.frame_scheduler import FrameScheduler
from shouldercheck.services.openai_service import OpenAIService
from shouldercheck.services.pose_estimation import PoseEstimator, build_pose_estimator
from shouldercheck.services.presence_monitor import PresenceEvent, PresenceMonitor
from shouldercheck.services.recording_session import RecordedClip, RecordingSession
from shouldercheck.services.speech_service import SpeechService
from shouldercheck.services.video_processing import ClipProcessor, get_clip_processor
from shouldercheck.utils.logger import get_logger

logger = get_logger(__name__)


class AssessmentStage(str, Enum):
    NOT_STARTED = "not_started"
    AWAITING_CAPTURE = "awaiting_capture"
    RECORDING = "recording"
    TRIMMING = "trimming"
    SCORING = "scoring"
    DONE = "done"


USER_MESSAGES = {
    "CAMERA_UNAVAILABLE": "We could not access your camera. Check permissions and restart the assessment.",
    "CAPTURE_UNSUPPORTED": "Recording is not supported on this device. Please restart the assessment.",
    "NO_ESTIMATOR_AVAILABLE": "The pose model could not be loaded. Please restart the assessment.",
    "DURATION_UNAVAILABLE": "The recording could not be loaded for trimming. Retry or abort.",
    "GENERATION_FAILED": "We could not generate your diagnosis. Please try again.",
}


class AssessmentOrchestrator:
    """
    Sequences one assessment attempt.

    All collaborators are injected and owned by this instance; nothing is
    shared with other attempts. Out-of-order calls raise PreconditionNotMet.
    """

    def __init__(
        self,
        motion_spec: MotionAnalysisSpec,
        camera: Camera,
        estimator_factory: Callable[[], PoseEstimator],
        generation: OpenAIService,
        speech: SpeechService,
        questionnaire_results: Optional[List[ConversationTurn]] = None,
        initial_assessment: Optional[Dict[str, Any]] = None,
        session_factory: Optional[Callable[[Camera, CompositorStream], RecordingSession]] = None,
        clip_processor: Optional[ClipProcessor] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or default_settings
        self.id = uuid.uuid4().hex
        self.motion_spec = motion_spec
        self.camera = camera
        self.generation = generation
        self.speech = speech
        self.questionnaire_results = questionnaire_results or []
        self.initial_assessment = initial_assessment or {}
        self.clip_processor = clip_processor or get_clip_processor()

        self._estimator_factory = estimator_factory
        self._session_factory = session_factory or self._default_session
        self.estimator: Optional[PoseEstimator] = None
        self.compositor = FrameCompositor(confidence_threshold=self.settings.CONFIDENCE_THRESHOLD)
        self.monitor = PresenceMonitor(
            instruction_text=motion_spec.description,
            reminder_interval=self.settings.REPROMPT_INTERVAL_SECONDS,
            confidence_threshold=self.settings.CONFIDENCE_THRESHOLD,
            inset=self.settings.FRAME_INSET,
        )

        self.stage = AssessmentStage.NOT_STARTED
        self.error: Optional[str] = None
        self.scheduler: Optional[FrameScheduler] = None
        self.session: Optional[RecordingSession] = None
        self.clip: Optional[RecordedClip] = None
        self.selector: Optional[FrameRangeSelector] = None
        self.frame_range: Optional[FrameRange] = None
        self.outcome: Optional[AssessmentOutcome] = None
        self.diagnosis: Optional[Diagnosis] = None

        self._range_selected = False
        self._holds_camera = False
        self._loop_stop: Optional[asyncio.Event] = None
        self._loop_task: Optional[asyncio.Task] = None

    def _default_session(self, camera: Camera, stream: CompositorStream) -> RecordingSession:
        return RecordingSession(
            camera=camera,
            stream=stream,
            output_dir=self.settings.RECORDINGS_DIR,
            fps=self.settings.NOMINAL_FPS,
            fourcc=self.settings.RECORDING_FOURCC,
        )

    def _require(self, *stages: AssessmentStage) -> None:
        if self.stage not in stages:
            raise PreconditionNotMet(
                f"Cannot do this while the assessment is {self.stage.value}",
                details={"stage": self.stage.value, "expected": [s.value for s in stages]},
            )

    def _fail(self, error: AssessmentError) -> None:
        self.error = USER_MESSAGES.get(error.error_code, error.message)
        logger.error(f"Assessment {self.id} halted at {self.stage.value}: {error.error_code} - {error.message}")

    def status(self) -> Dict[str, Any]:
        status = {
            "sessionId": self.id,
            "stage": self.stage.value,
            "error": self.error,
            "inFrame": self.monitor.in_frame,
            "instruction": self.motion_spec.description,
        }
        if self.session is not None:
            status["recording"] = {
                "state": self.session.state.value,
                "frames": self.session.frame_count,
                "poses": len(self.session.poses),
                "seconds": round(self.session.elapsed(), 2),
            }
        if self.selector is not None:
            status["trim"] = {
                "state": self.selector.state.value,
                "totalFrames": self.selector.total_frames,
                "startFrame": self.selector.start_frame,
                "endFrame": self.selector.end_frame,
            }
        return status

    # Capture

    async def start_capture(self) -> None:
        """Open the camera, load the model and start the frame loop"""
        self._require(AssessmentStage.NOT_STARTED)
        try:
            self.camera.open()
            self._holds_camera = True
            self.estimator = self._estimator_factory()
        except ResourceUnavailable as e:
            self._fail(e)
            await self._stop_capture()
            raise

        self.scheduler = FrameScheduler(self.camera, self.estimator, self.compositor, self.monitor)
        self._loop_stop = asyncio.Event()
        self._loop_task = asyncio.create_task(
            self.scheduler.run(self._loop_stop, on_event=self._on_presence_event)
        )
        self._loop_task.add_done_callback(self._on_loop_done)
        self.stage = AssessmentStage.AWAITING_CAPTURE
        logger.info(f"Assessment {self.id} awaiting capture")

    def _on_presence_event(self, event: PresenceEvent) -> None:
        logger.info(f"🗣️ {event.kind}: {event.text}")
        self.speech.announce(event.text)

    def _on_loop_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is None:
            return
        if isinstance(error, AssessmentError):
            self._fail(error)
        else:
            self.error = "The camera stream stopped unexpectedly. Please restart the assessment."
            logger.error(f"Assessment {self.id} frame loop crashed: {error}")

    async def _stop_capture(self) -> None:
        if self._loop_stop is not None:
            self._loop_stop.set()
        task, self._loop_task = self._loop_task, None
        if task is not None:
            try:
                await asyncio.wait_for(task, timeout=5.0)
            except asyncio.TimeoutError:
                logger.warning(f"Assessment {self.id} frame loop did not stop in time")
            except Exception:
                # Already reported by _on_loop_done
                pass
        if self.estimator is not None:
            self.estimator.close()
            self.estimator = None
        if self._holds_camera:
            self._holds_camera = False
            self.camera.close()

    # Recording

    def start_recording(self) -> None:
        self._require(AssessmentStage.AWAITING_CAPTURE)
        if self.error is not None:
            raise PreconditionNotMet(self.error)

        session = self._session_factory(self.camera, self.compositor.capture_stream())
        try:
            session.start()
        except SessionAlreadyActive as e:
            # Retryable once the other session stops recording
            session.close()
            logger.warning(f"Assessment {self.id}: {e.message}")
            raise
        except ResourceUnavailable as e:
            session.close()
            self._fail(e)
            raise

        self.session = session
        self.scheduler.recording = session
        self.monitor.recording_started = True
        self.stage = AssessmentStage.RECORDING

    async def stop_recording(self) -> RecordedClip:
        """Stop recording, release the camera and load the clip for trimming"""
        self._require(AssessmentStage.RECORDING)
        self.scheduler.recording = None
        try:
            self.clip = self.session.stop(strict=True)
        except ResourceUnavailable as e:
            self._fail(e)
            await self._stop_capture()
            raise
        await self._stop_capture()

        self.stage = AssessmentStage.TRIMMING
        await self.resolve_clip_duration()
        return self.clip

    # Trimming

    async def resolve_clip_duration(self) -> FrameRangeSelector:
        """(Re)load the clip for trimming; may be retried after DurationUnavailable"""
        self._require(AssessmentStage.TRIMMING)
        if self.selector is not None and self.selector.state == SelectorState.READY:
            return self.selector

        clip_path = self.clip.path
        self.selector = FrameRangeSelector(
            duration_probe=lambda: self.clip_processor.probe_duration(clip_path),
            fps=self.settings.NOMINAL_FPS,
            max_retries=self.settings.DURATION_MAX_RETRIES,
            initial_backoff=self.settings.DURATION_INITIAL_BACKOFF_SECONDS,
            timeout=self.settings.DURATION_TIMEOUT_SECONDS,
        )
        try:
            await self.selector.resolve()
        except DurationUnavailable as e:
            self._fail(e)
            raise
        self.error = None
        return self.selector

    def _require_selector(self) -> FrameRangeSelector:
        self._require(AssessmentStage.TRIMMING)
        if self.selector is None or self.selector.state != SelectorState.READY:
            raise PreconditionNotMet("The recording is not ready for trimming")
        return self.selector

    def select_range(
        self,
        start_frame: Optional[int] = None,
        end_frame: Optional[int] = None,
        start_fraction: Optional[float] = None,
        end_fraction: Optional[float] = None,
    ) -> FrameRange:
        selector = self._require_selector()
        if start_fraction is not None or end_fraction is not None:
            selector.set_fractions(
                start_fraction if start_fraction is not None else 0.0,
                end_fraction if end_fraction is not None else 1.0,
            )
        if end_frame is not None:
            selector.set_end_frame(end_frame)
        if start_frame is not None:
            selector.set_start_frame(start_frame)
        self._range_selected = True
        return selector.frame_range()

    # Scoring

    async def score(self) -> Diagnosis:
        """Score the selected range, then await the diagnosis"""
        selector = self._require_selector()
        if not self._range_selected:
            raise PreconditionNotMet("Select a frame range before scoring")

        self.frame_range = selector.confirm()
        self.stage = AssessmentStage.SCORING
        aligned = self.clip.poses.aligned_to(self.frame_range.total_frames, self.settings.NOMINAL_FPS)
        self.outcome = motion_scorer.score(aligned, self.frame_range, self.motion_spec)
        logger.info(
            f"Assessment {self.id} scored: success={self.outcome.overall_success} "
            f"({len(self.outcome.results)} measurements)"
        )
        for result in self.outcome.results:
            logger.info(f"📐 {result.spec.label}: average={result.average} within={result.within_threshold}")
        self.stage = AssessmentStage.DONE
        return await self.request_diagnosis()

    async def request_diagnosis(self) -> Diagnosis:
        """Hand the outcome to the diagnosis service; retryable on failure"""
        self._require(AssessmentStage.DONE)
        request = DiagnosisRequest(
            questionnaire_results=self.questionnaire_results,
            initial_assessment=self.initial_assessment,
            motion_assessment_results=self.outcome,
        )
        try:
            self.diagnosis = await self.generation.generate_diagnosis(request)
        except AssessmentError as e:
            self._fail(e)
            raise
        self.error = None
        return self.diagnosis

    async def close(self) -> None:
        """Release session, camera, model and pending speech on any exit path"""
        if self.scheduler is not None:
            self.scheduler.recording = None
        if self.session is not None:
            self.session.close()
        await self._stop_capture()
        await self.speech.aclose()
        logger.info(f"Assessment {self.id} closed at {self.stage.value}")


def build_orchestrator(
    motion_spec: MotionAnalysisSpec,
    generation: OpenAIService,
    speech: SpeechService,
    questionnaire_results: Optional[List[ConversationTurn]] = None,
    initial_assessment: Optional[Dict[str, Any]] = None,
    settings: Optional[Settings] = None,
    camera: Optional[Camera] = None,
) -> AssessmentOrchestrator:
    """
    Wire an orchestrator to the configured camera and pose model.

    Sessions sharing a device must share its Camera so only one of them can record.
    """
    settings = settings or default_settings
    return AssessmentOrchestrator(
        motion_spec=motion_spec,
        camera=camera or Camera(index=settings.CAMERA_INDEX, frame_size=settings.FRAME_SIZE),
        estimator_factory=lambda: build_pose_estimator(settings),
        generation=generation,
        speech=speech,
        questionnaire_results=questionnaire_results,
        initial_assessment=initial_assessment,
        settings=settings,
    )
