"""
Assessment session endpoints
Capture, recording, trimming and scoring for one in-process assessment at a time
"""

import asyncio
import time
from typing import Any, Callable, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import Response
from pydantic import BaseModel, Field

from shouldercheck.config.base import settings
from shouldercheck.errors import AssessmentError, PreconditionNotMet
from shouldercheck.models.intake import ConversationTurn
from shouldercheck.models.measurement import parse_motion_analysis
from shouldercheck.routers.errors import status_for
from shouldercheck.routers.intake import get_openai_service, get_speech_service
from shouldercheck.services.assessment_orchestrator import AssessmentOrchestrator, build_orchestrator
from shouldercheck.services.camera import CameraPool
from shouldercheck.services.openai_service import OpenAIService
from shouldercheck.services.speech_service import SpeechService
from shouldercheck.utils.logger import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/sessions", tags=["Assessment"])


class CreateSessionRequest(BaseModel):
    # Validated separately so malformed specs surface as InvalidMeasurementSpec
    motion_analysis: Dict[str, Any] = Field(alias="motionAnalysis")
    questionnaire_results: List[ConversationTurn] = Field(default_factory=list, alias="questionnaireResults")
    initial_assessment: Dict[str, Any] = Field(default_factory=dict, alias="initialAssessment")


class TrimRequest(BaseModel):
    start_frame: Optional[int] = Field(default=None, alias="startFrame")
    end_frame: Optional[int] = Field(default=None, alias="endFrame")
    start_fraction: Optional[float] = Field(default=None, alias="startFraction", ge=0.0, le=1.0)
    end_fraction: Optional[float] = Field(default=None, alias="endFraction", ge=0.0, le=1.0)


class SessionRegistry:
    """
    In-process assessment sessions keyed by id.

    Sessions untouched for longer than ttl_seconds are closed and dropped by
    evict_expired(), which runs whenever a session is created.
    """

    def __init__(self, ttl_seconds: float = 1800.0, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._sessions: Dict[str, AssessmentOrchestrator] = {}
        self._last_seen: Dict[str, float] = {}

    def add(self, orchestrator: AssessmentOrchestrator) -> None:
        self._sessions[orchestrator.id] = orchestrator
        self._last_seen[orchestrator.id] = self._clock()

    def get(self, session_id: str) -> AssessmentOrchestrator:
        orchestrator = self._sessions.get(session_id)
        if orchestrator is None:
            raise HTTPException(status_code=404, detail=f"Session {session_id} not found")
        self._last_seen[session_id] = self._clock()
        return orchestrator

    def pop(self, session_id: str) -> AssessmentOrchestrator:
        orchestrator = self.get(session_id)
        del self._sessions[session_id]
        del self._last_seen[session_id]
        return orchestrator

    def __len__(self) -> int:
        return len(self._sessions)

    async def evict_expired(self) -> int:
        now = self._clock()
        expired = [sid for sid, seen in self._last_seen.items() if now - seen > self.ttl_seconds]
        for session_id in expired:
            orchestrator = self.pop(session_id)
            await orchestrator.close()
            logger.info(f"🧹 Session {session_id} expired at {orchestrator.stage.value}")
        return len(expired)

    async def close_all(self) -> None:
        for session_id in list(self._sessions):
            await self.pop(session_id).close()


OrchestratorFactory = Callable[..., AssessmentOrchestrator]


def get_registry(request: Request) -> SessionRegistry:
    registry = getattr(request.app.state, "sessions", None)
    if registry is None:
        registry = SessionRegistry(ttl_seconds=settings.SESSION_TTL_SECONDS)
        request.app.state.sessions = registry
    return registry


def get_camera_pool(request: Request) -> CameraPool:
    cameras = getattr(request.app.state, "cameras", None)
    if cameras is None:
        cameras = CameraPool(frame_size=settings.FRAME_SIZE)
        request.app.state.cameras = cameras
    return cameras


def get_orchestrator_factory(
    generation: OpenAIService = Depends(get_openai_service),
    speech: SpeechService = Depends(get_speech_service),
    cameras: CameraPool = Depends(get_camera_pool),
) -> OrchestratorFactory:
    def factory(motion_spec, questionnaire_results, initial_assessment) -> AssessmentOrchestrator:
        return build_orchestrator(
            motion_spec=motion_spec,
            generation=generation,
            speech=speech.for_session(),
            questionnaire_results=questionnaire_results,
            initial_assessment=initial_assessment,
            camera=cameras.get(settings.CAMERA_INDEX),
        )
    return factory


def _http_error(e: AssessmentError) -> HTTPException:
    return HTTPException(status_code=status_for(e), detail=e.to_dict())


@router.post("")
async def create_session(
    body: CreateSessionRequest,
    registry: SessionRegistry = Depends(get_registry),
    factory: OrchestratorFactory = Depends(get_orchestrator_factory),
):
    try:
        motion_spec = parse_motion_analysis(body.motion_analysis)
    except AssessmentError as e:
        logger.warning(f"Rejected motion analysis: {e.details}")
        raise _http_error(e)

    await registry.evict_expired()
    orchestrator = factory(motion_spec, body.questionnaire_results, body.initial_assessment)
    registry.add(orchestrator)
    logger.info(f"📋 Session {orchestrator.id} created with {len(motion_spec.measurements)} measurements")
    return orchestrator.status()


@router.get("/{session_id}/status")
async def session_status(session_id: str, registry: SessionRegistry = Depends(get_registry)):
    return registry.get(session_id).status()


@router.post("/{session_id}/capture")
async def start_capture(session_id: str, registry: SessionRegistry = Depends(get_registry)):
    orchestrator = registry.get(session_id)
    try:
        await orchestrator.start_capture()
    except AssessmentError as e:
        raise _http_error(e)
    return orchestrator.status()


@router.get("/{session_id}/preview")
async def preview(session_id: str, registry: SessionRegistry = Depends(get_registry)):
    """Latest composited frame as JPEG; 204 until the first frame is rendered"""
    orchestrator = registry.get(session_id)
    settings = orchestrator.settings
    jpeg = orchestrator.compositor.preview_jpeg(
        max_width=settings.FRAME_WIDTH,
        quality=settings.PREVIEW_JPEG_QUALITY,
    )
    if jpeg is None:
        return Response(status_code=204)
    return Response(content=jpeg, media_type="image/jpeg")


@router.get("/{session_id}/audio")
async def next_audio(session_id: str, registry: SessionRegistry = Depends(get_registry)):
    """Oldest queued spoken prompt; 204 when nothing is pending"""
    queued = registry.get(session_id).speech.pop_audio()
    if queued is None:
        return Response(status_code=204)
    _, audio = queued
    return Response(content=audio, media_type="audio/mpeg")


@router.post("/{session_id}/recording/start")
async def start_recording(session_id: str, registry: SessionRegistry = Depends(get_registry)):
    orchestrator = registry.get(session_id)
    try:
        orchestrator.start_recording()
    except AssessmentError as e:
        raise _http_error(e)
    return orchestrator.status()


@router.post("/{session_id}/recording/stop")
async def stop_recording(session_id: str, registry: SessionRegistry = Depends(get_registry)):
    orchestrator = registry.get(session_id)
    try:
        clip = await orchestrator.stop_recording()
    except AssessmentError as e:
        raise _http_error(e)
    status = orchestrator.status()
    status["clip"] = {
        "clipId": clip.clip_id,
        "frames": clip.frame_count,
        "poses": len(clip.poses),
        "duration": clip.duration,
    }
    return status


@router.post("/{session_id}/trim/retry")
async def retry_trim(session_id: str, registry: SessionRegistry = Depends(get_registry)):
    orchestrator = registry.get(session_id)
    try:
        await orchestrator.resolve_clip_duration()
    except AssessmentError as e:
        raise _http_error(e)
    return orchestrator.status()


@router.get("/{session_id}/trim/thumbnails")
async def trim_thumbnails(session_id: str, registry: SessionRegistry = Depends(get_registry)):
    orchestrator = registry.get(session_id)
    if orchestrator.clip is None:
        raise _http_error(PreconditionNotMet("No recording to trim yet"))
    settings = orchestrator.settings
    try:
        strip = await asyncio.to_thread(
            orchestrator.clip_processor.thumbnail_strip,
            orchestrator.clip.path,
            settings.THUMBNAIL_COUNT,
            settings.THUMBNAIL_STRIP_SIZE,
        )
    except AssessmentError as e:
        raise _http_error(e)
    return Response(content=strip, media_type="image/jpeg")


@router.post("/{session_id}/trim")
async def set_trim(session_id: str, body: TrimRequest, registry: SessionRegistry = Depends(get_registry)):
    orchestrator = registry.get(session_id)
    try:
        frame_range = orchestrator.select_range(
            start_frame=body.start_frame,
            end_frame=body.end_frame,
            start_fraction=body.start_fraction,
            end_fraction=body.end_fraction,
        )
        start_time, end_time = orchestrator.selector.time_window()
    except AssessmentError as e:
        raise _http_error(e)
    return {
        "frameRange": frame_range.model_dump(by_alias=True),
        "startTime": start_time,
        "endTime": end_time,
    }


@router.post("/{session_id}/score")
async def score(session_id: str, registry: SessionRegistry = Depends(get_registry)):
    orchestrator = registry.get(session_id)
    try:
        if orchestrator.outcome is None:
            diagnosis = await orchestrator.score()
        else:
            # Diagnosis retry after a generation failure
            diagnosis = await orchestrator.request_diagnosis()
    except AssessmentError as e:
        raise _http_error(e)
    return {
        "outcome": orchestrator.outcome.model_dump(by_alias=True),
        "diagnosis": diagnosis.model_dump(by_alias=True),
    }


@router.delete("/{session_id}")
async def delete_session(session_id: str, registry: SessionRegistry = Depends(get_registry)):
    orchestrator = registry.pop(session_id)
    await orchestrator.close()
    return {"sessionId": session_id, "closed": True}
