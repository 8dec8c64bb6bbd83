"""
Intake endpoints: conversational questions and text-to-speech
"""

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import Response
from pydantic import BaseModel, Field

from shouldercheck.errors import AssessmentError
from shouldercheck.models.intake import QuestionRequest, QuestionResponse
from shouldercheck.routers.errors import status_for
from shouldercheck.services.openai_service import OpenAIService
from shouldercheck.services.speech_service import SpeechService
from shouldercheck.utils.logger import get_logger

logger = get_logger(__name__)
router = APIRouter(tags=["Intake"])


class SpeechRequest(BaseModel):
    text: str = Field(min_length=1, max_length=4096)


def get_openai_service(request: Request) -> OpenAIService:
    service = getattr(request.app.state, "openai_service", None)
    if service is None:
        service = OpenAIService()
        request.app.state.openai_service = service
    return service


def get_speech_service(request: Request) -> SpeechService:
    service = getattr(request.app.state, "speech_service", None)
    if service is None:
        service = SpeechService()
        request.app.state.speech_service = service
    return service


@router.post("/questions/next", response_model=QuestionResponse, response_model_by_alias=True)
async def next_question(body: QuestionRequest, service: OpenAIService = Depends(get_openai_service)):
    """Next intake question, or the final assessment with its motion analysis"""
    try:
        return await service.next_question(body)
    except AssessmentError as e:
        logger.error(f"❌ Intake step failed: {e.message}")
        raise HTTPException(status_code=status_for(e), detail=e.to_dict())


@router.post("/tts")
async def text_to_speech(body: SpeechRequest, service: SpeechService = Depends(get_speech_service)):
    try:
        audio = await service.synthesize(body.text)
    except AssessmentError as e:
        logger.error(f"❌ TTS failed: {e.message}")
        raise HTTPException(status_code=status_for(e), detail=e.to_dict())
    return Response(content=audio, media_type="audio/mpeg")
