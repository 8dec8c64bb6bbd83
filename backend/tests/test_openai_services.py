"""
Tests for the generation and speech services
"""

import asyncio
import logging

import pytest

from shouldercheck.errors import GenerationServiceError, InvalidMeasurementSpec, SpeechSynthesisError
from shouldercheck.models.intake import DiagnosisRequest, QuestionRequest
from shouldercheck.models.measurement import AssessmentOutcome
from shouldercheck.services.openai_service import OpenAIService
from shouldercheck.services.speech_service import SpeechService


@pytest.fixture
def question_request():
    return QuestionRequest.model_validate({
        "currentQuestion": "Where is the pain?",
        "latestAnswer": "On the outside of my right shoulder",
        "conversationHistory": [],
    })


@pytest.fixture
def ready_payload():
    return {
        "nextQuestion": None,
        "ready": True,
        "assessment": {"diagnosis": "Possible subacromial impingement"},
        "motionAnalysis": {
            "description": "Raise your right arm out to the side.",
            "measurements": [
                {"kind": "angle", "points": ["right_elbow", "right_shoulder", "right_hip"], "thresholdLow": 70, "thresholdHigh": 180}
            ],
        },
    }


class TestNextQuestion:
    @pytest.mark.asyncio
    async def test_follow_up_question(self, fake_openai, question_request):
        fake_openai.chat_responses.append({"nextQuestion": "How long has it hurt?", "ready": False})
        service = OpenAIService(client=fake_openai, model="test-model")

        response = await service.next_question(question_request)

        assert response.ready is False
        assert response.next_question == "How long has it hurt?"
        call = fake_openai.chat_calls[0]
        assert call["model"] == "test-model"
        assert call["response_format"] == {"type": "json_object"}
        contents = [m["content"] for m in call["messages"]]
        assert "On the outside of my right shoulder" in contents

    @pytest.mark.asyncio
    async def test_ready_response_carries_validated_motion(self, fake_openai, question_request, ready_payload):
        fake_openai.chat_responses.append(ready_payload)
        response = await OpenAIService(client=fake_openai).next_question(question_request)

        assert response.ready is True
        assert response.motion_analysis.measurements[0].threshold_high == 180

    @pytest.mark.asyncio
    async def test_invalid_motion_is_rejected(self, fake_openai, question_request, ready_payload):
        ready_payload["motionAnalysis"]["measurements"][0]["points"] = ["right_shoulder"]
        fake_openai.chat_responses.append(ready_payload)

        with pytest.raises(InvalidMeasurementSpec):
            await OpenAIService(client=fake_openai).next_question(question_request)

    @pytest.mark.asyncio
    async def test_contract_violation(self, fake_openai, question_request):
        fake_openai.chat_responses.append({"ready": False})
        with pytest.raises(GenerationServiceError):
            await OpenAIService(client=fake_openai).next_question(question_request)

    @pytest.mark.asyncio
    async def test_malformed_json(self, fake_openai, question_request):
        fake_openai.chat_responses.append("not json at all")
        with pytest.raises(GenerationServiceError):
            await OpenAIService(client=fake_openai).next_question(question_request)

    @pytest.mark.asyncio
    async def test_api_failure(self, fake_openai, question_request):
        fake_openai.chat_error = RuntimeError("connection reset")
        with pytest.raises(GenerationServiceError) as exc_info:
            await OpenAIService(client=fake_openai).next_question(question_request)
        assert exc_info.value.details["exception_type"] == "RuntimeError"


class TestDiagnosis:
    @pytest.mark.asyncio
    async def test_diagnosis_includes_motion_results(self, fake_openai, sample_diagnosis):
        fake_openai.chat_responses.append(sample_diagnosis)
        request = DiagnosisRequest(
            questionnaire_results=[{"role": "user", "content": "It hurts when I reach up"}],
            initial_assessment={"diagnosis": "Impingement"},
            motion_assessment_results=AssessmentOutcome(results=[], overall_success=True),
        )

        diagnosis = await OpenAIService(client=fake_openai).generate_diagnosis(request)

        assert diagnosis.condition == "Rotator cuff tendinopathy"
        assert diagnosis.next_steps == ["Review in two weeks"]
        prompt = fake_openai.chat_calls[0]["messages"][0]["content"]
        assert '"overallSuccess": true' in prompt
        assert "It hurts when I reach up" in prompt

    @pytest.mark.asyncio
    async def test_incomplete_diagnosis(self, fake_openai):
        fake_openai.chat_responses.append({"condition": "Unknown"})
        request = DiagnosisRequest(motion_assessment_results=AssessmentOutcome(overall_success=False))
        with pytest.raises(GenerationServiceError):
            await OpenAIService(client=fake_openai).generate_diagnosis(request)


class TestSpeechService:
    @pytest.mark.asyncio
    async def test_synthesize(self, fake_openai):
        service = SpeechService(client=fake_openai, model="tts-1", voice="alloy")

        audio = await service.synthesize("Hello")

        assert audio == b"ID3Hello"
        assert fake_openai.speech_calls[0] == {"model": "tts-1", "voice": "alloy", "input": "Hello"}

    @pytest.mark.asyncio
    async def test_synthesize_failure(self, fake_openai):
        fake_openai.speech_error = RuntimeError("quota exceeded")
        with pytest.raises(SpeechSynthesisError):
            await SpeechService(client=fake_openai).synthesize("Hello")

    @pytest.mark.asyncio
    async def test_announce_queues_audio(self, fake_openai):
        service = SpeechService(client=fake_openai)

        await service.announce("Please step back")

        assert service.pop_audio() == ("Please step back", b"ID3Please step back")
        assert service.pop_audio() is None

    @pytest.mark.asyncio
    async def test_announce_failure_is_only_logged(self, fake_openai, caplog):
        fake_openai.speech_error = RuntimeError("quota exceeded")
        service = SpeechService(client=fake_openai)

        with caplog.at_level(logging.WARNING):
            await service.announce("Please step back")

        assert service.pop_audio() is None
        assert "Text-to-speech failed" in caplog.text

    @pytest.mark.asyncio
    async def test_announce_uses_custom_sink(self, fake_openai):
        played = []
        service = SpeechService(client=fake_openai, sink=lambda text, audio: played.append(text))

        await asyncio.gather(service.announce("one"), service.announce("two"))

        assert played == ["one", "two"]

    @pytest.mark.asyncio
    async def test_aclose_cancels_pending(self, fake_openai):
        service = SpeechService(client=fake_openai)
        task = service.announce("never played")

        await service.aclose()

        assert task.cancelled() or task.done()

    @pytest.mark.asyncio
    async def test_session_queues_are_separate(self, fake_openai):
        shared = SpeechService(client=fake_openai, voice="nova")
        first, second = shared.for_session(), shared.for_session()

        await first.announce("Please step back")

        assert first.client is second.client is fake_openai
        assert first.voice == "nova"
        assert second.pop_audio() is None
        assert first.pop_audio()[0] == "Please step back"
