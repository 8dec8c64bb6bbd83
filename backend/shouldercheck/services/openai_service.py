"""
OpenAI service for the conversational intake and the diagnosis step
"""

import json
from typing import Any, Dict, List, Optional

from openai import AsyncOpenAI
from pydantic import ValidationError

from shouldercheck.config.base import settings
from shouldercheck.errors import GenerationServiceError
from shouldercheck.models.intake import Diagnosis, DiagnosisRequest, QuestionRequest, QuestionResponse
from shouldercheck.models.measurement import parse_motion_analysis
from shouldercheck.utils.logger import get_logger

logger = get_logger(__name__)

INTAKE_SYSTEM_PROMPT = """You are an orthopedic specialist conducting a shoulder pain assessment.
Ask one concise follow-up question at a time about the patient's shoulder pain.
Always answer with a JSON object with the keys "nextQuestion", "assessment", "motionAnalysis" and "ready".

While you still need information, set "ready" to false, put the next question in "nextQuestion"
and set "assessment" and "motionAnalysis" to null.

When you have enough information, set "ready" to true and "nextQuestion" to null, and fill in:
- "assessment": an object with "diagnosis", "recommendedExercises", "dailyRoutine", "painManagement",
  "followUpCare", "precautions" and "longTermOutlook".
- "motionAnalysis": an object with "description" (a spoken instruction for one shoulder movement the
  patient performs in front of a camera) and "measurements", a list of objects with
  "kind" ("angle" or "distance"), "points" (landmark names from: left_shoulder, right_shoulder,
  left_elbow, right_elbow, left_wrist, right_wrist, left_hip, right_hip, left_knee, right_knee,
  left_ankle, right_ankle; three points for an angle with the vertex in the middle, two for a distance),
  "thresholdLow" and "thresholdHigh" (degrees for angles, pixels for distances)."""

NEXT_STEP_PROMPT = (
    "Based on this response, what's the next most important question to ask about the patient's "
    "shoulder pain? If you have gathered sufficient information, provide the assessment as instructed."
)

DIAGNOSIS_PROMPT = """Based on the following questionnaire results, initial assessment and motion assessment data,
provide a diagnosis for a shoulder injury.

Questionnaire Results:
{questionnaire}

Initial Assessment:
{assessment}

Motion Assessment Results:
{motion}

Answer with a JSON object with the keys "condition", "reasoning", "exercises", "protocols",
"suggestions" and "nextSteps"; every key except "condition" and "reasoning" holds a list of strings."""


class OpenAIService:
    """Question/assessment generation and diagnosis generation"""

    def __init__(self, client: Optional[AsyncOpenAI] = None, model: Optional[str] = None):
        self.client = client or AsyncOpenAI(
            api_key=settings.OPENAI_API_KEY,
            timeout=settings.OPENAI_TIMEOUT_SECONDS,
        )
        self.model = model or settings.OPENAI_MODEL

    async def _complete_json(self, messages: List[Dict[str, str]], max_tokens: int, temperature: float) -> Dict[str, Any]:
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                max_tokens=max_tokens,
                temperature=temperature,
                response_format={"type": "json_object"},
            )
        except Exception as e:
            logger.error(f"OpenAI request failed: {str(e)}")
            raise GenerationServiceError(
                "Generation service request failed",
                details={"exception_type": type(e).__name__, "error": str(e)},
            ) from e

        content = response.choices[0].message.content or ""
        try:
            payload = json.loads(content)
        except json.JSONDecodeError as e:
            logger.error(f"OpenAI returned non-JSON content: {content[:200]}")
            raise GenerationServiceError(
                "Generation service returned malformed JSON",
                details={"content": content[:500]},
            ) from e
        if not isinstance(payload, dict):
            raise GenerationServiceError("Generation service returned a non-object JSON payload")
        return payload

    async def next_question(self, request: QuestionRequest) -> QuestionResponse:
        """
        Ask for the next intake question, or the final assessment.

        Raises:
            GenerationServiceError: request failed or the response broke the contract
            InvalidMeasurementSpec: the generated motion analysis is malformed
        """
        messages = [{"role": "system", "content": INTAKE_SYSTEM_PROMPT}]
        messages += [turn.model_dump() for turn in request.extended_history()]
        messages.append({"role": "assistant", "content": NEXT_STEP_PROMPT})

        payload = await self._complete_json(messages, max_tokens=800, temperature=0.7)

        if payload.get("motionAnalysis") is not None:
            payload["motionAnalysis"] = parse_motion_analysis(payload["motionAnalysis"])

        try:
            result = QuestionResponse.model_validate(payload)
        except ValidationError as e:
            raise GenerationServiceError(
                "Generation service response violated the intake contract",
                details={"errors": [err["msg"] for err in e.errors()]},
            ) from e

        logger.info(f"Intake step generated (ready={result.ready})")
        return result

    async def generate_diagnosis(self, request: DiagnosisRequest) -> Diagnosis:
        prompt = DIAGNOSIS_PROMPT.format(
            questionnaire=json.dumps([t.model_dump() for t in request.questionnaire_results], indent=2),
            assessment=json.dumps(request.initial_assessment, indent=2),
            motion=request.motion_assessment_results.model_dump_json(by_alias=True, indent=2),
        )
        payload = await self._complete_json(
            [{"role": "user", "content": prompt}],
            max_tokens=1000,
            temperature=0.7,
        )

        try:
            diagnosis = Diagnosis.model_validate(payload)
        except ValidationError as e:
            raise GenerationServiceError(
                "Diagnosis response is missing required fields",
                details={"errors": [err["msg"] for err in e.errors()]},
            ) from e

        logger.info(f"Diagnosis generated: {diagnosis.condition}")
        return diagnosis
