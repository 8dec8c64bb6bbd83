"""
Intake and diagnosis data models
"""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from shouldercheck.models.measurement import AssessmentOutcome, MotionAnalysisSpec


class _Wire(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class ConversationTurn(_Wire):
    role: Literal["system", "user", "assistant"]
    content: str


class QuestionRequest(_Wire):
    current_question: str = Field(alias="currentQuestion")
    latest_answer: str = Field(alias="latestAnswer")
    conversation_history: List[ConversationTurn] = Field(default_factory=list, alias="conversationHistory")

    def extended_history(self) -> List[ConversationTurn]:
        """History including the question just answered"""
        return self.conversation_history + [
            ConversationTurn(role="assistant", content=self.current_question),
            ConversationTurn(role="user", content=self.latest_answer),
        ]


class QuestionResponse(_Wire):
    next_question: Optional[str] = Field(default=None, alias="nextQuestion")
    assessment: Optional[Dict[str, Any]] = None
    motion_analysis: Optional[MotionAnalysisSpec] = Field(default=None, alias="motionAnalysis")
    ready: bool = False

    @model_validator(mode="after")
    def _check_contract(self) -> "QuestionResponse":
        if self.ready:
            if self.assessment is None or self.motion_analysis is None:
                raise ValueError("ready responses must carry both assessment and motionAnalysis")
            if self.next_question is not None:
                raise ValueError("ready responses must not carry a nextQuestion")
        elif not self.next_question:
            raise ValueError("responses that are not ready must carry a nextQuestion")
        return self


class DiagnosisRequest(_Wire):
    questionnaire_results: List[ConversationTurn] = Field(default_factory=list, alias="questionnaireResults")
    initial_assessment: Dict[str, Any] = Field(default_factory=dict, alias="initialAssessment")
    motion_assessment_results: AssessmentOutcome = Field(alias="motionAssessmentResults")


class Diagnosis(_Wire):
    condition: str
    reasoning: str
    exercises: List[str] = Field(default_factory=list)
    protocols: List[str] = Field(default_factory=list)
    suggestions: List[str] = Field(default_factory=list)
    next_steps: List[str] = Field(default_factory=list, alias="nextSteps")
