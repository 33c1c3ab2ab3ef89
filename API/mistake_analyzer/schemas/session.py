from pydantic import BaseModel, Field

from mistake_analyzer.schemas.common import Difficulty, OptionLabel, TestSubject
from mistake_analyzer.schemas.questions import QuestionPrompt


class StartTestRequest(BaseModel):
    user_id: str = Field(..., min_length=1, description="Device/user identifier")
    subject: TestSubject = TestSubject.MIXED
    # Non-positive counts are rejected by the engine with its own error, not by request validation.
    question_count: int = Field(default=10, le=50)
    difficulty: Difficulty | None = None


class SubmitAnswerRequest(BaseModel):
    selected_option: OptionLabel


class SubmitAnswerResponse(BaseModel):
    test_id: str
    question_position: int
    is_correct: bool
    time_taken: int
    record_id: str


class SessionView(BaseModel):
    test_id: str
    user_id: str
    subject: TestSubject
    current_question: int
    total_questions: int
    question: QuestionPrompt
    answered_count: int
    is_last_question: bool
    elapsed_seconds: float
