from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from mistake_analyzer.schemas.common import OptionLabel


class AnswerPayload(BaseModel):
    """What the persistence collaborator needs to record one answered question."""

    user_id: str = Field(..., min_length=1)
    test_id: str = Field(..., min_length=1)
    question_id: str = Field(..., min_length=1)
    selected_answer: OptionLabel
    correct_answer: OptionLabel
    time_taken: int = Field(default=0, ge=0)
    question_position: int = Field(default=1, ge=1)
    test_duration_so_far: float = Field(default=0.0, ge=0.0)
    subject: str | None = None
    timestamp: datetime | None = None

    @field_validator("selected_answer", "correct_answer", mode="before")
    @classmethod
    def _upper_option(cls, value):
        return value.strip().upper() if isinstance(value, str) else value


class RecordedAnswer(BaseModel):
    id: str
    is_correct: bool
    selected_answer: OptionLabel
    correct_answer: OptionLabel


class ResponseRecord(BaseModel):
    """Durable record of one answered question. Subject is kept as stored text."""

    model_config = ConfigDict(frozen=True)

    id: str | None = None
    user_id: str
    question_id: str
    selected_answer: str
    is_correct: bool
    time_taken: int = 0
    test_id: str
    timestamp: datetime
    question_position: int = 1
    test_duration_so_far: float = 0.0
    subject: str | None = None


class RecordAnswerResponse(BaseModel):
    success: bool = True
    response: RecordedAnswer
