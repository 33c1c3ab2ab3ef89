from datetime import datetime

from pydantic import BaseModel, Field

from mistake_analyzer.schemas.questions import Question


class SubjectScore(BaseModel):
    correct: int = 0
    total: int = 0
    accuracy: float = 0.0


class QuestionTiming(BaseModel):
    question_id: str
    time_taken: int


class Performance(BaseModel):
    fastest_question: QuestionTiming
    slowest_question: QuestionTiming


class ResultsSummary(BaseModel):
    test_id: str
    total_questions: int
    correct_answers: int
    incorrect_answers: int
    accuracy: float
    grade: str
    total_time: int
    avg_time_per_question: float
    subject_breakdown: dict[str, SubjectScore]
    performance: Performance
    timestamp: datetime


class TestReview(BaseModel):
    """End-of-test payload: the summary plus everything a review screen needs."""

    results: ResultsSummary
    questions: list[Question]
    answers: dict[int, str] = Field(default_factory=dict)


class UserStats(BaseModel):
    total_questions: int = 0
    mistakes: int = 0
    accuracy: float = 0.0


class ResultsResponse(BaseModel):
    success: bool = True
    results: ResultsSummary
