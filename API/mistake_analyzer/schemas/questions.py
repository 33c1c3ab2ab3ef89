from pydantic import BaseModel, ConfigDict, Field

from mistake_analyzer.schemas.common import Difficulty, OptionLabel, Subject, TestSubject


class QuestionDraft(BaseModel):
    """A validated question that has not been stored yet."""

    model_config = ConfigDict(frozen=True)

    question_text: str
    option_a: str
    option_b: str
    option_c: str
    option_d: str
    correct_answer: OptionLabel
    subject: Subject
    difficulty: Difficulty = Difficulty.MEDIUM
    topic: str | None = None


class Question(QuestionDraft):
    id: str

    @property
    def options(self) -> dict[str, str]:
        return {
            OptionLabel.A.value: self.option_a,
            OptionLabel.B.value: self.option_b,
            OptionLabel.C.value: self.option_c,
            OptionLabel.D.value: self.option_d,
        }


class QuestionPrompt(BaseModel):
    """A question as shown while a test is running (no answer key)."""

    id: str
    question_text: str
    options: dict[str, str]
    subject: Subject
    difficulty: Difficulty
    topic: str | None = None

    @classmethod
    def from_question(cls, question: Question) -> "QuestionPrompt":
        return cls(
            id=question.id,
            question_text=question.question_text,
            options=question.options,
            subject=question.subject,
            difficulty=question.difficulty,
            topic=question.topic,
        )


class GenerateQuestionsRequest(BaseModel):
    subject: TestSubject = TestSubject.MIXED
    count: int = Field(default=10, gt=0, le=50)
    difficulty: Difficulty = Difficulty.MEDIUM


class GenerateQuestionsResponse(BaseModel):
    success: bool
    questions: list[Question] = Field(default_factory=list)
    count: int = 0
    error: str | None = None
