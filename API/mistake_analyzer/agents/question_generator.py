"""
Question Generation Agent: asks the model for NEET-style MCQs and validates them.

Model output goes through the shared JSON-array boundary; every question is
default-filled field by field, and questions without a usable answer key or
subject are dropped rather than guessed.
"""
from mistake_analyzer.agents.base import BaseAgent
from mistake_analyzer.core.app_metrics import record_llm_call
from mistake_analyzer.core.errors import ParseError, ProviderError
from mistake_analyzer.core.json_parser import extract_json_array
from mistake_analyzer.core.llm_provider import BaseLLMProvider, get_llm_provider
from mistake_analyzer.core.logging import DOMAIN_QUESTIONS, get_domain_logger
from mistake_analyzer.schemas.common import Difficulty, OptionLabel, TestSubject, parse_option, parse_subject
from mistake_analyzer.schemas.questions import QuestionDraft

logger = get_domain_logger(__name__, DOMAIN_QUESTIONS)

SYSTEM_PROMPT = (
    "You are an expert NEET exam question creator. "
    "Generate high-quality multiple-choice questions following the NEET pattern."
)


def build_question_prompt(subject: TestSubject, count: int, difficulty: Difficulty) -> str:
    subject_info = "Mix of Physics, Chemistry, and Biology" if subject == TestSubject.MIXED else subject.value
    return (
        f"Generate {count} NEET-style multiple choice questions for {subject_info} "
        f"at {difficulty.value} difficulty level.\n\n"
        "For each question, provide:\n"
        "1. Question text (clear and concise)\n"
        "2. Four options (A, B, C, D)\n"
        "3. Correct answer (A, B, C, or D)\n"
        "4. Subject (Physics, Chemistry, or Biology)\n"
        "5. Topic/chapter name\n\n"
        "Format your response as a JSON array like this:\n"
        "[\n"
        "  {\n"
        '    "question_text": "What is the SI unit of force?",\n'
        '    "option_a": "Newton",\n'
        '    "option_b": "Joule",\n'
        '    "option_c": "Watt",\n'
        '    "option_d": "Pascal",\n'
        '    "correct_answer": "A",\n'
        '    "subject": "Physics",\n'
        '    "difficulty": "Medium",\n'
        '    "topic": "Units and Measurements"\n'
        "  }\n"
        "]\n\n"
        "Requirements:\n"
        "- Questions should be NEET exam standard\n"
        "- Options should be plausible and not obviously wrong\n"
        "- Cover important topics from the NEET syllabus\n"
        "- Ensure correct answer is accurate\n"
        "- Return ONLY the JSON array, no additional text"
    )


def _text(value, default: str) -> str:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return default


def _difficulty(value, fallback: Difficulty) -> Difficulty:
    text = str(value or "").strip().lower()
    for level in Difficulty:
        if level.value.lower() == text:
            return level
    return fallback


def normalize_questions(items: list, subject: TestSubject, difficulty: Difficulty) -> list[QuestionDraft]:
    fallback_subject = None if subject == TestSubject.MIXED else parse_subject(subject.value)
    drafts: list[QuestionDraft] = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            logger.warning("Dropping question %d: not an object", index + 1)
            continue
        correct = parse_option(item.get("correct_answer") or OptionLabel.A.value)
        if correct is None:
            logger.warning("Dropping question %d: correct answer %r is not A-D", index + 1, item.get("correct_answer"))
            continue
        question_subject = parse_subject(item.get("subject")) or fallback_subject
        if question_subject is None:
            logger.warning("Dropping question %d: unknown subject %r", index + 1, item.get("subject"))
            continue
        topic = item.get("topic")
        drafts.append(
            QuestionDraft(
                question_text=_text(item.get("question_text"), f"Question {index + 1}"),
                option_a=_text(item.get("option_a"), "Option A"),
                option_b=_text(item.get("option_b"), "Option B"),
                option_c=_text(item.get("option_c"), "Option C"),
                option_d=_text(item.get("option_d"), "Option D"),
                correct_answer=correct,
                subject=question_subject,
                difficulty=_difficulty(item.get("difficulty"), difficulty),
                topic=topic.strip() if isinstance(topic, str) and topic.strip() else None,
            )
        )
    return drafts


class QuestionGenerationAgent(BaseAgent):
    name = "question_generator"

    def __init__(self, provider: BaseLLMProvider | None = None):
        self.provider = provider or get_llm_provider(role="question_generator")

    async def run(self, input_data: dict) -> dict:
        subject = TestSubject(input_data.get("subject", TestSubject.MIXED))
        difficulty = Difficulty(input_data.get("difficulty", Difficulty.MEDIUM))
        count = int(input_data.get("count", 10))

        logger.info("Generating %d %s questions for %s", count, difficulty.value, subject.value)
        prompt = build_question_prompt(subject, count, difficulty)
        try:
            text, usage = await self.provider.generate(prompt, system_prompt=SYSTEM_PROMPT)
        except ProviderError:
            record_llm_call(self.name, False)
            raise
        if not text:
            record_llm_call(self.name, False)
            raise ProviderError(f"No content received from AI ({usage.get('reason', 'empty_response')})")
        record_llm_call(self.name, True)

        try:
            drafts = normalize_questions(extract_json_array(text), subject, difficulty)
        except ParseError as exc:
            raise ParseError(f"Failed to parse AI response: {exc.message}") from exc
        logger.info("Generated %d questions from AI", len(drafts))
        return {
            "questions": drafts,
            "count": len(drafts),
            "usage": usage,
            "agent": self.name,
        }
