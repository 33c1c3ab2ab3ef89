from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from mistake_analyzer.api.dependencies import get_question_source
from mistake_analyzer.core.errors import AppError
from mistake_analyzer.core.logging import DOMAIN_QUESTIONS, get_domain_logger
from mistake_analyzer.engine.question_source import QuestionSource
from mistake_analyzer.schemas.questions import GenerateQuestionsRequest, GenerateQuestionsResponse

router = APIRouter(prefix="/questions", tags=["questions"])
logger = get_domain_logger(__name__, DOMAIN_QUESTIONS)


@router.post("/generate", response_model=GenerateQuestionsResponse)
async def generate_questions(
    payload: GenerateQuestionsRequest,
    source: QuestionSource = Depends(get_question_source),
):
    """Question Source contract: failures come back as ``{success: false, error}`` rather than the error envelope."""
    try:
        questions = await source.fetch(payload.subject, payload.count, payload.difficulty)
    except AppError as exc:
        logger.warning("Question generation failed: %s", exc.message)
        body = GenerateQuestionsResponse(success=False, error=exc.message)
        return JSONResponse(status_code=exc.status_code, content=body.model_dump(mode="json"))
    return GenerateQuestionsResponse(success=True, questions=questions, count=len(questions))
