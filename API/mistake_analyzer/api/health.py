from fastapi import APIRouter, Depends

from mistake_analyzer.api.dependencies import get_session_manager
from mistake_analyzer.core.settings import settings
from mistake_analyzer.engine.session_engine import SessionManager

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(manager: SessionManager = Depends(get_session_manager)):
    return {
        "status": "ok",
        "service": "mistake-analyzer-api",
        "active_sessions": manager.active_count(),
        "llm_provider": settings.llm_provider,
        "question_source": settings.question_source,
    }
