from fastapi import APIRouter, Depends

from mistake_analyzer.api.dependencies import get_session_manager
from mistake_analyzer.engine.session_engine import SessionManager
from mistake_analyzer.schemas.results import TestReview
from mistake_analyzer.schemas.session import SessionView, StartTestRequest, SubmitAnswerRequest, SubmitAnswerResponse

router = APIRouter(prefix="/sessions", tags=["sessions"])


@router.post("/start", response_model=SessionView)
async def start_test(payload: StartTestRequest, manager: SessionManager = Depends(get_session_manager)):
    engine = await manager.start_test(payload.user_id, payload.subject, payload.question_count, payload.difficulty)
    return engine.current_view()


@router.get("/{user_id}", response_model=SessionView)
async def current_session(user_id: str, manager: SessionManager = Depends(get_session_manager)):
    return manager.get(user_id).current_view()


@router.post("/{user_id}/answer", response_model=SubmitAnswerResponse)
async def submit_answer(
    user_id: str,
    payload: SubmitAnswerRequest,
    manager: SessionManager = Depends(get_session_manager),
):
    return await manager.get(user_id).submit_answer(payload.selected_option)


@router.post("/{user_id}/next", response_model=SessionView)
async def next_question(user_id: str, manager: SessionManager = Depends(get_session_manager)):
    engine = manager.get(user_id)
    engine.next_question()
    return engine.current_view()


@router.post("/{user_id}/end", response_model=TestReview)
async def end_test(user_id: str, manager: SessionManager = Depends(get_session_manager)):
    return await manager.end_test(user_id)


@router.post("/{user_id}/reset")
async def reset_test(user_id: str, manager: SessionManager = Depends(get_session_manager)):
    manager.reset_test(user_id)
    return {"user_id": user_id, "status": "reset"}
