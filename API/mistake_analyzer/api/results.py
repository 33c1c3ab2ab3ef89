from fastapi import APIRouter, Depends

from mistake_analyzer.api.dependencies import get_pattern_engine, get_response_repository
from mistake_analyzer.core.errors import NoResultsError
from mistake_analyzer.engine.pattern_engine import PatternEngine
from mistake_analyzer.engine.statistics import compute_results
from mistake_analyzer.schemas.responses import AnswerPayload, RecordAnswerResponse
from mistake_analyzer.schemas.results import ResultsResponse, UserStats
from mistake_analyzer.storage.responses import ResponseRepository

router = APIRouter(tags=["results"])


@router.post("/responses", response_model=RecordAnswerResponse)
async def record_answer(payload: AnswerPayload, repository: ResponseRepository = Depends(get_response_repository)):
    recorded = await repository.record_answer(payload)
    return RecordAnswerResponse(response=recorded)


@router.get("/results/{test_id}", response_model=ResultsResponse)
async def test_results(test_id: str, repository: ResponseRepository = Depends(get_response_repository)):
    records = await repository.list_for_test(test_id)
    if not records:
        raise NoResultsError("No responses found for this test", details={"test_id": test_id})
    return ResultsResponse(results=compute_results(test_id, records))


@router.get("/stats/{user_id}", response_model=UserStats)
async def user_stats(user_id: str, engine: PatternEngine = Depends(get_pattern_engine)):
    return await engine.user_stats(user_id)
