from fastapi import APIRouter, Depends

from mistake_analyzer.api.dependencies import get_pattern_engine
from mistake_analyzer.engine.pattern_engine import PatternEngine
from mistake_analyzer.schemas.patterns import (
    AnalyzePatternsRequest,
    AnalyzePatternsResponse,
    DashboardResponse,
    Pattern,
    PatternListResponse,
)
from mistake_analyzer.schemas.results import UserStats

router = APIRouter(tags=["patterns"])


@router.post("/patterns/analyze", response_model=AnalyzePatternsResponse)
async def analyze_patterns(payload: AnalyzePatternsRequest, engine: PatternEngine = Depends(get_pattern_engine)):
    patterns = await engine.analyze(payload.user_id)
    return AnalyzePatternsResponse(patterns=patterns, count=len(patterns))


@router.get("/patterns/{user_id}", response_model=PatternListResponse)
async def list_patterns(user_id: str, engine: PatternEngine = Depends(get_pattern_engine)):
    return PatternListResponse(user_id=user_id, patterns=await engine.list_patterns(user_id))


@router.post("/patterns/{pattern_id}/resolve", response_model=Pattern)
async def resolve_pattern(pattern_id: str, engine: PatternEngine = Depends(get_pattern_engine)):
    return await engine.resolve(pattern_id)


@router.get("/dashboard/{user_id}", response_model=DashboardResponse)
async def dashboard(user_id: str, engine: PatternEngine = Depends(get_pattern_engine)):
    patterns, stats = await engine.dashboard(user_id)
    if stats is None:
        return DashboardResponse(user_id=user_id, patterns=patterns, stats=UserStats(), stats_available=False)
    return DashboardResponse(user_id=user_id, patterns=patterns, stats=stats)
