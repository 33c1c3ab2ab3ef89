from datetime import datetime

from pydantic import BaseModel, Field

from mistake_analyzer.schemas.common import Subject
from mistake_analyzer.schemas.results import UserStats


class PatternDraft(BaseModel):
    """A validated pattern from model output, before it is stored."""

    pattern_type: str = "unknown"
    title: str = "Untitled Pattern"
    description: str = "No description provided"
    confidence: int = Field(default=50, ge=0, le=100)
    evidence: list[str] = Field(default_factory=list)
    recommendation: str = "No recommendation provided"
    subject_distribution: dict[Subject, int] | None = None


class Pattern(PatternDraft):
    id: str
    user_id: str
    detected_at: datetime
    is_resolved: bool = False


class AnalyzePatternsRequest(BaseModel):
    user_id: str = Field(..., min_length=1)


class AnalyzePatternsResponse(BaseModel):
    success: bool = True
    patterns: list[Pattern]
    count: int


class PatternListResponse(BaseModel):
    user_id: str
    patterns: list[Pattern]


class DashboardResponse(BaseModel):
    user_id: str
    patterns: list[Pattern]
    stats: UserStats
    stats_available: bool = True
