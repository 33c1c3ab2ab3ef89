"""Process-wide collaborators handed to routes via ``Depends`` (overridable in tests)."""
from functools import lru_cache

from mistake_analyzer.engine.pattern_engine import PatternEngine
from mistake_analyzer.engine.question_source import QuestionSource, build_question_source
from mistake_analyzer.engine.session_engine import SessionManager
from mistake_analyzer.storage.patterns import PatternRepository
from mistake_analyzer.storage.questions import QuestionRepository
from mistake_analyzer.storage.responses import ResponseRepository


@lru_cache
def get_response_repository() -> ResponseRepository:
    return ResponseRepository()


@lru_cache
def get_question_source() -> QuestionSource:
    return build_question_source()


@lru_cache
def get_session_manager() -> SessionManager:
    return SessionManager(get_question_source(), get_response_repository())


@lru_cache
def get_pattern_engine() -> PatternEngine:
    return PatternEngine(get_response_repository(), QuestionRepository(), PatternRepository())
